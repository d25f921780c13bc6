"""
Capacity-bounded, disk-persisted buffer of usage observations.

The buffer is the hand-off point to the companion app: the guardian appends
one point per successful poll, and the companion (or ``HistoryStore``)
later consumes and deletes the file.
"""

import logging
import threading
from pathlib import Path
from typing import List

from .files import read_json, write_json
from .models import BufferPoint, decode_points

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 5000


class UsageBuffer:
    """Append-only FIFO ring buffer backed by a JSON array file.

    Each append reads the whole file, adds one point, evicts the oldest points
    beyond ``capacity`` and rewrites the file. A corrupt file is treated as an
    empty buffer. Appends within one process are serialized by a lock.
    """

    def __init__(self, path: Path, capacity: int = DEFAULT_CAPACITY):
        """Initialize the buffer.

        Args:
            path: Path to the buffer file
            capacity: Maximum number of retained points

        Raises:
            ValueError: If capacity is not positive
        """
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.path = Path(path)
        self.capacity = capacity
        self._lock = threading.Lock()

    def read_points(self) -> List[BufferPoint]:
        """Read the persisted sequence in insertion order.

        Returns:
            Stored points, or an empty list if the file is missing or corrupt
        """
        if not self.path.exists():
            return []

        try:
            return decode_points(read_json(self.path))
        except (OSError, ValueError) as e:
            logger.warning(f"Buffer file {self.path} unreadable, treating as empty: {e}")
            return []

    def append(self, point: BufferPoint) -> None:
        """Append a point, evicting the oldest ones beyond capacity.

        Args:
            point: The observation to persist

        Raises:
            OSError: If the buffer file can't be written
        """
        with self._lock:
            points = self.read_points()
            points.append(point)
            if len(points) > self.capacity:
                evicted = len(points) - self.capacity
                points = points[evicted:]
                logger.debug(f"Evicted {evicted} oldest buffer point(s)")
            write_json(self.path, [p.to_dict() for p in points])

    def count(self) -> int:
        """Number of persisted points, 0 if the file can't be read."""
        return len(self.read_points())

    def clear(self) -> None:
        """Delete the backing file."""
        with self._lock:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
