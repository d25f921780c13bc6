"""
Long-term quota history.

Points collected in the usage buffer are merged here, de-duplicated by
timestamp and kept for a bounded retention window.
"""

import logging
import time
from pathlib import Path
from typing import List, Optional

from .buffer import UsageBuffer
from .files import read_json, write_json
from .models import BufferPoint, decode_points

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_HOURS = 24 * 7


class HistoryStore:
    """Repository for the merged history file."""

    def __init__(self, path: Path, retention_hours: int = DEFAULT_RETENTION_HOURS):
        """Initialize the store.

        Args:
            path: Path to the history file
            retention_hours: Points older than this are dropped on load and save
        """
        if retention_hours <= 0:
            raise ValueError("retention_hours must be > 0")
        self.path = Path(path)
        self.retention_hours = retention_hours

    def _cutoff(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        return int(now) - self.retention_hours * 3600

    def load(self, now: Optional[float] = None) -> List[BufferPoint]:
        """Load history points within the retention window.

        Returns:
            Points newer than the cutoff, or an empty list if the file is
            missing or corrupt
        """
        if not self.path.exists():
            return []

        try:
            points = decode_points(read_json(self.path))
        except (OSError, ValueError) as e:
            logger.warning(f"History file {self.path} unreadable: {e}")
            return []

        cutoff = self._cutoff(now)
        return [p for p in points if p.timestamp > cutoff]

    def save(self, points: List[BufferPoint]) -> None:
        write_json(self.path, [p.to_dict() for p in points])

    def merge_buffer(self, buffer: UsageBuffer, now: Optional[float] = None) -> int:
        """Consume the usage buffer into history.

        Points whose timestamp already exists in history are skipped. The
        buffer file is deleted afterwards whether or not anything was added.

        Args:
            buffer: Buffer to consume
            now: Reference time for retention, defaults to the current time

        Returns:
            Number of points added to history
        """
        if not buffer.path.exists():
            return 0

        buffer_points = buffer.read_points()
        if not buffer_points:
            buffer.clear()
            return 0

        history = self.load(now)
        seen = {p.timestamp for p in history}
        added = 0
        for point in buffer_points:
            if point.timestamp in seen:
                continue
            history.append(point)
            seen.add(point.timestamp)
            added += 1

        if added:
            history.sort(key=lambda p: p.timestamp)
            cutoff = self._cutoff(now)
            self.save([p for p in history if p.timestamp > cutoff])
            logger.info(f"Merged {added} point(s) from usage buffer")

        buffer.clear()
        return added
