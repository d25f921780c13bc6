"""
Companion bridge liveness.

The desktop companion keeps rewriting ``quota_bridge.json`` while it runs.
When that file is fresh the guardian still polls and buffers, but leaves
status display to the companion.
"""

import time
from pathlib import Path
from typing import Callable

DEFAULT_LIVE_SECONDS = 180


class BridgeMonitor:
    """Detects whether the companion process is live from the bridge file mtime."""

    def __init__(
        self,
        path: Path,
        live_seconds: float = DEFAULT_LIVE_SECONDS,
        now: Callable[[], float] = time.time,
    ):
        """Initialize the monitor.

        Args:
            path: Path to the bridge file
            live_seconds: Maximum file age for the companion to count as live
            now: Time source in epoch seconds
        """
        if live_seconds <= 0:
            raise ValueError("live_seconds must be > 0")
        self.path = Path(path)
        self.live_seconds = live_seconds
        self._now = now

    def is_live(self) -> bool:
        try:
            mtime = self.path.stat().st_mtime
        except OSError:
            return False
        return self._now() - mtime <= self.live_seconds
