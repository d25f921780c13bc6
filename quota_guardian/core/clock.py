"""
Clock abstraction for the scheduler.

The guardian never sleeps or reads wall-clock time directly; it asks a
``Clock`` for the current time and for one-shot timers so schedules can be
driven deterministically.
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Callable


class TimerHandle(ABC):
    """A pending one-shot callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running if it hasn't started yet."""


class Clock(ABC):
    """Source of time and one-shot timers."""

    @abstractmethod
    def now(self) -> float:
        """Current time in epoch seconds."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""


class _ThreadTimerHandle(TimerHandle):
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class SystemClock(Clock):
    """Wall-clock time with daemon ``threading.Timer`` callbacks.

    Timers are daemon threads, so pending wake-ups are simply abandoned when
    the process exits.
    """

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(delay, 0.0), callback)
        timer.daemon = True
        timer.start()
        return _ThreadTimerHandle(timer)
