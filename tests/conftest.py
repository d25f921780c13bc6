"""
Shared fixtures for quota guardian tests.
"""

import json
from typing import Callable, List, Optional

import pytest

from quota_guardian.core.clock import Clock, TimerHandle


class FakeTimer(TimerHandle):
    def __init__(self, fire_at: float, callback: Callable[[], None]):
        self.fire_at = fire_at
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock(Clock):
    """Manually advanced clock; timers fire only from ``advance``."""

    def __init__(self, start: float):
        self._now = start
        self.timers: List[FakeTimer] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = FakeTimer(self._now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return sorted((t for t in self.timers if not t.cancelled), key=lambda t: t.fire_at)

    def pending_delays(self) -> List[float]:
        return [t.fire_at - self._now for t in self.pending]

    def advance(self, seconds: float) -> None:
        """Move time forward, firing due timers in order."""
        target = self._now + seconds
        while True:
            due = [t for t in self.pending if t.fire_at <= target]
            if not due:
                break
            timer = due[0]
            self.timers.remove(timer)
            self._now = max(self._now, timer.fire_at)
            timer.callback()
        self._now = target


@pytest.fixture
def write_accounts(tmp_path):
    """Write an accounts file and return its path."""
    def _write(accounts: list, name: str = "accounts.json"):
        path = tmp_path / name
        path.write_text(json.dumps(accounts), encoding="utf-8")
        return path
    return _write


def make_account(
    account_id: str = "acc-1",
    email: str = "user@example.com",
    is_active: bool = True,
    access_token: Optional[str] = "ya29.access",
    refresh_token: Optional[str] = "1//refresh",
    name: str = "Test User",
) -> dict:
    record = {
        "id": account_id,
        "name": name,
        "email": email,
        "token": "",
        "account_type": "Gemini",
        "status": "active",
        "quota": None,
        "is_active": is_active,
    }
    if access_token or refresh_token:
        record["token_data"] = {
            "access_token": access_token or "",
            "refresh_token": refresh_token or "",
            "expires_at": 0,
        }
    return record
