"""
Quota guardian scheduler.

Polls the quota endpoint on a five-minute grid, recovers from an expired
access token with a single refresh-and-retry, persists every observation to
the usage buffer and adds one-shot bonus polls around quota resets.

Cycle:
1. Base wake fires shortly after each five-minute boundary
2. Poll attempt runs to completion (including any retry)
3. Next base wake is armed only after that, so base polls never overlap
4. Bonus polls near a model's reset time run on their own timers
"""

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..client.errors import (
    AuthExpiredError,
    MalformedResponseError,
    QuotaFetchError,
    QuotaHTTPError,
    QuotaTransportError,
)
from ..client.oauth import TokenRefresher
from ..client.quota_api import QuotaFetcher
from ..storage.accounts import AccountStore
from ..storage.buffer import UsageBuffer
from ..storage.models import Account, BufferPoint, QuotaSnapshot
from .bridge import BridgeMonitor
from .clock import Clock, SystemClock, TimerHandle
from .token_cache import TokenCache

logger = logging.getLogger(__name__)

GRID_SECONDS = 300
DEFAULT_SKEW_SECONDS = 15

# Reset windows for bonus polls, in seconds until reset
BONUS_BEFORE_MIN = 35
BONUS_BEFORE_MAX = 310
BONUS_BEFORE_LEAD = 30
BONUS_AFTER_LAG = 2

# Bonus polls firing this close to an already pending one are not scheduled
BONUS_DEDUP_SECONDS = 5.0


class PollOutcome(Enum):
    """Result of a single poll attempt."""
    RECORDED = "recorded"
    NO_ACTIVE_ACCOUNT = "no_active_account"
    NO_TOKEN = "no_token"
    AUTH_EXPIRED = "auth_expired"
    TRANSPORT_ERROR = "transport_error"
    HTTP_ERROR = "http_error"
    MALFORMED_RESPONSE = "malformed_response"
    PERSISTENCE_FAILED = "persistence_failed"


class GuardianState(Enum):
    """Base-cadence state of the guardian."""
    IDLE = "idle"
    WAITING = "waiting"
    POLLING = "polling"


def compute_base_delay(now: datetime, skew_seconds: int = DEFAULT_SKEW_SECONDS) -> int:
    """Seconds until the next base wake.

    Wakes sit ``skew_seconds`` past each five-minute boundary. A zero delay
    is pushed to the following slot so a poll finishing within its own wake
    second is not repeated.

    Args:
        now: Current local wall-clock time
        skew_seconds: Offset past each boundary

    Returns:
        Delay in whole seconds, in ``(0, 300]``
    """
    seconds_past = (now.minute % 5) * 60 + now.second
    delay = (GRID_SECONDS - seconds_past + skew_seconds) % GRID_SECONDS
    if delay <= 0:
        delay += GRID_SECONDS
    return delay


def compute_bonus_delay(time_to_reset: float) -> Optional[float]:
    """Delay for a bonus poll around a reset, or None if none is warranted.

    Resets between 35s and 310s away are polled 30s before they happen;
    resets at most 35s away are polled 2s after.
    """
    if BONUS_BEFORE_MIN < time_to_reset < BONUS_BEFORE_MAX:
        return time_to_reset - BONUS_BEFORE_LEAD
    if 0 < time_to_reset <= BONUS_BEFORE_MIN:
        return time_to_reset + BONUS_AFTER_LAG
    return None


_OUTCOME_BY_ERROR = (
    (AuthExpiredError, PollOutcome.AUTH_EXPIRED),
    (QuotaTransportError, PollOutcome.TRANSPORT_ERROR),
    (MalformedResponseError, PollOutcome.MALFORMED_RESPONSE),
    (QuotaHTTPError, PollOutcome.HTTP_ERROR),
)


def _outcome_for(error: QuotaFetchError) -> PollOutcome:
    for error_type, outcome in _OUTCOME_BY_ERROR:
        if isinstance(error, error_type):
            return outcome
    return PollOutcome.HTTP_ERROR


class QuotaGuardian:
    """Background quota poller for the active account.

    All collaborators are injected; nothing here reads process-wide state.
    The notifier receives each successful snapshot unless the companion
    bridge reports itself live.
    """

    def __init__(
        self,
        accounts: AccountStore,
        fetcher: QuotaFetcher,
        refresher: TokenRefresher,
        buffer: UsageBuffer,
        clock: Optional[Clock] = None,
        token_cache: Optional[TokenCache] = None,
        notifier: Optional[Callable[[QuotaSnapshot], None]] = None,
        bridge: Optional[BridgeMonitor] = None,
        skew_seconds: int = DEFAULT_SKEW_SECONDS,
    ):
        if not 0 <= skew_seconds < GRID_SECONDS:
            raise ValueError(f"skew_seconds must be in [0, {GRID_SECONDS})")
        self.accounts = accounts
        self.fetcher = fetcher
        self.refresher = refresher
        self.buffer = buffer
        self.clock = clock or SystemClock()
        self.token_cache = token_cache or TokenCache()
        self.notifier = notifier
        self.bridge = bridge
        self.skew_seconds = skew_seconds

        self.state = GuardianState.IDLE
        self.next_wake_at: Optional[float] = None
        self._base_handle: Optional[TimerHandle] = None
        self._bonus_handles: Dict[float, TimerHandle] = {}
        self._generation = 0
        self._lock = threading.Lock()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self, poll_immediately: bool = False) -> None:
        """Arm the first base wake. Calling ``start`` twice is a no-op."""
        with self._lock:
            if self.state != GuardianState.IDLE:
                return
            self.state = GuardianState.WAITING
            self._generation += 1
            generation = self._generation
        logger.info("Quota guardian started")
        self._arm_base_wake(generation, 0 if poll_immediately else None)

    def stop(self) -> None:
        """Cancel pending wakes. A poll already in flight runs to completion."""
        with self._lock:
            self.state = GuardianState.IDLE
            self.next_wake_at = None
            handles = list(self._bonus_handles.values())
            self._bonus_handles.clear()
            if self._base_handle is not None:
                handles.append(self._base_handle)
                self._base_handle = None
        for handle in handles:
            handle.cancel()
        logger.info("Quota guardian stopped")

    @property
    def running(self) -> bool:
        return self.state != GuardianState.IDLE

    @property
    def pending_bonus_polls(self) -> List[float]:
        """Fire times (epoch seconds) of pending bonus polls, ascending."""
        with self._lock:
            return sorted(self._bonus_handles)

    def _arm_base_wake(self, generation: int, delay: Optional[float] = None) -> None:
        if delay is None:
            now = datetime.fromtimestamp(self.clock.now())
            delay = compute_base_delay(now, self.skew_seconds)
        with self._lock:
            # A poll from before a stop/start cycle must not re-arm.
            if self.state == GuardianState.IDLE or generation != self._generation:
                return
            self.state = GuardianState.WAITING
            self.next_wake_at = self.clock.now() + delay
            self._base_handle = self.clock.call_later(
                delay, lambda: self._on_base_wake(generation)
            )
        logger.debug(f"Next base poll in {delay:.0f}s")

    def _on_base_wake(self, generation: int) -> None:
        with self._lock:
            if self.state == GuardianState.IDLE or generation != self._generation:
                return
            self.state = GuardianState.POLLING
            self._base_handle = None
        try:
            self.poll_once()
        except Exception:
            logger.exception("Unexpected error during scheduled poll")
        finally:
            self._arm_base_wake(generation)

    def _on_bonus_wake(self, fire_at: float) -> None:
        with self._lock:
            if self._bonus_handles.pop(fire_at, None) is None:
                return
        try:
            self.poll_once()
        except Exception:
            logger.exception("Unexpected error during bonus poll")

    # =========================================================================
    # POLLING
    # =========================================================================

    def poll_once(self) -> PollOutcome:
        """Run one poll attempt. Never raises for expected failures."""
        account = self.accounts.get_active_account()
        if account is None:
            logger.debug("No active account, skipping poll")
            return PollOutcome.NO_ACTIVE_ACCOUNT

        token = self.token_cache.get(account.email) or account.access_token
        if not token:
            logger.debug(f"No token for {account.email}, skipping poll")
            return PollOutcome.NO_TOKEN

        try:
            snapshot = self._fetch_with_refresh(account, token)
        except QuotaFetchError as e:
            outcome = _outcome_for(e)
            logger.info(f"Poll aborted ({outcome.value}): {e}")
            return outcome

        try:
            self.buffer.append(BufferPoint.from_snapshot(account, snapshot))
        except OSError as e:
            logger.warning(f"Could not persist usage point: {e}")
            return PollOutcome.PERSISTENCE_FAILED

        self._notify(snapshot)
        self._schedule_bonus_polls(snapshot)
        return PollOutcome.RECORDED

    def _fetch_with_refresh(self, account: Account, token: str) -> QuotaSnapshot:
        """Fetch quota, refreshing the token and retrying once on 401."""
        try:
            return self.fetcher.fetch(token)
        except AuthExpiredError:
            refresh_token = account.refresh_token
            if not refresh_token:
                logger.info(f"Access token for {account.email} expired and no refresh token is stored")
                raise

            new_token = self.refresher.refresh(refresh_token)
            if not new_token:
                raise

            self.token_cache.put(account.email, new_token)
            return self.fetcher.fetch(new_token)

    def _notify(self, snapshot: QuotaSnapshot) -> None:
        if self.notifier is None:
            return
        if self.bridge is not None and self.bridge.is_live():
            logger.debug("Companion bridge is live, suppressing notification")
            return
        try:
            self.notifier(snapshot)
        except Exception:
            logger.exception("Snapshot subscriber failed")

    def _schedule_bonus_polls(self, snapshot: QuotaSnapshot) -> List[float]:
        """Arm bonus polls for models whose reset is imminent.

        Returns:
            Delays, in seconds, of the bonus polls actually scheduled
        """
        now = self.clock.now()
        scheduled = []
        for model in snapshot.models:
            if model.reset_at is None:
                continue
            delay = compute_bonus_delay(model.reset_at - now)
            if delay is None:
                continue

            fire_at = now + delay
            with self._lock:
                if any(abs(fire_at - pending) < BONUS_DEDUP_SECONDS for pending in self._bonus_handles):
                    continue
                self._bonus_handles[fire_at] = self.clock.call_later(
                    delay, lambda fire_at=fire_at: self._on_bonus_wake(fire_at)
                )
            scheduled.append(delay)
            logger.debug(f"Bonus poll for {model.name} in {delay:.0f}s")
        return scheduled
