"""
Single-entry cache of the most recently refreshed access token.
"""

import threading
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TokenCacheEntry:
    """A refreshed access token and the account email it belongs to."""
    email: str
    access_token: str


class TokenCache:
    """Holds at most one refreshed token, keyed by account email.

    The entry is only served while its email matches the account asking for
    it; storing a token for another account replaces it. Entries never expire
    locally, a stale token is discovered by the next 401.
    """

    def __init__(self):
        self._entry: Optional[TokenCacheEntry] = None
        self._lock = threading.Lock()

    def get(self, email: str) -> Optional[str]:
        with self._lock:
            if self._entry is not None and self._entry.email == email:
                return self._entry.access_token
            return None

    def put(self, email: str, access_token: str) -> None:
        with self._lock:
            self._entry = TokenCacheEntry(email=email, access_token=access_token)

    @property
    def entry(self) -> Optional[TokenCacheEntry]:
        return self._entry

    def clear(self) -> None:
        with self._lock:
            self._entry = None
