"""
HTTP clients for the quota guardian.

Provides the OAuth token refresher and the quota-status fetcher.
"""

from .errors import (
    AuthExpiredError,
    MalformedResponseError,
    QuotaFetchError,
    QuotaHTTPError,
    QuotaTransportError,
)
from .oauth import TokenRefresher
from .quota_api import QuotaFetcher

__all__ = [
    "AuthExpiredError",
    "MalformedResponseError",
    "QuotaFetchError",
    "QuotaHTTPError",
    "QuotaTransportError",
    "QuotaFetcher",
    "TokenRefresher",
]
