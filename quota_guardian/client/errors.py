"""
Errors raised by the quota API client.

The scheduler branches on these types: only ``AuthExpiredError`` triggers a
token refresh, everything else ends the poll cycle.
"""

from typing import Optional


class QuotaFetchError(Exception):
    """Base class for quota fetch failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthExpiredError(QuotaFetchError):
    """The remote service rejected the access token (HTTP 401)."""

    def __init__(self, message: str = "Access token rejected"):
        super().__init__(message, status_code=401)


class QuotaHTTPError(QuotaFetchError):
    """Any non-2xx response other than 401."""


class QuotaTransportError(QuotaFetchError):
    """Connection failure, timeout or other transport problem."""


class MalformedResponseError(QuotaFetchError):
    """The response body is not the expected JSON shape."""
