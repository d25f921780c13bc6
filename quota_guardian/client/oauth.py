"""
OAuth access-token refresh.

Exchanges a stored refresh token for a fresh access token. Failures are
reported as ``None``; retry policy belongs to the scheduler.
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
DEFAULT_CLIENT_ID = "1071006060591-tmhssin2h21lcre235vtolojh4g403ep.apps.googleusercontent.com"
DEFAULT_TIMEOUT = 10.0


class TokenRefresher:
    """Single-shot refresh-token grant against a fixed token endpoint."""

    def __init__(
        self,
        client_id: str = DEFAULT_CLIENT_ID,
        client_secret: Optional[str] = None,
        token_url: str = TOKEN_URL,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: Optional[httpx.Client] = None,
    ):
        """Initialize the refresher.

        Args:
            client_id: OAuth client identifier
            client_secret: Optional client secret, sent only when set
            token_url: Token endpoint
            timeout: Request timeout in seconds
            http_client: Optional client for connection reuse (and tests)
        """
        if not client_id or not client_id.strip():
            raise ValueError("client_id is required and cannot be empty")
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.timeout = timeout
        self.http_client = http_client

    def refresh(self, refresh_token: str) -> Optional[str]:
        """Exchange ``refresh_token`` for a new access token.

        Returns:
            The new access token, or None on any failure
        """
        form = {
            "client_id": self.client_id,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        if self.client_secret:
            form["client_secret"] = self.client_secret

        try:
            if self.http_client is not None:
                response = self.http_client.post(self.token_url, data=form, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.token_url, data=form)
        except httpx.HTTPError as e:
            logger.warning(f"Token refresh request failed: {e}")
            return None

        if not response.is_success:
            reason = "expired/revoked" if "invalid_grant" in response.text else "error"
            logger.warning(f"Token refresh failed ({response.status_code}, {reason})")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Token refresh returned a non-JSON body")
            return None

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(access_token, str) or not access_token:
            logger.warning("Token refresh response has no access_token")
            return None

        logger.info("Access token refreshed")
        return access_token
