"""
Quota status client.

Fetches remaining quota from the Cloud Code ``fetchAvailableModels``
endpoint and normalizes it into a ``QuotaSnapshot``.

API Details:
- Endpoint: POST https://cloudcode-pa.googleapis.com/v1internal:fetchAvailableModels
- Auth: ``Authorization: Bearer <access token>``
- Body: ``{"project": <project id>}``
- Response: ``{"models": {"<id>": {"quotaInfo": {"remainingFraction": float,
  "resetTime": "<ISO-8601>"}}}}``
"""

import logging
import re
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..storage.models import ModelUsage, QuotaSnapshot
from .errors import (
    AuthExpiredError,
    MalformedResponseError,
    QuotaHTTPError,
    QuotaTransportError,
)

logger = logging.getLogger(__name__)

QUOTA_API_URL = "https://cloudcode-pa.googleapis.com/v1internal:fetchAvailableModels"
DEFAULT_PROJECT_ID = "bamboo-precept-lgxtn"
USER_AGENT = "antigravity/1.11.3 Darwin/arm64"
DEFAULT_TIMEOUT = 10.0

# Fixed mapping of provider model ids to display names. Ids missing here are
# dropped from snapshots until the table is updated.
MODEL_DISPLAY_NAMES: Dict[str, str] = {
    "gemini-3-pro-high": "Gemini Pro",
    "gemini-3-flash": "Gemini Flash",
    "claude-sonnet-4-5": "Claude",
}

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_reset_time(value: Any) -> Optional[int]:
    """Parse an ISO-8601 timestamp into epoch seconds.

    Returns:
        Epoch seconds, or None if ``value`` is absent or unparsable
    """
    if not isinstance(value, str) or not value:
        return None
    # fromisoformat before 3.11 accepts only 3 or 6 fractional digits
    normalized = _FRACTION_RE.sub(lambda m: "." + (m.group(1) + "000000")[:6], value, count=1)
    try:
        return int(datetime.fromisoformat(normalized.replace("Z", "+00:00")).timestamp())
    except ValueError:
        return None


def _display_order(name: str) -> int:
    if "Pro" in name:
        return 1
    if "Flash" in name:
        return 2
    return 3


def parse_models(data: Any) -> List[ModelUsage]:
    """Normalize a ``fetchAvailableModels`` response body.

    Raises:
        MalformedResponseError: If the body has no ``models`` object
    """
    if not isinstance(data, dict) or not isinstance(data.get("models"), dict):
        raise MalformedResponseError("Response has no 'models' object")

    models = []
    for model_id, info in data["models"].items():
        display_name = MODEL_DISPLAY_NAMES.get(model_id)
        if display_name is None:
            continue

        quota_info = info.get("quotaInfo") if isinstance(info, dict) else None
        if not isinstance(quota_info, dict):
            quota_info = {}

        fraction = quota_info.get("remainingFraction")
        if not isinstance(fraction, (int, float)):
            fraction = 0.0
        percentage = min(max(float(fraction) * 100, 0.0), 100.0)

        models.append(ModelUsage(
            name=display_name,
            percentage=percentage,
            reset_at=parse_reset_time(quota_info.get("resetTime")),
        ))

    models.sort(key=lambda m: _display_order(m.name))
    return models


class QuotaFetcher:
    """Client for the remote quota-status endpoint."""

    def __init__(
        self,
        project_id: str = DEFAULT_PROJECT_ID,
        url: str = QUOTA_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: Optional[httpx.Client] = None,
        now: Callable[[], float] = time.time,
    ):
        """Initialize the fetcher.

        Args:
            project_id: Project identifier sent in the request body
            url: Quota endpoint
            timeout: Request timeout in seconds
            http_client: Optional client for connection reuse (and tests)
            now: Time source used to stamp snapshots, in epoch seconds
        """
        if not project_id or not project_id.strip():
            raise ValueError("project_id is required and cannot be empty")
        self.project_id = project_id
        self.url = url
        self.timeout = timeout
        self.http_client = http_client
        self._now = now

    def fetch(self, access_token: str) -> QuotaSnapshot:
        """Fetch and normalize the current quota.

        Args:
            access_token: Bearer token for the active account

        Returns:
            Snapshot of the known models

        Raises:
            AuthExpiredError: On HTTP 401
            QuotaHTTPError: On any other non-2xx status
            QuotaTransportError: On connection errors and timeouts
            MalformedResponseError: If the body isn't the expected JSON
        """
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        payload = {"project": self.project_id}

        try:
            if self.http_client is not None:
                response = self.http_client.post(
                    self.url, headers=headers, json=payload, timeout=self.timeout
                )
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.url, headers=headers, json=payload)
        except httpx.TimeoutException as e:
            raise QuotaTransportError(f"Quota request timed out: {e}")
        except httpx.HTTPError as e:
            raise QuotaTransportError(f"Quota request failed: {e}")

        if response.status_code == 401:
            raise AuthExpiredError()
        if not response.is_success:
            raise QuotaHTTPError(
                f"Quota API error: {response.status_code}", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError:
            raise MalformedResponseError("Quota response is not valid JSON")

        models = parse_models(data)
        logger.debug(f"Fetched quota for {len(models)} model(s)")
        return QuotaSnapshot(models=tuple(models), observed_at=self._now())
