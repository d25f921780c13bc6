"""
Data models for the storage layer.

Defines accounts, quota snapshots and persisted buffer points.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

# Google OAuth refresh tokens carry this prefix; legacy accounts stored them
# in the plain ``token`` field.
REFRESH_TOKEN_PREFIX = "1//"


@dataclass(frozen=True)
class TokenData:
    """OAuth credentials stored alongside an account."""
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None


@dataclass(frozen=True)
class Account:
    """An account record owned by the companion app.

    The guardian only ever reads these; unknown fields in the accounts file
    are ignored.
    """
    id: str
    name: str
    email: str
    is_active: bool = False
    token_data: Optional[TokenData] = None
    token: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        """Build an account from its JSON representation.

        Raises:
            ValueError: If a required field is missing
        """
        for key in ("id", "email"):
            if not data.get(key):
                raise ValueError(f"Account record missing '{key}'")

        token_data = None
        raw_token_data = data.get("token_data")
        if isinstance(raw_token_data, dict):
            token_data = TokenData(
                access_token=raw_token_data.get("access_token") or None,
                refresh_token=raw_token_data.get("refresh_token") or None,
                expires_at=raw_token_data.get("expires_at"),
            )

        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["email"]),
            email=str(data["email"]),
            is_active=data.get("is_active") is True,
            token_data=token_data,
            token=data.get("token") or None,
        )

    @property
    def access_token(self) -> Optional[str]:
        """Embedded access token, preferring ``token_data`` over the legacy field."""
        if self.token_data and self.token_data.access_token:
            return self.token_data.access_token
        return self.token

    @property
    def refresh_token(self) -> Optional[str]:
        """Refresh token usable for renewing the access token, if any."""
        if self.token_data and self.token_data.refresh_token:
            return self.token_data.refresh_token
        if self.token and self.token.startswith(REFRESH_TOKEN_PREFIX):
            return self.token
        return None


@dataclass(frozen=True)
class ModelUsage:
    """Remaining quota for a single model."""
    name: str
    percentage: float
    reset_at: Optional[int] = None  # epoch seconds

    def __post_init__(self):
        """Validate percentage is within bounds."""
        if not 0 <= self.percentage <= 100:
            raise ValueError("percentage must be between 0 and 100")


@dataclass(frozen=True)
class QuotaSnapshot:
    """One fetch's normalized usage-per-model result."""
    models: Tuple[ModelUsage, ...]
    observed_at: float


@dataclass(frozen=True)
class BufferPoint:
    """A persisted usage observation.

    Keys of ``usage`` and ``reset_at`` are ``"<account id>:<model name>"``.
    """
    timestamp: int
    usage: Dict[str, float] = field(default_factory=dict)
    reset_at: Dict[str, int] = field(default_factory=dict)
    account_names: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_snapshot(cls, account: Account, snapshot: QuotaSnapshot) -> "BufferPoint":
        """Fold a snapshot for ``account`` into a buffer point."""
        usage = {}
        reset_at = {}
        for model in snapshot.models:
            key = usage_key(account.id, model.name)
            usage[key] = model.percentage
            if model.reset_at is not None:
                reset_at[key] = model.reset_at

        return cls(
            timestamp=int(snapshot.observed_at),
            usage=usage,
            reset_at=reset_at,
            account_names={account.id: account.name},
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BufferPoint":
        """Decode a point; ``reset_at`` and ``account_names`` are optional.

        Raises:
            ValueError: If the record is not a valid point
        """
        if not isinstance(data, dict) or "timestamp" not in data:
            raise ValueError("Buffer point must be an object with a timestamp")

        try:
            return cls(
                timestamp=int(data["timestamp"]),
                usage={str(k): float(v) for k, v in (data.get("usage") or {}).items()},
                reset_at={str(k): int(v) for k, v in (data.get("reset_at") or {}).items()},
                account_names={str(k): str(v) for k, v in (data.get("account_names") or {}).items()},
            )
        except (TypeError, AttributeError, OverflowError) as e:
            raise ValueError(f"Invalid buffer point: {e}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "usage": dict(self.usage),
            "reset_at": dict(self.reset_at),
            "account_names": dict(self.account_names),
        }


def usage_key(account_id: str, model_name: str) -> str:
    """Key under which a model's usage is recorded in a buffer point."""
    return f"{account_id}:{model_name}"


def split_usage_key(key: str) -> Optional[Tuple[str, str]]:
    """Split a usage key into ``(account id, model name)``, or None if malformed."""
    parts = key.split(":")
    if len(parts) != 2:
        return None
    return parts[0], parts[1]


def decode_points(raw: Any) -> List[BufferPoint]:
    """Decode a JSON array of points.

    Raises:
        ValueError: If ``raw`` is not a list of valid points
    """
    if not isinstance(raw, list):
        raise ValueError("Expected a JSON array of points")
    return [BufferPoint.from_dict(item) for item in raw]
