"""
Configuration management and loading.

Handles guardian settings from an optional YAML file.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from quota_guardian.client.oauth import DEFAULT_CLIENT_ID
from quota_guardian.client.quota_api import DEFAULT_PROJECT_ID
from quota_guardian.storage.files import (
    ACCOUNTS_FILE,
    BRIDGE_FILE,
    BUFFER_FILE,
    HISTORY_FILE,
    get_app_dir,
)


@dataclass(frozen=True)
class PollingConfig:
    """Scheduler timing."""
    skew_seconds: int = 15
    bridge_live_seconds: int = 180

    def __post_init__(self):
        """Validate timing values."""
        if not 0 <= self.skew_seconds < 300:
            raise ValueError("skew_seconds must be between 0 and 299")
        if self.bridge_live_seconds <= 0:
            raise ValueError("bridge_live_seconds must be > 0")


@dataclass(frozen=True)
class NetworkConfig:
    """Remote endpoint settings."""
    timeout_seconds: float = 10.0
    project_id: str = DEFAULT_PROJECT_ID

    def __post_init__(self):
        """Validate network values."""
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if not self.project_id:
            raise ValueError("project_id cannot be empty")


@dataclass(frozen=True)
class OAuthConfig:
    """OAuth client used for token refresh."""
    client_id: str = DEFAULT_CLIENT_ID
    client_secret: Optional[str] = None

    def __post_init__(self):
        """Validate client id."""
        if not self.client_id:
            raise ValueError("client_id cannot be empty")


@dataclass(frozen=True)
class GuardianConfig:
    """Complete guardian configuration."""
    data_dir: Path = field(default_factory=get_app_dir)
    polling: PollingConfig = field(default_factory=PollingConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    buffer_capacity: int = 5000
    history_retention_hours: int = 24 * 7

    def __post_init__(self):
        """Validate storage limits."""
        if self.buffer_capacity <= 0:
            raise ValueError("buffer capacity must be > 0")
        if self.history_retention_hours <= 0:
            raise ValueError("retention_hours must be > 0")

    @property
    def accounts_path(self) -> Path:
        return self.data_dir / ACCOUNTS_FILE

    @property
    def buffer_path(self) -> Path:
        return self.data_dir / BUFFER_FILE

    @property
    def bridge_path(self) -> Path:
        return self.data_dir / BRIDGE_FILE

    @property
    def history_path(self) -> Path:
        return self.data_dir / HISTORY_FILE


_ALLOWED_KEYS = {
    'paths': {'data_dir'},
    'polling': {'skew_seconds', 'bridge_live_seconds'},
    'buffer': {'capacity'},
    'history': {'retention_hours'},
    'network': {'timeout_seconds', 'project_id'},
    'oauth': {'client_id', 'client_secret'},
}


def load_guardian_config(path: Optional[str] = None) -> GuardianConfig:
    """Load and validate guardian configuration.

    Strict validation ensures a typo in the config file fails loudly instead
    of silently falling back to defaults.

    Args:
        path: Path to YAML configuration file, or None for all defaults

    Returns:
        Validated GuardianConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return GuardianConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Guardian config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return GuardianConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")

    unknown_keys = set(raw_config.keys()) - set(_ALLOWED_KEYS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {name: _section(raw_config, name) for name in _ALLOWED_KEYS}

    data_dir = sections['paths'].get('data_dir')
    if data_dir is not None and not isinstance(data_dir, str):
        raise ValueError("'paths.data_dir' must be a string")

    polling = PollingConfig(
        skew_seconds=_number(sections['polling'], 'skew_seconds', 'polling', 15, int),
        bridge_live_seconds=_number(sections['polling'], 'bridge_live_seconds', 'polling', 180, int),
    )

    network_data = sections['network']
    project_id = network_data.get('project_id', DEFAULT_PROJECT_ID)
    if not isinstance(project_id, str):
        raise ValueError("'network.project_id' must be a string")
    network = NetworkConfig(
        timeout_seconds=_number(network_data, 'timeout_seconds', 'network', 10.0, float),
        project_id=project_id,
    )

    oauth_data = sections['oauth']
    client_id = oauth_data.get('client_id', DEFAULT_CLIENT_ID)
    client_secret = oauth_data.get('client_secret')
    if not isinstance(client_id, str):
        raise ValueError("'oauth.client_id' must be a string")
    if client_secret is not None and not isinstance(client_secret, str):
        raise ValueError("'oauth.client_secret' must be a string")

    return GuardianConfig(
        data_dir=get_app_dir(data_dir),
        polling=polling,
        network=network,
        oauth=OAuthConfig(client_id=client_id, client_secret=client_secret),
        buffer_capacity=_number(sections['buffer'], 'capacity', 'buffer', 5000, int),
        history_retention_hours=_number(sections['history'], 'retention_hours', 'history', 24 * 7, int),
    )


def _section(raw_config: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return a validated config section, empty if absent.

    Raises:
        ValueError: If the section isn't a mapping or has unknown keys
    """
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")

    unknown_keys = set(data.keys()) - _ALLOWED_KEYS[name]
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return data


def _number(data: Dict[str, Any], key: str, section: str, default, kind):
    """Read a numeric value, rejecting booleans and strings."""
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' in {section} must be a number")
    if kind is int and value != int(value):
        raise ValueError(f"'{key}' in {section} must be a whole number")
    return kind(value)
