"""
File locations and JSON persistence helpers.

Every store in the guardian is a plain JSON file inside the per-user
application-data directory shared with the companion desktop app.
"""

import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

APP_DIR_NAME = "com.tz.antigravity-booster"

ACCOUNTS_FILE = "accounts.json"
BUFFER_FILE = "quota_buffer.json"
BRIDGE_FILE = "quota_bridge.json"
HISTORY_FILE = "quota_history.json"


def get_app_dir(data_dir: Optional[str] = None) -> Path:
    """Return the application-data directory.
    
    Args:
        data_dir: Explicit directory, overrides platform detection
        
    Returns:
        Path to the directory (not created)
    """
    if data_dir:
        return Path(data_dir).expanduser()
    
    if sys.platform == "win32" and os.environ.get("APPDATA"):
        base = Path(os.environ["APPDATA"])
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_DATA_HOME") or Path.home() / ".local" / "share")
    return base / APP_DIR_NAME


def read_json(path: Path) -> Any:
    """Read and decode a JSON file.
    
    Raises:
        OSError: If the file can't be read
        ValueError: If the content is not valid JSON
    """
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def write_json(path: Path, data: Any) -> None:
    """Write JSON atomically via a sibling temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
