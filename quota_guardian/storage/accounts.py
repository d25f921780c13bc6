"""
Read-only access to the accounts file.

The companion app owns ``accounts.json``; the guardian reads it fresh on
every poll so account switches are picked up without a restart.
"""

import logging
from pathlib import Path
from typing import List, Optional

from .models import Account
from .files import read_json

logger = logging.getLogger(__name__)


class AccountStore:
    """Reader for the accounts file.

    Missing or unreadable files are treated as "no accounts" rather than
    errors, since the owning process may be mid-write or not installed.
    """

    def __init__(self, path: Path):
        """Initialize the store with the accounts file path.

        Args:
            path: Path to ``accounts.json``
        """
        self.path = Path(path)

    def load_accounts(self) -> List[Account]:
        """Load all parseable account records.

        Returns:
            Accounts in file order; malformed records are skipped
        """
        if not self.path.exists():
            return []

        try:
            raw = read_json(self.path)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read accounts file {self.path}: {e}")
            return []

        if not isinstance(raw, list):
            logger.warning(f"Accounts file {self.path} is not a JSON array")
            return []

        accounts = []
        for i, record in enumerate(raw):
            if not isinstance(record, dict):
                continue
            try:
                accounts.append(Account.from_dict(record))
            except ValueError as e:
                logger.debug(f"Skipping account record {i}: {e}")
        return accounts

    def get_active_account(self) -> Optional[Account]:
        """Return the first account flagged ``is_active``, if any."""
        for account in self.load_accounts():
            if account.is_active:
                return account
        return None
