"""
Unit tests for storage layer.

Tests account loading, buffer persistence and FIFO eviction.
"""

import json
import os
import tempfile
from pathlib import Path

import pytest

from conftest import make_account
from quota_guardian.storage.accounts import AccountStore
from quota_guardian.storage.buffer import UsageBuffer
from quota_guardian.storage.models import (
    Account,
    BufferPoint,
    ModelUsage,
    QuotaSnapshot,
    split_usage_key,
    usage_key,
)


def _point(ts: int, pct: float = 50.0) -> BufferPoint:
    return BufferPoint(
        timestamp=ts,
        usage={"acc-1:Gemini Pro": pct},
        reset_at={"acc-1:Gemini Pro": ts + 3600},
        account_names={"acc-1": "Test User"},
    )


class TestAccountModel:
    """Test account decoding and token resolution."""

    def test_from_dict_full_record(self):
        """Test decoding a record written by the companion app."""
        account = Account.from_dict(make_account())

        assert account.id == "acc-1"
        assert account.email == "user@example.com"
        assert account.is_active is True
        assert account.access_token == "ya29.access"
        assert account.refresh_token == "1//refresh"

    def test_legacy_token_used_as_access_token(self):
        """Test fallback to the legacy token field."""
        record = make_account(access_token=None, refresh_token=None)
        record["token"] = "ya29.legacy"
        account = Account.from_dict(record)

        assert account.access_token == "ya29.legacy"
        assert account.refresh_token is None

    def test_legacy_refresh_token_detected(self):
        """Test legacy token with refresh prefix counts as a refresh token."""
        record = make_account(access_token=None, refresh_token=None)
        record["token"] = "1//legacy-refresh"
        account = Account.from_dict(record)

        assert account.refresh_token == "1//legacy-refresh"

    def test_empty_token_data_fields_are_none(self):
        """Test empty strings in token_data are treated as absent."""
        account = Account.from_dict(make_account(access_token=None, refresh_token="1//r"))

        assert account.access_token is None
        assert account.refresh_token == "1//r"

    def test_non_boolean_active_flag_is_inactive(self):
        """Test only a literal true marks an account active."""
        record = make_account()
        record["is_active"] = "false"
        assert Account.from_dict(record).is_active is False

    def test_missing_email_raises_error(self):
        """Test records without email are rejected."""
        record = make_account()
        del record["email"]
        with pytest.raises(ValueError, match="email"):
            Account.from_dict(record)


class TestAccountStore:
    """Test reading the accounts file."""

    def test_active_account_found(self, write_accounts):
        """Test the active account is selected."""
        path = write_accounts([
            make_account("a", "a@example.com", is_active=False),
            make_account("b", "b@example.com", is_active=True),
        ])

        active = AccountStore(path).get_active_account()

        assert active is not None
        assert active.id == "b"

    def test_no_active_account(self, write_accounts):
        """Test None when no account is active."""
        path = write_accounts([make_account(is_active=False)])
        assert AccountStore(path).get_active_account() is None

    def test_missing_file_is_empty(self, tmp_path):
        """Test missing accounts file yields no accounts."""
        store = AccountStore(tmp_path / "nope.json")
        assert store.load_accounts() == []
        assert store.get_active_account() is None

    def test_corrupt_file_is_empty(self, tmp_path):
        """Test unparsable accounts file yields no accounts."""
        path = tmp_path / "accounts.json"
        path.write_text("{not json", encoding="utf-8")
        assert AccountStore(path).load_accounts() == []

    def test_malformed_records_skipped(self, write_accounts):
        """Test bad records don't hide good ones."""
        path = write_accounts(["junk", {"id": "x"}, make_account()])
        accounts = AccountStore(path).load_accounts()
        assert [a.id for a in accounts] == ["acc-1"]


class TestBufferPoint:
    """Test buffer point construction and encoding."""

    def test_from_snapshot(self):
        """Test folding a snapshot into a point."""
        account = Account.from_dict(make_account())
        snapshot = QuotaSnapshot(
            models=(
                ModelUsage(name="Gemini Pro", percentage=85.0, reset_at=1700003600),
                ModelUsage(name="Claude", percentage=40.0),
            ),
            observed_at=1700000000.7,
        )

        point = BufferPoint.from_snapshot(account, snapshot)

        assert point.timestamp == 1700000000
        assert point.usage == {"acc-1:Gemini Pro": 85.0, "acc-1:Claude": 40.0}
        assert point.reset_at == {"acc-1:Gemini Pro": 1700003600}
        assert point.account_names == {"acc-1": "Test User"}

    def test_round_trip_through_dict(self):
        """Test a point survives encoding field for field."""
        point = _point(1700000000, 12.5)
        decoded = BufferPoint.from_dict(json.loads(json.dumps(point.to_dict())))
        assert decoded == point

    def test_optional_maps_default_to_empty(self):
        """Test older records without reset_at/account_names decode."""
        point = BufferPoint.from_dict({"timestamp": 1, "usage": {"a:b": 3}})
        assert point.reset_at == {}
        assert point.account_names == {}

    def test_invalid_point_raises_error(self):
        """Test records without timestamp are rejected."""
        with pytest.raises(ValueError):
            BufferPoint.from_dict({"usage": {}})

    def test_infinite_reset_time_raises_value_error(self):
        """Test non-finite reset times are rejected as invalid points."""
        with pytest.raises(ValueError):
            BufferPoint.from_dict({"timestamp": 1, "usage": {}, "reset_at": {"a:b": float("inf")}})

    def test_usage_key_helpers(self):
        """Test usage key formatting and parsing."""
        assert usage_key("acc-1", "Gemini Pro") == "acc-1:Gemini Pro"
        assert split_usage_key("acc-1:Gemini Pro") == ("acc-1", "Gemini Pro")
        assert split_usage_key("no-separator") is None

    def test_percentage_out_of_range_raises_error(self):
        """Test model usage is bounded to 0-100."""
        with pytest.raises(ValueError, match="percentage"):
            ModelUsage(name="Gemini Pro", percentage=101.0)


class TestUsageBuffer:
    """Test buffer append, eviction and corruption recovery."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.path = Path(self.temp_dir) / "quota_buffer.json"

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_append_creates_file(self):
        """Test first append creates the file."""
        buffer = UsageBuffer(self.path, capacity=10)
        buffer.append(_point(1))

        assert self.path.exists()
        assert buffer.count() == 1

    def test_append_creates_missing_directory(self):
        """Test append creates the data directory if needed."""
        path = Path(self.temp_dir) / "nested" / "dir" / "buffer.json"
        UsageBuffer(path).append(_point(1))
        assert path.exists()

    def test_fifo_eviction(self):
        """Test appends beyond capacity keep the newest points in order."""
        capacity = 5
        buffer = UsageBuffer(self.path, capacity=capacity)

        for ts in range(1, 13):
            buffer.append(_point(ts))

        points = buffer.read_points()
        assert len(points) == capacity
        assert [p.timestamp for p in points] == [8, 9, 10, 11, 12]

    def test_insertion_order_preserved(self):
        """Test points are kept in insertion order, not timestamp order."""
        buffer = UsageBuffer(self.path, capacity=10)
        for ts in (30, 10, 20):
            buffer.append(_point(ts))

        assert [p.timestamp for p in buffer.read_points()] == [30, 10, 20]

    def test_corrupt_file_treated_as_empty(self):
        """Test append on unparsable file behaves like append on empty."""
        self.path.write_text("this is not json", encoding="utf-8")
        buffer = UsageBuffer(self.path, capacity=10)

        assert buffer.count() == 0
        buffer.append(_point(42))

        points = buffer.read_points()
        assert [p.timestamp for p in points] == [42]

    def test_wrong_shape_treated_as_empty(self):
        """Test a JSON object instead of an array is treated as empty."""
        self.path.write_text('{"timestamp": 1}', encoding="utf-8")
        buffer = UsageBuffer(self.path, capacity=10)

        buffer.append(_point(7))
        assert [p.timestamp for p in buffer.read_points()] == [7]

    def test_overflowing_timestamp_treated_as_empty(self):
        """Test an infinite timestamp reads as a corrupt, empty buffer."""
        self.path.write_text('[{"timestamp": 1e400, "usage": {}}]', encoding="utf-8")
        buffer = UsageBuffer(self.path, capacity=10)

        assert buffer.count() == 0
        buffer.append(_point(3))
        assert [p.timestamp for p in buffer.read_points()] == [3]

    def test_missing_file_counts_zero(self):
        """Test count on a missing file."""
        assert UsageBuffer(self.path).count() == 0

    def test_persisted_format(self):
        """Test the on-disk format is a plain JSON array of points."""
        buffer = UsageBuffer(self.path, capacity=10)
        buffer.append(_point(5, 85.0))

        with open(self.path, 'r', encoding='utf-8') as f:
            raw = json.load(f)

        assert raw == [{
            "timestamp": 5,
            "usage": {"acc-1:Gemini Pro": 85.0},
            "reset_at": {"acc-1:Gemini Pro": 3605},
            "account_names": {"acc-1": "Test User"},
        }]

    def test_round_trip(self):
        """Test a point reads back identically."""
        buffer = UsageBuffer(self.path, capacity=10)
        point = _point(99, 33.3)
        buffer.append(point)
        assert buffer.read_points() == [point]

    def test_no_temp_files_left_behind(self):
        """Test atomic writes clean up their temp files."""
        buffer = UsageBuffer(self.path, capacity=10)
        for ts in range(3):
            buffer.append(_point(ts))
        assert os.listdir(self.temp_dir) == ["quota_buffer.json"]

    def test_clear_removes_file(self):
        """Test clear deletes the file and tolerates a missing one."""
        buffer = UsageBuffer(self.path, capacity=10)
        buffer.append(_point(1))
        buffer.clear()
        assert not self.path.exists()
        buffer.clear()

    def test_invalid_capacity_raises_error(self):
        """Test capacity must be positive."""
        with pytest.raises(ValueError, match="capacity"):
            UsageBuffer(self.path, capacity=0)
