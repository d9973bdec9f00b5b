"""Tests for content-hash deduplication."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock

from attendsync.core.dedup import DedupFilter, compute_hash, normalize_user_id, partition
from attendsync.core.types import AttendanceRecord


def make_record(
    user: str = "42",
    device_id: int = 1,
    timestamp: datetime | None = None,
    verify_method: str = "Fingerprint",
) -> AttendanceRecord:
    """Create an AttendanceRecord for testing."""
    return AttendanceRecord(
        biometric_user_id=user,
        device_id=device_id,
        branch_id=1,
        timestamp=timestamp or datetime(2025, 3, 15, 8, 1, 2),
        verify_method=verify_method,
    )


class TestComputeHash:
    """Tests for compute_hash."""

    def test_format(self) -> None:
        """Hash is user, device and second-precision timestamp."""
        assert compute_hash("42", 7, datetime(2025, 3, 15, 8, 1, 2)) == "42_7_20250315080102"

    def test_ignores_sub_second_precision(self) -> None:
        """Microseconds do not change the hash."""
        a = compute_hash("42", 7, datetime(2025, 3, 15, 8, 1, 2, 0))
        b = compute_hash("42", 7, datetime(2025, 3, 15, 8, 1, 2, 999_999))
        assert a == b

    def test_devices_do_not_collide(self) -> None:
        """The same punch time on two devices gives different hashes."""
        ts = datetime(2025, 3, 15, 8, 1, 2)
        assert compute_hash("42", 1, ts) != compute_hash("42", 2, ts)

    def test_blank_user_is_zero(self) -> None:
        """Blank user ids hash as "0"."""
        ts = datetime(2025, 3, 15, 8, 1, 2)
        assert compute_hash("", 1, ts) == compute_hash("0", 1, ts)
        assert compute_hash(None, 1, ts).startswith("0_1_")


class TestNormalizeUserId:
    """Tests for normalize_user_id."""

    def test_strips_and_stringifies(self) -> None:
        """Ints and padded strings are normalized."""
        assert normalize_user_id(15) == "15"
        assert normalize_user_id(" 15 ") == "15"

    def test_blank_values(self) -> None:
        """None and whitespace become "0"."""
        assert normalize_user_id(None) == "0"
        assert normalize_user_id("   ") == "0"


class TestAttendanceRecordHash:
    """Tests for the hash carried by AttendanceRecord."""

    def test_equal_identity_fields_give_equal_hash(self) -> None:
        """Only user, device and timestamp take part in the hash."""
        a = make_record(verify_method="Card")
        b = make_record(verify_method="Face")
        assert a.content_hash == b.content_hash

    def test_timestamp_truncated(self) -> None:
        """The stored timestamp drops microseconds."""
        record = make_record(timestamp=datetime(2025, 3, 15, 8, 1, 2, 500_000))
        assert record.timestamp == datetime(2025, 3, 15, 8, 1, 2)
        assert record.content_hash == "42_1_20250315080102"


class TestPartition:
    """Tests for partition."""

    def test_splits_existing(self) -> None:
        """Records with stored hashes are counted as duplicates."""
        old = make_record(user="1")
        new = make_record(user="2")

        fresh, duplicates = partition([old, new], {old.content_hash})

        assert fresh == [new]
        assert duplicates == 1

    def test_suppresses_duplicates_within_batch(self) -> None:
        """The same punch twice in one fetch is stored once."""
        first = make_record()
        again = make_record()

        fresh, duplicates = partition([first, again], set())

        assert fresh == [first]
        assert duplicates == 1

    def test_counts_add_up(self) -> None:
        """new + duplicates always equals the candidate count."""
        records = [make_record(user=str(i % 3)) for i in range(9)]
        fresh, duplicates = partition(records, {records[0].content_hash})
        assert len(fresh) + duplicates == len(records)
        assert len(fresh) == 2


class TestDedupFilter:
    """Tests for DedupFilter."""

    def test_looks_up_only_candidate_hashes(self) -> None:
        """The store is queried with exactly the candidate hash set."""
        store = MagicMock()
        store.find_existing_hashes.return_value = set()
        records = [make_record(user="1"), make_record(user="2")]

        DedupFilter(store).filter(records)

        store.find_existing_hashes.assert_called_once_with({r.content_hash for r in records})

    def test_empty_input_skips_lookup(self) -> None:
        """No candidates means no store query."""
        store = MagicMock()
        assert DedupFilter(store).filter([]) == ([], 0)
        store.find_existing_hashes.assert_not_called()

    def test_filters_stored_records(self) -> None:
        """Stored hashes are removed from the result."""
        stored = make_record(user="1")
        fresh = make_record(user="2")
        store = MagicMock()
        store.find_existing_hashes.return_value = {stored.content_hash}

        assert DedupFilter(store).filter([stored, fresh]) == ([fresh], 1)
