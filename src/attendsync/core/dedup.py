"""Content-hash deduplication for attendance records.

A punch is identified by ``(biometric_user_id, device_id, timestamp)`` with
the timestamp at second precision. The same physical punch read twice,
whether in the same fetch or in a later sync, always produces the same hash.

The ``attendance_logs.unique_hash`` UNIQUE constraint remains the
authoritative guard; this module keeps duplicates from reaching it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from attendsync.core.types import AttendanceRecord, AttendanceStore

logger = logging.getLogger(__name__)

HASH_TIME_FORMAT = "%Y%m%d%H%M%S"


def normalize_user_id(user_id: str | int | None) -> str:
    """Normalize a device user id (blank ids become "0")."""
    text = "" if user_id is None else str(user_id).strip()
    return text or "0"


def compute_hash(user_id: str | int | None, device_id: int, timestamp: datetime) -> str:
    """Compute the dedup key for a punch.

    Args:
        user_id: Biometric user id as reported by the device.
        device_id: Registry id of the device (keeps devices from colliding).
        timestamp: Punch time; sub-second precision is ignored.

    Returns:
        Key of the form ``"{user}_{device}_{YYYYmmddHHMMSS}"``.
    """
    return f"{normalize_user_id(user_id)}_{device_id}_{timestamp.strftime(HASH_TIME_FORMAT)}"


def partition(
    candidates: Iterable[AttendanceRecord],
    existing_hashes: set[str],
) -> tuple[list[AttendanceRecord], int]:
    """Split candidates into new records and a duplicate count.

    A record is new if its hash is not in ``existing_hashes`` and has not
    already been seen earlier in ``candidates``.

    Args:
        candidates: Records read from a device.
        existing_hashes: Hashes of candidates already stored.

    Returns:
        Tuple of (new_records, duplicate_count).
    """
    seen: set[str] = set()
    new_records: list[AttendanceRecord] = []
    duplicates = 0

    for record in candidates:
        key = record.content_hash
        if key in existing_hashes or key in seen:
            duplicates += 1
            continue
        seen.add(key)
        new_records.append(record)

    return new_records, duplicates


class DedupFilter:
    """Separates new records from ones already in the store.

    Only the hashes of the candidate batch are looked up, never the full
    table, so the query cost tracks the fetch size.
    """

    def __init__(self, store: AttendanceStore) -> None:
        self._store = store

    def filter(self, candidates: list[AttendanceRecord]) -> tuple[list[AttendanceRecord], int]:
        """Return (new_records, duplicate_count) for ``candidates``."""
        if not candidates:
            return [], 0

        hashes = {record.content_hash for record in candidates}
        existing = self._store.find_existing_hashes(hashes)
        logger.debug("Dedup lookup: %d candidate hashes, %d already stored", len(hashes), len(existing))
        return partition(candidates, existing)
