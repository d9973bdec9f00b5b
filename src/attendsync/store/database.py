"""Attendance store using SQLAlchemy with SQLite.

This module provides:
- Branch and device registry operations
- Content-hash lookups and batched punch inserts
- Sync audit log (SyncOutcome) persistence and watermark queries
- Device status snapshots and their retention purge
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, delete, event, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from attendsync.core import types
from attendsync.store.models import (
    AttendanceLog,
    Base,
    Branch,
    Device,
    DeviceStatusSnapshot,
    SyncLog,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# Keeps IN (...) lookups below SQLite's bound-parameter limit
HASH_LOOKUP_CHUNK = 500


def _to_device(device: Device) -> types.Device:
    return types.Device(
        id=device.id,
        ip=device.ip,
        port=device.port,
        branch_id=device.branch_id,
        is_active=device.is_active,
        name=device.name,
    )


def _to_branch(branch: Branch) -> types.Branch:
    return types.Branch(id=branch.id, code=branch.code, name=branch.name, city=branch.city)


def _to_outcome(log: SyncLog) -> types.SyncOutcome:
    return types.SyncOutcome(
        id=log.id,
        device_id=log.device_id,
        branch_id=log.branch_id,
        start_time=log.start_time,
        end_time=log.end_time,
        status=types.SyncStatus(log.status),
        fetched_count=log.record_count,
        new_count=log.new_record_count,
        duplicate_count=log.duplicate_count,
        error_message=log.error_message,
        retry_attempt=log.retry_attempt,
        server_name=log.server_name,
    )


def _record_row(record: types.AttendanceRecord, synced_at: datetime) -> dict[str, object]:
    return {
        "biometric_user_id": record.biometric_user_id,
        "attendance_time": record.timestamp,
        "device_id": record.device_id,
        "branch_id": record.branch_id,
        "verify_method": record.verify_method,
        "attendance_type": record.attendance_type,
        "work_code": record.work_code,
        "unique_hash": record.content_hash,
        "is_manual": False,
        "synced_at": synced_at,
    }


class Database:
    """SQLAlchemy database for attendance data.

    Uses SQLite with WAL mode so concurrent device workflows can read while
    another one writes. Every public method opens its own session, which makes
    one instance safe to share across worker threads.
    """

    def __init__(self, db_path: Path | str, busy_timeout: float = 30.0) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
            busy_timeout: Seconds a writer waits for a locked database.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # check_same_thread=False: sessions are created from worker threads
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
            echo=False,
        )

        @event.listens_for(self._engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        # Create tables if they don't exist
        Base.metadata.create_all(self._engine)

    @property
    def path(self) -> Path:
        """Path of the database file."""
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine)

    # === Registry operations ===

    def get_or_create_branch(self, code: str, name: str, city: str = "") -> types.Branch:
        """Get a branch by code, creating it if missing.

        Args:
            code: Unique branch code.
            name: Branch display name (only used on creation).
            city: Branch city (only used on creation).

        Returns:
            The stored branch.
        """
        with self._session() as session:
            branch = session.execute(
                select(Branch).where(Branch.code == code)
            ).scalar_one_or_none()
            if branch is None:
                branch = Branch(code=code, name=name, city=city)
                session.add(branch)
                session.commit()
                logger.info("Created branch %s (id=%d)", name, branch.id)
            return _to_branch(branch)

    def upsert_device(
        self,
        branch_id: int,
        name: str,
        ip: str,
        port: int,
        is_active: bool = True,
    ) -> types.Device:
        """Create or update a device identified by its (ip, port) endpoint.

        Args:
            branch_id: Branch the device belongs to.
            name: Device display name.
            ip: Device address.
            port: Device port.
            is_active: Whether the device should be synced.

        Returns:
            The stored device.
        """
        with self._session() as session:
            device = session.execute(
                select(Device).where(Device.ip == ip, Device.port == port)
            ).scalar_one_or_none()
            if device is None:
                device = Device(
                    branch_id=branch_id,
                    name=name,
                    ip=ip,
                    port=port,
                    is_active=is_active,
                )
                session.add(device)
                logger.info("Registered device %s (%s:%d)", name, ip, port)
            else:
                device.branch_id = branch_id
                device.name = name
                device.is_active = is_active
            session.commit()
            return _to_device(device)

    def get_device(self, device_id: int) -> types.Device | None:
        """Get a device by ID.

        Returns:
            Device if found, None otherwise.
        """
        with self._session() as session:
            device = session.get(Device, device_id)
            return _to_device(device) if device else None

    def list_active_devices(self, branch_id: int) -> list[types.Device]:
        """List active devices of a branch, ordered by id."""
        with self._session() as session:
            stmt = (
                select(Device)
                .where(Device.branch_id == branch_id, Device.is_active.is_(True))
                .order_by(Device.id)
            )
            return [_to_device(d) for d in session.execute(stmt).scalars().all()]

    def get_device_connection_status(self, device_id: int) -> str | None:
        """Get the last recorded connection status label of a device."""
        with self._session() as session:
            device = session.get(Device, device_id)
            return device.connection_status if device else None

    def update_device_connection_status(
        self, device_id: int, is_online: bool, status_label: str
    ) -> None:
        """Record the outcome of the latest connection attempt.

        Args:
            device_id: Device ID.
            is_online: Whether the device answered.
            status_label: "Connected", "Disconnected" or "Error".
        """
        with self._session() as session:
            device = session.get(Device, device_id)
            if device:
                device.is_online = is_online
                device.connection_status = status_label
                device.last_connection_time = datetime.now()
                session.commit()

    # === Attendance operations ===

    def find_existing_hashes(self, hashes: Iterable[str]) -> set[str]:
        """Return the subset of ``hashes`` already stored.

        Args:
            hashes: Content hashes to look up.

        Returns:
            Hashes that exist in attendance_logs.
        """
        wanted = list(set(hashes))
        found: set[str] = set()
        with self._session() as session:
            for start in range(0, len(wanted), HASH_LOOKUP_CHUNK):
                chunk = wanted[start : start + HASH_LOOKUP_CHUNK]
                stmt = select(AttendanceLog.unique_hash).where(AttendanceLog.unique_hash.in_(chunk))
                found.update(session.execute(stmt).scalars().all())
        return found

    def bulk_insert(self, records: list[types.AttendanceRecord], batch_size: int = 10000) -> int:
        """Insert punches in batches, one transaction per batch.

        Rows whose hash already exists are skipped by the database, so
        concurrent writers can never create duplicates.

        Args:
            records: Records to insert.
            batch_size: Rows per INSERT batch.

        Returns:
            Number of rows inserted.
        """
        if not records:
            return 0

        synced_at = datetime.now()
        stmt = sqlite_insert(AttendanceLog.__table__).on_conflict_do_nothing(
            index_elements=["unique_hash"]
        )
        inserted = 0
        for start in range(0, len(records), batch_size):
            batch = [_record_row(r, synced_at) for r in records[start : start + batch_size]]
            with self._engine.begin() as conn:
                result = conn.execute(stmt, batch)
            inserted += result.rowcount if result.rowcount >= 0 else len(batch)
        return inserted

    def count_attendance(self, device_id: int | None = None) -> int:
        """Count stored punches, optionally for one device."""
        with self._session() as session:
            stmt = select(func.count(AttendanceLog.id))
            if device_id is not None:
                stmt = stmt.where(AttendanceLog.device_id == device_id)
            return int(session.execute(stmt).scalar_one())

    # === Sync log operations ===

    def save_outcome(self, outcome: types.SyncOutcome) -> int:
        """Persist a sync outcome as a new audit row.

        Args:
            outcome: The outcome to store. Its ``id`` is set on return.

        Returns:
            The new row ID.
        """
        with self._session() as session:
            log = SyncLog(
                device_id=outcome.device_id,
                branch_id=outcome.branch_id,
                start_time=outcome.start_time,
                end_time=outcome.end_time,
                status=outcome.status.value,
                record_count=outcome.fetched_count,
                new_record_count=outcome.new_count,
                duplicate_count=outcome.duplicate_count,
                error_message=outcome.error_message,
                retry_attempt=outcome.retry_attempt,
                server_name=outcome.server_name,
            )
            session.add(log)
            session.commit()
            outcome.id = log.id
            return log.id

    def get_latest_success_outcome(self, device_id: int) -> types.SyncOutcome | None:
        """Get the most recent successful sync of a device (the watermark source).

        Returns:
            The latest SUCCESS outcome, or None if the device never synced.
        """
        with self._session() as session:
            stmt = (
                select(SyncLog)
                .where(
                    SyncLog.device_id == device_id,
                    SyncLog.status == types.SyncStatus.SUCCESS.value,
                )
                .order_by(SyncLog.end_time.desc(), SyncLog.id.desc())
                .limit(1)
            )
            log = session.execute(stmt).scalar_one_or_none()
            return _to_outcome(log) if log else None

    def list_sync_logs(
        self, device_id: int | None = None, limit: int = 20
    ) -> list[types.SyncOutcome]:
        """List recent sync outcomes, newest first.

        Args:
            device_id: Restrict to one device.
            limit: Maximum rows returned.
        """
        with self._session() as session:
            stmt = select(SyncLog).order_by(SyncLog.id.desc()).limit(limit)
            if device_id is not None:
                stmt = stmt.where(SyncLog.device_id == device_id)
            return [_to_outcome(log) for log in session.execute(stmt).scalars().all()]

    # === Device status operations ===

    def save_device_status(self, status: types.DeviceStatus) -> None:
        """Store a device status snapshot."""
        with self._session() as session:
            session.add(
                DeviceStatusSnapshot(
                    device_id=status.device_id,
                    branch_id=status.branch_id,
                    is_online=status.is_online,
                    status_message=status.status_message,
                    serial_number=status.serial_number,
                    firmware_version=status.firmware_version,
                    device_model=status.device_model,
                    user_count=status.user_count,
                    log_count=status.log_count,
                    face_count=status.face_count,
                    device_time=status.device_time,
                    status_time=status.status_time,
                )
            )
            session.commit()

    def count_device_statuses(self, device_id: int | None = None) -> int:
        """Count stored status snapshots, optionally for one device."""
        with self._session() as session:
            stmt = select(func.count(DeviceStatusSnapshot.id))
            if device_id is not None:
                stmt = stmt.where(DeviceStatusSnapshot.device_id == device_id)
            return int(session.execute(stmt).scalar_one())

    def purge_device_status(self, older_than_days: int) -> int:
        """Delete status snapshots older than the retention period.

        Args:
            older_than_days: Delete snapshots taken more than this many days ago.

        Returns:
            Number of snapshots deleted.
        """
        cutoff = datetime.now() - timedelta(days=older_than_days)
        with self._session() as session:
            result = session.execute(
                delete(DeviceStatusSnapshot).where(DeviceStatusSnapshot.status_time < cutoff)
            )
            session.commit()
            return int(result.rowcount or 0)
