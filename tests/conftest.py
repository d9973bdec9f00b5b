"""Shared fixtures for attendsync tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import datetime
from pathlib import Path

import pytest

from attendsync.core.types import AttendanceRecord, Branch, Device, DeviceStatus
from attendsync.store.database import Database


class FakeDriver:
    """In-memory DeviceDriver.

    Attributes:
        records: Records returned by fetch_records.
        connect_result: Value returned by connect (an exception is raised).
        fetch_error: Raised by fetch_records when set.
        calls: Names of the driver methods called, in order.
    """

    def __init__(
        self,
        records: list[AttendanceRecord] | None = None,
        connect_result: bool | Exception = True,
        fetch_error: Exception | None = None,
        status_error: Exception | None = None,
    ) -> None:
        self.records = list(records or [])
        self.connect_result = connect_result
        self.fetch_error = fetch_error
        self.status_error = status_error
        self.connected = False
        self.calls: list[str] = []

    def connect(self, ip: str, port: int) -> bool:
        self.calls.append("connect")
        if isinstance(self.connect_result, Exception):
            raise self.connect_result
        self.connected = self.connect_result
        return self.connect_result

    def disconnect(self) -> bool:
        self.calls.append("disconnect")
        self.connected = False
        return True

    def is_connected(self) -> bool:
        return self.connected

    def fetch_records(self, device_id: int, branch_id: int) -> list[AttendanceRecord]:
        self.calls.append("fetch_records")
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.records)

    def get_status_snapshot(self, device_id: int, branch_id: int) -> DeviceStatus:
        self.calls.append("get_status_snapshot")
        if self.status_error is not None:
            raise self.status_error
        return DeviceStatus(
            device_id=device_id,
            branch_id=branch_id,
            is_online=True,
            status_message="Connected",
            serial_number="SN-1",
            user_count=3,
            log_count=len(self.records),
        )


@pytest.fixture
def db(tmp_path: Path) -> Iterator[Database]:
    """Create a test database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def branch(db: Database) -> Branch:
    """A registered branch."""
    return db.get_or_create_branch("HQ", "Head Office", "Riyadh")


@pytest.fixture
def device(db: Database, branch: Branch) -> Device:
    """A registered device of the test branch."""
    return db.upsert_device(branch.id, "Gate 1", "192.168.1.201", 4370)


@pytest.fixture
def make_record(device: Device) -> Callable[..., AttendanceRecord]:
    """Factory for records of the test device."""

    def factory(
        user: str = "42",
        timestamp: datetime | None = None,
        device_id: int | None = None,
    ) -> AttendanceRecord:
        return AttendanceRecord(
            biometric_user_id=user,
            device_id=device.id if device_id is None else device_id,
            branch_id=device.branch_id,
            timestamp=timestamp or datetime(2025, 3, 15, 8, 0, 0),
            verify_method="Fingerprint",
            attendance_type="CheckIn",
        )

    return factory


@pytest.fixture
def fake_driver_cls() -> type[FakeDriver]:
    """The in-memory driver class."""
    return FakeDriver
