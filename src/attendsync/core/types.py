"""Shared types for the attendance sync engine.

This module provides:
- AttendanceSyncError and subclasses: Exception hierarchy
- Branch, Device: Registry values handed to the engine each cycle
- AttendanceRecord: A single punch read from a device
- DeviceStatus: Point-in-time device snapshot
- SyncStatus, SyncOutcome: Audit record of one device sync attempt
- DeviceDriver, AttendanceStore, ConfigurationReconciler: Collaborator protocols
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from attendsync.core.dedup import compute_hash

if TYPE_CHECKING:
    from collections.abc import Iterable


class AttendanceSyncError(Exception):
    """Base exception for attendance sync errors."""


class ConfigurationError(AttendanceSyncError):
    """Configuration could not be loaded or reconciled."""


class DeviceConnectionError(AttendanceSyncError):
    """Device is unreachable or rejected the connection."""


class DeviceReadError(AttendanceSyncError):
    """Device returned no data after every read strategy."""


class SyncCancelledError(AttendanceSyncError):
    """Cancellation was requested while a sync was running."""


class DeviceSyncError(AttendanceSyncError):
    """A device sync attempt failed.

    Attributes:
        outcome: The persisted FAILED outcome for the attempt.
    """

    def __init__(self, message: str, outcome: SyncOutcome | None = None) -> None:
        super().__init__(message)
        self.outcome = outcome


@dataclass(frozen=True)
class Branch:
    """A branch (site) owning a set of devices."""

    id: int
    code: str
    name: str
    city: str = ""


@dataclass(frozen=True)
class Device:
    """An attendance terminal as known by the registry.

    Attributes:
        id: Registry id of the device.
        ip: Network address of the terminal.
        port: TCP/UDP port (ZK terminals default to 4370).
        branch_id: Owning branch.
        is_active: Inactive devices are never synced.
        name: Human readable name, used in logs only.
    """

    id: int
    ip: str
    port: int
    branch_id: int
    is_active: bool = True
    name: str = ""


@dataclass
class AttendanceRecord:
    """A single attendance punch.

    ``timestamp`` is truncated to whole seconds and ``content_hash`` is
    derived from ``(biometric_user_id, device_id, timestamp)``; it is the only
    key used for deduplication.
    """

    biometric_user_id: str
    device_id: int
    branch_id: int
    timestamp: datetime
    verify_method: str = "Unknown"
    attendance_type: str = "CheckIn"
    work_code: int = 0
    content_hash: str = field(init=False)

    def __post_init__(self) -> None:
        self.timestamp = self.timestamp.replace(microsecond=0)
        self.content_hash = compute_hash(self.biometric_user_id, self.device_id, self.timestamp)

    def to_payload(self) -> dict[str, object]:
        """Serialize for the upstream relay."""
        return {
            "biometricUserId": self.biometric_user_id,
            "attendanceTime": self.timestamp.isoformat(),
            "verifyMethod": self.verify_method,
            "attendanceType": self.attendance_type,
            "workCode": self.work_code,
        }


@dataclass
class DeviceStatus:
    """Snapshot of a device's state taken at the start of a sync."""

    device_id: int
    branch_id: int
    is_online: bool
    status_message: str = ""
    serial_number: str | None = None
    firmware_version: str | None = None
    device_model: str | None = None
    user_count: int = 0
    log_count: int = 0
    face_count: int = 0
    device_time: datetime | None = None
    status_time: datetime = field(default_factory=datetime.now)


class SyncStatus(str, Enum):
    """Lifecycle status of a SyncOutcome."""

    IN_PROGRESS = "InProgress"
    SUCCESS = "Success"
    FAILED = "Failed"


@dataclass
class SyncOutcome:
    """Audit record of one device sync attempt.

    Created when the attempt starts and persisted exactly once when it ends.
    """

    device_id: int
    branch_id: int
    start_time: datetime
    end_time: datetime | None = None
    status: SyncStatus = SyncStatus.IN_PROGRESS
    fetched_count: int = 0
    new_count: int = 0
    duplicate_count: int = 0
    error_message: str | None = None
    retry_attempt: int = 0
    server_name: str = ""
    id: int | None = None

    @property
    def is_terminal(self) -> bool:
        """Check if the outcome reached SUCCESS or FAILED."""
        return self.status != SyncStatus.IN_PROGRESS

    @property
    def duration_seconds(self) -> float:
        """Elapsed time of the attempt (0 while still running)."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


class DeviceDriver(Protocol):
    """Capability contract for talking to one attendance terminal.

    A driver instance holds at most one live connection and is not shared
    between threads.
    """

    def connect(self, ip: str, port: int) -> bool: ...

    def disconnect(self) -> bool: ...

    def is_connected(self) -> bool: ...

    def fetch_records(self, device_id: int, branch_id: int) -> list[AttendanceRecord]: ...

    def get_status_snapshot(self, device_id: int, branch_id: int) -> DeviceStatus: ...


class AttendanceStore(Protocol):
    """Persistence operations the sync engine depends on."""

    def find_existing_hashes(self, hashes: Iterable[str]) -> set[str]: ...

    def bulk_insert(self, records: list[AttendanceRecord], batch_size: int) -> int: ...

    def get_latest_success_outcome(self, device_id: int) -> SyncOutcome | None: ...

    def save_outcome(self, outcome: SyncOutcome) -> int: ...

    def update_device_connection_status(
        self, device_id: int, is_online: bool, status_label: str
    ) -> None: ...

    def save_device_status(self, status: DeviceStatus) -> None: ...


class ConfigurationReconciler(Protocol):
    """Source of the branch and device set for a sync cycle."""

    def load_and_sync(self) -> tuple[Branch | None, list[Device]]: ...
