"""Tests for shared sync types."""

from __future__ import annotations

from datetime import datetime

from attendsync.core.types import (
    AttendanceRecord,
    AttendanceSyncError,
    DeviceConnectionError,
    DeviceSyncError,
    SyncCancelledError,
    SyncOutcome,
    SyncStatus,
)


class TestSyncOutcome:
    """Tests for SyncOutcome."""

    def test_starts_in_progress(self) -> None:
        """New outcomes are not terminal."""
        outcome = SyncOutcome(device_id=1, branch_id=1, start_time=datetime(2025, 1, 1, 10, 0))
        assert outcome.status == SyncStatus.IN_PROGRESS
        assert outcome.is_terminal is False
        assert outcome.duration_seconds == 0.0

    def test_duration(self) -> None:
        """Duration is end minus start."""
        outcome = SyncOutcome(
            device_id=1,
            branch_id=1,
            start_time=datetime(2025, 1, 1, 10, 0, 0),
            end_time=datetime(2025, 1, 1, 10, 0, 30),
            status=SyncStatus.SUCCESS,
        )
        assert outcome.is_terminal is True
        assert outcome.duration_seconds == 30.0

    def test_status_values(self) -> None:
        """Status values are the stored labels."""
        assert SyncStatus.SUCCESS.value == "Success"
        assert SyncStatus("Failed") is SyncStatus.FAILED


class TestAttendanceRecordPayload:
    """Tests for AttendanceRecord.to_payload."""

    def test_camel_case_keys(self) -> None:
        """Payload uses the relay's camelCase field names."""
        record = AttendanceRecord(
            biometric_user_id="7",
            device_id=2,
            branch_id=1,
            timestamp=datetime(2025, 3, 15, 8, 0, 0),
            verify_method="Card",
            attendance_type="CheckOut",
            work_code=3,
        )
        assert record.to_payload() == {
            "biometricUserId": "7",
            "attendanceTime": "2025-03-15T08:00:00",
            "verifyMethod": "Card",
            "attendanceType": "CheckOut",
            "workCode": 3,
        }


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_hierarchy(self) -> None:
        """Every sync error derives from AttendanceSyncError."""
        assert issubclass(DeviceConnectionError, AttendanceSyncError)
        assert issubclass(SyncCancelledError, AttendanceSyncError)
        assert issubclass(DeviceSyncError, AttendanceSyncError)

    def test_device_sync_error_carries_outcome(self) -> None:
        """The failed outcome travels with the error."""
        outcome = SyncOutcome(device_id=1, branch_id=1, start_time=datetime(2025, 1, 1))
        error = DeviceSyncError("boom", outcome)
        assert error.outcome is outcome
        assert str(error) == "boom"
