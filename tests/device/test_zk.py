"""Tests for the ZKTeco driver."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock, call, patch

import pytest
from zk.exception import ZKError

from attendsync.core.types import DeviceReadError
from attendsync.device.zk import (
    ZKDeviceDriver,
    attendance_type_name,
    convert_punches,
    to_record,
    verify_method_name,
)


def punch(
    user_id: str = "15",
    timestamp: object = datetime(2025, 3, 15, 8, 0, 0),
    status: int = 1,
    punch_code: int = 0,
) -> SimpleNamespace:
    """Create a raw pyzk-style attendance entry."""
    return SimpleNamespace(user_id=user_id, timestamp=timestamp, status=status, punch=punch_code)


@pytest.fixture
def conn() -> MagicMock:
    """Mocked pyzk connection."""
    connection = MagicMock()
    connection.get_attendance.return_value = [punch()]
    return connection


@pytest.fixture
def zk_class(conn: MagicMock) -> Iterator[MagicMock]:
    """Patch the pyzk ZK class."""
    with patch("attendsync.device.zk.ZK") as zk:
        zk.return_value.connect.return_value = conn
        yield zk


@pytest.fixture
def driver(zk_class: MagicMock) -> ZKDeviceDriver:
    """A driver connected to the mocked device."""
    zk_driver = ZKDeviceDriver(timeout=30)
    assert zk_driver.connect("10.0.0.1", 4370)
    return zk_driver


class TestCodeNames:
    """Tests for verify-mode and punch-type names."""

    def test_verify_methods(self) -> None:
        """Known codes map to names, unknown ones keep their code."""
        assert verify_method_name(1) == "Fingerprint"
        assert verify_method_name(15) == "Palm"
        assert verify_method_name(99) == "Unknown(99)"
        assert verify_method_name(None) == "Unknown"

    def test_attendance_types(self) -> None:
        """Unknown punch codes count as CheckIn."""
        assert attendance_type_name(1) == "CheckOut"
        assert attendance_type_name(255) == "CheckIn"
        assert attendance_type_name(42) == "CheckIn"


class TestToRecord:
    """Tests for raw punch conversion."""

    def test_converts_fields(self) -> None:
        """Should build an AttendanceRecord from a pyzk entry."""
        record = to_record(punch(status=2, punch_code=1), device_id=3, branch_id=1)

        assert record is not None
        assert record.biometric_user_id == "15"
        assert record.device_id == 3
        assert record.verify_method == "Card"
        assert record.attendance_type == "CheckOut"
        assert record.content_hash == "15_3_20250315080000"

    def test_blank_user_becomes_zero(self) -> None:
        """Blank user ids are stored as "0"."""
        record = to_record(punch(user_id=""), device_id=3, branch_id=1)
        assert record is not None
        assert record.biometric_user_id == "0"

    @pytest.mark.parametrize("timestamp", [datetime(1999, 12, 31, 23, 0), None, "2025-01-01"])
    def test_invalid_timestamp(self, timestamp: object) -> None:
        """Unset clocks and non-datetime values are rejected."""
        assert to_record(punch(timestamp=timestamp), device_id=3, branch_id=1) is None

    def test_convert_sorts_and_skips(self, caplog: pytest.LogCaptureFixture) -> None:
        """Malformed punches are logged and skipped, the rest sorted."""
        raw = [
            punch(user_id="2", timestamp=datetime(2025, 3, 15, 9, 0)),
            punch(user_id="bad", timestamp=datetime(1980, 1, 1)),
            punch(user_id="1", timestamp=datetime(2025, 3, 15, 8, 0)),
        ]

        with caplog.at_level(logging.WARNING, logger="attendsync.device.zk"):
            records = convert_punches(raw, device_id=1, branch_id=1)

        assert [r.biometric_user_id for r in records] == ["1", "2"]
        assert "invalid timestamp" in caplog.text


class TestConnection:
    """Tests for connect/disconnect."""

    def test_connect_passes_settings(self, zk_class: MagicMock) -> None:
        """ZK is built with the driver settings."""
        zk_driver = ZKDeviceDriver(timeout=30, password=123)

        assert zk_driver.connect("10.0.0.1", 4371) is True
        assert zk_driver.is_connected() is True
        zk_class.assert_called_once_with(
            "10.0.0.1",
            port=4371,
            timeout=30,
            password=123,
            force_udp=False,
            ommit_ping=True,
        )

    def test_connect_failure(self, zk_class: MagicMock) -> None:
        """A pyzk error means the device is unreachable."""
        zk_class.return_value.connect.side_effect = ZKError("can't reach device")
        zk_driver = ZKDeviceDriver()

        assert zk_driver.connect("10.0.0.1", 4370) is False
        assert zk_driver.is_connected() is False

    def test_disconnect(self, driver: ZKDeviceDriver, conn: MagicMock) -> None:
        """Should close the connection."""
        assert driver.disconnect() is True
        conn.disconnect.assert_called_once()
        assert driver.is_connected() is False

    def test_disconnect_error(self, driver: ZKDeviceDriver, conn: MagicMock) -> None:
        """A failing disconnect still drops the connection."""
        conn.disconnect.side_effect = ZKError("socket closed")
        assert driver.disconnect() is False
        assert driver.is_connected() is False


class TestFetchRecords:
    """Tests for reading the attendance log."""

    def test_disables_device_while_reading(self, driver: ZKDeviceDriver, conn: MagicMock) -> None:
        """The terminal is disabled for the read and re-enabled afterwards."""
        records = driver.fetch_records(device_id=1, branch_id=1)

        assert len(records) == 1
        assert conn.method_calls[:3] == [
            call.disable_device(),
            call.get_attendance(),
            call.enable_device(),
        ]

    def test_falls_back_to_refresh(self, driver: ZKDeviceDriver, conn: MagicMock) -> None:
        """A failed read is retried once after refreshing device buffers."""
        conn.get_attendance.side_effect = [ZKError("buffer"), [punch(), punch(user_id="16")]]

        records = driver.fetch_records(device_id=1, branch_id=1)

        assert len(records) == 2
        conn.refresh_data.assert_called_once()

    def test_both_strategies_fail(self, driver: ZKDeviceDriver, conn: MagicMock) -> None:
        """Two failed reads raise DeviceReadError and re-enable the terminal."""
        conn.get_attendance.side_effect = ZKError("no data")

        with pytest.raises(DeviceReadError):
            driver.fetch_records(device_id=1, branch_id=1)

        conn.enable_device.assert_called_once()

    def test_not_connected(self) -> None:
        """Reading without a connection is an error."""
        with pytest.raises(DeviceReadError):
            ZKDeviceDriver().fetch_records(device_id=1, branch_id=1)


class TestStatusSnapshot:
    """Tests for get_status_snapshot."""

    def test_reads_device_info(self, driver: ZKDeviceDriver, conn: MagicMock) -> None:
        """Serial, firmware, clock and counts are collected."""
        conn.get_serialnumber.return_value = "ABC123"
        conn.get_firmware_version.return_value = "Ver 6.60"
        conn.get_time.return_value = datetime(2025, 3, 15, 8, 0)
        conn.read_sizes.return_value = True
        conn.users, conn.records, conn.faces = 120, 5400, 80

        status = driver.get_status_snapshot(device_id=1, branch_id=2)

        assert status.is_online is True
        assert status.serial_number == "ABC123"
        assert status.firmware_version == "Ver 6.60"
        assert status.device_time == datetime(2025, 3, 15, 8, 0)
        assert (status.user_count, status.log_count, status.face_count) == (120, 5400, 80)

    def test_partial_failure(self, driver: ZKDeviceDriver, conn: MagicMock) -> None:
        """A failing sub-read leaves only its field empty."""
        conn.get_serialnumber.side_effect = ZKError("unsupported")
        conn.get_firmware_version.return_value = "Ver 6.60"
        conn.read_sizes.side_effect = OSError("timeout")

        status = driver.get_status_snapshot(device_id=1, branch_id=2)

        assert status.serial_number == "Unknown"
        assert status.firmware_version == "Ver 6.60"
        assert status.log_count == 0

    def test_offline_when_disconnected(self) -> None:
        """Without a connection the snapshot is offline."""
        status = ZKDeviceDriver().get_status_snapshot(device_id=1, branch_id=2)
        assert status.is_online is False
