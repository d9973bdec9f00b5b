"""ZKTeco terminal driver built on pyzk.

This module provides:
- VERIFY_METHODS, ATTENDANCE_TYPES: Names for the terminal's numeric codes
- to_record: Convert a raw pyzk punch into an AttendanceRecord
- ZKDeviceDriver: DeviceDriver implementation over a pyzk connection
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

from zk import ZK
from zk.exception import ZKError

from attendsync.core.dedup import normalize_user_id
from attendsync.core.types import AttendanceRecord, DeviceReadError, DeviceStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

VERIFY_METHODS: dict[int, str] = {
    0: "Password",
    1: "Fingerprint",
    2: "Card",
    3: "Fingerprint+Password",
    4: "Fingerprint+Card",
    5: "Face",
    6: "Face+Fingerprint",
    7: "Face+Password",
    8: "Face+Card",
    15: "Palm",
}

ATTENDANCE_TYPES: dict[int, str] = {
    0: "CheckIn",
    1: "CheckOut",
    2: "BreakOut",
    3: "BreakIn",
    4: "OTIn",
    5: "OTOut",
    255: "CheckIn",
}

# Punches dated before this year come from unset terminal clocks
MIN_VALID_YEAR = 2000

PROGRESS_LOG_EVERY = 5000


def verify_method_name(code: int | None) -> str:
    """Map a verify-mode code to its name."""
    if code is None:
        return "Unknown"
    return VERIFY_METHODS.get(code, f"Unknown({code})")


def attendance_type_name(code: int | None) -> str:
    """Map an in/out mode code to its name (unknown codes count as CheckIn)."""
    if code is None:
        return "CheckIn"
    return ATTENDANCE_TYPES.get(code, "CheckIn")


def to_record(raw: Any, device_id: int, branch_id: int) -> AttendanceRecord | None:
    """Convert a raw pyzk attendance entry.

    Args:
        raw: Object with user_id, timestamp, status and punch attributes.
        device_id: Registry id of the device it was read from.
        branch_id: Branch of the device.

    Returns:
        The record, or None if the punch has an invalid date.
    """
    timestamp = getattr(raw, "timestamp", None)
    if not isinstance(timestamp, datetime) or timestamp.year < MIN_VALID_YEAR:
        return None

    return AttendanceRecord(
        biometric_user_id=normalize_user_id(getattr(raw, "user_id", None)),
        device_id=device_id,
        branch_id=branch_id,
        timestamp=timestamp,
        verify_method=verify_method_name(getattr(raw, "status", None)),
        attendance_type=attendance_type_name(getattr(raw, "punch", None)),
        work_code=int(getattr(raw, "workcode", 0) or 0),
    )


def convert_punches(raw_punches: Iterable[Any], device_id: int, branch_id: int) -> list[AttendanceRecord]:
    """Convert raw punches, skipping malformed ones.

    Returns:
        Valid records sorted by timestamp.
    """
    records: list[AttendanceRecord] = []
    start = time.monotonic()

    for index, raw in enumerate(raw_punches, start=1):
        try:
            record = to_record(raw, device_id, branch_id)
        except (TypeError, ValueError) as e:
            logger.warning("Device %d punch %d: skipped (%s)", device_id, index, e)
            continue
        if record is None:
            logger.warning(
                "Device %d punch %d: invalid timestamp %r, skipped",
                device_id,
                index,
                getattr(raw, "timestamp", None),
            )
            continue
        records.append(record)

        if index % PROGRESS_LOG_EVERY == 0:
            logger.info("Device %d: converted %d punches", device_id, index)

    logger.debug(
        "Device %d: %d valid punches in %.1fs", device_id, len(records), time.monotonic() - start
    )
    return sorted(records, key=lambda r: r.timestamp)


class ZKDeviceDriver:
    """DeviceDriver for ZKTeco terminals.

    One instance talks to one device at a time. The terminal is disabled
    while its log is read so no punch is written mid-read, and re-enabled on
    every exit path.
    """

    def __init__(
        self,
        timeout: int = 120,
        password: int = 0,
        force_udp: bool = False,
        ommit_ping: bool = True,
    ) -> None:
        """Initialize the driver.

        Args:
            timeout: Socket timeout in seconds for every device command.
            password: Device communication password.
            force_udp: Use UDP instead of TCP.
            ommit_ping: Skip the ICMP reachability check before connecting.
        """
        self._timeout = timeout
        self._password = password
        self._force_udp = force_udp
        self._ommit_ping = ommit_ping
        self._conn: Any = None
        self._endpoint = ""

    def connect(self, ip: str, port: int) -> bool:
        """Connect to a device.

        Returns:
            True if connected, False if the device refused or is unreachable.
        """
        self._endpoint = f"{ip}:{port}"
        zk = ZK(
            ip,
            port=port,
            timeout=self._timeout,
            password=self._password,
            force_udp=self._force_udp,
            ommit_ping=self._ommit_ping,
        )
        try:
            self._conn = zk.connect()
        except (ZKError, OSError) as e:
            logger.error("Connection to %s failed: %s", self._endpoint, e)
            self._conn = None
            return False

        logger.info("Connected to %s", self._endpoint)
        return True

    def disconnect(self) -> bool:
        """Disconnect from the device.

        Returns:
            True if disconnected (or not connected), False on error.
        """
        if self._conn is None:
            return True
        try:
            self._conn.disconnect()
        except (ZKError, OSError) as e:
            logger.error("Disconnect from %s failed: %s", self._endpoint, e)
            return False
        finally:
            self._conn = None
        logger.info("Disconnected from %s", self._endpoint)
        return True

    def is_connected(self) -> bool:
        """Check if a connection is open."""
        return self._conn is not None

    def fetch_records(self, device_id: int, branch_id: int) -> list[AttendanceRecord]:
        """Read every punch stored on the device.

        Raises:
            DeviceReadError: If not connected or both read strategies fail.
        """
        if self._conn is None:
            raise DeviceReadError(f"device {device_id} is not connected")

        start = time.monotonic()
        self._conn.disable_device()
        try:
            raw_punches = self._read_attendance(device_id)
        finally:
            try:
                self._conn.enable_device()
            except (ZKError, OSError) as e:
                logger.error("Device %d: failed to re-enable terminal: %s", device_id, e)

        logger.info(
            "Device %d: read %d punches in %.1fs",
            device_id,
            len(raw_punches),
            time.monotonic() - start,
        )
        return convert_punches(raw_punches, device_id, branch_id)

    def _read_attendance(self, device_id: int) -> list[Any]:
        """Read the attendance log, refreshing device buffers once on failure."""
        try:
            return list(self._conn.get_attendance() or [])
        except ZKError as e:
            logger.warning("Device %d: attendance read failed (%s), retrying after refresh", device_id, e)

        try:
            self._conn.refresh_data()
            return list(self._conn.get_attendance() or [])
        except ZKError as e:
            raise DeviceReadError(f"device {device_id}: attendance read failed: {e}") from e

    def get_status_snapshot(self, device_id: int, branch_id: int) -> DeviceStatus:
        """Read serial, firmware and record counts.

        Each reading is best-effort; a failing one leaves its field empty.
        """
        if self._conn is None:
            return DeviceStatus(
                device_id=device_id,
                branch_id=branch_id,
                is_online=False,
                status_message="Not connected",
            )

        status = DeviceStatus(
            device_id=device_id,
            branch_id=branch_id,
            is_online=True,
            status_message="Connected",
            device_model="ZKTeco",
        )
        status.serial_number = self._safe_read(self._conn.get_serialnumber, "Unknown")
        status.firmware_version = self._safe_read(self._conn.get_firmware_version, "Unknown")
        status.device_time = self._safe_read(self._conn.get_time, None)
        if self._safe_read(self._conn.read_sizes, False):
            status.user_count = int(getattr(self._conn, "users", 0) or 0)
            status.log_count = int(getattr(self._conn, "records", 0) or 0)
            status.face_count = int(getattr(self._conn, "faces", 0) or 0)
        return status

    def _safe_read(self, reader: Any, default: Any) -> Any:
        try:
            return reader()
        except (ZKError, OSError) as e:
            logger.debug(
                "Status read %s on %s failed: %s", getattr(reader, "__name__", reader), self._endpoint, e
            )
            return default
