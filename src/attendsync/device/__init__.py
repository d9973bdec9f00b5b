"""Device module - Drivers for attendance terminals."""

from attendsync.device.zk import ATTENDANCE_TYPES, VERIFY_METHODS, ZKDeviceDriver, to_record

__all__ = [
    "ATTENDANCE_TYPES",
    "VERIFY_METHODS",
    "ZKDeviceDriver",
    "to_record",
]
