"""Core module - Data model, configuration, dedup and peak-hour rules."""

from attendsync.core.config import (
    AppConfig,
    BranchSettings,
    DeviceSettings,
    PeakHourWindow,
    RelaySettings,
    SyncSettings,
    load_config,
)
from attendsync.core.dedup import DedupFilter, compute_hash, partition
from attendsync.core.peak_hours import CATCH_UP_GRACE, PeakHourEvaluator
from attendsync.core.types import (
    AttendanceRecord,
    AttendanceSyncError,
    Branch,
    ConfigurationError,
    Device,
    DeviceConnectionError,
    DeviceReadError,
    DeviceStatus,
    DeviceSyncError,
    SyncCancelledError,
    SyncOutcome,
    SyncStatus,
)

__all__ = [
    # Config
    "AppConfig",
    "BranchSettings",
    "DeviceSettings",
    "PeakHourWindow",
    "RelaySettings",
    "SyncSettings",
    "load_config",
    # Dedup
    "DedupFilter",
    "compute_hash",
    "partition",
    # Peak hours
    "CATCH_UP_GRACE",
    "PeakHourEvaluator",
    # Types
    "AttendanceRecord",
    "AttendanceSyncError",
    "Branch",
    "ConfigurationError",
    "Device",
    "DeviceConnectionError",
    "DeviceReadError",
    "DeviceStatus",
    "DeviceSyncError",
    "SyncCancelledError",
    "SyncOutcome",
    "SyncStatus",
]
