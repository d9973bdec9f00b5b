"""Configuration classes for attendsync.

This module defines the settings consumed by the sync engine and the
surrounding service, plus the loader for the JSON configuration file.
Keys in the file are camelCase; attributes are snake_case.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from attendsync.core.types import ConfigurationError

CONFIG_ENV_VAR = "ATTENDSYNC_CONFIG"
DB_PATH_ENV_VAR = "ATTENDSYNC_DB_PATH"
DEFAULT_CONFIG_FILE = "attendsync.json"
DEFAULT_DEVICE_PORT = 4370


def get_bool(data: dict[str, Any], key: str, default: bool) -> bool:
    """Read a JSON boolean, rejecting strings and numbers.

    Raises:
        ConfigurationError: If the value is present but not true/false.
    """
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError(f"{key} must be true or false, got {value!r}")
    return value


@dataclass(frozen=True)
class PeakHourWindow:
    """A time-of-day range during which devices are left alone.

    Attributes:
        name: Label used in logs.
        start_time: Start of the window, "HH:MM".
        end_time: End of the window, "HH:MM". May be earlier than start_time
            for windows that wrap midnight.
        run_immediately_after: Force a catch-up run right after the window.
    """

    name: str
    start_time: str
    end_time: str
    run_immediately_after: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PeakHourWindow:
        """Create from a config dictionary."""
        return cls(
            name=str(data.get("name", "")),
            start_time=str(data.get("startTime", "")),
            end_time=str(data.get("endTime", "")),
            run_immediately_after=get_bool(data, "runImmediatelyAfter", False),
        )


@dataclass
class SyncSettings:
    """Settings for the sync scheduler, orchestrator and workflow.

    Attributes:
        enable_auto_sync: When False the scheduler exits without syncing.
        sync_interval_minutes: Wait between cycles.
        max_retry_attempts: Attempts per device per cycle.
        sync_last_n_days: Lookback window applied to fetched records.
        sync_all_on_first_time: Ignore the lookback on a device's first sync.
        peak_hours: Windows during which no sync runs.
        max_concurrent_devices: Devices synced at the same time.
        bulk_batch_size: Rows per insert batch.
        device_timeout_seconds: Socket timeout for device operations.
        status_retention_days: Age after which status snapshots are purged
            (0 disables the purge job).
    """

    enable_auto_sync: bool = True
    sync_interval_minutes: int = 10
    max_retry_attempts: int = 3
    sync_last_n_days: int = 365
    sync_all_on_first_time: bool = True
    peak_hours: list[PeakHourWindow] = field(default_factory=list)
    max_concurrent_devices: int = 5
    bulk_batch_size: int = 10000
    device_timeout_seconds: int = 120
    status_retention_days: int = 30

    def __post_init__(self) -> None:
        """Validate numeric settings."""
        if self.sync_interval_minutes < 1:
            raise ConfigurationError("syncIntervalMinutes must be at least 1")
        if self.max_concurrent_devices < 1:
            raise ConfigurationError("maxConcurrentDevices must be at least 1")
        if self.bulk_batch_size < 1:
            raise ConfigurationError("bulkBatchSize must be at least 1")
        if self.sync_last_n_days < 0:
            raise ConfigurationError("syncLastNDays must not be negative")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncSettings:
        """Create from a config dictionary, using defaults for missing keys."""
        defaults = cls()
        return cls(
            enable_auto_sync=get_bool(data, "enableAutoSync", defaults.enable_auto_sync),
            sync_interval_minutes=int(
                data.get("syncIntervalMinutes", defaults.sync_interval_minutes)
            ),
            max_retry_attempts=int(data.get("maxRetryAttempts", defaults.max_retry_attempts)),
            sync_last_n_days=int(data.get("syncLastNDays", defaults.sync_last_n_days)),
            sync_all_on_first_time=get_bool(
                data, "syncAllOnFirstTime", defaults.sync_all_on_first_time
            ),
            peak_hours=[PeakHourWindow.from_dict(w) for w in data.get("peakHours", [])],
            max_concurrent_devices=int(
                data.get("maxConcurrentDevices", defaults.max_concurrent_devices)
            ),
            bulk_batch_size=int(data.get("bulkBatchSize", defaults.bulk_batch_size)),
            device_timeout_seconds=int(
                data.get("deviceTimeoutSeconds", defaults.device_timeout_seconds)
            ),
            status_retention_days=int(
                data.get("statusRetentionDays", defaults.status_retention_days)
            ),
        )


@dataclass(frozen=True)
class BranchSettings:
    """The branch this service instance syncs for."""

    code: str
    name: str
    city: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BranchSettings:
        """Create from a config dictionary."""
        if not data.get("code"):
            raise ConfigurationError("branch.code is required")
        return cls(
            code=str(data["code"]),
            name=str(data.get("name", data["code"])),
            city=str(data.get("city") or ""),
        )


@dataclass(frozen=True)
class DeviceSettings:
    """A device declared in the configuration file."""

    name: str
    ip: str
    port: int = DEFAULT_DEVICE_PORT
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeviceSettings:
        """Create from a config dictionary."""
        if not data.get("ip"):
            raise ConfigurationError(f"device {data.get('name', '?')!r} has no ip")
        return cls(
            name=str(data.get("name", data["ip"])),
            ip=str(data["ip"]),
            port=int(data.get("port", DEFAULT_DEVICE_PORT)),
            is_active=get_bool(data, "isActive", True),
        )


@dataclass
class RelaySettings:
    """Settings for pushing new records to a central server.

    Attributes:
        base_url: Server base URL. Empty disables the relay.
        sync_endpoint: Path records are POSTed to.
        timeout: Request timeout in seconds.
        retry_count: Attempts per send.
        api_key: Sent as the X-API-Key header when set.
    """

    base_url: str = ""
    sync_endpoint: str = "/api/attendance/sync"
    timeout: float = 120.0
    retry_count: int = 3
    api_key: str = ""

    def __post_init__(self) -> None:
        """Normalize base URL."""
        self.base_url = self.base_url.rstrip("/")

    @property
    def enabled(self) -> bool:
        """Check if a relay target is configured."""
        return bool(self.base_url)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RelaySettings:
        """Create from a config dictionary."""
        return cls(
            base_url=str(data.get("baseUrl", "")),
            sync_endpoint=str(data.get("syncEndpoint", "/api/attendance/sync")),
            timeout=float(data.get("timeout", 120.0)),
            retry_count=int(data.get("retryCount", 3)),
            api_key=str(data.get("apiKey", "")),
        )


@dataclass
class AppConfig:
    """Complete service configuration."""

    branch: BranchSettings
    devices: list[DeviceSettings] = field(default_factory=list)
    sync: SyncSettings = field(default_factory=SyncSettings)
    relay: RelaySettings = field(default_factory=RelaySettings)
    db_path: Path = Path("attendsync.db")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppConfig:
        """Create from the parsed JSON document.

        Raises:
            ConfigurationError: If a section is missing or has invalid values.
        """
        if "branch" not in data:
            raise ConfigurationError("missing 'branch' section")
        try:
            db_path = os.environ.get(DB_PATH_ENV_VAR) or data.get("database", {}).get(
                "path", "attendsync.db"
            )
            return cls(
                branch=BranchSettings.from_dict(data["branch"]),
                devices=[DeviceSettings.from_dict(d) for d in data.get("devices", [])],
                sync=SyncSettings.from_dict(data.get("sync", {})),
                relay=RelaySettings.from_dict(data.get("relay", {})),
                db_path=Path(db_path).expanduser(),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"invalid configuration: {e}") from e


def default_config_path() -> Path:
    """Get the config file path (ATTENDSYNC_CONFIG or ./attendsync.json)."""
    return Path(os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE)).expanduser()


def load_config(path: Path | str | None = None) -> AppConfig:
    """Load configuration from a JSON file.

    Args:
        path: Config file path. Defaults to default_config_path().

    Returns:
        Parsed configuration.

    Raises:
        ConfigurationError: If the file is missing or invalid.
    """
    config_file = Path(path) if path is not None else default_config_path()
    if not config_file.exists():
        raise ConfigurationError(f"config file not found: {config_file}")
    try:
        data = json.loads(config_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"invalid JSON in {config_file}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_file} must contain a JSON object")
    return AppConfig.from_dict(data)
