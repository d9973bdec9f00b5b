"""Service wiring and logging setup.

This module provides:
- setup_logging: stdout (and optional file) logging for the attendsync package
- AttendanceService: Builds the store, reconciler, orchestrator, scheduler,
  relay and maintenance job from an AppConfig
"""

from __future__ import annotations

import functools
import logging
import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from attendsync.core.peak_hours import PeakHourEvaluator
from attendsync.core.types import ConfigurationError
from attendsync.device.zk import ZKDeviceDriver
from attendsync.relay import UpstreamRelay
from attendsync.store.database import Database
from attendsync.store.reconciler import DatabaseReconciler
from attendsync.sync.maintenance import StatusPurgeScheduler
from attendsync.sync.orchestrator import DeviceSyncOrchestrator
from attendsync.sync.scheduler import SyncScheduler
from attendsync.sync.workflow import DeviceSyncWorkflow

if TYPE_CHECKING:
    import threading

    from attendsync.core.config import AppConfig
    from attendsync.core.types import DeviceDriver
    from attendsync.sync.orchestrator import OrchestratorSummary
    from attendsync.sync.workflow import SuccessHook

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_path: Path | str | None = None, level: int = logging.INFO) -> None:
    """Configure logging to output to stdout and optionally a file.

    Calling it again replaces the handlers installed by a previous call.

    Args:
        log_path: Path to the log file (None logs to stdout only).
        level: Level for the attendsync logger.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger("attendsync")
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if log_path is not None:
        log_file = Path(log_path).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


class AttendanceService:
    """Everything needed to sync a branch's devices, wired from config.

    Usage:
        service = AttendanceService(load_config())
        try:
            service.run(stop_event)
        finally:
            service.close()
    """

    def __init__(
        self,
        config: AppConfig,
        driver_factory: Callable[[], DeviceDriver] | None = None,
        relay: UpstreamRelay | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the service.

        Args:
            config: Loaded configuration.
            driver_factory: Builds one device driver per sync attempt
                (ZKDeviceDriver by default).
            relay: Upstream relay (built from config.relay when enabled).
            clock: Source of the current local time.
        """
        self._config = config
        self._clock = clock
        self._db = Database(config.db_path)
        self._reconciler = DatabaseReconciler(self._db, config.branch, config.devices)
        self._evaluator = PeakHourEvaluator(config.sync.peak_hours)

        timeout = config.sync.device_timeout_seconds
        self._driver_factory = driver_factory or (lambda: ZKDeviceDriver(timeout=timeout))

        if relay is None and config.relay.enabled:
            relay = UpstreamRelay(config.relay)
        self._relay = relay

        self._orchestrator = DeviceSyncOrchestrator(self._make_workflow, config.sync)
        self._scheduler = SyncScheduler(
            self._reconciler,
            self._evaluator,
            self._orchestrator,
            config.sync,
            clock=clock,
        )
        self._maintenance = StatusPurgeScheduler(self._db, config.sync.status_retention_days)

    @property
    def db(self) -> Database:
        """Attendance database."""
        return self._db

    @property
    def evaluator(self) -> PeakHourEvaluator:
        """Peak-hour rules."""
        return self._evaluator

    @property
    def scheduler(self) -> SyncScheduler:
        """Sync control loop."""
        return self._scheduler

    @property
    def maintenance(self) -> StatusPurgeScheduler:
        """Status purge job."""
        return self._maintenance

    def _make_workflow(self, cancel_event: threading.Event | None) -> DeviceSyncWorkflow:
        return DeviceSyncWorkflow(
            self._driver_factory(),
            self._db,
            self._config.sync,
            clock=self._clock,
            cancel_event=cancel_event,
            on_success=self._success_hook(cancel_event),
        )

    def _success_hook(self, cancel_event: threading.Event | None) -> SuccessHook | None:
        if self._relay is None:
            return None
        return functools.partial(self._relay.on_sync_success, cancel_event=cancel_event)

    def run(self, cancel_event: threading.Event | None = None) -> None:
        """Run the scheduler loop until cancelled (blocking)."""
        if self._config.sync.status_retention_days > 0:
            self._maintenance.start()
        try:
            self._scheduler.run(cancel_event)
        finally:
            self._maintenance.stop()

    def sync_once(
        self,
        cancel_event: threading.Event | None = None,
        device_id: int | None = None,
    ) -> OrchestratorSummary:
        """Sync every active device (or one of them) once, ignoring peak hours.

        Args:
            cancel_event: Set to abort the run.
            device_id: Only sync this device.

        Returns:
            Orchestrator summary.

        Raises:
            ConfigurationError: If the registry could not be reconciled or the
                device is not an active device of the branch.
        """
        branch, devices = self._reconciler.load_and_sync()
        if branch is None:
            raise ConfigurationError("could not reconcile configuration with the database")

        if device_id is not None:
            devices = [d for d in devices if d.id == device_id]
            if not devices:
                raise ConfigurationError(f"device {device_id} is not an active device")

        return self._orchestrator.run_all(devices, branch.id, cancel_event)

    def close(self) -> None:
        """Stop background jobs and release resources."""
        self._maintenance.stop()
        if self._relay is not None:
            self._relay.close()
        self._db.close()
