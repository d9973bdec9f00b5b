"""Incremental sync of a single attendance device.

One DeviceSyncWorkflow.run() call performs a full cycle for one device:
connect, snapshot status, work out the lookback floor, fetch, filter,
deduplicate, persist in batches and disconnect. Every call leaves exactly
one SyncOutcome row behind, whichever way it ends.
"""

from __future__ import annotations

import logging
import socket
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum, auto
from typing import TYPE_CHECKING

from attendsync.core.dedup import DedupFilter
from attendsync.core.types import (
    DeviceConnectionError,
    DeviceSyncError,
    SyncCancelledError,
    SyncOutcome,
    SyncStatus,
)

if TYPE_CHECKING:
    import threading

    from attendsync.core.config import SyncSettings
    from attendsync.core.types import AttendanceRecord, AttendanceStore, DeviceDriver

logger = logging.getLogger(__name__)

SuccessHook = Callable[[SyncOutcome, "list[AttendanceRecord]"], None]


class WorkflowState(Enum):
    """Step a workflow is currently in."""

    IDLE = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    FETCHING_STATUS = auto()
    DETERMINING_WATERMARK = auto()
    FETCHING = auto()
    FILTERING = auto()
    DEDUPING = auto()
    PERSISTING = auto()
    SUCCESS = auto()
    FAILED = auto()
    DISCONNECTED = auto()


class DeviceSyncWorkflow:
    """Runs one device's sync cycle.

    A workflow owns its driver for the duration of run() and is not meant to
    be shared between threads; the orchestrator builds one per attempt.

    Usage:
        workflow = DeviceSyncWorkflow(driver, db, settings, cancel_event=stop)
        outcome = workflow.run(device.id, device.ip, device.port, branch.id)
    """

    def __init__(
        self,
        driver: DeviceDriver,
        store: AttendanceStore,
        settings: SyncSettings,
        clock: Callable[[], datetime] = datetime.now,
        cancel_event: threading.Event | None = None,
        on_success: SuccessHook | None = None,
        server_name: str | None = None,
    ) -> None:
        """Initialize the workflow.

        Args:
            driver: Driver used to talk to the device.
            store: Attendance store shared with other workflows.
            settings: Lookback and batching settings.
            clock: Source of the current local time.
            cancel_event: Set to abort between steps.
            on_success: Called with (outcome, new_records) after a successful
                sync has been persisted.
            server_name: Recorded on the outcome (defaults to the hostname).
        """
        self._driver = driver
        self._store = store
        self._settings = settings
        self._clock = clock
        self._cancel_event = cancel_event
        self._on_success = on_success
        self._server_name = server_name if server_name is not None else socket.gethostname()
        self._dedup = DedupFilter(store)
        self._state = WorkflowState.IDLE

    @property
    def state(self) -> WorkflowState:
        """Get current workflow state."""
        return self._state

    def run(
        self,
        device_id: int,
        ip: str,
        port: int,
        branch_id: int,
        retry_attempt: int = 0,
    ) -> SyncOutcome:
        """Sync one device.

        Args:
            device_id: Registry id of the device.
            ip: Device address.
            port: Device port.
            branch_id: Branch the records belong to.
            retry_attempt: Zero-based attempt index, recorded on the outcome.

        Returns:
            The persisted SUCCESS outcome.

        Raises:
            DeviceSyncError: If the sync failed (the FAILED outcome is attached).
            SyncCancelledError: If cancellation was requested.
        """
        started = time.monotonic()
        outcome = SyncOutcome(
            device_id=device_id,
            branch_id=branch_id,
            start_time=self._clock(),
            retry_attempt=retry_attempt,
            server_name=self._server_name,
        )
        new_records: list[AttendanceRecord] = []

        try:
            self._connect(device_id, ip, port)
            new_records = self._sync_connected(outcome)
        except SyncCancelledError:
            self._fail(outcome, "Sync cancelled")
            self._safe_disconnect(device_id)
            logger.info("[%d] Sync cancelled", device_id)
            raise
        except DeviceConnectionError as e:
            self._fail(outcome, str(e))
            self._safe_update_status(device_id, False, "Disconnected")
            raise DeviceSyncError(str(e), outcome) from e
        except Exception as e:
            self._fail(outcome, str(e))
            logger.error("[%d] Sync failed: %s", device_id, e, exc_info=True)
            self._safe_update_status(device_id, False, "Error")
            self._safe_disconnect(device_id)
            raise DeviceSyncError(str(e), outcome) from e
        finally:
            self._save_outcome(outcome)

        logger.info(
            "[%d] Done in %.1fs: fetched=%d new=%d duplicate=%d",
            device_id,
            time.monotonic() - started,
            outcome.fetched_count,
            outcome.new_count,
            outcome.duplicate_count,
        )

        if self._on_success is not None:
            try:
                self._on_success(outcome, new_records)
            except Exception:
                logger.exception("[%d] Post-sync hook failed", device_id)

        return outcome

    def _sync_connected(self, outcome: SyncOutcome) -> list[AttendanceRecord]:
        """Steps after a successful connect.

        Returns:
            Records newly persisted by this run.
        """
        device_id = outcome.device_id
        branch_id = outcome.branch_id

        self._state = WorkflowState.CONNECTED
        self._safe_update_status(device_id, True, "Connected")

        self._check_cancelled()
        self._state = WorkflowState.FETCHING_STATUS
        self._record_device_status(device_id, branch_id)

        self._check_cancelled()
        self._state = WorkflowState.DETERMINING_WATERMARK
        floor = self._filter_floor(device_id)

        self._check_cancelled()
        self._state = WorkflowState.FETCHING
        fetch_started = time.monotonic()
        records = self._driver.fetch_records(device_id, branch_id)
        outcome.fetched_count = len(records)
        logger.info(
            "[%d] Fetched %d records in %.1fs",
            device_id,
            len(records),
            time.monotonic() - fetch_started,
        )

        self._state = WorkflowState.FILTERING
        if floor is not None:
            filtered = [r for r in records if r.timestamp >= floor]
            logger.info(
                "[%d] %d records since %s (%d older ignored)",
                device_id,
                len(filtered),
                floor.strftime("%Y-%m-%d %H:%M:%S"),
                len(records) - len(filtered),
            )
        else:
            filtered = records

        if not filtered:
            logger.info("[%d] No records to process", device_id)
            self._succeed(outcome, 0, 0)
            self._safe_disconnect(device_id)
            return []

        self._check_cancelled()
        self._state = WorkflowState.DEDUPING
        dedup_started = time.monotonic()
        new_records, duplicates = self._dedup.filter(filtered)
        logger.info(
            "[%d] New: %d | Duplicate: %d (%.2fs)",
            device_id,
            len(new_records),
            duplicates,
            time.monotonic() - dedup_started,
        )

        self._state = WorkflowState.PERSISTING
        self._persist(device_id, new_records)

        self._succeed(outcome, len(new_records), duplicates)
        self._safe_disconnect(device_id)
        return new_records

    def _connect(self, device_id: int, ip: str, port: int) -> None:
        """Connect to the device.

        Raises:
            DeviceConnectionError: If the driver fails or refuses.
        """
        self._check_cancelled()
        self._state = WorkflowState.CONNECTING
        logger.info("[%d] Connecting to %s:%d", device_id, ip, port)
        try:
            connected = self._driver.connect(ip, port)
        except Exception as e:
            raise DeviceConnectionError(f"Failed to connect to {ip}:{port}: {e}") from e
        if not connected:
            raise DeviceConnectionError(f"Failed to connect to {ip}:{port}")

    def _filter_floor(self, device_id: int) -> datetime | None:
        """Work out the oldest record timestamp to process.

        Returns:
            The floor, or None to process everything.
        """
        lookback = self._clock() - timedelta(days=self._settings.sync_last_n_days)
        last_success = self._store.get_latest_success_outcome(device_id)

        if last_success is not None:
            logger.info("[%d] Last successful sync: %s", device_id, last_success.end_time)
            return lookback

        logger.info("[%d] First sync", device_id)
        return None if self._settings.sync_all_on_first_time else lookback

    def _persist(self, device_id: int, records: list[AttendanceRecord]) -> None:
        """Insert records in batches, checking for cancellation between batches."""
        if not records:
            logger.info("[%d] All records already stored", device_id)
            return

        batch_size = self._settings.bulk_batch_size
        total_batches = (len(records) + batch_size - 1) // batch_size
        started = time.monotonic()

        for index, start in enumerate(range(0, len(records), batch_size), start=1):
            self._check_cancelled()
            self._store.bulk_insert(records[start : start + batch_size], batch_size)
            if total_batches > 1:
                logger.info("[%d] Batch %d/%d stored", device_id, index, total_batches)

        elapsed = time.monotonic() - started
        rate = len(records) / elapsed if elapsed > 0 else 0.0
        logger.info(
            "[%d] Stored %d records in %.2fs (%.0f/s)", device_id, len(records), elapsed, rate
        )

    def _record_device_status(self, device_id: int, branch_id: int) -> None:
        try:
            status = self._driver.get_status_snapshot(device_id, branch_id)
            self._store.save_device_status(status)
        except Exception as e:
            logger.warning("[%d] Could not record device status: %s", device_id, e)

    def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise SyncCancelledError("sync cancelled")

    def _succeed(self, outcome: SyncOutcome, new_count: int, duplicate_count: int) -> None:
        outcome.new_count = new_count
        outcome.duplicate_count = duplicate_count
        outcome.status = SyncStatus.SUCCESS
        outcome.end_time = self._clock()
        self._state = WorkflowState.SUCCESS

    def _fail(self, outcome: SyncOutcome, message: str) -> None:
        outcome.status = SyncStatus.FAILED
        outcome.error_message = message
        outcome.end_time = self._clock()
        self._state = WorkflowState.FAILED

    def _safe_disconnect(self, device_id: int) -> None:
        try:
            if self._driver.is_connected():
                self._driver.disconnect()
        except Exception as e:
            logger.warning("[%d] Disconnect failed: %s", device_id, e)
        if self._state in (WorkflowState.SUCCESS, WorkflowState.FAILED):
            self._state = WorkflowState.DISCONNECTED

    def _safe_update_status(self, device_id: int, is_online: bool, label: str) -> None:
        try:
            self._store.update_device_connection_status(device_id, is_online, label)
        except Exception as e:
            logger.error("[%d] Could not update connection status: %s", device_id, e)

    def _save_outcome(self, outcome: SyncOutcome) -> None:
        try:
            self._store.save_outcome(outcome)
        except Exception:
            logger.exception("[%d] Failed to save sync outcome", outcome.device_id)
