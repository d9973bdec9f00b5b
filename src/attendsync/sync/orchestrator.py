"""Concurrent sync of every device in a branch.

This module provides:
- DeviceRunResult: Result of syncing one device (all attempts)
- OrchestratorSummary: Aggregated counts for one run_all() call
- DeviceSyncOrchestrator: Bounded-concurrency fan-out with per-device retry
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from attendsync.core.types import DeviceSyncError, SyncCancelledError
from attendsync.sync.retry import WaitFunc, retry_with_backoff, wait_or_cancel

if TYPE_CHECKING:
    from attendsync.core.config import SyncSettings
    from attendsync.core.types import Device, SyncOutcome
    from attendsync.sync.workflow import DeviceSyncWorkflow

logger = logging.getLogger(__name__)

WorkflowFactory = Callable[["threading.Event | None"], "DeviceSyncWorkflow"]

# Seconds between cancellation checks while waiting for a free slot
ACQUIRE_POLL_SECONDS = 0.5


@dataclass
class DeviceRunResult:
    """Result of syncing one device.

    Attributes:
        device_id: Device that was synced.
        success: True if an attempt succeeded.
        cancelled: True if cancellation stopped the device.
        attempts: Attempts started.
        outcome: Outcome of the last attempt, when one was produced.
        error: Last error message for failed devices.
    """

    device_id: int
    success: bool = False
    cancelled: bool = False
    attempts: int = 0
    outcome: SyncOutcome | None = None
    error: str | None = None


@dataclass
class OrchestratorSummary:
    """Counts for one orchestrated run."""

    total: int = 0
    success_count: int = 0
    failed_count: int = 0
    cancelled_count: int = 0
    duration_seconds: float = 0.0
    results: dict[int, DeviceRunResult] = field(default_factory=dict)


class DeviceSyncOrchestrator:
    """Syncs many devices concurrently.

    Every device gets its own task on a pool of at most
    ``max_concurrent_devices`` threads, admitted through a bounded semaphore.
    A failing device is retried with exponential backoff and never affects
    its siblings.

    Usage:
        orchestrator = DeviceSyncOrchestrator(make_workflow, settings)
        summary = orchestrator.run_all(devices, branch.id, cancel_event=stop)
    """

    def __init__(
        self,
        workflow_factory: WorkflowFactory,
        settings: SyncSettings,
        wait: WaitFunc = wait_or_cancel,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            workflow_factory: Builds a fresh workflow (with its own driver)
                for each attempt, given the cancel event.
            settings: Concurrency and retry settings.
            wait: Cancellable wait used for backoff (replaceable in tests).
        """
        self._workflow_factory = workflow_factory
        self._settings = settings
        self._wait = wait
        self._lock = threading.Lock()

    def run_all(
        self,
        devices: Sequence[Device],
        branch_id: int,
        cancel_event: threading.Event | None = None,
    ) -> OrchestratorSummary:
        """Sync every device and wait for all of them.

        Args:
            devices: Devices to sync.
            branch_id: Branch the devices belong to.
            cancel_event: Set to stop admitting and retrying devices.

        Returns:
            Summary of the run. Partial failure is reported, not raised.
        """
        summary = OrchestratorSummary(total=len(devices))
        if not devices:
            logger.warning("No devices to sync")
            return summary

        cancel = cancel_event if cancel_event is not None else threading.Event()
        gate = threading.BoundedSemaphore(self._settings.max_concurrent_devices)
        started = time.monotonic()

        logger.info(
            "Syncing %d devices (max %d concurrent)",
            len(devices),
            self._settings.max_concurrent_devices,
        )

        workers = min(len(devices), self._settings.max_concurrent_devices)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="device-sync") as pool:
            futures = [
                pool.submit(self._run_device, device, branch_id, gate, cancel, summary)
                for device in devices
            ]
            for future in futures:
                future.result()

        summary.duration_seconds = time.monotonic() - started
        logger.info(
            "Sync finished in %.1fs: %d succeeded, %d failed, %d cancelled (of %d)",
            summary.duration_seconds,
            summary.success_count,
            summary.failed_count,
            summary.cancelled_count,
            summary.total,
        )
        return summary

    def _run_device(
        self,
        device: Device,
        branch_id: int,
        gate: threading.BoundedSemaphore,
        cancel: threading.Event,
        summary: OrchestratorSummary,
    ) -> None:
        """Task body for one device. Never raises."""
        if not self._acquire(gate, cancel):
            self._record(summary, DeviceRunResult(device_id=device.id, cancelled=True))
            return

        try:
            result = self._sync_with_retry(device, branch_id, cancel)
        except Exception as e:
            logger.exception("Device %d: unexpected error", device.id)
            result = DeviceRunResult(device_id=device.id, error=str(e))
        finally:
            gate.release()

        self._record(summary, result)

    def _sync_with_retry(
        self, device: Device, branch_id: int, cancel: threading.Event
    ) -> DeviceRunResult:
        attempts = 0

        def attempt(index: int) -> SyncOutcome:
            nonlocal attempts
            attempts = index + 1
            workflow = self._workflow_factory(cancel)
            return workflow.run(device.id, device.ip, device.port, branch_id, retry_attempt=index)

        try:
            outcome = retry_with_backoff(
                attempt,
                max_attempts=self._settings.max_retry_attempts,
                cancel_event=cancel,
                wait=self._wait,
                label=f"Device {device.id}",
            )
        except SyncCancelledError:
            return DeviceRunResult(device_id=device.id, cancelled=True, attempts=attempts)
        except Exception as e:
            logger.error(
                "Device %d (%s:%d) failed after %d attempts: %s",
                device.id,
                device.ip,
                device.port,
                attempts,
                e,
            )
            return DeviceRunResult(
                device_id=device.id,
                attempts=attempts,
                outcome=e.outcome if isinstance(e, DeviceSyncError) else None,
                error=str(e),
            )

        return DeviceRunResult(
            device_id=device.id, success=True, attempts=attempts, outcome=outcome
        )

    def _acquire(self, gate: threading.BoundedSemaphore, cancel: threading.Event) -> bool:
        """Wait for a free slot.

        Returns:
            False if cancelled before a slot was free.
        """
        while not gate.acquire(timeout=ACQUIRE_POLL_SECONDS):
            if cancel.is_set():
                return False
        if cancel.is_set():
            gate.release()
            return False
        return True

    def _record(self, summary: OrchestratorSummary, result: DeviceRunResult) -> None:
        with self._lock:
            summary.results[result.device_id] = result
            if result.success:
                summary.success_count += 1
            elif result.cancelled:
                summary.cancelled_count += 1
            else:
                summary.failed_count += 1
