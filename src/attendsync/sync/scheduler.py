"""Periodic sync loop with peak-hour gating.

This module provides:
- SchedulerState: State of the control loop
- CycleResult: What one cycle did
- SyncScheduler: Runs a cycle every sync interval until cancelled
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from typing import TYPE_CHECKING

from attendsync.sync.retry import WaitFunc, wait_or_cancel

if TYPE_CHECKING:
    from attendsync.core.config import SyncSettings
    from attendsync.core.peak_hours import PeakHourEvaluator
    from attendsync.core.types import ConfigurationReconciler
    from attendsync.sync.orchestrator import DeviceSyncOrchestrator, OrchestratorSummary

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    """State of the scheduler loop."""

    STARTING = auto()
    IDLE = auto()
    EVALUATING_PEAK_HOUR = auto()
    SKIPPING = auto()
    SYNCING = auto()
    WAITING = auto()
    STOPPED = auto()


@dataclass
class CycleResult:
    """Result of one scheduler cycle.

    Attributes:
        cycle_number: 1-based cycle counter.
        skipped: True if the cycle fell inside a peak window.
        peak_window: Name of the window that caused the skip.
        catch_up: True if the cycle ran right after a peak window ended.
        summary: Orchestrator summary when devices were synced.
    """

    cycle_number: int
    skipped: bool = False
    peak_window: str | None = None
    catch_up: bool = False
    summary: OrchestratorSummary | None = None


class SyncScheduler:
    """Control loop that syncs all devices every interval.

    Usage:
        scheduler = SyncScheduler(reconciler, evaluator, orchestrator, settings)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        reconciler: ConfigurationReconciler,
        evaluator: PeakHourEvaluator,
        orchestrator: DeviceSyncOrchestrator,
        settings: SyncSettings,
        clock: Callable[[], datetime] = datetime.now,
        wait: WaitFunc = wait_or_cancel,
    ) -> None:
        """Initialize the scheduler.

        Args:
            reconciler: Loads the branch and its active devices.
            evaluator: Peak-hour rules.
            orchestrator: Syncs the devices of a cycle.
            settings: Interval and auto-sync settings.
            clock: Source of the current local time.
            wait: Cancellable wait between cycles (replaceable in tests).
        """
        self._reconciler = reconciler
        self._evaluator = evaluator
        self._orchestrator = orchestrator
        self._settings = settings
        self._clock = clock
        self._wait = wait

        self._state = SchedulerState.IDLE
        self._last_run_time: datetime | None = None
        self._cycle_number = 0
        self._stop_event = threading.Event()
        self._cancel_event = self._stop_event
        self._thread: threading.Thread | None = None

    @property
    def state(self) -> SchedulerState:
        """Get current scheduler state."""
        return self._state

    @property
    def last_run_time(self) -> datetime | None:
        """End time of the last cycle that synced."""
        return self._last_run_time

    @property
    def cycle_number(self) -> int:
        """Number of cycles started."""
        return self._cycle_number

    def start(self) -> None:
        """Run the loop on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Scheduler already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run,
            args=(self._stop_event,),
            name="SyncScheduler",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 30.0) -> None:
        """Stop the background loop.

        Args:
            timeout: Maximum time to wait for the thread to finish.
        """
        self._cancel_event.set()
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Scheduler thread did not stop within %.0fs", timeout)
            self._thread = None

    def run(self, cancel_event: threading.Event | None = None) -> None:
        """Run cycles until cancelled.

        Args:
            cancel_event: Stops the loop when set (defaults to the stop event).
        """
        self._cancel_event = cancel_event if cancel_event is not None else self._stop_event
        self._state = SchedulerState.STARTING

        if not self._settings.enable_auto_sync:
            logger.info("Auto sync is disabled")
            self._state = SchedulerState.STOPPED
            return

        try:
            branch, devices = self._reconciler.load_and_sync()
        except Exception:
            logger.exception("Failed to load configuration")
            self._state = SchedulerState.STOPPED
            return

        if branch is None:
            logger.error("Configuration could not be loaded, scheduler not started")
            self._state = SchedulerState.STOPPED
            return

        if not devices:
            logger.error("Branch %s has no active devices, scheduler not started", branch.code)
            self._state = SchedulerState.STOPPED
            return

        logger.info(
            "Scheduler started for branch %s (%d devices, every %d min)",
            branch.code,
            len(devices),
            self._settings.sync_interval_minutes,
        )
        if self._evaluator.windows:
            for window in self._evaluator.windows:
                logger.info(
                    "Peak hours %s: %s-%s", window.name, window.start_time, window.end_time
                )

        while not self._cancel_event.is_set():
            try:
                self.run_cycle()
            except Exception:
                logger.exception("Sync cycle %d failed", self._cycle_number)

            self._state = SchedulerState.WAITING
            if self._wait(self._cancel_event, self._settings.sync_interval_minutes * 60):
                break

        self._state = SchedulerState.STOPPED
        logger.info("Scheduler stopped after %d cycles", self._cycle_number)

    def run_cycle(self) -> CycleResult:
        """Run one cycle: skip during peak hours, otherwise sync every device."""
        self._cycle_number += 1
        cycle = self._cycle_number
        now = self._clock()

        self._state = SchedulerState.EVALUATING_PEAK_HOUR
        is_peak, window_name = self._evaluator.is_peak_hour(now)
        if is_peak:
            self._state = SchedulerState.SKIPPING
            logger.info("Cycle %d: inside peak hours (%s), sync skipped", cycle, window_name)
            self._state = SchedulerState.IDLE
            return CycleResult(cycle_number=cycle, skipped=True, peak_window=window_name)

        catch_up, ended_window = self._evaluator.should_catch_up(self._last_run_time, now)
        if catch_up:
            logger.info("Cycle %d: catch-up run after peak hours (%s)", cycle, ended_window)
        else:
            logger.info("Cycle %d: starting", cycle)

        self._state = SchedulerState.SYNCING
        branch, devices = self._reconciler.load_and_sync()
        summary = None
        if branch is None or not devices:
            logger.warning("Cycle %d: no active devices to sync", cycle)
        else:
            summary = self._orchestrator.run_all(devices, branch.id, self._cancel_event)

        self._last_run_time = self._clock()
        self._state = SchedulerState.IDLE
        return CycleResult(cycle_number=cycle, catch_up=catch_up, summary=summary)
