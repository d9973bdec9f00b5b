"""Sync module - Device workflow, orchestration, scheduling and maintenance."""

from attendsync.sync.maintenance import StatusPurgeScheduler, purge_device_status
from attendsync.sync.orchestrator import (
    DeviceRunResult,
    DeviceSyncOrchestrator,
    OrchestratorSummary,
)
from attendsync.sync.retry import retry_with_backoff, wait_or_cancel
from attendsync.sync.scheduler import CycleResult, SchedulerState, SyncScheduler
from attendsync.sync.workflow import DeviceSyncWorkflow, WorkflowState

__all__ = [
    # Maintenance
    "StatusPurgeScheduler",
    "purge_device_status",
    # Orchestrator
    "DeviceRunResult",
    "DeviceSyncOrchestrator",
    "OrchestratorSummary",
    # Retry
    "retry_with_backoff",
    "wait_or_cancel",
    # Scheduler
    "CycleResult",
    "SchedulerState",
    "SyncScheduler",
    # Workflow
    "DeviceSyncWorkflow",
    "WorkflowState",
]
