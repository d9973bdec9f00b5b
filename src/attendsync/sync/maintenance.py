"""Scheduler for automatic maintenance tasks.

This module provides:
- Automatic daily purge of old device status snapshots at 3:00 AM
- A manual purge function for CLI usage
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

if TYPE_CHECKING:
    from attendsync.store.database import Database

logger = logging.getLogger(__name__)


def purge_device_status(db: Database, older_than_days: int = 30) -> int:
    """Delete device status snapshots older than ``older_than_days``.

    Args:
        db: Database instance.
        older_than_days: Age threshold in days.

    Returns:
        Number of snapshots deleted.
    """
    deleted = db.purge_device_status(older_than_days)
    if deleted > 0:
        logger.info("Status purge completed: %d snapshots deleted", deleted)
    else:
        logger.debug("Status purge: no snapshots older than %d days", older_than_days)
    return deleted


class StatusPurgeScheduler:
    """Runs the status snapshot purge once a day."""

    def __init__(
        self,
        db: Database,
        retention_days: int = 30,
        hour: int = 3,
        minute: int = 0,
    ) -> None:
        """Initialize the scheduler.

        Args:
            db: Database instance.
            retention_days: Number of days of status snapshots to keep.
            hour: Hour to run the purge job (0-23).
            minute: Minute to run the purge job (0-59).
        """
        self._db = db
        self._retention_days = retention_days
        self._hour = hour
        self._minute = minute
        self._scheduler: BackgroundScheduler | None = None

    @property
    def running(self) -> bool:
        """Check if the background scheduler is running."""
        return self._scheduler is not None

    def _purge_job(self) -> None:
        """Job function for scheduled status purge."""
        logger.info("Starting scheduled status purge (retention: %d days)", self._retention_days)
        try:
            purge_device_status(self._db, self._retention_days)
        except Exception:
            logger.exception("Error during scheduled status purge")

    def start(self) -> None:
        """Start the scheduler."""
        if self._scheduler is not None:
            return

        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self._purge_job,
            trigger=CronTrigger(hour=self._hour, minute=self._minute),
            id="status_purge",
            name="Daily device status purge",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "Status purge scheduler started (daily at %02d:%02d, retention: %d days)",
            self._hour,
            self._minute,
            self._retention_days,
        )

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Status purge scheduler stopped")

    def run_now(self) -> int:
        """Run the purge immediately (manual trigger).

        Returns:
            Number of snapshots deleted.
        """
        return purge_device_status(self._db, self._retention_days)
