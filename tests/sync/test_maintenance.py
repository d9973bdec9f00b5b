"""Tests for the status purge scheduler."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from attendsync.core.types import Device, DeviceStatus
from attendsync.store.database import Database
from attendsync.sync.maintenance import StatusPurgeScheduler, purge_device_status


def add_snapshot(db: Database, device: Device, age_days: int) -> None:
    """Store a status snapshot taken ``age_days`` ago."""
    db.save_device_status(
        DeviceStatus(
            device_id=device.id,
            branch_id=device.branch_id,
            is_online=True,
            status_time=datetime.now() - timedelta(days=age_days),
        )
    )


class TestPurgeDeviceStatus:
    """Tests for purge_device_status."""

    def test_purges_old_snapshots(self, db: Database, device: Device) -> None:
        """Should delete snapshots older than the retention period."""
        add_snapshot(db, device, 45)
        add_snapshot(db, device, 2)

        assert purge_device_status(db, 30) == 1
        assert db.count_device_statuses(device.id) == 1

    def test_nothing_to_purge(self, db: Database, device: Device) -> None:
        """Recent snapshots are kept."""
        add_snapshot(db, device, 1)
        assert purge_device_status(db, 30) == 0


class TestStatusPurgeScheduler:
    """Tests for StatusPurgeScheduler."""

    def test_start_stop(self, db: Database) -> None:
        """Should start and stop the background scheduler."""
        scheduler = StatusPurgeScheduler(db, retention_days=30)

        scheduler.start()
        assert scheduler.running is True
        scheduler.start()

        scheduler.stop()
        assert scheduler.running is False

    def test_registers_daily_job(self, db: Database) -> None:
        """A single cron job is scheduled."""
        scheduler = StatusPurgeScheduler(db, hour=4, minute=15)
        scheduler.start()
        try:
            jobs = scheduler._scheduler.get_jobs()  # type: ignore[union-attr]
            assert [job.id for job in jobs] == ["status_purge"]
        finally:
            scheduler.stop()

    def test_run_now(self, db: Database, device: Device) -> None:
        """Manual trigger purges immediately."""
        add_snapshot(db, device, 60)
        scheduler = StatusPurgeScheduler(db, retention_days=30)

        assert scheduler.run_now() == 1

    def test_job_errors_are_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """A failing purge job does not raise."""
        db = MagicMock()
        db.purge_device_status.side_effect = RuntimeError("database locked")
        scheduler = StatusPurgeScheduler(db)

        with caplog.at_level(logging.ERROR, logger="attendsync.sync.maintenance"):
            scheduler._purge_job()

        assert "Error during scheduled status purge" in caplog.text
