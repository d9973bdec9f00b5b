"""Reconcile the declared configuration with the device registry.

The configuration file declares one branch and its devices; the database
holds the registry the sync engine works from. Each cycle the declared
devices are upserted by their (ip, port) endpoint and the resulting active
device set is handed to the scheduler.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from attendsync.core.config import BranchSettings, DeviceSettings
    from attendsync.core.types import Branch, Device
    from attendsync.store.database import Database

logger = logging.getLogger(__name__)


class DatabaseReconciler:
    """Upserts the configured branch and devices into the registry."""

    def __init__(
        self,
        db: Database,
        branch: BranchSettings,
        devices: Sequence[DeviceSettings],
    ) -> None:
        """Initialize the reconciler.

        Args:
            db: Registry database.
            branch: Branch declared in the configuration.
            devices: Devices declared in the configuration.
        """
        self._db = db
        self._branch = branch
        self._devices = list(devices)

    def load_and_sync(self) -> tuple[Branch | None, list[Device]]:
        """Reconcile configuration against the registry.

        Returns:
            Tuple of (branch, active_devices), or (None, []) on failure.
        """
        try:
            branch = self._db.get_or_create_branch(
                self._branch.code, self._branch.name, self._branch.city
            )
            devices = self._sync_devices(branch.id)
        except Exception:
            logger.exception("Failed to reconcile configuration for branch %s", self._branch.code)
            return None, []

        logger.info("Branch %s (id=%d): %d active devices", branch.name, branch.id, len(devices))
        return branch, devices

    def _sync_devices(self, branch_id: int) -> list[Device]:
        """Upsert declared devices and collect the active set."""
        synced: list[Device] = []
        declared = set()

        for settings in self._devices:
            declared.add((settings.ip, settings.port))
            if not settings.is_active:
                logger.info("Skipping inactive device %s", settings.name)
                continue
            synced.append(
                self._db.upsert_device(
                    branch_id,
                    settings.name,
                    settings.ip,
                    settings.port,
                    is_active=True,
                )
            )

        # Devices registered for this branch but no longer declared stay in play
        known_ids = {d.id for d in synced}
        for device in self._db.list_active_devices(branch_id):
            if (device.ip, device.port) in declared or device.id in known_ids:
                continue
            logger.warning(
                "Device %s (%s:%d) is registered but missing from configuration",
                device.name,
                device.ip,
                device.port,
            )
            synced.append(device)

        return synced
