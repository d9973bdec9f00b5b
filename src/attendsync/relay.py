"""HTTP relay pushing newly stored attendance to a central server.

This module provides:
- UpstreamRelay: POSTs batches of new records, retrying on failure
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx

from attendsync.sync.retry import WaitFunc, wait_or_cancel

if TYPE_CHECKING:
    import threading

    from attendsync.core.config import RelaySettings
    from attendsync.core.types import AttendanceRecord, SyncOutcome

logger = logging.getLogger(__name__)

# Seconds added to the wait after each failed attempt
RETRY_DELAY_STEP = 5.0


class UpstreamRelay:
    """Client for the central attendance endpoint.

    Usage:
        with UpstreamRelay(config.relay) as relay:
            relay.send(records, branch_id, device_id, cancel_event=stop)
    """

    def __init__(
        self,
        settings: RelaySettings,
        client: httpx.Client | None = None,
        wait: WaitFunc = wait_or_cancel,
    ) -> None:
        """Initialize the relay.

        Args:
            settings: Target URL, endpoint, timeout, retries and API key.
            client: Preconfigured client (built from settings if None).
            wait: Cancellable wait between attempts (replaceable in tests).
        """
        self._settings = settings
        self._wait = wait
        if client is None:
            headers = {"Accept": "application/json"}
            if settings.api_key:
                headers["X-API-Key"] = settings.api_key
            client = httpx.Client(
                base_url=settings.base_url,
                timeout=settings.timeout,
                headers=headers,
            )
        self._client = client

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> UpstreamRelay:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    @staticmethod
    def build_payload(
        records: Sequence[AttendanceRecord], branch_id: int, device_id: int
    ) -> dict[str, Any]:
        """Build the JSON body for a batch of records."""
        return {
            "branchId": branch_id,
            "deviceId": device_id,
            "attendanceLogs": [record.to_payload() for record in records],
            "syncTime": datetime.now().isoformat(),
        }

    def send(
        self,
        records: Sequence[AttendanceRecord],
        branch_id: int,
        device_id: int,
        cancel_event: threading.Event | None = None,
    ) -> bool:
        """Send records to the central server.

        No request is started once ``cancel_event`` is set, and the wait
        between attempts ends as soon as it is.

        Args:
            records: Records to send.
            branch_id: Branch the records belong to.
            device_id: Device the records were read from.
            cancel_event: Set to abandon the send.

        Returns:
            True if the server accepted the batch. Errors are logged, never raised.
        """
        if not records:
            return True

        payload = self.build_payload(records, branch_id, device_id)
        attempts = max(self._settings.retry_count, 1)
        logger.info("Sending %d records from device %d upstream", len(records), device_id)

        for attempt in range(1, attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Upstream send for device %d cancelled", device_id)
                return False

            try:
                response = self._client.post(self._settings.sync_endpoint, json=payload)
                if response.is_success:
                    logger.info("Upstream accepted %d records from device %d", len(records), device_id)
                    return True
                logger.warning(
                    "Upstream rejected records (attempt %d/%d): %d %s",
                    attempt,
                    attempts,
                    response.status_code,
                    response.text[:200],
                )
            except httpx.HTTPError as e:
                logger.warning("Upstream request failed (attempt %d/%d): %s", attempt, attempts, e)

            if attempt < attempts and self._wait(cancel_event, RETRY_DELAY_STEP * attempt):
                logger.warning("Upstream send for device %d cancelled", device_id)
                return False

        logger.error("Failed to send %d records upstream after %d attempts", len(records), attempts)
        return False

    def on_sync_success(
        self,
        outcome: SyncOutcome,
        new_records: list[AttendanceRecord],
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Workflow hook: forward the records a sync just stored."""
        self.send(new_records, outcome.branch_id, outcome.device_id, cancel_event=cancel_event)
