"""Peak-hour gating for the sync scheduler.

This module provides:
- parse_time_of_day: Parse "HH:MM" strings from the configuration
- PeakHourEvaluator: Decide whether now is inside a peak window and whether
  a window that just closed should trigger a catch-up run
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from attendsync.core.config import PeakHourWindow

logger = logging.getLogger(__name__)

# How long after a window ends a catch-up run may still be forced
CATCH_UP_GRACE = timedelta(minutes=10)


def parse_time_of_day(value: str) -> time:
    """Parse an "HH:MM" string.

    Args:
        value: Time of day, e.g. "07:30".

    Returns:
        The parsed time.

    Raises:
        ValueError: If the string is not a valid HH:MM time.
    """
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.strip().isdigit() for p in parts):
        raise ValueError(f"invalid time of day: {value!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"time of day out of range: {value!r}")
    return time(hours, minutes)


def is_within(current: time, start: time, end: time) -> bool:
    """Check if ``current`` falls in [start, end], wrapping midnight if start > end."""
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


class PeakHourEvaluator:
    """Evaluates configured peak-hour windows.

    Pure with respect to its inputs: the windows are fixed at construction and
    every decision depends only on the timestamps passed in. Malformed windows
    are logged and treated as never matching.
    """

    def __init__(self, windows: Sequence[PeakHourWindow]) -> None:
        self._windows = list(windows)

    @property
    def windows(self) -> list[PeakHourWindow]:
        """Configured windows."""
        return list(self._windows)

    def is_peak_hour(self, now: datetime) -> tuple[bool, str | None]:
        """Check if ``now`` falls inside a peak window.

        Args:
            now: Current local time.

        Returns:
            Tuple of (in_window, window_name). The first matching window wins.
        """
        current = now.time()
        for window in self._windows:
            try:
                start = parse_time_of_day(window.start_time)
                end = parse_time_of_day(window.end_time)
            except ValueError as e:
                logger.error("Ignoring malformed peak hour window %r: %s", window.name, e)
                continue

            if is_within(current, start, end):
                return True, window.name

        return False, None

    def should_catch_up(
        self, last_run_time: datetime | None, now: datetime
    ) -> tuple[bool, str | None]:
        """Check if a window that just ended should force a run.

        The window end is taken as its most recent occurrence at or before
        ``now``. A catch-up is due while ``now`` is within CATCH_UP_GRACE of
        that end and no run has happened since it.

        Args:
            last_run_time: End of the last completed cycle (None if none yet).
            now: Current local time.

        Returns:
            Tuple of (catch_up, window_name). The first matching window wins.
        """
        for window in self._windows:
            if not window.run_immediately_after:
                continue
            try:
                end = parse_time_of_day(window.end_time)
            except ValueError as e:
                logger.error("Ignoring malformed peak hour window %r: %s", window.name, e)
                continue

            window_end = datetime.combine(now.date(), end, tzinfo=now.tzinfo)
            if window_end > now:
                window_end -= timedelta(days=1)

            ran_since_end = last_run_time is not None and last_run_time >= window_end
            if now <= window_end + CATCH_UP_GRACE and not ran_since_end:
                return True, window.name

        return False, None
