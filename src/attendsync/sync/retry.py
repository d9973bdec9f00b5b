"""Retry logic with exponential backoff and cancellable waits.

This module provides:
- wait_or_cancel: Sleep that returns early when a cancel event is set
- exponential_delay: The 2^attempt second backoff schedule
- retry_with_backoff: Run a callable up to N times with backoff between attempts
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import TypeVar

from attendsync.core.types import SyncCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE = 2.0

WaitFunc = Callable[[threading.Event | None, float], bool]


def wait_or_cancel(cancel_event: threading.Event | None, seconds: float) -> bool:
    """Wait for ``seconds`` unless cancellation is requested first.

    Args:
        cancel_event: Event signalling cancellation (None waits the full time).
        seconds: Time to wait.

    Returns:
        True if the wait was cut short by cancellation.
    """
    if seconds <= 0:
        return cancel_event is not None and cancel_event.is_set()
    if cancel_event is None:
        time.sleep(seconds)
        return False
    return cancel_event.wait(timeout=seconds)


def exponential_delay(attempt: int) -> float:
    """Backoff before retry ``attempt`` (1-based): 2, 4, 8... seconds."""
    return DEFAULT_BACKOFF_BASE**attempt


def retry_with_backoff(
    func: Callable[[int], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    delay: Callable[[int], float] = exponential_delay,
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    cancel_event: threading.Event | None = None,
    wait: WaitFunc = wait_or_cancel,
    label: str = "operation",
) -> T:
    """Execute a function with retry and backoff.

    ``func`` receives the zero-based attempt index. Before attempt ``k > 0``
    the call waits ``delay(k)`` seconds. SyncCancelledError is never retried.

    Args:
        func: Function to execute.
        max_attempts: Total attempts (at least 1).
        delay: Seconds to wait before a given attempt index.
        retryable_exceptions: Exception types that trigger another attempt.
        cancel_event: Cancellation signal honoured between attempts.
        wait: Wait function (replaceable in tests).
        label: Name used in log messages.

    Returns:
        Result of the function.

    Raises:
        SyncCancelledError: If cancelled before or between attempts.
        The last exception if every attempt fails.
    """
    attempts = max(max_attempts, 1)

    for attempt in range(attempts):
        if attempt > 0:
            backoff = delay(attempt)
            logger.warning(
                "%s: attempt %d/%d in %.0fs", label, attempt + 1, attempts, backoff
            )
            if wait(cancel_event, backoff):
                raise SyncCancelledError(f"{label}: cancelled during backoff")
        if cancel_event is not None and cancel_event.is_set():
            raise SyncCancelledError(f"{label}: cancelled")

        try:
            return func(attempt)
        except SyncCancelledError:
            raise
        except retryable_exceptions as e:
            if attempt + 1 >= attempts:
                logger.error("%s: all %d attempts failed: %s", label, attempts, e)
                raise
            logger.warning("%s: attempt %d/%d failed: %s", label, attempt + 1, attempts, e)

    # Should not reach here, but satisfy type checker
    raise RuntimeError("Unexpected retry loop exit")
