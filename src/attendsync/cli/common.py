"""Helpers shared by the CLI commands."""

from __future__ import annotations

import os
import signal
import sys
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

import click

from attendsync.core.config import load_config
from attendsync.core.types import ConfigurationError

if TYPE_CHECKING:
    import threading

    from attendsync.core.config import AppConfig

F = TypeVar("F", bound=Callable[..., Any])

LOG_PATH_ENV_VAR = "ATTENDSYNC_LOG_PATH"


def config_option(func: F) -> F:
    """Add the --config option to a command."""
    return click.option(
        "--config",
        "-c",
        "config_path",
        type=click.Path(dir_okay=False),
        default=None,
        help="Path to config file (default: ATTENDSYNC_CONFIG or ./attendsync.json).",
    )(func)


def get_log_path() -> str | None:
    """Get the log file path from ATTENDSYNC_LOG_PATH, if set."""
    return os.environ.get(LOG_PATH_ENV_VAR) or None


def load_config_or_exit(config_path: str | None) -> AppConfig:
    """Load the configuration, exiting with status 1 on error."""
    try:
        return load_config(config_path)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def install_stop_handlers(stop_event: threading.Event) -> dict[int, Any]:
    """Set ``stop_event`` on SIGINT/SIGTERM.

    Returns:
        Previous handlers, for restore_handlers().
    """

    def handler(signum: int, frame: object) -> None:
        click.echo("\nStopping...", err=True)
        stop_event.set()

    previous: dict[int, Any] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, handler)
    return previous


def restore_handlers(previous: dict[int, Any]) -> None:
    """Restore handlers saved by install_stop_handlers()."""
    for signum, handler in previous.items():
        signal.signal(signum, handler)
