"""Sync commands for the attendsync CLI.

Commands:
- run: Run the sync scheduler until interrupted
- sync-once: Sync every active device once
"""

from __future__ import annotations

import sys
import threading

import click

from attendsync.cli.common import (
    config_option,
    get_log_path,
    install_stop_handlers,
    load_config_or_exit,
    restore_handlers,
)
from attendsync.core.types import ConfigurationError
from attendsync.service import AttendanceService, setup_logging


@click.command()
@config_option
def run(config_path: str | None) -> None:
    """Run the sync scheduler until interrupted.

    Syncs all active devices every syncIntervalMinutes, skipping peak hours.
    Stop with Ctrl+C or SIGTERM; the current device syncs are cancelled
    between steps.
    """
    setup_logging(get_log_path())
    config = load_config_or_exit(config_path)

    click.echo(f"Branch: {config.branch.code} ({config.branch.name})")
    click.echo(f"Database: {config.db_path}")
    click.echo(f"Interval: {config.sync.sync_interval_minutes} min")

    stop_event = threading.Event()
    previous = install_stop_handlers(stop_event)
    service = AttendanceService(config)
    try:
        service.run(stop_event)
    finally:
        service.close()
        restore_handlers(previous)

    click.echo("Stopped.")


@click.command("sync-once")
@config_option
@click.option("--device-id", type=int, default=None, help="Only sync this device.")
def sync_once(config_path: str | None, device_id: int | None) -> None:
    """Sync every active device once, ignoring peak hours.

    Exits with status 1 if any device failed.
    """
    setup_logging(get_log_path())
    config = load_config_or_exit(config_path)

    stop_event = threading.Event()
    previous = install_stop_handlers(stop_event)
    service = AttendanceService(config)
    try:
        summary = service.sync_once(stop_event, device_id=device_id)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        service.close()
        restore_handlers(previous)

    click.echo(
        f"Devices: {summary.total} | Succeeded: {summary.success_count} | "
        f"Failed: {summary.failed_count} | Cancelled: {summary.cancelled_count} | "
        f"Duration: {summary.duration_seconds:.1f}s"
    )
    for result in summary.results.values():
        outcome = result.outcome
        if result.success and outcome is not None:
            click.echo(
                f"  device {result.device_id}: fetched {outcome.fetched_count}, "
                f"new {outcome.new_count}, duplicate {outcome.duplicate_count}"
            )
        elif result.cancelled:
            click.echo(f"  device {result.device_id}: cancelled")
        else:
            click.echo(f"  device {result.device_id}: failed ({result.error})")

    if summary.failed_count:
        sys.exit(1)
