"""Reporting commands for the attendsync CLI.

Commands:
- history: Show recent sync outcomes
- peak-status: Show peak-hour windows and whether syncing is paused now
"""

from __future__ import annotations

from datetime import datetime

import click

from attendsync.cli.common import config_option, load_config_or_exit
from attendsync.core.peak_hours import PeakHourEvaluator
from attendsync.store.database import Database


def _format_time(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


@click.command()
@config_option
@click.option("--device-id", type=int, default=None, help="Only show this device.")
@click.option("--limit", "-n", type=int, default=20, show_default=True, help="Rows to show.")
def history(config_path: str | None, device_id: int | None, limit: int) -> None:
    """Show recent sync outcomes, newest first."""
    config = load_config_or_exit(config_path)
    if not config.db_path.exists():
        click.echo("No sync history yet.")
        return

    db = Database(config.db_path)
    try:
        outcomes = db.list_sync_logs(device_id=device_id, limit=limit)
    finally:
        db.close()

    if not outcomes:
        click.echo("No sync history yet.")
        return

    for outcome in outcomes:
        line = (
            f"{_format_time(outcome.start_time)}  device {outcome.device_id:<4} "
            f"{outcome.status.value:<10} fetched={outcome.fetched_count} "
            f"new={outcome.new_count} duplicate={outcome.duplicate_count} "
            f"attempt={outcome.retry_attempt + 1} ({outcome.duration_seconds:.1f}s)"
        )
        if outcome.error_message:
            line += f"  {outcome.error_message}"
        click.echo(line)


@click.command("peak-status")
@config_option
def peak_status(config_path: str | None) -> None:
    """Show peak-hour windows and whether syncing is paused now."""
    config = load_config_or_exit(config_path)
    evaluator = PeakHourEvaluator(config.sync.peak_hours)

    if not evaluator.windows:
        click.echo("No peak hours configured.")
    for window in evaluator.windows:
        catch_up = " (catch-up after)" if window.run_immediately_after else ""
        click.echo(f"{window.name}: {window.start_time}-{window.end_time}{catch_up}")

    now = datetime.now()
    is_peak, name = evaluator.is_peak_hour(now)
    if is_peak:
        click.echo(f"Now ({now:%H:%M}): peak hour ({name}), sync paused")
    else:
        click.echo(f"Now ({now:%H:%M}): sync allowed")
