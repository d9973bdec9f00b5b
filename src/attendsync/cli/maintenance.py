"""Maintenance commands for the attendsync CLI.

Commands:
- purge-status: Delete old device status snapshots
"""

from __future__ import annotations

import click

from attendsync.cli.common import config_option, load_config_or_exit
from attendsync.store.database import Database
from attendsync.sync.maintenance import purge_device_status


@click.command("purge-status")
@config_option
@click.option(
    "--older-than-days",
    "-d",
    type=int,
    default=None,
    help="Delete snapshots older than N days (default: statusRetentionDays).",
)
def purge_status(config_path: str | None, older_than_days: int | None) -> None:
    """Delete old device status snapshots.

    Can be run manually or from cron instead of the built-in daily job.
    """
    config = load_config_or_exit(config_path)
    days = older_than_days if older_than_days is not None else config.sync.status_retention_days

    click.echo(f"Database: {config.db_path}")
    click.echo(f"Purging status snapshots older than {days} days...")

    db = Database(config.db_path)
    try:
        deleted = purge_device_status(db, days)
    finally:
        db.close()

    if deleted > 0:
        click.echo(f"Purged {deleted} snapshots.")
    else:
        click.echo("No snapshots to purge.")
