"""Command-line interface for attendsync.

Commands:
- run: Run the sync scheduler until interrupted
- sync-once: Sync every active device once
- history: Show recent sync outcomes
- peak-status: Show peak-hour windows
- purge-status: Delete old device status snapshots
"""

from __future__ import annotations

import click

from attendsync.cli.maintenance import purge_status
from attendsync.cli.report import history, peak_status
from attendsync.cli.sync import run, sync_once


@click.group()
@click.version_option(package_name="attendsync")
def cli() -> None:
    """attendsync - Attendance terminal synchronization."""


# Sync commands
cli.add_command(run)
cli.add_command(sync_once)

# Reporting commands
cli.add_command(history)
cli.add_command(peak_status)

# Maintenance commands
cli.add_command(purge_status)
