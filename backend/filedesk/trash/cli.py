from __future__ import annotations

import click
from flask import current_app
from flask.cli import with_appcontext

from .scheduler import run_purge_cycle


@click.command("purge-trash")
@click.option("--days", type=click.IntRange(min=0), default=None, help="Retention window; defaults to TRASH_RETENTION_DAYS.")
@click.option("--dry-run", is_flag=True, help="Report what would be purged without deleting anything.")
@with_appcontext
def purge_trash_command(days: int | None, dry_run: bool) -> None:
    """Permanently remove trashed items older than the retention window."""
    report = run_purge_cycle(current_app._get_current_object(), days, dry_run=dry_run)
    prefix = "Would purge" if dry_run else "Purged"
    click.echo(
        f"{prefix} {len(report.folder_ids)} folders and {len(report.file_ids)} files "
        f"(cutoff {report.cutoff.isoformat() if report.cutoff else '-'})."
    )
    if not dry_run:
        click.echo(f"Freed {report.blobs_removed} of {len(report.blob_paths)} blobs.")
