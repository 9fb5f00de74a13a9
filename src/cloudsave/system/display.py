# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.05.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/system/display.py

from datetime import datetime
from typing import Optional

import humanize
from rich.panel import Panel
from rich.table import Table

from cloudsave.core.reconcile import Conflict, SyncAction, SyncReport
from cloudsave.data.models import Backup, RemoteLink, SaveRecord, ServerInfo, utcnow

ACTION_STYLES = {
    SyncAction.UP_TO_DATE: "dim",
    SyncAction.PUSHED: "green",
    SyncAction.PULLED: "cyan",
    SyncAction.CONFLICT: "yellow",
    SyncAction.ABORTED: "yellow",
    SyncAction.SKIPPED: "dim",
    SyncAction.FAILED: "red",
}


def format_when(when: datetime, now: Optional[datetime] = None) -> str:
    """Absolute local time with a humanized age, e.g. ``2025-06-13 10:04 (3 hours ago)``."""
    now = now or utcnow()
    local = when.astimezone()
    return f"{local:%Y-%m-%d %H:%M} ({humanize.naturaltime(now - when)})"


def saves_to_table(records: list[SaveRecord], remotes: Optional[dict[str, str]] = None,
                   verbose: bool = False) -> Table:
    """Convert saves to a rich Table for display."""
    table = Table(title="Saves")
    table.add_column("ID", no_wrap=True)
    table.add_column("Name")
    table.add_column("Version", justify="right")
    table.add_column("Modified")
    table.add_column("Path")
    if remotes is not None:
        table.add_column("Remote")
    if verbose:
        table.add_column("Hash")

    for record in records:
        row = [
            record.id if verbose else record.id[:8],
            record.name,
            str(record.version),
            format_when(record.date),
            record.path,
        ]
        if remotes is not None:
            row.append(remotes.get(record.id, "-"))
        if verbose:
            row.append(record.hash or "-")
        table.add_row(*row)
    return table


def backups_to_table(game_id: str, backups: list[Backup], verbose: bool = False) -> Table:
    table = Table(title=f"Backups of {game_id}")
    table.add_column("UUID", no_wrap=True)
    table.add_column("Created")
    table.add_column("Size", justify="right")
    if verbose:
        table.add_column("Hash")

    for backup in backups:
        size = backup.archive_path.stat().st_size if backup.archive_path and backup.archive_path.exists() else None
        row = [
            backup.uuid,
            format_when(backup.created_at),
            humanize.naturalsize(size) if size is not None else "-",
        ]
        if verbose:
            row.append(backup.hash)
        table.add_row(*row)
    return table


def remotes_to_table(links: list[RemoteLink], names: dict[str, str],
                     status: Optional[dict[str, str]] = None) -> Table:
    table = Table(title="Remotes")
    table.add_column("ID", no_wrap=True)
    table.add_column("Name")
    table.add_column("URL")
    if status is not None:
        table.add_column("Status")

    for link in links:
        row = [link.game_id, names.get(link.game_id, "?"), link.url]
        if status is not None:
            row.append(status.get(link.url, "-"))
        table.add_row(*row)
    return table


def sync_report_to_table(report: SyncReport, names: dict[str, str]) -> Table:
    table = Table(title="Sync")
    table.add_column("Save")
    table.add_column("Result")
    table.add_column("Version", justify="right")
    table.add_column("Backups")
    table.add_column("Detail")

    for result in report.results:
        style = ACTION_STYLES[result.action]
        backups = []
        if result.backups.pulled:
            backups.append(f"{len(result.backups.pulled)} pulled")
        if result.backups.pushed:
            backups.append(f"{len(result.backups.pushed)} pushed")
        if result.backups.failures:
            backups.append(f"[red]{len(result.backups.failures)} failed[/red]")
        detail = ""
        if result.error is not None:
            detail = str(result.error)
        elif result.action == SyncAction.SKIPPED and result.url is None:
            detail = "no remote configured"
        table.add_row(
            names.get(result.game_id, result.game_id),
            f"[{style}]{result.action.value}[/{style}]",
            str(result.local_version) if result.local_version is not None else "-",
            ", ".join(backups) or "-",
            detail,
        )
    return table


def conflict_panel(conflict: Conflict) -> Panel:
    body = (
        f"[bold]{conflict.local.name}[/bold] ({conflict.local.path})\n\n"
        f"Both sides are at version {conflict.local.version} with different content.\n"
        f"Your version:  {format_when(conflict.local_date)}\n"
        f"Their version: {format_when(conflict.remote_date)}"
    )
    return Panel(body, title="[yellow]Conflict[/yellow]", expand=False)


def server_info_to_table(url: str, info: ServerInfo) -> Table:
    table = Table(title=url, show_header=False)
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Version", info.version)
    table.add_row("API version", str(info.api_version))
    if info.go_version:
        table.add_row("Runtime", info.go_version)
    if info.os_name:
        table.add_row("OS", f"{info.os_name}/{info.os_architecture}")
    return table
