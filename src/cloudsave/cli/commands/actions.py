# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.07
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/cli/commands/actions.py

"""
Action command handlers - state-changing commands.

Handles: add, run, remove, apply, remote set, sync, pull
"""

from pathlib import Path
from typing import Any, Optional

from rich.console import Console

from cloudsave.cli.utils import CommandContext, make_connector, make_resolver
from cloudsave.core.reconcile import ReconciliationEngine, SyncAction, require_remote_hashing
from cloudsave.system.display import sync_report_to_table
from cloudsave.system.exceptions import CloudSaveError


def add(
    console: Console,
    context: CommandContext,
    path: Path,
    name: Optional[str] = None,
    remote: Optional[str] = None,
    scan: bool = True,
    quiet: bool = False
) -> dict[str, Any]:
    """Register a directory and archive its first version.

    Args:
        console: Rich console for output
        context: Loaded config and repository
        path: Directory to track
        name: Display name (defaults to the directory name)
        remote: Remote URL to sync with
        scan: Archive the directory right away
        quiet: Minimize output

    Returns:
        Registered save for JSON output
    """
    record = context.service.add(name, path, remote)
    if scan:
        context.scanner().scan(record.id)
        record = context.service.get(record.id)

    if not quiet:
        console.print(f"[green]✓[/green] Added {record.name} as {record.id}")
    return {'save': record.to_wire(), 'remote': remote}


def run(
    console: Console,
    context: CommandContext,
    verbose: bool = False,
    quiet: bool = False
) -> dict[str, Any]:
    """Scan every save and archive the ones that changed."""
    report = context.scanner().scan_all()

    if not quiet:
        for result in report.results:
            if result.changed:
                console.print(f"[green]✓[/green] {result.game_id}: version {result.version}")
            elif verbose:
                console.print(f"[dim]  {result.game_id}: unchanged[/dim]")
        for game_id, error in report.failures.items():
            console.print(f"[red]✗[/red] {game_id}: {error}")
        console.print(f"{len(report.changed)} of {len(report.results) + len(report.failures)} save(s) archived")

    return {
        'changed': report.changed,
        'failures': {gid: str(e) for gid, e in report.failures.items()},
    }


def remove(
    console: Console,
    context: CommandContext,
    game_id: str,
    quiet: bool = False
) -> dict[str, Any]:
    """Stop tracking a save; its blob and backups are deleted, the directory is not."""
    context.service.remove(game_id)
    if not quiet:
        console.print(f"[green]✓[/green] Removed {game_id}")
    return {'removed': game_id}


def apply(
    console: Console,
    context: CommandContext,
    game_id: str,
    backup_id: Optional[str] = None,
    quiet: bool = False
) -> dict[str, Any]:
    """Restore the current blob, or a backup, into the tracked directory."""
    if backup_id:
        names = context.service.apply_backup(game_id, backup_id)
    else:
        names = context.service.apply_current(game_id)
    if not quiet:
        source = f"backup {backup_id}" if backup_id else "current version"
        console.print(f"[green]✓[/green] Restored {source} of {game_id} ({len(names)} entries)")
    return {'game_id': game_id, 'backup_id': backup_id, 'entries': names}


def set_remote(
    console: Console,
    context: CommandContext,
    game_id: str,
    url: str,
    quiet: bool = False
) -> dict[str, Any]:
    link = context.service.set_remote(game_id, url)
    if not quiet:
        console.print(f"[green]✓[/green] {game_id} now syncs with {link.url}")
    return {'game_id': game_id, 'url': link.url}


def sync(
    console: Console,
    context: CommandContext,
    prefer: str = "ask",
    apply_pulled: bool = False,
    quiet: bool = False
) -> dict[str, Any]:
    """Sync every save that has a remote.

    Args:
        console: Rich console for output
        context: Loaded config and repository
        prefer: Conflict answer (mine, theirs, abort) or "ask" to prompt
        apply_pulled: Restore pulled saves into their directories
        quiet: Minimize output

    Returns:
        Per-save sync results for JSON output
    """
    engine = ReconciliationEngine(
        context.repository,
        connect=make_connector(console, context.config),
        resolver=make_resolver(console, prefer),
    )
    with engine:
        report = engine.sync_all()

    applied = []
    if apply_pulled:
        for game_id in report.by_action(SyncAction.PULLED):
            try:
                context.service.apply_current(game_id)
                applied.append(game_id)
            except CloudSaveError as e:
                console.print(f"[red]✗[/red] {game_id}: cannot restore pulled save: {e}")

    if not quiet:
        names = {record.id: record.name for record in context.service.all_saves()}
        console.print(sync_report_to_table(report, names))

    report.raise_for_failures()
    return {
        'results': {r.game_id: r.action.value for r in report.results},
        'applied': applied,
    }


def pull(
    console: Console,
    context: CommandContext,
    url: str,
    game_id: str,
    path: Path,
    quiet: bool = False
) -> dict[str, Any]:
    """Clone a save from a remote into ``path`` and start tracking it."""
    require_remote_hashing(context.repository)
    client = make_connector(console, context.config)(url)
    with client:
        client.ping()
        record, backups = context.service.pull_current(client, game_id, path)
    context.service.set_remote(game_id, url)

    if not quiet:
        console.print(f"[green]✓[/green] Pulled {record.name} version {record.version} into {record.path}")
        if backups.failures:
            console.print(f"[yellow]{len(backups.failures)} backup(s) could not be fetched[/yellow]")
    return {
        'save': record.to_wire(),
        'backups_pulled': backups.pulled,
        'backup_failures': {k: str(v) for k, v in backups.failures.items()},
    }
