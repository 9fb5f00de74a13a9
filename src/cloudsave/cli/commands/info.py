# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.07
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/cli/commands/info.py

"""
Information command handlers - read-only commands.

Handles: list, show, remote list, version, validate-config
"""

from typing import Any, Optional

from rich.console import Console

import cloudsave
from cloudsave.cli.utils import CommandContext, make_connector
from cloudsave.config.manager import validate_config as collect_config_errors
from cloudsave.remote.client import HTTPTransferClient
from cloudsave.system.display import (
    backups_to_table, remotes_to_table, saves_to_table, server_info_to_table
)
from cloudsave.system.exceptions import CloudSaveError


def _connect_checked(console: Console, context: CommandContext, url: str) -> HTTPTransferClient:
    client = make_connector(console, context.config)(url)
    try:
        client.ping()
    except CloudSaveError:
        client.close()
        raise
    return client


def list_saves(
    console: Console,
    context: CommandContext,
    backups: bool = False,
    remote: Optional[str] = None,
    verbose: bool = False,
    quiet: bool = False
) -> dict[str, Any]:
    """List saves tracked locally, or those stored on ``remote``.

    Args:
        console: Rich console for output
        context: Loaded config and repository
        backups: Also list the backups of every save
        remote: URL of a remote to list instead of the local datastore
        verbose: Show full ids and hashes
        quiet: Minimize output

    Returns:
        Listed saves (and backups) for JSON output
    """
    backup_map: dict[str, list] = {}
    if remote:
        with _connect_checked(console, context, remote) as client:
            records = client.all()
            if backups:
                for record in records:
                    backup_map[record.id] = [
                        client.backup_info(record.id, uuid) for uuid in client.list_backups(record.id)
                    ]
        remotes = None
    else:
        records = context.service.all_saves()
        if backups:
            for record in records:
                backup_map[record.id] = context.service.all_backups(record.id)
        remotes = {link.game_id: link.url for link in context.service.remotes()}

    if not quiet:
        if records:
            console.print(saves_to_table(records, remotes=remotes, verbose=verbose))
        else:
            console.print("[dim]No saves registered[/dim]")
        for game_id, items in backup_map.items():
            if items:
                console.print(backups_to_table(game_id, items, verbose=verbose))

    return {
        'source': remote or 'local',
        'saves': [r.to_wire() for r in records],
        'backups': {gid: [b.to_wire() for b in items] for gid, items in backup_map.items()},
    }


def show(
    console: Console,
    context: CommandContext,
    game_id: str,
    verbose: bool = False,
    quiet: bool = False
) -> dict[str, Any]:
    """Show one save with its remote and backups."""
    record = context.service.get(game_id)
    link = context.repository.remote(game_id)
    backups = context.service.all_backups(game_id)

    if not quiet:
        console.print(f"[bold]{record.name}[/bold] ({record.id})")
        console.print(f"  Path:    {record.path}")
        console.print(f"  Version: {record.version}")
        console.print(f"  Date:    {record.date.astimezone():%Y-%m-%d %H:%M:%S}")
        console.print(f"  Hash:    {record.hash or '-'}")
        console.print(f"  Remote:  {link.url if link else '-'}")
        if backups:
            console.print(backups_to_table(game_id, backups, verbose=verbose))

    return {
        'save': record.to_wire(),
        'remote': link.url if link else None,
        'backups': [b.to_wire() for b in backups],
    }


def list_remotes(
    console: Console,
    context: CommandContext,
    check: bool = False,
    quiet: bool = False
) -> dict[str, Any]:
    """List remote links; with ``check`` heartbeat each distinct URL."""
    links = context.service.remotes()
    names = {record.id: record.name for record in context.service.all_saves()}

    status = None
    if check:
        status = {}
        for url in sorted({link.url for link in links}):
            try:
                _connect_checked(console, context, url).close()
                status[url] = "[green]ok[/green]"
            except CloudSaveError as e:
                status[url] = f"[red]{e}[/red]"

    if not quiet:
        if links:
            console.print(remotes_to_table(links, names, status))
        else:
            console.print("[dim]No remote configured[/dim]")

    return {
        'remotes': [{'game_id': link.game_id, 'url': link.url} for link in links],
        'status': status,
    }


def version(
    console: Console,
    context: CommandContext,
    remote: Optional[str] = None,
    quiet: bool = False
) -> dict[str, Any]:
    """Print the client version, and the server's when ``remote`` is given."""
    result: dict[str, Any] = {
        'version': cloudsave.__version__,
        'api_version': cloudsave.API_VERSION,
    }
    if not quiet:
        console.print(f"cloudsave version {cloudsave.__version__} (API v{cloudsave.API_VERSION})")

    if remote:
        with _connect_checked(console, context, remote) as client:
            info = client.version()
        result['server'] = info.model_dump()
        if not quiet:
            console.print(server_info_to_table(remote, info))
    return result


def validate_config(console: Console, quiet: bool = False) -> dict[str, Any]:
    """Validate the merged user configuration."""
    errors = collect_config_errors()
    if not quiet:
        if errors:
            for error in errors:
                console.print(f"[red]✗[/red] {error}")
        else:
            console.print("[green]✓[/green] Configuration is valid")
    return {'errors': errors, 'all_passed': not errors}
