# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.05.10
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/cli/main.py

"""
CLI dispatcher: parses arguments and routes them to the command handlers in
``cli.commands``. Handlers get a console and a ``CommandContext``; cloudsave
errors become a red message and exit code 1.
"""

from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console

import cloudsave
from cloudsave.cli.commands import actions as action_commands
from cloudsave.cli.commands import info as info_commands
from cloudsave.cli.utils import run_handler

app = typer.Typer(
    help="""cloudsave - Versioned game saves synced to a remote

[bold green]Saves:[/bold green] add, run, list, show, remove, apply
[bold blue]Remote:[/bold blue] remote, sync, pull, version
[bold red]Validation:[/bold red] validate-config
""",
    rich_markup_mode="rich"
)
remote_app = typer.Typer(help="Manage the remote each save syncs with")
app.add_typer(remote_app, name="remote")

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"cloudsave version {cloudsave.__version__}")
        raise typer.Exit()


def _debug(ctx: typer.Context) -> bool:
    root = ctx.find_root()
    return bool(root.obj and root.obj.get("debug"))


@app.callback()
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True,
        help="Show version and exit"
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging")
) -> None:
    """cloudsave - keep game saves versioned and in sync."""
    ctx.obj = {"debug": debug}


# =============================================================================
# SAVE COMMANDS
# =============================================================================

@app.command()
def add(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Directory holding the save files"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Display name (defaults to the directory name)"),
    remote: Optional[str] = typer.Option(None, "--remote", "-r", help="Remote URL to sync with"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output")
) -> Any:
    """[bold green]Saves[/bold green]: Track a directory and archive its first version."""
    return run_handler(console, "adding save", action_commands.add, debug=_debug(ctx),
                       path=path, name=name, remote=remote, quiet=quiet)


@app.command()
def run(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Also report unchanged saves"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output")
) -> Any:
    """[bold green]Saves[/bold green]: Archive every save whose directory changed."""
    return run_handler(console, "scanning saves", action_commands.run, debug=_debug(ctx),
                       verbose=verbose, quiet=quiet)


@app.command(name="list")
def list_command(
    ctx: typer.Context,
    backups: bool = typer.Option(False, "--backups", "-b", help="Include backups"),
    remote: Optional[str] = typer.Option(None, "--remote", "-a", help="List the saves stored on this remote"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show full ids and hashes"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output")
) -> Any:
    """[bold green]Saves[/bold green]: List tracked saves."""
    return run_handler(console, "listing saves", info_commands.list_saves, debug=_debug(ctx),
                       backups=backups, remote=remote, verbose=verbose, quiet=quiet)


@app.command()
def show(
    ctx: typer.Context,
    game_id: str = typer.Argument(..., help="Save id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show backup hashes"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output")
) -> Any:
    """[bold green]Saves[/bold green]: Show one save."""
    return run_handler(console, "showing save", info_commands.show, debug=_debug(ctx),
                       game_id=game_id, verbose=verbose, quiet=quiet)


@app.command()
def remove(
    ctx: typer.Context,
    game_id: str = typer.Argument(..., help="Save id"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output")
) -> Any:
    """[bold green]Saves[/bold green]: Stop tracking a save (the directory is kept)."""
    return run_handler(console, "removing save", action_commands.remove, debug=_debug(ctx),
                       game_id=game_id, quiet=quiet)


@app.command()
def apply(
    ctx: typer.Context,
    game_id: str = typer.Argument(..., help="Save id"),
    backup_id: Optional[str] = typer.Argument(None, help="Backup uuid (defaults to the current version)"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output")
) -> Any:
    """[bold green]Saves[/bold green]: Restore the current version or a backup into the save directory."""
    return run_handler(console, "restoring save", action_commands.apply, debug=_debug(ctx),
                       game_id=game_id, backup_id=backup_id, quiet=quiet)


# =============================================================================
# REMOTE COMMANDS
# =============================================================================

@remote_app.command(name="set")
def remote_set(
    ctx: typer.Context,
    game_id: str = typer.Argument(..., help="Save id"),
    url: str = typer.Argument(..., help="Remote base URL"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output")
) -> Any:
    """Set the remote a save syncs with."""
    return run_handler(console, "setting remote", action_commands.set_remote, debug=_debug(ctx),
                       game_id=game_id, url=url, quiet=quiet)


@remote_app.command(name="list")
def remote_list(
    ctx: typer.Context,
    check: bool = typer.Option(False, "--check", help="Check that each remote answers"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output")
) -> Any:
    """List the remote of every save."""
    return run_handler(console, "listing remotes", info_commands.list_remotes, debug=_debug(ctx),
                       check=check, quiet=quiet)


@app.command()
def sync(
    ctx: typer.Context,
    prefer: str = typer.Option("ask", "--prefer", help="Conflict answer: ask, mine, theirs or abort"),
    apply_pulled: bool = typer.Option(False, "--apply", help="Restore pulled saves into their directories"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output")
) -> Any:
    """[bold blue]Remote[/bold blue]: Sync every save with its remote."""
    if prefer not in ("ask", "mine", "theirs", "abort"):
        console.print(f"[red]✗[/red] Invalid --prefer value: {prefer}")
        raise typer.Exit(2)
    return run_handler(console, "syncing", action_commands.sync, debug=_debug(ctx),
                       prefer=prefer, apply_pulled=apply_pulled, quiet=quiet)


@app.command()
def pull(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Remote base URL"),
    game_id: str = typer.Argument(..., help="Save id on the remote"),
    path: Path = typer.Argument(..., help="Directory to restore the save into"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output")
) -> Any:
    """[bold blue]Remote[/bold blue]: Clone a save from a remote and track it."""
    return run_handler(console, "pulling save", action_commands.pull, debug=_debug(ctx),
                       url=url, game_id=game_id, path=path, quiet=quiet)


@app.command(name="version")
def version_command(
    ctx: typer.Context,
    remote: Optional[str] = typer.Option(None, "--remote", "-a", help="Also show this remote's version"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output")
) -> Any:
    """[bold blue]Remote[/bold blue]: Show client (and server) versions."""
    return run_handler(console, "reading version", info_commands.version, debug=_debug(ctx),
                       remote=remote, quiet=quiet)


# =============================================================================
# VALIDATION
# =============================================================================

@app.command(name="validate-config")
def validate_config_command(
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output")
) -> None:
    """[bold red]Validation[/bold red]: Check the cloudsave.yml configuration."""
    result = info_commands.validate_config(console, quiet=quiet)
    if not result['all_passed']:
        raise typer.Exit(1)


def cli_main() -> None:
    app()


if __name__ == "__main__":
    cli_main()
