# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.01
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/cli/utils.py

"""
CLI plumbing shared by the command handlers.

- ``build_context``: config + logging + repository, once per invocation
- ``run_handler``: call a handler and turn cloudsave errors into exit code 1
- ``make_connector``: remote clients with config or prompted credentials
- ``make_resolver``: conflict resolution from a flag or an interactive prompt
"""

from dataclasses import dataclass
from typing import Any, Callable

import typer
from rich.console import Console

from cloudsave.config.manager import UserConfig, load_merged_user_config
from cloudsave.core.operations import SaveService
from cloudsave.core.reconcile import Conflict, ConflictChoice, ConflictResolver
from cloudsave.core.scanner import ChangeScanner
from cloudsave.remote.client import HTTPTransferClient
from cloudsave.storage.factory import create_repository
from cloudsave.storage.protocols import Repository
from cloudsave.system.display import conflict_panel
from cloudsave.system.exceptions import CloudSaveError, ConfigError
from cloudsave.system.logging_setup import setup_logging


@dataclass
class CommandContext:
    config: UserConfig
    repository: Repository
    service: SaveService

    def scanner(self) -> ChangeScanner:
        return ChangeScanner(
            self.repository,
            backup_limit=self.config.backup_limit,
            backup_before_overwrite=self.config.backup_before_overwrite,
        )


def handle_config_error(console: Console, error_message: str) -> None:
    """Handle configuration errors with consistent formatting."""
    console.print(f"[red]✗[/red] Configuration error: {error_message}")
    raise typer.Exit(1)


def handle_operation_error(console: Console, operation: str, error: Exception) -> None:
    """Handle operation errors with consistent formatting."""
    console.print(f"[red]✗[/red] Error {operation}: {error}")
    raise typer.Exit(1)


def build_context(console: Console, debug: bool = False) -> CommandContext:
    try:
        config = load_merged_user_config()
    except ConfigError as e:
        handle_config_error(console, str(e))
    setup_logging(config, debug=debug)
    try:
        repository = create_repository(config)
    except CloudSaveError as e:
        handle_operation_error(console, "opening the datastore", e)
    return CommandContext(config=config, repository=repository, service=SaveService(repository))


def run_handler(console: Console, operation: str, handler: Callable[..., Any],
                debug: bool = False, **kwargs) -> Any:
    """Build the context and run ``handler(console, context, **kwargs)``."""
    context = build_context(console, debug=debug)
    try:
        return handler(console, context, **kwargs)
    except CloudSaveError as e:
        handle_operation_error(console, operation, e)


def make_connector(console: Console, config: UserConfig) -> Callable[[str], HTTPTransferClient]:
    """Client factory; credentials are asked once per URL when not configured."""
    known: dict[str, tuple[str, str]] = {}

    def connect(url: str) -> HTTPTransferClient:
        if url not in known:
            creds = config.credentials_for(url)
            if creds is not None:
                known[url] = (creds.username, creds.password)
            else:
                console.print(f"Credentials for [bold]{url}[/bold]")
                username = typer.prompt("Username")
                password = typer.prompt("Password", hide_input=True)
                known[url] = (username, password)
        username, password = known[url]
        return HTTPTransferClient(url, username, password, timeout=config.request_timeout)

    return connect


_ANSWERS = {
    "m": ConflictChoice.MINE, "mine": ConflictChoice.MINE,
    "t": ConflictChoice.THEIRS, "theirs": ConflictChoice.THEIRS,
    "a": ConflictChoice.ABORT, "abort": ConflictChoice.ABORT,
}


def make_resolver(console: Console, prefer: str = "ask") -> ConflictResolver:
    """Resolver answering ``prefer``, or asking on the console when it is "ask"."""
    if prefer != "ask":
        choice = ConflictChoice(prefer)
        return lambda conflict: choice

    def ask(conflict: Conflict) -> ConflictChoice:
        console.print(conflict_panel(conflict))
        while True:
            answer = typer.prompt("Keep (m)ine, take (t)heirs or (a)bort?", default="a")
            choice = _ANSWERS.get(answer.strip().lower())
            if choice is not None:
                return choice
            console.print("[yellow]Please answer m, t or a[/yellow]")

    return ask
