# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.07
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/core/operations.py

"""
Save-level operations used by the CLI.

``SaveService`` registers saves, lists them, restores blobs and backups into
the tracked directory and clones a save from a remote. Versioning itself
lives in ``ChangeScanner`` and syncing in ``ReconciliationEngine``.
"""

import uuid
from pathlib import Path
from typing import Optional

import loguru

from cloudsave.core.archive import unpack
from cloudsave.core.reconcile import (
    BackupSyncResult, ReconciliationEngine, receive_blob, require_remote_hashing
)
from cloudsave.data.models import EPOCH, Backup, RemoteLink, SaveRecord, utcnow
from cloudsave.remote.protocols import TransferClient
from cloudsave.storage.protocols import BackupIdentifier, GameIdentifier, Repository
from cloudsave.system.exceptions import CloudSaveError, NotFoundError, SyncError

logger = loguru.logger


def validate_remote_url(url: str) -> str:
    url = url.strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        raise CloudSaveError(f"Remote URL must start with http:// or https://: {url}")
    return url


class SaveService:
    """Facade over a repository for the everyday save operations."""

    def __init__(self, repository: Repository):
        self.repository = repository

    # ---- registration ----

    def add(self, name: Optional[str], path: Path, remote: Optional[str] = None) -> SaveRecord:
        """Register ``path`` at version 1; nothing is archived yet."""
        source = Path(path).expanduser().resolve()
        if not source.is_dir():
            raise NotFoundError(f"Not a directory: {source}", key=str(source), operation="add")
        url = validate_remote_url(remote) if remote else None

        record = SaveRecord(
            id=str(uuid.uuid4()),
            name=name or source.name,
            path=str(source),
            version=1,
            date=utcnow(),
        )
        self.repository.ensure(GameIdentifier(record.id))
        self.repository.write_metadata(record.id, record)
        if url:
            self.repository.set_remote(record.id, url)
        logger.info(f"Registered {record.name} ({record.id}) tracking {source}")
        return record

    def remove(self, game_id: str) -> None:
        self.repository.metadata(game_id)
        self.repository.remove(game_id)
        logger.info(f"Removed {game_id}")

    # ---- queries ----

    def get(self, game_id: str) -> SaveRecord:
        return self.repository.metadata(game_id)

    def all_saves(self) -> list[SaveRecord]:
        return [self.repository.metadata(game_id) for game_id in self.repository.list_games()]

    def backup(self, game_id: str, backup_id: str) -> Backup:
        return self.repository.backup_info(BackupIdentifier(game_id, backup_id))

    def all_backups(self, game_id: str) -> list[Backup]:
        """Backups of ``game_id``, newest first."""
        backups = [self.backup(game_id, backup_id) for backup_id in self.repository.list_backups(game_id)]
        return sorted(backups, key=lambda b: (b.created_at, b.uuid), reverse=True)

    def remotes(self) -> list[RemoteLink]:
        links = []
        for game_id in self.repository.list_games():
            link = self.repository.remote(game_id)
            if link is not None:
                link.game_id = game_id
                links.append(link)
        return links

    # ---- updates ----

    def update_metadata(self, game_id: str, record: SaveRecord) -> None:
        self.repository.ensure(GameIdentifier(game_id))
        self.repository.write_metadata(game_id, record)

    def set_version(self, game_id: str, version: int) -> SaveRecord:
        record = self.repository.metadata(game_id)
        if version < record.version:
            raise CloudSaveError(f"Version of {game_id} cannot go back from {record.version} to {version}")
        record.version = version
        self.repository.write_metadata(game_id, record)
        return record

    def set_remote(self, game_id: str, url: str) -> RemoteLink:
        self.repository.metadata(game_id)
        url = validate_remote_url(url)
        self.repository.set_remote(game_id, url)
        return RemoteLink(url=url, game_id=game_id)

    # ---- restore ----

    def _restore(self, identifier, record: SaveRecord) -> list[str]:
        target = record.source
        with self.repository.read_blob(identifier) as blob:
            return unpack(blob, target.parent, root_name=target.name)

    def apply_current(self, game_id: str) -> list[str]:
        """Extract the current blob over the tracked directory."""
        record = self.repository.metadata(game_id)
        names = self._restore(GameIdentifier(game_id), record)
        self.repository.reset_scan(game_id)
        logger.info(f"{game_id}: restored version {record.version} into {record.path}")
        return names

    def apply_backup(self, game_id: str, backup_id: str) -> list[str]:
        """Extract a backup over the tracked directory.

        The scan marker is cleared so the next scan records the restored
        state as a new version.
        """
        record = self.repository.metadata(game_id)
        names = self._restore(BackupIdentifier(game_id, backup_id), record)
        self.repository.reset_scan(game_id, EPOCH)
        logger.info(f"{game_id}: restored backup {backup_id} into {record.path}")
        return names

    # ---- clone ----

    def pull_current(self, client: TransferClient, game_id: str, path: Path,
                     verify: bool = True) -> tuple[SaveRecord, BackupSyncResult]:
        """Start tracking a save that exists only on the remote.

        The blob lands first, then the metadata (with the local ``path``),
        then the blob is extracted into ``path`` and the remote backups are
        fetched. Refused with ConfigError when local hashes are not md5.
        """
        require_remote_hashing(self.repository)
        if game_id in self.repository.list_games():
            raise SyncError(f"{game_id} is already tracked here; use sync instead")

        target = Path(path).expanduser().resolve()
        remote = client.metadata(game_id)

        identifier = GameIdentifier(game_id)
        self.repository.ensure(identifier)
        receive_blob(self.repository, identifier, remote.hash,
                     lambda dst: client.pull(game_id, dst), verify)

        record = remote.model_copy(update={"path": str(target), "hash": ""})
        self.repository.write_metadata(game_id, record)

        target.mkdir(parents=True, exist_ok=True)
        with self.repository.read_blob(identifier) as blob:
            unpack(blob, target.parent, root_name=target.name)
        self.repository.reset_scan(game_id)

        engine = ReconciliationEngine(self.repository, connect=lambda url: client,
                                      verify_transfers=verify)
        backups = engine.pull_backups(game_id, client)
        logger.info(f"{game_id}: cloned version {record.version} into {target}")
        return self.repository.metadata(game_id), backups
