# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/core/reconcile.py

"""
Converge local saves with their remotes.

For one save the engine:

1. heartbeats the remote (once per URL per pass; a dead remote fails every
   save linked to it without further calls),
2. pushes everything when the remote has never seen the save,
3. otherwise syncs backup history both ways (best effort, per uuid), then
4. decides from the two hashes and versions:

   ===============  ==========================  =====================
   hashes           versions                    action
   ===============  ==========================  =====================
   equal            any                         up to date (adopt the
                                                remote version number)
   differ           local > remote              push
   differ           local < remote              pull, adopt version/date
   differ           equal                       conflict -> resolver
   ===============  ==========================  =====================

A pull lands the blob (verified against the remote hash) before the
metadata that points at it is rewritten. The engine never prompts: conflicts
go to the ``resolver`` callback, and with no resolver they are raised as
``ConflictError`` without touching anything.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, Optional

import loguru

from cloudsave.core.hashing import HashingWriter
from cloudsave.data.models import SaveRecord
from cloudsave.remote.protocols import TransferClient
from cloudsave.storage.protocols import BackupIdentifier, GameIdentifier, Identifier, Repository
from cloudsave.system.exceptions import (
    CloudSaveError, ConfigError, ConflictError, PartialFailureError, RemoteNotFoundError,
    TransferIntegrityError
)

logger = loguru.logger

# what the remote reports in the md5 field of every record
REMOTE_HASH_ALGORITHM = "md5"


def require_remote_hashing(repository: Repository) -> None:
    """Raise ConfigError unless local hashes can be compared with remote ones."""
    algorithm = repository.hasher.algorithm
    if algorithm != REMOTE_HASH_ALGORITHM:
        raise ConfigError(
            f"hash_algorithm {algorithm} cannot be compared with remote {REMOTE_HASH_ALGORITHM} "
            f"hashes; set hash_algorithm: {REMOTE_HASH_ALGORITHM} to sync with a remote"
        )


class SyncAction(str, Enum):
    UP_TO_DATE = "up-to-date"
    PUSHED = "pushed"
    PULLED = "pulled"
    CONFLICT = "conflict"
    ABORTED = "aborted"
    SKIPPED = "skipped"
    FAILED = "failed"


class ConflictChoice(str, Enum):
    MINE = "mine"
    THEIRS = "theirs"
    ABORT = "abort"


@dataclass
class Conflict:
    """Same version on both sides, different content."""
    game_id: str
    local: SaveRecord
    remote: SaveRecord

    @property
    def local_date(self) -> datetime:
        return self.local.date

    @property
    def remote_date(self) -> datetime:
        return self.remote.date


ConflictResolver = Callable[[Conflict], ConflictChoice]


def receive_blob(repository: Repository, identifier: Identifier, expected_hash: str,
                 fetch: Callable[[HashingWriter], None], verify: bool = True,
                 modified: Optional[datetime] = None) -> None:
    """Write what ``fetch`` streams into the blob for ``identifier``.

    The blob is committed only if its digest matches ``expected_hash``.
    ``modified`` is stamped on the blob, so a pulled backup keeps the
    creation time the remote reported.
    """
    with repository.write_blob(identifier, modified) as dst:
        writer = HashingWriter(dst, repository.hasher)
        fetch(writer)
        actual = writer.hexdigest()
        if verify and expected_hash and actual != expected_hash:
            raise TransferIntegrityError(
                f"{identifier.key}: received content hashes to {actual}, remote announced {expected_hash}",
                expected_hash=expected_hash, actual_hash=actual,
            )


@dataclass
class BackupSyncResult:
    pulled: list[str] = field(default_factory=list)
    pushed: list[str] = field(default_factory=list)
    failures: dict[str, Exception] = field(default_factory=dict)


@dataclass
class SyncResult:
    game_id: str
    action: SyncAction
    url: Optional[str] = None
    local_version: Optional[int] = None
    remote_version: Optional[int] = None
    backups: BackupSyncResult = field(default_factory=BackupSyncResult)
    conflict: Optional[Conflict] = None
    error: Optional[Exception] = None


@dataclass
class SyncReport:
    results: list[SyncResult] = field(default_factory=list)

    @property
    def failures(self) -> dict[str, Exception]:
        return {r.game_id: r.error for r in self.results if r.action == SyncAction.FAILED}

    def by_action(self, action: SyncAction) -> list[str]:
        return [r.game_id for r in self.results if r.action == action]

    def raise_for_failures(self) -> None:
        if self.failures:
            raise PartialFailureError(self.failures)


class ReconciliationEngine:
    """Syncs saves with their remotes through a ``TransferClient``.

    Args:
        repository: local truth; must hash with md5 like the remote
        connect: builds a client for a remote URL; heartbeats are done here
        resolver: picks a side on conflict; None raises ``ConflictError``
        verify_transfers: check pulled blobs against the remote hash before
            committing them
    """

    def __init__(self, repository: Repository, connect: Callable[[str], TransferClient],
                 resolver: Optional[ConflictResolver] = None, verify_transfers: bool = True):
        require_remote_hashing(repository)
        self.repository = repository
        self.connect = connect
        self.resolver = resolver
        self.verify_transfers = verify_transfers
        self._clients: dict[str, TransferClient] = {}
        self._dead: dict[str, Exception] = {}

    # ---- connections ----

    def client_for(self, url: str) -> TransferClient:
        """Connected client for ``url``; the heartbeat outcome is cached."""
        if url in self._dead:
            raise self._dead[url]
        if url not in self._clients:
            try:
                client = self.connect(url)
                client.ping()
            except CloudSaveError as e:
                logger.error(f"Remote {url} is unreachable: {e}")
                self._dead[url] = e
                raise
            logger.debug(f"Connected to {url}")
            self._clients[url] = client
        return self._clients[url]

    def close(self) -> None:
        for client in self._clients.values():
            close = getattr(client, "close", None)
            if close is not None:
                close()
        self._clients.clear()
        self._dead.clear()

    def __enter__(self) -> "ReconciliationEngine":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ---- pass ----

    def sync_all(self, game_ids: Optional[Iterable[str]] = None) -> SyncReport:
        report = SyncReport()
        ids = list(game_ids) if game_ids is not None else self.repository.list_games()
        for game_id in ids:
            result = self.reconcile(game_id)
            logger.info(f"{game_id}: {result.action.value}")
            report.results.append(result)
        return report

    def reconcile(self, game_id: str) -> SyncResult:
        """Sync one save with its remote; failures are returned, not raised."""
        try:
            link = self.repository.remote(game_id)
        except CloudSaveError as e:
            logger.error(f"{game_id}: cannot read remote link: {e}")
            return SyncResult(game_id, SyncAction.FAILED, error=e)
        if link is None:
            return SyncResult(game_id, SyncAction.SKIPPED)

        try:
            client = self.client_for(link.url)
        except CloudSaveError as e:
            return SyncResult(game_id, SyncAction.FAILED, url=link.url, error=e)

        try:
            result = self.sync_save(game_id, client, self.resolver)
        except ConflictError as e:
            logger.warning(f"{game_id}: {e}")
            result = SyncResult(game_id, SyncAction.CONFLICT, conflict=e.conflict,
                                local_version=e.conflict.local.version,
                                remote_version=e.conflict.remote.version)
        except (CloudSaveError, OSError) as e:
            logger.error(f"{game_id}: sync failed: {e}")
            result = SyncResult(game_id, SyncAction.FAILED, error=e)
        result.url = link.url
        return result

    def sync_save(self, game_id: str, client: TransferClient,
                  resolver: Optional[ConflictResolver] = None) -> SyncResult:
        """Sync one save over an already connected client."""
        record = self.repository.metadata(game_id)

        if not client.exists(game_id):
            if not record.hash:
                logger.debug(f"{game_id}: nothing to push yet")
                return SyncResult(game_id, SyncAction.SKIPPED, local_version=record.version)
            self._push(game_id, client, record)
            backups = self.push_backups(game_id, client, record)
            return SyncResult(game_id, SyncAction.PUSHED, local_version=record.version,
                              remote_version=record.version, backups=backups)

        remote = client.metadata(game_id)
        backups = self.sync_backups(game_id, client, record)

        if record.hash == remote.hash:
            if record.version != remote.version:
                logger.debug(f"{game_id}: same content, adopting remote version {remote.version}")
                self._adopt(game_id, remote, keep_date=True)
            return SyncResult(game_id, SyncAction.UP_TO_DATE, local_version=remote.version,
                              remote_version=remote.version, backups=backups)

        if not record.hash or record.version < remote.version:
            result = self._pull_result(game_id, client, remote)
        elif record.version > remote.version:
            self._push(game_id, client, record)
            result = SyncResult(game_id, SyncAction.PUSHED, local_version=record.version,
                                remote_version=record.version)
        else:
            conflict = Conflict(game_id=game_id, local=record, remote=remote)
            if resolver is None:
                raise ConflictError(conflict)
            result = self.resolve_conflict(conflict, resolver(conflict), client)
        result.backups = backups
        return result

    def resolve_conflict(self, conflict: Conflict, choice: ConflictChoice,
                         client: TransferClient) -> SyncResult:
        game_id = conflict.game_id
        logger.info(f"{game_id}: conflict resolved as {ConflictChoice(choice).value}")
        if choice == ConflictChoice.MINE:
            self._push(game_id, client, conflict.local)
            return SyncResult(game_id, SyncAction.PUSHED, local_version=conflict.local.version,
                              remote_version=conflict.local.version, conflict=conflict)
        if choice == ConflictChoice.THEIRS:
            result = self._pull_result(game_id, client, conflict.remote)
            result.conflict = conflict
            return result
        return SyncResult(game_id, SyncAction.ABORTED, local_version=conflict.local.version,
                          remote_version=conflict.remote.version, conflict=conflict)

    # ---- transfers ----

    def _push(self, game_id: str, client: TransferClient, record: SaveRecord) -> None:
        with self.repository.read_blob(GameIdentifier(game_id)) as blob:
            client.push_save(game_id, blob, record)
        logger.debug(f"{game_id}: pushed version {record.version}")

    def _pull_result(self, game_id: str, client: TransferClient, remote: SaveRecord) -> SyncResult:
        self._pull(game_id, client, remote)
        return SyncResult(game_id, SyncAction.PULLED, local_version=remote.version,
                          remote_version=remote.version)

    def _pull(self, game_id: str, client: TransferClient, remote: SaveRecord) -> None:
        self._receive(GameIdentifier(game_id), remote.hash,
                      lambda dst: client.pull(game_id, dst))
        self._adopt(game_id, remote)
        logger.debug(f"{game_id}: pulled version {remote.version}")

    def _receive(self, identifier: Identifier, expected_hash: str, fetch: Callable,
                 modified: Optional[datetime] = None) -> None:
        receive_blob(self.repository, identifier, expected_hash, fetch, self.verify_transfers, modified)

    def _adopt(self, game_id: str, remote: SaveRecord, keep_date: bool = False) -> None:
        record = self.repository.metadata(game_id)
        record.version = remote.version
        if not keep_date:
            record.date = remote.date
        self.repository.write_metadata(game_id, record)

    # ---- backups ----

    def push_backups(self, game_id: str, client: TransferClient, record: SaveRecord,
                     skip: Iterable[str] = ()) -> BackupSyncResult:
        """Push local backups the remote lacks or holds with other content."""
        result = BackupSyncResult()
        skipped = set(skip)
        for backup_id in self.repository.list_backups(game_id):
            if backup_id in skipped:
                continue
            identifier = BackupIdentifier(game_id, backup_id)
            try:
                local = self.repository.backup_info(identifier)
                try:
                    remote_hash = client.backup_info(game_id, backup_id).hash
                except RemoteNotFoundError:
                    remote_hash = None
                if remote_hash == local.hash:
                    continue
                with self.repository.read_blob(identifier) as blob:
                    client.push_backup(game_id, local, blob, record)
                result.pushed.append(backup_id)
            except (CloudSaveError, OSError) as e:
                logger.warning(f"{identifier.key}: failed to push backup: {e}")
                result.failures[backup_id] = e
        return result

    def pull_backups(self, game_id: str, client: TransferClient) -> BackupSyncResult:
        """Pull remote backups missing locally or held locally with other content."""
        result = BackupSyncResult()
        try:
            remote_ids = client.list_backups(game_id)
        except CloudSaveError as e:
            logger.warning(f"{game_id}: cannot list remote backups: {e}")
            result.failures["*"] = e
            return result

        local_ids = set(self.repository.list_backups(game_id))
        for backup_id in remote_ids:
            identifier = BackupIdentifier(game_id, backup_id)
            try:
                remote = client.backup_info(game_id, backup_id)
                if backup_id in local_ids and self.repository.backup_info(identifier).hash == remote.hash:
                    continue
                self._receive(identifier, remote.hash,
                              lambda dst, b=backup_id: client.pull_backup(game_id, b, dst),
                              modified=remote.created_at)
                result.pulled.append(backup_id)
            except (CloudSaveError, OSError) as e:
                logger.warning(f"{identifier.key}: failed to pull backup: {e}")
                result.failures[backup_id] = e
        return result

    def sync_backups(self, game_id: str, client: TransferClient, record: SaveRecord) -> BackupSyncResult:
        """Pull then push backup history; a uuid that failed to pull is not pushed."""
        pulled = self.pull_backups(game_id, client)
        pushed = self.push_backups(game_id, client, record, skip=pulled.failures)
        return BackupSyncResult(
            pulled=pulled.pulled,
            pushed=pushed.pushed,
            failures={**pulled.failures, **pushed.failures},
        )
