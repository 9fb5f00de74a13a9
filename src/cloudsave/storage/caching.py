# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/storage/caching.py

"""
Preload-and-cache repository.

Wraps a ``DirectRepository``. ``preload()`` reads every SaveRecord, RemoteLink
and Backup once (hashing each blob once) into a map keyed by game id. Reads
are then answered from the map under the shared side of a ``ReadWriteLock``;
every write goes to disk first and updates the map while the exclusive side
is held, so a reader never sees the map disagree with a committed disk write.

Scan markers and blob reads are not cached.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

import loguru

from cloudsave.data.models import Backup, RemoteLink, SaveRecord
from cloudsave.storage.atomic import StagedFile, to_mtime
from cloudsave.storage.protocols import BackupIdentifier, GameIdentifier, Identifier
from cloudsave.storage.repository import DirectRepository
from cloudsave.system.exceptions import NotFoundError
from cloudsave.system.locking import ReadWriteLock

logger = loguru.logger


@dataclass
class CachedSave:
    record: Optional[SaveRecord] = None
    remote: Optional[RemoteLink] = None
    backups: dict[str, Backup] = field(default_factory=dict)


class CacheRefreshingStagedFile(StagedFile):
    """StagedFile whose commit also refreshes the cached hash or Backup."""

    def __init__(self, owner: "CachingRepository", identifier: Identifier, final_path: Path,
                 mtime: Optional[float] = None):
        super().__init__(final_path, mtime)
        self.owner = owner
        self.identifier = identifier

    def commit(self) -> Path:
        with self.owner._lock.write_locked():
            path = super().commit()
            self.owner._refresh_blob(self.identifier)
        return path


class CachingRepository:
    """Repository answering reads from memory after ``preload()``."""

    def __init__(self, inner: DirectRepository):
        self.inner = inner
        self._lock = ReadWriteLock("repository-cache")
        self._saves: dict[str, CachedSave] = {}
        self.preloaded = False

    def __repr__(self) -> str:
        return f"CachingRepository({self.inner!r})"

    @property
    def root(self) -> Path:
        return self.inner.root

    @property
    def hasher(self):
        return self.inner.hasher

    def preload(self) -> None:
        """Walk the datastore once and replace the cache with what is on disk."""
        saves: dict[str, CachedSave] = {}
        with self._lock.write_locked():
            for game_id in self.inner.list_games():
                entry = CachedSave(
                    record=self.inner.metadata(game_id),
                    remote=self.inner.remote(game_id),
                )
                for backup_id in self.inner.list_backups(game_id):
                    entry.backups[backup_id] = self.inner.backup_info(
                        BackupIdentifier(game_id, backup_id)
                    )
                saves[game_id] = entry
            self._saves = saves
            self.preloaded = True
        logger.debug(f"Preloaded {len(saves)} save(s) from {self.inner.root}")

    def _entry(self, game_id: str, operation: str) -> CachedSave:
        entry = self._saves.get(game_id)
        if entry is None or entry.record is None:
            raise NotFoundError(f"No save registered as {game_id}", key=game_id, operation=operation)
        return entry

    # ---- delegated ----

    def data_path(self, identifier: Identifier) -> Path:
        return self.inner.data_path(identifier)

    def ensure(self, identifier: Identifier) -> None:
        self.inner.ensure(identifier)

    def read_blob(self, identifier: Identifier) -> BinaryIO:
        return self.inner.read_blob(identifier)

    def has_blob(self, identifier: Identifier) -> bool:
        return self.inner.has_blob(identifier)

    def last_scan_time(self, game_id: str) -> datetime:
        return self.inner.last_scan_time(game_id)

    def reset_scan(self, game_id: str, when: Optional[datetime] = None) -> None:
        self.inner.reset_scan(game_id, when)

    # ---- reads ----

    def list_games(self) -> list[str]:
        with self._lock.read_locked():
            return sorted(gid for gid, entry in self._saves.items() if entry.record is not None)

    def list_backups(self, game_id: str) -> list[str]:
        with self._lock.read_locked():
            entry = self._saves.get(game_id)
            return sorted(entry.backups) if entry else []

    def metadata(self, game_id: str) -> SaveRecord:
        with self._lock.read_locked():
            return self._entry(game_id, "metadata").record.model_copy()

    def backup_info(self, identifier: BackupIdentifier) -> Backup:
        with self._lock.read_locked():
            entry = self._saves.get(identifier.game_id)
            backup = entry.backups.get(identifier.backup_id) if entry else None
            if backup is None:
                raise NotFoundError(f"No backup {identifier.key}", key=identifier.key,
                                    operation="backup_info")
            return backup.model_copy()

    def remote(self, game_id: str) -> Optional[RemoteLink]:
        with self._lock.read_locked():
            entry = self._saves.get(game_id)
            if entry is None or entry.remote is None:
                return None
            return entry.remote.model_copy()

    # ---- writes ----

    def stage_blob(self, identifier: Identifier, modified: Optional[datetime] = None) -> StagedFile:
        self.inner.ensure(identifier)
        return CacheRefreshingStagedFile(self, identifier, self.inner.blob_path(identifier),
                                         to_mtime(modified))

    @contextmanager
    def write_blob(self, identifier: Identifier, modified: Optional[datetime] = None) -> Iterator[BinaryIO]:
        staged = self.stage_blob(identifier, modified)
        fh = staged.open()
        try:
            yield fh
        except BaseException:
            staged.discard()
            raise
        try:
            staged.commit()
        except BaseException:
            staged.discard()
            raise

    def _refresh_blob(self, identifier: Identifier) -> None:
        # caller holds the write lock
        entry = self._saves.setdefault(identifier.game_id, CachedSave())
        if isinstance(identifier, BackupIdentifier):
            entry.backups[identifier.backup_id] = self.inner.backup_info(identifier)
        elif entry.record is not None:
            entry.record.hash = self.inner.blob_hash(identifier)

    def write_metadata(self, game_id: str, record: SaveRecord) -> None:
        with self._lock.write_locked():
            self.inner.write_metadata(game_id, record)
            stored = self.inner.read_metadata_file(game_id)
            entry = self._saves.setdefault(game_id, CachedSave())
            if entry.record is not None:
                stored.hash = entry.record.hash
            else:
                stored.hash = self.inner.blob_hash(GameIdentifier(game_id))
            entry.record = stored

    def remove_backup(self, identifier: BackupIdentifier) -> None:
        with self._lock.write_locked():
            self.inner.remove_backup(identifier)
            entry = self._saves.get(identifier.game_id)
            if entry is not None:
                entry.backups.pop(identifier.backup_id, None)

    def set_remote(self, game_id: str, url: str) -> None:
        with self._lock.write_locked():
            self.inner.set_remote(game_id, url)
            self._saves.setdefault(game_id, CachedSave()).remote = RemoteLink(url=url, game_id=game_id)

    def remove(self, game_id: str) -> None:
        with self._lock.write_locked():
            self.inner.remove(game_id)
            self._saves.pop(game_id, None)
