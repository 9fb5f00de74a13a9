# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/storage/repository.py

"""
Filesystem repository that recomputes derived data on every read.

Layout under the datastore root, one directory per save::

    <id>/metadata.json          SaveRecord without its hash
    <id>/data.tar.gz            current blob
    <id>/.last_run              scan marker (ISO-8601 timestamp)
    <id>/remote.json            optional RemoteLink
    <id>/hist/<uuid>/data.tar.gz

Every blob and metadata write goes through a ``StagedFile`` so the final
names never hold partial content.
"""

import shutil
from contextlib import contextmanager
from datetime import datetime, UTC
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

import loguru
import orjson
from pydantic import ValidationError

from cloudsave.core.hashing import ContentHasher
from cloudsave.data.models import EPOCH, Backup, RemoteLink, SaveRecord, utcnow
from cloudsave.storage.atomic import StagedFile, atomic_write_bytes, is_pending, to_mtime
from cloudsave.storage.protocols import BackupIdentifier, GameIdentifier, Identifier
from cloudsave.system.exceptions import (
    CorruptedError, IOFailureError, NotFoundError, RepositoryError
)

logger = loguru.logger

BLOB_NAME = "data.tar.gz"
METADATA_NAME = "metadata.json"
REMOTE_NAME = "remote.json"
SCAN_MARKER_NAME = ".last_run"
HIST_DIR = "hist"


@contextmanager
def _wrap_os_errors(identifier_key: str, operation: str) -> Iterator[None]:
    try:
        yield
    except RepositoryError:
        raise
    except OSError as e:
        raise IOFailureError(
            f"{operation} failed for {identifier_key}: {e}", key=identifier_key, operation=operation
        ) from e


class DirectRepository:
    """Repository without in-memory state; every read hits the disk."""

    def __init__(self, root: Path, hasher: Optional[ContentHasher] = None):
        self.root = Path(root)
        self.hasher = hasher or ContentHasher()
        if self.root.exists() and not self.root.is_dir():
            raise IOFailureError(f"Datastore is not a directory: {self.root}",
                                 key=str(self.root), operation="open")
        with _wrap_os_errors(str(self.root), "open"):
            self.root.mkdir(parents=True, exist_ok=True)

    def __repr__(self) -> str:
        return f"DirectRepository({str(self.root)!r})"

    # ---- paths ----

    def data_path(self, identifier: Identifier) -> Path:
        if isinstance(identifier, BackupIdentifier):
            return self.root / identifier.game_id / HIST_DIR / identifier.backup_id
        if isinstance(identifier, GameIdentifier):
            return self.root / identifier.game_id
        raise TypeError(f"Unsupported identifier type: {type(identifier).__name__}")

    def blob_path(self, identifier: Identifier) -> Path:
        return self.data_path(identifier) / BLOB_NAME

    def _game_dir(self, game_id: str) -> Path:
        return self.root / game_id

    def ensure(self, identifier: Identifier) -> None:
        path = self.data_path(identifier)
        with _wrap_os_errors(identifier.key, "ensure"):
            if not path.is_dir():
                logger.debug(f"Creating directory {path} for {identifier.key}")
                path.mkdir(parents=True, exist_ok=True)

    # ---- listing ----

    def list_games(self) -> list[str]:
        with _wrap_os_errors(str(self.root), "list_games"):
            return sorted(
                entry.name for entry in self.root.iterdir()
                if entry.is_dir() and (entry / METADATA_NAME).is_file()
            )

    def list_backups(self, game_id: str) -> list[str]:
        hist = self._game_dir(game_id) / HIST_DIR
        with _wrap_os_errors(game_id, "list_backups"):
            if not hist.is_dir():
                return []
            return sorted(
                entry.name for entry in hist.iterdir()
                if entry.is_dir() and (entry / BLOB_NAME).is_file()
            )

    # ---- blobs ----

    def stage_blob(self, identifier: Identifier, modified: Optional[datetime] = None) -> StagedFile:
        self.ensure(identifier)
        return StagedFile(self.blob_path(identifier), to_mtime(modified))

    @contextmanager
    def write_blob(self, identifier: Identifier, modified: Optional[datetime] = None) -> Iterator[BinaryIO]:
        staged = self.stage_blob(identifier, modified)
        with _wrap_os_errors(identifier.key, "write_blob"):
            fh = staged.open()
        try:
            yield fh
        except BaseException:
            staged.discard()
            raise
        with _wrap_os_errors(identifier.key, "write_blob"):
            try:
                staged.commit()
            except BaseException:
                staged.discard()
                raise
        logger.debug(f"Blob written for {identifier.key}")

    def has_blob(self, identifier: Identifier) -> bool:
        return self.blob_path(identifier).is_file()

    def read_blob(self, identifier: Identifier) -> BinaryIO:
        path = self.blob_path(identifier)
        try:
            return open(path, 'rb')
        except FileNotFoundError as e:
            raise NotFoundError(f"No blob for {identifier.key}", key=identifier.key,
                                operation="read_blob") from e
        except OSError as e:
            raise IOFailureError(f"read_blob failed for {identifier.key}: {e}",
                                 key=identifier.key, operation="read_blob") from e

    def blob_hash(self, identifier: Identifier) -> str:
        """Hash of the blob, or "" when there is none."""
        path = self.blob_path(identifier)
        with _wrap_os_errors(identifier.key, "hash"):
            if not path.is_file():
                return ""
            return self.hasher.hash_file(path)

    # ---- metadata ----

    def write_metadata(self, game_id: str, record: SaveRecord) -> None:
        logger.debug(f"Writing metadata for {game_id}: version {record.version}")
        with _wrap_os_errors(game_id, "write_metadata"):
            self._game_dir(game_id).mkdir(parents=True, exist_ok=True)
            atomic_write_bytes(self._game_dir(game_id) / METADATA_NAME, record.to_disk_json())

    def read_metadata_file(self, game_id: str) -> SaveRecord:
        """Stored record as written, with an empty hash."""
        path = self._game_dir(game_id) / METADATA_NAME
        try:
            raw = path.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError(f"No save registered as {game_id}", key=game_id,
                                operation="metadata") from e
        except OSError as e:
            raise IOFailureError(f"metadata failed for {game_id}: {e}", key=game_id,
                                 operation="metadata") from e
        try:
            record = SaveRecord.from_json(raw)
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise CorruptedError(f"Failed to parse {game_id}/{METADATA_NAME}: {e}", key=game_id,
                                 operation="metadata") from e
        return record.model_copy(update={"hash": ""})

    def metadata(self, game_id: str) -> SaveRecord:
        record = self.read_metadata_file(game_id)
        record.hash = self.blob_hash(GameIdentifier(game_id))
        return record

    # ---- backups ----

    def backup_info(self, identifier: BackupIdentifier) -> Backup:
        path = self.blob_path(identifier)
        try:
            stat = path.stat()
        except FileNotFoundError as e:
            raise NotFoundError(f"No backup {identifier.key}", key=identifier.key,
                                operation="backup_info") from e
        except OSError as e:
            raise IOFailureError(f"backup_info failed for {identifier.key}: {e}",
                                 key=identifier.key, operation="backup_info") from e
        with _wrap_os_errors(identifier.key, "backup_info"):
            digest = self.hasher.hash_file(path)
        return Backup(
            uuid=identifier.backup_id,
            created_at=datetime.fromtimestamp(stat.st_mtime, UTC),
            hash=digest,
            archive_path=path,
        )

    def remove_backup(self, identifier: BackupIdentifier) -> None:
        path = self.data_path(identifier)
        logger.debug(f"Removing backup {identifier.key}")
        with _wrap_os_errors(identifier.key, "remove_backup"):
            if not path.exists():
                raise NotFoundError(f"No backup {identifier.key}", key=identifier.key,
                                    operation="remove_backup")
            shutil.rmtree(path)

    # ---- remote link ----

    def set_remote(self, game_id: str, url: str) -> None:
        game_dir = self._game_dir(game_id)
        if not game_dir.is_dir():
            raise NotFoundError(f"No save registered as {game_id}", key=game_id,
                                operation="set_remote")
        with _wrap_os_errors(game_id, "set_remote"):
            atomic_write_bytes(game_dir / REMOTE_NAME, RemoteLink(url=url).to_disk_json())

    def remote(self, game_id: str) -> Optional[RemoteLink]:
        path = self._game_dir(game_id) / REMOTE_NAME
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise IOFailureError(f"remote failed for {game_id}: {e}", key=game_id,
                                 operation="remote") from e
        try:
            link = RemoteLink.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise CorruptedError(f"Failed to parse {game_id}/{REMOTE_NAME}: {e}", key=game_id,
                                 operation="remote") from e
        link.game_id = game_id
        return link

    # ---- lifecycle ----

    def remove(self, game_id: str) -> None:
        path = self._game_dir(game_id)
        logger.debug(f"Removing {path}")
        with _wrap_os_errors(game_id, "remove"):
            if path.exists():
                shutil.rmtree(path)

    def last_scan_time(self, game_id: str) -> datetime:
        path = self._game_dir(game_id) / SCAN_MARKER_NAME
        try:
            text = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return EPOCH
        except OSError as e:
            raise IOFailureError(f"last_scan_time failed for {game_id}: {e}", key=game_id,
                                 operation="last_scan_time") from e
        try:
            when = datetime.fromisoformat(text)
        except ValueError as e:
            raise CorruptedError(f"Unparsable scan marker for {game_id}: {text!r}", key=game_id,
                                 operation="last_scan_time") from e
        return when if when.tzinfo else when.replace(tzinfo=UTC)

    def reset_scan(self, game_id: str, when: Optional[datetime] = None) -> None:
        when = when or utcnow()
        logger.debug(f"Resetting scan marker for {game_id} to {when.isoformat()}")
        with _wrap_os_errors(game_id, "reset_scan"):
            atomic_write_bytes(self._game_dir(game_id) / SCAN_MARKER_NAME,
                               when.isoformat().encode("utf-8"))

    def stale_pending_files(self) -> list[Path]:
        """Leftover staging files from interrupted writes."""
        return sorted(p for p in self.root.rglob("*.pending-*") if is_pending(p))
