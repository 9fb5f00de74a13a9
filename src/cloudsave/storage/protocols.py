# Author: PB & Claude
# Maintainer: PB
# Original date: 2025-06-13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/storage/protocols.py

"""
Repository contract and the identifiers it is addressed with.

A ``GameIdentifier`` names a save's current blob and metadata; a
``BackupIdentifier`` names one backup of a save. Both have a string ``key``
(``game`` and ``game:backup``) that error messages and logs carry.
"""

from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Optional, Protocol, Union

from cloudsave.core.hashing import ContentHasher
from cloudsave.data.models import Backup, RemoteLink, SaveRecord
from cloudsave.storage.atomic import StagedFile


@dataclass(frozen=True)
class GameIdentifier:
    game_id: str

    @property
    def key(self) -> str:
        return self.game_id


@dataclass(frozen=True)
class BackupIdentifier:
    game_id: str
    backup_id: str

    @property
    def key(self) -> str:
        return f"{self.game_id}:{self.backup_id}"


Identifier = Union[GameIdentifier, BackupIdentifier]


def parse_identifier(key: str) -> Identifier:
    game_id, sep, backup_id = key.partition(":")
    if not game_id or (sep and not backup_id):
        raise ValueError(f"Invalid identifier key: {key!r}")
    return BackupIdentifier(game_id, backup_id) if sep else GameIdentifier(game_id)


class Repository(Protocol):
    """Local store of SaveRecords, their blobs, backups and remote links."""

    hasher: ContentHasher

    def ensure(self, identifier: Identifier) -> None:
        """Create the storage location for ``identifier`` if missing"""
        ...

    def list_games(self) -> list[str]:
        ...

    def list_backups(self, game_id: str) -> list[str]:
        ...

    def write_blob(self, identifier: Identifier,
                   modified: Optional[datetime] = None) -> AbstractContextManager[BinaryIO]:
        """Writable stream committed atomically when the block exits cleanly.

        ``modified`` becomes the blob mtime, which is what backup
        ``created_at`` reports.
        """
        ...

    def stage_blob(self, identifier: Identifier, modified: Optional[datetime] = None) -> StagedFile:
        """Staging handle for ``identifier``; committing it is equivalent to
        leaving a ``write_blob`` block"""
        ...

    def has_blob(self, identifier: Identifier) -> bool:
        ...

    def read_blob(self, identifier: Identifier) -> BinaryIO:
        ...

    def write_metadata(self, game_id: str, record: SaveRecord) -> None:
        ...

    def metadata(self, game_id: str) -> SaveRecord:
        """Stored record with a freshly derived hash"""
        ...

    def backup_info(self, identifier: BackupIdentifier) -> Backup:
        ...

    def remove_backup(self, identifier: BackupIdentifier) -> None:
        ...

    def set_remote(self, game_id: str, url: str) -> None:
        ...

    def remote(self, game_id: str) -> Optional[RemoteLink]:
        ...

    def remove(self, game_id: str) -> None:
        ...

    def last_scan_time(self, game_id: str) -> datetime:
        ...

    def reset_scan(self, game_id: str, when: Optional[datetime] = None) -> None:
        ...

    def data_path(self, identifier: Identifier) -> Path:
        ...
