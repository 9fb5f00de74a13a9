# Author: PB & Claude
# Maintainer: PB
# Original date: 2025-06-13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/remote/protocols.py

from typing import BinaryIO, Protocol

from cloudsave.data.models import Backup, SaveRecord


class TransferClient(Protocol):
    """Remote side of a sync, as seen by the reconciliation engine.

    Failures are raised as ``TransportError`` subclasses.
    """

    def ping(self) -> None:
        """Raise if the remote is unreachable or rejects the credentials"""
        ...

    def exists(self, game_id: str) -> bool:
        ...

    def metadata(self, game_id: str) -> SaveRecord:
        """Remote record including its content hash"""
        ...

    def list_backups(self, game_id: str) -> list[str]:
        ...

    def backup_info(self, game_id: str, backup_id: str) -> Backup:
        ...

    def push_save(self, game_id: str, blob: BinaryIO, record: SaveRecord) -> None:
        ...

    def push_backup(self, game_id: str, backup: Backup, blob: BinaryIO, record: SaveRecord) -> None:
        ...

    def pull(self, game_id: str, dest: BinaryIO) -> None:
        """Stream the current remote blob into ``dest``"""
        ...

    def pull_backup(self, game_id: str, backup_id: str, dest: BinaryIO) -> None:
        ...
