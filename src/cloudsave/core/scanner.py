# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.07
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/core/scanner.py

"""
Change detection and archival of tracked save directories.

A scan compares every mtime under the tracked directory with the save's scan
marker. When something is newer, the current blob is rotated into a backup,
the directory is packed into a fresh blob, the version is bumped and the
marker is moved to the moment the scan started. A file touched while the scan
runs is therefore picked up by the next scan. A failed scan leaves the
backups as they were; over-limit backups are evicted after the new version
is committed.
"""

import os
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

import loguru

from cloudsave.core.archive import pack
from cloudsave.data.models import utcnow
from cloudsave.storage.protocols import BackupIdentifier, GameIdentifier, Repository
from cloudsave.system.exceptions import CloudSaveError, NotFoundError

logger = loguru.logger

DEFAULT_BACKUP_LIMIT = 6


def is_directory_changed(path: Path, since: datetime) -> bool:
    """True if any entry under ``path`` (``path`` included) was modified after ``since``."""
    root = Path(path)
    if not root.is_dir():
        raise NotFoundError(f"Tracked directory does not exist: {root}", key=str(root),
                            operation="scan")
    threshold = since.timestamp()

    if root.stat().st_mtime > threshold:
        return True
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            try:
                mtime = os.lstat(os.path.join(dirpath, name)).st_mtime
            except FileNotFoundError:
                continue  # removed while walking
            if mtime > threshold:
                return True
    return False


@dataclass
class ScanResult:
    game_id: str
    changed: bool
    version: Optional[int] = None
    backup_id: Optional[str] = None
    evicted: list[str] = field(default_factory=list)


@dataclass
class ScanReport:
    results: list[ScanResult] = field(default_factory=list)
    failures: dict[str, Exception] = field(default_factory=dict)

    @property
    def changed(self) -> list[str]:
        return [r.game_id for r in self.results if r.changed]


class ChangeScanner:
    """Turns directory changes into new SaveRecord versions."""

    def __init__(self, repository: Repository, backup_limit: int = DEFAULT_BACKUP_LIMIT,
                 backup_before_overwrite: bool = True):
        if backup_limit < 1:
            raise ValueError("backup_limit must be at least 1")
        self.repository = repository
        self.backup_limit = backup_limit
        self.backup_before_overwrite = backup_before_overwrite

    def scan(self, game_id: str) -> ScanResult:
        started = utcnow()
        record = self.repository.metadata(game_id)
        since = self.repository.last_scan_time(game_id)

        if not is_directory_changed(record.source, since):
            logger.debug(f"{game_id}: no change since {since.isoformat()}")
            return ScanResult(game_id=game_id, changed=False, version=record.version)

        result = ScanResult(game_id=game_id, changed=True)
        if self.backup_before_overwrite:
            result.backup_id = self.rotate_backup(game_id)

        try:
            with self.repository.write_blob(GameIdentifier(game_id)) as blob:
                pack(record.source, blob)
        except BaseException:
            # the current blob is untouched, so its copy is redundant
            if result.backup_id:
                self._discard_backup(game_id, result.backup_id)
            raise

        record.version += 1
        record.date = utcnow()
        self.repository.write_metadata(game_id, record)
        self.repository.reset_scan(game_id, started)
        result.version = record.version

        # evict only once the new version is committed
        if result.backup_id:
            try:
                result.evicted = self.enforce_backup_limit(game_id)
            except (CloudSaveError, OSError) as e:
                logger.warning(f"{game_id}: backup eviction deferred to the next scan: {e}")

        logger.info(f"{game_id}: archived {record.source} as version {record.version}")
        return result

    def rotate_backup(self, game_id: str) -> Optional[str]:
        """Copy the current blob into a new backup; None when there is no blob."""
        try:
            src = self.repository.read_blob(GameIdentifier(game_id))
        except NotFoundError:
            return None

        backup_id = str(uuid.uuid4())
        with src:
            with self.repository.write_blob(BackupIdentifier(game_id, backup_id)) as dst:
                shutil.copyfileobj(src, dst)
        logger.debug(f"{game_id}: current blob rotated into backup {backup_id}")
        return backup_id

    def _discard_backup(self, game_id: str, backup_id: str) -> None:
        try:
            self.repository.remove_backup(BackupIdentifier(game_id, backup_id))
        except (CloudSaveError, OSError) as e:
            logger.error(f"{game_id}: could not remove backup {backup_id} after a failed scan: {e}")
        else:
            logger.debug(f"{game_id}: scan failed, dropped backup {backup_id}")

    def enforce_backup_limit(self, game_id: str) -> list[str]:
        """Evict the oldest backups beyond the limit; return evicted uuids."""
        backups = [
            self.repository.backup_info(BackupIdentifier(game_id, backup_id))
            for backup_id in self.repository.list_backups(game_id)
        ]
        excess = len(backups) - self.backup_limit
        if excess <= 0:
            return []

        backups.sort(key=lambda b: (b.created_at, b.uuid))
        evicted = []
        for backup in backups[:excess]:
            self.repository.remove_backup(BackupIdentifier(game_id, backup.uuid))
            evicted.append(backup.uuid)
        logger.debug(f"{game_id}: evicted {len(evicted)} backup(s) over the limit of {self.backup_limit}")
        return evicted

    def scan_all(self, game_ids: Optional[Iterable[str]] = None) -> ScanReport:
        """Scan each save; a failure is recorded and the pass continues."""
        report = ScanReport()
        ids = list(game_ids) if game_ids is not None else self.repository.list_games()
        for game_id in ids:
            try:
                report.results.append(self.scan(game_id))
            except (CloudSaveError, OSError) as e:
                logger.error(f"{game_id}: scan failed: {e}")
                report.failures[game_id] = e
        return report
