# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/conftest.py

"""
Shared test fixtures for the cloudsave test suite.
"""

import os
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import BinaryIO, Optional

import pytest
from loguru import logger

from cloudsave.core.hashing import ContentHasher
from cloudsave.data.models import Backup, SaveRecord
from cloudsave.storage.caching import CachingRepository
from cloudsave.storage.protocols import GameIdentifier
from cloudsave.storage.repository import DirectRepository
from cloudsave.system.exceptions import NetworkError, RemoteNotFoundError


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point every config search path at an empty directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.delenv("CLOUDSAVE_CONFIG_HOME", raising=False)
    return home


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop sinks added by setup_logging so they do not outlive the test."""
    yield
    logger.remove()


@pytest.fixture
def loguru_messages():
    """Collect loguru messages emitted during a test."""
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def datastore(tmp_path) -> Path:
    return tmp_path / "datastore"


@pytest.fixture
def direct_repo(datastore) -> DirectRepository:
    return DirectRepository(datastore, ContentHasher("md5"))


@pytest.fixture
def caching_repo(direct_repo) -> CachingRepository:
    repo = CachingRepository(direct_repo)
    repo.preload()
    return repo


@pytest.fixture(params=["direct", "caching"])
def repository(request, direct_repo):
    """Both repository flavors over the same datastore."""
    if request.param == "direct":
        return direct_repo
    repo = CachingRepository(direct_repo)
    repo.preload()
    return repo


@pytest.fixture
def save_dir(tmp_path) -> Path:
    """A small save directory with nested content."""
    root = tmp_path / "games" / "hollow"
    (root / "slots").mkdir(parents=True)
    (root / "slots" / "slot1.dat").write_bytes(b"\x00\x01level=3")
    (root / "slots" / "slot2.dat").write_bytes(b"\x00\x01level=7")
    (root / "settings.ini").write_text("[video]\nfullscreen=1\n")
    return root


def _make_past(path: Path, seconds: int = 3600) -> None:
    """Move the mtime of ``path`` and everything below it into the past."""
    when = (datetime.now(UTC) - timedelta(seconds=seconds)).timestamp()
    for dirpath, dirnames, filenames in os.walk(path):
        for name in filenames:
            os.utime(os.path.join(dirpath, name), (when, when))
    for dirpath, dirnames, filenames in os.walk(path, topdown=False):
        os.utime(dirpath, (when, when))


def _register(repo, game_id: str, path: Path, version: int = 1, name: str = "hollow",
              blob: Optional[bytes] = None, date: Optional[datetime] = None) -> SaveRecord:
    """Write a SaveRecord (and optionally a blob) straight into ``repo``."""
    record = SaveRecord(id=game_id, name=name, path=str(path), version=version,
                        date=date or datetime(2025, 6, 1, 12, 0, tzinfo=UTC))
    repo.write_metadata(game_id, record)
    if blob is not None:
        with repo.write_blob(GameIdentifier(game_id)) as fh:
            fh.write(blob)
    return record


class FakeTransferClient:
    """In-memory remote that records every call."""

    def __init__(self, hasher: Optional[ContentHasher] = None):
        self.hasher = hasher or ContentHasher("md5")
        self.saves: dict[str, tuple[SaveRecord, bytes]] = {}
        self.backups: dict[str, dict[str, tuple[Backup, bytes]]] = {}
        self.calls: list[tuple] = []
        self.ping_error: Optional[Exception] = None
        self.fail_backup_pulls: set[str] = set()
        self.fail_backup_pushes: set[str] = set()
        self.closed = False

    def put_save(self, game_id: str, blob: bytes, version: int, date: Optional[datetime] = None,
                 name: str = "hollow") -> SaveRecord:
        record = SaveRecord(id=game_id, name=name, path="/remote/path", version=version,
                            date=date or datetime(2025, 6, 2, 8, 30, tzinfo=UTC),
                            hash=self.hasher.hash_bytes(blob))
        self.saves[game_id] = (record, blob)
        return record

    def put_backup(self, game_id: str, backup_id: str, blob: bytes,
                   created_at: datetime = datetime(2025, 5, 1, tzinfo=UTC)) -> None:
        backup = Backup(uuid=backup_id, created_at=created_at,
                        hash=self.hasher.hash_bytes(blob))
        self.backups.setdefault(game_id, {})[backup_id] = (backup, blob)

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeTransferClient":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("push_save", "push_backup", "pull", "pull_backup")]

    # TransferClient

    def ping(self) -> None:
        self.calls.append(("ping",))
        if self.ping_error is not None:
            raise self.ping_error

    def exists(self, game_id: str) -> bool:
        self.calls.append(("exists", game_id))
        return game_id in self.saves

    def metadata(self, game_id: str) -> SaveRecord:
        self.calls.append(("metadata", game_id))
        if game_id not in self.saves:
            raise RemoteNotFoundError(f"no {game_id}")
        return self.saves[game_id][0].model_copy()

    def list_backups(self, game_id: str) -> list[str]:
        self.calls.append(("list_backups", game_id))
        return sorted(self.backups.get(game_id, {}))

    def backup_info(self, game_id: str, backup_id: str) -> Backup:
        self.calls.append(("backup_info", game_id, backup_id))
        try:
            return self.backups[game_id][backup_id][0].model_copy()
        except KeyError:
            raise RemoteNotFoundError(f"no backup {backup_id}")

    def push_save(self, game_id: str, blob: BinaryIO, record: SaveRecord) -> None:
        self.calls.append(("push_save", game_id))
        data = blob.read()
        stored = record.model_copy(update={"hash": self.hasher.hash_bytes(data)})
        self.saves[game_id] = (stored, data)

    def push_backup(self, game_id: str, backup: Backup, blob: BinaryIO, record: SaveRecord) -> None:
        self.calls.append(("push_backup", game_id, backup.uuid))
        if backup.uuid in self.fail_backup_pushes:
            raise NetworkError(f"push of {backup.uuid} dropped")
        data = blob.read()
        stored = backup.model_copy(update={"hash": self.hasher.hash_bytes(data)})
        self.backups.setdefault(game_id, {})[backup.uuid] = (stored, data)

    def pull(self, game_id: str, dest: BinaryIO) -> None:
        self.calls.append(("pull", game_id))
        dest.write(self.saves[game_id][1])

    def pull_backup(self, game_id: str, backup_id: str, dest: BinaryIO) -> None:
        self.calls.append(("pull_backup", game_id, backup_id))
        if backup_id in self.fail_backup_pulls:
            raise NetworkError(f"pull of {backup_id} dropped")
        dest.write(self.backups[game_id][backup_id][1])


@pytest.fixture
def fake_remote() -> FakeTransferClient:
    return FakeTransferClient()


@pytest.fixture
def blob_bytes():
    """Distinct blobs for tests that only care about hashes."""
    return {name: (name * 16).encode() for name in ("A", "B", "C", "D")}


@pytest.fixture
def make_past():
    return _make_past


@pytest.fixture
def register():
    return _register


@pytest.fixture
def remote_factory():
    return FakeTransferClient
