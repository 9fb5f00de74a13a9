# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.07
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/data/models.py

"""
Records shared by the repository, the scanner, the reconciliation engine and
the HTTP client.

The JSON shape matches the remote's wire format: a save is
``{id, name, path, version, date, md5}`` and a backup is
``{created_at, md5, uuid}``. The content hash is always derived from the blob,
so it is left out of the on-disk metadata file (``to_disk_json``).
"""

from __future__ import annotations

from datetime import datetime, UTC
from pathlib import Path
from typing import Optional

import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator


EPOCH = datetime.fromtimestamp(0, UTC)


def utcnow() -> datetime:
    return datetime.now(UTC)


def _aware(value: datetime) -> datetime:
    # naive timestamps in old files are taken as UTC
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class SaveRecord(BaseModel):
    """One tracked save directory and its current version."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    path: str
    version: int = 1
    date: datetime = Field(default_factory=utcnow)
    hash: str = Field(default="", alias="md5")

    @field_validator("date", mode="after")
    @classmethod
    def ensure_aware(cls, value: datetime) -> datetime:
        return _aware(value)

    @property
    def source(self) -> Path:
        return Path(self.path)

    def to_disk_json(self) -> bytes:
        data = self.model_dump(mode="json", by_alias=True, exclude={"hash"})
        return orjson.dumps(data, option=orjson.OPT_INDENT_2)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_json(cls, raw: bytes) -> "SaveRecord":
        return cls.model_validate(orjson.loads(raw))


class Backup(BaseModel):
    """An immutable, UUID-keyed snapshot of a previous blob."""
    model_config = ConfigDict(populate_by_name=True)

    uuid: str
    created_at: datetime
    hash: str = Field(default="", alias="md5")
    archive_path: Optional[Path] = Field(default=None, exclude=True)

    @field_validator("created_at", mode="after")
    @classmethod
    def ensure_aware(cls, value: datetime) -> datetime:
        return _aware(value)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class RemoteLink(BaseModel):
    """Where a save is synced to."""
    url: str
    game_id: str = Field(default="", exclude=True)

    def to_disk_json(self) -> bytes:
        return orjson.dumps(self.model_dump(mode="json"), option=orjson.OPT_INDENT_2)


class ServerInfo(BaseModel):
    """Build and runtime information reported by a remote."""
    version: str
    api_version: int
    go_version: str = ""
    os_name: str = ""
    os_architecture: str = ""
