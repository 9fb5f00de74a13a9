# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/storage/atomic.py

"""
Atomic file replacement using the ``.pending-{id}`` staging pattern.

Content is written next to its final location under a temporary name and
renamed over the final name only once it is complete and flushed, so a
reader sees either the old file or the new one, never a partial write.
"""

import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Optional

import loguru

logger = loguru.logger


def pending_suffix() -> str:
    return f".pending-{uuid.uuid4().hex[:8]}"


def is_pending(path: Path) -> bool:
    return ".pending-" in path.name


def to_mtime(when: Optional[datetime]) -> Optional[float]:
    return when.timestamp() if when is not None else None


class StagedFile:
    """Temporary file that replaces ``final_path`` on commit.

    Usage:
        with StagedFile(path) as fh:
            fh.write(data)
        # committed here; discarded if the block raised
    """

    def __init__(self, final_path: Path, mtime: Optional[float] = None):
        self.final_path = Path(final_path)
        # applied to the content before the rename, when given
        self.mtime = mtime
        self.temp_path = self.final_path.with_name(self.final_path.name + pending_suffix())
        self._fh: Optional[BinaryIO] = None
        self.committed = False

    def open(self) -> BinaryIO:
        self.final_path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(self.temp_path, 'wb')
        return self._fh

    def commit(self) -> Path:
        if self._fh is None:
            raise RuntimeError(f"StagedFile for {self.final_path} was never opened")
        try:
            self._fh.flush()
            os.fsync(self._fh.fileno())
        finally:
            self._fh.close()
        if self.mtime is not None:
            os.utime(self.temp_path, (self.mtime, self.mtime))
        os.replace(self.temp_path, self.final_path)
        self.committed = True
        logger.debug(f"Committed {self.final_path}")
        return self.final_path

    def discard(self) -> None:
        if self._fh is not None and not self._fh.closed:
            self._fh.close()
        try:
            self.temp_path.unlink()
        except FileNotFoundError:
            pass
        logger.debug(f"Discarded staged write to {self.final_path}")

    def __enter__(self) -> BinaryIO:
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            try:
                self.commit()
            except BaseException:
                self.discard()
                raise
        else:
            self.discard()
        return False


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` atomically."""
    with StagedFile(path) as fh:
        fh.write(data)
