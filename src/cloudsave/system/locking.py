# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.07
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/system/locking.py

"""
In-process reader/writer lock for the caching repository.

Many readers may hold the lock at once; a writer holds it alone. Waiting
writers block new readers so a steady stream of reads cannot starve a write.

Usage:
    lock = ReadWriteLock("cache")
    with lock.read_locked():
        ...
    with lock.write_locked():
        ...
"""

import threading
from contextlib import contextmanager
from typing import Iterator

import loguru

logger = loguru.logger


class LockError(Exception):
    """Base exception for locking errors."""


class ReadWriteLock:
    """Writer-preferring shared/exclusive lock."""

    def __init__(self, name: str = "rwlock"):
        self.name = name
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer: int | None = None
        self._writers_waiting = 0

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def write_held(self) -> bool:
        return self._writer is not None

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer is not None or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise LockError(f"{self.name}: read lock released but not held")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                raise LockError(f"{self.name}: write lock is not reentrant")
            self._writers_waiting += 1
            try:
                while self._writer is not None or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = me
        logger.debug(f"{self.name}: write lock acquired")

    def release_write(self) -> None:
        with self._cond:
            if self._writer != threading.get_ident():
                raise LockError(f"{self.name}: write lock released by a thread that does not hold it")
            self._writer = None
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
