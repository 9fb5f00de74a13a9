# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.07
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_locking.py

"""
Tests for the in-process reader/writer lock.

Threads coordinate through Events with short timeouts so a broken lock
fails the test instead of hanging it.
"""

import threading
import time

import pytest

from cloudsave.system.locking import LockError, ReadWriteLock

WAIT = 2.0


def run(target) -> threading.Thread:
    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread


class TestReaders:

    def test_readers_share(self):
        lock = ReadWriteLock("test")
        both_in = threading.Barrier(2, timeout=WAIT)

        def reader():
            with lock.read_locked():
                both_in.wait()

        threads = [run(reader), run(reader)]
        for t in threads:
            t.join(WAIT)
        assert not any(t.is_alive() for t in threads)
        assert lock.readers == 0

    def test_release_without_acquire(self):
        with pytest.raises(LockError):
            ReadWriteLock("test").release_read()


class TestWriters:

    def test_writer_waits_for_reader(self):
        lock = ReadWriteLock("test")
        acquired = threading.Event()

        lock.acquire_read()

        def writer():
            with lock.write_locked():
                acquired.set()

        thread = run(writer)
        assert not acquired.wait(0.2)
        lock.release_read()
        assert acquired.wait(WAIT)
        thread.join(WAIT)
        assert not lock.write_held

    def test_reader_waits_for_writer(self):
        lock = ReadWriteLock("test")
        acquired = threading.Event()

        lock.acquire_write()

        def reader():
            with lock.read_locked():
                acquired.set()

        thread = run(reader)
        assert not acquired.wait(0.2)
        lock.release_write()
        assert acquired.wait(WAIT)
        thread.join(WAIT)

    def test_waiting_writer_blocks_new_readers(self):
        lock = ReadWriteLock("test")
        order = []
        lock.acquire_read()

        def writer():
            with lock.write_locked():
                order.append("writer")

        def late_reader():
            with lock.read_locked():
                order.append("reader")

        w = run(writer)
        deadline = time.monotonic() + WAIT
        while not lock._writers_waiting and time.monotonic() < deadline:
            time.sleep(0.01)
        r = run(late_reader)
        time.sleep(0.1)
        assert order == []

        lock.release_read()
        w.join(WAIT)
        r.join(WAIT)
        assert order == ["writer", "reader"]

    def test_not_reentrant(self):
        lock = ReadWriteLock("test")
        with lock.write_locked():
            with pytest.raises(LockError, match="not reentrant"):
                lock.acquire_write()

    def test_release_by_other_thread(self):
        lock = ReadWriteLock("test")
        lock.acquire_write()
        errors = []

        def intruder():
            try:
                lock.release_write()
            except LockError as e:
                errors.append(e)

        run(intruder).join(WAIT)
        assert len(errors) == 1
        assert lock.write_held
        lock.release_write()

    def test_released_on_exception(self):
        lock = ReadWriteLock("test")
        with pytest.raises(RuntimeError):
            with lock.write_locked():
                raise RuntimeError("boom")
        assert not lock.write_held
        with lock.read_locked():
            assert lock.readers == 1
