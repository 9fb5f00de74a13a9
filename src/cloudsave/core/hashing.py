# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.07
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/core/hashing.py

"""Content hashing for blobs."""

import hashlib
from pathlib import Path
from typing import BinaryIO, Callable

import xxhash

from cloudsave.system.exceptions import NotFoundError

CHUNK_SIZE = 64 * 1024

_ALGORITHMS: dict[str, Callable] = {
    "md5": hashlib.md5,
    "xxh3_64": xxhash.xxh3_64,
}


class ContentHasher:
    """Deterministic lowercase-hex digest of a byte stream.

    The digest depends only on the bytes: two repositories configured with
    the same algorithm agree on every blob.
    """

    def __init__(self, algorithm: str = "md5", chunk_size: int = CHUNK_SIZE):
        if algorithm not in _ALGORITHMS:
            raise ValueError(f"Unsupported hash algorithm: {algorithm}")
        self.algorithm = algorithm
        self.chunk_size = chunk_size

    def new(self):
        return _ALGORITHMS[self.algorithm]()

    def hash_stream(self, stream: BinaryIO) -> str:
        h = self.new()
        for chunk in iter(lambda: stream.read(self.chunk_size), b''):
            h.update(chunk)
        return h.hexdigest()

    def hash_bytes(self, data: bytes) -> str:
        h = self.new()
        h.update(data)
        return h.hexdigest()

    def hash_file(self, path: Path) -> str:
        try:
            with open(path, 'rb') as f:
                return self.hash_stream(f)
        except FileNotFoundError as e:
            raise NotFoundError(f"No such file: {path}", key=str(path), operation="hash") from e


class HashingWriter:
    """Write-through wrapper that digests everything written to ``target``."""

    def __init__(self, target: BinaryIO, hasher: ContentHasher):
        self._target = target
        self._hash = hasher.new()
        self.bytes_written = 0

    def write(self, data: bytes) -> int:
        self._hash.update(data)
        self.bytes_written += len(data)
        return self._target.write(data)

    def flush(self) -> None:
        self._target.flush()

    def hexdigest(self) -> str:
        return self._hash.hexdigest()
