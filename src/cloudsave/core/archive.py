# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.07
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/core/archive.py

"""
Pack a save directory into a gzip-compressed tar stream and back.

Entry names are relative to the parent of the packed directory, so an archive
of ``/games/foo/saves`` holds ``saves``, ``saves/slot1.dat`` and so on.
Extraction goes through tarfile's ``data`` filter: absolute names, ``..``
components and links pointing outside the destination are refused.
"""

import gzip
import os
import shutil
import tarfile
import tempfile
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional

import loguru

from cloudsave.system.exceptions import ArchiveError

logger = loguru.logger

SPOOL_MAX_SIZE = 16 * 1024 * 1024


def pack(root_dir: Path, dest: BinaryIO) -> int:
    """Write a tar.gz of ``root_dir`` into ``dest``; return the entry count."""
    root = Path(root_dir)
    if not root.is_dir():
        raise FileNotFoundError(f"Not a directory: {root}")

    base = root.parent
    count = 0
    # mtime=0 keeps the gzip header stable so identical trees give identical bytes
    with gzip.GzipFile(fileobj=dest, mode="wb", mtime=0) as gz:
        with tarfile.open(fileobj=gz, mode="w", format=tarfile.PAX_FORMAT) as tar:
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames.sort()
                current = Path(dirpath)
                tar.add(current, arcname=current.relative_to(base).as_posix(), recursive=False)
                count += 1
                for name in sorted(filenames):
                    path = current / name
                    tar.add(path, arcname=path.relative_to(base).as_posix(), recursive=False)
                    count += 1
                # os.walk lists symlinked directories without descending into them
                for name in dirnames:
                    path = current / name
                    if path.is_symlink():
                        tar.add(path, arcname=path.relative_to(base).as_posix(), recursive=False)
                        count += 1
    logger.debug(f"Packed {count} entries from {root}")
    return count


def _rename_root(name: str, root_name: str) -> str:
    parts = PurePosixPath(name).parts
    if not parts:
        return name
    return PurePosixPath(root_name, *parts[1:]).as_posix()


def _seekable(source: BinaryIO) -> BinaryIO:
    if source.seekable():
        return source
    spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE)
    shutil.copyfileobj(source, spool)
    spool.seek(0)
    return spool


def unpack(source: Optional[BinaryIO], dest_dir: Path, root_name: Optional[str] = None) -> list[str]:
    """Extract a stream produced by ``pack`` under ``dest_dir``.

    Args:
        source: archive stream; ``None`` or an empty stream extracts nothing
        dest_dir: directory the archive's top-level entry is created in
        root_name: replaces the archive's top-level directory name

    Returns:
        Extracted entry names, relative to ``dest_dir``
    """
    if source is None:
        return []
    source = _seekable(source)
    start = source.tell()
    if not source.read(1):
        return []
    source.seek(start)

    dest = Path(dest_dir)
    dest.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(fileobj=source, mode="r:gz") as tar:
            members = tar.getmembers()
            if root_name:
                for member in members:
                    member.name = _rename_root(member.name, root_name)
            tar.extractall(path=dest, members=members, filter="data")
    except tarfile.FilterError as e:
        raise ArchiveError(f"Refusing to extract unsafe entry: {e}") from e
    except (tarfile.ReadError, tarfile.CompressionError, EOFError) as e:
        raise ArchiveError(f"Malformed archive: {e}") from e

    names = [member.name for member in members]
    logger.debug(f"Unpacked {len(names)} entries into {dest}")
    return names
