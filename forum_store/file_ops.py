"""
File operations for the blob store and store startup.

Provides:
- Directory creation with consistent error wrapping
- Atomic writes using temp file + rename
- Sync and async (aiofiles) whole-file reads
"""

import os
import tempfile
from pathlib import Path

import aiofiles
import aiofiles.os

from .exceptions import StorageIOError


def ensure_directory(path: Path) -> None:
    """Ensure directory exists, creating if necessary.

    Args:
        path: Directory path to ensure exists
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageIOError("create_directory", str(path), e) from e


def write_bytes_atomic(path: Path, data: bytes) -> None:
    """Write a file atomically using temp file + rename.

    Readers see either the previous content or the new content, never a
    partially written file.

    Args:
        path: Target path
        data: Content to write
    """
    ensure_directory(path.parent)

    try:
        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_")
    except OSError as e:
        raise StorageIOError("write_file", str(path), e) from e
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except OSError as e:
        try:
            os.remove(temp_path)
        except OSError:
            pass
        raise StorageIOError("write_file", str(path), e) from e


def read_bytes(path: Path) -> bytes:
    """Read a whole file.

    Raises:
        StorageIOError: If the file is missing or unreadable
    """
    try:
        return path.read_bytes()
    except OSError as e:
        raise StorageIOError("read_file", str(path), e) from e


async def read_bytes_async(path: Path) -> bytes:
    """Read a whole file without blocking the event loop.

    Raises:
        StorageIOError: If the file is missing or unreadable
    """
    try:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()
    except OSError as e:
        raise StorageIOError("read_file", str(path), e) from e


async def file_exists_async(path: Path) -> bool:
    """Check if a file exists.

    Args:
        path: Path to check

    Returns:
        True if file exists
    """
    try:
        return await aiofiles.os.path.exists(path)
    except OSError:
        return False
