"""Content-addressed blob store for message bodies.

Layout: {data_dir}/blobs/{hex[:2]}/{hex[2:4]}/{hex}

where hex is the lowercase SHA-1 of the body. The path is a function of the
content, so writing the same body twice is harmless.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from .exceptions import StorageIOError, ValidationError
from .file_ops import file_exists_async, read_bytes, read_bytes_async, write_bytes_atomic

logger = logging.getLogger(__name__)


def sha1_of(data: bytes) -> bytes:
    """Raw SHA-1 digest of ``data``."""
    return hashlib.sha1(data).digest()


def _sha1_hex(sha1: bytes | str) -> str:
    if isinstance(sha1, bytes):
        if len(sha1) != 20:
            raise ValidationError("sha1", "must be 20 bytes", sha1.hex())
        return sha1.hex()
    value = sha1.lower()
    if len(value) != 40 or any(c not in "0123456789abcdef" for c in value):
        raise ValidationError("sha1", "must be 40 hex characters", sha1)
    return value


def blob_path(data_dir: Path, sha1: bytes | str) -> Path:
    """Path of the blob for a SHA-1 given as raw bytes or hex."""
    h = _sha1_hex(sha1)
    return Path(data_dir) / "blobs" / h[:2] / h[2:4] / h


class BlobStore:
    """Content-addressed storage of message bodies."""

    def __init__(self, data_dir: Path, *, skip_existing: bool = True):
        """
        Args:
            data_dir: Forum data directory; blobs go under ``blobs/``
            skip_existing: Skip the write when the blob file already exists
        """
        self.data_dir = Path(data_dir)
        self.skip_existing = skip_existing

    def path_for(self, sha1: bytes | str) -> Path:
        return blob_path(self.data_dir, sha1)

    def put(self, data: bytes) -> bytes:
        """Store a body and return its SHA-1.

        Raises:
            StorageIOError: If the blob cannot be written
        """
        sha1 = sha1_of(data)
        path = self.path_for(sha1)
        if self.skip_existing and path.exists():
            return sha1
        try:
            write_bytes_atomic(path, data)
        except StorageIOError as e:
            logger.error(
                "Writing blob %s failed: %s", path, e.cause, extra={"blob_path": str(path)}
            )
            raise
        return sha1

    def get(self, sha1: bytes | str) -> bytes:
        """Body stored under a SHA-1.

        Raises:
            StorageIOError: If there is no such blob
        """
        return read_bytes(self.path_for(sha1))

    async def get_async(self, sha1: bytes | str) -> bytes:
        return await read_bytes_async(self.path_for(sha1))

    def exists(self, sha1: bytes | str) -> bool:
        return self.path_for(sha1).exists()

    async def exists_async(self, sha1: bytes | str) -> bool:
        return await file_exists_async(self.path_for(sha1))
