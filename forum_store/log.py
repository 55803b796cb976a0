"""
Append-only forum log file.

This module provides ForumLog, the writer for ``<data_dir>/forum/<name>.txt``,
plus readers used by replay and diagnostics. The file has no header and no
checksums; every line is a record and the whole file must stay parsable
from offset 0, so a failed append is rolled back to the previous size.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any, BinaryIO

from .exceptions import RecordFormatError, StorageIOError
from .records import PostRecord, decode_record

logger = logging.getLogger(__name__)


class ForumLog:
    """
    Writer for the forum log.

    Records are appended as already-encoded text. Every append is written
    through an unbuffered handle and, unless disabled, fsync'ed before
    returning, so a successful return means the record is durable.

    Example usage:
        with ForumLog(path) as log:
            log.append("T1|Hello\\n")
    """

    def __init__(self, path: Path, *, fsync: bool = True):
        """Initialize the log writer.

        Args:
            path: Path of the log file
            fsync: Whether to fsync after every append
        """
        self.path = Path(path)
        self.fsync = fsync
        self._file: BinaryIO | None = None
        self._append_count = 0

    def open(self) -> ForumLog:
        """Open the log for appending, creating the file if needed.

        Returns:
            Self for method chaining

        Raises:
            StorageIOError: If the file cannot be opened
        """
        if self._file is not None:
            return self

        try:
            self._file = open(self.path, "ab", buffering=0)
        except OSError as e:
            raise StorageIOError("open_log", str(self.path), e) from e
        return self

    def close(self) -> None:
        """Close the log file."""
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> ForumLog:
        return self.open()

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def append(self, data: str) -> None:
        """Append one or more encoded records in a single write.

        Args:
            data: Newline-terminated record lines

        Raises:
            StorageIOError: If the log is closed or the write fails
        """
        if self._file is None:
            raise StorageIOError("append_log", str(self.path), ValueError("log is closed"))

        encoded = data.encode("utf-8", "surrogateescape")
        try:
            size = os.fstat(self._file.fileno()).st_size
        except OSError as e:
            raise StorageIOError("append_log", str(self.path), e) from e

        try:
            self._write(encoded)
        except OSError as e:
            logger.error(
                "Append to %s failed: %s", self.path, e, extra={"log_path": str(self.path)}
            )
            self._rollback(size)
            raise StorageIOError("append_log", str(self.path), e) from e

        self._append_count += 1

    def _write(self, data: bytes) -> None:
        assert self._file is not None
        view = memoryview(data)
        while view:
            n = self._file.write(view)
            view = view[n:]
        if self.fsync:
            os.fsync(self._file.fileno())

    def _rollback(self, size: int) -> None:
        # Drop whatever part of the failed append reached the file
        try:
            if self._file is not None:
                self._file.truncate(size)
        except OSError as e:
            logger.error("Could not truncate %s back to %d bytes: %s", self.path, size, e)

    @property
    def append_count(self) -> int:
        """Number of successful appends through this writer."""
        return self._append_count

    @property
    def is_open(self) -> bool:
        return self._file is not None


def iter_log_lines(path: Path) -> Iterator[tuple[int, str]]:
    """Yield (line_number, line) for each line of a log file.

    Lines are split on ``\\n`` only and returned without it. A final line
    without a newline is still returned. Bytes that are not valid UTF-8
    (older logs hold Latin-1 text) decode to lone surrogates, and
    ForumLog.append writes them back as the same bytes.

    Raises:
        StorageIOError: If the file cannot be read
    """
    try:
        with open(path, "rb") as f:
            for line_number, raw in enumerate(f, start=1):
                yield line_number, raw.rstrip(b"\n").decode("utf-8", "surrogateescape")
    except OSError as e:
        raise StorageIOError("read_log", str(path), e) from e


def read_log_summary(path: Path) -> dict[str, Any]:
    """Summarize a log file without building an index.

    Malformed lines are counted rather than raised, so this works on logs
    that replay would reject.

    Args:
        path: Path of the log file

    Returns:
        Dictionary with:
        - total_records: Lines that decoded
        - record_kinds: Dict of kind letter -> count
        - malformed: Lines that failed to decode
        - first_malformed_line: Line number of the first of those, or None
        - first_post_at / last_post_at: ISO timestamps of the first and last
          post records, or None
    """
    summary: dict[str, Any] = {
        "total_records": 0,
        "record_kinds": {},
        "malformed": 0,
        "first_malformed_line": None,
        "first_post_at": None,
        "last_post_at": None,
    }
    if not Path(path).exists():
        return summary

    kinds: dict[str, int] = summary["record_kinds"]
    for line_number, line in iter_log_lines(path):
        try:
            record = decode_record(line)
        except RecordFormatError:
            summary["malformed"] += 1
            if summary["first_malformed_line"] is None:
                summary["first_malformed_line"] = line_number
            continue

        summary["total_records"] += 1
        kinds[line[0]] = kinds.get(line[0], 0) + 1
        if isinstance(record, PostRecord):
            ts = record.created_on.isoformat()
            if summary["first_post_at"] is None:
                summary["first_post_at"] = ts
            summary["last_post_at"] = ts

    return summary
