"""Tests for the forum log file."""

import base64
import hashlib

import pytest

from forum_store.exceptions import StorageIOError
from forum_store.log import ForumLog, iter_log_lines, read_log_summary

SHA1_B64 = base64.b64encode(hashlib.sha1(b"body").digest()).decode("ascii")[:-1]


class TestForumLog:
    """Tests for ForumLog."""

    def test_append(self, tmp_path) -> None:
        path = tmp_path / "forum.txt"
        with ForumLog(path) as log:
            log.append("T1|Hello\n")
            log.append("D1|1\nU1|1\n")
            assert log.append_count == 2
        assert path.read_text() == "T1|Hello\nD1|1\nU1|1\n"

    def test_appends_to_existing_file(self, tmp_path) -> None:
        path = tmp_path / "forum.txt"
        path.write_text("T1|Hello\n")
        with ForumLog(path, fsync=False) as log:
            log.append("T2|World\n")
        assert path.read_text() == "T1|Hello\nT2|World\n"

    def test_open_is_idempotent(self, tmp_path) -> None:
        log = ForumLog(tmp_path / "forum.txt")
        assert log.open() is log.open()
        assert log.is_open
        log.close()
        assert not log.is_open

    def test_append_when_closed(self, tmp_path) -> None:
        log = ForumLog(tmp_path / "forum.txt")
        with pytest.raises(StorageIOError):
            log.append("T1|Hello\n")

    def test_open_missing_directory(self, tmp_path) -> None:
        with pytest.raises(StorageIOError) as exc_info:
            ForumLog(tmp_path / "missing" / "forum.txt").open()
        assert exc_info.value.operation == "open_log"

    def test_non_ascii(self, tmp_path) -> None:
        path = tmp_path / "forum.txt"
        with ForumLog(path) as log:
            log.append("T1|Zażółć gęślą jaźń\n")
        assert path.read_text(encoding="utf-8") == "T1|Zażółć gęślą jaźń\n"

    def test_undecodable_bytes_round_trip(self, tmp_path) -> None:
        path = tmp_path / "forum.txt"
        path.write_bytes(b"T1|Caf\xe9\n")
        [(_, line)] = iter_log_lines(path)
        assert line == "T1|Caf\udce9"
        with ForumLog(path, fsync=False) as log:
            log.append("T2|" + line[3:] + "\n")
        assert path.read_bytes() == b"T1|Caf\xe9\nT2|Caf\xe9\n"


class TestIterLogLines:
    def test_numbers_and_strips(self, tmp_path) -> None:
        path = tmp_path / "forum.txt"
        path.write_bytes(b"T1|a\nT2|b\nT3|c")
        assert list(iter_log_lines(path)) == [(1, "T1|a"), (2, "T2|b"), (3, "T3|c")]

    def test_only_newline_splits(self, tmp_path) -> None:
        path = tmp_path / "forum.txt"
        path.write_bytes(b"T1|a\rb\n")
        assert list(iter_log_lines(path)) == [(1, "T1|a\rb")]

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(StorageIOError):
            list(iter_log_lines(tmp_path / "nope.txt"))


class TestReadLogSummary:
    """Tests for read_log_summary."""

    def test_missing_file(self, tmp_path) -> None:
        summary = read_log_summary(tmp_path / "nope.txt")
        assert summary["total_records"] == 0
        assert summary["record_kinds"] == {}

    def test_counts(self, tmp_path) -> None:
        path = tmp_path / "forum.txt"
        path.write_text(
            "T1|Hello\n"
            f"P1|1|1000|{SHA1_B64}|1020304|alice\n"
            f"P1|2|2000|{SHA1_B64}|1020304|bob\n"
            "garbage\n"
            "D1|2\n"
            "B1020304|1\n"
        )
        summary = read_log_summary(path)
        assert summary["total_records"] == 5
        assert summary["record_kinds"] == {"T": 1, "P": 2, "D": 1, "B": 1}
        assert summary["malformed"] == 1
        assert summary["first_malformed_line"] == 4
        assert summary["first_post_at"].startswith("1970-01-01T00:16:40")
        assert summary["last_post_at"].startswith("1970-01-01T00:33:20")
