"""Tests for rebuilding the index from a log."""

from __future__ import annotations

import base64
import hashlib
import logging

import pytest

from forum_store.exceptions import CorruptLogError
from forum_store.index import ForumIndex
from forum_store.replay import replay_lines, replay_log

SHA1_B64 = base64.b64encode(hashlib.sha1(b"body").digest()).decode("ascii")[:-1]


def post_line(topic_id: int, post_id: int, user: str = "alice", ip: str = "1020304") -> str:
    return f"P{topic_id}|{post_id}|1148874103|{SHA1_B64}|{ip}|{user}\n"


def replay_text(text: str):
    """Replay log text the way iter_log_lines would split it."""
    lines = text.split("\n") if text else []
    if text.endswith("\n"):
        lines.pop()
    index = ForumIndex()
    report = replay_lines(enumerate(lines, start=1), index)
    return index, report


class TestReplay:
    """Tests for the normal replay path."""

    def test_empty_log(self) -> None:
        index, report = replay_text("")
        assert index.topic_count == 0
        assert report.records == 0

    def test_topics_posts_and_flags(self) -> None:
        text = (
            "T1|Hello\n"
            + post_line(1, 1)
            + post_line(1, 2, user="bob")
            + "T2|Second\n"
            + post_line(2, 1)
            + "D1|2\n"
            + "D2|1\n"
            + "U2|1\n"
            + "B1020304|1\n"
            + "Bc0a80001|1\n"
            + "Bc0a80001|0\n"
        )
        index, report = replay_text(text)
        assert report.records == 11
        assert index.topic_count == 2
        assert index.post_count == 3
        assert index.find_post(1, 2).is_deleted
        assert not index.find_post(2, 1).is_deleted
        assert index.is_ip_blocked("1020304")
        assert not index.is_ip_blocked("c0a80001")
        assert index.topic_by_id(1).subject == "Hello"

    def test_final_line_without_newline(self) -> None:
        index, _ = replay_text("T1|Hello\n" + post_line(1, 1).rstrip("\n"))
        assert index.post_count == 1

    def test_mismatched_post_id_is_tolerated(self, caplog) -> None:
        text = "T1|Hello\n" + post_line(1, 1) + post_line(1, 5)
        with caplog.at_level(logging.WARNING, logger="forum_store.replay"):
            index, report = replay_text(text)
        assert [p.id for p in index.topic_by_id(1).posts] == [1, 2]
        assert len(report.mismatched_post_ids) == 1
        mismatch = report.mismatched_post_ids[0]
        assert (mismatch.line_number, mismatch.stored_id, mismatch.expected_id) == (3, 5, 2)
        assert "Unexpected post id" in caplog.text
        assert (caplog.records[0].log_line, caplog.records[0].stored_post_id) == (3, 5)

    def test_redundant_delete_is_tolerated(self) -> None:
        text = "T1|Hello\n" + post_line(1, 1) + "D1|1\nD1|1\n"
        index, report = replay_text(text)
        assert index.find_post(1, 1).is_deleted
        assert report.redundant_deletes == 1

    def test_empty_topic_reported(self, caplog) -> None:
        text = "T1|Hello\n" + post_line(1, 1) + "T2|Nobody replied\n"
        with caplog.at_level(logging.WARNING, logger="forum_store.replay"):
            index, report = replay_text(text)
        assert report.empty_topic_ids == [2]
        assert "has no posts" in caplog.text
        assert index.topic_count == 2


class TestCorruption:
    """Structural problems abort replay."""

    @pytest.mark.parametrize(
        "text,line_number",
        [
            ("T1|Hello\nQ1|2\n", 2),
            ("Tx|Hello\n", 1),
            ("T1|Hello\n\n" + post_line(1, 1), 2),
            (post_line(1, 1), 1),
            ("T1|Hello\n" + post_line(2, 1), 2),
            ("T1|Hello\n" + post_line(1, 1) + "D1|2\n", 3),
            ("T1|Hello\n" + post_line(1, 1) + "D3|1\n", 3),
            ("T1|Hello\n" + post_line(1, 1) + "U1|0\n", 3),
            ("T1|Hello\n" + post_line(1, 1) + "U1|1\n", 3),
            ("T1|Hello\nP1|1|1148874103|AAAA|1020304|alice\n", 2),
            ("T1|Hello\n" + post_line(1, 1) + "B1020304|yes\n", 3),
        ],
    )
    def test_corrupt_log(self, text, line_number) -> None:
        with pytest.raises(CorruptLogError) as exc_info:
            replay_text(text)
        assert exc_info.value.line_number == line_number

    def test_undelete_of_live_post_is_fatal(self) -> None:
        with pytest.raises(CorruptLogError, match="already undeleted"):
            replay_text("T1|Hello\n" + post_line(1, 1) + "U1|1\n")


class TestReplayLog:
    """Tests for replaying a file."""

    def test_replay_file(self, write_log) -> None:
        path = write_log("T1|Hello\n" + post_line(1, 1))
        index = ForumIndex()
        report = replay_log(path, index)
        assert report.records == 2
        assert index.post_count == 1

    def test_error_names_file(self, write_log) -> None:
        path = write_log("T1|Hello\nZ\n")
        with pytest.raises(CorruptLogError) as exc_info:
            replay_log(path, ForumIndex())
        assert exc_info.value.path == str(path)
        assert exc_info.value.line == "Z"


class TestNonUtf8Log:
    """Logs written before text was UTF-8 keep their exact bytes."""

    LATIN1_LOG = (
        b"T1|Caf\xe9\n"
        + f"P1|1|1148874103|{SHA1_B64}|1020304|".encode("ascii")
        + b"Jos\xe9\n"
    )

    def test_subject_and_author_preserved(self, write_log) -> None:
        path = write_log(self.LATIN1_LOG)
        index = ForumIndex()
        replay_log(path, index)

        topic = index.topic_by_id(1)
        assert "\ufffd" not in topic.subject
        assert topic.subject.encode("utf-8", "surrogateescape") == b"Caf\xe9"
        author = topic.posts[0].user_name_internal
        assert author.encode("utf-8", "surrogateescape") == b"Jos\xe9"
        assert index.posts_by_user(author, 10)[1] == 1

    def test_bytes_survive_restart(self, write_log, open_store) -> None:
        path = write_log(self.LATIN1_LOG)
        store = open_store()
        author = store.topic_by_id(1).posts[0].user_name_internal
        store.add_post(1, "Reply", author, "1.2.3.4")
        store.close()

        raw = path.read_bytes()
        assert raw.startswith(self.LATIN1_LOG)
        assert raw.endswith(b"|1020304|Jos\xe9\n")

        reopened = open_store()
        assert reopened.topic_by_id(1).subject == store.topic_by_id(1).subject
        assert reopened.posts_by_user(author, 10)[1] == 2
