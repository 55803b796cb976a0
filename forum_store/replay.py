"""
Rebuilds the in-memory index from the forum log.

Replay reads every record in order and applies it. Structural problems abort
replay with CorruptLogError. Two historical anomalies are tolerated, because
existing logs contain them:

- a post record whose stored id is not the next id of its topic; the post is
  appended with the expected id and a warning is logged
- a delete of a post that is already deleted

Undeleting a post that is not deleted is not tolerated.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import CorruptLogError, NotFoundError, RecordFormatError
from .index import ForumIndex
from .log import iter_log_lines
from .records import DeleteRecord, PostRecord, UndeleteRecord, decode_record

logger = logging.getLogger(__name__)


@dataclass
class PostIdMismatch:
    """A post record whose stored id disagreed with its position."""

    line_number: int
    topic_id: int
    stored_id: int
    expected_id: int


@dataclass
class ReplayReport:
    """What a replay went through."""

    records: int = 0
    mismatched_post_ids: list[PostIdMismatch] = field(default_factory=list)
    redundant_deletes: int = 0
    empty_topic_ids: list[int] = field(default_factory=list)


def replay_lines(
    lines: Iterable[tuple[int, str]],
    index: ForumIndex,
    *,
    source: str = "<log>",
) -> ReplayReport:
    """Apply numbered log lines to an index.

    Args:
        lines: (line_number, line) pairs, lines without their newline
        index: Index to populate, normally empty
        source: Name used in error messages

    Returns:
        Report of the replay

    Raises:
        CorruptLogError: On the first structurally invalid record
    """
    report = ReplayReport()
    for line_number, line in lines:
        try:
            record = decode_record(line)
        except RecordFormatError as e:
            raise CorruptLogError(source, line_number, line, str(e)) from e

        try:
            if isinstance(record, PostRecord):
                expected_id = index.next_post_id(record.topic_id)
                if record.post_id != expected_id:
                    topic = index.topic_by_id(record.topic_id)
                    logger.warning(
                        "Unexpected post id at %s:%d: stored %d, expected %d, topic %d (%s)",
                        source,
                        line_number,
                        record.post_id,
                        expected_id,
                        record.topic_id,
                        topic.subject if topic else "",
                        extra={
                            "log_path": source,
                            "log_line": line_number,
                            "topic_id": record.topic_id,
                            "post_id": expected_id,
                            "stored_post_id": record.post_id,
                        },
                    )
                    report.mismatched_post_ids.append(
                        PostIdMismatch(line_number, record.topic_id, record.post_id, expected_id)
                    )
            elif isinstance(record, DeleteRecord):
                if index.find_post(record.topic_id, record.post_id).is_deleted:
                    report.redundant_deletes += 1
            elif isinstance(record, UndeleteRecord):
                if not index.find_post(record.topic_id, record.post_id).is_deleted:
                    raise CorruptLogError(source, line_number, line, "post already undeleted")

            index.apply(record)
        except NotFoundError as e:
            raise CorruptLogError(source, line_number, line, e.message) from e

        report.records += 1

    report.empty_topic_ids = verify_topics(index)
    return report


def verify_topics(index: ForumIndex) -> list[int]:
    """Log every topic that has no posts and return their ids.

    The append protocol writes a topic together with its first post, so an
    empty topic means the log was damaged at some point.
    """
    empty = []
    for position, topic in index.empty_topics():
        logger.warning(
            "Topic at index %d (id %d, %r) has no posts",
            position,
            topic.id,
            topic.subject,
            extra={"topic_id": topic.id},
        )
        empty.append(topic.id)
    return empty


def replay_log(path: Path, index: ForumIndex) -> ReplayReport:
    """Replay the log file at ``path`` into ``index``.

    Raises:
        CorruptLogError: On structural corruption
        StorageIOError: If the file cannot be read
    """
    return replay_lines(iter_log_lines(path), index, source=str(path))
