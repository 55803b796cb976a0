"""
ForumStore: the single entry point for reading and changing a forum.

State lives in three places:
- the append-only log, ``<data_dir>/forum/<forum_name>.txt``, which is the
  source of truth
- the blob store, ``<data_dir>/blobs/``, holding message bodies by SHA-1
- the in-memory index, rebuilt from the log when the store is opened

One lock guards the index and the log handle for the whole duration of
every public operation, reads included. A mutation encodes its records,
writes the blob, appends the records to the log and only then applies them
to the index. If any step fails the index is left as it was, so the index is
always what a replay of the log would produce.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .blobs import BlobStore, sha1_of
from .config import ForumStoreConfig, validate_forum_name
from .exceptions import PostAlreadyDeletedError, PostNotDeletedError, ValidationError
from .file_ops import ensure_directory
from .index import ForumIndex
from .log import ForumLog
from .logging_utils import StoreLoggerAdapter
from .models import Post, Topic
from .records import (
    BlockRecord,
    DeleteRecord,
    PostRecord,
    Record,
    TopicRecord,
    UndeleteRecord,
    encode_record,
    ip_to_internal,
    strip_separator,
)
from .replay import ReplayReport, replay_log

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _to_bytes(body: str | bytes) -> bytes:
    if isinstance(body, bytes):
        return body
    return body.encode("utf-8")


class ForumStore:
    """
    File-backed storage for one forum.

    Contract:
    - Inputs: subjects, message bodies, author tokens, IP addresses
    - Outputs: topic/post ids and immutable Topic/Post snapshots
    - Side Effects: appends to the forum log, writes blob files
    - Errors: NotFoundError, AlreadyInStateError and StorageIOError
      subclasses; CorruptLogError from the constructor

    Example usage:
        with ForumStore(data_dir, "sumatrapdf") as store:
            topic_id = store.create_topic("Hello", "World", "alice", "1.2.3.4")
            store.add_post(topic_id, "Reply", "bob", "5.6.7.8")
    """

    def __init__(
        self,
        data_dir: Path,
        forum_name: str,
        *,
        fsync: bool = True,
        skip_existing_blobs: bool = True,
        clock: Callable[[], datetime] | None = None,
    ):
        """Open a forum, replaying its log or creating an empty one.

        Args:
            data_dir: Directory holding ``forum/`` and ``blobs/``
            forum_name: Name of the forum log file, without ``.txt``
            fsync: fsync the log after every append
            skip_existing_blobs: Don't rewrite blob files that already exist
            clock: Source of post creation times (default: current UTC time)

        Raises:
            ValidationError: If forum_name is invalid
            CorruptLogError: If the existing log is structurally invalid
            StorageIOError: If the log cannot be read, created or opened
        """
        validate_forum_name(forum_name)
        self.data_dir = Path(data_dir)
        self.forum_name = forum_name
        self.log_path = self.data_dir / "forum" / f"{forum_name}.txt"

        self._lock = threading.Lock()
        self._index = ForumIndex()
        self._blobs = BlobStore(self.data_dir, skip_existing=skip_existing_blobs)
        self._log = ForumLog(self.log_path, fsync=fsync)
        self._clock = clock or _utcnow
        self._logger = StoreLoggerAdapter(
            logger, {"forum": forum_name, "data_dir": str(self.data_dir)}
        )

        self.replay_report = self._load()

    @classmethod
    def from_config(cls, config: ForumStoreConfig, **kwargs: Any) -> ForumStore:
        """Open the store described by a ForumStoreConfig."""
        return cls(
            config.data_dir,
            config.forum_name,
            fsync=config.fsync,
            skip_existing_blobs=config.skip_existing_blobs,
            **kwargs,
        )

    def _load(self) -> ReplayReport:
        ensure_directory(self.log_path.parent)
        if self.log_path.exists():
            report = replay_log(self.log_path, self._index)
        else:
            report = ReplayReport()
        self._log.open()
        self._logger.info(
            "Opened forum %s: %d topics, %d posts, %d blocked IPs",
            self.forum_name,
            self._index.topic_count,
            self._index.post_count,
            self._index.blocked_ip_count,
        )
        return report

    def close(self) -> None:
        """Close the log file. The store cannot be changed afterwards."""
        with self._lock:
            self._log.close()

    def __enter__(self) -> ForumStore:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    # =========================================================================
    # Write path
    # =========================================================================

    def _commit(self, body: bytes | None, *records: Record) -> None:
        """Persist the blob and records, then apply the records to the index.

        Must be called with the lock held.
        """
        if body is not None:
            self._blobs.put(body)
        self._log.append("".join(encode_record(r) for r in records))
        for record in records:
            self._index.apply(record)

    def _post_record(
        self, topic_id: int, post_id: int, body: bytes, user_name_internal: str, ip_addr: str
    ) -> PostRecord:
        now = self._clock()
        return PostRecord(
            topic_id=topic_id,
            post_id=post_id,
            created_on=datetime.fromtimestamp(int(now.timestamp()), UTC),
            message_sha1=sha1_of(body),
            ip_addr_internal=strip_separator(ip_to_internal(ip_addr)),
            user_name_internal=strip_separator(user_name_internal),
        )

    def create_topic(
        self, subject: str, body: str | bytes, user_name_internal: str, ip_addr: str
    ) -> int:
        """Create a topic with its first post.

        Args:
            subject: Topic subject; ``|`` and line breaks are removed
            body: Message of the first post
            user_name_internal: Author token, see make_internal_user_name()
            ip_addr: Origin IP address in textual form

        Returns:
            Id of the new topic

        Raises:
            StorageIOError: If the blob or log write fails
        """
        data = _to_bytes(body)
        with self._lock:
            topic = TopicRecord(
                topic_id=self._index.next_topic_id(), subject=strip_separator(subject)
            )
            post = self._post_record(topic.topic_id, 1, data, user_name_internal, ip_addr)
            self._commit(data, topic, post)
            self._logger.debug(
                "Created topic %d", topic.topic_id, extra={"topic_id": topic.topic_id}
            )
            return topic.topic_id

    def add_post(
        self, topic_id: int, body: str | bytes, user_name_internal: str, ip_addr: str
    ) -> int:
        """Append a post to a topic.

        Returns:
            Id of the new post

        Raises:
            TopicNotFoundError: If the topic does not exist
            StorageIOError: If the blob or log write fails
        """
        data = _to_bytes(body)
        with self._lock:
            post_id = self._index.next_post_id(topic_id)
            post = self._post_record(topic_id, post_id, data, user_name_internal, ip_addr)
            self._commit(data, post)
            self._logger.debug(
                "Added post %d to topic %d", post_id, topic_id,
                extra={"topic_id": topic_id, "post_id": post_id},
            )
            return post_id

    def delete_post(self, topic_id: int, post_id: int) -> None:
        """Soft-delete a post.

        Raises:
            TopicNotFoundError: If the topic does not exist
            PostNotFoundError: If the post does not exist
            PostAlreadyDeletedError: If the post is already deleted
            StorageIOError: If the log write fails
        """
        with self._lock:
            if self._index.find_post(topic_id, post_id).is_deleted:
                raise PostAlreadyDeletedError(topic_id, post_id)
            self._commit(None, DeleteRecord(topic_id, post_id))
            self._logger.debug(
                "Deleted post %d in topic %d", post_id, topic_id,
                extra={"topic_id": topic_id, "post_id": post_id},
            )

    def undelete_post(self, topic_id: int, post_id: int) -> None:
        """Restore a soft-deleted post.

        Raises:
            TopicNotFoundError: If the topic does not exist
            PostNotFoundError: If the post does not exist
            PostNotDeletedError: If the post is not deleted
            StorageIOError: If the log write fails
        """
        with self._lock:
            if not self._index.find_post(topic_id, post_id).is_deleted:
                raise PostNotDeletedError(topic_id, post_id)
            self._commit(None, UndeleteRecord(topic_id, post_id))
            self._logger.debug(
                "Undeleted post %d in topic %d", post_id, topic_id,
                extra={"topic_id": topic_id, "post_id": post_id},
            )

    def _set_ip_blocked(self, ip_addr: str, blocked: bool) -> None:
        with self._lock:
            self._commit(None, BlockRecord(strip_separator(ip_to_internal(ip_addr)), blocked))

    def block_ip(self, ip_addr: str) -> None:
        """Add an IP address to the blocklist.

        Accepts the textual form or the internal form of the address.

        Raises:
            StorageIOError: If the log write fails; the blocklist is unchanged
        """
        self._set_ip_blocked(ip_addr, True)

    def unblock_ip(self, ip_addr: str) -> None:
        """Remove an IP address from the blocklist.

        Raises:
            StorageIOError: If the log write fails; the blocklist is unchanged
        """
        self._set_ip_blocked(ip_addr, False)

    # =========================================================================
    # Reads
    # =========================================================================

    def is_ip_blocked(self, ip_addr: str) -> bool:
        with self._lock:
            return self._index.is_ip_blocked(ip_to_internal(ip_addr))

    def blocked_ip_count(self) -> int:
        with self._lock:
            return self._index.blocked_ip_count

    def posts_count(self) -> int:
        with self._lock:
            return self._index.post_count

    def topics_count(self) -> int:
        with self._lock:
            return self._index.topic_count

    def list_topics(
        self, max_count: int, offset: int = 0, include_deleted: bool = False
    ) -> tuple[list[Topic], int | None]:
        """A page of topics, most recently created first.

        Args:
            max_count: Maximum number of topics to return
            offset: Number of most recent topics to skip
            include_deleted: Accepted for compatibility, has no effect

        Returns:
            (topics, next_offset); pass next_offset back to get the next
            page, it is None when there are no older topics

        Raises:
            ValidationError: If offset is negative
        """
        if offset < 0:
            raise ValidationError("offset", "cannot be negative", str(offset))
        with self._lock:
            return self._index.list_topics(max_count, offset, include_deleted)

    def topic_by_id(self, topic_id: int) -> Topic | None:
        with self._lock:
            return self._index.topic_by_id(topic_id)

    def recent_posts(self, max_count: int) -> list[Post]:
        """Most recent posts first, across all topics."""
        with self._lock:
            return self._index.recent_posts(max_count)

    def posts_by_user(self, user_name_internal: str, max_count: int) -> tuple[list[Post], int]:
        """Posts by an author token, most recent first.

        Returns:
            (posts, total) where posts has at most max_count entries and
            total counts every matching post
        """
        with self._lock:
            return self._index.posts_by_user(user_name_internal, max_count)

    def posts_by_ip(self, ip_addr: str, max_count: int) -> tuple[list[Post], int]:
        """Posts from an IP address (textual or internal form), most recent first.

        Returns:
            (posts, total) like posts_by_user()
        """
        with self._lock:
            return self._index.posts_by_ip(ip_to_internal(ip_addr), max_count)

    # =========================================================================
    # Message bodies
    # =========================================================================

    def message_file_path(self, sha1: bytes | str) -> Path:
        """Blob path of a message body given its SHA-1 (raw or hex)."""
        return self._blobs.path_for(sha1)

    def read_message(self, post: Post) -> bytes:
        """Body of a post.

        Raises:
            StorageIOError: If the blob is missing or unreadable
        """
        return self._blobs.get(post.message_sha1)

    async def read_message_async(self, post: Post) -> bytes:
        """Body of a post, read without blocking the event loop."""
        return await self._blobs.get_async(post.message_sha1)
