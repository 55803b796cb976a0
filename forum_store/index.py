"""
In-memory index of a forum.

Holds what replaying the log produces: the topics in creation order, the
posts of every topic, a global chronological list of posts and the set of
blocked IP addresses. All reads are answered from here.

The index is not synchronized. ForumStore owns it and only touches it while
holding its lock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from .exceptions import PostNotFoundError, TopicNotFoundError
from .models import Post, Topic
from .records import (
    BlockRecord,
    DeleteRecord,
    PostRecord,
    Record,
    TopicRecord,
    UndeleteRecord,
)

logger = logging.getLogger(__name__)


@dataclass
class _TopicEntry:
    """Mutable topic state owned by the index."""

    id: int
    subject: str
    posts: list[Post] = field(default_factory=list)

    def snapshot(self) -> Topic:
        return Topic(id=self.id, subject=self.subject, posts=tuple(self.posts))


class ForumIndex:
    """Topics, posts and blocklist reconstructed from the log.

    Posts in the global chronological list are addressed by their owning
    topic entry and position, never by a reference to the Post value, so
    replacing a post (delete/undelete) is seen by both access paths.
    """

    def __init__(self) -> None:
        self._topics: list[_TopicEntry] = []
        self._topics_by_id: dict[int, _TopicEntry] = {}
        self._post_refs: list[tuple[_TopicEntry, int]] = []
        self._blocked: set[str] = set()

    # =========================================================================
    # Lookups
    # =========================================================================

    def _entry(self, topic_id: int) -> _TopicEntry:
        entry = self._topics_by_id.get(topic_id)
        if entry is None:
            raise TopicNotFoundError(topic_id)
        return entry

    def _post_index(self, entry: _TopicEntry, post_id: int) -> int:
        if post_id < 1 or post_id > len(entry.posts):
            raise PostNotFoundError(entry.id, post_id)
        return post_id - 1

    def has_topic(self, topic_id: int) -> bool:
        return topic_id in self._topics_by_id

    def find_post(self, topic_id: int, post_id: int) -> Post:
        """Return a post by topic id and 1-based post id.

        Raises:
            TopicNotFoundError: If the topic does not exist
            PostNotFoundError: If the post id is outside the topic's posts
        """
        entry = self._entry(topic_id)
        return entry.posts[self._post_index(entry, post_id)]

    def next_topic_id(self) -> int:
        """Id of the last created topic plus one."""
        if not self._topics:
            return 1
        return self._topics[-1].id + 1

    def next_post_id(self, topic_id: int) -> int:
        return len(self._entry(topic_id).posts) + 1

    # =========================================================================
    # Applying records
    # =========================================================================

    def apply(self, record: Record) -> None:
        """Apply one log record.

        Callers validate the record first; the only normalization done here
        is that a post always gets the next sequential id of its topic.

        Raises:
            TopicNotFoundError: If the record names an unknown topic
            PostNotFoundError: If a delete/undelete names an unknown post
        """
        if isinstance(record, TopicRecord):
            self._add_topic(record)
        elif isinstance(record, PostRecord):
            self._add_post(record)
        elif isinstance(record, DeleteRecord):
            self._set_deleted(record.topic_id, record.post_id, True)
        elif isinstance(record, UndeleteRecord):
            self._set_deleted(record.topic_id, record.post_id, False)
        elif isinstance(record, BlockRecord):
            if record.blocked:
                self._blocked.add(record.ip_addr_internal)
            else:
                self._blocked.discard(record.ip_addr_internal)
        else:
            raise TypeError(f"Not a forum record: {type(record).__name__}")

    def _add_topic(self, record: TopicRecord) -> None:
        entry = _TopicEntry(id=record.topic_id, subject=record.subject)
        self._topics.append(entry)
        self._topics_by_id[entry.id] = entry

    def _add_post(self, record: PostRecord) -> None:
        entry = self._entry(record.topic_id)
        post = Post(
            id=len(entry.posts) + 1,
            topic_id=entry.id,
            created_on=record.created_on,
            message_sha1=record.message_sha1,
            user_name_internal=record.user_name_internal,
            ip_addr_internal=record.ip_addr_internal,
        )
        entry.posts.append(post)
        self._post_refs.append((entry, len(entry.posts) - 1))

    def _set_deleted(self, topic_id: int, post_id: int, deleted: bool) -> None:
        entry = self._entry(topic_id)
        i = self._post_index(entry, post_id)
        entry.posts[i] = replace(entry.posts[i], is_deleted=deleted)

    # =========================================================================
    # Counts
    # =========================================================================

    @property
    def topic_count(self) -> int:
        return len(self._topics)

    @property
    def post_count(self) -> int:
        return len(self._post_refs)

    @property
    def blocked_ip_count(self) -> int:
        return len(self._blocked)

    def is_ip_blocked(self, ip_addr_internal: str) -> bool:
        return ip_addr_internal in self._blocked

    # =========================================================================
    # Queries
    # =========================================================================

    def list_topics(
        self, max_count: int, offset: int = 0, include_deleted: bool = False
    ) -> tuple[list[Topic], int | None]:
        """Most recently created topics first.

        ``include_deleted`` is accepted for API compatibility; deleted
        topics are returned either way.

        Returns:
            (topics, next_offset) where next_offset is None once the oldest
            topic has been returned
        """
        end = len(self._topics) - offset
        start = max(end - max(max_count, 0), 0)
        if end <= 0:
            return [], None
        res = [entry.snapshot() for entry in reversed(self._topics[start:end])]
        next_offset = offset + len(res)
        if next_offset >= len(self._topics):
            return res, None
        return res, next_offset

    def topic_by_id(self, topic_id: int) -> Topic | None:
        entry = self._topics_by_id.get(topic_id)
        return entry.snapshot() if entry is not None else None

    def topics(self) -> list[Topic]:
        """All topics in creation order."""
        return [entry.snapshot() for entry in self._topics]

    def empty_topics(self) -> list[tuple[int, Topic]]:
        """(position, topic) for every topic without posts."""
        return [(i, entry.snapshot()) for i, entry in enumerate(self._topics) if not entry.posts]

    def _iter_recent(self):
        for entry, i in reversed(self._post_refs):
            yield entry.posts[i]

    def recent_posts(self, max_count: int) -> list[Post]:
        """Most recent posts first, across all topics."""
        res = []
        for post in self._iter_recent():
            if len(res) >= max_count:
                break
            res.append(post)
        return res

    def _matching(self, predicate, max_count: int) -> tuple[list[Post], int]:
        res = []
        total = 0
        for post in self._iter_recent():
            if predicate(post):
                if total < max_count:
                    res.append(post)
                total += 1
        return res, total

    def posts_by_user(self, user_name_internal: str, max_count: int) -> tuple[list[Post], int]:
        """Posts by an author token, most recent first, and the total match count."""
        return self._matching(lambda p: p.user_name_internal == user_name_internal, max_count)

    def posts_by_ip(self, ip_addr_internal: str, max_count: int) -> tuple[list[Post], int]:
        """Posts from an internal-encoded IP, most recent first, and the total match count."""
        return self._matching(lambda p: p.ip_addr_internal == ip_addr_internal, max_count)
