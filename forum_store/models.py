"""
Forum entities returned to callers.

Posts and topics are immutable snapshots. The index replaces a post with a
new value when its deleted flag flips, so a snapshot a caller holds never
changes underneath it and never aliases the engine's own collections.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .records import TWITTER_PREFIX, ip_internal_to_original, sha1_to_b64


@dataclass(frozen=True)
class Post:
    """A single message in a topic.

    Attributes:
        id: 1-based position of the post within its topic
        topic_id: Id of the owning topic
        created_on: Creation time, seconds resolution, UTC
        message_sha1: SHA-1 of the message body, the blob store key
        user_name_internal: Author token (``t:`` prefix for twitter users)
        ip_addr_internal: Origin IP in the compact log encoding
        is_deleted: Soft-delete flag
    """

    id: int
    topic_id: int
    created_on: datetime
    message_sha1: bytes
    user_name_internal: str
    ip_addr_internal: str
    is_deleted: bool = False

    @property
    def ip_address(self) -> str:
        """Origin IP in its textual form."""
        return ip_internal_to_original(self.ip_addr_internal)

    @property
    def is_twitter_user(self) -> bool:
        return self.user_name_internal.startswith(TWITTER_PREFIX)

    @property
    def user_name(self) -> str:
        """Author name for display, without the login prefix."""
        if self.is_twitter_user:
            return self.user_name_internal[len(TWITTER_PREFIX) :]
        return self.user_name_internal

    @property
    def sha1_hex(self) -> str:
        return self.message_sha1.hex()

    @property
    def sha1_b64(self) -> str:
        return sha1_to_b64(self.message_sha1)


@dataclass(frozen=True)
class Topic:
    """A thread with its posts in creation order."""

    id: int
    subject: str
    posts: tuple[Post, ...] = ()

    @property
    def is_deleted(self) -> bool:
        """A topic is deleted when every one of its posts is."""
        return all(p.is_deleted for p in self.posts)

    @property
    def post_count(self) -> int:
        return len(self.posts)

    def post(self, post_id: int) -> Post | None:
        """Post by its 1-based id, or None."""
        if 1 <= post_id <= len(self.posts):
            return self.posts[post_id - 1]
        return None
