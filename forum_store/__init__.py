"""
Forum Store

File-backed storage engine for a discussion forum: topics with ordered
posts, soft delete/undelete of posts and an IP blocklist.

Provides:
- An append-only text log replayed in full at startup
- Content-addressed storage of message bodies keyed by SHA-1
- An in-memory index answering all read queries
- One lock serializing every operation, so the log order is the order of effects

Usage:

    >>> from forum_store import ForumStore, make_internal_user_name
    >>> with ForumStore("/var/lib/forums", "sumatrapdf") as store:
    ...     topic_id = store.create_topic(
    ...         "Hello", "World", make_internal_user_name("alice"), "1.2.3.4"
    ...     )
    ...     topics, next_offset = store.list_topics(25)

Configuration:

    from forum_store import ForumStoreConfig
    store = ForumStore.from_config(ForumStoreConfig.from_environment())
"""

from .blobs import BlobStore, blob_path, sha1_of
from .config import ForumStoreConfig
from .exceptions import (
    AlreadyInStateError,
    CorruptLogError,
    ForumStoreError,
    NotFoundError,
    PostAlreadyDeletedError,
    PostNotDeletedError,
    PostNotFoundError,
    RecordFormatError,
    StorageIOError,
    TopicNotFoundError,
    ValidationError,
)
from .index import ForumIndex
from .log import ForumLog, read_log_summary
from .logging_utils import ForumJsonFormatter, configure_structured_logging
from .models import Post, Topic
from .records import (
    BlockRecord,
    DeleteRecord,
    PostRecord,
    TopicRecord,
    UndeleteRecord,
    decode_record,
    encode_record,
    ip_internal_to_original,
    ip_to_internal,
    make_internal_user_name,
)
from .replay import ReplayReport, replay_log
from .store import ForumStore

__version__ = "0.1.0"

__all__ = [
    # Engine
    "ForumStore",
    "ForumStoreConfig",
    # Entities
    "Post",
    "Topic",
    # Records and codec
    "TopicRecord",
    "PostRecord",
    "DeleteRecord",
    "UndeleteRecord",
    "BlockRecord",
    "encode_record",
    "decode_record",
    "ip_to_internal",
    "ip_internal_to_original",
    "make_internal_user_name",
    # Building blocks
    "ForumIndex",
    "ForumLog",
    "BlobStore",
    "blob_path",
    "sha1_of",
    "replay_log",
    "ReplayReport",
    "read_log_summary",
    # Logging
    "ForumJsonFormatter",
    "configure_structured_logging",
    # Exceptions
    "ForumStoreError",
    "CorruptLogError",
    "RecordFormatError",
    "NotFoundError",
    "TopicNotFoundError",
    "PostNotFoundError",
    "AlreadyInStateError",
    "PostAlreadyDeletedError",
    "PostNotDeletedError",
    "StorageIOError",
    "ValidationError",
]
