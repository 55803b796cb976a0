"""
Custom exceptions for the forum store.

Every failure the engine reports to callers is one of these, so the
presentation layer can map them to responses without inspecting messages.
"""


class ForumStoreError(Exception):
    """Base exception for all forum store errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RecordFormatError(ValueError):
    """Raised by the record codec when a log line cannot be decoded.

    This is a plain ValueError because the codec knows nothing about files;
    the replayer turns it into a CorruptLogError with position information.
    """


class CorruptLogError(ForumStoreError):
    """Raised when replay finds structural corruption in the log."""

    def __init__(self, path: str, line_number: int, line: str, reason: str):
        details = {
            "path": path,
            "line_number": line_number,
            "line": line[:200],
            "reason": reason,
        }
        super().__init__(f"Corrupt forum log {path} at line {line_number}: {reason}", details)
        self.path = path
        self.line_number = line_number
        self.line = line
        self.reason = reason


class NotFoundError(ForumStoreError):
    """Base for lookups of topics or posts that do not exist."""


class TopicNotFoundError(NotFoundError):
    """Raised when a topic id is unknown."""

    def __init__(self, topic_id: int):
        super().__init__(f"Topic not found: {topic_id}", {"topic_id": topic_id})
        self.topic_id = topic_id


class PostNotFoundError(NotFoundError):
    """Raised when a post id is outside the topic's posts."""

    def __init__(self, topic_id: int, post_id: int):
        super().__init__(
            f"Post not found: {post_id} in topic {topic_id}",
            {"topic_id": topic_id, "post_id": post_id},
        )
        self.topic_id = topic_id
        self.post_id = post_id


class AlreadyInStateError(ForumStoreError):
    """Base for delete/undelete requests that would not change anything."""

    def __init__(self, message: str, topic_id: int, post_id: int):
        super().__init__(message, {"topic_id": topic_id, "post_id": post_id})
        self.topic_id = topic_id
        self.post_id = post_id


class PostAlreadyDeletedError(AlreadyInStateError):
    """Raised when deleting a post that is already deleted."""

    def __init__(self, topic_id: int, post_id: int):
        super().__init__(f"Post {post_id} in topic {topic_id} already deleted", topic_id, post_id)


class PostNotDeletedError(AlreadyInStateError):
    """Raised when undeleting a post that is not deleted."""

    def __init__(self, topic_id: int, post_id: int):
        super().__init__(
            f"Post {post_id} in topic {topic_id} already not deleted", topic_id, post_id
        )


class StorageIOError(ForumStoreError):
    """Raised when a storage I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class ValidationError(ForumStoreError):
    """Raised when caller input or configuration fails validation."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value
