"""
Structured JSON logging for forum stores.

ForumStore tags its records with the forum name and data directory, and
replay tags its diagnostics with the log file and line. ForumJsonFormatter
lifts those fields into each JSON line so a log collector can filter one
forum, or jump from a warning straight to the offending log line.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

# Record attributes copied into the JSON object when set through ``extra``
CONTEXT_FIELDS = (
    "forum",
    "data_dir",
    "log_path",
    "log_line",
    "topic_id",
    "post_id",
    "stored_post_id",
    "blob_path",
)


class ForumJsonFormatter(logging.Formatter):
    """
    Formats records as single-line JSON objects.

    Every line has ``timestamp`` (UTC, ISO 8601, taken from the record),
    ``level``, ``logger`` and ``message``; the forum context fields follow
    when the record carries them, then ``exception`` for failures.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_obj[field] = value

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        # Subjects from old logs may hold lone surrogates; ensure_ascii escapes them
        return json.dumps(log_obj, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Send the ``forum_store`` logger's records to a stream as JSON lines.

    Args:
        level: Logging level (default: INFO)
        stream: Destination (default: stdout)

    Returns:
        The configured ``forum_store`` logger
    """
    logger = logging.getLogger("forum_store")

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(ForumJsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


class StoreLoggerAdapter(logging.LoggerAdapter):
    """Tags every record with the forum name and data directory of a store."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs
