"""
Record codec for the forum log.

The log is a text file with one record per line. The first character of a
line names the record kind and the rest is a list of fields separated by
``|``:

    T<topic_id>|<subject>
    P<topic_id>|<post_id>|<unix_seconds>|<sha1_b64>|<ip_internal>|<user>
    D<topic_id>|<post_id>
    U<topic_id>|<post_id>
    B<ip_internal>|<0|1>

Free-text fields never contain the separator: it is removed before encoding,
there is no escaping. Everything in this module is pure and stateless.
"""

from __future__ import annotations

import base64
import binascii
import ipaddress
import re
from dataclasses import dataclass
from datetime import UTC, datetime

from .exceptions import RecordFormatError

SEPARATOR = "|"

# Prefix marking users authenticated through twitter
TWITTER_PREFIX = "t:"

SHA1_SIZE = 20

KIND_TOPIC = "T"
KIND_POST = "P"
KIND_DELETE = "D"
KIND_UNDELETE = "U"
KIND_BLOCK = "B"

_NUMBER = re.compile(r"-?[0-9]+")


@dataclass(frozen=True)
class TopicRecord:
    """A topic was created."""

    topic_id: int
    subject: str


@dataclass(frozen=True)
class PostRecord:
    """A post was appended to a topic."""

    topic_id: int
    post_id: int
    created_on: datetime
    message_sha1: bytes
    ip_addr_internal: str
    user_name_internal: str


@dataclass(frozen=True)
class DeleteRecord:
    """A post was soft-deleted."""

    topic_id: int
    post_id: int


@dataclass(frozen=True)
class UndeleteRecord:
    """A post was restored."""

    topic_id: int
    post_id: int


@dataclass(frozen=True)
class BlockRecord:
    """An IP address was blocked (``blocked=True``) or unblocked."""

    ip_addr_internal: str
    blocked: bool


Record = TopicRecord | PostRecord | DeleteRecord | UndeleteRecord | BlockRecord


# =============================================================================
# Field helpers
# =============================================================================


def strip_separator(s: str) -> str:
    """Remove characters that cannot appear inside a field.

    The separator is dropped silently, as are line terminators, which would
    otherwise split a record in two.
    """
    return s.replace(SEPARATOR, "").replace("\r", "").replace("\n", "")


def make_internal_user_name(user_name: str, twitter: bool = False) -> str:
    """Build the author token stored with a post.

    Twitter users get the ``t:`` prefix. Anonymous users may not pose as
    logged in, so a typed name with ``:`` as its second character loses
    that two-character prefix.
    """
    if twitter:
        return TWITTER_PREFIX + user_name
    if len(user_name) >= 2 and user_name[1] == ":":
        if len(user_name) > 2:
            return user_name[2:]
        return user_name[:1]
    return user_name


def ip_to_internal(ip_addr: str) -> str:
    """Encode an IP address in the compact form used by the log.

    IPv4 becomes its 4 bytes in hex. The leading ``0`` digit is trimmed to
    stay identical to the values already present in existing logs. Anything
    that is not IPv4 is returned unchanged.
    """
    try:
        packed = ipaddress.IPv4Address(ip_addr).packed
    except ValueError:
        return ip_addr
    s = packed.hex()
    if s[0] == "0":
        s = s[1:]
    return s


def ip_internal_to_original(s: str) -> str:
    """Decode the compact IP form back to its textual representation."""
    if len(s) == 7:
        s2 = "0" + s
    elif len(s) == 8:
        s2 = s
    else:
        return s
    try:
        d = bytes.fromhex(s2)
    except ValueError:
        return s
    return f"{d[0]}.{d[1]}.{d[2]}.{d[3]}"


def sha1_to_b64(sha1: bytes) -> str:
    """Base64 of a SHA-1 digest without the trailing ``=``."""
    return base64.b64encode(sha1).decode("ascii")[:-1]


def sha1_from_b64(s: str) -> bytes:
    """Inverse of :func:`sha1_to_b64`.

    Raises:
        RecordFormatError: If the value is not base64 of exactly 20 bytes
    """
    try:
        sha1 = base64.b64decode(s + "=", validate=True)
    except (binascii.Error, ValueError) as e:
        raise RecordFormatError(f"message sha1 is not valid base64: {s!r}") from e
    if len(sha1) != SHA1_SIZE:
        raise RecordFormatError(f"message sha1 is {len(sha1)} bytes, expected {SHA1_SIZE}")
    return sha1


# =============================================================================
# Encoding
# =============================================================================


def encode_record(record: Record) -> str:
    """Encode a record as one newline-terminated log line."""
    if isinstance(record, TopicRecord):
        return f"T{record.topic_id}|{strip_separator(record.subject)}\n"
    if isinstance(record, PostRecord):
        return "P{}|{}|{}|{}|{}|{}\n".format(
            record.topic_id,
            record.post_id,
            int(record.created_on.timestamp()),
            sha1_to_b64(record.message_sha1),
            strip_separator(record.ip_addr_internal),
            strip_separator(record.user_name_internal),
        )
    if isinstance(record, DeleteRecord):
        return f"D{record.topic_id}|{record.post_id}\n"
    if isinstance(record, UndeleteRecord):
        return f"U{record.topic_id}|{record.post_id}\n"
    if isinstance(record, BlockRecord):
        return f"B{strip_separator(record.ip_addr_internal)}|{int(record.blocked)}\n"
    raise TypeError(f"Not a forum record: {type(record).__name__}")


# =============================================================================
# Decoding
# =============================================================================


def _split(body: str, count: int, kind: str) -> list[str]:
    parts = body.split(SEPARATOR)
    if len(parts) != count:
        raise RecordFormatError(f"{kind} record has {len(parts)} fields, expected {count}")
    return parts


def _int(value: str, name: str) -> int:
    # int() alone would accept " 1", "+1" and "1_0"
    if not _NUMBER.fullmatch(value):
        raise RecordFormatError(f"{name} is not a number: {value!r}")
    return int(value)


def _decode_topic(body: str) -> TopicRecord:
    id_str, subject = _split(body, 2, KIND_TOPIC)
    return TopicRecord(topic_id=_int(id_str, "topic id"), subject=subject)


def _decode_post(body: str) -> PostRecord:
    topic_id, post_id, created, sha1_b64, ip, user = _split(body, 6, KIND_POST)
    seconds = _int(created, "created on")
    try:
        created_on = datetime.fromtimestamp(seconds, UTC)
    except (OverflowError, OSError, ValueError) as e:
        raise RecordFormatError(f"created on is out of range: {created!r}") from e
    return PostRecord(
        topic_id=_int(topic_id, "topic id"),
        post_id=_int(post_id, "post id"),
        created_on=created_on,
        message_sha1=sha1_from_b64(sha1_b64),
        ip_addr_internal=ip,
        user_name_internal=user,
    )


def _decode_post_ref(body: str, kind: str) -> tuple[int, int]:
    topic_id, post_id = _split(body, 2, kind)
    return _int(topic_id, "topic id"), _int(post_id, "post id")


def _decode_block(body: str) -> BlockRecord:
    ip, flag = _split(body, 2, KIND_BLOCK)
    if flag not in ("0", "1"):
        raise RecordFormatError(f"block flag is not 0 or 1: {flag!r}")
    return BlockRecord(ip_addr_internal=ip, blocked=flag == "1")


def decode_record(line: str) -> Record:
    """Decode one log line (with or without its trailing newline).

    Raises:
        RecordFormatError: On an unknown kind, a wrong field count, a
            non-numeric numeric field or a bad message hash
    """
    line = line.rstrip("\n")
    if not line:
        raise RecordFormatError("empty record")

    kind, body = line[0], line[1:]
    if kind == KIND_TOPIC:
        return _decode_topic(body)
    if kind == KIND_POST:
        return _decode_post(body)
    if kind == KIND_DELETE:
        return DeleteRecord(*_decode_post_ref(body, kind))
    if kind == KIND_UNDELETE:
        return UndeleteRecord(*_decode_post_ref(body, kind))
    if kind == KIND_BLOCK:
        return _decode_block(body)
    raise RecordFormatError(f"unexpected record kind: {kind!r}")
