"""
Shared test configuration and fixtures.

Stores are opened on a temporary data directory with a fixed clock so that
log lines are predictable.
"""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from forum_store import ForumStore

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Empty data directory."""
    return tmp_path / "data"


@pytest.fixture
def open_store(data_dir):
    """Factory opening (or reopening) the test forum; closes every store it made."""
    stores = []

    def _open(forum_name: str = "test", **kwargs) -> ForumStore:
        kwargs.setdefault("clock", lambda: FIXED_NOW)
        kwargs.setdefault("fsync", False)
        store = ForumStore(data_dir, forum_name, **kwargs)
        stores.append(store)
        return store

    yield _open

    for store in stores:
        store.close()


@pytest.fixture
def store(open_store) -> ForumStore:
    """Freshly created, empty store."""
    return open_store()


@pytest.fixture
def write_log(data_dir):
    """Factory writing a raw forum log file, creating the forum directory."""

    def _write(content: str | bytes, forum_name: str = "test") -> Path:
        path = data_dir / "forum" / f"{forum_name}.txt"
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def fixed_now() -> datetime:
    """The time the store clock reports in tests."""
    return FIXED_NOW
