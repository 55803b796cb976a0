"""
Configuration for opening a forum store.

A ForumStoreConfig can be built directly, from environment variables, or
from the ``forum_store`` section of a YAML settings file:

```yaml
forum_store:
  data_dir: /var/lib/forums
  forum_name: sumatrapdf
  fsync: true
  skip_existing_blobs: true
```
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .exceptions import StorageIOError, ValidationError

ENV_DATA_DIR = "FORUM_STORE_DATA_DIR"
ENV_FORUM_NAME = "FORUM_STORE_NAME"
ENV_FSYNC = "FORUM_STORE_FSYNC"
ENV_SKIP_EXISTING_BLOBS = "FORUM_STORE_SKIP_EXISTING_BLOBS"

CONFIG_SECTION = "forum_store"


def _parse_bool(field: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValidationError(field, "expected a boolean", str(value))


def validate_forum_name(forum_name: str) -> None:
    """Reject forum names that are empty or would escape the forum directory.

    Raises:
        ValidationError: If forum_name is invalid
    """
    if not forum_name or not forum_name.strip():
        raise ValidationError("forum_name", "cannot be empty")
    if "/" in forum_name or "\\" in forum_name or forum_name in (".", ".."):
        raise ValidationError("forum_name", "must be a plain file name", forum_name)


@dataclass
class ForumStoreConfig:
    """Settings for a ForumStore.

    Attributes:
        data_dir: Directory holding ``forum/`` and ``blobs/``
        forum_name: Log file is ``<data_dir>/forum/<forum_name>.txt``
        fsync: fsync the log after every append
        skip_existing_blobs: Don't rewrite a blob whose file exists
    """

    data_dir: Path
    forum_name: str
    fsync: bool = True
    skip_existing_blobs: bool = True

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir).expanduser()
        validate_forum_name(self.forum_name)

    @property
    def log_path(self) -> Path:
        return self.data_dir / "forum" / f"{self.forum_name}.txt"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ForumStoreConfig:
        """Create configuration from a mapping of setting names to values.

        Raises:
            ValidationError: If a required setting is missing or invalid
        """
        for required in ("data_dir", "forum_name"):
            if not data.get(required):
                raise ValidationError(required, "is required")
        return cls(
            data_dir=Path(str(data["data_dir"])),
            forum_name=str(data["forum_name"]),
            fsync=_parse_bool("fsync", data.get("fsync", True)),
            skip_existing_blobs=_parse_bool(
                "skip_existing_blobs", data.get("skip_existing_blobs", True)
            ),
        )

    @classmethod
    def from_environment(cls) -> ForumStoreConfig:
        """Create configuration from environment variables.

        Reads FORUM_STORE_DATA_DIR, FORUM_STORE_NAME, FORUM_STORE_FSYNC and
        FORUM_STORE_SKIP_EXISTING_BLOBS.
        """
        return cls.from_dict(
            {
                "data_dir": os.environ.get(ENV_DATA_DIR),
                "forum_name": os.environ.get(ENV_FORUM_NAME),
                "fsync": os.environ.get(ENV_FSYNC, "true"),
                "skip_existing_blobs": os.environ.get(ENV_SKIP_EXISTING_BLOBS, "true"),
            }
        )

    @classmethod
    def from_yaml(cls, path: Path) -> ForumStoreConfig:
        """Create configuration from the ``forum_store`` section of a YAML file.

        Raises:
            StorageIOError: If the file cannot be read
            ValidationError: If the YAML is invalid or the section is incomplete
        """
        try:
            content = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise StorageIOError("read_config", str(path), e) from e

        try:
            loaded = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ValidationError("config", f"invalid YAML: {e}", str(path)) from e

        section = loaded.get(CONFIG_SECTION) if isinstance(loaded, dict) else None
        if not isinstance(section, dict):
            raise ValidationError(CONFIG_SECTION, "section missing", str(path))
        return cls.from_dict(section)
