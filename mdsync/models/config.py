"""Configuration models for the sync system."""

import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_FILENAME = "mdsync.yaml"

# Notion refuses more children than this in one call
MAX_BATCH_SIZE = 100


@dataclass
class PropertyMapping:
    """Which database field holds each role the sync writes.

    An empty field name leaves that role unwritten. ``title`` and ``slug``
    are required; ``managed`` names a checkbox that marks pages owned by
    this tool and enables pruning.
    """

    title: str = "Name"
    slug: str = "slug"
    tags: str = "tags"
    status: str = "status"
    type: str = "type"
    date: str = "date"
    managed: str = ""

    ROLES = ("title", "slug", "tags", "status", "type", "date", "managed")

    def field_names(self) -> set[str]:
        """Get all mapped field names."""
        return {getattr(self, role) for role in self.ROLES if getattr(self, role)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PropertyMapping":
        """Create from dictionary, keeping defaults for missing roles."""
        defaults = cls()
        return cls(**{
            role: str(data[role] or "") if role in data else getattr(defaults, role)
            for role in cls.ROLES
        })


@dataclass
class NotionSettings:
    """Target database and its field mapping."""

    database_id: str = ""
    properties: PropertyMapping = field(default_factory=PropertyMapping)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NotionSettings":
        """Create from dictionary."""
        database_id = data.get("database_id") or os.getenv("NOTION_DATABASE_ID", "")
        return cls(
            database_id=str(database_id),
            properties=PropertyMapping.from_dict(data.get("properties") or {}),
        )


@dataclass
class SyncSettings:
    """Sync operation settings."""

    # Prepend title, byline and divider to every page
    full_page: bool = False
    batch_size: int = 50
    default_status: str = "published"
    default_type: str = "Post"
    retry_attempts: int = 3
    retry_delay: float = 1.0
    retry_factor: float = 2.0
    poll_interval: float = 3.0
    # Seconds a file must stay unmodified before watch mode picks it up
    settle_time: float = 1.0
    queue_size: int = 100
    log_level: str = "INFO"
    log_file: str = ""

    def __post_init__(self) -> None:
        if not 1 <= self.batch_size <= MAX_BATCH_SIZE:
            raise ValueError(
                f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {self.batch_size}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncSettings":
        """Create from dictionary."""
        defaults = cls()
        return cls(
            full_page=bool(data.get("full_page", defaults.full_page)),
            batch_size=int(data.get("batch_size", defaults.batch_size)),
            default_status=str(data.get("default_status", defaults.default_status)),
            default_type=str(data.get("default_type", defaults.default_type)),
            retry_attempts=int(data.get("retry_attempts", defaults.retry_attempts)),
            retry_delay=float(data.get("retry_delay", defaults.retry_delay)),
            retry_factor=float(data.get("retry_factor", defaults.retry_factor)),
            poll_interval=float(data.get("poll_interval", defaults.poll_interval)),
            settle_time=float(data.get("settle_time", defaults.settle_time)),
            queue_size=int(data.get("queue_size", defaults.queue_size)),
            log_level=os.getenv("MDSYNC_LOG_LEVEL") or str(data.get("log_level", defaults.log_level)),
            log_file=str(data.get("log_file") or ""),
        )


@dataclass
class SyncConfig:
    """Main configuration for the sync system."""

    content_dir: str = "content/posts"
    state_file: str = ".notion-sync-state.json"
    exclude: list[str] = field(default_factory=list)  # Glob patterns to exclude
    notion: NotionSettings = field(default_factory=NotionSettings)
    settings: SyncSettings = field(default_factory=SyncSettings)

    def should_exclude(self, path: str) -> bool:
        """Check if a path matches any exclude pattern.

        Args:
            path: Path relative to the content directory (e.g., "drafts/post.md")

        Returns:
            True if path should be excluded
        """
        for pattern in self.exclude:
            if fnmatch.fnmatch(path, pattern):
                return True
            # Also check just the name portion
            if fnmatch.fnmatch(path.split('/')[-1], pattern):
                return True
        return False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncConfig":
        """Create from dictionary."""
        defaults = cls()
        return cls(
            content_dir=str(data.get("content_dir", defaults.content_dir)),
            state_file=str(data.get("state_file", defaults.state_file)),
            exclude=list(data.get("exclude") or []),
            notion=NotionSettings.from_dict(data.get("notion") or {}),
            settings=SyncSettings.from_dict(data.get("settings") or {}),
        )

    @classmethod
    def load(cls, config_path: Path) -> "SyncConfig":
        """Load configuration from YAML file.

        A missing file yields the defaults (environment variables still apply).
        """
        config_path = Path(config_path)
        if not config_path.exists():
            return cls.from_dict({})

        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    def resolve_paths(self, base_dir: Path) -> tuple[Path, Path]:
        """Get the absolute content directory and state file paths."""
        return base_dir / self.content_dir, base_dir / self.state_file
