"""Data models for sync system."""

from .config import (
    DEFAULT_CONFIG_FILENAME,
    NotionSettings,
    PropertyMapping,
    SyncConfig,
    SyncSettings,
)
from .document import (
    Block,
    BlockType,
    Document,
    InlineStyles,
    ValidationError,
    generate_slug,
)

__all__ = [
    "DEFAULT_CONFIG_FILENAME",
    "Block",
    "BlockType",
    "Document",
    "InlineStyles",
    "NotionSettings",
    "PropertyMapping",
    "SyncConfig",
    "SyncSettings",
    "ValidationError",
    "generate_slug",
]
