"""Markdown source files: listing, front matter splitting and normalizing."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

import frontmatter
import yaml

from ..models.document import ValidationError, generate_slug

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIX = ".md"


@dataclass
class SourceFile:
    """A Markdown file split into front matter and body."""

    path: Path
    metadata: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    mtime: float = 0.0


def is_ignored_name(name: str) -> bool:
    """Check for hidden files and editor temp files."""
    return name.startswith(".") or name.startswith("~$")


def split_front_matter(text: str) -> tuple[dict[str, Any], str]:
    """Split raw file text into front matter fields and the Markdown body.

    Raises:
        ValidationError: If the front matter is not valid YAML
    """
    try:
        post = frontmatter.loads(text)
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid front matter: {e}") from e
    return dict(post.metadata), post.content


def load_source(path: Path) -> SourceFile:
    """Read and split a Markdown file.

    The mtime is taken before reading, so a save during the read leaves
    the file newer than the recorded mtime.
    """
    path = Path(path)
    mtime = path.stat().st_mtime
    text = path.read_text(encoding="utf-8")
    metadata, body = split_front_matter(text)
    return SourceFile(path=path, metadata=metadata, body=body, mtime=mtime)


def list_markdown_files(
    root: Path,
    exclude: Callable[[str], bool] | None = None,
) -> list[Path]:
    """List Markdown files under a directory, recursively and sorted.

    Args:
        root: Content directory
        exclude: Optional predicate on the root-relative POSIX path

    Returns:
        Paths in sorted order; hidden and temp files are skipped
    """
    root = Path(root)
    if not root.is_dir():
        return []

    files = []
    for path in sorted(root.rglob("*")):
        if not path.is_file() or path.suffix.lower() != MARKDOWN_SUFFIX:
            continue
        relative = path.relative_to(root)
        if any(is_ignored_name(part) for part in relative.parts):
            continue
        if exclude and exclude(relative.as_posix()):
            continue
        files.append(path)
    return files


def ensure_front_matter(
    path: Path,
    default_status: str = "published",
    force: bool = False,
) -> bool:
    """Fill in missing default front matter fields and rewrite the file.

    Defaults are title (the file name), date (today), status, tags and a
    slug generated from the title.

    Args:
        path: Markdown file to update
        default_status: Status written when none is set
        force: If True, overwrite existing values except the title

    Returns:
        True if the file was changed
    """
    path = Path(path)
    post = frontmatter.loads(path.read_text(encoding="utf-8"))
    before = dict(post.metadata)

    title = str(post.metadata.get("title") or path.stem)
    defaults = {
        "title": title,
        "date": date.today().isoformat(),
        "status": default_status,
        "tags": [],
        "slug": generate_slug(title),
    }
    for key, value in defaults.items():
        missing = key not in post.metadata or post.metadata[key] in (None, "")
        if missing or (force and key != "title"):
            post.metadata[key] = value

    tags = post.metadata.get("tags")
    if not isinstance(tags, list):
        post.metadata["tags"] = [tags] if tags else []

    if post.metadata == before:
        return False

    path.write_text(frontmatter.dumps(post) + "\n", encoding="utf-8")
    logger.info("Updated front matter: %s", path.name)
    return True
