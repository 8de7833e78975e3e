"""Sync runs: local Markdown files to Notion pages."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..models.config import SyncConfig
from ..models.document import Document, ValidationError, generate_slug
from .client import NotionAPIError, NotionClient, PermanentRemoteError
from .converter import ConversionContext, convert
from .files import SourceFile, list_markdown_files, load_source
from .reconciler import PrunedRecord, Reconciler
from .state import SyncState
from .url_parser import NotionUrlParseError, parse_notion_id

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Result of syncing one file."""

    success: bool
    filepath: str
    message: str
    skipped: bool = False
    page_id: str | None = None
    slug: str | None = None


def build_document(source: SourceFile, full_page: bool = False) -> Document:
    """Build a document from a split source file.

    The title defaults to the file name and the slug to one generated from
    the title.
    """
    metadata = dict(source.metadata)
    title = str(metadata.get("title") or source.path.stem).strip()
    slug = str(metadata.get("slug") or generate_slug(title)).strip()

    tags = metadata.get("tags")
    if tags is not None and not isinstance(tags, list):
        metadata["tags"] = [tags]

    context = ConversionContext.from_metadata(title, metadata) if full_page else None
    blocks = convert(source.body, context)
    return Document(title=title, slug=slug, metadata=metadata, blocks=tuple(blocks))


class SyncOperations:
    """Handles sync runs between the content directory and a Notion database."""

    def __init__(
        self,
        config: SyncConfig,
        client: NotionClient | None = None,
        state: SyncState | None = None,
        base_dir: Path | None = None,
    ) -> None:
        """Initialize sync operations.

        Args:
            config: Sync configuration
            client: NotionClient (created if not provided)
            state: SyncState ledger (created if not provided)
            base_dir: Directory that relative config paths resolve against
        """
        self.config = config
        self._client = client
        self._reconciler: Reconciler | None = None
        self.base_dir = base_dir or Path.cwd()
        self.content_dir, state_file = config.resolve_paths(self.base_dir)
        self.state = state or SyncState(state_file)

    @property
    def client(self) -> NotionClient:
        """Get or create NotionClient."""
        if self._client is None:
            self._client = NotionClient()
        return self._client

    @property
    def reconciler(self) -> Reconciler:
        """Get or create the reconciler for the configured database."""
        if self._reconciler is None:
            database_id = self.config.notion.database_id
            if database_id:
                try:
                    database_id = parse_notion_id(database_id)
                except NotionUrlParseError as e:
                    raise ValidationError(str(e)) from e
            self._reconciler = Reconciler(
                self.client,
                database_id,
                mapping=self.config.notion.properties,
                settings=self.config.settings,
            )
        return self._reconciler

    def relative_path(self, path: Path) -> str:
        """Get the ledger key for a file."""
        path = Path(path).resolve()
        try:
            return path.relative_to(self.content_dir.resolve()).as_posix()
        except ValueError:
            return path.as_posix()

    def list_files(self) -> list[Path]:
        """List the Markdown files to sync, in processing order."""
        return list_markdown_files(self.content_dir, self.config.should_exclude)

    def load_document(self, path: Path) -> Document:
        """Read a file and convert it into a document."""
        return build_document(load_source(path), full_page=self.config.settings.full_page)

    def check_preconditions(self) -> None:
        """Verify the run can succeed before touching any document.

        Raises:
            ValueError: If credentials are missing
            ValidationError: If no database is configured
            PermanentRemoteError: If the database cannot be reached
        """
        self.reconciler.load_schema()

    def sync_file(self, path: Path, force: bool = False) -> SyncResult:
        """Sync one file, catching per-document failures.

        Args:
            path: Markdown file
            force: If True, sync even when unchanged since the last run

        Returns:
            SyncResult for the file

        Raises:
            PermanentRemoteError: If the store rejects the credentials
        """
        filepath = self.relative_path(path)

        try:
            mtime = Path(path).stat().st_mtime
            if not force and not self.state.needs_sync(filepath, mtime):
                return SyncResult(
                    success=True,
                    filepath=filepath,
                    message=f"Unchanged: {filepath}",
                    skipped=True,
                )

            source = load_source(path)
            document = build_document(source, full_page=self.config.settings.full_page)
            page_id = self.reconciler.upsert(document)
        except PermanentRemoteError:
            raise
        except (ValidationError, NotionAPIError, OSError, UnicodeDecodeError) as e:
            logger.error("Failed to sync %s: %s", filepath, e)
            return SyncResult(success=False, filepath=filepath, message=str(e))

        # Edits saved during the upsert stay newer than this mtime
        self.state.record_sync(
            filepath, slug=document.slug, title=document.title, synced_at=source.mtime
        )
        self.state.save()

        return SyncResult(
            success=True,
            filepath=filepath,
            message=f"Synced: {filepath} -> {document.slug}",
            page_id=page_id,
            slug=document.slug,
        )

    def sync_all(self, force: bool = False, files: list[Path] | None = None) -> list[SyncResult]:
        """Sync every file, one at a time, in listing order.

        Args:
            force: If True, ignore the ledger and sync every file
            files: Specific files to sync (default: the whole content directory)

        Returns:
            List of SyncResults
        """
        self.check_preconditions()

        if files is None:
            paths = self.list_files()
            self.forget_missing(paths)
        else:
            paths = files
        if not paths:
            logger.info("No Markdown files found in %s", self.content_dir)
            return []

        logger.info("Found %d Markdown files", len(paths))
        results = []
        for path in paths:
            results.append(self.sync_file(path, force=force))
        return results

    def forget_file(self, path: Path) -> None:
        """Drop a deleted file from the ledger."""
        filepath = self.relative_path(path)
        if self.state.get_file_state(filepath) is None:
            return
        self.state.remove_file_state(filepath)
        self.state.save()
        logger.info("Forgot %s", filepath)

    def forget_missing(self, paths: list[Path]) -> None:
        """Drop ledger entries for files that are no longer listed."""
        listed = {self.relative_path(path) for path in paths}
        missing = [f for f in self.state.list_tracked_files() if f not in listed]
        if not missing:
            return
        for filepath in missing:
            self.state.remove_file_state(filepath)
        self.state.save()
        logger.info("Forgot %d files no longer in %s", len(missing), self.content_dir)

    def local_slugs(self) -> set[str]:
        """Collect the slug of every local document.

        Raises:
            ValidationError: If a file cannot be read, since pruning with an
                incomplete slug set would archive live pages
        """
        slugs = set()
        for path in self.list_files():
            try:
                slugs.add(self.load_document(path).slug)
            except (OSError, UnicodeDecodeError) as e:
                raise ValidationError(f"Cannot read {path}: {e}") from e
        return slugs

    def prune(self, dry_run: bool = False) -> list[PrunedRecord]:
        """Archive managed pages that have no local file anymore."""
        self.check_preconditions()
        return self.reconciler.prune(self.local_slugs(), dry_run=dry_run)

    def get_status(self) -> dict[str, Any]:
        """Get ledger status with pending files."""
        status = self.state.get_status_summary()
        pending = []
        for path in self.list_files():
            filepath = self.relative_path(path)
            if self.state.needs_sync(filepath, path.stat().st_mtime):
                pending.append(filepath)
        status["content_dir"] = str(self.content_dir)
        status["pending"] = pending
        return status
