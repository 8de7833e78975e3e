"""Idempotent upsert of documents into a Notion database.

Each document maps to exactly one page, found by an exact match on the
slug property. Existing pages get their properties updated and their
content replaced (delete every child, then append); missing pages are
created. Calls run strictly one after another, so a query-then-create for
one slug never interleaves with another.
"""

import logging
from dataclasses import dataclass
from typing import Any

from ..models.config import PropertyMapping, SyncSettings
from ..models.document import Document, ValidationError, format_date
from .client import NotionAPIError, NotionClient, PermanentRemoteError, TransientRemoteError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

# Metadata keys consumed by a role; never passed through as-is
ROLE_KEYS = {"title", "slug", "tags", "status", "type", "date"}


class SchemaMismatchError(Exception):
    """A property value the database schema does not allow."""

    def __init__(self, field_name: str, value: str, options: list[str]) -> None:
        super().__init__(
            f"Value {value!r} is not an option of {field_name!r} (allowed: {', '.join(options) or 'none'})"
        )
        self.field_name = field_name
        self.value = value
        self.options = options


@dataclass
class PrunedRecord:
    """A managed page whose local file is gone."""

    page_id: str
    slug: str
    archived: bool


def _text_value(prop: dict[str, Any]) -> str:
    """Read the plain text of a title or rich_text property value."""
    parts = prop.get("rich_text") or prop.get("title") or []
    return "".join(part.get("plain_text") or part.get("text", {}).get("content", "") for part in parts)


def infer_property(value: Any) -> dict[str, Any] | None:
    """Map a front matter value to a property value by its shape.

    Lists become multi-selects, dicts are assumed to already be Notion
    property values, and everything else becomes text.
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return {"multi_select": [{"name": str(item)} for item in value if item is not None]}
    if isinstance(value, dict):
        return value
    return {"rich_text": [{"text": {"content": format_date(value)}}]}


class Reconciler:
    """Creates or replaces database pages keyed by document slug."""

    def __init__(
        self,
        client: NotionClient,
        database_id: str,
        mapping: PropertyMapping | None = None,
        settings: SyncSettings | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            client: Notion API client
            database_id: Target database ID
            mapping: Role to field name mapping
            settings: Sync settings (batch size, default values)
            retry: Retry policy for every remote call
        """
        self.client = client
        self.database_id = database_id
        self.mapping = mapping or PropertyMapping()
        self.settings = settings or SyncSettings()
        self.retry = retry or RetryPolicy(
            attempts=self.settings.retry_attempts,
            delay=self.settings.retry_delay,
            factor=self.settings.retry_factor,
        )
        self._schema: dict[str, Any] | None = None

    def _call(self, fn: Any, *args: Any, **kwargs: Any) -> Any:
        return self.retry.call(fn, *args, **kwargs)

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    def load_schema(self) -> dict[str, Any]:
        """Fetch the database property schema once.

        Raises:
            ValidationError: If no database ID is configured
            PermanentRemoteError: If the database cannot be retrieved
            TransientRemoteError: If retries are exhausted
        """
        if self._schema is not None:
            return self._schema

        if not self.database_id:
            raise ValidationError("No Notion database ID configured")

        try:
            database = self._call(self.client.retrieve_database, self.database_id)
        except (TransientRemoteError, PermanentRemoteError):
            raise
        except NotionAPIError as e:
            raise PermanentRemoteError(
                f"Cannot access database {self.database_id}: {e}",
                e.status_code,
                e.code,
                e.response,
            ) from e

        self._schema = database.get("properties", {})
        logger.debug(
            "Database properties: %s",
            ", ".join(f"{name} ({prop.get('type')})" for name, prop in self._schema.items()),
        )
        return self._schema

    def _options(self, field_name: str) -> tuple[str, list[str]]:
        """Get the kind ('select' or 'status') and option names of a field."""
        prop = self.load_schema().get(field_name, {})
        kind = "status" if prop.get("type") == "status" else "select"
        options = [opt.get("name", "") for opt in (prop.get(kind) or {}).get("options", [])]
        return kind, options

    def _select_value(self, field_name: str, value: str) -> dict[str, Any]:
        """Build a select or status value checked against the schema.

        Raises:
            SchemaMismatchError: If the value is not an allowed option
        """
        kind, options = self._options(field_name)
        for option in options:
            if option.lower() == value.lower():
                return {kind: {"name": option}}
        raise SchemaMismatchError(field_name, value, options)

    def _select_with_fallback(self, field_name: str, value: str) -> dict[str, Any] | None:
        try:
            return self._select_value(field_name, value)
        except SchemaMismatchError as e:
            if not e.options:
                logger.warning("%s; leaving %r unset", e, field_name)
                return None
            kind, _ = self._options(field_name)
            logger.warning("%s; using %r instead", e, e.options[0])
            return {kind: {"name": e.options[0]}}

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    def build_properties(self, document: Document) -> dict[str, Any]:
        """Build the page property values for a document."""
        mapping = self.mapping
        metadata = document.metadata
        schema = self.load_schema()
        properties: dict[str, Any] = {
            mapping.title: {"title": [{"text": {"content": document.title}}]},
            mapping.slug: {"rich_text": [{"text": {"content": document.slug}}]},
        }

        tags = metadata.get("tags")
        if mapping.tags and tags:
            if not isinstance(tags, (list, tuple)):
                tags = [tags]
            properties[mapping.tags] = {
                "multi_select": [{"name": str(tag)} for tag in tags if tag is not None]
            }

        if mapping.status:
            status = str(metadata.get("status") or self.settings.default_status)
            value = self._select_with_fallback(mapping.status, status)
            if value:
                properties[mapping.status] = value

        if mapping.type:
            doc_type = str(metadata.get("type") or self.settings.default_type)
            value = self._select_with_fallback(mapping.type, doc_type)
            if value:
                properties[mapping.type] = value

        if mapping.date and metadata.get("date"):
            properties[mapping.date] = {"date": {"start": format_date(metadata["date"])}}

        if mapping.managed:
            properties[mapping.managed] = {"checkbox": True}

        reserved = mapping.field_names()
        for key, value in metadata.items():
            if key.lower() in ROLE_KEYS or key in reserved:
                continue
            if key not in schema:
                logger.debug("Skipping %r: no such database property", key)
                continue
            prop = infer_property(value)
            if prop is not None:
                properties[key] = prop

        return properties

    # -------------------------------------------------------------------------
    # Upsert
    # -------------------------------------------------------------------------

    def find_page(self, slug: str) -> str | None:
        """Find the page ID for a slug, or None.

        Only the first match is used if the database holds duplicates.
        """
        response = self._call(
            self.client.query_database,
            self.database_id,
            {"property": self.mapping.slug, "rich_text": {"equals": slug}},
            page_size=1,
        )
        results = response.get("results", [])
        return results[0]["id"] if results else None

    def upsert(self, document: Document) -> str:
        """Create or update the page for a document.

        Args:
            document: Document to sync

        Returns:
            The page ID

        Raises:
            ValidationError: If the document or database ID is missing
            NotionAPIError: If a remote call fails
        """
        document.validate()
        if not self.database_id:
            raise ValidationError("No Notion database ID configured")

        page_id = self.find_page(document.slug)
        properties = self.build_properties(document)
        blocks = document.to_notion_blocks()

        if not page_id:
            batch_size = self.settings.batch_size
            page_id, created = self.create_page(document.slug, properties, blocks[:batch_size])
            if created:
                self.append_in_batches(page_id, blocks[batch_size:])
                logger.info("Created page: %s (%s)", document.title, document.slug)
                return page_id

        self._call(self.client.update_page, page_id, properties)
        self.replace_children(page_id, blocks)
        logger.info("Updated page: %s (%s)", document.title, document.slug)
        return page_id

    def create_page(
        self,
        slug: str,
        properties: dict[str, Any],
        children: list[dict[str, Any]],
    ) -> tuple[str, bool]:
        """Create the page for a slug, retrying without duplicating it.

        A timeout or server error may still have created the page, so before
        each retry the slug is looked up again. A 429 means the request was
        not processed and is retried directly.

        Returns:
            (page ID, True) for a new page, or (page ID, False) when a page
            for the slug turned up after a failed attempt

        Raises:
            TransientRemoteError: If every attempt failed transiently
        """
        attempt = 1
        while True:
            try:
                page = self.client.create_page(self.database_id, properties, children)
                return page["id"], True
            except TransientRemoteError as e:
                if attempt >= self.retry.attempts:
                    logger.error("Giving up creating %s after %d attempts: %s", slug, attempt, e)
                    raise
                wait = self.retry.backoff(attempt, e.retry_after)
                logger.warning(
                    "Create of %s failed, retrying in %.1fs (%d/%d): %s",
                    slug, wait, attempt, self.retry.attempts, e,
                )
                self.retry.sleep(wait)
                attempt += 1
                if e.status_code == 429:
                    continue

            page_id = self.find_page(slug)
            if page_id:
                logger.info("Page for %s exists after a failed create", slug)
                return page_id, False

    def replace_children(self, page_id: str, blocks: list[dict[str, Any]]) -> None:
        """Delete every existing child block, then append the new ones."""
        children = self._call(self.client.list_children, page_id)
        for child in children:
            try:
                self._call(self.client.delete_block, child["id"])
            except NotionAPIError as e:
                if e.status_code != 404:
                    raise
                logger.debug("Block %s already gone", child["id"])
        logger.debug("Deleted %d blocks from %s", len(children), page_id)
        self.append_in_batches(page_id, blocks)

    def append_in_batches(self, page_id: str, blocks: list[dict[str, Any]]) -> None:
        """Append blocks in order, at most ``batch_size`` per call."""
        batch_size = self.settings.batch_size
        for start in range(0, len(blocks), batch_size):
            chunk = blocks[start:start + batch_size]
            logger.debug(
                "Appending blocks %d-%d/%d",
                start + 1, start + len(chunk), len(blocks),
            )
            self._call(self.client.append_children, page_id, chunk)

    # -------------------------------------------------------------------------
    # Prune
    # -------------------------------------------------------------------------

    def prune(self, local_slugs: set[str], dry_run: bool = False) -> list[PrunedRecord]:
        """Archive managed pages whose slug no longer exists locally.

        Args:
            local_slugs: Slugs of every local document
            dry_run: If True, report without archiving

        Returns:
            The pages that were (or would be) archived

        Raises:
            ValidationError: If no managed checkbox is mapped
        """
        if not self.mapping.managed:
            raise ValidationError(
                "Pruning needs a 'managed' checkbox property in the property mapping"
            )
        self.load_schema()

        pages = self._call(
            self.client.query_all,
            self.database_id,
            {"property": self.mapping.managed, "checkbox": {"equals": True}},
        )

        pruned: list[PrunedRecord] = []
        for page in pages:
            slug = _text_value(page.get("properties", {}).get(self.mapping.slug, {}))
            if slug in local_slugs:
                continue
            if not dry_run:
                self._call(self.client.archive_page, page["id"])
                logger.info("Archived page %s (%s)", page["id"], slug or "no slug")
            pruned.append(PrunedRecord(page_id=page["id"], slug=slug, archived=not dry_run))

        return pruned
