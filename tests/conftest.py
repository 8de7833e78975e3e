"""Shared fixtures: an in-memory stand-in for the Notion API."""

import copy
import itertools
from typing import Any

import pytest

from mdsync.core.client import MAX_PAGE_SIZE, NotionAPIError
from mdsync.core.reconciler import Reconciler
from mdsync.core.retry import RetryPolicy
from mdsync.models.config import PropertyMapping, SyncSettings


def default_schema() -> dict[str, Any]:
    return {
        "Name": {"type": "title", "title": {}},
        "slug": {"type": "rich_text", "rich_text": {}},
        "tags": {"type": "multi_select", "multi_select": {"options": []}},
        "status": {
            "type": "select",
            "select": {"options": [{"name": "Published"}, {"name": "Draft"}]},
        },
        "type": {
            "type": "select",
            "select": {"options": [{"name": "Post"}, {"name": "Page"}]},
        },
        "date": {"type": "date", "date": {}},
        "managed": {"type": "checkbox", "checkbox": {}},
        "summary": {"type": "rich_text", "rich_text": {}},
    }


def _plain_text(prop: dict[str, Any]) -> str:
    parts = prop.get("rich_text") or prop.get("title") or []
    return "".join(part["text"]["content"] for part in parts)


class FakeNotionClient:
    """Keeps pages and their child blocks in memory and records every call.

    ``failures`` maps a method name to errors raised, one per call, before
    the method does anything.
    """

    def __init__(self, schema: dict[str, Any] | None = None) -> None:
        self.schema = schema if schema is not None else default_schema()
        self.pages: dict[str, dict[str, Any]] = {}
        self.children: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.failures: dict[str, list[Exception]] = {}
        self._ids = itertools.count(1)

    def _enter(self, name: str, *details: Any) -> None:
        self.calls.append((name, *details))
        pending = self.failures.get(name)
        if pending:
            raise pending.pop(0)

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def live_pages(self) -> list[dict[str, Any]]:
        return [page for page in self.pages.values() if not page["archived"]]

    def content(self, page_id: str) -> list[dict[str, Any]]:
        """Get a page's blocks without their IDs."""
        return [
            {key: value for key, value in block.items() if key != "id"}
            for block in self.children.get(page_id, [])
        ]

    def _matches(self, page: dict[str, Any], filter_obj: dict[str, Any] | None) -> bool:
        if not filter_obj:
            return True
        prop = page["properties"].get(filter_obj["property"], {})
        if "rich_text" in filter_obj:
            return _plain_text(prop) == filter_obj["rich_text"]["equals"]
        if "checkbox" in filter_obj:
            return prop.get("checkbox", False) == filter_obj["checkbox"]["equals"]
        raise AssertionError(f"Unsupported filter: {filter_obj}")

    def retrieve_database(self, database_id: str) -> dict[str, Any]:
        self._enter("retrieve_database", database_id)
        return {"object": "database", "id": database_id, "properties": self.schema}

    def query_database(
        self,
        database_id: str,
        filter_obj: dict[str, Any] | None = None,
        start_cursor: str | None = None,
        page_size: int = MAX_PAGE_SIZE,
    ) -> dict[str, Any]:
        self._enter("query_database", filter_obj, page_size)
        results = [copy.deepcopy(p) for p in self.live_pages() if self._matches(p, filter_obj)]
        return {"results": results[:page_size], "has_more": False, "next_cursor": None}

    def query_all(
        self,
        database_id: str,
        filter_obj: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        self._enter("query_all", filter_obj)
        return [copy.deepcopy(p) for p in self.live_pages() if self._matches(p, filter_obj)]

    def create_page(
        self,
        database_id: str,
        properties: dict[str, Any],
        children: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        self._enter("create_page", len(children or []))
        if len(children or []) > MAX_PAGE_SIZE:
            raise ValueError("too many children")
        page_id = self._new_id("page")
        self.pages[page_id] = {
            "id": page_id,
            "properties": copy.deepcopy(properties),
            "archived": False,
        }
        self.children[page_id] = []
        self._add_children(page_id, children or [])
        return copy.deepcopy(self.pages[page_id])

    def update_page(self, page_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        self._enter("update_page", page_id)
        self.pages[page_id]["properties"].update(copy.deepcopy(properties))
        return copy.deepcopy(self.pages[page_id])

    def archive_page(self, page_id: str) -> dict[str, Any]:
        self._enter("archive_page", page_id)
        self.pages[page_id]["archived"] = True
        return copy.deepcopy(self.pages[page_id])

    def list_children(self, block_id: str) -> list[dict[str, Any]]:
        self._enter("list_children", block_id)
        return copy.deepcopy(self.children.get(block_id, []))

    def delete_block(self, block_id: str) -> dict[str, Any]:
        self._enter("delete_block", block_id)
        for blocks in self.children.values():
            for block in blocks:
                if block["id"] == block_id:
                    blocks.remove(block)
                    return {"id": block_id, "archived": True}
        raise NotionAPIError("Could not find block", status_code=404, code="object_not_found")

    def append_children(self, block_id: str, children: list[dict[str, Any]]) -> dict[str, Any]:
        self._enter("append_children", block_id, len(children))
        if len(children) > MAX_PAGE_SIZE:
            raise ValueError("too many children")
        self._add_children(block_id, children)
        return {"results": []}

    def _add_children(self, page_id: str, blocks: list[dict[str, Any]]) -> None:
        for block in blocks:
            stored = copy.deepcopy(block)
            stored["id"] = self._new_id("block")
            self.children[page_id].append(stored)


@pytest.fixture
def fake_client() -> FakeNotionClient:
    return FakeNotionClient()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_reconciler(fake_client: FakeNotionClient, sleeps: list[float]):
    """Build a reconciler over the fake client that never really sleeps."""

    def _make(
        mapping: PropertyMapping | None = None,
        settings: SyncSettings | None = None,
        database_id: str = "db-1",
    ) -> Reconciler:
        return Reconciler(
            fake_client,
            database_id,
            mapping=mapping,
            settings=settings,
            retry=RetryPolicy(attempts=3, delay=1.0, factor=2.0, sleep=sleeps.append),
        )

    return _make
