"""Tests for the upsert reconciler."""

import logging
from datetime import date

import pytest

from mdsync.core.client import NotionAPIError, PermanentRemoteError, TransientRemoteError
from mdsync.core.reconciler import infer_property
from mdsync.models.config import PropertyMapping, SyncSettings
from mdsync.models.document import Block, Document, ValidationError


def make_document(slug: str = "my-post", texts: tuple[str, ...] = ("Hello",), **metadata) -> Document:
    return Document(
        title=metadata.pop("title", "My Post"),
        slug=slug,
        metadata=metadata,
        blocks=tuple(Block.paragraph(text) for text in texts),
    )


def texts_of(blocks: list[dict]) -> list[str]:
    return [block["paragraph"]["rich_text"][0]["text"]["content"] for block in blocks]


class TestUpsert:
    """Tests for create and update."""

    def test_creates_missing_page(self, fake_client, make_reconciler) -> None:
        reconciler = make_reconciler()
        document = make_document(texts=("one", "two"))

        page_id = reconciler.upsert(document)

        assert list(fake_client.pages) == [page_id]
        assert fake_client.content(page_id) == document.to_notion_blocks()
        props = fake_client.pages[page_id]["properties"]
        assert props["Name"] == {"title": [{"text": {"content": "My Post"}}]}
        assert props["slug"] == {"rich_text": [{"text": {"content": "my-post"}}]}

    def test_lookup_uses_single_result_query(self, fake_client, make_reconciler) -> None:
        make_reconciler().upsert(make_document())

        query = next(call for call in fake_client.calls if call[0] == "query_database")
        assert query[1] == {"property": "slug", "rich_text": {"equals": "my-post"}}
        assert query[2] == 1

    def test_update_replaces_children(self, fake_client, make_reconciler) -> None:
        reconciler = make_reconciler()
        page_id = reconciler.upsert(make_document(texts=("old 1", "old 2", "old 3")))
        other_id = reconciler.upsert(make_document(slug="other", texts=("keep me",)))

        new_document = make_document(texts=("new 1", "new 2"))
        assert reconciler.upsert(new_document) == page_id

        assert texts_of(fake_client.content(page_id)) == ["new 1", "new 2"]
        assert texts_of(fake_client.content(other_id)) == ["keep me"]
        assert len(fake_client.live_pages()) == 2

    def test_update_call_order(self, fake_client, make_reconciler) -> None:
        reconciler = make_reconciler()
        reconciler.upsert(make_document(texts=("a",)))
        fake_client.calls.clear()

        reconciler.upsert(make_document(texts=("b",)))

        assert fake_client.call_names() == [
            "query_database",
            "update_page",
            "list_children",
            "delete_block",
            "append_children",
        ]

    def test_sequential_upserts_never_duplicate(self, fake_client, make_reconciler) -> None:
        reconciler = make_reconciler()

        first = reconciler.upsert(make_document())
        second = reconciler.upsert(make_document(texts=("changed",)))

        assert first == second
        assert len(fake_client.pages) == 1

    def test_idempotent(self, fake_client, make_reconciler) -> None:
        reconciler = make_reconciler()
        document = make_document(texts=("a", "b", "c"), tags=["x"], date=date(2024, 3, 1))

        page_id = reconciler.upsert(document)
        props_after_first = fake_client.pages[page_id]["properties"]
        content_after_first = fake_client.content(page_id)

        reconciler.upsert(document)

        assert fake_client.pages[page_id]["properties"] == props_after_first
        assert fake_client.content(page_id) == content_after_first

    def test_create_batches(self, fake_client, make_reconciler) -> None:
        texts = tuple(f"p{i}" for i in range(120))

        page_id = make_reconciler().upsert(make_document(texts=texts))

        assert ("create_page", 50) in fake_client.calls
        appends = [call[2] for call in fake_client.calls if call[0] == "append_children"]
        assert appends == [50, 20]
        assert texts_of(fake_client.content(page_id)) == list(texts)

    def test_update_batches(self, fake_client, make_reconciler) -> None:
        reconciler = make_reconciler()
        reconciler.upsert(make_document())
        fake_client.calls.clear()

        texts = tuple(f"p{i}" for i in range(120))
        page_id = reconciler.upsert(make_document(texts=texts))

        appends = [call[2] for call in fake_client.calls if call[0] == "append_children"]
        assert appends == [50, 50, 20]
        assert texts_of(fake_client.content(page_id)) == list(texts)

    def test_custom_batch_size(self, fake_client, make_reconciler) -> None:
        reconciler = make_reconciler(settings=SyncSettings(batch_size=100))

        reconciler.upsert(make_document(texts=tuple(str(i) for i in range(150))))

        assert ("create_page", 100) in fake_client.calls
        assert [c[2] for c in fake_client.calls if c[0] == "append_children"] == [50]

    def test_empty_document_creates_empty_page(self, fake_client, make_reconciler) -> None:
        page_id = make_reconciler().upsert(make_document(texts=()))

        assert fake_client.content(page_id) == []
        assert "append_children" not in fake_client.call_names()

    def test_missing_child_is_skipped(self, fake_client, make_reconciler, monkeypatch) -> None:
        reconciler = make_reconciler()
        page_id = reconciler.upsert(make_document(texts=("old",)))

        real_list = fake_client.list_children
        monkeypatch.setattr(
            fake_client,
            "list_children",
            lambda block_id: real_list(block_id) + [{"id": "already-gone"}],
        )

        reconciler.upsert(make_document(texts=("new",)))

        assert texts_of(fake_client.content(page_id)) == ["new"]

    def test_other_delete_errors_propagate(self, fake_client, make_reconciler) -> None:
        reconciler = make_reconciler()
        reconciler.upsert(make_document())
        fake_client.failures["delete_block"] = [NotionAPIError("bad request", status_code=400)]

        with pytest.raises(NotionAPIError, match="bad request"):
            reconciler.upsert(make_document())

    def test_transient_errors_retried(self, fake_client, make_reconciler, sleeps) -> None:
        fake_client.failures["query_database"] = [
            TransientRemoteError("rate limited", status_code=429),
        ]

        make_reconciler().upsert(make_document())

        assert sleeps == [1.0]
        assert len(fake_client.pages) == 1

    def test_create_applied_before_timeout_not_duplicated(
        self, fake_client, make_reconciler, sleeps, monkeypatch
    ) -> None:
        create = fake_client.create_page
        created = []

        def create_then_time_out(*args, **kwargs):
            page = create(*args, **kwargs)
            if not created:
                created.append(page["id"])
                raise TransientRemoteError("read timed out")
            return page

        monkeypatch.setattr(fake_client, "create_page", create_then_time_out)

        page_id = make_reconciler().upsert(make_document(slug="t", texts=("One", "Two")))

        assert len(fake_client.live_pages()) == 1
        assert page_id == created[0]
        assert sleeps == [1.0]
        assert fake_client.call_names().count("query_database") == 2
        assert texts_of(fake_client.content(page_id)) == ["One", "Two"]

    def test_rate_limited_create_retried_without_lookup(
        self, fake_client, make_reconciler, sleeps
    ) -> None:
        fake_client.failures["create_page"] = [
            TransientRemoteError("rate limited", status_code=429, retry_after=5.0),
        ]

        make_reconciler().upsert(make_document())

        assert sleeps == [5.0]
        assert len(fake_client.pages) == 1
        assert fake_client.call_names().count("query_database") == 1
        assert fake_client.call_names().count("create_page") == 2

    def test_create_gives_up_after_attempts(self, fake_client, make_reconciler, sleeps) -> None:
        fake_client.failures["create_page"] = [
            TransientRemoteError("bad gateway", status_code=502) for _ in range(3)
        ]

        with pytest.raises(TransientRemoteError, match="bad gateway"):
            make_reconciler().upsert(make_document())

        assert sleeps == [1.0, 2.0]
        assert fake_client.pages == {}


class TestPreconditions:
    """Tests for validation before any write."""

    def test_missing_database_id(self, fake_client, make_reconciler) -> None:
        with pytest.raises(ValidationError, match="database"):
            make_reconciler(database_id="").upsert(make_document())
        assert fake_client.calls == []

    def test_empty_slug(self, fake_client, make_reconciler) -> None:
        with pytest.raises(ValidationError, match="slug"):
            make_reconciler().upsert(make_document(slug=""))
        assert fake_client.calls == []

    def test_unreachable_database_is_permanent(self, fake_client, make_reconciler) -> None:
        fake_client.failures["retrieve_database"] = [
            NotionAPIError("Could not find database", status_code=404),
        ]

        with pytest.raises(PermanentRemoteError, match="Cannot access database"):
            make_reconciler().load_schema()

    def test_schema_loaded_once(self, fake_client, make_reconciler) -> None:
        reconciler = make_reconciler()
        reconciler.upsert(make_document(slug="a"))
        reconciler.upsert(make_document(slug="b"))

        assert fake_client.call_names().count("retrieve_database") == 1


class TestProperties:
    """Tests for property building."""

    def test_defaults_for_status_and_type(self, make_reconciler) -> None:
        props = make_reconciler().build_properties(make_document())

        # Matched case-insensitively, sent in the database's spelling
        assert props["status"] == {"select": {"name": "Published"}}
        assert props["type"] == {"select": {"name": "Post"}}
        assert "date" not in props
        assert "tags" not in props

    def test_explicit_values(self, make_reconciler) -> None:
        document = make_document(status="draft", type="Page", tags="solo", date=date(2024, 1, 2))
        props = make_reconciler().build_properties(document)

        assert props["status"] == {"select": {"name": "Draft"}}
        assert props["type"] == {"select": {"name": "Page"}}
        assert props["tags"] == {"multi_select": [{"name": "solo"}]}
        assert props["date"] == {"date": {"start": "2024-01-02"}}

    def test_status_kind(self, fake_client, make_reconciler) -> None:
        fake_client.schema["status"] = {
            "type": "status",
            "status": {"options": [{"name": "Done"}, {"name": "Published"}]},
        }

        props = make_reconciler().build_properties(make_document())

        assert props["status"] == {"status": {"name": "Published"}}

    def test_unknown_option_falls_back(self, make_reconciler, caplog) -> None:
        with caplog.at_level(logging.WARNING):
            props = make_reconciler().build_properties(make_document(status="archived"))

        assert props["status"] == {"select": {"name": "Published"}}
        assert "'archived' is not an option" in caplog.text

    def test_no_options_leaves_field_unset(self, fake_client, make_reconciler) -> None:
        fake_client.schema["type"] = {"type": "select", "select": {"options": []}}

        props = make_reconciler().build_properties(make_document())

        assert "type" not in props

    def test_unmapped_roles_not_written(self, make_reconciler) -> None:
        mapping = PropertyMapping(status="", type="", date="", tags="")
        props = make_reconciler(mapping=mapping).build_properties(
            make_document(tags=["a"], date="2024-01-01")
        )

        assert set(props) == {"Name", "slug"}

    def test_custom_field_names(self, fake_client, make_reconciler) -> None:
        fake_client.schema["Tags"] = {"type": "multi_select", "multi_select": {"options": []}}
        mapping = PropertyMapping(title="Title", slug="Slug", tags="Tags")

        props = make_reconciler(mapping=mapping).build_properties(make_document(tags=["a", "b"]))

        assert props["Title"]["title"][0]["text"]["content"] == "My Post"
        assert props["Slug"]["rich_text"][0]["text"]["content"] == "my-post"
        assert props["Tags"] == {"multi_select": [{"name": "a"}, {"name": "b"}]}

    def test_managed_checkbox(self, make_reconciler) -> None:
        props = make_reconciler(mapping=PropertyMapping(managed="managed")).build_properties(
            make_document()
        )

        assert props["managed"] == {"checkbox": True}

    def test_pass_through_only_schema_fields(self, make_reconciler) -> None:
        document = make_document(summary="Short", unknown="dropped", author="Ada")

        props = make_reconciler().build_properties(document)

        assert props["summary"] == {"rich_text": [{"text": {"content": "Short"}}]}
        assert "unknown" not in props
        assert "author" not in props

    def test_infer_property(self) -> None:
        assert infer_property(["a", None]) == {"multi_select": [{"name": "a"}]}
        assert infer_property({"number": 3}) == {"number": 3}
        assert infer_property(date(2024, 2, 3)) == {"rich_text": [{"text": {"content": "2024-02-03"}}]}
        assert infer_property(None) is None


class TestPrune:
    """Tests for archiving orphaned pages."""

    def test_requires_managed_role(self, make_reconciler) -> None:
        with pytest.raises(ValidationError, match="managed"):
            make_reconciler().prune({"a"})

    def test_archives_only_managed_missing_pages(self, fake_client, make_reconciler) -> None:
        reconciler = make_reconciler(mapping=PropertyMapping(managed="managed"))
        keep_id = reconciler.upsert(make_document(slug="keep"))
        gone_id = reconciler.upsert(make_document(slug="gone"))
        manual = fake_client.create_page(
            "db-1",
            {"slug": {"rich_text": [{"text": {"content": "manual"}}]}},
        )

        pruned = reconciler.prune({"keep"})

        assert [(p.page_id, p.slug, p.archived) for p in pruned] == [(gone_id, "gone", True)]
        assert fake_client.pages[gone_id]["archived"]
        assert not fake_client.pages[keep_id]["archived"]
        assert not fake_client.pages[manual["id"]]["archived"]

    def test_dry_run(self, fake_client, make_reconciler) -> None:
        reconciler = make_reconciler(mapping=PropertyMapping(managed="managed"))
        page_id = reconciler.upsert(make_document(slug="gone"))

        pruned = reconciler.prune(set(), dry_run=True)

        assert [p.archived for p in pruned] == [False]
        assert not fake_client.pages[page_id]["archived"]
        assert "archive_page" not in fake_client.call_names()
