"""Tests for category reconciliation."""

import pytest

from catalog_sync.clients.records import CategoryRecord, ScrapedCategoryNode
from catalog_sync.domain.entities import Category
from catalog_sync.sync.categories import CategoryReconciler, creates_cycle
from catalog_sync.sync.lookup import IdentityResolver


def record(external_id: int, parent: int, name: str, **extra) -> CategoryRecord:
    return CategoryRecord.from_api_response(
        {"id": external_id, "parent": parent, "name": [{"language_code": "en", "text": name}], **extra}
    )


def node(raw_id, slug, name, count=1, children=()) -> ScrapedCategoryNode:
    return ScrapedCategoryNode(
        raw_id=raw_id, slug=slug, name=name, count=count, children=list(children)
    )


async def sync_structured(store, records, excluded=()):
    reconciler = CategoryReconciler(store, excluded)
    return await reconciler.sync_structured(records, await IdentityResolver.create(store))


class TestCreatesCycle:
    """Tests for the cycle guard."""

    def test_detects_cycle(self) -> None:
        by_id = {
            1: Category(id=1, parent_id=None),
            2: Category(id=2, parent_id=1),
            3: Category(id=3, parent_id=2),
        }
        assert creates_cycle(1, 3, by_id)
        assert not creates_cycle(3, 1, by_id)

    def test_terminates_on_corrupt_chain(self) -> None:
        by_id = {1: Category(id=1, parent_id=2), 2: Category(id=2, parent_id=1)}
        assert not creates_cycle(5, 1, by_id)


class TestStructuredCategories:
    """Tests for structured category reconciliation."""

    @pytest.mark.asyncio
    async def test_links_child_to_parent(self, store) -> None:
        stats = await sync_structured(store, [record(1, 0, "Cameras"), record(2, 1, "IP Cameras")])

        child = await store.find_category_by_external_id(2)
        parent = await store.get_category(child.parent_id)
        assert parent.external_id == 1
        assert parent.parent_id is None
        assert stats.created == 2

    @pytest.mark.asyncio
    async def test_child_before_parent_in_feed(self, store) -> None:
        await sync_structured(store, [record(2, 1, "IP Cameras"), record(1, 0, "Cameras")])

        child = await store.find_category_by_external_id(2)
        parent = await store.find_category_by_external_id(1)
        assert child.parent_id == parent.id

    @pytest.mark.asyncio
    async def test_second_run_creates_nothing(self, store) -> None:
        records = [record(1, 0, "Cameras"), record(2, 1, "IP Cameras")]
        await sync_structured(store, records)

        stats = await sync_structured(store, records)

        assert stats.created == 0
        assert stats.updated == 2
        assert len(store.categories) == 2

    @pytest.mark.asyncio
    async def test_identity_stable_when_name_changes(self, store) -> None:
        await sync_structured(store, [record(1, 0, "Cameras")])
        original = await store.find_category_by_external_id(1)

        await sync_structured(store, [record(1, 0, "Security Cameras")])

        renamed = await store.find_category_by_external_id(1)
        assert renamed.id == original.id
        assert renamed.name == "Security Cameras"
        assert renamed.slug == "security-cameras"

    @pytest.mark.asyncio
    async def test_no_dangling_parents(self, store) -> None:
        records = [
            record(1, 0, "Cameras"),
            record(2, 1, "IP Cameras"),
            record(3, 2, "Dome"),
            record(4, 99, "Orphan"),
        ]
        await sync_structured(store, records)

        for category in store.categories.values():
            if category.parent_id is not None:
                assert category.parent_id in store.categories
        orphan = await store.find_category_by_external_id(4)
        assert orphan.parent_id is None

    @pytest.mark.asyncio
    async def test_refuses_cycles_and_self_parent(self, store) -> None:
        await sync_structured(store, [record(1, 0, "A"), record(2, 1, "B")])

        await sync_structured(store, [record(1, 2, "A"), record(2, 1, "B"), record(3, 3, "C")])

        a = await store.find_category_by_external_id(1)
        b = await store.find_category_by_external_id(2)
        c = await store.find_category_by_external_id(3)
        assert a.parent_id is None
        assert b.parent_id == a.id
        assert c.parent_id is None

    @pytest.mark.asyncio
    async def test_duplicate_names_get_unique_slugs(self, store) -> None:
        await sync_structured(store, [record(1, 0, "Accessories"), record(2, 0, "Accessories")])

        slugs = sorted(c.slug for c in store.categories.values())
        assert slugs == ["accessories", "accessories-2"]

    @pytest.mark.asyncio
    async def test_excluded_categories_are_skipped(self, store) -> None:
        stats = await sync_structured(
            store, [record(1, 0, "Cameras"), record(2, 0, "Promo")], excluded=[2]
        )

        assert stats.skipped == 1
        assert await store.find_category_by_external_id(2) is None

    @pytest.mark.asyncio
    async def test_nameless_category_is_an_error(self, store) -> None:
        nameless = CategoryRecord(external_id=5, names={})

        stats = await sync_structured(store, [record(1, 0, "Cameras"), nameless])

        assert stats.errors == 1
        assert stats.created == 1


class TestScrapedCategories:
    """Tests for scraped category reconciliation."""

    @pytest.mark.asyncio
    async def test_same_raw_id_under_different_parents(self, store) -> None:
        tree = node(
            "1",
            "root",
            "Root",
            children=[
                node("10", "cameras", "Cameras", children=[node("7", "ip", "IP")]),
                node("20", "recorders", "Recorders", children=[node("7", "ip", "IP")]),
            ],
        )

        await CategoryReconciler(store).sync_scraped([tree])

        ip_categories = [c for c in store.categories.values() if c.scraped_id == "7"]
        assert len(ip_categories) == 2
        assert len({c.parent_id for c in ip_categories}) == 2
        assert sorted(c.slug for c in ip_categories) == ["root-cameras-ip", "root-recorders-ip"]

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, store) -> None:
        tree = node("1", "root", "Root", children=[node("10", "cameras", "Cameras", count=5)])
        reconciler = CategoryReconciler(store)
        await reconciler.sync_scraped([tree])
        ids = sorted(store.categories)

        stats = await reconciler.sync_scraped([tree])

        assert stats.created == 0
        assert stats.updated == 2
        assert sorted(store.categories) == ids

    @pytest.mark.asyncio
    async def test_count_drives_visibility_and_order(self, store) -> None:
        tree = node("1", "root", "Root", count=3, children=[node("10", "empty", "Empty", count=0)])

        await CategoryReconciler(store).sync_scraped([tree])

        empty = await store.find_category_by_scraped_key("10", 1)
        assert empty.visible is False
        assert empty.sort_order == 0
        root = await store.find_category_by_scraped_key("1", None)
        assert root.sort_order == 3

    @pytest.mark.asyncio
    async def test_incomplete_nodes_are_skipped(self, store) -> None:
        tree = node("1", "root", "Root", children=[node(None, "x", "X"), node("3", "y", None)])

        stats = await CategoryReconciler(store).sync_scraped([tree])

        assert stats.skipped == 2
        assert len(store.categories) == 1

    @pytest.mark.asyncio
    async def test_adopts_same_named_category(self, store) -> None:
        existing = await store.save_category(
            Category(slug="cameras", names={"en": "Cameras"}, external_id=1)
        )

        await CategoryReconciler(store).sync_scraped([node("9", "kameri", "Cameras")])

        assert len(store.categories) == 1
        adopted = await store.get_category(existing.id)
        assert adopted.scraped_id == "9"
        assert adopted.external_id == 1
        assert adopted.slug == "cameras"
