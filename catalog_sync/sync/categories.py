"""Category reconciliation for both feeds.

Structured categories arrive as a flat list where a child may precede its
parent, so they are reconciled in two passes: every node is upserted first,
then parent links are resolved against the nodes of pass one.

Scraped categories arrive as a nested tree of up to three levels whose raw
ids repeat under different parents. A scraped category is identified by
``(raw id, parent internal id)`` and the tree is walked depth first, parent
before children, in a single pass.
"""

from collections.abc import Iterable

import structlog

from catalog_sync.clients.records import CategoryRecord, ScrapedCategoryNode
from catalog_sync.domain.entities import Category
from catalog_sync.domain.exceptions import MalformedRecordError
from catalog_sync.repository.base import CatalogStore
from catalog_sync.sync.lookup import IdentityResolver
from catalog_sync.sync.slugs import make_slug, normalize_text, unique_slug
from catalog_sync.sync.stats import ItemOutcome, SyncStats

logger = structlog.get_logger()

MAX_SCRAPED_DEPTH = 3


def creates_cycle(child_id: int, parent_id: int, by_id: dict[int, Category]) -> bool:
    """Tell whether making ``parent_id`` the parent of ``child_id`` closes a loop.

    Walks up from the proposed parent with a visited-set guard, so an
    already-corrupt chain cannot loop forever.
    """
    visited: set[int] = set()
    current: int | None = parent_id
    while current is not None and current not in visited:
        if current == child_id:
            return True
        visited.add(current)
        node = by_id.get(current)
        current = node.parent_id if node else None
    return False


class CategoryReconciler:
    """Builds and updates the canonical category tree."""

    def __init__(self, store: CatalogStore, excluded_external_ids: Iterable[int] = ()) -> None:
        self.store = store
        self.excluded_external_ids = frozenset(excluded_external_ids)

    async def _slug_for(self, category: Category, base: str) -> str:
        async def is_taken(slug: str) -> bool:
            owner = await self.store.find_category_by_slug(slug)
            return owner is not None and owner.id != category.id

        return await unique_slug(base, is_taken)

    # ========================================================================
    # Structured feed
    # ========================================================================

    async def sync_structured(
        self, records: list[CategoryRecord], resolver: IdentityResolver
    ) -> SyncStats:
        """Reconcile the structured category list.

        Args:
            records: Categories from the feed, in any order.
            resolver: Identity lookup for this run.

        Returns:
            Counters. Excluded categories are counted as skipped.
        """
        stats = SyncStats()
        by_external: dict[int, Category] = {}

        for record in records:
            if record.external_id in self.excluded_external_ids:
                stats.record(ItemOutcome.SKIPPED)
                logger.debug("Skipping excluded category", external_id=record.external_id)
                continue
            try:
                async with self.store.savepoint():
                    category, outcome = await self._upsert_structured(record, resolver)
                by_external[record.external_id] = category
                stats.record(outcome)
            except MalformedRecordError as e:
                stats.record_error()
                logger.warning("Skipping malformed category", external_id=record.external_id, reason=e.reason)
            except Exception as e:
                stats.record_error()
                logger.error("Failed to sync category", external_id=record.external_id, error=str(e))

        await self.store.flush()
        linked = await self._link_parents(records, by_external, resolver, stats)
        await self.store.commit()

        logger.info(
            "Structured categories reconciled",
            created=stats.created,
            updated=stats.updated,
            skipped=stats.skipped,
            errors=stats.errors,
            parents_linked=linked,
        )
        return stats

    async def _upsert_structured(
        self, record: CategoryRecord, resolver: IdentityResolver
    ) -> tuple[Category, ItemOutcome]:
        if not record.names:
            raise MalformedRecordError("category", "missing name", record.external_id)

        category = await resolver.category(record.external_id)
        if category is None:
            category = Category(external_id=record.external_id, names=dict(record.names))
            outcome = ItemOutcome.CREATED
            name_changed = True
        else:
            name_changed = category.names != record.names
            category.names = dict(record.names)
            outcome = ItemOutcome.UPDATED

        category.sort_order = record.sort_order
        category.visible = record.visible
        if name_changed or not category.slug:
            category.slug = await self._slug_for(category, make_slug(category.name))

        await self.store.save_category(category)
        return category, outcome

    async def _link_parents(
        self,
        records: list[CategoryRecord],
        by_external: dict[int, Category],
        resolver: IdentityResolver,
        stats: SyncStats,
    ) -> int:
        by_id = {c.id: c for c in await self.store.list_categories()}
        linked = 0

        for record in records:
            upserted = by_external.get(record.external_id)
            if upserted is None:
                continue
            child = by_id[upserted.id]

            if record.parent_external_id is None:
                target_id = None
            else:
                parent = by_external.get(record.parent_external_id)
                if parent is None:
                    parent = await resolver.category(record.parent_external_id)
                if parent is None:
                    logger.warning(
                        "Parent category not found",
                        external_id=record.external_id,
                        parent_external_id=record.parent_external_id,
                    )
                    continue
                if parent.id == child.id or creates_cycle(child.id, parent.id, by_id):
                    logger.warning(
                        "Refusing parent link that would create a cycle",
                        external_id=record.external_id,
                        parent_external_id=record.parent_external_id,
                    )
                    continue
                target_id = parent.id

            if child.parent_id == target_id:
                continue
            child.parent_id = target_id
            try:
                async with self.store.savepoint():
                    await self.store.save_category(child)
                linked += 1
            except Exception as e:
                stats.record_error()
                logger.error("Failed to link parent category", external_id=record.external_id, error=str(e))

        return linked

    # ========================================================================
    # Scraped feed
    # ========================================================================

    async def sync_scraped(self, roots: list[ScrapedCategoryNode]) -> SyncStats:
        """Reconcile scraped category subtrees.

        A structured category with the same name under the same parent is
        adopted instead of creating a second category for it.

        Args:
            roots: Root nodes to import, with their subtrees.

        Returns:
            Counters. Nodes missing an id, slug or name are counted as skipped.
        """
        stats = SyncStats()
        adoptable: dict[tuple[int | None, str], Category] = {}
        for category in await self.store.list_categories():
            if category.scraped_id is None:
                for name in category.names.values():
                    adoptable.setdefault((category.parent_id, normalize_text(name)), category)

        for root in roots:
            await self._upsert_node(root, None, 1, stats, adoptable)

        await self.store.commit()
        logger.info(
            "Scraped categories reconciled",
            created=stats.created,
            updated=stats.updated,
            skipped=stats.skipped,
            errors=stats.errors,
        )
        return stats

    async def _upsert_node(
        self,
        node: ScrapedCategoryNode,
        parent: Category | None,
        depth: int,
        stats: SyncStats,
        adoptable: dict[tuple[int | None, str], Category],
    ) -> None:
        if depth > MAX_SCRAPED_DEPTH:
            logger.warning("Ignoring category nested too deep", raw_id=node.raw_id, depth=depth)
            return
        if not node.raw_id or not node.slug or not node.name:
            stats.record(ItemOutcome.SKIPPED)
            logger.warning(
                "Skipping incomplete scraped category",
                raw_id=node.raw_id,
                slug=node.slug,
                name=node.name,
            )
            return

        try:
            async with self.store.savepoint():
                category, outcome = await self._upsert_scraped(node, parent, adoptable)
            stats.record(outcome)
        except Exception as e:
            stats.record_error()
            logger.error("Failed to sync scraped category", raw_id=node.raw_id, slug=node.slug, error=str(e))
            return

        for child in node.children:
            await self._upsert_node(child, category, depth + 1, stats, adoptable)

    async def _upsert_scraped(
        self,
        node: ScrapedCategoryNode,
        parent: Category | None,
        adoptable: dict[tuple[int | None, str], Category],
    ) -> tuple[Category, ItemOutcome]:
        parent_id = parent.id if parent else None
        category = await self.store.find_category_by_scraped_key(node.raw_id, parent_id)
        outcome = ItemOutcome.UPDATED

        if category is None:
            category = adoptable.pop((parent_id, normalize_text(node.name)), None)
            if category is not None:
                logger.debug("Adopting existing category", category_id=category.id, raw_id=node.raw_id)

        if category is None:
            category = Category(names={"bg": node.name, "en": node.name}, parent_id=parent_id)
            base = f"{parent.slug}-{node.slug}" if parent else node.slug
            category.slug = await self._slug_for(category, make_slug(base))
            outcome = ItemOutcome.CREATED
        elif category.scraped_id is not None:
            category.names["bg"] = node.name
            category.names.setdefault("en", node.name)

        if not category.slug:
            category.slug = await self._slug_for(category, make_slug(node.slug))
        category.scraped_id = node.raw_id
        category.scraped_slug = node.slug
        category.sort_order = node.count
        category.visible = node.count > 0

        await self.store.save_category(category)
        return category, outcome
