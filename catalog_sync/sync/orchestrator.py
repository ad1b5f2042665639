"""Sync orchestrator: the trigger surface of the engine.

Each public method is one top-level sync call. A call holds the lock of its
sync type (in-process and in the store, so separate processes serialize too),
is recorded on the sync ledger, and returns the finished
``SyncRun``. Stages of one source depend on each other and run in the order
categories, manufacturers, parameters, products.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import structlog

from catalog_sync.clients.scraped import ScrapedFeedClient
from catalog_sync.clients.structured import StructuredFeedClient
from catalog_sync.domain.entities import Category, SyncRun, SyncType
from catalog_sync.domain.exceptions import (
    EntityNotFoundError,
    PrerequisiteMissingError,
    SyncAlreadyRunningError,
    SyncError,
)
from catalog_sync.repository.base import CatalogStore
from catalog_sync.sync.aliases import CategoryAliases
from catalog_sync.sync.categories import CategoryReconciler
from catalog_sync.sync.chunks import ChunkProcessor
from catalog_sync.sync.dedup import DuplicateRepair
from catalog_sync.sync.ledger import RunTracker, SyncLedger
from catalog_sync.sync.lookup import IdentityResolver
from catalog_sync.sync.manufacturers import ManufacturerReconciler
from catalog_sync.sync.parameters import ParameterReconciler, collect_parameter_values
from catalog_sync.sync.products import CategoryIndex, ProductReconciler
from catalog_sync.sync.stats import ItemOutcome, SyncStats

logger = structlog.get_logger()


# ============================================================================
# Locks and options
# ============================================================================


class SyncLocks:
    """One ``asyncio.Lock`` per sync type, shared by every orchestrator in this process."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, sync_type: str) -> asyncio.Lock:
        if sync_type not in self._locks:
            self._locks[sync_type] = asyncio.Lock()
        return self._locks[sync_type]

    def is_running(self, sync_type: str) -> bool:
        lock = self._locks.get(sync_type)
        return bool(lock and lock.locked())


# Global lock registry
_sync_locks = SyncLocks()


def get_sync_locks() -> SyncLocks:
    """Get the process-wide lock registry."""
    return _sync_locks


@dataclass
class SyncOptions:
    """Tunables of a sync call."""

    chunk_size: int = 30
    flush_every: int = 10
    max_chunk_seconds: float = 300.0
    chunk_pause_seconds: float = 0.5
    excluded_category_ids: frozenset[int] = field(default_factory=frozenset)
    scraped_root_slug: str | None = "videonablyudenie"

    @classmethod
    def from_settings(cls, settings: Any) -> "SyncOptions":
        return cls(
            chunk_size=settings.sync_batch_size,
            flush_every=settings.sync_flush_every,
            max_chunk_seconds=settings.sync_max_chunk_duration_seconds,
            chunk_pause_seconds=settings.sync_chunk_pause_seconds,
            excluded_category_ids=frozenset(settings.sync_excluded_category_ids),
            scraped_root_slug=settings.scraped_root_category_slug or None,
        )


def _stats_of(run: SyncRun) -> SyncStats:
    return SyncStats(
        processed=run.processed,
        created=run.created,
        updated=run.updated,
        errors=run.errors,
    )


# ============================================================================
# Orchestrator
# ============================================================================


class CatalogSyncOrchestrator:
    """Runs sync calls for both feeds against one store."""

    def __init__(
        self,
        store: CatalogStore,
        structured_client: StructuredFeedClient | None = None,
        scraped_client: ScrapedFeedClient | None = None,
        options: SyncOptions | None = None,
        aliases: CategoryAliases | None = None,
        locks: SyncLocks | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize orchestrator.

        Args:
            store: Catalog store.
            structured_client: Structured feed client, required for structured calls.
            scraped_client: Scraped feed client, required for scraped calls.
            options: Sync tunables.
            aliases: Manual category aliases for scraped product placement.
            locks: Lock registry; the process-wide one by default.
            sleep: Awaitable sleep for chunk pauses, replaceable in tests.
        """
        self.store = store
        self.structured_client = structured_client
        self.scraped_client = scraped_client
        self.options = options or SyncOptions()
        self.aliases = aliases or CategoryAliases()
        self.locks = locks or get_sync_locks()

        self.ledger = SyncLedger(store)
        self.dedup = DuplicateRepair(store)
        self.categories = CategoryReconciler(store, self.options.excluded_category_ids)
        self.manufacturers = ManufacturerReconciler(store)
        self.parameters = ParameterReconciler(store)
        self.products = ProductReconciler(store, self.manufacturers, self.parameters, self.dedup)
        self.chunks = ChunkProcessor(
            store,
            chunk_size=self.options.chunk_size,
            flush_every=self.options.flush_every,
            max_chunk_seconds=self.options.max_chunk_seconds,
            pause_seconds=self.options.chunk_pause_seconds,
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _serialized(self, sync_type: SyncType, wait: bool) -> AsyncIterator[None]:
        lock = self.locks.get(sync_type.value)
        if not wait and lock.locked():
            raise SyncAlreadyRunningError(sync_type.value)
        if lock.locked():
            logger.info("Waiting for running sync", sync_type=sync_type.value)
        async with lock:
            async with self.store.sync_lock(sync_type.value, wait=wait) as acquired:
                if not acquired:
                    raise SyncAlreadyRunningError(sync_type.value)
                yield

    async def _run(
        self,
        sync_type: SyncType,
        body: Callable[[RunTracker], Awaitable[None]],
        wait: bool = True,
    ) -> SyncRun:
        async with self._serialized(sync_type, wait):
            self.parameters.reset()
            self.manufacturers.reset()
            async with self.ledger.track(sync_type.value) as tracker:
                try:
                    await body(tracker)
                except Exception:
                    try:
                        await self.store.rollback()
                    except Exception as rollback_error:
                        logger.error("Rollback failed", error=str(rollback_error))
                    raise
            return tracker.run

    def _structured(self) -> StructuredFeedClient:
        if self.structured_client is None:
            raise SyncError("Structured feed client is not configured")
        return self.structured_client

    def _scraped(self) -> ScrapedFeedClient:
        if self.scraped_client is None:
            raise SyncError("Scraped feed client is not configured")
        return self.scraped_client

    async def _structured_categories(self, sync_type: SyncType) -> list[Category]:
        categories = [c for c in await self.store.list_categories() if c.external_id is not None]
        if not categories:
            raise PrerequisiteMissingError(sync_type.value, "no structured categories exist")
        return categories

    async def _scraped_categories(self, sync_type: SyncType) -> list[Category]:
        """Scraped categories below the root, whose items are browsed."""
        categories = [
            c
            for c in await self.store.list_categories()
            if c.scraped_id is not None and c.scraped_slug and c.parent_id is not None
        ]
        if not categories:
            raise PrerequisiteMissingError(sync_type.value, "no scraped categories exist")
        return categories

    # ========================================================================
    # Structured feed
    # ========================================================================

    async def sync_categories(self, wait: bool = True) -> SyncRun:
        """Reconcile the structured category tree."""

        async def body(tracker: RunTracker) -> None:
            records = await self._structured().get_categories()
            if not records:
                raise PrerequisiteMissingError(
                    SyncType.STRUCTURED_CATEGORIES.value,
                    "structured feed returned no categories",
                )
            resolver = await IdentityResolver.create(self.store)
            tracker.stats = await self.categories.sync_structured(records, resolver)
            if tracker.stats.skipped:
                tracker.note(f"Skipped {tracker.stats.skipped} excluded categories")

        return await self._run(SyncType.STRUCTURED_CATEGORIES, body, wait)

    async def sync_manufacturers(self, wait: bool = True) -> SyncRun:
        """Reconcile structured manufacturers."""

        async def body(tracker: RunTracker) -> None:
            records = await self._structured().get_manufacturers()
            if not records:
                tracker.note("No manufacturers returned")
                return
            resolver = await IdentityResolver.create(self.store)
            tracker.stats = await self.manufacturers.sync_structured(records, resolver)

        return await self._run(SyncType.STRUCTURED_MANUFACTURERS, body, wait)

    async def sync_parameters(self, wait: bool = True) -> SyncRun:
        """Reconcile structured parameters for every structured category."""

        async def body(tracker: RunTracker) -> None:
            client = self._structured()
            categories = await self._structured_categories(SyncType.STRUCTURED_PARAMETERS)
            resolver = await IdentityResolver.create(self.store)
            parameter_stats = SyncStats()

            async def handle(category: Category) -> ItemOutcome:
                records = await client.get_parameters_by_category(category.external_id)
                parameter_stats.merge(
                    await self.parameters.sync_structured_category(category, records, resolver)
                )
                return ItemOutcome.UPDATED

            category_stats = await self.chunks.run(
                categories, handle, describe=lambda c: c.external_id
            )
            parameter_stats.errors += category_stats.errors
            parameter_stats.abandoned += category_stats.abandoned
            tracker.stats = parameter_stats
            tracker.note(f"Categories processed: {category_stats.processed}")

        return await self._run(SyncType.STRUCTURED_PARAMETERS, body, wait)

    async def _sync_category_products(
        self,
        client: StructuredFeedClient,
        categories: list[Category],
        resolver: IdentityResolver,
        stats: SyncStats,
    ) -> None:
        seen: set[int] = set()
        for category in categories:
            records = await client.get_products_by_category(category.external_id)
            fresh = [r for r in records if r.external_id not in seen]
            seen.update(r.external_id for r in fresh)
            if not fresh:
                continue
            logger.info(
                "Syncing category products",
                category_id=category.id,
                external_id=category.external_id,
                products=len(fresh),
            )
            await self.chunks.run(
                fresh,
                lambda record: self.products.upsert_structured(record, resolver),
                describe=lambda record: record.external_id,
                stats=stats,
            )

    async def sync_products(self, wait: bool = True) -> SyncRun:
        """Reconcile structured products of every structured category."""

        async def body(tracker: RunTracker) -> None:
            client = self._structured()
            categories = await self._structured_categories(SyncType.STRUCTURED_PRODUCTS)
            resolver = await IdentityResolver.create(self.store)
            await self._sync_category_products(client, categories, resolver, tracker.stats)

        return await self._run(SyncType.STRUCTURED_PRODUCTS, body, wait)

    async def sync_products_by_category(self, category_id: int, wait: bool = True) -> SyncRun:
        """Reconcile structured products of one canonical category.

        Raises:
            EntityNotFoundError: If the category does not exist or is not
                known to the structured feed.
        """

        async def body(tracker: RunTracker) -> None:
            client = self._structured()
            category = await self.store.get_category(category_id)
            if category is None or category.external_id is None:
                raise EntityNotFoundError("Category", category_id)
            resolver = await IdentityResolver.create(self.store)
            await self._sync_category_products(client, [category], resolver, tracker.stats)
            tracker.note(f"Category {category.slug}")

        return await self._run(SyncType.STRUCTURED_CATEGORY_PRODUCTS, body, wait)

    async def fetch_all(self, wait: bool = True) -> SyncRun:
        """Run the whole structured sequence.

        Stops at the first stage that raises; stages already finished stay
        applied.
        """

        async def body(tracker: RunTracker) -> None:
            for step in (
                self.sync_categories,
                self.sync_manufacturers,
                self.sync_parameters,
                self.sync_products,
            ):
                run = await step(wait=wait)
                tracker.stats.merge(_stats_of(run))
                tracker.note(f"{run.sync_type}: {run.status.value}")

        return await self._run(SyncType.STRUCTURED_ALL, body, wait)

    # ========================================================================
    # Scraped feed
    # ========================================================================

    def invalidate_scraped_cache(self) -> int:
        """Clear the scraped feed's response cache."""
        return self._scraped().invalidate_cache()

    async def sync_scraped_categories(self, wait: bool = True) -> SyncRun:
        """Reconcile the scraped category tree under the configured root."""

        async def body(tracker: RunTracker) -> None:
            sync_type = SyncType.SCRAPED_CATEGORIES.value
            roots = await self._scraped().get_category_tree()
            if not roots:
                raise PrerequisiteMissingError(sync_type, "scraped feed returned no categories")
            root_slug = self.options.scraped_root_slug
            selected = [r for r in roots if r.slug == root_slug] if root_slug else roots
            if not selected:
                raise PrerequisiteMissingError(sync_type, f"root category '{root_slug}' not found")
            tracker.stats = await self.categories.sync_scraped(selected)

        return await self._run(SyncType.SCRAPED_CATEGORIES, body, wait)

    async def sync_scraped_manufacturers(self, wait: bool = True) -> SyncRun:
        """Create manufacturers named by scraped products."""

        async def body(tracker: RunTracker) -> None:
            client = self._scraped()
            categories = await self._scraped_categories(SyncType.SCRAPED_MANUFACTURERS)
            products = await client.get_products_for_categories(c.scraped_slug for c in categories)
            tracker.stats = await self.manufacturers.sync_names(p.manufacturer for p in products)

        return await self._run(SyncType.SCRAPED_MANUFACTURERS, body, wait)

    async def sync_scraped_parameters(self, wait: bool = True) -> SyncRun:
        """Infer parameters and options from scraped products, per category."""

        async def body(tracker: RunTracker) -> None:
            client = self._scraped()
            categories = await self._scraped_categories(SyncType.SCRAPED_PARAMETERS)
            parameter_stats = SyncStats()

            async def handle(category: Category) -> ItemOutcome:
                products = await client.get_products(category.scraped_slug)
                if not products:
                    return ItemOutcome.SKIPPED
                values = collect_parameter_values(products)
                parameter_stats.merge(await self.parameters.sync_scraped_category(category, values))
                return ItemOutcome.UPDATED

            category_stats = await self.chunks.run(
                categories, handle, describe=lambda c: c.scraped_slug
            )
            parameter_stats.errors += category_stats.errors
            parameter_stats.abandoned += category_stats.abandoned
            tracker.stats = parameter_stats
            tracker.note(f"Categories processed: {category_stats.processed}")

        return await self._run(SyncType.SCRAPED_PARAMETERS, body, wait)

    async def sync_scraped_products(self, wait: bool = True) -> SyncRun:
        """Reconcile scraped products, collapsing duplicates first."""

        async def body(tracker: RunTracker) -> None:
            client = self._scraped()
            categories = await self._scraped_categories(SyncType.SCRAPED_PRODUCTS)

            repaired = await self.dedup.run()
            await self.store.commit()
            if repaired.removed:
                tracker.note(f"Removed {repaired.removed} duplicate products")

            products = await client.get_products_for_categories(c.scraped_slug for c in categories)
            index = await CategoryIndex.build(self.store, self.aliases)
            await self.chunks.run(
                products,
                lambda item: self.products.upsert_scraped(item, index),
                describe=lambda item: item.sku,
                stats=tracker.stats,
            )
            logger.info("Category matching", **dict(index.match_stats))

        return await self._run(SyncType.SCRAPED_PRODUCTS, body, wait)

    async def fetch_all_scraped(self, wait: bool = True) -> SyncRun:
        """Run the whole scraped sequence on fresh feed responses."""

        async def body(tracker: RunTracker) -> None:
            self.invalidate_scraped_cache()
            for step in (
                self.sync_scraped_categories,
                self.sync_scraped_manufacturers,
                self.sync_scraped_parameters,
                self.sync_scraped_products,
            ):
                run = await step(wait=wait)
                tracker.stats.merge(_stats_of(run))
                tracker.note(f"{run.sync_type}: {run.status.value}")

        return await self._run(SyncType.SCRAPED_ALL, body, wait)

    async def recent_runs(self, limit: int = 20) -> list[SyncRun]:
        return await self.ledger.recent(limit)
