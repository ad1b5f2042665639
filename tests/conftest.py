"""Shared fixtures: in-memory store, fake feed clients and orchestrators."""

from collections.abc import Callable, Iterable
from typing import Any

import pytest

from catalog_sync.clients.records import (
    CategoryRecord,
    DocumentRecord,
    ManufacturerRecord,
    ParameterRecord,
    ProductRecord,
    ScrapedCategoryNode,
    ScrapedProduct,
)
from catalog_sync.clients.scraped import dedupe_by_sku
from catalog_sync.repository.memory import InMemoryCatalogStore
from catalog_sync.sync.aliases import CategoryAliases
from catalog_sync.sync.orchestrator import CatalogSyncOrchestrator, SyncLocks, SyncOptions


# ============================================================================
# Fake feed clients
# ============================================================================


class FakeStructuredClient:
    """Structured feed client serving records from memory.

    Populate it with raw API-shaped dicts through the ``add_*`` helpers.
    """

    def __init__(self) -> None:
        self.categories: list[CategoryRecord] = []
        self.manufacturers: list[ManufacturerRecord] = []
        self.parameters: dict[int, list[ParameterRecord]] = {}
        self.products: dict[int, list[ProductRecord]] = {}
        self.documents: dict[int, list[DocumentRecord]] = {}
        self.calls: list[str] = []

    def add_category(self, **data: Any) -> None:
        self.categories.append(CategoryRecord.from_api_response(data))

    def add_manufacturer(self, **data: Any) -> None:
        self.manufacturers.append(ManufacturerRecord.from_api_response(data))

    def add_parameter(self, category_external_id: int, **data: Any) -> None:
        self.parameters.setdefault(category_external_id, []).append(
            ParameterRecord.from_api_response(data)
        )

    def add_product(self, category_external_id: int, **data: Any) -> None:
        data.setdefault("categories", [{"id": category_external_id}])
        self.products.setdefault(category_external_id, []).append(
            ProductRecord.from_api_response(data)
        )

    async def get_categories(self) -> list[CategoryRecord]:
        self.calls.append("categories")
        return list(self.categories)

    async def get_manufacturers(self) -> list[ManufacturerRecord]:
        self.calls.append("manufacturers")
        return list(self.manufacturers)

    async def get_parameters_by_category(self, category_external_id: int) -> list[ParameterRecord]:
        self.calls.append(f"parameters:{category_external_id}")
        return list(self.parameters.get(category_external_id, []))

    async def get_products_by_category(self, category_external_id: int) -> list[ProductRecord]:
        self.calls.append(f"products:{category_external_id}")
        return list(self.products.get(category_external_id, []))

    async def get_documents_by_product(self, product_external_id: int) -> list[DocumentRecord]:
        return list(self.documents.get(product_external_id, []))

    async def close(self) -> None:
        pass


class FakeScrapedClient:
    """Scraped feed client serving a category tree and browse items from memory."""

    def __init__(self) -> None:
        self.tree: list[ScrapedCategoryNode] = []
        self.items: dict[str, list[ScrapedProduct]] = {}
        self.invalidations = 0

    def set_tree(self, *roots: dict[str, Any]) -> None:
        self.tree = [ScrapedCategoryNode.from_api_response(root) for root in roots]

    def add_item(self, category_slug: str, **data: Any) -> None:
        self.items.setdefault(category_slug, []).append(
            ScrapedProduct.from_api_response(data, category_slug)
        )

    def invalidate_cache(self) -> int:
        self.invalidations += 1
        return 0

    async def get_category_tree(self) -> list[ScrapedCategoryNode]:
        return list(self.tree)

    async def get_products(self, category_slug: str) -> list[ScrapedProduct]:
        return list(self.items.get(category_slug, []))

    async def get_products_for_categories(self, category_slugs: Iterable[str]) -> list[ScrapedProduct]:
        products: list[ScrapedProduct] = []
        for slug in category_slugs:
            products.extend(await self.get_products(slug))
        return dedupe_by_sku(products)

    async def close(self) -> None:
        pass


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def store() -> InMemoryCatalogStore:
    """Create an empty in-memory store."""
    return InMemoryCatalogStore()


@pytest.fixture
def structured_client() -> FakeStructuredClient:
    """Create an empty structured feed."""
    return FakeStructuredClient()


@pytest.fixture
def scraped_client() -> FakeScrapedClient:
    """Create an empty scraped feed."""
    return FakeScrapedClient()


@pytest.fixture
def make_orchestrator(
    store: InMemoryCatalogStore,
    structured_client: FakeStructuredClient,
    scraped_client: FakeScrapedClient,
) -> Callable[..., CatalogSyncOrchestrator]:
    """Build orchestrators over the shared store and fake feeds.

    Every orchestrator gets its own lock registry unless one is passed, and
    chunk pauses are disabled.
    """

    def factory(
        aliases: dict[str, str] | None = None,
        locks: SyncLocks | None = None,
        **options: Any,
    ) -> CatalogSyncOrchestrator:
        options.setdefault("chunk_pause_seconds", 0)
        return CatalogSyncOrchestrator(
            store,
            structured_client=structured_client,
            scraped_client=scraped_client,
            options=SyncOptions(**options),
            aliases=CategoryAliases(aliases),
            locks=locks or SyncLocks(),
        )

    return factory


@pytest.fixture
def orchestrator(make_orchestrator) -> CatalogSyncOrchestrator:
    """Create an orchestrator with default options."""
    return make_orchestrator()
