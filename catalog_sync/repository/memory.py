"""In-memory catalog store.

Used by tests and dry runs. Entities are copied on the way in and out so a
caller mutating an entity without saving it does not change stored state,
matching how the SQL store behaves.
"""

import asyncio
import copy
import itertools
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TypeVar

from catalog_sync.domain.entities import (
    Category,
    Manufacturer,
    Parameter,
    ParameterOption,
    Product,
    ProductParameter,
    SyncRun,
)
from catalog_sync.repository.base import CatalogStore

T = TypeVar("T")


def _copy(entity: T) -> T:
    return copy.deepcopy(entity)


class InMemoryCatalogStore(CatalogStore):
    """Dictionary-backed store with auto-increment ids.

    Writes are applied immediately; ``flush``, ``commit`` and ``rollback``
    only count calls so tests can assert on chunk boundaries.
    """

    def __init__(self) -> None:
        self.categories: dict[int, Category] = {}
        self.manufacturers: dict[int, Manufacturer] = {}
        self.parameters: dict[int, Parameter] = {}
        self.options: dict[int, ParameterOption] = {}
        self.products: dict[int, Product] = {}
        self.sync_runs: dict[int, SyncRun] = {}
        self._ids: dict[str, itertools.count] = defaultdict(lambda: itertools.count(1))
        self.flush_count = 0
        self.clear_count = 0
        self.commit_count = 0
        self.rollback_count = 0
        self._sync_locks: dict[str, asyncio.Lock] = {}

    def _next_id(self, table: str) -> int:
        return next(self._ids[table])

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def list_categories(self) -> list[Category]:
        return [_copy(c) for _, c in sorted(self.categories.items())]

    async def get_category(self, category_id: int) -> Category | None:
        category = self.categories.get(category_id)
        return _copy(category) if category else None

    async def find_category_by_external_id(self, external_id: int) -> Category | None:
        for _, category in sorted(self.categories.items()):
            if category.external_id == external_id:
                return _copy(category)
        return None

    async def find_category_by_scraped_key(
        self, scraped_id: str, parent_id: int | None
    ) -> Category | None:
        for _, category in sorted(self.categories.items()):
            if category.scraped_id == scraped_id and category.parent_id == parent_id:
                return _copy(category)
        return None

    async def find_category_by_slug(self, slug: str) -> Category | None:
        for category in self.categories.values():
            if category.slug == slug:
                return _copy(category)
        return None

    async def save_category(self, category: Category) -> Category:
        if category.id is None:
            category.id = self._next_id("categories")
        self.categories[category.id] = _copy(category)
        return category

    # ------------------------------------------------------------------
    # Manufacturers
    # ------------------------------------------------------------------

    async def list_manufacturers(self) -> list[Manufacturer]:
        return [_copy(m) for _, m in sorted(self.manufacturers.items())]

    async def find_manufacturer_by_external_id(self, external_id: int) -> Manufacturer | None:
        for _, manufacturer in sorted(self.manufacturers.items()):
            if manufacturer.external_id == external_id:
                return _copy(manufacturer)
        return None

    async def save_manufacturer(self, manufacturer: Manufacturer) -> Manufacturer:
        if manufacturer.id is None:
            manufacturer.id = self._next_id("manufacturers")
        self.manufacturers[manufacturer.id] = _copy(manufacturer)
        return manufacturer

    # ------------------------------------------------------------------
    # Parameters and options
    # ------------------------------------------------------------------

    async def list_parameters(self, category_id: int | None = None) -> list[Parameter]:
        return [
            _copy(p)
            for _, p in sorted(self.parameters.items())
            if category_id is None or p.category_id == category_id
        ]

    async def find_parameter(self, external_id: int, category_id: int) -> Parameter | None:
        for _, parameter in sorted(self.parameters.items()):
            if parameter.external_id == external_id and parameter.category_id == category_id:
                return _copy(parameter)
        return None

    async def find_parameter_by_key(self, category_id: int, scraped_key: str) -> Parameter | None:
        for _, parameter in sorted(self.parameters.items()):
            if parameter.scraped_key == scraped_key and parameter.category_id == category_id:
                return _copy(parameter)
        return None

    async def save_parameter(self, parameter: Parameter) -> Parameter:
        if parameter.id is None:
            parameter.id = self._next_id("parameters")
        self.parameters[parameter.id] = _copy(parameter)
        return parameter

    async def list_options(self, parameter_id: int | None = None) -> list[ParameterOption]:
        options = [
            o
            for o in self.options.values()
            if parameter_id is None or o.parameter_id == parameter_id
        ]
        options.sort(key=lambda o: (o.order, o.id))
        return [_copy(o) for o in options]

    async def find_option(self, external_id: int, parameter_id: int) -> ParameterOption | None:
        for _, option in sorted(self.options.items()):
            if option.external_id == external_id and option.parameter_id == parameter_id:
                return _copy(option)
        return None

    async def save_option(self, option: ParameterOption) -> ParameterOption:
        if option.id is None:
            option.id = self._next_id("parameter_options")
        self.options[option.id] = _copy(option)
        return option

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def _with_product_ids(self, product: Product) -> Product:
        result = _copy(product)
        result.specs = {
            ProductParameter(s.parameter_id, s.option_id, product_id=product.id)
            for s in product.specs
        }
        return result

    async def find_products_by_external_id(self, external_id: int) -> list[Product]:
        return [
            self._with_product_ids(p)
            for _, p in sorted(self.products.items())
            if p.external_id == external_id
        ]

    async def find_products_by_sku(self, sku: str) -> list[Product]:
        return [
            self._with_product_ids(p)
            for _, p in sorted(self.products.items())
            if p.sku == sku
        ]

    async def find_duplicate_skus(self) -> list[str]:
        counts: dict[str, int] = defaultdict(int)
        for product in self.products.values():
            if product.sku:
                counts[product.sku] += 1
        return sorted(sku for sku, count in counts.items() if count > 1)

    async def find_duplicate_external_ids(self) -> list[int]:
        counts: dict[int, int] = defaultdict(int)
        for product in self.products.values():
            if product.external_id is not None:
                counts[product.external_id] += 1
        return sorted(ext for ext, count in counts.items() if count > 1)

    async def save_product(self, product: Product) -> Product:
        if product.id is None:
            product.id = self._next_id("products")
        self.products[product.id] = _copy(product)
        return product

    async def delete_product(self, product_id: int) -> None:
        self.products.pop(product_id, None)

    async def count_products(self) -> int:
        return len(self.products)

    # ------------------------------------------------------------------
    # Sync runs
    # ------------------------------------------------------------------

    async def save_sync_run(self, run: SyncRun) -> SyncRun:
        if run.id is None:
            run.id = self._next_id("sync_runs")
        self.sync_runs[run.id] = _copy(run)
        return run

    async def list_sync_runs(self, limit: int = 20) -> list[SyncRun]:
        runs = sorted(self.sync_runs.values(), key=lambda r: r.id or 0, reverse=True)
        return [_copy(r) for r in runs[:limit]]

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    async def flush(self, clear: bool = False) -> None:
        self.flush_count += 1
        if clear:
            self.clear_count += 1

    async def commit(self) -> None:
        self.commit_count += 1

    async def rollback(self) -> None:
        self.rollback_count += 1

    @asynccontextmanager
    async def sync_lock(self, sync_type: str, wait: bool = True) -> AsyncIterator[bool]:
        lock = self._sync_locks.setdefault(sync_type, asyncio.Lock())
        if not wait and lock.locked():
            yield False
            return
        async with lock:
            yield True
