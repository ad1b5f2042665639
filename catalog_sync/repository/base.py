"""Catalog store interface.

The reconcilers never touch a database session directly. Every read and
write goes through a ``CatalogStore`` and returns plain entity dataclasses,
so the sync logic can be exercised against ``InMemoryCatalogStore``.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from catalog_sync.domain.entities import (
    Category,
    Manufacturer,
    Parameter,
    ParameterOption,
    Product,
    SyncRun,
)


class CatalogStore(ABC):
    """Repository for canonical catalog entities and sync runs.

    ``save_*`` methods create the entity when ``id`` is None and update it
    otherwise; they return the stored entity with its id assigned.
    """

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_categories(self) -> list[Category]:
        """Return every category ordered by id."""

    @abstractmethod
    async def get_category(self, category_id: int) -> Category | None:
        """Return a category by internal id."""

    @abstractmethod
    async def find_category_by_external_id(self, external_id: int) -> Category | None:
        """Return the category imported from the structured feed with this id."""

    @abstractmethod
    async def find_category_by_scraped_key(
        self, scraped_id: str, parent_id: int | None
    ) -> Category | None:
        """Return the scraped category identified by ``(raw id, parent id)``."""

    @abstractmethod
    async def find_category_by_slug(self, slug: str) -> Category | None:
        """Return the category owning a slug."""

    @abstractmethod
    async def save_category(self, category: Category) -> Category:
        """Create or update a category."""

    # ------------------------------------------------------------------
    # Manufacturers
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_manufacturers(self) -> list[Manufacturer]:
        """Return every manufacturer ordered by id."""

    @abstractmethod
    async def find_manufacturer_by_external_id(self, external_id: int) -> Manufacturer | None:
        """Return the manufacturer imported with this structured-feed id."""

    @abstractmethod
    async def save_manufacturer(self, manufacturer: Manufacturer) -> Manufacturer:
        """Create or update a manufacturer."""

    # ------------------------------------------------------------------
    # Parameters and options
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_parameters(self, category_id: int | None = None) -> list[Parameter]:
        """Return parameters, optionally restricted to one category."""

    @abstractmethod
    async def find_parameter(self, external_id: int, category_id: int) -> Parameter | None:
        """Return a structured parameter by ``(external id, category id)``."""

    @abstractmethod
    async def find_parameter_by_key(self, category_id: int, scraped_key: str) -> Parameter | None:
        """Return an inferred parameter by ``(category id, field key)``."""

    @abstractmethod
    async def save_parameter(self, parameter: Parameter) -> Parameter:
        """Create or update a parameter."""

    @abstractmethod
    async def list_options(self, parameter_id: int | None = None) -> list[ParameterOption]:
        """Return options ordered by ``order`` then id, optionally for one parameter."""

    @abstractmethod
    async def find_option(self, external_id: int, parameter_id: int) -> ParameterOption | None:
        """Return a structured option by ``(external id, parameter id)``."""

    @abstractmethod
    async def save_option(self, option: ParameterOption) -> ParameterOption:
        """Create or update a parameter option."""

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    @abstractmethod
    async def find_products_by_external_id(self, external_id: int) -> list[Product]:
        """Return all products with this external id, lowest id first."""

    @abstractmethod
    async def find_products_by_sku(self, sku: str) -> list[Product]:
        """Return all products with this SKU, lowest id first."""

    @abstractmethod
    async def find_duplicate_skus(self) -> list[str]:
        """Return SKUs shared by more than one product."""

    @abstractmethod
    async def find_duplicate_external_ids(self) -> list[int]:
        """Return external ids shared by more than one product."""

    @abstractmethod
    async def save_product(self, product: Product) -> Product:
        """Create or update a product together with its parameter assignments."""

    @abstractmethod
    async def delete_product(self, product_id: int) -> None:
        """Hard-delete a product row. Used only by duplicate repair."""

    @abstractmethod
    async def count_products(self) -> int:
        """Return the number of products."""

    # ------------------------------------------------------------------
    # Sync runs
    # ------------------------------------------------------------------

    @abstractmethod
    async def save_sync_run(self, run: SyncRun) -> SyncRun:
        """Create or update a ledger row and make it durable immediately."""

    @abstractmethod
    async def list_sync_runs(self, limit: int = 20) -> list[SyncRun]:
        """Return the latest sync runs, newest first."""

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @abstractmethod
    async def flush(self, clear: bool = False) -> None:
        """Write pending changes through to the store.

        Args:
            clear: Also drop any cached entity state held by the store.
        """

    @abstractmethod
    async def commit(self) -> None:
        """Make everything written so far durable."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard writes since the last commit."""

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        """Scope for one item's writes.

        A store with transactions undoes the item's writes when the block
        raises, leaving the rest of the chunk intact. The exception still
        propagates.
        """
        yield

    @abstractmethod
    def sync_lock(self, sync_type: str, wait: bool = True) -> AbstractAsyncContextManager[bool]:
        """Hold the store-wide lock of one sync type for the block.

        The lock is visible to every process sharing the store, so a cron
        run and an API trigger of the same type never overlap.

        Args:
            sync_type: Sync type the lock is keyed by.
            wait: Block until the lock is free. When False and another
                holder has it, the block runs immediately with ``False``.

        Yields:
            True when the lock is held for the duration of the block.
        """
