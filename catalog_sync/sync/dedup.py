"""Duplicate product repair.

The scraped feed has no reliable unique key and earlier runs may have
created the same product twice. Duplicates are collapsed onto the row with
the lowest internal id; the others are deleted.
"""

from dataclasses import dataclass, field

import structlog

from catalog_sync.domain.entities import Product
from catalog_sync.repository.base import CatalogStore

logger = structlog.get_logger()


@dataclass
class DedupResult:
    """Outcome of a duplicate repair pass."""

    groups: int = 0
    removed: int = 0
    removed_ids: list[int] = field(default_factory=list)


class DuplicateRepair:
    """Finds and collapses products sharing a SKU or an external id."""

    def __init__(self, store: CatalogStore) -> None:
        self.store = store

    async def run(self) -> DedupResult:
        """Collapse every duplicate group.

        Returns:
            Counts of groups found and rows removed.
        """
        result = DedupResult()

        for sku in await self.store.find_duplicate_skus():
            removed = await self._collapse(await self.store.find_products_by_sku(sku))
            if removed:
                result.groups += 1
                result.removed_ids.extend(removed)
                logger.info("Collapsed duplicate SKU", sku=sku, removed=len(removed))

        for external_id in await self.store.find_duplicate_external_ids():
            removed = await self._collapse(await self.store.find_products_by_external_id(external_id))
            if removed:
                result.groups += 1
                result.removed_ids.extend(removed)
                logger.info(
                    "Collapsed duplicate external id",
                    external_id=external_id,
                    removed=len(removed),
                )

        result.removed = len(result.removed_ids)
        if result.removed:
            await self.store.flush()
        logger.info("Duplicate repair finished", groups=result.groups, removed=result.removed)
        return result

    async def collapse_sku(self, sku: str) -> Product | None:
        """Collapse one SKU group and return the surviving product."""
        products = await self.store.find_products_by_sku(sku)
        removed = await self._collapse(products)
        if removed:
            logger.info("Collapsed duplicate SKU", sku=sku, removed=len(removed))
        return min(products, key=lambda p: p.id) if products else None

    async def _collapse(self, products: list[Product]) -> list[int]:
        if len(products) < 2:
            return []
        keep = min(products, key=lambda p: p.id)
        removed = []
        for product in products:
            if product.id != keep.id:
                await self.store.delete_product(product.id)
                removed.append(product.id)
        return removed
