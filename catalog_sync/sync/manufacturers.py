"""Manufacturer reconciliation.

Structured manufacturers are matched by external id. The scraped feed only
carries a manufacturer name on each product, so those are matched by
normalized name and created when absent.
"""

from collections.abc import Iterable

import structlog

from catalog_sync.clients.records import ManufacturerRecord
from catalog_sync.domain.entities import Manufacturer
from catalog_sync.domain.exceptions import MalformedRecordError
from catalog_sync.repository.base import CatalogStore
from catalog_sync.sync.lookup import IdentityResolver
from catalog_sync.sync.slugs import normalize_text
from catalog_sync.sync.stats import ItemOutcome, SyncStats

logger = structlog.get_logger()


class ManufacturerReconciler:
    """Creates and updates manufacturers."""

    def __init__(self, store: CatalogStore) -> None:
        self.store = store
        self._by_name: dict[str, Manufacturer] | None = None

    def reset(self) -> None:
        """Forget the name index, e.g. after writes were undone."""
        self._by_name = None

    async def sync_structured(
        self, records: list[ManufacturerRecord], resolver: IdentityResolver
    ) -> SyncStats:
        """Reconcile structured manufacturers by external id."""
        stats = SyncStats()
        for record in records:
            try:
                async with self.store.savepoint():
                    outcome = await self._upsert_structured(record, resolver)
                stats.record(outcome)
            except MalformedRecordError as e:
                stats.record_error()
                logger.warning("Skipping malformed manufacturer", external_id=record.external_id, reason=e.reason)
            except Exception as e:
                stats.record_error()
                logger.error("Failed to sync manufacturer", external_id=record.external_id, error=str(e))

        await self.store.commit()
        logger.info(
            "Structured manufacturers reconciled",
            created=stats.created,
            updated=stats.updated,
            errors=stats.errors,
        )
        return stats

    async def _upsert_structured(
        self, record: ManufacturerRecord, resolver: IdentityResolver
    ) -> ItemOutcome:
        if not record.name:
            raise MalformedRecordError("manufacturer", "missing name", record.external_id)

        manufacturer = await resolver.manufacturer(record.external_id)
        outcome = ItemOutcome.UPDATED
        if manufacturer is None:
            manufacturer = Manufacturer(name=record.name, external_id=record.external_id)
            outcome = ItemOutcome.CREATED

        manufacturer.name = record.name
        manufacturer.contact_info = dict(record.contact_info)
        await self.store.save_manufacturer(manufacturer)
        return outcome

    # ========================================================================
    # Name-based matching
    # ========================================================================

    async def _name_index(self) -> dict[str, Manufacturer]:
        if self._by_name is None:
            self._by_name = {}
            for manufacturer in await self.store.list_manufacturers():
                self._by_name.setdefault(normalize_text(manufacturer.name), manufacturer)
        return self._by_name

    async def ensure_by_name(self, name: str | None) -> tuple[Manufacturer | None, bool]:
        """Find a manufacturer by name, creating it if absent.

        Args:
            name: Manufacturer name as written by the feed.

        Returns:
            The manufacturer (None for a blank name) and whether it was created.
        """
        key = normalize_text(name)
        if not key:
            return None, False
        index = await self._name_index()
        manufacturer = index.get(key)
        if manufacturer is not None:
            return manufacturer, False

        manufacturer = Manufacturer(name=" ".join(name.split()))
        await self.store.save_manufacturer(manufacturer)
        index[key] = manufacturer
        logger.info("Created manufacturer", name=manufacturer.name, manufacturer_id=manufacturer.id)
        return manufacturer, True

    async def sync_names(self, names: Iterable[str | None]) -> SyncStats:
        """Make sure a manufacturer exists for every distinct name."""
        stats = SyncStats()
        seen: set[str] = set()
        for name in names:
            key = normalize_text(name)
            if not key or key in seen:
                continue
            seen.add(key)
            try:
                async with self.store.savepoint():
                    _, created = await self.ensure_by_name(name)
                stats.record(ItemOutcome.CREATED if created else ItemOutcome.UPDATED)
            except Exception as e:
                self.reset()
                stats.record_error()
                logger.error("Failed to sync manufacturer", name=name, error=str(e))

        await self.store.commit()
        logger.info(
            "Scraped manufacturers reconciled",
            created=stats.created,
            existing=stats.updated,
            errors=stats.errors,
        )
        return stats
