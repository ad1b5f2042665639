"""Identity lookup cache for one sync run.

Built once at the start of a run from full store scans and read-only
afterwards. A miss means "not known when the run started": callers fall
back to a direct store query, which also finds entities created earlier in
the same run.
"""

from dataclasses import dataclass, field

import structlog

from catalog_sync.domain.entities import Category, Manufacturer, Parameter, ParameterOption
from catalog_sync.repository.base import CatalogStore

logger = structlog.get_logger()


@dataclass
class LookupCache:
    """Maps from external identity to canonical entity."""

    categories: dict[int, Category] = field(default_factory=dict)
    manufacturers: dict[int, Manufacturer] = field(default_factory=dict)
    parameters: dict[tuple[int, int], Parameter] = field(default_factory=dict)
    options: dict[tuple[int, int], ParameterOption] = field(default_factory=dict)

    @classmethod
    async def build(cls, store: CatalogStore) -> "LookupCache":
        """Snapshot every externally-identified entity in the store."""
        cache = cls()
        for category in await store.list_categories():
            if category.external_id is not None:
                cache.categories.setdefault(category.external_id, category)
        for manufacturer in await store.list_manufacturers():
            if manufacturer.external_id is not None:
                cache.manufacturers.setdefault(manufacturer.external_id, manufacturer)
        for parameter in await store.list_parameters():
            if parameter.external_id is not None:
                cache.parameters.setdefault((parameter.external_id, parameter.category_id), parameter)
        for option in await store.list_options():
            if option.external_id is not None:
                cache.options.setdefault((option.external_id, option.parameter_id), option)

        logger.info(
            "Lookup cache built",
            categories=len(cache.categories),
            manufacturers=len(cache.manufacturers),
            parameters=len(cache.parameters),
            options=len(cache.options),
        )
        return cache

    def lookup_category(self, external_id: int | None) -> Category | None:
        if external_id is None:
            return None
        return self.categories.get(external_id)

    def lookup_manufacturer(self, external_id: int | None) -> Manufacturer | None:
        if external_id is None:
            return None
        return self.manufacturers.get(external_id)

    def lookup_parameter(self, external_id: int, category_id: int) -> Parameter | None:
        return self.parameters.get((external_id, category_id))

    def lookup_parameter_option(self, external_id: int, parameter_id: int) -> ParameterOption | None:
        return self.options.get((external_id, parameter_id))


class IdentityResolver:
    """Lookup cache with store fallback on miss."""

    def __init__(self, store: CatalogStore, cache: LookupCache) -> None:
        self.store = store
        self.cache = cache

    @classmethod
    async def create(cls, store: CatalogStore) -> "IdentityResolver":
        return cls(store, await LookupCache.build(store))

    async def category(self, external_id: int | None) -> Category | None:
        if external_id is None:
            return None
        category = self.cache.lookup_category(external_id)
        if category is None:
            logger.debug("Category cache miss", external_id=external_id)
            category = await self.store.find_category_by_external_id(external_id)
        return category

    async def manufacturer(self, external_id: int | None) -> Manufacturer | None:
        if external_id is None:
            return None
        manufacturer = self.cache.lookup_manufacturer(external_id)
        if manufacturer is None:
            logger.debug("Manufacturer cache miss", external_id=external_id)
            manufacturer = await self.store.find_manufacturer_by_external_id(external_id)
        return manufacturer

    async def parameter(self, external_id: int, category_id: int) -> Parameter | None:
        parameter = self.cache.lookup_parameter(external_id, category_id)
        if parameter is None:
            logger.debug("Parameter cache miss", external_id=external_id, category_id=category_id)
            parameter = await self.store.find_parameter(external_id, category_id)
        return parameter

    async def option(self, external_id: int, parameter_id: int) -> ParameterOption | None:
        option = self.cache.lookup_parameter_option(external_id, parameter_id)
        if option is None:
            logger.debug("Option cache miss", external_id=external_id, parameter_id=parameter_id)
            option = await self.store.find_option(external_id, parameter_id)
        return option
