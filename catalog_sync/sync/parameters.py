"""Parameter (specification) reconciliation, per category.

Structured parameters carry ids and are upserted in two passes per category:
parameter rows first, then their options keyed by
``(option external id, parameter id)``.

Scraped parameters have no ids. They are inferred from ``prop_<key>``
fields on product items and identified by ``(category id, key)``. Options are
matched by case-insensitive display text; an unknown value is appended after
the existing options, which are never reordered.
"""

from collections.abc import Iterable

import structlog

from catalog_sync.clients.records import ParameterRecord, ScrapedProduct
from catalog_sync.domain.entities import Category, Parameter, ParameterOption
from catalog_sync.domain.exceptions import MalformedRecordError
from catalog_sync.repository.base import CatalogStore
from catalog_sync.sync.lookup import IdentityResolver
from catalog_sync.sync.slugs import normalize_text
from catalog_sync.sync.stats import ItemOutcome, SyncStats

logger = structlog.get_logger()

# ============================================================================
# Scraped parameter tables
# ============================================================================

# Field key -> (Bulgarian name, English name)
SCRAPED_PARAMETER_NAMES: dict[str, tuple[str, str]] = {
    "cvjat": ("Цвят", "Color"),
    "merna": ("Мерна единица", "Unit"),
    "model": ("Модел", "Model"),
    "rezolyutsiya": ("Резолюция", "Resolution"),
    "ir_podsvetka": ("IR подсветка", "IR Illumination"),
    "razmer": ("Размери", "Dimensions"),
    "zvuk": ("Звук", "Audio"),
    "wdr": ("WDR", "WDR"),
    "obektiv": ("Обектив", "Lens"),
    "korpus": ("Корпус", "Body Type"),
    "stepen_na_zashtita": ("Степен на защита", "Protection Rating"),
    "kompresiya": ("Компресия", "Compression"),
    "poe_portove": ("PoE портове", "PoE Ports"),
    "broy_izhodi": ("Брой изходи", "Number of Outputs"),
    "raboten_tok": ("Работен ток", "Operating Current"),
    "moshtnost": ("Мощност", "Power"),
    "seriya_eco": ("Eco серия", "Eco Series"),
}

SCRAPED_PARAMETER_ORDER: dict[str, int] = {
    "model": 1,
    "rezolyutsiya": 2,
    "obektiv": 3,
    "korpus": 4,
    "cvjat": 5,
    "razmer": 6,
    "stepen_na_zashtita": 7,
    "ir_podsvetka": 8,
    "zvuk": 9,
    "wdr": 10,
    "kompresiya": 11,
    "poe_portove": 12,
    "moshtnost": 13,
    "raboten_tok": 14,
    "broy_izhodi": 15,
    "seriya_eco": 16,
    "merna": 99,
}

DEFAULT_PARAMETER_ORDER = 50

# Bare item fields consulted when an item has no prop_<key> fields at all
FALLBACK_PARAMETER_KEYS = tuple(SCRAPED_PARAMETER_NAMES)


def parameter_names(key: str) -> dict[str, str]:
    """Display names for an inferred parameter key."""
    if key in SCRAPED_PARAMETER_NAMES:
        bg, en = SCRAPED_PARAMETER_NAMES[key]
        return {"bg": bg, "en": en}
    generic = key[:1].upper() + key[1:].replace("_", " ")
    return {"bg": generic, "en": generic}


def parameter_order(key: str) -> int:
    return SCRAPED_PARAMETER_ORDER.get(key, DEFAULT_PARAMETER_ORDER)


def extract_parameters(product: ScrapedProduct) -> dict[str, str]:
    """Specification values of one scraped item, keyed by field key."""
    if product.properties:
        return dict(product.properties)
    values = {}
    for key in FALLBACK_PARAMETER_KEYS:
        value = product.raw.get(key)
        if value is not None and str(value).strip():
            values[key] = str(value).strip()
    return values


def collect_parameter_values(products: Iterable[ScrapedProduct]) -> dict[str, list[str]]:
    """Distinct values per key across items, in order of first appearance."""
    collected: dict[str, list[str]] = {}
    seen: dict[str, set[str]] = {}
    for product in products:
        for key, value in extract_parameters(product).items():
            normalized = normalize_text(value)
            if normalized in seen.setdefault(key, set()):
                continue
            seen[key].add(normalized)
            collected.setdefault(key, []).append(value)
    return collected


class ParameterReconciler:
    """Creates and updates parameters and their options.

    Options of scraped parameters are cached per parameter for the lifetime
    of the reconciler; call ``reset()`` when writes may have been undone.
    """

    def __init__(self, store: CatalogStore) -> None:
        self.store = store
        self._options: dict[int, list[ParameterOption]] = {}
        self._parameters: dict[tuple[int, str], Parameter] = {}

    def reset(self) -> None:
        self._options.clear()
        self._parameters.clear()

    # ========================================================================
    # Structured feed
    # ========================================================================

    async def sync_structured_category(
        self,
        category: Category,
        records: list[ParameterRecord],
        resolver: IdentityResolver,
    ) -> SyncStats:
        """Reconcile the parameters of one category.

        Args:
            category: Canonical category the parameters belong to.
            records: Parameter definitions from the feed.
            resolver: Identity lookup for this run.

        Returns:
            Counters over parameters and options together.
        """
        stats = SyncStats()
        upserted: list[tuple[ParameterRecord, Parameter]] = []

        for record in records:
            try:
                async with self.store.savepoint():
                    parameter, outcome = await self._upsert_parameter(category, record, resolver)
                upserted.append((record, parameter))
                stats.record(outcome)
            except MalformedRecordError as e:
                stats.record_error()
                logger.warning("Skipping malformed parameter", external_id=record.external_id, reason=e.reason)
            except Exception as e:
                stats.record_error()
                logger.error(
                    "Failed to sync parameter",
                    category_id=category.id,
                    external_id=record.external_id,
                    error=str(e),
                )

        for record, parameter in upserted:
            for option_record in record.options:
                try:
                    async with self.store.savepoint():
                        outcome = await self._upsert_option(parameter, option_record, resolver)
                    stats.record(outcome)
                except Exception as e:
                    stats.record_error()
                    logger.error(
                        "Failed to sync parameter option",
                        parameter_id=parameter.id,
                        external_id=option_record.external_id,
                        error=str(e),
                    )

        logger.debug(
            "Category parameters reconciled",
            category_id=category.id,
            parameters=len(upserted),
            created=stats.created,
            updated=stats.updated,
        )
        return stats

    async def _upsert_parameter(
        self, category: Category, record: ParameterRecord, resolver: IdentityResolver
    ) -> tuple[Parameter, ItemOutcome]:
        if not record.names:
            raise MalformedRecordError("parameter", "missing name", record.external_id)

        parameter = await resolver.parameter(record.external_id, category.id)
        outcome = ItemOutcome.UPDATED
        if parameter is None:
            parameter = Parameter(category_id=category.id, external_id=record.external_id)
            outcome = ItemOutcome.CREATED

        parameter.names = dict(record.names)
        parameter.order = record.order
        await self.store.save_parameter(parameter)
        return parameter, outcome

    async def _upsert_option(self, parameter: Parameter, record, resolver: IdentityResolver) -> ItemOutcome:
        option = await resolver.option(record.external_id, parameter.id)
        outcome = ItemOutcome.UPDATED
        if option is None:
            option = ParameterOption(parameter_id=parameter.id, external_id=record.external_id)
            outcome = ItemOutcome.CREATED

        option.names = dict(record.names)
        option.order = record.order
        await self.store.save_option(option)
        return outcome

    # ========================================================================
    # Scraped feed
    # ========================================================================

    async def sync_scraped_category(
        self, category: Category, values: dict[str, list[str]]
    ) -> SyncStats:
        """Reconcile inferred parameters of one category.

        Args:
            category: Canonical category.
            values: Distinct values per field key, see ``collect_parameter_values``.

        Returns:
            Counters over parameters and options together.
        """
        stats = SyncStats()
        for key, key_values in values.items():
            try:
                async with self.store.savepoint():
                    parameter, created = await self.ensure_parameter(category.id, key)
                stats.record(ItemOutcome.CREATED if created else ItemOutcome.UPDATED)
            except Exception as e:
                self.reset()
                stats.record_error()
                logger.error("Failed to sync parameter", category_id=category.id, key=key, error=str(e))
                continue

            for value in key_values:
                try:
                    async with self.store.savepoint():
                        _, created = await self.ensure_option(parameter, value)
                    stats.record(ItemOutcome.CREATED if created else ItemOutcome.UPDATED)
                except Exception as e:
                    self.reset()
                    stats.record_error()
                    logger.error(
                        "Failed to sync parameter option",
                        parameter_id=parameter.id,
                        value=value,
                        error=str(e),
                    )
        return stats

    async def ensure_parameter(self, category_id: int, key: str) -> tuple[Parameter, bool]:
        """Find the inferred parameter ``(category, key)``, creating it if absent.

        Returns:
            The parameter and whether it was created.
        """
        cache_key = (category_id, key)
        parameter = self._parameters.get(cache_key)
        if parameter is not None:
            return parameter, False

        parameter = await self.store.find_parameter_by_key(category_id, key)
        created = False
        if parameter is None:
            parameter = Parameter(
                category_id=category_id,
                scraped_key=key,
                names=parameter_names(key),
                order=parameter_order(key),
            )
            await self.store.save_parameter(parameter)
            created = True
            logger.debug("Created parameter", category_id=category_id, key=key)

        self._parameters[cache_key] = parameter
        return parameter, created

    async def ensure_option(self, parameter: Parameter, value: str) -> tuple[ParameterOption, bool]:
        """Find an option by case-insensitive text, appending it if absent.

        The first existing option whose name matches in any language wins.
        A new option is ordered after every existing one.

        Returns:
            The option and whether it was created.
        """
        options = self._options.get(parameter.id)
        if options is None:
            options = await self.store.list_options(parameter.id)
            self._options[parameter.id] = options

        wanted = normalize_text(value)
        for option in options:
            if any(normalize_text(name) == wanted for name in option.names.values()):
                return option, False

        text = " ".join(value.split())
        option = ParameterOption(
            parameter_id=parameter.id,
            names={"bg": text, "en": text},
            order=len(options),
        )
        await self.store.save_option(option)
        options.append(option)
        return option, True
