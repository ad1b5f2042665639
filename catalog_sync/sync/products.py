"""Product reconciliation for both feeds.

Structured products are matched by external id and placed in the first
category they reference. Scraped products are matched by SKU and placed by
heuristic category matching. Parameter assignments are rebuilt from scratch
on every sync since both feeds send full snapshots, and the final price is
always recomputed locally.
"""

from collections import Counter

import structlog

from catalog_sync.clients.records import ProductRecord, ScrapedProduct
from catalog_sync.domain.entities import Category, Product, ProductParameter, ProductStatus
from catalog_sync.domain.exceptions import MalformedRecordError
from catalog_sync.repository.base import CatalogStore
from catalog_sync.sync.aliases import CategoryAliases
from catalog_sync.sync.dedup import DuplicateRepair
from catalog_sync.sync.lookup import IdentityResolver
from catalog_sync.sync.manufacturers import ManufacturerReconciler
from catalog_sync.sync.parameters import ParameterReconciler, extract_parameters
from catalog_sync.sync.slugs import make_slug, normalize_text
from catalog_sync.sync.stats import ItemOutcome

logger = structlog.get_logger()


# ============================================================================
# Scraped category matching
# ============================================================================


class CategoryIndex:
    """Name and slug index used to place scraped items.

    Resolution order for an item:
      1. each category level from most to least specific, by exact
         (case-insensitive) name, then by slug of that name; among
         categories sharing the name, the one whose parent chain agrees
         with the item's less specific levels wins;
      2. the manual alias table, for each level;
      3. the category the item was listed under.
    """

    def __init__(self, categories: list[Category], aliases: CategoryAliases | None = None) -> None:
        self.aliases = aliases or CategoryAliases()
        self.by_id: dict[int, Category] = {}
        self.by_name: dict[str, list[Category]] = {}
        self.by_slug: dict[str, list[Category]] = {}
        self.by_source_slug: dict[str, Category] = {}
        self.match_stats: Counter[str] = Counter()

        # Categories owned by the scraped feed win ties
        ordered = sorted(categories, key=lambda c: (c.scraped_id is None, c.id or 0))
        for category in ordered:
            if category.id is not None:
                self.by_id[category.id] = category
            for key in self._name_keys(category):
                self.by_name.setdefault(key, []).append(category)
            for slug in self._slugs(category):
                self.by_slug.setdefault(slug, []).append(category)
            if category.scraped_slug:
                self.by_source_slug.setdefault(category.scraped_slug, category)

    @classmethod
    async def build(cls, store: CatalogStore, aliases: CategoryAliases | None = None) -> "CategoryIndex":
        return cls(await store.list_categories(), aliases)

    @staticmethod
    def _name_keys(category: Category) -> set[str]:
        return {key for key in (normalize_text(name) for name in category.names.values()) if key}

    @staticmethod
    def _slugs(category: Category) -> set[str]:
        return {slug for slug in (category.slug, category.scraped_slug) if slug}

    def _ancestors(self, category: Category) -> list[Category]:
        chain: list[Category] = []
        seen = {category.id}
        parent = self.by_id.get(category.parent_id) if category.parent_id is not None else None
        while parent is not None and parent.id not in seen:
            chain.append(parent)
            seen.add(parent.id)
            parent = self.by_id.get(parent.parent_id) if parent.parent_id is not None else None
        return chain

    def _path_score(self, category: Category, context: list[str]) -> int:
        """Count the less specific levels found, in order, up the parent chain."""
        ancestors = self._ancestors(category)
        score = 0
        position = 0
        for name in context:
            key, slug = normalize_text(name), make_slug(name)
            for index in range(position, len(ancestors)):
                ancestor = ancestors[index]
                if key in self._name_keys(ancestor) or slug in self._slugs(ancestor):
                    score += 1
                    position = index + 1
                    break
        return score

    def _pick(self, candidates: list[Category], context: list[str]) -> Category:
        if len(candidates) == 1 or not context:
            return candidates[0]
        best, best_score = candidates[0], -1
        for candidate in candidates:
            score = self._path_score(candidate, context)
            if score > best_score:
                best, best_score = candidate, score
        return best

    def resolve(self, item: ScrapedProduct) -> Category | None:
        """Place an item, counting which rule matched."""
        category, match = self._resolve(item)
        self.match_stats[match] += 1
        return category

    def _resolve(self, item: ScrapedProduct) -> tuple[Category | None, str]:
        names = item.category_names
        for level, name in enumerate(names):
            context = names[level + 1 :]
            candidates = self.by_name.get(normalize_text(name))
            if candidates:
                return self._pick(candidates, context), "exact"
            candidates = self.by_slug.get(make_slug(name))
            if candidates:
                return self._pick(candidates, context), "slug"

        for name in names:
            alias = self.aliases.resolve(name) or self.aliases.resolve(make_slug(name))
            if alias and alias in self.by_slug:
                return self.by_slug[alias][0], "alias"

        if item.source_category_slug:
            category = self.by_source_slug.get(item.source_category_slug)
            if category is None and item.source_category_slug in self.by_slug:
                category = self.by_slug[item.source_category_slug][0]
            if category is not None:
                return category, "source"

        return None, "none"


# ============================================================================
# Product reconciler
# ============================================================================


class ProductReconciler:
    """Upserts products and their parameter assignments."""

    def __init__(
        self,
        store: CatalogStore,
        manufacturers: ManufacturerReconciler,
        parameters: ParameterReconciler,
        dedup: DuplicateRepair,
    ) -> None:
        self.store = store
        self.manufacturers = manufacturers
        self.parameters = parameters
        self.dedup = dedup

    async def upsert_structured(self, record: ProductRecord, resolver: IdentityResolver) -> ItemOutcome:
        """Reconcile one structured product.

        A missing status code means NOT_AVAILABLE.

        Raises:
            MalformedRecordError: If the name is missing or the status code is unknown.
        """
        if not record.names:
            raise MalformedRecordError("product", "missing name", record.external_id)
        try:
            status = (
                ProductStatus.NOT_AVAILABLE
                if record.status_code is None
                else ProductStatus.from_code(record.status_code)
            )
        except ValueError as e:
            raise MalformedRecordError("product", str(e), record.external_id) from e

        category_external_id = record.category_external_ids[0] if record.category_external_ids else None
        category = await resolver.category(category_external_id)
        if category is None:
            logger.debug(
                "No category for product",
                external_id=record.external_id,
                category_external_id=category_external_id,
            )
            return ItemOutcome.NO_CATEGORY

        matches = await self.store.find_products_by_external_id(record.external_id)
        product = matches[0] if matches else Product(external_id=record.external_id)
        outcome = ItemOutcome.UPDATED if matches else ItemOutcome.CREATED

        manufacturer = await resolver.manufacturer(record.manufacturer_external_id)
        if manufacturer is None and record.manufacturer_external_id is not None:
            logger.warning(
                "Manufacturer not found for product",
                external_id=record.external_id,
                manufacturer_external_id=record.manufacturer_external_id,
            )

        product.names = dict(record.names)
        product.descriptions = dict(record.descriptions)
        product.reference_number = record.reference_number
        product.model = record.model
        product.barcode = record.barcode
        product.category_id = category.id
        product.manufacturer_id = manufacturer.id if manufacturer else None
        product.status = status
        product.visible = record.show
        product.price_client = record.price_client
        product.price_partner = record.price_partner
        product.price_promo = record.price_promo
        product.price_client_promo = record.price_client_promo
        product.warranty = record.warranty
        product.weight = record.weight
        product.primary_image_url = record.images[0] if record.images else None
        product.additional_image_urls = list(record.images[1:])

        specs = set()
        for value in record.parameter_values:
            parameter = await resolver.parameter(value.parameter_external_id, category.id)
            if parameter is None:
                logger.debug(
                    "Parameter not found",
                    external_id=record.external_id,
                    parameter_external_id=value.parameter_external_id,
                )
                continue
            option = await resolver.option(value.option_external_id, parameter.id)
            if option is None:
                logger.debug(
                    "Parameter option not found",
                    external_id=record.external_id,
                    option_external_id=value.option_external_id,
                )
                continue
            specs.add(ProductParameter(parameter.id, option.id))
        product.replace_specs(specs)

        product.recalculate_final_price()
        await self.store.save_product(product)
        return outcome

    async def upsert_scraped(self, item: ScrapedProduct, index: CategoryIndex) -> ItemOutcome:
        """Reconcile one scraped product.

        Raises:
            MalformedRecordError: If the SKU or name is missing.
        """
        if not item.sku:
            raise MalformedRecordError("product", "missing sku")
        if not item.name:
            raise MalformedRecordError("product", "missing name", item.sku)

        category = index.resolve(item)
        if category is None:
            logger.debug(
                "No category for product",
                sku=item.sku,
                categories=item.category_names,
                source_category=item.source_category_slug,
            )
            return ItemOutcome.NO_CATEGORY

        try:
            return await self._apply_scraped(item, category)
        except Exception:
            self.parameters.reset()
            self.manufacturers.reset()
            raise

    async def _apply_scraped(self, item: ScrapedProduct, category: Category) -> ItemOutcome:
        matches = await self.store.find_products_by_sku(item.sku)
        if len(matches) > 1:
            product = await self.dedup.collapse_sku(item.sku)
        else:
            product = matches[0] if matches else None
        outcome = ItemOutcome.UPDATED
        if product is None:
            product = Product(sku=item.sku)
            outcome = ItemOutcome.CREATED

        product.names["bg"] = item.name
        product.names.setdefault("en", item.name)
        if item.description:
            product.descriptions["bg"] = item.description
            product.descriptions.setdefault("en", item.description)
        product.model = item.model
        product.category_id = category.id
        product.price_client = item.price
        product.price_partner = item.partner_price
        in_stock = item.quantity > 0
        product.status = ProductStatus.AVAILABLE if in_stock else ProductStatus.NOT_AVAILABLE
        product.visible = in_stock
        product.weight = item.weight
        product.primary_image_url = item.images[0] if item.images else None
        product.additional_image_urls = list(item.images[1:])

        manufacturer, _ = await self.manufacturers.ensure_by_name(item.manufacturer)
        product.manufacturer_id = manufacturer.id if manufacturer else None

        specs = set()
        for key, value in extract_parameters(item).items():
            parameter, _ = await self.parameters.ensure_parameter(category.id, key)
            option, _ = await self.parameters.ensure_option(parameter, value)
            specs.add(ProductParameter(parameter.id, option.id))
        product.replace_specs(specs)

        product.recalculate_final_price()
        await self.store.save_product(product)
        return outcome
