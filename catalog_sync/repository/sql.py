"""SQLAlchemy-backed catalog store.

Maps ORM rows to and from the entity dataclasses. Sync runs are written
through their own short-lived session when a session factory is given, so a
failed catalog transaction never takes the ledger row down with it.
"""

import hashlib
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from decimal import Decimal

from sqlalchemy import delete, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.domain.entities import (
    Category,
    Manufacturer,
    Parameter,
    ParameterOption,
    Product,
    ProductParameter,
    ProductStatus,
    SyncRun,
    SyncStatus,
)
from catalog_sync.infrastructure.models import (
    CategoryModel,
    ManufacturerModel,
    ParameterModel,
    ParameterOptionModel,
    ProductModel,
    ProductParameterModel,
    SyncRunModel,
)
from catalog_sync.repository.base import CatalogStore


# ============================================================================
# Row mapping
# ============================================================================


def _category(row: CategoryModel) -> Category:
    return Category(
        id=row.id,
        slug=row.slug,
        names=dict(row.names or {}),
        parent_id=row.parent_id,
        external_id=row.external_id,
        scraped_id=row.scraped_id,
        scraped_slug=row.scraped_slug,
        sort_order=row.sort_order,
        visible=row.visible,
    )


def _manufacturer(row: ManufacturerModel) -> Manufacturer:
    return Manufacturer(
        id=row.id,
        name=row.name,
        external_id=row.external_id,
        contact_info=dict(row.contact_info or {}),
    )


def _parameter(row: ParameterModel) -> Parameter:
    return Parameter(
        id=row.id,
        category_id=row.category_id,
        names=dict(row.names or {}),
        order=row.order,
        external_id=row.external_id,
        scraped_key=row.scraped_key,
    )


def _option(row: ParameterOptionModel) -> ParameterOption:
    return ParameterOption(
        id=row.id,
        parameter_id=row.parameter_id,
        names=dict(row.names or {}),
        order=row.order,
        external_id=row.external_id,
    )


def _product(row: ProductModel, specs: list[ProductParameterModel]) -> Product:
    return Product(
        id=row.id,
        external_id=row.external_id,
        sku=row.sku,
        reference_number=row.reference_number,
        model=row.model,
        barcode=row.barcode,
        category_id=row.category_id,
        manufacturer_id=row.manufacturer_id,
        names=dict(row.names or {}),
        descriptions=dict(row.descriptions or {}),
        price_client=row.price_client,
        price_partner=row.price_partner,
        price_promo=row.price_promo,
        price_client_promo=row.price_client_promo,
        markup_percentage=row.markup_percentage if row.markup_percentage is not None else Decimal("20"),
        discount=row.discount if row.discount is not None else Decimal("0"),
        final_price=row.final_price,
        status=ProductStatus(row.status),
        visible=row.visible,
        warranty=row.warranty,
        weight=row.weight,
        primary_image_url=row.primary_image_url,
        additional_image_urls=list(row.additional_image_urls or []),
        specs={
            ProductParameter(s.parameter_id, s.option_id, product_id=s.product_id)
            for s in specs
        },
    )


def _sync_run(row: SyncRunModel) -> SyncRun:
    return SyncRun(
        id=row.id,
        sync_type=row.sync_type,
        status=SyncStatus(row.status),
        started_at=row.started_at,
        duration_ms=row.duration_ms,
        processed=row.processed,
        created=row.created,
        updated=row.updated,
        errors=row.errors,
        message=row.message,
        error_message=row.error_message,
    )


PRODUCT_FIELDS = (
    "external_id",
    "sku",
    "reference_number",
    "model",
    "barcode",
    "category_id",
    "manufacturer_id",
    "names",
    "descriptions",
    "price_client",
    "price_partner",
    "price_promo",
    "price_client_promo",
    "markup_percentage",
    "discount",
    "final_price",
    "visible",
    "warranty",
    "weight",
    "primary_image_url",
    "additional_image_urls",
)


def advisory_lock_key(sync_type: str) -> int:
    """Map a sync type to a stable signed 64-bit advisory lock key."""
    digest = hashlib.sha256(f"catalog-sync:{sync_type}".encode()).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


# ============================================================================
# Store
# ============================================================================


class SqlCatalogStore(CatalogStore):
    """Catalog store over an async SQLAlchemy session."""

    def __init__(
        self,
        session: AsyncSession,
        ledger_session_factory: Callable[[], AsyncSession] | None = None,
    ) -> None:
        """Initialize store.

        Args:
            session: Session used for catalog reads and writes.
            ledger_session_factory: Optional factory for independent ledger
                sessions. Without it, ledger rows share ``session``.
        """
        self.session = session
        self.ledger_session_factory = ledger_session_factory

    async def _save(self, model_cls: type, entity, fields: dict) -> None:
        if entity.id is None:
            row = model_cls(**fields)
            self.session.add(row)
            await self.session.flush()
            entity.id = row.id
            return
        row = await self.session.get(model_cls, entity.id)
        if row is None:
            row = model_cls(id=entity.id, **fields)
            self.session.add(row)
        else:
            for name, value in fields.items():
                setattr(row, name, value)
        await self.session.flush()

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def list_categories(self) -> list[Category]:
        result = await self.session.execute(select(CategoryModel).order_by(CategoryModel.id))
        return [_category(row) for row in result.scalars()]

    async def get_category(self, category_id: int) -> Category | None:
        row = await self.session.get(CategoryModel, category_id)
        return _category(row) if row else None

    async def find_category_by_external_id(self, external_id: int) -> Category | None:
        result = await self.session.execute(
            select(CategoryModel).where(CategoryModel.external_id == external_id).limit(1)
        )
        row = result.scalar_one_or_none()
        return _category(row) if row else None

    async def find_category_by_scraped_key(
        self, scraped_id: str, parent_id: int | None
    ) -> Category | None:
        query = select(CategoryModel).where(CategoryModel.scraped_id == scraped_id)
        if parent_id is None:
            query = query.where(CategoryModel.parent_id.is_(None))
        else:
            query = query.where(CategoryModel.parent_id == parent_id)
        result = await self.session.execute(query.order_by(CategoryModel.id).limit(1))
        row = result.scalar_one_or_none()
        return _category(row) if row else None

    async def find_category_by_slug(self, slug: str) -> Category | None:
        result = await self.session.execute(
            select(CategoryModel).where(CategoryModel.slug == slug).limit(1)
        )
        row = result.scalar_one_or_none()
        return _category(row) if row else None

    async def save_category(self, category: Category) -> Category:
        await self._save(
            CategoryModel,
            category,
            {
                "slug": category.slug,
                "names": dict(category.names),
                "parent_id": category.parent_id,
                "external_id": category.external_id,
                "scraped_id": category.scraped_id,
                "scraped_slug": category.scraped_slug,
                "sort_order": category.sort_order,
                "visible": category.visible,
            },
        )
        return category

    # ------------------------------------------------------------------
    # Manufacturers
    # ------------------------------------------------------------------

    async def list_manufacturers(self) -> list[Manufacturer]:
        result = await self.session.execute(select(ManufacturerModel).order_by(ManufacturerModel.id))
        return [_manufacturer(row) for row in result.scalars()]

    async def find_manufacturer_by_external_id(self, external_id: int) -> Manufacturer | None:
        result = await self.session.execute(
            select(ManufacturerModel).where(ManufacturerModel.external_id == external_id).limit(1)
        )
        row = result.scalar_one_or_none()
        return _manufacturer(row) if row else None

    async def save_manufacturer(self, manufacturer: Manufacturer) -> Manufacturer:
        await self._save(
            ManufacturerModel,
            manufacturer,
            {
                "name": manufacturer.name,
                "external_id": manufacturer.external_id,
                "contact_info": dict(manufacturer.contact_info),
            },
        )
        return manufacturer

    # ------------------------------------------------------------------
    # Parameters and options
    # ------------------------------------------------------------------

    async def list_parameters(self, category_id: int | None = None) -> list[Parameter]:
        query = select(ParameterModel)
        if category_id is not None:
            query = query.where(ParameterModel.category_id == category_id)
        result = await self.session.execute(query.order_by(ParameterModel.id))
        return [_parameter(row) for row in result.scalars()]

    async def find_parameter(self, external_id: int, category_id: int) -> Parameter | None:
        result = await self.session.execute(
            select(ParameterModel)
            .where(
                ParameterModel.external_id == external_id,
                ParameterModel.category_id == category_id,
            )
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _parameter(row) if row else None

    async def find_parameter_by_key(self, category_id: int, scraped_key: str) -> Parameter | None:
        result = await self.session.execute(
            select(ParameterModel)
            .where(
                ParameterModel.scraped_key == scraped_key,
                ParameterModel.category_id == category_id,
            )
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _parameter(row) if row else None

    async def save_parameter(self, parameter: Parameter) -> Parameter:
        await self._save(
            ParameterModel,
            parameter,
            {
                "category_id": parameter.category_id,
                "names": dict(parameter.names),
                "order": parameter.order,
                "external_id": parameter.external_id,
                "scraped_key": parameter.scraped_key,
            },
        )
        return parameter

    async def list_options(self, parameter_id: int | None = None) -> list[ParameterOption]:
        query = select(ParameterOptionModel)
        if parameter_id is not None:
            query = query.where(ParameterOptionModel.parameter_id == parameter_id)
        result = await self.session.execute(
            query.order_by(ParameterOptionModel.order, ParameterOptionModel.id)
        )
        return [_option(row) for row in result.scalars()]

    async def find_option(self, external_id: int, parameter_id: int) -> ParameterOption | None:
        result = await self.session.execute(
            select(ParameterOptionModel)
            .where(
                ParameterOptionModel.external_id == external_id,
                ParameterOptionModel.parameter_id == parameter_id,
            )
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _option(row) if row else None

    async def save_option(self, option: ParameterOption) -> ParameterOption:
        await self._save(
            ParameterOptionModel,
            option,
            {
                "parameter_id": option.parameter_id,
                "names": dict(option.names),
                "order": option.order,
                "external_id": option.external_id,
            },
        )
        return option

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def _load_products(self, condition) -> list[Product]:
        result = await self.session.execute(
            select(ProductModel).where(condition).order_by(ProductModel.id)
        )
        rows = list(result.scalars())
        if not rows:
            return []
        specs_result = await self.session.execute(
            select(ProductParameterModel).where(
                ProductParameterModel.product_id.in_([row.id for row in rows])
            )
        )
        specs_by_product: dict[int, list[ProductParameterModel]] = {}
        for spec in specs_result.scalars():
            specs_by_product.setdefault(spec.product_id, []).append(spec)
        return [_product(row, specs_by_product.get(row.id, [])) for row in rows]

    async def find_products_by_external_id(self, external_id: int) -> list[Product]:
        return await self._load_products(ProductModel.external_id == external_id)

    async def find_products_by_sku(self, sku: str) -> list[Product]:
        return await self._load_products(ProductModel.sku == sku)

    async def find_duplicate_skus(self) -> list[str]:
        result = await self.session.execute(
            select(ProductModel.sku)
            .where(ProductModel.sku.is_not(None))
            .group_by(ProductModel.sku)
            .having(func.count(ProductModel.id) > 1)
            .order_by(ProductModel.sku)
        )
        return list(result.scalars())

    async def find_duplicate_external_ids(self) -> list[int]:
        result = await self.session.execute(
            select(ProductModel.external_id)
            .where(ProductModel.external_id.is_not(None))
            .group_by(ProductModel.external_id)
            .having(func.count(ProductModel.id) > 1)
            .order_by(ProductModel.external_id)
        )
        return list(result.scalars())

    async def save_product(self, product: Product) -> Product:
        fields = {name: getattr(product, name) for name in PRODUCT_FIELDS}
        fields["names"] = dict(product.names)
        fields["descriptions"] = dict(product.descriptions)
        fields["additional_image_urls"] = list(product.additional_image_urls)
        fields["status"] = product.status.value
        await self._save(ProductModel, product, fields)

        # Assignments are a full snapshot: replace every row
        await self.session.execute(
            delete(ProductParameterModel).where(ProductParameterModel.product_id == product.id)
        )
        for spec in product.specs:
            self.session.add(
                ProductParameterModel(
                    product_id=product.id,
                    parameter_id=spec.parameter_id,
                    option_id=spec.option_id,
                )
            )
        await self.session.flush()
        return product

    async def delete_product(self, product_id: int) -> None:
        await self.session.execute(
            delete(ProductParameterModel).where(ProductParameterModel.product_id == product_id)
        )
        await self.session.execute(delete(ProductModel).where(ProductModel.id == product_id))
        await self.session.flush()

    async def count_products(self) -> int:
        result = await self.session.execute(select(func.count(ProductModel.id)))
        return int(result.scalar_one())

    # ------------------------------------------------------------------
    # Sync runs
    # ------------------------------------------------------------------

    @staticmethod
    def _sync_run_fields(run: SyncRun) -> dict:
        return {
            "sync_type": run.sync_type,
            "status": run.status.value,
            "started_at": run.started_at,
            "duration_ms": run.duration_ms,
            "processed": run.processed,
            "created": run.created,
            "updated": run.updated,
            "errors": run.errors,
            "message": run.message,
            "error_message": run.error_message,
        }

    async def _write_sync_run(self, session: AsyncSession, run: SyncRun) -> None:
        fields = self._sync_run_fields(run)
        row = await session.get(SyncRunModel, run.id) if run.id is not None else None
        if row is None:
            row = SyncRunModel(**fields)
            session.add(row)
        else:
            for name, value in fields.items():
                setattr(row, name, value)
        await session.flush()
        run.id = row.id
        await session.commit()

    async def save_sync_run(self, run: SyncRun) -> SyncRun:
        if self.ledger_session_factory is None:
            await self._write_sync_run(self.session, run)
            return run
        async with self.ledger_session_factory() as session:
            await self._write_sync_run(session, run)
        return run

    async def list_sync_runs(self, limit: int = 20) -> list[SyncRun]:
        result = await self.session.execute(
            select(SyncRunModel).order_by(SyncRunModel.id.desc()).limit(limit)
        )
        return [_sync_run(row) for row in result.scalars()]

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    async def flush(self, clear: bool = False) -> None:
        await self.session.flush()
        if clear:
            self.session.expunge_all()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        async with self.session.begin_nested():
            yield

    @asynccontextmanager
    async def sync_lock(self, sync_type: str, wait: bool = True) -> AsyncIterator[bool]:
        # Session-level advisory lock, held on a dedicated connection rather
        # than the catalog session.
        key = advisory_lock_key(sync_type)
        params = {"key": key}
        async with self.session.bind.connect() as conn:
            if wait:
                await conn.execute(text("SELECT pg_advisory_lock(:key)"), params)
                acquired = True
            else:
                result = await conn.execute(text("SELECT pg_try_advisory_lock(:key)"), params)
                acquired = bool(result.scalar())
            try:
                yield acquired
            finally:
                if acquired:
                    await conn.execute(text("SELECT pg_advisory_unlock(:key)"), params)
