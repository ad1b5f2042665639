"""SQLAlchemy models for the canonical catalog tables.

Rows are mapped to and from the plain dataclasses in
``catalog_sync.domain.entities`` by ``SqlCatalogStore``; nothing outside the
repository layer sees these classes.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.infrastructure.database import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Catalog Models
# ============================================================================


class CategoryModel(Base):
    """Category tree stored as a flat table with a nullable parent id."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[int | None] = mapped_column(Integer, nullable=True, unique=True)
    scraped_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    scraped_slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    names: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )


class ManufacturerModel(Base):
    """Manufacturer table."""

    __tablename__ = "manufacturers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[int | None] = mapped_column(Integer, nullable=True, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    contact_info: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )


class ParameterModel(Base):
    """Specification definitions, scoped per category."""

    __tablename__ = "parameters"
    __table_args__ = (
        UniqueConstraint("category_id", "external_id", name="uq_parameters_category_external"),
        UniqueConstraint("category_id", "scraped_key", name="uq_parameters_category_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scraped_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    names: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    order: Mapped[int] = mapped_column("sort_order", Integer, nullable=False, default=0)


class ParameterOptionModel(Base):
    """Allowed values of a parameter."""

    __tablename__ = "parameter_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parameter_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("parameters.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    names: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    order: Mapped[int] = mapped_column("sort_order", Integer, nullable=False, default=0)


class ProductModel(Base):
    """Canonical product table.

    ``sku`` and ``external_id`` are indexed but not unique: duplicates left by
    earlier runs are collapsed by the duplicate repair pass.
    """

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    barcode: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    manufacturer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("manufacturers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    names: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    descriptions: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    price_client: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    price_partner: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    price_promo: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    price_client_promo: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    markup_percentage: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("20"))
    discount: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))
    final_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="NOT_AVAILABLE")
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    warranty: Mapped[int | None] = mapped_column(Integer, nullable=True)
    weight: Mapped[Decimal | None] = mapped_column(Numeric(10, 3), nullable=True)
    primary_image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    additional_image_urls: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )


class ProductParameterModel(Base):
    """Parameter option assigned to a product."""

    __tablename__ = "product_parameters"

    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True
    )
    parameter_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("parameters.id", ondelete="CASCADE"), primary_key=True
    )
    option_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("parameter_options.id", ondelete="CASCADE"), primary_key=True
    )


# ============================================================================
# Ledger Model
# ============================================================================


class SyncRunModel(Base):
    """One row per sync invocation."""

    __tablename__ = "sync_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sync_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
