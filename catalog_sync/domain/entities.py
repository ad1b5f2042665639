"""Canonical catalog entities.

Entities are plain data structs. Relations between them (category to
parent, product to category) are foreign-key ids resolved through explicit
store lookups, so nothing here touches persistence.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

DEFAULT_MARKUP_PERCENTAGE = Decimal("20")
PRICE_QUANTUM = Decimal("0.01")

# Preferred languages for display names, most preferred first.
DISPLAY_LANGUAGES = ("en", "bg")


def display_name(names: dict[str, str]) -> str:
    """Pick the display text from a multilingual name map.

    Args:
        names: Mapping of language code to text.

    Returns:
        English text if present, then Bulgarian, then any text, else "".
    """
    for language in DISPLAY_LANGUAGES:
        text = names.get(language)
        if text:
            return text
    for text in names.values():
        if text:
            return text
    return ""


# ============================================================================
# Enums
# ============================================================================


class ProductStatus(str, Enum):
    """Availability status of a product.

    The structured feed sends the status as a numeric code; the enum order
    matches those codes.
    """

    NOT_AVAILABLE = "NOT_AVAILABLE"
    AVAILABLE = "AVAILABLE"
    LIMITED_QUANTITY = "LIMITED_QUANTITY"
    ON_ROUTE = "ON_ROUTE"
    ON_DEMAND = "ON_DEMAND"

    @classmethod
    def from_code(cls, code: int | str) -> "ProductStatus":
        """Map a structured-feed status code onto a status.

        Raises:
            ValueError: If the code is not an integer in 0..4.
        """
        members = list(cls)
        try:
            index = int(code)
        except (TypeError, ValueError):
            raise ValueError(f"Unknown product status code: {code!r}") from None
        if isinstance(code, bool) or not 0 <= index < len(members):
            raise ValueError(f"Unknown product status code: {code!r}")
        return members[index]


class SyncStatus(str, Enum):
    """Lifecycle of a sync run ledger entry."""

    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class SyncType(str, Enum):
    """Every top-level sync call the orchestrator exposes."""

    STRUCTURED_CATEGORIES = "STRUCTURED_CATEGORIES"
    STRUCTURED_MANUFACTURERS = "STRUCTURED_MANUFACTURERS"
    STRUCTURED_PARAMETERS = "STRUCTURED_PARAMETERS"
    STRUCTURED_PRODUCTS = "STRUCTURED_PRODUCTS"
    STRUCTURED_CATEGORY_PRODUCTS = "STRUCTURED_CATEGORY_PRODUCTS"
    STRUCTURED_ALL = "STRUCTURED_ALL"
    SCRAPED_CATEGORIES = "SCRAPED_CATEGORIES"
    SCRAPED_MANUFACTURERS = "SCRAPED_MANUFACTURERS"
    SCRAPED_PARAMETERS = "SCRAPED_PARAMETERS"
    SCRAPED_PRODUCTS = "SCRAPED_PRODUCTS"
    SCRAPED_ALL = "SCRAPED_ALL"


# ============================================================================
# Catalog Entities
# ============================================================================


@dataclass
class Category:
    """A node of the canonical category tree.

    A category may be known to the structured feed (``external_id``), to the
    scraped feed (``scraped_id`` together with ``parent_id``), or to both.

    Attributes:
        id: Internal id, None until first saved.
        slug: Unique URL slug.
        names: Mapping of language code to name.
        parent_id: Internal id of the parent, None for roots.
        external_id: Structured-feed id.
        scraped_id: Raw scraped-feed id, unique only under one parent.
        scraped_slug: Slug as reported by the scraped feed.
        sort_order: Display order among siblings.
        visible: Whether the storefront shows the category.
    """

    slug: str = ""
    names: dict[str, str] = field(default_factory=dict)
    parent_id: int | None = None
    external_id: int | None = None
    scraped_id: str | None = None
    scraped_slug: str | None = None
    sort_order: int = 0
    visible: bool = True
    id: int | None = None

    @property
    def name(self) -> str:
        """Display name."""
        return display_name(self.names)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Manufacturer:
    """A product manufacturer."""

    name: str
    external_id: int | None = None
    contact_info: dict[str, Any] = field(default_factory=dict)
    id: int | None = None


@dataclass
class Parameter:
    """A specification definition scoped to one category.

    Structured parameters carry ``external_id``; scraped parameters are
    inferred from product fields and carry ``scraped_key`` instead.
    """

    category_id: int
    names: dict[str, str] = field(default_factory=dict)
    order: int = 0
    external_id: int | None = None
    scraped_key: str | None = None
    id: int | None = None

    @property
    def name(self) -> str:
        return display_name(self.names)


@dataclass
class ParameterOption:
    """One allowed value of a parameter."""

    parameter_id: int
    names: dict[str, str] = field(default_factory=dict)
    order: int = 0
    external_id: int | None = None
    id: int | None = None

    @property
    def name(self) -> str:
        return display_name(self.names)


@dataclass(frozen=True)
class ProductParameter:
    """Assignment of a parameter option to a product.

    The owning product is implied by the set the assignment lives in; the
    store fills ``product_id`` on read.
    """

    parameter_id: int
    option_id: int
    product_id: int | None = field(default=None, compare=False)


@dataclass
class Product:
    """A canonical product.

    Attributes:
        id: Internal id, None until first saved.
        external_id: Structured-feed id.
        sku: Stock keeping unit, the scraped feed's matching key.
        category_id: Internal id of the product's category.
        manufacturer_id: Internal id of the manufacturer, optional.
        names: Mapping of language code to name.
        descriptions: Mapping of language code to description.
        price_client: Base price the final price is derived from.
        final_price: Computed sale price, see ``recalculate_final_price``.
        specs: Parameter assignments.
    """

    names: dict[str, str] = field(default_factory=dict)
    descriptions: dict[str, str] = field(default_factory=dict)
    external_id: int | None = None
    sku: str | None = None
    reference_number: str | None = None
    model: str | None = None
    barcode: str | None = None
    category_id: int | None = None
    manufacturer_id: int | None = None
    price_client: Decimal | None = None
    price_partner: Decimal | None = None
    price_promo: Decimal | None = None
    price_client_promo: Decimal | None = None
    markup_percentage: Decimal = DEFAULT_MARKUP_PERCENTAGE
    discount: Decimal = Decimal("0")
    final_price: Decimal | None = None
    status: ProductStatus = ProductStatus.NOT_AVAILABLE
    visible: bool = True
    warranty: int | None = None
    weight: Decimal | None = None
    primary_image_url: str | None = None
    additional_image_urls: list[str] = field(default_factory=list)
    specs: set[ProductParameter] = field(default_factory=set)
    id: int | None = None

    @property
    def name(self) -> str:
        return display_name(self.names)

    def recalculate_final_price(self) -> Decimal | None:
        """Recompute the sale price from the base price and stored rules.

        The markup is applied first, then the discount; the result is
        rounded half-up to cents. Without a base price there is no final
        price.

        Returns:
            The new final price.
        """
        if self.price_client is None:
            self.final_price = None
            return None

        markup = self.markup_percentage if self.markup_percentage is not None else DEFAULT_MARKUP_PERCENTAGE
        discount = self.discount or Decimal("0")
        price = Decimal(self.price_client) * (Decimal("1") + markup / Decimal("100"))
        price = price * (Decimal("1") - discount / Decimal("100"))
        self.final_price = price.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)
        return self.final_price

    def replace_specs(self, specs: set[ProductParameter]) -> None:
        """Replace every parameter assignment with a new snapshot."""
        self.specs = set(specs)


# ============================================================================
# Ledger Entity
# ============================================================================


@dataclass
class SyncRun:
    """Audit record of one sync invocation.

    ``persisted`` is False when the ledger store could not be written; the
    object is still returned so callers can report the outcome.
    """

    sync_type: str
    status: SyncStatus = SyncStatus.IN_PROGRESS
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: int | None = None
    processed: int = 0
    created: int = 0
    updated: int = 0
    errors: int = 0
    message: str | None = None
    error_message: str | None = None
    persisted: bool = True
    id: int | None = None

    @property
    def is_finished(self) -> bool:
        return self.status != SyncStatus.IN_PROGRESS

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "sync_type": self.sync_type,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "errors": self.errors,
            "message": self.message,
            "error_message": self.error_message,
            "persisted": self.persisted,
        }
