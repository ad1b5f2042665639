"""External records as delivered by the two feeds.

These are transient, source-shaped dataclasses. Each one is built from the
decoded JSON with ``from_api_response`` and never persisted as-is.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

# Literal placeholder the scraped feed uses for an empty category level.
NULL_MARKER = "null"

PROPERTY_PREFIX = "prop_"


def parse_names(items: Any) -> dict[str, str]:
    """Convert ``[{language_code, text}]`` into ``{language_code: text}``."""
    names: dict[str, str] = {}
    if isinstance(items, str):
        return {"en": items} if items.strip() else {}
    for item in items or []:
        if not isinstance(item, dict):
            continue
        language = item.get("language_code")
        text = item.get("text")
        if language and text:
            names[language] = text
    return names


def parse_decimal(value: Any) -> Decimal | None:
    """Parse a price or weight, accepting a comma as decimal separator."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    try:
        return Decimal(str(value).strip().replace(",", "."))
    except InvalidOperation:
        return None


def parse_int(value: Any) -> int | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        try:
            return int(Decimal(str(value)))
        except (InvalidOperation, ValueError, OverflowError):
            return None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ============================================================================
# Structured Feed Records
# ============================================================================


@dataclass
class CategoryRecord:
    """Category from the structured feed. A parent of 0 means root."""

    external_id: int
    names: dict[str, str]
    parent_external_id: int | None = None
    sort_order: int = 0
    visible: bool = True

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "CategoryRecord":
        """Create from API response data."""
        parent = parse_int(data.get("parent"))
        return cls(
            external_id=data["id"],
            names=parse_names(data.get("name")),
            parent_external_id=parent or None,
            sort_order=parse_int(data.get("order")) or 0,
            visible=data.get("show", True) is not False,
        )


@dataclass
class ManufacturerRecord:
    """Manufacturer from the structured feed."""

    external_id: int
    name: str
    contact_info: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ManufacturerRecord":
        """Create from API response data."""
        contact_info: dict[str, Any] = {}
        if data.get("information"):
            contact_info["information"] = data["information"]
        if data.get("eu_representative"):
            contact_info["eu_representative"] = data["eu_representative"]
        return cls(
            external_id=data["id"],
            name=(data.get("name") or "").strip(),
            contact_info=contact_info,
        )


@dataclass
class ParameterOptionRecord:
    """One option of a structured parameter."""

    external_id: int
    names: dict[str, str]
    order: int = 0

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ParameterOptionRecord":
        return cls(
            external_id=data["id"],
            names=parse_names(data.get("name")),
            order=parse_int(data.get("order")) or 0,
        )


@dataclass
class ParameterRecord:
    """Parameter definition from the structured feed, with its options."""

    external_id: int
    names: dict[str, str]
    order: int = 0
    options: list[ParameterOptionRecord] = field(default_factory=list)
    category_external_id: int | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ParameterRecord":
        """Create from API response data."""
        return cls(
            external_id=data["id"],
            names=parse_names(data.get("name")),
            order=parse_int(data.get("order")) or 0,
            options=[
                ParameterOptionRecord.from_api_response(option)
                for option in data.get("options") or []
            ],
            category_external_id=parse_int(data.get("category_id")),
        )


@dataclass
class ParameterValueRecord:
    """A product's reference to a parameter option."""

    parameter_external_id: int
    option_external_id: int

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ParameterValueRecord":
        return cls(
            parameter_external_id=data["parameter_id"],
            option_external_id=data["option_id"],
        )


@dataclass
class DocumentRecord:
    """Document attached to a structured product."""

    href: str
    comments: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "DocumentRecord":
        return cls(href=data["href"], comments=parse_names(data.get("comment")))


@dataclass
class ProductRecord:
    """Product from the structured feed.

    ``status_code`` is kept raw; the reconciler rejects unknown codes.
    """

    external_id: int
    names: dict[str, str]
    descriptions: dict[str, str] = field(default_factory=dict)
    reference_number: str | None = None
    model: str | None = None
    barcode: str | None = None
    manufacturer_external_id: int | None = None
    category_external_ids: list[int] = field(default_factory=list)
    status_code: Any = None
    price_client: Decimal | None = None
    price_partner: Decimal | None = None
    price_promo: Decimal | None = None
    price_client_promo: Decimal | None = None
    show: bool = True
    warranty: int | None = None
    weight: Decimal | None = None
    images: list[str] = field(default_factory=list)
    parameter_values: list[ParameterValueRecord] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ProductRecord":
        """Create from API response data.

        Args:
            data: API response data.

        Returns:
            ProductRecord instance.
        """
        category_ids = []
        for category in data.get("categories") or []:
            category_id = parse_int(category.get("id") if isinstance(category, dict) else category)
            if category_id is not None:
                category_ids.append(category_id)

        images = []
        for image in data.get("images") or []:
            href = image.get("href") if isinstance(image, dict) else image
            if href:
                images.append(href)

        return cls(
            external_id=data["id"],
            names=parse_names(data.get("name")),
            descriptions=parse_names(data.get("description")),
            reference_number=_text(data.get("reference_number")),
            model=_text(data.get("model")),
            barcode=_text(data.get("barcode")),
            manufacturer_external_id=parse_int(data.get("manufacturer_id")),
            category_external_ids=category_ids,
            status_code=data.get("status"),
            price_client=parse_decimal(data.get("price_client")),
            price_partner=parse_decimal(data.get("price_partner")),
            price_promo=parse_decimal(data.get("price_promo")),
            price_client_promo=parse_decimal(data.get("price_client_promo")),
            show=data.get("show", True) is not False,
            warranty=parse_int(data.get("warranty")),
            weight=parse_decimal(data.get("weight")),
            images=images,
            parameter_values=[
                ParameterValueRecord.from_api_response(value)
                for value in data.get("parameters") or []
                if value.get("parameter_id") is not None and value.get("option_id") is not None
            ],
        )


# ============================================================================
# Scraped Feed Records
# ============================================================================


def _children(value: Any) -> list[dict[str, Any]]:
    if isinstance(value, dict):
        value = list(value.values())
    return [child for child in value or [] if isinstance(child, dict)]


@dataclass
class ScrapedCategoryNode:
    """Node of the scraped category tree.

    ``raw_id``, ``slug`` and ``name`` may be missing; the reconciler skips
    such nodes.
    """

    raw_id: str | None
    slug: str | None
    name: str | None
    count: int = 0
    children: list["ScrapedCategoryNode"] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ScrapedCategoryNode":
        """Create a node and its subtree.

        Level 2 children arrive under ``sub_categories``, level 3 under
        ``subsubcat``.
        """
        raw_id = data.get("id")
        children = _children(data.get("sub_categories")) + _children(data.get("subsubcat"))
        return cls(
            raw_id=str(raw_id).strip() if raw_id not in (None, "") else None,
            slug=_text(data.get("slug")),
            name=_text(data.get("name")),
            count=parse_int(data.get("count")) or 0,
            children=[cls.from_api_response(child) for child in children],
        )


def _gallery_urls(value: Any) -> list[str]:
    if isinstance(value, dict):
        value = value.get("image") or list(value.values())
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, (list, tuple)):
        return []
    urls = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("url") or item.get("image") or item.get("href")
        if isinstance(item, str) and item.strip():
            urls.append(item.strip())
    return urls


def _category_level(value: Any) -> str | None:
    text = _text(value)
    if text is None or text.lower() == NULL_MARKER:
        return None
    return text


@dataclass
class ScrapedProduct:
    """Product item from the scraped feed's ``browse`` action.

    Attributes:
        sku: Matching key; may be missing on malformed items.
        properties: Values of ``prop_<key>`` fields keyed by ``<key>``.
        raw: The decoded item, kept for bare-key parameter fallback.
        source_category_slug: Category slug the item was browsed under.
    """

    sku: str | None
    name: str | None
    model: str | None = None
    description: str | None = None
    price: Decimal | None = None
    partner_price: Decimal | None = None
    quantity: int = 0
    weight: Decimal | None = None
    manufacturer: str | None = None
    category_1: str | None = None
    category_2: str | None = None
    category_3: str | None = None
    images: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    properties: dict[str, str] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)
    source_category_slug: str | None = None

    @classmethod
    def from_api_response(
        cls, data: dict[str, Any], source_category_slug: str | None = None
    ) -> "ScrapedProduct":
        """Create from a browsed item.

        Args:
            data: Decoded item.
            source_category_slug: Slug the item was listed under.

        Returns:
            ScrapedProduct instance.
        """
        images: list[str] = []
        for url in _gallery_urls(data.get("image")) + _gallery_urls(data.get("gallery")):
            if url not in images:
                images.append(url)

        properties = {}
        for key, value in data.items():
            if not key.startswith(PROPERTY_PREFIX):
                continue
            text = _text(value)
            name = key[len(PROPERTY_PREFIX):].strip().lower()
            if name and text:
                properties[name] = text

        weight = parse_decimal(data.get("weight"))
        if weight is None:
            weight = parse_decimal(data.get("net_weight"))

        return cls(
            sku=_text(data.get("sku")),
            name=_text(data.get("name")),
            model=_text(data.get("model")),
            description=_text(data.get("description")),
            price=parse_decimal(data.get("price")),
            partner_price=parse_decimal(data.get("partner_price")),
            quantity=parse_int(data.get("quantity")) or 0,
            weight=weight,
            manufacturer=_text(data.get("manufacturer")),
            category_1=_category_level(data.get("category_1")),
            category_2=_category_level(data.get("category_2")),
            category_3=_category_level(data.get("category_3")),
            images=images,
            files=_gallery_urls(data.get("files")),
            properties=properties,
            raw=dict(data),
            source_category_slug=source_category_slug,
        )

    @property
    def category_names(self) -> list[str]:
        """Category names from most to least specific."""
        return [c for c in (self.category_3, self.category_2, self.category_1) if c]
