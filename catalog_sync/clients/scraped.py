"""HTTP client for the scraped supplier feed.

The feed exposes a single endpoint selected by an ``action`` query value and
authenticated by an access-token query parameter. ``categories`` returns the
category tree; ``browse`` returns paginated product items. Responses are
kept in a short-TTL ``ResponseCache``.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import httpx
import structlog

from catalog_sync.clients.cache import ResponseCache
from catalog_sync.clients.http import RetryPolicy, request_json
from catalog_sync.clients.records import ScrapedCategoryNode, ScrapedProduct, parse_int
from catalog_sync.domain.exceptions import ExternalSourceError

logger = structlog.get_logger()

SOURCE = "scraped"
CATEGORIES_CACHE_KEY = "categories"


def dedupe_by_sku(products: Iterable[ScrapedProduct]) -> list[ScrapedProduct]:
    """Keep the first item per SKU; items without a SKU pass through."""
    seen: set[str] = set()
    unique = []
    for product in products:
        if product.sku:
            if product.sku in seen:
                continue
            seen.add(product.sku)
        unique.append(product)
    return unique


class ScrapedFeedClient:
    """Client for the scraped feed.

    Usage:
        async with ScrapedFeedClient(url, token) as client:
            tree = await client.get_category_tree()
    """

    def __init__(
        self,
        base_url: str,
        access_token: str,
        cache: ResponseCache | None = None,
        page_size: int = 100,
        max_pages: int = 50,
        page_delay: float = 0.5,
        timeout: float = 30.0,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize scraped feed client.

        Args:
            base_url: Endpoint URL.
            access_token: Value of the ``access_token_feed`` query parameter.
            cache: Response cache; a 5 minute cache is created if omitted.
            page_size: Items requested per ``browse`` page.
            max_pages: Hard limit of pages per category.
            page_delay: Pause between page requests, in seconds.
            timeout: Request timeout in seconds.
            retry_policy: Retry settings; defaults to 3 attempts.
            transport: Optional transport, used by tests.
            sleep: Awaitable sleep, replaceable in tests.
        """
        self.base_url = base_url
        self.access_token = access_token
        self.cache = cache if cache is not None else ResponseCache()
        self.page_size = page_size
        self.max_pages = max_pages
        self.page_delay = page_delay
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ScrapedFeedClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _call(self, action: str, **params: Any) -> Any:
        client = await self._get_client()
        return await request_json(
            client,
            "GET",
            self.base_url,
            source=SOURCE,
            policy=self.retry_policy,
            sleep=self._sleep,
            params={"action": action, "access_token_feed": self.access_token, **params},
        )

    def invalidate_cache(self) -> int:
        """Clear every cached response."""
        return self.cache.invalidate()

    async def get_category_tree(self) -> list[ScrapedCategoryNode]:
        """Fetch the category tree.

        Returns:
            Root nodes with their subtrees, empty when the feed is unavailable.
        """
        cached = self.cache.get(CATEGORIES_CACHE_KEY)
        if cached is not None:
            return cached

        try:
            data = await self._call("categories")
        except ExternalSourceError as e:
            logger.error("Failed to fetch scraped categories", error=e.message)
            return []

        if isinstance(data, dict):
            data = data.get("categories") or data.get("items") or []
        if not isinstance(data, list):
            logger.error("Unexpected scraped categories payload", payload_type=type(data).__name__)
            return []

        roots = [ScrapedCategoryNode.from_api_response(item) for item in data if isinstance(item, dict)]
        self.cache.set(CATEGORIES_CACHE_KEY, roots)
        logger.info("Fetched scraped categories", roots=len(roots))
        return roots

    async def get_products(self, category_slug: str) -> list[ScrapedProduct]:
        """Fetch every item listed under a category.

        Pagination stops on an empty page, after ``total_pages`` when the
        feed reports it, or at ``max_pages``. A failed page ends the listing
        and the partial result is not cached.

        Args:
            category_slug: Scraped-feed category slug.

        Returns:
            Items, each tagged with ``category_slug`` as its source category.
        """
        cache_key = f"browse:{category_slug}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        items: list[dict[str, Any]] = []
        failed = False
        page = 1
        while page <= self.max_pages:
            try:
                data = await self._call(
                    "browse",
                    catSlug=category_slug,
                    page=page,
                    perPage=self.page_size,
                    allProducts=1,
                    in_stock=1,
                    out_of_stock=1,
                    feed=1,
                )
            except ExternalSourceError as e:
                logger.error(
                    "Failed to fetch scraped products",
                    category_slug=category_slug,
                    page=page,
                    error=e.message,
                )
                failed = True
                break

            total_pages = None
            if isinstance(data, dict):
                total_pages = parse_int(data.get("total_pages"))
                data = data.get("products") or data.get("items") or []
            if not isinstance(data, list):
                data = []
            page_items = [item for item in data if isinstance(item, dict)]
            if not page_items:
                break
            items.extend(page_items)
            if total_pages is not None and page >= total_pages:
                break
            page += 1
            if page <= self.max_pages and self.page_delay > 0:
                await self._sleep(self.page_delay)

        products = [ScrapedProduct.from_api_response(item, category_slug) for item in items]
        if not failed:
            self.cache.set(cache_key, products)
        logger.info(
            "Fetched scraped products",
            category_slug=category_slug,
            count=len(products),
        )
        return products

    async def get_products_for_categories(self, category_slugs: Iterable[str]) -> list[ScrapedProduct]:
        """Fetch items of several categories, de-duplicated by SKU."""
        products: list[ScrapedProduct] = []
        for slug in category_slugs:
            products.extend(await self.get_products(slug))
        unique = dedupe_by_sku(products)
        if len(unique) != len(products):
            logger.info(
                "Removed duplicate scraped items",
                total=len(products),
                unique=len(unique),
            )
        return unique
