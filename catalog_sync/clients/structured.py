"""HTTP client for the structured supplier feed.

Bearer-token REST API with stable numeric ids. Every read degrades to an
empty list when the feed cannot be reached after retries, so the sync
passes treat "no data" as a normal, if unproductive, outcome.
"""

from typing import Any

import httpx
import structlog

from catalog_sync.clients.http import RetryPolicy, request_json
from catalog_sync.clients.records import (
    CategoryRecord,
    DocumentRecord,
    ManufacturerRecord,
    ParameterRecord,
    ProductRecord,
)
from catalog_sync.domain.exceptions import ExternalSourceError

logger = structlog.get_logger()

SOURCE = "structured"


class StructuredFeedClient:
    """Client for the structured feed.

    Usage:
        async with StructuredFeedClient(url, token) as client:
            categories = await client.get_categories()
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        retry_policy: RetryPolicy | None = None,
        page_size: int = 100,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize structured feed client.

        Args:
            base_url: API base URL.
            token: Bearer token.
            timeout: Request timeout in seconds.
            retry_policy: Retry settings; defaults to 3 attempts.
            page_size: Products requested per page.
            transport: Optional transport, used by tests.
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.page_size = page_size
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Accept": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "StructuredFeedClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        client = await self._get_client()
        return await request_json(
            client,
            "GET",
            path,
            source=SOURCE,
            policy=self.retry_policy,
            params=params,
        )

    async def _get_list(self, path: str, what: str, **context: Any) -> list[dict[str, Any]]:
        try:
            data = await self._get(path)
        except ExternalSourceError as e:
            logger.error(f"Failed to fetch {what}", error=e.message, **context)
            return []
        if isinstance(data, dict):
            data = data.get("items") or data.get("data") or []
        if not isinstance(data, list):
            logger.error(f"Unexpected {what} payload", payload_type=type(data).__name__, **context)
            return []
        return [item for item in data if isinstance(item, dict)]

    @staticmethod
    def _parse(items: list[dict[str, Any]], parser, what: str) -> list:
        records = []
        for item in items:
            try:
                records.append(parser(item))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed {what}", item_id=item.get("id"), error=str(e))
        return records

    async def get_categories(self) -> list[CategoryRecord]:
        """Fetch the flat category list.

        Returns:
            Category records, empty when the feed is unavailable.
        """
        items = await self._get_list("/categories", "categories")
        return self._parse(items, CategoryRecord.from_api_response, "category")

    async def get_manufacturers(self) -> list[ManufacturerRecord]:
        """Fetch all manufacturers."""
        items = await self._get_list("/manufacturers", "manufacturers")
        return self._parse(items, ManufacturerRecord.from_api_response, "manufacturer")

    async def get_parameters_by_category(self, category_external_id: int) -> list[ParameterRecord]:
        """Fetch parameter definitions of one category.

        Args:
            category_external_id: Structured-feed category id.

        Returns:
            Parameter records with their options.
        """
        items = await self._get_list(
            f"/parameters/{category_external_id}",
            "parameters",
            category_id=category_external_id,
        )
        return self._parse(items, ParameterRecord.from_api_response, "parameter")

    async def get_products_by_category(self, category_external_id: int) -> list[ProductRecord]:
        """Fetch every product of one category, following pagination.

        Pages are requested until ``last_page`` is reached or a page comes
        back empty. A failing page ends the listing with what was fetched.

        Args:
            category_external_id: Structured-feed category id.

        Returns:
            Product records.
        """
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            try:
                data = await self._get(
                    "/products/full",
                    params={
                        "category_id": category_external_id,
                        "page": page,
                        "per_page": self.page_size,
                    },
                )
            except ExternalSourceError as e:
                logger.error(
                    "Failed to fetch products",
                    category_id=category_external_id,
                    page=page,
                    error=e.message,
                )
                break

            if isinstance(data, list):
                items.extend(item for item in data if isinstance(item, dict))
                break
            if not isinstance(data, dict):
                break

            page_items = [item for item in data.get("items") or [] if isinstance(item, dict)]
            items.extend(page_items)
            last_page = data.get("last_page") or page
            if not page_items or page >= last_page:
                break
            page += 1

        logger.debug(
            "Fetched products",
            category_id=category_external_id,
            count=len(items),
            pages=page,
        )
        return self._parse(items, ProductRecord.from_api_response, "product")

    async def get_documents_by_product(self, product_external_id: int) -> list[DocumentRecord]:
        """Fetch documents attached to one product."""
        items = await self._get_list(
            f"/product/{product_external_id}/documents",
            "documents",
            product_id=product_external_id,
        )
        return self._parse(items, DocumentRecord.from_api_response, "document")
