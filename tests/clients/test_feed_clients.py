"""Tests for the structured and scraped feed clients."""

import httpx
import pytest

from catalog_sync.clients.cache import ResponseCache
from catalog_sync.clients.http import RetryPolicy
from catalog_sync.clients.records import ScrapedProduct
from catalog_sync.clients.scraped import ScrapedFeedClient, dedupe_by_sku
from catalog_sync.clients.structured import StructuredFeedClient

NO_RETRY = RetryPolicy(attempts=1, delay=0)


def en(text: str) -> list[dict[str, str]]:
    return [{"language_code": "en", "text": text}]


async def no_sleep(seconds: float) -> None:
    pass


# ============================================================================
# Structured feed
# ============================================================================


class TestStructuredFeedClient:
    """Tests for StructuredFeedClient."""

    @pytest.mark.asyncio
    async def test_sends_bearer_token(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["path"] = request.url.path
            return httpx.Response(200, json=[{"id": 1, "parent": 0, "name": en("Cameras")}])

        async with StructuredFeedClient(
            "https://api.test/v1", "secret", retry_policy=NO_RETRY, transport=httpx.MockTransport(handler)
        ) as client:
            categories = await client.get_categories()

        assert seen == {"auth": "Bearer secret", "path": "/v1/categories"}
        assert categories[0].external_id == 1
        assert categories[0].names == {"en": "Cameras"}

    @pytest.mark.asyncio
    async def test_unavailable_feed_degrades_to_empty_list(self) -> None:
        client = StructuredFeedClient(
            "https://api.test",
            "secret",
            retry_policy=RetryPolicy(attempts=2, delay=0),
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )
        try:
            assert await client.get_manufacturers() == []
            assert await client.get_parameters_by_category(5) == []
            assert await client.get_products_by_category(5) == []
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_skips_malformed_items(self) -> None:
        payload = {"items": [{"id": 1, "name": "Acme"}, {"name": "No id"}, "junk"]}
        async with StructuredFeedClient(
            "https://api.test",
            "secret",
            retry_policy=NO_RETRY,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=payload)),
        ) as client:
            manufacturers = await client.get_manufacturers()

        assert [m.external_id for m in manufacturers] == [1]

    @pytest.mark.asyncio
    async def test_products_follow_pagination(self) -> None:
        pages = {
            "1": {"items": [{"id": 10, "name": en("A")}], "last_page": 2},
            "2": {"items": [{"id": 11, "name": en("B")}], "last_page": 2},
        }
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(dict(request.url.params))
            return httpx.Response(200, json=pages[request.url.params["page"]])

        async with StructuredFeedClient(
            "https://api.test",
            "secret",
            retry_policy=NO_RETRY,
            page_size=1,
            transport=httpx.MockTransport(handler),
        ) as client:
            products = await client.get_products_by_category(7)

        assert [p.external_id for p in products] == [10, 11]
        assert [r["page"] for r in requested] == ["1", "2"]
        assert requested[0]["category_id"] == "7"
        assert requested[0]["per_page"] == "1"

    @pytest.mark.asyncio
    async def test_documents_by_product(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/product/100/documents"
            return httpx.Response(200, json=[{"href": "https://docs.test/manual.pdf"}])

        async with StructuredFeedClient(
            "https://api.test", "secret", retry_policy=NO_RETRY, transport=httpx.MockTransport(handler)
        ) as client:
            documents = await client.get_documents_by_product(100)

        assert documents[0].href == "https://docs.test/manual.pdf"


# ============================================================================
# Scraped feed
# ============================================================================


def scraped_client(handler, **kwargs) -> ScrapedFeedClient:
    kwargs.setdefault("retry_policy", NO_RETRY)
    return ScrapedFeedClient(
        "https://feed.test/api.php",
        "token",
        transport=httpx.MockTransport(handler),
        sleep=no_sleep,
        **kwargs,
    )


class TestScrapedFeedClient:
    """Tests for ScrapedFeedClient."""

    @pytest.mark.asyncio
    async def test_category_tree_is_cached(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(dict(request.url.params))
            return httpx.Response(200, json=[{"id": 1, "slug": "root", "name": "Root"}])

        async with scraped_client(handler) as client:
            first = await client.get_category_tree()
            second = await client.get_category_tree()

        assert len(calls) == 1
        assert calls[0]["action"] == "categories"
        assert calls[0]["access_token_feed"] == "token"
        assert first[0].slug == "root"
        assert second is first

    @pytest.mark.asyncio
    async def test_invalidate_cache_forces_refetch(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=[{"id": 1, "slug": "root", "name": "Root"}])

        async with scraped_client(handler) as client:
            await client.get_category_tree()
            assert client.invalidate_cache() == 1
            await client.get_category_tree()

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_browse_stops_on_empty_page(self) -> None:
        pages = {
            "1": [{"sku": "A", "name": "A"}, {"sku": "B", "name": "B"}],
            "2": [{"sku": "C", "name": "C"}],
            "3": [],
        }
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            params = request.url.params
            requested.append(params["page"])
            assert params["action"] == "browse"
            assert params["catSlug"] == "kameri"
            return httpx.Response(200, json=pages[params["page"]])

        async with scraped_client(handler) as client:
            products = await client.get_products("kameri")

        assert [p.sku for p in products] == ["A", "B", "C"]
        assert requested == ["1", "2", "3"]
        assert all(p.source_category_slug == "kameri" for p in products)

    @pytest.mark.asyncio
    async def test_browse_respects_total_pages_and_max_pages(self) -> None:
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = request.url.params["page"]
            requested.append(page)
            return httpx.Response(
                200, json={"products": [{"sku": f"S{page}", "name": "x"}], "total_pages": 5}
            )

        async with scraped_client(handler, max_pages=3) as client:
            products = await client.get_products("kameri")

        assert requested == ["1", "2", "3"]
        assert len(products) == 3

    @pytest.mark.asyncio
    async def test_browse_ignores_unparseable_total_pages(self) -> None:
        """A garbage page count falls back to paging until an empty page."""
        pages = {
            "1": {"products": [{"sku": "A", "name": "A"}], "total_pages": "abc"},
            "2": {"products": [{"sku": "B", "name": "B"}], "total_pages": None},
            "3": {"products": 7, "total_pages": "n/a"},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=pages[request.url.params["page"]])

        async with scraped_client(handler) as client:
            products = await client.get_products("kameri")

        assert [p.sku for p in products] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_failed_browse_is_not_cached(self) -> None:
        state = {"fail": True}

        def handler(request: httpx.Request) -> httpx.Response:
            if state["fail"]:
                return httpx.Response(500)
            if request.url.params["page"] == "1":
                return httpx.Response(200, json=[{"sku": "A", "name": "A"}])
            return httpx.Response(200, json=[])

        cache = ResponseCache()
        async with scraped_client(handler, cache=cache) as client:
            assert await client.get_products("kameri") == []
            assert len(cache) == 0

            state["fail"] = False
            products = await client.get_products("kameri")

        assert [p.sku for p in products] == ["A"]
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_products_for_categories_deduplicate_by_sku(self) -> None:
        listings = {
            "a": [{"sku": "X", "name": "first"}, {"sku": "Y", "name": "y"}],
            "b": [{"sku": "X", "name": "second"}],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            params = request.url.params
            if params["page"] != "1":
                return httpx.Response(200, json=[])
            return httpx.Response(200, json=listings[params["catSlug"]])

        async with scraped_client(handler) as client:
            products = await client.get_products_for_categories(["a", "b"])

        assert [(p.sku, p.name) for p in products] == [("X", "first"), ("Y", "y")]

    def test_dedupe_keeps_items_without_sku(self) -> None:
        items = [
            ScrapedProduct(sku=None, name="a"),
            ScrapedProduct(sku=None, name="b"),
            ScrapedProduct(sku="S", name="c"),
            ScrapedProduct(sku="S", name="d"),
        ]
        assert [p.name for p in dedupe_by_sku(items)] == ["a", "b", "c"]
