"""Tests for retrying JSON requests."""

import httpx
import pytest

from catalog_sync.clients.http import RetryPolicy, request_json
from catalog_sync.domain.exceptions import ExternalSourceError


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url="https://feed.test", transport=httpx.MockTransport(handler))


class RecordingSleep:
    """Awaitable sleep that records delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class TestRequestJson:
    """Tests for request_json retry behavior."""

    @pytest.mark.asyncio
    async def test_returns_decoded_body(self) -> None:
        async with make_client(lambda request: httpx.Response(200, json={"ok": True})) as client:
            data = await request_json(client, "GET", "/x", source="test", policy=RetryPolicy())
        assert data == {"ok": True}

    @pytest.mark.asyncio
    async def test_retries_server_errors_with_doubling_delay(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=[1, 2])

        sleep = RecordingSleep()
        async with make_client(handler) as client:
            data = await request_json(
                client,
                "GET",
                "/x",
                source="test",
                policy=RetryPolicy(attempts=3, delay=2.0, max_delay=30.0),
                sleep=sleep,
            )

        assert data == [1, 2]
        assert len(attempts) == 3
        assert sleep.delays == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_delay_is_capped(self) -> None:
        sleep = RecordingSleep()
        async with make_client(lambda request: httpx.Response(502)) as client:
            with pytest.raises(ExternalSourceError):
                await request_json(
                    client,
                    "GET",
                    "/x",
                    source="test",
                    policy=RetryPolicy(attempts=4, delay=10.0, max_delay=15.0),
                    sleep=sleep,
                )
        assert sleep.delays == [10.0, 15.0, 15.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_with_status(self) -> None:
        async with make_client(lambda request: httpx.Response(500)) as client:
            with pytest.raises(ExternalSourceError) as exc_info:
                await request_json(
                    client, "GET", "/x", source="test", policy=RetryPolicy(attempts=2, delay=0)
                )
        assert exc_info.value.status_code == 500
        assert exc_info.value.source == "test"

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"ok": 1})

        async with make_client(handler) as client:
            data = await request_json(
                client, "GET", "/x", source="test", policy=RetryPolicy(attempts=3, delay=0)
            )
        assert data == {"ok": 1}
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(401)

        async with make_client(handler) as client:
            with pytest.raises(ExternalSourceError) as exc_info:
                await request_json(
                    client, "GET", "/x", source="test", policy=RetryPolicy(attempts=3, delay=0)
                )
        assert exc_info.value.status_code == 401
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self) -> None:
        async with make_client(lambda request: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(ExternalSourceError):
                await request_json(
                    client, "GET", "/x", source="test", policy=RetryPolicy(attempts=1, delay=0)
                )
