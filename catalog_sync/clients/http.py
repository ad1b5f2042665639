"""HTTP helpers shared by the feed clients: bounded retries with backoff."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from catalog_sync.domain.exceptions import ExternalSourceError

logger = structlog.get_logger()

RETRYABLE_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})


class RetryableStatusError(httpx.HTTPError):
    """Internal error used to mark responses that should be retried."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"Retryable response: {response.status_code}")
        self.response = response


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings for one feed.

    Attributes:
        attempts: Total number of attempts, including the first.
        delay: Sleep before the first retry, in seconds.
        max_delay: Cap for the doubling delay.
    """

    attempts: int = 3
    delay: float = 2.0
    max_delay: float = 30.0


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    source: str,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any,
) -> Any:
    """Execute a request with retries and decode the JSON body.

    Timeouts, network errors and retryable statuses are retried with a
    doubling delay capped at ``policy.max_delay``. Any other non-2xx status
    or an undecodable body fails immediately.

    Args:
        client: HTTP client to send through.
        method: HTTP method.
        url: URL or path relative to the client's base URL.
        source: Feed name used in errors and logs.
        policy: Retry policy.
        sleep: Awaitable sleep, replaceable in tests.
        **kwargs: Passed through to ``client.request``.

    Returns:
        Decoded JSON body.

    Raises:
        ExternalSourceError: When the request cannot succeed.
    """
    attempts = max(1, policy.attempts)
    delay = max(0.0, policy.delay)
    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        try:
            response = await client.request(method, url, **kwargs)
            if response.status_code in RETRYABLE_STATUSES:
                raise RetryableStatusError(response)
        except (RetryableStatusError, httpx.TimeoutException, httpx.NetworkError) as exc:
            last_error = exc
            logger.warning(
                "Feed request failed",
                source=source,
                url=url,
                attempt=attempt,
                attempts=attempts,
                error=str(exc),
            )
            if attempt >= attempts:
                break
            if delay > 0:
                await sleep(delay)
                delay = min(delay * 2, policy.max_delay) if policy.max_delay > 0 else delay * 2
            continue

        if response.status_code >= 400:
            raise ExternalSourceError(
                source,
                f"{method} {url} returned {response.status_code}",
                response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ExternalSourceError(
                source, f"{method} {url} returned invalid JSON", response.status_code
            ) from exc

    status_code = None
    if isinstance(last_error, RetryableStatusError):
        status_code = last_error.response.status_code
    raise ExternalSourceError(
        source,
        f"{method} {url} failed after {attempts} attempts: {last_error}",
        status_code,
    )
