"""Short-lived in-process response cache for the scraped feed."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

logger = structlog.get_logger()


@dataclass
class _Entry:
    value: Any
    expires_at: float


class ResponseCache:
    """Key/value cache whose entries expire after a fixed TTL.

    The orchestrator calls ``invalidate()`` before a full resync so that a
    resync never serves responses fetched before it started.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    def get(self, key: str) -> Any | None:
        """Return a fresh cached value, or None on miss or expiry."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + self.ttl_seconds)

    def invalidate(self, key: str | None = None) -> int:
        """Drop one entry, or every entry when ``key`` is None.

        Returns:
            Number of entries removed.
        """
        if key is not None:
            return 1 if self._entries.pop(key, None) is not None else 0
        removed = len(self._entries)
        self._entries.clear()
        logger.info("Response cache cleared", entries=removed)
        return removed

    def __len__(self) -> int:
        return len(self._entries)
