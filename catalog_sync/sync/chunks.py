"""Chunked item processing.

Large item lists are split into fixed-size chunks. Items inside a chunk are
handled one at a time; an exception from one item is counted and logged and
the chunk moves on. Each chunk is time-boxed and committed on its own, so a
later failure never rolls back chunks that already finished.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

import structlog

from catalog_sync.domain.exceptions import MalformedRecordError
from catalog_sync.repository.base import CatalogStore
from catalog_sync.sync.stats import ItemOutcome, SyncStats

logger = structlog.get_logger()

T = TypeVar("T")

PROGRESS_LOG_EVERY = 20


class ChunkProcessor:
    """Runs a per-item handler over a list in bounded chunks."""

    def __init__(
        self,
        store: CatalogStore,
        chunk_size: int = 30,
        flush_every: int = 10,
        max_chunk_seconds: float = 300.0,
        pause_seconds: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize chunk processor.

        Args:
            store: Store to flush and commit through.
            chunk_size: Items per chunk.
            flush_every: Items between write-throughs inside a chunk.
            max_chunk_seconds: Wall-clock budget of one chunk.
            pause_seconds: Pause between chunks.
            clock: Monotonic clock, replaceable in tests.
            sleep: Awaitable sleep, replaceable in tests.
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.store = store
        self.chunk_size = chunk_size
        self.flush_every = max(1, flush_every)
        self.max_chunk_seconds = max_chunk_seconds
        self.pause_seconds = pause_seconds
        self._clock = clock
        self._sleep = sleep

    async def run(
        self,
        items: Sequence[T],
        handler: Callable[[T], Awaitable[ItemOutcome]],
        describe: Callable[[T], Any] = repr,
        stats: SyncStats | None = None,
    ) -> SyncStats:
        """Process every item.

        Args:
            items: Items to process.
            handler: Coroutine reconciling one item.
            describe: Key of an item for logs.
            stats: Counters to add to; a new instance if omitted.

        Returns:
            Counters for this run.
        """
        stats = stats if stats is not None else SyncStats()
        total = len(items)
        chunk_count = (total + self.chunk_size - 1) // self.chunk_size

        for index, start in enumerate(range(0, total, self.chunk_size)):
            chunk = items[start:start + self.chunk_size]
            await self._run_chunk(chunk, handler, describe, stats, index + 1, chunk_count)
            await self.store.commit()

            if index + 1 < chunk_count and self.pause_seconds > 0:
                await self._sleep(self.pause_seconds)

        logger.info(
            "Chunked processing finished",
            total=total,
            chunks=chunk_count,
            processed=stats.processed,
            created=stats.created,
            updated=stats.updated,
            errors=stats.errors,
            abandoned=stats.abandoned,
        )
        return stats

    async def _run_chunk(
        self,
        chunk: Sequence[T],
        handler: Callable[[T], Awaitable[ItemOutcome]],
        describe: Callable[[T], Any],
        stats: SyncStats,
        chunk_number: int,
        chunk_count: int,
    ) -> None:
        started = self._clock()
        for position, item in enumerate(chunk):
            elapsed = self._clock() - started
            if elapsed >= self.max_chunk_seconds:
                remaining = len(chunk) - position
                stats.abandoned += remaining
                logger.warning(
                    "Chunk timed out, abandoning remaining items",
                    chunk=chunk_number,
                    elapsed_seconds=round(elapsed, 1),
                    abandoned=remaining,
                )
                break

            try:
                async with self.store.savepoint():
                    outcome = await handler(item)
                stats.record(outcome)
            except MalformedRecordError as e:
                stats.record_error()
                logger.warning("Skipping malformed item", item=describe(item), reason=e.reason)
            except Exception as e:
                stats.record_error()
                logger.error(
                    "Failed to process item",
                    item=describe(item),
                    error=str(e),
                    error_type=type(e).__name__,
                )

            handled = position + 1
            if handled % self.flush_every == 0:
                await self.store.flush(clear=True)

            done = stats.processed + stats.errors
            if done and done % PROGRESS_LOG_EVERY == 0:
                logger.info(
                    "Sync progress",
                    chunk=chunk_number,
                    chunks=chunk_count,
                    done=done,
                    errors=stats.errors,
                )
