"""Tests for chunked item processing."""

import pytest

from catalog_sync.domain.exceptions import MalformedRecordError
from catalog_sync.sync.chunks import ChunkProcessor
from catalog_sync.sync.stats import ItemOutcome, SyncStats


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class TestChunkProcessor:
    """Tests for ChunkProcessor."""

    @pytest.mark.asyncio
    async def test_one_failing_item_does_not_abort_the_chunk(self, store) -> None:
        """One corrupt item among 100 yields 99 successes and 1 error."""
        processor = ChunkProcessor(store, chunk_size=100, pause_seconds=0)

        async def handler(item: int) -> ItemOutcome:
            if item == 42:
                raise RuntimeError("corrupt item")
            return ItemOutcome.CREATED

        stats = await processor.run(list(range(100)), handler)

        assert stats.processed == 99
        assert stats.created == 99
        assert stats.errors == 1
        assert store.commit_count == 1

    @pytest.mark.asyncio
    async def test_malformed_items_count_as_errors(self, store) -> None:
        processor = ChunkProcessor(store, pause_seconds=0)

        async def handler(item: int) -> ItemOutcome:
            if item % 2:
                raise MalformedRecordError("product", "missing name", item)
            return ItemOutcome.UPDATED

        stats = await processor.run([0, 1, 2, 3], handler)

        assert stats.processed == 2
        assert stats.updated == 2
        assert stats.errors == 2

    @pytest.mark.asyncio
    async def test_commits_each_chunk_and_pauses_between(self, store) -> None:
        sleep = RecordingSleep()
        processor = ChunkProcessor(store, chunk_size=30, pause_seconds=0.5, sleep=sleep)

        async def handler(item: int) -> ItemOutcome:
            return ItemOutcome.CREATED

        await processor.run(list(range(70)), handler)

        assert store.commit_count == 3
        assert sleep.delays == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_flushes_and_clears_every_n_items(self, store) -> None:
        processor = ChunkProcessor(store, chunk_size=30, flush_every=10, pause_seconds=0)

        async def handler(item: int) -> ItemOutcome:
            return ItemOutcome.CREATED

        await processor.run(list(range(25)), handler)

        assert store.flush_count == 2
        assert store.clear_count == 2

    @pytest.mark.asyncio
    async def test_time_box_abandons_rest_of_chunk(self, store) -> None:
        clock = FakeClock()
        processor = ChunkProcessor(
            store, chunk_size=5, max_chunk_seconds=10, pause_seconds=0, clock=clock
        )
        handled = []

        async def handler(item: int) -> ItemOutcome:
            handled.append(item)
            if item == 1:
                clock.now += 11
            return ItemOutcome.CREATED

        stats = await processor.run(list(range(10)), handler)

        # Items 2..4 of the first chunk are abandoned, the second chunk runs in full
        assert handled == [0, 1, 5, 6, 7, 8, 9]
        assert stats.abandoned == 3
        assert stats.processed == 7
        assert store.commit_count == 2

    @pytest.mark.asyncio
    async def test_adds_to_given_stats(self, store) -> None:
        processor = ChunkProcessor(store, pause_seconds=0)
        stats = SyncStats(created=5)

        async def handler(item: int) -> ItemOutcome:
            return ItemOutcome.NO_CATEGORY

        result = await processor.run([1, 2], handler, stats=stats)

        assert result is stats
        assert stats.created == 5
        assert stats.no_category == 2

    def test_rejects_non_positive_chunk_size(self, store) -> None:
        with pytest.raises(ValueError):
            ChunkProcessor(store, chunk_size=0)


class TestSyncStats:
    """Tests for run counters."""

    def test_summary(self) -> None:
        stats = SyncStats(processed=10, created=4, updated=3, skipped=1, no_category=2, errors=3)
        assert stats.summary() == (
            "Processed 10, created 4, updated 3, skipped 1, no category: 2. "
            "Completed with 3 errors"
        )

    def test_merge(self) -> None:
        stats = SyncStats(processed=1, created=1).merge(SyncStats(processed=2, errors=1))
        assert stats.processed == 3
        assert stats.created == 1
        assert stats.errors == 1
