"""Tests for the SQL store's sync lock."""

import pytest

from catalog_sync.repository.sql import SqlCatalogStore, advisory_lock_key


class FakeResult:
    def __init__(self, value: bool) -> None:
        self.value = value

    def scalar(self) -> bool:
        return self.value


class FakeConnection:
    """Connection that answers every lock query with ``granted``."""

    def __init__(self, granted: bool) -> None:
        self.granted = granted
        self.statements: list[tuple[str, dict]] = []
        self.closed = False

    async def execute(self, statement, params=None) -> FakeResult:
        self.statements.append((str(statement), params))
        return FakeResult(self.granted)

    async def __aenter__(self) -> "FakeConnection":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.closed = True


class FakeEngine:
    def __init__(self, granted: bool = True) -> None:
        self.connection = FakeConnection(granted)

    def connect(self) -> FakeConnection:
        return self.connection


class FakeSession:
    def __init__(self, engine: FakeEngine) -> None:
        self.bind = engine


def make_store(granted: bool = True) -> tuple[SqlCatalogStore, FakeConnection]:
    engine = FakeEngine(granted)
    return SqlCatalogStore(FakeSession(engine)), engine.connection


class TestAdvisoryLockKey:
    """Tests for advisory_lock_key."""

    def test_stable_and_distinct(self) -> None:
        assert advisory_lock_key("STRUCTURED_ALL") == advisory_lock_key("STRUCTURED_ALL")
        assert advisory_lock_key("STRUCTURED_ALL") != advisory_lock_key("SCRAPED_ALL")

    def test_fits_bigint(self) -> None:
        key = advisory_lock_key("SCRAPED_PRODUCTS")
        assert -(2**63) <= key < 2**63


class TestSyncLock:
    """Tests for SqlCatalogStore.sync_lock."""

    @pytest.mark.asyncio
    async def test_waiting_lock_is_released(self) -> None:
        store, conn = make_store()
        key = advisory_lock_key("STRUCTURED_CATEGORIES")

        async with store.sync_lock("STRUCTURED_CATEGORIES") as acquired:
            assert acquired is True
            assert conn.statements == [("SELECT pg_advisory_lock(:key)", {"key": key})]

        assert conn.statements[-1] == ("SELECT pg_advisory_unlock(:key)", {"key": key})
        assert conn.closed

    @pytest.mark.asyncio
    async def test_try_lock_held_elsewhere(self) -> None:
        store, conn = make_store(granted=False)

        async with store.sync_lock("STRUCTURED_CATEGORIES", wait=False) as acquired:
            assert acquired is False

        assert [sql for sql, _ in conn.statements] == ["SELECT pg_try_advisory_lock(:key)"]

    @pytest.mark.asyncio
    async def test_unlocks_when_block_raises(self) -> None:
        store, conn = make_store()

        with pytest.raises(RuntimeError):
            async with store.sync_lock("SCRAPED_ALL", wait=False):
                raise RuntimeError("boom")

        assert [sql for sql, _ in conn.statements] == [
            "SELECT pg_try_advisory_lock(:key)",
            "SELECT pg_advisory_unlock(:key)",
        ]
