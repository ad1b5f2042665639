"""Sync ledger: one audit row per sync call.

A run is written IN_PROGRESS when the call starts and finalized exactly once
when it ends. The ledger store failing never aborts the sync itself; the
run object is still returned with ``persisted=False``.
"""

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from catalog_sync.domain.entities import SyncRun, SyncStatus
from catalog_sync.repository.base import CatalogStore
from catalog_sync.sync.stats import SyncStats

logger = structlog.get_logger()


class RunTracker:
    """Handle given to the body of ``SyncLedger.track``.

    The body sets ``stats`` and optionally ``message``; the ledger turns
    them into the final row.
    """

    def __init__(self, run: SyncRun) -> None:
        self.run = run
        self.stats = SyncStats()
        self.message: str | None = None
        self.notes: list[str] = []

    def note(self, text: str) -> None:
        """Add a sentence to the run message."""
        self.notes.append(text)


class SyncLedger:
    """Writes and reads sync run records."""

    def __init__(self, store: CatalogStore) -> None:
        self.store = store

    async def start(self, sync_type: str) -> SyncRun:
        """Create an IN_PROGRESS run."""
        run = SyncRun(sync_type=sync_type)
        try:
            await self.store.save_sync_run(run)
        except Exception as e:
            run.persisted = False
            logger.error(
                "Failed to record sync start",
                sync_type=sync_type,
                error=str(e),
            )
        return run

    async def finish(
        self,
        run: SyncRun,
        status: SyncStatus,
        stats: SyncStats | None = None,
        message: str | None = None,
        error: str | None = None,
        duration_ms: int | None = None,
    ) -> SyncRun:
        """Finalize a run. A run already finalized is returned unchanged."""
        if run.is_finished:
            return run

        stats = stats or SyncStats()
        run.status = status
        run.processed = stats.processed
        run.created = stats.created
        run.updated = stats.updated
        run.errors = stats.errors
        run.message = message
        run.error_message = error
        run.duration_ms = duration_ms

        if run.persisted:
            try:
                await self.store.save_sync_run(run)
            except Exception as e:
                run.persisted = False
                logger.error(
                    "Failed to record sync result",
                    sync_type=run.sync_type,
                    status=status.value,
                    error=str(e),
                )
        if not run.persisted:
            logger.warning(
                "Sync result kept in memory only",
                sync_type=run.sync_type,
                status=status.value,
                processed=run.processed,
                errors=run.errors,
            )
        return run

    @asynccontextmanager
    async def track(self, sync_type: str) -> AsyncIterator[RunTracker]:
        """Wrap a sync call in a ledger run.

        On normal exit the run is marked SUCCESS. If the body raises, the
        run is marked FAILED with the error and the exception propagates.

        Usage:
            async with ledger.track("STRUCTURED_CATEGORIES") as tracker:
                tracker.stats = await reconcile()
        """
        started = time.monotonic()
        run = await self.start(sync_type)
        tracker = RunTracker(run)
        with structlog.contextvars.bound_contextvars(sync_type=sync_type, run_id=run.id):
            logger.info("Sync started")
            try:
                yield tracker
            except BaseException as e:
                await self.finish(
                    run,
                    SyncStatus.FAILED,
                    tracker.stats,
                    message=_message(tracker),
                    error=str(e) or type(e).__name__,
                    duration_ms=_elapsed_ms(started),
                )
                logger.error("Sync failed", error=str(e), duration_ms=run.duration_ms)
                raise
            await self.finish(
                run,
                SyncStatus.SUCCESS,
                tracker.stats,
                message=_message(tracker),
                duration_ms=_elapsed_ms(started),
            )
            logger.info(
                "Sync completed",
                processed=run.processed,
                created=run.created,
                updated=run.updated,
                errors=run.errors,
                duration_ms=run.duration_ms,
            )

    async def recent(self, limit: int = 20) -> list[SyncRun]:
        """Return the latest runs, newest first."""
        return await self.store.list_sync_runs(limit)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _message(tracker: RunTracker) -> str:
    parts = [tracker.message or tracker.stats.summary()]
    parts.extend(tracker.notes)
    return ". ".join(parts)
