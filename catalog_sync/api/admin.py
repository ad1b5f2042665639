"""Admin endpoints for triggering catalog syncs.

Every sync endpoint blocks until its pass finishes and returns the ledger
record. A sync of the same type that is already running yields 409 instead
of queueing behind it.
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.api.schemas import (
    CacheInvalidateResponse,
    SyncRunListResponse,
    SyncRunSchema,
)
from catalog_sync.domain.entities import SyncRun
from catalog_sync.infrastructure.config import settings
from catalog_sync.infrastructure.database import async_session_factory, get_session
from catalog_sync.infrastructure.feeds import build_orchestrator
from catalog_sync.repository.sql import SqlCatalogStore
from catalog_sync.sync.orchestrator import CatalogSyncOrchestrator

logger = structlog.get_logger()

router = APIRouter(prefix="/admin", tags=["Admin"])


async def get_orchestrator(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CatalogSyncOrchestrator:
    """Get an orchestrator bound to the request's database session.

    Ledger rows are written through their own sessions so they survive a
    rolled back sync.
    """
    return build_orchestrator(SqlCatalogStore(session, async_session_factory))


Orchestrator = Annotated[CatalogSyncOrchestrator, Depends(get_orchestrator)]


async def _trigger(call: Callable[..., Awaitable[SyncRun]], *args) -> SyncRunSchema:
    if not settings.sync_enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error_code": "SYNC_DISABLED",
                "message": "Synchronization is disabled",
                "details": [],
            },
        )
    run = await call(*args, wait=False)
    return SyncRunSchema.from_run(run)


# ============================================================================
# Structured Feed
# ============================================================================


@router.post(
    "/structured/sync/categories",
    response_model=SyncRunSchema,
    summary="Sync structured categories",
)
async def sync_structured_categories(orchestrator: Orchestrator) -> SyncRunSchema:
    """Reconcile the structured category tree."""
    return await _trigger(orchestrator.sync_categories)


@router.post(
    "/structured/sync/manufacturers",
    response_model=SyncRunSchema,
    summary="Sync structured manufacturers",
)
async def sync_structured_manufacturers(orchestrator: Orchestrator) -> SyncRunSchema:
    """Reconcile structured manufacturers."""
    return await _trigger(orchestrator.sync_manufacturers)


@router.post(
    "/structured/sync/parameters",
    response_model=SyncRunSchema,
    summary="Sync structured parameters",
)
async def sync_structured_parameters(orchestrator: Orchestrator) -> SyncRunSchema:
    """Reconcile parameters of every structured category."""
    return await _trigger(orchestrator.sync_parameters)


@router.post(
    "/structured/sync/products",
    response_model=SyncRunSchema,
    summary="Sync structured products",
)
async def sync_structured_products(orchestrator: Orchestrator) -> SyncRunSchema:
    """Reconcile products of every structured category."""
    return await _trigger(orchestrator.sync_products)


@router.post(
    "/structured/sync/products/{category_id}",
    response_model=SyncRunSchema,
    summary="Sync structured products of one category",
)
async def sync_structured_category_products(
    category_id: int, orchestrator: Orchestrator
) -> SyncRunSchema:
    """Reconcile products of one canonical category.

    Args:
        category_id: Internal category id.
    """
    return await _trigger(orchestrator.sync_products_by_category, category_id)


@router.post(
    "/structured/sync/all",
    response_model=SyncRunSchema,
    summary="Run the full structured sync",
)
async def sync_structured_all(orchestrator: Orchestrator) -> SyncRunSchema:
    """Run categories, manufacturers, parameters and products in order."""
    return await _trigger(orchestrator.fetch_all)


# ============================================================================
# Scraped Feed
# ============================================================================


@router.post(
    "/scraped/sync/categories",
    response_model=SyncRunSchema,
    summary="Sync scraped categories",
)
async def sync_scraped_categories(orchestrator: Orchestrator) -> SyncRunSchema:
    return await _trigger(orchestrator.sync_scraped_categories)


@router.post(
    "/scraped/sync/manufacturers",
    response_model=SyncRunSchema,
    summary="Sync scraped manufacturers",
)
async def sync_scraped_manufacturers(orchestrator: Orchestrator) -> SyncRunSchema:
    return await _trigger(orchestrator.sync_scraped_manufacturers)


@router.post(
    "/scraped/sync/parameters",
    response_model=SyncRunSchema,
    summary="Sync scraped parameters",
)
async def sync_scraped_parameters(orchestrator: Orchestrator) -> SyncRunSchema:
    return await _trigger(orchestrator.sync_scraped_parameters)


@router.post(
    "/scraped/sync/products",
    response_model=SyncRunSchema,
    summary="Sync scraped products",
)
async def sync_scraped_products(orchestrator: Orchestrator) -> SyncRunSchema:
    return await _trigger(orchestrator.sync_scraped_products)


@router.post(
    "/scraped/sync/all",
    response_model=SyncRunSchema,
    summary="Run the full scraped sync",
)
async def sync_scraped_all(orchestrator: Orchestrator) -> SyncRunSchema:
    """Clear the response cache, then run the whole scraped sequence."""
    return await _trigger(orchestrator.fetch_all_scraped)


@router.post(
    "/scraped/cache/invalidate",
    response_model=CacheInvalidateResponse,
    summary="Clear the scraped feed cache",
)
async def invalidate_scraped_cache(orchestrator: Orchestrator) -> CacheInvalidateResponse:
    """Drop every cached scraped feed response."""
    cleared = orchestrator.invalidate_scraped_cache()
    logger.info("Scraped cache invalidated", cleared=cleared)
    return CacheInvalidateResponse(cleared=cleared)


# ============================================================================
# Ledger
# ============================================================================


@router.get(
    "/sync-runs",
    response_model=SyncRunListResponse,
    summary="List sync runs",
)
async def list_sync_runs(
    orchestrator: Orchestrator,
    limit: int = Query(default=20, ge=1, le=200, description="Number of runs"),
) -> SyncRunListResponse:
    """List the latest sync runs, newest first."""
    runs = await orchestrator.recent_runs(limit)
    return SyncRunListResponse(
        runs=[SyncRunSchema.from_run(run) for run in runs],
        total=len(runs),
    )
