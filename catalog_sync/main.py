"""Catalog sync service main application module.

This module initializes the FastAPI application and configures
core middleware, routers, and startup/shutdown events.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from catalog_sync.api.admin import router as admin_router
from catalog_sync.api.health import router as health_router
from catalog_sync.api.middleware import setup_middleware
from catalog_sync.domain.exceptions import (
    DomainError,
    EntityNotFoundError,
    SyncAlreadyRunningError,
)
from catalog_sync.infrastructure.config import settings
from catalog_sync.infrastructure.feeds import close_clients, get_category_aliases

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup, cleanup happens after yield.
    """
    logger.info(
        "Starting catalog sync service",
        version=settings.api_version,
        debug=settings.debug,
        sync_enabled=settings.sync_enabled,
    )
    logger.info("Category aliases loaded", aliases=len(get_category_aliases()))

    yield

    logger.info("Shutting down catalog sync service")
    await close_clients()


app = FastAPI(
    title="Catalog Sync",
    description="Supplier catalog synchronization engine",
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware (must be added before custom middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_middleware(app)

app.include_router(health_router, tags=["Health"])
app.include_router(admin_router)


# ============================================================================
# Custom Exception Handlers
# ============================================================================


def _error_response(
    request: Request, status_code: int, error_code: str, message: str, details
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details,
            "request_id": getattr(request.state, "request_id", None),
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    detail = exc.detail
    if isinstance(detail, dict):
        error_code = detail.get("error_code", "ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details", [])
    else:
        error_code = "ERROR"
        message = str(detail)
        details = []

    return _error_response(request, exc.status_code, error_code, message, details)


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError):
    """Map domain errors onto status codes."""
    if isinstance(exc, EntityNotFoundError):
        return _error_response(
            request, status.HTTP_404_NOT_FOUND, "NOT_FOUND", exc.message, exc.details
        )
    if isinstance(exc, SyncAlreadyRunningError):
        return _error_response(
            request, status.HTTP_409_CONFLICT, "SYNC_ALREADY_RUNNING", exc.message, exc.details
        )

    logger.error(
        "Sync failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=exc.message,
    )
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "SYNC_FAILED",
        exc.message,
        exc.details,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions with consistent format."""
    logger.exception(
        "Unhandled exception in handler",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )

    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An internal error occurred",
        [],
    )
