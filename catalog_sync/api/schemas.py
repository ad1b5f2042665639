"""API schemas for the admin trigger surface."""

from datetime import datetime

from pydantic import BaseModel, Field

from catalog_sync.domain.entities import SyncRun


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict | list = Field(default_factory=list, description="Additional error context")
    request_id: str | None = Field(default=None, description="Request correlation ID")


class SyncRunSchema(BaseModel):
    """Ledger record of one sync call."""

    id: int | None = Field(default=None, description="Ledger row id, None if not persisted")
    sync_type: str = Field(..., description="Sync type")
    status: str = Field(..., description="IN_PROGRESS, SUCCESS or FAILED")
    started_at: datetime = Field(..., description="Start time")
    duration_ms: int | None = Field(default=None, description="Duration in milliseconds")
    processed: int = Field(default=0, description="Items handled without error")
    created: int = Field(default=0, description="Entities created")
    updated: int = Field(default=0, description="Entities updated")
    errors: int = Field(default=0, description="Items that failed")
    message: str | None = Field(default=None, description="Summary message")
    error_message: str | None = Field(default=None, description="Failure reason")
    persisted: bool = Field(default=True, description="Whether the ledger row was written")

    @classmethod
    def from_run(cls, run: SyncRun) -> "SyncRunSchema":
        return cls(**run.to_dict())


class SyncRunListResponse(BaseModel):
    """Latest sync runs."""

    runs: list[SyncRunSchema]
    total: int


class CacheInvalidateResponse(BaseModel):
    """Result of clearing the scraped feed cache."""

    cleared: int = Field(..., description="Number of cached responses dropped")
