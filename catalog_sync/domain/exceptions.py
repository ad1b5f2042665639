"""Domain exceptions.

All errors raised by the synchronization engine. The admin HTTP layer maps
them onto status codes; the orchestrator records them on the sync ledger
before letting them surface to the caller.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# Sync Errors
# ============================================================================


class SyncError(DomainError):
    """Base class for failures that abort a whole sync call."""


class PrerequisiteMissingError(SyncError):
    """Raised when data a pass depends on does not exist at all.

    Parameters and products cannot be placed without categories, so an
    empty category table aborts those passes instead of silently doing
    nothing.
    """

    def __init__(self, sync_type: str, missing: str) -> None:
        """Initialize prerequisite missing error.

        Args:
            sync_type: Sync type that was aborted.
            missing: Description of the missing prerequisite.
        """
        super().__init__(
            f"Cannot run {sync_type}: {missing}",
            details={"sync_type": sync_type, "missing": missing},
        )
        self.sync_type = sync_type


class SyncAlreadyRunningError(SyncError):
    """Raised when a non-waiting trigger hits a sync type that is running."""

    def __init__(self, sync_type: str) -> None:
        super().__init__(
            f"Sync {sync_type} is already running",
            details={"sync_type": sync_type},
        )
        self.sync_type = sync_type


# ============================================================================
# Lookup Errors
# ============================================================================


class EntityNotFoundError(DomainError):
    """Raised when a canonical entity requested by id does not exist."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        """Initialize entity not found error.

        Args:
            entity_type: Type of entity (e.g., "Category").
            entity_id: Identifier that was looked up.
        """
        super().__init__(
            f"{entity_type} not found: {entity_id}",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


# ============================================================================
# Record Errors
# ============================================================================


class MalformedRecordError(DomainError):
    """Raised for an external record missing a required field.

    The chunk processor counts it as an item error and moves on.
    """

    def __init__(self, record_type: str, reason: str, key: Any = None) -> None:
        super().__init__(
            f"Malformed {record_type} record: {reason}",
            details={"record_type": record_type, "reason": reason, "key": key},
        )
        self.record_type = record_type
        self.reason = reason
        self.key = key


class ExternalSourceError(DomainError):
    """Error talking to an external feed.

    Raised inside the client boundary only. Feed clients catch it and
    return an empty result.
    """

    def __init__(
        self, source: str, message: str, status_code: int | None = None
    ) -> None:
        self.source = source
        self.status_code = status_code
        super().__init__(
            f"[{source}] {message}",
            details={"source": source, "status_code": status_code},
        )
