"""
Exception hierarchy for the dispatch core.

Every error raised by the state store, the lifecycle manager and the
persistence adapters derives from ``LogisticsError`` so the HTTP layer can
translate it with a single handler.
"""
from datetime import datetime, timezone
from typing import Any, Optional


class LogisticsError(Exception):
    """Base exception for all dispatch errors."""

    def __init__(
        self,
        detail: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.detail = detail
        self.status_code = status_code
        self.error_code = error_code
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": self.error_code,
            "detail": self.detail,
            "status_code": self.status_code,
            "timestamp": self.timestamp,
        }


class NotFoundError(LogisticsError):
    """Raised when a route, stop or pickup does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            detail=f"{entity} with ID {entity_id} not found",
            status_code=404,
            error_code="NOT_FOUND",
        )


class InvalidTransitionError(LogisticsError):
    """Raised when a mutation would violate a lifecycle rule."""

    def __init__(
        self,
        entity: str,
        entity_id: Any,
        current: Optional[str] = None,
        attempted: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.attempted = attempted
        super().__init__(
            detail=message
            or f"Invalid {entity} transition: {current} -> {attempted} for {entity_id}",
            status_code=409,
            error_code="INVALID_TRANSITION",
        )


class PersistenceError(LogisticsError):
    """Raised when the external persistence API fails."""

    def __init__(self, operation: str, entity: str, cause: Any = None):
        self.operation = operation
        self.entity = entity
        self.cause = cause
        detail = f"Failed to {operation} {entity}"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(
            detail=detail,
            status_code=502,
            error_code="PERSISTENCE_ERROR",
        )


class RealtimeConnectionError(LogisticsError):
    """Transport failure on the real-time connection.

    The websocket client never raises this to callers; it is delivered
    through the client's ``error`` channel.
    """

    def __init__(self, detail: str):
        super().__init__(
            detail=detail,
            status_code=503,
            error_code="REALTIME_CONNECTION_ERROR",
        )
