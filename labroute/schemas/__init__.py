"""
Pydantic schemas for API request/response validation.
"""

from labroute.schemas.base import BaseSchema, PaginatedResponse
from labroute.schemas.route import (
    RouteCreate,
    AssignmentTask,
    AssignmentRequest,
    BulkAssignmentRequest,
    BulkAssignmentError,
    BulkAssignmentResult,
    StopReorderRequest,
    StopMoveRequest,
    OptimizeRequest,
    StopStatusUpdate,
    StopSkipRequest,
    OptimizationImprovement,
    OptimizationResult,
    RouteStatsResponse,
)
from labroute.schemas.provider import PackageSpecs, ProviderSelectionRequest

__all__ = [
    # Base
    "BaseSchema",
    "PaginatedResponse",
    # Route
    "RouteCreate",
    "AssignmentTask",
    "AssignmentRequest",
    "BulkAssignmentRequest",
    "BulkAssignmentError",
    "BulkAssignmentResult",
    "StopReorderRequest",
    "StopMoveRequest",
    "OptimizeRequest",
    "StopStatusUpdate",
    "StopSkipRequest",
    "OptimizationImprovement",
    "OptimizationResult",
    "RouteStatsResponse",
    # Provider
    "PackageSpecs",
    "ProviderSelectionRequest",
]
