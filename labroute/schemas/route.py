"""
Route and RouteStop request/response schemas.
"""
from datetime import date
from typing import Any, Optional

from pydantic import Field

from labroute.models.base import Coordinates
from labroute.models.enums import StopStatus, StopType
from labroute.models.route import RouteMetrics
from labroute.schemas.base import BaseSchema


class RouteCreate(BaseSchema):
    """Schema for creating a route. Routes always start Scheduled and empty."""
    lab_id: str
    name: str = Field(..., min_length=1, max_length=200)
    driver_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    route_date: Optional[date] = Field(default=None, alias="date")


class AssignmentTask(BaseSchema):
    """
    A unit of work to place on a route.

    Pickup tasks reference a pickup request by ``id``; delivery tasks carry
    the case ids to drop off in ``case_ids``.
    """
    id: str
    type: StopType
    clinic_id: str
    coordinates: Optional[Coordinates] = None
    case_ids: list[str] = Field(default_factory=list)


class AssignmentRequest(AssignmentTask):
    """Single assignment with optional cheapest-insertion placement."""
    best_position: bool = False


class BulkAssignmentRequest(BaseSchema):
    tasks: list[AssignmentTask] = Field(..., min_length=1)


class BulkAssignmentError(BaseSchema):
    task_id: str
    error: str


class BulkAssignmentResult(BaseSchema):
    """Per-task outcome of a bulk assignment."""
    success: int = 0
    failed: int = 0
    errors: list[BulkAssignmentError] = Field(default_factory=list)


class StopReorderRequest(BaseSchema):
    from_index: int = Field(..., ge=0)
    to_index: int = Field(..., ge=0)


class StopMoveRequest(BaseSchema):
    stop_id: str
    to_route_id: str


class OptimizeRequest(BaseSchema):
    start_location: Optional[Coordinates] = None


class StopStatusUpdate(BaseSchema):
    """Driver-reported stop status with optional proof (signature, photo)."""
    status: StopStatus
    proof_data: dict[str, Any] = Field(default_factory=dict)


class StopSkipRequest(BaseSchema):
    reason: str = Field(..., min_length=1)
    notes: Optional[str] = None


class OptimizationImprovement(BaseSchema):
    distance_saved: float
    time_saved: int


class OptimizationResult(BaseSchema):
    """Metrics before and after an optimization run."""
    route_id: str
    before: RouteMetrics
    after: RouteMetrics
    improvement: OptimizationImprovement


class RouteStatsResponse(BaseSchema):
    """Aggregate route and pickup counters for a dashboard."""
    total_routes: int
    scheduled_routes: int
    active_routes: int
    completed_routes: int
    cancelled_routes: int
    total_stops: int
    completed_stops: int
    skipped_stops: int
    total_distance_km: float
    total_pickups: int
    pending_pickups: int
    completed_pickups: int
    rush_pickups: int
    route_completion_rate: float
    pickup_completion_rate: float
