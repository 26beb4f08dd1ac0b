"""
Route and RouteStop models for the dispatch core.

A route is the ordered list of stops one driver works through on one date.
Stop sequence numbers are 1-based and contiguous.
"""
from datetime import date, datetime
from typing import Any, Optional

from pydantic import Field

from labroute.models.base import Coordinates, DomainModel, TimestampMixin
from labroute.models.enums import RouteStatus, StopStatus, StopType


class RouteMetrics(DomainModel):
    """Summary metrics recomputed on every optimization."""
    total_distance_km: float = 0.0
    estimated_duration_min: int = 0


class RouteStop(DomainModel):
    """
    Single physical visit to a clinic.

    Pickup stops reference pickup ids in ``pickup_tasks``; delivery stops
    reference case ids in ``delivery_manifest``.
    """
    id: str
    sequence: int
    clinic_id: str
    type: StopType
    status: StopStatus = StopStatus.PENDING
    coordinates: Optional[Coordinates] = None

    pickup_tasks: list[str] = Field(default_factory=list)
    delivery_manifest: list[str] = Field(default_factory=list)

    # Execution results
    completed_at: Optional[datetime] = None
    skipped_at: Optional[datetime] = None
    skip_reason: Optional[str] = None
    skip_notes: Optional[str] = None
    requires_follow_up: bool = False
    proof: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def __repr__(self) -> str:
        return (
            f"<RouteStop(id={self.id!r}, seq={self.sequence}, "
            f"type={self.type.value}, status={self.status.value})>"
        )


class Route(TimestampMixin):
    """Planned, ordered sequence of stops for one driver on one date."""
    id: str
    lab_id: str
    name: str
    driver_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    route_date: Optional[date] = Field(default=None, alias="date")
    status: RouteStatus = RouteStatus.SCHEDULED
    stops: list[RouteStop] = Field(default_factory=list)
    metrics: RouteMetrics = Field(default_factory=RouteMetrics)

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def get_stops_ordered(self) -> list[RouteStop]:
        """Get stops in sequence order."""
        return sorted(self.stops, key=lambda s: s.sequence)

    def find_stop(self, stop_id: str) -> Optional[RouteStop]:
        for stop in self.stops:
            if stop.id == stop_id:
                return stop
        return None

    def stop_index(self, stop_id: str) -> int:
        """Position of *stop_id* in the stop list, or -1."""
        for index, stop in enumerate(self.stops):
            if stop.id == stop_id:
                return index
        return -1

    @property
    def all_stops_terminal(self) -> bool:
        """True for a non-empty route whose stops are all Completed or Skipped."""
        return bool(self.stops) and all(s.is_terminal for s in self.stops)

    @property
    def stops_completed(self) -> int:
        return sum(1 for s in self.stops if s.status == StopStatus.COMPLETED)

    def references_pickup(self, pickup_id: str) -> bool:
        return any(pickup_id in s.pickup_tasks for s in self.stops)

    def __repr__(self) -> str:
        return (
            f"<Route(id={self.id!r}, name={self.name!r}, "
            f"stops={len(self.stops)}, status={self.status.value})>"
        )


def resequence(stops: list[RouteStop]) -> list[RouteStop]:
    """Return copies of *stops* numbered 1..n in list order."""
    return [
        stop.model_copy(update={"sequence": index})
        for index, stop in enumerate(stops, start=1)
    ]


def progress_status(route: Route) -> RouteStatus:
    """
    Route status after a stop changed state.

    Completed iff every stop is terminal, otherwise InProgress.
    """
    if route.all_stops_terminal:
        return RouteStatus.COMPLETED
    return RouteStatus.IN_PROGRESS


def planning_status(route: Route) -> RouteStatus:
    """
    Route status after stops were added, removed or moved.

    A route whose stops are all terminal is Completed; a Completed route
    that gained a Pending stop is back InProgress; anything else keeps its
    current status.
    """
    if route.all_stops_terminal:
        return RouteStatus.COMPLETED
    if route.status == RouteStatus.COMPLETED:
        return RouteStatus.IN_PROGRESS
    return route.status
