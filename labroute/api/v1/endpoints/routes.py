"""
Route API endpoints.
"""
from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Query, status

from labroute.core.dependencies import LifecycleDep, StoreDep
from labroute.models import Route, RouteStatus
from labroute.schemas.base import PaginatedResponse
from labroute.schemas.route import (
    AssignmentRequest,
    BulkAssignmentRequest,
    BulkAssignmentResult,
    OptimizationResult,
    OptimizeRequest,
    RouteCreate,
    RouteStatsResponse,
    StopMoveRequest,
    StopReorderRequest,
    StopSkipRequest,
    StopStatusUpdate,
)
from labroute.services.selectors import (
    RouteFilters,
    RouteQuery,
    RouteSort,
    SortField,
    SortOrder,
    route_stats,
    select_routes,
)

router = APIRouter()


@router.get("", response_model=PaginatedResponse[Route])
async def list_routes(
    store: StoreDep,
    route_date: Optional[date] = Query(None, alias="date"),
    route_status: Optional[list[RouteStatus]] = Query(None, alias="status"),
    driver_id: Optional[str] = Query(None, alias="driverId"),
    lab_id: Optional[str] = Query(None, alias="labId"),
    search: Optional[str] = None,
    sort_by: SortField = Query(SortField.DATE, alias="sortBy"),
    order: SortOrder = SortOrder.DESC,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
):
    """
    List routes with filtering, sorting and pagination.

    - **date**: Only routes planned for this date
    - **status**: One or more route statuses
    - **driverId**: Only this driver's routes
    - **search**: Substring match on route id, name or driver
    """
    query = RouteQuery(
        filters=RouteFilters(
            route_date=route_date,
            statuses=frozenset(route_status or ()),
            driver_id=driver_id,
            lab_id=lab_id,
            search=search,
        ),
        sort=RouteSort(field=sort_by, order=order),
        page=page,
        page_size=page_size,
    )
    return select_routes(store.snapshot(), query)


@router.post("", response_model=Route, status_code=status.HTTP_201_CREATED)
async def create_route(data: RouteCreate, store: StoreDep):
    """Create an empty Scheduled route."""
    return await store.create_route(data)


@router.get("/stats", response_model=RouteStatsResponse)
async def get_route_stats(
    store: StoreDep,
    lab_id: Optional[str] = Query(None, alias="labId"),
):
    """Route and pickup counters for the dashboard."""
    return RouteStatsResponse(**asdict(route_stats(store.snapshot(), lab_id)))


@router.get("/{route_id}", response_model=Route)
async def get_route(route_id: str, store: StoreDep):
    """Get a single route with its stops."""
    return await store.fetch_route(route_id)


@router.post("/{route_id}/assign", response_model=Route)
async def assign_task(route_id: str, data: AssignmentRequest, store: StoreDep):
    """Add a pickup or delivery stop to a route."""
    return await store.assign_to_route(route_id, data, best_position=data.best_position)


@router.post("/{route_id}/assign-bulk", response_model=BulkAssignmentResult)
async def assign_tasks(route_id: str, data: BulkAssignmentRequest, store: StoreDep):
    """Assign several tasks; failures are reported per task."""
    return await store.assign_multiple_tasks(route_id, data.tasks)


@router.post("/{route_id}/reorder", response_model=Route)
async def reorder_stops(route_id: str, data: StopReorderRequest, store: StoreDep):
    """Move a stop to another position. Completed/Skipped stops stay put."""
    return await store.reorder_stops(route_id, data.from_index, data.to_index)


@router.post("/{route_id}/move-stop", response_model=list[Route])
async def move_stop(route_id: str, data: StopMoveRequest, store: StoreDep):
    """Move a Pending stop to the end of another route."""
    source, target = await store.move_stop_between_routes(route_id, data.to_route_id, data.stop_id)
    return [source] if source.id == target.id else [source, target]


@router.post("/{route_id}/optimize", response_model=Optional[OptimizationResult])
async def optimize_route(
    route_id: str,
    store: StoreDep,
    data: Optional[OptimizeRequest] = None,
):
    """
    Reorder Pending stops by nearest neighbour.

    Returns null when the route has fewer than two Pending stops.
    """
    start = data.start_location if data else None
    return await store.optimize_route_stops(route_id, start_location=start)


@router.patch("/{route_id}/stops/{stop_id}", response_model=Route)
async def update_stop_status(
    route_id: str,
    stop_id: str,
    data: StopStatusUpdate,
    lifecycle: LifecycleDep,
):
    """Complete or skip a stop, with optional proof of delivery."""
    return await lifecycle.update_route_stop_status(
        route_id, stop_id, data.status, data.proof_data
    )


@router.post("/{route_id}/stops/{stop_id}/skip", response_model=Route)
async def skip_stop(
    route_id: str,
    stop_id: str,
    data: StopSkipRequest,
    lifecycle: LifecycleDep,
):
    """Skip a stop and flag it for dispatcher follow-up."""
    return await lifecycle.skip_route_stop(route_id, stop_id, data.reason, data.notes)
