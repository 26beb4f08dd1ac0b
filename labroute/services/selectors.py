"""
Derived read-only views over a store snapshot.

Every selector is a pure function of ``(snapshot, query)``. Snapshots hash by
identity and queries are frozen, so results are memoized with
``functools.lru_cache``. A new snapshot version misses the cache and evicts
the entries memoized for the previous one.
"""
from dataclasses import dataclass
from datetime import date
from enum import Enum
from functools import lru_cache, wraps
from typing import Optional

from labroute.models.enums import (
    PickupStatus,
    ProviderStatus,
    ProviderType,
    RouteStatus,
    StopStatus,
    VehicleStatus,
)
from labroute.models.pickup import Pickup
from labroute.models.provider import Provider
from labroute.models.route import Route
from labroute.models.vehicle import Vehicle
from labroute.schemas.base import PaginatedResponse
from labroute.services.store import LogisticsSnapshot

SELECTOR_CACHE_SIZE = 32


def snapshot_cache(func):
    """
    ``lru_cache`` for a selector whose first argument is a snapshot.

    Entries only live as long as their snapshot is the latest one seen, so
    superseded snapshots are not kept alive by the cache.
    """
    cached = lru_cache(maxsize=SELECTOR_CACHE_SIZE)(func)
    latest: list[Optional[LogisticsSnapshot]] = [None]

    @wraps(func)
    def wrapper(snapshot: LogisticsSnapshot, *args):
        if latest[0] is not snapshot:
            cached.cache_clear()
            latest[0] = snapshot
        return cached(snapshot, *args)

    def cache_clear() -> None:
        cached.cache_clear()
        latest[0] = None

    wrapper.cache_clear = cache_clear
    wrapper.cache_info = cached.cache_info
    return wrapper


class SortField(str, Enum):
    DATE = "date"
    STATUS = "status"
    DRIVER_ID = "driverId"
    NAME = "name"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class RouteFilters:
    """Route list filters. Unset fields do not filter."""
    route_date: Optional[date] = None
    statuses: frozenset[RouteStatus] = frozenset()
    driver_id: Optional[str] = None
    lab_id: Optional[str] = None
    search: Optional[str] = None


@dataclass(frozen=True)
class RouteSort:
    field: SortField = SortField.DATE
    order: SortOrder = SortOrder.DESC


@dataclass(frozen=True)
class RouteQuery:
    filters: RouteFilters = RouteFilters()
    sort: RouteSort = RouteSort()
    page: int = 1
    page_size: int = 20

    def __post_init__(self):
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")


# =============================================================================
# Route pipeline
# =============================================================================

def _matches(route: Route, filters: RouteFilters) -> bool:
    if filters.route_date is not None and route.route_date != filters.route_date:
        return False
    if filters.statuses and route.status not in filters.statuses:
        return False
    if filters.driver_id is not None and route.driver_id != filters.driver_id:
        return False
    if filters.lab_id is not None and route.lab_id != filters.lab_id:
        return False
    if filters.search:
        needle = filters.search.lower()
        haystack = " ".join(filter(None, [route.id, route.name, route.driver_id])).lower()
        if needle not in haystack:
            return False
    return True


def _sort_key(route: Route, sort_field: SortField):
    # Missing values sort last in ascending order
    if sort_field == SortField.DATE:
        value = route.route_date
    elif sort_field == SortField.STATUS:
        value = route.status.value
    elif sort_field == SortField.DRIVER_ID:
        value = route.driver_id
    else:
        value = route.name
    return (value is None, value if value is not None else "")


@snapshot_cache
def filter_routes(snapshot: LogisticsSnapshot, filters: RouteFilters) -> tuple[Route, ...]:
    return tuple(r for r in snapshot.routes if _matches(r, filters))


@snapshot_cache
def sort_routes(
    snapshot: LogisticsSnapshot,
    filters: RouteFilters,
    sort: RouteSort,
) -> tuple[Route, ...]:
    routes = filter_routes(snapshot, filters)
    present = [r for r in routes if _sort_key(r, sort.field)[0] is False]
    missing = [r for r in routes if _sort_key(r, sort.field)[0] is True]
    present.sort(
        key=lambda r: (_sort_key(r, sort.field)[1], r.id),
        reverse=sort.order == SortOrder.DESC,
    )
    return tuple(present + missing)


@snapshot_cache
def select_routes(snapshot: LogisticsSnapshot, query: RouteQuery) -> PaginatedResponse[Route]:
    """Filter, sort and paginate routes."""
    routes = sort_routes(snapshot, query.filters, query.sort)
    offset = (query.page - 1) * query.page_size
    return PaginatedResponse[Route].create(
        items=list(routes[offset:offset + query.page_size]),
        total=len(routes),
        page=query.page,
        page_size=query.page_size,
    )


@snapshot_cache
def my_routes(snapshot: LogisticsSnapshot, driver_id: str) -> tuple[Route, ...]:
    """Routes assigned to one driver, newest date first."""
    query_sort = RouteSort(field=SortField.DATE, order=SortOrder.DESC)
    return sort_routes(snapshot, RouteFilters(driver_id=driver_id), query_sort)


def active_routes(routes: tuple[Route, ...]) -> tuple[Route, ...]:
    return tuple(
        r for r in routes if r.status in (RouteStatus.SCHEDULED, RouteStatus.IN_PROGRESS)
    )


@dataclass(frozen=True)
class RouteStats:
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


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


@snapshot_cache
def route_stats(snapshot: LogisticsSnapshot, lab_id: Optional[str] = None) -> RouteStats:
    """Dashboard counters, optionally for one lab."""
    routes = [r for r in snapshot.routes if lab_id is None or r.lab_id == lab_id]
    pickups = [p for p in snapshot.pickups if lab_id is None or p.lab_id == lab_id]
    stops = [s for r in routes for s in r.stops]

    def count(status: RouteStatus) -> int:
        return sum(1 for r in routes if r.status == status)

    completed_routes = count(RouteStatus.COMPLETED)
    completed_pickups = sum(1 for p in pickups if p.status == PickupStatus.COMPLETED)

    return RouteStats(
        total_routes=len(routes),
        scheduled_routes=count(RouteStatus.SCHEDULED),
        active_routes=count(RouteStatus.IN_PROGRESS),
        completed_routes=completed_routes,
        cancelled_routes=count(RouteStatus.CANCELLED),
        total_stops=len(stops),
        completed_stops=sum(1 for s in stops if s.status == StopStatus.COMPLETED),
        skipped_stops=sum(1 for s in stops if s.status == StopStatus.SKIPPED),
        total_distance_km=round(sum(r.metrics.total_distance_km for r in routes), 1),
        total_pickups=len(pickups),
        pending_pickups=sum(1 for p in pickups if p.status == PickupStatus.PENDING),
        completed_pickups=completed_pickups,
        rush_pickups=sum(1 for p in pickups if p.is_rush),
        route_completion_rate=_rate(completed_routes, len(routes)),
        pickup_completion_rate=_rate(completed_pickups, len(pickups)),
    )


# =============================================================================
# Pickups, vehicles, providers
# =============================================================================

@snapshot_cache
def pickups_by_status(
    snapshot: LogisticsSnapshot,
    status: Optional[PickupStatus] = None,
    rush_only: bool = False,
) -> tuple[Pickup, ...]:
    """Pickups filtered by status and rush flag, rush first then oldest request."""
    pickups = [
        p for p in snapshot.pickups
        if (status is None or p.status == status) and (not rush_only or p.is_rush)
    ]
    pickups.sort(key=lambda p: (not p.is_rush, p.request_time is None, p.request_time or 0))
    return tuple(pickups)


def pickups_for_day(snapshot: LogisticsSnapshot, day: date) -> tuple[Pickup, ...]:
    """Pickups whose window starts on *day*."""
    return tuple(
        p for p in snapshot.pickups
        if p.window_start is not None and p.window_start.date() == day
    )


@snapshot_cache
def available_vehicles(snapshot: LogisticsSnapshot) -> tuple[Vehicle, ...]:
    """Active vehicles with no assigned driver."""
    return tuple(
        v for v in snapshot.vehicles
        if v.status == VehicleStatus.ACTIVE and not v.assigned_driver_id
    )


def active_providers(snapshot: LogisticsSnapshot) -> tuple[Provider, ...]:
    return tuple(p for p in snapshot.providers if p.status == ProviderStatus.ACTIVE)


def in_house_provider(snapshot: LogisticsSnapshot) -> Optional[Provider]:
    return next((p for p in snapshot.providers if p.type == ProviderType.IN_HOUSE), None)


def clear_selector_caches() -> None:
    """Drop memoized results, e.g. between tests."""
    for selector in (
        filter_routes, sort_routes, select_routes, my_routes,
        route_stats, pickups_by_status, available_vehicles,
    ):
        selector.cache_clear()
