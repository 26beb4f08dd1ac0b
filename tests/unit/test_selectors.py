"""Tests for labroute.services.selectors -- memoized snapshot views."""
from datetime import date

import pytest

from labroute.models import Pickup, PickupStatus, Route, RouteStatus, Vehicle
from labroute.services.selectors import (
    RouteFilters,
    RouteQuery,
    RouteSort,
    SortField,
    SortOrder,
    available_vehicles,
    my_routes,
    pickups_by_status,
    route_stats,
    select_routes,
)
from labroute.services.store import LogisticsSnapshot


@pytest.fixture
def snapshot(make_route, make_stop, make_pickup, make_vehicle):
    routes = [
        make_route("r1", route_date="2026-10-19", driver_id="d1", status="Scheduled",
                   name="North loop", total_distance_km=10.3),
        make_route("r2", route_date="2026-10-20", driver_id="d2", status="InProgress",
                   name="South loop", stops=[
                       make_stop("s1", 1, status="Completed"),
                       make_stop("s2", 2, status="Skipped"),
                       make_stop("s3", 3),
                   ]),
        make_route("r3", route_date="2026-10-18", driver_id="d1", status="Completed",
                   name="Downtown", total_distance_km=4.5),
        make_route("r4", route_date=None, driver_id=None, status="Cancelled",
                   name="Unplanned", lab_id="lab-2"),
    ]
    pickups = [
        make_pickup("p1", request_time="2026-10-18T09:00:00+00:00"),
        make_pickup("p2", is_rush=True, request_time="2026-10-18T10:00:00+00:00"),
        make_pickup("p3", status="Completed", request_time="2026-10-18T07:00:00+00:00"),
        make_pickup("p4", request_time="2026-10-18T06:00:00+00:00"),
    ]
    vehicles = [
        make_vehicle("v1"),
        make_vehicle("v2", assigned_driver_id="d1"),
        make_vehicle("v3", status="Maintenance"),
    ]
    return LogisticsSnapshot(
        version=1,
        routes=tuple(Route.model_validate(r) for r in routes),
        pickups=tuple(Pickup.model_validate(p) for p in pickups),
        vehicles=tuple(Vehicle.model_validate(v) for v in vehicles),
    )


def route_ids(routes):
    return [r.id for r in routes]


class TestSelectRoutes:

    def test_default_sorts_by_date_desc_with_missing_last(self, snapshot):
        page = select_routes(snapshot, RouteQuery())
        assert route_ids(page.items) == ["r2", "r1", "r3", "r4"]
        assert page.total == 4

    def test_filter_by_date(self, snapshot):
        query = RouteQuery(filters=RouteFilters(route_date=date(2026, 10, 19)))
        assert route_ids(select_routes(snapshot, query).items) == ["r1"]

    def test_filter_by_statuses(self, snapshot):
        filters = RouteFilters(statuses=frozenset({RouteStatus.SCHEDULED, RouteStatus.COMPLETED}))
        query = RouteQuery(filters=filters, sort=RouteSort(SortField.NAME, SortOrder.ASC))
        assert route_ids(select_routes(snapshot, query).items) == ["r3", "r1"]

    def test_search_is_case_insensitive(self, snapshot):
        query = RouteQuery(filters=RouteFilters(search="LOOP"))
        assert set(route_ids(select_routes(snapshot, query).items)) == {"r1", "r2"}

    def test_sort_by_driver_asc(self, snapshot):
        query = RouteQuery(sort=RouteSort(SortField.DRIVER_ID, SortOrder.ASC))
        assert route_ids(select_routes(snapshot, query).items) == ["r1", "r3", "r2", "r4"]

    def test_pagination(self, snapshot):
        page = select_routes(snapshot, RouteQuery(page=2, page_size=3))
        assert route_ids(page.items) == ["r4"]
        assert page.total_pages == 2

    def test_results_are_memoized_per_snapshot(self, snapshot):
        query = RouteQuery()
        assert select_routes(snapshot, query) is select_routes(snapshot, query)

    def test_new_snapshot_misses_cache(self, snapshot):
        query = RouteQuery()
        other = LogisticsSnapshot(version=2, routes=snapshot.routes)
        assert select_routes(snapshot, query) is not select_routes(other, query)

    def test_new_snapshot_evicts_previous_entries(self, snapshot):
        select_routes(snapshot, RouteQuery())
        select_routes(snapshot, RouteQuery(page=2))
        assert select_routes.cache_info().currsize == 2

        other = LogisticsSnapshot(version=2, routes=snapshot.routes)
        select_routes(other, RouteQuery())

        assert select_routes.cache_info().currsize == 1

    def test_invalid_page_rejected(self):
        with pytest.raises(ValueError):
            RouteQuery(page=0)


class TestDerivedViews:

    def test_my_routes(self, snapshot):
        assert route_ids(my_routes(snapshot, "d1")) == ["r1", "r3"]

    def test_route_stats(self, snapshot):
        stats = route_stats(snapshot)
        assert stats.total_routes == 4
        assert stats.scheduled_routes == 1
        assert stats.active_routes == 1
        assert stats.completed_routes == 1
        assert stats.cancelled_routes == 1
        assert stats.total_stops == 3
        assert stats.completed_stops == 1
        assert stats.skipped_stops == 1
        assert stats.total_distance_km == 14.8
        assert stats.rush_pickups == 1
        assert stats.route_completion_rate == 25.0
        assert stats.pickup_completion_rate == 25.0

    def test_route_stats_for_lab(self, snapshot):
        assert route_stats(snapshot, "lab-2").total_routes == 1

    def test_pickups_rush_first_then_oldest(self, snapshot):
        pickups = pickups_by_status(snapshot, PickupStatus.PENDING)
        assert [p.id for p in pickups] == ["p2", "p4", "p1"]

    def test_rush_only(self, snapshot):
        assert [p.id for p in pickups_by_status(snapshot, None, True)] == ["p2"]

    def test_available_vehicles(self, snapshot):
        assert [v.id for v in available_vehicles(snapshot)] == ["v1"]
