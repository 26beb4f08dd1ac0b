"""Tests for labroute.services.store -- persistence-first route state."""
import asyncio

import pytest

from labroute.core.exceptions import InvalidTransitionError, NotFoundError, PersistenceError
from labroute.models import CaseStatus, Coordinates, PickupCreate, PickupStatus, RouteStatus
from labroute.schemas.provider import PackageSpecs, ProviderSelectionRequest
from labroute.schemas.route import AssignmentTask, RouteCreate
from labroute.services.events import EventType
from labroute.services.optimizer import validate_stop_sequence

LAB_ID = "lab-1"


@pytest.fixture
def records(make_route, make_stop, make_pickup, make_vehicle, make_provider):
    return {
        "routes": [
            make_route("r1", stops=[
                make_stop("s1", 1, lat=40.80, lng=-73.95, delivery_manifest=["c1"]),
                make_stop("s2", 2, lat=40.72, lng=-74.00, delivery_manifest=["c2"]),
                make_stop("s3", 3, lat=40.76, lng=-73.98, delivery_manifest=["c3"]),
            ]),
            make_route("r2", driver_id="driver-2"),
            make_route("r-cancelled", status="Cancelled"),
            make_route("r-other", lab_id="lab-2"),
        ],
        "pickups": [
            make_pickup("p1", lat=40.75, lng=-73.99),
            make_pickup("p2", is_rush=True),
        ],
        "vehicles": [make_vehicle("v1")],
        "providers": [make_provider("in-house", provider_type="IN_HOUSE", fallback_priority=9)],
        "cases": [
            {"id": "c1", "status": "shipping"},
            {"id": "c2", "status": "shipping"},
            {"id": "c3", "status": "shipping"},
            {"id": "c9", "status": "shipping"},
        ],
    }


@pytest.fixture
async def store(make_store, records):
    store = make_store(**records)
    await store.load(LAB_ID)
    return store


def delivery(task_id, case_ids=None, lat=None, lng=None):
    coordinates = Coordinates(lat=lat, lng=lng) if lat is not None else None
    return AssignmentTask(
        id=task_id, type="Delivery", clinic_id="clinic-9",
        case_ids=case_ids or [], coordinates=coordinates,
    )


def pickup_task(pickup_id):
    return AssignmentTask(id=pickup_id, type="Pickup", clinic_id="clinic-1")


class TestLoad:

    async def test_loads_only_the_requested_lab(self, store):
        assert {r.id for r in store.routes} == {"r1", "r2", "r-cancelled"}
        assert len(store.pickups) == 2
        assert len(store.providers) == 1

    async def test_load_is_cached_until_refresh(self, store, make_route):
        await store.api.routes.create(make_route("r-new"))

        summary = await store.load(LAB_ID)
        assert summary.routes == 3

        summary = await store.refresh(LAB_ID)
        assert summary.routes == 4
        assert store.get_route("r-new").status == RouteStatus.SCHEDULED

    async def test_concurrent_loads_share_one_request(self, make_store, records):
        store = make_store(**records)
        first, second = await asyncio.gather(store.load(LAB_ID), store.load(LAB_ID))
        assert first is second

    async def test_version_bumps_on_change(self, store):
        before = store.snapshot()
        await store.update_route("r2", {"name": "Renamed"})
        assert store.snapshot().version > before.version
        assert store.snapshot() is store.snapshot()


class TestFetch:

    async def test_unknown_route_raises(self, store):
        with pytest.raises(NotFoundError):
            await store.fetch_route("missing")

    async def test_route_outside_loaded_lab_is_fetched(self, store):
        route = await store.fetch_route("r-other")
        assert route.lab_id == "lab-2"
        assert store.get_route("r-other") is route


class TestCreateRoute:

    async def test_new_route_is_scheduled_and_empty(self, store, record_events):
        events = record_events(store.bus, EventType.ROUTE_CREATED)
        data = RouteCreate(lab_id=LAB_ID, name="Evening run", driver_id="d7", date="2026-10-21")

        route = await store.create_route(data)

        assert route.status == RouteStatus.SCHEDULED
        assert route.stops == []
        assert route.metrics.total_distance_km == 0.0
        assert store.get_route(route.id) is route
        assert events[0][1]["routeId"] == route.id

    async def test_identical_concurrent_creates_collapse(self, store):
        data = RouteCreate(lab_id=LAB_ID, name="Evening run", date="2026-10-21")
        first, second = await asyncio.gather(store.create_route(data), store.create_route(data))
        assert first.id == second.id
        assert len(await store.api.routes.get_all({"name": "Evening run"})) == 1


class TestAssignToRoute:

    async def test_pickup_assignment_marks_pickup_assigned(self, store, record_events):
        events = record_events(store.bus, EventType.STOP_ASSIGNED)

        route = await store.assign_to_route("r2", pickup_task("p1"))

        stop = route.stops[0]
        assert stop.pickup_tasks == ["p1"]
        assert stop.sequence == 1
        assert stop.coordinates == Coordinates(lat=40.75, lng=-73.99)
        assert store.get_pickup("p1").status == PickupStatus.ASSIGNED
        assert events[0][1] == {
            "routeId": "r2", "stopId": stop.id, "taskId": "p1", "type": "Pickup",
        }

    async def test_pickup_cannot_be_on_two_routes(self, store):
        await store.assign_to_route("r2", pickup_task("p1"))
        with pytest.raises(InvalidTransitionError):
            await store.assign_to_route("r1", pickup_task("p1"))

    async def test_unknown_pickup_raises(self, store):
        with pytest.raises(NotFoundError):
            await store.assign_to_route("r2", pickup_task("missing"))

    async def test_delivery_assignment_ships_cases(self, store, record_events):
        events = record_events(store.bus, EventType.CASE_STATUS_CHANGED)

        route = await store.assign_to_route("r2", delivery("order-1", case_ids=["c9"]))

        assert route.stops[0].delivery_manifest == ["c9"]
        case = store.api.cases.get("c9")
        assert case["status"] == CaseStatus.SHIPPED.value
        assert case["routeId"] == "r2"
        assert events[0][1]["previousStatus"] == "shipping"

    async def test_delivery_without_case_ids_uses_task_id(self, store):
        route = await store.assign_to_route("r2", delivery("c9"))
        assert route.stops[0].delivery_manifest == ["c9"]

    async def test_cancelled_route_rejects_stops(self, store):
        with pytest.raises(InvalidTransitionError):
            await store.assign_to_route("r-cancelled", delivery("c9"))

    async def test_completed_route_reopens(self, make_store, make_route, make_stop):
        store = make_store(
            routes=[make_route("r1", status="Completed",
                               stops=[make_stop("s1", 1, status="Completed")])],
            cases=[{"id": "c9"}],
        )
        route = await store.assign_to_route("r1", delivery("c9"))
        assert route.status == RouteStatus.IN_PROGRESS

    async def test_appends_by_default(self, store):
        route = await store.assign_to_route("r1", delivery("c9", lat=40.78, lng=-73.96))
        ordered = route.get_stops_ordered()
        assert ordered[-1].delivery_manifest == ["c9"]
        assert validate_stop_sequence(route.stops).valid

    async def test_best_position_uses_cheapest_insertion(self, store):
        # Just past s1 on the way to s2
        route = await store.assign_to_route(
            "r1", delivery("c9", lat=40.79, lng=-73.955), best_position=True
        )
        ordered = route.get_stops_ordered()
        assert [s.id for s in ordered][0] == "s1"
        assert ordered[1].delivery_manifest == ["c9"]
        assert validate_stop_sequence(route.stops).valid

    async def test_case_failure_is_queued_not_raised(self, store):
        route = await store.assign_to_route("r2", delivery("order-1", case_ids=["unknown"]))
        assert len(route.stops) == 1
        assert len(store.retry_queue) == 1


class TestBulkAssignment:

    async def test_reports_failures_per_task(self, store):
        result = await store.assign_multiple_tasks("r2", [
            pickup_task("p1"),
            pickup_task("missing"),
            pickup_task("p2"),
        ])

        assert result.success == 2
        assert result.failed == 1
        assert result.errors[0].task_id == "missing"
        assert len(store.get_route("r2").stops) == 2


class TestReorderStops:

    async def test_moves_stop_and_resequences(self, store, record_events):
        events = record_events(store.bus, EventType.ROUTE_UPDATED)

        route = await store.reorder_stops("r1", 0, 2)

        assert [s.id for s in route.get_stops_ordered()] == ["s2", "s3", "s1"]
        assert [s.sequence for s in route.get_stops_ordered()] == [1, 2, 3]
        assert events[0][1]["action"] == "reorder"

    async def test_terminal_stop_blocks_reorder(self, store):
        await store.update_route("r1", {"stops": [
            {**s.to_payload(), "status": "Completed"} if s.id == "s1" else s.to_payload()
            for s in store.get_route("r1").stops
        ]})

        route = await store.reorder_stops("r1", 0, 2)
        assert [s.id for s in route.get_stops_ordered()] == ["s1", "s2", "s3"]

    async def test_out_of_range_raises(self, store):
        with pytest.raises(NotFoundError):
            await store.reorder_stops("r1", 0, 5)


class TestMoveStop:

    async def test_moves_to_end_of_target(self, store):
        source, target = await store.move_stop_between_routes("r1", "r2", "s2")

        assert [s.id for s in source.get_stops_ordered()] == ["s1", "s3"]
        assert [s.sequence for s in source.get_stops_ordered()] == [1, 2]
        assert [s.id for s in target.stops] == ["s2"]
        assert target.stops[0].sequence == 1

    async def test_terminal_stop_cannot_move(self, store):
        await store.update_route("r1", {"stops": [
            {**s.to_payload(), "status": "Skipped"} if s.id == "s2" else s.to_payload()
            for s in store.get_route("r1").stops
        ]})
        with pytest.raises(InvalidTransitionError):
            await store.move_stop_between_routes("r1", "r2", "s2")

    async def test_target_failure_restores_source(self, store, monkeypatch):
        original = store.api.routes.update

        async def flaky(route_id, partial):
            if route_id == "r2":
                raise RuntimeError("connection reset")
            return await original(route_id, partial)

        monkeypatch.setattr(store.api.routes, "update", flaky)

        with pytest.raises(PersistenceError):
            await store.move_stop_between_routes("r1", "r2", "s2")

        assert [s.id for s in store.get_route("r1").get_stops_ordered()] == ["s1", "s2", "s3"]
        assert store.get_route("r2").stops == []


class TestOptimize:

    async def test_optimize_reorders_and_reports_savings(self, store, record_events):
        events = record_events(store.bus, EventType.ROUTE_OPTIMIZED)

        result = await store.optimize_route_stops("r1")

        route = store.get_route("r1")
        assert [s.id for s in route.get_stops_ordered()] == ["s1", "s3", "s2"]
        assert route.metrics == result.after
        assert result.improvement.distance_saved > 0
        assert events[0][1]["routeId"] == "r1"

    async def test_single_pending_stop_returns_none(self, store):
        await store.assign_to_route("r2", delivery("c9", lat=40.7, lng=-74.0))
        assert await store.optimize_route_stops("r2") is None


class TestConcurrentMutations:

    async def test_concurrent_pickup_assignments_keep_both_stops(
        self, store, yielding_route_updates
    ):
        yielding_route_updates(store)

        await asyncio.gather(
            store.assign_to_route("r2", pickup_task("p1")),
            store.assign_to_route("r2", pickup_task("p2")),
        )

        route = store.get_route("r2")
        assert sorted(t for s in route.stops for t in s.pickup_tasks) == ["p1", "p2"]
        assert validate_stop_sequence(route.stops).valid
        for pickup_id in ("p1", "p2"):
            assert store.get_pickup(pickup_id).status == PickupStatus.ASSIGNED
            assert store.find_route_for_pickup(pickup_id).id == "r2"

    async def test_same_pickup_lands_on_one_route(self, store, yielding_route_updates):
        yielding_route_updates(store)

        results = await asyncio.gather(
            store.assign_to_route("r1", pickup_task("p1")),
            store.assign_to_route("r2", pickup_task("p1")),
            return_exceptions=True,
        )

        assert sum(isinstance(r, InvalidTransitionError) for r in results) == 1
        holders = [r.id for r in store.routes if r.references_pickup("p1")]
        assert len(holders) == 1

    async def test_move_and_assign_on_shared_target(self, store, yielding_route_updates):
        yielding_route_updates(store)

        await asyncio.gather(
            store.move_stop_between_routes("r1", "r2", "s2"),
            store.assign_to_route("r2", delivery("c9")),
        )

        assert [s.id for s in store.get_route("r1").get_stops_ordered()] == ["s1", "s3"]
        target = store.get_route("r2")
        assert len(target.stops) == 2
        assert "s2" in {s.id for s in target.stops}
        assert [s.sequence for s in target.get_stops_ordered()] == [1, 2]


class TestPersistenceFailures:

    async def test_failed_write_leaves_state_untouched(self, store, monkeypatch):
        async def broken(route_id, partial):
            raise RuntimeError("timeout")

        monkeypatch.setattr(store.api.routes, "update", broken)
        version = store.version

        with pytest.raises(PersistenceError):
            await store.reorder_stops("r1", 0, 2)

        assert [s.id for s in store.get_route("r1").get_stops_ordered()] == ["s1", "s2", "s3"]
        assert store.version == version


class TestPickupsAndProviders:

    async def test_create_pickup_request(self, store):
        pickup = await store.create_pickup_request(
            PickupCreate(lab_id=LAB_ID, clinic_id="clinic-4", is_rush=True)
        )
        assert pickup.status == PickupStatus.PENDING
        assert pickup.request_time is not None
        assert store.get_pickup(pickup.id) is pickup

    async def test_select_provider_fetches_lazily(self, make_store, records):
        store = make_store(**records)
        request = ProviderSelectionRequest(package_specs=PackageSpecs(weight=1))

        chosen = await store.select_provider(request)
        assert chosen.id == "in-house"
        assert len(store.providers) == 1
