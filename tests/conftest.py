"""Root conftest.py -- shared fixtures for all test modules."""
import asyncio
import os

import pytest

# Set env vars BEFORE any labroute imports so the in-memory backend is used
os.environ.pop("LOGISTICS_API_URL", None)
os.environ.setdefault("API_TOKEN", "test-token")

from labroute.core.config import get_settings, Settings
from labroute.persistence import create_memory_api
from labroute.services.cache import MemoryCache, RequestDeduplicator
from labroute.services.events import EventBus
from labroute.services.lifecycle import StopLifecycleManager
from labroute.services.selectors import clear_selector_caches
from labroute.services.store import RouteStore

LAB_ID = "lab-1"


# =========================================================================
# Settings & caches
# =========================================================================
@pytest.fixture(autouse=True)
def _clear_caches():
    """Clear LRU caches before each test to prevent stale settings and selectors."""
    get_settings.cache_clear()
    clear_selector_caches()
    yield
    get_settings.cache_clear()
    clear_selector_caches()


@pytest.fixture
def test_settings() -> Settings:
    return get_settings()


# =========================================================================
# Record Factories (camelCase, as the logistics API returns them)
# =========================================================================
@pytest.fixture
def make_stop():
    def _make(
        stop_id: str,
        sequence: int = 1,
        stop_type: str = "Delivery",
        status: str = "Pending",
        lat: float = None,
        lng: float = None,
        clinic_id: str = "clinic-1",
        pickup_tasks: list = None,
        delivery_manifest: list = None,
    ) -> dict:
        stop = {
            "id": stop_id,
            "sequence": sequence,
            "clinicId": clinic_id,
            "type": stop_type,
            "status": status,
            "pickupTasks": pickup_tasks or [],
            "deliveryManifest": delivery_manifest or [],
        }
        if lat is not None and lng is not None:
            stop["coordinates"] = {"lat": lat, "lng": lng}
        return stop

    return _make


@pytest.fixture
def make_route():
    def _make(
        route_id: str,
        stops: list = None,
        status: str = "Scheduled",
        lab_id: str = LAB_ID,
        name: str = None,
        driver_id: str = "driver-1",
        route_date: str = "2026-10-19",
        total_distance_km: float = 0.0,
    ) -> dict:
        return {
            "id": route_id,
            "labId": lab_id,
            "name": name or f"Route {route_id}",
            "driverId": driver_id,
            "date": route_date,
            "status": status,
            "stops": stops or [],
            "metrics": {"totalDistanceKm": total_distance_km, "estimatedDurationMin": 0},
        }

    return _make


@pytest.fixture
def make_pickup():
    def _make(
        pickup_id: str,
        status: str = "Pending",
        lab_id: str = LAB_ID,
        clinic_id: str = "clinic-1",
        is_rush: bool = False,
        request_time: str = "2026-10-18T08:00:00+00:00",
        lat: float = None,
        lng: float = None,
    ) -> dict:
        pickup = {
            "id": pickup_id,
            "labId": lab_id,
            "clinicId": clinic_id,
            "status": status,
            "isRush": is_rush,
            "requestTime": request_time,
        }
        if lat is not None and lng is not None:
            pickup["coordinates"] = {"lat": lat, "lng": lng}
        return pickup

    return _make


@pytest.fixture
def make_provider():
    def _make(
        provider_id: str,
        provider_type: str = "THIRD_PARTY",
        status: str = "Active",
        max_weight_kg: float = 50.0,
        temperature_control: bool = False,
        fragile_handling: bool = False,
        fallback_priority: int = 0,
    ) -> dict:
        return {
            "id": provider_id,
            "name": provider_id.title(),
            "type": provider_type,
            "status": status,
            "capabilities": {
                "maxWeightKg": max_weight_kg,
                "temperatureControl": temperature_control,
                "fragileHandling": fragile_handling,
            },
            "integration": {"fallbackPriority": fallback_priority},
        }

    return _make


@pytest.fixture
def make_vehicle():
    def _make(
        vehicle_id: str,
        status: str = "Active",
        lab_id: str = LAB_ID,
        assigned_driver_id: str = None,
    ) -> dict:
        return {
            "id": vehicle_id,
            "labId": lab_id,
            "status": status,
            "assignedDriverId": assigned_driver_id,
            "licensePlate": f"LAB-{vehicle_id}",
        }

    return _make


# =========================================================================
# Store Fixtures
# =========================================================================
@pytest.fixture
def make_store(test_settings):
    """Build a RouteStore over an in-memory backend seeded with records."""

    def _make(routes=None, pickups=None, vehicles=None, providers=None, cases=None):
        api = create_memory_api(
            routes=routes,
            pickups=pickups,
            vehicles=vehicles,
            providers=providers,
            cases=cases,
        )
        return RouteStore(
            api,
            bus=EventBus(),
            cache=MemoryCache(),
            deduplicator=RequestDeduplicator(),
            config=test_settings,
        )

    return _make


@pytest.fixture
def record_events():
    """Subscribe to bus channels and collect payloads in publish order."""

    def _record(bus: EventBus, *event_types) -> list:
        seen = []
        for event_type in event_types:
            bus.subscribe(event_type, lambda event: seen.append((event.name, event.payload)))
        return seen

    return _record


@pytest.fixture
def yielding_route_updates(monkeypatch):
    """Make the backend's route update suspend once, as a network call would."""

    def _patch(store: RouteStore) -> None:
        original = store.api.routes.update

        async def update(route_id, partial):
            await asyncio.sleep(0)
            return await original(route_id, partial)

        monkeypatch.setattr(store.api.routes, "update", update)

    return _patch


@pytest.fixture
def lifecycle_for():
    def _make(store: RouteStore) -> StopLifecycleManager:
        return StopLifecycleManager(store)

    return _make


# =========================================================================
# FastAPI Test Client
# =========================================================================
@pytest.fixture
def app():
    from labroute.main import app as fastapi_app
    return fastapi_app


@pytest.fixture
def dispatch_service(test_settings):
    from labroute.services.dispatch import create_dispatch_service
    return create_dispatch_service(config=test_settings, api=create_memory_api())


@pytest.fixture
async def client(app, dispatch_service):
    """httpx.AsyncClient against the app with an in-memory dispatch service."""
    from httpx import AsyncClient, ASGITransport

    app.state.dispatch = dispatch_service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    await dispatch_service.aclose()
