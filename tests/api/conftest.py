"""API test fixtures -- a dispatch service seeded with one lab's records."""
import pytest

from labroute.persistence import create_memory_api

LAB_ID = "lab-1"


@pytest.fixture
def dispatch_service(test_settings, make_route, make_stop, make_pickup, make_provider, make_vehicle):
    """Overrides the root fixture with a seeded in-memory backend."""
    from labroute.services.dispatch import create_dispatch_service

    api = create_memory_api(
        routes=[
            make_route("r1", name="Morning loop", stops=[
                make_stop("s1", 1, lat=40.80, lng=-73.95, delivery_manifest=["c1"]),
                make_stop("s2", 2, lat=40.72, lng=-74.00, delivery_manifest=["c2"]),
                make_stop("s3", 3, lat=40.76, lng=-73.98, stop_type="Pickup",
                          pickup_tasks=["p-assigned"]),
            ]),
            make_route("r2", name="Afternoon loop", driver_id="driver-2",
                       route_date="2026-10-20"),
        ],
        pickups=[
            make_pickup("p1", lat=40.75, lng=-73.99),
            make_pickup("p-rush", is_rush=True),
            make_pickup("p-assigned", status="Assigned"),
        ],
        vehicles=[make_vehicle("v1"), make_vehicle("v2", assigned_driver_id="driver-1")],
        providers=[
            make_provider("in-house", provider_type="IN_HOUSE", fallback_priority=10),
            make_provider("courier", fallback_priority=1, max_weight_kg=100),
        ],
        cases=[
            {"id": "c1", "status": "shipped"},
            {"id": "c2", "status": "shipped"},
            {"id": "c9", "status": "shipping"},
        ],
    )
    return create_dispatch_service(config=test_settings, api=api)


@pytest.fixture
async def loaded_client(client):
    response = await client.post("/api/v1/logistics/load", params={"labId": LAB_ID})
    assert response.status_code == 200
    return client
