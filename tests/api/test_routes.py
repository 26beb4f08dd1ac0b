"""Tests for Route endpoints."""

BASE = "/api/v1/routes"


class TestListRoutes:

    async def test_list_returns_paginated_camel_case(self, loaded_client):
        response = await loaded_client.get(BASE)
        assert response.status_code == 200

        data = response.json()
        assert data["total"] == 2
        assert data["totalPages"] == 1
        assert [r["id"] for r in data["items"]] == ["r2", "r1"]
        assert data["items"][1]["stops"][0]["deliveryManifest"] == ["c1"]

    async def test_filters(self, loaded_client):
        response = await loaded_client.get(
            BASE, params={"status": "Scheduled", "driverId": "driver-2"}
        )
        assert [r["id"] for r in response.json()["items"]] == ["r2"]

    async def test_search_and_sort(self, loaded_client):
        response = await loaded_client.get(
            BASE, params={"search": "loop", "sortBy": "name", "order": "asc"}
        )
        assert [r["name"] for r in response.json()["items"]] == ["Afternoon loop", "Morning loop"]

    async def test_invalid_page_size_returns_422(self, loaded_client):
        response = await loaded_client.get(BASE, params={"pageSize": 0})
        assert response.status_code == 422


class TestCreateRoute:

    async def test_create_returns_201(self, loaded_client):
        response = await loaded_client.post(BASE, json={
            "labId": "lab-1", "name": "Evening", "driverId": "driver-3", "date": "2026-10-21",
        })
        assert response.status_code == 201

        data = response.json()
        assert data["status"] == "Scheduled"
        assert data["stops"] == []
        assert data["date"] == "2026-10-21"

    async def test_empty_name_returns_422(self, loaded_client):
        response = await loaded_client.post(BASE, json={"labId": "lab-1", "name": ""})
        assert response.status_code == 422


class TestGetRoute:

    async def test_not_found_returns_404(self, loaded_client):
        response = await loaded_client.get(f"{BASE}/missing")
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    async def test_stats(self, loaded_client):
        response = await loaded_client.get(f"{BASE}/stats")
        assert response.status_code == 200
        data = response.json()
        assert data["totalRoutes"] == 2
        assert data["totalStops"] == 3
        assert data["rushPickups"] == 1


class TestAssignment:

    async def test_assign_pickup(self, loaded_client):
        response = await loaded_client.post(f"{BASE}/r2/assign", json={
            "id": "p1", "type": "Pickup", "clinicId": "clinic-1",
        })
        assert response.status_code == 200
        stop = response.json()["stops"][0]
        assert stop["pickupTasks"] == ["p1"]
        assert stop["coordinates"] == {"lat": 40.75, "lng": -73.99}

    async def test_assign_already_assigned_pickup_returns_409(self, loaded_client):
        response = await loaded_client.post(f"{BASE}/r2/assign", json={
            "id": "p-assigned", "type": "Pickup", "clinicId": "clinic-1",
        })
        assert response.status_code == 409

    async def test_bulk_assign_reports_failures(self, loaded_client):
        response = await loaded_client.post(f"{BASE}/r2/assign-bulk", json={"tasks": [
            {"id": "c9", "type": "Delivery", "clinicId": "clinic-9"},
            {"id": "nope", "type": "Pickup", "clinicId": "clinic-1"},
        ]})
        assert response.status_code == 200
        data = response.json()
        assert data["success"] == 1
        assert data["failed"] == 1
        assert data["errors"][0]["taskId"] == "nope"


class TestStopOrdering:

    async def test_reorder(self, loaded_client):
        response = await loaded_client.post(f"{BASE}/r1/reorder", json={"fromIndex": 2, "toIndex": 0})
        assert response.status_code == 200
        assert [s["id"] for s in response.json()["stops"]] == ["s3", "s1", "s2"]

    async def test_reorder_out_of_range_returns_404(self, loaded_client):
        response = await loaded_client.post(f"{BASE}/r1/reorder", json={"fromIndex": 0, "toIndex": 9})
        assert response.status_code == 404

    async def test_move_stop(self, loaded_client):
        response = await loaded_client.post(
            f"{BASE}/r1/move-stop", json={"stopId": "s2", "toRouteId": "r2"}
        )
        assert response.status_code == 200
        source, target = response.json()
        assert [s["id"] for s in source["stops"]] == ["s1", "s3"]
        assert [s["id"] for s in target["stops"]] == ["s2"]

    async def test_optimize(self, loaded_client):
        response = await loaded_client.post(f"{BASE}/r1/optimize")
        assert response.status_code == 200
        data = response.json()
        assert data["routeId"] == "r1"
        assert data["improvement"]["distanceSaved"] > 0
        assert data["after"]["totalDistanceKm"] < data["before"]["totalDistanceKm"]

    async def test_optimize_empty_route_returns_null(self, loaded_client):
        response = await loaded_client.post(f"{BASE}/r2/optimize")
        assert response.status_code == 200
        assert response.json() is None


class TestStopStatus:

    async def test_complete_stop(self, loaded_client):
        response = await loaded_client.patch(f"{BASE}/r1/stops/s1", json={
            "status": "Completed", "proofData": {"signature": "sig.png"},
        })
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "InProgress"
        assert data["stops"][0]["status"] == "Completed"
        assert data["stops"][0]["proof"] == {"signature": "sig.png"}

    async def test_completing_twice_returns_409(self, loaded_client):
        await loaded_client.patch(f"{BASE}/r1/stops/s1", json={"status": "Completed"})
        response = await loaded_client.patch(f"{BASE}/r1/stops/s1", json={"status": "Completed"})
        assert response.status_code == 409

    async def test_skip_stop(self, loaded_client):
        response = await loaded_client.post(
            f"{BASE}/r1/stops/s2/skip", json={"reason": "Clinic closed"}
        )
        assert response.status_code == 200
        stop = response.json()["stops"][1]
        assert stop["status"] == "Skipped"
        assert stop["requiresFollowUp"] is True
        assert stop["skipReason"] == "Clinic closed"

    async def test_skip_requires_reason(self, loaded_client):
        response = await loaded_client.post(f"{BASE}/r1/stops/s2/skip", json={"reason": ""})
        assert response.status_code == 422
