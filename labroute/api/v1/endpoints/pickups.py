"""
Pickup request endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Query, status

from labroute.core.dependencies import StoreDep
from labroute.models import Pickup, PickupCreate, PickupStatus
from labroute.services.selectors import pickups_by_status

router = APIRouter()


@router.get("", response_model=list[Pickup])
async def list_pickups(
    store: StoreDep,
    pickup_status: Optional[PickupStatus] = Query(None, alias="status"),
    rush_only: bool = Query(False, alias="rushOnly"),
):
    """List pickups, rush requests first."""
    return list(pickups_by_status(store.snapshot(), pickup_status, rush_only))


@router.post("", response_model=Pickup, status_code=status.HTTP_201_CREATED)
async def create_pickup(data: PickupCreate, store: StoreDep):
    """Request a new pickup from a clinic."""
    return await store.create_pickup_request(data)


@router.get("/{pickup_id}", response_model=Pickup)
async def get_pickup(pickup_id: str, store: StoreDep):
    return await store.fetch_pickup(pickup_id)
