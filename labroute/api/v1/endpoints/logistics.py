"""
Bulk load and maintenance endpoints.
"""
from dataclasses import asdict

from fastapi import APIRouter, Query

from labroute.core.dependencies import DispatchDep
from labroute.models import Vehicle
from labroute.services.selectors import available_vehicles

router = APIRouter()


@router.post("/load")
async def load_lab(
    service: DispatchDep,
    lab_id: str = Query(..., alias="labId"),
    refresh: bool = False,
):
    """Load (or reload with ``refresh=true``) all logistics data for a lab."""
    store = service.store
    summary = await (store.refresh(lab_id) if refresh else store.load(lab_id))
    data = asdict(summary)
    return {
        "labId": data["lab_id"],
        "routes": data["routes"],
        "pickups": data["pickups"],
        "vehicles": data["vehicles"],
        "providers": data["providers"],
        "loadedAt": summary.loaded_at.isoformat(),
    }


@router.post("/cascades/retry")
async def retry_cascades(service: DispatchDep):
    """Re-issue case and pickup updates that failed during stop completion."""
    summary = await service.lifecycle.retry_failed_cascades()
    return {
        "succeeded": summary.succeeded,
        "failed": summary.failed,
        "abandoned": summary.abandoned,
        "pending": len(service.store.retry_queue),
    }


@router.get("/vehicles/available", response_model=list[Vehicle])
async def list_available_vehicles(service: DispatchDep):
    """Active vehicles without an assigned driver."""
    return list(available_vehicles(service.store.snapshot()))
