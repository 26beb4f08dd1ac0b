"""
API v1 router aggregation.
"""
from fastapi import APIRouter

from labroute.api.v1.endpoints import logistics, pickups, providers, routes

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(
    routes.router,
    prefix="/routes",
    tags=["Routes"],
)

api_router.include_router(
    pickups.router,
    prefix="/pickups",
    tags=["Pickups"],
)

api_router.include_router(
    providers.router,
    prefix="/providers",
    tags=["Providers"],
)

api_router.include_router(
    logistics.router,
    prefix="/logistics",
    tags=["Logistics"],
)
