"""FastAPI dependencies for the dispatch service container."""
from typing import Annotated

from fastapi import Depends, Request

from labroute.services.dispatch import DispatchService
from labroute.services.lifecycle import StopLifecycleManager
from labroute.services.store import RouteStore


def get_dispatch_service(request: Request) -> DispatchService:
    """The DispatchService built in the application lifespan.

    Usage:
        @router.get("/things")
        async def list_things(
            service: Annotated[DispatchService, Depends(get_dispatch_service)]
        ):
            return service.store.routes
    """
    return request.app.state.dispatch


def get_store(service: Annotated[DispatchService, Depends(get_dispatch_service)]) -> RouteStore:
    return service.store


def get_lifecycle(
    service: Annotated[DispatchService, Depends(get_dispatch_service)],
) -> StopLifecycleManager:
    return service.lifecycle


DispatchDep = Annotated[DispatchService, Depends(get_dispatch_service)]
StoreDep = Annotated[RouteStore, Depends(get_store)]
LifecycleDep = Annotated[StopLifecycleManager, Depends(get_lifecycle)]
