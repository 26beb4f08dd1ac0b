"""
FastAPI application entry point for LabRoute.

Route planning and dispatch for a clinical laboratory courier fleet.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from labroute.api.v1 import api_router
from labroute.core.config import settings
from labroute.core.exceptions import LogisticsError
from labroute.services.dispatch import create_dispatch_service

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Builds the dispatch service on startup and releases its network
    resources on shutdown.
    """
    # Startup
    service = create_dispatch_service()
    app.state.dispatch = service
    if settings.default_lab_id:
        summary = await service.store.load(settings.default_lab_id)
        logger.info(
            f"Preloaded lab {summary.lab_id}: {summary.routes} routes, "
            f"{summary.pickups} pickups"
        )
    yield
    # Shutdown
    await service.aclose()


async def logistics_error_handler(request: Request, exc: LogisticsError) -> JSONResponse:
    """Render domain errors with their HTTP status."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_application() -> FastAPI:
    """Create and configure FastAPI application."""

    app = FastAPI(
        title=settings.app_name,
        description="""
        ## LabRoute Dispatch

        Route planning for laboratory specimen pickups and case deliveries:

        - **Route assignment**: add clinic pickups and case deliveries as stops
        - **Stop lifecycle**: complete or skip stops with proof of delivery
        - **Optimization**: nearest-neighbour reordering of pending stops
        - **Provider selection**: in-house fleet or third-party couriers
        """,
        version=settings.app_version,
        openapi_url=f"{settings.api_v1_prefix}/openapi.json",
        docs_url=f"{settings.api_v1_prefix}/docs",
        redoc_url=f"{settings.api_v1_prefix}/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LogisticsError, logistics_error_handler)

    # Include API router
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    return app


# Create application instance
app = create_application()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "docs": f"{settings.api_v1_prefix}/docs",
        "openapi": f"{settings.api_v1_prefix}/openapi.json",
    }
