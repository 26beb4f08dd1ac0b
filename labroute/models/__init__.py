"""
Domain models for the LabRoute dispatch core.

Pydantic models with snake_case attributes and camelCase wire names.
"""

# Enums
from labroute.models.enums import (
    RouteStatus,
    StopType,
    StopStatus,
    PickupStatus,
    VehicleStatus,
    ProviderType,
    ProviderStatus,
    CaseStatus,
)

# Base
from labroute.models.base import DomainModel, TimestampMixin, Coordinates

# Domain Models
from labroute.models.route import Route, RouteStop, RouteMetrics
from labroute.models.pickup import Pickup, PickupCreate
from labroute.models.vehicle import Vehicle
from labroute.models.provider import Provider, ProviderCapabilities, ProviderIntegration

__all__ = [
    # Enums
    "RouteStatus",
    "StopType",
    "StopStatus",
    "PickupStatus",
    "VehicleStatus",
    "ProviderType",
    "ProviderStatus",
    "CaseStatus",
    # Base
    "DomainModel",
    "TimestampMixin",
    "Coordinates",
    # Models
    "Route",
    "RouteStop",
    "RouteMetrics",
    "Pickup",
    "PickupCreate",
    "Vehicle",
    "Provider",
    "ProviderCapabilities",
    "ProviderIntegration",
]
