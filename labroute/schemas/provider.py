"""
Provider selection request schemas.
"""
from typing import Optional

from pydantic import Field

from labroute.models.base import Coordinates
from labroute.schemas.base import BaseSchema


class PackageSpecs(BaseSchema):
    """Physical requirements of the shipment."""
    weight: float = Field(0.0, ge=0)
    temperature_controlled: bool = False
    fragile: bool = False


class ProviderSelectionRequest(BaseSchema):
    """Input to the courier-selection algorithm."""
    package_specs: PackageSpecs = Field(default_factory=PackageSpecs)
    is_rush: bool = False
    clinic_location: Optional[Coordinates] = None
    lab_id: Optional[str] = None
