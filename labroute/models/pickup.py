"""
Pickup request model.

A pickup is created by a clinic and stays independent until a route stop
references it.
"""
from datetime import datetime
from typing import Optional

from labroute.models.base import Coordinates, DomainModel, TimestampMixin
from labroute.models.enums import PickupStatus


class Pickup(TimestampMixin):
    """Client-initiated collection request."""
    id: str
    lab_id: str
    clinic_id: str
    status: PickupStatus = PickupStatus.PENDING
    request_time: Optional[datetime] = None
    is_rush: bool = False
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    coordinates: Optional[Coordinates] = None
    package_count: int = 1
    notes: Optional[str] = None


class PickupCreate(DomainModel):
    """Fields a clinic supplies when requesting a pickup."""
    lab_id: str
    clinic_id: str
    is_rush: bool = False
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    coordinates: Optional[Coordinates] = None
    package_count: int = 1
    notes: Optional[str] = None
