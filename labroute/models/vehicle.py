"""
Fleet vehicle model.
"""
from typing import Optional

from labroute.models.base import TimestampMixin
from labroute.models.enums import VehicleStatus


class Vehicle(TimestampMixin):
    """Lab-owned vehicle."""
    id: str
    lab_id: str
    status: VehicleStatus = VehicleStatus.ACTIVE
    assigned_driver_id: Optional[str] = None
    license_plate: Optional[str] = None

    @property
    def is_available(self) -> bool:
        """Active and not assigned to a driver."""
        return self.status == VehicleStatus.ACTIVE and not self.assigned_driver_id
