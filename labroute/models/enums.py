"""
Enum type definitions for the dispatch core.

Values match the wire format of the logistics API.
"""
from enum import Enum


class RouteStatus(str, Enum):
    """Route lifecycle status."""
    SCHEDULED = "Scheduled"      # Planned, no stop reached yet
    IN_PROGRESS = "InProgress"   # At least one stop reached or pending after progress
    COMPLETED = "Completed"      # Every stop Completed or Skipped
    CANCELLED = "Cancelled"      # Cancelled by dispatcher

    @property
    def accepts_stops(self) -> bool:
        """Check if new stops may be assigned to a route in this status."""
        return self != RouteStatus.CANCELLED


class StopType(str, Enum):
    """Kind of work performed at a stop."""
    PICKUP = "Pickup"
    DELIVERY = "Delivery"


class StopStatus(str, Enum):
    """
    Route stop status.

    Pending -> Completed and Pending -> Skipped are the only transitions;
    both targets are terminal.
    """
    PENDING = "Pending"
    COMPLETED = "Completed"
    SKIPPED = "Skipped"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transitions are allowed."""
        return self in (StopStatus.COMPLETED, StopStatus.SKIPPED)

    def can_transition_to(self, target: "StopStatus") -> bool:
        """Check if moving from this status to *target* is allowed."""
        return target in STOP_STATE_TRANSITIONS[self]


STOP_STATE_TRANSITIONS: dict[StopStatus, tuple[StopStatus, ...]] = {
    StopStatus.PENDING: (StopStatus.COMPLETED, StopStatus.SKIPPED),
    StopStatus.COMPLETED: (),
    StopStatus.SKIPPED: (),
}


class PickupStatus(str, Enum):
    """Pickup request lifecycle status."""
    PENDING = "Pending"        # Requested by the clinic, not yet on a route
    ASSIGNED = "Assigned"      # Referenced by a route stop
    COMPLETED = "Completed"    # Collected by the driver


class VehicleStatus(str, Enum):
    """Vehicle availability status."""
    ACTIVE = "Active"
    MAINTENANCE = "Maintenance"


class ProviderType(str, Enum):
    """Delivery provider kind."""
    IN_HOUSE = "IN_HOUSE"
    THIRD_PARTY = "THIRD_PARTY"


class ProviderStatus(str, Enum):
    """Delivery provider availability."""
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class CaseStatus(str, Enum):
    """Case statuses written by the dispatch core."""
    SHIPPING = "shipping"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
