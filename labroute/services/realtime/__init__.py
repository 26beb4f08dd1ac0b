"""
Real-time transport: websocket client, channel helpers and location tracking.
"""

from labroute.services.realtime.client import (
    ClientEvent,
    ConnectionState,
    LogisticsWebSocketClient,
    MESSAGE_ROUTES,
    NORMAL_CLOSURE,
)
from labroute.services.realtime.channels import (
    lab_drivers_channel,
    lab_pickups_channel,
    route_channel,
    route_eta_channel,
    subscribe_to_driver_locations,
    subscribe_to_eta_updates,
    subscribe_to_pickup_updates,
    subscribe_to_route_updates,
)
from labroute.services.realtime.tracking import (
    LocationFix,
    LocationTracker,
    start_location_tracking,
)

__all__ = [
    # Client
    "ClientEvent",
    "ConnectionState",
    "LogisticsWebSocketClient",
    "MESSAGE_ROUTES",
    "NORMAL_CLOSURE",
    # Channels
    "lab_drivers_channel",
    "lab_pickups_channel",
    "route_channel",
    "route_eta_channel",
    "subscribe_to_driver_locations",
    "subscribe_to_eta_updates",
    "subscribe_to_pickup_updates",
    "subscribe_to_route_updates",
    # Tracking
    "LocationFix",
    "LocationTracker",
    "start_location_tracking",
]
