"""
Channel naming and subscription helpers.

Each helper subscribes the client to a channel, registers the callback on
the matching local event(s) and returns an async cleanup callable that
undoes both.
"""
from typing import Awaitable, Callable

from labroute.services.realtime.client import ClientEvent, EventHandler, LogisticsWebSocketClient

Unsubscribe = Callable[[], Awaitable[None]]


def lab_drivers_channel(lab_id: str) -> str:
    return f"lab:{lab_id}:drivers"


def lab_pickups_channel(lab_id: str) -> str:
    return f"lab:{lab_id}:pickups"


def route_channel(route_id: str) -> str:
    return f"route:{route_id}"


def route_eta_channel(route_id: str) -> str:
    return f"route:{route_id}:eta"


async def _subscribe(
    client: LogisticsWebSocketClient,
    channel: str,
    events: tuple[ClientEvent, ...],
    callback: EventHandler,
) -> Unsubscribe:
    await client.subscribe(channel)
    removers = [client.on(event, callback) for event in events]

    async def unsubscribe() -> None:
        for remove in removers:
            remove()
        await client.unsubscribe(channel)

    return unsubscribe


async def subscribe_to_driver_locations(
    client: LogisticsWebSocketClient,
    lab_id: str,
    callback: EventHandler,
) -> Unsubscribe:
    """Live driver positions for a dispatcher's lab."""
    return await _subscribe(
        client, lab_drivers_channel(lab_id), (ClientEvent.DRIVER_LOCATION,), callback
    )


async def subscribe_to_route_updates(
    client: LogisticsWebSocketClient,
    route_id: str,
    callback: EventHandler,
) -> Unsubscribe:
    """Route and stop status changes for one route."""
    return await _subscribe(
        client,
        route_channel(route_id),
        (ClientEvent.ROUTE_STATUS, ClientEvent.STOP_STATUS),
        callback,
    )


async def subscribe_to_eta_updates(
    client: LogisticsWebSocketClient,
    route_id: str,
    callback: EventHandler,
) -> Unsubscribe:
    return await _subscribe(
        client, route_eta_channel(route_id), (ClientEvent.ETA_UPDATE,), callback
    )


async def subscribe_to_pickup_updates(
    client: LogisticsWebSocketClient,
    lab_id: str,
    callback: EventHandler,
) -> Unsubscribe:
    return await _subscribe(
        client, lab_pickups_channel(lab_id), (ClientEvent.PICKUP_ASSIGNED,), callback
    )
