"""
In-process event bus for dispatch notifications.

Dispatch is synchronous: ``publish`` calls every handler before it returns.
There is no buffering or replay, so a subscriber only sees events published
after it subscribed.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Union

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Logistics event channel names."""
    ROUTE_CREATED = "logistics.route.created"
    ROUTE_UPDATED = "logistics.route.updated"
    ROUTE_OPTIMIZED = "logistics.route.optimized"
    STOP_ASSIGNED = "logistics.stop.assigned"
    STOP_UPDATED = "logistics.stop.updated"
    STOP_COMPLETED = "logistics.stop.completed"
    STOP_SKIPPED = "logistics.stop.skipped"
    CASE_STATUS_CHANGED = "logistics.case.status_changed"


@dataclass(frozen=True)
class Event:
    """Published message: channel name, payload and publish time."""
    name: str
    payload: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventHandler = Callable[[Event], Any]


class EventBus:
    """Synchronous publish/subscribe keyed by event name."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(
        self,
        event_name: Union[EventType, str],
        handler: EventHandler,
    ) -> Callable[[], None]:
        """Register *handler*; the returned callable removes it again."""
        name = _channel(event_name)
        self._handlers[name].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(name, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(
        self,
        event_name: Union[EventType, str],
        payload: dict[str, Any],
    ) -> Event:
        """
        Deliver an event to every current subscriber.

        A failing handler is logged and does not stop delivery to the rest.
        """
        event = Event(name=_channel(event_name), payload=payload)
        logger.debug("Publishing %s: %s", event.name, payload)

        for handler in list(self._handlers.get(event.name, [])):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", event.name)

        return event

    def handler_count(self, event_name: Union[EventType, str]) -> int:
        return len(self._handlers.get(_channel(event_name), []))

    def clear(self) -> None:
        self._handlers.clear()


def _channel(event_name: Union[EventType, str]) -> str:
    if isinstance(event_name, EventType):
        return event_name.value
    return event_name
