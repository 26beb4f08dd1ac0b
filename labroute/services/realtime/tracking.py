"""
Driver location tracking.

Samples the device position on a fixed interval and pushes it over the
realtime client as ``UPDATE_LOCATION``.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from labroute.core.config import get_settings
from labroute.services.realtime.client import LogisticsWebSocketClient

logger = logging.getLogger(__name__)


@dataclass
class LocationFix:
    """One position sample from the device."""
    lat: float
    lng: float
    accuracy: Optional[float] = None


LocationSource = Callable[[], Awaitable[LocationFix]]


class LocationTracker:
    """Periodic location sender; ``stop()`` cancels it."""

    def __init__(
        self,
        client: LogisticsWebSocketClient,
        driver_id: str,
        route_id: str,
        location_source: LocationSource,
        interval_ms: Optional[int] = None,
    ):
        self.client = client
        self.driver_id = driver_id
        self.route_id = route_id
        self.location_source = location_source
        self.interval_ms = interval_ms or get_settings().location_tracking_interval_ms
        self._task: Optional[asyncio.Task] = None
        self.samples_sent = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "LocationTracker":
        """Send a sample now, then every interval until stopped."""
        if not self.running:
            self._task = asyncio.create_task(self._run())
        return self

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()

    async def _run(self) -> None:
        while True:
            await self.send_location()
            await asyncio.sleep(self.interval_ms / 1000)

    async def send_location(self) -> bool:
        """Take one sample and send it; location errors are logged and skipped."""
        try:
            fix = await self.location_source()
        except Exception as e:
            logger.error(f"Geolocation error for driver {self.driver_id}: {e}")
            return False

        sent = await self.client.update_location({
            "driverId": self.driver_id,
            "routeId": self.route_id,
            "coordinates": {"lat": fix.lat, "lng": fix.lng},
            "accuracy": fix.accuracy,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        if sent:
            self.samples_sent += 1
        return sent


def start_location_tracking(
    client: LogisticsWebSocketClient,
    driver_id: str,
    route_id: str,
    location_source: LocationSource,
    interval_ms: Optional[int] = None,
) -> LocationTracker:
    """Start tracking and return the handle used to stop it."""
    return LocationTracker(
        client, driver_id, route_id, location_source, interval_ms
    ).start()
