"""
Stop lifecycle manager.

Pending -> Completed and Pending -> Skipped are the only stop transitions.
After every transition the route status is recomputed: Completed once every
stop is Completed or Skipped, InProgress otherwise.

Completing a Delivery stop marks each case in its manifest delivered;
completing a Pickup stop marks its pickups Completed. These cascades run one
target at a time and are best effort: a failed update is logged and queued
for reconciliation, and never fails the stop completion itself.
"""
import logging
from typing import Any, Optional

from labroute.core.exceptions import InvalidTransitionError, NotFoundError
from labroute.models.enums import CaseStatus, PickupStatus, StopStatus, StopType
from labroute.models.route import Route, RouteStop, progress_status
from labroute.services.events import EventBus, EventType
from labroute.services.store import RouteStore, utc_now

logger = logging.getLogger(__name__)


class StopLifecycleManager:
    """Applies stop status transitions and their cascades through the store."""

    def __init__(self, store: RouteStore):
        self.store = store

    @property
    def bus(self) -> EventBus:
        return self.store.bus

    async def update_route_stop_status(
        self,
        route_id: str,
        stop_id: str,
        new_status: StopStatus,
        proof_data: Optional[dict[str, Any]] = None,
    ) -> Route:
        """
        Transition a stop and propagate the change.

        Raises:
            NotFoundError: Route or stop does not exist.
            InvalidTransitionError: The stop is already Completed or Skipped.
        """
        new_status = StopStatus(new_status)
        key = f"update-stop-{route_id}-{stop_id}-{new_status.value}"
        return await self.store.deduplicator.dedupe(
            key,
            lambda: self._update_status(route_id, stop_id, new_status, proof_data or {}),
        )

    async def _update_status(
        self,
        route_id: str,
        stop_id: str,
        new_status: StopStatus,
        proof_data: dict[str, Any],
    ) -> Route:
        if new_status == StopStatus.SKIPPED:
            return await self._skip(route_id, stop_id, reason=None, notes=None)

        async with self.store.lock_route(route_id):
            route, stop = await self._locate(route_id, stop_id)
            self._check_transition(stop, new_status)

            updates: dict[str, Any] = {
                "status": new_status,
                "proof": {**stop.proof, **proof_data},
            }
            if new_status == StopStatus.COMPLETED:
                updates["completed_at"] = utc_now()

            updated_route = await self._write_stop(route, stop.model_copy(update=updates))
        updated_stop = updated_route.find_stop(stop_id) or stop

        logger.info(f"Stop {stop_id} on route {route_id} is now {new_status.value}")
        self.bus.publish(EventType.STOP_UPDATED, {
            "routeId": route_id,
            "stopId": stop_id,
            "status": new_status.value,
            "routeStatus": updated_route.status.value,
        })

        if new_status == StopStatus.COMPLETED:
            self.bus.publish(EventType.STOP_COMPLETED, {
                "routeId": route_id,
                "stopId": stop_id,
                "type": updated_stop.type.value,
                "completedAt": updated_stop.completed_at.isoformat()
                if updated_stop.completed_at else None,
            })
            await self._cascade(updated_route, updated_stop, proof_data)

        return updated_route

    async def skip_route_stop(
        self,
        route_id: str,
        stop_id: str,
        reason: str,
        notes: Optional[str] = None,
    ) -> Route:
        """Skip a Pending stop and flag it for follow-up by a dispatcher."""
        key = f"update-stop-{route_id}-{stop_id}-{StopStatus.SKIPPED.value}"
        return await self.store.deduplicator.dedupe(
            key, lambda: self._skip(route_id, stop_id, reason, notes)
        )

    async def _skip(
        self,
        route_id: str,
        stop_id: str,
        reason: Optional[str],
        notes: Optional[str],
    ) -> Route:
        async with self.store.lock_route(route_id):
            route, stop = await self._locate(route_id, stop_id)
            self._check_transition(stop, StopStatus.SKIPPED)

            skipped = stop.model_copy(update={
                "status": StopStatus.SKIPPED,
                "skipped_at": utc_now(),
                "skip_reason": reason,
                "skip_notes": notes,
                "requires_follow_up": True,
            })
            updated_route = await self._write_stop(route, skipped)

        # Dispatcher notification
        logger.warning(
            f"Stop {stop_id} on route {route_id} skipped "
            f"(reason: {reason or 'unspecified'}); follow-up required"
        )
        self.bus.publish(EventType.STOP_UPDATED, {
            "routeId": route_id,
            "stopId": stop_id,
            "status": StopStatus.SKIPPED.value,
            "routeStatus": updated_route.status.value,
        })
        self.bus.publish(EventType.STOP_SKIPPED, {
            "routeId": route_id,
            "stopId": stop_id,
            "reason": reason,
            "notes": notes,
            "requiresFollowUp": True,
        })
        return updated_route

    async def retry_failed_cascades(self):
        """Re-issue queued cascade updates."""
        return await self.store.retry_queue.retry_failed()

    # =========================================================================
    # Internals
    # =========================================================================

    async def _locate(self, route_id: str, stop_id: str) -> tuple[Route, RouteStop]:
        route = await self.store.fetch_route(route_id)
        stop = route.find_stop(stop_id)
        if stop is None:
            raise NotFoundError("Stop", stop_id)
        return route, stop

    @staticmethod
    def _check_transition(stop: RouteStop, target: StopStatus) -> None:
        if not stop.status.can_transition_to(target):
            raise InvalidTransitionError(
                "Stop", stop.id,
                current=stop.status.value,
                attempted=target.value,
            )

    async def _write_stop(self, route: Route, stop: RouteStop) -> Route:
        """Persist *stop* into *route* and recompute the route status."""
        stops = [stop if s.id == stop.id else s for s in route.stops]
        status = progress_status(route.model_copy(update={"stops": stops}))
        return await self.store.update_route(route.id, {
            "stops": [s.to_payload() for s in stops],
            "status": status.value,
        })

    async def _cascade(self, route: Route, stop: RouteStop, proof_data: dict[str, Any]) -> None:
        context = {"routeId": route.id, "stopId": stop.id}

        if stop.type == StopType.DELIVERY:
            delivered_at = (stop.completed_at or utc_now()).isoformat()
            delivered = 0
            for case_id in stop.delivery_manifest:
                ok = await self.store.cascade_case_update(case_id, {
                    "status": CaseStatus.DELIVERED.value,
                    "deliveredAt": delivered_at,
                    "routeId": route.id,
                    "routeName": route.name,
                    "stopId": stop.id,
                    "proofData": proof_data,
                }, previous=CaseStatus.SHIPPED)
                delivered += int(ok)
            if delivered < len(stop.delivery_manifest):
                logger.error(
                    f"Stop {stop.id}: {len(stop.delivery_manifest) - delivered} of "
                    f"{len(stop.delivery_manifest)} case updates failed"
                )
        else:
            for pickup_id in stop.pickup_tasks:
                await self.store.cascade_pickup_update(
                    pickup_id, {"status": PickupStatus.COMPLETED.value}, context
                )
