"""
Route & stop state store.

Authoritative in-memory projection of routes, pickups, vehicles and
providers. Every mutation is written to the logistics API first; local state
only changes once the API has echoed the stored record back, so a failed
write never leaves a speculative change behind.

Concurrent calls for the same logical operation are collapsed through the
request deduplicator, keyed by an operation-specific string. Different
operations on the same route are serialized by a per-route lock held from
reading the route until the persisted echo is committed.
"""
import asyncio
import logging
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Iterable, Optional, TypeVar
from uuid import uuid4

from labroute.core.config import Settings, get_settings
from labroute.core.exceptions import (
    InvalidTransitionError,
    LogisticsError,
    NotFoundError,
    PersistenceError,
)
from labroute.models.base import Coordinates
from labroute.models.enums import CaseStatus, PickupStatus, RouteStatus, StopType
from labroute.models.pickup import Pickup, PickupCreate
from labroute.models.provider import Provider
from labroute.models.route import Route, RouteStop, planning_status, resequence
from labroute.models.vehicle import Vehicle
from labroute.persistence.base import LogisticsAPI, Record
from labroute.schemas.provider import ProviderSelectionRequest
from labroute.schemas.route import (
    AssignmentTask,
    BulkAssignmentError,
    BulkAssignmentResult,
    OptimizationImprovement,
    OptimizationResult,
    RouteCreate,
)
from labroute.services.cache import MemoryCache, RequestDeduplicator
from labroute.services.events import EventBus, EventType
from labroute.services.optimizer import insert_stop, optimize_stops, remove_stop, resolve_start
from labroute.services.providers import select_provider
from labroute.services.reconciliation import CascadeKind, CascadeRetryQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, eq=False)
class LogisticsSnapshot:
    """
    Immutable view of the store at one version.

    Hashing is by identity, so a snapshot can key memoized selectors.
    """
    version: int
    routes: tuple[Route, ...] = ()
    pickups: tuple[Pickup, ...] = ()
    vehicles: tuple[Vehicle, ...] = ()
    providers: tuple[Provider, ...] = ()


@dataclass
class LoadSummary:
    """Result of a per-tenant bulk load."""
    lab_id: str
    routes: int
    pickups: int
    vehicles: int
    providers: int
    loaded_at: datetime = field(default_factory=utc_now)


class RouteStore:
    """All route, stop, pickup, vehicle and provider state for the dispatch core."""

    def __init__(
        self,
        api: LogisticsAPI,
        bus: Optional[EventBus] = None,
        cache: Optional[MemoryCache] = None,
        deduplicator: Optional[RequestDeduplicator] = None,
        config: Optional[Settings] = None,
    ):
        self.api = api
        self.config = config or get_settings()
        self.bus = bus or EventBus()
        self.cache = cache or MemoryCache(
            default_ttl_ms=self.config.cache_default_ttl_ms,
            max_size=self.config.cache_max_size,
        )
        self.deduplicator = deduplicator or RequestDeduplicator()
        self.retry_queue = CascadeRetryQueue(
            appliers={
                CascadeKind.CASE: self._update_case,
                CascadeKind.PICKUP: self.update_pickup,
            },
            bus=self.bus,
            max_retries=self.config.cascade_max_retries,
            max_abandoned=self.config.cascade_abandoned_history,
        )

        self._routes: dict[str, Route] = {}
        self._pickups: dict[str, Pickup] = {}
        self._vehicles: dict[str, Vehicle] = {}
        self._providers: dict[str, Provider] = {}
        self._version = 0
        self._snapshot: Optional[LogisticsSnapshot] = None
        self._locks: dict[str, asyncio.Lock] = {}

    # =========================================================================
    # Locking
    # =========================================================================

    @asynccontextmanager
    async def locked(self, *keys: str) -> AsyncIterator[None]:
        """
        Hold the locks for *keys* (e.g. ``route:r1``, ``pickup:p1``).

        Locks are always acquired in sorted order so that two callers
        locking overlapping keys cannot deadlock.
        """
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                lock = self._locks.setdefault(key, asyncio.Lock())
                await stack.enter_async_context(lock)
            yield

    def lock_route(self, *route_ids: str) -> AbstractAsyncContextManager[None]:
        return self.locked(*(f"route:{route_id}" for route_id in route_ids))

    # =========================================================================
    # Read access
    # =========================================================================

    @property
    def version(self) -> int:
        return self._version

    @property
    def depot(self) -> Coordinates:
        return Coordinates(
            lat=self.config.default_depot_latitude,
            lng=self.config.default_depot_longitude,
        )

    def snapshot(self) -> LogisticsSnapshot:
        """Current state as an immutable snapshot (rebuilt only after changes)."""
        if self._snapshot is None or self._snapshot.version != self._version:
            self._snapshot = LogisticsSnapshot(
                version=self._version,
                routes=tuple(self._routes.values()),
                pickups=tuple(self._pickups.values()),
                vehicles=tuple(self._vehicles.values()),
                providers=tuple(self._providers.values()),
            )
        return self._snapshot

    @property
    def routes(self) -> list[Route]:
        return list(self._routes.values())

    @property
    def pickups(self) -> list[Pickup]:
        return list(self._pickups.values())

    @property
    def vehicles(self) -> list[Vehicle]:
        return list(self._vehicles.values())

    @property
    def providers(self) -> list[Provider]:
        return list(self._providers.values())

    def get_route(self, route_id: str) -> Route:
        route = self._routes.get(route_id)
        if route is None:
            raise NotFoundError("Route", route_id)
        return route

    def get_pickup(self, pickup_id: str) -> Pickup:
        pickup = self._pickups.get(pickup_id)
        if pickup is None:
            raise NotFoundError("Pickup", pickup_id)
        return pickup

    def find_route_for_pickup(self, pickup_id: str) -> Optional[Route]:
        for route in self._routes.values():
            if route.references_pickup(pickup_id):
                return route
        return None

    async def fetch_route(self, route_id: str) -> Route:
        """Route from local state, falling back to a cached API read."""
        if route_id in self._routes:
            return self._routes[route_id]

        record = await self.cache.get_or_set(
            f"route-{route_id}",
            lambda: self._persist("fetch", "route", self.api.routes.get_by_id(route_id)),
        )
        if record is None:
            self.cache.delete(f"route-{route_id}")
            raise NotFoundError("Route", route_id)
        return self._commit_route(record)

    async def fetch_pickup(self, pickup_id: str) -> Pickup:
        """Pickup from local state, falling back to a cached API read."""
        if pickup_id in self._pickups:
            return self._pickups[pickup_id]

        record = await self.cache.get_or_set(
            f"pickup-{pickup_id}",
            lambda: self._persist("fetch", "pickup", self.api.pickups.get_by_id(pickup_id)),
        )
        if record is None:
            self.cache.delete(f"pickup-{pickup_id}")
            raise NotFoundError("Pickup", pickup_id)
        return self._commit_pickup(record)

    # =========================================================================
    # Bulk load
    # =========================================================================

    async def load(self, lab_id: str) -> LoadSummary:
        """
        Load every route, pickup and vehicle of one lab plus all providers.

        The result is cached per lab; concurrent loads share one request.
        """
        cached = self.cache.get(f"bootstrap-{lab_id}")
        if cached is not None:
            return cached
        return await self.deduplicator.dedupe(f"load-{lab_id}", lambda: self._load(lab_id))

    async def refresh(self, lab_id: str) -> LoadSummary:
        """Drop the cached load for *lab_id* and load again."""
        self.cache.delete(f"bootstrap-{lab_id}")
        return await self.load(lab_id)

    async def _load(self, lab_id: str) -> LoadSummary:
        logger.info(f"Loading logistics data for lab {lab_id}")
        filters = {"labId": lab_id}

        route_records, pickup_records, vehicle_records, provider_records = (
            await asyncio.gather(
                self._persist("fetch", "routes", self.api.routes.get_all(filters)),
                self._persist("fetch", "pickups", self.api.pickups.get_all(filters)),
                self._persist("fetch", "vehicles", self.api.vehicles.get_all(filters)),
                self._persist("fetch", "providers", self.api.providers.get_all()),
            )
        )

        routes = [Route.model_validate(r) for r in route_records]
        pickups = [Pickup.model_validate(p) for p in pickup_records]
        vehicles = [Vehicle.model_validate(v) for v in vehicle_records]
        providers = [Provider.model_validate(p) for p in provider_records]

        self._replace_lab(self._routes, lab_id, routes)
        self._replace_lab(self._pickups, lab_id, pickups)
        self._replace_lab(self._vehicles, lab_id, vehicles)
        self._providers = {p.id: p for p in providers}
        self._touch()

        summary = LoadSummary(
            lab_id=lab_id,
            routes=len(routes),
            pickups=len(pickups),
            vehicles=len(vehicles),
            providers=len(providers),
        )
        self.cache.set(f"bootstrap-{lab_id}", summary, self.config.bootstrap_cache_ttl_ms)
        logger.info(
            f"Loaded lab {lab_id}: {summary.routes} routes, {summary.pickups} pickups, "
            f"{summary.vehicles} vehicles, {summary.providers} providers"
        )
        return summary

    @staticmethod
    def _replace_lab(collection: dict[str, Any], lab_id: str, items: Iterable[Any]) -> None:
        for key in [k for k, v in collection.items() if v.lab_id == lab_id]:
            del collection[key]
        for item in items:
            collection[item.id] = item

    # =========================================================================
    # Routes
    # =========================================================================

    async def create_route(self, data: RouteCreate) -> Route:
        """Create an empty Scheduled route."""
        key = f"create-route-{data.lab_id}-{data.name}-{data.route_date}"
        return await self.deduplicator.dedupe(key, lambda: self._create_route(data))

    async def _create_route(self, data: RouteCreate) -> Route:
        payload = data.model_dump(mode="json", by_alias=True)
        payload.update({
            "status": RouteStatus.SCHEDULED.value,
            "stops": [],
            "metrics": {"totalDistanceKm": 0.0, "estimatedDurationMin": 0},
        })

        record = await self._persist("create", "route", self.api.routes.create(payload))
        route = self._commit_route(record)

        logger.info(f"Route {route.id} created for lab {route.lab_id}")
        self.bus.publish(EventType.ROUTE_CREATED, {
            "routeId": route.id,
            "labId": route.lab_id,
            "name": route.name,
            "driverId": route.driver_id,
        })
        return route

    async def update_route(self, route_id: str, partial: Record) -> Route:
        """Persist a partial route update and commit the echoed record."""
        record = await self._persist("update", "route", self.api.routes.update(route_id, partial))
        return self._commit_route(record)

    async def assign_to_route(
        self,
        route_id: str,
        task: AssignmentTask,
        best_position: bool = False,
    ) -> Route:
        """
        Add a stop for *task* to a route.

        Pickup tasks mark the pickup Assigned; delivery tasks mark their cases
        shipped. With *best_position* the stop is placed where it adds the
        least distance instead of being appended.
        """
        key = f"assign-{route_id}-{task.id}"
        return await self.deduplicator.dedupe(
            key, lambda: self._assign(route_id, task, best_position)
        )

    async def _assign(self, route_id: str, task: AssignmentTask, best_position: bool) -> Route:
        keys = [f"route:{route_id}"]
        if task.type == StopType.PICKUP:
            keys.append(f"pickup:{task.id}")

        async with self.locked(*keys):
            updated, stop = await self._add_stop(route_id, task, best_position)

        if task.type == StopType.PICKUP:
            await self.cascade_pickup_update(task.id, {"status": PickupStatus.ASSIGNED.value}, {
                "routeId": route_id, "stopId": stop.id,
            })
        else:
            for case_id in stop.delivery_manifest:
                await self.cascade_case_update(case_id, {
                    "status": CaseStatus.SHIPPED.value,
                    "shippedAt": utc_now().isoformat(),
                    "routeId": route_id,
                    "stopId": stop.id,
                }, previous=CaseStatus.SHIPPING)

        logger.info(f"Assigned {task.type.value} task {task.id} to route {route_id} as {stop.id}")
        self.bus.publish(EventType.STOP_ASSIGNED, {
            "routeId": route_id,
            "stopId": stop.id,
            "taskId": task.id,
            "type": task.type.value,
        })
        return updated

    async def _add_stop(
        self,
        route_id: str,
        task: AssignmentTask,
        best_position: bool,
    ) -> tuple[Route, RouteStop]:
        route = await self.fetch_route(route_id)
        if not route.status.accepts_stops:
            raise InvalidTransitionError(
                "Route", route_id,
                message=f"Cannot assign stops to {route.status.value} route {route_id}",
            )

        coordinates = task.coordinates
        if task.type == StopType.PICKUP:
            pickup = await self.fetch_pickup(task.id)
            holder = self.find_route_for_pickup(pickup.id)
            if holder is not None:
                raise InvalidTransitionError(
                    "Pickup", pickup.id,
                    message=f"Pickup {pickup.id} is already assigned to route {holder.id}",
                )
            coordinates = coordinates or pickup.coordinates

        case_ids = task.case_ids or [task.id]
        stop = RouteStop(
            id=f"stop-{uuid4().hex[:12]}",
            sequence=len(route.stops) + 1,
            clinic_id=task.clinic_id,
            type=task.type,
            coordinates=coordinates,
            pickup_tasks=[task.id] if task.type == StopType.PICKUP else [],
            delivery_manifest=case_ids if task.type == StopType.DELIVERY else [],
        )

        if best_position:
            start = resolve_start(route.stops, None, self.depot)
            stops = insert_stop(route.stops, stop, start)
        else:
            stops = resequence(route.get_stops_ordered() + [stop])

        status = planning_status(route.model_copy(update={"stops": stops}))
        updated = await self.update_route(route_id, {
            "stops": [s.to_payload() for s in stops],
            "status": status.value,
        })
        return updated, stop

    async def assign_multiple_tasks(
        self,
        route_id: str,
        tasks: list[AssignmentTask],
    ) -> BulkAssignmentResult:
        """Assign tasks one by one; a failing task never aborts the batch."""
        result = BulkAssignmentResult()
        for task in tasks:
            try:
                await self.assign_to_route(route_id, task)
            except LogisticsError as e:
                result.failed += 1
                result.errors.append(BulkAssignmentError(task_id=task.id, error=e.detail))
                logger.warning(f"Bulk assignment of {task.id} to {route_id} failed: {e.detail}")
            else:
                result.success += 1
        return result

    async def reorder_stops(self, route_id: str, from_index: int, to_index: int) -> Route:
        """
        Move the stop at *from_index* to *to_index*.

        Nothing changes if either position holds a Completed or Skipped stop.
        """
        async with self.lock_route(route_id):
            route = await self.fetch_route(route_id)
            ordered = route.get_stops_ordered()

            for index in (from_index, to_index):
                if not 0 <= index < len(ordered):
                    raise NotFoundError("Stop", f"{route_id}[{index}]")

            if from_index == to_index:
                return route
            if ordered[from_index].is_terminal or ordered[to_index].is_terminal:
                logger.info(
                    f"Ignoring reorder on route {route_id}: "
                    f"terminal stop at position {from_index} or {to_index}"
                )
                return route

            moved = ordered.pop(from_index)
            ordered.insert(to_index, moved)
            stops = resequence(ordered)

            updated = await self.update_route(
                route_id, {"stops": [s.to_payload() for s in stops]}
            )
            self.bus.publish(EventType.ROUTE_UPDATED, {
                "routeId": route_id,
                "action": "reorder",
                "stopId": moved.id,
                "fromIndex": from_index,
                "toIndex": to_index,
            })
            return updated

    async def move_stop_between_routes(
        self,
        from_route_id: str,
        to_route_id: str,
        stop_id: str,
    ) -> tuple[Route, Route]:
        """
        Move a Pending stop to the end of another route.

        If writing the target route fails, the source route is restored.
        """
        async with self.lock_route(from_route_id, to_route_id):
            source = await self.fetch_route(from_route_id)
            stop = source.find_stop(stop_id)
            if stop is None:
                raise NotFoundError("Stop", stop_id)
            if stop.is_terminal:
                raise InvalidTransitionError(
                    "Stop", stop_id,
                    current=stop.status.value,
                    message=f"Cannot move {stop.status.value} stop {stop_id}",
                )
            if from_route_id == to_route_id:
                return source, source

            target = await self.fetch_route(to_route_id)
            if not target.status.accepts_stops:
                raise InvalidTransitionError(
                    "Route", to_route_id,
                    message=f"Cannot move stops to {target.status.value} route {to_route_id}",
                )

            source_stops = remove_stop(source.stops, stop_id)
            target_stops = resequence(target.get_stops_ordered() + [stop])
            source_status = planning_status(source.model_copy(update={"stops": source_stops}))
            target_status = planning_status(target.model_copy(update={"stops": target_stops}))

            updated_source = await self.update_route(from_route_id, {
                "stops": [s.to_payload() for s in source_stops],
                "status": source_status.value,
            })
            try:
                updated_target = await self.update_route(to_route_id, {
                    "stops": [s.to_payload() for s in target_stops],
                    "status": target_status.value,
                })
            except LogisticsError:
                await self._restore_route(source)
                raise

            for route_id in (from_route_id, to_route_id):
                self.bus.publish(EventType.ROUTE_UPDATED, {
                    "routeId": route_id,
                    "action": "move_stop",
                    "stopId": stop_id,
                    "fromRouteId": from_route_id,
                    "toRouteId": to_route_id,
                })
            return updated_source, updated_target

    async def _restore_route(self, route: Route) -> None:
        try:
            await self.update_route(route.id, {
                "stops": [s.to_payload() for s in route.stops],
                "status": route.status.value,
            })
        except LogisticsError as e:
            logger.error(f"Failed to restore route {route.id} after aborted move: {e.detail}")

    async def optimize_route_stops(
        self,
        route_id: str,
        start_location: Optional[Coordinates] = None,
    ) -> Optional[OptimizationResult]:
        """
        Reorder a route's Pending stops by nearest neighbour.

        Returns None without touching state when there is at most one
        Pending stop to order.
        """
        return await self.deduplicator.dedupe(
            f"optimize-{route_id}",
            lambda: self._optimize(route_id, start_location),
        )

    async def _optimize(
        self,
        route_id: str,
        start_location: Optional[Coordinates],
    ) -> Optional[OptimizationResult]:
        async with self.lock_route(route_id):
            route = await self.fetch_route(route_id)
            pending = [s for s in route.stops if not s.is_terminal]
            if len(pending) <= 1:
                logger.debug(
                    f"Route {route_id} has {len(pending)} pending stops, nothing to optimize"
                )
                return None

            outcome = optimize_stops(
                route.stops,
                depot=self.depot,
                start=start_location,
                average_speed_kmh=self.config.average_speed_kmh,
                stop_service_minutes=self.config.stop_service_minutes,
            )

            await self.update_route(route_id, {
                "stops": [s.to_payload() for s in outcome.stops],
                "metrics": outcome.after.to_payload(),
            })

        result = OptimizationResult(
            route_id=route_id,
            before=outcome.before,
            after=outcome.after,
            improvement=OptimizationImprovement(
                distance_saved=outcome.distance_saved,
                time_saved=outcome.time_saved,
            ),
        )
        logger.info(
            f"Optimized route {route_id}: {outcome.before.total_distance_km} km -> "
            f"{outcome.after.total_distance_km} km"
        )
        self.bus.publish(EventType.ROUTE_OPTIMIZED, {
            "routeId": route_id,
            "distanceSaved": result.improvement.distance_saved,
            "timeSaved": result.improvement.time_saved,
        })
        return result

    # =========================================================================
    # Pickups & providers
    # =========================================================================

    async def create_pickup_request(self, data: PickupCreate) -> Pickup:
        """Record a new Pending pickup requested now."""
        payload = data.to_payload()
        payload.update({
            "status": PickupStatus.PENDING.value,
            "requestTime": utc_now().isoformat(),
        })
        record = await self._persist("create", "pickup", self.api.pickups.create(payload))
        pickup = self._commit_pickup(record)
        logger.info(f"Pickup {pickup.id} requested by clinic {pickup.clinic_id}")
        return pickup

    async def update_pickup(self, pickup_id: str, partial: Record) -> Pickup:
        record = await self._persist(
            "update", "pickup", self.api.pickups.update(pickup_id, partial)
        )
        return self._commit_pickup(record)

    async def select_provider(self, request: ProviderSelectionRequest) -> Optional[Provider]:
        """Choose a courier from the known providers, fetching them if none are loaded."""
        if not self._providers:
            records = await self._persist("fetch", "providers", self.api.providers.get_all())
            self._providers = {p.id: p for p in map(Provider.model_validate, records)}
            self._touch()
        return select_provider(self._providers.values(), request)

    # =========================================================================
    # Cascades
    # =========================================================================

    async def _update_case(self, case_id: str, partial: Record) -> Record:
        return await self.api.cases.update(case_id, partial)

    async def cascade_case_update(
        self,
        case_id: str,
        partial: Record,
        previous: Optional[CaseStatus] = None,
    ) -> bool:
        """Best-effort case update; failures are queued for reconciliation."""
        context = {k: partial[k] for k in ("routeId", "stopId") if k in partial}
        try:
            await self._update_case(case_id, partial)
        except Exception as e:
            logger.error(f"Failed to update case {case_id} to {partial.get('status')}: {e}")
            self.retry_queue.record(CascadeKind.CASE, case_id, partial, e, context)
            return False

        self.bus.publish(EventType.CASE_STATUS_CHANGED, {
            "caseId": case_id,
            "status": partial.get("status"),
            "previousStatus": previous.value if previous else None,
            **context,
        })
        return True

    async def cascade_pickup_update(
        self,
        pickup_id: str,
        partial: Record,
        context: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Best-effort pickup update; failures are queued for reconciliation."""
        try:
            await self.update_pickup(pickup_id, partial)
        except Exception as e:
            logger.error(f"Failed to update pickup {pickup_id} to {partial.get('status')}: {e}")
            self.retry_queue.record(CascadeKind.PICKUP, pickup_id, partial, e, context)
            return False
        return True

    # =========================================================================
    # Internals
    # =========================================================================

    async def _persist(self, operation: str, entity: str, call: Awaitable[T]) -> T:
        """Await an API call, logging failures and normalizing them to LogisticsError."""
        try:
            return await call
        except PersistenceError as e:
            logger.error(f"Persistence failure: {e.detail}")
            raise
        except LogisticsError:
            raise
        except Exception as e:
            logger.error(f"Failed to {operation} {entity}: {e}")
            raise PersistenceError(operation, entity, e) from e

    def _commit_route(self, record: Record) -> Route:
        route = Route.model_validate(record)
        self._routes[route.id] = route
        self.cache.set(f"route-{route.id}", record)
        self._touch()
        return route

    def _commit_pickup(self, record: Record) -> Pickup:
        pickup = Pickup.model_validate(record)
        self._pickups[pickup.id] = pickup
        self.cache.set(f"pickup-{pickup.id}", record)
        self._touch()
        return pickup

    def _touch(self) -> None:
        self._version += 1
