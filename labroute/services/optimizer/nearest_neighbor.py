"""
Nearest-neighbour route optimizer.

Greedy heuristic: from the current position repeatedly drive to the closest
unvisited stop. O(n^2) in the number of stops, which is fine for the route
sizes a single driver works in a day.

Ordering rules:
1. Completed/Skipped stops are never moved; they stay at the head of the
   route in their current relative order.
2. Pending stops with coordinates are ordered by nearest neighbour,
   starting from the last visited position.
3. Pending stops without coordinates follow, in their current order.
"""
from dataclasses import dataclass, field
from math import ceil
from typing import Optional
import logging

from labroute.models.base import Coordinates
from labroute.models.route import RouteMetrics, RouteStop, resequence
from labroute.services.optimizer.distance import distance_between, path_distance

logger = logging.getLogger(__name__)

DEFAULT_AVERAGE_SPEED_KMH = 40.0
DEFAULT_STOP_SERVICE_MINUTES = 10


@dataclass
class StopSequenceValidation:
    """Outcome of checking a stop list's sequence numbers."""
    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class OptimizationOutcome:
    """Result of optimizing one route's stop list."""
    stops: list[RouteStop]
    before: RouteMetrics
    after: RouteMetrics
    reordered: bool = False

    @property
    def distance_saved(self) -> float:
        return round(self.before.total_distance_km - self.after.total_distance_km, 1)

    @property
    def time_saved(self) -> int:
        return self.before.estimated_duration_min - self.after.estimated_duration_min


# =============================================================================
# Metrics
# =============================================================================

def calculate_route_metrics(
    stops: list[RouteStop],
    start: Optional[Coordinates] = None,
    average_speed_kmh: float = DEFAULT_AVERAGE_SPEED_KMH,
    stop_service_minutes: int = DEFAULT_STOP_SERVICE_MINUTES,
) -> RouteMetrics:
    """
    Compute distance and duration for *stops* driven in list order.

    Distance is the sum of leg distances (start -> first stop -> ...),
    rounded to 1 decimal. Duration is driving time at the average speed
    plus a fixed service time per stop, rounded up to whole minutes.
    """
    distance_km = path_distance(start, (s.coordinates for s in stops))
    driving_min = distance_km / average_speed_kmh * 60
    duration_min = ceil(driving_min + len(stops) * stop_service_minutes)

    return RouteMetrics(
        total_distance_km=round(distance_km, 1),
        estimated_duration_min=duration_min,
    )


# =============================================================================
# Heuristics
# =============================================================================

def nearest_neighbor_order(
    stops: list[RouteStop],
    start: Coordinates,
) -> list[RouteStop]:
    """
    Order *stops* (all with coordinates) by the nearest-neighbour heuristic.

    Ties go to the stop that comes first in the input list.
    """
    unvisited = list(stops)
    ordered: list[RouteStop] = []
    current = start

    while unvisited:
        nearest_index = 0
        min_distance = float("inf")
        for index, stop in enumerate(unvisited):
            distance = distance_between(current, stop.coordinates)
            if distance < min_distance:
                min_distance = distance
                nearest_index = index

        nearest = unvisited.pop(nearest_index)
        ordered.append(nearest)
        current = nearest.coordinates

    return ordered


def resolve_start(
    stops: list[RouteStop],
    start: Optional[Coordinates],
    depot: Coordinates,
) -> Coordinates:
    """Explicit start, else the first stop with coordinates, else the depot."""
    if start is not None:
        return start
    for stop in stops:
        if stop.coordinates is not None:
            return stop.coordinates
    return depot


def optimize_stops(
    stops: list[RouteStop],
    depot: Coordinates,
    start: Optional[Coordinates] = None,
    average_speed_kmh: float = DEFAULT_AVERAGE_SPEED_KMH,
    stop_service_minutes: int = DEFAULT_STOP_SERVICE_MINUTES,
) -> OptimizationOutcome:
    """
    Reorder the pending stops of a route and recompute metrics.

    The returned stop list is a permutation of *stops* with sequence numbers
    1..n. If the heuristic ordering is longer than the current one, the
    current order is kept.
    """
    origin = resolve_start(stops, start, depot)
    current_order = sorted(stops, key=lambda s: s.sequence)

    fixed = [s for s in current_order if s.is_terminal]
    pending = [s for s in current_order if not s.is_terminal]
    measurable = [s for s in pending if s.coordinates is not None]
    unmeasurable = [s for s in pending if s.coordinates is None]

    # Pending work resumes from the last visited stop with a position
    position = origin
    for stop in fixed:
        if stop.coordinates is not None:
            position = stop.coordinates

    candidate = fixed + nearest_neighbor_order(measurable, position) + unmeasurable

    before = calculate_route_metrics(
        current_order, origin, average_speed_kmh, stop_service_minutes
    )
    candidate_km = path_distance(origin, (s.coordinates for s in candidate))
    current_km = path_distance(origin, (s.coordinates for s in current_order))

    if candidate_km <= current_km:
        chosen = candidate
    else:
        logger.debug(
            "Nearest-neighbour order longer than current (%.3f > %.3f km), keeping current",
            candidate_km, current_km,
        )
        chosen = current_order

    reordered = [s.id for s in chosen] != [s.id for s in current_order]
    after = calculate_route_metrics(chosen, origin, average_speed_kmh, stop_service_minutes)

    return OptimizationOutcome(
        stops=resequence(chosen),
        before=before,
        after=after,
        reordered=reordered,
    )


def insert_stop(
    stops: list[RouteStop],
    new_stop: RouteStop,
    start: Coordinates,
) -> list[RouteStop]:
    """
    Insert *new_stop* at the position adding the least distance.

    Positions before the last terminal stop are not considered, and a stop
    without coordinates is appended.
    """
    ordered = sorted(stops, key=lambda s: s.sequence)

    first_open = 0
    for index, stop in enumerate(ordered):
        if stop.is_terminal:
            first_open = index + 1

    if new_stop.coordinates is None:
        return resequence(ordered + [new_stop])

    best_position = len(ordered)
    min_added = float("inf")

    for position in range(first_open, len(ordered) + 1):
        prev = _last_known_position(ordered[:position], start)
        nxt = _next_known_position(ordered[position:])

        added = distance_between(prev, new_stop.coordinates)
        if nxt is not None:
            added += distance_between(new_stop.coordinates, nxt)
            added -= distance_between(prev, nxt)

        if added < min_added:
            min_added = added
            best_position = position

    result = list(ordered)
    result.insert(best_position, new_stop)
    return resequence(result)


def remove_stop(stops: list[RouteStop], stop_id: str) -> list[RouteStop]:
    """Drop *stop_id* and renumber the remaining stops."""
    ordered = sorted(stops, key=lambda s: s.sequence)
    return resequence([s for s in ordered if s.id != stop_id])


def resequence_stops(stops: list[RouteStop]) -> list[RouteStop]:
    """Renumber stops 1..n in list order."""
    return resequence(stops)


def validate_stop_sequence(stops: list[RouteStop]) -> StopSequenceValidation:
    """Check that sequence numbers are unique and contiguous from 1."""
    errors: list[str] = []
    sequences = [s.sequence for s in stops]

    if len(sequences) != len(set(sequences)):
        errors.append("Duplicate sequence numbers found")

    present = set(sequences)
    for expected in range(1, len(stops) + 1):
        if expected not in present:
            errors.append(f"Missing sequence number: {expected}")

    return StopSequenceValidation(valid=not errors, errors=errors)


def _last_known_position(stops: list[RouteStop], start: Coordinates) -> Coordinates:
    for stop in reversed(stops):
        if stop.coordinates is not None:
            return stop.coordinates
    return start


def _next_known_position(stops: list[RouteStop]) -> Optional[Coordinates]:
    for stop in stops:
        if stop.coordinates is not None:
            return stop.coordinates
    return None
