"""
Route optimizer package.

Provides the nearest-neighbour stop ordering heuristic and route metrics.
"""

from labroute.services.optimizer.distance import (
    haversine_distance,
    distance_between,
    path_distance,
)
from labroute.services.optimizer.nearest_neighbor import (
    OptimizationOutcome,
    StopSequenceValidation,
    calculate_route_metrics,
    nearest_neighbor_order,
    resolve_start,
    optimize_stops,
    insert_stop,
    remove_stop,
    resequence_stops,
    validate_stop_sequence,
)

__all__ = [
    # Distance
    "haversine_distance",
    "distance_between",
    "path_distance",
    # Heuristics
    "OptimizationOutcome",
    "StopSequenceValidation",
    "calculate_route_metrics",
    "nearest_neighbor_order",
    "resolve_start",
    "optimize_stops",
    "insert_stop",
    "remove_stop",
    "resequence_stops",
    "validate_stop_sequence",
]
