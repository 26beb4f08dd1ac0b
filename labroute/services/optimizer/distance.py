"""
Great-circle distance helpers for the route optimizer.
"""
from math import atan2, cos, radians, sin, sqrt
from typing import Iterable, Optional

from labroute.models.base import Coordinates


EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points in kilometers.

    Uses the Haversine formula.
    """
    lat1_rad = radians(lat1)
    lat2_rad = radians(lat2)
    delta_lat = radians(lat2 - lat1)
    delta_lon = radians(lon2 - lon1)

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def distance_between(origin: Coordinates, destination: Coordinates) -> float:
    """Distance in km between two coordinate models."""
    return haversine_distance(origin.lat, origin.lng, destination.lat, destination.lng)


def path_distance(
    start: Optional[Coordinates],
    points: Iterable[Optional[Coordinates]],
) -> float:
    """
    Sum of consecutive leg distances from *start* through *points*.

    Points without coordinates are passed over; the next leg is measured
    from the last known position.
    """
    total = 0.0
    current = start
    for point in points:
        if point is None:
            continue
        if current is not None:
            total += distance_between(current, point)
        current = point
    return total
