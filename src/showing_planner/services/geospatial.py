"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Optional, Sequence

from ..config import DistanceUnit
from ..models.domain import Coordinate

EARTH_RADIUS_KM = 6371.0
EARTH_RADIUS_MI = 3958.8

_EARTH_RADIUS = {"km": EARTH_RADIUS_KM, "mi": EARTH_RADIUS_MI}


def haversine(lat1: float, lon1: float, lat2: float, lon2: float, unit: DistanceUnit = "km") -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return _EARTH_RADIUS[unit] * c


def distance(a: Coordinate, b: Coordinate, unit: DistanceUnit = "km") -> float:
    """Great-circle distance between two coordinates in ``unit``."""

    return haversine(a.latitude, a.longitude, b.latitude, b.longitude, unit)


def travel_time_minutes(
    distance_value: float,
    average_speed: float,
    *,
    stop_buffer: int = 0,
    minimum: int = 0,
) -> int:
    """Convert a distance into whole minutes of driving.

    The raw time is ``ceil(distance / speed * 60)``. ``stop_buffer`` is added on
    top of it and the result is floored at ``minimum``; both default to zero so
    the raw value is returned unless a caller asks for the padded estimate.
    """

    minutes = math.ceil(distance_value / average_speed * 60)
    return max(minutes + stop_buffer, minimum)


def distance_matrix(locations: Sequence[Coordinate], unit: DistanceUnit = "km") -> list[list[float]]:
    """Return a square matrix where ``matrix[i][j]`` is the distance from i to j."""

    size = len(locations)
    matrix = [[0.0] * size for _ in range(size)]
    for i in range(size):
        for j in range(size):
            if i != j:
                matrix[i][j] = distance(locations[i], locations[j], unit)
    return matrix


def path_distance(locations: Sequence[Optional[Coordinate]], unit: DistanceUnit = "km") -> float:
    """Sum the legs of an ordered path, skipping legs with an ungeocoded end."""

    total = 0.0
    for previous, current in zip(locations, locations[1:]):
        if previous is None or current is None:
            continue
        total += distance(previous, current, unit)
    return total
