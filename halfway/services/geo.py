from __future__ import annotations

import math
from dataclasses import dataclass

from halfway.core.errors import InvalidCoordinate
from halfway.core.match_config import WALKING_METERS_PER_MINUTE

EARTH_RADIUS_M = 6371000


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        validate(self.latitude, self.longitude)

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


def validate(latitude: float, longitude: float) -> None:
    # NaN fails both comparisons, so it lands here too
    if not -90 <= latitude <= 90:
        raise InvalidCoordinate(f"latitude out of range: {latitude}")
    if not -180 <= longitude <= 180:
        raise InvalidCoordinate(f"longitude out of range: {longitude}")


def distance(p1: Coordinate, p2: Coordinate) -> float:
    """Great-circle (haversine) distance in meters."""
    validate(p1.latitude, p1.longitude)
    validate(p2.latitude, p2.longitude)

    phi1 = math.radians(p1.latitude)
    phi2 = math.radians(p2.latitude)
    dphi = math.radians(p2.latitude - p1.latitude)
    dlambda = math.radians(p2.longitude - p1.longitude)

    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance_km(p1: Coordinate, p2: Coordinate) -> float:
    return distance(p1, p2) / 1000


def midpoint(p1: Coordinate, p2: Coordinate) -> Coordinate:
    """
    Plain average of latitudes and longitudes.
    Not the geodesic midpoint; only meant for city-scale separations.
    """
    return Coordinate(
        latitude=(p1.latitude + p2.latitude) / 2,
        longitude=(p1.longitude + p2.longitude) / 2,
    )


def walking_minutes(meters: float) -> int:
    return int(math.ceil(meters / WALKING_METERS_PER_MINUTE))
