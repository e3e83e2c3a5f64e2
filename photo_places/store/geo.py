from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from photo_places.core.models import Coordinate

EARTH_RADIUS_METERS = 6371.0 * 1000


def haversine_distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return approximate great-circle distance in meters."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    return haversine_distance_meters(a.latitude, a.longitude, b.latitude, b.longitude)


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    # None when the box spans a pole or the antimeridian; longitude is then unbounded.
    min_lon: Optional[float]
    max_lon: Optional[float]


def bounding_box(center: Coordinate, radius_meters: float, *, slack: float = 1.01) -> BoundingBox:
    """Latitude/longitude box that contains every point within radius_meters of center.

    The box is a superset; exact membership still needs a distance check.
    """
    angular = (radius_meters * slack) / EARTH_RADIUS_METERS
    dlat = math.degrees(angular)
    min_lat = center.latitude - dlat
    max_lat = center.latitude + dlat
    if min_lat <= -90.0 or max_lat >= 90.0:
        return BoundingBox(max(min_lat, -90.0), min(max_lat, 90.0), None, None)

    ratio = math.sin(angular) / math.cos(math.radians(center.latitude))
    if ratio >= 1.0:
        return BoundingBox(min_lat, max_lat, None, None)
    dlon = math.degrees(math.asin(ratio))
    min_lon = center.longitude - dlon
    max_lon = center.longitude + dlon
    if min_lon < -180.0 or max_lon > 180.0:
        return BoundingBox(min_lat, max_lat, None, None)
    return BoundingBox(min_lat, max_lat, min_lon, max_lon)
