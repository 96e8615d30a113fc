"""Great-circle helpers for circular geofences.

All functions are total over valid coordinates; range checks happen once, at
the ingestion boundary, through :func:`validate_coordinate`.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping

from ..common.validators import require_latitude_longitude
from ..core.constants import EARTH_RADIUS_METERS
from ..core.exceptions import InvalidCoordinate


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Coordinate":
        """Build from ``{"lat", "lng"}`` (native payloads) or ``{"latitude", "longitude"}``."""
        lat = data.get("latitude", data.get("lat"))
        lng = data.get("longitude", data.get("lng"))
        if lat is None or lng is None:
            raise InvalidCoordinate("Coordinate is missing latitude/longitude")
        return validate_coordinate(cls(float(lat), float(lng)))

    def to_dict(self) -> dict:
        return {"latitude": self.latitude, "longitude": self.longitude}


def validate_coordinate(point: Coordinate) -> Coordinate:
    lat, lng = require_latitude_longitude(point.latitude, point.longitude)
    return Coordinate(lat, lng)


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in meters on a sphere of mean Earth radius."""
    if a == b:
        return 0.0

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # Rounding can push h marginally outside [0, 1] for antipodal points.
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(h))


def is_inside(point: Coordinate, center: Coordinate, radius_meters: float) -> bool:
    """Boundary-inclusive point-in-circle test."""
    return distance_meters(point, center) <= radius_meters


def bearing_degrees(a: Coordinate, b: Coordinate) -> float:
    """Initial forward azimuth from ``a`` to ``b`` in [0, 360)."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlon = math.radians(b.longitude - a.longitude)

    x = math.sin(dlon) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    bearing = math.degrees(math.atan2(x, y)) % 360.0
    return 0.0 if bearing >= 360.0 else bearing
