from __future__ import annotations

import math
from typing import Any

from ..core.exceptions import InvalidCoordinate, ValidationError


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f"{field_name} must not be empty")
    return str(value).strip()


def require_positive(value: Any, field_name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number") from None
    if not math.isfinite(number) or number <= 0:
        raise ValidationError(f"{field_name} must be greater than zero")
    return number


def require_latitude_longitude(latitude: Any, longitude: Any) -> tuple[float, float]:
    try:
        lat = float(latitude)
        lng = float(longitude)
    except (TypeError, ValueError):
        raise InvalidCoordinate(f"Invalid coordinate ({latitude!r}, {longitude!r})") from None
    if not (math.isfinite(lat) and -90.0 <= lat <= 90.0):
        raise InvalidCoordinate(f"Latitude {lat} outside [-90, 90]")
    if not (math.isfinite(lng) and -180.0 <= lng <= 180.0):
        raise InvalidCoordinate(f"Longitude {lng} outside [-180, 180]")
    return lat, lng
