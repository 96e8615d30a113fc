from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from flask import jsonify, request

from ..core.exceptions import (
    AttendanceNotFound,
    AttendanceTransitionError,
    DomainError,
    LocationUnavailable,
    RemoteUnavailable,
)
from ..geo.geometry import Coordinate
from .datetime_utils import from_iso, parse_iso_date
from .logging import get_logger

log = get_logger(__name__)


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def ok(payload: Optional[dict] = None, *, message: str = "OK", status: int = 200):
    return jsonify({"success": True, "message": message, **(payload or {})}), status


def fail(message: str, status: int = 400, **extra: Any):
    return jsonify({"success": False, "message": message, **extra}), status


def error_response(exc: Exception):
    """Map a raised exception to the JSON error shape used by every endpoint."""

    if isinstance(exc, AttendanceNotFound):
        return fail(str(exc), 404)
    if isinstance(exc, AttendanceTransitionError):
        return fail(exc.user_message or str(exc), 409)
    if isinstance(exc, RemoteUnavailable):
        return fail("Remote store unavailable, try again later", 503)
    if isinstance(exc, DomainError):
        return fail(exc.user_message or str(exc), 400)
    if isinstance(exc, (KeyError, TypeError, ValueError)):
        return fail(f"Invalid request: {exc}", 400)
    log.exception("unhandled_request_error", path=request.path)
    return fail("Internal server error", 500)


def coordinate_from(data: dict) -> Coordinate:
    """Raises LocationUnavailable when no coordinate was sent."""

    if not any(k in data for k in ("lat", "latitude")) or not any(k in data for k in ("lng", "longitude")):
        raise LocationUnavailable("latitude/longitude missing")
    return Coordinate.from_mapping(data)


def arg_date(name: str):
    value = request.args.get(name)
    return parse_iso_date(value) if value else None


def arg_datetime(name: str) -> Optional[datetime]:
    return from_iso(request.args.get(name))
