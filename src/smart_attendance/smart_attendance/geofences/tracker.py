from __future__ import annotations

import math
from typing import Iterable

from ..geo.geometry import Coordinate, distance_meters
from .model import Geofence, MembershipResult

# Centers closer than this to the same distance count as equidistant.
TIE_TOLERANCE_METERS = 1e-6


class GeofenceMembershipTracker:
    """Resolve the single geofence enclosing a point.

    Overlapping zones resolve to the nearest center, then to the lowest id, so
    the same point and the same geofence set always give the same answer. The
    tracker keeps no state; the caller passes the current geofence set in.
    """

    def evaluate(self, point: Coordinate, geofences: Iterable[Geofence]) -> MembershipResult:
        best: Geofence | None = None
        best_d = 0.0
        for geofence in geofences:
            if not geofence.active:
                continue
            d = distance_meters(point, geofence.center)
            if d > geofence.radius_meters:
                continue
            if best is None or _closer(d, geofence.id, best_d, best.id):
                best, best_d = geofence, d

        if best is None:
            return MembershipResult(coordinate=point, geofence=None, is_inside=False)
        return MembershipResult(coordinate=point, geofence=best, is_inside=True, distance_meters=best_d)


def _closer(d: float, geofence_id: str, best_d: float, best_id: str) -> bool:
    if math.isclose(d, best_d, rel_tol=1e-9, abs_tol=TIE_TOLERANCE_METERS):
        return geofence_id < best_id
    return d < best_d
