from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from ..attendance.service import AttendanceService
from ..common.datetime_utils import from_epoch_millis, now_local
from ..common.logging import get_logger
from ..core.enums import GeofenceEventType
from ..geo.geometry import Coordinate
from ..geofences.model import Geofence, MembershipResult
from ..geofences.repository import GeofenceRepository

log = get_logger(__name__)


@dataclass(frozen=True)
class GeofenceEvent:
    """Enter/exit/dwell transition for one geofence, native or derived from samples."""

    geofence_id: str
    type: GeofenceEventType
    timestamp: datetime
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def coordinate(self) -> Optional[Coordinate]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinate(self.latitude, self.longitude)

    @classmethod
    def from_native(cls, data: Mapping[str, Any]) -> "GeofenceEvent":
        """``{geofenceId, type, timestamp(ms)?, latitude?, longitude?}``; unknown types read as enter."""

        raw_type = str(data.get("type") or "").lower()
        try:
            event_type = GeofenceEventType(raw_type)
        except ValueError:
            event_type = GeofenceEventType.ENTER

        ts = data.get("timestamp")
        lat = data.get("latitude")
        lng = data.get("longitude")
        return cls(
            geofence_id=str(data.get("geofenceId") or data.get("geofence_id") or ""),
            type=event_type,
            timestamp=from_epoch_millis(ts) if ts is not None else now_local(),
            latitude=float(lat) if lat is not None else None,
            longitude=float(lng) if lng is not None else None,
        )


class PresenceMonitor:
    """Turns membership changes into automatic check-in/check-out.

    Remembers the last enclosing geofence per subject. Staying in the same
    zone produces nothing; leaving it fires exit, entering one fires enter.
    The engine's auto operations are idempotent, so repeated events are safe.
    """

    def __init__(self, attendance: AttendanceService, geofences: GeofenceRepository):
        self._attendance = attendance
        self._geofences = geofences
        self._lock = threading.Lock()
        self._last: dict[str, Optional[Geofence]] = {}

    def current_geofence(self, subject_id: str) -> Optional[Geofence]:
        with self._lock:
            return self._last.get(subject_id)

    def reset(self, subject_id: str) -> None:
        with self._lock:
            self._last.pop(subject_id, None)

    def observe(
        self,
        subject_id: str,
        owner_id: str,
        result: MembershipResult,
        *,
        now: datetime | None = None,
    ) -> list[GeofenceEvent]:
        now = now or now_local()
        current = result.geofence if result.is_inside else None

        with self._lock:
            previous = self._last.get(subject_id)
            self._last[subject_id] = current

        previous_id = previous.id if previous else None
        current_id = current.id if current else None
        if previous_id == current_id:
            return []

        point = result.coordinate
        events: list[GeofenceEvent] = []
        if previous is not None:
            event = GeofenceEvent(previous.id, GeofenceEventType.EXIT, now, point.latitude, point.longitude)
            events.append(event)
            self._on_exit(subject_id, previous, point, now)
        if current is not None:
            event = GeofenceEvent(current.id, GeofenceEventType.ENTER, now, point.latitude, point.longitude)
            events.append(event)
            self._on_enter(subject_id, owner_id, current, point, now)
        return events

    def handle_native_event(self, subject_id: str, owner_id: str, event: GeofenceEvent):
        """Apply a platform geofence event; returns the resulting record or None."""

        geofence = self._geofences.get(event.geofence_id)
        if geofence is None:
            log.warning("native_event_unknown_geofence", subject_id=subject_id, geofence_id=event.geofence_id)
            return None

        point = event.coordinate or geofence.center
        if event.type in (GeofenceEventType.ENTER, GeofenceEventType.DWELL):
            with self._lock:
                self._last[subject_id] = geofence
            return self._on_enter(subject_id, owner_id, geofence, point, event.timestamp)

        with self._lock:
            if self._last.get(subject_id) is not None and self._last[subject_id].id == geofence.id:
                self._last[subject_id] = None
        return self._on_exit(subject_id, geofence, point, event.timestamp)

    def _on_enter(self, subject_id: str, owner_id: str, geofence: Geofence, point: Coordinate, now: datetime):
        if not geofence.auto_check_in:
            return None
        record = self._attendance.auto_check_in(subject_id, owner_id, point, geofence.id, now=now)
        if record is not None:
            log.info("geofence_auto_check_in", subject_id=subject_id, geofence_id=geofence.id)
        return record

    def _on_exit(self, subject_id: str, geofence: Geofence, point: Coordinate, now: datetime):
        if not geofence.auto_check_out:
            return None
        record = self._attendance.auto_check_out(subject_id, point, now=now)
        if record is not None:
            log.info("geofence_auto_check_out", subject_id=subject_id, geofence_id=geofence.id)
        return record
