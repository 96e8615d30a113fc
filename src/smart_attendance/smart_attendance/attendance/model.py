from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
from typing import Any, Mapping, Optional

from ..common.datetime_utils import from_iso, to_iso
from ..core.constants import DEFAULT_LATE_THRESHOLD
from ..core.enums import AttendanceState, CheckInMethod
from ..geo.geometry import Coordinate


def _coordinate_fields(prefix: str, value: Optional[Coordinate]) -> dict:
    return {
        f"{prefix}_latitude": value.latitude if value else None,
        f"{prefix}_longitude": value.longitude if value else None,
    }


def _coordinate_from(fields: Mapping[str, Any], prefix: str) -> Optional[Coordinate]:
    lat = fields.get(f"{prefix}_latitude")
    lng = fields.get(f"{prefix}_longitude")
    if lat is None or lng is None:
        return None
    return Coordinate(float(lat), float(lng))


@dataclass(frozen=True)
class AttendanceRecord:
    """Thực thể miền (domain): Bản ghi chấm công của một nhân viên trong một ngày.

    At most one record exists per ``(subject_id, date)``. Transitions are made
    only by ``AttendanceService``; callers get new immutable copies.
    """

    id: str
    subject_id: str
    owner_id: str
    date: date
    state: AttendanceState
    method: CheckInMethod
    check_in_at: Optional[datetime] = None
    check_out_at: Optional[datetime] = None
    geofence_id: Optional[str] = None
    inside_geofence_at_check_in: bool = False
    inside_geofence_at_check_out: Optional[bool] = None
    check_in_coordinate: Optional[Coordinate] = None
    check_out_coordinate: Optional[Coordinate] = None
    check_in_proof_ref: Optional[str] = None
    check_out_proof_ref: Optional[str] = None
    overridden: bool = False
    overridden_by: Optional[str] = None
    override_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    synced: bool = False

    @property
    def key(self) -> tuple[str, date]:
        return (self.subject_id, self.date)

    @property
    def is_checked_in(self) -> bool:
        return (
            self.check_in_at is not None
            and self.check_out_at is None
            and self.state == AttendanceState.CHECKED_IN
        )

    @property
    def work_duration(self) -> Optional[timedelta]:
        if self.check_in_at is None or self.check_out_at is None:
            return None
        return self.check_out_at - self.check_in_at

    def is_late(self, threshold: time = DEFAULT_LATE_THRESHOLD) -> bool:
        if self.check_in_at is None:
            return False
        return self.check_in_at.time() > threshold

    def with_changes(self, **changes) -> "AttendanceRecord":
        return replace(self, **changes)

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "owner_id": self.owner_id,
            "date": self.date.isoformat(),
            "state": self.state.value,
            "method": self.method.value,
            "check_in_at": to_iso(self.check_in_at),
            "check_out_at": to_iso(self.check_out_at),
            "geofence_id": self.geofence_id,
            "inside_geofence_at_check_in": self.inside_geofence_at_check_in,
            "inside_geofence_at_check_out": self.inside_geofence_at_check_out,
            **_coordinate_fields("check_in", self.check_in_coordinate),
            **_coordinate_fields("check_out", self.check_out_coordinate),
            "check_in_proof_ref": self.check_in_proof_ref,
            "check_out_proof_ref": self.check_out_proof_ref,
            "overridden": self.overridden,
            "overridden_by": self.overridden_by,
            "override_reason": self.override_reason,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    def to_local(self) -> dict:
        return {**self.to_document(), "synced": self.synced}

    @classmethod
    def from_document(cls, fields: Mapping[str, Any], *, doc_id: Optional[str] = None) -> "AttendanceRecord":
        return cls(
            id=str(doc_id or fields["id"]),
            subject_id=str(fields["subject_id"]),
            owner_id=str(fields.get("owner_id") or ""),
            date=date.fromisoformat(fields["date"]),
            state=AttendanceState(fields["state"]),
            method=CheckInMethod(fields.get("method") or CheckInMethod.MANUAL.value),
            check_in_at=from_iso(fields.get("check_in_at")),
            check_out_at=from_iso(fields.get("check_out_at")),
            geofence_id=fields.get("geofence_id"),
            inside_geofence_at_check_in=bool(fields.get("inside_geofence_at_check_in", False)),
            inside_geofence_at_check_out=fields.get("inside_geofence_at_check_out"),
            check_in_coordinate=_coordinate_from(fields, "check_in"),
            check_out_coordinate=_coordinate_from(fields, "check_out"),
            check_in_proof_ref=fields.get("check_in_proof_ref"),
            check_out_proof_ref=fields.get("check_out_proof_ref"),
            overridden=bool(fields.get("overridden", False)),
            overridden_by=fields.get("overridden_by"),
            override_reason=fields.get("override_reason"),
            created_at=from_iso(fields.get("created_at")),
            updated_at=from_iso(fields.get("updated_at")),
            synced=bool(fields.get("synced", False)),
        )
