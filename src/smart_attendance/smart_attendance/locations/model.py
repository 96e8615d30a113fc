from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Mapping, Optional

from ..common.datetime_utils import from_epoch_millis, from_iso, now_local
from ..common.validators import require_non_empty
from ..core.exceptions import ValidationError
from ..geo.geometry import Coordinate


def _optional_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


@dataclass(frozen=True)
class LocationSample:
    """Một lần đọc toạ độ có dấu thời gian.

    Immutable apart from ``synced``, which only the sample buffer flips (via
    ``as_synced``) after a confirmed remote write.
    """

    id: str
    subject_id: str
    coordinate: Coordinate
    accuracy_meters: float
    captured_at: datetime
    altitude_meters: Optional[float] = None
    speed_mps: Optional[float] = None
    heading_degrees: Optional[float] = None
    activity: Optional[str] = None
    is_mocked: bool = False
    synced: bool = False

    def __post_init__(self):
        if self.accuracy_meters < 0:
            raise ValidationError("accuracy_meters must be >= 0")

    def as_synced(self) -> "LocationSample":
        return replace(self, synced=True)

    def to_document(self) -> dict:
        """Remote shape; the local copy adds the ``synced`` flag."""
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "latitude": self.coordinate.latitude,
            "longitude": self.coordinate.longitude,
            "accuracy_meters": self.accuracy_meters,
            "altitude_meters": self.altitude_meters,
            "speed_mps": self.speed_mps,
            "heading_degrees": self.heading_degrees,
            "captured_at": self.captured_at.isoformat(),
            "activity": self.activity,
            "is_mocked": self.is_mocked,
        }

    def to_local(self) -> dict:
        return {**self.to_document(), "synced": self.synced}

    @classmethod
    def from_document(cls, fields: Mapping[str, Any], *, doc_id: Optional[str] = None, synced: Optional[bool] = None) -> "LocationSample":
        return cls(
            id=str(doc_id or fields["id"]),
            subject_id=str(fields["subject_id"]),
            coordinate=Coordinate(float(fields["latitude"]), float(fields["longitude"])),
            accuracy_meters=float(fields.get("accuracy_meters") or 0.0),
            captured_at=from_iso(fields["captured_at"]),
            altitude_meters=_optional_float(fields.get("altitude_meters")),
            speed_mps=_optional_float(fields.get("speed_mps")),
            heading_degrees=_optional_float(fields.get("heading_degrees")),
            activity=fields.get("activity"),
            is_mocked=bool(fields.get("is_mocked", False)),
            synced=bool(fields.get("synced", False)) if synced is None else synced,
        )

    @classmethod
    def from_native(cls, raw: Mapping[str, Any], subject_id: str) -> "LocationSample":
        """Build from a location source record ``{lat, lng, accuracy, altitude?, speed?, heading?, timestamp}``.

        ``timestamp`` is epoch milliseconds; when the payload carries no id,
        one is derived from the subject and the capture time so a redelivered
        record maps to the same id.
        """

        subject_id = require_non_empty(subject_id, "subject_id")
        coordinate = Coordinate.from_mapping(raw)

        ts = raw.get("timestamp")
        if ts is None:
            captured_at = now_local()
        elif isinstance(ts, (int, float)):
            captured_at = from_epoch_millis(int(ts))
        else:
            captured_at = from_iso(str(ts))

        sample_id = raw.get("id") or f"{subject_id}-{int(captured_at.timestamp() * 1000)}"

        return cls(
            id=str(sample_id),
            subject_id=subject_id,
            coordinate=coordinate,
            accuracy_meters=float(raw.get("accuracy") or 0.0),
            captured_at=captured_at,
            altitude_meters=_optional_float(raw.get("altitude")),
            speed_mps=_optional_float(raw.get("speed")),
            heading_degrees=_optional_float(raw.get("heading")),
            activity=raw.get("activity"),
            is_mocked=bool(raw.get("isMocked", raw.get("is_mocked", False))),
        )
