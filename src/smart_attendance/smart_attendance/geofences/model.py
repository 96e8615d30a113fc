from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..common.validators import require_non_empty, require_positive
from ..geo.geometry import Coordinate, validate_coordinate


@dataclass(frozen=True)
class Geofence:
    """Vùng địa lý hình tròn dùng để xác định nhân viên có mặt tại nơi làm việc."""

    id: str
    owner_id: str
    center: Coordinate
    radius_meters: float
    active: bool = True
    name: str = ""
    auto_check_in: bool = True
    auto_check_out: bool = True

    @classmethod
    def create(
        cls,
        *,
        id: str,
        owner_id: str,
        center: Coordinate,
        radius_meters: float,
        active: bool = True,
        name: str = "",
        auto_check_in: bool = True,
        auto_check_out: bool = True,
    ) -> "Geofence":
        return cls(
            id=require_non_empty(id, "id"),
            owner_id=require_non_empty(owner_id, "owner_id"),
            center=validate_coordinate(center),
            radius_meters=require_positive(radius_meters, "radius_meters"),
            active=bool(active),
            name=name or "",
            auto_check_in=bool(auto_check_in),
            auto_check_out=bool(auto_check_out),
        )

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "latitude": self.center.latitude,
            "longitude": self.center.longitude,
            "radius_meters": self.radius_meters,
            "active": self.active,
            "name": self.name,
            "auto_check_in": self.auto_check_in,
            "auto_check_out": self.auto_check_out,
        }

    @classmethod
    def from_document(cls, fields: dict, doc_id: Optional[str] = None) -> "Geofence":
        return cls.create(
            id=doc_id or fields.get("id", ""),
            owner_id=fields.get("owner_id", ""),
            center=Coordinate(float(fields["latitude"]), float(fields["longitude"])),
            radius_meters=fields.get("radius_meters", 0),
            active=fields.get("active", True),
            name=fields.get("name", ""),
            auto_check_in=fields.get("auto_check_in", True),
            auto_check_out=fields.get("auto_check_out", True),
        )


@dataclass(frozen=True)
class MembershipResult:
    """Kết quả đánh giá một toạ độ; không lưu trữ, tính lại cho mỗi mẫu."""

    coordinate: Coordinate
    geofence: Optional[Geofence]
    is_inside: bool
    distance_meters: Optional[float] = None

    @property
    def geofence_id(self) -> Optional[str]:
        return self.geofence.id if self.geofence else None
