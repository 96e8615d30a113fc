"""Ví dụ: dùng service layer (không qua Flask).

Builds an in-memory container, registers one geofence and replays a few
location samples so the automatic check-in and check-out fire.
"""

from datetime import datetime

from src.smart_attendance.smart_attendance.common.logging import configure_logging
from src.smart_attendance.smart_attendance.container import build_container
from src.smart_attendance.smart_attendance.geo.geometry import Coordinate
from src.smart_attendance.smart_attendance.geofences.model import Geofence


def _raw(lat: float, lng: float, at: datetime) -> dict:
    return {"lat": lat, "lng": lng, "accuracy": 5.0, "timestamp": int(at.timestamp() * 1000)}


def main():
    configure_logging("INFO")
    container = build_container(remote_backend="memory", local_backend="memory")

    office = Geofence.create(
        id="office",
        owner_id="acme",
        center=Coordinate(22.4994, 91.7773),
        radius_meters=100,
        name="Head office",
    )
    container.geofence_repo.save(office)

    day = datetime.now().replace(hour=9, minute=0, second=0, microsecond=0)
    for lat, lng, minute in [(22.5010, 91.7773, 0), (22.4994, 91.7779, 5), (22.5010, 91.7773, 30)]:
        result = container.sample_processor.process(_raw(lat, lng, day.replace(minute=minute)), "emp-1", "acme")
        print(result.sample.id, "inside" if result.membership.is_inside else "outside", [e.type.value for e in result.events])

    print(container.attendance_service.get_today("emp-1", today=day.date()))
    print(container.location_buffer.flush())
    container.remote_sync.shutdown()


if __name__ == "__main__":
    main()
