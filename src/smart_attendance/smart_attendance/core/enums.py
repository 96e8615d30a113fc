from __future__ import annotations

from enum import Enum


class AttendanceState(str, Enum):
    """Trạng thái của bản ghi chấm công trong ngày."""

    NOT_STARTED = "NOT_STARTED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    ABSENT = "ABSENT"
    HALF_DAY = "HALF_DAY"


class CheckInMethod(str, Enum):
    """Cách nhân viên chấm công vào ca."""

    MANUAL = "MANUAL"
    AUTOMATIC_GEOFENCE = "AUTOMATIC_GEOFENCE"
    QR_CODE = "QR_CODE"
    BIOMETRIC = "BIOMETRIC"


class GeofenceEventType(str, Enum):
    ENTER = "enter"
    EXIT = "exit"
    DWELL = "dwell"


class Punctuality(str, Enum):
    ON_TIME = "ON_TIME"
    LATE = "LATE"
    EARLY = "EARLY"
