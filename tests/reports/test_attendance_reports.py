from __future__ import annotations

from datetime import date, datetime, timedelta

from src.smart_attendance.smart_attendance.attendance.local_repository import (
    LocalAttendanceRepository,
    attendance_id_for,
)
from src.smart_attendance.smart_attendance.attendance.model import AttendanceRecord
from src.smart_attendance.smart_attendance.attendance.punctuality import PunctualityPolicy
from src.smart_attendance.smart_attendance.core.enums import AttendanceState, CheckInMethod
from src.smart_attendance.smart_attendance.reports.service import AttendanceReportService, AttendanceStats


def _record(day: date, state=AttendanceState.CHECKED_OUT, check_in=(8, 50), hours=8, subject_id="emp-1"):
    check_in_at = datetime.combine(day, datetime.min.time()).replace(hour=check_in[0], minute=check_in[1])
    check_out_at = check_in_at + timedelta(hours=hours) if state == AttendanceState.CHECKED_OUT else None
    if state in (AttendanceState.ABSENT, AttendanceState.NOT_STARTED):
        check_in_at = None
    return AttendanceRecord(
        id=attendance_id_for(subject_id, day),
        subject_id=subject_id,
        owner_id="acme",
        date=day,
        state=state,
        method=CheckInMethod.MANUAL,
        check_in_at=check_in_at,
        check_out_at=check_out_at,
    )


def _service(attendance_store, *records):
    repo = LocalAttendanceRepository(attendance_store)
    for r in records:
        repo.save(r)
    return AttendanceReportService(repo, PunctualityPolicy())


def test_stats_counts_states_and_work_time(attendance_store):
    svc = _service(
        attendance_store,
        _record(date(2024, 5, 6)),
        _record(date(2024, 5, 7), check_in=(9, 30), hours=7),
        _record(date(2024, 5, 8), state=AttendanceState.ABSENT),
        _record(date(2024, 5, 9), state=AttendanceState.HALF_DAY),
        _record(date(2024, 5, 10), state=AttendanceState.CHECKED_IN),
        _record(date(2024, 5, 10), subject_id="emp-2"),
    )

    stats = svc.stats("emp-1", date(2024, 5, 1), date(2024, 5, 31))

    assert stats.total_days == 5
    assert stats.present_days == 3
    assert stats.absent_days == 1
    assert stats.half_days == 1
    assert stats.late_days == 1
    assert stats.total_work_time == timedelta(hours=15)
    assert stats.attendance_percentage == 60.0
    assert stats.average_work_time_per_day == "5h 0m"


def test_stats_respects_date_range(attendance_store):
    svc = _service(attendance_store, _record(date(2024, 4, 30)), _record(date(2024, 5, 2)))

    stats = svc.stats("emp-1", date(2024, 5, 1), date(2024, 5, 31))

    assert stats.total_days == 1


def test_empty_stats_do_not_divide_by_zero():
    stats = AttendanceStats(
        total_days=0, present_days=0, absent_days=0, late_days=0, half_days=0, total_work_time=timedelta()
    )

    assert stats.attendance_percentage == 0.0
    assert stats.average_work_time_per_day == "0h 0m"
    assert stats.to_dict()["total_work_minutes"] == 0


def test_average_work_time_formats_hours_and_minutes(attendance_store):
    svc = _service(
        attendance_store,
        _record(date(2024, 5, 6), hours=8),
        _record(date(2024, 5, 7), hours=7.5),
    )

    stats = svc.stats("emp-1", date(2024, 5, 6), date(2024, 5, 7))

    assert stats.average_work_time_per_day == "7h 45m"
    assert stats.to_dict()["total_work_minutes"] == 930


def test_punctuality_splits_on_time_late_and_early(attendance_store):
    svc = _service(
        attendance_store,
        _record(date(2024, 5, 6), check_in=(8, 30)),
        _record(date(2024, 5, 7), check_in=(9, 10)),
        _record(date(2024, 5, 8), check_in=(9, 40)),
        _record(date(2024, 5, 9), state=AttendanceState.ABSENT),
    )

    result = svc.punctuality("emp-1", today=date(2024, 5, 10), days=30)

    assert result.total_days == 3
    assert result.late_days == 1
    assert result.on_time_days == 2
    assert result.early_check_ins == 1
    assert round(result.punctuality_rate, 2) == 66.67


def test_streak_counts_consecutive_on_time_days(attendance_store):
    svc = _service(
        attendance_store,
        _record(date(2024, 5, 8), check_in=(9, 40)),
        _record(date(2024, 5, 9)),
        _record(date(2024, 5, 10)),
        _record(date(2024, 5, 13), state=AttendanceState.CHECKED_IN),
    )

    # 11th and 12th missing: two-day gap before the 10th breaks the streak.
    assert svc.current_streak("emp-1", date(2024, 5, 13)) == 1


def test_streak_tolerates_a_single_missing_day(attendance_store):
    svc = _service(
        attendance_store,
        _record(date(2024, 5, 7), check_in=(9, 40)),
        _record(date(2024, 5, 8)),
        _record(date(2024, 5, 10)),
        _record(date(2024, 5, 11)),
    )

    assert svc.current_streak("emp-1", date(2024, 5, 12)) == 3


def test_streak_is_zero_without_recent_records(attendance_store):
    svc = _service(attendance_store, _record(date(2024, 4, 1)))

    assert svc.current_streak("emp-1", date(2024, 5, 13)) == 0
