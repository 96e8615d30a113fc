from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from ..attendance.punctuality import PunctualityPolicy
from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import format_duration
from ..core.enums import AttendanceState, Punctuality

_PRESENT_STATES = (AttendanceState.CHECKED_IN, AttendanceState.CHECKED_OUT)
STREAK_LOOKBACK_DAYS = 90


@dataclass(frozen=True)
class AttendanceStats:
    total_days: int
    present_days: int
    absent_days: int
    late_days: int
    half_days: int
    total_work_time: timedelta

    @property
    def attendance_percentage(self) -> float:
        return (self.present_days / self.total_days) * 100 if self.total_days > 0 else 0.0

    @property
    def average_work_time_per_day(self) -> str:
        if self.present_days == 0:
            return "0h 0m"
        avg_minutes = int(self.total_work_time.total_seconds() // 60) // self.present_days
        return format_duration(avg_minutes)

    def to_dict(self) -> dict:
        return {
            "total_days": self.total_days,
            "present_days": self.present_days,
            "absent_days": self.absent_days,
            "late_days": self.late_days,
            "half_days": self.half_days,
            "total_work_minutes": int(self.total_work_time.total_seconds() // 60),
            "attendance_percentage": round(self.attendance_percentage, 2),
            "average_work_time_per_day": self.average_work_time_per_day,
        }


@dataclass(frozen=True)
class PunctualityStats:
    total_days: int
    on_time_days: int
    late_days: int
    early_check_ins: int

    @property
    def punctuality_rate(self) -> float:
        return (self.on_time_days / self.total_days) * 100 if self.total_days > 0 else 0.0


class AttendanceReportService:
    """Báo cáo chấm công: thống kê theo khoảng ngày và chuỗi ngày đi làm đúng giờ."""

    def __init__(self, attendance: AttendanceRepository, policy: PunctualityPolicy | None = None):
        self._attendance = attendance
        self._policy = policy or PunctualityPolicy()

    def stats(self, subject_id: str, start: date, end: date) -> AttendanceStats:
        records = self._attendance.list_for_subject(subject_id, start_date=start, end_date=end)

        present = absent = late = half = 0
        total = timedelta()
        for r in records:
            if r.state in _PRESENT_STATES:
                present += 1
                if r.work_duration is not None:
                    total += r.work_duration
            elif r.state == AttendanceState.ABSENT:
                absent += 1
            elif r.state == AttendanceState.HALF_DAY:
                half += 1

            if self._policy.is_late(r.check_in_at):
                late += 1

        return AttendanceStats(
            total_days=len(records),
            present_days=present,
            absent_days=absent,
            late_days=late,
            half_days=half,
            total_work_time=total,
        )

    def punctuality(self, subject_id: str, *, today: date, days: int = 30) -> PunctualityStats:
        records = [
            r
            for r in self._attendance.list_for_subject(subject_id, start_date=today - timedelta(days=days), end_date=today)
            if r.check_in_at is not None
        ]
        on_time = late = early = 0
        for r in records:
            verdict = self._policy.classify(r.check_in_at)
            if verdict == Punctuality.LATE:
                late += 1
            else:
                on_time += 1
                if verdict == Punctuality.EARLY:
                    early += 1
        return PunctualityStats(total_days=len(records), on_time_days=on_time, late_days=late, early_check_ins=early)

    def current_streak(self, subject_id: str, today: date) -> int:
        """On-time present days counted back from today (or yesterday).

        A single missing calendar day between two counted days does not break
        the streak; a late or non-present day does.
        """

        records = self._attendance.list_for_subject(
            subject_id,
            start_date=today - timedelta(days=STREAK_LOOKBACK_DAYS),
            end_date=today,
        )

        streak = 0
        expected = today
        for r in records:
            if r.check_in_at is None:
                continue
            if abs((expected - r.date).days) > 1:
                break
            if r.state not in _PRESENT_STATES or self._policy.is_late(r.check_in_at):
                break
            streak += 1
            expected = r.date - timedelta(days=1)
        return streak
