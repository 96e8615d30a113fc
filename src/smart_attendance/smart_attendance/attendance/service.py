from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Sequence

from ..common.datetime_utils import now_local
from ..common.locks import KeyedLock
from ..common.logging import get_logger
from ..core.constants import DEFAULT_ATTENDANCE_HISTORY_LIMIT
from ..core.enums import AttendanceState, CheckInMethod
from ..core.exceptions import (
    AlreadyCheckedIn,
    AlreadyCheckedOut,
    AttendanceNotFound,
    NotCheckedIn,
    ValidationError,
)
from ..geo.geometry import Coordinate, validate_coordinate
from .local_repository import attendance_id_for
from .model import AttendanceRecord
from .punctuality import PunctualityPolicy
from .repository import AttendanceRepository
from .sync import AttendanceRemoteSync

log = get_logger(__name__)

FailureHook = Callable[[str, str, Exception], None]
"""``(operation, subject_id, error)`` for automatic triggers that failed."""

_CLOSED_STATES = (AttendanceState.CHECKED_OUT, AttendanceState.ABSENT, AttendanceState.HALF_DAY)


class AttendanceService:
    """Check-in/check-out state machine, one record per ``(subject_id, date)``.

    NotStarted -> CheckedIn -> CheckedOut. Absent and HalfDay are only reachable
    through ``override``. Every transition for a day runs under that day's lock,
    is saved locally first and then mirrored remotely without waiting.
    """

    def __init__(
        self,
        attendance: AttendanceRepository,
        *,
        remote_sync: AttendanceRemoteSync | None = None,
        policy: PunctualityPolicy | None = None,
        clock: Callable[[], datetime] = now_local,
        on_auto_failure: FailureHook | None = None,
    ):
        self._attendance = attendance
        self._remote_sync = remote_sync
        self._policy = policy or PunctualityPolicy()
        self._clock = clock
        self._on_auto_failure = on_auto_failure
        self._day_locks = KeyedLock()

    @property
    def policy(self) -> PunctualityPolicy:
        return self._policy

    # ---------------------------------------------------------------- helpers

    def _save(self, record):
        saved = self._attendance.save(record)
        if self._remote_sync is not None:
            self._remote_sync.push(saved)
        return saved

    def _report_auto_failure(self, operation: str, subject_id: str, exc: Exception) -> None:
        log.warning("auto_attendance_failed", operation=operation, subject_id=subject_id, error=str(exc))
        if self._on_auto_failure is None:
            return
        try:
            self._on_auto_failure(operation, subject_id, exc)
        except Exception:
            log.exception("auto_failure_hook_failed", operation=operation, subject_id=subject_id)

    # ------------------------------------------------------------ transitions

    def check_in(
        self,
        subject_id: str,
        owner_id: str,
        coordinate: Coordinate,
        *,
        geofence_id: str | None = None,
        inside_geofence: bool = False,
        method: CheckInMethod = CheckInMethod.MANUAL,
        proof_ref: str | None = None,
        now: datetime | None = None,
    ):
        now = now or self._clock()
        if not subject_id:
            raise ValidationError("subject_id is required")
        validate_coordinate(coordinate)

        with self._day_locks.hold((subject_id, now.date())):
            return self._check_in_locked(
                subject_id,
                owner_id,
                coordinate,
                geofence_id=geofence_id,
                inside_geofence=inside_geofence,
                method=method,
                proof_ref=proof_ref,
                now=now,
            )

    def _check_in_locked(
        self,
        subject_id: str,
        owner_id: str,
        coordinate: Coordinate,
        *,
        geofence_id: str | None,
        inside_geofence: bool,
        method: CheckInMethod,
        proof_ref: str | None,
        now: datetime,
    ):
        today = now.date()
        existing = self._attendance.get_for_subject_and_date(subject_id, today)

        if existing is not None:
            if existing.state in _CLOSED_STATES or existing.check_out_at is not None:
                raise AlreadyCheckedOut("Attendance for today is already closed")
            if existing.check_in_at is not None:
                raise AlreadyCheckedIn("Already checked in today")

        fields = dict(
            state=AttendanceState.CHECKED_IN,
            method=method,
            check_in_at=now,
            geofence_id=geofence_id,
            inside_geofence_at_check_in=bool(inside_geofence),
            check_in_coordinate=coordinate,
            check_in_proof_ref=proof_ref,
            updated_at=now,
            synced=False,
        )
        if existing is not None:
            # NotStarted placeholder created by an administrator.
            record = existing.with_changes(**fields)
        else:
            record = AttendanceRecord(
                id=attendance_id_for(subject_id, today),
                subject_id=subject_id,
                owner_id=owner_id,
                date=today,
                created_at=now,
                **fields,
            )

        saved = self._save(record)
        log.info(
            "checked_in",
            subject_id=subject_id,
            attendance_id=saved.id,
            method=method.value,
            late=self._policy.is_late(now),
        )
        return saved

    def check_out(
        self,
        attendance_id: str,
        coordinate: Coordinate,
        *,
        inside_geofence: bool = False,
        proof_ref: str | None = None,
        now: datetime | None = None,
    ):
        now = now or self._clock()
        validate_coordinate(coordinate)

        record = self._attendance.get(attendance_id)
        if record is None:
            raise AttendanceNotFound(f"Attendance {attendance_id} not found")

        with self._day_locks.hold(record.key):
            # Re-read under the lock; another trigger may have closed the day meanwhile.
            record = self._attendance.get(attendance_id)
            if record is None:
                raise AttendanceNotFound(f"Attendance {attendance_id} not found")
            return self._check_out_locked(record, coordinate, inside_geofence=inside_geofence, proof_ref=proof_ref, now=now)

    def _check_out_locked(self, record, coordinate: Coordinate, *, inside_geofence: bool, proof_ref: str | None, now: datetime):
        if record.check_in_at is None or record.check_out_at is not None:
            raise NotCheckedIn("No open check-in for this record")
        if record.state != AttendanceState.CHECKED_IN:
            raise NotCheckedIn(f"Record is {record.state.value}")

        updated = record.with_changes(
            state=AttendanceState.CHECKED_OUT,
            check_out_at=max(now, record.check_in_at),
            inside_geofence_at_check_out=bool(inside_geofence),
            check_out_coordinate=coordinate,
            check_out_proof_ref=proof_ref,
            updated_at=now,
            synced=False,
        )
        saved = self._save(updated)
        log.info("checked_out", subject_id=saved.subject_id, attendance_id=saved.id)
        return saved

    def auto_check_in(
        self,
        subject_id: str,
        owner_id: str,
        coordinate: Coordinate,
        geofence_id: str,
        *,
        now: datetime | None = None,
    ):
        """Geofence-triggered check-in; None when a record already exists today or on any failure."""

        now = now or self._clock()
        try:
            with self._day_locks.hold((subject_id, now.date())):
                if self._attendance.get_for_subject_and_date(subject_id, now.date()) is not None:
                    return None
                return self._check_in_locked(
                    subject_id,
                    owner_id,
                    coordinate,
                    geofence_id=geofence_id,
                    inside_geofence=True,
                    method=CheckInMethod.AUTOMATIC_GEOFENCE,
                    proof_ref=None,
                    now=now,
                )
        except Exception as exc:
            self._report_auto_failure("auto_check_in", subject_id, exc)
            return None

    def auto_check_out(self, subject_id: str, coordinate: Coordinate, *, now: datetime | None = None):
        """Geofence-triggered check-out; None unless today's record is open."""

        now = now or self._clock()
        try:
            with self._day_locks.hold((subject_id, now.date())):
                record = self._attendance.get_for_subject_and_date(subject_id, now.date())
                if record is None or not record.is_checked_in:
                    return None
                return self._check_out_locked(record, coordinate, inside_geofence=False, proof_ref=None, now=now)
        except Exception as exc:
            self._report_auto_failure("auto_check_out", subject_id, exc)
            return None

    def override(
        self,
        attendance_id: str,
        admin_id: str,
        reason: str,
        *,
        new_state: AttendanceState | None = None,
        new_check_in_at: datetime | None = None,
        new_check_out_at: datetime | None = None,
        now: datetime | None = None,
    ):
        """Administrator correction; bypasses the transition guards."""

        now = now or self._clock()
        if not admin_id:
            raise ValidationError("admin_id is required")
        if not (reason or "").strip():
            raise ValidationError("override reason is required")

        record = self._attendance.get(attendance_id)
        if record is None:
            raise AttendanceNotFound(f"Attendance {attendance_id} not found")

        with self._day_locks.hold(record.key):
            record = self._attendance.get(attendance_id)
            if record is None:
                raise AttendanceNotFound(f"Attendance {attendance_id} not found")

            check_in_at = new_check_in_at if new_check_in_at is not None else record.check_in_at
            check_out_at = new_check_out_at if new_check_out_at is not None else record.check_out_at
            if check_in_at is not None and check_out_at is not None and check_out_at < check_in_at:
                raise ValidationError("check-out cannot be earlier than check-in")

            updated = record.with_changes(
                state=new_state or record.state,
                check_in_at=check_in_at,
                check_out_at=check_out_at,
                overridden=True,
                overridden_by=admin_id,
                override_reason=reason.strip(),
                updated_at=now,
                synced=False,
            )
            saved = self._save(updated)

        log.info(
            "attendance_overridden",
            attendance_id=attendance_id,
            admin_id=admin_id,
            state=saved.state.value,
        )
        return saved

    # ------------------------------------------------------------------ reads

    def get(self, attendance_id: str):
        return self._attendance.get(attendance_id)

    def get_today(self, subject_id: str, *, today: date | None = None):
        today = today or self._clock().date()
        return self._attendance.get_for_subject_and_date(subject_id, today)

    def history(
        self,
        subject_id: str,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int | None = DEFAULT_ATTENDANCE_HISTORY_LIMIT,
    ) -> Sequence:
        return self._attendance.list_for_subject(subject_id, start_date=start_date, end_date=end_date, limit=limit)

    def is_late(self, record) -> bool:
        return self._policy.is_late(record.check_in_at)
