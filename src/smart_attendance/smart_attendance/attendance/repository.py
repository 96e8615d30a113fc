from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Protocol, Sequence

from .model import AttendanceRecord


class AttendanceRepository(Protocol):
    def get(self, attendance_id: str) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get_for_subject_and_date(self, subject_id: str, work_date: date) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def save(self, record: AttendanceRecord) -> AttendanceRecord:
        raise NotImplementedError

    def list_for_subject(
        self,
        subject_id: str,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> Sequence[AttendanceRecord]:
        """Newest date first."""
        raise NotImplementedError

    def list_for_owner_and_date(self, owner_id: str, work_date: date) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def list_unsynced(self) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def mark_synced(self, attendance_id: str, *, version: Optional[datetime]) -> bool:
        """Flip ``synced`` only if the stored record still has ``updated_at == version``."""
        raise NotImplementedError
