from __future__ import annotations

from datetime import date, datetime
from typing import Iterator, Optional, Sequence

from ..common.datetime_utils import to_iso
from ..common.locks import KeyedLock
from ..common.logging import get_logger
from ..core.exceptions import StorageCorrupt
from ..storage.local_store import LocalStore
from .model import AttendanceRecord
from .repository import AttendanceRepository

log = get_logger(__name__)


def attendance_id_for(subject_id: str, work_date: date) -> str:
    """Record ids are derived from the day key, so one day can never hold two records."""
    return f"{subject_id}_{work_date.isoformat()}"


class LocalAttendanceRepository(AttendanceRepository):
    """Attendance records in the local ``attendance`` namespace (source of truth)."""

    def __init__(self, store: LocalStore):
        self._store = store
        self._locks = KeyedLock()

    def get(self, attendance_id: str) -> Optional[AttendanceRecord]:
        fields = self._store.get(attendance_id)
        if fields is None:
            return None
        return AttendanceRecord.from_document(fields, doc_id=attendance_id)

    def get_for_subject_and_date(self, subject_id: str, work_date: date) -> Optional[AttendanceRecord]:
        return self.get(attendance_id_for(subject_id, work_date))

    def save(self, record: AttendanceRecord) -> AttendanceRecord:
        with self._locks.hold(record.id):
            self._store.put(record.id, record.to_local())
        return record

    def _iter_records(self) -> Iterator[AttendanceRecord]:
        for key, fields in self._store.items():
            try:
                yield AttendanceRecord.from_document(fields, doc_id=key)
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("attendance_record_unparseable", attendance_id=key, error=str(exc))

    def list_for_subject(
        self,
        subject_id: str,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> Sequence[AttendanceRecord]:
        rows = [
            r
            for r in self._iter_records()
            if r.subject_id == subject_id
            and (start_date is None or r.date >= start_date)
            and (end_date is None or r.date <= end_date)
        ]
        rows.sort(key=lambda r: r.date, reverse=True)
        if limit is not None:
            rows = rows[: max(0, int(limit))]
        return rows

    def list_for_owner_and_date(self, owner_id: str, work_date: date) -> Sequence[AttendanceRecord]:
        rows = [r for r in self._iter_records() if r.owner_id == owner_id and r.date == work_date]
        rows.sort(key=lambda r: r.subject_id)
        return rows

    def list_unsynced(self) -> Sequence[AttendanceRecord]:
        rows = [r for r in self._iter_records() if not r.synced]
        rows.sort(key=lambda r: (r.date, r.subject_id))
        return rows

    def mark_synced(self, attendance_id: str, *, version: Optional[datetime]) -> bool:
        with self._locks.hold(attendance_id):
            try:
                fields = self._store.get(attendance_id)
            except StorageCorrupt as exc:
                log.warning("attendance_mark_synced_skipped", attendance_id=attendance_id, error=str(exc))
                return False
            if fields is None or fields.get("updated_at") != to_iso(version):
                # Changed again since the push started; the newer version syncs on its own.
                return False
            fields["synced"] = True
            self._store.put(attendance_id, fields)
            return True
