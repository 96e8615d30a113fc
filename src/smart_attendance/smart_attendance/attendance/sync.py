from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Callable, Optional

from ..common.locks import KeyedLock
from ..common.logging import get_logger
from ..core.constants import ATTENDANCE_COLLECTION
from ..core.exceptions import RemoteUnavailable
from ..storage.document_store import DocumentStore
from .model import AttendanceRecord
from .repository import AttendanceRepository

log = get_logger(__name__)

ErrorCallback = Callable[[AttendanceRecord, RemoteUnavailable], None]


class AttendanceRemoteSync:
    """Mirror local attendance transitions to the remote store.

    ``push`` is fire-and-forget: the local record is already saved and stays
    authoritative. A failed push leaves ``synced=False`` and is retried by
    ``sync_pending``. Pushes for one record id run one at a time and always
    send the latest local version, so a slow older push cannot overwrite a
    newer one remotely.
    """

    def __init__(
        self,
        remote: DocumentStore,
        repository: AttendanceRepository,
        *,
        executor: Optional[Executor] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self._remote = remote
        self._repository = repository
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="attendance-sync")
        self._on_error = on_error
        self._record_locks = KeyedLock()

    def push(self, record: AttendanceRecord) -> Future:
        return self._executor.submit(self._push_now, record)

    def _push_now(self, record: AttendanceRecord) -> bool:
        with self._record_locks.hold(record.id):
            latest = self._repository.get(record.id) or record
            if latest.synced:
                return True
            if latest.updated_at != record.updated_at:
                log.debug("attendance_push_superseded", attendance_id=record.id)

            try:
                self._remote.put(ATTENDANCE_COLLECTION, latest.id, latest.to_document())
            except RemoteUnavailable as exc:
                log.warning("attendance_push_failed", attendance_id=latest.id, error=str(exc))
                self._notify(latest, exc)
                return False
            self._repository.mark_synced(latest.id, version=latest.updated_at)
            return True

    def _notify(self, record: AttendanceRecord, exc: RemoteUnavailable) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(record, exc)
        except Exception:
            log.exception("attendance_sync_error_callback_failed", attendance_id=record.id)

    def sync_pending(self) -> int:
        """Push every unsynced local record synchronously; returns how many succeeded."""

        synced = 0
        for record in self._repository.list_unsynced():
            if self._push_now(record):
                synced += 1
        if synced:
            log.info("attendance_sync_completed", synced=synced)
        return synced

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
