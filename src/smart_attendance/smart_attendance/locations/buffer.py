from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from itertools import islice
from typing import Callable, Optional, Sequence

from ..common.datetime_utils import from_iso, now_local
from ..common.logging import get_logger
from ..common.retry import ReconnectPolicy, call_with_retry
from ..core.constants import (
    DEFAULT_FLUSH_INTERVAL_SECONDS,
    DEFAULT_LOCATION_HISTORY_LIMIT,
    DEFAULT_SAMPLE_BATCH_SIZE,
    LOCATIONS_COLLECTION,
)
from ..core.exceptions import RemoteUnavailable, StorageCorrupt
from ..geo.geometry import validate_coordinate
from ..storage.document_store import DocumentStore, Filter
from ..storage.local_store import LocalStore
from .model import LocationSample

log = get_logger(__name__)


@dataclass(frozen=True)
class FlushResult:
    written: int
    error: Optional[Exception] = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class PruneResult:
    local_deleted: int
    remote_deleted: int
    errors: tuple[str, ...] = ()


class LocationSampleBuffer:
    """Decouples the location source from the remote store.

    Every ingested sample is written to local storage first, then queued.
    ``flush`` ships the queue in atomic batches; a failed batch stays queued
    for the next attempt (at-least-once, remote writes are upserts by id).
    ``ingest`` never touches the network: reaching ``batch_size`` only sets
    ``batch_ready`` for the flush scheduler.
    """

    def __init__(
        self,
        remote: DocumentStore,
        local: LocalStore,
        *,
        batch_size: int = DEFAULT_SAMPLE_BATCH_SIZE,
        flush_interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS,
        retry_policy: ReconnectPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = now_local,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        if int(batch_size) <= 0:
            raise ValueError("batch_size must be positive")
        self._remote = remote
        self._local = local
        self._batch_size = int(batch_size)
        self._flush_interval = float(flush_interval_seconds)
        self._retry_policy = retry_policy or ReconnectPolicy()
        self._sleep = sleep
        self._clock = clock
        self._monotonic = monotonic

        self._pending: "OrderedDict[str, LocationSample]" = OrderedDict()
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._last_flush_at = monotonic()
        self.batch_ready = threading.Event()

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def flush_interval_seconds(self) -> float:
        return self._flush_interval

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def pending_ids(self) -> list[str]:
        with self._lock:
            return list(self._pending.keys())

    # ------------------------------------------------------------------ ingest

    def ingest(self, sample: LocationSample) -> bool:
        """Persist locally and queue; returns False for an already known id."""

        validate_coordinate(sample.coordinate)

        with self._lock:
            if sample.id in self._pending:
                return False

        try:
            existing = self._local.get(sample.id)
        except StorageCorrupt as exc:
            log.warning("local_sample_corrupt_overwritten", sample_id=sample.id, error=str(exc))
            existing = None
        if existing is not None and existing.get("synced"):
            return False

        unsynced = replace(sample, synced=False) if sample.synced else sample
        try:
            self._local.put(sample.id, unsynced.to_local())
        except OSError as exc:
            # Still queued in memory; only crash durability is lost for this sample.
            log.error("local_persist_failed", sample_id=sample.id, error=str(exc))

        with self._lock:
            if sample.id in self._pending:
                return False
            if not self._pending:
                # The interval is measured from the oldest pending sample.
                self._last_flush_at = self._monotonic()
            self._pending[sample.id] = unsynced
            count = len(self._pending)

        if count >= self._batch_size:
            self.batch_ready.set()
        return True

    def recover(self) -> int:
        """Re-queue samples that were persisted locally but never synced."""

        restored = []
        for key, fields in self._local.items():
            if fields.get("synced"):
                continue
            try:
                restored.append(LocationSample.from_document(fields, doc_id=key, synced=False))
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("local_sample_unparseable", sample_id=key, error=str(exc))

        restored.sort(key=lambda s: s.captured_at)
        added = 0
        with self._lock:
            for sample in restored:
                if sample.id not in self._pending:
                    self._pending[sample.id] = sample
                    added += 1
            count = len(self._pending)

        if count >= self._batch_size:
            self.batch_ready.set()
        if added:
            log.info("pending_samples_recovered", count=added)
        return added

    # ------------------------------------------------------------------- flush

    def should_flush(self) -> bool:
        with self._lock:
            count = len(self._pending)
        if count == 0:
            return False
        return count >= self._batch_size or self.seconds_until_flush() <= 0

    def seconds_until_flush(self) -> float:
        return max(0.0, self._flush_interval - (self._monotonic() - self._last_flush_at))

    def flush(self) -> FlushResult:
        """Write every pending sample, one atomic batch of ``batch_size`` at a time.

        Stops at the first batch that still fails after the retry policy; that
        batch and everything after it stay pending.
        """

        if not self._flush_lock.acquire(blocking=False):
            return FlushResult(written=0, skipped=True)
        try:
            self.batch_ready.clear()
            self._last_flush_at = self._monotonic()
            written = 0
            while True:
                with self._lock:
                    batch = list(islice(self._pending.values(), self._batch_size))
                if not batch:
                    break

                try:
                    self._write_batch(batch)
                except RemoteUnavailable as exc:
                    log.warning("flush_failed", written=written, pending=self.pending_count, error=str(exc))
                    return FlushResult(written=written, error=exc)

                with self._lock:
                    for sample in batch:
                        self._pending.pop(sample.id, None)
                for sample in batch:
                    self._mark_synced(sample)
                written += len(batch)

            if written:
                log.info("flush_completed", written=written)
            return FlushResult(written=written)
        finally:
            self._flush_lock.release()

    def _write_batch(self, batch: Sequence[LocationSample]) -> None:
        items = [(s.id, s.to_document()) for s in batch]
        call_with_retry(
            lambda: self._remote.batch_write(LOCATIONS_COLLECTION, items),
            policy=self._retry_policy,
            retry_on=(RemoteUnavailable,),
            sleep=self._sleep,
            operation="locations.batch_write",
        )

    def _mark_synced(self, sample: LocationSample) -> None:
        try:
            self._local.put(sample.id, sample.as_synced().to_local())
        except OSError as exc:
            # Stays unsynced locally; a later recover() re-sends it, which is an idempotent upsert.
            log.error("local_mark_synced_failed", sample_id=sample.id, error=str(exc))

    # ----------------------------------------------------------------- history

    def history(
        self,
        subject_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = DEFAULT_LOCATION_HISTORY_LIMIT,
    ) -> list[LocationSample]:
        """Newest first. Falls back to local storage when the remote store is down."""

        filters = [Filter("subject_id", "==", subject_id)]
        if start is not None:
            filters.append(Filter("captured_at", ">=", start.isoformat()))
        if end is not None:
            filters.append(Filter("captured_at", "<=", end.isoformat()))

        try:
            docs = self._remote.query(
                LOCATIONS_COLLECTION, filters, order_by="captured_at", descending=True, limit=limit
            )
        except RemoteUnavailable as exc:
            log.info("history_from_local", subject_id=subject_id, error=str(exc))
            return self._local_history(subject_id, start, end, limit)

        return [LocationSample.from_document(d.fields, doc_id=d.id, synced=True) for d in docs]

    def _local_history(
        self, subject_id: str, start: Optional[datetime], end: Optional[datetime], limit: int
    ) -> list[LocationSample]:
        out: list[LocationSample] = []
        for key, fields in self._local.items():
            if fields.get("subject_id") != subject_id:
                continue
            try:
                sample = LocationSample.from_document(fields, doc_id=key)
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("local_sample_unparseable", sample_id=key, error=str(exc))
                continue
            if start is not None and sample.captured_at < start:
                continue
            if end is not None and sample.captured_at > end:
                continue
            out.append(sample)
        out.sort(key=lambda s: s.captured_at, reverse=True)
        return out[: max(0, int(limit))]

    # ------------------------------------------------------------------- prune

    def prune(self, subject_id: str, older_than: timedelta, *, now: Optional[datetime] = None) -> PruneResult:
        """Delete the subject's samples captured before ``now - older_than``.

        Remote and local deletion are attempted independently; a failure on one
        side is recorded in ``errors`` and does not stop the other.
        """

        cutoff = (now or self._clock()) - older_than
        errors: list[str] = []

        remote_deleted = 0
        try:
            docs = self._remote.query(
                LOCATIONS_COLLECTION,
                [Filter("subject_id", "==", subject_id), Filter("captured_at", "<", cutoff.isoformat())],
            )
            remote_deleted = self._remote.batch_delete(LOCATIONS_COLLECTION, [d.id for d in docs])
        except RemoteUnavailable as exc:
            log.warning("prune_remote_failed", subject_id=subject_id, error=str(exc))
            errors.append(f"remote: {exc}")

        local_deleted = 0
        for key, fields in list(self._local.items()):
            if fields.get("subject_id") != subject_id:
                continue
            captured = fields.get("captured_at")
            try:
                expired = captured is not None and from_iso(captured) < cutoff
            except ValueError:
                expired = False
            if not expired:
                continue
            try:
                if self._local.delete(key):
                    local_deleted += 1
            except OSError as exc:
                log.warning("prune_local_failed", sample_id=key, error=str(exc))
                errors.append(f"local {key}: {exc}")
                continue
            with self._lock:
                self._pending.pop(key, None)

        log.info(
            "prune_completed",
            subject_id=subject_id,
            cutoff=cutoff.isoformat(),
            local_deleted=local_deleted,
            remote_deleted=remote_deleted,
        )
        return PruneResult(local_deleted=local_deleted, remote_deleted=remote_deleted, errors=tuple(errors))

    def sync_stats(self) -> dict:
        unsynced = sum(1 for _, fields in self._local.items() if not fields.get("synced"))
        return {"pending": self.pending_count, "unsynced_local": unsynced}
