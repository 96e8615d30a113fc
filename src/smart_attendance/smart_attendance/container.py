from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from typing import Optional

from .attendance.local_repository import LocalAttendanceRepository
from .attendance.punctuality import PunctualityPolicy
from .attendance.service import AttendanceService
from .attendance.sync import AttendanceRemoteSync
from .common.retry import ReconnectPolicy
from .core.constants import (
    ATTENDANCE_COLLECTION,
    DEFAULT_FLUSH_INTERVAL_SECONDS,
    DEFAULT_LATE_THRESHOLD,
    DEFAULT_LOCATION_RETENTION_DAYS,
    DEFAULT_RECONNECT_DELAY_SECONDS,
    DEFAULT_RECONNECT_MAX_ATTEMPTS,
    DEFAULT_SAMPLE_BATCH_SIZE,
    DEFAULT_SHUTDOWN_FLUSH_TIMEOUT_SECONDS,
    GEOFENCES_COLLECTION,
    LOCATIONS_COLLECTION,
)
from .database.connection import DBConfig, DatabaseConnection
from .geofences.repository import DocumentGeofenceRepository
from .geofences.tracker import GeofenceMembershipTracker
from .locations.buffer import LocationSampleBuffer
from .locations.scheduler import FlushScheduler
from .reports.service import AttendanceReportService
from .storage.document_store import DocumentStore, InMemoryDocumentStore
from .storage.local_store import build_local_store
from .storage.mysql_document_store import MySQLDocumentStore
from .tracking.presence import PresenceMonitor
from .tracking.processor import SampleProcessor


@dataclass(frozen=True)
class Container:
    remote: DocumentStore

    geofence_repo: DocumentGeofenceRepository
    attendance_repo: LocalAttendanceRepository

    policy: PunctualityPolicy
    retry_policy: ReconnectPolicy
    remote_sync: AttendanceRemoteSync
    attendance_service: AttendanceService
    location_buffer: LocationSampleBuffer
    flush_scheduler: FlushScheduler
    tracker: GeofenceMembershipTracker
    presence: PresenceMonitor
    sample_processor: SampleProcessor
    report_service: AttendanceReportService

    location_retention_days: int = DEFAULT_LOCATION_RETENTION_DAYS
    shutdown_flush_timeout: float = DEFAULT_SHUTDOWN_FLUSH_TIMEOUT_SECONDS

    def shutdown(self):
        """Stop background work; the final flush is bounded by ``shutdown_flush_timeout``."""
        result = self.flush_scheduler.stop(final_flush_timeout=self.shutdown_flush_timeout)
        self.remote_sync.shutdown(wait=False)
        return result


def build_remote_store(backend: str, db_config: Optional[dict]) -> DocumentStore:
    if backend == "memory":
        return InMemoryDocumentStore()
    if backend == "mysql":
        if not db_config:
            raise ValueError("DB_CONFIG is required for the mysql backend")
        conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))
        return MySQLDocumentStore(conn)
    raise ValueError(f"Unknown remote backend: {backend!r}")


def build_container(
    *,
    db_config: Optional[dict] = None,
    remote_backend: str = "mysql",
    local_backend: str = "file",
    local_store_dir: Optional[str] = None,
    sample_batch_size: int = DEFAULT_SAMPLE_BATCH_SIZE,
    flush_interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS,
    late_threshold: time = DEFAULT_LATE_THRESHOLD,
    reconnect_max_attempts: int = DEFAULT_RECONNECT_MAX_ATTEMPTS,
    reconnect_delay_seconds: float = DEFAULT_RECONNECT_DELAY_SECONDS,
    shutdown_flush_timeout: float = DEFAULT_SHUTDOWN_FLUSH_TIMEOUT_SECONDS,
    location_retention_days: int = DEFAULT_LOCATION_RETENTION_DAYS,
    remote: Optional[DocumentStore] = None,
) -> Container:
    if remote is None:
        remote = build_remote_store(remote_backend, db_config)

    location_store = build_local_store(local_backend, LOCATIONS_COLLECTION, root=local_store_dir)
    attendance_store = build_local_store(local_backend, ATTENDANCE_COLLECTION, root=local_store_dir)
    geofence_cache = build_local_store(local_backend, GEOFENCES_COLLECTION, root=local_store_dir)

    retry_policy = ReconnectPolicy(
        max_attempts=int(reconnect_max_attempts),
        base_delay_seconds=float(reconnect_delay_seconds),
    )
    policy = PunctualityPolicy(late_threshold=late_threshold)

    geofence_repo = DocumentGeofenceRepository(remote, geofence_cache)
    attendance_repo = LocalAttendanceRepository(attendance_store)

    remote_sync = AttendanceRemoteSync(remote, attendance_repo)
    attendance_service = AttendanceService(attendance_repo, remote_sync=remote_sync, policy=policy)

    location_buffer = LocationSampleBuffer(
        remote,
        location_store,
        batch_size=sample_batch_size,
        flush_interval_seconds=flush_interval_seconds,
        retry_policy=retry_policy,
    )
    flush_scheduler = FlushScheduler(location_buffer)

    tracker = GeofenceMembershipTracker()
    presence = PresenceMonitor(attendance_service, geofence_repo)
    sample_processor = SampleProcessor(location_buffer, geofence_repo, presence, tracker=tracker)
    report_service = AttendanceReportService(attendance_repo, policy)

    return Container(
        remote=remote,
        geofence_repo=geofence_repo,
        attendance_repo=attendance_repo,
        policy=policy,
        retry_policy=retry_policy,
        remote_sync=remote_sync,
        attendance_service=attendance_service,
        location_buffer=location_buffer,
        flush_scheduler=flush_scheduler,
        tracker=tracker,
        presence=presence,
        sample_processor=sample_processor,
        report_service=report_service,
        location_retention_days=int(location_retention_days),
        shutdown_flush_timeout=float(shutdown_flush_timeout),
    )
