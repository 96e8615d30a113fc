from __future__ import annotations

import threading
from datetime import timedelta

from src.smart_attendance.smart_attendance.geo.geometry import Coordinate
from src.smart_attendance.smart_attendance.locations.buffer import LocationSampleBuffer
from src.smart_attendance.smart_attendance.locations.model import LocationSample
from src.smart_attendance.smart_attendance.locations.scheduler import FlushScheduler, flush_with_timeout
from src.smart_attendance.smart_attendance.storage.document_store import InMemoryDocumentStore


class BlockingDocumentStore(InMemoryDocumentStore):
    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def batch_write(self, collection, items):
        self.release.wait(timeout=5)
        super().batch_write(collection, items)


def _sample(n, base):
    return LocationSample(
        id=f"s-{n}",
        subject_id="emp-1",
        coordinate=Coordinate(1.0, 1.0),
        accuracy_meters=1.0,
        captured_at=base + timedelta(seconds=n),
    )


def test_tick_is_noop_when_nothing_is_due(remote, location_store, no_wait_policy):
    buffer = LocationSampleBuffer(remote, location_store, retry_policy=no_wait_policy)
    scheduler = FlushScheduler(buffer)

    assert scheduler.tick() is None
    assert remote.write_count == 0


def test_tick_flushes_full_batch(remote, location_store, no_wait_policy, fixed_now):
    buffer = LocationSampleBuffer(remote, location_store, batch_size=2, retry_policy=no_wait_policy)
    buffer.ingest(_sample(1, fixed_now))
    buffer.ingest(_sample(2, fixed_now))

    result = FlushScheduler(buffer).tick()

    assert result is not None and result.written == 2
    assert not buffer.batch_ready.is_set()


def test_background_thread_flushes_on_batch_signal(remote, location_store, no_wait_policy, fixed_now):
    buffer = LocationSampleBuffer(remote, location_store, batch_size=2, retry_policy=no_wait_policy)
    scheduler = FlushScheduler(buffer)
    scheduler.start()
    try:
        buffer.ingest(_sample(1, fixed_now))
        buffer.ingest(_sample(2, fixed_now))
        for _ in range(100):
            if buffer.pending_count == 0:
                break
            threading.Event().wait(0.02)
    finally:
        scheduler.stop()

    assert buffer.pending_count == 0
    assert not scheduler.running


def test_final_flush_is_bounded(location_store, no_wait_policy, fixed_now):
    remote = BlockingDocumentStore()
    buffer = LocationSampleBuffer(remote, location_store, retry_policy=no_wait_policy)
    buffer.ingest(_sample(1, fixed_now))

    assert flush_with_timeout(buffer, 0.05) is None
    assert buffer.pending_count == 1

    remote.release.set()


def test_stop_performs_final_flush(remote, location_store, no_wait_policy, fixed_now):
    buffer = LocationSampleBuffer(remote, location_store, retry_policy=no_wait_policy)
    scheduler = FlushScheduler(buffer)
    scheduler.start()
    buffer.ingest(_sample(1, fixed_now))

    result = scheduler.stop(final_flush_timeout=2.0)

    assert result is not None and result.ok
    assert buffer.pending_count == 0


class ManualClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_interval_restarts_when_first_sample_arrives_after_idle(remote, location_store, no_wait_policy, fixed_now):
    clock = ManualClock()
    buffer = LocationSampleBuffer(
        remote, location_store, flush_interval_seconds=300, retry_policy=no_wait_policy, monotonic=clock
    )
    scheduler = FlushScheduler(buffer)

    clock.now += 1000
    assert scheduler.next_wait() == 300

    buffer.ingest(_sample(1, fixed_now))
    assert scheduler.next_wait() == 300
    assert scheduler.tick() is None

    clock.now += 120
    assert scheduler.next_wait() == 180

    clock.now += 180
    assert scheduler.next_wait() == 0
    result = scheduler.tick()
    assert result is not None and result.written == 1
