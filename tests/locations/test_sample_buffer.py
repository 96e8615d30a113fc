from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from src.smart_attendance.smart_attendance.common.retry import ReconnectPolicy
from src.smart_attendance.smart_attendance.core.exceptions import InvalidCoordinate, RemoteUnavailable
from src.smart_attendance.smart_attendance.geo.geometry import Coordinate
from src.smart_attendance.smart_attendance.locations.buffer import LocationSampleBuffer
from src.smart_attendance.smart_attendance.locations.model import LocationSample
from src.smart_attendance.smart_attendance.storage.document_store import InMemoryDocumentStore
from src.smart_attendance.smart_attendance.storage.local_store import MemoryLocalStore


class FlakyDocumentStore(InMemoryDocumentStore):
    """Fails the first ``failures`` batch writes."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.batch_calls = 0

    def batch_write(self, collection, items):
        self.batch_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise RemoteUnavailable("timeout")
        super().batch_write(collection, items)


class FakeMonotonic:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _sample(n: int, base: datetime, subject_id: str = "emp-1", **kwargs) -> LocationSample:
    return LocationSample(
        id=f"{subject_id}-{n}",
        subject_id=subject_id,
        coordinate=Coordinate(22.4994, 91.7773),
        accuracy_meters=5.0,
        captured_at=base + timedelta(minutes=n),
        **kwargs,
    )


def _buffer(remote, local, policy, **kwargs) -> LocationSampleBuffer:
    return LocationSampleBuffer(remote, local, retry_policy=policy, sleep=lambda _: None, **kwargs)


def test_duplicate_ingest_results_in_one_remote_write(remote, location_store, no_wait_policy, fixed_now):
    buffer = _buffer(remote, location_store, no_wait_policy)
    sample = _sample(1, fixed_now)

    assert buffer.ingest(sample) is True
    assert buffer.ingest(sample) is False
    result = buffer.flush()

    assert result.ok and result.written == 1
    assert remote.write_count == 1
    assert location_store.keys() == [sample.id]
    assert location_store.get(sample.id)["synced"] is True


def test_reingesting_a_synced_sample_is_a_noop(remote, location_store, no_wait_policy, fixed_now):
    buffer = _buffer(remote, location_store, no_wait_policy)
    sample = _sample(1, fixed_now)
    buffer.ingest(sample)
    buffer.flush()

    assert buffer.ingest(sample) is False
    assert buffer.pending_count == 0


def test_ingest_rejects_invalid_coordinate(remote, location_store, no_wait_policy, fixed_now):
    buffer = _buffer(remote, location_store, no_wait_policy)
    bad = LocationSample(
        id="x", subject_id="emp-1", coordinate=Coordinate(95.0, 0.0), accuracy_meters=1.0, captured_at=fixed_now
    )

    with pytest.raises(InvalidCoordinate):
        buffer.ingest(bad)
    assert location_store.keys() == []


def test_batch_size_signals_but_does_not_flush(remote, location_store, no_wait_policy, fixed_now):
    buffer = _buffer(remote, location_store, no_wait_policy, batch_size=3)

    for n in range(2):
        buffer.ingest(_sample(n, fixed_now))
    assert not buffer.batch_ready.is_set()

    buffer.ingest(_sample(2, fixed_now))

    assert buffer.batch_ready.is_set()
    assert buffer.should_flush()
    assert remote.write_count == 0


def test_flush_writes_in_batches(location_store, no_wait_policy, fixed_now):
    remote = FlakyDocumentStore(failures=0)
    buffer = _buffer(remote, location_store, no_wait_policy, batch_size=10)
    for n in range(25):
        buffer.ingest(_sample(n, fixed_now))

    result = buffer.flush()

    assert result.written == 25
    assert remote.batch_calls == 3
    assert buffer.pending_count == 0


def test_failed_flush_keeps_samples_pending(location_store, fixed_now):
    remote = FlakyDocumentStore(failures=10)
    buffer = _buffer(remote, location_store, ReconnectPolicy(max_attempts=2, base_delay_seconds=0))
    for n in range(3):
        buffer.ingest(_sample(n, fixed_now))

    result = buffer.flush()

    assert not result.ok
    assert isinstance(result.error, RemoteUnavailable)
    assert result.written == 0
    assert buffer.pending_count == 3
    assert all(not fields["synced"] for _, fields in location_store.items())


def test_flush_retries_with_linear_backoff(location_store, fixed_now):
    remote = FlakyDocumentStore(failures=2)
    delays: list[float] = []
    buffer = LocationSampleBuffer(
        remote,
        location_store,
        retry_policy=ReconnectPolicy(max_attempts=5, base_delay_seconds=2),
        sleep=delays.append,
    )
    buffer.ingest(_sample(1, fixed_now))

    result = buffer.flush()

    assert result.ok and result.written == 1
    assert delays == [2, 4]


def test_interval_trigger(remote, location_store, no_wait_policy, fixed_now):
    clock = FakeMonotonic()
    buffer = _buffer(remote, location_store, no_wait_policy, flush_interval_seconds=300, monotonic=clock)
    buffer.ingest(_sample(1, fixed_now))

    assert not buffer.should_flush()
    clock.now += 301
    assert buffer.should_flush()
    assert buffer.seconds_until_flush() == 0


def test_history_falls_back_to_local_when_offline(remote, location_store, no_wait_policy, fixed_now):
    buffer = _buffer(remote, location_store, no_wait_policy)
    for n in range(4):
        buffer.ingest(_sample(n, fixed_now))
    buffer.ingest(_sample(9, fixed_now, subject_id="emp-2"))
    remote.available = False

    rows = buffer.history("emp-1", start=fixed_now + timedelta(minutes=1), limit=10)

    assert [s.id for s in rows] == ["emp-1-3", "emp-1-2", "emp-1-1"]


def test_history_reads_remote_newest_first(remote, location_store, no_wait_policy, fixed_now):
    buffer = _buffer(remote, location_store, no_wait_policy)
    for n in range(3):
        buffer.ingest(_sample(n, fixed_now))
    buffer.flush()

    rows = buffer.history("emp-1", limit=2)

    assert [s.id for s in rows] == ["emp-1-2", "emp-1-1"]
    assert all(s.synced for s in rows)


def test_prune_deletes_old_samples_on_both_sides(remote, location_store, no_wait_policy, fixed_now):
    buffer = _buffer(remote, location_store, no_wait_policy)
    old = _sample(0, fixed_now - timedelta(days=40))
    new = _sample(1, fixed_now)
    buffer.ingest(old)
    buffer.ingest(new)
    buffer.flush()

    result = buffer.prune("emp-1", timedelta(days=30), now=fixed_now)

    assert result.local_deleted == 1
    assert result.remote_deleted == 1
    assert result.errors == ()
    assert location_store.keys() == [new.id]


def test_prune_local_side_survives_remote_outage(remote, location_store, no_wait_policy, fixed_now):
    buffer = _buffer(remote, location_store, no_wait_policy)
    buffer.ingest(_sample(0, fixed_now - timedelta(days=40)))
    remote.available = False

    result = buffer.prune("emp-1", timedelta(days=30), now=fixed_now)

    assert result.local_deleted == 1
    assert result.remote_deleted == 0
    assert len(result.errors) == 1
    assert buffer.pending_count == 0


def test_recover_requeues_unsynced_samples(remote, no_wait_policy, fixed_now):
    local = MemoryLocalStore("locations")
    first = _buffer(InMemoryDocumentStore(), local, no_wait_policy)
    first.ingest(_sample(1, fixed_now))
    first.ingest(_sample(2, fixed_now))

    restarted = _buffer(remote, local, no_wait_policy)
    assert restarted.recover() == 2
    assert restarted.pending_ids() == ["emp-1-1", "emp-1-2"]
    assert restarted.flush().written == 2
    assert restarted.sync_stats() == {"pending": 0, "unsynced_local": 0}


def test_prune_and_local_history_accept_offset_timestamps(remote, location_store, no_wait_policy, fixed_now):
    buffer = _buffer(remote, location_store, no_wait_policy)
    buffer.ingest(
        LocationSample.from_native({"lat": 22.4994, "lng": 91.7773, "timestamp": "2024-05-01T09:00:00+06:00"}, "emp-1")
    )
    buffer.ingest(_sample(1, fixed_now))
    remote.available = False

    assert len(buffer.history("emp-1")) == 2
    assert buffer.recover() == 0

    result = buffer.prune("emp-1", timedelta(days=1), now=fixed_now)

    assert result.local_deleted == 1
    assert location_store.keys() == ["emp-1-1"]
