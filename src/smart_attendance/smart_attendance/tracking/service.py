from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from ..common.logging import get_logger
from ..common.retry import ReconnectPolicy
from ..core.constants import DEFAULT_SHUTDOWN_FLUSH_TIMEOUT_SECONDS, DEFAULT_TRACKING_INTERVAL_SECONDS
from ..locations.buffer import FlushResult, LocationSampleBuffer
from ..locations.scheduler import FlushScheduler
from .presence import PresenceMonitor
from .processor import SampleProcessor
from .source import LocationSource, ResilientSubscription

log = get_logger(__name__)


class TrackingService:
    """Background tracking for one subject on an injected LocationSource.

    ``start`` recovers unsynced samples, starts the flush scheduler and
    subscribes to the source. ``stop`` unsubscribes and makes one last flush
    bounded by ``shutdown_flush_timeout`` seconds.
    """

    def __init__(
        self,
        source: LocationSource,
        processor: SampleProcessor,
        buffer: LocationSampleBuffer,
        presence: PresenceMonitor,
        *,
        subject_id: str,
        owner_id: str,
        interval_seconds: int = DEFAULT_TRACKING_INTERVAL_SECONDS,
        reconnect_policy: ReconnectPolicy | None = None,
        shutdown_flush_timeout: float = DEFAULT_SHUTDOWN_FLUSH_TIMEOUT_SECONDS,
        scheduler: FlushScheduler | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._source = source
        self._processor = processor
        self._buffer = buffer
        self._presence = presence
        self._subject_id = subject_id
        self._owner_id = owner_id
        self._interval_ms = int(interval_seconds) * 1000
        self._reconnect_policy = reconnect_policy or ReconnectPolicy()
        self._shutdown_flush_timeout = float(shutdown_flush_timeout)
        self._scheduler = scheduler or FlushScheduler(buffer)
        self._sleep = sleep
        self._lock = threading.Lock()
        self._subscription: Optional[ResilientSubscription] = None
        self._paused = False

    @property
    def is_tracking(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def is_paused(self) -> bool:
        return self._paused

    def _handle(self, raw) -> None:
        self._processor.process(raw, self._subject_id, self._owner_id)

    def start(self) -> bool:
        with self._lock:
            if self._subscription is not None and self._subscription.active:
                return True
            self._buffer.recover()
            self._scheduler.start()
            self._subscription = ResilientSubscription(
                self._source,
                self._handle,
                policy=self._reconnect_policy,
                sleep=self._sleep,
            )
            self._subscription.start()
            self._paused = False
            started = self._source.start(self._interval_ms, self._interval_ms // 2)

        log.info("tracking_started", subject_id=self._subject_id, interval_ms=self._interval_ms, started=started)
        return bool(started)

    def pause(self) -> bool:
        ok = bool(self._source.pause())
        if ok:
            self._paused = True
        return ok

    def resume(self) -> bool:
        ok = bool(self._source.resume())
        if ok:
            self._paused = False
        return ok

    def stop(self) -> Optional[FlushResult]:
        """Stop tracking; returns the final flush result, or None if it timed out."""

        with self._lock:
            if self._subscription is not None:
                self._subscription.cancel()
                self._subscription = None
            stopped = self._source.stop()
            self._paused = False

        result = self._scheduler.stop(final_flush_timeout=self._shutdown_flush_timeout)
        self._presence.reset(self._subject_id)
        log.info(
            "tracking_stopped",
            subject_id=self._subject_id,
            source_stopped=bool(stopped),
            final_flush_written=result.written if result else None,
            pending=self._buffer.pending_count,
        )
        return result
