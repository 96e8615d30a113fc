from __future__ import annotations

import threading
from typing import Optional

from ..common.logging import get_logger
from .buffer import FlushResult, LocationSampleBuffer

log = get_logger(__name__)


class FlushScheduler:
    """Background thread flushing the buffer on whichever fires first:
    the batch-size signal or the flush interval.
    """

    def __init__(self, buffer: LocationSampleBuffer, *, name: str = "location-flush"):
        self._buffer = buffer
        self._name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.is_set():
            self._buffer.batch_ready.wait(timeout=self.next_wait())
            if self._stop.is_set():
                break
            self.tick()

    def next_wait(self) -> float:
        """Seconds until the interval trigger is due; a full interval while nothing is pending."""
        if self._buffer.pending_count == 0:
            return self._buffer.flush_interval_seconds
        return self._buffer.seconds_until_flush()

    def tick(self) -> Optional[FlushResult]:
        """Flush if a trigger is due; never raises, the loop must survive store errors."""
        self._buffer.batch_ready.clear()
        if not self._buffer.should_flush():
            return None
        try:
            return self._buffer.flush()
        except Exception:
            log.exception("scheduled_flush_crashed")
            return None

    def stop(self, *, final_flush_timeout: float = 0.0) -> Optional[FlushResult]:
        """Stop the loop; with a timeout, make one last bounded flush attempt."""

        self._stop.set()
        self._buffer.batch_ready.set()
        if self._thread is not None:
            self._thread.join(timeout=max(1.0, final_flush_timeout))
            self._thread = None
        if final_flush_timeout <= 0:
            return None
        return flush_with_timeout(self._buffer, final_flush_timeout)


def flush_with_timeout(buffer: LocationSampleBuffer, timeout: float) -> Optional[FlushResult]:
    """Run ``buffer.flush()`` on a helper thread and wait at most ``timeout`` seconds.

    Returns None when the flush did not finish in time; the samples stay
    persisted locally and are picked up by ``recover()`` on the next start.
    """

    outcome: list[FlushResult] = []

    def _target() -> None:
        try:
            outcome.append(buffer.flush())
        except Exception:
            log.exception("final_flush_crashed")

    worker = threading.Thread(target=_target, name="location-final-flush", daemon=True)
    worker.start()
    worker.join(timeout=timeout)
    if worker.is_alive():
        log.warning("final_flush_timed_out", timeout_seconds=timeout, pending=buffer.pending_count)
        return None
    return outcome[0] if outcome else None
