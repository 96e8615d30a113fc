from __future__ import annotations

import threading
import time
from typing import Any, Callable, Mapping, Optional, Protocol

from ..common.logging import get_logger
from ..common.retry import ReconnectPolicy

log = get_logger(__name__)

RawSample = Mapping[str, Any]


class SampleSubscriber(Protocol):
    def on_next(self, raw: RawSample) -> None:
        raise NotImplementedError

    def on_error(self, error: Exception) -> None:
        raise NotImplementedError

    def on_closed(self) -> None:
        raise NotImplementedError


class LocationSource(Protocol):
    """Platform background-location capability, injected rather than global.

    Raw events look like ``{lat, lng, accuracy, altitude?, speed?, heading?,
    timestamp}`` with ``timestamp`` in epoch milliseconds.
    """

    def start(self, interval_ms: int, fastest_interval_ms: int) -> bool:
        raise NotImplementedError

    def stop(self) -> bool:
        raise NotImplementedError

    def pause(self) -> bool:
        raise NotImplementedError

    def resume(self) -> bool:
        raise NotImplementedError

    def listen(self, subscriber: SampleSubscriber) -> None:
        """Attach ``subscriber``; the source calls ``on_closed`` when the stream ends."""
        raise NotImplementedError


class ResilientSubscription(SampleSubscriber):
    """Keeps a subscription to a LocationSource alive.

    When the stream closes unexpectedly it re-listens after
    ``policy.delay_for(attempt)`` seconds, giving up after
    ``policy.max_attempts`` consecutive failures. Any delivered sample resets
    the attempt counter.
    """

    def __init__(
        self,
        source: LocationSource,
        on_sample: Callable[[RawSample], Any],
        *,
        policy: ReconnectPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_give_up: Optional[Callable[[], None]] = None,
    ):
        self._source = source
        self._on_sample = on_sample
        self._policy = policy or ReconnectPolicy()
        self._sleep = sleep
        self._on_error = on_error
        self._on_give_up = on_give_up
        self._lock = threading.Lock()
        self._active = False
        self._attempts = 0

    @property
    def active(self) -> bool:
        return self._active

    @property
    def attempts(self) -> int:
        return self._attempts

    def start(self) -> None:
        with self._lock:
            self._active = True
            self._attempts = 0
        self._source.listen(self)

    def cancel(self) -> None:
        with self._lock:
            self._active = False

    def on_next(self, raw: RawSample) -> None:
        if not self._active:
            return
        with self._lock:
            self._attempts = 0
        try:
            self._on_sample(raw)
        except Exception as exc:
            # A bad sample must not end the subscription.
            log.warning("sample_rejected", error=str(exc))
            self._notify_error(exc)

    def on_error(self, error: Exception) -> None:
        log.warning("location_stream_error", error=str(error))
        self._notify_error(error)

    def on_closed(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._attempts += 1
            attempt = self._attempts
            if attempt > self._policy.max_attempts:
                self._active = False
        if attempt > self._policy.max_attempts:
            log.error("location_stream_gave_up", attempts=attempt - 1)
            if self._on_give_up is not None:
                self._on_give_up()
            return

        delay = self._policy.delay_for(attempt)
        log.info("location_stream_reconnecting", attempt=attempt, delay_seconds=delay)
        self._sleep(delay)
        if self._active:
            self._source.listen(self)

    def _notify_error(self, error: Exception) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception:
            log.exception("subscription_error_callback_failed")
