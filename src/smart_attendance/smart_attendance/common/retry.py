from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Tuple, Type, TypeVar

from ..core.constants import DEFAULT_RECONNECT_DELAY_SECONDS, DEFAULT_RECONNECT_MAX_ATTEMPTS
from .logging import get_logger

T = TypeVar("T")

log = get_logger(__name__)


@dataclass(frozen=True)
class ReconnectPolicy:
    """Capped attempts with a linearly increasing delay (delay * attempt)."""

    max_attempts: int = DEFAULT_RECONNECT_MAX_ATTEMPTS
    base_delay_seconds: float = DEFAULT_RECONNECT_DELAY_SECONDS

    def delay_for(self, attempt: int) -> float:
        return self.base_delay_seconds * max(1, int(attempt))

    def delays(self) -> list[float]:
        return [self.delay_for(n) for n in range(1, self.max_attempts)]


def call_with_retry(
    func: Callable[[], T],
    *,
    policy: ReconnectPolicy,
    retry_on: Tuple[Type[BaseException], ...],
    sleep: Callable[[float], None] = time.sleep,
    operation: str = "operation",
) -> T:
    """Run ``func`` up to ``policy.max_attempts`` times.

    Only exceptions in ``retry_on`` are retried; the last one is re-raised once
    the attempts are exhausted.
    """

    attempts = max(1, int(policy.max_attempts))
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retry_on as exc:
            if attempt >= attempts:
                log.warning("retry_exhausted", operation=operation, attempts=attempt, error=str(exc))
                raise
            delay = policy.delay_for(attempt)
            log.info("retry_scheduled", operation=operation, attempt=attempt, delay_seconds=delay, error=str(exc))
            sleep(delay)
    raise AssertionError("unreachable")
