from __future__ import annotations

import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Hashable, Iterator


class KeyedLock:
    """One re-entrant lock per key.

    Used to serialize read-modify-write cycles on a single attendance day or a
    single storage key without a global lock.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.RLock] = defaultdict(threading.RLock)
        self._holders: dict[Hashable, int] = defaultdict(int)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks[key]
            self._holders[key] += 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._holders[key] -= 1
                if self._holders[key] <= 0:
                    del self._holders[key]
                    del self._locks[key]
