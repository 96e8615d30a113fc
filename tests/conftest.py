from __future__ import annotations

from datetime import datetime

import pytest

from src.smart_attendance.smart_attendance.common.retry import ReconnectPolicy
from src.smart_attendance.smart_attendance.storage.document_store import InMemoryDocumentStore
from src.smart_attendance.smart_attendance.storage.local_store import MemoryLocalStore


@pytest.fixture
def fixed_now() -> datetime:
    # Monday, 09:20 local time: five minutes past the default late threshold.
    return datetime(2024, 5, 13, 9, 20, 0)


@pytest.fixture
def remote() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def no_wait_policy() -> ReconnectPolicy:
    return ReconnectPolicy(max_attempts=3, base_delay_seconds=0)


@pytest.fixture
def location_store() -> MemoryLocalStore:
    return MemoryLocalStore("locations")


@pytest.fixture
def attendance_store() -> MemoryLocalStore:
    return MemoryLocalStore("attendance")
