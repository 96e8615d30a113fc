from __future__ import annotations

import threading

import pytest

from src.smart_attendance.smart_attendance.common.datetime_utils import format_duration, parse_hhmm
from src.smart_attendance.smart_attendance.common.locks import KeyedLock
from src.smart_attendance.smart_attendance.common.retry import ReconnectPolicy, call_with_retry
from src.smart_attendance.smart_attendance.core.exceptions import RemoteUnavailable


def test_delays_grow_linearly():
    policy = ReconnectPolicy(max_attempts=4, base_delay_seconds=2)

    assert policy.delays() == [2, 4, 6]


def test_retry_succeeds_after_transient_failures():
    calls = []
    slept = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise RemoteUnavailable("down")
        return "ok"

    result = call_with_retry(
        flaky,
        policy=ReconnectPolicy(max_attempts=3, base_delay_seconds=1),
        retry_on=(RemoteUnavailable,),
        sleep=slept.append,
    )

    assert result == "ok"
    assert slept == [1, 2]


def test_retry_reraises_after_last_attempt():
    def always_down():
        raise RemoteUnavailable("down")

    with pytest.raises(RemoteUnavailable):
        call_with_retry(
            always_down,
            policy=ReconnectPolicy(max_attempts=2, base_delay_seconds=0),
            retry_on=(RemoteUnavailable,),
            sleep=lambda _: None,
        )


def test_non_retryable_errors_propagate_immediately():
    calls = []

    def broken():
        calls.append(1)
        raise ValueError("bad payload")

    with pytest.raises(ValueError):
        call_with_retry(broken, policy=ReconnectPolicy(3, 0), retry_on=(RemoteUnavailable,), sleep=lambda _: None)
    assert len(calls) == 1


def test_keyed_lock_is_reentrant_and_serializes_one_key():
    locks = KeyedLock()
    counter = {"n": 0}

    def bump():
        for _ in range(200):
            with locks.hold(("emp-1", "2024-05-13")):
                with locks.hold(("emp-1", "2024-05-13")):
                    value = counter["n"]
                    counter["n"] = value + 1

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert counter["n"] == 800


def test_duration_and_time_helpers():
    assert format_duration(125) == "2h 5m"
    assert parse_hhmm("09:15").hour == 9
    assert parse_hhmm("09:15").minute == 15
