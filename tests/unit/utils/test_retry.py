from __future__ import annotations

import pytest

from aaa_core.exceptions import StorageUnavailable, ValidationError
from aaa_core.utils.retry import RetryPolicy, call_with_retry, retry


class Flaky:
    def __init__(self, failures: int, exc: Exception | None = None) -> None:
        self.failures = failures
        self.calls = 0
        self.exc = exc or StorageUnavailable("locked")

    def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return value * 2


def test_succeeds_after_transient_failures():
    sleeps: list[float] = []
    fn = Flaky(failures=3)
    policy = RetryPolicy(max_retries=3, initial_delay=0.05, backoff=2.0, max_delay=1.0)
    assert call_with_retry(fn, 21, policy=policy, sleep=sleeps.append) == 42
    assert fn.calls == 4
    assert sleeps == pytest.approx([0.05, 0.1, 0.2])


def test_exhaustion_reraises_last_error():
    sleeps: list[float] = []
    fn = Flaky(failures=99)
    with pytest.raises(StorageUnavailable):
        call_with_retry(fn, 1, policy=RetryPolicy(max_retries=2), sleep=sleeps.append)
    assert fn.calls == 3
    assert len(sleeps) == 2


def test_non_retryable_errors_propagate_immediately():
    sleeps: list[float] = []
    fn = Flaky(failures=1, exc=ValidationError("bad"))
    with pytest.raises(ValidationError):
        call_with_retry(fn, 1, sleep=sleeps.append)
    assert fn.calls == 1
    assert sleeps == []


def test_delay_is_capped():
    policy = RetryPolicy(initial_delay=1.0, backoff=10.0, max_delay=5.0)
    assert [policy.delay_for(i) for i in range(3)] == [1.0, 5.0, 5.0]


def test_from_config():
    policy = RetryPolicy.from_config(
        {"max_retries": "5", "retry_delay": "0.5", "retry_backoff": "3", "retry_max_delay": "9"}
    )
    assert policy == RetryPolicy(max_retries=5, initial_delay=0.5, max_delay=9.0, backoff=3.0)


def test_decorator():
    fn = Flaky(failures=1)

    @retry(RetryPolicy(max_retries=1, initial_delay=0.001))
    def wrapped(value):
        return fn(value)

    assert wrapped(4) == 8
    assert fn.calls == 2
