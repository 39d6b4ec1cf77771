"""Bounded retry with exponential backoff for retryable storage failures.

Usage:
    from aaa_core.utils.retry import RetryPolicy, retry

    @retry(RetryPolicy(max_retries=3, initial_delay=0.05))
    def record_stop(...):
        ...
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from aaa_core.exceptions import StorageUnavailable

from .logger import get_logger

P = ParamSpec("P")
T = TypeVar("T")

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry a failed call.

    Args:
        max_retries: Number of retry attempts (in addition to the first try)
        initial_delay: Base delay before first retry in seconds
        max_delay: Maximum delay cap between retries
        backoff: Exponential backoff factor (e.g., 2.0 doubles each time)
        exceptions: Exception types that are worth retrying
    """

    max_retries: int = 3
    initial_delay: float = 0.05
    max_delay: float = 2.0
    backoff: float = 2.0
    exceptions: tuple[type[Exception], ...] = (StorageUnavailable,)

    def delay_for(self, attempt: int) -> float:
        return min(self.initial_delay * (self.backoff**attempt), self.max_delay)

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> RetryPolicy:
        return cls(
            max_retries=int(cfg.get("max_retries", cls.max_retries)),
            initial_delay=float(cfg.get("retry_delay", cls.initial_delay)),
            max_delay=float(cfg.get("retry_max_delay", cls.max_delay)),
            backoff=float(cfg.get("retry_backoff", cls.backoff)),
        )


def call_with_retry(
    func: Callable[..., T],
    *args: Any,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """Invoke ``func`` and retry on the policy's exceptions, then re-raise."""
    policy = policy or RetryPolicy()
    last_exc: Exception | None = None
    for attempt in range(policy.max_retries + 1):
        try:
            return func(*args, **kwargs)
        except policy.exceptions as exc:
            last_exc = exc
            if attempt >= policy.max_retries:
                break
            delay = policy.delay_for(attempt)
            logger.warning(
                "Retrying after retryable failure",
                event="aaa.retry.attempt",
                attempt=attempt + 1,
                max_retries=policy.max_retries,
                delay_seconds=delay,
                error=str(exc),
            )
            sleep(delay)
    assert last_exc is not None
    logger.error(
        "Retries exhausted",
        event="aaa.retry.exhausted",
        max_retries=policy.max_retries,
        error=str(last_exc),
    )
    raise last_exc


def retry(policy: RetryPolicy | None = None):
    """Decorator form of :func:`call_with_retry`."""

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return call_with_retry(func, *args, policy=policy, **kwargs)

        return wrapper

    return decorator
