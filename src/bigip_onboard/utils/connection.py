"""Retry policies and polling helpers built on tenacity."""
import asyncio
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    retry,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
    retry_if_exception_type,
    before_sleep_log,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Common network exceptions to retry on
RETRYABLE_EXCEPTIONS = (
    ConnectionRefusedError,
    ConnectionResetError,
    TimeoutError,
    OSError,
    EOFError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """How tolerant a call site is of transient failure.

    max_retries is the number of retries after the first attempt.
    """
    max_retries: int
    retry_interval: float  # seconds

    @property
    def attempts(self) -> int:
        return self.max_retries + 1


NO_RETRY = RetryPolicy(max_retries=0, retry_interval=0)
SHORT_RETRY = RetryPolicy(max_retries=3, retry_interval=0.5)
MEDIUM_RETRY = RetryPolicy(max_retries=30, retry_interval=2)
LONG_RETRY = RetryPolicy(max_retries=120, retry_interval=10)


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
) -> Callable:
    """Decorator factory for retry logic with exponential backoff.

    Args:
        max_attempts: Maximum number of retry attempts
        min_wait: Minimum wait time between retries (seconds)
        max_wait: Maximum wait time between retries (seconds)
        exceptions: Tuple of exception types to retry on
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            retry=retry_if_exception_type(exceptions),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            return await func(*args, **kwargs)  # type: ignore[misc]

        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            retry=retry_if_exception_type(exceptions),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> T:
            return func(*args, **kwargs)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper  # type: ignore[return-value]
        return sync_wrapper

    return decorator


async def try_until(
    policy: RetryPolicy,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    exceptions: tuple = (Exception,),
    **kwargs: Any,
) -> T:
    """Call an async function until it succeeds or the policy is exhausted.

    The last exception is re-raised once all attempts have failed.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.attempts),
        wait=wait_fixed(policy.retry_interval),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await func(*args, **kwargs)
    raise RuntimeError("unreachable")  # pragma: no cover
