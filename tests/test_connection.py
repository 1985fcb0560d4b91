"""Tests for connection utilities."""
import pytest
from bigip_onboard.utils.connection import (
    with_retry,
    try_until,
    RetryPolicy,
    NO_RETRY,
    SHORT_RETRY,
    RETRYABLE_EXCEPTIONS,
)

FAST = RetryPolicy(max_retries=2, retry_interval=0)


class TestWithRetry:
    """Tests for retry decorator."""

    @pytest.mark.asyncio
    async def test_async_success_no_retry(self):
        """Successful async function doesn't retry."""
        call_count = 0

        @with_retry(max_attempts=3)
        async def succeeding_func():
            nonlocal call_count
            call_count += 1
            return "success"

        result = await succeeding_func()
        assert result == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_async_retry_then_success(self):
        """Async function retries on failure then succeeds."""
        call_count = 0

        @with_retry(max_attempts=3, min_wait=0.01, max_wait=0.1)
        async def failing_then_succeeding():
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise ConnectionRefusedError("Connection refused")
            return "success"

        result = await failing_then_succeeding()
        assert result == "success"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_async_max_retries_exceeded(self):
        """Async function raises after max retries."""
        call_count = 0

        @with_retry(max_attempts=3, min_wait=0.01, max_wait=0.1)
        async def always_failing():
            nonlocal call_count
            call_count += 1
            raise TimeoutError("Always times out")

        with pytest.raises(TimeoutError):
            await always_failing()
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_exception(self):
        """Non-retryable exceptions are not retried."""
        call_count = 0

        @with_retry(max_attempts=3, exceptions=(ConnectionRefusedError,))
        async def raising_value_error():
            nonlocal call_count
            call_count += 1
            raise ValueError("Not retryable")

        with pytest.raises(ValueError):
            await raising_value_error()
        assert call_count == 1

    def test_os_error_is_retryable(self):
        """Socket-level failures are retried."""
        assert OSError in RETRYABLE_EXCEPTIONS
        assert ConnectionResetError in RETRYABLE_EXCEPTIONS


class TestRetryPolicy:
    """Tests for retry policies."""

    def test_attempts_include_first_call(self):
        assert NO_RETRY.attempts == 1
        assert SHORT_RETRY.attempts == 4

    def test_policies_are_frozen(self):
        """Shared policies cannot be changed by a call site."""
        with pytest.raises(AttributeError):
            SHORT_RETRY.max_retries = 10


class TestTryUntil:
    """Tests for the polling helper."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        call_count = 0

        async def flaky(value):
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise RuntimeError("not yet")
            return value

        assert await try_until(FAST, flaky, "done") == "done"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_reraises_last_error(self):
        """The last failure surfaces once the policy is exhausted."""
        call_count = 0

        async def never():
            nonlocal call_count
            call_count += 1
            raise RuntimeError(f"attempt {call_count}")

        with pytest.raises(RuntimeError, match="attempt 3"):
            await try_until(FAST, never)
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_unlisted_exception_not_retried(self):
        call_count = 0

        async def broken():
            nonlocal call_count
            call_count += 1
            raise KeyError("missing")

        with pytest.raises(KeyError):
            await try_until(FAST, broken, exceptions=(RuntimeError,))
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_no_retry_calls_once(self):
        call_count = 0

        async def failing():
            nonlocal call_count
            call_count += 1
            raise RuntimeError("fail")

        with pytest.raises(RuntimeError):
            await try_until(NO_RETRY, failing)
        assert call_count == 1
