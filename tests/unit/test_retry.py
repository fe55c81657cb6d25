"""
Tests for retry with exponential backoff (retry.py).
"""

import pytest
from unittest.mock import AsyncMock, Mock, patch

from src.utils.retry import (
    RetryExhausted,
    backoff_delay,
    retry_with_backoff,
    retry_with_fixed_delay,
    with_retry,
)


@pytest.fixture
def no_sleep():
    with patch('src.utils.retry.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


class TestBackoffDelay:
    """Test delay calculation."""

    def test_doubles_each_attempt(self):
        assert backoff_delay(1) == 2.0
        assert backoff_delay(2) == 4.0
        assert backoff_delay(3) == 8.0

    def test_capped_at_max_delay(self):
        assert backoff_delay(10, max_delay=30.0) == 30.0

    def test_jitter_stays_in_range(self):
        for _ in range(20):
            delay = backoff_delay(1, jitter=True)
            assert 1.0 <= delay <= 3.0


class TestRetryWithBackoff:
    """Test retry_with_backoff."""

    @pytest.mark.asyncio
    async def test_success_first_try(self, no_sleep):
        func = AsyncMock(return_value="ok")

        assert await retry_with_backoff(func, "a", key="b") == "ok"
        func.assert_awaited_once_with("a", key="b")
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_success_after_failures(self, no_sleep):
        func = AsyncMock(side_effect=[ConnectionError("down"), ConnectionError("down"), "ok"])

        assert await retry_with_backoff(func, max_attempts=3) == "ok"
        assert func.await_count == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_exhausted(self, no_sleep):
        func = AsyncMock(side_effect=TimeoutError("slow"))

        with pytest.raises(RetryExhausted) as exc_info:
            await retry_with_backoff(func, max_attempts=2)

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_exception, TimeoutError)

    @pytest.mark.asyncio
    async def test_skip_on_raises_immediately(self, no_sleep):
        func = AsyncMock(side_effect=ValueError("bad input"))

        with pytest.raises(ValueError):
            await retry_with_backoff(func, max_attempts=3, skip_on=(ValueError,))

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_should_retry_predicate(self, no_sleep):
        func = AsyncMock(side_effect=RuntimeError("permanent"))

        with pytest.raises(RuntimeError):
            await retry_with_backoff(func, max_attempts=3, should_retry=lambda e: False)

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_on_retry_callback(self, no_sleep):
        func = AsyncMock(side_effect=[KeyError("x"), "ok"])
        callback = Mock()

        await retry_with_backoff(func, on_retry=callback)

        callback.assert_called_once()
        assert callback.call_args.args[0] == 1

    @pytest.mark.asyncio
    async def test_sync_function(self, no_sleep):
        assert await retry_with_backoff(lambda x: x * 2, 21) == 42

    @pytest.mark.asyncio
    async def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            await retry_with_backoff(AsyncMock(), max_attempts=0)


class TestFixedDelayAndDecorator:
    """Test retry_with_fixed_delay and @with_retry."""

    @pytest.mark.asyncio
    async def test_fixed_delay(self, no_sleep):
        func = AsyncMock(side_effect=[OSError("x"), OSError("x"), "done"])

        assert await retry_with_fixed_delay(func, delay=0.5) == "done"
        assert [c.args[0] for c in no_sleep.await_args_list] == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_decorator(self, no_sleep):
        calls = []

        @with_retry(max_attempts=2)
        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise ConnectionError("first")
            return "second"

        assert await flaky() == "second"
        assert len(calls) == 2
        assert flaky.__name__ == "flaky"
