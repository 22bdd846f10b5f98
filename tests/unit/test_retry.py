"""Unit tests for async retry with exponential backoff."""

from unittest.mock import AsyncMock

import pytest

from faxocr.pipeline.resilience.retry import RetryConfig, retry_async

FAST = RetryConfig(max_attempts=3, initial_delay_seconds=0, jitter=False)


class TestRetryConfig:
    """Tests for delay computation."""

    def test_exponential_delay_capped(self):
        """Test delays grow exponentially up to the cap."""
        config = RetryConfig(
            initial_delay_seconds=1.0, exponential_base=2, max_delay_seconds=5.0, jitter=False
        )
        assert [config.delay_for(a) for a in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_in_band(self):
        """Test jitter keeps delay within 50%-150% of base."""
        config = RetryConfig(initial_delay_seconds=2.0, jitter=True)
        for _ in range(20):
            assert 1.0 <= config.delay_for(0) <= 3.0


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.mark.asyncio
    async def test_immediate_success(self):
        """Test success on first attempt makes one call."""
        func = AsyncMock(return_value="ok")
        assert await retry_async(func, FAST, lambda e: True, 1, key="v") == "ok"
        func.assert_awaited_once_with(1, key="v")

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        """Test transient failures are retried."""
        func = AsyncMock(side_effect=[TimeoutError("t1"), TimeoutError("t2"), "ok"])
        assert await retry_async(func, FAST, lambda e: True) == "ok"
        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        """Test last exception propagates after max attempts."""
        func = AsyncMock(side_effect=ConnectionError("down"))
        with pytest.raises(ConnectionError):
            await retry_async(func, FAST, lambda e: True)
        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        """Test errors rejected by should_retry are not retried."""
        func = AsyncMock(side_effect=ValueError("bad"))
        with pytest.raises(ValueError):
            await retry_async(func, FAST, lambda e: not isinstance(e, ValueError))
        assert func.await_count == 1
