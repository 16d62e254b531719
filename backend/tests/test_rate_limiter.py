"""
Unit tests for Rate Limiter implementation
"""

import pytest
from unittest.mock import AsyncMock, patch

from legacylens.core.error_handling.exceptions import RateLimitException
from legacylens.core.resilience.rate_limiter import (
    RateLimiter, RateLimitConfig, rate_limiter_manager, rate_limited
)


class TestRateLimiter:
    """Test slot reservation"""

    def test_calls_within_limit_do_not_wait(self):
        limiter = RateLimiter("test", RateLimitConfig(max_requests=3, time_window_seconds=10))

        waits = [limiter.reserve(now=100.0) for _ in range(3)]

        assert waits == [0.0, 0.0, 0.0]
        assert limiter.metrics.delayed_requests == 0

    def test_full_window_delays_next_call(self):
        """The fourth call waits until the first slot leaves the window"""
        limiter = RateLimiter("test", RateLimitConfig(max_requests=3, time_window_seconds=10))
        for offset in (0.0, 1.0, 2.0):
            limiter.reserve(now=100.0 + offset)

        assert limiter.reserve(now=103.0) == pytest.approx(7.0)
        assert limiter.metrics.delayed_requests == 1

    def test_window_slides(self):
        """Old slots stop counting once the window has passed"""
        limiter = RateLimiter("test", RateLimitConfig(max_requests=2, time_window_seconds=10))
        limiter.reserve(now=100.0)
        limiter.reserve(now=101.0)

        assert limiter.reserve(now=111.0) == 0.0

    def test_min_interval_spaces_calls(self):
        """Test minimum spacing between calls"""
        limiter = RateLimiter("test", RateLimitConfig(max_requests=100, min_interval_seconds=0.5))

        waits = [limiter.reserve(now=50.0) for _ in range(3)]

        assert waits == [pytest.approx(0.0), pytest.approx(0.5), pytest.approx(1.0)]

    def test_rejects_when_wait_is_too_long(self):
        """Test rejection beyond max_wait_seconds"""
        limiter = RateLimiter("test", RateLimitConfig(max_requests=1, time_window_seconds=60, max_wait_seconds=5))
        limiter.reserve(now=0.0)

        with pytest.raises(RateLimitException) as exc_info:
            limiter.reserve(now=1.0)

        assert exc_info.value.retry_after == pytest.approx(59.0)
        assert limiter.metrics.rejected_requests == 1

    def test_reset_and_metrics(self):
        limiter = RateLimiter("test", RateLimitConfig(max_requests=5))
        limiter.reserve(now=1.0)

        assert limiter.get_metrics()["metrics"]["requests_in_window"] == 1
        limiter.reset()
        assert limiter.get_metrics()["metrics"]["total_requests"] == 0

    @pytest.mark.asyncio
    async def test_acquire_sleeps_for_reserved_wait(self):
        limiter = RateLimiter("test", RateLimitConfig(max_requests=100, min_interval_seconds=2.0))
        sleep = AsyncMock()

        with patch("legacylens.core.resilience.rate_limiter.asyncio.sleep", sleep):
            await limiter.acquire()
            await limiter.acquire()

        assert sleep.await_count == 1
        assert sleep.await_args.args[0] == pytest.approx(2.0, abs=0.1)


class TestRateLimitedDecorator:
    """Test the decorator and the shared manager"""

    @pytest.mark.asyncio
    async def test_decorator_passes_through(self):
        @rate_limited("decorated_api", RateLimitConfig(max_requests=10))
        async def call_api(value):
            return value * 2

        assert await call_api(4) == 8
        limiter = rate_limiter_manager.limiters["decorated_api"]
        assert limiter.metrics.total_requests == 1

    @pytest.mark.asyncio
    async def test_sync_function(self):
        result = await rate_limiter_manager.call_with_rate_limit("sync_api", lambda: "done")
        assert result == "done"

    def test_manager_reuses_limiters(self):
        first = rate_limiter_manager.get_rate_limiter("shared")
        second = rate_limiter_manager.get_rate_limiter("shared", RateLimitConfig(max_requests=1))

        assert first is second
        assert first.config.max_requests == 100
        assert "shared" in rate_limiter_manager.get_all_metrics()
