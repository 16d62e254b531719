"""
Unit tests for Circuit Breaker implementation
"""

import pytest
import asyncio

from legacylens.core.error_handling.exceptions import CircuitOpenException, TimeoutException
from legacylens.core.resilience.circuit_breaker import (
    CircuitBreaker, CircuitBreakerConfig, CircuitState,
    circuit_breaker_manager, circuit_breaker
)


class TestCircuitBreaker:
    """Test CircuitBreaker functionality"""

    def setup_method(self):
        """Setup test fixtures"""
        self.config = CircuitBreakerConfig(
            failure_threshold=3,
            recovery_timeout=0.2,
            success_threshold=2,
            timeout=0.5
        )
        self.breaker = CircuitBreaker("test_service", self.config)

    async def _open_circuit(self):
        async def failing_func():
            raise ValueError("Test failure")

        for _ in range(self.config.failure_threshold):
            with pytest.raises(ValueError):
                await self.breaker.call(failing_func)

    @pytest.mark.asyncio
    async def test_successful_call(self):
        """Test successful function call through circuit breaker"""
        async def success_func():
            return "success"

        result = await self.breaker.call(success_func)

        assert result == "success"
        assert self.breaker.state == CircuitState.CLOSED
        assert self.breaker.metrics.successful_requests == 1
        assert self.breaker.metrics.failed_requests == 0

    @pytest.mark.asyncio
    async def test_circuit_opens_on_failures(self):
        """Test circuit breaker opens after threshold failures"""
        await self._open_circuit()

        assert self.breaker.state == CircuitState.OPEN
        assert self.breaker.metrics.failed_requests == self.config.failure_threshold

        async def never_called():
            raise AssertionError("call should have been rejected")

        with pytest.raises(CircuitOpenException):
            await self.breaker.call(never_called)
        assert self.breaker.metrics.rejected_requests == 1

    @pytest.mark.asyncio
    async def test_success_resets_consecutive_failures(self):
        """Failures must be consecutive to open the circuit"""
        async def failing_func():
            raise ValueError("Test failure")

        async def success_func():
            return "ok"

        for _ in range(2):
            with pytest.raises(ValueError):
                await self.breaker.call(failing_func)
        await self.breaker.call(success_func)
        with pytest.raises(ValueError):
            await self.breaker.call(failing_func)

        assert self.breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_closes_after_successes(self):
        """Test recovery through half-open to closed"""
        await self._open_circuit()
        await asyncio.sleep(self.config.recovery_timeout + 0.05)

        async def success_func():
            return "recovered"

        assert await self.breaker.call(success_func) == "recovered"
        assert self.breaker.state == CircuitState.HALF_OPEN

        await self.breaker.call(success_func)
        assert self.breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failed_trial_call_reopens(self):
        """A failure while half-open reopens the circuit"""
        await self._open_circuit()
        await asyncio.sleep(self.config.recovery_timeout + 0.05)

        async def failing_func():
            raise ValueError("still down")

        with pytest.raises(ValueError):
            await self.breaker.call(failing_func)

        assert self.breaker.state == CircuitState.OPEN
        assert self.breaker.metrics.circuit_open_count == 2

    @pytest.mark.asyncio
    async def test_timeout_raises_timeout_exception(self):
        """Slow calls are cut off and counted as failures"""
        async def slow_func():
            await asyncio.sleep(2)

        with pytest.raises(TimeoutException):
            await self.breaker.call(slow_func)

        assert self.breaker.metrics.timeouts == 1
        assert self.breaker.metrics.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_sync_functions_run_in_executor(self):
        """Plain functions are supported"""
        assert await self.breaker.call(lambda x: x * 2, 21) == 42

    @pytest.mark.asyncio
    async def test_reset_and_force_open(self):
        """Manual state control"""
        await self.breaker.force_open()
        assert self.breaker.state == CircuitState.OPEN

        await self.breaker.reset()
        assert self.breaker.state == CircuitState.CLOSED
        assert self.breaker.metrics.total_requests == 0

    @pytest.mark.asyncio
    async def test_metrics_snapshot(self):
        """Test metrics reporting"""
        async def success_func():
            return "ok"

        await self.breaker.call(success_func)
        metrics = self.breaker.get_metrics()

        assert metrics["name"] == "test_service"
        assert metrics["state"] == "closed"
        assert metrics["config"]["failure_threshold"] == 3
        assert metrics["metrics"]["success_rate_percent"] == 100.0


class TestCircuitBreakerDecorator:
    """Test the decorator and the shared manager"""

    @pytest.mark.asyncio
    async def test_decorator_registers_named_breaker(self):
        @circuit_breaker("decorated_service", CircuitBreakerConfig(failure_threshold=1))
        async def call_service(value):
            if value < 0:
                raise ValueError("negative")
            return value

        assert await call_service(5) == 5
        with pytest.raises(ValueError):
            await call_service(-1)
        with pytest.raises(CircuitOpenException):
            await call_service(5)

        breaker = circuit_breaker_manager.breakers["decorated_service"]
        assert breaker.state == CircuitState.OPEN
        assert "decorated_service" in circuit_breaker_manager.get_all_metrics()

    def test_manager_reuses_breakers(self):
        first = circuit_breaker_manager.get_circuit_breaker("shared")
        second = circuit_breaker_manager.get_circuit_breaker("shared", CircuitBreakerConfig(failure_threshold=1))

        assert first is second
        assert first.config.failure_threshold == 5
