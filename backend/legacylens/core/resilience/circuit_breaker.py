"""
Circuit breaker for calls to external services (OpenAI, Greptile, GitHub)
"""

import asyncio
import time
from typing import Callable, Any, Optional, Dict
from datetime import datetime
from enum import Enum
from dataclasses import dataclass
from functools import wraps

from ..error_handling.exceptions import CircuitOpenException, TimeoutException
from ..logging.structured_logger import get_logger, EventType

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Calls fail fast
    HALF_OPEN = "half_open"  # Probing whether the service is back


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5      # Consecutive failures that open the circuit
    recovery_timeout: float = 60.0  # Seconds before a half-open trial call
    success_threshold: int = 3      # Successes needed to close from half-open
    timeout: float = 30.0           # Per-call timeout in seconds


@dataclass
class CircuitBreakerMetrics:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    timeouts: int = 0
    rejected_requests: int = 0
    circuit_open_count: int = 0
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    last_failure_time: Optional[datetime] = None
    last_success_time: Optional[datetime] = None


class CircuitBreaker:
    """
    Three-state circuit breaker

    Every exception raised by the wrapped call counts as a failure. Timeouts
    are reported as TimeoutException so the error handler can retry them.
    """

    def __init__(self, name: str, config: Optional[CircuitBreakerConfig] = None):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.metrics = CircuitBreakerMetrics()
        self.state = CircuitState.CLOSED
        self.last_failure_time: Optional[float] = None
        self.lock = asyncio.Lock()

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        async with self.lock:
            self._check_circuit_state()
            self.metrics.total_requests += 1

        try:
            if asyncio.iscoroutinefunction(func):
                result = await asyncio.wait_for(func(*args, **kwargs), timeout=self.config.timeout)
            else:
                loop = asyncio.get_running_loop()
                result = await asyncio.wait_for(
                    loop.run_in_executor(None, lambda: func(*args, **kwargs)),
                    timeout=self.config.timeout
                )
        except asyncio.TimeoutError as exc:
            self.metrics.timeouts += 1
            await self._record_failure(exc)
            raise TimeoutException(f"{self.name} call", self.config.timeout, cause=exc) from exc
        except Exception as exc:
            await self._record_failure(exc)
            raise

        await self._record_success()
        return result

    def _check_circuit_state(self):
        if self.state != CircuitState.OPEN:
            return

        elapsed = time.time() - (self.last_failure_time or 0)
        if elapsed >= self.config.recovery_timeout:
            self.state = CircuitState.HALF_OPEN
            self.metrics.consecutive_successes = 0
            logger.info(f"Circuit breaker '{self.name}' transitioning to HALF_OPEN")
            return

        self.metrics.rejected_requests += 1
        raise CircuitOpenException(self.name, retry_after=self.config.recovery_timeout - elapsed)

    async def _record_success(self):
        async with self.lock:
            self.metrics.successful_requests += 1
            self.metrics.consecutive_failures = 0
            self.metrics.consecutive_successes += 1
            self.metrics.last_success_time = datetime.utcnow()

            if (self.state == CircuitState.HALF_OPEN and
                    self.metrics.consecutive_successes >= self.config.success_threshold):
                self.state = CircuitState.CLOSED
                logger.info(f"Circuit breaker '{self.name}' closed after {self.metrics.consecutive_successes} successes")

    async def _record_failure(self, exception: BaseException):
        async with self.lock:
            self.metrics.failed_requests += 1
            self.metrics.consecutive_successes = 0
            self.metrics.consecutive_failures += 1
            self.metrics.last_failure_time = datetime.utcnow()
            self.last_failure_time = time.time()

            logger.warning(
                f"Circuit breaker '{self.name}' recorded failure: {exception!r}",
                event_type=EventType.EXTERNAL_SERVICE,
                metadata={"breaker": self.name, "consecutive_failures": self.metrics.consecutive_failures}
            )

            if (self.state == CircuitState.CLOSED and
                    self.metrics.consecutive_failures >= self.config.failure_threshold):
                self.state = CircuitState.OPEN
                self.metrics.circuit_open_count += 1
                logger.error(
                    f"Circuit breaker '{self.name}' OPENED after {self.metrics.consecutive_failures} consecutive failures",
                    event_type=EventType.ERROR_OCCURRED
                )
            elif self.state == CircuitState.HALF_OPEN:
                self.state = CircuitState.OPEN
                self.metrics.circuit_open_count += 1
                logger.error(f"Circuit breaker '{self.name}' reopened after a failed trial call",
                             event_type=EventType.ERROR_OCCURRED)

    def get_metrics(self) -> Dict[str, Any]:
        success_rate = (
            self.metrics.successful_requests / self.metrics.total_requests * 100
            if self.metrics.total_requests > 0 else 0
        )

        return {
            "name": self.name,
            "state": self.state.value,
            "config": {
                "failure_threshold": self.config.failure_threshold,
                "recovery_timeout": self.config.recovery_timeout,
                "success_threshold": self.config.success_threshold,
                "timeout": self.config.timeout
            },
            "metrics": {
                "total_requests": self.metrics.total_requests,
                "successful_requests": self.metrics.successful_requests,
                "failed_requests": self.metrics.failed_requests,
                "timeouts": self.metrics.timeouts,
                "rejected_requests": self.metrics.rejected_requests,
                "success_rate_percent": round(success_rate, 2),
                "consecutive_failures": self.metrics.consecutive_failures,
                "circuit_open_count": self.metrics.circuit_open_count,
                "last_failure_time": (
                    self.metrics.last_failure_time.isoformat()
                    if self.metrics.last_failure_time else None
                ),
                "last_success_time": (
                    self.metrics.last_success_time.isoformat()
                    if self.metrics.last_success_time else None
                )
            }
        }

    async def reset(self):
        async with self.lock:
            self.state = CircuitState.CLOSED
            self.metrics = CircuitBreakerMetrics()
            self.last_failure_time = None
            logger.info(f"Circuit breaker '{self.name}' reset")

    async def force_open(self):
        async with self.lock:
            self.state = CircuitState.OPEN
            self.last_failure_time = time.time()
            self.metrics.circuit_open_count += 1
            logger.warning(f"Circuit breaker '{self.name}' manually forced OPEN")


class CircuitBreakerManager:
    """One breaker per external service name"""

    def __init__(self):
        self.breakers: Dict[str, CircuitBreaker] = {}

    def get_circuit_breaker(self, name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
        if name not in self.breakers:
            self.breakers[name] = CircuitBreaker(name, config)
            logger.debug(f"Created circuit breaker for service '{name}'")
        return self.breakers[name]

    async def call_with_circuit_breaker(
        self,
        service_name: str,
        func: Callable,
        *args,
        config: Optional[CircuitBreakerConfig] = None,
        **kwargs
    ) -> Any:
        breaker = self.get_circuit_breaker(service_name, config)
        return await breaker.call(func, *args, **kwargs)

    def get_all_metrics(self) -> Dict[str, Dict[str, Any]]:
        return {name: breaker.get_metrics() for name, breaker in self.breakers.items()}

    async def reset_all(self):
        for breaker in self.breakers.values():
            await breaker.reset()


# Global circuit breaker manager
circuit_breaker_manager = CircuitBreakerManager()


def circuit_breaker(service_name: str, config: Optional[CircuitBreakerConfig] = None):
    """
    Decorator applying a named circuit breaker

    Usage:
        @circuit_breaker("openai_service")
        async def call_openai_api():
            ...
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await circuit_breaker_manager.call_with_circuit_breaker(
                service_name, func, *args, config=config, **kwargs
            )
        return wrapper
    return decorator
