"""
Client-side rate limiting for external APIs

Callers reserve the next free slot and sleep until it arrives instead of
failing, so a burst of enrichment calls is spread over time. A call is only
rejected when the wait would exceed ``max_wait_seconds``.
"""

import asyncio
import threading
import time
from collections import deque
from typing import Dict, Optional, Callable, Any, Deque
from dataclasses import dataclass
from functools import wraps

from ..error_handling.exceptions import RateLimitException
from ..logging.structured_logger import get_logger, EventType

logger = get_logger(__name__)


@dataclass
class RateLimitConfig:
    max_requests: int = 100
    time_window_seconds: float = 60.0
    min_interval_seconds: float = 0.0   # Minimum spacing between two calls
    max_wait_seconds: float = 120.0     # Longest a caller may queue for a slot


@dataclass
class RateLimitMetrics:
    total_requests: int = 0
    delayed_requests: int = 0
    rejected_requests: int = 0
    total_wait_seconds: float = 0.0


class RateLimiter:
    """Sliding-window limiter with a minimum interval between calls"""

    def __init__(self, name: str, config: Optional[RateLimitConfig] = None):
        self.name = name
        self.config = config or RateLimitConfig()
        self.metrics = RateLimitMetrics()
        self.slots: Deque[float] = deque()
        self.lock = threading.Lock()

    def reserve(self, now: Optional[float] = None) -> float:
        """Reserve the next slot and return how long to wait for it"""
        now = time.monotonic() if now is None else now

        with self.lock:
            window_start = now - self.config.time_window_seconds
            while self.slots and self.slots[0] <= window_start:
                self.slots.popleft()

            slot = now
            if self.slots and self.config.min_interval_seconds > 0:
                slot = max(slot, self.slots[-1] + self.config.min_interval_seconds)
            if len(self.slots) >= self.config.max_requests:
                slot = max(slot, self.slots[-self.config.max_requests] + self.config.time_window_seconds)

            wait = slot - now
            self.metrics.total_requests += 1
            if wait > self.config.max_wait_seconds:
                self.metrics.rejected_requests += 1
                raise RateLimitException(
                    f"Rate limit for '{self.name}' would require waiting {wait:.1f}s",
                    retry_after=wait
                )

            self.slots.append(slot)
            if wait > 0:
                self.metrics.delayed_requests += 1
                self.metrics.total_wait_seconds += wait
            return wait

    async def acquire(self):
        wait = self.reserve()
        if wait > 0:
            logger.debug(
                f"Rate limiter '{self.name}' delaying call by {wait:.2f}s",
                event_type=EventType.EXTERNAL_SERVICE
            )
            await asyncio.sleep(wait)

    async def call_with_rate_limit(self, func: Callable, *args, **kwargs) -> Any:
        await self.acquire()
        if asyncio.iscoroutinefunction(func):
            return await func(*args, **kwargs)
        return func(*args, **kwargs)

    def get_metrics(self) -> Dict[str, Any]:
        with self.lock:
            in_window = len(self.slots)
        return {
            "name": self.name,
            "config": {
                "max_requests": self.config.max_requests,
                "time_window_seconds": self.config.time_window_seconds,
                "min_interval_seconds": self.config.min_interval_seconds,
                "max_wait_seconds": self.config.max_wait_seconds
            },
            "metrics": {
                "total_requests": self.metrics.total_requests,
                "delayed_requests": self.metrics.delayed_requests,
                "rejected_requests": self.metrics.rejected_requests,
                "total_wait_seconds": round(self.metrics.total_wait_seconds, 3),
                "requests_in_window": in_window
            }
        }

    def reset(self):
        with self.lock:
            self.slots.clear()
            self.metrics = RateLimitMetrics()


class RateLimiterManager:
    """One limiter per external service name"""

    def __init__(self):
        self.limiters: Dict[str, RateLimiter] = {}

    def get_rate_limiter(self, name: str, config: Optional[RateLimitConfig] = None) -> RateLimiter:
        if name not in self.limiters:
            self.limiters[name] = RateLimiter(name, config)
            logger.debug(f"Created rate limiter for service '{name}'")
        return self.limiters[name]

    async def call_with_rate_limit(
        self,
        service_name: str,
        func: Callable,
        *args,
        config: Optional[RateLimitConfig] = None,
        **kwargs
    ) -> Any:
        limiter = self.get_rate_limiter(service_name, config)
        return await limiter.call_with_rate_limit(func, *args, **kwargs)

    def get_all_metrics(self) -> Dict[str, Dict[str, Any]]:
        return {name: limiter.get_metrics() for name, limiter in self.limiters.items()}

    def reset_all(self):
        for limiter in self.limiters.values():
            limiter.reset()


# Global rate limiter manager
rate_limiter_manager = RateLimiterManager()


def rate_limited(service_name: str, config: Optional[RateLimitConfig] = None):
    """
    Decorator applying a named rate limiter

    Usage:
        @rate_limited("openai_api", RateLimitConfig(max_requests=50))
        async def call_openai():
            ...
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await rate_limiter_manager.call_with_rate_limit(
                service_name, func, *args, config=config, **kwargs
            )
        return wrapper
    return decorator
