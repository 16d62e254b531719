"""
Retry-aware error handler for calls to external services
"""

import re
import asyncio
import time
import random
from typing import Callable, Any, Optional, Dict, List, Type
from functools import wraps
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import (
    LegacyLensException, ErrorContext, ExternalServiceException,
    NetworkException, RateLimitException, TimeoutException,
    AuthenticationException, is_retryable_error
)
from ..logging.structured_logger import get_logger, EventType


logger = get_logger(__name__)


class RetryStrategy(Enum):
    FIXED_DELAY = "fixed_delay"
    EXPONENTIAL_BACKOFF = "exponential_backoff"
    LINEAR_BACKOFF = "linear_backoff"
    EXPONENTIAL_BACKOFF_JITTER = "exponential_backoff_jitter"


@dataclass
class RetryConfig:
    """Configuration for retry logic"""
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL_BACKOFF_JITTER
    multiplier: float = 2.0
    jitter_factor: float = 0.1
    retryable_exceptions: List[Type[BaseException]] = field(default_factory=list)
    non_retryable_exceptions: List[Type[BaseException]] = field(default_factory=list)


@dataclass
class ErrorHandlingMetrics:
    total_errors: int = 0
    retries_attempted: int = 0
    successful_retries: int = 0
    failed_retries: int = 0
    errors_by_category: Dict[str, int] = field(default_factory=dict)


class ErrorHandler:
    """
    Runs a coroutine with classification and retries

    Raw exceptions are wrapped into the LegacyLens taxonomy before the retry
    decision, so callers only ever see LegacyLensException subclasses.
    """

    def __init__(self, name: str):
        self.name = name
        self.metrics = ErrorHandlingMetrics()
        self.logger = get_logger(f"error_handler.{name}")

    async def handle_with_retry(
        self,
        func: Callable,
        *args,
        retry_config: Optional[RetryConfig] = None,
        context: Optional[ErrorContext] = None,
        **kwargs
    ) -> Any:
        config = retry_config or RetryConfig()
        context = context or ErrorContext()

        for attempt in range(1, config.max_attempts + 1):
            start_time = time.time()

            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                classified = self._classify_exception(exc, context, func.__name__)
                self.metrics.total_errors += 1
                category_key = classified.category.value
                self.metrics.errors_by_category[category_key] = (
                    self.metrics.errors_by_category.get(category_key, 0) + 1
                )

                if not self._is_retryable(classified, exc, config):
                    raise classified from exc

                if attempt >= config.max_attempts:
                    self.metrics.failed_retries += 1
                    self.logger.error(
                        f"Operation failed after {config.max_attempts} attempts: {classified.message}",
                        event_type=EventType.ERROR_OCCURRED,
                        metadata={
                            "function": func.__name__,
                            "total_attempts": attempt,
                            "error_code": classified.error_code
                        }
                    )
                    raise classified from exc

                retry_delay = self._calculate_retry_delay(classified, attempt, config)
                self.metrics.retries_attempted += 1

                self.logger.warning(
                    f"Operation failed (attempt {attempt}), retrying in {retry_delay:.2f}s: {classified.message}",
                    event_type=EventType.ERROR_OCCURRED,
                    performance_metrics={"execution_time_ms": (time.time() - start_time) * 1000},
                    metadata={
                        "function": func.__name__,
                        "attempt": attempt,
                        "max_attempts": config.max_attempts,
                        "error_category": classified.category.value
                    }
                )

                if retry_delay > 0:
                    await asyncio.sleep(retry_delay)
                continue

            if attempt > 1:
                self.metrics.successful_retries += 1
                self.logger.info(
                    f"Operation succeeded after {attempt} attempts",
                    metadata={"function": func.__name__, "total_attempts": attempt}
                )
            return result

    def _classify_exception(
        self,
        exc: BaseException,
        context: ErrorContext,
        operation: str
    ) -> LegacyLensException:
        if isinstance(exc, LegacyLensException):
            if not exc.context.operation:
                exc.context.operation = operation
            return exc

        exc_str = str(exc).lower()

        if isinstance(exc, (asyncio.TimeoutError, TimeoutError)) or "timeout" in exc_str or "timed out" in exc_str:
            return TimeoutException(operation, 30.0, context=context, cause=exc)

        if isinstance(exc, ConnectionError) or any(
            keyword in exc_str for keyword in ["connection", "network", "unreachable", "refused"]
        ):
            return NetworkException(f"Network error in {operation}: {exc}", context=context, cause=exc)

        if any(keyword in exc_str for keyword in ["unauthorized", "invalid api key", "credentials"]):
            return AuthenticationException(f"Authentication failed in {operation}", context=context, cause=exc)

        if any(keyword in exc_str for keyword in ["rate limit", "too many requests", "quota exceeded"]):
            return RateLimitException(
                f"Rate limit exceeded in {operation}",
                retry_after=self._extract_retry_after(exc_str),
                context=context,
                cause=exc
            )

        return ExternalServiceException(self.name, f"Error in {operation}: {exc}", context=context, cause=exc)

    def _is_retryable(self, classified: LegacyLensException, original: BaseException, config: RetryConfig) -> bool:
        candidates = (classified, original, classified.cause)
        if config.non_retryable_exceptions and any(
            isinstance(candidate, tuple(config.non_retryable_exceptions)) for candidate in candidates
        ):
            return False

        if config.retryable_exceptions and any(
            isinstance(candidate, tuple(config.retryable_exceptions)) for candidate in candidates
        ):
            return True

        return is_retryable_error(classified)

    def _calculate_retry_delay(
        self,
        exc: LegacyLensException,
        attempt: int,
        config: RetryConfig
    ) -> float:
        if exc.retry_after:
            return min(exc.retry_after, config.max_delay_seconds)

        if config.strategy == RetryStrategy.FIXED_DELAY:
            delay = config.base_delay_seconds
        elif config.strategy == RetryStrategy.LINEAR_BACKOFF:
            delay = config.base_delay_seconds * attempt
        elif config.strategy == RetryStrategy.EXPONENTIAL_BACKOFF:
            delay = config.base_delay_seconds * (config.multiplier ** (attempt - 1))
        else:
            base_delay = config.base_delay_seconds * (config.multiplier ** (attempt - 1))
            delay = base_delay + base_delay * config.jitter_factor * (random.random() - 0.5)

        return max(0.0, min(config.max_delay_seconds, delay))

    def _extract_retry_after(self, error_message: str) -> int:
        patterns = [
            r"retry after (\d+)",
            r"wait (\d+) seconds",
            r"try again in (\d+)"
        ]

        for pattern in patterns:
            match = re.search(pattern, error_message)
            if match:
                return int(match.group(1))

        return 60

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "handler_name": self.name,
            "total_errors": self.metrics.total_errors,
            "retries_attempted": self.metrics.retries_attempted,
            "successful_retries": self.metrics.successful_retries,
            "failed_retries": self.metrics.failed_retries,
            "errors_by_category": dict(self.metrics.errors_by_category)
        }


class GlobalErrorHandler:
    """Registry of named error handlers"""

    def __init__(self):
        self.handlers: Dict[str, ErrorHandler] = {}

    def get_handler(self, name: str) -> ErrorHandler:
        if name not in self.handlers:
            self.handlers[name] = ErrorHandler(name)
        return self.handlers[name]

    def get_all_metrics(self) -> Dict[str, Dict[str, Any]]:
        return {name: handler.get_metrics() for name, handler in self.handlers.items()}


# Global error handler instance
global_error_handler = GlobalErrorHandler()


def with_error_handling(
    retry_config: Optional[RetryConfig] = None,
    handler_name: str = "default",
    context: Optional[ErrorContext] = None
):
    """
    Decorator for automatic error classification and retries

    Usage:
        @with_error_handling(RetryConfig(max_attempts=3), handler_name="github")
        async def fetch_tree(...):
            ...
    """
    def decorator(func):
        if not asyncio.iscoroutinefunction(func):
            raise TypeError("with_error_handling only wraps coroutine functions")

        @wraps(func)
        async def wrapper(*args, **kwargs):
            handler = global_error_handler.get_handler(handler_name)
            return await handler.handle_with_retry(
                func, *args,
                retry_config=retry_config,
                context=context,
                **kwargs
            )
        return wrapper
    return decorator
