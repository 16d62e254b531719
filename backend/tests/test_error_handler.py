"""
Unit tests for error classification, retries and HTTP mapping
"""

import pytest
from unittest.mock import AsyncMock, patch

from legacylens.core.error_handling.error_handler import (
    ErrorHandler, RetryConfig, with_error_handling, global_error_handler
)
from legacylens.core.error_handling.exceptions import (
    AuthenticationException, ExternalServiceException, IndexExpiredException, InvalidRepositoryUrlException,
    NetworkException, RateLimitException, ScanNotFoundException, ScanRecordImmutableException,
    TimeoutException, ErrorCategory, http_status_for, is_retryable_error, wrap_external_exception
)

NO_DELAY = RetryConfig(max_attempts=3, base_delay_seconds=0.0, max_delay_seconds=0.0)


class TestErrorHandler:

    def setup_method(self):
        self.handler = ErrorHandler("test")

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        func = AsyncMock(side_effect=[ConnectionError("refused"), ConnectionError("refused"), "ok"])
        func.__name__ = "flaky"

        result = await self.handler.handle_with_retry(func, retry_config=NO_DELAY)

        assert result == "ok"
        assert func.await_count == 3
        assert self.handler.metrics.successful_retries == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        func = AsyncMock(side_effect=ConnectionError("refused"))
        func.__name__ = "down"

        with pytest.raises(NetworkException):
            await self.handler.handle_with_retry(func, retry_config=NO_DELAY)

        assert func.await_count == 3
        assert self.handler.metrics.failed_retries == 1

    @pytest.mark.asyncio
    async def test_non_retryable_category_fails_fast(self):
        func = AsyncMock(side_effect=AuthenticationException("bad key"))
        func.__name__ = "auth"

        with pytest.raises(AuthenticationException):
            await self.handler.handle_with_retry(func, retry_config=NO_DELAY)

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_configured_non_retryable_exception(self):
        func = AsyncMock(side_effect=IndexExpiredException("github:main:acme/widgets"))
        func.__name__ = "query"
        config = RetryConfig(max_attempts=3, base_delay_seconds=0.0,
                             non_retryable_exceptions=[IndexExpiredException])

        with pytest.raises(IndexExpiredException):
            await self.handler.handle_with_retry(func, retry_config=config)

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_raw_exceptions_are_classified(self):
        cases = [
            (TimeoutError("slow"), TimeoutException),
            (RuntimeError("connection reset by peer"), NetworkException),
            (RuntimeError("Invalid API key provided"), AuthenticationException),
            (RuntimeError("Too many requests"), RateLimitException),
            (RuntimeError("something odd"), ExternalServiceException),
        ]
        for raw, expected in cases:
            classified = self.handler._classify_exception(raw, None, "op")
            assert isinstance(classified, expected), raw
            assert classified.cause is raw

    @pytest.mark.asyncio
    async def test_decorator_uses_named_handler(self):
        calls = []

        @with_error_handling(RetryConfig(max_attempts=2), handler_name="decorated")
        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise ConnectionError("refused")
            return "done"

        with patch("legacylens.core.error_handling.error_handler.asyncio.sleep", new=AsyncMock()):
            assert await flaky() == "done"

        assert "decorated" in global_error_handler.get_all_metrics()

    def test_decorator_rejects_sync_functions(self):
        with pytest.raises(TypeError):
            with_error_handling()(lambda: None)


class TestExceptionHelpers:

    def test_http_status_mapping(self):
        assert http_status_for(InvalidRepositoryUrlException("x")) == 400
        assert http_status_for(ScanNotFoundException("id")) == 404
        assert http_status_for(ScanRecordImmutableException("id", "completed")) == 409
        assert http_status_for(RateLimitException("slow down")) == 429
        assert http_status_for(NetworkException("down")) == 502
        assert http_status_for(TimeoutException("op", 1.0)) == 504

    def test_retryable_errors(self):
        assert is_retryable_error(NetworkException("down"))
        assert is_retryable_error(ConnectionError())
        assert not is_retryable_error(AuthenticationException())
        assert not is_retryable_error(ValueError())

    def test_wrap_external_exception(self):
        existing = NetworkException("down")
        assert wrap_external_exception(existing, "svc", "op") is existing
        assert isinstance(wrap_external_exception(TimeoutError(), "svc", "op"), TimeoutException)
        wrapped = wrap_external_exception(ValueError("boom"), "svc", "op")
        assert wrapped.category == ErrorCategory.EXTERNAL_SERVICE

    def test_to_dict(self):
        data = ScanNotFoundException("scan-1").to_dict()
        assert data["error"] is True
        assert data["category"] == "business_logic"
        assert "scan-1" in data["message"]
