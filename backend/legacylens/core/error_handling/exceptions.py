"""
Exception taxonomy for LegacyLens
"""

import traceback
from typing import Optional, Dict, Any
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime


class ErrorCategory(Enum):
    """Categories of errors for classification and handling"""
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    BUSINESS_LOGIC = "business_logic"
    EXTERNAL_SERVICE = "external_service"
    NETWORK = "network"
    STORAGE = "storage"
    RATE_LIMITING = "rate_limiting"
    CIRCUIT_BREAKER = "circuit_breaker"
    TIMEOUT = "timeout"
    SYSTEM = "system"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Context information for errors"""
    correlation_id: Optional[str] = None
    request_id: Optional[str] = None
    scan_id: Optional[str] = None
    operation: Optional[str] = None
    component: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class LegacyLensException(Exception):
    """Base exception for all LegacyLens errors"""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        error_code: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
        retry_after: Optional[float] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.error_code = error_code or self._generate_error_code()
        self.context = context or ErrorContext()
        self.cause = cause
        self.retry_after = retry_after
        self.user_message = user_message or self._get_user_friendly_message()
        self.timestamp = datetime.utcnow()
        self.traceback_str = traceback.format_exc()

    def _generate_error_code(self) -> str:
        class_name = self.__class__.__name__
        return f"{self.category.value.upper()}_{class_name.upper().replace('EXCEPTION', '')}"

    def _get_user_friendly_message(self) -> str:
        user_messages = {
            ErrorCategory.AUTHENTICATION: "Authentication with an upstream service failed.",
            ErrorCategory.VALIDATION: "The provided data is invalid. Please check your input.",
            ErrorCategory.EXTERNAL_SERVICE: "An external service is currently unavailable. Please try again later.",
            ErrorCategory.RATE_LIMITING: "Too many requests. Please wait before trying again.",
            ErrorCategory.TIMEOUT: "The operation timed out. Please try again.",
            ErrorCategory.STORAGE: "Scan storage is temporarily unavailable.",
            ErrorCategory.SYSTEM: "A system error occurred."
        }
        return user_messages.get(self.category, "An unexpected error occurred. Please try again.")

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "category": self.category.value,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "context": {
                "correlation_id": self.context.correlation_id,
                "request_id": self.context.request_id,
                "scan_id": self.context.scan_id,
                "operation": self.context.operation
            },
            "retry_after": self.retry_after,
            "caused_by": str(self.cause) if self.cause else None
        }


# Authentication
class AuthenticationException(LegacyLensException):
    """Upstream credentials rejected"""

    def __init__(self, message: str = "Authentication failed", **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.AUTHENTICATION,
            severity=ErrorSeverity.HIGH,
            **kwargs
        )


# Validation
class ValidationException(LegacyLensException):

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            **kwargs
        )


class InvalidRepositoryUrlException(ValidationException):
    """Repository URL does not look like a GitHub repository"""

    def __init__(self, repo_url: str, **kwargs):
        super().__init__(
            "Invalid GitHub repository URL. Expected format: https://github.com/owner/repo",
            **kwargs
        )
        self.repo_url = repo_url


# Business logic / record lifecycle
class BusinessLogicException(LegacyLensException):

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.BUSINESS_LOGIC,
            severity=ErrorSeverity.MEDIUM,
            **kwargs
        )


class ScanNotFoundException(BusinessLogicException):

    def __init__(self, scan_id: str, **kwargs):
        super().__init__(f"Scan with ID '{scan_id}' not found", **kwargs)
        self.scan_id = scan_id


class DuplicateScanException(BusinessLogicException):

    def __init__(self, scan_id: str, **kwargs):
        super().__init__(f"Scan with ID '{scan_id}' already exists", **kwargs)
        self.scan_id = scan_id


class ScanRecordImmutableException(BusinessLogicException):
    """Raised when something tries to change a completed or failed record"""

    def __init__(self, scan_id: str, status: str, **kwargs):
        super().__init__(f"Scan '{scan_id}' is {status} and can no longer be modified", **kwargs)
        self.scan_id = scan_id
        self.status = status


class ScanNotFinishedException(BusinessLogicException):

    def __init__(self, scan_id: str, **kwargs):
        super().__init__(f"Scan '{scan_id}' has not completed yet", **kwargs)
        self.scan_id = scan_id


# External services
class ExternalServiceException(LegacyLensException):

    def __init__(self, service_name: str, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.EXTERNAL_SERVICE)
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        super().__init__(f"External service '{service_name}': {message}", **kwargs)
        self.service_name = service_name


class GitHubServiceException(ExternalServiceException):

    def __init__(self, message: str = "GitHub API error", **kwargs):
        super().__init__("github", message, **kwargs)


class GreptileServiceException(ExternalServiceException):

    def __init__(self, message: str = "Greptile API error", **kwargs):
        super().__init__("greptile", message, **kwargs)


class OpenAIServiceException(ExternalServiceException):

    def __init__(self, message: str = "OpenAI API error", **kwargs):
        super().__init__("openai", message, **kwargs)


class RepositoryNotFoundException(ExternalServiceException):
    """Upstream reports the repository as missing or private"""

    def __init__(self, service_name: str, repository: str, **kwargs):
        super().__init__(
            service_name,
            f"Repository '{repository}' not found. Make sure it's public or you have access.",
            category=ErrorCategory.BUSINESS_LOGIC,
            severity=ErrorSeverity.MEDIUM,
            **kwargs
        )
        self.repository = repository


class IndexExpiredException(GreptileServiceException):
    """The semantic index for a repository went stale (HTTP 410)"""

    def __init__(self, repository_id: str, **kwargs):
        super().__init__(f"Index for '{repository_id}' has expired", **kwargs)
        self.repository_id = repository_id


# Network
class NetworkException(LegacyLensException):

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.HIGH,
            **kwargs
        )


# Storage
class StorageException(LegacyLensException):

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.STORAGE,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


# Rate limiting
class RateLimitException(LegacyLensException):

    def __init__(self, message: str, retry_after: float = 60, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.RATE_LIMITING,
            severity=ErrorSeverity.MEDIUM,
            retry_after=retry_after,
            **kwargs
        )


# Circuit breaker
class CircuitBreakerException(LegacyLensException):

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CIRCUIT_BREAKER,
            severity=ErrorSeverity.HIGH,
            **kwargs
        )


class CircuitOpenException(CircuitBreakerException):

    def __init__(self, service: str, retry_after: float = 60, **kwargs):
        super().__init__(f"Circuit breaker for '{service}' is open", retry_after=retry_after, **kwargs)
        self.service = service


# Timeouts
class TimeoutException(LegacyLensException):

    def __init__(self, operation: str, timeout: float, **kwargs):
        super().__init__(
            f"Operation '{operation}' timed out after {timeout}s",
            category=ErrorCategory.TIMEOUT,
            severity=ErrorSeverity.HIGH,
            **kwargs
        )
        self.timeout = timeout


class IndexingTimeoutException(TimeoutException):

    def __init__(self, repository_id: str, timeout: float, **kwargs):
        super().__init__(f"Indexing {repository_id}", timeout, **kwargs)
        self.repository_id = repository_id


# System
class SystemException(LegacyLensException):

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.SYSTEM,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class TaskLaunchException(SystemException):
    """The background pipeline task could not be scheduled"""

    def __init__(self, scan_id: str, **kwargs):
        super().__init__(f"Failed to launch scan '{scan_id}'", **kwargs)
        self.scan_id = scan_id


def wrap_external_exception(
    exc: BaseException,
    service_name: str,
    operation: str,
    context: Optional[ErrorContext] = None
) -> LegacyLensException:
    """Wrap third-party exceptions in LegacyLens exceptions"""
    if isinstance(exc, LegacyLensException):
        return exc

    message = str(exc).lower()
    if isinstance(exc, TimeoutError):
        return TimeoutException(operation, 30.0, context=context, cause=exc)
    if isinstance(exc, ConnectionError):
        return NetworkException(f"Connection error during {operation}: {exc}", context=context, cause=exc)
    if "authentication" in message or "unauthorized" in message:
        return AuthenticationException(f"Authentication failed for {service_name}", context=context, cause=exc)
    return ExternalServiceException(service_name, str(exc), context=context, cause=exc)


def is_retryable_error(exc: BaseException) -> bool:
    """Check if an error is worth retrying"""
    retryable_categories = {
        ErrorCategory.NETWORK,
        ErrorCategory.EXTERNAL_SERVICE,
        ErrorCategory.TIMEOUT,
        ErrorCategory.RATE_LIMITING
    }

    if isinstance(exc, LegacyLensException):
        return exc.category in retryable_categories

    return isinstance(exc, (ConnectionError, TimeoutError))


def http_status_for(exc: LegacyLensException) -> int:
    """HTTP status code used when an exception escapes a route"""
    if isinstance(exc, (ScanNotFoundException, RepositoryNotFoundException)):
        return 404
    if isinstance(exc, (DuplicateScanException, ScanRecordImmutableException, ScanNotFinishedException)):
        return 409

    status_by_category = {
        ErrorCategory.VALIDATION: 400,
        ErrorCategory.AUTHENTICATION: 502,
        ErrorCategory.BUSINESS_LOGIC: 409,
        ErrorCategory.EXTERNAL_SERVICE: 502,
        ErrorCategory.NETWORK: 502,
        ErrorCategory.RATE_LIMITING: 429,
        ErrorCategory.CIRCUIT_BREAKER: 503,
        ErrorCategory.TIMEOUT: 504,
    }
    return status_by_category.get(exc.category, 500)
