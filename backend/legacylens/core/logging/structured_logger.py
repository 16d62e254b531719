"""
Structured JSON logging with correlation and scan context
"""

import json
import uuid
import time
import logging
import asyncio
import threading
import traceback
from typing import Dict, Any, Optional, Union, List
from datetime import datetime
from enum import Enum
from dataclasses import dataclass, field, asdict
from contextvars import ContextVar
from functools import wraps

# Context variables for correlation tracking
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
request_id: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
scan_id: ContextVar[Optional[str]] = ContextVar('scan_id', default=None)


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EventType(Enum):
    """Types of events for categorization"""
    API_REQUEST = "api_request"
    API_RESPONSE = "api_response"
    PIPELINE_PHASE = "pipeline_phase"
    STORE_OPERATION = "store_operation"
    CACHE_OPERATION = "cache_operation"
    EXTERNAL_SERVICE = "external_service"
    PROGRESS = "progress"
    FINDING_DETECTED = "finding_detected"
    ERROR_OCCURRED = "error_occurred"
    PERFORMANCE_METRIC = "performance_metric"
    SYSTEM_EVENT = "system_event"


@dataclass
class LogContext:
    """Context information attached to every record"""
    correlation_id: Optional[str] = None
    request_id: Optional[str] = None
    scan_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class LogEvent:
    """Structured log event"""
    timestamp: datetime
    level: str
    logger: str
    message: str
    event_type: EventType
    context: LogContext
    metadata: Dict[str, Any] = field(default_factory=dict)
    error_details: Optional[Dict[str, Any]] = None
    performance_metrics: Optional[Dict[str, Union[int, float]]] = None
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "logger": self.logger,
            "message": self.message,
            "event_type": self.event_type.value,
            "context": self.context.to_dict(),
            "metadata": self.metadata,
            "tags": self.tags
        }

        if self.error_details:
            result["error"] = self.error_details

        if self.performance_metrics:
            result["performance"] = self.performance_metrics

        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class StructuredFormatter(logging.Formatter):
    """Formats log records as one JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        context = LogContext(
            correlation_id=correlation_id.get(),
            request_id=request_id.get(),
            scan_id=scan_id.get()
        )

        event = LogEvent(
            timestamp=datetime.fromtimestamp(record.created),
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
            event_type=getattr(record, 'event_type', EventType.SYSTEM_EVENT),
            context=context,
            metadata=getattr(record, 'metadata', {}),
            error_details=self._extract_error_details(record),
            performance_metrics=getattr(record, 'performance_metrics', None),
            tags=getattr(record, 'tags', [])
        )

        return event.to_json()

    def _extract_error_details(self, record: logging.LogRecord) -> Optional[Dict[str, Any]]:
        if record.exc_info and record.exc_info[0] is not None:
            return {
                "exception_type": record.exc_info[0].__name__,
                "exception_message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
                "function": record.funcName,
                "line_number": record.lineno
            }
        return None


class LogMetrics:
    """Counts records per level and event type"""

    def __init__(self):
        self.lock = threading.Lock()
        self.total_logs = 0
        self.logs_by_level: Dict[str, int] = {}
        self.logs_by_event_type: Dict[str, int] = {}

    def record(self, level: LogLevel, event_type: EventType):
        with self.lock:
            self.total_logs += 1
            self.logs_by_level[level.value] = self.logs_by_level.get(level.value, 0) + 1
            self.logs_by_event_type[event_type.value] = self.logs_by_event_type.get(event_type.value, 0) + 1

    def snapshot(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "total_logs": self.total_logs,
                "logs_by_level": dict(self.logs_by_level),
                "logs_by_event_type": dict(self.logs_by_event_type)
            }


class StructuredLogger:
    """Structured logger with context propagation and metrics"""

    def __init__(self, name: str, level: LogLevel = LogLevel.INFO):
        self.name = name
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.value))
        self.metrics = LogMetrics()

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)

    def _log(self,
             level: LogLevel,
             message: str,
             event_type: EventType = EventType.SYSTEM_EVENT,
             metadata: Optional[Dict[str, Any]] = None,
             error: Optional[BaseException] = None,
             performance_metrics: Optional[Dict[str, Union[int, float]]] = None,
             tags: Optional[List[str]] = None):
        self.metrics.record(level, event_type)

        extra = {
            'event_type': event_type,
            'metadata': metadata or {},
            'performance_metrics': performance_metrics,
            'tags': tags or []
        }

        exc_info = (type(error), error, error.__traceback__) if error else None
        self.logger.log(getattr(logging, level.value), message, exc_info=exc_info, extra=extra)

    def debug(self, message: str, **kwargs):
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, error: Optional[BaseException] = None, **kwargs):
        self._log(LogLevel.ERROR, message, error=error, **kwargs)

    def critical(self, message: str, error: Optional[BaseException] = None, **kwargs):
        self._log(LogLevel.CRITICAL, message, error=error, **kwargs)

    def pipeline_phase(self, phase: str, status: str, duration_ms: Optional[float] = None, **kwargs):
        """Log a phase transition (started, completed, skipped, failed)"""
        metadata = kwargs.pop('metadata', {})
        metadata.update({"phase": phase, "status": status})
        performance_metrics = {"duration_ms": duration_ms} if duration_ms is not None else None

        level = LogLevel.ERROR if status == "failed" else LogLevel.INFO
        self._log(level, f"Phase {phase} {status}", EventType.PIPELINE_PHASE,
                  metadata=metadata, performance_metrics=performance_metrics, **kwargs)

    def api_response(self, method: str, path: str, status_code: int, response_time_ms: float, **kwargs):
        message = f"{method} {path} -> {status_code}"
        metadata = kwargs.pop('metadata', {})
        metadata.update({"method": method, "path": path, "status_code": status_code})

        if status_code >= 500:
            level = LogLevel.ERROR
        elif status_code >= 400:
            level = LogLevel.WARNING
        else:
            level = LogLevel.INFO

        self._log(level, message, EventType.API_RESPONSE, metadata=metadata,
                  performance_metrics={"response_time_ms": response_time_ms}, **kwargs)

    def external_service_call(self, service: str, operation: str,
                              duration_ms: float, success: bool = True, **kwargs):
        status = "successful" if success else "failed"
        message = f"External service call to {service}.{operation} {status}"

        metadata = kwargs.pop('metadata', {})
        metadata.update({"service": service, "operation": operation, "success": success})

        level = LogLevel.INFO if success else LogLevel.WARNING
        self._log(level, message, EventType.EXTERNAL_SERVICE, metadata=metadata,
                  performance_metrics={"call_duration_ms": duration_ms}, **kwargs)

    def get_metrics(self) -> Dict[str, Any]:
        return self.metrics.snapshot()


class LoggerManager:
    """Keeps one StructuredLogger per name"""

    def __init__(self):
        self.loggers: Dict[str, StructuredLogger] = {}
        self.default_level = LogLevel.INFO

    def get_logger(self, name: str, level: Optional[LogLevel] = None) -> StructuredLogger:
        if name not in self.loggers:
            self.loggers[name] = StructuredLogger(name, level or self.default_level)
        return self.loggers[name]

    def set_default_level(self, level: LogLevel):
        self.default_level = level
        for structured in self.loggers.values():
            structured.logger.setLevel(getattr(logging, level.value))

    def get_all_metrics(self) -> Dict[str, Dict[str, Any]]:
        return {name: structured.get_metrics() for name, structured in self.loggers.items()}


# Global logger manager
logger_manager = LoggerManager()


def get_logger(name: str, level: Optional[LogLevel] = None) -> StructuredLogger:
    """Get a structured logger instance"""
    return logger_manager.get_logger(name, level)


def configure_logging(level_name: str):
    """Apply the configured level to every structured logger"""
    try:
        level = LogLevel(level_name.upper())
    except ValueError:
        level = LogLevel.INFO
    logger_manager.set_default_level(level)


def set_scan_id(scan_id_value: Optional[str]):
    scan_id.set(scan_id_value)


def set_request_id(request_id_value: Optional[str]):
    request_id.set(request_id_value)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def with_scan_context(func):
    """Run a coroutine with the scan id (first positional argument after self) bound to the log context"""
    @wraps(func)
    async def wrapper(self, scan_id_value: str, *args, **kwargs):
        scan_token = scan_id.set(scan_id_value)
        correlation_token = None
        if not correlation_id.get():
            correlation_token = correlation_id.set(generate_correlation_id())
        try:
            return await func(self, scan_id_value, *args, **kwargs)
        finally:
            scan_id.reset(scan_token)
            if correlation_token is not None:
                correlation_id.reset(correlation_token)
    return wrapper


def log_performance(operation_name: str, logger: Optional[StructuredLogger] = None):
    """Decorator to log coroutine duration"""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            log = logger or get_logger(func.__module__)
            start_time = time.time()

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                log.error(
                    f"Operation '{operation_name}' failed",
                    error=e,
                    event_type=EventType.ERROR_OCCURRED,
                    performance_metrics={"duration_ms": (time.time() - start_time) * 1000},
                    metadata={"function": func.__name__}
                )
                raise

            log.debug(
                f"Operation '{operation_name}' completed",
                event_type=EventType.PERFORMANCE_METRIC,
                performance_metrics={"duration_ms": (time.time() - start_time) * 1000},
                metadata={"function": func.__name__}
            )
            return result

        if not asyncio.iscoroutinefunction(func):
            raise TypeError("log_performance only wraps coroutine functions")
        return wrapper
    return decorator
