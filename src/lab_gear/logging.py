"""
Structured Logging System for lab_gear

Provides JSON-structured logging with request IDs, event tracking, and
configurable log levels for the inventory API, the remote client and the
resource controller.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Union

# Context variable for tracking request ID across async operations
request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class LogLevel(Enum):
    """Log levels for structured logging."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EventType(Enum):
    """Event types for structured logging."""

    # Request/Response events
    REQUEST_START = "request_start"
    REQUEST_END = "request_end"

    # Server events
    SERVER_START = "server_start"
    SERVER_ERROR = "server_error"

    # Record lifecycle events
    MACHINE_CREATED = "machine_created"
    MACHINE_UPDATED = "machine_updated"
    MACHINE_DELETED = "machine_deleted"
    STORE_ERROR = "store_error"

    # Authentication events
    AUTH_FAILURE = "auth_failure"

    # Remote client events
    CLIENT_REQUEST = "client_request"
    CLIENT_RESPONSE = "client_response"
    CLIENT_ERROR = "client_error"

    # Reconciliation events
    RECONCILE_CREATE = "reconcile_create"
    RECONCILE_UPDATE = "reconcile_update"
    RECONCILE_DELETE = "reconcile_delete"
    RECONCILE_IMPORT = "reconcile_import"
    DRIFT_DETECTED = "drift_detected"


_STRUCTURED_FIELDS = (
    "event_type",
    "machine_id",
    "duration_ms",
    "status_code",
    "method",
    "path",
    "metadata",
)


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_context.get()
        if request_id:
            log_entry["request_id"] = request_id

        for field in _STRUCTURED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_entry.update(getattr(record, "extra_fields"))

        return json.dumps(log_entry, default=str)


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that gracefully handles closed streams during shutdown."""

    def emit(self, record):
        try:
            if hasattr(self.stream, "closed") and self.stream.closed:
                return
            super().emit(record)
        except (ValueError, OSError) as e:
            error_msg = str(e).lower()
            if any(
                phrase in error_msg
                for phrase in ["closed file", "bad file descriptor", "i/o operation on closed file"]
            ):
                return
            raise


class LabGearLogger:
    """Structured logger for lab_gear."""

    def __init__(self, name: str = "lab_gear", level: LogLevel = LogLevel.INFO):
        """Initialize the structured logger."""
        self.name = name
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.value))

        # Remove existing handlers to avoid duplicates
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

        handler = SafeStreamHandler(sys.stderr)
        handler.setFormatter(StructuredFormatter())
        self.logger.addHandler(handler)

        # Prevent propagation to root logger
        self.logger.propagate = False

    def set_level(self, level: LogLevel):
        """Set the logging level."""
        self.logger.setLevel(getattr(logging, level.value))

    def _log(self, level: LogLevel, message: str, **kwargs):
        extra = {}

        event_type = kwargs.pop("event_type", None)
        if event_type is not None:
            extra["event_type"] = (
                event_type.value if isinstance(event_type, EventType) else event_type
            )

        for field in _STRUCTURED_FIELDS[1:]:
            if field in kwargs:
                extra[field] = kwargs.pop(field)

        # Anything else rides along as extra_fields
        if kwargs:
            extra["extra_fields"] = kwargs

        getattr(self.logger, level.value.lower())(message, extra=extra)

    def debug(self, message: str, **kwargs):
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(LogLevel.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log(LogLevel.CRITICAL, message, **kwargs)

    def log_event(self, event_type: EventType, message: str, **kwargs):
        """Log a structured event."""
        self.info(message, event_type=event_type, **kwargs)

    def log_request_start(self, method: str, path: str, **kwargs):
        """Log request start event."""
        self.log_event(
            EventType.REQUEST_START,
            f"{method} {path}",
            method=method,
            path=path,
            **kwargs,
        )

    def log_request_end(
        self, method: str, path: str, status_code: int, duration_ms: float, **kwargs
    ):
        """Log request end event."""
        self.log_event(
            EventType.REQUEST_END,
            f"{method} {path} - {status_code} ({duration_ms:.1f}ms)",
            method=method,
            path=path,
            status_code=status_code,
            duration_ms=duration_ms,
            **kwargs,
        )

    def log_machine_event(self, event_type: EventType, machine_id: str, **kwargs):
        """Log a record lifecycle event (created, updated, deleted)."""
        action = event_type.value.replace("machine_", "")
        self.log_event(event_type, f"Machine {action}: {machine_id}", machine_id=machine_id, **kwargs)

    def log_auth_failure(self, method: str, path: str, reason: str, **kwargs):
        """Log a rejected credential. The presented secret is never logged."""
        self.warning(
            f"Authentication failed: {method} {path}",
            event_type=EventType.AUTH_FAILURE,
            method=method,
            path=path,
            metadata={"reason": reason},
            **kwargs,
        )

    def log_client_request(self, method: str, url: str, **kwargs):
        """Log an outbound call to the inventory API."""
        self.debug(
            f"Calling {method} {url}",
            event_type=EventType.CLIENT_REQUEST,
            method=method,
            path=url,
            **kwargs,
        )

    def log_client_response(
        self, method: str, url: str, status_code: int, duration_ms: float, **kwargs
    ):
        """Log the response to an outbound call."""
        self.debug(
            f"Response from {method} {url}: {status_code} ({duration_ms:.1f}ms)",
            event_type=EventType.CLIENT_RESPONSE,
            method=method,
            path=url,
            status_code=status_code,
            duration_ms=duration_ms,
            **kwargs,
        )

    def log_client_error(self, method: str, url: str, error: Union[str, Exception], **kwargs):
        """Log an outbound call that failed."""
        error_msg = str(error)
        base_meta = {"error": error_msg}
        extra_meta = kwargs.pop("metadata", None)
        if extra_meta:
            base_meta.update(extra_meta)

        self.error(
            f"Call failed: {method} {url} - {error_msg}",
            event_type=EventType.CLIENT_ERROR,
            method=method,
            path=url,
            metadata=base_meta,
            **kwargs,
        )

    def log_reconcile(self, event_type: EventType, machine_id: str, name: str, **kwargs):
        """Log a controller transition for one declared machine."""
        action = event_type.value.replace("reconcile_", "")
        self.log_event(
            event_type,
            f"Reconcile {action}: {name} ({machine_id})",
            machine_id=machine_id,
            metadata={"name": name},
            **kwargs,
        )

    def log_drift(self, machine_id: str, reason: str, **kwargs):
        """Log drift between tracked state and the remote record."""
        self.warning(
            f"Drift detected for {machine_id}: {reason}",
            event_type=EventType.DRIFT_DETECTED,
            machine_id=machine_id,
            metadata={"reason": reason},
            **kwargs,
        )


# Global logger instance
logger = LabGearLogger()

# Named loggers handed out so far, kept in step with configure_logging
_loggers: Dict[str, LabGearLogger] = {"lab_gear": logger}


def get_logger(name: str = "lab_gear") -> LabGearLogger:
    """Get a logger instance at the currently configured level."""
    if name not in _loggers:
        _loggers[name] = LabGearLogger(name, _current_level())
    return _loggers[name]


def _current_level() -> LogLevel:
    return LogLevel(logging.getLevelName(logger.logger.level))


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context. If not provided, generates a new one."""
    if request_id is None:
        request_id = f"req_{uuid.uuid4().hex[:12]}"

    request_id_context.set(request_id)
    return request_id


def get_request_id() -> Optional[str]:
    """Get current request ID from context."""
    return request_id_context.get()


def clear_request_id():
    """Clear request ID from context."""
    request_id_context.set(None)


def configure_logging(level: Union[LogLevel, str] = LogLevel.INFO, enable_debug: bool = False):
    """Configure global logging settings."""
    if isinstance(level, str):
        level = LogLevel(level.upper())
    if enable_debug:
        level = LogLevel.DEBUG

    for named_logger in _loggers.values():
        named_logger.set_level(level)
    logger.debug(
        "Logging configured",
        metadata={"log_level": level.value, "debug_enabled": enable_debug},
    )
