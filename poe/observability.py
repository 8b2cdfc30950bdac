"""
Ledger Observability

Structured logging with correlation IDs for the claim ledger.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    Application Code                      │
    │  logger.info("Claim created", operation=..., claim=x)   │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                     LedgerLogger                         │
    │   correlation IDs, layer tags, structured context        │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                       Handlers                           │
    │          StructuredHandler (json) │ text stream          │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
import time
import traceback
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class LedgerLayer(Enum):
    """Ledger components, used to tag log events."""
    REGISTRY = "registry"
    RUNTIME = "runtime"
    EVENTS = "events"
    STORE = "store"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs one JSON object per line."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            stream = self.stream or sys.stderr
            stream.write(event.to_json() + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)


class TextFormatter(logging.Formatter):
    """Human-readable single-line format with trailing context."""

    def format(self, record: logging.LogRecord) -> str:
        base = f"{self.formatTime(record)} {record.levelname:<8} {record.name}: {record.getMessage()}"
        context = getattr(record, "context", None) or {}
        error_code = getattr(record, "error_code", "")
        if error_code:
            context = {"error_code": error_code, **context}
        if context:
            base += " " + " ".join(f"{k}={v}" for k, v in context.items())
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


def parse_log_level(value: Any, default: LogLevel = LogLevel.WARNING) -> LogLevel:
    """Case-insensitive level lookup; unknown names yield the default."""
    try:
        return LogLevel(str(value).strip().lower())
    except ValueError:
        return default


def _make_handler(log_format: str) -> logging.Handler:
    if log_format == "text":
        handler: logging.Handler = logging.StreamHandler()
        handler.setFormatter(TextFormatter())
        return handler
    return StructuredHandler()


class LedgerLogger:
    """
    Structured logger for ledger components.

    Adds the correlation ID and layer to every log event. Level and format
    default to the observability section of the active configuration.
    """

    def __init__(
        self,
        name: str,
        layer: LedgerLayer,
        level: Optional[LogLevel] = None,
        log_format: Optional[str] = None,
    ):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"poe.{layer.value}.{name}")
        self.configure(level, log_format)
        with _loggers_lock:
            _loggers[self._logger.name] = self

    def configure(self, level: Optional[LogLevel] = None, log_format: Optional[str] = None) -> None:
        """Apply level and format, falling back to the active configuration."""
        if level is None or log_format is None:
            from poe.config import get_config
            observability = get_config().observability
            if level is None:
                level = parse_log_level(observability.log_level.get())
            if log_format is None:
                log_format = observability.log_format.get()

        self._logger.setLevel(getattr(logging, level.value.upper()))

        ours = [h for h in self._logger.handlers if getattr(h, "_poe_handler", False)]
        for h in ours:
            self._logger.removeHandler(h)
        handler = _make_handler(log_format)
        handler._poe_handler = True  # type: ignore[attr-defined]
        self._logger.addHandler(handler)

    @property
    def stdlib_logger(self) -> logging.Logger:
        return self._logger

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.INFO if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=duration_ms,
            **context,
        )


def generate_correlation_id() -> str:
    return f"corr-{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> str:
    """Get the current correlation ID, creating one if unset."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of the block."""
    cid = correlation_id or generate_correlation_id()
    token = correlation_id_var.set(cid)
    try:
        yield cid
    finally:
        correlation_id_var.reset(token)


_loggers: Dict[str, LedgerLogger] = {}
_loggers_lock = threading.Lock()


def get_logger(name: str, layer: LedgerLayer) -> LedgerLogger:
    """Get a logger for a ledger component."""
    with _loggers_lock:
        existing = _loggers.get(f"poe.{layer.value}.{name}")
    if existing is not None:
        return existing
    return LedgerLogger(name, layer)


def configure_logging(level: Optional[LogLevel] = None, log_format: Optional[str] = None) -> None:
    """Re-apply level and format to every ledger logger created so far."""
    with _loggers_lock:
        loggers = list(_loggers.values())
    for ledger_logger in loggers:
        ledger_logger.configure(level, log_format)


T = TypeVar("T")


def timed_operation(
    logger: LedgerLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, success)
        return wrapper
    return decorator


__all__ = [
    "LogLevel",
    "LedgerLayer",
    "LogEvent",
    "StructuredHandler",
    "TextFormatter",
    "LedgerLogger",
    "parse_log_level",
    "generate_correlation_id",
    "get_correlation_id",
    "correlation_scope",
    "get_logger",
    "configure_logging",
    "timed_operation",
]
