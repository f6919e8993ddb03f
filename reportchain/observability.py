"""
Report Ledger Client Observability

Structured logging with correlation IDs and layer tagging. Every component
gets a ReportChainLogger bound to its layer; events are emitted as one JSON
object per line (or plain text) by a single handler attached to the
"reportchain" logger.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    Component Code                        │
    │  log.info("submitted", operation="execute", tx=...)     │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                  ReportChainLogger                       │
    │  layer, operation, correlation id, structured context   │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │          StructuredHandler  │  TextHandler              │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import sys
import threading
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Optional

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

ROOT_LOGGER = "reportchain"


class Layer(Enum):
    """Client layers for categorization."""
    SANITIZER = "sanitizer"
    ROLES = "roles"
    LIFECYCLE = "lifecycle"
    ORCHESTRATOR = "orchestrator"
    DIAGNOSIS = "diagnosis"
    RECONCILER = "reconciler"
    CLASSIFICATION = "classification"
    LEDGER = "ledger"
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


def _event_from_record(record: logging.LogRecord) -> LogEvent:
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
    return event


class StructuredHandler(logging.Handler):
    """Logging handler that outputs structured JSON."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self._stream = stream

    @property
    def stream(self) -> Any:
        return self._stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.stream.write(_event_from_record(record).to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class TextHandler(logging.Handler):
    """Human-readable single-line output."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self._stream = stream

    @property
    def stream(self) -> Any:
        return self._stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = _event_from_record(record)
            ctx = " ".join(f"{k}={v}" for k, v in event.context.items())
            head = f"{event.timestamp} {event.level.upper():8} [{event.layer or '-'}]"
            if event.correlation_id:
                head += f" {event.correlation_id}"
            line = f"{head} {event.message}"
            if ctx:
                line += f" | {ctx}"
            self.stream.write(line + "\n")
            if event.exception:
                self.stream.write(event.exception)
            self.stream.flush()
        except Exception:
            self.handleError(record)


_configure_lock = threading.Lock()
_configured = False


def configure_logging(level: str = "info", fmt: str = "json", stream: Any = None) -> None:
    """Install the single output handler on the root client logger."""
    global _configured
    with _configure_lock:
        root = logging.getLogger(ROOT_LOGGER)
        for handler in list(root.handlers):
            if isinstance(handler, (StructuredHandler, TextHandler)):
                root.removeHandler(handler)
        handler = TextHandler(stream) if fmt == "text" else StructuredHandler(stream)
        root.addHandler(handler)
        root.setLevel(getattr(logging, level.upper()))
        _configured = True


def _ensure_configured() -> None:
    if _configured:
        return
    from reportchain.config import get_config

    obs = get_config().observability
    configure_logging(obs.log_level.get(), obs.log_format.get())


class ReportChainLogger:
    """
    Structured logger for client components.

    Automatically includes the correlation ID and layer in all log events.
    """

    def __init__(self, name: str, layer: Layer):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"{ROOT_LOGGER}.{layer.value}.{name}")

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
        _ensure_configured()
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
    """Generate a new correlation ID."""
    return f"corr-{uuid.uuid4().hex[:12]}"


@contextlib.contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of one client operation."""
    cid = correlation_id or correlation_id_var.get() or generate_correlation_id()
    token = correlation_id_var.set(cid)
    try:
        yield cid
    finally:
        correlation_id_var.reset(token)


def get_logger(name: str, layer: Layer) -> ReportChainLogger:
    """Get a logger for a client component."""
    return ReportChainLogger(name, layer)
