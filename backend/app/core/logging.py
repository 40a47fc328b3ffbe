"""
Structured logging for the YachtOps backend.

Every record carries the request's correlation ID, event ID and acting user
(set by TracingMiddleware and the auth dependencies) plus the active
OpenTelemetry trace and span IDs, so one sync or analysis run can be followed
across log lines. Pass structured fields as ``extra={"extra_data": {...}}``.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from contextvars import ContextVar

from opentelemetry import trace

SERVICE_NAME = "yachtops-backend"

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
event_id_ctx: ContextVar[Optional[str]] = ContextVar("event_id", default=None)
user_id_ctx: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

_CONTEXT_FIELDS = (
    ("correlation_id", correlation_id_ctx),
    ("event_id", event_id_ctx),
    ("user_id", user_id_ctx),
)

_NOISY_LOGGERS = {"httpx": "WARNING", "aiosqlite": "WARNING", "sqlalchemy.engine": "WARNING"}


def request_context() -> Dict[str, str]:
    """Context fields that are set for the current task, plus trace/span IDs."""
    context = {key: var.get() for key, var in _CONTEXT_FIELDS if var.get()}
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        context["trace_id"] = format(span_context.trace_id, "032x")
        context["span_id"] = format(span_context.span_id, "016x")
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "func": record.funcName,
            "line": record.lineno,
            "service": SERVICE_NAME,
        }
        log_data.update(request_context())

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, dict):
            log_data.update(extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable lines for local development, with the correlation ID when present."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s%(cid)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        cid = correlation_id_ctx.get()
        record.cid = f" [{cid[:8]}]" if cid else ""
        return super().format(record)


def setup_logging(level: str = "INFO", log_format: str = "json"):
    """
    Route all logging through one stdout handler on the root logger.
    `log_format` is "json" (default) or "console".
    """
    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ConsoleFormatter() if log_format == "console" else JSONFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").disabled = True # TracingMiddleware logs requests
    for name, noisy_level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
