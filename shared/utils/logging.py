"""
TicketLink - Structured Logging
===============================

JSON logging shared by every TicketLink component.

Each correlation cycle runs under its own correlation ID, so every log
line and audit event of one cycle can be grouped together downstream.

Usage:
    from shared.utils.logging import get_logger, setup_logging

    setup_logging(service_name="incident-correlator", log_level="INFO")
    logger = get_logger(__name__)

    logger.info("Incident discovered", extra={"incident_id": 1234})
"""

import logging
import json
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Optional
from contextvars import ContextVar

# Correlation ID of the running cycle or request
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# LogRecord attributes that are never copied into the JSON payload
_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
})


class StructuredFormatter(logging.Formatter):
    """
    Formatter that renders each record as one JSON object.

    Keys: timestamp, level, service, logger, message, correlation_id
    (when set), exception (when present) and every `extra` field.
    """

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = getattr(record, "correlation_id", None) or correlation_id_var.get()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class ContextualLogger(logging.LoggerAdapter):
    """Logger adapter that stamps the current correlation ID on each record."""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        extra = dict(kwargs.get("extra") or {})

        if "correlation_id" not in extra:
            correlation_id = correlation_id_var.get()
            if correlation_id:
                extra["correlation_id"] = correlation_id

        kwargs["extra"] = extra
        return msg, kwargs


_loggers: dict[str, ContextualLogger] = {}


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_output: bool = True
) -> None:
    """
    Configure the root logger for a service.

    Call once at startup, before the first cycle runs.

    Args:
        service_name: Name stamped on every record
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines when True, a readable single-line format otherwise
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)

    if json_output:
        handler.setFormatter(StructuredFormatter(service_name))
    else:
        handler.setFormatter(logging.Formatter(
            f"%(asctime)s | {service_name} | %(levelname)s | %(name)s | %(message)s"
        ))

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper()))

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> ContextualLogger:
    """
    Get the contextual logger for a module.

    Example:
        logger = get_logger(__name__)
        logger.info("Cycle complete", extra={"links_made": 2})
    """
    if name not in _loggers:
        _loggers[name] = ContextualLogger(logging.getLogger(name), {})
    return _loggers[name]


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current async context."""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Current correlation ID, or None outside a cycle/request."""
    return correlation_id_var.get()


def new_correlation_id() -> str:
    """Generate a correlation ID, make it current, and return it."""
    correlation_id = uuid.uuid4().hex[:12]
    correlation_id_var.set(correlation_id)
    return correlation_id
