"""JSON-lines logging for routing decisions and usage accounting.

The HTTP service logs on ``ai_router.audit`` itself ("Request routed",
"All accounts exhausted", "Routing failed"); everything else logs
through a child of it:

    selector    "Candidate selected", "All candidates at their rate limits"
    ratelimit   "Usage recorded" (debug)
    router      "Request dispatched", "Dispatch failed", "Usage recording failed"
    usage       DynamoDB write races (debug)
    lambda      startup warnings

Lines carry the request id set by the HTTP service plus whatever the
caller passes in ``extra={"audit_data": {...}}``. Accounts appear only
as identity keys, never as API keys. AUDIT_LOG_FILE adds a file handler
next to stdout.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

from ai_router.config.settings import get_settings

AUDIT_LOGGER_NAME = "ai_router.audit"

# Request-scoped context for correlating selection, dispatch and usage lines
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(""),
        }
        if hasattr(record, "audit_data"):
            log_entry.update(record.audit_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging() -> None:
    """Configure the router logger tree with JSON output."""
    settings = get_settings()

    logger = logging.getLogger(AUDIT_LOGGER_NAME)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.handlers.clear()

    formatter = JSONFormatter()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    logger.addHandler(stdout_handler)

    if settings.audit_log_file:
        file_handler = logging.FileHandler(settings.audit_log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False


def get_audit_logger(component: str = "") -> logging.Logger:
    """Return the router logger, or a named child of it."""
    if component:
        return logging.getLogger(f"{AUDIT_LOGGER_NAME}.{component}")
    return logging.getLogger(AUDIT_LOGGER_NAME)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


class RequestTimer:
    """Context manager measuring dispatch latency."""

    def __init__(self):
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = round((time.perf_counter() - self.start_time) * 1000, 2)
