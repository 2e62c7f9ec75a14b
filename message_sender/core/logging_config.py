"""
Structured logging configuration.

Two scopes of context are attached to every record:

    request  — request_id / client_ip / endpoint, set by the HTTP middleware
    cycle    — scheduler run-cycle id, bound by the polling loop task and
               inherited by every delivery unit it spawns

Production emits one JSON object per line; development emits a coloured
line with a compact delivery tag, e.g.

    07:41:45 INFO     <c3 m42 a2> message_sender.scheduler.delivery_unit: ...

Usage:
    from message_sender.core.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
    logger.info("Message delivered", extra={"message_id": 42, "attempt": 1})
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from message_sender.core.config import settings

_request_context: ContextVar[Dict[str, Any]] = ContextVar(
    "request_context", default={}
)
_cycle_id: ContextVar[Optional[int]] = ContextVar("cycle_id", default=None)

# Attributes passed via ``extra=`` that are copied into JSON entries
EXTRA_FIELDS = (
    "message_id", "attempt", "delay_s", "correlation_id", "status_code",
    "fetched", "outcome", "duration_ms", "endpoint",
)


def set_request_context(**kwargs: Any) -> None:
    """Set request-scoped log context (call from middleware)."""
    _request_context.set(kwargs)


def get_request_context() -> Dict[str, Any]:
    return _request_context.get()


def bind_cycle(cycle_id: int) -> Token:
    """Tag all records logged from the current task (and its children)."""
    return _cycle_id.set(cycle_id)


def unbind_cycle(token: Token) -> None:
    _cycle_id.reset(token)


def current_cycle() -> Optional[int]:
    return _cycle_id.get()


def delivery_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Collect the cycle id and any known ``extra`` attributes of a record."""
    fields: Dict[str, Any] = {}
    cycle = current_cycle()
    if cycle is not None:
        fields["cycle_id"] = cycle
    for key in EXTRA_FIELDS:
        if hasattr(record, key):
            fields[key] = getattr(record, key)
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        request = get_request_context()
        if request:
            entry["context"] = request
        entry.update(delivery_fields(record))

        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["exception"] = {"type": type(exc).__name__, "message": str(exc)}

        return json.dumps(entry, default=str)


class PrettyFormatter(logging.Formatter):
    """Coloured console output with a short request / delivery tag."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    # field -> prefix inside the <...> tag
    TAG_PARTS = (("cycle_id", "c"), ("message_id", "m"), ("attempt", "a"))

    def tag(self, record: logging.LogRecord) -> str:
        fields = delivery_fields(record)
        parts = [f"{p}{fields[k]}" for k, p in self.TAG_PARTS if k in fields]
        request_id = get_request_context().get("request_id")
        if request_id:
            parts.insert(0, str(request_id)[:8])
        return f" <{' '.join(parts)}>" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        line = (
            f"{color}{self.formatTime(record, '%H:%M:%S')} "
            f"{record.levelname:8s}{self.RESET}{self.tag(record)} "
            f"{record.name}: {record.getMessage()}"
        )
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            line += f"\n  {type(exc).__name__}: {exc}"
        return line


def setup_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    level_name = (level or settings.LOG_LEVEL).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.handlers.clear()

    if json_output is None:
        json_output = settings.is_production
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_output else PrettyFormatter())
    root.addHandler(handler)

    for noisy in ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
