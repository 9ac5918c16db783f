"""
Logging for the practice engine.

Every record carries the correlation fields of the context it was emitted in:
the request id (set by RequestIdMiddleware) and whatever the request bound
later, such as the authenticated user. Call-site fields passed via extra=
(session_id, concept_id, difficulty, ...) are kept as structured fields.

Production writes one JSON object per line; development writes a short line
with the structured fields appended as key=value pairs.

Usage:
    from coolscool.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Answer graded", extra={"session_id": str(sid), "is_correct": True})
"""

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Fields bound for the rest of the current request (user_id, ...)
_bound_fields: ContextVar[Mapping[str, str]] = ContextVar("log_fields", default=MappingProxyType({}))

# Fields every record carries; "-" when the context has none
CONTEXT_FIELDS = ("request_id", "user_id")

_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"} | set(CONTEXT_FIELDS)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def bind_log_context(**fields: Any) -> Token:
    """Attach fields to every record logged from the current context on."""
    merged = dict(_bound_fields.get())
    merged.update({key: str(value) for key, value in fields.items() if value is not None})
    return _bound_fields.set(MappingProxyType(merged))


def reset_log_context(token: Token) -> None:
    _bound_fields.reset(token)


def get_log_context() -> Dict[str, str]:
    context = dict(_bound_fields.get())
    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id
    return context


class LogContextFilter(logging.Filter):
    """Copy the correlation fields of the current context onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = get_log_context()
        for name in CONTEXT_FIELDS:
            setattr(record, name, context.get(name, "-"))
        return True


def _structured_fields(record: logging.LogRecord) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_ATTRS or key.startswith("_") or value is None:
            continue
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            value = str(value)
        fields[key] = value
    return fields


class JsonFormatter(logging.Formatter):
    """One JSON object per record for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, "-")
            if value and value != "-":
                entry[name] = value
        entry.update(_structured_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class DevFormatter(logging.Formatter):
    """Readable single line: time, level, logger, request, user, message, fields."""

    def __init__(self):
        super().__init__(
            "%(asctime)s %(levelname)-5s [%(name)s] req=%(request_id)s user=%(user_id)s %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, "-")
        line = super().format(record)
        fields = _structured_fields(record)
        if fields:
            line += " " + " ".join(f"{key}={value}" for key, value in fields.items())
        return line


def configure_logging(
    *,
    log_level: str = "INFO",
    environment: str = "development",
    debug: bool = False,
) -> None:
    """
    Install the single root handler.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        environment: "production" switches to JSON lines
        debug: force DEBUG regardless of log_level
    """
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(LogContextFilter())
    handler.setFormatter(JsonFormatter() if environment == "production" else DevFormatter())
    root.addHandler(handler)

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
