"""JSON log lines for the attendance and shifts services.

Each line carries the fields bound with :func:`log_context` (the HTTP request
id, or the broker message being delivered) next to the ``extra=`` fields of
the call site, so one request or one message can be followed across loggers.
"""

from __future__ import annotations

import contextvars
import enum
import json
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any

_RESERVED_LOG_RECORD_FIELDS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}
_PAYLOAD_FIELDS = ("ts", "level", "logger", "message", "service")

_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("guardforce_log_context", default={})


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    bound = {key: value for key, value in fields.items() if value is not None}
    token = _log_context.set({**_log_context.get(), **bound})
    try:
        yield
    finally:
        _log_context.reset(token)


def current_log_context() -> dict[str, Any]:
    return dict(_log_context.get())


class LogContextFilter(logging.Filter):
    """Copy bound context onto the record without overriding explicit extras."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if key in _RESERVED_LOG_RECORD_FIELDS or hasattr(record, key):
                continue
            setattr(record, key, value)
        return True


def _json_default(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


class JsonFormatter(logging.Formatter):
    def __init__(self, *, service: str | None = None) -> None:
        super().__init__()
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self._service:
            payload["service"] = self._service

        for key, value in record.__dict__.items():
            if key in _RESERVED_LOG_RECORD_FIELDS or key.startswith("_"):
                continue
            # An extra named like a payload field must not replace it.
            payload[f"extra_{key}" if key in _PAYLOAD_FIELDS else key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default, ensure_ascii=True)


def setup_json_logging(*, level: str = "INFO", service: str | None = None) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter(service=service))
    handler.addFilter(LogContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.strip().upper(), logging.INFO))
