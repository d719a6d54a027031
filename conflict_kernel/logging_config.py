"""
Structured JSON logging for the conflict engine.

Every record under the ``conflict_kernel`` logger becomes one JSON line:
timestamp, level, logger, event message, the request-scoped fields held in
``LogContext`` and whatever was passed through ``extra``.  Errors from the
``ConflictKernelError`` tree contribute their ``code`` and public attributes
as ``exc_*`` keys.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar, Token
from dataclasses import asdict, is_dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_ROOT = "conflict_kernel"

# Request-scoped fields, in output order.
CONTEXT_FIELDS: tuple[str, ...] = (
    "request_id",
    "actor_id",
    "case_id",
    "appointment_id",
    "batch_id",
)

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"conflict_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """ContextVar-backed fields copied onto every record; safe across threads and tasks."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Set known fields; ``None`` values leave the current value alone."""
        for name, value in fields.items():
            if name not in _context:
                raise TypeError(f"Unknown log context field: {name}")
            if value is not None:
                _context[name].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _context.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    def bind(**fields: Any) -> "_Binding":
        """
        Scoped variant of :meth:`set`.  Previous values come back on exit;
        unknown names are ignored so callers can pass through loose kwargs.
        """
        return _Binding(fields)


class _Binding:
    def __init__(self, fields: dict[str, Any]):
        self._fields = fields
        self._tokens: list[tuple[ContextVar[str | None], Token]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            var = _context.get(name)
            if var is not None and value is not None:
                self._tokens.append((var, var.set(str(value))))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def _to_json(obj: Any) -> Any:
    match obj:
        case Enum():
            return obj.value
        case UUID() | Decimal():
            return str(obj)
        case datetime() | date():
            return obj.isoformat()
        case frozenset() | set() | tuple():
            return list(obj)
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    return str(obj)


_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name not in ("args", "code"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (k, v) for k, v in vars(record).items()
            if k not in _RECORD_ATTRS and k not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_error_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """``get_logger("modules.appeals")`` -> ``conflict_kernel.modules.appeals``."""
    return logging.getLogger(f"{_ROOT}.{name}")


_configured = False
_config_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``conflict_kernel`` logger.

    Only the first call has an effect.  The logger does not propagate, so
    host applications keep their own root configuration.
    """
    global _configured
    with _config_lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger(_ROOT)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(handler)


def reset_logging() -> None:
    """Undo :func:`configure_logging`.  Test helper."""
    global _configured
    with _config_lock:
        _configured = False
    root = logging.getLogger(_ROOT)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
