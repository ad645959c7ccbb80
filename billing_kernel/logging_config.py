"""
Structured JSON logging for the billing kernel and engines.

Every record under the ``billing_kernel`` logger namespace is rendered as
one JSON object carrying:

- the envelope: ``ts``, ``level``, ``logger``, ``message``
- the request-scoped LogContext fields (sales order, usage agreement, ...)
- any ``extra={...}`` fields passed at the call site (these take
  precedence over same-named context fields)
- for exceptions: ``exc_type``, ``exc_message``, ``exc_code`` and every
  public attribute of the exception as ``exc_<name>``

Engines never configure logging; the host application calls
``configure_logging()`` once at start-up.
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, is_dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "sales_order_id",
    "uad_id",
    "actor_id",
    "trace_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})

_context: ContextVar[Mapping[str, str]] = ContextVar(
    "billing_log_context", default=_EMPTY
)


def _merged(fields: dict[str, str | None]) -> Mapping[str, str]:
    unknown = set(fields) - set(_CONTEXT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown log context fields: {sorted(unknown)}")
    merged = dict(_context.get())
    merged.update({k: v for k, v in fields.items() if v is not None})
    return MappingProxyType(merged)


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    The current fields live in a single ContextVar holding a read-only
    mapping; every change installs a new mapping. None values are ignored.
    """

    FIELDS = _CONTEXT_FIELDS

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Add fields to the current context."""
        _context.set(_merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    def bind(cls, **fields: str | None):
        """
        Context manager adding ``fields`` for the duration of a block.

        Unknown field names are rejected immediately, before the block
        is entered.
        """
        return _bound(_merged(fields))


@contextmanager
def _bound(fields: Mapping[str, str]) -> Iterator[type[LogContext]]:
    token = _context.set(fields)
    try:
        yield LogContext
    finally:
        _context.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}

_ENVELOPE_KEYS: frozenset[str] = frozenset({"ts", "level", "logger", "message"})


def _to_json(obj: Any) -> Any:
    """``json.dumps`` default hook for billing payload values."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context.get())

        # call-site extras override context fields, never the envelope
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in _ENVELOPE_KEYS:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # BillingEngineError subclasses keep their context as attributes
        for name, value in vars(exc).items():
            if not name.startswith("_") and name != "code":
                fields[f"exc_{name}"] = value
        return fields


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "billing_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger named ``billing_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``billing_kernel`` logger.

    Only the first call has an effect. Records stop propagating to the
    root logger once configured.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(handler)


def reset_logging() -> None:
    """Undo ``configure_logging``. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    root.propagate = True
