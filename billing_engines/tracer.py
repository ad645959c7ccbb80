"""
billing_engines.tracer -- Engine invocation tracer emitting BILLING_ENGINE_TRACE.

Responsibility:
    Provide a lightweight decorator (``@traced_engine``) that wraps pure
    engine invocations with structured trace logging.  The trace captures
    engine_name, engine_version, input_fingerprint (deterministic SHA-256
    hash of selected arguments), and duration_ms.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Does NOT introduce I/O into engines; emits a log record only.
    Logs under ``billing_kernel.engines.tracer`` so the record is handled
    by the kernel's structured formatter once logging is configured.

Invariants enforced:
    - Fingerprints are deterministic: _canonicalize produces stable string
      representations of dates, Decimals, enums, mappings and sequences;
      dict keys are sorted; the hash is SHA-256 truncated to 16 hex chars.
    - Engine purity: the decorator only reads arguments and emits a log
      record; it does not mutate inputs or inject side effects.

Failure modes:
    - Fingerprint fields that name no bound argument are recorded as
      "null".
    - Exceptions raised by the engine propagate unchanged; no trace record
      is emitted for a failed call.

Usage:
    from billing_engines.tracer import traced_engine

    @traced_engine("proration", "1.0", fingerprint_fields=("full_amount",))
    def prorate(usage_start, usage_end, window_start, window_end, full_amount):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, fields, is_dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

_logger = logging.getLogger("billing_kernel.engines.tracer")

TRACE_TYPE = "BILLING_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    """Produce a stable string representation of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, (int, float, str)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    if is_dataclass(value) and not isinstance(value, type):
        body = ",".join(
            f"{f.name}:{_canonicalize(getattr(value, f.name))}" for f in fields(value)
        )
        return f"{type(value).__name__}({body})"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """16-hex-char SHA-256 prefix over ``name=value`` pairs of the named fields."""
    canonical = "|".join(
        f"{name}={_canonicalize(arguments.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class _EngineIdentity:
    name: str
    version: str
    fingerprint_fields: tuple[str, ...]

    def fingerprint(self, signature: inspect.Signature, args: tuple, kwargs: dict) -> str:
        if not self.fingerprint_fields:
            return ""
        bound = signature.bind_partial(*args, **kwargs)
        bound.apply_defaults()
        return compute_input_fingerprint(self.fingerprint_fields, dict(bound.arguments))

    def emit(self, function: str, fingerprint: str, duration_ms: float) -> None:
        _logger.info(TRACE_TYPE, extra={
            "trace_type": TRACE_TYPE,
            "engine_name": self.name,
            "engine_version": self.version,
            "input_fingerprint": fingerprint,
            "duration_ms": duration_ms,
            "function": function,
        })


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Decorate a pure engine entry point so each successful call is traced.

    Args:
        engine_name: Engine identifier (e.g. "invoices")
        engine_version: Engine version (e.g. "1.0")
        fingerprint_fields: Parameter names hashed into input_fingerprint;
            positional, keyword and defaulted arguments all count
    """
    identity = _EngineIdentity(engine_name, engine_version, tuple(fingerprint_fields))

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = identity.fingerprint(signature, args, kwargs)
            started = time.monotonic()
            result = func(*args, **kwargs)
            identity.emit(
                func.__qualname__,
                fingerprint,
                round((time.monotonic() - started) * 1000, 2),
            )
            return result

        return wrapper

    return decorator
