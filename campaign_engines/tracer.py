"""
campaign_engines.tracer -- Engine invocation tracer emitting CAMPAIGN_ENGINE_TRACE.

Responsibility:
    Provide a lightweight decorator (``@traced_engine``) that wraps engine
    invocations with structured trace logging.  The trace captures
    engine_name, engine_version, input_fingerprint (deterministic SHA-256
    hash of selected inputs), and duration_ms.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Does NOT introduce I/O into engines; emits a log record only.
    Uses its own logger namespace (``campaign_kernel.engines.tracer``).

Invariants enforced:
    - Fingerprint computation is deterministic: values are canonicalized,
      dict keys are sorted, the hash is SHA-256 truncated to 16 hex chars.
    - The decorator only reads arguments and emits a log record; it does
      not mutate inputs.

Failure modes:
    - Fingerprint fields that are not bound in the call are recorded as
      "null".
    - Exceptions raised by the wrapped function propagate unchanged; no
      trace record is emitted for a failed call.

Usage:
    from campaign_engines.tracer import traced_engine

    class CalculationEngine:
        @traced_engine("calculation", fingerprint_fields=("formula_name", "operands"))
        def calculate(self, formula_name, *operands):
            ...
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

_logger = logging.getLogger("campaign_kernel.engines.tracer")

TRACE_TYPE = "CAMPAIGN_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    """Stable string representation of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Decimal):
        # Scale is significant: "100.00" and "100" are different inputs.
        return format(value, "f")
    if isinstance(value, (int, str)):
        return str(value)
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    if hasattr(value, "value") and hasattr(value, "name"):
        return str(value.value)
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """
    Deterministic SHA-256 fingerprint of selected input fields.

    Postconditions:
        Returns a 16-character hex string.  Missing fields are recorded
        as "null".  Identical inputs always produce the same fingerprint.
    """
    parts: list[str] = []
    for field in fingerprint_fields:
        parts.append(f"{field}={_canonicalize(arguments.get(field))}")
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str | None = None,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits CAMPAIGN_ENGINE_TRACE for engine invocations.

    Args:
        engine_name: Engine identifier (e.g., "calculation").
        engine_version: Fixed version string.  When omitted, the version is
            read from the bound instance's ``version`` attribute.
        fingerprint_fields: Parameter names (positional or keyword) to
            include in the input fingerprint hash.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fp = compute_input_fingerprint(fingerprint_fields, dict(bound.arguments))

            version = engine_version
            if version is None and args:
                version = getattr(args[0], "version", None)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                TRACE_TYPE,
                extra={
                    "trace_type": TRACE_TYPE,
                    "engine_name": engine_name,
                    "engine_version": version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
