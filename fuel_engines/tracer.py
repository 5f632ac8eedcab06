"""
fuel_engines.tracer -- FUEL_ENGINE_TRACE records for pure engine calls.

``@traced_engine`` logs one record per successful call with the engine
name and version, a fingerprint of the thresholds it ran with, the batch
it worked on (when the first argument is a plant batch) and the elapsed
time.  Two calls with the same fingerprint applied the same limits, which
is what a reviewer needs when a reconciliation or meter verdict changes
between runs.

Engines stay free of I/O: the decorator only emits a log record and
never touches inputs or results.  Failed calls propagate unchanged and
are not traced.
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable, Mapping
from typing import Any

from fuel_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_MESSAGE = "FUEL_ENGINE_TRACE"


def _canonical(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, Mapping):
        inner = ",".join(f"{k}:{_canonical(value[k])}" for k in sorted(value, key=str))
        return "{" + inner + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonical(v) for v in value) + "]"
    # Decimal, date, UUID, dataclass configs: their str() is stable
    return str(value)


def compute_input_fingerprint(fields: tuple[str, ...], kwargs: Mapping[str, Any]) -> str:
    """16-hex-char SHA-256 prefix over the named keyword inputs (missing ones count as null)."""
    canonical = "|".join(f"{name}={_canonical(kwargs.get(name))}" for name in fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def _subject_batch(args: tuple[Any, ...]) -> str | None:
    batch_id = getattr(args[0], "batch_id", None) if args else None
    return str(batch_id) if batch_id is not None else None


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Args:
        engine_name: e.g. "reconciliation".
        engine_version: bumped whenever the engine's verdicts can change.
        fingerprint_fields: keyword arguments that go into the fingerprint.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            result = func(*args, **kwargs)
            _logger.info(
                TRACE_MESSAGE,
                extra={
                    "trace_type": TRACE_MESSAGE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": (
                        compute_input_fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else ""
                    ),
                    "subject_batch_id": _subject_batch(args),
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
