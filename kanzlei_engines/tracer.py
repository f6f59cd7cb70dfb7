"""
kanzlei_engines.tracer -- ``@traced_engine`` and KANZLEI_ENGINE_TRACE.

Responsibility:
    Wrap the pure engines (compliance gate, export generation) so each call
    leaves one structured trace record: which engine and version ran, a
    fingerprint of the inputs that decide the outcome, how long it took
    and a small summary of the result.

Architecture position:
    Engines.  Emits a log record and nothing else; the wrapped function's
    arguments and return value pass through untouched.

Invariants enforced:
    - The fingerprint is the first 16 hex chars of SHA-256 over the
      canonical JSON (kernel hashing rules) of the selected arguments, so
      the same inputs give the same fingerprint on every host.
    - Arguments are bound against the engine's signature; positional and
      keyword calls fingerprint alike.

Audit relevance:
    A generated export file or a blocked one-click export can be tied back
    to the trace that produced it through ``input_fingerprint``.
"""

from __future__ import annotations

import dataclasses
import functools
import inspect
import time
from collections.abc import Callable, Mapping
from typing import Any

from kanzlei_kernel.logging_config import get_logger
from kanzlei_kernel.utils.hashing import canonicalize_json, sha256_hex

_logger = get_logger("engines.tracer")

TRACE_MESSAGE = "KANZLEI_ENGINE_TRACE"


def _plain(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(v) for v in value]
    return value


def compute_input_fingerprint(fields: tuple[str, ...], arguments: Mapping[str, Any]) -> str:
    """16-char fingerprint of ``arguments`` restricted to ``fields`` (missing -> null)."""
    selected = {name: _plain(arguments.get(name)) for name in fields}
    return sha256_hex(canonicalize_json(selected))[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
    summarize: Callable[[Any], dict[str, Any]] | None = None,
) -> Callable:
    """
    Decorate a pure engine entry point.

    ``summarize`` maps the result to extra trace fields, e.g. the record
    count of a generated export.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

            extra = {
                "trace_type": TRACE_MESSAGE,
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": fingerprint,
                "duration_ms": elapsed_ms,
            }
            if summarize is not None:
                extra.update(summarize(result))
            _logger.info(TRACE_MESSAGE, extra=extra)
            return result

        return wrapper

    return decorator
