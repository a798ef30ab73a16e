# gguf_insights/observability.py
"""
Observability helpers: a millisecond stopwatch and report serialization.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Mapping


@dataclass
class Timer:
    """Stopwatch context manager; ``duration_ms`` is set on exit."""

    name: str
    started_ns: int = 0
    duration_ms: float = 0.0

    def __enter__(self) -> "Timer":
        self.started_ns = time.perf_counter_ns()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.duration_ms = (time.perf_counter_ns() - self.started_ns) / 1e6


def to_dict(obj: Any) -> Dict[str, Any] | list[Any] | Any:
    """Recursively convert dataclasses, mappings and enums to JSON-friendly values.

    Int-valued enums (value and ggml type tags) become their names; string
    enums become their values.
    """
    if hasattr(obj, "__dataclass_fields__"):
        return {f.name: to_dict(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, Enum):
        return obj.name if isinstance(obj.value, int) else obj.value
    if isinstance(obj, Mapping):
        return {str(k): to_dict(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_dict(x) for x in obj]
    return obj
