"""
Value classification and display formatting.

Pure functions only: nothing here touches the cache or the bus.

Classification order:
1. Unit hint fields on the metric metadata (unit, metric_unit, type_hint, units)
2. Substring patterns on the metric name
3. Plain number
"""

from __future__ import annotations

import math
import time
from collections.abc import Mapping
from typing import Any

import orjson

KIB = 1024

TIME = "time"
MEMORY = "memory"
NUMBER = "number"

UNIT_FIELDS = ("unit", "metric_unit", "type_hint", "units")

_TIME_UNITS_EXACT = {"s", "m", "h", "ms", "μs", "us", "ns"}
_TIME_UNITS_PARTIAL = (
    "second", "sec", "minute", "hour", "millisecond", "microsecond",
    "nanosecond", "time", "duration", "latency", "delay",
)
_MEMORY_UNITS_EXACT = {"b", "kb", "mb", "gb", "tb"}
_MEMORY_UNITS_PARTIAL = (
    "byte", "kilobyte", "megabyte", "gigabyte", "terabyte", "memory", "mem",
    "size", "allocated", "used", "buffer", "cache",
)

_TIME_NAME_PATTERNS = (
    "time", "duration", "latency", "elapsed", "wait", "delay", "period",
    "interval", "seconds", "sec",
)
_MEMORY_NAME_PATTERNS = ("memory", "mem", "swap", "bytes", "size", "allocated", "used", "buffer", "cache")
# Ratios of memory or time are plain numbers: memory_percent is a percent, not bytes
_RATIO_NAME_PATTERNS = ("percent", "pct", "ratio")

_MEMORY_STEPS = (
    ("TB", KIB ** 4),
    ("GB", KIB ** 3),
    ("MB", KIB ** 2),
    ("KB", KIB),
    ("B", 1),
)


def _classify_unit(unit: str) -> str | None:
    unit = unit.lower()
    if unit in _TIME_UNITS_EXACT or any(p in unit for p in _TIME_UNITS_PARTIAL):
        return TIME
    if unit in _MEMORY_UNITS_EXACT or any(p in unit for p in _MEMORY_UNITS_PARTIAL):
        return MEMORY
    return None


def classify(name: str | None, hints: Mapping[str, Any] | None = None) -> str:
    """Return the unit class of a metric: "time", "memory" or "number"."""
    if hints:
        for field_name in UNIT_FIELDS:
            unit = hints.get(field_name)
            if unit and isinstance(unit, str):
                kind = _classify_unit(unit)
                if kind is not None:
                    return kind

    if name:
        lowered = name.lower()
        if any(p in lowered for p in _RATIO_NAME_PATTERNS):
            return NUMBER
        if any(p in lowered for p in _TIME_NAME_PATTERNS):
            return TIME
        if any(p in lowered for p in _MEMORY_NAME_PATTERNS):
            return MEMORY

    return NUMBER


def kib_to_bytes(value: Any) -> Any:
    """Convert a numeric KiB value to bytes; non-numbers pass through."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    return value * KIB


def _trim(formatted: str) -> str:
    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")
    return formatted or "0"


def format_time(value: float | None) -> str:
    """Format seconds with a threshold-selected unit (h, m, s, ms, μs, ns)."""
    if not value:
        return "0 s"

    abs_value = abs(value)
    if abs_value >= 3600:
        unit, scaled = "h", abs_value / 3600
    elif abs_value >= 60:
        unit, scaled = "m", abs_value / 60
    elif abs_value >= 1:
        unit, scaled = "s", abs_value
    elif abs_value >= 1e-3:
        unit, scaled = "ms", abs_value / 1e-3
    elif abs_value >= 1e-6:
        unit, scaled = "μs", abs_value / 1e-6
    else:
        unit, scaled = "ns", abs_value / 1e-9

    if unit in ("ms", "μs"):
        decimals = 3
    elif unit == "ns":
        decimals = 0
    else:
        decimals = 0 if scaled >= 10 else 1 if scaled >= 1 else 2

    sign = "-" if value < 0 else ""
    return f"{sign}{_trim(f'{scaled:.{decimals}f}')} {unit}"


def format_memory(value: float | None) -> str:
    """Format a byte count with the largest unit that keeps it >= 1."""
    if not value:
        return "0 B"

    abs_value = abs(value)
    sign = "-" if value < 0 else ""
    for unit, factor in _MEMORY_STEPS:
        if abs_value >= factor:
            scaled = abs_value / factor
            if scaled >= 100:
                formatted = f"{scaled:.0f}"
            elif scaled >= 10:
                formatted = f"{scaled:.1f}"
            else:
                formatted = f"{scaled:.2f}"
            return f"{sign}{_trim(formatted)} {unit}"

    return f"{sign}{abs_value:.0f} B"


def format_number(value: float) -> str:
    """Integers verbatim, floats to 6 decimals with trailing zeros trimmed."""
    if isinstance(value, int) or (math.isfinite(value) and float(value).is_integer()):
        return str(int(value))
    if not math.isfinite(value):
        return str(value)
    return _trim(f"{value:.6f}")


def format_value(value: Any, kind: str = NUMBER) -> str:
    """Format any cached value for display according to its unit class."""
    if value is None:
        return "N/A"

    if isinstance(value, (list, tuple)):
        if not value:
            return "[]"
        if len(value) <= 5:
            return ", ".join(
                f"{v:.2f}" if isinstance(v, (int, float)) and not isinstance(v, bool) else str(v)
                for v in value
            )
        return f"[{len(value)} items]"

    if isinstance(value, Mapping):
        text = orjson.dumps(value, default=str).decode()
        return text[:50] + ("..." if len(text) > 50 else "")

    if isinstance(value, bool):
        return str(value).lower()

    if isinstance(value, (int, float)):
        if kind == TIME:
            return format_time(value)
        if kind == MEMORY:
            return format_memory(value)
        return format_number(value)

    return str(value)


def format_timestamp(timestamp: float | None) -> str:
    """Epoch seconds -> local HH:MM:SS, or "N/A"."""
    if not timestamp:
        return "N/A"
    try:
        return time.strftime("%H:%M:%S", time.localtime(float(timestamp)))
    except (TypeError, ValueError, OverflowError, OSError):
        return str(timestamp)


def format_usd(value: float) -> str:
    if value == 0:
        return "$0.00"
    if abs(value) >= 1:
        return f"${value:.2f}"
    return f"${_trim(f'{value:.6f}')}"


def format_labels(labels: Mapping[str, Any]) -> str:
    """Render a label mapping as "k: v, k2: v2"."""
    return ", ".join(f"{k}: {v}" for k, v in labels.items())
