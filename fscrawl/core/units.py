# fscrawl/core/units.py
"""
Parsing of human-friendly durations and byte sizes used in settings.

    parse_duration("15m")  -> 900.0
    parse_duration(5)      -> 5.0
    parse_byte_size("10mb") -> 10485760
"""

from __future__ import annotations

import re
from typing import Union

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h|d)?\s*$", re.IGNORECASE)
_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(b|kb|mb|gb|tb)?\s*$", re.IGNORECASE)

_DURATION_FACTORS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}

_SIZE_FACTORS = {
    "b": 1,
    "kb": 1024,
    "mb": 1024**2,
    "gb": 1024**3,
    "tb": 1024**4,
}


def parse_duration(value: Union[str, int, float]) -> float:
    """Return a duration in seconds. Bare numbers are seconds."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Duration must not be negative: {value!r}")
        return float(value)

    match = _DURATION_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid duration: {value!r} (expected e.g. '500ms', '5s', '15m', '1h')")
    number, unit = match.groups()
    return float(number) * _DURATION_FACTORS[(unit or "s").lower()]


def parse_byte_size(value: Union[str, int]) -> int:
    """Return a size in bytes. Bare numbers are bytes."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid byte size: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Byte size must not be negative: {value!r}")
        return int(value)

    match = _SIZE_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid byte size: {value!r} (expected e.g. '512kb', '10mb')")
    number, unit = match.groups()
    return int(float(number) * _SIZE_FACTORS[(unit or "b").lower()])


__all__ = ["parse_duration", "parse_byte_size"]
