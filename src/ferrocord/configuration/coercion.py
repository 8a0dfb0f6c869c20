"""Lenient converters for YAML values: a malformed setting falls back to its default."""

from __future__ import annotations

from typing import Any

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def as_int(value: Any, default: int | None = None) -> int | None:
    """Coerce snowflake-like values (int or numeric string) to int, else ``default``."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def as_float(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    # nan and inf are not usable durations
    return result if result == result and abs(result) != float("inf") else default


def as_bool(value: Any, default: bool) -> bool:
    """Accept real booleans and the usual spellings; anything else is ``default``."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    return default
