"""
Shared parsing helpers

Provides common helpers for:
- Environment-style values: parse_bool, parse_int, parse_float, strip_or_none
"""

from __future__ import annotations

from typing import Any


def strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def parse_bool(value: Any, default: bool = False) -> bool:
    """Interpret env-style booleans; real booleans pass through."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def parse_int(value: Any, default: int) -> int:
    """Best-effort int parser with fallback."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_float(value: Any, default: float) -> float:
    """Best-effort float parser with fallback."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
