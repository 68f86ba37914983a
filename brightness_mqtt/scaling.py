"""Brightness conversion between display-native units and the 0-255 light scale."""

from __future__ import annotations

import math

HA_BRIGHTNESS_MAX = 255


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _require_positive_max(native_max: int) -> None:
    if native_max <= 0:
        raise ValueError(f"native maximum brightness must be positive, got {native_max}")


def to_normalized(raw: int, native_max: int) -> int:
    """Scale a native brightness value to the Home Assistant 0-255 range."""
    _require_positive_max(native_max)
    raw = max(0, min(native_max, raw))
    return max(0, min(HA_BRIGHTNESS_MAX, _round_half_up(raw / native_max * HA_BRIGHTNESS_MAX)))


def to_native(normalized: int, native_max: int) -> int:
    """Scale a 0-255 Home Assistant brightness to the display's native range."""
    _require_positive_max(native_max)
    normalized = max(0, min(HA_BRIGHTNESS_MAX, normalized))
    return max(0, min(native_max, _round_half_up(normalized / HA_BRIGHTNESS_MAX * native_max)))


def power_state(raw: int) -> str:
    return "ON" if raw > 0 else "OFF"
