"""Home Assistant MQTT light discovery and JSON-schema state payloads."""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass
from typing import Any

from brightness_mqtt.scaling import HA_BRIGHTNESS_MAX, power_state, to_normalized

STATE_ON = "ON"
STATE_OFF = "OFF"


def base_topic(prefix: str, entity_id: str) -> str:
    return f"{prefix}/light/{entity_id}"


def config_topic(prefix: str, entity_id: str) -> str:
    return f"{base_topic(prefix, entity_id)}/config"


def state_topic(prefix: str, entity_id: str) -> str:
    return f"{base_topic(prefix, entity_id)}/state"


def command_topic(prefix: str, entity_id: str) -> str:
    return f"{base_topic(prefix, entity_id)}/set"


def build_light_entity(prefix: str, entity_id: str, label: str) -> dict[str, Any]:
    """Build a Home Assistant JSON-schema light definition.

    Args:
        prefix: Discovery prefix, usually ``homeassistant``.
        entity_id: Object id from the bridge configuration.
        label: Human-readable display label reported by the bus.

    Returns:
        Light entity definition using the ``~`` base-topic shorthand.
    """
    return {
        "name": f"{label} Brightness",
        "uniq_id": f"{entity_id}_brightness",
        "~": base_topic(prefix, entity_id),
        "cmd_t": "~/set",
        "stat_t": "~/state",
        "schema": "json",
        "brightness": True,
    }


@dataclass(frozen=True)
class LightState:
    brightness: int
    state: str

    @classmethod
    def from_native(cls, raw: int, native_max: int) -> LightState:
        state = power_state(raw)
        brightness = to_normalized(raw, native_max)
        if state == STATE_ON and brightness == 0:
            brightness = 1
        return cls(brightness=brightness, state=state)

    @classmethod
    def off(cls) -> LightState:
        return cls(brightness=0, state=STATE_OFF)

    def to_json(self) -> str:
        return json.dumps(asdict(self))


@dataclass(frozen=True)
class LightCommand:
    state: str
    brightness: int | None = None

    @classmethod
    def from_payload(cls, payload: bytes | str) -> LightCommand:
        """Decode a ``.../set`` payload; raises ValueError when it is malformed."""
        if isinstance(payload, bytes):
            try:
                payload = payload.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ValueError(f"command is not UTF-8: {exc}") from exc
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValueError(f"command is not JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("command must be a JSON object")

        state = data.get("state")
        if not isinstance(state, str) or state.upper() not in {STATE_ON, STATE_OFF}:
            raise ValueError(f"invalid state {state!r}")

        brightness = data.get("brightness")
        if brightness is not None:
            if isinstance(brightness, bool) or not isinstance(brightness, int | float):
                raise ValueError(f"invalid brightness {brightness!r}")
            if isinstance(brightness, float) and not math.isfinite(brightness):
                raise ValueError(f"brightness out of range: {brightness!r}")
            brightness = max(0, min(HA_BRIGHTNESS_MAX, int(round(brightness))))
        return cls(state=state.upper(), brightness=brightness)
