"""Tests for Home Assistant payload builders (brightness_mqtt/discovery.py)."""

from __future__ import annotations

import json

import pytest
from brightness_mqtt.discovery import (
    LightCommand,
    LightState,
    build_light_entity,
    command_topic,
    config_topic,
    state_topic,
)


def test_topics():
    assert config_topic("homeassistant", "laptop") == "homeassistant/light/laptop/config"
    assert state_topic("homeassistant", "laptop") == "homeassistant/light/laptop/state"
    assert command_topic("homeassistant", "laptop") == "homeassistant/light/laptop/set"


def test_build_light_entity():
    entity = build_light_entity("homeassistant", "laptop", "eDP-1")

    assert entity == {
        "name": "eDP-1 Brightness",
        "uniq_id": "laptop_brightness",
        "~": "homeassistant/light/laptop",
        "cmd_t": "~/set",
        "stat_t": "~/state",
        "schema": "json",
        "brightness": True,
    }


class TestLightState:
    def test_half_brightness(self):
        state = LightState.from_native(5000, 10000)
        assert json.loads(state.to_json()) == {"brightness": 128, "state": "ON"}

    def test_zero_is_off(self):
        assert LightState.from_native(0, 10000) == LightState(brightness=0, state="OFF")

    def test_tiny_nonzero_value_stays_visible(self):
        assert LightState.from_native(1, 10000) == LightState(brightness=1, state="ON")

    def test_off_payload(self):
        assert json.loads(LightState.off().to_json()) == {"brightness": 0, "state": "OFF"}


class TestLightCommand:
    def test_full_command(self):
        assert LightCommand.from_payload(b'{"brightness": 200, "state": "ON"}') == LightCommand("ON", 200)

    def test_state_only(self):
        assert LightCommand.from_payload('{"state": "ON"}') == LightCommand("ON", None)

    def test_lowercase_state_and_clamped_brightness(self):
        assert LightCommand.from_payload(b'{"state": "on", "brightness": 999}') == LightCommand("ON", 255)

    @pytest.mark.parametrize(
        "payload",
        [
            b"not json",
            b"[]",
            b'{"brightness": 10}',
            b'{"state": "DIM"}',
            b'{"state": "ON", "brightness": "high"}',
            b'{"state": "ON", "brightness": true}',
            b'{"state": "ON", "brightness": 1e400}',
            b'{"state": "ON", "brightness": NaN}',
            b'{"state": "ON", "brightness": -Infinity}',
            b"\xff\xfe",
        ],
    )
    def test_malformed_payloads_raise(self, payload):
        with pytest.raises(ValueError):
            LightCommand.from_payload(payload)
