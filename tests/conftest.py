"""Shared test fixtures for the brightness MQTT bridge test suite.

Provides:
- A fake ScreenBrightness bus with scripted displays and failures
- A mock broker adapter and a mock paho client
- Configuration factories
"""

from __future__ import annotations

import logging
import re
from typing import Any
from unittest.mock import Mock

import paho.mqtt.client as mqtt
import pytest
from brightness_mqtt.bridge import BridgeController
from brightness_mqtt.config import BridgeConfig, MqttConfig
from brightness_mqtt.dbus_client import BusError
from brightness_mqtt.mqtt import BrokerClient

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


@pytest.fixture
def mock_logger():
    return Mock(spec=logging.Logger)


# ============================================================================
# D-Bus Fakes
# ============================================================================


class FakeBrightnessBus:
    """In-memory stand-in for ScreenBrightnessBus.

    ``displays`` maps device name to a dict with ``label``, ``max`` and
    ``brightness``. ``failures`` holds ``(device, property)`` pairs that raise
    BusError; use ``("*", "names")`` to fail the display listing.
    """

    def __init__(self, displays: dict[str, dict[str, Any]] | None = None) -> None:
        self.displays = displays or {}
        self.failures: set[tuple[str, str]] = set()
        self.set_calls: list[tuple[str, int]] = []
        self.read_calls: list[str] = []
        self.signal_members: list[str] = []
        self.signal_handler = None

    def _maybe_fail(self, device: str, prop: str) -> None:
        if (device, prop) in self.failures:
            raise BusError(f"scripted failure for {device}.{prop}")

    async def display_names(self) -> list[str]:
        self._maybe_fail("*", "names")
        return list(self.displays)

    async def display_label(self, device_name: str) -> str:
        self._maybe_fail(device_name, "label")
        return self.displays[device_name]["label"]

    async def display_max_brightness(self, device_name: str) -> int:
        self._maybe_fail(device_name, "max")
        return self.displays[device_name]["max"]

    async def display_brightness(self, device_name: str) -> int:
        self.read_calls.append(device_name)
        self._maybe_fail(device_name, "brightness")
        return self.displays[device_name]["brightness"]

    async def set_display_brightness(self, device_name: str, brightness: int) -> None:
        self._maybe_fail(device_name, "set")
        self.set_calls.append((device_name, brightness))

    async def subscribe_signals(self, members, handler) -> None:
        self.signal_members = list(members)
        self.signal_handler = handler


@pytest.fixture
def laptop_bus():
    """One eDP panel at half brightness."""
    return FakeBrightnessBus({"display0": {"label": "eDP-1", "max": 10000, "brightness": 5000}})


# ============================================================================
# MQTT Fixtures
# ============================================================================


@pytest.fixture
def mqtt_config():
    return MqttConfig(host="localhost", port=1883, client_id="test-bridge", reconnect_delay=5.0)


@pytest.fixture
def mock_broker():
    return Mock(spec=BrokerClient)


@pytest.fixture
def mock_mqtt_client():
    """Create a mock paho MQTT client."""
    client = Mock(spec=mqtt.Client)
    message_info = Mock(spec=mqtt.MQTTMessageInfo)
    message_info.rc = mqtt.MQTT_ERR_SUCCESS
    message_info.mid = 1
    client.publish = Mock(return_value=message_info)
    client.subscribe = Mock(return_value=(mqtt.MQTT_ERR_SUCCESS, 1))
    return client


# ============================================================================
# Config / Controller Factories
# ============================================================================


@pytest.fixture
def make_config(mqtt_config):
    """Factory for BridgeConfig objects.

    Usage:
        config = make_config({"laptop": "eDP.*"}, exit_on_topology_change=False)
    """

    def _create(patterns: dict[str, str] | None = None, **overrides: Any) -> BridgeConfig:
        raw = patterns if patterns is not None else {"laptop": "eDP.*"}
        defaults: dict[str, Any] = {
            "mqtt": mqtt_config,
            "entity_patterns": {entity_id: re.compile(pattern) for entity_id, pattern in raw.items()},
        }
        defaults.update(overrides)
        return BridgeConfig(**defaults)

    return _create


@pytest.fixture
def make_controller(make_config, mock_broker, mock_logger):
    def _create(bus: FakeBrightnessBus, patterns: dict[str, str] | None = None, **overrides: Any) -> BridgeController:
        return BridgeController(make_config(patterns, **overrides), bus, mock_broker, logger=mock_logger)

    return _create


def published(broker: Mock) -> list[tuple[str, str, bool]]:
    """Return (topic, payload, retain) for every publish made on a mock broker."""
    calls = []
    for call in broker.publish.call_args_list:
        topic = call.args[0]
        payload = call.args[1] if len(call.args) > 1 else call.kwargs["payload"]
        retain = call.kwargs.get("retain", call.args[2] if len(call.args) > 2 else False)
        calls.append((topic, payload, retain))
    return calls


@pytest.fixture
def fake_bus_class():
    return FakeBrightnessBus


@pytest.fixture
def published_messages():
    return published
