"""Configuration loading for the brightness MQTT bridge."""

from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from brightness_mqtt.utils import (
    parse_bool,
    parse_float,
    parse_int,
    strip_or_none,
)

CONFIG_FILE_NAME = "go-mqtt-dbus.json"
SYSTEM_CONFIG_PATH = Path("/etc") / CONFIG_FILE_NAME
DEFAULT_DISCOVERY_PREFIX = "homeassistant"
DEFAULT_CLIENT_ID = "brightness-mqtt-bridge"
DEFAULT_RECONNECT_DELAY = 5.0

# Used verbatim as an MQTT topic level, so wildcards and separators are out.
_ENTITY_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


class ConfigError(Exception):
    """Raised when the bridge configuration cannot be loaded."""


@dataclass(frozen=True)
class MqttConfig:
    host: str
    port: int
    client_id: str
    username: str | None = None
    password: str | None = None
    tls_enabled: bool = False
    ca_cert: str | None = None
    cert: str | None = None
    key: str | None = None
    keepalive: int = 60
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY


@dataclass(frozen=True)
class BridgeConfig:
    mqtt: MqttConfig
    entity_patterns: dict[str, re.Pattern[str]]
    discovery_prefix: str = DEFAULT_DISCOVERY_PREFIX
    exit_on_topology_change: bool = True

    @property
    def entity_ids(self) -> list[str]:
        return list(self.entity_patterns)

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        env: Mapping[str, str] | None = None,
    ) -> BridgeConfig:
        """Build a config from the parsed JSON document plus environment overrides."""
        source = env if env is not None else os.environ
        if not isinstance(data, Mapping):
            raise ConfigError("configuration root must be a JSON object")

        host = strip_or_none(source.get("MQTT_HOST")) or strip_or_none(data.get("mqtt_broker"))
        if not host:
            raise ConfigError("mqtt_broker is required")
        port = parse_int(source.get("MQTT_PORT"), parse_int(data.get("mqtt_port"), 1883))
        if not 0 < port < 65536:
            raise ConfigError(f"mqtt_port out of range: {port}")

        mqtt = MqttConfig(
            host=host,
            port=port,
            client_id=strip_or_none(data.get("client_id")) or DEFAULT_CLIENT_ID,
            username=strip_or_none(
                source.get("MQTT_USER") or source.get("MQTT_USERNAME") or data.get("mqtt_username")
            ),
            password=strip_or_none(
                source.get("MQTT_PASS") or source.get("MQTT_PASSWORD") or data.get("mqtt_password")
            ),
            tls_enabled=parse_bool(source.get("MQTT_TLS_ENABLED"), parse_bool(data.get("mqtt_tls"), False)),
            ca_cert=strip_or_none(data.get("mqtt_ca_cert")),
            cert=strip_or_none(data.get("mqtt_cert")),
            key=strip_or_none(data.get("mqtt_key")),
            keepalive=max(5, parse_int(data.get("mqtt_keepalive"), 60)),
            reconnect_delay=max(1.0, parse_float(data.get("reconnect_delay"), DEFAULT_RECONNECT_DELAY)),
        )

        return cls(
            mqtt=mqtt,
            entity_patterns=_compile_patterns(data.get("homeassistant_property_ids_regex")),
            discovery_prefix=(strip_or_none(data.get("discovery_prefix")) or DEFAULT_DISCOVERY_PREFIX).rstrip("/"),
            exit_on_topology_change=parse_bool(data.get("exit_on_topology_change"), True),
        )


def _compile_patterns(raw: Any) -> dict[str, re.Pattern[str]]:
    if not isinstance(raw, Mapping) or not raw:
        raise ConfigError("homeassistant_property_ids_regex must map entity ids to label patterns")
    patterns: dict[str, re.Pattern[str]] = {}
    for entity_id, pattern in raw.items():
        if not isinstance(entity_id, str) or not _ENTITY_ID_PATTERN.fullmatch(entity_id):
            raise ConfigError(
                f"entity id {entity_id!r} may only contain letters, digits, underscores and hyphens"
            )
        if not isinstance(pattern, str):
            raise ConfigError(f"pattern for {entity_id!r} must be a string")
        try:
            patterns[entity_id] = re.compile(pattern)
        except re.error as exc:
            raise ConfigError(f"invalid pattern for {entity_id!r}: {exc}") from exc
    return patterns


def user_config_dir(env: Mapping[str, str] | None = None) -> Path:
    source = env if env is not None else os.environ
    xdg = strip_or_none(source.get("XDG_CONFIG_HOME"))
    if xdg:
        return Path(xdg)
    return Path.home() / ".config"


def resolve_config_path(explicit: str | None = None, env: Mapping[str, str] | None = None) -> Path:
    """Pick the config file: explicit path, env override, per-user file, then /etc."""
    source = env if env is not None else os.environ
    if explicit:
        return Path(explicit).expanduser()
    if override := strip_or_none(source.get("BRIGHTNESS_MQTT_CONFIG")):
        return Path(override).expanduser()
    user_path = user_config_dir(source) / CONFIG_FILE_NAME
    if user_path.exists() or not SYSTEM_CONFIG_PATH.exists():
        return user_path
    return SYSTEM_CONFIG_PATH


def load_config(path: Path, env: Mapping[str, str] | None = None) -> BridgeConfig:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"reading config file {path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"parsing config file {path}: {exc}") from exc
    return BridgeConfig.from_mapping(data, env=env)
