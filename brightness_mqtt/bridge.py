"""Controller relaying ScreenBrightness D-Bus state to Home Assistant over MQTT.

Every producer (paho's network thread, the D-Bus signal dispatcher, signal
handlers in ``main``) only posts events; ``BridgeController.run`` consumes them
one at a time, so the display registry has a single writer and needs no lock.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from brightness_mqtt import systemd_notify
from brightness_mqtt.config import BridgeConfig
from brightness_mqtt.dbus_client import (
    BRIGHTNESS_CHANGED,
    DISPLAY_ADDED,
    DISPLAY_REMOVED,
    BusError,
)
from brightness_mqtt.discovery import (
    STATE_OFF,
    LightCommand,
    LightState,
    build_light_entity,
    command_topic,
    config_topic,
    state_topic,
)
from brightness_mqtt.registry import DisplayInfo, DisplayRegistry, DisplaySource, discover
from brightness_mqtt.scaling import HA_BRIGHTNESS_MAX, to_native

LOGGER = logging.getLogger(__name__)

EXIT_TOPOLOGY_CHANGED = 1


class BrightnessBus(DisplaySource, Protocol):
    async def display_brightness(self, device_name: str) -> int: ...

    async def set_display_brightness(self, device_name: str, brightness: int) -> None: ...

    async def subscribe_signals(self, members: Iterable[str], handler) -> None: ...


class Broker(Protocol):
    def on_connect(self, handler) -> None: ...

    def on_disconnect(self, handler) -> None: ...

    def connect(self) -> None: ...

    def publish(self, topic: str, payload: str, retain: bool = False, qos: int = 0) -> None: ...

    def subscribe(self, topic: str, handler, qos: int = 0) -> None: ...

    def unsubscribe(self, topic: str) -> None: ...


class BridgeState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


@dataclass(frozen=True)
class Connected:
    pass


@dataclass(frozen=True)
class Disconnected:
    reason: str = ""


@dataclass(frozen=True)
class Command:
    entity_id: str
    payload: bytes


@dataclass(frozen=True)
class BusSignal:
    device: str
    brightness: int


@dataclass(frozen=True)
class TopologyChanged:
    member: str


@dataclass(frozen=True)
class Shutdown:
    pass


BridgeEvent = Connected | Disconnected | Command | BusSignal | TopologyChanged | Shutdown


class BridgeController:
    def __init__(
        self,
        config: BridgeConfig,
        bus: BrightnessBus,
        broker: Broker,
        *,
        registry: DisplayRegistry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.bus = bus
        self.broker = broker
        self._logger = logger or LOGGER
        self._registry = registry if registry is not None else DisplayRegistry()
        self._state = BridgeState.DISCONNECTED
        self._queue: asyncio.Queue[BridgeEvent] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._subscribed: set[str] = set()
        self._last_level: dict[str, int] = {}
        self.exit_code = 0

    @property
    def registry(self) -> DisplayRegistry:
        return self._registry

    @property
    def state(self) -> BridgeState:
        return self._state

    # ------------------------------------------------------------------
    # Event plumbing

    def post(self, event: BridgeEvent) -> None:
        """Queue an event; safe to call from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            self._queue.put_nowait(event)
            return
        loop.call_soon_threadsafe(self._queue.put_nowait, event)

    def stop(self) -> None:
        self.post(Shutdown())

    async def start(self) -> None:
        """Discover displays, hook up bus signals and start the broker connection."""
        self._loop = asyncio.get_running_loop()
        await self.rediscover()
        missing = self._registry.missing_entities(self.config.entity_ids)
        if missing:
            self._logger.info("[bridge] No display present for: %s", ", ".join(missing))
        await self.bus.subscribe_signals(
            (BRIGHTNESS_CHANGED, DISPLAY_ADDED, DISPLAY_REMOVED),
            self._on_bus_signal,
        )
        self.broker.on_connect(lambda: self.post(Connected()))
        self.broker.on_disconnect(lambda reason: self.post(Disconnected(reason)))
        self.broker.connect()

    async def run(self) -> int:
        """Consume events until shutdown or a fatal topology change; returns the exit code."""
        self._loop = asyncio.get_running_loop()
        while True:
            event = await self._queue.get()
            if isinstance(event, Shutdown):
                self._logger.info("[bridge] Shutting down")
                break
            try:
                await self.handle_event(event)
            except Exception as exc:  # pylint: disable=broad-except
                self._logger.exception("[bridge] Failed to handle %s: %s", event, exc)
            if self.exit_code:
                break
        return self.exit_code

    async def handle_event(self, event: BridgeEvent) -> None:
        if isinstance(event, Connected):
            self._state = BridgeState.CONNECTED
            await self.announce_all()
        elif isinstance(event, Disconnected):
            self._state = BridgeState.DISCONNECTED
            self._subscribed.clear()
            self._logger.warning("[bridge] Broker disconnected (%s); waiting for reconnect", event.reason)
        elif isinstance(event, Command):
            await self._handle_command(event)
        elif isinstance(event, BusSignal):
            self._handle_brightness_changed(event)
        elif isinstance(event, TopologyChanged):
            await self._handle_topology_changed(event)

    def _on_bus_signal(self, member: str, body: list) -> None:
        if member == BRIGHTNESS_CHANGED:
            if len(body) < 2 or not isinstance(body[0], str) or not isinstance(body[1], int):
                self._logger.warning("[bridge] Ignoring malformed %s signal: %r", member, body)
                return
            self.post(BusSignal(device=body[0], brightness=body[1]))
        else:
            self.post(TopologyChanged(member))

    def _command_handler(self, entity_id: str):
        def _handler(_topic: str, payload: bytes) -> None:
            self.post(Command(entity_id=entity_id, payload=bytes(payload)))

        return _handler

    # ------------------------------------------------------------------
    # Procedures

    async def rediscover(self) -> list[str]:
        registry, warnings = await discover(
            self.bus,
            self.config.entity_patterns,
            previous=self._registry,
            logger=self._logger,
        )
        self._registry = registry
        return warnings

    async def announce_all(self) -> None:
        """Publish config and state for every entity and (re)install command subscriptions.

        Runs on the first connect and on every reconnect, so retained broker
        state always reflects the last values read from the bus.
        """
        prefix = self.config.discovery_prefix
        for display in self._registry:
            entity = build_light_entity(prefix, display.entity_id, display.label)
            self._publish_json(config_topic(prefix, display.entity_id), entity, qos=1)
            try:
                raw = await self.bus.display_brightness(display.name)
            except BusError as exc:
                self._logger.error("[bridge] Failed to read brightness for %s: %s", display.name, exc)
            else:
                self._publish_state(display, raw)
            topic = command_topic(prefix, display.entity_id)
            self.broker.subscribe(topic, self._command_handler(display.entity_id))
            self._subscribed.add(topic)

        for entity_id in self._registry.missing_entities(self.config.entity_ids):
            self.broker.publish(state_topic(prefix, entity_id), LightState.off().to_json(), retain=True)

        systemd_notify.status(f"Connected; {len(self._registry)} display(s) announced")

    def _publish_json(self, topic: str, data: dict, qos: int = 0) -> None:
        self.broker.publish(topic, json.dumps(data), retain=True, qos=qos)

    def _remember_level(self, display: DisplayInfo, raw: int) -> LightState:
        state = LightState.from_native(raw, display.max_brightness)
        if state.brightness > 0:
            self._last_level[display.entity_id] = state.brightness
        return state

    def _publish_state(self, display: DisplayInfo, raw: int) -> None:
        state = self._remember_level(display, raw)
        self._logger.debug("[bridge] %s -> %s (raw %s/%s)", display.entity_id, state, raw, display.max_brightness)
        self.broker.publish(
            state_topic(self.config.discovery_prefix, display.entity_id), state.to_json(), retain=True
        )

    # ------------------------------------------------------------------
    # Event handlers

    async def _handle_command(self, event: Command) -> None:
        try:
            command = LightCommand.from_payload(event.payload)
        except ValueError as exc:
            self._logger.warning("[bridge] Dropping malformed command for %s: %s", event.entity_id, exc)
            return
        display = self._registry.for_entity(event.entity_id)
        if display is None:
            self._logger.warning("[bridge] Command for unknown entity %s dropped", event.entity_id)
            return
        self._logger.info("[bridge] Received command for %s: %s", event.entity_id, command)

        if command.state == STATE_OFF:
            raw = 0
        else:
            level = command.brightness
            if level is None:
                level = self._last_level.get(event.entity_id, HA_BRIGHTNESS_MAX)
            raw = to_native(level, display.max_brightness)
        try:
            await self.bus.set_display_brightness(display.name, raw)
        except BusError as exc:
            self._logger.error("[bridge] Failed to set brightness on %s: %s", display.name, exc)

    def _handle_brightness_changed(self, event: BusSignal) -> None:
        displays = self._registry.for_device(event.device)
        if not displays:
            self._logger.debug("[bridge] Brightness change for unregistered display %s dropped", event.device)
            return
        for display in displays:
            self._remember_level(display, event.brightness)
        if self._state is not BridgeState.CONNECTED:
            self._logger.debug("[bridge] Broker offline; not publishing change on %s", event.device)
            return
        for display in displays:
            self._publish_state(display, event.brightness)

    async def _handle_topology_changed(self, event: TopologyChanged) -> None:
        if self.config.exit_on_topology_change:
            # Reconciling live subscriptions against a new entity set is left to
            # a clean restart by the service manager.
            self._logger.error("[bridge] %s received; exiting so the service manager restarts the bridge", event.member)
            self.exit_code = EXIT_TOPOLOGY_CHANGED
            return

        self._logger.info("[bridge] %s received; rediscovering displays", event.member)
        await self.rediscover()
        prefix = self.config.discovery_prefix
        current = {command_topic(prefix, entity_id) for entity_id in self._registry.entity_ids}
        for topic in sorted(self._subscribed - current):
            self.broker.unsubscribe(topic)
            self._subscribed.discard(topic)
        if self._state is BridgeState.CONNECTED:
            await self.announce_all()
