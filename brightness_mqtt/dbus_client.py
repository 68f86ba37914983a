"""Async wrapper around the KDE ScreenBrightness D-Bus service."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from dbus_fast import BusType, Message, MessageType, Variant
from dbus_fast.aio import MessageBus

SERVICE_NAME = "org.kde.ScreenBrightness"
ROOT_PATH = "/org/kde/ScreenBrightness"
DISPLAY_INTERFACE = f"{SERVICE_NAME}.Display"

PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"
BUS_DAEMON_NAME = "org.freedesktop.DBus"
BUS_DAEMON_PATH = "/org/freedesktop/DBus"

DISPLAYS_PROPERTY = "DisplaysDBusNames"
LABEL_PROPERTY = "Label"
BRIGHTNESS_PROPERTY = "Brightness"
MAX_BRIGHTNESS_PROPERTY = "MaxBrightness"
SET_BRIGHTNESS_METHOD = "SetBrightness"
# SetBrightness flag: suppress the on-screen indicator
SET_BRIGHTNESS_FLAGS = 1

BRIGHTNESS_CHANGED = "BrightnessChanged"
DISPLAY_ADDED = "DisplayAdded"
DISPLAY_REMOVED = "DisplayRemoved"

SignalHandler = Callable[[str, list[Any]], None]


class BusError(Exception):
    """A D-Bus call returned an error reply or an unexpected value."""


def display_path(device_name: str) -> str:
    return f"{ROOT_PATH}/{device_name}"


def _check_reply(reply: Message | None, what: str) -> Message:
    if reply is None:
        raise BusError(f"{what}: no reply")
    if reply.message_type == MessageType.ERROR:
        detail = reply.body[0] if reply.body else ""
        raise BusError(f"{what}: {reply.error_name} {detail}".strip())
    return reply


class ScreenBrightnessBus:
    """Property reads, method calls and signal subscriptions against ScreenBrightness."""

    def __init__(self, bus: MessageBus, logger: logging.Logger | None = None) -> None:
        self._bus = bus
        self._logger = logger or logging.getLogger(__name__)
        self._signal_handlers: list[tuple[frozenset[str], SignalHandler]] = []
        self._handler_installed = False

    @classmethod
    async def connect(
        cls, bus_type: BusType = BusType.SESSION, logger: logging.Logger | None = None
    ) -> ScreenBrightnessBus:
        bus = await MessageBus(bus_type=bus_type).connect()
        return cls(bus, logger=logger)

    def disconnect(self) -> None:
        self._bus.disconnect()

    async def get_property(self, path: str, interface: str, name: str) -> Any:
        what = f"get {interface}.{name} on {path}"
        reply = _check_reply(
            await self._bus.call(
                Message(
                    destination=SERVICE_NAME,
                    path=path,
                    interface=PROPERTIES_INTERFACE,
                    member="Get",
                    signature="ss",
                    body=[interface, name],
                )
            ),
            what,
        )
        value = reply.body[0] if reply.body else None
        if isinstance(value, Variant):
            return value.value
        return value

    async def call_method(
        self, path: str, interface: str, member: str, signature: str = "", body: Sequence[Any] = ()
    ) -> list[Any]:
        reply = _check_reply(
            await self._bus.call(
                Message(
                    destination=SERVICE_NAME,
                    path=path,
                    interface=interface,
                    member=member,
                    signature=signature,
                    body=list(body),
                )
            ),
            f"call {interface}.{member} on {path}",
        )
        return list(reply.body)

    async def subscribe_signals(self, members: Iterable[str], handler: SignalHandler) -> None:
        """Register ``handler(member, body)`` for the given root-path signals."""
        wanted = frozenset(members)
        for member in sorted(wanted):
            rule = f"type='signal',interface='{SERVICE_NAME}',member='{member}',path='{ROOT_PATH}'"
            _check_reply(
                await self._bus.call(
                    Message(
                        destination=BUS_DAEMON_NAME,
                        path=BUS_DAEMON_PATH,
                        interface=BUS_DAEMON_NAME,
                        member="AddMatch",
                        signature="s",
                        body=[rule],
                    )
                ),
                f"AddMatch {member}",
            )
        self._signal_handlers.append((wanted, handler))
        if not self._handler_installed:
            self._bus.add_message_handler(self._on_message)
            self._handler_installed = True

    def _on_message(self, message: Message) -> None:
        if message.message_type != MessageType.SIGNAL:
            return None
        if message.interface != SERVICE_NAME or message.path != ROOT_PATH:
            return None
        for members, handler in self._signal_handlers:
            if message.member in members:
                try:
                    handler(message.member, list(message.body))
                except Exception as exc:  # pylint: disable=broad-except
                    self._logger.error("[dbus] Signal handler failed for %s: %s", message.member, exc, exc_info=True)
        return None

    async def display_names(self) -> list[str]:
        value = await self.get_property(ROOT_PATH, SERVICE_NAME, DISPLAYS_PROPERTY)
        if not isinstance(value, list | tuple):
            raise BusError(f"unexpected type for {DISPLAYS_PROPERTY}: {type(value).__name__}")
        return [str(name) for name in value]

    async def display_label(self, device_name: str) -> str:
        value = await self.get_property(display_path(device_name), DISPLAY_INTERFACE, LABEL_PROPERTY)
        if not isinstance(value, str):
            raise BusError(f"unexpected type for {LABEL_PROPERTY}: {type(value).__name__}")
        return value

    async def display_brightness(self, device_name: str) -> int:
        return await self._int_property(device_name, BRIGHTNESS_PROPERTY)

    async def display_max_brightness(self, device_name: str) -> int:
        return await self._int_property(device_name, MAX_BRIGHTNESS_PROPERTY)

    async def set_display_brightness(self, device_name: str, brightness: int) -> None:
        await self.call_method(
            display_path(device_name),
            DISPLAY_INTERFACE,
            SET_BRIGHTNESS_METHOD,
            "iu",
            [int(brightness), SET_BRIGHTNESS_FLAGS],
        )

    async def _int_property(self, device_name: str, name: str) -> int:
        value = await self.get_property(display_path(device_name), DISPLAY_INTERFACE, name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise BusError(f"unexpected type for {name}: {type(value).__name__}")
        return value
