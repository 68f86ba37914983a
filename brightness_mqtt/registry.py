"""Display discovery and the registry of displays exposed as lights."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Protocol

from brightness_mqtt.dbus_client import BusError

LOGGER = logging.getLogger(__name__)


class DisplaySource(Protocol):
    async def display_names(self) -> list[str]: ...

    async def display_label(self, device_name: str) -> str: ...

    async def display_max_brightness(self, device_name: str) -> int: ...


@dataclass(frozen=True)
class DisplayInfo:
    name: str
    entity_id: str
    label: str
    max_brightness: int


@dataclass(frozen=True)
class DisplayRegistry:
    """Immutable snapshot of the displays matched to configured entities.

    A new snapshot with a higher ``version`` replaces the old one after every
    discovery run; snapshots are never patched.
    """

    version: int = 0
    displays: tuple[DisplayInfo, ...] = ()

    def __len__(self) -> int:
        return len(self.displays)

    def __iter__(self):
        return iter(self.displays)

    @property
    def entity_ids(self) -> list[str]:
        return [display.entity_id for display in self.displays]

    def for_device(self, device_name: str) -> list[DisplayInfo]:
        return [display for display in self.displays if display.name == device_name]

    def for_entity(self, entity_id: str) -> DisplayInfo | None:
        for display in self.displays:
            if display.entity_id == entity_id:
                return display
        return None

    def missing_entities(self, entity_ids: Iterable[str]) -> list[str]:
        present = set(self.entity_ids)
        return [entity_id for entity_id in entity_ids if entity_id not in present]


async def discover(
    bus: DisplaySource,
    entity_patterns: Mapping[str, re.Pattern[str]],
    *,
    previous: DisplayRegistry | None = None,
    logger: logging.Logger | None = None,
) -> tuple[DisplayRegistry, list[str]]:
    """Query the bus for displays and match their labels against the configured patterns.

    Returns the new registry and the warnings for displays whose label matched
    no pattern. A display whose properties cannot be read is logged and skipped.
    """
    log = logger or LOGGER
    version = (previous.version if previous else 0) + 1
    warnings: list[str] = []
    displays: list[DisplayInfo] = []
    claimed: dict[str, str] = {}

    try:
        names = await bus.display_names()
    except BusError as exc:
        log.error("[discovery] Failed to list displays: %s", exc)
        return DisplayRegistry(version=version), warnings

    for name in names:
        try:
            label = await bus.display_label(name)
            max_brightness = await bus.display_max_brightness(name)
        except BusError as exc:
            log.error("[discovery] Skipping display %s: %s", name, exc)
            continue
        if max_brightness <= 0:
            log.warning("[discovery] Skipping display %s (%s): max brightness is %s", name, label, max_brightness)
            continue

        matched = False
        for entity_id, pattern in entity_patterns.items():
            if not pattern.search(label):
                continue
            matched = True
            if entity_id in claimed:
                log.warning(
                    "[discovery] Display %s also matches %s, already bound to %s; ignoring",
                    name,
                    entity_id,
                    claimed[entity_id],
                )
                continue
            claimed[entity_id] = name
            displays.append(DisplayInfo(name=name, entity_id=entity_id, label=label, max_brightness=max_brightness))
        if not matched:
            warning = f'No match found for display {name} with label "{label}"'
            log.warning("[discovery] %s", warning)
            warnings.append(warning)

    for display in displays:
        log.info("[discovery] Display: %s, Entity: %s, Label: %s", display.name, display.entity_id, display.label)
    return DisplayRegistry(version=version, displays=tuple(displays)), warnings
