"""Command-line entry point for the brightness MQTT bridge."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys

from dbus_fast import BusType

from brightness_mqtt import __version__, systemd_notify
from brightness_mqtt.bridge import BridgeController
from brightness_mqtt.config import ConfigError, load_config, resolve_config_path
from brightness_mqtt.dbus_client import ScreenBrightnessBus
from brightness_mqtt.mqtt import BrokerClient

LOGGER = logging.getLogger("brightness-mqtt")

EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="brightness-mqtt-bridge",
        description="Expose KDE ScreenBrightness displays as Home Assistant MQTT lights.",
    )
    parser.add_argument("--config", help="Path to the JSON configuration file")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("BRIGHTNESS_MQTT_LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    bus_group = parser.add_mutually_exclusive_group()
    bus_group.add_argument("--session", dest="bus", action="store_const", const="session", help="Use the session bus")
    bus_group.add_argument("--system", dest="bus", action="store_const", const="system", help="Use the system bus")
    parser.set_defaults(bus="session")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config_path = resolve_config_path(args.config)
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        LOGGER.error("Failed to load config: %s", exc)
        return EXIT_CONFIG_ERROR
    LOGGER.info("Loaded config from %s (%d entities)", config_path, len(config.entity_patterns))

    bus_type = BusType.SYSTEM if args.bus == "system" else BusType.SESSION
    bus = await ScreenBrightnessBus.connect(bus_type, logger=logging.getLogger("brightness_mqtt.dbus"))
    broker = BrokerClient(config.mqtt, logger=logging.getLogger("brightness_mqtt.mqtt"))
    controller = BridgeController(config, bus, broker)

    loop = asyncio.get_running_loop()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        controller.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    try:
        await controller.start()
        systemd_notify.ready(f"{len(controller.registry)} display(s) discovered")
        exit_code = await controller.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        systemd_notify.stopping()
        broker.disconnect()
        bus.disconnect()
    return exit_code


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
