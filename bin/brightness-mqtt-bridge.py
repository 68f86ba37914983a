#!/usr/bin/env python3
"""Expose KDE ScreenBrightness displays to Home Assistant over MQTT."""

from brightness_mqtt.main import run

if __name__ == "__main__":
    run()
