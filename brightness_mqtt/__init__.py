"""
brightness_mqtt - KDE screen brightness to Home Assistant MQTT bridge

Exposes every display known to the ``org.kde.ScreenBrightness`` D-Bus service
as a Home Assistant MQTT light with brightness support.

Core modules:
- scaling: Conversion between native display brightness and the 0-255 light scale
- registry: Display discovery and the versioned display registry snapshot
- dbus_client: Thin async wrapper around the ScreenBrightness D-Bus service
- mqtt: Thin wrapper around the paho MQTT client
- discovery: Home Assistant light discovery and state payloads
- bridge: Event-driven controller tying D-Bus and MQTT together
"""

__version__ = "0.3.0"
