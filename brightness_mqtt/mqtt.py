"""Thin paho MQTT wrapper used by the bridge."""

from __future__ import annotations

import logging
import ssl
import threading
from collections.abc import Callable

import paho.mqtt.client as mqtt

from .config import MqttConfig

MessageHandler = Callable[[str, bytes], None]


def _is_mqtt_success(reason_code) -> bool:
    if reason_code is None:
        return True
    if hasattr(reason_code, "is_failure"):
        return not bool(reason_code.is_failure)
    candidate = getattr(reason_code, "value", reason_code)
    try:
        return int(candidate) == 0
    except (TypeError, ValueError):
        return False


class BrokerClient:
    """Publish/subscribe peer with fixed-interval automatic reconnect.

    The paho network thread runs every callback registered here, so handlers
    must hand work off rather than block.
    """

    def __init__(self, config: MqttConfig, logger: logging.Logger | None = None) -> None:
        self.config = config
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._lock = threading.Lock()
        self._on_connect: Callable[[], None] | None = None
        self._on_disconnect: Callable[[str], None] | None = None

    def on_connect(self, handler: Callable[[], None]) -> None:
        self._on_connect = handler

    def on_disconnect(self, handler: Callable[[str], None]) -> None:
        self._on_disconnect = handler

    def connect(self) -> None:
        with self._lock:
            if self._client is not None:
                return
            client = mqtt.Client(
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
                client_id=self.config.client_id,
                clean_session=True,
            )
            if self.config.username:
                client.username_pw_set(self.config.username, self.config.password or "")
            if self.config.tls_enabled:
                tls_kwargs: dict[str, object] = {}
                if self.config.ca_cert:
                    tls_kwargs["ca_certs"] = self.config.ca_cert
                if self.config.cert:
                    tls_kwargs["certfile"] = self.config.cert
                if self.config.key:
                    tls_kwargs["keyfile"] = self.config.key
                tls_kwargs["tls_version"] = ssl.PROTOCOL_TLS_CLIENT
                client.tls_set(**tls_kwargs)
            delay = self.config.reconnect_delay
            client.reconnect_delay_set(min_delay=delay, max_delay=delay)
            client.on_connect = self._handle_connect
            client.on_disconnect = self._handle_disconnect
            client.on_connect_fail = self._handle_connect_fail
            self._logger.info("[mqtt] Connecting to MQTT broker %s:%s", self.config.host, self.config.port)
            client.connect_async(self.config.host, self.config.port, keepalive=self.config.keepalive)
            client.loop_start()
            self._client = client

    def disconnect(self) -> None:
        with self._lock:
            client = self._client
            self._client = None
        if client:
            client.disconnect()
            client.loop_stop()

    def publish(self, topic: str, payload: str, retain: bool = False, qos: int = 0) -> None:
        client = self._client
        if not client:
            return
        try:
            result = client.publish(topic, payload=payload, qos=qos, retain=retain)
        except Exception as exc:
            self._logger.warning("[mqtt] Failed to publish to %s: %s", topic, exc)
            return
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("[mqtt] Publish to %s not accepted (rc=%s)", topic, result.rc)

    def subscribe(self, topic: str, handler: MessageHandler, qos: int = 0) -> None:
        client = self._client
        if not client:
            raise RuntimeError("MQTT client is not connected")

        def _callback(_client, _userdata, message):  # type: ignore[no-untyped-def]
            try:
                handler(message.topic, message.payload)
            except Exception as exc:
                self._logger.error("[mqtt] Subscriber callback failed for topic '%s': %s", topic, exc, exc_info=True)

        client.message_callback_add(topic, _callback)
        result, _mid = client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("[mqtt] Failed to subscribe to topic: %s (rc=%s)", topic, result)

    def unsubscribe(self, topic: str) -> None:
        client = self._client
        if not client:
            return
        client.message_callback_remove(topic)
        client.unsubscribe(topic)

    def _handle_connect(self, _client, _userdata, _flags, reason_code, properties=None):  # type: ignore[no-untyped-def]
        if not _is_mqtt_success(reason_code):
            self._logger.warning("[mqtt] Connection refused (reason=%s, properties=%s)", reason_code, properties)
            return
        self._logger.info("[mqtt] Connected to MQTT broker (reason=%s)", reason_code)
        if self._on_connect:
            self._on_connect()

    def _handle_disconnect(self, _client, _userdata, _flags, reason_code, _properties=None):  # type: ignore[no-untyped-def]
        self._logger.warning(
            "[mqtt] Connection lost (reason=%s); retrying every %ss", reason_code, self.config.reconnect_delay
        )
        if self._on_disconnect:
            self._on_disconnect(str(reason_code))

    def _handle_connect_fail(self, _client, _userdata):  # type: ignore[no-untyped-def]
        self._logger.warning(
            "[mqtt] Failed to connect to %s:%s; retrying in %ss",
            self.config.host,
            self.config.port,
            self.config.reconnect_delay,
        )
