"""Internal MQTT transport runtime.

A threaded paho-mqtt client whose callbacks are marshalled onto the
asyncio loop, so every connection event is handled on the single reactor
that owns the connection state machine.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, cast

import paho.mqtt.client as mqtt

from devstate.config import MqttSettings
from devstate.exceptions import TransportError, TransportUnavailableError

#: Reconnect backoff bounds (seconds) for the paho network loop.
RECONNECT_MIN_DELAY = 1
RECONNECT_MAX_DELAY = 30


class MqttTransport:
    """Threaded paho-mqtt runtime that emits connection events onto an asyncio loop.

    ``on_connect`` fires for every successful CONNACK, ``on_close`` for every
    lost or failed connection attempt and ``on_error`` with the cause of a
    failure. Repeated events of the same kind are passed through unchanged;
    deduplication belongs to the connection state machine.
    """

    def __init__(
        self,
        settings: MqttSettings,
        *,
        loop: asyncio.AbstractEventLoop,
        on_connect: Callable[[], None],
        on_close: Callable[[], None],
        on_error: Callable[[BaseException], None],
        logger: logging.Logger | None = None,
    ) -> None:
        self._settings = settings
        self._loop = loop
        self._on_connect = on_connect
        self._on_close = on_close
        self._on_error = on_error
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._connected = False

    @property
    def is_running(self) -> bool:
        """Whether the network loop is running."""
        return self._running

    @property
    def is_connected(self) -> bool:
        """Whether the last CONNACK succeeded and no disconnect followed."""
        return self._connected

    def start(self) -> None:
        """Connect asynchronously and start the network loop."""
        self.stop()
        settings = self._settings
        if not settings.enabled:
            self._logger.warning("MQTT is disabled.")
            return

        self._logger.debug(
            "MQTT runtime start requested protocol=%s host=%s port=%s client_id=%s",
            settings.protocol,
            settings.host,
            settings.resolved_port,
            settings.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=settings.client_id or "",
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(self._logger)
        if settings.username:
            client.username_pw_set(settings.username, settings.password)
        if settings.use_tls:
            client.tls_set(
                ca_certs=str(settings.ca_file) if settings.ca_file else None,
                certfile=str(settings.cert_file) if settings.cert_file else None,
                keyfile=str(settings.key_file) if settings.key_file else None,
            )
        client.reconnect_delay_set(min_delay=RECONNECT_MIN_DELAY, max_delay=RECONNECT_MAX_DELAY)

        client.on_connect = self._handle_connect
        client.on_connect_fail = self._handle_connect_fail
        client.on_disconnect = self._handle_disconnect
        client.on_publish = self._handle_publish

        client.connect_async(settings.host, settings.resolved_port, keepalive=settings.keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect the current client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._connected = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def publish(self, topic: str, payload: bytes, *, qos: int = 0, retain: bool = False) -> bool:
        """Publish *payload* without blocking.

        Returns ``False`` when the message was not handed to the client:
        no connection (an expected, debug-logged condition) or an immediate
        client error (error-logged). Broker-side failures are reported later
        through ``on_publish``. Never raises.
        """
        client = self._client
        if client is None or not self._connected:
            exc = TransportUnavailableError("MQTT is not connected, no data sent.", topic=topic)
            self._logger.debug("%s", exc)
            return False

        info = client.publish(topic, payload or b"{}", qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            exc = TransportError(
                f"MQTT publish to {topic} failed: {mqtt.error_string(info.rc)}",
                reason_code=info.rc,
                topic=topic,
            )
            self._logger.error("%s", exc)
            return False
        self._logger.debug("MQTT publish queued topic=%s mid=%s bytes=%d", topic, info.mid, len(payload))
        return True

    # ------------------------------------------------------------------
    # paho callbacks (network thread)
    # ------------------------------------------------------------------

    def _emit(self, handler: Callable[..., None], *args: Any) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(handler, *args)

    def _handle_connect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.is_failure:
            self._connected = False
            self._logger.warning("MQTT connect refused: %s", reason_code)
            self._emit(
                self._on_error,
                TransportError(f"MQTT connect refused: {reason_code}", reason_code=reason_code.value),
            )
            self._emit(self._on_close)
            return
        self._connected = True
        self._logger.debug("MQTT connected successfully reason=%s", reason_code)
        self._emit(self._on_connect)

    def _handle_connect_fail(self, _client: mqtt.Client, _userdata: Any) -> None:
        self._connected = False
        self._logger.debug("MQTT connection attempt failed")
        self._emit(
            self._on_error,
            TransportError(f"MQTT connection to {self._settings.host}:{self._settings.resolved_port} failed"),
        )
        self._emit(self._on_close)

    def _handle_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        self._connected = False
        if self._running:
            self._logger.debug("MQTT disconnected: %s", reason_code)
            self._emit(self._on_close)

    def _handle_publish(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        mid: int,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.is_failure:
            self._logger.error("MQTT publish mid=%s rejected: %s", mid, reason_code)
