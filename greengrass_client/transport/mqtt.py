"""MQTT transport adapter built on paho-mqtt.

paho's network calls block, so every call is run with ``asyncio.to_thread``.
Calls are awaited one at a time and never overlap, which keeps the paho client
confined to a single logical thread of control.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

import paho.mqtt.client as mqtt

from ..models import ConnectParams, Endpoint, InboundMessage, QoS
from .tls import build_ssl_context

_LOGGER = logging.getLogger(__name__)

MessageHandler = Callable[[InboundMessage], None]

_POLL_INTERVAL = 0.1


class TransportStatus(Enum):
    """Outcome of a transport call."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    DISCONNECTED = "disconnected"
    BUFFER_OVERFLOW = "buffer_overflow"
    FAILURE = "failure"


_DISCONNECTED_CODES = frozenset(
    {
        mqtt.MQTT_ERR_NO_CONN,
        mqtt.MQTT_ERR_CONN_LOST,
        mqtt.MQTT_ERR_KEEPALIVE,
    }
)


def status_from_rc(rc: int) -> TransportStatus:
    """Map a paho return code to a transport status."""
    if rc == mqtt.MQTT_ERR_SUCCESS:
        return TransportStatus.SUCCESS
    if rc in _DISCONNECTED_CODES:
        return TransportStatus.DISCONNECTED
    if rc == mqtt.MQTT_ERR_PAYLOAD_SIZE:
        return TransportStatus.BUFFER_OVERFLOW
    return TransportStatus.FAILURE


def _common_name(peer_cert: dict[str, Any] | None) -> str | None:
    if not peer_cert:
        return None
    for rdn in peer_cert.get("subject", ()):
        for key, value in rdn:
            if key == "commonName":
                return value
    return None


class MqttTransport:
    """Single broker connection over MQTT with TLS."""

    def __init__(
        self,
        *,
        command_timeout: float = 5.0,
        max_packet_size: int = 4096,
        client_cert_pem: str | None = None,
        client_key_pem: str | None = None,
    ) -> None:
        self._command_timeout = command_timeout
        self._max_packet_size = max_packet_size
        self._client_cert_pem = client_cert_pem
        self._client_key_pem = client_key_pem

        self._client: mqtt.Client | None = None
        self._connack: mqtt.ReasonCode | None = None
        self._suback: dict[int, list[mqtt.ReasonCode]] = {}
        self._handlers: dict[str, MessageHandler] = {}
        self._overflow = False

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected()

    async def connect(
        self, params: ConnectParams, endpoint: Endpoint
    ) -> TransportStatus:
        """Open the TLS connection and wait for CONNACK."""
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=params.client_id,
            protocol=mqtt.MQTTv311,
        )
        if params.username:
            client.username_pw_set(params.username, params.password)
        try:
            context = build_ssl_context(
                endpoint.root_ca.decode(),
                client_cert_pem=self._client_cert_pem,
                client_key_pem=self._client_key_pem,
                check_hostname=False,
            )
        except OSError as err:
            _LOGGER.error("Invalid TLS material for %s: %s", endpoint.address, err)
            return TransportStatus.FAILURE
        client.tls_set_context(context)
        client.on_connect = self._on_connect
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message

        self._client = client
        self._connack = None
        try:
            rc = await asyncio.to_thread(
                client.connect, endpoint.address, endpoint.port, params.keep_alive
            )
        except (OSError, ValueError) as err:
            _LOGGER.error(
                "Connection to %s:%d failed: %s", endpoint.address, endpoint.port, err
            )
            self._client = None
            return TransportStatus.FAILURE
        if rc != mqtt.MQTT_ERR_SUCCESS:
            self._client = None
            return status_from_rc(rc)

        if params.peer_cn and not self._peer_matches(params.peer_cn):
            await self.close()
            return TransportStatus.FAILURE

        status = await self._wait(lambda: self._connack is not None)
        if status is not TransportStatus.SUCCESS:
            await self.close()
            return status
        if self._connack is not None and self._connack.is_failure:
            _LOGGER.error("Broker refused connection: %s", self._connack)
            await self.close()
            return TransportStatus.FAILURE
        return TransportStatus.SUCCESS

    async def publish(
        self, topic: str, payload: bytes, qos: QoS = QoS.AT_MOST_ONCE
    ) -> TransportStatus:
        """Publish one message."""
        if self._client is None:
            return TransportStatus.DISCONNECTED
        info = await asyncio.to_thread(
            self._client.publish, topic, payload, int(qos), False
        )
        return status_from_rc(info.rc)

    async def subscribe(
        self, topic: str, qos: QoS, handler: MessageHandler
    ) -> TransportStatus:
        """Subscribe to ``topic`` and wait for SUBACK."""
        if self._client is None:
            return TransportStatus.DISCONNECTED
        self._handlers[topic] = handler
        rc, mid = await asyncio.to_thread(self._client.subscribe, topic, int(qos))
        if rc != mqtt.MQTT_ERR_SUCCESS:
            self._handlers.pop(topic, None)
            return status_from_rc(rc)

        status = await self._wait(lambda: mid in self._suback)
        if status is not TransportStatus.SUCCESS:
            self._handlers.pop(topic, None)
            return status
        if any(code.is_failure for code in self._suback.pop(mid)):
            self._handlers.pop(topic, None)
            return TransportStatus.FAILURE
        return TransportStatus.SUCCESS

    async def yield_(self, timeout: float) -> TransportStatus:
        """Process inbound traffic and keep-alive for up to ``timeout`` seconds."""
        if self._client is None:
            return TransportStatus.DISCONNECTED
        rc = await asyncio.to_thread(self._client.loop, timeout)
        if self._overflow:
            self._overflow = False
            return TransportStatus.BUFFER_OVERFLOW
        return status_from_rc(rc)

    async def close(self) -> None:
        """Disconnect and release the client."""
        client, self._client = self._client, None
        self._handlers.clear()
        self._suback.clear()
        if client is None:
            return
        try:
            await asyncio.to_thread(client.disconnect)
        except OSError as err:
            _LOGGER.debug("Disconnect failed: %s", err)

    async def _wait(self, done: Callable[[], bool]) -> TransportStatus:
        """Run the network loop until ``done`` holds or the command times out."""
        deadline = time.monotonic() + self._command_timeout
        while not done():
            if self._client is None:
                return TransportStatus.DISCONNECTED
            if time.monotonic() >= deadline:
                return TransportStatus.TIMEOUT
            rc = await asyncio.to_thread(self._client.loop, _POLL_INTERVAL)
            if rc != mqtt.MQTT_ERR_SUCCESS:
                return status_from_rc(rc)
        return TransportStatus.SUCCESS

    def _peer_matches(self, expected_cn: str) -> bool:
        sock = self._client.socket() if self._client else None
        peer_cert = sock.getpeercert() if isinstance(sock, ssl.SSLSocket) else None
        actual = _common_name(peer_cert)
        if actual != expected_cn:
            _LOGGER.error(
                "Broker certificate CN %r does not match expected %r",
                actual,
                expected_cn,
            )
            return False
        return True

    # -------------------------------------------------------------------------
    # paho callbacks, invoked from inside client.loop()
    # -------------------------------------------------------------------------

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: mqtt.ConnectFlags,
        reason_code: mqtt.ReasonCode,
        properties: Any,
    ) -> None:
        self._connack = reason_code

    def _on_subscribe(
        self,
        client: mqtt.Client,
        userdata: Any,
        mid: int,
        reason_codes: list[mqtt.ReasonCode],
        properties: Any,
    ) -> None:
        self._suback[mid] = list(reason_codes)

    def _on_message(
        self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage
    ) -> None:
        if len(msg.payload) > self._max_packet_size:
            _LOGGER.warning(
                "Dropping %d byte message on %s (limit %d)",
                len(msg.payload),
                msg.topic,
                self._max_packet_size,
            )
            self._overflow = True
            return

        message = InboundMessage(
            topic=msg.topic,
            payload=msg.payload,
            qos=msg.qos,
            retained=bool(msg.retain),
            duplicate=bool(msg.dup),
            packet_id=msg.mid,
        )
        for topic_filter, handler in self._handlers.items():
            if mqtt.topic_matches_sub(topic_filter, msg.topic):
                try:
                    handler(message)
                except Exception:
                    _LOGGER.exception("Message handler for %s failed", topic_filter)
