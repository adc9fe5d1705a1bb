"""Tests for the paho-mqtt transport adapter."""

from __future__ import annotations

import ssl
from unittest.mock import MagicMock, patch

import paho.mqtt.client as mqtt
import pytest

from greengrass_client import ConnectParams, Endpoint, InboundMessage, QoS
from greengrass_client.transport import MqttTransport, TransportStatus, status_from_rc

from .conftest import GROUP_CA_PEM

ENDPOINT = Endpoint(address="10.0.0.5", port=8883, root_ca=GROUP_CA_PEM.encode())
PARAMS = ConnectParams(client_id="gg-device-1", keep_alive=60)


def reason_code(*, failure: bool = False) -> MagicMock:
    code = MagicMock()
    code.is_failure = failure
    return code


def make_message(topic: str, payload: bytes, *, mid: int = 1) -> mqtt.MQTTMessage:
    msg = mqtt.MQTTMessage(mid=mid, topic=topic.encode())
    msg.payload = payload
    msg.qos = 0
    msg.retain = False
    return msg


@pytest.fixture
def paho_client() -> MagicMock:
    client = MagicMock()
    client.connect.return_value = mqtt.MQTT_ERR_SUCCESS
    client.loop.return_value = mqtt.MQTT_ERR_SUCCESS
    return client


@pytest.fixture
def transport(paho_client) -> MqttTransport:
    transport = MqttTransport(command_timeout=0.5, max_packet_size=16)
    transport._client = paho_client
    return transport


class TestStatusFromRc:
    """Tests for status_from_rc()."""

    def test_success(self):
        assert status_from_rc(mqtt.MQTT_ERR_SUCCESS) is TransportStatus.SUCCESS

    @pytest.mark.parametrize(
        "rc", [mqtt.MQTT_ERR_NO_CONN, mqtt.MQTT_ERR_CONN_LOST, mqtt.MQTT_ERR_KEEPALIVE]
    )
    def test_disconnected(self, rc):
        assert status_from_rc(rc) is TransportStatus.DISCONNECTED

    def test_payload_size(self):
        status = status_from_rc(mqtt.MQTT_ERR_PAYLOAD_SIZE)
        assert status is TransportStatus.BUFFER_OVERFLOW

    @pytest.mark.parametrize(
        "rc", [mqtt.MQTT_ERR_PROTOCOL, mqtt.MQTT_ERR_INVAL, mqtt.MQTT_ERR_UNKNOWN]
    )
    def test_other_codes(self, rc):
        assert status_from_rc(rc) is TransportStatus.FAILURE


class TestConnect:
    """Tests for MqttTransport.connect()."""

    async def _connect(self, paho_client, transport=None, params=PARAMS):
        transport = transport or MqttTransport(command_timeout=0.5)
        with (
            patch(
                "greengrass_client.transport.mqtt.mqtt.Client", return_value=paho_client
            ) as client_cls,
            patch(
                "greengrass_client.transport.mqtt.build_ssl_context"
            ) as build_context,
        ):
            status = await transport.connect(params, ENDPOINT)
        return transport, status, client_cls, build_context

    async def test_connect_success(self, paho_client):
        """Test CONNECT is sent to the endpoint and CONNACK awaited."""
        transport = MqttTransport(command_timeout=0.5)

        def fake_loop(timeout):
            transport._on_connect(paho_client, None, None, reason_code(), None)
            return mqtt.MQTT_ERR_SUCCESS

        paho_client.loop.side_effect = fake_loop

        _, status, client_cls, build_context = await self._connect(
            paho_client, transport
        )

        assert status is TransportStatus.SUCCESS
        assert client_cls.call_args.kwargs["client_id"] == "gg-device-1"
        paho_client.connect.assert_called_once_with("10.0.0.5", 8883, 60)
        paho_client.tls_set_context.assert_called_once_with(build_context.return_value)
        assert build_context.call_args.args[0] == GROUP_CA_PEM
        assert build_context.call_args.kwargs["check_hostname"] is False
        paho_client.username_pw_set.assert_not_called()

    async def test_connect_with_credentials(self, paho_client):
        """Test username and password are forwarded."""
        transport = MqttTransport(command_timeout=0.5)
        paho_client.loop.side_effect = lambda timeout: (
            transport._on_connect(paho_client, None, None, reason_code(), None)
            or mqtt.MQTT_ERR_SUCCESS
        )

        params = ConnectParams(client_id="c", username="user", password="pw")
        _, status, _, _ = await self._connect(paho_client, transport, params)

        assert status is TransportStatus.SUCCESS
        paho_client.username_pw_set.assert_called_once_with("user", "pw")

    async def test_connect_refused(self, paho_client):
        """Test a refused CONNACK is a failure."""
        transport = MqttTransport(command_timeout=0.5)
        paho_client.loop.side_effect = lambda timeout: (
            transport._on_connect(
                paho_client, None, None, reason_code(failure=True), None
            )
            or mqtt.MQTT_ERR_SUCCESS
        )

        _, status, _, _ = await self._connect(paho_client, transport)

        assert status is TransportStatus.FAILURE
        assert transport.is_connected is False
        paho_client.disconnect.assert_called_once()

    async def test_connect_timeout(self, paho_client):
        """Test a missing CONNACK times out."""
        transport, status, _, _ = await self._connect(
            paho_client, MqttTransport(command_timeout=0.05)
        )

        assert status is TransportStatus.TIMEOUT

    async def test_socket_error(self, paho_client):
        """Test socket errors during connect are reported as failure."""
        paho_client.connect.side_effect = ConnectionRefusedError("refused")

        transport, status, _, _ = await self._connect(paho_client)

        assert status is TransportStatus.FAILURE
        assert transport._client is None

    @pytest.mark.parametrize(
        "error", [ssl.SSLError("bad pem"), PermissionError("tmp not writable")]
    )
    async def test_tls_material_error(self, paho_client, error):
        """Test TLS context errors are reported as failure without connecting."""
        transport = MqttTransport(command_timeout=0.5)
        with (
            patch(
                "greengrass_client.transport.mqtt.mqtt.Client", return_value=paho_client
            ),
            patch(
                "greengrass_client.transport.mqtt.build_ssl_context",
                side_effect=error,
            ),
        ):
            status = await transport.connect(PARAMS, ENDPOINT)

        assert status is TransportStatus.FAILURE
        paho_client.connect.assert_not_called()


class TestPublish:
    """Tests for MqttTransport.publish()."""

    async def test_publish(self, transport, paho_client):
        """Test publishing at QoS 0 without retain."""
        paho_client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)

        status = await transport.publish("hello/world", b"HELLO", QoS.AT_MOST_ONCE)

        assert status is TransportStatus.SUCCESS
        paho_client.publish.assert_called_once_with("hello/world", b"HELLO", 0, False)

    async def test_publish_no_connection(self, transport, paho_client):
        """Test a publish on a lost connection reports disconnected."""
        paho_client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_NO_CONN)

        status = await transport.publish("hello/world", b"HELLO")

        assert status is TransportStatus.DISCONNECTED

    async def test_publish_before_connect(self):
        """Test publishing without a client reports disconnected."""
        status = await MqttTransport().publish("hello/world", b"HELLO")
        assert status is TransportStatus.DISCONNECTED


class TestSubscribe:
    """Tests for MqttTransport.subscribe()."""

    async def test_subscribe_acknowledged(self, transport, paho_client):
        """Test SUBACK completes the subscription."""
        paho_client.subscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 11)
        paho_client.loop.side_effect = lambda timeout: (
            transport._on_subscribe(paho_client, None, 11, [reason_code()], None)
            or mqtt.MQTT_ERR_SUCCESS
        )

        status = await transport.subscribe("hello/world", QoS.AT_MOST_ONCE, MagicMock())

        assert status is TransportStatus.SUCCESS
        paho_client.subscribe.assert_called_once_with("hello/world", 0)

    async def test_subscribe_rejected(self, transport, paho_client):
        """Test a failure reason code in SUBACK is a failure."""
        paho_client.subscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 12)
        paho_client.loop.side_effect = lambda timeout: (
            transport._on_subscribe(
                paho_client, None, 12, [reason_code(failure=True)], None
            )
            or mqtt.MQTT_ERR_SUCCESS
        )

        status = await transport.subscribe("hello/world", QoS.AT_MOST_ONCE, MagicMock())

        assert status is TransportStatus.FAILURE

    async def test_subscribe_not_connected(self, transport, paho_client):
        """Test a subscribe rejected by paho is mapped."""
        paho_client.subscribe.return_value = (mqtt.MQTT_ERR_NO_CONN, None)

        status = await transport.subscribe("hello/world", QoS.AT_MOST_ONCE, MagicMock())

        assert status is TransportStatus.DISCONNECTED


class TestYield:
    """Tests for MqttTransport.yield_() and inbound messages."""

    async def test_yield_success(self, transport, paho_client):
        """Test a quiet loop iteration is a success."""
        assert await transport.yield_(1.0) is TransportStatus.SUCCESS
        paho_client.loop.assert_called_once_with(1.0)

    async def test_yield_connection_lost(self, transport, paho_client):
        """Test a lost connection reports disconnected."""
        paho_client.loop.return_value = mqtt.MQTT_ERR_CONN_LOST
        assert await transport.yield_(1.0) is TransportStatus.DISCONNECTED

    async def test_message_delivered_to_handler(self, transport, paho_client):
        """Test inbound messages reach the matching handler."""
        handler = MagicMock()
        transport._handlers["sensors/#"] = handler
        paho_client.loop.side_effect = lambda timeout: (
            transport._on_message(
                paho_client, None, make_message("sensors/t1", b"21.5", mid=9)
            )
            or mqtt.MQTT_ERR_SUCCESS
        )

        assert await transport.yield_(1.0) is TransportStatus.SUCCESS

        handler.assert_called_once_with(
            InboundMessage(
                topic="sensors/t1",
                payload=b"21.5",
                qos=0,
                retained=False,
                duplicate=False,
                packet_id=9,
            )
        )

    async def test_oversized_message(self, transport, paho_client):
        """Test a message over the packet limit reports buffer overflow."""
        handler = MagicMock()
        transport._handlers["hello/world"] = handler
        paho_client.loop.side_effect = lambda timeout: (
            transport._on_message(
                paho_client, None, make_message("hello/world", b"x" * 17)
            )
            or mqtt.MQTT_ERR_SUCCESS
        )

        assert await transport.yield_(1.0) is TransportStatus.BUFFER_OVERFLOW
        handler.assert_not_called()

        paho_client.loop.side_effect = None
        assert await transport.yield_(1.0) is TransportStatus.SUCCESS

    async def test_handler_error_does_not_break_loop(self, transport, paho_client):
        """Test a failing handler is logged, not raised."""
        transport._handlers["hello/world"] = MagicMock(side_effect=ValueError("bad"))
        paho_client.loop.side_effect = lambda timeout: (
            transport._on_message(paho_client, None, make_message("hello/world", b"hi"))
            or mqtt.MQTT_ERR_SUCCESS
        )

        assert await transport.yield_(1.0) is TransportStatus.SUCCESS

    async def test_close(self, transport, paho_client):
        """Test close disconnects once and forgets the client."""
        await transport.close()
        await transport.close()

        paho_client.disconnect.assert_called_once()
        assert await transport.yield_(1.0) is TransportStatus.DISCONNECTED
