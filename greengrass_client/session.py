"""Session manager for discovery and the broker session lifecycle.

This module owns the single control flow of a client:
- Discovery of a Greengrass core and selection of its endpoint
- Connection to the core's broker
- Publishing or subscribing on the live session
- Translation of transport statuses into fatal errors

Nothing here is retried. Any failure releases the transport, moves the
session to TERMINATED and is raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from .discovery import DiscoveryResultParser, EndpointSelector
from .errors import (
    ConnectFailed,
    GreengrassClientError,
    MessageTooLarge,
    PublishFailed,
    SessionLost,
    SessionStateError,
    SubscribeFailed,
)
from .http import GreengrassDiscoveryClient
from .models import ConnectParams, Endpoint, QoS
from .transport.mqtt import MessageHandler, MqttTransport, TransportStatus

_LOGGER = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle states of a session."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    ENDPOINT_READY = "endpoint_ready"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    PUBLISHING = "publishing"
    SUBSCRIBING = "subscribing"
    TERMINATED = "terminated"


class SessionManager:
    """Drive one client from discovery to a live broker session.

    Usage:
        session = SessionManager("my-thing", discovery_client, transport, params)
        await session.discover()
        await session.connect()
        await session.publish("hello/world", b"HELLO")
        await session.close()
    """

    def __init__(
        self,
        thing_name: str,
        discovery_client: GreengrassDiscoveryClient,
        transport: MqttTransport,
        connect_params: ConnectParams,
        *,
        parser: DiscoveryResultParser | None = None,
        selector: EndpointSelector | None = None,
        settle_delay: float = 1.0,
    ) -> None:
        """Initialize session.

        Args:
            thing_name: Thing whose cores are discovered
            discovery_client: Discovery service client
            transport: Broker transport
            connect_params: CONNECT parameters for the broker
            parser: Discovery result parser (first connection by default)
            selector: Endpoint builder
            settle_delay: Pause after discovery and after connect (seconds)
        """
        self.thing_name = thing_name
        self._discovery = discovery_client
        self._transport = transport
        self._connect_params = connect_params
        self._parser = parser or DiscoveryResultParser()
        self._selector = selector or EndpointSelector()
        self._settle_delay = settle_delay

        self._state = SessionState.IDLE
        self._endpoint: Endpoint | None = None
        self._error: GreengrassClientError | None = None
        self._state_callback: Callable[[SessionState], None] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def endpoint(self) -> Endpoint | None:
        return self._endpoint

    @property
    def error(self) -> GreengrassClientError | None:
        """Error that terminated the session, or None."""
        return self._error

    def on_state_changed(self, callback: Callable[[SessionState], None]) -> None:
        """Register callback for state transitions."""
        self._state_callback = callback

    # -------------------------------------------------------------------------
    # Public API: Lifecycle
    # -------------------------------------------------------------------------

    async def discover(self) -> Endpoint:
        """Discover the core and select the endpoint to connect to.

        Returns:
            The endpoint selected from the discovery response.

        Raises:
            DiscoveryFailed: The discovery call failed.
            EmptyDiscoveryData: No groups were returned.
            NoConnectionCandidates: The core has no connections.
            InvalidPort: The selected connection has an unusable port.
        """
        self._require(SessionState.IDLE)
        self._set_state(SessionState.DISCOVERING)

        try:
            response = await self._discovery.discover(self.thing_name)
            selected = self._parser.select(response)
            endpoint = self._selector.build_from(selected)
        except GreengrassClientError as err:
            _LOGGER.error(
                "[%s] Error in discovering node info: %s", self.thing_name, err
            )
            await self._terminate(err)
            raise

        self._endpoint = endpoint
        self._set_state(SessionState.ENDPOINT_READY)
        _LOGGER.info(
            "[%s] Discovery of Greengrass Core successful: %s:%d",
            self.thing_name,
            endpoint.address,
            endpoint.port,
        )
        await asyncio.sleep(self._settle_delay)
        return endpoint

    async def connect(self) -> None:
        """Connect to the discovered endpoint.

        Raises:
            ConnectFailed: The broker could not be reached or refused us.
        """
        self._require(SessionState.ENDPOINT_READY)
        if self._endpoint is None:
            raise SessionStateError("No endpoint selected")
        self._set_state(SessionState.CONNECTING)

        status = await self._transport.connect(self._connect_params, self._endpoint)
        if status is not TransportStatus.SUCCESS:
            err = ConnectFailed(
                f"Connection to {self._endpoint.address}:{self._endpoint.port} "
                f"failed ({status.value})"
            )
            _LOGGER.error("[%s] %s", self.thing_name, err)
            await self._terminate(err)
            raise err

        self._set_state(SessionState.CONNECTED)
        _LOGGER.info(
            "[%s] Connected to %s:%d as %s",
            self.thing_name,
            self._endpoint.address,
            self._endpoint.port,
            self._connect_params.client_id,
        )
        await asyncio.sleep(self._settle_delay)

    async def publish(
        self, topic: str, payload: bytes, qos: QoS = QoS.AT_MOST_ONCE
    ) -> None:
        """Publish one message.

        Raises:
            PublishFailed: The transport rejected the publish. The session is
                released before raising.
        """
        self._require(SessionState.CONNECTED, SessionState.PUBLISHING)
        self._set_state(SessionState.PUBLISHING)

        status = await self._transport.publish(topic, payload, qos)
        if status is not TransportStatus.SUCCESS:
            err = PublishFailed(f"Publish to {topic} failed ({status.value})")
            _LOGGER.error("[%s] %s", self.thing_name, err)
            await self._terminate(err)
            raise err

        _LOGGER.info("[%s] Published to topic %s", self.thing_name, topic)

    async def subscribe(
        self,
        topic: str,
        handler: MessageHandler,
        qos: QoS = QoS.AT_MOST_ONCE,
    ) -> None:
        """Subscribe to ``topic`` with a message-arrival handler.

        Raises:
            SubscribeFailed: The subscription was not acknowledged.
        """
        self._require(SessionState.CONNECTED)

        status = await self._transport.subscribe(topic, qos, handler)
        if status is not TransportStatus.SUCCESS:
            err = SubscribeFailed(
                f"Subscription to topic {topic} failed ({status.value})"
            )
            _LOGGER.error("[%s] %s", self.thing_name, err)
            await self._terminate(err)
            raise err

        self._set_state(SessionState.SUBSCRIBING)
        _LOGGER.info("[%s] Subscribed to topic %s", self.thing_name, topic)

    async def yield_once(self, timeout: float) -> TransportStatus:
        """Wait up to ``timeout`` seconds for inbound traffic.

        Returns:
            The transport status when it is not fatal.

        Raises:
            SessionLost: The broker disconnected.
            MessageTooLarge: An inbound message exceeded the packet limit.
        """
        self._require(SessionState.SUBSCRIBING)

        status = await self._transport.yield_(timeout)
        if status is TransportStatus.DISCONNECTED:
            err: GreengrassClientError = SessionLost("Disconnected from MQTT broker")
        elif status is TransportStatus.BUFFER_OVERFLOW:
            err = MessageTooLarge(
                "Received message is larger than the maximum packet size"
            )
        else:
            if status is TransportStatus.FAILURE:
                _LOGGER.warning("[%s] Yield returned %s", self.thing_name, status.value)
            return status

        _LOGGER.error("[%s] %s", self.thing_name, err)
        await self._terminate(err)
        raise err

    async def close(self) -> None:
        """Release the transport and terminate the session."""
        _LOGGER.info("[%s] Closing session", self.thing_name)
        await self._transport.close()
        self._set_state(SessionState.TERMINATED)

    # -------------------------------------------------------------------------
    # Internal: State Machine
    # -------------------------------------------------------------------------

    def _require(self, *states: SessionState) -> None:
        if self._state not in states:
            expected = ", ".join(state.value for state in states)
            raise SessionStateError(
                f"Session is {self._state.value}, expected {expected}"
            )

    def _set_state(self, state: SessionState) -> None:
        """Update session state and notify callback."""
        if self._state != state:
            _LOGGER.debug(
                "[%s] State: %s → %s", self.thing_name, self._state.value, state.value
            )
            self._state = state
            if self._state_callback:
                self._state_callback(state)

    async def _terminate(self, err: GreengrassClientError) -> None:
        self._error = err
        await self._transport.close()
        self._set_state(SessionState.TERMINATED)
