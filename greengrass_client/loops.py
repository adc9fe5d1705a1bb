"""Publish and subscribe operating modes of a connected session.

Both loops run until a fatal error is raised; they have no success exit.
"""

from __future__ import annotations

import asyncio
import logging

from .models import InboundMessage, QoS
from .session import SessionManager
from .transport.mqtt import MessageHandler

_LOGGER = logging.getLogger(__name__)


def log_message(message: InboundMessage) -> None:
    """Default message-arrival handler."""
    _LOGGER.info(
        "Message arrived: qos %d, retained %d, dup %d, packetid %d",
        message.qos,
        message.retained,
        message.duplicate,
        message.packet_id,
    )
    _LOGGER.info("Payload %s", message.payload.decode(errors="replace"))


class PublishLoop:
    """Publish a fixed message at a fixed interval."""

    def __init__(
        self,
        session: SessionManager,
        topic: str,
        payload: bytes = b"HELLO",
        *,
        interval: float = 5.0,
    ) -> None:
        self._session = session
        self._topic = topic
        self._payload = payload
        self._interval = interval
        self.published = 0

    async def run(self) -> None:
        """Publish forever.

        Raises:
            PublishFailed: The first failed publish ends the loop.
        """
        while True:
            await self._session.publish(self._topic, self._payload, QoS.AT_MOST_ONCE)
            self.published += 1
            await asyncio.sleep(self._interval)


class SubscribeLoop:
    """Subscribe to a topic and process inbound traffic."""

    def __init__(
        self,
        session: SessionManager,
        topic: str,
        handler: MessageHandler = log_message,
        *,
        yield_timeout: float = 1.0,
        settle_delay: float = 1.0,
    ) -> None:
        self._session = session
        self._topic = topic
        self._handler = handler
        self._yield_timeout = yield_timeout
        self._settle_delay = settle_delay

    async def run(self) -> None:
        """Subscribe, then yield forever.

        Raises:
            SubscribeFailed: The subscription was rejected.
            SessionLost: The broker disconnected.
            MessageTooLarge: An inbound message exceeded the packet limit.
        """
        await self._session.subscribe(self._topic, self._handler, QoS.AT_MOST_ONCE)
        while True:
            await self._session.yield_once(self._yield_timeout)
            await asyncio.sleep(self._settle_delay)
