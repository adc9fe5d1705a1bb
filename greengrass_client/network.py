"""Local network readiness check with bounded retries."""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable

from .errors import NetworkError

_LOGGER = logging.getLogger(__name__)

NetworkProbe = Callable[[], Awaitable[str]]


def route_probe(host: str, port: int) -> NetworkProbe:
    """Build a probe reporting the local address routed toward ``host``.

    Connecting a UDP socket sends no packets; it only asks the routing table
    which local address would be used.
    """

    async def probe() -> str:
        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(host, port, type=socket.SOCK_DGRAM)
        if not infos:
            raise OSError(f"No address for {host}")
        family, type_, proto, _, sockaddr = infos[0]
        with socket.socket(family, type_, proto) as sock:
            sock.connect(sockaddr)
            return sock.getsockname()[0]

    return probe


class NetworkConnector:
    """Establish the underlying IP connection, retrying a fixed number of times."""

    def __init__(
        self,
        probe: NetworkProbe,
        *,
        max_attempts: int = 3,
        retry_delay: float = 0.0,
    ) -> None:
        self._probe = probe
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay

    async def connect(self) -> str:
        """Connect to the network and return the local address.

        Raises:
            NetworkError: Every attempt failed.
        """
        _LOGGER.info("Connecting to the network...")
        last_error: OSError | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                address = await self._probe()
            except OSError as err:
                last_error = err
                _LOGGER.warning(
                    "Unable to connect to network (attempt %d/%d): %s",
                    attempt,
                    self._max_attempts,
                    err,
                )
                if attempt < self._max_attempts and self._retry_delay:
                    await asyncio.sleep(self._retry_delay)
                continue

            _LOGGER.info(
                "Connected to the network successfully. IP address: %s", address
            )
            return address

        raise NetworkError(
            f"Connecting to the network failed after {self._max_attempts} attempts"
        ) from last_error
