"""HTTP client for the Greengrass discovery service."""

from __future__ import annotations

import logging
import ssl

import aiohttp

from .errors import DiscoveryError, DiscoveryFailed
from .models import DiscoveryResponse, TransportKind, parse_discovery_document

_LOGGER = logging.getLogger(__name__)


class GreengrassDiscoveryClient:
    """Discovery API wrapper.

    The discovery service is reached over mutual TLS: the thing's certificate
    authenticates the client and the fixed discovery root CA verifies the
    service. That root CA is distinct from the per-group CA returned in the
    discovery document.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        endpoint: str,
        ssl_context: ssl.SSLContext,
        *,
        port: int = 8443,
        timeout: float = 30.0,
    ) -> None:
        self._session = session
        self._endpoint = endpoint
        self._ssl_context = ssl_context
        self._port = port
        self._timeout = timeout

    def _url(self, thing_name: str) -> str:
        return (
            f"https://{self._endpoint}:{self._port}"
            f"/greengrass/discover/thing/{thing_name}"
        )

    async def discover(
        self,
        thing_name: str,
        *,
        transport: TransportKind = TransportKind.MQTT_NATIVE,
    ) -> DiscoveryResponse:
        """Fetch the connectivity information for ``thing_name``.

        Raises:
            DiscoveryFailed: The request failed or returned a non-200 status,
                or the body is not a discovery document.
        """
        url = self._url(thing_name)
        _LOGGER.debug(
            "[%s] Discovering %s cores via %s", thing_name, transport.value, url
        )
        try:
            async with self._session.get(
                url,
                ssl=self._ssl_context,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise DiscoveryFailed(
                        f"Discovery failed with status {resp.status}: {body}",
                        status=resp.status,
                    )
                data = await resp.json(content_type=None)
        except TimeoutError as err:
            raise DiscoveryFailed("Discovery request timed out") from err
        except aiohttp.ClientError as err:
            raise DiscoveryFailed("Discovery request failed") from err
        except ValueError as err:
            raise DiscoveryFailed("Discovery response is not valid JSON") from err

        try:
            return parse_discovery_document(data)
        except DiscoveryError as err:
            raise DiscoveryFailed(str(err)) from err
