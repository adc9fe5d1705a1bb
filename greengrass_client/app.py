"""Publisher and subscriber entry points.

Each run connects the network, discovers a Greengrass core, connects to it
and then publishes or subscribes until a fatal error. The process exit code
tells the failure class apart: ``-1`` for network and credential problems,
``1`` for everything after that.
"""

from __future__ import annotations

import asyncio
import logging
import os
import ssl
import sys
from collections.abc import Mapping
from contextlib import AsyncExitStack
from enum import Enum
from pathlib import Path

import aiohttp

from .config import ClientConfig, load_config
from .errors import ConfigurationError, GreengrassClientError, NetworkError
from .http import GreengrassDiscoveryClient
from .loops import PublishLoop, SubscribeLoop
from .network import NetworkConnector, route_probe
from .session import SessionManager
from .transport.mqtt import MqttTransport
from .transport.tls import build_ssl_context

_LOGGER = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_NETWORK_FAILURE = -1
EXIT_FAILURE = 1


class Mode(Enum):
    """Operating mode of a client run."""

    PUBLISH = "publish"
    SUBSCRIBE = "subscribe"


def _default_connector(config: ClientConfig) -> NetworkConnector:
    return NetworkConnector(
        route_probe(config.discovery_endpoint, config.discovery_port),
        max_attempts=config.timings.network_attempts,
        retry_delay=config.timings.network_retry_delay,
    )


async def run(
    config: ClientConfig,
    mode: Mode,
    *,
    connector: NetworkConnector | None = None,
    discovery_client: GreengrassDiscoveryClient | None = None,
    transport: MqttTransport | None = None,
) -> int:
    """Run one client to completion and return the process exit code."""
    connector = connector or _default_connector(config)
    try:
        await connector.connect()
    except NetworkError as err:
        _LOGGER.error("ERROR: %s", err)
        return EXIT_NETWORK_FAILURE

    try:
        config.validate_credentials()
    except ConfigurationError as err:
        _LOGGER.error("%s", err)
        return EXIT_NETWORK_FAILURE

    timings = config.timings
    async with AsyncExitStack() as stack:
        if discovery_client is None:
            try:
                ssl_context = build_ssl_context(
                    config.root_ca_pem,
                    client_cert_pem=config.client_cert_pem,
                    client_key_pem=config.client_key_pem,
                )
            except ssl.SSLError as err:
                _LOGGER.error("Unusable TLS credentials: %s", err)
                return EXIT_NETWORK_FAILURE
            http_session = await stack.enter_async_context(aiohttp.ClientSession())
            discovery_client = GreengrassDiscoveryClient(
                http_session,
                config.discovery_endpoint,
                ssl_context,
                port=config.discovery_port,
                timeout=timings.discovery_timeout,
            )

        if transport is None:
            transport = MqttTransport(
                command_timeout=timings.command_timeout,
                max_packet_size=timings.max_packet_size,
                client_cert_pem=config.client_cert_pem,
                client_key_pem=config.client_key_pem,
            )

        session = SessionManager(
            config.thing_name,
            discovery_client,
            transport,
            config.connect_params(),
            settle_delay=timings.settle_delay,
        )
        stack.push_async_callback(session.close)

        try:
            await session.discover()
            await session.connect()
            if mode is Mode.PUBLISH:
                await PublishLoop(
                    session,
                    config.topic,
                    config.message.encode(),
                    interval=timings.publish_interval,
                ).run()
            else:
                await SubscribeLoop(
                    session,
                    config.topic,
                    yield_timeout=timings.yield_timeout,
                    settle_delay=timings.settle_delay,
                ).run()
        except GreengrassClientError as err:
            _LOGGER.error("[%s] Terminated: %s", config.thing_name, err)
            return EXIT_FAILURE

    return EXIT_SUCCESS


def load_client_config(environ: Mapping[str, str] | None = None) -> ClientConfig:
    """Load configuration from ``GG_CONFIG`` (YAML) or ``GG_*`` variables."""
    env = os.environ if environ is None else environ
    if path := env.get("GG_CONFIG"):
        return load_config(Path(path))
    return ClientConfig.from_env(env)


def _main(mode: Mode) -> None:
    logging.basicConfig(
        level=os.environ.get("GG_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_client_config()
    except ConfigurationError as err:
        _LOGGER.error("%s", err)
        sys.exit(EXIT_NETWORK_FAILURE)

    try:
        code = asyncio.run(run(config, mode))
    except KeyboardInterrupt:
        _LOGGER.info("Interrupted")
        code = 130
    sys.exit(code)


def main_publish() -> None:
    """Console entry point of the publisher."""
    _main(Mode.PUBLISH)


def main_subscribe() -> None:
    """Console entry point of the subscriber."""
    _main(Mode.SUBSCRIBE)
