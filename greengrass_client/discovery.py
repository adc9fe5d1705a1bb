"""Selection of a broker endpoint from a discovery response.

The discovery service may return several groups, each with a core that
advertises one or more ways of being reached. Exactly one connection is
selected per response: the first group, its core, and the connection picked
by the configured policy (the first one by default).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from .errors import (
    EmptyDiscoveryData,
    IncompleteEndpoint,
    InvalidPort,
    NoConnectionCandidates,
)
from .models import (
    CandidateConnection,
    Core,
    DiscoveryResponse,
    Endpoint,
    SelectedConnection,
    TransportKind,
)

_LOGGER = logging.getLogger(__name__)

ConnectionPolicy = Callable[[Sequence[CandidateConnection]], CandidateConnection | None]


def first_connection(
    connections: Sequence[CandidateConnection],
) -> CandidateConnection | None:
    """Pick the first advertised connection."""
    return connections[0] if connections else None


class DiscoveryResultParser:
    """Select one group, core and connection from a discovery response."""

    def __init__(self, policy: ConnectionPolicy = first_connection) -> None:
        self._policy = policy

    def select(self, response: DiscoveryResponse) -> SelectedConnection:
        """Select the connection to use.

        Raises:
            EmptyDiscoveryData: The response contains no groups.
            NoConnectionCandidates: The first group's core has no usable
                connection.
        """
        if not response.groups:
            _LOGGER.warning("Discovery payload is empty")
            raise EmptyDiscoveryData("Discovery response contains no groups")

        group = response.groups[0]
        core = group.core

        _LOGGER.info("==== Core/Group Information ====")
        _LOGGER.info("GGGroupId: %s", group.group_id)
        _LOGGER.info("thingArn: %s", core.thing_arn)
        _LOGGER.info("CAs: %s", group.root_ca)
        _LOGGER.info("==== End of Core/Group Information ====")

        connection = self._policy(core.connections)
        if connection is None:
            _LOGGER.warning("No connections found for core %s", core.thing_arn)
            raise NoConnectionCandidates(
                f"Core {core.thing_arn} has no connection candidates"
            )

        return SelectedConnection(group=group, core=core, connection=connection)


def parse_port(value: str) -> int:
    """Parse a decimal TCP port.

    Raises:
        InvalidPort: The value is not a decimal integer in [1, 65535].
    """
    text = value.strip()
    if not (text.isascii() and text.isdigit()):
        raise InvalidPort(f"Port is not numeric: {value!r}")
    port = int(text)
    if not 1 <= port <= 65535:
        raise InvalidPort(f"Port out of range: {port}")
    return port


class EndpointSelector:
    """Build the transport endpoint for a selected connection."""

    transport = TransportKind.MQTT_NATIVE

    def build(
        self, core: Core, candidate: CandidateConnection, root_ca: str
    ) -> Endpoint:
        """Build an endpoint from a core's candidate connection.

        Args:
            core: Core that advertised the candidate.
            candidate: Connection to reach the core.
            root_ca: PEM root CA of the core's group.

        Raises:
            IncompleteEndpoint: The host address or root CA is empty.
            InvalidPort: The candidate port cannot be parsed.
        """
        if not candidate.host_address.strip():
            raise IncompleteEndpoint(f"Core {core.thing_arn} advertised an empty host")
        if not root_ca.strip():
            raise IncompleteEndpoint(f"Group of core {core.thing_arn} has no root CA")
        endpoint = Endpoint(
            address=candidate.host_address,
            port=parse_port(candidate.port),
            root_ca=root_ca.encode(),
            transport=self.transport,
        )
        _LOGGER.debug(
            "Endpoint for %s: %s:%d (%d byte root CA)",
            core.thing_arn,
            endpoint.address,
            endpoint.port,
            endpoint.root_ca_length,
        )
        return endpoint

    def build_from(self, selected: SelectedConnection) -> Endpoint:
        """Build an endpoint from a parser selection."""
        return self.build(selected.core, selected.connection, selected.group.root_ca)
