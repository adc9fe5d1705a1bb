"""Data model for Greengrass discovery results and broker sessions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import DiscoveryError


class TransportKind(Enum):
    """Transport used to reach a discovered core."""

    MQTT_NATIVE = "mqtt_native"


class QoS(int, Enum):
    """MQTT quality of service levels."""

    AT_MOST_ONCE = 0
    AT_LEAST_ONCE = 1


@dataclass(frozen=True)
class CandidateConnection:
    """One advertised way of reaching a core."""

    host_address: str
    port: str
    connection_id: str | None = None
    metadata: str | None = None


@dataclass(frozen=True)
class Core:
    """A Greengrass core and its connection candidates."""

    thing_arn: str
    connections: tuple[CandidateConnection, ...] = ()


@dataclass(frozen=True)
class Group:
    """A Greengrass group with its core and group root CA (PEM)."""

    group_id: str
    core: Core
    root_ca: str


@dataclass(frozen=True)
class DiscoveryResponse:
    """Parsed discovery document; groups keep the order they were returned in."""

    groups: tuple[Group, ...] = ()


@dataclass(frozen=True)
class SelectedConnection:
    """The group, core and connection chosen from a discovery response."""

    group: Group
    core: Core
    connection: CandidateConnection


@dataclass(frozen=True)
class Endpoint:
    """Resolved broker endpoint used to open a session."""

    address: str
    port: int
    root_ca: bytes
    transport: TransportKind = TransportKind.MQTT_NATIVE

    @property
    def root_ca_length(self) -> int:
        return len(self.root_ca)


@dataclass(frozen=True)
class ConnectParams:
    """MQTT CONNECT parameters."""

    client_id: str
    username: str | None = None
    password: str | None = None
    keep_alive: int = 60
    peer_cn: str | None = None


@dataclass(frozen=True)
class InboundMessage:
    """Message delivered to a subscription handler."""

    topic: str
    payload: bytes
    qos: int
    retained: bool
    duplicate: bool
    packet_id: int


def _parse_connection(data: dict[str, Any]) -> CandidateConnection:
    host = data.get("HostAddress")
    port = data.get("PortNumber")
    if not host or port is None:
        raise DiscoveryError("Connectivity entry is missing HostAddress or PortNumber")
    return CandidateConnection(
        host_address=str(host),
        port=str(port),
        connection_id=data.get("Id"),
        metadata=data.get("Metadata") or None,
    )


def _parse_group(data: dict[str, Any]) -> Group:
    cores = data.get("Cores") or []
    if not cores:
        raise DiscoveryError(f"Group {data.get('GGGroupId')} has no core")
    core_data = cores[0]
    core = Core(
        thing_arn=core_data.get("thingArn", ""),
        connections=tuple(
            _parse_connection(conn) for conn in core_data.get("Connectivity") or []
        ),
    )
    return Group(
        group_id=data.get("GGGroupId", ""),
        core=core,
        root_ca="".join(data.get("CAs") or []),
    )


def parse_discovery_document(data: Any) -> DiscoveryResponse:
    """Convert a discovery JSON document into a DiscoveryResponse.

    The document has the shape::

        {"GGGroups": [{"GGGroupId": ..., "Cores": [{"thingArn": ...,
          "Connectivity": [{"Id", "HostAddress", "PortNumber", "Metadata"}]}],
          "CAs": ["-----BEGIN CERTIFICATE-----..."]}]}

    Raises:
        DiscoveryError: If the document does not have that shape.
    """
    if not isinstance(data, dict):
        raise DiscoveryError("Discovery document is not a JSON object")
    groups = data.get("GGGroups") or []
    if not isinstance(groups, list):
        raise DiscoveryError("GGGroups is not a list")
    try:
        return DiscoveryResponse(groups=tuple(_parse_group(group) for group in groups))
    except (AttributeError, TypeError) as err:
        raise DiscoveryError("Malformed discovery document") from err
