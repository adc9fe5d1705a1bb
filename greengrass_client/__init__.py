"""Greengrass discovery client: find a core, connect, publish or subscribe."""

__version__ = "0.1.0"

from .config import ClientConfig, Timings, load_config
from .discovery import (
    DiscoveryResultParser,
    EndpointSelector,
    first_connection,
    parse_port,
)
from .errors import (
    ConfigurationError,
    ConnectFailed,
    DiscoveryError,
    DiscoveryFailed,
    EmptyDiscoveryData,
    GreengrassClientError,
    IncompleteEndpoint,
    InvalidPort,
    MessageTooLarge,
    NetworkError,
    NoConnectionCandidates,
    PublishFailed,
    SessionLost,
    SessionStateError,
    SubscribeFailed,
)
from .http import GreengrassDiscoveryClient
from .loops import PublishLoop, SubscribeLoop
from .models import (
    CandidateConnection,
    ConnectParams,
    Core,
    DiscoveryResponse,
    Endpoint,
    Group,
    InboundMessage,
    QoS,
    SelectedConnection,
    TransportKind,
    parse_discovery_document,
)
from .network import NetworkConnector
from .session import SessionManager, SessionState
from .transport import MqttTransport, TransportStatus

__all__ = [
    "CandidateConnection",
    "ClientConfig",
    "ConfigurationError",
    "ConnectFailed",
    "ConnectParams",
    "Core",
    "DiscoveryError",
    "DiscoveryFailed",
    "DiscoveryResponse",
    "DiscoveryResultParser",
    "EmptyDiscoveryData",
    "Endpoint",
    "EndpointSelector",
    "GreengrassClientError",
    "GreengrassDiscoveryClient",
    "Group",
    "InboundMessage",
    "IncompleteEndpoint",
    "InvalidPort",
    "MessageTooLarge",
    "MqttTransport",
    "NetworkConnector",
    "NetworkError",
    "NoConnectionCandidates",
    "PublishFailed",
    "PublishLoop",
    "QoS",
    "SelectedConnection",
    "SessionLost",
    "SessionManager",
    "SessionState",
    "SessionStateError",
    "SubscribeFailed",
    "SubscribeLoop",
    "Timings",
    "TransportKind",
    "TransportStatus",
    "__version__",
    "first_connection",
    "load_config",
    "parse_discovery_document",
    "parse_port",
]
