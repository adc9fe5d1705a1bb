"""Client error types for Greengrass discovery and broker sessions."""

from __future__ import annotations


class GreengrassClientError(Exception):
    """Base error for Greengrass client failures."""


class ConfigurationError(GreengrassClientError):
    """Static client configuration is missing or unusable."""


class NetworkError(GreengrassClientError):
    """The local network connection could not be established."""


class DiscoveryError(GreengrassClientError):
    """Discovery did not yield a usable broker endpoint."""


class DiscoveryFailed(DiscoveryError):
    """The discovery call itself failed."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class EmptyDiscoveryData(DiscoveryError):
    """Discovery response contained no groups."""


class NoConnectionCandidates(DiscoveryError):
    """The selected core advertised no connection candidates."""


class IncompleteEndpoint(DiscoveryError):
    """The selected connection lacks a host address or root CA."""


class InvalidPort(GreengrassClientError):
    """A candidate connection port is not a valid TCP port."""


class SessionStateError(GreengrassClientError):
    """Session operation invoked from the wrong state."""


class ConnectFailed(GreengrassClientError):
    """Connecting to the broker endpoint failed."""


class SubscribeFailed(GreengrassClientError):
    """Subscribing to a topic failed."""


class PublishFailed(GreengrassClientError):
    """Publishing a message failed."""


class SessionLost(GreengrassClientError):
    """The broker session was disconnected."""


class MessageTooLarge(GreengrassClientError):
    """An inbound message exceeded the configured maximum packet size."""
