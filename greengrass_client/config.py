"""Static client configuration.

Configuration is read either from ``GG_*`` environment variables or from a
YAML file. Certificate and key values may be given inline as PEM text or as a
path to a PEM file.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError
from .models import ConnectParams

DISCOVERY_PORT = 8443
DEFAULT_MESSAGE = "HELLO"
MIN_CREDENTIALS_LENGTH = 64

_PEM_MARKER = "-----BEGIN"


@dataclass(frozen=True)
class Timings:
    """Timing constants for the discovery and session workflow.

    Attributes:
        keep_alive: MQTT keep-alive interval (seconds).
        command_timeout: Wait for CONNACK/SUBACK (seconds).
        settle_delay: Pause after discovery, after connect, and between
            subscribe-loop iterations (seconds).
        publish_interval: Pause between publishes (seconds).
        yield_timeout: Upper bound of one inbound-traffic wait (seconds).
        network_attempts: Network connection attempts before giving up.
        network_retry_delay: Pause between network attempts (seconds).
        discovery_timeout: Total timeout of the discovery request (seconds).
        max_packet_size: Largest inbound payload accepted (bytes).
    """

    keep_alive: int = 60
    command_timeout: float = 5.0
    settle_delay: float = 1.0
    publish_interval: float = 5.0
    yield_timeout: float = 1.0
    network_attempts: int = 3
    network_retry_delay: float = 0.0
    discovery_timeout: float = 30.0
    max_packet_size: int = 4096


@dataclass(frozen=True)
class ClientConfig:
    """Identity, credentials and endpoints for one client instance."""

    thing_name: str
    discovery_endpoint: str
    topic: str
    client_key_pem: str
    client_cert_pem: str
    root_ca_pem: str
    client_id: str | None = None
    message: str = DEFAULT_MESSAGE
    discovery_port: int = DISCOVERY_PORT
    timings: Timings = field(default_factory=Timings)

    @property
    def effective_client_id(self) -> str:
        return self.client_id or self.thing_name

    def connect_params(self) -> ConnectParams:
        """Build the CONNECT parameters for this client."""
        return ConnectParams(
            client_id=self.effective_client_id,
            keep_alive=self.timings.keep_alive,
        )

    def validate_credentials(self) -> None:
        """Sanity-check that key, certificate and CA have been configured.

        Raises:
            ConfigurationError: The combined lengths are implausibly short.
        """
        combined = (
            len(self.client_key_pem)
            | len(self.client_cert_pem)
            | len(self.root_ca_pem)
        )
        if combined < MIN_CREDENTIALS_LENGTH:
            raise ConfigurationError(
                "Please configure the client key, client certificate and root CA"
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ClientConfig:
        """Build a config from a flat mapping of option names to values."""
        missing = [
            key
            for key in (
                "thing_name",
                "discovery_endpoint",
                "topic",
                "client_key",
                "client_cert",
                "root_ca",
            )
            if not data.get(key)
        ]
        if missing:
            raise ConfigurationError(f"Missing configuration: {', '.join(missing)}")

        timings_data = data.get("timings") or {}
        if not isinstance(timings_data, Mapping):
            raise ConfigurationError("timings must be a mapping")
        timings = _build_timings(timings_data)

        try:
            discovery_port = int(data.get("discovery_port", DISCOVERY_PORT))
        except (TypeError, ValueError) as err:
            raise ConfigurationError("discovery_port must be an integer") from err

        return cls(
            thing_name=str(data["thing_name"]),
            discovery_endpoint=str(data["discovery_endpoint"]),
            topic=str(data["topic"]),
            client_key_pem=read_pem(str(data["client_key"])),
            client_cert_pem=read_pem(str(data["client_cert"])),
            root_ca_pem=read_pem(str(data["root_ca"])),
            client_id=data.get("client_id") or None,
            message=str(data.get("message") or DEFAULT_MESSAGE),
            discovery_port=discovery_port,
            timings=timings,
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ClientConfig:
        """Build a config from ``GG_*`` environment variables."""
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {
            "thing_name": env.get("GG_THING_NAME"),
            "client_id": env.get("GG_CLIENT_ID"),
            "discovery_endpoint": env.get("GG_DISCOVERY_ENDPOINT"),
            "topic": env.get("GG_TOPIC"),
            "message": env.get("GG_MESSAGE"),
            "client_key": env.get("GG_CLIENT_KEY"),
            "client_cert": env.get("GG_CLIENT_CERT"),
            "root_ca": env.get("GG_ROOT_CA"),
        }
        if port := env.get("GG_DISCOVERY_PORT"):
            data["discovery_port"] = port

        timings: dict[str, str] = {}
        for timing in fields(Timings):
            if value := env.get(f"GG_{timing.name.upper()}"):
                timings[timing.name] = value
        data["timings"] = timings
        return cls.from_mapping(data)


def _build_timings(data: Mapping[str, Any]) -> Timings:
    known = {timing.name: timing for timing in fields(Timings)}
    values: dict[str, Any] = {}
    for name, raw in data.items():
        if name not in known:
            raise ConfigurationError(f"Unknown timing: {name}")
        convert = int if known[name].type in (int, "int") else float
        try:
            values[name] = convert(raw)
        except (TypeError, ValueError) as err:
            raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from err
    return Timings(**values)


def read_pem(value: str) -> str:
    """Return PEM text given inline PEM or a path to a PEM file."""
    if _PEM_MARKER in value:
        return value
    path = Path(value).expanduser()
    if not path.is_file():
        raise ConfigurationError(f"PEM file not found: {path}")
    return path.read_text()


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file with error handling."""
    if not path.exists():
        raise ConfigurationError(f"File not found: {path}")
    with path.open() as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as err:
            raise ConfigurationError(f"Invalid YAML in {path}") from err
    if not isinstance(data, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping")
    return data


def load_config(path: Path) -> ClientConfig:
    """Load a client configuration from a YAML file.

    Relative PEM paths are resolved against the file's directory.

    Args:
        path: Path to the YAML configuration.

    Returns:
        Parsed ClientConfig.

    Raises:
        ConfigurationError: If the file is missing or incomplete.
    """
    data = _load_yaml(path)
    for key in ("client_key", "client_cert", "root_ca"):
        value = data.get(key)
        if isinstance(value, str) and _PEM_MARKER not in value:
            candidate = Path(value).expanduser()
            if not candidate.is_absolute():
                data[key] = str(path.parent / candidate)
    return ClientConfig.from_mapping(data)
