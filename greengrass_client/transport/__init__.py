"""Transport layer for the Greengrass client.

This package contains the broker-facing IO:

- mqtt: MQTT session transport (connect, publish, subscribe, yield)
- tls: TLS context construction from in-memory PEM material
"""

from .mqtt import MessageHandler, MqttTransport, TransportStatus, status_from_rc
from .tls import build_ssl_context

__all__ = [
    "MessageHandler",
    "MqttTransport",
    "TransportStatus",
    "build_ssl_context",
    "status_from_rc",
]
