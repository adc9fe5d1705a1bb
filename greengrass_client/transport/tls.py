"""TLS context helpers for discovery and broker connections."""

from __future__ import annotations

import os
import ssl
import tempfile


def build_ssl_context(
    root_ca_pem: str,
    *,
    client_cert_pem: str | None = None,
    client_key_pem: str | None = None,
    check_hostname: bool = True,
) -> ssl.SSLContext:
    """Create a client TLS context from in-memory PEM material.

    Args:
        root_ca_pem: CA bundle used to verify the server.
        client_cert_pem: Client certificate for mutual TLS.
        client_key_pem: Private key matching ``client_cert_pem``.
        check_hostname: Verify the server name against its certificate.
            Greengrass cores are usually addressed by IP, so broker contexts
            disable this and rely on chain verification.
    """
    context = ssl.create_default_context(
        ssl.Purpose.SERVER_AUTH, cadata=root_ca_pem
    )
    context.check_hostname = check_hostname
    if client_cert_pem and client_key_pem:
        _load_client_pair(context, client_cert_pem, client_key_pem)
    return context


def _load_client_pair(context: ssl.SSLContext, cert_pem: str, key_pem: str) -> None:
    # ssl only loads certificate chains from files
    fd, path = tempfile.mkstemp(suffix=".pem")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(cert_pem.rstrip("\n") + "\n")
            f.write(key_pem.rstrip("\n") + "\n")
        context.load_cert_chain(path)
    finally:
        os.unlink(path)
