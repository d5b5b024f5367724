from __future__ import annotations

import logging
import socket
import ssl
from contextlib import contextmanager
from typing import Iterator

from .config import settings
from .errors import ConfigurationError, ConnectError, TlsHandshakeError, TlsVerificationError
from .models import Certificate, ClientIdentity, Endpoint

logger = logging.getLogger(__name__)


def _timeout(timeout: float | None) -> float:
    return settings.SOCKET_TIMEOUT if timeout is None else timeout


@contextmanager
def open_tcp(endpoint: Endpoint, timeout: float | None = None) -> Iterator[socket.socket]:
    """
    Plain TCP connection to the endpoint, closed when the block exits.
    """
    logger.debug(f"Connecting to tcp://{endpoint}")
    try:
        sock = socket.create_connection(endpoint.address, timeout=_timeout(timeout))
    except OSError as e:
        raise ConnectError(
            f"Unable to connect to tcp://{endpoint} ({e})", host=endpoint.host, port=endpoint.port
        ) from e
    with sock:
        yield sock


@contextmanager
def open_tls(
    endpoint: Endpoint,
    context: ssl.SSLContext,
    timeout: float | None = None,
) -> Iterator[ssl.SSLSocket]:
    """
    TLS connection to the endpoint with the handshake already done.
    Failures are raised as ConnectError or one of its TLS subclasses.
    """
    with open_tcp(endpoint, timeout) as sock:
        logger.debug(f"TLS handshake with {endpoint}")
        try:
            ssock = context.wrap_socket(sock, server_hostname=endpoint.host)
        except ssl.SSLCertVerificationError as e:
            raise TlsVerificationError(
                f"Unable to connect to tls://{endpoint} ({e})",
                host=endpoint.host,
                port=endpoint.port,
                verify_message=e.verify_message,
            ) from e
        except (ssl.SSLError, OSError) as e:
            raise TlsHandshakeError(
                f"Unable to connect to tls://{endpoint} ({e})", host=endpoint.host, port=endpoint.port
            ) from e
        with ssock:
            yield ssock


def _load_client_identity(ctx: ssl.SSLContext, client_identity: ClientIdentity | None) -> None:
    if client_identity is None:
        return
    try:
        ctx.load_cert_chain(client_identity.cert_path, client_identity.key_path)
    except (OSError, ssl.SSLError) as e:
        raise ConfigurationError(
            f"Unable to load TLS client identity {client_identity.name!r}: {e}"
        ) from e


def insecure_context(client_identity: ClientIdentity | None = None) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    _load_client_identity(ctx, client_identity)
    return ctx


def verified_context(
    *,
    ignore_cn: bool = False,
    custom_root_ca: Certificate | None = None,
    client_identity: ClientIdentity | None = None,
) -> ssl.SSLContext:
    """
    Context verifying against custom_root_ca alone if given, else the system trust store.
    """
    if custom_root_ca is not None:
        ctx = ssl.create_default_context(cadata=custom_root_ca.pem)
    else:
        ctx = ssl.create_default_context()
    if ignore_cn:
        ctx.check_hostname = False
    _load_client_identity(ctx, client_identity)
    return ctx


def probe_tcp(endpoint: Endpoint, timeout: float | None = None) -> None:
    with open_tcp(endpoint, timeout):
        pass
    logger.info(f"TCP connection to {endpoint} succeeded")


def probe_insecure_tls(
    endpoint: Endpoint,
    client_identity: ClientIdentity | None = None,
    timeout: float | None = None,
) -> None:
    # Reachability only, says nothing about trust
    with open_tls(endpoint, insecure_context(client_identity), timeout):
        pass
    logger.info(f"Insecure TLS connection to {endpoint} succeeded")


def probe_verified_tls(
    endpoint: Endpoint,
    *,
    ignore_cn: bool = False,
    custom_root_ca: Certificate | None = None,
    client_identity: ClientIdentity | None = None,
    timeout: float | None = None,
) -> None:
    ctx = verified_context(
        ignore_cn=ignore_cn, custom_root_ca=custom_root_ca, client_identity=client_identity
    )
    with open_tls(endpoint, ctx, timeout):
        pass
    logger.info(
        f"Verified TLS connection to {endpoint} succeeded "
        f"(ignore_cn={ignore_cn}, custom_root_ca={custom_root_ca is not None})"
    )
