from __future__ import annotations

import logging
import select
import socket
import time

from cryptography.hazmat.primitives import serialization
from OpenSSL import SSL

from .config import settings
from .errors import ConfigurationError, TlsHandshakeError
from .models import Certificate, CertificateChain, ClientIdentity, Endpoint
from .probes import open_tcp
from .utils import is_ip_address

logger = logging.getLogger(__name__)


def chain_context(client_identity: ClientIdentity | None = None) -> SSL.Context:
    """
    Client context that accepts any peer chain, for looking at it only.
    """
    ctx = SSL.Context(SSL.TLS_CLIENT_METHOD)
    ctx.set_verify(SSL.VERIFY_NONE)
    if client_identity is not None:
        try:
            ctx.use_certificate_chain_file(client_identity.cert_path)
            ctx.use_privatekey_file(client_identity.key_path or client_identity.cert_path)
        except (OSError, SSL.Error) as e:
            raise ConfigurationError(
                f"Unable to load TLS client identity {client_identity.name!r}: {e}"
            ) from e
    return ctx


def _handshake(conn: SSL.Connection, sock: socket.socket, timeout: float) -> None:
    # sock is non-blocking, wait for it until the deadline
    deadline = time.monotonic() + timeout
    while True:
        try:
            conn.do_handshake()
            return
        except SSL.WantReadError:
            readable, writable = [sock], []
        except SSL.WantWriteError:
            readable, writable = [], [sock]
        remaining = deadline - time.monotonic()
        if remaining <= 0 or not any(select.select(readable, writable, [], remaining)[:2]):
            raise socket.timeout("TLS handshake timed out")


def _presented_chain_ders(conn: SSL.Connection) -> list[bytes]:
    """
    DER certificates as presented by the server, leaf first.
    """
    leaf = conn.get_peer_certificate()
    leaf_der = leaf.to_cryptography().public_bytes(serialization.Encoding.DER) if leaf else None

    chain_ders = [
        c.to_cryptography().public_bytes(serialization.Encoding.DER)
        for c in conn.get_peer_cert_chain() or []
    ]

    # Normalize: ensure leaf is first and included
    ders: list[bytes] = []
    if leaf_der:
        ders.append(leaf_der)
    for d in chain_ders:
        if d and d != leaf_der:
            ders.append(d)
    return ders


def reduce_chain(ders: list[bytes]) -> CertificateChain:
    """
    Leaf plus, if the chain has more than one entry and the last one is
    self-issued, that one as root. Intermediates are dropped.
    """
    if not ders:
        raise ValueError("empty certificate chain")

    leaf = Certificate.from_der(ders[0])
    root = Certificate.from_der(ders[-1]) if len(ders) > 1 else None

    if root is not None and not root.is_self_issued:
        logger.debug(
            f"Last presented certificate {root.subject_cn!r} is issued by {root.issuer_cn!r}, not a root CA"
        )
        root = None

    return CertificateChain(leaf=leaf, root=root)


def fetch_chain(
    endpoint: Endpoint,
    client_identity: ClientIdentity | None = None,
    timeout: float | None = None,
) -> CertificateChain:
    """
    Fetch the certificate chain the remote presents, without trusting it.
    """
    ctx = chain_context(client_identity)
    timeout = settings.SOCKET_TIMEOUT if timeout is None else timeout

    with open_tcp(endpoint, timeout) as sock:
        sock.setblocking(False)
        conn = SSL.Connection(ctx, sock)
        if not is_ip_address(endpoint.host):
            conn.set_tlsext_host_name(endpoint.host.encode("idna"))
        conn.set_connect_state()
        logger.debug(f"TLS handshake with {endpoint} (chain capture)")
        try:
            _handshake(conn, sock, timeout)
        except (SSL.Error, OSError) as e:
            raise TlsHandshakeError(
                f"Unable to connect to tls://{endpoint} ({e})", host=endpoint.host, port=endpoint.port
            ) from e
        ders = _presented_chain_ders(conn)

    if not ders:
        raise TlsHandshakeError(
            f"tls://{endpoint} presented no certificate", host=endpoint.host, port=endpoint.port
        )
    logger.info(f"{endpoint} presented {len(ders)} certificate(s)")
    return reduce_chain(ders)
