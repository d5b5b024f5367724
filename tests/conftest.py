import ipaddress
import socket
import ssl
import threading
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID


def _name(cn, org=None):
    attrs = []
    if org:
        attrs.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, org))
    attrs.append(x509.NameAttribute(NameOID.COMMON_NAME, cn))
    return x509.Name(attrs)


def make_cert(cn, issuer=None, ca=False, san=None, org=None, issuer_name=None):
    """
    Create a certificate for cn.

    issuer is a (cert, key) tuple; without it the certificate is self-signed.
    issuer_name overrides the issuer DN without changing the signing key.
    """
    key = ec.generate_private_key(ec.SECP256R1())
    now = datetime.now(timezone.utc)

    if issuer is None:
        signing_key = key
        issuer_dn = _name(cn, org)
        issuer_public_key = key.public_key()
    else:
        issuer_cert, signing_key = issuer
        issuer_dn = issuer_cert.subject
        issuer_public_key = issuer_cert.public_key()
    if issuer_name is not None:
        issuer_dn = _name(issuer_name)

    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(cn, org))
        .issuer_name(issuer_dn)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
    )
    if issuer is not None:
        builder = builder.add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_public_key), critical=False
        )
    if ca:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=False,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
    else:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        ).add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
    if san:
        names = []
        for entry in san:
            try:
                names.append(x509.IPAddress(ipaddress.ip_address(entry)))
            except ValueError:
                names.append(x509.DNSName(entry))
        builder = builder.add_extension(x509.SubjectAlternativeName(names), critical=False)

    return builder.sign(signing_key, hashes.SHA256()), key


def der(cert):
    return cert.public_bytes(serialization.Encoding.DER)


def pem(cert):
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def key_pem(key):
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture(scope="session")
def root_ca():
    return make_cert("Test Root CA", ca=True, org="Example Monitoring")


@pytest.fixture(scope="session")
def intermediate_ca(root_ca):
    return make_cert("Test Intermediate CA", issuer=root_ca, ca=True)


@pytest.fixture(scope="session")
def leaf(root_ca):
    return make_cert("localhost", issuer=root_ca, san=["localhost", "127.0.0.1"])


@pytest.fixture(scope="session")
def mismatched_leaf(root_ca):
    return make_cert("other.example", issuer=root_ca, san=["other.example"])


@pytest.fixture(scope="session")
def self_signed_leaf():
    return make_cert("localhost", san=["localhost", "127.0.0.1"])


class TlsServer:
    """Accepts TLS connections on 127.0.0.1 until stopped."""

    def __init__(self, context):
        self.context = context
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(5)
        self.sock.settimeout(0.2)
        self.port = self.sock.getsockname()[1]
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def _serve(self):
        while not self._stopped.is_set():
            try:
                conn, _ = self.sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            with conn:
                conn.settimeout(5)
                try:
                    with self.context.wrap_socket(conn, server_side=True) as tls:
                        tls.recv(1)
                except (ssl.SSLError, OSError):
                    pass

    def start(self):
        self._thread.start()
        return self

    def stop(self):
        self._stopped.set()
        self._thread.join(timeout=5)
        self.sock.close()


@pytest.fixture
def tls_server(tmp_path):
    """
    Factory: tls_server(leaf_pair, *extra_certs) serves leaf_pair's
    certificate followed by extra_certs and returns the listening port.
    """
    servers = []

    def start(leaf_pair, *extra_certs):
        cert, key = leaf_pair
        certfile = tmp_path / f"server{len(servers)}.crt"
        keyfile = tmp_path / f"server{len(servers)}.key"
        certfile.write_text(pem(cert) + "".join(pem(c) for c in extra_certs))
        keyfile.write_text(key_pem(key))

        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ctx.load_cert_chain(str(certfile), str(keyfile))
        server = TlsServer(ctx).start()
        servers.append(server)
        return server.port

    yield start

    for server in servers:
        server.stop()


@pytest.fixture
def tcp_port():
    """A port on 127.0.0.1 with a plain listener behind it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(5)
    yield sock.getsockname()[1]
    sock.close()


@pytest.fixture
def closed_port():
    """A port on 127.0.0.1 nothing listens on."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
