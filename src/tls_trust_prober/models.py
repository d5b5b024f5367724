from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any, Iterator, Literal, Mapping

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization

from .errors import ConfigurationError
from .utils import common_name, dt_to_iso, format_fingerprint, name_to_pairs


Scheme = Literal["http", "https"]

# Optional error handling fields, in display order
FORCE_CREATION = "force_creation"
TLS_SERVER_INSECURE = "tls_server_insecure"
TLS_SERVER_IGNORE_CN = "tls_server_ignore_cn"
TLS_SERVER_DISCOVER_ROOTCA = "tls_server_discover_rootca"
TLS_SERVER_ROOTCA_INFO = "tls_server_rootca_info"
TLS_SERVER_ACCEPT_ROOTCA = "tls_server_accept_rootca"

OPTIONAL_FIELDS = (
    FORCE_CREATION,
    TLS_SERVER_INSECURE,
    TLS_SERVER_IGNORE_CN,
    TLS_SERVER_DISCOVER_ROOTCA,
    TLS_SERVER_ACCEPT_ROOTCA,
)

DISPLAY_ORDER = (
    FORCE_CREATION,
    TLS_SERVER_INSECURE,
    TLS_SERVER_IGNORE_CN,
    TLS_SERVER_DISCOVER_ROOTCA,
    TLS_SERVER_ROOTCA_INFO,
    TLS_SERVER_ACCEPT_ROOTCA,
)

_FALSY_FORM_VALUES = {"", "0", "n", "no", "off", "false"}


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int
    scheme: Scheme

    @property
    def address(self) -> tuple[str, int]:
        return self.host, self.port

    def __str__(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"


@dataclass(frozen=True)
class ClientIdentity:
    """
    TLS client certificate with its private key, used for mutual TLS.
    key_path may be None when cert_path holds both.
    """
    name: str
    cert_path: str
    key_path: str | None = None


@dataclass(frozen=True)
class Certificate:
    """
    Raw certificate + the parsed fields the trust decision needs.
    """
    der: bytes
    subject: tuple[tuple[str, str], ...]
    issuer: tuple[tuple[str, str], ...]
    not_valid_before: datetime  # aware, UTC
    not_valid_after: datetime   # aware, UTC
    fingerprint_sha256: bytes
    fingerprint_sha1: bytes

    @classmethod
    def from_x509(cls, cert: x509.Certificate) -> Certificate:
        return cls(
            der=cert.public_bytes(serialization.Encoding.DER),
            subject=name_to_pairs(cert.subject),
            issuer=name_to_pairs(cert.issuer),
            not_valid_before=cert.not_valid_before_utc,
            not_valid_after=cert.not_valid_after_utc,
            fingerprint_sha256=cert.fingerprint(hashes.SHA256()),
            fingerprint_sha1=cert.fingerprint(hashes.SHA1()),
        )

    @classmethod
    def from_der(cls, der: bytes) -> Certificate:
        return cls.from_x509(x509.load_der_x509_certificate(der))

    @classmethod
    def from_pem(cls, pem: str | bytes) -> Certificate:
        if isinstance(pem, str):
            pem = pem.encode("ascii", errors="replace")
        try:
            cert = x509.load_pem_x509_certificate(pem)
        except ValueError as e:
            raise ConfigurationError(f"Not a valid PEM encoded X.509 certificate: {e}") from e
        return cls.from_x509(cert)

    @property
    def pem(self) -> str:
        cert = x509.load_der_x509_certificate(self.der)
        return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")

    @property
    def subject_cn(self) -> str | None:
        return common_name(self.subject)

    @property
    def issuer_cn(self) -> str | None:
        return common_name(self.issuer)

    @property
    def is_self_issued(self) -> bool:
        return self.subject_cn == self.issuer_cn


@dataclass(frozen=True)
class CertificateChain:
    """
    Server-presented chain reduced to its leaf and, if genuine, its root.
    """
    leaf: Certificate
    root: Certificate | None = None


@dataclass(frozen=True)
class RootCaInfo:
    """
    Root CA details shown to the operator before they accept it.
    """
    subject: tuple[str, ...]
    valid_from: str
    valid_until: str
    sha256_fingerprint: str
    sha1_fingerprint: str

    @classmethod
    def from_certificate(cls, cert: Certificate, tz: tzinfo | None = None) -> RootCaInfo:
        return cls(
            subject=tuple(f"{key} = {value!r}" for key, value in cert.subject),
            valid_from=dt_to_iso(cert.not_valid_before, tz),
            valid_until=dt_to_iso(cert.not_valid_after, tz),
            sha256_fingerprint=format_fingerprint(cert.fingerprint_sha256),
            sha1_fingerprint=format_fingerprint(cert.fingerprint_sha1),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": list(self.subject),
            "valid_from": self.valid_from,
            "valid_until": self.valid_until,
            "sha256_fingerprint": self.sha256_fingerprint,
            "sha1_fingerprint": self.sha1_fingerprint,
        }


@dataclass(frozen=True)
class DisplayOptions:
    """
    The optional error handling fields to show, always in display order.
    """
    fields: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        unknown = set(self.fields) - set(OPTIONAL_FIELDS)
        if unknown:
            raise ValueError(f"unknown optional field(s): {', '.join(sorted(unknown))}")
        ordered = tuple(name for name in OPTIONAL_FIELDS if name in self.fields)
        object.__setattr__(self, "fields", ordered)

    @classmethod
    def of(cls, *names: str) -> DisplayOptions:
        return cls(tuple(names))

    @classmethod
    def all(cls) -> DisplayOptions:
        return cls(OPTIONAL_FIELDS)

    def with_(self, *names: str) -> DisplayOptions:
        return DisplayOptions(self.fields + names)

    def without(self, *names: str) -> DisplayOptions:
        return DisplayOptions(tuple(n for n in self.fields if n not in names))

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)


def _form_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSY_FORM_VALUES
    return bool(value)


@dataclass(frozen=True)
class Submission:
    """
    Submitted form values. An optional field is None when it wasn't part
    of the submitted form at all.
    """
    baseurl: str | None = None
    force_creation: bool | None = None
    tls_server_insecure: bool | None = None
    tls_server_ignore_cn: bool | None = None
    tls_server_discover_rootca: bool | None = None
    tls_server_accept_rootca: bool | None = None
    tls_server_rootca_cert: str | None = None
    tls_client_identity: str | None = None

    @classmethod
    def from_form(cls, data: Mapping[str, Any]) -> Submission:
        values: dict[str, Any] = {}
        for name in OPTIONAL_FIELDS:
            if name in data:
                values[name] = _form_bool(data[name])
        for name in ("baseurl", "tls_server_rootca_cert", "tls_client_identity"):
            value = data.get(name)
            if isinstance(value, str):
                value = value.strip() or None
            values[name] = value
        return cls(**values)

    def present_options(self) -> tuple[str, ...]:
        return tuple(name for name in OPTIONAL_FIELDS if getattr(self, name) is not None)


@dataclass(frozen=True)
class TrustDecision:
    """
    Outcome of one validation pass.
    rootca_cert is the PEM to pass back with the next submission.
    """
    accepted: bool
    options: DisplayOptions = field(default_factory=DisplayOptions)
    errors: tuple[str, ...] = ()
    rootca_info: RootCaInfo | None = None
    rootca_cert: str | None = None

    @property
    def displayed_fields(self) -> tuple[str, ...]:
        shown = set(self.options.fields)
        if self.rootca_info is not None:
            shown.add(TLS_SERVER_ROOTCA_INFO)
        return tuple(name for name in DISPLAY_ORDER if name in shown)

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "displayed_fields": list(self.displayed_fields),
            "errors": list(self.errors),
            "rootca_info": self.rootca_info.to_dict() if self.rootca_info else None,
            "rootca_cert": self.rootca_cert,
        }
