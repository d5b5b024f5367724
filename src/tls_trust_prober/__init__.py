from __future__ import annotations

__version__ = "0.1.0"

from .endpoint import resolve
from .errors import (
    ChainDiscoveryError,
    ClientIdentityNotFoundError,
    ConfigurationError,
    ConnectError,
    ProberError,
    TlsHandshakeError,
    TlsVerificationError,
)
from .fetch import fetch_chain
from .models import (
    Certificate,
    CertificateChain,
    ClientIdentity,
    DisplayOptions,
    Endpoint,
    RootCaInfo,
    Submission,
    TrustDecision,
)
from .probes import probe_insecure_tls, probe_tcp, probe_verified_tls
from .trust import TrustProber, initial_display_options, validate_endpoint

__all__ = [
    "__version__",
    "Certificate",
    "CertificateChain",
    "ChainDiscoveryError",
    "ClientIdentity",
    "ClientIdentityNotFoundError",
    "ConfigurationError",
    "ConnectError",
    "DisplayOptions",
    "Endpoint",
    "ProberError",
    "RootCaInfo",
    "Submission",
    "TlsHandshakeError",
    "TlsVerificationError",
    "TrustDecision",
    "TrustProber",
    "fetch_chain",
    "initial_display_options",
    "probe_insecure_tls",
    "probe_tcp",
    "probe_verified_tls",
    "resolve",
    "validate_endpoint",
]
