from __future__ import annotations


class ProberError(Exception):
    """Base exception for all prober errors."""


class ConfigurationError(ProberError):
    """Input rejected before any network access (malformed URL, PEM, ...)."""


class ClientIdentityNotFoundError(ConfigurationError):
    def __init__(self, name: str):
        super().__init__(f"Unknown TLS client identity: {name!r}")
        self.name = name


class ConnectError(ProberError):
    """DNS or TCP failure (refused, timeout, unresolvable host)."""

    def __init__(self, message: str, host: str | None = None, port: int | None = None):
        super().__init__(message)
        self.host = host
        self.port = port


class TlsHandshakeError(ConnectError):
    """Transport-level TLS failure."""


class TlsVerificationError(ConnectError):
    """The remote's chain or hostname was rejected."""

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
        verify_message: str | None = None,
    ):
        super().__init__(message, host=host, port=port)
        self.verify_message = verify_message


class ChainDiscoveryError(ProberError):
    """The remote offered no usable distinct root CA."""
