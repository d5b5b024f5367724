from __future__ import annotations

import logging
from datetime import tzinfo

from .endpoint import resolve
from .errors import ChainDiscoveryError, ClientIdentityNotFoundError, ConfigurationError, ConnectError
from .fetch import fetch_chain
from .identity import ClientIdentityResolver
from .models import (
    FORCE_CREATION,
    TLS_SERVER_ACCEPT_ROOTCA,
    TLS_SERVER_DISCOVER_ROOTCA,
    TLS_SERVER_IGNORE_CN,
    TLS_SERVER_INSECURE,
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

logger = logging.getLogger(__name__)


def initial_display_options(submission: Submission) -> DisplayOptions:
    """
    Optional fields the submission was rendered with: those it carries,
    plus discovery and acceptance whenever a root CA is cached.
    """
    options = DisplayOptions(submission.present_options())
    if submission.tls_server_rootca_cert is not None:
        options = options.with_(TLS_SERVER_DISCOVER_ROOTCA, TLS_SERVER_ACCEPT_ROOTCA)
    return options


def initial_values(submission: Submission, initial: bool = False) -> dict[str, bool]:
    """
    Defaults for a freshly rendered form: a cached root CA starts out accepted.
    """
    if initial and submission.tls_server_rootca_cert is not None:
        return {TLS_SERVER_ACCEPT_ROOTCA: True}
    return {}


def discover_root_ca(chain: CertificateChain) -> Certificate:
    """
    The root CA of the chain the operator may choose to trust.

    Raises ChainDiscoveryError if the remote only offered a self-signed leaf
    or no root distinct from its leaf.
    """
    leaf = chain.leaf
    if leaf.subject_cn == leaf.issuer_cn:
        raise ChainDiscoveryError("The remote didn't provide any non-self-signed TLS certificate")

    root = chain.root
    if root is None or root.der == leaf.der or root.subject_cn == leaf.subject_cn:
        raise ChainDiscoveryError("The remote didn't provide any root CA certificate")

    return root


class TrustProber:
    """
    Decides whether an HTTP(S) endpoint may be registered.

    Each call to validate() is independent: everything it remembers between
    submissions travels inside the Submission (the optional fields shown and
    the cached root CA PEM) and comes back in the TrustDecision.
    """

    def __init__(
        self,
        timeout: float | None = None,
        identity_resolver: ClientIdentityResolver | None = None,
        tz: tzinfo | None = None,
    ):
        self.timeout = timeout
        self.identity_resolver = identity_resolver
        self.tz = tz

    def _client_identity(self, name: str | None) -> ClientIdentity | None:
        if name is None:
            return None
        if self.identity_resolver is None:
            raise ClientIdentityNotFoundError(name)
        return self.identity_resolver.resolve(name)

    def _info(self, cert: Certificate | None) -> RootCaInfo | None:
        return RootCaInfo.from_certificate(cert, self.tz) if cert is not None else None

    def _reject_configuration(
        self,
        endpoint: Endpoint | None,
        options: DisplayOptions,
        cached_root: Certificate | None,
        cached_pem: str | None,
        error: ConfigurationError,
    ) -> TrustDecision:
        logger.warning(f"Rejecting {endpoint}: {error}")
        return TrustDecision(
            accepted=False,
            options=options,
            errors=(str(error),),
            rootca_info=self._info(cached_root),
            rootca_cert=cached_pem,
        )

    def validate(self, submission: Submission) -> TrustDecision:
        """
        Run one validation pass.

        Raises ConfigurationError for a malformed base URL, before any probe.
        A malformed cached root CA, an unusable client identity and every
        network, TLS and discovery failure become a rejection.
        """
        options = initial_display_options(submission)

        def checked(name: str) -> bool:
            return name in options and bool(getattr(submission, name))

        endpoint = resolve(submission.baseurl) if submission.baseurl else None
        cached_pem = submission.tls_server_rootca_cert
        try:
            cached_root = Certificate.from_pem(cached_pem) if cached_pem is not None else None
        except ConfigurationError as e:
            # Nothing left to accept, discovery may fetch a fresh one
            logger.warning(f"Rejecting {endpoint}: {e}")
            return TrustDecision(
                accepted=False, options=options.without(TLS_SERVER_ACCEPT_ROOTCA), errors=(str(e),)
            )

        try:
            client_identity = self._client_identity(submission.tls_client_identity)
        except ConfigurationError as e:
            return self._reject_configuration(endpoint, options, cached_root, cached_pem, e)

        if checked(FORCE_CREATION) or endpoint is None:
            logger.info("Endpoint accepted without connectivity validation")
            return TrustDecision(
                accepted=True,
                options=options,
                rootca_info=self._info(cached_root),
                rootca_cert=cached_pem,
            )

        if endpoint.scheme != "https":
            try:
                probe_tcp(endpoint, self.timeout)
            except ConnectError as e:
                logger.warning(f"Rejecting {endpoint}: {e}")
                return TrustDecision(
                    accepted=False, options=DisplayOptions.of(FORCE_CREATION), errors=(str(e),)
                )
            return TrustDecision(accepted=True)

        try:
            probe_insecure_tls(endpoint, client_identity, self.timeout)
        except ConfigurationError as e:
            # Client identity files that cannot be loaded
            return self._reject_configuration(endpoint, options, cached_root, cached_pem, e)
        except ConnectError as e:
            # Nothing TLS capable there, no trust option can help
            logger.warning(f"Rejecting {endpoint}: {e}")
            return TrustDecision(
                accepted=False,
                options=DisplayOptions.of(FORCE_CREATION),
                errors=(str(e),),
                rootca_cert=cached_pem,
            )

        if checked(TLS_SERVER_INSECURE):
            logger.info(f"Accepting {endpoint} without TLS verification")
            return TrustDecision(
                accepted=True,
                options=options,
                rootca_info=self._info(cached_root),
                rootca_cert=cached_pem,
            )

        if checked(TLS_SERVER_DISCOVER_ROOTCA):
            return self._discover(endpoint, options, client_identity)

        accept_root = cached_root is not None and checked(TLS_SERVER_ACCEPT_ROOTCA)
        try:
            probe_verified_tls(
                endpoint,
                ignore_cn=checked(TLS_SERVER_IGNORE_CN),
                custom_root_ca=cached_root if accept_root else None,
                client_identity=client_identity,
                timeout=self.timeout,
            )
        except ConnectError as e:
            logger.warning(f"Rejecting {endpoint}: {e}")
            retry_options = DisplayOptions.of(
                FORCE_CREATION, TLS_SERVER_INSECURE, TLS_SERVER_IGNORE_CN, TLS_SERVER_DISCOVER_ROOTCA
            )
            if cached_root is not None:
                retry_options = retry_options.with_(TLS_SERVER_ACCEPT_ROOTCA)
            return TrustDecision(
                accepted=False,
                options=retry_options,
                errors=(str(e),),
                rootca_info=self._info(cached_root),
                rootca_cert=cached_pem,
            )

        return TrustDecision(
            accepted=True,
            options=options.without(FORCE_CREATION, TLS_SERVER_INSECURE),
            rootca_info=self._info(cached_root),
            rootca_cert=cached_pem,
        )

    def _discover(
        self,
        endpoint: Endpoint,
        options: DisplayOptions,
        client_identity: ClientIdentity | None,
    ) -> TrustDecision:
        # The previously cached root CA is dropped, only a fresh one may be shown
        retry_options = options.with_(TLS_SERVER_DISCOVER_ROOTCA).without(TLS_SERVER_ACCEPT_ROOTCA)
        try:
            root = discover_root_ca(fetch_chain(endpoint, client_identity, self.timeout))
        except (ConnectError, ChainDiscoveryError) as e:
            logger.warning(f"Root CA discovery for {endpoint} failed: {e}")
            return TrustDecision(accepted=False, options=retry_options, errors=(str(e),))

        logger.info(f"Discovered root CA {root.subject_cn!r} of {endpoint}, awaiting confirmation")
        return TrustDecision(
            accepted=False,
            options=DisplayOptions.all(),
            rootca_info=self._info(root),
            rootca_cert=root.pem,
        )


def validate_endpoint(submission: Submission, **kwargs) -> TrustDecision:
    return TrustProber(**kwargs).validate(submission)
