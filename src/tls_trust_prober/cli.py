from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from . import __version__
from .config import settings
from .errors import ConfigurationError
from .identity import DirectoryClientIdentityResolver
from .models import Submission
from .trust import TrustProber

logger = logging.getLogger(__name__)


def _write_output(out_path: str | None, payload: Any) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if out_path:
        Path(out_path).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="tls-trust-prober",
        description="Check whether an HTTP(S) endpoint can be reached and trusted.",
    )
    p.add_argument("baseurl", nargs="?", help="http[s]://<HOST>[:<PORT>][/<BASE_LOCATION>]")
    p.add_argument("--force-creation", action="store_true", help="Skip connectivity validation")
    p.add_argument("--insecure", action="store_true", help="Don't validate the remote's TLS certificate chain at all")
    p.add_argument("--ignore-cn", action="store_true", help="Ignore the remote's TLS certificate's CN")
    p.add_argument(
        "--discover-rootca",
        action="store_true",
        help="Discover the remote's root CA (makes sense only in case of an isolated PKI)",
    )
    p.add_argument("--accept-rootca", action="store_true", help="Trust the root CA given by --rootca-file")
    p.add_argument("--rootca-file", help="PEM file with a previously discovered root CA")
    p.add_argument("--save-rootca", help="Write a discovered root CA (PEM) to this file")
    p.add_argument("--client-identity", help="Name of the TLS client identity to use")
    p.add_argument(
        "--identity-dir",
        default=settings.IDENTITY_DIR,
        help="Directory holding TLS client identities (default: $TLS_PROBER_IDENTITY_DIR)",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=settings.SOCKET_TIMEOUT,
        help=f"Connect timeout seconds (default: {settings.SOCKET_TIMEOUT:g})",
    )
    p.add_argument("--out", "-o", help="Write JSON output to file (default: stdout)")
    p.add_argument("--verbose", "-v", action="store_true", help="Log probe details to stderr")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    args = p.parse_args(argv)
    if args.save_rootca and not args.discover_rootca:
        p.error("--save-rootca requires --discover-rootca")
    return args


def _submission(args: argparse.Namespace) -> Submission:
    rootca_cert = None
    if args.rootca_file:
        try:
            rootca_cert = Path(args.rootca_file).read_text(encoding="ascii")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Unable to read {args.rootca_file}: {e}") from e

    # Every option counts as shown to the operator
    return Submission(
        baseurl=args.baseurl,
        force_creation=args.force_creation,
        tls_server_insecure=args.insecure,
        tls_server_ignore_cn=args.ignore_cn,
        tls_server_discover_rootca=args.discover_rootca,
        tls_server_accept_rootca=args.accept_rootca,
        tls_server_rootca_cert=rootca_cert,
        tls_client_identity=args.client_identity,
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    if args.version:
        print(__version__)
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format=settings.LOG_FORMAT,
        stream=sys.stderr,
    )

    resolver = DirectoryClientIdentityResolver(args.identity_dir) if args.identity_dir else None
    prober = TrustProber(timeout=args.timeout, identity_resolver=resolver)

    try:
        decision = prober.validate(_submission(args))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.save_rootca and decision.rootca_cert:
        Path(args.save_rootca).write_text(decision.rootca_cert, encoding="ascii")
        logger.info(f"Root CA written to {args.save_rootca}")

    payload = {
        "baseurl": args.baseurl,
        "version": __version__,
        "result": decision.to_dict(),
    }

    _write_output(args.out, payload)
    return 0 if decision.accepted else 3


if __name__ == "__main__":
    raise SystemExit(main())
