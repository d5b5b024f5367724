from __future__ import annotations

from urllib.parse import urlsplit

from .errors import ConfigurationError
from .models import Endpoint

DEFAULT_PORTS = {"http": 80, "https": 443}


def resolve(base_url: str) -> Endpoint:
    """
    Parse http[s]://<HOST>[:<PORT>][/<BASE_LOCATION>] into an Endpoint.
    No network access.
    """
    try:
        parts = urlsplit(base_url.strip())
        port = parts.port
    except (AttributeError, ValueError) as e:
        raise ConfigurationError(f"Invalid base URL {base_url!r}: {e}") from e

    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise ConfigurationError(f"Invalid base URL {base_url!r}: scheme must be http or https")

    host = parts.hostname
    if not host:
        raise ConfigurationError(f"Invalid base URL {base_url!r}: host is empty")

    if port is None:
        port = DEFAULT_PORTS[scheme]
    elif not (1 <= port <= 65535):
        raise ConfigurationError(f"Invalid base URL {base_url!r}: port out of range")

    return Endpoint(host=host, port=port, scheme=scheme)  # type: ignore[arg-type]
