from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from .errors import ClientIdentityNotFoundError
from .models import ClientIdentity

logger = logging.getLogger(__name__)


class ClientIdentityResolver(ABC):
    """Looks up TLS client identities by name."""

    @abstractmethod
    def resolve(self, name: str) -> ClientIdentity:
        """Return the identity, raise ClientIdentityNotFoundError if unknown"""

    @abstractmethod
    def list_identities(self) -> list[str]:
        """Names of the identities an operator can choose from"""


class StaticClientIdentityResolver(ClientIdentityResolver):
    def __init__(self, identities: list[ClientIdentity] | None = None):
        self._identities = {i.name: i for i in identities or []}

    def resolve(self, name: str) -> ClientIdentity:
        try:
            return self._identities[name]
        except KeyError:
            raise ClientIdentityNotFoundError(name) from None

    def list_identities(self) -> list[str]:
        return sorted(self._identities)


class DirectoryClientIdentityResolver(ClientIdentityResolver):
    """
    Identities stored as files in one directory: either <name>.crt with
    <name>.key, or a single <name>.pem holding certificate and private key.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _is_valid_name(self, name: str) -> bool:
        return bool(name) and "/" not in name and "\\" not in name and name not in (".", "..")

    def resolve(self, name: str) -> ClientIdentity:
        if not self._is_valid_name(name):
            raise ClientIdentityNotFoundError(name)

        crt = self.directory / f"{name}.crt"
        key = self.directory / f"{name}.key"
        if crt.is_file() and key.is_file():
            return ClientIdentity(name=name, cert_path=str(crt), key_path=str(key))

        pem = self.directory / f"{name}.pem"
        if pem.is_file():
            return ClientIdentity(name=name, cert_path=str(pem))

        logger.warning(f"TLS client identity {name!r} not found in {self.directory}")
        raise ClientIdentityNotFoundError(name)

    def list_identities(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        names = set()
        for path in self.directory.iterdir():
            if path.suffix == ".pem" and path.is_file():
                names.add(path.stem)
            elif path.suffix == ".crt" and path.with_suffix(".key").is_file():
                names.add(path.stem)
        return sorted(names)
