from __future__ import annotations

import ipaddress
from datetime import datetime, timezone, tzinfo

from cryptography import x509


def format_fingerprint(digest: bytes) -> str:
    # "AB CD EF ..."
    return " ".join(f"{b:02X}" for b in digest)


def dt_to_iso(dt: datetime, tz: tzinfo | None = None) -> str:
    """
    ISO-8601 timestamp in the given timezone, the local one if tz is None.
    Naive datetimes are taken as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz).replace(microsecond=0).isoformat()


def name_to_pairs(name: x509.Name) -> tuple[tuple[str, str], ...]:
    # RFC4514 short names (CN, O, OU, ...), in certificate order
    pairs = []
    for attr in name:
        value = attr.value
        if isinstance(value, bytes):
            value = value.hex()
        pairs.append((attr.rfc4514_attribute_name, value))
    return tuple(pairs)


def common_name(pairs: tuple[tuple[str, str], ...]) -> str | None:
    for key, value in pairs:
        if key == "CN":
            return value
    return None



def is_ip_address(host: str) -> bool:
    # SNI carries host names only
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True
