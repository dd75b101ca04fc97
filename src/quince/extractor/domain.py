"""Sender address and domain normalisation."""

from __future__ import annotations

import ipaddress
import re
from email.utils import parseaddr

HOST_RE = re.compile(r"^[A-Za-z0-9.-]+$")


def normalize_address(address: str | None) -> str | None:
    """Return the lowercased bare address from a From-style value."""

    if not address:
        return None
    _display, email_address = parseaddr(address)
    if not email_address and "<" in address and ">" in address:
        email_address = address.split("<", 1)[1].split(">", 1)[0]
    candidate = email_address or address
    normalized = candidate.strip().lower()
    return normalized or None


def display_name(address: str | None) -> str:
    if not address:
        return ""
    name, _email_address = parseaddr(address)
    if not name and "<" in address:
        name = address.split("<", 1)[0]
    return name.strip().strip('"').lower()


def local_part(address: str | None) -> str:
    normalized = normalize_address(address)
    if not normalized or "@" not in normalized:
        return ""
    return normalized.rsplit("@", 1)[0]


def domain_from_address(address: str | None) -> str | None:
    """Return the full lowercased sender domain for an address."""

    normalized = normalize_address(address)
    if not normalized or "@" not in normalized:
        return None
    return _normalize_host(normalized.rsplit("@", 1)[1])


def _normalize_host(host: str | None) -> str | None:
    if not host:
        return None
    candidate = host.strip().lower().rstrip(".")
    if candidate.startswith("[") and candidate.endswith("]"):
        candidate = candidate[1:-1]
    if not candidate:
        return None

    # IPv4/IPv6 literals retain their exact string.
    try:
        ipaddress.ip_address(candidate)
        return candidate
    except ValueError:
        pass

    if not HOST_RE.match(candidate):
        return None
    labels = [label for label in candidate.split(".") if label]
    if not labels:
        return None
    return ".".join(labels)


__all__ = ["display_name", "domain_from_address", "local_part", "normalize_address"]
