"""
Hostname normalization for probe targets.

Test hostnames and custom DNS servers come from a hand-edited settings file,
so they are normalized to a canonical form (lowercase, IDNA-encoded, no
trailing dot) before any probe uses them.
"""

import ipaddress
import re
from dataclasses import dataclass
from typing import Optional

import idna


# Control characters, whitespace and symbols that never appear in a hostname
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f'
    r'\s'
    r'!@#$%^&*()+=\[\]{}|\\;"\'<>,?/`~]'
)

MAX_HOSTNAME_LENGTH = 253


@dataclass
class HostnameResult:
    """Result of normalizing a single hostname."""

    valid: bool
    canonical: Optional[str]
    error: Optional[str] = None


def is_ip_address(value: str) -> bool:
    """Return True if value is a literal IPv4 or IPv6 address."""
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def normalize_hostname(raw: str) -> HostnameResult:
    """
    Convert a hostname or IP literal to canonical form.

    Args:
        raw: Hostname as written in the settings file

    Returns:
        HostnameResult with the canonical name or the reason it was rejected
    """
    if raw is None or not str(raw).strip():
        return HostnameResult(valid=False, canonical=None, error="empty hostname")

    value = str(raw).strip()

    if is_ip_address(value):
        return HostnameResult(valid=True, canonical=value)

    value = value.rstrip(".").lower()

    if FORBIDDEN_CHARS_PATTERN.search(value):
        return HostnameResult(
            valid=False,
            canonical=None,
            error=f"hostname contains forbidden characters: {raw!r}",
        )

    if any(ord(c) > 127 for c in value):
        try:
            value = idna.encode(value, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            return HostnameResult(
                valid=False,
                canonical=None,
                error=f"IDNA encoding failed for {raw!r}: {e}",
            )

    if len(value) > MAX_HOSTNAME_LENGTH or any(
        not label or len(label) > 63 for label in value.split(".")
    ):
        return HostnameResult(
            valid=False,
            canonical=None,
            error=f"invalid hostname length: {raw!r}",
        )

    return HostnameResult(valid=True, canonical=value)


def normalize_hostnames(values: list[str]) -> tuple[list[str], list[str]]:
    """
    Normalize a list of hostnames, dropping duplicates and invalid entries.

    Returns:
        Tuple of (canonical hostnames in input order, rejection messages)
    """
    seen: set[str] = set()
    accepted: list[str] = []
    rejected: list[str] = []
    for raw in values:
        result = normalize_hostname(raw)
        if not result.valid:
            rejected.append(result.error or f"invalid hostname: {raw!r}")
            continue
        if result.canonical not in seen:
            seen.add(result.canonical)
            accepted.append(result.canonical)
    return accepted, rejected
