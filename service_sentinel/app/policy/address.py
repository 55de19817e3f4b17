"""
Client address matching against IP allowlist entries.

An entry is either an exact address, compared textually, or a CIDR block
``base/prefix``. CIDR matching compares the top ``prefix`` bits of the packed
addresses byte by byte. Anything that does not parse cleanly fails closed.
"""

import ipaddress
from typing import Iterable, List, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_FAMILY_BITS = {4: 32, 6: 128}


def parse_address(value: str) -> Optional[IPAddress]:
    """Parse an IPv4 or IPv6 literal, returning None when it is not one."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return ipaddress.ip_address(value.strip())
    except ValueError:
        return None


def expand_ipv6(value: str) -> List[str]:
    """Expand an IPv6 literal (including ``::`` shorthand) to eight 4-digit groups."""
    return ipaddress.IPv6Address(value).exploded.split(":")


def normalize_client_address(value: Optional[str]) -> Optional[str]:
    """Return the address in the form allowlists are written in.

    IPv4-mapped IPv6 peers (``::ffff:10.0.0.1``) are reported by dual-stack
    sockets; they are unwrapped to dotted IPv4.
    """
    if value is None:
        return None
    candidate = value.strip()
    parsed = parse_address(candidate)
    if isinstance(parsed, ipaddress.IPv6Address) and parsed.ipv4_mapped is not None:
        return str(parsed.ipv4_mapped)
    return candidate


def prefix_bytes_match(left: bytes, right: bytes, prefix_len: int) -> bool:
    """Compare the first ``prefix_len`` bits of two equal-length byte strings."""
    full_bytes, remaining_bits = divmod(prefix_len, 8)

    if left[:full_bytes] != right[:full_bytes]:
        return False

    if remaining_bits:
        mask = (0xFF << (8 - remaining_bits)) & 0xFF
        if (left[full_bytes] & mask) != (right[full_bytes] & mask):
            return False

    return True


def matches(client_address: str, entry: str) -> bool:
    """Return True when ``client_address`` falls inside allowlist ``entry``."""
    if not isinstance(client_address, str) or not isinstance(entry, str):
        return False

    if "/" not in entry:
        return client_address == entry

    base_text, _, prefix_text = entry.partition("/")
    if not (prefix_text.isascii() and prefix_text.isdigit()):
        return False
    prefix_len = int(prefix_text)

    client = parse_address(client_address)
    base = parse_address(base_text)
    if client is None or base is None:
        return False
    if client.version != base.version:
        return False
    if prefix_len > _FAMILY_BITS[base.version]:
        return False

    return prefix_bytes_match(client.packed, base.packed, prefix_len)


def matches_any(client_address: str, entries: Iterable[str]) -> bool:
    """Return True when the address matches at least one entry."""
    return any(matches(client_address, entry) for entry in entries)
