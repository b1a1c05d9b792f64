"""Address validity and ownership checks.

A candidate is rejected when it is not a well-formed IPv4 address, when it
lies in a private, loopback or otherwise reserved block, or when it belongs
to one of the configured excluded networks (the platform fronting this
service must never be reported as a third-party relay).

All helpers are pure functions of their arguments.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

from pureproxy.config import CLOUDFLARE_IPV4_CIDRS
from pureproxy.network.candidates import Candidate

RESERVED_IPV4_CIDRS: Tuple[str, ...] = (
    "0.0.0.0/8",
    "10.0.0.0/8",
    "100.64.0.0/10",
    "127.0.0.0/8",
    "169.254.0.0/16",
    "172.16.0.0/12",
    "192.0.0.0/24",
    "192.0.2.0/24",
    "192.168.0.0/16",
    "198.18.0.0/15",
    "198.51.100.0/24",
    "203.0.113.0/24",
    "224.0.0.0/3",  # multicast and everything above it
)


def ip_to_int(ip: str) -> Optional[int]:
    """Return the 32-bit value of a canonical dotted-quad address, or None."""
    parts = (ip or "").split(".")
    if len(parts) != 4:
        return None
    value = 0
    for part in parts:
        if not (part.isascii() and part.isdigit()):
            return None
        # Leading zeros read as octal in some resolvers.
        if len(part) > 1 and part[0] == "0":
            return None
        octet = int(part)
        if octet > 255:
            return None
        value = (value << 8) | octet
    return value


def _parse_cidr(cidr: str) -> Tuple[int, int]:
    """Return ``(network, mask)`` for ``a.b.c.d/bits``.

    Raises:
        ValueError: If the block is malformed.
    """
    network_text, _, bits_text = cidr.strip().partition("/")
    network = ip_to_int(network_text)
    bits = int(bits_text) if bits_text else 32
    if network is None or not 0 <= bits <= 32:
        raise ValueError(f"Invalid CIDR block: {cidr!r}")
    mask = (0xFFFFFFFF << (32 - bits)) & 0xFFFFFFFF
    return network, mask


def _in_any(address: int, blocks: Iterable[Tuple[int, int]]) -> bool:
    return any((address & mask) == (network & mask) for network, mask in blocks)


def ip_in_cidr(ip: str, cidr: str) -> bool:
    """Return True if ``ip`` falls inside ``cidr``."""
    address = ip_to_int(ip)
    if address is None:
        return False
    return _in_any(address, [_parse_cidr(cidr)])


_RESERVED_BLOCKS = tuple(_parse_cidr(cidr) for cidr in RESERVED_IPV4_CIDRS)


def is_valid_public_ip(ip: str) -> bool:
    """Return True for a well-formed IPv4 address outside reserved ranges."""
    address = ip_to_int(ip)
    if address is None:
        return False
    return not _in_any(address, _RESERVED_BLOCKS)


@dataclass(frozen=True)
class OwnershipFilter:
    """Accept/reject decision for candidate addresses.

    Args:
        excluded_cidrs: Networks owned by the fronting platform.
    """

    excluded_cidrs: Tuple[str, ...] = CLOUDFLARE_IPV4_CIDRS
    _blocks: Tuple[Tuple[int, int], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "excluded_cidrs", tuple(self.excluded_cidrs))
        object.__setattr__(
            self, "_blocks", tuple(_parse_cidr(cidr) for cidr in self.excluded_cidrs)
        )

    def accepts(self, ip: str) -> bool:
        if not is_valid_public_ip(ip):
            return False
        address = ip_to_int(ip)
        return not _in_any(address, self._blocks)

    def accepts_candidate(self, candidate: Candidate) -> bool:
        return self.accepts(candidate.ip)


__all__ = [
    "OwnershipFilter",
    "RESERVED_IPV4_CIDRS",
    "ip_in_cidr",
    "ip_to_int",
    "is_valid_public_ip",
]
