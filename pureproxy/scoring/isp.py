"""Residential vs. datacenter classification of network owner names."""

from dataclasses import dataclass
from typing import FrozenSet, Optional

DATACENTER_KEYWORDS: FrozenSet[str] = frozenset(
    {
        "cloud",
        "data",
        "center",
        "hosting",
        "server",
        "vps",
        "amazon",
        "google",
        "microsoft",
        "alibaba",
        "digitalocean",
        "cloudflare",
        "oracle",
        "linode",
        "hetzner",
        "ovh",
        "tencent",
        "choopa",
    }
)

RESIDENTIAL_KEYWORDS: FrozenSet[str] = frozenset(
    {
        "cable",
        "dsl",
        "fios",
        "broadband",
        "telecom",
        "mobile",
        "verizon",
        "comcast",
        "at&t",
        "vodafone",
        "residential",
        "home",
        "spectrum",
        "cox",
        "kt corp",
        "hinet",
        "bell",
    }
)


@dataclass(frozen=True)
class IspKeywords:
    """Keyword sets used to classify an owner name."""

    datacenter: FrozenSet[str] = DATACENTER_KEYWORDS
    residential: FrozenSet[str] = RESIDENTIAL_KEYWORDS


DEFAULT_ISP_KEYWORDS = IspKeywords()


def classify_isp(name: Optional[str], keywords: IspKeywords = DEFAULT_ISP_KEYWORDS) -> bool:
    """Return True when ``name`` looks like a residential/carrier network.

    Datacenter keywords win over residential ones; names matching neither
    are treated as not residential.
    """
    if not name:
        return False
    lowered = name.lower()
    if any(token in lowered for token in keywords.datacenter):
        return False
    return any(token in lowered for token in keywords.residential)


__all__ = [
    "DATACENTER_KEYWORDS",
    "DEFAULT_ISP_KEYWORDS",
    "IspKeywords",
    "RESIDENTIAL_KEYWORDS",
    "classify_isp",
]
