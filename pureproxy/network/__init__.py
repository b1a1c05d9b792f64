"""Network-facing pipeline stages.

Exports:
- ``extract_candidates`` / ``parse_manual_input``: text to ``Candidate`` sets.
- ``fetch_source_text``: download a public candidate list.
- ``OwnershipFilter``: validity and excluded-network checks.
- ``probe_relay``: marker probe classifying a candidate as a live relay.
"""

from pureproxy.network.candidates import (
    Candidate,
    PROXY_SOURCES,
    ProxySource,
    extract_candidates,
    fetch_source_text,
    parse_manual_input,
    split_manual_tokens,
)
from pureproxy.network.ownership import (
    OwnershipFilter,
    ip_in_cidr,
    is_valid_public_ip,
)
from pureproxy.network.probe import ProbeResult, probe_relay

__all__ = [
    "Candidate",
    "PROXY_SOURCES",
    "ProxySource",
    "extract_candidates",
    "fetch_source_text",
    "parse_manual_input",
    "split_manual_tokens",
    "OwnershipFilter",
    "ip_in_cidr",
    "is_valid_public_ip",
    "ProbeResult",
    "probe_relay",
]
