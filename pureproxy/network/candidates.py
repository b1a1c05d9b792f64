"""Candidate extraction from proxy list bodies and manual submissions.

Upstream lists are untrusted text: plain ``ip[:port]`` lines, comma separated
values, or a single base64 blob wrapping either. Extraction never raises on
malformed input; it returns whatever candidates it can find.
"""

import base64
import binascii
import logging
import re
import time
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

import requests

from pureproxy.exceptions import NoValidInputError
from pureproxy.logging_utils import perf

LOGGER = logging.getLogger(__name__)

DEFAULT_PORT = 443
MIN_MANUAL_TOKEN_LENGTH = 6
USER_AGENT = "Mozilla/5.0 (Compatible; PureProxy/Importer)"

CANDIDATE_RE = re.compile(r"(?<![\d.])((?:\d{1,3}\.){3}\d{1,3})(?::(\d{1,5}))?", re.ASCII)
BASE64_RE = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")
WHITESPACE_RE = re.compile(r"\s+")
MANUAL_SPLIT_RE = re.compile(r"[\n,]")


@dataclass(frozen=True)
class Candidate:
    """An unvalidated ``ip:port`` pair; identity is the value pair."""

    ip: str
    port: int

    def __str__(self) -> str:
        return f"{self.ip}:{self.port}"


@dataclass(frozen=True)
class ProxySource:
    """A public list to import candidates from.

    Args:
        name: Label used in logs.
        url: Address of a text body containing candidates.
        trust: Provenance tag stored on endpoints found in this source.
    """

    name: str
    url: str
    trust: str


PROXY_SOURCES: Tuple[ProxySource, ...] = (
    ProxySource(
        name="ymyuuu/IPDB (Best Proxy)",
        url="https://cdn.jsdelivr.net/gh/ymyuuu/IPDB@main/bestproxy.txt",
        trust="ipdb-bestproxy",
    ),
    ProxySource(
        name="391040525/ProxyIP (Active)",
        url="https://cdn.jsdelivr.net/gh/391040525/ProxyIP@main/active.txt",
        trust="proxyip-active",
    ),
)


def _decode_base64_blob(text: str) -> Optional[str]:
    """Return the decoded body when ``text`` is entirely one base64 blob."""
    compact = WHITESPACE_RE.sub("", text)
    if not compact or len(compact) % 4 != 0 or not BASE64_RE.match(compact):
        return None
    try:
        return base64.b64decode(compact, validate=True).decode("utf-8", errors="ignore")
    except (binascii.Error, ValueError):
        return None


def canonical_ip(ip: str) -> str:
    """Drop leading zeros from each octet so one address has one spelling."""
    return ".".join(str(int(octet)) for octet in ip.split("."))


def _scan(text: str, default_port: int) -> Set[Candidate]:
    found: Set[Candidate] = set()
    for match in CANDIDATE_RE.finditer(text):
        ip, port_text = canonical_ip(match.group(1)), match.group(2)
        port = int(port_text) if port_text else default_port
        if not 1 <= port <= 65535:
            continue
        found.add(Candidate(ip=ip, port=port))
    return found


def extract_candidates(text: Optional[str], default_port: int = DEFAULT_PORT) -> Set[Candidate]:
    """Extract a deduplicated set of candidates from ``text``.

    A body that is entirely base64 is decoded and scanned in addition to the
    raw text, since some sources mix both. Octet ranges are not checked here;
    that belongs to the ownership filter.
    """
    if not text:
        return set()

    candidates = _scan(text, default_port)
    decoded = _decode_base64_blob(text)
    if decoded:
        candidates |= _scan(decoded, default_port)
    return candidates


def split_manual_tokens(text: str) -> List[str]:
    """Split a manual submission on newlines and commas.

    Tokens shorter than six characters after trimming cannot hold an address
    and are dropped.
    """
    tokens = (token.strip() for token in MANUAL_SPLIT_RE.split(text or ""))
    return [token for token in tokens if len(token) >= MIN_MANUAL_TOKEN_LENGTH]


def parse_manual_input(text: Optional[str], default_port: int = DEFAULT_PORT) -> Set[Candidate]:
    """Parse a user submission into candidates.

    Raises:
        NoValidInputError: If the submission is blank or nothing in it parses.
    """
    if not text or not text.strip():
        raise NoValidInputError("Submission is empty.")

    tokens = split_manual_tokens(text)
    candidates = extract_candidates("\n".join(tokens), default_port=default_port)
    if not candidates:
        raise NoValidInputError()
    return candidates


@perf("network.fetch_source", tags={"component": "network"})
def fetch_source_text(
    source: ProxySource,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = 10.0,
) -> str:
    """Download one candidate list body.

    Failures are logged and yield an empty body so one broken source never
    stops a run.
    """
    getter = session.get if session is not None else requests.get
    try:
        resp = getter(
            source.url,
            params={"t": str(int(time.time() * 1000))},
            headers={"User-Agent": USER_AGENT},
            timeout=timeout,
        )
    except requests.RequestException as exc:
        LOGGER.error("Source %s fetch failed: %s", source.name, exc)
        return ""

    if not 200 <= resp.status_code < 300:
        LOGGER.warning("Source %s returned HTTP %s", source.name, resp.status_code)
        return ""

    text = resp.text or ""
    LOGGER.info("Source %s: %d bytes", source.name, len(text))
    return text


__all__ = [
    "Candidate",
    "DEFAULT_PORT",
    "PROXY_SOURCES",
    "ProxySource",
    "canonical_ip",
    "extract_candidates",
    "fetch_source_text",
    "parse_manual_input",
    "split_manual_tokens",
]
