"""Relay probe: one raw HTTP exchange through a candidate.

The probe connects straight to the candidate and sends a minimal request
addressed to a well-known host behind the fronting platform. A candidate
that relays the request gets a response from that platform, which carries an
identifying header (``CF-RAY`` by default). Anything else is a rejection.
"""

import logging
import socket
import time
from dataclasses import dataclass
from typing import Optional

from pureproxy.network.candidates import Candidate

LOGGER = logging.getLogger(__name__)

DEFAULT_TARGET_HOST = "speed.cloudflare.com"
DEFAULT_MARKER = "cf-ray"
DEFAULT_CONNECT_TIMEOUT = 2.0
DEFAULT_READ_TIMEOUT = 3.0
DEFAULT_READ_SIZE = 4096

REASON_TIMEOUT = "timeout"
REASON_REFUSED = "refused"
REASON_MARKER_MISSING = "marker_missing"
REASON_ERROR = "error"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of probing one candidate.

    Attributes:
        candidate: The probed candidate.
        accepted: True when the response carried the marker.
        latency_ms: Milliseconds from connect start to marker confirmation;
            None when rejected.
        reason: Rejection reason code, for logs only; None when accepted.
    """

    candidate: Candidate
    accepted: bool
    latency_ms: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def accept(cls, candidate: Candidate, latency_ms: int) -> "ProbeResult":
        return cls(candidate=candidate, accepted=True, latency_ms=latency_ms)

    @classmethod
    def reject(cls, candidate: Candidate, reason: str) -> "ProbeResult":
        return cls(candidate=candidate, accepted=False, reason=reason)


def build_probe_request(target_host: str) -> bytes:
    """Return the fixed request sent through every candidate."""
    return (
        "GET /cdn-cgi/trace HTTP/1.1\r\n"
        f"Host: {target_host}\r\n"
        "User-Agent: Mozilla/5.0\r\n"
        "Accept: */*\r\n"
        "Connection: close\r\n"
        "\r\n"
    ).encode("ascii")


def response_has_marker(payload: bytes, marker: str = DEFAULT_MARKER) -> bool:
    """Return True if a header line of ``payload`` contains ``marker``."""
    text = payload.decode("latin-1", errors="ignore")
    head = text.split("\r\n\r\n", 1)[0]
    needle = marker.lower()
    return any(needle in line.lower() for line in head.splitlines())


def probe_relay(
    candidate: Candidate,
    *,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    read_timeout: float = DEFAULT_READ_TIMEOUT,
    target_host: str = DEFAULT_TARGET_HOST,
    marker: str = DEFAULT_MARKER,
    read_size: int = DEFAULT_READ_SIZE,
) -> ProbeResult:
    """Probe ``candidate`` and classify it as a usable relay or not.

    No retries are attempted. Every failure (timeout, refusal, marker
    mismatch, unexpected error) maps to a rejection; the socket is closed on
    every path.
    """
    start_ns = time.perf_counter_ns()
    try:
        with socket.create_connection(
            (candidate.ip, candidate.port), timeout=connect_timeout
        ) as sock:
            sock.settimeout(read_timeout)
            sock.sendall(build_probe_request(target_host))
            payload = sock.recv(read_size)
            if not response_has_marker(payload, marker):
                return ProbeResult.reject(candidate, REASON_MARKER_MISSING)
            latency_ms = int((time.perf_counter_ns() - start_ns) / 1_000_000)
            return ProbeResult.accept(candidate, latency_ms)
    except socket.timeout:
        return ProbeResult.reject(candidate, REASON_TIMEOUT)
    except ConnectionRefusedError:
        return ProbeResult.reject(candidate, REASON_REFUSED)
    except Exception as exc:  # noqa: BLE001
        LOGGER.debug("Probe error for %s: %s", candidate, exc)
        return ProbeResult.reject(candidate, REASON_ERROR)


__all__ = [
    "DEFAULT_MARKER",
    "DEFAULT_TARGET_HOST",
    "ProbeResult",
    "build_probe_request",
    "probe_relay",
    "response_has_marker",
]
