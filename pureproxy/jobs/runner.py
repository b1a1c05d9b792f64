"""Pipeline runner: extract, filter, probe, enrich, score and persist.

Two entry points share the same per-candidate pipeline:

- ``run_import``: scheduled import from the public source lists.
- ``analyze_manual``: user-submitted text; results are returned first and
  persisted in the background.

Candidates are processed in fixed-size batches. Inside a batch every
candidate is validated concurrently; the next batch starts only after the
whole batch has finished, which bounds open connections and lookup load.
"""

import logging
import random
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import requests

from pureproxy.api.geo import GeoLookupClient
from pureproxy.logging_utils import perf, perf_span
from pureproxy.network.candidates import (
    Candidate,
    PROXY_SOURCES,
    ProxySource,
    extract_candidates,
    fetch_source_text,
    parse_manual_input,
)
from pureproxy.network.ownership import OwnershipFilter
from pureproxy.network.probe import DEFAULT_MARKER, DEFAULT_TARGET_HOST, probe_relay
from pureproxy.persistence.endpoints import EndpointStore
from pureproxy.persistence.writer import EndpointWriter
from pureproxy.scoring.isp import DEFAULT_ISP_KEYWORDS, IspKeywords
from pureproxy.scoring.purity import DEFAULT_POLICY, MODE_IMPORT, MODE_MANUAL, MODES, ScoringPolicy
from pureproxy.transform.endpoints import EndpointRecord, build_endpoint

LOGGER = logging.getLogger(__name__)

PROBE_MARKER = "marker"
PROBE_TRUST = "trust"
PROBE_STRATEGIES = (PROBE_MARKER, PROBE_TRUST)

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 50
MANUAL_SOURCE_TRUST = "manual"

# Placeholder latency window used when the trust strategy skips probing.
SYNTHETIC_LATENCY_MS = (50, 250)


@dataclass(frozen=True)
class RunConfig:
    mode: str = MODE_IMPORT
    batch_size: int = 5
    scan_limit: Optional[int] = 35
    default_port: int = 443
    probe_strategy: str = PROBE_MARKER
    connect_timeout: float = 2.0
    read_timeout: float = 3.0
    target_host: str = DEFAULT_TARGET_HOST
    marker: str = DEFAULT_MARKER
    batch_delay_seconds: float = 0.5
    source_timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.mode not in MODES:
            raise ValueError(f"mode must be one of {MODES}, got {self.mode!r}")
        if self.probe_strategy not in PROBE_STRATEGIES:
            raise ValueError(
                f"probe_strategy must be one of {PROBE_STRATEGIES}, got {self.probe_strategy!r}"
            )
        if not MIN_BATCH_SIZE <= self.batch_size <= MAX_BATCH_SIZE:
            raise ValueError(
                f"batch_size must be within [{MIN_BATCH_SIZE}, {MAX_BATCH_SIZE}]"
            )
        if self.scan_limit is not None and self.scan_limit < 0:
            raise ValueError("scan_limit must be non-negative")
        if not 1 <= self.default_port <= 65535:
            raise ValueError("default_port must be a valid TCP port")


@dataclass(frozen=True)
class ImportSummary:
    run_id: str
    sources: int
    candidates: int
    queued: int
    accepted: int
    persisted: int

    @property
    def status(self) -> str:
        return "OK" if self.accepted else "EMPTY"


def collect_candidates(
    texts: Iterable[str],
    ownership: OwnershipFilter,
    default_port: int = 443,
) -> List[Candidate]:
    """Extract, deduplicate across all texts and apply the ownership filter."""
    merged = set()
    for text in texts:
        merged |= extract_candidates(text, default_port=default_port)
    accepted = [c for c in merged if ownership.accepts_candidate(c)]
    LOGGER.info("Candidates after filtering: %d -> %d", len(merged), len(accepted))
    return sorted(accepted, key=lambda c: (c.ip, c.port))


def validate_candidate(
    candidate: Candidate,
    *,
    geo_client: GeoLookupClient,
    run_config: RunConfig,
    source_trust: str,
    policy: ScoringPolicy = DEFAULT_POLICY,
    keywords: IspKeywords = DEFAULT_ISP_KEYWORDS,
    rng: Optional[random.Random] = None,
) -> Optional[EndpointRecord]:
    """Run probe, enrichment and scoring for one candidate.

    Returns None when the candidate is rejected.
    """
    if run_config.probe_strategy == PROBE_MARKER:
        result = probe_relay(
            candidate,
            connect_timeout=run_config.connect_timeout,
            read_timeout=run_config.read_timeout,
            target_host=run_config.target_host,
            marker=run_config.marker,
        )
        if not result.accepted:
            LOGGER.debug("Rejected %s: %s", candidate, result.reason)
            return None
        latency_ms = result.latency_ms
    else:
        latency_ms = (rng or random).randint(*SYNTHETIC_LATENCY_MS)

    geo = geo_client.lookup(candidate.ip)
    if run_config.probe_strategy == PROBE_TRUST and not geo.resolved:
        # Without a probe, a resolved lookup is the only evidence the entry is real.
        LOGGER.debug("Dropped %s: unprobed and lookup failed", candidate)
        return None

    record = build_endpoint(
        candidate,
        latency_ms=latency_ms,
        geo=geo,
        mode=run_config.mode,
        source_trust=source_trust,
        policy=policy,
        keywords=keywords,
    )
    LOGGER.info(
        "Accepted %s (%s - %s) score=%s latency=%sms",
        candidate,
        record.country,
        record.isp,
        record.purity_score,
        record.latency_ms,
    )
    return record


def run_batches(
    candidates: Sequence[Candidate],
    worker: Callable[[Candidate], Optional[EndpointRecord]],
    *,
    batch_size: int,
    delay_seconds: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> List[EndpointRecord]:
    """Validate ``candidates`` batch by batch with a barrier between batches.

    A worker exception only rejects its own candidate.
    """
    records: List[EndpointRecord] = []
    for start in range(0, len(candidates), batch_size):
        batch = candidates[start : start + batch_size]
        with perf_span(
            "jobs.batch",
            tags={"start": start, "size": len(batch)},
            level=logging.DEBUG,
            logger=LOGGER,
        ):
            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                futures = {executor.submit(worker, c): c for c in batch}
                for fut in as_completed(futures):
                    try:
                        record = fut.result()
                    except Exception as exc:  # noqa: BLE001
                        LOGGER.warning("Validation failed for %s: %s", futures[fut], exc)
                        continue
                    if record is not None:
                        records.append(record)

        if delay_seconds > 0 and start + batch_size < len(candidates):
            sleep(delay_seconds)
    return records


def _fetch_sources(
    sources: Sequence[ProxySource],
    run_config: RunConfig,
    session: Optional[requests.Session],
) -> Dict[ProxySource, str]:
    return {
        source: fetch_source_text(source, session=session, timeout=run_config.source_timeout)
        for source in sources
    }


def _trust_by_candidate(
    bodies: Dict[ProxySource, str], default_port: int
) -> Dict[Candidate, str]:
    """Map each candidate to the first source listing it."""
    trust: Dict[Candidate, str] = {}
    for source, text in bodies.items():
        found = extract_candidates(text, default_port=default_port)
        LOGGER.info("[Source] %s: %d candidates", source.name, len(found))
        for candidate in found:
            trust.setdefault(candidate, source.trust)
    return trust


@perf("jobs.run_import", tags={"component": "jobs"})
def run_import(
    store: EndpointStore,
    geo_client: GeoLookupClient,
    run_config: RunConfig,
    *,
    sources: Sequence[ProxySource] = PROXY_SOURCES,
    ownership: Optional[OwnershipFilter] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
    keywords: IspKeywords = DEFAULT_ISP_KEYWORDS,
    session: Optional[requests.Session] = None,
    rng: Optional[random.Random] = None,
) -> ImportSummary:
    """Import, validate and persist candidates from the public lists.

    Source, probe, enrichment and persistence failures are logged and only
    reduce the number of results; the run itself never fails on them.
    """
    run_id = str(uuid.uuid4())
    ownership = ownership or OwnershipFilter()
    rng = rng or random.Random()
    LOGGER.info("Import run %s started (%d sources)", run_id, len(sources))

    bodies = _fetch_sources(sources, run_config, session)
    trust = _trust_by_candidate(bodies, run_config.default_port)
    candidates = collect_candidates(bodies.values(), ownership, run_config.default_port)

    queue = list(candidates)
    rng.shuffle(queue)
    if run_config.scan_limit is not None:
        queue = queue[: run_config.scan_limit]
    LOGGER.info("Queued %d of %d candidates (batch=%d)", len(queue), len(candidates), run_config.batch_size)

    def worker(candidate: Candidate) -> Optional[EndpointRecord]:
        return validate_candidate(
            candidate,
            geo_client=geo_client,
            run_config=run_config,
            source_trust=trust.get(candidate, MODE_IMPORT),
            policy=policy,
            keywords=keywords,
            rng=rng,
        )

    records = run_batches(
        queue,
        worker,
        batch_size=run_config.batch_size,
        delay_seconds=run_config.batch_delay_seconds,
    )

    persisted = 0
    if records:
        try:
            persisted = store.upsert_many(records)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Failed to persist %d endpoints: %s", len(records), exc)

    summary = ImportSummary(
        run_id=run_id,
        sources=len(sources),
        candidates=len(candidates),
        queued=len(queue),
        accepted=len(records),
        persisted=persisted,
    )
    LOGGER.info(
        "Run summary: candidates=%s queued=%s accepted=%s persisted=%s status=%s",
        summary.candidates,
        summary.queued,
        summary.accepted,
        summary.persisted,
        summary.status,
    )
    return summary


@perf("jobs.analyze_manual", tags={"component": "jobs"})
def analyze_manual(
    text: str,
    *,
    geo_client: GeoLookupClient,
    writer: Optional[EndpointWriter] = None,
    run_config: Optional[RunConfig] = None,
    ownership: Optional[OwnershipFilter] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
    keywords: IspKeywords = DEFAULT_ISP_KEYWORDS,
) -> List[EndpointRecord]:
    """Validate a user submission synchronously and return the accepted records.

    Persistence is handed to ``writer`` after the results are ready; its
    failures are logged by the writer and never affect the return value.

    Raises:
        NoValidInputError: If nothing in ``text`` parses as ``ip[:port]``.
    """
    run_config = run_config or RunConfig(mode=MODE_MANUAL, scan_limit=None, batch_delay_seconds=0.0)
    ownership = ownership or OwnershipFilter()

    parsed = parse_manual_input(text, default_port=run_config.default_port)
    candidates = sorted(
        (c for c in parsed if ownership.accepts_candidate(c)),
        key=lambda c: (c.ip, c.port),
    )
    LOGGER.info("Manual submission: %d parsed, %d after filtering", len(parsed), len(candidates))

    worker = partial(
        validate_candidate,
        geo_client=geo_client,
        run_config=run_config,
        source_trust=MANUAL_SOURCE_TRUST,
        policy=policy,
        keywords=keywords,
    )
    records = run_batches(
        candidates,
        worker,
        batch_size=run_config.batch_size,
        delay_seconds=run_config.batch_delay_seconds,
    )
    records.sort(key=lambda r: (-(r.purity_score or 0), r.ip, r.port))

    if writer is not None and records:
        try:
            writer.submit(records)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Could not schedule persistence for %d endpoints: %s", len(records), exc)
    return records


__all__ = [
    "ImportSummary",
    "PROBE_MARKER",
    "PROBE_TRUST",
    "RunConfig",
    "analyze_manual",
    "collect_candidates",
    "run_batches",
    "run_import",
    "validate_candidate",
]
