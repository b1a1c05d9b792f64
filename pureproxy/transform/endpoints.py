"""Validated endpoint records and their persistence/read-side shapes."""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Mapping, Optional

from pureproxy.api.geo import (
    GeoInfo,
    UNKNOWN_COUNTRY,
    UNKNOWN_COUNTRY_CODE,
    UNKNOWN_ISP,
)
from pureproxy.network.candidates import Candidate
from pureproxy.scoring.isp import DEFAULT_ISP_KEYWORDS, IspKeywords, classify_isp
from pureproxy.scoring.purity import (
    DEFAULT_POLICY,
    RiskTier,
    ScoringPolicy,
    risk_tier,
    score_endpoint,
)

TLS_PORTS: FrozenSet[int] = frozenset({443, 2053, 2083, 2087, 2096, 8443})

# Columns only an enrichment lookup can determine.
GEO_FIELDS = ("country", "country_code", "region", "city", "isp", "is_residential")

DB_COLUMNS = (
    "ip",
    "port",
    "protocol",
    "country",
    "country_code",
    "region",
    "city",
    "isp",
    "is_residential",
    "latency_ms",
    "purity_score",
    "source_trust",
    "last_checked_at",
    "first_seen_at",
)


def infer_protocol(port: int) -> str:
    return "HTTPS" if port in TLS_PORTS else "HTTP"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class EndpointRecord:
    """A validated relay endpoint, unique by ``(ip, port)``.

    ``enriched`` is False when the location lookup failed; the geo fields
    then hold placeholder values that must never overwrite stored data.
    """

    ip: str
    port: int
    protocol: Optional[str] = None
    country: Optional[str] = UNKNOWN_COUNTRY
    country_code: Optional[str] = UNKNOWN_COUNTRY_CODE
    region: Optional[str] = None
    city: Optional[str] = None
    isp: Optional[str] = UNKNOWN_ISP
    is_residential: Optional[bool] = False
    latency_ms: Optional[int] = None
    purity_score: Optional[int] = None
    source_trust: Optional[str] = None
    last_checked_at: Optional[datetime] = None
    first_seen_at: Optional[datetime] = None
    enriched: bool = True

    @property
    def key(self) -> tuple:
        return (self.ip, self.port)

    @property
    def risk_tier(self) -> Optional[RiskTier]:
        if self.purity_score is None:
            return None
        return risk_tier(self.purity_score)

    def observed_fields(self) -> Dict[str, Any]:
        """Return the columns this observation actually determined."""
        observed: Dict[str, Any] = {}
        for name in DB_COLUMNS:
            if not self.enriched and name in GEO_FIELDS:
                continue
            value = getattr(self, name)
            if value is not None:
                observed[name] = value
        return observed

    def merged_with(self, newer: "EndpointRecord") -> "EndpointRecord":
        """Apply ``newer`` on top of this record, field by field.

        ``first_seen_at`` is kept from the existing record. An un-enriched
        observation cannot overwrite the score of an enriched record, since
        its score lacks the owner and location adjustments.
        """
        if newer.key != self.key:
            raise ValueError(f"Cannot merge {newer.key} into {self.key}")
        updates = newer.observed_fields()
        updates.pop("first_seen_at", None)
        if self.enriched and not newer.enriched:
            updates.pop("purity_score", None)
        if self.first_seen_at is None and newer.first_seen_at is not None:
            updates["first_seen_at"] = newer.first_seen_at
        return replace(self, enriched=self.enriched or newer.enriched, **updates)

    def to_db_params(self) -> Dict[str, Any]:
        observed = self.observed_fields()
        return {name: observed.get(name) for name in DB_COLUMNS}

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "EndpointRecord":
        """Build a record from a database row, filling unknown geo defaults."""
        enriched = row.get("country") is not None
        is_residential = row.get("is_residential")
        return cls(
            ip=row["ip"],
            port=int(row["port"]),
            protocol=row.get("protocol"),
            country=row.get("country") or UNKNOWN_COUNTRY,
            country_code=row.get("country_code") or UNKNOWN_COUNTRY_CODE,
            region=row.get("region"),
            city=row.get("city"),
            isp=row.get("isp") or UNKNOWN_ISP,
            is_residential=bool(is_residential) if is_residential is not None else False,
            latency_ms=row.get("latency_ms"),
            purity_score=row.get("purity_score"),
            source_trust=row.get("source_trust"),
            last_checked_at=row.get("last_checked_at"),
            first_seen_at=row.get("first_seen_at"),
            enriched=enriched,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return the read-API shape consumed by the dashboard."""
        tier = self.risk_tier
        return {
            "ip": self.ip,
            "port": self.port,
            "protocol": self.protocol,
            "country": self.country or UNKNOWN_COUNTRY,
            "countryCode": self.country_code or UNKNOWN_COUNTRY_CODE,
            "region": self.region or "",
            "city": self.city or "",
            "isp": self.isp or UNKNOWN_ISP,
            "isResidential": bool(self.is_residential),
            "latency": self.latency_ms,
            "purityScore": self.purity_score,
            "riskLevel": tier.value if tier is not None else None,
            "sourceTrust": self.source_trust,
            "lastChecked": _isoformat(self.last_checked_at),
            "firstSeen": _isoformat(self.first_seen_at),
        }


def build_endpoint(
    candidate: Candidate,
    *,
    latency_ms: int,
    geo: GeoInfo,
    mode: str,
    source_trust: str,
    policy: ScoringPolicy = DEFAULT_POLICY,
    keywords: IspKeywords = DEFAULT_ISP_KEYWORDS,
    now: Optional[datetime] = None,
) -> EndpointRecord:
    """Combine probe and enrichment results into a scored record."""
    checked_at = now or _utcnow()
    is_residential = classify_isp(geo.isp, keywords) if geo.resolved else False
    score = score_endpoint(
        latency_ms=latency_ms,
        isp=geo.isp if geo.resolved else None,
        country_code=geo.country_code if geo.resolved else None,
        is_residential=is_residential,
        mode=mode,
        policy=policy,
    )
    return EndpointRecord(
        ip=candidate.ip,
        port=candidate.port,
        protocol=infer_protocol(candidate.port),
        country=geo.country,
        country_code=geo.country_code,
        region=geo.region or None,
        city=geo.city or None,
        isp=geo.isp,
        is_residential=is_residential,
        latency_ms=int(latency_ms),
        purity_score=score,
        source_trust=source_trust,
        last_checked_at=checked_at,
        first_seen_at=checked_at,
        enriched=geo.resolved,
    )


__all__ = [
    "DB_COLUMNS",
    "EndpointRecord",
    "GEO_FIELDS",
    "TLS_PORTS",
    "build_endpoint",
    "infer_protocol",
]
