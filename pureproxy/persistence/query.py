"""Read-side filtering and ordering of endpoint records.

The same contract is implemented twice: ``filter_and_sort`` for in-memory
records and ``build_select`` for PostgreSQL. Records without a value for the
sort column always come last, whichever the direction.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pureproxy.api.geo import UNKNOWN_COUNTRY, UNKNOWN_ISP
from pureproxy.transform.endpoints import DB_COLUMNS, EndpointRecord

SORT_COUNTRY = "country"
SORT_LATENCY = "latency"
SORT_PURITY = "purity"

SORT_COLUMNS: Dict[str, str] = {
    SORT_COUNTRY: "country",
    SORT_LATENCY: "latency_ms",
    SORT_PURITY: "purity_score",
}


@dataclass(frozen=True)
class EndpointQuery:
    """Filters and ordering for a snapshot of stored endpoints.

    Attributes:
        search: Case-insensitive substring matched against ip, country and isp.
        min_purity: Minimum purity score, inclusive.
        is_residential: Exact residential flag when set.
        country_code: Exact (case-insensitive) country code when set.
        sort_key: One of ``country``, ``latency`` or ``purity``.
        descending: Sort direction.
        limit: Maximum rows returned; None for no limit.
    """

    search: Optional[str] = None
    min_purity: Optional[int] = None
    is_residential: Optional[bool] = None
    country_code: Optional[str] = None
    sort_key: str = SORT_PURITY
    descending: bool = True
    limit: Optional[int] = 100

    def __post_init__(self) -> None:
        if self.sort_key not in SORT_COLUMNS:
            raise ValueError(f"Unsupported sort key: {self.sort_key!r}")
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be non-negative")


_SORT_VALUES: Dict[str, Callable[[EndpointRecord], Any]] = {
    SORT_COUNTRY: lambda r: r.country if r.enriched else None,
    SORT_LATENCY: lambda r: r.latency_ms,
    SORT_PURITY: lambda r: r.purity_score,
}


def _matches(record: EndpointRecord, query: EndpointQuery) -> bool:
    if query.search:
        needle = query.search.lower()
        haystack = (
            record.ip,
            (record.country or UNKNOWN_COUNTRY).lower(),
            (record.isp or UNKNOWN_ISP).lower(),
        )
        if not any(needle in value for value in haystack):
            return False
    # Unscored records never satisfy a minimum, matching SQL NULL comparison.
    if query.min_purity is not None and (
        record.purity_score is None or record.purity_score < query.min_purity
    ):
        return False
    if query.is_residential is not None and bool(record.is_residential) != query.is_residential:
        return False
    if query.country_code and (record.country_code or "").upper() != query.country_code.upper():
        return False
    return True


def filter_and_sort(records: Iterable[EndpointRecord], query: EndpointQuery) -> List[EndpointRecord]:
    """Apply ``query`` to in-memory records."""
    value_of = _SORT_VALUES[query.sort_key]
    matched = sorted((r for r in records if _matches(r, query)), key=lambda r: r.key)

    present = [r for r in matched if value_of(r) is not None]
    missing = [r for r in matched if value_of(r) is None]
    present.sort(key=value_of, reverse=query.descending)

    result = present + missing
    if query.limit is not None:
        result = result[: query.limit]
    return result


_LIKE_ESCAPE = "ESCAPE '\\'"


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so ``term`` matches as a literal substring."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_select(query: EndpointQuery, table: str = "endpoints") -> Tuple[str, Dict[str, Any]]:
    """Return SQL and parameters implementing ``query`` in PostgreSQL."""
    clauses: List[str] = []
    params: Dict[str, Any] = {}

    if query.search:
        clauses.append(
            f"(ip ILIKE %(search)s {_LIKE_ESCAPE}"
            f" OR COALESCE(country, '{UNKNOWN_COUNTRY}') ILIKE %(search)s {_LIKE_ESCAPE}"
            f" OR COALESCE(isp, '{UNKNOWN_ISP}') ILIKE %(search)s {_LIKE_ESCAPE})"
        )
        params["search"] = f"%{escape_like(query.search)}%"
    if query.min_purity is not None:
        clauses.append("purity_score >= %(min_purity)s")
        params["min_purity"] = query.min_purity
    if query.is_residential is not None:
        clauses.append("COALESCE(is_residential, FALSE) = %(is_residential)s")
        params["is_residential"] = query.is_residential
    if query.country_code:
        clauses.append("UPPER(country_code) = %(country_code)s")
        params["country_code"] = query.country_code.upper()

    direction = "DESC" if query.descending else "ASC"
    sql = f"SELECT {', '.join(DB_COLUMNS)} FROM {table}"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += f" ORDER BY {SORT_COLUMNS[query.sort_key]} {direction} NULLS LAST, ip, port"
    if query.limit is not None:
        sql += " LIMIT %(limit)s"
        params["limit"] = query.limit
    return sql, params


__all__ = [
    "EndpointQuery",
    "SORT_COUNTRY",
    "SORT_LATENCY",
    "SORT_PURITY",
    "build_select",
    "escape_like",
    "filter_and_sort",
]
