"""Endpoint stores: keyed upsert with per-field merge, plus the read side."""

import logging
import threading
from typing import Dict, Iterable, List, Tuple

from pureproxy.db import DatabaseClient
from pureproxy.logging_utils import perf
from pureproxy.persistence.query import EndpointQuery, build_select, filter_and_sort
from pureproxy.transform.endpoints import DB_COLUMNS, EndpointRecord

LOGGER = logging.getLogger(__name__)

CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS endpoints (
        ip TEXT NOT NULL,
        port INTEGER NOT NULL CHECK (port BETWEEN 1 AND 65535),
        protocol TEXT,
        country TEXT,
        country_code TEXT,
        region TEXT,
        city TEXT,
        isp TEXT,
        is_residential BOOLEAN,
        latency_ms INTEGER,
        purity_score SMALLINT CHECK (purity_score BETWEEN 0 AND 100),
        source_trust TEXT,
        last_checked_at TIMESTAMPTZ,
        first_seen_at TIMESTAMPTZ,
        PRIMARY KEY (ip, port)
    )
"""

_KEY_COLUMNS = ("ip", "port")

# An un-enriched row (NULL country) keeps the score of an enriched one.
_SCORE_UPDATE = (
    "purity_score = CASE"
    " WHEN EXCLUDED.country IS NULL AND endpoints.country IS NOT NULL"
    " THEN endpoints.purity_score"
    " ELSE COALESCE(EXCLUDED.purity_score, endpoints.purity_score) END"
)


def _column_update(name: str) -> str:
    if name == "purity_score":
        return _SCORE_UPDATE
    return f"{name} = COALESCE(EXCLUDED.{name}, endpoints.{name})"


def _build_upsert_sql() -> str:
    columns = ",\n        ".join(DB_COLUMNS)
    values = ",\n        ".join(f"%({name})s" for name in DB_COLUMNS)
    # Undetermined fields arrive as NULL and keep the stored value.
    updates = ",\n        ".join(
        _column_update(name)
        for name in DB_COLUMNS
        if name not in _KEY_COLUMNS and name != "first_seen_at"
    )
    return (
        f"INSERT INTO endpoints (\n        {columns}\n    )\n"
        f"    VALUES (\n        {values}\n    )\n"
        "    ON CONFLICT (ip, port)\n"
        f"    DO UPDATE SET\n        {updates}\n"
    )


UPSERT_SQL = _build_upsert_sql()


class EndpointStore:
    """Keyed persistence for endpoint records.

    ``upsert`` must be safe to repeat for the same ``(ip, port)``: fields the
    new record determined overwrite, the rest are kept.
    """

    def upsert(self, record: EndpointRecord) -> None:
        self.upsert_many([record])

    def upsert_many(self, records: Iterable[EndpointRecord]) -> int:  # pragma: no cover - interface only
        raise NotImplementedError

    def query(self, query: EndpointQuery) -> List[EndpointRecord]:  # pragma: no cover - interface only
        raise NotImplementedError


class PostgresEndpointStore(EndpointStore):
    """Endpoint store backed by the ``endpoints`` table."""

    def __init__(self, db_client: DatabaseClient) -> None:
        self._db = db_client

    def ensure_schema(self) -> None:
        self._db.execute(CREATE_TABLE_SQL)

    @perf("db.upsert_endpoints", tags={"component": "db"})
    def upsert_many(self, records: Iterable[EndpointRecord]) -> int:
        # Collapse duplicate keys so one statement batch never conflicts with itself.
        latest: Dict[Tuple[str, int], EndpointRecord] = {}
        for record in records:
            previous = latest.get(record.key)
            latest[record.key] = previous.merged_with(record) if previous else record
        if not latest:
            return 0
        return self._db.executemany(
            UPSERT_SQL, [record.to_db_params() for record in latest.values()]
        )

    def query(self, query: EndpointQuery) -> List[EndpointRecord]:
        sql, params = build_select(query)
        return [EndpointRecord.from_row(row) for row in self._db.fetch_all(sql, params)]


class MemoryEndpointStore(EndpointStore):
    """Process-local store with the same merge semantics; used for dry runs."""

    def __init__(self) -> None:
        self._records: Dict[Tuple[str, int], EndpointRecord] = {}
        self._lock = threading.Lock()

    def upsert_many(self, records: Iterable[EndpointRecord]) -> int:
        count = 0
        with self._lock:
            for record in records:
                existing = self._records.get(record.key)
                self._records[record.key] = existing.merged_with(record) if existing else record
                count += 1
        return count

    def get(self, ip: str, port: int) -> EndpointRecord:
        with self._lock:
            return self._records[(ip, port)]

    def query(self, query: EndpointQuery) -> List[EndpointRecord]:
        with self._lock:
            snapshot = list(self._records.values())
        return filter_and_sort(snapshot, query)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = [
    "CREATE_TABLE_SQL",
    "EndpointStore",
    "MemoryEndpointStore",
    "PostgresEndpointStore",
    "UPSERT_SQL",
]
