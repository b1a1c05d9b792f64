"""
PostgreSQL client utilities backed by a connection pool.

The DatabaseClient is the only place that talks to psycopg; the endpoint
store builds SQL and hands it here.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterable, List, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from pureproxy.logging_utils import perf

LOGGER = logging.getLogger(__name__)

Params = Optional[Dict[str, Any]]


class DatabaseClient:
    """Thin wrapper around a psycopg connection pool."""

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 1,
        max_size: int = 4,
        connection_config: Optional[Dict[str, Any]] = None,
    ) -> None:
        if min_size < 1 or max_size < 1 or min_size > max_size:
            raise ValueError("Pool size must be positive and min_size <= max_size.")

        self._pool = ConnectionPool(
            conninfo=dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs=connection_config or {},
        )
        LOGGER.debug("Database pool ready (min=%s max=%s)", min_size, max_size)

    @contextmanager
    def connection(self) -> Generator[psycopg.Connection, None, None]:
        """Yield a pooled PostgreSQL connection."""
        with self._pool.connection() as conn:
            yield conn

    @contextmanager
    def transaction(self) -> Generator[psycopg.Connection, None, None]:
        """Yield a connection wrapped in a transaction block."""
        with self.connection() as conn:
            with conn.transaction():
                yield conn

    @perf("db.execute", tags={"component": "db"}, level=logging.DEBUG)
    def execute(self, query: str, params: Params = None) -> None:
        """Execute a write or DDL statement in its own transaction."""
        with self.transaction() as conn:
            with conn.cursor() as cur:
                LOGGER.debug("Executing query: %s params=%s", query, params)
                cur.execute(query, params or {})

    @perf("db.executemany", tags={"component": "db"})
    def executemany(self, query: str, param_list: Iterable[Dict[str, Any]]) -> int:
        """Run one statement per parameter set inside a single transaction.

        Returns the number of parameter sets executed.
        """
        params = list(param_list)
        if not params:
            LOGGER.debug("No parameters supplied for batch statement: %s", query)
            return 0

        with self.transaction() as conn:
            with conn.cursor() as cur:
                LOGGER.debug("Executing batch statement (%s rows)", len(params))
                cur.executemany(query, params)
        return len(params)

    @perf("db.fetch_all", tags={"component": "db"}, level=logging.DEBUG)
    def fetch_all(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """Run a SELECT statement and return all rows as dictionaries."""
        with self.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                LOGGER.debug("Fetching rows with query: %s params=%s", query, params)
                cur.execute(query, params or {})
                return cur.fetchall()

    def close(self) -> None:
        """Close the underlying connection pool."""
        LOGGER.debug("Closing database pool")
        self._pool.close()

    def __enter__(self) -> "DatabaseClient":
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()
