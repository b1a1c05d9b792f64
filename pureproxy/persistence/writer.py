"""Background persistence for results already returned to a caller.

The manual analysis path answers its caller first and writes afterwards.
``EndpointWriter`` runs those writes on its own executor and reports failures
through logging, so a store outage never reaches the request path.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Iterable, List, Optional

from pureproxy.persistence.endpoints import EndpointStore
from pureproxy.transform.endpoints import EndpointRecord

LOGGER = logging.getLogger(__name__)


class EndpointWriter:
    """Fire-and-forget wrapper around ``EndpointStore.upsert_many``."""

    def __init__(self, store: EndpointStore, *, max_workers: int = 1) -> None:
        self._store = store
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="endpoint-writer"
        )

    def _write(self, records: List[EndpointRecord]) -> int:
        count = self._store.upsert_many(records)
        LOGGER.info("Persisted %d endpoints", count)
        return count

    @staticmethod
    def _report(future: "Future[int]") -> None:
        exc = future.exception()
        if exc is not None:
            LOGGER.error("Endpoint persistence failed: %s", exc, exc_info=exc)

    def submit(self, records: Iterable[EndpointRecord]) -> Optional["Future[int]"]:
        """Schedule ``records`` for persistence and return immediately.

        Returns None when there is nothing to write.
        """
        batch = list(records)
        if not batch:
            return None
        future = self._executor.submit(self._write, batch)
        future.add_done_callback(self._report)
        return future

    def close(self, wait: bool = True) -> None:
        """Stop accepting work; by default wait for queued writes."""
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "EndpointWriter":
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()


__all__ = ["EndpointWriter"]
