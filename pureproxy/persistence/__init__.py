"""Endpoint persistence: stores, read-side queries and background writes."""

from pureproxy.persistence.endpoints import (
    EndpointStore,
    MemoryEndpointStore,
    PostgresEndpointStore,
)
from pureproxy.persistence.query import EndpointQuery, filter_and_sort
from pureproxy.persistence.writer import EndpointWriter

__all__ = [
    "EndpointQuery",
    "EndpointStore",
    "EndpointWriter",
    "MemoryEndpointStore",
    "PostgresEndpointStore",
    "filter_and_sort",
]
