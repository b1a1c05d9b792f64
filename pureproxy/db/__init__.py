"""Database access."""

from pureproxy.db.client import DatabaseClient

__all__ = ["DatabaseClient"]
