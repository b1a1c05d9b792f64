"""Clients for external lookup services."""

from pureproxy.api.geo import GeoInfo, GeoLookupClient, UNKNOWN_GEO

__all__ = ["GeoInfo", "GeoLookupClient", "UNKNOWN_GEO"]
