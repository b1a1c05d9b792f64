"""Client for the ip-api.com location/owner lookup.

Lookups are best-effort: any failure yields ``UNKNOWN_GEO`` instead of an
exception. The free tier allows 45 requests per minute, so every lookup is
preceded by a randomized delay.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from pureproxy.config import DEFAULT_GEO_API_URL
from pureproxy.logging_utils import perf

LOGGER = logging.getLogger(__name__)

GEO_FIELDS = "status,country,countryCode,regionName,city,isp"
HEADERS = {"User-Agent": "Mozilla/5.0"}

UNKNOWN_COUNTRY = "Unknown"
UNKNOWN_COUNTRY_CODE = "UN"
UNKNOWN_ISP = "Unknown ISP"


@dataclass(frozen=True)
class GeoInfo:
    """Location and network owner of an address.

    ``resolved`` is False for the placeholder returned on lookup failure, so
    persistence can tell real values from defaults.
    """

    country: str = UNKNOWN_COUNTRY
    country_code: str = UNKNOWN_COUNTRY_CODE
    region: str = ""
    city: str = ""
    isp: str = UNKNOWN_ISP
    resolved: bool = False


UNKNOWN_GEO = GeoInfo()


def geo_from_payload(data: Any) -> Optional[GeoInfo]:
    """Build a ``GeoInfo`` from an ip-api payload, or None if it is unusable."""
    if not isinstance(data, dict) or data.get("status") != "success":
        return None
    return GeoInfo(
        country=data.get("country") or UNKNOWN_COUNTRY,
        country_code=(data.get("countryCode") or UNKNOWN_COUNTRY_CODE).upper(),
        region=data.get("regionName") or "",
        city=data.get("city") or "",
        isp=data.get("isp") or UNKNOWN_ISP,
        resolved=True,
    )


class GeoLookupClient:
    """Wrapper around the ip-api JSON endpoint."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 5.0,
        *,
        base_url: str = DEFAULT_GEO_API_URL,
        lang: str = "en",
        min_delay: float = 0.2,
        max_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        """Initialize the lookup client.

        Args:
            session: Optional pre-configured Requests session.
            timeout: Per-request timeout in seconds.
            base_url: URL template containing ``{ip}``.
            lang: Language for location names.
            min_delay: Lower bound of the pre-request delay in seconds.
            max_delay: Upper bound of the pre-request delay in seconds.
            sleep: Sleep function; injectable for tests.
            rng: Random source for the delay.
        """
        if min_delay < 0 or max_delay < min_delay:
            raise ValueError("Delay window must satisfy 0 <= min_delay <= max_delay.")
        self._session = session or requests.Session()
        self._timeout = timeout
        self._base_url = base_url
        self._lang = lang
        self._min_delay = min_delay
        self._max_delay = max_delay
        self._sleep = sleep
        self._rng = rng or random.Random()

    def _params(self) -> Dict[str, str]:
        return {"fields": GEO_FIELDS, "lang": self._lang}

    def _throttle(self) -> None:
        self._sleep(self._rng.uniform(self._min_delay, self._max_delay))

    @perf("api.geo_lookup", tags={"component": "api"}, level=logging.DEBUG)
    def lookup(self, ip: str) -> GeoInfo:
        """Resolve ``ip``; returns ``UNKNOWN_GEO`` on any failure."""
        self._throttle()
        try:
            response = self._session.get(
                self._base_url.format(ip=ip),
                params=self._params(),
                headers=HEADERS,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            LOGGER.warning("Geo lookup failed for %s: %s", ip, exc)
            return UNKNOWN_GEO

        if response.status_code != 200:
            LOGGER.warning("Geo lookup for %s returned HTTP %s", ip, response.status_code)
            return UNKNOWN_GEO

        try:
            payload = response.json()
        except ValueError as exc:
            LOGGER.warning("Geo lookup for %s returned malformed JSON: %s", ip, exc)
            return UNKNOWN_GEO

        geo = geo_from_payload(payload)
        if geo is None:
            LOGGER.warning("Geo lookup for %s unsuccessful: %s", ip, payload)
            return UNKNOWN_GEO
        return geo

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "GeoLookupClient":
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()


__all__ = [
    "GeoInfo",
    "GeoLookupClient",
    "UNKNOWN_COUNTRY",
    "UNKNOWN_COUNTRY_CODE",
    "UNKNOWN_GEO",
    "UNKNOWN_ISP",
    "geo_from_payload",
]
