import random
from unittest.mock import MagicMock

import pytest
import requests

from pureproxy.api.geo import (
    GEO_FIELDS,
    GeoLookupClient,
    UNKNOWN_GEO,
    geo_from_payload,
)


class DummyResponse:
    def __init__(self, status_code=200, payload=None, raise_json=False):
        self.status_code = status_code
        self._payload = payload
        self._raise_json = raise_json

    def json(self):
        if self._raise_json:
            raise ValueError("bad json")
        return self._payload


SUCCESS_PAYLOAD = {
    "status": "success",
    "country": "Japan",
    "countryCode": "jp",
    "regionName": "Tokyo",
    "city": "Chiyoda",
    "isp": "NTT Communications",
}


def _client(session, sleeps=None, **kwargs):
    return GeoLookupClient(
        session=session,
        sleep=(sleeps.append if sleeps is not None else lambda _s: None),
        rng=random.Random(7),
        **kwargs,
    )


def test_geo_from_payload_success():
    geo = geo_from_payload(SUCCESS_PAYLOAD)

    assert geo.resolved
    assert geo.country == "Japan"
    assert geo.country_code == "JP"
    assert geo.region == "Tokyo"
    assert geo.isp == "NTT Communications"


@pytest.mark.parametrize("payload", [None, [], {"status": "fail", "message": "private range"}])
def test_geo_from_payload_unusable(payload):
    assert geo_from_payload(payload) is None


def test_lookup_builds_request_and_throttles():
    session = MagicMock()
    session.get.return_value = DummyResponse(payload=SUCCESS_PAYLOAD)
    sleeps = []
    client = _client(session, sleeps, lang="ja", timeout=3.0)

    geo = client.lookup("8.8.8.8")

    assert geo.country == "Japan"
    args, kwargs = session.get.call_args
    assert args[0] == "http://ip-api.com/json/8.8.8.8"
    assert kwargs["params"] == {"fields": GEO_FIELDS, "lang": "ja"}
    assert kwargs["timeout"] == 3.0
    assert len(sleeps) == 1
    assert 0.2 <= sleeps[0] <= 1.0


def test_lookup_uses_custom_base_url():
    session = MagicMock()
    session.get.return_value = DummyResponse(payload=SUCCESS_PAYLOAD)
    client = _client(session, base_url="https://geo.internal/{ip}/json")

    client.lookup("1.2.3.4")

    assert session.get.call_args[0][0] == "https://geo.internal/1.2.3.4/json"


@pytest.mark.parametrize(
    "response",
    [
        DummyResponse(status_code=429),
        DummyResponse(raise_json=True),
        DummyResponse(payload={"status": "fail"}),
    ],
)
def test_lookup_failures_return_unknown(response):
    session = MagicMock()
    session.get.return_value = response

    assert _client(session).lookup("8.8.8.8") is UNKNOWN_GEO


def test_lookup_network_error_returns_unknown():
    session = MagicMock()
    session.get.side_effect = requests.Timeout("slow")

    geo = _client(session).lookup("8.8.8.8")

    assert geo is UNKNOWN_GEO
    assert not geo.resolved
    assert geo.isp == "Unknown ISP"
    assert geo.country == "Unknown"


def test_invalid_delay_window():
    with pytest.raises(ValueError):
        GeoLookupClient(session=MagicMock(), min_delay=1.0, max_delay=0.5)


def test_close_closes_session():
    session = MagicMock()

    with _client(session):
        pass

    session.close.assert_called_once()
