import random
import threading
import time
from unittest.mock import MagicMock

import pytest

from pureproxy.api.geo import GeoInfo
from pureproxy.exceptions import NoValidInputError
from pureproxy.jobs import RunConfig, analyze_manual, collect_candidates, run_batches, run_import, validate_candidate
from pureproxy.jobs.runner import PROBE_TRUST
from pureproxy.network.candidates import Candidate, ProxySource
from pureproxy.network.ownership import OwnershipFilter
from pureproxy.network.probe import ProbeResult
from pureproxy.persistence import MemoryEndpointStore
from pureproxy.scoring import MODE_MANUAL

US_RESIDENTIAL = GeoInfo(
    country="United States",
    country_code="US",
    region="Virginia",
    city="Ashburn",
    isp="Verizon Fios",
    resolved=True,
)


def _probe_accepting(*accepted_ips, latency_ms=100):
    calls = []

    def fake_probe(candidate, **kwargs):
        calls.append((candidate, kwargs))
        if candidate.ip in accepted_ips:
            return ProbeResult.accept(candidate, latency_ms)
        return ProbeResult.reject(candidate, "marker_missing")

    fake_probe.calls = calls
    return fake_probe


def test_run_config_validation():
    with pytest.raises(ValueError):
        RunConfig(batch_size=0)
    with pytest.raises(ValueError):
        RunConfig(batch_size=51)
    with pytest.raises(ValueError):
        RunConfig(mode="bulk")
    with pytest.raises(ValueError):
        RunConfig(probe_strategy="guess")
    assert RunConfig().batch_size == 5
    assert RunConfig().scan_limit == 35


def test_collect_candidates_merges_sources_and_filters():
    ownership = OwnershipFilter(("1.1.1.0/24",))
    texts = ["8.8.8.8:443\n10.0.0.5\n1.1.1.1:80", "8.8.8.8:443\n9.9.9.9:8443"]

    result = collect_candidates(texts, ownership)

    assert result == [Candidate("8.8.8.8", 443), Candidate("9.9.9.9", 8443)]


def test_validate_candidate_rejected_probe_skips_lookup(monkeypatch, fake_geo):
    monkeypatch.setattr("pureproxy.jobs.runner.probe_relay", _probe_accepting())

    record = validate_candidate(
        Candidate("8.8.8.8", 443), geo_client=fake_geo, run_config=RunConfig(), source_trust="x"
    )

    assert record is None
    assert fake_geo.calls == []


def test_validate_candidate_passes_probe_settings(monkeypatch, fake_geo):
    probe = _probe_accepting("8.8.8.8", latency_ms=150)
    monkeypatch.setattr("pureproxy.jobs.runner.probe_relay", probe)
    fake_geo.answers["8.8.8.8"] = US_RESIDENTIAL
    run_config = RunConfig(connect_timeout=1.5, read_timeout=2.5, target_host="example.test", marker="x-relay")

    record = validate_candidate(
        Candidate("8.8.8.8", 443), geo_client=fake_geo, run_config=run_config, source_trust="ipdb-bestproxy"
    )

    _, kwargs = probe.calls[0]
    assert kwargs == {
        "connect_timeout": 1.5,
        "read_timeout": 2.5,
        "target_host": "example.test",
        "marker": "x-relay",
    }
    assert record.latency_ms == 150
    assert record.is_residential
    assert record.purity_score == 100
    assert record.source_trust == "ipdb-bestproxy"


def test_validate_candidate_trust_strategy(monkeypatch, fake_geo):
    probe = MagicMock()
    monkeypatch.setattr("pureproxy.jobs.runner.probe_relay", probe)
    fake_geo.answers["8.8.8.8"] = US_RESIDENTIAL
    run_config = RunConfig(probe_strategy=PROBE_TRUST)

    kept = validate_candidate(
        Candidate("8.8.8.8", 443), geo_client=fake_geo, run_config=run_config, source_trust="x", rng=random.Random(1)
    )
    dropped = validate_candidate(
        Candidate("9.9.9.9", 443), geo_client=fake_geo, run_config=run_config, source_trust="x"
    )

    probe.assert_not_called()
    assert 50 <= kept.latency_ms <= 250
    assert dropped is None


def test_run_batches_waits_for_each_batch():
    spans = {}
    lock = threading.Lock()

    def worker(candidate):
        start = time.monotonic()
        time.sleep(0.05)
        with lock:
            spans[candidate.port] = (start, time.monotonic())
        return candidate if candidate.port % 2 else None

    sleeps = []
    candidates = [Candidate("8.8.8.8", port) for port in range(1, 6)]

    results = run_batches(candidates, worker, batch_size=2, delay_seconds=0.1, sleep=sleeps.append)

    assert sorted(c.port for c in results) == [1, 3, 5]
    assert sleeps == [0.1, 0.1]
    assert min(spans[3][0], spans[4][0]) >= max(spans[1][1], spans[2][1])
    assert spans[5][0] >= max(spans[3][1], spans[4][1])


def test_run_batches_worker_error_rejects_only_that_candidate():
    def worker(candidate):
        if candidate.port == 2:
            raise RuntimeError("boom")
        return candidate

    candidates = [Candidate("8.8.8.8", port) for port in (1, 2, 3)]

    results = run_batches(candidates, worker, batch_size=3)

    assert sorted(c.port for c in results) == [1, 3]


SOURCES = (
    ProxySource(name="a", url="https://example.test/a", trust="list-a"),
    ProxySource(name="b", url="https://example.test/b", trust="list-b"),
)


def test_run_import_end_to_end(monkeypatch, fake_geo):
    bodies = {
        "https://example.test/a": "8.8.8.8:443\n192.168.0.1:443\n104.16.0.1:443",
        "https://example.test/b": "8.8.8.8:443\n9.9.9.9:8443\n4.4.4.4:80",
    }
    monkeypatch.setattr(
        "pureproxy.jobs.runner.fetch_source_text",
        lambda source, session=None, timeout=10.0: bodies[source.url],
    )
    monkeypatch.setattr("pureproxy.jobs.runner.probe_relay", _probe_accepting("8.8.8.8", "9.9.9.9"))
    fake_geo.answers["8.8.8.8"] = US_RESIDENTIAL
    store = MemoryEndpointStore()

    summary = run_import(
        store,
        fake_geo,
        RunConfig(batch_delay_seconds=0.0),
        sources=SOURCES,
        rng=random.Random(3),
    )

    assert summary.candidates == 3
    assert summary.queued == 3
    assert summary.accepted == 2
    assert summary.persisted == 2
    assert summary.status == "OK"
    assert store.get("8.8.8.8", 443).source_trust == "list-a"
    assert store.get("9.9.9.9", 8443).source_trust == "list-b"
    assert store.get("9.9.9.9", 8443).isp == "Unknown ISP"


def test_run_import_respects_scan_limit(monkeypatch, fake_geo):
    monkeypatch.setattr(
        "pureproxy.jobs.runner.fetch_source_text",
        lambda source, session=None, timeout=10.0: "\n".join(f"8.8.8.{i}:443" for i in range(1, 21)),
    )
    probe = _probe_accepting()
    monkeypatch.setattr("pureproxy.jobs.runner.probe_relay", probe)

    summary = run_import(
        MemoryEndpointStore(),
        fake_geo,
        RunConfig(scan_limit=7, batch_delay_seconds=0.0),
        sources=SOURCES[:1],
    )

    assert summary.candidates == 20
    assert summary.queued == 7
    assert len(probe.calls) == 7
    assert summary.status == "EMPTY"


def test_run_import_survives_store_failure(monkeypatch, fake_geo):
    monkeypatch.setattr(
        "pureproxy.jobs.runner.fetch_source_text",
        lambda source, session=None, timeout=10.0: "8.8.8.8:443",
    )
    monkeypatch.setattr("pureproxy.jobs.runner.probe_relay", _probe_accepting("8.8.8.8"))
    store = MagicMock()
    store.upsert_many.side_effect = RuntimeError("db down")

    summary = run_import(store, fake_geo, RunConfig(batch_delay_seconds=0.0), sources=SOURCES[:1])

    assert summary.accepted == 1
    assert summary.persisted == 0


def test_run_import_with_unreachable_sources(monkeypatch, fake_geo):
    monkeypatch.setattr(
        "pureproxy.jobs.runner.fetch_source_text",
        lambda source, session=None, timeout=10.0: "",
    )
    store = MagicMock()

    summary = run_import(store, fake_geo, RunConfig(), sources=SOURCES)

    assert summary.candidates == 0
    assert summary.accepted == 0
    store.upsert_many.assert_not_called()


def test_analyze_manual_all_filtered_or_rejected(monkeypatch, fake_geo):
    monkeypatch.setattr("pureproxy.jobs.runner.probe_relay", _probe_accepting())
    writer = MagicMock()

    results = analyze_manual(
        "10.0.0.5,1.1.1.1:443,8.8.8.8:80",
        geo_client=fake_geo,
        writer=writer,
        ownership=OwnershipFilter(("1.1.1.0/24",)),
    )

    assert results == []
    writer.submit.assert_not_called()


def test_analyze_manual_failed_lookup_still_returns_record(monkeypatch, fake_geo):
    monkeypatch.setattr("pureproxy.jobs.runner.probe_relay", _probe_accepting("8.8.8.8", latency_ms=120))
    writer = MagicMock()

    results = analyze_manual("8.8.8.8:80", geo_client=fake_geo, writer=writer)

    assert len(results) == 1
    record = results[0]
    assert record.isp == "Unknown ISP"
    assert record.country == "Unknown"
    assert record.source_trust == "manual"
    assert record.purity_score == 65
    writer.submit.assert_called_once_with(results)


def test_analyze_manual_orders_by_purity(monkeypatch, fake_geo):
    monkeypatch.setattr("pureproxy.jobs.runner.probe_relay", _probe_accepting("8.8.8.8", "9.9.9.9"))
    fake_geo.answers["9.9.9.9"] = US_RESIDENTIAL

    results = analyze_manual(
        "8.8.8.8:443\n9.9.9.9:443",
        geo_client=fake_geo,
        run_config=RunConfig(mode=MODE_MANUAL, batch_delay_seconds=0.0),
    )

    assert [r.ip for r in results] == ["9.9.9.9", "8.8.8.8"]


def test_analyze_manual_writer_failure_does_not_affect_results(monkeypatch, fake_geo):
    monkeypatch.setattr("pureproxy.jobs.runner.probe_relay", _probe_accepting("8.8.8.8"))
    writer = MagicMock()
    writer.submit.side_effect = RuntimeError("cannot schedule new futures after shutdown")

    results = analyze_manual("8.8.8.8:443", geo_client=fake_geo, writer=writer)

    assert len(results) == 1


@pytest.mark.parametrize("text", ["", "   ", "no addresses here"])
def test_analyze_manual_rejects_unparseable_input(text, fake_geo):
    with pytest.raises(NoValidInputError):
        analyze_manual(text, geo_client=fake_geo)
