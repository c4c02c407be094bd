"""
Tests for NetworkAggregator refresh cycles
"""

import threading
from unittest.mock import Mock

import pytest

from prpc_aggregator.aggregator import NetworkAggregator
from prpc_aggregator.cache import SnapshotCache
from prpc_aggregator.config import AggregatorConfig
from prpc_aggregator.models import FetchMeta, FetchResult, NormalizedNode
from prpc_aggregator.normalizer import normalize_response
from prpc_aggregator.observer import RecordingObserver

ENDPOINTS = tuple(f"http://10.9.0.{i}:6000/rpc" for i in range(1, 10))


def pods_body(count):
    return {
        "jsonrpc": "2.0",
        "id": 1,
        "result": {
            "pods": [
                {"pubkey": f"PUBKEY{i:04d}", "address": f"10.2.0.{i}:9001", "uptime": 86400, "version": "0.7.1"}
                for i in range(count)
            ],
        },
    }


class StubTransport:
    """Answers get-pods for the listed endpoints, nothing for the rest"""

    def __init__(self, answering=(), body=None):
        self.answering = set(answering)
        self.body = body if body is not None else pods_body(6)
        self.closed = False
        self._lock = threading.Lock()
        self.calls = 0

    def call(self, endpoint, request, timeout=None, max_retries=None, token=None):
        with self._lock:
            self.calls += 1
        if endpoint in self.answering:
            return self.body
        return None

    def close(self):
        self.closed = True


@pytest.fixture
def config(tmp_path):
    return AggregatorConfig(
        endpoints=ENDPOINTS,
        cache_file=str(tmp_path / "snapshot.json"),
        enable_credits=False,
    )


def make_aggregator(config, transport, credits=None, observer=None):
    credit_client = None
    if credits is not None:
        credit_client = Mock()
        if isinstance(credits, Exception):
            credit_client.fetch.side_effect = credits
        else:
            credit_client.fetch.return_value = credits
    return NetworkAggregator(config, transport=transport, credit_client=credit_client, observer=observer)


class TestNetworkAggregator:
    def test_refresh_success(self, config):
        observer = RecordingObserver()
        transport = StubTransport(answering=ENDPOINTS[:4])
        aggregator = make_aggregator(config, transport, credits={" pubkey0001": 50.0}, observer=observer)

        result = aggregator.refresh()

        assert len(result.nodes) == 6
        assert result.source in ENDPOINTS[:4]
        assert result.meta.attempted == 9
        assert result.meta.responded == 4
        assert result.health.trusted is True
        assert result.health.sample_size == 6
        assert result.credits_matched == 1
        assert result.stats["total_nodes"] == 6
        assert [n.stake for n in result.nodes if n.pubkey == "PUBKEY0001"] == [50.0]
        assert len(observer.metas) == 1
        assert observer.metas[0].responded == 4

    def test_snapshot_written_after_success(self, config):
        aggregator = make_aggregator(config, StubTransport(answering=ENDPOINTS[:1]))
        aggregator.refresh()

        snapshot = aggregator.load_cached(float("inf"))
        assert snapshot is not None
        assert len(snapshot.nodes) == 6

    def test_low_coverage_untrusted(self, config):
        transport = StubTransport(answering=ENDPOINTS[:2], body=pods_body(5))
        result = make_aggregator(config, transport).refresh()

        assert len(result.nodes) == 5
        assert result.meta.responded == 2
        assert result.health.trusted is False

    def test_total_failure(self, config):
        observer = RecordingObserver()
        aggregator = make_aggregator(config, StubTransport(), observer=observer)

        result = aggregator.refresh()

        assert result.nodes == []
        assert result.meta.attempted == 9
        assert result.meta.responded == 0
        assert result.health.trusted is False
        assert result.health.network_health == 0
        assert result.from_cache is False
        assert aggregator.load_cached(float("inf")) is None
        assert observer.metas[0].to_dict()["responded"] == 0

    def test_credit_feed_failure_keeps_nodes(self, config):
        transport = StubTransport(answering=ENDPOINTS)
        result = make_aggregator(config, transport, credits=RuntimeError("feed down")).refresh()

        assert len(result.nodes) == 6
        assert result.credits_matched == 0
        assert all(n.stake == 0.0 for n in result.nodes)

    def test_refresh_or_cached_serves_snapshot(self, config):
        SnapshotCache(config.cache_file).save([NormalizedNode(pubkey="cached", address="10.0.0.1:9001")])
        aggregator = make_aggregator(config, StubTransport())

        result = aggregator.refresh_or_cached()

        assert result.from_cache is True
        assert result.cached_at is not None
        assert [n.pubkey for n in result.nodes] == ["cached"]
        assert result.meta.responded == 0
        assert result.health.trusted is False

    def test_refresh_or_cached_prefers_live(self, config):
        SnapshotCache(config.cache_file).save([NormalizedNode(pubkey="cached", address="10.0.0.1:9001")])
        aggregator = make_aggregator(config, StubTransport(answering=ENDPOINTS))

        result = aggregator.refresh_or_cached()

        assert result.from_cache is False
        assert len(result.nodes) == 6

    def test_close_closes_transport(self, config):
        transport = StubTransport()
        aggregator = make_aggregator(config, transport)
        aggregator.close()
        assert transport.closed

    def test_default_credit_client(self, tmp_path):
        config = AggregatorConfig(endpoints=ENDPOINTS, cache_file=str(tmp_path / "s.json"))
        aggregator = NetworkAggregator(config, transport=StubTransport())
        assert aggregator.credit_client is not None
        assert aggregator.credit_client.url == config.credits_url
        assert aggregator.geo is None

    def test_trust_ignores_fetch_responders_beyond_probe(self, config):
        nodes = normalize_response(pods_body(5)).nodes
        resolver = Mock()
        resolver.fetch.return_value = FetchResult(
            nodes=nodes, meta=FetchMeta(attempted=9, responded=3), source=ENDPOINTS[0])
        transport = StubTransport(answering=ENDPOINTS[:2])
        aggregator = NetworkAggregator(config, transport=transport, resolver=resolver)

        result = aggregator.refresh()

        assert result.meta.responded == 3
        assert result.coverage.responded == 2
        assert result.health.trusted is False

    def test_probe_failure_uses_sample_size_gate(self, config):
        resolver = Mock()
        resolver.fetch.return_value = FetchResult(
            nodes=normalize_response(pods_body(5)).nodes, meta=FetchMeta(attempted=9, responded=1))
        aggregator = NetworkAggregator(config, transport=StubTransport(), resolver=resolver)
        aggregator.prober = Mock()
        aggregator.prober.probe.side_effect = RuntimeError("probe crashed")

        result = aggregator.refresh()

        assert result.coverage is None
        assert result.health.trusted is True

        resolver.fetch.return_value = FetchResult(
            nodes=normalize_response(pods_body(4)).nodes, meta=FetchMeta(attempted=9, responded=9))
        assert aggregator.refresh().health.trusted is False
