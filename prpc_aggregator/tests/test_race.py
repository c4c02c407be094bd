"""
Tests for the first-winner fetch race and the batched sweep fallback
"""

import time
import threading
import concurrent.futures
from unittest.mock import Mock

import pytest

from prpc_aggregator.exceptions import ValidationError
from prpc_aggregator.observer import RecordingObserver
from prpc_aggregator.race import FetchRaceResolver, FirstWinnerLatch, RespondedSet
from prpc_aggregator.registry import BOOTSTRAP_ENDPOINTS


def pods_body(count, prefix="pk"):
    return {
        "jsonrpc": "2.0",
        "id": 1,
        "result": {
            "pods": [
                {"pubkey": f"{prefix}{i}", "address": f"10.1.0.{i}:9001", "uptime": 100, "version": "0.7.1"}
                for i in range(count)
            ],
            "total_count": count,
        },
    }


class FakeTransport:
    """Stands in for RpcTransport; each endpoint maps to a handler(method, token)"""

    def __init__(self, handlers, default=None):
        self.handlers = handlers
        self.default = default
        self.calls = []
        self._lock = threading.Lock()

    def call(self, endpoint, request, timeout=None, max_retries=None, token=None):
        with self._lock:
            self.calls.append((endpoint, request["method"]))
        handler = self.handlers.get(endpoint, self.default)
        if handler is None:
            return None
        return handler(request["method"], token)


def identity_rng():
    rng = Mock()
    rng.shuffle.side_effect = lambda items: None
    return rng


class TestFirstWinnerLatch:
    def test_first_offer_wins(self):
        latch = FirstWinnerLatch()
        assert not latch.is_set
        assert latch.offer("a")
        assert not latch.offer("b")
        assert latch.value == "a"
        assert latch.is_set

    def test_exactly_one_winner_under_contention(self):
        latch = FirstWinnerLatch()
        barrier = threading.Barrier(16)

        def offer(i):
            barrier.wait()
            return latch.offer(i)

        with concurrent.futures.ThreadPoolExecutor(max_workers=16) as executor:
            results = list(executor.map(offer, range(16)))

        assert results.count(True) == 1
        assert latch.value == results.index(True)


class TestRespondedSet:
    def test_counts_unique_endpoints(self):
        responded = RespondedSet()
        responded.add("a")
        responded.add("a")
        responded.add("b")
        assert responded.count == 2


class TestFetchRaceResolver:
    def test_batch_size_validated(self):
        with pytest.raises(ValidationError):
            FetchRaceResolver(FakeTransport({}), batch_size=0)

    def test_fast_endpoint_wins_without_waiting_for_slow_ones(self):
        gate = threading.Event()
        fast = BOOTSTRAP_ENDPOINTS[4]

        def slow(method, token):
            gate.wait(5)
            return None

        transport = FakeTransport({fast: lambda method, token: pods_body(100)}, default=slow)
        resolver = FetchRaceResolver(transport)

        try:
            started = time.time()
            result = resolver.fetch(BOOTSTRAP_ENDPOINTS, ("get-pods-with-stats", "get-pods"))
            elapsed = time.time() - started
            assert not gate.is_set()
        finally:
            gate.set()

        assert elapsed < 2
        assert len(result.nodes) == 100
        assert result.source == fast
        assert result.method == "get-pods-with-stats"
        assert result.meta.source == fast
        assert result.meta.attempted == 9
        assert result.meta.responded >= 1

    def test_total_failure_returns_empty_result(self):
        transport = FakeTransport({})
        resolver = FetchRaceResolver(transport)

        result = resolver.fetch(BOOTSTRAP_ENDPOINTS, ("get-pods-with-stats", "get-pods"))

        assert result.nodes == []
        assert result.is_empty
        assert result.meta.attempted == 9
        assert result.meta.responded == 0
        assert result.meta.source is None
        # race and sweep, for both methods
        assert len(transport.calls) == 9 * 2 * 2

    def test_falls_back_to_next_method(self):
        def handler(method, token):
            if method == "get-pods-with-stats":
                return {"jsonrpc": "2.0", "error": {"code": -32601, "message": "Method not found"}}
            return pods_body(3)

        transport = FakeTransport({}, default=handler)
        resolver = FetchRaceResolver(transport)

        result = resolver.fetch(BOOTSTRAP_ENDPOINTS[:3], ("get-pods-with-stats", "get-pods"))

        assert result.method == "get-pods"
        assert len(result.nodes) == 3
        assert result.meta.responded == 3

    def test_sweep_rescues_failed_race(self):
        lock = threading.Lock()
        seen = {}

        def flaky(endpoint):
            def handler(method, token):
                with lock:
                    seen[endpoint] = seen.get(endpoint, 0) + 1
                    attempt = seen[endpoint]
                return pods_body(2) if attempt > 1 else None
            return handler

        endpoints = BOOTSTRAP_ENDPOINTS[:4]
        transport = FakeTransport({e: flaky(e) for e in endpoints})
        observer = RecordingObserver()
        resolver = FetchRaceResolver(transport, batch_size=2, observer=observer, rng=identity_rng())

        result = resolver.fetch(endpoints, ("get-pods",))

        assert len(result.nodes) == 2
        # first endpoint of the first batch, in list order
        assert result.source == endpoints[0]
        assert result.meta.responded >= 1

    def test_sweep_inspects_batch_in_list_order(self):
        endpoints = ["http://a/rpc", "http://b/rpc", "http://c/rpc"]
        transport = FakeTransport({
            "http://b/rpc": lambda method, token: pods_body(1, prefix="b"),
            "http://c/rpc": lambda method, token: pods_body(1, prefix="c"),
        })
        resolver = FetchRaceResolver(transport, batch_size=3, rng=identity_rng())

        winner = resolver.sweep(endpoints, "get-pods", RespondedSet(), attempted=3)

        assert winner.endpoint == "http://b/rpc"
        assert winner.outcome.nodes[0].pubkey == "b0"

    def test_sweep_emits_progress_per_failed_batch(self):
        endpoints = [f"http://n{i}/rpc" for i in range(5)]
        observer = RecordingObserver()
        resolver = FetchRaceResolver(FakeTransport({}), batch_size=2, observer=observer)

        assert resolver.sweep(endpoints, "get-pods", RespondedSet(), attempted=5) is None

        assert len(observer.events) == 3
        assert all(e.attempted == 5 and e.last_batch_ms is not None for e in observer.events)

    def test_responders_without_nodes_still_counted(self):
        transport = FakeTransport({}, default=lambda method, token: {"result": []})
        resolver = FetchRaceResolver(transport)

        result = resolver.fetch(BOOTSTRAP_ENDPOINTS[:5], ("get-pods",))

        assert result.nodes == []
        assert result.meta.responded == 5
        assert result.meta.attempted == 5

    def test_winner_cancels_token_for_losers(self):
        tokens = []
        lock = threading.Lock()
        release = threading.Event()

        def loser(method, token):
            with lock:
                tokens.append(token)
            release.wait(5)
            return None

        winner_endpoint = "http://winner/rpc"

        def winner(method, token):
            # let the losers register first
            time.sleep(0.05)
            return pods_body(1)

        endpoints = [winner_endpoint, "http://l1/rpc", "http://l2/rpc"]
        transport = FakeTransport({winner_endpoint: winner}, default=loser)
        resolver = FetchRaceResolver(transport)

        try:
            result = resolver.fetch(endpoints, ("get-pods",))
        finally:
            release.set()

        assert result.source == winner_endpoint
        assert tokens
        assert all(token.cancelled for token in tokens)

    def test_no_endpoints(self):
        result = FetchRaceResolver(FakeTransport({})).fetch([], ("get-pods",))
        assert result.nodes == []
        assert result.meta.attempted == 0

    def test_race_and_sweep_with_no_endpoints(self):
        transport = FakeTransport({})
        resolver = FetchRaceResolver(transport)

        assert resolver.race([], "get-pods", RespondedSet()) is None
        assert resolver.sweep([], "get-pods", RespondedSet(), attempted=0) is None
        assert transport.calls == []
