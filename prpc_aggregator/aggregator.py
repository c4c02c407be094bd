#!/usr/bin/env python3
"""
Network Aggregator
Probe, race, normalize, enrich, score and snapshot one refresh cycle
"""

import sys
import time
import logging
import concurrent.futures
from typing import Dict, Optional

import requests

from .cache import SnapshotCache
from .config import AggregatorConfig
from .credits import CreditFeedClient, merge_credits, count_matched
from .geo import GeoResolver
from .health import compute_network_health
from .models import AggregateResult, CoverageResult, FetchMeta, FetchResult, HealthResult, Snapshot
from .observer import ProgressObserver, emit_fetch_meta
from .prober import CoverageProber
from .race import FetchRaceResolver
from .registry import EndpointRegistry
from .stats import compute_stats
from .transport import RpcTransport


def setup_logging(level=logging.INFO):
    """Set up logging configuration to stderr only"""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        stream=sys.stderr
    )


logger = logging.getLogger(__name__)


class NetworkAggregator:
    """Assembles a trust-qualified view of the pNode network"""

    def __init__(self,
                 config: Optional[AggregatorConfig] = None,
                 transport: Optional[RpcTransport] = None,
                 observer: Optional[ProgressObserver] = None,
                 cache: Optional[SnapshotCache] = None,
                 credit_client: Optional[CreditFeedClient] = None,
                 geo: Optional[GeoResolver] = None,
                 resolver: Optional[FetchRaceResolver] = None,
                 session: Optional[requests.Session] = None):
        self.config = config or AggregatorConfig()
        self.registry = EndpointRegistry(self.config.endpoints)
        self.observer = observer

        self.transport = transport or RpcTransport.from_config(self.config, session=session)
        self.prober = CoverageProber(
            self.transport,
            method=self.config.probe_method,
            timeout=self.config.probe_timeout,
            observer=observer,
        )
        self.resolver = resolver or FetchRaceResolver(
            self.transport,
            batch_size=self.config.batch_size,
            timeout=self.config.fetch_timeout,
            max_retries=self.config.max_retries,
            observer=observer,
        )
        self.cache = cache or SnapshotCache(self.config.cache_file)

        if credit_client is None and self.config.enable_credits:
            credit_client = CreditFeedClient(
                self.config.credits_url, timeout=self.config.credits_timeout, session=session)
        self.credit_client = credit_client

        if geo is None and self.config.enable_geo:
            geo = GeoResolver.from_config(self.config, session=session)
        self.geo = geo

    def load_cached(self, max_age: Optional[float] = None) -> Optional[Snapshot]:
        """Snapshot to render while the first refresh is in flight"""
        max_age = self.config.cache_max_age if max_age is None else max_age
        return self.cache.load(max_age)

    def _fetch_credits(self) -> Dict[str, float]:
        if self.credit_client is None:
            return {}
        return self.credit_client.fetch()

    def _health(self, nodes, coverage: Optional[CoverageResult]) -> HealthResult:
        # Trust comes from the probe alone; without it the sample-size gate applies
        return compute_network_health(
            nodes,
            attempted_endpoints=coverage.attempted if coverage is not None else None,
            responded_endpoints=coverage.responded if coverage is not None else None,
            min_coverage=self.config.min_trusted_coverage,
            min_sample=self.config.min_trusted_sample,
        )

    def _combine_meta(self, fetched: FetchResult, coverage: Optional[CoverageResult]) -> FetchMeta:
        responded = fetched.meta.responded
        if coverage is not None:
            responded = max(responded, coverage.responded)
        return FetchMeta(
            attempted=fetched.meta.attempted,
            responded=responded,
            duration_ms=fetched.meta.duration_ms,
            source=fetched.source,
        )

    def refresh(self) -> AggregateResult:
        """
        Run one full cycle.

        The probe and credit feed run alongside the fetch race. Never raises
        for network failures: an empty fetch yields an empty node list with
        full meta and an untrusted health score.
        """
        endpoints = list(self.registry)
        started = time.time()

        with concurrent.futures.ThreadPoolExecutor(max_workers=2, thread_name_prefix="prpc-side") as executor:
            probe_future = executor.submit(self.prober.probe, endpoints)
            credits_future = executor.submit(self._fetch_credits)

            fetched = self.resolver.fetch(endpoints, self.config.methods)

            try:
                coverage = probe_future.result()
            except Exception as e:
                logger.error(f"Coverage probe failed: {e}")
                coverage = None

            try:
                credit_table = credits_future.result()
            except Exception as e:
                logger.error(f"Credit feed failed: {e}")
                credit_table = {}

        meta = self._combine_meta(fetched, coverage)
        nodes = fetched.nodes

        credits_matched = 0
        if nodes and credit_table:
            nodes = merge_credits(nodes, credit_table)
            credits_matched = count_matched(nodes)
            logger.info(f"Matched credits for {credits_matched}/{len(nodes)} nodes")

        if nodes and self.geo is not None:
            nodes = self.geo.annotate(nodes)

        health = self._health(nodes, coverage)

        if nodes:
            self.cache.save(nodes)

        emit_fetch_meta(self.observer, meta)
        logger.info(
            f"Refresh complete: {len(nodes)} nodes, health={health.network_health} "
            f"trusted={health.trusted} ({int((time.time() - started) * 1000)}ms)")

        return AggregateResult(
            nodes=nodes,
            meta=meta,
            health=health,
            stats=compute_stats(nodes),
            raw=fetched.raw,
            source=fetched.source,
            credits_matched=credits_matched,
            coverage=coverage,
        )

    def refresh_or_cached(self) -> AggregateResult:
        """Refresh, falling back to the snapshot when the network gave nothing"""
        result = self.refresh()
        if result.nodes:
            return result

        snapshot = self.load_cached()
        if snapshot is None or not snapshot.nodes:
            return result

        logger.warning(f"No live data, serving cached snapshot with {len(snapshot.nodes)} nodes")
        return AggregateResult(
            nodes=snapshot.nodes,
            meta=result.meta,
            health=self._health(snapshot.nodes, result.coverage),
            stats=compute_stats(snapshot.nodes),
            coverage=result.coverage,
            from_cache=True,
            cached_at=snapshot.timestamp,
        )

    def close(self) -> None:
        self.transport.close()
