#!/usr/bin/env python3
"""
Coverage Prober
Estimates how many bootstrap endpoints are reachable right now
"""

import time
import logging
import concurrent.futures
from typing import List, Optional, Sequence

from .models import CoverageResult, ProbeResult, ProgressEvent
from .observer import ProgressObserver, emit_progress
from .transport import RpcTransport, build_request

logger = logging.getLogger(__name__)


class CoverageProber:
    """Fires one cheap, non-retried call at every endpoint in parallel"""

    def __init__(self,
                 transport: RpcTransport,
                 method: str = "get-pods",
                 timeout: float = 3.0,
                 observer: Optional[ProgressObserver] = None):
        self.transport = transport
        self.method = method
        self.timeout = timeout
        self.observer = observer

    def _probe_one(self, endpoint: str, timeout: float) -> ProbeResult:
        body = self.transport.call(endpoint, build_request(self.method), timeout=timeout, max_retries=0)
        return ProbeResult(endpoint=endpoint, reachable=body is not None)

    def probe_endpoints(self, endpoints: Sequence[str], timeout: Optional[float] = None) -> List[ProbeResult]:
        timeout = self.timeout if timeout is None else timeout
        if not endpoints:
            return []

        results = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(endpoints)) as executor:
            future_to_endpoint = {
                executor.submit(self._probe_one, endpoint, timeout): endpoint
                for endpoint in endpoints
            }
            for future in concurrent.futures.as_completed(future_to_endpoint):
                endpoint = future_to_endpoint[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.debug(f"Probe of {endpoint} failed: {e}")
                    results.append(ProbeResult(endpoint=endpoint, reachable=False))
        return results

    def probe(self, endpoints: Sequence[str], timeout: Optional[float] = None) -> CoverageResult:
        """Count how many endpoints answered within the short budget"""
        start = time.time()
        results = self.probe_endpoints(endpoints, timeout)
        responded = sum(1 for r in results if r.reachable)

        coverage = CoverageResult(
            attempted=len(endpoints),
            responded=responded,
            duration_ms=int((time.time() - start) * 1000),
        )
        logger.info(f"Coverage probe: {coverage.responded}/{coverage.attempted} endpoints reachable ({coverage.duration_ms}ms)")
        emit_progress(self.observer, ProgressEvent(attempted=coverage.attempted, responded=coverage.responded))
        return coverage
