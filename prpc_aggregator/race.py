#!/usr/bin/env python3
"""
Fetch Race Resolver
Races every endpoint for the first usable node list, then falls back to batched sweeps
"""

import time
import random
import logging
import threading
import concurrent.futures
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Set

from .exceptions import ValidationError
from .models import FetchMeta, FetchResult, ProgressEvent
from .normalizer import NormalizeOutcome, normalize_response, is_usable
from .observer import ProgressObserver, emit_progress
from .transport import RpcTransport, CancellationToken, build_request

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    """A structurally valid response from one endpoint"""
    endpoint: str
    method: str
    body: Any
    outcome: NormalizeOutcome


class FirstWinnerLatch:
    """Single-assignment cell; only the first offer is kept"""

    def __init__(self):
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._value = None

    def offer(self, value) -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self._value = value
            self._event.set()
            return True

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def value(self):
        return self._value

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class RespondedSet:
    """Thread-safe set of endpoints that answered this cycle"""

    def __init__(self):
        self._lock = threading.Lock()
        self._endpoints: Set[str] = set()

    def add(self, endpoint: str) -> None:
        with self._lock:
            self._endpoints.add(endpoint)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._endpoints)


class FetchRaceResolver:
    """Two-tier fetch: concurrent race first, sequential batched sweep second"""

    def __init__(self,
                 transport: RpcTransport,
                 batch_size: int = 6,
                 timeout: Optional[float] = None,
                 max_retries: Optional[int] = None,
                 observer: Optional[ProgressObserver] = None,
                 rng: Optional[random.Random] = None):
        if batch_size < 1:
            raise ValidationError(f"batch_size must be >= 1, got {batch_size}")
        self.transport = transport
        self.batch_size = batch_size
        self.timeout = timeout
        self.max_retries = max_retries
        self.observer = observer
        self.rng = rng or random.Random()

    def _shuffled(self, endpoints: Sequence[str]) -> List[str]:
        order = list(endpoints)
        self.rng.shuffle(order)
        return order

    def _call(self, endpoint: str, method: str, token: Optional[CancellationToken] = None) -> Any:
        return self.transport.call(
            endpoint,
            build_request(method),
            timeout=self.timeout,
            max_retries=self.max_retries,
            token=token,
        )

    def _race_task(self, endpoint: str, method: str, latch: FirstWinnerLatch,
                   token: CancellationToken, responded: RespondedSet) -> Optional[Candidate]:
        body = self._call(endpoint, method, token)
        if body is None:
            return None
        responded.add(endpoint)

        outcome = normalize_response(body)
        if not is_usable(outcome):
            logger.debug(f"{method} on {endpoint} returned no usable nodes")
            return None

        candidate = Candidate(endpoint=endpoint, method=method, body=body, outcome=outcome)
        if latch.offer(candidate):
            token.cancel()
        return candidate

    def race(self, endpoints: Sequence[str], method: str, responded: RespondedSet) -> Optional[Candidate]:
        """Return the first structurally valid response, or None if nobody produced one"""
        if not endpoints:
            return None
        order = self._shuffled(endpoints)
        latch = FirstWinnerLatch()
        token = CancellationToken()

        # No context manager: losing calls keep running and are never awaited
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=len(order), thread_name_prefix="prpc-race")
        try:
            future_to_endpoint = {
                executor.submit(self._race_task, endpoint, method, latch, token, responded): endpoint
                for endpoint in order
            }
            for future in concurrent.futures.as_completed(future_to_endpoint):
                endpoint = future_to_endpoint[future]
                try:
                    future.result()
                except Exception as e:
                    logger.error(f"ERROR {endpoint}: race task failed - {e}")
                if latch.is_set:
                    break
        finally:
            token.cancel()
            executor.shutdown(wait=False)

        return latch.value

    def sweep(self, endpoints: Sequence[str], method: str, responded: RespondedSet,
              attempted: int) -> Optional[Candidate]:
        """Walk the shuffled list batch by batch and return the first valid response"""
        if not endpoints:
            return None
        order = self._shuffled(endpoints)

        for offset in range(0, len(order), self.batch_size):
            batch = order[offset:offset + self.batch_size]
            batch_start = time.time()

            bodies = {}
            with concurrent.futures.ThreadPoolExecutor(
                    max_workers=len(batch), thread_name_prefix="prpc-sweep") as executor:
                future_to_endpoint = {
                    executor.submit(self._call, endpoint, method): endpoint
                    for endpoint in batch
                }
                for future in concurrent.futures.as_completed(future_to_endpoint):
                    endpoint = future_to_endpoint[future]
                    try:
                        bodies[endpoint] = future.result()
                    except Exception as e:
                        logger.error(f"ERROR {endpoint}: sweep call failed - {e}")
                        bodies[endpoint] = None

            for endpoint in batch:
                if bodies.get(endpoint) is not None:
                    responded.add(endpoint)

            # Inspect in shuffled order, not completion order
            for endpoint in batch:
                body = bodies.get(endpoint)
                if body is None:
                    continue
                outcome = normalize_response(body)
                if is_usable(outcome):
                    return Candidate(endpoint=endpoint, method=method, body=body, outcome=outcome)

            batch_ms = int((time.time() - batch_start) * 1000)
            logger.debug(f"Sweep batch {offset // self.batch_size + 1} for {method}: no usable response ({batch_ms}ms)")
            emit_progress(self.observer, ProgressEvent(
                attempted=attempted, responded=responded.count, last_batch_ms=batch_ms))

        return None

    def _elapsed_ms(self, started: float) -> int:
        return int((time.time() - started) * 1000)

    def fetch(self, endpoints: Sequence[str], methods: Sequence[str]) -> FetchResult:
        """
        Fetch the node set from the first endpoint that answers usefully.

        Methods are tried richest first. Returns an empty FetchResult with
        full meta when every method fails on every endpoint.
        """
        started = time.time()
        attempted = len(endpoints)
        responded = RespondedSet()

        if not endpoints:
            logger.warning("Fetch called with no endpoints")
            return FetchResult(nodes=[], meta=FetchMeta(attempted=0, responded=0))

        for method in methods:
            logger.debug(f"Racing {attempted} endpoints with {method}")
            winner = self.race(endpoints, method, responded)
            tier = "race"

            if winner is None:
                logger.info(f"Race for {method} produced no winner, sweeping in batches of {self.batch_size}")
                winner = self.sweep(endpoints, method, responded, attempted)
                tier = "sweep"

            if winner is not None:
                meta = FetchMeta(
                    attempted=attempted,
                    responded=max(responded.count, 1),
                    duration_ms=self._elapsed_ms(started),
                    source=winner.endpoint,
                )
                logger.info(f"SUCCESS {winner.endpoint}: {len(winner.outcome.nodes)} nodes via {method} ({tier}, {meta.duration_ms}ms)")
                emit_progress(self.observer, ProgressEvent(attempted=meta.attempted, responded=meta.responded))
                return FetchResult(
                    nodes=winner.outcome.nodes,
                    meta=meta,
                    raw=winner.body,
                    source=winner.endpoint,
                    method=method,
                    rejected=winner.outcome.rejected,
                )

        meta = FetchMeta(
            attempted=attempted,
            responded=responded.count,
            duration_ms=self._elapsed_ms(started),
            source=None,
        )
        logger.warning(f"FAILED: no endpoint returned usable nodes ({meta.responded}/{meta.attempted} responded)")
        emit_progress(self.observer, ProgressEvent(attempted=meta.attempted, responded=meta.responded))
        return FetchResult(nodes=[], meta=meta)
