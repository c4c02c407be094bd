#!/usr/bin/env python3
"""
pRPC Transport
Single JSON-RPC calls with timeout, outcome classification and bounded retries
"""

import time
import logging
import threading
from typing import Any, Dict, List, Optional

import requests
import urllib3
from requests.adapters import HTTPAdapter

from .exceptions import TransportError

logger = logging.getLogger(__name__)

# Substrings that mark a failure as ordinary network noise
EXPECTED_FAILURE_MARKERS = ("timed out", "timeout", "aborted", "reset by peer", "connection reset")


class CallOutcome:
    SUCCESS = "success"
    EXPECTED = "expected_timeout"
    UNEXPECTED = "unexpected_error"
    STRUCTURAL = "structural"

    ALL = (SUCCESS, EXPECTED, UNEXPECTED, STRUCTURAL)


class CancellationToken:
    """Advisory cancellation signal shared by the tasks of one race"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def build_request(method: str, params: Optional[List[Any]] = None, request_id: int = 1) -> Dict[str, Any]:
    """JSON-RPC 2.0 envelope"""
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": method,
        "params": list(params or []),
    }


def is_expected_failure(error: BaseException) -> bool:
    """Timeouts, aborts and resets are expected when peers are slow or flaky"""
    if isinstance(error, requests.exceptions.Timeout):
        return True
    message = str(error).lower()
    return any(marker in message for marker in EXPECTED_FAILURE_MARKERS)


class RpcTransport:
    """Issues JSON-RPC calls directly or through a {url, payload} relay"""

    def __init__(self,
                 timeout: float = 8.0,
                 max_retries: int = 1,
                 retry_backoff: float = 0.2,
                 relay_url: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 user_agent: str = "prpc-aggregator",
                 verify_tls: bool = True,
                 pool_size: int = 16):
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.retry_backoff = retry_backoff
        self.relay_url = relay_url

        if session is None:
            session = requests.Session()
            # Relay mode sends every call to one host, keep enough sockets for the fan-out
            adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session
        self.session.verify = verify_tls
        if not verify_tls:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        self.session.headers.update({
            "User-Agent": user_agent,
            "Content-Type": "application/json",
        })

        self._lock = threading.Lock()
        self._counts = {outcome: 0 for outcome in CallOutcome.ALL}

    @classmethod
    def from_config(cls, config, session: Optional[requests.Session] = None) -> "RpcTransport":
        return cls(
            timeout=config.fetch_timeout,
            max_retries=config.max_retries,
            retry_backoff=config.retry_backoff,
            relay_url=config.relay_url,
            session=session,
            user_agent=config.user_agent,
            verify_tls=config.verify_tls,
            pool_size=max(10, len(config.endpoints)),
        )

    def _record(self, outcome: str) -> None:
        with self._lock:
            self._counts[outcome] += 1

    def stats(self) -> Dict[str, int]:
        """Snapshot of the outcome counters"""
        with self._lock:
            return dict(self._counts)

    def _post(self, endpoint: str, request: Dict[str, Any], timeout: float) -> Any:
        if self.relay_url:
            url = self.relay_url
            payload = {"url": endpoint, "payload": request}
        else:
            url = endpoint
            payload = request

        response = self.session.post(url, json=payload, timeout=timeout)

        if response.status_code >= 400:
            detail = ""
            try:
                body = response.json()
                if isinstance(body, dict) and "error" in body:
                    detail = f" ({body.get('error')}: {body.get('details', '')})"
            except ValueError:
                pass
            raise TransportError(endpoint, request.get("method", "call"), f"HTTP {response.status_code}{detail}")

        return response.json()

    def call(self,
             endpoint: str,
             request: Dict[str, Any],
             timeout: Optional[float] = None,
             max_retries: Optional[int] = None,
             token: Optional[CancellationToken] = None) -> Optional[Any]:
        """
        Perform one RPC call with retries.

        Returns the decoded JSON body, or None when the endpoint did not
        answer usefully this cycle. Never raises for network failures.
        """
        timeout = self.timeout if timeout is None else timeout
        retries = self.max_retries if max_retries is None else max(0, max_retries)
        attempts = 1 + retries
        method = request.get("method", "call")

        for attempt in range(1, attempts + 1):
            if token is not None and token.cancelled:
                logger.debug(f"Skipping {method} on {endpoint}: race already resolved")
                self._record(CallOutcome.EXPECTED)
                return None

            try:
                body = self._post(endpoint, request, timeout)
            except requests.exceptions.Timeout as e:
                logger.debug(f"{method} on {endpoint} timed out after {timeout}s: {e}")
                self._record(CallOutcome.EXPECTED)
                return None
            except ValueError as e:
                # Non-JSON body from a live endpoint, retrying will not fix it
                logger.warning(f"NON-JSON: {method} on {endpoint} returned an undecodable body: {e}")
                self._record(CallOutcome.STRUCTURAL)
                return None
            except (TransportError, requests.exceptions.RequestException) as e:
                if is_expected_failure(e):
                    logger.debug(f"{method} on {endpoint} aborted: {e}")
                    self._record(CallOutcome.EXPECTED)
                    return None

                logger.debug(f"pRPC attempt {attempt}/{attempts} failed for {endpoint}: {e}")
                self._record(CallOutcome.UNEXPECTED)
                if attempt < attempts:
                    time.sleep(attempt * self.retry_backoff)
                continue

            self._record(CallOutcome.SUCCESS)
            return body

        logger.debug(f"{method} on {endpoint} exhausted {attempts} attempts")
        return None

    def close(self) -> None:
        self.session.close()
