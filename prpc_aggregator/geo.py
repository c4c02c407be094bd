#!/usr/bin/env python3
"""
Geo Lookup
Resolves node IPs to "Region, Country" strings through an injected TTL cache
"""

import logging
import threading
import concurrent.futures
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

import requests
from cachetools import TTLCache

from .models import NormalizedNode

logger = logging.getLogger(__name__)


def build_geo_cache(maxsize: int = 4096, ttl: float = 24 * 3600) -> TTLCache:
    """Process-wide cache, created once and handed to every resolver"""
    return TTLCache(maxsize=maxsize, ttl=ttl)


def format_region(payload: Dict) -> Optional[str]:
    parts = [payload.get("regionName"), payload.get("country")]
    region = ", ".join(str(p) for p in parts if p)
    return region or None


class GeoResolver:
    """IP to region lookups with negative caching"""

    def __init__(self,
                 cache: TTLCache,
                 url_template: str = "http://ip-api.com/json/{ip}?fields=country,regionName,city",
                 timeout: float = 3.5,
                 session: Optional[requests.Session] = None,
                 max_workers: int = 8):
        self.cache = cache
        self.url_template = url_template
        self.timeout = timeout
        self.session = session or requests.Session()
        self.max_workers = max_workers
        # cachetools caches are not thread-safe
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config, cache: Optional[TTLCache] = None,
                    session: Optional[requests.Session] = None) -> "GeoResolver":
        if cache is None:
            cache = build_geo_cache(config.geo_cache_size, config.geo_cache_ttl)
        return cls(cache, url_template=config.geo_url, timeout=config.geo_timeout, session=session)

    def _cached(self, ip: str):
        with self._lock:
            if ip in self.cache:
                return True, self.cache[ip]
        return False, None

    def _store(self, ip: str, region: Optional[str]) -> None:
        with self._lock:
            self.cache[ip] = region

    def lookup(self, ip: str) -> Optional[str]:
        """Region for an IP, or None if unknown; failures are cached as None"""
        hit, region = self._cached(ip)
        if hit:
            return region

        region = None
        try:
            response = self.session.get(self.url_template.format(ip=ip), timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
            if isinstance(payload, dict):
                region = format_region(payload)
        except requests.exceptions.Timeout:
            logger.debug(f"Geo lookup for {ip} timed out")
        except (ValueError, requests.exceptions.RequestException) as e:
            logger.debug(f"Geo lookup for {ip} failed: {e}")

        self._store(ip, region)
        return region

    def annotate(self, nodes: Sequence[NormalizedNode]) -> List[NormalizedNode]:
        """Return copies of the nodes with region filled where a lookup succeeds"""
        hosts = sorted({node.host for node in nodes if node.host and not node.region})
        if not hosts:
            return list(nodes)

        regions: Dict[str, Optional[str]] = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=min(self.max_workers, len(hosts))) as executor:
            future_to_host = {executor.submit(self.lookup, host): host for host in hosts}
            for future in concurrent.futures.as_completed(future_to_host):
                host = future_to_host[future]
                try:
                    regions[host] = future.result()
                except Exception as e:
                    logger.error(f"ERROR {host}: geo lookup failed - {e}")
                    regions[host] = None

        resolved = sum(1 for r in regions.values() if r)
        logger.info(f"Geo lookup resolved {resolved}/{len(hosts)} hosts")

        annotated = []
        for node in nodes:
            region = regions.get(node.host)
            annotated.append(replace(node, region=region) if region and not node.region else node)
        return annotated
