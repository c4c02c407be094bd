#!/usr/bin/env python3
"""
Endpoint Registry
Static bootstrap set of pRPC endpoints
"""

import os
import logging
from typing import Iterable, List, Optional, Tuple

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

BOOTSTRAP_ENDPOINTS: Tuple[str, ...] = (
    "http://173.212.220.65:6000/rpc",
    "http://161.97.97.41:6000/rpc",
    "http://192.190.136.36:6000/rpc",
    "http://192.190.136.37:6000/rpc",
    "http://192.190.136.38:6000/rpc",
    "http://192.190.136.28:6000/rpc",
    "http://192.190.136.29:6000/rpc",
    "http://207.244.255.1:6000/rpc",
    "http://173.212.203.145:6000/rpc",
)

ENDPOINTS_ENV_VAR = "PRPC_ENDPOINTS"


def normalize_endpoint(url: str) -> str:
    endpoint = str(url).strip()
    if endpoint and "://" not in endpoint:
        endpoint = "http://" + endpoint
    return endpoint


def split_endpoints(raw: Optional[str]) -> List[str]:
    """Split a comma or newline separated endpoint list"""
    if not raw:
        return []
    parts = []
    for chunk in str(raw).replace("\n", ",").split(","):
        endpoint = normalize_endpoint(chunk)
        if endpoint:
            parts.append(endpoint)
    return parts


class EndpointRegistry:
    """Read-only, ordered, de-duplicated set of bootstrap endpoints"""

    def __init__(self, endpoints: Optional[Iterable[str]] = None):
        source = BOOTSTRAP_ENDPOINTS if endpoints is None else endpoints

        unique = []
        seen = set()
        for url in source:
            endpoint = normalize_endpoint(url)
            if not endpoint or endpoint in seen:
                continue
            seen.add(endpoint)
            unique.append(endpoint)

        if not unique:
            raise ValidationError("Endpoint registry requires at least one endpoint")

        self._endpoints = tuple(unique)

    @classmethod
    def from_env(cls, fallback: Optional[Iterable[str]] = None) -> "EndpointRegistry":
        """Build from PRPC_ENDPOINTS, falling back to the given list or the bootstrap set"""
        from_env = split_endpoints(os.getenv(ENDPOINTS_ENV_VAR))
        if from_env:
            logger.debug(f"Using {len(from_env)} endpoints from {ENDPOINTS_ENV_VAR}")
            return cls(from_env)
        return cls(fallback)

    @property
    def endpoints(self) -> Tuple[str, ...]:
        return self._endpoints

    def __iter__(self):
        return iter(self._endpoints)

    def __len__(self) -> int:
        return len(self._endpoints)

    def __contains__(self, endpoint: str) -> bool:
        return normalize_endpoint(endpoint) in self._endpoints
