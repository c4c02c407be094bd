"""
PRPC-AGGREGATOR: pNode discovery aggregator with first-winner RPC racing and trust-gated health scoring
"""

from .aggregator import NetworkAggregator, setup_logging
from .cache import SnapshotCache
from .config import AggregatorConfig, load_config
from .credits import CreditFeedClient, find_credit, merge_credits
from .geo import GeoResolver, build_geo_cache
from .health import compute_network_health
from .models import (
    NodeStatus, NormalizedNode, FetchMeta, FetchResult, HealthResult,
    CoverageResult, Snapshot, ProgressEvent, AggregateResult,
)
from .normalizer import normalize_records, normalize_response
from .observer import ProgressObserver, LoggingObserver, CallbackObserver
from .prober import CoverageProber
from .race import FetchRaceResolver
from .registry import EndpointRegistry, BOOTSTRAP_ENDPOINTS
from .transport import RpcTransport, CancellationToken
from .utils import calculate_gini_coefficient
from .exceptions import *


__version__ = "1.0.0"
__author__ = "PGDN Team"

__all__ = [
    "NetworkAggregator",
    "setup_logging",
    "SnapshotCache",
    "AggregatorConfig",
    "load_config",
    "CreditFeedClient",
    "find_credit",
    "merge_credits",
    "GeoResolver",
    "build_geo_cache",
    "compute_network_health",
    "NodeStatus",
    "NormalizedNode",
    "FetchMeta",
    "FetchResult",
    "HealthResult",
    "CoverageResult",
    "Snapshot",
    "ProgressEvent",
    "AggregateResult",
    "normalize_records",
    "normalize_response",
    "ProgressObserver",
    "LoggingObserver",
    "CallbackObserver",
    "CoverageProber",
    "FetchRaceResolver",
    "EndpointRegistry",
    "BOOTSTRAP_ENDPOINTS",
    "RpcTransport",
    "CancellationToken",
    "calculate_gini_coefficient",
    "PrpcAggregatorException",
    "TransportError",
    "ValidationError",
    "ConfigError",
    "DecodeError",
]
