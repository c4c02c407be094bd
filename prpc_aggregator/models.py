#!/usr/bin/env python3
"""
pNode Data Models
Data structures for the node-discovery aggregation pipeline
"""

from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any


class NodeStatus:
    """Status values a node can carry"""
    ONLINE = "online"
    OFFLINE = "offline"
    # Part of the data model but never derived from uptime alone
    SYNCING = "syncing"


def status_for_uptime(uptime: float) -> str:
    return NodeStatus.ONLINE if uptime > 0 else NodeStatus.OFFLINE


@dataclass
class NormalizedNode:
    """Canonical pNode record produced by the normalizer"""
    pubkey: str
    address: str
    uptime: float = 0.0
    status: str = NodeStatus.OFFLINE
    storage_committed: int = 0
    storage_used: int = 0
    storage_usage_percent: float = 0.0
    version: str = ""
    is_public: Optional[bool] = None
    rpc_port: Optional[int] = None
    last_seen_timestamp: Optional[float] = None
    region: Optional[str] = None
    stake: float = 0.0

    @property
    def host(self) -> str:
        """Host part of the composite address, without brackets"""
        address = self.address.strip()
        if address.startswith("["):
            return address[1:].split("]", 1)[0]
        if address.count(":") == 1:
            return address.split(":", 1)[0]
        return address

    @property
    def last_seen(self) -> Optional[datetime]:
        if self.last_seen_timestamp is None:
            return None
        return datetime.fromtimestamp(self.last_seen_timestamp, tz=timezone.utc)

    @property
    def is_online(self) -> bool:
        return self.status == NodeStatus.ONLINE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProbeResult:
    """Reachability of one endpoint during a probe round"""
    endpoint: str
    reachable: bool


@dataclass
class CoverageResult:
    """Aggregate of a probe round"""
    attempted: int
    responded: int
    duration_ms: int = 0

    @property
    def ratio(self) -> float:
        if self.attempted <= 0:
            return 0.0
        return self.responded / self.attempted


@dataclass
class FetchMeta:
    """Coverage and provenance of one fetch cycle"""
    attempted: int
    responded: int
    duration_ms: int = 0
    source: Optional[str] = None

    def __post_init__(self):
        # responded can never exceed attempted
        self.responded = max(0, min(self.responded, self.attempted))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FetchResult:
    """Outcome of the fetch race, possibly empty"""
    nodes: List[NormalizedNode]
    meta: FetchMeta
    raw: Any = None
    source: Optional[str] = None
    method: Optional[str] = None
    rejected: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.nodes


@dataclass
class HealthResult:
    """Trust-qualified network health score"""
    availability_score: float
    uptime_score: float
    version_score: float
    network_health: int
    sample_size: int
    trusted: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Snapshot:
    """Last successful node set with its write time (Unix seconds)"""
    timestamp: float
    nodes: List[NormalizedNode] = field(default_factory=list)

    def age(self, now: float) -> float:
        return now - self.timestamp


@dataclass
class ProgressEvent:
    """Diagnostic progress notification"""
    attempted: int
    responded: int
    last_batch_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"attempted": self.attempted, "responded": self.responded}
        if self.last_batch_ms is not None:
            data["last_batch_ms"] = self.last_batch_ms
        return data


@dataclass
class AggregateResult:
    """Everything a consumer needs to render one refresh"""
    nodes: List[NormalizedNode]
    meta: FetchMeta
    health: HealthResult
    stats: Dict[str, Any] = field(default_factory=dict)
    raw: Any = None
    source: Optional[str] = None
    credits_matched: int = 0
    coverage: Optional[CoverageResult] = None
    from_cache: bool = False
    cached_at: Optional[float] = None
