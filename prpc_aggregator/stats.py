#!/usr/bin/env python3
"""
Network Statistics
Dashboard aggregates over the current node set
"""

from collections import Counter
from typing import Any, Dict, Optional, Sequence

from .models import NormalizedNode
from .utils import calculate_gini_coefficient, uptime_percent

TB = 1024 ** 4
GB = 1024 ** 3
UNKNOWN_REGION = "Unknown"
CENTRALIZATION_THRESHOLD = 30.0


def group_by_version(nodes: Sequence[NormalizedNode]) -> Dict[str, int]:
    return dict(Counter(node.version or "unknown" for node in nodes))


def group_by_region(nodes: Sequence[NormalizedNode]) -> Dict[str, int]:
    return dict(Counter(node.region or UNKNOWN_REGION for node in nodes))


def display_uptime(node: NormalizedNode) -> float:
    """Uptime percent rounded to one decimal, as shown in node tables"""
    return round(uptime_percent(node.uptime), 1)


def capacity_gb(node: NormalizedNode) -> float:
    return node.storage_committed / GB


def centralization_risk(nodes: Sequence[NormalizedNode],
                        threshold: float = CENTRALIZATION_THRESHOLD) -> Optional[Dict[str, Any]]:
    """
    Flag the largest known region when it holds too much stake or capacity.

    Returns None when no region reaches the threshold percentage.
    """
    stake_by_region: Counter = Counter()
    capacity_by_region: Counter = Counter()
    for node in nodes:
        if not node.region:
            continue
        stake_by_region[node.region] += node.stake
        capacity_by_region[node.region] += node.storage_committed

    if not capacity_by_region and not stake_by_region:
        return None

    total_stake = sum(node.stake for node in nodes)
    total_capacity = sum(node.storage_committed for node in nodes)

    top_region = max(stake_by_region, key=lambda r: (stake_by_region[r], capacity_by_region[r]))
    stake_pct = stake_by_region[top_region] / total_stake * 100 if total_stake else 0.0
    capacity_pct = capacity_by_region[top_region] / total_capacity * 100 if total_capacity else 0.0

    if stake_pct < threshold and capacity_pct < threshold:
        return None

    return {
        "region": top_region,
        "stake_pct": round(stake_pct, 1),
        "capacity_pct": round(capacity_pct, 1),
        "threshold": threshold,
    }


def compute_stats(nodes: Sequence[NormalizedNode]) -> Dict[str, Any]:
    total = len(nodes)
    active = sum(1 for node in nodes if node.is_online)

    return {
        "total_nodes": total,
        "active_nodes": active,
        "avg_uptime_seconds": sum(node.uptime for node in nodes) / total if total else 0.0,
        "total_capacity_tb": sum(node.storage_committed for node in nodes) / TB,
        "total_stake": sum(node.stake for node in nodes),
        "stake_gini": calculate_gini_coefficient([node.stake for node in nodes]),
        "public_nodes": sum(1 for node in nodes if node.is_public),
        "versions": group_by_version(nodes),
        "regions": group_by_region(nodes),
        "centralization": centralization_risk(nodes),
    }
