#!/usr/bin/env python3
"""
Health Scorer
Availability, uptime and version-freshness scores with a trust gate
"""

import math
from typing import Optional, Sequence

from .models import HealthResult, NormalizedNode
from .utils import parse_version, uptime_percent

AVAILABILITY_WEIGHT = 0.5
UPTIME_WEIGHT = 0.3
VERSION_WEIGHT = 0.2

MIN_TRUSTED_COVERAGE = 0.30
MIN_TRUSTED_SAMPLE = 5


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    """Clamp to [low, high]; NaN and infinities collapse to low"""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return low
    if not math.isfinite(value):
        return low
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def newest_version_count(nodes: Sequence[NormalizedNode]) -> int:
    """How many nodes run the greatest dot-separated numeric version"""
    if not nodes:
        return 0
    parsed = [parse_version(node.version) for node in nodes]
    width = max(len(v) for v in parsed)
    padded = [v + (0,) * (width - len(v)) for v in parsed]
    newest = max(padded)
    return sum(1 for v in padded if v == newest)


def is_trusted(sample_size: int,
               attempted_endpoints: Optional[int] = None,
               responded_endpoints: Optional[int] = None,
               min_coverage: float = MIN_TRUSTED_COVERAGE,
               min_sample: int = MIN_TRUSTED_SAMPLE) -> bool:
    """Coverage gate when probe counts exist, sample-size gate otherwise"""
    if attempted_endpoints:
        return ((responded_endpoints or 0) / attempted_endpoints) >= min_coverage
    return sample_size >= min_sample


def compute_network_health(nodes: Sequence[NormalizedNode],
                           attempted_endpoints: Optional[int] = None,
                           responded_endpoints: Optional[int] = None,
                           min_coverage: float = MIN_TRUSTED_COVERAGE,
                           min_sample: int = MIN_TRUSTED_SAMPLE) -> HealthResult:
    total = len(nodes)

    if total:
        online = sum(1 for node in nodes if node.is_online)
        availability = clamp(online / total * 100)
        uptime = clamp(sum(uptime_percent(node.uptime) for node in nodes) / total)
        version = clamp(newest_version_count(nodes) / total * 100)
    else:
        availability = uptime = version = 0.0

    composite = (availability * AVAILABILITY_WEIGHT
                 + uptime * UPTIME_WEIGHT
                 + version * VERSION_WEIGHT)

    return HealthResult(
        availability_score=availability,
        uptime_score=uptime,
        version_score=version,
        network_health=int(clamp(round_half_up(composite))),
        sample_size=total,
        trusted=is_trusted(total, attempted_endpoints, responded_endpoints, min_coverage, min_sample),
    )
