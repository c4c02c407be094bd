#!/usr/bin/env python3
"""
Utility Functions
Common numeric and formatting helpers used across the aggregator
"""

import re
from typing import List, Optional, Tuple

MAX_UPTIME_SECONDS = 30 * 24 * 3600  # 30 days

_LEADING_DIGITS = re.compile(r"^\s*(\d+)")


def uptime_percent(uptime_seconds: float) -> float:
    """Uptime against a 30-day ceiling, as a percentage"""
    if not uptime_seconds or uptime_seconds < 0:
        return 0.0
    return min(100.0, uptime_seconds / MAX_UPTIME_SECONDS * 100)


def parse_version(version: Optional[str]) -> Tuple[int, ...]:
    """"0.7.1" -> (0, 7, 1); non-numeric segments count as 0"""
    if not version:
        return (0,)
    parts = []
    for segment in str(version).strip().lstrip("vV").split("."):
        match = _LEADING_DIGITS.match(segment)
        parts.append(int(match.group(1)) if match else 0)
    return tuple(parts)


def calculate_gini_coefficient(stakes: List[float]) -> float:
    """Calculate Gini coefficient for stake distribution analysis"""
    if not stakes or len(stakes) < 2:
        return 0.0

    sorted_stakes = sorted(stakes)
    n = len(sorted_stakes)
    cumsum = []
    running_sum = 0

    for stake in sorted_stakes:
        running_sum += stake
        cumsum.append(running_sum)

    if cumsum[-1] == 0:
        return 0.0

    return (n + 1 - 2 * sum(cumsum) / cumsum[-1]) / n


def format_percent(value: Optional[float], decimals: int = 1) -> str:
    if value is None:
        return "0.0%"
    return f"{float(value):.{decimals}f}%"


def format_stake(value: Optional[float]) -> str:
    v = float(value or 0)
    if v >= 1_000_000:
        return f"{v / 1_000_000:.2f}M"
    if v >= 1_000:
        return f"{v / 1_000:.1f}K"
    return f"{v:g}"


def format_bytes(num_bytes: Optional[float], decimals: int = 1) -> str:
    b = float(num_bytes or 0)
    if b < 1024:
        return f"{int(b)} B"
    units = ["KB", "MB", "GB", "TB", "PB"]
    unit = -1
    while True:
        b /= 1024
        unit += 1
        if b < 1024 or unit == len(units) - 1:
            break
    return f"{b:.{decimals}f} {units[unit]}"
