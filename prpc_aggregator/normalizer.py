#!/usr/bin/env python3
"""
Response Normalizer
Coerces heterogeneous pRPC payloads into canonical NormalizedNode records
"""

import math
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from .exceptions import DecodeError
from .models import NormalizedNode, status_for_uptime

logger = logging.getLogger(__name__)


@dataclass
class NormalizeOutcome:
    """Accepted nodes plus the per-record failures that were discarded"""
    nodes: List[NormalizedNode] = field(default_factory=list)
    errors: List[DecodeError] = field(default_factory=list)

    @property
    def rejected(self) -> int:
        return len(self.errors)


def extract_node_array(body: Any) -> Optional[List[Any]]:
    """
    Find the node list in a decoded response body.

    Shapes tried in order: result is a list, result.pods is a list,
    the body itself is a list.
    """
    if isinstance(body, list):
        return body
    if not isinstance(body, dict):
        return None

    result = body.get("result")
    if isinstance(result, list):
        return result
    if isinstance(result, dict):
        pods = result.get("pods")
        if isinstance(pods, list):
            return pods
    return None


def _finite(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


def coerce_number(value: Any) -> Optional[float]:
    """Numbers pass through, numeric strings are parsed, anything else is None"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _finite(float(value))
    if isinstance(value, str):
        try:
            return _finite(float(value.strip()))
        except ValueError:
            return None
    return None


def coerce_uptime(value: Any) -> float:
    """Uptime in seconds, never negative, 0 when absent or unparseable"""
    uptime = coerce_number(value)
    if uptime is None or uptime < 0:
        return 0.0
    return uptime


def _coerce_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    number = coerce_number(value)
    if number is None:
        return default
    return int(number)


def _coerce_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _coerce_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    if isinstance(value, (int, float)):
        return bool(value)
    return None


def decode_record(raw: Any, index: int = 0) -> NormalizedNode:
    """Decode one raw record, raising DecodeError if it cannot be a node"""
    if isinstance(raw, NormalizedNode):
        raw = raw.to_dict()
    if not isinstance(raw, dict):
        raise DecodeError(index, f"expected an object, got {type(raw).__name__}")

    pubkey = raw.get("pubkey")
    if not isinstance(pubkey, str) or not pubkey.strip():
        raise DecodeError(index, "missing pubkey")

    address = raw.get("address")
    if not isinstance(address, str) or not address.strip():
        raise DecodeError(index, f"missing address for {pubkey}")

    uptime = coerce_uptime(raw.get("uptime"))
    usage = coerce_number(raw.get("storage_usage_percent"))
    stake = coerce_number(raw.get("stake"))
    region = raw.get("region")

    return NormalizedNode(
        pubkey=pubkey,
        address=address,
        uptime=uptime,
        status=status_for_uptime(uptime),
        storage_committed=_coerce_int(raw.get("storage_committed")),
        storage_used=_coerce_int(raw.get("storage_used")),
        storage_usage_percent=usage if usage is not None else 0.0,
        version=_coerce_str(raw.get("version")),
        is_public=_coerce_bool(raw.get("is_public")),
        rpc_port=_coerce_int(raw.get("rpc_port"), default=None),
        last_seen_timestamp=coerce_number(raw.get("last_seen_timestamp")),
        region=region if isinstance(region, str) and region else None,
        stake=stake if stake is not None and stake >= 0 else 0.0,
    )


def normalize_records(records: Sequence[Any]) -> NormalizeOutcome:
    """Decode every record independently; bad records never sink the batch"""
    outcome = NormalizeOutcome()
    for index, raw in enumerate(records):
        try:
            outcome.nodes.append(decode_record(raw, index))
        except DecodeError as e:
            outcome.errors.append(e)

    if outcome.errors:
        logger.debug(f"Discarded {outcome.rejected} of {len(records)} records; first: {outcome.errors[0]}")
    return outcome


def normalize_response(body: Any) -> NormalizeOutcome:
    """Extract and decode the node array of a response body"""
    records = extract_node_array(body)
    if records is None:
        return NormalizeOutcome()
    return normalize_records(records)


def is_usable(outcome: NormalizeOutcome) -> bool:
    """A response is structurally valid when it yields at least one node"""
    return bool(outcome.nodes)
