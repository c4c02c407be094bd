#!/usr/bin/env python3
"""
Standard Response Format for PRPC-AGGREGATOR Library
Simple, consistent JSON structure across all responses
"""

import json
from datetime import datetime
from typing import Dict, List, Any

from .config import VERSION
from .models import AggregateResult


def standard_response(
    data: List[Dict[str, Any]],
    operation: str = "refresh",
    status: str = "success",
    execution_time_ms: int = 0,
    **meta_fields
) -> Dict[str, Any]:
    """
    Create standard response format used across the library

    Args:
        data: List of result objects
        operation: Operation type (refresh, cache, etc.)
        status: success/error/partial
        execution_time_ms: Time taken for operation
        **meta_fields: Additional metadata fields

    Returns:
        Standardized response dictionary with data/meta structure
    """
    data_type = meta_fields.pop("data_type", "result")
    formatted_data = [{"type": data_type, "payload": item} for item in data]

    meta = {
        "status": status,
        "timestamp": datetime.now().isoformat(),
        "operation": operation,
        "execution_time_ms": execution_time_ms,
        "total_items": len(formatted_data),
        "version": VERSION
    }
    meta.update(meta_fields)

    return {
        "data": formatted_data,
        "meta": meta
    }


def aggregate_response(result: AggregateResult) -> Dict[str, Any]:
    """Wrap a refresh result in the data/meta envelope"""
    if result.from_cache:
        status = "cached"
    elif not result.nodes:
        status = "empty"
    elif result.health.trusted:
        status = "success"
    else:
        status = "partial"

    return standard_response(
        [node.to_dict() for node in result.nodes],
        operation="cache" if result.from_cache else "refresh",
        status=status,
        execution_time_ms=result.meta.duration_ms,
        data_type="pnode",
        fetch=result.meta.to_dict(),
        health=result.health.to_dict(),
        stats=result.stats,
        credits_matched=result.credits_matched,
        cached_at=result.cached_at,
    )


def error_response(error_message: str, operation: str = "refresh") -> Dict[str, Any]:
    """Create standard error response"""
    return {
        "data": [],
        "meta": {
            "status": "error",
            "timestamp": datetime.now().isoformat(),
            "operation": operation,
            "error": error_message,
            "total_items": 0,
            "version": VERSION
        }
    }


def format_json(response: Dict[str, Any], pretty: bool = False) -> str:
    """Format response as JSON string"""
    if pretty:
        return json.dumps(response, indent=2, default=str)
    return json.dumps(response, separators=(',', ':'), default=str)
