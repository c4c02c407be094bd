#!/usr/bin/env python3
"""
Credit Enricher
Fetches the pod credits feed and merges stake onto nodes by identity
"""

import logging
from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import requests

from .models import NormalizedNode
from .normalizer import coerce_number

logger = logging.getLogger(__name__)

PREFIX_LENGTH = 8


class CreditFeedClient:
    """HTTP GET client for the {pubkey: credits} feed"""

    def __init__(self, url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self) -> Dict[str, float]:
        """Return the credit table, or an empty table if the feed is unavailable"""
        try:
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as e:
            logger.warning(f"Credit feed timed out: {e}")
            return {}
        except ValueError as e:
            logger.warning(f"Credit feed returned non-JSON body: {e}")
            return {}
        except requests.exceptions.RequestException as e:
            logger.warning(f"Failed to fetch pod credits: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Credit feed returned {type(data).__name__}, expected an object")
            return {}

        table = {}
        skipped = 0
        for key, value in data.items():
            credits = coerce_number(value)
            # stake is never negative
            if credits is None or credits < 0:
                skipped += 1
                continue
            table[str(key)] = credits

        if skipped:
            logger.debug(f"Skipped {skipped} non-numeric credit entries")
        logger.info(f"Loaded {len(table)} credit entries")
        return table


def find_credit(pubkey: Optional[str], table: Mapping[str, float],
                keys: Optional[Sequence[Tuple[str, str]]] = None) -> float:
    """
    Look up a node's stake with progressively looser matching.

    Order: exact key, trimmed key, case-insensitive trimmed key, then
    the first 8 characters of the identity as a key prefix.
    """
    if not pubkey or not table:
        return 0.0

    if pubkey in table:
        return table[pubkey]

    trimmed = pubkey.strip()
    if not trimmed:
        return 0.0
    if trimmed in table:
        return table[trimmed]

    # (original key, trimmed key) pairs, built once per merge by the caller
    if keys is None:
        keys = [(key, key.strip()) for key in table]

    lowered = trimmed.lower()
    for key, clean in keys:
        if clean.lower() == lowered:
            return table[key]

    prefix = trimmed[:PREFIX_LENGTH]
    for key, clean in keys:
        if clean.startswith(prefix):
            return table[key]

    return 0.0


def merge_credits(nodes: Sequence[NormalizedNode], table: Mapping[str, float]) -> List[NormalizedNode]:
    """Return copies of the nodes with stake set from the credit table"""
    keys = [(key, key.strip()) for key in table]

    merged = []
    for node in nodes:
        stake = max(find_credit(node.pubkey, table, keys) or 0.0, 0.0)
        merged.append(replace(node, stake=stake))
    return merged


def count_matched(nodes: Sequence[NormalizedNode]) -> int:
    return sum(1 for node in nodes if node.stake > 0)
