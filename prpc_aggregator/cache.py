#!/usr/bin/env python3
"""
Snapshot Cache
Single rolling snapshot of the last successful node set
"""

import json
import math
import time
import logging
import tempfile
from pathlib import Path
from typing import Optional, Sequence

from .exceptions import DecodeError
from .models import NormalizedNode, Snapshot
from .normalizer import decode_record

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = 10 * 60


class SnapshotCache:
    """
    Best-effort JSON snapshot on local disk.

    Writes go to a temporary sibling and are renamed into place, so a
    reader never sees a partial file. Failures are logged, never raised.
    """

    def __init__(self, path: Optional[str] = None):
        if path:
            self.path = Path(path)
        else:
            self.path = Path(tempfile.gettempdir()) / "prpc_aggregator_snapshot.json"
        logger.debug(f"SnapshotCache using {self.path}")

    def save(self, nodes: Sequence[NormalizedNode], timestamp: Optional[float] = None) -> bool:
        """Overwrite the snapshot; returns False if the write was dropped"""
        payload = {
            "timestamp": time.time() if timestamp is None else timestamp,
            "nodes": [node.to_dict() for node in nodes],
        }
        temp_file = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w") as f:
                json.dump(payload, f, separators=(",", ":"))
            temp_file.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save snapshot: {e}")
            try:
                temp_file.unlink()
            except OSError:
                pass
            return False

        logger.debug(f"Snapshot saved with {len(nodes)} nodes")
        return True

    def load(self, max_age: float = DEFAULT_MAX_AGE, now: Optional[float] = None) -> Optional[Snapshot]:
        """Return the snapshot if younger than max_age seconds, otherwise None"""
        if not self.path.exists():
            logger.debug("No snapshot file found")
            return None

        try:
            with open(self.path, "r") as f:
                payload = json.load(f)
            timestamp = float(payload["timestamp"])
            records = payload["nodes"]
            if not isinstance(records, list) or not math.isfinite(timestamp):
                raise ValueError("malformed snapshot")
            nodes = [decode_record(record, index) for index, record in enumerate(records)]
        except (OSError, ValueError, KeyError, TypeError, DecodeError) as e:
            logger.warning(f"Failed to load snapshot: {e}")
            return None

        now = time.time() if now is None else now
        age = now - timestamp
        if not age < max_age:
            logger.debug(f"Snapshot is stale ({age:.0f}s old, max {max_age}s)")
            return None

        logger.info(f"Loaded snapshot with {len(nodes)} nodes ({age:.0f}s old)")
        return Snapshot(timestamp=timestamp, nodes=nodes)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
