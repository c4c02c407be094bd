#!/usr/bin/env python3
"""
Progress Observers
Fire-and-forget diagnostics emitted by the aggregation pipeline
"""

import logging
from typing import Callable, List, Optional

from .models import FetchMeta, ProgressEvent

logger = logging.getLogger(__name__)


class ProgressObserver:
    """Receives progress and per-cycle meta; default implementation ignores both"""

    def on_progress(self, event: ProgressEvent) -> None:
        pass

    def on_fetch_meta(self, meta: FetchMeta) -> None:
        pass


class LoggingObserver(ProgressObserver):
    """Writes every notification to the log"""

    def __init__(self, level: int = logging.DEBUG):
        self.level = level

    def on_progress(self, event: ProgressEvent) -> None:
        logger.log(self.level, f"pRPC progress: {event.responded}/{event.attempted} endpoints responded")

    def on_fetch_meta(self, meta: FetchMeta) -> None:
        logger.log(self.level, f"pRPC fetch: {meta.responded}/{meta.attempted} responded in {meta.duration_ms}ms (source={meta.source})")


class CallbackObserver(ProgressObserver):
    """Adapts plain callables to the observer interface"""

    def __init__(self,
                 on_progress: Optional[Callable[[ProgressEvent], None]] = None,
                 on_fetch_meta: Optional[Callable[[FetchMeta], None]] = None):
        self._on_progress = on_progress
        self._on_fetch_meta = on_fetch_meta

    def on_progress(self, event: ProgressEvent) -> None:
        if self._on_progress:
            self._on_progress(event)

    def on_fetch_meta(self, meta: FetchMeta) -> None:
        if self._on_fetch_meta:
            self._on_fetch_meta(meta)


class RecordingObserver(ProgressObserver):
    """Keeps every notification in memory"""

    def __init__(self):
        self.events: List[ProgressEvent] = []
        self.metas: List[FetchMeta] = []

    def on_progress(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def on_fetch_meta(self, meta: FetchMeta) -> None:
        self.metas.append(meta)


def emit_progress(observer: Optional[ProgressObserver], event: ProgressEvent) -> None:
    """Deliver a progress event; observer failures never reach the pipeline"""
    if observer is None:
        return
    try:
        observer.on_progress(event)
    except Exception as e:
        logger.debug(f"Progress observer failed: {e}")


def emit_fetch_meta(observer: Optional[ProgressObserver], meta: FetchMeta) -> None:
    if observer is None:
        return
    try:
        observer.on_fetch_meta(meta)
    except Exception as e:
        logger.debug(f"Fetch meta observer failed: {e}")
