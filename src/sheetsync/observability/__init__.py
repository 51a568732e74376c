"""Observability: structured logging, metrics hooks and event sinks."""

from __future__ import annotations

from .events import (
    EventSink,
    LoggingEventSink,
    NoopEventSink,
    RecordingEventSink,
    SyncEvent,
)
from .logger import StructuredFormatter, get_logger
from .metrics import MetricsHook, NoopMetricsHook

__all__ = [
    "EventSink",
    "LoggingEventSink",
    "MetricsHook",
    "NoopEventSink",
    "NoopMetricsHook",
    "RecordingEventSink",
    "StructuredFormatter",
    "SyncEvent",
    "get_logger",
]
