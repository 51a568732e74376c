"""Structured events emitted by the core components.

Circuit transitions, quota waits, retries, cache evictions, progress and
batch/diff completions are reported as :class:`SyncEvent` values handed to
an :class:`EventSink`.  The core never writes to a console or a log itself:
sinks decide what happens to an event.

Event names:

* ``circuit.transition`` -- ``from_state``, ``to_state``, ``failures``
* ``quota.wait``         -- ``wait_seconds``, ``requests_this_window``
* ``retry.scheduled``    -- ``label``, ``attempt``, ``delay_seconds``, ``error_code``
* ``cache.evicted``      -- ``fingerprint``, ``bytes``, ``reason``
* ``batch.progress``     -- ``resource_id``, ``batch_index``, ``status``, ``current``, ``total``
* ``batch.completed``    -- succeeded / failed / skipped / cached counts
* ``batch.cancelled``    -- the same counts for the partial report
* ``diff.progress``      -- ``resource_id``, ``unit_id``, ``current``, ``total``
* ``diff.completed``     -- ``resource_id``, added / removed / modified counts
* ``diff.failed``        -- ``resource_id``, ``failed_units``, ``attempts``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from .logger import get_logger


@dataclass(frozen=True)
class SyncEvent:
    """One observability event.

    Attributes
    ----------
    name:
        Dotted event name, e.g. ``"circuit.transition"``.
    fields:
        Event payload.  Values are JSON-friendly scalars or lists.
    ts:
        UTC time the event was created.
    """

    name: str
    fields: dict[str, Any] = field(default_factory=dict)
    ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class EventSink(Protocol):
    """Anything that accepts :class:`SyncEvent` objects."""

    def emit(self, event: SyncEvent) -> None:
        ...


class NoopEventSink:
    """Sink that drops every event."""

    __slots__ = ()

    def emit(self, event: SyncEvent) -> None:
        pass


class RecordingEventSink:
    """Sink that keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list[SyncEvent] = []

    def emit(self, event: SyncEvent) -> None:
        self.events.append(event)

    def named(self, name: str) -> list[SyncEvent]:
        return [e for e in self.events if e.name == name]

    @property
    def names(self) -> list[str]:
        return [e.name for e in self.events]

    def clear(self) -> None:
        self.events.clear()


_WARNING_EVENTS = frozenset({"diff.failed", "batch.cancelled"})


class LoggingEventSink:
    """Sink that forwards events to the structured JSON logger.

    Events become records whose message is the event name and whose
    ``extra_fields`` carry the payload.  Circuits opening, failed diffs
    and cancelled compiles log at ``WARNING``; everything else at
    *level*.
    """

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.INFO) -> None:
        self._logger = logger or get_logger("sheetsync.events")
        self._level = level

    def emit(self, event: SyncEvent) -> None:
        level = self._level
        if event.name in _WARNING_EVENTS or (
            event.name == "circuit.transition" and event.fields.get("to_state") == "open"
        ):
            level = logging.WARNING
        self._logger.log(
            level,
            event.name,
            extra={"extra_fields": {"event": event.name, **event.fields}},
        )
