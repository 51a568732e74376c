"""Structured JSON logger for sheetsync.

Every record is emitted as one line of JSON so it can be shipped to a log
pipeline without further parsing::

    {"ts": "2026-01-05T09:30:00.123456+00:00", "level": "INFO",
     "logger": "sheetsync", "message": "batch.completed",
     "event": "batch.completed", "succeeded": 4, "failed": 0}

The core components never log directly; they emit
:class:`~sheetsync.observability.events.SyncEvent` objects, and
:class:`~sheetsync.observability.events.LoggingEventSink` is what turns
those into records on this logger.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


class StructuredFormatter(logging.Formatter):
    """Render a record as one JSON line.

    ``ts``, ``level``, ``logger`` and ``message`` are always present.  For
    records produced by :class:`~sheetsync.observability.events.LoggingEventSink`
    the event payload arrives as ``extra_fields`` and is flattened into the
    line, so ``{"message": "batch.progress", "current": 3, "total": 8}``
    can be filtered on directly.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields: dict[str, Any] | None = getattr(record, "extra_fields", None)
        if extra_fields is not None:
            entry.update(extra_fields)

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(entry, default=str)


# One handler per logger name, so repeated get_logger calls stay idempotent.
_configured_loggers: set[str] = set()


def get_logger(
    name: str = "sheetsync",
    *,
    level: int | str = logging.DEBUG,
    stream: Any | None = None,
) -> logging.Logger:
    """Return the ``sheetsync`` logger (or a child of it) with JSON output.

    Parameters
    ----------
    name:
        ``"sheetsync"`` or a dotted child such as ``"sheetsync.events"``,
        which is where the default event sink writes.  Each name gets its
        own handler and does not propagate.
    level:
        Threshold, as an ``int`` or a level name in any case.
    stream:
        Where records go.  ``sys.stderr`` when omitted.

    Returns
    -------
    logging.Logger
        Configured on first request; later calls with the same *name*
        return it unchanged.
    """
    logger = logging.getLogger(name)

    if name not in _configured_loggers:
        resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
        logger.setLevel(resolved)

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.propagate = False

        _configured_loggers.add(name)

    return logger
