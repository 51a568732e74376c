"""Diff engine: capture spreadsheet snapshots and compare them.

Sheet enumeration and every per-sheet fetch go through the shared
:class:`~sheetsync.remote.QuotaGuard` with retries; fetches run under a
:class:`ConcurrencyGate`.  A diff either sees every sheet or fails: a
partial change set would be indistinguishable from "no change" for the
sheets that could not be read.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from sheetsync.concurrency import ConcurrencyGate
from sheetsync.context import SyncContext
from sheetsync.errors import DiffError, error_code
from sheetsync.models import ChangeKind, ChangeSet, Snapshot
from sheetsync.observability.events import SyncEvent
from sheetsync.observability.metrics import DIFF_UNITS
from sheetsync.utils.hashing import fingerprint

from .planner import compare_snapshots
from .snapshot import take_snapshot, unit_id_of

_MISSING = object()


def diff_fingerprint(previous_fingerprint: str | None, current_fingerprint: str) -> str:
    """Cache key of a change set: the pair of snapshot fingerprints."""
    return fingerprint({"diff": [previous_fingerprint, current_fingerprint]})


class DiffEngine:
    """Computes change sets between snapshots of one spreadsheet.

    Parameters
    ----------
    api:
        Anything with async ``list_sheets(resource_id)`` and
        ``read_sheet(resource_id, title)`` methods, normally a
        :class:`~sheetsync.remote.SpreadsheetAPI`.
    context:
        Shared quota, breaker, cache and observability state.
    max_concurrency:
        Sheet fetches in flight at once.  Defaults to
        ``config.concurrency_limit``.
    block_rows:
        Rows per fingerprinted block.  Defaults to ``config.diff_block_rows``.
    """

    def __init__(
        self,
        api: Any,
        context: SyncContext,
        max_concurrency: int | None = None,
        block_rows: int | None = None,
    ) -> None:
        self._api = api
        self._ctx = context
        self._gate = ConcurrencyGate(max_concurrency or context.config.concurrency_limit)
        self._block_rows = block_rows or context.config.diff_block_rows

    @property
    def gate(self) -> ConcurrencyGate:
        return self._gate

    async def diff(self, resource_id: str, previous: Snapshot | None = None) -> ChangeSet:
        """Capture *resource_id* and compare it against *previous*.

        With ``previous=None`` every sheet is reported as added (initial
        sync).  The returned :class:`ChangeSet` carries the new snapshot,
        to be passed as *previous* next time.

        Raises
        ------
        DiffError
            A sheet could not be enumerated or fetched after retries.
            ``context`` names ``failed_units``, ``units_fetched``,
            ``units_total`` and per-unit ``attempts``.
        """
        if previous is not None and previous.resource_id != resource_id:
            raise DiffError(
                message=(
                    f"Previous snapshot belongs to {previous.resource_id!r}, "
                    f"not {resource_id!r}"
                ),
                context={"resource_id": resource_id, "previous_resource_id": previous.resource_id},
            )

        t0 = time.monotonic()
        try:
            current = await self.capture(resource_id)
        except DiffError as exc:
            self._ctx.events.emit(SyncEvent("diff.failed", {
                "resource_id": resource_id,
                "failed_units": exc.context.get("failed_units", []),
                "units_fetched": exc.context.get("units_fetched", 0),
                "units_total": exc.context.get("units_total"),
                "attempts": exc.context.get("attempts", {}),
            }))
            raise

        previous_fp = previous.fingerprint if previous is not None else None
        key = diff_fingerprint(previous_fp, current.fingerprint)
        cached = self._ctx.cache.get(key, _MISSING)
        cache_hit = cached is not _MISSING
        if not cache_hit:
            cached = tuple(compare_snapshots(previous, current))
            self._ctx.cache.put(key, cached)
        change_set = ChangeSet(
            resource_id=resource_id,
            records=list(cached),
            previous_fingerprint=previous_fp,
            current_fingerprint=current.fingerprint,
            snapshot=current,
        )

        for kind in ChangeKind:
            count = len(change_set.of_kind(kind))
            if count:
                self._ctx.metrics.increment(DIFF_UNITS, count, tags={"change": kind.value})
        self._ctx.events.emit(SyncEvent("diff.completed", {
            "resource_id": resource_id,
            "units": len(current.units),
            "added": len(change_set.added),
            "removed": len(change_set.removed),
            "modified": len(change_set.modified),
            "cached": cache_hit,
            "elapsed_ms": round((time.monotonic() - t0) * 1000, 3),
        }))
        return change_set

    async def capture(self, resource_id: str) -> Snapshot:
        """Fetch every sheet of *resource_id* and build a snapshot.

        Raises
        ------
        DiffError
            Enumeration or any sheet fetch failed.  The remaining fetches
            are cancelled.
        """
        listing = self._ctx.retry_loop()
        try:
            sheets = await listing.run(
                lambda: self._api.list_sheets(resource_id),
                label=f"list_sheets {resource_id}",
            )
        except Exception as exc:
            raise DiffError(
                message=f"Could not enumerate sheets of {resource_id!r}: {exc}",
                context={
                    "resource_id": resource_id,
                    "stage": "enumerate",
                    "failed_units": [],
                    "units_fetched": 0,
                    "units_total": None,
                    "attempts": {"<enumerate>": listing.attempts},
                },
                cause=exc,
            ) from exc

        unit_ids = [unit_id_of(props) for props in sheets]
        values: dict[str, list[list[Any]]] = {}
        attempts: dict[str, int] = {}

        async def fetch(props: dict[str, Any], unit_id: str) -> None:
            loop = self._ctx.retry_loop()
            try:
                values[unit_id] = await loop.run(
                    lambda: self._api.read_sheet(resource_id, props.get("title", "")),
                    label=f"get_values {resource_id}/{unit_id}",
                )
            finally:
                attempts[unit_id] = loop.attempts
            self._ctx.events.emit(SyncEvent("diff.progress", {
                "resource_id": resource_id,
                "unit_id": unit_id,
                "current": len(values),
                "total": len(unit_ids),
            }))

        tasks = [
            self._gate.submit(lambda p=props, u=uid: fetch(p, u))
            for props, uid in zip(sheets, unit_ids)
        ]
        try:
            if tasks:
                await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        failures = [
            (uid, task.exception())
            for uid, task in zip(unit_ids, tasks)
            if task.done() and not task.cancelled() and task.exception() is not None
        ]
        if failures:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            failed_units = [uid for uid, _ in failures]
            first_error = failures[0][1]
            raise DiffError(
                message=(
                    f"Diff of {resource_id!r} failed: {len(failed_units)} of {len(unit_ids)} "
                    f"sheet fetches failed ({', '.join(failed_units)}); "
                    f"{len(values)} fetched before the diff was abandoned"
                ),
                context={
                    "resource_id": resource_id,
                    "stage": "fetch",
                    "failed_units": failed_units,
                    "units_fetched": len(values),
                    "units_total": len(unit_ids),
                    "attempts": {uid: attempts.get(uid, 0) for uid in failed_units},
                    "error_codes": {uid: error_code(err) for uid, err in failures},
                },
                cause=first_error if isinstance(first_error, Exception) else None,
            ) from first_error

        return take_snapshot(
            resource_id,
            ((props, values[uid]) for props, uid in zip(sheets, unit_ids)),
            self._block_rows,
        )
