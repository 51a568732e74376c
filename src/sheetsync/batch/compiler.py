"""Batch compiler: execute planned batches against the remote API.

Resource groups run concurrently through a :class:`ConcurrencyGate`; the
batches of one group run strictly one after another, so a spreadsheet never
sees its writes out of order.  A failed batch ends its own group (the rest
are reported as skipped) without affecting sibling groups.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from sheetsync.concurrency import ConcurrencyGate
from sheetsync.context import SyncContext
from sheetsync.errors import SheetSyncError
from sheetsync.models import (
    BatchOutcome,
    BatchStatus,
    CompiledBatch,
    ExecutionReport,
    GroupReport,
    MutationIntent,
    ResourceGroup,
)
from sheetsync.observability.events import SyncEvent
from sheetsync.observability.metrics import BATCHES

from .planner import BatchPlanner

_MISSING = object()


class BatchCompiler:
    """Compiles mutation intents into ordered, size-capped remote calls.

    Parameters
    ----------
    api:
        Anything with an async ``batch_update(resource_id, requests)``
        method, normally a :class:`~sheetsync.remote.SpreadsheetAPI`.
    context:
        Shared quota, breaker, cache and observability state.
    max_concurrency:
        Resource groups executing at once.  Defaults to
        ``config.concurrency_limit``.

    Attributes
    ----------
    last_report:
        Report of the most recent :meth:`compile` call, including a partial
        one if that call was cancelled.
    """

    def __init__(
        self,
        api: Any,
        context: SyncContext,
        max_concurrency: int | None = None,
    ) -> None:
        self._api = api
        self._ctx = context
        self._planner = BatchPlanner.from_config(context.config)
        self._gate = ConcurrencyGate(max_concurrency or context.config.concurrency_limit)
        self.last_report: ExecutionReport | None = None

    @property
    def gate(self) -> ConcurrencyGate:
        return self._gate

    def plan(self, intents: list[MutationIntent]) -> list[ResourceGroup]:
        """Plan *intents* without executing anything."""
        return self._planner.plan(intents)

    async def compile(
        self,
        intents: list[MutationIntent],
        dry_run: bool = False,
    ) -> ExecutionReport:
        """Group, pack and execute *intents*.

        Parameters
        ----------
        intents:
            Mutation intents for any number of spreadsheets.
        dry_run:
            Plan only.  Every batch is reported as ``planned`` and no remote
            call is made.

        Returns
        -------
        ExecutionReport
            Per-group outcomes in first-arrival order of the resources.

        Raises
        ------
        CompileError
            The intents violate a grouping or size constraint.  Raised
            before any remote call.
        asyncio.CancelledError
            The call was cancelled.  Queued groups are dropped, batches the
            remote already accepted stay reported as succeeded, and the
            partial report is available on :attr:`last_report`.
        """
        groups = self._planner.plan(intents)
        report = ExecutionReport(
            groups=[GroupReport(group.resource_id) for group in groups],
            dry_run=dry_run,
        )
        self.last_report = report
        t0 = time.monotonic()

        if dry_run:
            for group, group_report in zip(groups, report.groups):
                group_report.outcomes = [
                    BatchOutcome(batch, BatchStatus.PLANNED) for batch in group.batches
                ]
            self._emit("batch.completed", report, t0)
            return report

        progress = {"current": 0, "total": sum(len(group.batches) for group in groups)}
        tasks = [
            self._gate.submit(
                lambda g=group, r=group_report: self._run_group(g, r, progress)
            )
            for group, group_report in zip(groups, report.groups)
        ]
        try:
            if tasks:
                await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._mark_cancelled(groups, report)
            self._emit("batch.cancelled", report, t0)
            raise

        self._emit("batch.completed", report, t0)
        return report

    # -- execution ----------------------------------------------------------

    async def _run_group(
        self,
        group: ResourceGroup,
        report: GroupReport,
        progress: dict[str, int],
    ) -> None:
        for position, batch in enumerate(group.batches):
            outcome = await self._run_batch(batch)
            self._record(report, outcome, progress)
            if outcome.status == BatchStatus.FAILED:
                for skipped in group.batches[position + 1:]:
                    self._record(report, BatchOutcome(skipped, BatchStatus.SKIPPED), progress)
                return

    def _record(self, report: GroupReport, outcome: BatchOutcome, progress: dict[str, int]) -> None:
        report.outcomes.append(outcome)
        self._ctx.metrics.increment(BATCHES, tags={"status": outcome.status.value})
        progress["current"] += 1
        self._ctx.events.emit(SyncEvent("batch.progress", {
            "resource_id": outcome.batch.resource_id,
            "batch_index": outcome.batch.index,
            "status": outcome.status.value,
            "current": progress["current"],
            "total": progress["total"],
        }))

    async def _run_batch(self, batch: CompiledBatch) -> BatchOutcome:
        cache = self._ctx.cache
        if batch.replay_safe:
            cached = cache.get(batch.fingerprint, _MISSING)
            if cached is not _MISSING:
                return BatchOutcome(batch, BatchStatus.CACHED, response=cached)

        loop = self._ctx.retry_loop()
        try:
            response = await loop.run(
                lambda: self._api.batch_update(batch.resource_id, batch.requests),
                label=f"batchUpdate {batch.resource_id}#{batch.index}",
            )
        except Exception as exc:
            if isinstance(exc, SheetSyncError):
                exc.context.setdefault("resource_id", batch.resource_id)
                exc.context.setdefault("batch_index", batch.index)
                exc.context.setdefault("attempts", loop.attempts)
            return BatchOutcome(batch, BatchStatus.FAILED, attempts=loop.attempts, error=exc)

        if batch.replay_safe:
            cache.put(batch.fingerprint, response)
        return BatchOutcome(batch, BatchStatus.SUCCEEDED, attempts=loop.attempts, response=response)

    # -- reporting ----------------------------------------------------------

    @staticmethod
    def _mark_cancelled(groups: list[ResourceGroup], report: ExecutionReport) -> None:
        report.cancelled = True
        for group, group_report in zip(groups, report.groups):
            done = len(group_report.outcomes)
            for batch in group.batches[done:]:
                group_report.outcomes.append(BatchOutcome(batch, BatchStatus.CANCELLED))

    def _emit(self, name: str, report: ExecutionReport, t0: float) -> None:
        fields = report.summary()
        fields["elapsed_ms"] = round((time.monotonic() - t0) * 1000, 3)
        self._ctx.events.emit(SyncEvent(name, fields))
