"""Tests for sheetsync.batch.compiler.BatchCompiler."""

from __future__ import annotations

import asyncio
import dataclasses

import pytest

from sheetsync.batch.compiler import BatchCompiler
from sheetsync.context import SyncContext
from sheetsync.errors import CompileError, RetryExhaustedError, ServerError, ValidationError
from sheetsync.models import BatchStatus, MutationIntent, OperationKind


def make_context(config, clock, **overrides) -> SyncContext:
    return SyncContext.from_config(
        dataclasses.replace(config, **overrides), clock=clock, sleep=clock.sleep,
    )


def update(resource_id: str, name: str, **kwargs) -> MutationIntent:
    return MutationIntent(resource_id, OperationKind.UPDATE, {"updateCells": {"name": name}}, **kwargs)


def statuses(report, resource_id: str) -> list[BatchStatus]:
    return [o.status for o in report.group(resource_id).outcomes]


def sent(fake_api, resource_id: str) -> list[list[str]]:
    return [
        [req["updateCells"]["name"] for req in requests]
        for rid, requests in fake_api.calls
        if rid == resource_id
    ]


class TestCompile:
    @pytest.mark.asyncio
    async def test_per_resource_sequencing_with_cap_of_one(self, fake_api, config, clock):
        fake_api.delay = 0.01
        compiler = BatchCompiler(fake_api, make_context(config, clock, batch_size_cap=1))
        intents = [
            update("S1", "P1"),
            update("S1", "P2"),
            MutationIntent("S2", OperationKind.DELETE, {"updateCells": {"name": "P3"}}),
        ]

        report = await compiler.compile(intents)

        assert report.succeeded
        assert [g.resource_id for g in report.groups] == ["S1", "S2"]
        assert sent(fake_api, "S1") == [["P1"], ["P2"]]
        assert sent(fake_api, "S2") == [["P3"]]
        s1_events = [kind for kind, rid in fake_api.events if rid == "S1"]
        assert s1_events == ["start", "end", "start", "end"]
        assert fake_api.peak_in_flight == 2

    @pytest.mark.asyncio
    async def test_failure_is_isolated_to_its_group(self, fake_api, config, clock):
        fake_api.fail(("batch", "S1"), ValidationError("bad range"))
        compiler = BatchCompiler(fake_api, make_context(config, clock, batch_size_cap=1))
        intents = [update("S1", "a"), update("S1", "b"), update("S1", "c"), update("S2", "d")]

        report = await compiler.compile(intents)

        assert statuses(report, "S1") == [BatchStatus.FAILED, BatchStatus.SKIPPED, BatchStatus.SKIPPED]
        assert statuses(report, "S2") == [BatchStatus.SUCCEEDED]
        assert sent(fake_api, "S1") == [["a"]]
        assert not report.succeeded
        assert [g.resource_id for g in report.failed_groups] == ["S1"]

        error = report.group("S1").first_error
        assert isinstance(error, ValidationError)
        assert error.context["resource_id"] == "S1"
        assert error.context["batch_index"] == 0
        assert error.context["attempts"] == 1

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, fake_api, context, clock):
        fake_api.fail(("batch", "S1"), ServerError("503"))
        report = await BatchCompiler(fake_api, context).compile([update("S1", "a")])

        [outcome] = report.group("S1").outcomes
        assert outcome.status == BatchStatus.SUCCEEDED
        assert outcome.attempts == 2
        assert clock.sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_fail_the_batch(self, fake_api, context):
        fake_api.fail(("batch", "S1"), *(ServerError("503") for _ in range(3)))
        report = await BatchCompiler(fake_api, context).compile([update("S1", "a")])

        [outcome] = report.group("S1").outcomes
        assert outcome.status == BatchStatus.FAILED
        assert outcome.attempts == 3
        assert isinstance(outcome.error, RetryExhaustedError)
        assert outcome.error.context["last_error_code"] == "SERVER_ERROR"

    @pytest.mark.asyncio
    async def test_replay_safe_batches_are_served_from_cache(self, fake_api, context):
        compiler = BatchCompiler(fake_api, context)
        intents = [update("S1", "a", idempotent=True), update("S1", "b", idempotent=True)]

        first = await compiler.compile(intents)
        second = await compiler.compile(intents)

        assert statuses(first, "S1") == [BatchStatus.SUCCEEDED]
        assert statuses(second, "S1") == [BatchStatus.CACHED]
        assert second.group("S1").outcomes[0].response == first.group("S1").outcomes[0].response
        assert len(fake_api.calls) == 1
        assert second.batches_cached == 1

    @pytest.mark.asyncio
    async def test_non_idempotent_batches_always_go_remote(self, fake_api, context):
        compiler = BatchCompiler(fake_api, context)
        intents = [update("S1", "a", idempotent=True), update("S1", "b")]
        await compiler.compile(intents)
        await compiler.compile(intents)
        assert len(fake_api.calls) == 2

    @pytest.mark.asyncio
    async def test_dry_run_plans_without_calling(self, fake_api, context, events):
        report = await BatchCompiler(fake_api, context).compile(
            [update("S1", "a"), update("S2", "b")], dry_run=True,
        )
        assert report.dry_run
        assert report.succeeded
        assert statuses(report, "S1") == [BatchStatus.PLANNED]
        assert fake_api.calls == []
        [event] = events.named("batch.completed")
        assert event.fields["dry_run"] is True

    @pytest.mark.asyncio
    async def test_compile_error_before_any_call(self, fake_api, context):
        with pytest.raises(CompileError):
            await BatchCompiler(fake_api, context).compile([
                update("S1", "a"),
                update("S2", "b", sequence_hint=1),
                update("S2", "c"),
            ])
        assert fake_api.calls == []

    @pytest.mark.asyncio
    async def test_group_concurrency_is_bounded(self, fake_api, context):
        fake_api.delay = 0.01
        compiler = BatchCompiler(fake_api, context, max_concurrency=2)
        report = await compiler.compile([update(f"S{n}", "x") for n in range(6)])

        assert report.succeeded
        assert fake_api.peak_in_flight <= 2
        assert compiler.gate.peak_in_flight == 2

    @pytest.mark.asyncio
    async def test_every_attempt_consumes_quota(self, fake_api, context):
        fake_api.fail(("batch", "S1"), ServerError("503"))
        await BatchCompiler(fake_api, context).compile([update("S1", "a"), update("S2", "b")])
        assert context.guard.window.requests_this_window == 3

    @pytest.mark.asyncio
    async def test_completion_event(self, fake_api, context, events):
        await BatchCompiler(fake_api, context).compile([update("S1", "a")])
        [event] = events.named("batch.completed")
        assert event.fields["succeeded"] == 1
        assert event.fields["failed_groups"] == []
        assert "elapsed_ms" in event.fields

    @pytest.mark.asyncio
    async def test_cancellation_reports_partial_progress(self, fake_api, config, clock, events):
        context = make_context(config, clock, batch_size_cap=1)
        compiler = BatchCompiler(fake_api, context)
        fake_api.delay = 10

        task = asyncio.create_task(compiler.compile([update("S1", "a"), update("S1", "b")]))
        while fake_api.in_flight == 0:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        report = compiler.last_report
        assert report is not None
        assert report.cancelled
        assert not report.succeeded
        assert statuses(report, "S1") == [BatchStatus.CANCELLED, BatchStatus.CANCELLED]
        assert events.named("batch.cancelled")
        assert len(fake_api.calls) == 1

    @pytest.mark.asyncio
    async def test_progress_counts_every_batch(self, fake_api, config, clock, events):
        fake_api.fail(("batch", "S1"), ValidationError("bad range"))
        compiler = BatchCompiler(fake_api, make_context(config, clock, batch_size_cap=1))
        await compiler.compile([update("S1", "a"), update("S1", "b"), update("S1", "c"), update("S2", "d")])

        progress = events.named("batch.progress")
        assert [e.fields["current"] for e in progress] == [1, 2, 3, 4]
        assert all(e.fields["total"] == 4 for e in progress)
        s1 = [(e.fields["batch_index"], e.fields["status"]) for e in progress if e.fields["resource_id"] == "S1"]
        assert s1 == [(0, "failed"), (1, "skipped"), (2, "skipped")]

    @pytest.mark.asyncio
    async def test_dry_run_reports_no_progress(self, fake_api, context, events):
        await BatchCompiler(fake_api, context).compile([update("S1", "a")], dry_run=True)
        assert events.named("batch.progress") == []
