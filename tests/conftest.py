"""Shared test fixtures for the sheetsync test suite."""

from __future__ import annotations

import asyncio
import copy
from typing import Any

import pytest

from sheetsync.config import SheetSyncConfig
from sheetsync.context import SyncContext
from sheetsync.observability.events import RecordingEventSink


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeSheetsAPI:
    """In-memory stand-in for :class:`SpreadsheetAPI`.

    Scripted failures are queued per key and raised by the next matching
    call: ``("batch", resource_id)``, ``("list", resource_id)`` or
    ``("read", resource_id, title)``.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[dict[str, Any]]]] = []
        self.reads: list[tuple[str, str]] = []
        self.sheets: dict[str, list[dict[str, Any]]] = {}
        self.values: dict[tuple[str, str], list[list[Any]]] = {}
        self.failures: dict[tuple[str, ...], list[BaseException]] = {}
        self.delay = 0.0
        self.in_flight = 0
        self.peak_in_flight = 0
        self.events: list[tuple[str, str]] = []

    # -- scripting ----------------------------------------------------------

    def fail(self, key: tuple[str, ...], *errors: BaseException) -> None:
        self.failures.setdefault(key, []).extend(errors)

    def set_sheet(self, resource_id: str, sheet_id: int, title: str, values: list[list[Any]]) -> None:
        sheets = self.sheets.setdefault(resource_id, [])
        for props in sheets:
            if props["sheetId"] == sheet_id:
                old_title = props["title"]
                props["title"] = title
                self.values.pop((resource_id, old_title), None)
                break
        else:
            sheets.append({"sheetId": sheet_id, "title": title, "index": len(sheets)})
        self.values[(resource_id, title)] = values

    def remove_sheet(self, resource_id: str, sheet_id: int) -> None:
        sheets = self.sheets[resource_id]
        for props in list(sheets):
            if props["sheetId"] == sheet_id:
                sheets.remove(props)
                self.values.pop((resource_id, props["title"]), None)

    # -- API surface --------------------------------------------------------

    async def _enter(self, key: tuple[str, ...]) -> None:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            queue = self.failures.get(key)
            if queue:
                raise queue.pop(0)
        finally:
            self.in_flight -= 1

    async def batch_update(self, resource_id: str, requests: list[dict[str, Any]]) -> dict[str, Any]:
        self.calls.append((resource_id, list(requests)))
        self.events.append(("start", resource_id))
        try:
            await self._enter(("batch", resource_id))
        finally:
            self.events.append(("end", resource_id))
        return {"spreadsheetId": resource_id, "replies": [{} for _ in requests]}

    async def list_sheets(self, resource_id: str) -> list[dict[str, Any]]:
        await self._enter(("list", resource_id))
        return copy.deepcopy(self.sheets.get(resource_id, []))

    async def read_sheet(self, resource_id: str, title: str) -> list[list[Any]]:
        self.reads.append((resource_id, title))
        await self._enter(("read", resource_id, title))
        return copy.deepcopy(self.values.get((resource_id, title), []))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def config(events: RecordingEventSink) -> SheetSyncConfig:
    """Default test configuration with a dummy token and fast, deterministic retries."""
    return SheetSyncConfig(
        token="test_token_1234",
        retry_max_attempts=3,
        retry_base_delay=1.0,
        retry_max_delay=8.0,
        retry_jitter=False,
        quota_requests_per_window=1000,
        attempt_timeout_seconds=5.0,
        events=events,
    )


@pytest.fixture
def context(config: SheetSyncConfig, clock: FakeClock) -> SyncContext:
    """Shared state driven by the fake clock."""
    return SyncContext.from_config(config, clock=clock, sleep=clock.sleep)


@pytest.fixture
def fake_api() -> FakeSheetsAPI:
    return FakeSheetsAPI()
