"""Asynchronous sheetsync client.

:class:`AsyncSheetSyncClient` wires the transport, the spreadsheet API
wrapper, the batch compiler and the diff engine around one
:class:`SyncContext`.  Components are built lazily on first use.

Usage::

    import asyncio
    from sheetsync import AsyncSheetSyncClient, MutationIntent, OperationKind

    async def main():
        async with AsyncSheetSyncClient(token="ya29.xxx") as client:
            report = await client.apply([
                MutationIntent("sheet-1", OperationKind.UPDATE, {"updateCells": {...}}),
            ])
            changes = await client.diff("sheet-1")
            later = await client.diff("sheet-1", previous=changes.snapshot)

    asyncio.run(main())
"""

from __future__ import annotations

from typing import Any

import httpx

from sheetsync.batch.compiler import BatchCompiler
from sheetsync.config import SheetSyncConfig
from sheetsync.context import LazyComponents, SyncContext
from sheetsync.diff.engine import DiffEngine
from sheetsync.models import ChangeSet, ExecutionReport, MutationIntent, Snapshot
from sheetsync.remote.spreadsheets import SpreadsheetAPI
from sheetsync.remote.transport import AsyncTransport


class AsyncSheetSyncClient:
    """Asynchronous batching and diffing client.

    Parameters
    ----------
    token:
        Bearer token.  When neither *token*, *config* nor *context* is
        given, the configuration is read from ``SHEETSYNC_*`` environment
        variables.
    config:
        A ready :class:`SheetSyncConfig`.  Mutually exclusive with *token*
        and *kwargs*.
    context:
        A :class:`SyncContext` to share quota, breaker and cache state with
        other clients.  Its config is used when *config* is omitted.
    api:
        Replacement for the :class:`SpreadsheetAPI` (e.g. a fake).
    http_client:
        Pre-built :class:`httpx.AsyncClient` for the transport.
    **kwargs:
        Forwarded to :class:`SheetSyncConfig`.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        config: SheetSyncConfig | None = None,
        context: SyncContext | None = None,
        api: Any | None = None,
        http_client: httpx.AsyncClient | None = None,
        **kwargs: Any,
    ) -> None:
        if config is not None and (token is not None or kwargs):
            raise ValueError("pass either config= or token/keyword settings, not both")
        if config is None:
            if context is not None and token is None and not kwargs:
                config = context.config
            elif token is not None:
                config = SheetSyncConfig(token=token, **kwargs)
            else:
                config = SheetSyncConfig.from_env(**kwargs)

        self._config = config
        self._context = context if context is not None else SyncContext.from_config(config)
        self._components = LazyComponents()
        self._components.register("transport", lambda: AsyncTransport(self._config, client=http_client))
        self._components.register(
            "api",
            lambda: api if api is not None else SpreadsheetAPI(self._components.get("transport")),
        )
        self._components.register(
            "compiler",
            lambda: BatchCompiler(self._components.get("api"), self._context),
        )
        self._components.register(
            "engine",
            lambda: DiffEngine(self._components.get("api"), self._context),
        )

    @property
    def config(self) -> SheetSyncConfig:
        return self._config

    @property
    def context(self) -> SyncContext:
        return self._context

    @property
    def compiler(self) -> BatchCompiler:
        compiler: BatchCompiler = self._components.get("compiler")
        return compiler

    @property
    def engine(self) -> DiffEngine:
        engine: DiffEngine = self._components.get("engine")
        return engine

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def apply(
        self,
        intents: list[MutationIntent],
        dry_run: bool = False,
    ) -> ExecutionReport:
        """Compile and execute *intents*.  See :meth:`BatchCompiler.compile`."""
        return await self.compiler.compile(intents, dry_run=dry_run)

    async def diff(self, resource_id: str, previous: Snapshot | None = None) -> ChangeSet:
        """Diff *resource_id* against *previous*.  See :meth:`DiffEngine.diff`."""
        return await self.engine.diff(resource_id, previous)

    async def capture(self, resource_id: str) -> Snapshot:
        """Capture a snapshot of *resource_id* without comparing it."""
        return await self.engine.capture(resource_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the transport if it was ever opened."""
        if self._components.is_loaded("transport"):
            transport: AsyncTransport = self._components.get("transport")
            await transport.close()

    async def __aenter__(self) -> AsyncSheetSyncClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
