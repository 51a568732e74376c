"""sheetsync -- quota-aware batching and diffing for spreadsheet APIs.

Public re-exports
-----------------

* **Client:** :class:`AsyncSheetSyncClient`
* **Core:** :class:`BatchCompiler`, :class:`DiffEngine`, :class:`SyncContext`
* **Configuration:** :class:`SheetSyncConfig`
* **Errors:** Every :class:`SheetSyncError` subclass and :class:`ErrorCode`
* **Models:** Intents, batches, reports, snapshots and change sets

Usage::

    from sheetsync import AsyncSheetSyncClient, MutationIntent, OperationKind

    async with AsyncSheetSyncClient(token="ya29.xxx") as client:
        report = await client.apply([
            MutationIntent("sheet-1", OperationKind.UPDATE, {"updateCells": {...}}),
        ])
"""

from __future__ import annotations

# ── Core ───────────────────────────────────────────────────────────────
from sheetsync.batch import BatchCompiler, BatchPlanner, plan_groups
from sheetsync.cache import ArtifactCache

# ── Client ─────────────────────────────────────────────────────────────
from sheetsync.client import AsyncSheetSyncClient
from sheetsync.concurrency import ConcurrencyGate

# ── Configuration ──────────────────────────────────────────────────────
from sheetsync.config import (
    DEFAULT_MAX_PAYLOAD_BYTES,
    GOOGLE_SHEETS_MAX_BATCH_REQUESTS,
    SheetSyncConfig,
)
from sheetsync.context import LazyComponents, SyncContext
from sheetsync.diff import DiffEngine, compare_snapshots, take_snapshot

# ── Errors ─────────────────────────────────────────────────────────────
from sheetsync.errors import (
    AttemptTimeoutError,
    AuthError,
    CircuitOpenError,
    CompileError,
    DiffError,
    ErrorCode,
    NetworkError,
    NotFoundError,
    PermanentRemoteError,
    PermissionDeniedError,
    RateLimitedError,
    RetryExhaustedError,
    ServerError,
    SheetSyncError,
    TransientRemoteError,
    ValidationError,
)

# ── Models ─────────────────────────────────────────────────────────────
from sheetsync.models import (
    BatchOutcome,
    BatchStatus,
    ChangeKind,
    ChangeRecord,
    ChangeSet,
    CircuitState,
    CompiledBatch,
    ExecutionReport,
    GroupReport,
    MutationIntent,
    OperationKind,
    ResourceGroup,
    Snapshot,
    SnapshotUnit,
)
from sheetsync.remote import CircuitBreaker, QuotaGuard, QuotaWindow

__all__ = [
    # Client
    "AsyncSheetSyncClient",
    # Core
    "ArtifactCache",
    "BatchCompiler",
    "BatchPlanner",
    "CircuitBreaker",
    "ConcurrencyGate",
    "DiffEngine",
    "LazyComponents",
    "QuotaGuard",
    "QuotaWindow",
    "SyncContext",
    "compare_snapshots",
    "plan_groups",
    "take_snapshot",
    # Configuration
    "SheetSyncConfig",
    "DEFAULT_MAX_PAYLOAD_BYTES",
    "GOOGLE_SHEETS_MAX_BATCH_REQUESTS",
    # Errors
    "SheetSyncError",
    "ErrorCode",
    "TransientRemoteError",
    "RateLimitedError",
    "ServerError",
    "NetworkError",
    "AttemptTimeoutError",
    "PermanentRemoteError",
    "ValidationError",
    "AuthError",
    "PermissionDeniedError",
    "NotFoundError",
    "RetryExhaustedError",
    "CircuitOpenError",
    "CompileError",
    "DiffError",
    # Models
    "OperationKind",
    "MutationIntent",
    "ResourceGroup",
    "CompiledBatch",
    "BatchStatus",
    "BatchOutcome",
    "GroupReport",
    "ExecutionReport",
    "SnapshotUnit",
    "Snapshot",
    "ChangeKind",
    "ChangeRecord",
    "ChangeSet",
    "CircuitState",
]
