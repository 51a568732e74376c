"""Public data models for sheetsync.

This module contains every intent, batch, report, snapshot and change type
referenced by the public API surface.  All types are plain dataclasses with
no behaviour beyond small derived views; immutable inputs and snapshots are
frozen.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class OperationKind(str, Enum):
    """Kinds of mutation a caller can submit against a spreadsheet."""

    INSERT = "insert"
    """Adds rows, columns, sheets or cell data."""

    UPDATE = "update"
    """Overwrites existing cell data or properties."""

    DELETE = "delete"
    """Removes rows, columns, ranges or sheets."""

    STRUCTURAL = "structural"
    """Reshapes the spreadsheet (move, merge, resize, sort)."""

    @property
    def destructive(self) -> bool:
        """Whether the operation can discard existing data."""
        return self in (OperationKind.DELETE, OperationKind.STRUCTURAL)


class BatchStatus(str, Enum):
    """Outcome of a single compiled batch."""

    SUCCEEDED = "succeeded"
    """The remote call returned successfully."""

    CACHED = "cached"
    """A replay-safe batch was served from the artifact cache."""

    FAILED = "failed"
    """The remote call failed permanently or exhausted its retries."""

    SKIPPED = "skipped"
    """Never issued because an earlier batch of the same group failed."""

    CANCELLED = "cancelled"
    """Never completed because the caller cancelled the compile call."""

    PLANNED = "planned"
    """Dry run only -- the batch was compiled but not issued."""


class ChangeKind(str, Enum):
    """Kinds of difference the diff engine reports per sub-unit."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class CircuitState(str, Enum):
    """States of the shared circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


# ---------------------------------------------------------------------------
# Batching types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MutationIntent:
    """A single logical write against one spreadsheet.

    Attributes
    ----------
    resource_id:
        The spreadsheet ID the mutation targets.  Must be non-empty.
    operation_kind:
        The kind of mutation.  Strings are coerced to
        :class:`OperationKind`.
    payload:
        One remote sub-operation, e.g.
        ``{"updateCells": {...}}``.  Treated as opaque.
    sequence_hint:
        Optional ordering key within the resource.  Either every intent of a
        resource carries one or none does.
    idempotent:
        Declares that replaying this write is harmless, which allows a batch
        made only of idempotent intents to be served from the cache.
    """

    resource_id: str
    operation_kind: OperationKind
    payload: dict[str, Any]
    sequence_hint: int | None = None
    idempotent: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.operation_kind, OperationKind):
            object.__setattr__(self, "operation_kind", OperationKind(self.operation_kind))


@dataclass(frozen=True)
class CompiledBatch:
    """Intents of one resource packed into a single remote call.

    Attributes
    ----------
    resource_id:
        Spreadsheet the batch targets.
    index:
        Position of the batch within its resource group (0-based).
    intents:
        The packed intents in execution order.
    fingerprint:
        Content hash of the packed request body.
    payload_bytes:
        Exact serialized size of the request body.
    """

    resource_id: str
    index: int
    intents: tuple[MutationIntent, ...]
    fingerprint: str
    payload_bytes: int

    @property
    def requests(self) -> list[dict[str, Any]]:
        """Sub-operation payloads in the order they are sent."""
        return [intent.payload for intent in self.intents]

    @property
    def size(self) -> int:
        return len(self.intents)

    @property
    def destructive(self) -> bool:
        return any(intent.operation_kind.destructive for intent in self.intents)

    @property
    def replay_safe(self) -> bool:
        """True when every packed intent is declared idempotent."""
        return all(intent.idempotent for intent in self.intents)


@dataclass
class ResourceGroup:
    """Ordered intents for one resource and the batches packed from them."""

    resource_id: str
    intents: list[MutationIntent] = field(default_factory=list)
    batches: list[CompiledBatch] = field(default_factory=list)


@dataclass
class BatchOutcome:
    """What happened to one compiled batch.

    Attributes
    ----------
    batch:
        The batch this outcome describes.
    status:
        Final status of the batch.
    attempts:
        Remote attempts made (``0`` for cached, skipped and planned batches).
    response:
        The remote response (or cached artifact) on success.
    error:
        The error that ended the batch, if any.
    """

    batch: CompiledBatch
    status: BatchStatus
    attempts: int = 0
    response: Any = None
    error: Exception | None = None


@dataclass
class GroupReport:
    """Per-resource execution record.

    Outcomes are listed in batch order.  Batches after a failed one are
    reported as ``SKIPPED`` so no failure is ever dropped silently.
    """

    resource_id: str
    outcomes: list[BatchOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(
            o.status in (BatchStatus.SUCCEEDED, BatchStatus.CACHED, BatchStatus.PLANNED)
            for o in self.outcomes
        )

    @property
    def first_error(self) -> Exception | None:
        for outcome in self.outcomes:
            if outcome.error is not None:
                return outcome.error
        return None

    @property
    def attempts(self) -> int:
        return sum(o.attempts for o in self.outcomes)

    def count(self, status: BatchStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)


@dataclass
class ExecutionReport:
    """Result of :meth:`BatchCompiler.compile`.

    Attributes
    ----------
    groups:
        One report per resource, in first-arrival order of the resources.
    dry_run:
        ``True`` if nothing was sent to the remote API.
    cancelled:
        ``True`` if the compile call was cancelled before every group
        finished.  Batches already accepted remotely stay reported as
        succeeded.
    """

    groups: list[GroupReport] = field(default_factory=list)
    dry_run: bool = False
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.cancelled and all(g.succeeded for g in self.groups)

    @property
    def failed_groups(self) -> list[GroupReport]:
        return [g for g in self.groups if not g.succeeded]

    @property
    def batches_succeeded(self) -> int:
        return sum(g.count(BatchStatus.SUCCEEDED) for g in self.groups)

    @property
    def batches_cached(self) -> int:
        return sum(g.count(BatchStatus.CACHED) for g in self.groups)

    @property
    def batches_failed(self) -> int:
        return sum(g.count(BatchStatus.FAILED) for g in self.groups)

    @property
    def batches_skipped(self) -> int:
        return sum(g.count(BatchStatus.SKIPPED) for g in self.groups)

    @property
    def batches_cancelled(self) -> int:
        return sum(g.count(BatchStatus.CANCELLED) for g in self.groups)

    def group(self, resource_id: str) -> GroupReport | None:
        for report in self.groups:
            if report.resource_id == resource_id:
                return report
        return None

    def summary(self) -> dict[str, Any]:
        """Counts suitable for structured events and logs."""
        return {
            "groups": len(self.groups),
            "failed_groups": [g.resource_id for g in self.failed_groups],
            "succeeded": self.batches_succeeded,
            "cached": self.batches_cached,
            "failed": self.batches_failed,
            "skipped": self.batches_skipped,
            "cancelled": self.batches_cancelled,
            "dry_run": self.dry_run,
        }


# ---------------------------------------------------------------------------
# Snapshot & diff types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SnapshotUnit:
    """One fingerprinted sub-unit (sheet) of a spreadsheet.

    Attributes
    ----------
    unit_id:
        Stable identifier of the sheet (its numeric sheet ID as a string).
    title:
        Sheet title at capture time.
    fingerprint:
        SHA-256 digest of the sheet's title and cell values.
    row_count, column_count:
        Extent of the captured values.
    block_fingerprints:
        Digests of consecutive row blocks, used to locate changed regions.
    """

    unit_id: str
    title: str
    fingerprint: str
    row_count: int = 0
    column_count: int = 0
    block_fingerprints: tuple[str, ...] = ()


@dataclass(frozen=True)
class Snapshot:
    """Immutable, timestamped capture of a spreadsheet's sheets.

    Re-fetching produces a new snapshot; instances are never mutated.
    """

    resource_id: str
    captured_at: datetime
    units: tuple[SnapshotUnit, ...]
    fingerprint: str

    def get(self, unit_id: str) -> SnapshotUnit | None:
        for unit in self.units:
            if unit.unit_id == unit_id:
                return unit
        return None

    @property
    def unit_ids(self) -> list[str]:
        return [unit.unit_id for unit in self.units]

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form, for persisting a snapshot between diff calls."""
        return {
            "resource_id": self.resource_id,
            "captured_at": self.captured_at.isoformat(),
            "fingerprint": self.fingerprint,
            "units": [
                {
                    "unit_id": u.unit_id,
                    "title": u.title,
                    "fingerprint": u.fingerprint,
                    "row_count": u.row_count,
                    "column_count": u.column_count,
                    "block_fingerprints": list(u.block_fingerprints),
                }
                for u in self.units
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        """Inverse of :meth:`to_dict`."""
        units = tuple(
            SnapshotUnit(
                unit_id=str(u["unit_id"]),
                title=u.get("title", ""),
                fingerprint=u["fingerprint"],
                row_count=u.get("row_count", 0),
                column_count=u.get("column_count", 0),
                block_fingerprints=tuple(u.get("block_fingerprints", ())),
            )
            for u in data.get("units", [])
        )
        return cls(
            resource_id=data["resource_id"],
            captured_at=datetime.fromisoformat(data["captured_at"]),
            units=units,
            fingerprint=data["fingerprint"],
        )


@dataclass(frozen=True)
class ChangeRecord:
    """One detected difference for a single sub-unit.

    Attributes
    ----------
    unit_id:
        The sheet the change applies to.
    change_kind:
        Added, removed or modified.
    before_fingerprint:
        Fingerprint in the previous snapshot (``None`` when added).
    after_fingerprint:
        Fingerprint in the new snapshot (``None`` when removed).
    title_before, title_after:
        Sheet titles on either side, which expose renames.
    changed_blocks:
        Indices of row blocks whose fingerprints differ (modified only).
    """

    unit_id: str
    change_kind: ChangeKind
    before_fingerprint: str | None = None
    after_fingerprint: str | None = None
    title_before: str | None = None
    title_after: str | None = None
    changed_blocks: tuple[int, ...] = ()


@dataclass
class ChangeSet:
    """Ordered differences between two snapshots of one spreadsheet.

    Records follow the sheet order of the newer snapshot; removed sheets
    come last, in the order of the previous snapshot.
    """

    resource_id: str
    records: list[ChangeRecord] = field(default_factory=list)
    previous_fingerprint: str | None = None
    current_fingerprint: str | None = None
    snapshot: Snapshot | None = None

    def __iter__(self) -> Iterator[ChangeRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def is_empty(self) -> bool:
        return not self.records

    def of_kind(self, kind: ChangeKind) -> list[ChangeRecord]:
        return [r for r in self.records if r.change_kind == kind]

    @property
    def added(self) -> list[ChangeRecord]:
        return self.of_kind(ChangeKind.ADDED)

    @property
    def removed(self) -> list[ChangeRecord]:
        return self.of_kind(ChangeKind.REMOVED)

    @property
    def modified(self) -> list[ChangeRecord]:
        return self.of_kind(ChangeKind.MODIFIED)
