"""Batch planner: group, order and pack mutation intents.

Given a flat list of :class:`MutationIntent`, the planner produces one
:class:`ResourceGroup` per spreadsheet, in first-arrival order, each holding
the :class:`CompiledBatch` list that will be sent to the remote API.  The
planner is pure: it never touches the network, and every constraint
violation is reported as :class:`CompileError` before anything is sent.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sheetsync.config import DEFAULT_MAX_PAYLOAD_BYTES, GOOGLE_SHEETS_MAX_BATCH_REQUESTS
from sheetsync.errors import CompileError
from sheetsync.models import CompiledBatch, MutationIntent, ResourceGroup
from sheetsync.utils.chunk import chunk_by_size
from sheetsync.utils.hashing import canonical_bytes, fingerprint

# Canonical body is '{"requests":[' + ','.join(payloads) + ']}'.
_ENVELOPE_BYTES = len(b'{"requests":[]}')
_SEPARATOR_BYTES = 1


def batch_fingerprint(resource_id: str, requests: list[dict[str, Any]]) -> str:
    """Cache key of a packed batch: the target plus the exact request body."""
    return fingerprint({"resource_id": resource_id, "requests": requests})


class BatchPlanner:
    """Plans the remote calls for a list of intents.

    Parameters
    ----------
    batch_size_cap:
        Maximum sub-operations per remote call.
    max_payload_bytes:
        Maximum serialized request body per remote call.
    """

    def __init__(
        self,
        batch_size_cap: int = GOOGLE_SHEETS_MAX_BATCH_REQUESTS,
        max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES,
    ) -> None:
        if batch_size_cap < 1:
            raise ValueError(f"batch_size_cap must be >= 1, got {batch_size_cap}")
        if max_payload_bytes < 1:
            raise ValueError(f"max_payload_bytes must be >= 1, got {max_payload_bytes}")
        self.batch_size_cap = batch_size_cap
        self.max_payload_bytes = max_payload_bytes

    @classmethod
    def from_config(cls, config: Any) -> BatchPlanner:
        return cls(config.batch_size_cap, config.max_payload_bytes)

    def plan(self, intents: Iterable[MutationIntent]) -> list[ResourceGroup]:
        """Validate, group, order and pack *intents*.

        * Intents are partitioned by ``resource_id``; groups keep the order
          in which their resource first appeared.
        * Within a group, arrival order is kept, unless every intent carries
          a ``sequence_hint``, in which case a stable sort by hint applies.
        * Each group is packed into consecutive batches filled up to the
          count cap and the byte limit.  Intents are never reordered across
          a batch boundary.

        Raises
        ------
        CompileError
            An intent has an empty ``resource_id`` or a non-dict payload,
            a resource mixes hinted and unhinted intents, or a single
            intent is too large to fit in any batch.
        """
        groups: dict[str, ResourceGroup] = {}
        sizes: dict[int, int] = {}

        for index, intent in enumerate(intents):
            self._validate(index, intent)
            size = len(canonical_bytes(intent.payload))
            if _ENVELOPE_BYTES + size > self.max_payload_bytes:
                raise CompileError(
                    message=(
                        f"Intent {index} for {intent.resource_id!r} serializes to {size} bytes, "
                        f"above the {self.max_payload_bytes}-byte payload limit"
                    ),
                    context={
                        "index": index,
                        "resource_id": intent.resource_id,
                        "constraint": "max_payload_bytes",
                        "payload_bytes": size,
                    },
                )
            sizes[id(intent)] = size
            group = groups.get(intent.resource_id)
            if group is None:
                group = groups[intent.resource_id] = ResourceGroup(intent.resource_id)
            group.intents.append(intent)

        for group in groups.values():
            group.intents = self._ordered(group)
            group.batches = self._pack(group, sizes)

        return list(groups.values())

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _validate(index: int, intent: Any) -> None:
        if not isinstance(intent, MutationIntent):
            raise CompileError(
                message=f"Item {index} is not a MutationIntent: {type(intent).__name__}",
                context={"index": index, "constraint": "type"},
            )
        if not isinstance(intent.resource_id, str) or not intent.resource_id.strip():
            raise CompileError(
                message=f"Intent {index} has an empty resource_id",
                context={"index": index, "resource_id": intent.resource_id, "constraint": "resource_id"},
            )
        if not isinstance(intent.payload, dict):
            raise CompileError(
                message=f"Intent {index} payload must be a dict, got {type(intent.payload).__name__}",
                context={"index": index, "resource_id": intent.resource_id, "constraint": "payload"},
            )
        hint = intent.sequence_hint
        if hint is not None and (isinstance(hint, bool) or not isinstance(hint, int)):
            raise CompileError(
                message=f"Intent {index} sequence_hint must be an int, got {hint!r}",
                context={"index": index, "resource_id": intent.resource_id, "constraint": "sequence_hint"},
            )

    @staticmethod
    def _ordered(group: ResourceGroup) -> list[MutationIntent]:
        hinted = [i.sequence_hint is not None for i in group.intents]
        if not any(hinted):
            return group.intents
        if not all(hinted):
            raise CompileError(
                message=(
                    f"Resource {group.resource_id!r} mixes intents with and without "
                    "sequence_hint; either all or none must carry one"
                ),
                context={
                    "resource_id": group.resource_id,
                    "constraint": "sequence_hint",
                    "hinted": sum(hinted),
                    "unhinted": len(hinted) - sum(hinted),
                },
            )
        return sorted(group.intents, key=lambda i: i.sequence_hint)  # type: ignore[arg-type, return-value]

    def _pack(self, group: ResourceGroup, sizes: dict[int, int]) -> list[CompiledBatch]:
        chunks = chunk_by_size(
            group.intents,
            self.batch_size_cap,
            max_bytes=self.max_payload_bytes,
            weigh=lambda intent: sizes[id(intent)],
            separator_bytes=_SEPARATOR_BYTES,
            overhead_bytes=_ENVELOPE_BYTES,
        )
        batches: list[CompiledBatch] = []
        for index, chunk in enumerate(chunks):
            requests = [intent.payload for intent in chunk]
            batches.append(CompiledBatch(
                resource_id=group.resource_id,
                index=index,
                intents=tuple(chunk),
                fingerprint=batch_fingerprint(group.resource_id, requests),
                payload_bytes=len(canonical_bytes({"requests": requests})),
            ))
        return batches


def plan_groups(
    intents: Iterable[MutationIntent],
    batch_size_cap: int = GOOGLE_SHEETS_MAX_BATCH_REQUESTS,
    max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES,
) -> list[ResourceGroup]:
    """Shortcut for ``BatchPlanner(batch_size_cap, max_payload_bytes).plan(intents)``."""
    return BatchPlanner(batch_size_cap, max_payload_bytes).plan(intents)
