"""Snapshot comparison.

Pure functions that turn two snapshots of one spreadsheet into an ordered
list of :class:`ChangeRecord`.  The output depends only on the two
snapshots, so repeated comparisons of the same pair are identical.
"""

from __future__ import annotations

from collections.abc import Sequence

from sheetsync.models import ChangeKind, ChangeRecord, Snapshot


def changed_blocks(before: Sequence[str], after: Sequence[str]) -> tuple[int, ...]:
    """Indices of row blocks whose fingerprints differ.

    A block present on one side only counts as changed.

    Examples
    --------
    >>> changed_blocks(["a", "b", "c"], ["a", "x"])
    (1, 2)
    """
    longest = max(len(before), len(after))
    return tuple(
        i for i in range(longest)
        if i >= len(before) or i >= len(after) or before[i] != after[i]
    )


def compare_snapshots(previous: Snapshot | None, current: Snapshot) -> list[ChangeRecord]:
    """Compare *previous* against *current*, matching sheets by ``unit_id``.

    * Only in *current* -- ``added``.
    * Only in *previous* -- ``removed``.
    * In both with different fingerprints -- ``modified``.
    * Identical fingerprints -- omitted.

    Records follow the sheet order of *current*; removed sheets are
    appended in the order they had in *previous*.  A ``None`` *previous*
    reports every sheet as added.
    """
    before = {unit.unit_id: unit for unit in previous.units} if previous is not None else {}
    records: list[ChangeRecord] = []

    for unit in current.units:
        old = before.get(unit.unit_id)
        if old is None:
            records.append(ChangeRecord(
                unit_id=unit.unit_id,
                change_kind=ChangeKind.ADDED,
                after_fingerprint=unit.fingerprint,
                title_after=unit.title,
            ))
        elif old.fingerprint != unit.fingerprint:
            records.append(ChangeRecord(
                unit_id=unit.unit_id,
                change_kind=ChangeKind.MODIFIED,
                before_fingerprint=old.fingerprint,
                after_fingerprint=unit.fingerprint,
                title_before=old.title,
                title_after=unit.title,
                changed_blocks=changed_blocks(old.block_fingerprints, unit.block_fingerprints),
            ))

    if previous is not None:
        current_ids = set(current.unit_ids)
        for old in previous.units:
            if old.unit_id not in current_ids:
                records.append(ChangeRecord(
                    unit_id=old.unit_id,
                    change_kind=ChangeKind.REMOVED,
                    before_fingerprint=old.fingerprint,
                    title_before=old.title,
                ))

    return records
