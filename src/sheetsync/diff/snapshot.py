"""Snapshot construction.

A sheet's fingerprint covers its title and its cell values, so both edits
and renames change it.  Row blocks of ``block_rows`` rows are fingerprinted
separately, which lets a modified sheet report *where* it changed.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

from sheetsync.models import Snapshot, SnapshotUnit
from sheetsync.utils.hashing import fingerprint


def unit_id_of(properties: dict[str, Any]) -> str:
    """Stable identifier of a sheet: its ``sheetId``, else its title."""
    if "sheetId" in properties:
        return str(properties["sheetId"])
    return str(properties.get("title", ""))


def block_fingerprints(values: Sequence[Sequence[Any]], block_rows: int) -> tuple[str, ...]:
    """Fingerprint consecutive blocks of *block_rows* rows.

    Examples
    --------
    >>> len(block_fingerprints([[1]] * 2500, 1000))
    3
    >>> block_fingerprints([], 1000)
    ()
    """
    if block_rows < 1:
        raise ValueError(f"block_rows must be >= 1, got {block_rows}")
    return tuple(
        fingerprint([list(row) for row in values[i : i + block_rows]])
        for i in range(0, len(values), block_rows)
    )


def fingerprint_unit(
    properties: dict[str, Any],
    values: Sequence[Sequence[Any]],
    block_rows: int = 1000,
) -> SnapshotUnit:
    """Build the :class:`SnapshotUnit` of one fetched sheet."""
    rows = [list(row) for row in values]
    title = str(properties.get("title", ""))
    return SnapshotUnit(
        unit_id=unit_id_of(properties),
        title=title,
        fingerprint=fingerprint({"title": title, "values": rows}),
        row_count=len(rows),
        column_count=max((len(row) for row in rows), default=0),
        block_fingerprints=block_fingerprints(rows, block_rows),
    )


def build_snapshot(
    resource_id: str,
    units: Iterable[SnapshotUnit],
    captured_at: datetime | None = None,
) -> Snapshot:
    """Assemble a :class:`Snapshot` from already fingerprinted units.

    The snapshot fingerprint covers the ordered ``(unit_id, fingerprint)``
    pairs, so it changes whenever any sheet changes, appears, disappears or
    moves.

    Raises
    ------
    ValueError
        If two units share a ``unit_id``.
    """
    units = tuple(units)
    seen: set[str] = set()
    for unit in units:
        if unit.unit_id in seen:
            raise ValueError(f"duplicate unit_id {unit.unit_id!r} in snapshot of {resource_id!r}")
        seen.add(unit.unit_id)
    return Snapshot(
        resource_id=resource_id,
        captured_at=captured_at or datetime.now(timezone.utc),
        units=units,
        fingerprint=fingerprint([[u.unit_id, u.fingerprint] for u in units]),
    )


def take_snapshot(
    resource_id: str,
    units: Iterable[tuple[dict[str, Any], Sequence[Sequence[Any]]]],
    block_rows: int = 1000,
    captured_at: datetime | None = None,
) -> Snapshot:
    """Build a snapshot from fetched ``(properties, values)`` pairs.

    Units keep the order in which they are given, which should be the
    sheet enumeration order of the spreadsheet.
    """
    return build_snapshot(
        resource_id,
        (fingerprint_unit(props, values, block_rows) for props, values in units),
        captured_at,
    )
