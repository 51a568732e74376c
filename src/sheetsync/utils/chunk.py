"""Split an ordered list into batches capped by count and by byte size.

The Sheets ``batchUpdate`` endpoint accepts a bounded number of
sub-requests per call and rejects request bodies above its payload limit.
This helper partitions an arbitrarily long list into compliant batches
without ever reordering items.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TypeVar

T = TypeVar("T")


def chunk_by_size(
    items: Sequence[T],
    size: int = 100,
    *,
    max_bytes: int | None = None,
    weigh: Callable[[T], int] | None = None,
    separator_bytes: int = 0,
    overhead_bytes: int = 0,
) -> list[list[T]]:
    """Split *items* into consecutive batches of at most *size* items.

    When *max_bytes* is given, a batch is also closed before its weight
    would exceed the limit.  The weight of a batch is
    ``overhead_bytes + sum(weigh(item)) + separator_bytes * (len - 1)``,
    which lets callers describe the exact size of the serialized envelope
    the items end up in.

    Parameters
    ----------
    items:
        The items to partition.  Order is preserved.
    size:
        Maximum number of items per batch.  Defaults to **100** (the
        Sheets API limit for ``batchUpdate``).
    max_bytes:
        Optional byte ceiling per batch.
    weigh:
        Returns the byte weight of one item.  Required with *max_bytes*.
    separator_bytes, overhead_bytes:
        Per-gap and per-batch envelope bytes.

    Returns
    -------
    list[list]
        Batches whose concatenation equals *items*.  An empty input returns
        an empty list (not ``[[]]``).  An item heavier than *max_bytes* on
        its own is placed alone in its batch; rejecting it is the caller's
        job.

    Raises
    ------
    ValueError
        If *size* is less than 1, or *max_bytes* is given without *weigh*.

    Examples
    --------
    >>> chunk_by_size(list(range(5)), 2)
    [[0, 1], [2, 3], [4]]
    >>> chunk_by_size(["aa", "bb", "c"], 10, max_bytes=4, weigh=len)
    [['aa', 'bb'], ['c']]
    """
    if size < 1:
        raise ValueError(f"size must be >= 1, got {size}")
    if max_bytes is not None and weigh is None:
        raise ValueError("weigh is required when max_bytes is set")

    if not items:
        return []

    if max_bytes is None:
        return [list(items[i : i + size]) for i in range(0, len(items), size)]

    assert weigh is not None
    batches: list[list[T]] = []
    current: list[T] = []
    current_bytes = overhead_bytes
    for item in items:
        weight = weigh(item)
        added = weight + (separator_bytes if current else 0)
        if current and (len(current) >= size or current_bytes + added > max_bytes):
            batches.append(current)
            current = []
            current_bytes = overhead_bytes
            added = weight
        current.append(item)
        current_bytes += added
    if current:
        batches.append(current)
    return batches
