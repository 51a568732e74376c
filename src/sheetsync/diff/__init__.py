from .engine import DiffEngine, diff_fingerprint
from .planner import changed_blocks, compare_snapshots
from .snapshot import (
    block_fingerprints,
    build_snapshot,
    fingerprint_unit,
    take_snapshot,
    unit_id_of,
)

__all__ = [
    "DiffEngine",
    "block_fingerprints",
    "build_snapshot",
    "changed_blocks",
    "compare_snapshots",
    "diff_fingerprint",
    "fingerprint_unit",
    "take_snapshot",
    "unit_id_of",
]
