from .compiler import BatchCompiler
from .planner import BatchPlanner, batch_fingerprint, plan_groups

__all__ = [
    "BatchCompiler",
    "BatchPlanner",
    "batch_fingerprint",
    "plan_groups",
]
