from stabsel.selection.aggregate import SelectionCounts
from stabsel.selection.executor import SelectionMatrix, guard_degenerate, run_resample

__all__ = [
    "SelectionCounts",
    "SelectionMatrix",
    "guard_degenerate",
    "run_resample",
]
