from stabsel.estimators.base import (
    INVALID,
    Estimator,
    FitResult,
    SelectionKind,
    n_pairs,
)
from stabsel.estimators.registry import (
    EstimatorTag,
    available_estimators,
    get_estimator,
    register_estimator,
)

__all__ = [
    "INVALID",
    "Estimator",
    "FitResult",
    "SelectionKind",
    "n_pairs",
    "EstimatorTag",
    "available_estimators",
    "get_estimator",
    "register_estimator",
]
