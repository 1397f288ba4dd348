"""Estimator plugin contract."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable

import numpy as np


class SelectionKind(enum.Enum):
    """What one selection item is."""
    FEATURES = "features"          # one item per predictor
    EDGES = "edges"                # one item per variable pair (upper triangle)
    COMEMBERSHIP = "comembership"  # one item per variable pair, same cluster


class _Invalid:
    """Sentinel returned by an estimator that failed on a grid row."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "INVALID"

    def __reduce__(self):
        return (_Invalid, ())


INVALID = _Invalid()

# Numerical failures absorbed as invalid rows. ConfigurationError is re-raised.
SOLVER_ERRORS = (ValueError, ArithmeticError, np.linalg.LinAlgError)


@dataclass
class FitResult:
    """
    Output of one estimator fit on one grid row.

    Parameters
    ----------
    selected : ndarray
        Boolean selection of length ``n_items``. Pair kinds may instead return a
        symmetric (p, p) matrix, which the executor converts to upper-triangle
        order.
    coefficients : ndarray, optional
        Coefficients of shape (p,) or (p, n_outcomes).
    solver_state : any, optional
        Opaque state offered to the next grid row for a warm start.
    secondary : dict, optional
        Additional named selections (e.g. ``{"y": ...}`` for the outcome side of
        PLS models).
    """
    selected: np.ndarray
    coefficients: Optional[np.ndarray] = None
    solver_state: Any = None
    secondary: Dict[str, np.ndarray] = field(default_factory=dict)


@runtime_checkable
class Estimator(Protocol):
    kind: SelectionKind

    def n_items(self, p: int, q: int = 0) -> int:
        ...

    def fit(
        self,
        X: np.ndarray,
        Y: Optional[np.ndarray],
        sparsity_row: np.ndarray,
        active_blocks: np.ndarray,
        solver_state: Any = None,
    ) -> Union[FitResult, _Invalid]:
        ...


def n_pairs(p: int) -> int:
    return p * (p - 1) // 2


def hit_iteration_limit(n_iter, max_iter: int) -> bool:
    """
    True when a solver stopped on its iteration cap.

    scikit-learn reports ``n_iter_ == max_iter`` when it gives up without
    converging. Read from the fitted model rather than from a recorded
    ``ConvergenceWarning``, whose capture is process-global and would mix up
    fits running in parallel threads.
    """
    return int(np.max(n_iter)) >= max_iter
