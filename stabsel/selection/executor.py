"""Run an estimator over the whole grid for one resample."""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np

from stabsel._preprocess import guard_degenerate
from stabsel.estimators.base import INVALID, SOLVER_ERRORS, SelectionKind
from stabsel.exceptions import ConfigurationError, DegenerateColumnWarning
from stabsel.grid.base import ParameterGrid
from stabsel.grid.blocks import edge_index


@dataclass
class SelectionMatrix:
    """
    Selections of one resample over every grid row.

    Attributes
    ----------
    kind : SelectionKind
    selected : ndarray of bool, shape (n_rows, n_items)
        All False on invalid rows.
    valid : ndarray of bool, shape (n_rows,)
    coefficients : ndarray, shape (n_rows, p, n_outcomes), optional
        NaN on invalid rows.
    secondary : dict of str -> ndarray of bool, shape (n_rows, n_secondary)
    degenerate : ndarray of int
        Columns perturbed by the constant-column guard.
    """
    kind: SelectionKind
    selected: np.ndarray
    valid: np.ndarray
    coefficients: Optional[np.ndarray] = None
    secondary: Dict[str, np.ndarray] = field(default_factory=dict)
    degenerate: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))

    @property
    def n_rows(self) -> int:
        return self.selected.shape[0]

    @property
    def n_items(self) -> int:
        return self.selected.shape[1]


def _item_columns(estimator, kind: SelectionKind, p: int, n_items: int) -> np.ndarray:
    """Columns touched by each item, shape (n_items, 1) or (n_items, 2)."""
    if kind is SelectionKind.FEATURES:
        cols = estimator.item_columns(p) if hasattr(estimator, "item_columns") else np.arange(n_items)
        return np.asarray(cols, dtype=np.int64).reshape(-1, 1)
    i, j = edge_index(p)
    return np.column_stack([i, j])


def _as_items(selected, kind: SelectionKind, n_items: int) -> np.ndarray:
    selected = np.asarray(selected)
    if kind is not SelectionKind.FEATURES and selected.ndim == 2 and selected.shape[0] == selected.shape[1]:
        selected = selected[edge_index(selected.shape[0])]
    selected = selected.reshape(-1).astype(bool)
    if selected.shape[0] != n_items:
        raise ConfigurationError(
            f"Estimator returned {selected.shape[0]} selections, expected {n_items}"
        )
    return selected


def run_resample(
    X: np.ndarray,
    Y: Optional[np.ndarray],
    indices: np.ndarray,
    grid: ParameterGrid,
    estimator,
    rng: np.random.Generator,
    warm_start: bool = True,
    keep_coefficients: bool = True,
) -> SelectionMatrix:
    """
    Fit ``estimator`` on ``X[indices]`` for every grid row.

    Rows are visited in grid order. The solver state returned for row ``r`` is
    offered to row ``r + 1`` only when both rows activate the same blocks; any
    other transition, and any invalid row, restarts cold. Estimator failures
    (the INVALID sentinel, numerical exceptions, non-finite coefficients) mark
    the row invalid for this resample.
    """
    Xs = X[indices]
    Ys = None if Y is None else Y[indices]
    n_sub, p = Xs.shape
    q = 0 if Ys is None else (1 if Ys.ndim == 1 else Ys.shape[1])
    kind = estimator.kind

    Xs, degenerate = guard_degenerate(Xs, rng)
    if degenerate.size:
        warnings.warn(
            f"{degenerate.size} constant column(s) in the subsample were perturbed "
            f"and excluded from selection: {degenerate[:10].tolist()}",
            DegenerateColumnWarning,
        )

    if hasattr(estimator, "for_resample") and Xs is not None:
        estimator = estimator.for_resample(Xs, Ys, rng)
    n_items = estimator.n_items(p, q)
    cols = _item_columns(estimator, kind, p, n_items)
    blocked_items = np.isin(cols, degenerate).any(axis=1) if degenerate.size else None

    n_rows = grid.n_rows
    selected = np.zeros((n_rows, n_items), dtype=bool)
    valid = np.zeros(n_rows, dtype=bool)
    coefficients = None
    secondary: Dict[str, np.ndarray] = {}
    if Xs is None:
        # every column constant: nothing can be fitted
        return SelectionMatrix(kind, selected, valid, degenerate=degenerate)

    state = None
    for r in range(n_rows):
        if not warm_start or r == 0 or not grid.same_template(r, r - 1):
            state = None
        try:
            result = estimator.fit(Xs, Ys, grid.values[r], grid.template[r], solver_state=state)
        except ConfigurationError:
            raise
        except SOLVER_ERRORS:
            result = INVALID
        if result is INVALID:
            state = None
            continue

        coef = result.coefficients
        if coef is not None:
            coef = np.asarray(coef, dtype=np.float64)
            if not np.isfinite(coef).all():
                state = None
                continue
            coef = coef.reshape(coef.shape[0], -1).copy()
            if kind is SelectionKind.FEATURES and degenerate.size:
                coef[degenerate] = 0.0

        row_sel = _as_items(result.selected, kind, n_items)
        if blocked_items is not None:
            row_sel &= ~blocked_items
        selected[r] = row_sel
        valid[r] = True

        if keep_coefficients and coef is not None:
            if coefficients is None:
                coefficients = np.full((n_rows,) + coef.shape, np.nan)
            coefficients[r] = coef
        for name, sec in (result.secondary or {}).items():
            sec = np.asarray(sec, dtype=bool).reshape(-1)
            if name not in secondary:
                secondary[name] = np.zeros((n_rows, sec.shape[0]), dtype=bool)
            secondary[name][r] = sec
        state = result.solver_state

    return SelectionMatrix(
        kind=kind,
        selected=selected,
        valid=valid,
        coefficients=coefficients,
        secondary=secondary,
        degenerate=degenerate,
    )
