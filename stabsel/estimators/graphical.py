"""Edge estimators for Gaussian graphical models."""

from __future__ import annotations

import warnings
from typing import Literal, Optional, Sequence

import numpy as np
from sklearn.covariance import graphical_lasso
from sklearn.linear_model import Lasso

from stabsel._preprocess import standardise
from stabsel.estimators.base import INVALID, FitResult, SelectionKind, hit_iteration_limit, n_pairs
from stabsel.exceptions import ConfigurationError
from stabsel.grid.blocks import block_matrix, check_pk, edge_index


def _upper(A: np.ndarray) -> np.ndarray:
    return A[edge_index(A.shape[0])]


class GraphicalLassoEstimator:
    """
    Graphical lasso (scikit-learn) on the correlation or covariance matrix.

    Takes a single penalty; multi-block models should use
    :class:`NeighbourhoodSelection`, which accepts one penalty per block.
    """

    kind = SelectionKind.EDGES

    def __init__(self, scale: bool = True, mode: str = "cd", max_iter: int = 200, tol: float = 1e-4):
        self.scale = scale
        self.mode = mode
        self.max_iter = max_iter
        self.tol = tol

    def n_items(self, p: int, q: int = 0) -> int:
        return n_pairs(p)

    def fit(self, X, Y, sparsity_row, active_blocks, solver_state=None):
        row = np.asarray(sparsity_row, dtype=np.float64).reshape(-1)
        if not np.allclose(row, row[0]):
            raise ConfigurationError(
                "graphical_lasso takes one penalty for all blocks; "
                "use EstimatorTag.NEIGHBOURHOOD for block-specific penalties."
            )
        if self.scale:
            emp = np.corrcoef(X, rowvar=False)
        else:
            emp = np.cov(X, rowvar=False)
        emp = np.atleast_2d(emp)

        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            _, precision, n_iter = graphical_lasso(
                emp, alpha=float(row[0]), mode=self.mode, max_iter=self.max_iter, tol=self.tol,
                return_n_iter=True,
            )
        if hit_iteration_limit(n_iter, self.max_iter):
            return INVALID
        if not np.isfinite(precision).all():
            return INVALID
        A = precision != 0
        A = A | A.T
        return FitResult(selected=_upper(A))


class NeighbourhoodSelection:
    """
    Meinshausen-Buhlmann neighbourhood selection.

    Each variable is lasso-regressed on all others. The penalty on the
    coefficient linking variables ``j`` and ``k`` is the penalty of the block
    holding the pair, applied by rescaling column ``k``. Solver state is the
    (p, p) coefficient matrix, reused as a warm start for the next row.

    Parameters
    ----------
    pk : sequence of int, optional
        Group sizes; None means one group.
    rule : {"or", "and"}
        An edge is kept if either (or both) regressions select it.
    """

    kind = SelectionKind.EDGES

    def __init__(
        self,
        pk: Optional[Sequence[int]] = None,
        rule: Literal["or", "and"] = "or",
        max_iter: int = 1000,
        tol: float = 1e-4,
    ):
        if rule not in ("or", "and"):
            raise ConfigurationError(f"rule must be 'or' or 'and', got '{rule}'")
        self.pk = pk
        self.rule = rule
        self.max_iter = max_iter
        self.tol = tol

    def n_items(self, p: int, q: int = 0) -> int:
        return n_pairs(p)

    def _penalties(self, p: int, sparsity_row: np.ndarray) -> np.ndarray:
        pk = check_pk(self.pk, p)
        bigblocks = block_matrix(pk)
        n_blocks = int(bigblocks.max()) + 1
        row = np.asarray(sparsity_row, dtype=np.float64).reshape(-1)
        if row.size == 1:
            row = np.repeat(row, n_blocks)
        if row.size != n_blocks:
            raise ConfigurationError(f"{row.size} penalties for {n_blocks} blocks")
        lam = row[np.maximum(bigblocks, 0)]
        np.fill_diagonal(lam, np.inf)
        return lam

    def fit(self, X, Y, sparsity_row, active_blocks, solver_state=None):
        n, p = X.shape
        Xs = standardise(X)
        lam = self._penalties(p, sparsity_row)
        if (lam <= 0).any():
            raise ConfigurationError("Penalties must be positive")
        beta = np.zeros((p, p)) if solver_state is None else solver_state.copy()

        model = Lasso(alpha=1.0, fit_intercept=False, max_iter=self.max_iter, tol=self.tol, warm_start=True)
        for j in range(p):
            others = np.flatnonzero(np.arange(p) != j)
            w = lam[j, others]
            # penalty w_k |b_k| on x_k  <=>  unit penalty on x_k / w_k
            model.coef_ = beta[j, others] * w
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                model.fit(Xs[:, others] / w, Xs[:, j])
            if hit_iteration_limit(model.n_iter_, self.max_iter):
                return INVALID
            coef = model.coef_ / w
            if not np.isfinite(coef).all():
                return INVALID
            beta[j, others] = coef

        nz = beta != 0
        A = (nz | nz.T) if self.rule == "or" else (nz & nz.T)
        np.fill_diagonal(A, False)
        return FitResult(selected=_upper(A), solver_state=beta)
