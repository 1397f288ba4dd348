"""Default sparsity sequences for regression and graphical models."""

from __future__ import annotations

import warnings
from typing import Optional, Sequence

import numpy as np

from stabsel._preprocess import guard_degenerate, standardise
from stabsel.estimators.base import INVALID, SOLVER_ERRORS
from stabsel.exceptions import ConfigurationError
from stabsel.grid.blocks import block_labels, block_lambda_grid, check_pk, edge_blocks


def lambda_sequence(lmax: float, lmin: float, cardinal: int) -> np.ndarray:
    """Geometric sequence from ``lmax`` down to ``lmin`` (sparsest first)."""
    if cardinal < 1:
        raise ConfigurationError(f"cardinal must be >= 1, got {cardinal}")
    if not (lmax > 0 and lmin > 0):
        raise ConfigurationError("Penalty bounds must be positive")
    if cardinal == 1:
        return np.array([float(lmax)])
    return np.exp(np.linspace(np.log(lmax), np.log(lmin), cardinal))


def lambda_max_regression(X: np.ndarray, y: np.ndarray, family: str) -> float:
    """
    Smallest penalty giving an empty model.

    For a lasso on standardised ``X`` this is ``max_j |x_j' (y - mean(y))| / n``;
    multi-column outcomes (mgaussian, one-hot multinomial) use the row-wise
    l2 norm of ``X' (Y - mean(Y))`` instead.
    """
    n = X.shape[0]
    Xs = standardise(X)
    if family == "multinomial":
        y = np.asarray(y).reshape(-1)
        Y = (y[:, None] == np.unique(y)[None, :]).astype(np.float64)
    elif family == "binomial":
        Y = np.asarray(y, dtype=np.float64).reshape(-1, 1)
    elif family == "cox":
        raise ConfigurationError("No default grid for family='cox'; pass an explicit grid.")
    else:
        Y = np.asarray(y, dtype=np.float64)
        if Y.ndim == 1:
            Y = Y[:, None]
    Yc = Y - Y.mean(axis=0)
    score = Xs.T @ Yc / n
    if score.shape[1] == 1:
        lmax = np.max(np.abs(score[:, 0]))
    else:
        lmax = np.max(np.sqrt((score ** 2).sum(axis=1)))
    if not np.isfinite(lmax) or lmax <= 0:
        raise ConfigurationError("Outcome is constant or uncorrelated with every column; no default grid.")
    return float(lmax)


def lambda_grid_regression(
    X: np.ndarray,
    y: np.ndarray,
    family: str = "gaussian",
    cardinal: int = 100,
    lambda_min_ratio: float = 1e-3,
) -> np.ndarray:
    """Default lasso penalties, from the empty model down to ``lambda_min_ratio * lmax``."""
    lmax = lambda_max_regression(X, y, family)
    return lambda_sequence(lmax, lmax * lambda_min_ratio, cardinal)


def lambda_grid_graphical(
    X: np.ndarray,
    pk: Optional[Sequence[int]] = None,
    cardinal: int = 50,
    lambda_min_ratio: float = 1e-2,
    max_density: float = 0.5,
    estimator=None,
    lambda_other_blocks: float = 0.1,
    random_state: Optional[int] = None,
) -> np.ndarray:
    """
    Default per-block penalties for graphical models.

    The largest penalty of each block is its largest absolute off-diagonal
    correlation. When an edge estimator is given, it is fitted once on the full
    data along each block's sequence and the smallest penalty is raised so that
    the block's edge density stays at or below ``max_density``. As in a
    resample, constant columns are perturbed first and fits that fail
    numerically are skipped.

    Returns
    -------
    ndarray of shape (cardinal, n_blocks)
    """
    p = X.shape[1]
    pk = check_pk(pk, p)
    labels = block_labels(pk)
    items_block = edge_blocks(pk)
    corr = np.corrcoef(X, rowvar=False)
    corr = np.nan_to_num(corr, nan=0.0)
    iu = np.triu_indices(p, k=1)
    abs_corr = np.abs(corr[iu])

    Lambda = np.empty((cardinal, len(labels)))
    for b in range(len(labels)):
        in_block = items_block == b
        lmax = float(abs_corr[in_block].max()) if in_block.any() else 0.0
        if lmax <= 0:
            lmax = 1.0
        Lambda[:, b] = lambda_sequence(lmax, lmax * lambda_min_ratio, cardinal)

    if estimator is None or cardinal == 1:
        return Lambda
    Xg, _ = guard_degenerate(X, np.random.default_rng(random_state))
    if Xg is None:
        return Lambda

    grid = block_lambda_grid(Lambda, lambda_other_blocks=lambda_other_blocks, labels=labels)
    lmin = Lambda[-1].copy()
    for b in range(len(labels)):
        in_block = items_block == b
        if not in_block.any():
            continue
        state = None
        kept = None
        for r in grid.block_rows(b):
            try:
                result = estimator.fit(Xg, None, grid.values[r], grid.template[r], solver_state=state)
            except ConfigurationError:
                raise
            except SOLVER_ERRORS:
                result = INVALID
            if result is INVALID:
                state = None
                continue
            state = result.solver_state
            density = np.asarray(result.selected, dtype=bool)[in_block].mean()
            if density > max_density:
                break
            kept = grid.values[r, b]
        if kept is None:
            warnings.warn(
                f"No penalty of {labels[b]} keeps the edge density at or below "
                f"max_density={max_density}; keeping the default sequence.",
                RuntimeWarning,
            )
        else:
            lmin[b] = kept

    for b in range(len(labels)):
        Lambda[:, b] = lambda_sequence(Lambda[0, b], lmin[b], cardinal)
    return Lambda
