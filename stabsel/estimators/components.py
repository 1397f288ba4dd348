"""Sparse PCA / PLS estimators, fitted one component at a time."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np

from stabsel._preprocess import standardise
from stabsel.estimators.base import INVALID, FitResult, SelectionKind
from stabsel.exceptions import ConfigurationError


def group_labels(sizes: Optional[Sequence[int]], p: int) -> Optional[np.ndarray]:
    """Group index of each of ``p`` variables from consecutive group sizes."""
    if sizes is None:
        return None
    sizes = np.asarray(sizes, dtype=np.int64).reshape(-1)
    if (sizes <= 0).any() or sizes.sum() != p:
        raise ConfigurationError(f"Group sizes {sizes.tolist()} do not partition {p} variables")
    return np.repeat(np.arange(sizes.size), sizes)


def sparsify(
    u: np.ndarray,
    n_keep: int,
    groups: Optional[np.ndarray] = None,
    alpha: Optional[float] = None,
) -> np.ndarray:
    """
    Keep the ``n_keep`` largest entries (or groups) of ``u`` and renormalise.

    With groups, groups are ranked by the l2 norm of their entries. ``alpha``
    adds sparsity inside kept groups: entries below ``alpha`` times the largest
    absolute entry of their group are dropped.
    """
    out = np.zeros_like(u)
    if groups is None:
        if not (1 <= n_keep <= u.size):
            raise ConfigurationError(f"Cannot keep {n_keep} of {u.size} variables")
        keep = np.argsort(-np.abs(u), kind="mergesort")[:n_keep]
        out[keep] = u[keep]
    else:
        n_groups = int(groups.max()) + 1
        if not (1 <= n_keep <= n_groups):
            raise ConfigurationError(f"Cannot keep {n_keep} of {n_groups} groups")
        norms = np.sqrt(np.bincount(groups, weights=u ** 2, minlength=n_groups))
        kept = np.argsort(-norms, kind="mergesort")[:n_keep]
        mask = np.isin(groups, kept)
        if alpha is not None and alpha > 0:
            gmax = np.zeros(n_groups)
            np.maximum.at(gmax, groups, np.abs(u))
            mask &= np.abs(u) >= alpha * gmax[groups]
        out[mask] = u[mask]
    norm = np.linalg.norm(out)
    if norm == 0:
        return out
    return out / norm


def _deflate(M: np.ndarray, t: np.ndarray) -> np.ndarray:
    return M - np.outer(t, t @ M) / (t @ t)


class _ComponentEstimator:
    """
    Shared component loop.

    ``previous`` holds the calibrated sparsity rows of the earlier components;
    they are refitted on the same subsample and deflated before the component
    under calibration is estimated.
    """

    kind = SelectionKind.FEATURES
    axes: Tuple[str, ...] = ()
    uses_y = True

    def __init__(
        self,
        component: int = 0,
        previous: Sequence[Sequence[float]] = (),
        group_x: Optional[Sequence[int]] = None,
        group_y: Optional[Sequence[int]] = None,
        scale: bool = True,
    ):
        if component != len(previous):
            raise ConfigurationError(
                f"Component {component} needs the parameters of {component} earlier components, "
                f"got {len(previous)}"
            )
        self.component = component
        self.previous = [np.asarray(r, dtype=np.float64) for r in previous]
        self.group_x = group_x
        self.group_y = group_y
        self.scale = scale

    def n_items(self, p: int, q: int = 0) -> int:
        return p

    def _params(self, row: np.ndarray) -> dict:
        row = np.asarray(row, dtype=np.float64).reshape(-1)
        if row.size != len(self.axes):
            raise ConfigurationError(f"Expected grid axes {self.axes}, got {row.size} values")
        return dict(zip(self.axes, row))

    def _sparse_pair(self, X, Y, params, gx, gy):
        raise NotImplementedError

    def fit(self, X, Y, sparsity_row, active_blocks, solver_state=None):
        Xc = standardise(X) if self.scale else X - X.mean(axis=0)
        Yc = None
        if self.uses_y:
            if Y is None:
                raise ConfigurationError(f"{type(self).__name__} needs an outcome")
            Yc = np.asarray(Y, dtype=np.float64)
            if Yc.ndim == 1:
                Yc = Yc[:, None]
            Yc = standardise(Yc) if self.scale else Yc - Yc.mean(axis=0)
        gx = group_labels(self.group_x, Xc.shape[1])
        gy = group_labels(self.group_y, Yc.shape[1]) if Yc is not None else None

        u = v = None
        for row in self.previous + [np.asarray(sparsity_row, dtype=np.float64)]:
            u, v = self._sparse_pair(Xc, Yc, self._params(row), gx, gy)
            if not np.isfinite(u).all() or not np.any(u):
                return INVALID
            t = Xc @ u
            if t @ t == 0:
                return INVALID
            Xc = _deflate(Xc, t)
            if Yc is not None:
                Yc = _deflate(Yc, t)

        secondary = {}
        if v is not None:
            secondary["y"] = v != 0
        return FitResult(selected=u != 0, coefficients=u[:, None], secondary=secondary)


class SparsePCA(_ComponentEstimator):
    """Sparse PCA: top-k loadings of the leading right singular vector."""
    axes = ("n_keep_x",)
    uses_y = False

    def _sparse_pair(self, X, Y, params, gx, gy):
        _, _, vt = np.linalg.svd(X, full_matrices=False)
        return sparsify(vt[0], int(round(params["n_keep_x"]))), None


class _PLS(_ComponentEstimator):
    def _keep(self, params, side):
        raise NotImplementedError

    def _sparse_pair(self, X, Y, params, gx, gy):
        U, _, Vt = np.linalg.svd(X.T @ Y, full_matrices=False)
        n_x, alpha_x = self._keep(params, "x")
        n_y, alpha_y = self._keep(params, "y")
        u = sparsify(U[:, 0], n_x, gx, alpha_x)
        v = Vt[0] if n_y is None else sparsify(Vt[0], n_y, gy, alpha_y)
        return u, v


class SparsePLS(_PLS):
    """Sparse PLS: numbers of kept X and Y variables."""
    axes = ("n_keep_x", "n_keep_y")

    def _keep(self, params, side):
        return int(round(params[f"n_keep_{side}"])), None


class GroupPLS(_PLS):
    """Group PLS: numbers of kept X and Y groups."""
    axes = ("n_groups_x", "n_groups_y")

    def _keep(self, params, side):
        if side == "y" and self.group_y is None:
            # ungrouped outcomes are all kept
            return None, None
        return int(round(params[f"n_groups_{side}"])), None

    def _sparse_pair(self, X, Y, params, gx, gy):
        if gx is None:
            raise ConfigurationError(f"{type(self).__name__} needs group_x")
        return super()._sparse_pair(X, Y, params, gx, gy)


class SparseGroupPLS(GroupPLS):
    """Sparse-group PLS: numbers of kept groups and within-group sparsity."""
    axes = ("n_groups_x", "alpha_x", "n_groups_y", "alpha_y")

    def _keep(self, params, side):
        n_keep, _ = super()._keep(params, side)
        if n_keep is None:
            return None, None
        return n_keep, float(params[f"alpha_{side}"])
