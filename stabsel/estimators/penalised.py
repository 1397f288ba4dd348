"""Lasso-type estimators for variable selection."""

from __future__ import annotations

import copy
import warnings
from typing import Literal, Optional, Sequence

import numpy as np
from sklearn.linear_model import (
    ElasticNet,
    Lasso,
    LogisticRegression,
    MultiTaskElasticNet,
    MultiTaskLasso,
    Ridge,
)

from stabsel.estimators.base import INVALID, FitResult, SelectionKind, hit_iteration_limit
from stabsel.exceptions import ConfigurationError

Penalisation = Literal["classic", "randomised", "adaptive"]

# Penalty factor used for columns declared unpenalised (penalty_factor == 0).
_UNPENALISED_FACTOR = 1e-4


class PenalisedRegression:
    """
    Lasso / elastic net over a single penalty axis.

    Parameters
    ----------
    family : {"gaussian", "mgaussian", "binomial", "multinomial"}
        Outcome family. Gaussian families use coordinate descent
        (Lasso/ElasticNet, MultiTask variants); classification families use
        L1 LogisticRegression (saga) with ``C = 1 / (n * lambda)``.
    penalisation : {"classic", "randomised", "adaptive"}
        ``"randomised"`` rescales each column by a U(gamma, 1) draw per resample;
        ``"adaptive"`` weights penalties by ``1 / |beta_ridge| ** gamma``.
    gamma : float, optional
        Defaults to 0.5 (randomised) or 2 (adaptive).
    penalty_factor : array-like of shape (p,), optional
        Relative penalty per column. Columns with factor 0 are not penalised and
        are left out of the selection output.
    l1_ratio : float, default=1.0
        Elastic net mixing for gaussian families (1.0 = lasso).
    max_iter : int, default=3000
        Fits that stop on this cap without converging return INVALID.
    tol : float, default=1e-4
    """

    kind = SelectionKind.FEATURES

    def __init__(
        self,
        family: str = "gaussian",
        penalisation: Penalisation = "classic",
        gamma: Optional[float] = None,
        penalty_factor: Optional[Sequence[float]] = None,
        l1_ratio: float = 1.0,
        max_iter: int = 3000,
        tol: float = 1e-4,
    ):
        if family == "cox":
            raise ConfigurationError(
                "No built-in estimator for family='cox'; pass a custom estimator."
            )
        if family not in ("gaussian", "mgaussian", "binomial", "multinomial"):
            raise ConfigurationError(f"Unsupported family '{family}'")
        if penalisation not in ("classic", "randomised", "adaptive"):
            raise ConfigurationError(f"Unknown penalisation '{penalisation}'")
        if gamma is None:
            gamma = {"classic": None, "randomised": 0.5, "adaptive": 2.0}[penalisation]
        if penalisation == "randomised" and not (0 < gamma <= 1):
            raise ConfigurationError("gamma must be in (0, 1] for randomised penalisation")
        if not (0 < l1_ratio <= 1):
            raise ConfigurationError("l1_ratio must be in (0, 1]")

        self.family = family
        self.penalisation = penalisation
        self.gamma = gamma
        self.penalty_factor = None if penalty_factor is None else np.asarray(penalty_factor, dtype=np.float64)
        self.l1_ratio = l1_ratio
        self.max_iter = max_iter
        self.tol = tol
        self._weights = None

    # --- item bookkeeping ---

    def _penalised(self, p: int) -> np.ndarray:
        if self.penalty_factor is None:
            return np.ones(p, dtype=bool)
        if self.penalty_factor.shape[0] != p:
            raise ConfigurationError(
                f"penalty_factor has {self.penalty_factor.shape[0]} entries for {p} columns"
            )
        return self.penalty_factor != 0

    def n_items(self, p: int, q: int = 0) -> int:
        return int(self._penalised(p).sum())

    def item_columns(self, p: int) -> np.ndarray:
        return np.flatnonzero(self._penalised(p))

    # --- per-resample preparation ---

    def for_resample(self, X: np.ndarray, Y: Optional[np.ndarray], rng: np.random.Generator):
        """Copy with the column weights of this resample drawn or estimated."""
        p = X.shape[1]
        weights = np.ones(p)
        if self.penalty_factor is not None:
            weights = np.where(self._penalised(p), self.penalty_factor, _UNPENALISED_FACTOR)
        if self.penalisation == "randomised":
            # penalty lambda / u_j with u_j ~ U(gamma, 1)
            weights = weights / rng.uniform(self.gamma, 1.0, size=p)
        elif self.penalisation == "adaptive":
            beta = self._ridge_coefficients(X, Y)
            weights = weights / np.maximum(np.abs(beta), 1e-10) ** self.gamma
        bound = copy.copy(self)
        bound._weights = weights
        return bound

    def _ridge_coefficients(self, X: np.ndarray, Y: np.ndarray) -> np.ndarray:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            if self.family in ("binomial", "multinomial"):
                model = LogisticRegression(C=1.0, max_iter=1000)
                model.fit(X, Y)
                return np.max(np.abs(model.coef_), axis=0)
            model = Ridge(alpha=1.0)
            model.fit(X, Y)
            coef = np.atleast_2d(model.coef_)
            return np.sqrt((coef ** 2).sum(axis=0))

    # --- fitting ---

    def _make_model(self, lam: float, n: int):
        if self.family in ("binomial", "multinomial"):
            return LogisticRegression(
                penalty="l1",
                solver="saga",
                C=1.0 / (n * lam),
                max_iter=self.max_iter,
                tol=self.tol,
                warm_start=True,
            )
        multi = self.family == "mgaussian"
        if self.l1_ratio >= 1.0:
            cls = MultiTaskLasso if multi else Lasso
            return cls(alpha=lam, max_iter=self.max_iter, tol=self.tol, warm_start=True)
        cls = MultiTaskElasticNet if multi else ElasticNet
        return cls(alpha=lam, l1_ratio=self.l1_ratio, max_iter=self.max_iter, tol=self.tol, warm_start=True)

    def fit(self, X, Y, sparsity_row, active_blocks, solver_state=None):
        n, p = X.shape
        lam = float(sparsity_row[0])
        if lam <= 0:
            raise ConfigurationError(f"Penalty must be positive, got {lam}")

        weights = self._weights
        if weights is None:
            weights = np.ones(p)
            if self.penalty_factor is not None:
                weights = np.where(self._penalised(p), self.penalty_factor, _UNPENALISED_FACTOR)
        # penalty lambda * w_j on column j  <=>  penalty lambda on column x_j / w_j
        Xw = X / weights

        model = self._make_model(lam, n)
        if solver_state is not None:
            coef, intercept = solver_state
            model.coef_ = coef.copy()
            model.intercept_ = copy.copy(intercept)

        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            model.fit(Xw, Y)
        if hit_iteration_limit(model.n_iter_, self.max_iter):
            return INVALID

        raw = np.atleast_2d(model.coef_)
        if not np.isfinite(raw).all():
            return INVALID
        # back to the original column scale, shape (p, n_outcomes)
        coefficients = (raw / weights).T
        keep = self._penalised(p)
        selected = np.any(coefficients[keep] != 0, axis=1)
        state = (model.coef_.copy(), copy.copy(model.intercept_))
        return FitResult(selected=selected, coefficients=coefficients, solver_state=state)
