"""Resampling of observations: stratified subsamples, bootstrap, complementary pairs."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Tuple, Union

import numpy as np

from stabsel.exceptions import ConfigurationError


def spawn_seeds(random_state: Optional[int], n_tasks: int) -> np.ndarray:
    """One integer seed per task, drawn up front from the master seed."""
    rng = np.random.default_rng(random_state)
    return rng.integers(0, 2**31, size=n_tasks)


def combine_strata(*keys) -> np.ndarray:
    """
    Cross several stratification keys into a single integer code.

    Examples
    --------
    combine_strata(y, confounder)  # strata = outcome class x confounder level
    """
    keys = [np.asarray(k).reshape(-1) for k in keys if k is not None]
    if not keys:
        raise ConfigurationError("combine_strata needs at least one key")
    n = keys[0].shape[0]
    if any(k.shape[0] != n for k in keys):
        raise ConfigurationError("All stratification keys must have the same length")
    codes = [np.unique(k, return_inverse=True)[1] for k in keys]
    _, combined = np.unique(np.column_stack(codes), axis=0, return_inverse=True)
    return combined.reshape(-1).astype(np.int64)


def default_strata(y: Optional[np.ndarray], family: Optional[str]) -> Optional[np.ndarray]:
    """
    Family-aware stratification key.

    Classification outcomes are stratified by class, survival outcomes by event
    status; continuous outcomes are not stratified.
    """
    if y is None or family is None:
        return None
    if family in ("binomial", "multinomial"):
        return np.asarray(y).reshape(-1)
    if family == "cox":
        return np.asarray(y)[:, 1]
    return None


def _group_indices(strata: Optional[np.ndarray], n: int) -> Dict[Any, np.ndarray]:
    if strata is None:
        return {"_all": np.arange(n)}
    strata = np.asarray(strata).reshape(-1)
    if strata.shape[0] != n:
        raise ConfigurationError(f"strata has {strata.shape[0]} entries for {n} observations")
    uniq, inv = np.unique(strata, return_inverse=True)
    order = np.argsort(inv, kind="mergesort")
    bounds = np.searchsorted(inv[order], np.arange(len(uniq) + 1))
    return {uniq[i]: order[bounds[i]:bounds[i + 1]] for i in range(len(uniq))}


class Resampler:
    """
    Draw resamples of ``n`` observations.

    Parameters
    ----------
    n : int
        Number of observations.
    tau : float
        Subsample fraction; each stratum contributes floor(tau * stratum_size)
        observations.
    method : {"subsampling", "bootstrap"} or callable
        ``"subsampling"`` draws without replacement; ``"bootstrap"`` draws
        stratum_size observations with replacement within each stratum. A callable
        is used as ``fn(y, tau, rng, **resampling_kwargs) -> indices``.
    strata : array-like, optional
        Stratification key. Draws respect its proportions exactly.
    y : ndarray, optional
        Outcome, passed to custom resampling functions.
    resampling_kwargs : dict, optional
        Extra arguments for a custom resampling function.

    The resampler holds no random state: every draw uses the Generator it is given,
    so draws for different tasks can run concurrently.
    """

    def __init__(
        self,
        n: int,
        tau: float,
        method: Union[str, Callable] = "subsampling",
        strata: Optional[np.ndarray] = None,
        y: Optional[np.ndarray] = None,
        resampling_kwargs: Optional[Dict[str, Any]] = None,
    ):
        if not (0 < tau <= 1):
            raise ConfigurationError(f"tau must be in (0, 1], got {tau}")
        if not callable(method) and method not in ("subsampling", "bootstrap"):
            raise ConfigurationError(f"Unknown resampling method '{method}'")
        self.n = int(n)
        self.tau = float(tau)
        self.method = method
        self.y = y
        self.resampling_kwargs = dict(resampling_kwargs or {})
        self._groups = _group_indices(strata, self.n)

        if not callable(method):
            sizes = self.stratum_sizes()
            empty = [g for g, s in sizes.items() if s == 0]
            if empty:
                raise ConfigurationError(
                    f"tau={self.tau} leaves no observation for strata {empty[:5]}; "
                    "increase tau or merge small strata."
                )

    def stratum_sizes(self) -> Dict[Any, int]:
        """Number of observations drawn from each stratum."""
        if self.method == "bootstrap":
            return {g: idx.size for g, idx in self._groups.items()}
        return {g: int(np.floor(self.tau * idx.size)) for g, idx in self._groups.items()}

    @property
    def size(self) -> int:
        return int(sum(self.stratum_sizes().values()))

    def draw(self, rng: np.random.Generator) -> np.ndarray:
        """One resample as a sorted int64 index array."""
        if callable(self.method):
            return self._check_custom(
                self.method(self.y, self.tau, rng, **self.resampling_kwargs)
            )
        replace = self.method == "bootstrap"
        sizes = self.stratum_sizes()
        idx_list = [
            rng.choice(idx, size=sizes[g], replace=replace)
            for g, idx in self._groups.items()
        ]
        return np.sort(np.concatenate(idx_list)).astype(np.int64)

    def draw_pair(self, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
        """Two disjoint resamples of equal per-stratum size."""
        if self.method == "bootstrap":
            raise ConfigurationError("Complementary pairs cannot be drawn with replacement")
        if callable(self.method):
            first = self.draw(rng)
            second = []
            for g, idx in self._groups.items():
                need = int(np.isin(idx, first).sum())
                rest = np.setdiff1d(idx, first)
                if rest.size < need:
                    raise ConfigurationError(
                        f"Custom resampling drew {need} of {idx.size} observations in stratum {g}; "
                        "the complementary set cannot be as large."
                    )
                second.append(rng.choice(rest, size=need, replace=False))
            return first, np.sort(np.concatenate(second)).astype(np.int64)
        if self.tau > 0.5:
            raise ConfigurationError("Complementary pairs require tau <= 0.5")

        sizes = self.stratum_sizes()
        first, second = [], []
        for g, idx in self._groups.items():
            perm = rng.permutation(idx)
            first.append(perm[:sizes[g]])
            second.append(perm[sizes[g]:2 * sizes[g]])
        return (
            np.sort(np.concatenate(first)).astype(np.int64),
            np.sort(np.concatenate(second)).astype(np.int64),
        )

    def _check_custom(self, indices) -> np.ndarray:
        indices = np.asarray(indices).reshape(-1)
        if indices.size == 0:
            raise ConfigurationError("Custom resampling function returned no observation")
        if not np.issubdtype(indices.dtype, np.integer):
            if not np.all(np.mod(indices, 1) == 0):
                raise ConfigurationError("Custom resampling function must return integer indices")
        indices = indices.astype(np.int64)
        if indices.min() < 0 or indices.max() >= self.n:
            raise ConfigurationError("Custom resampling function returned out-of-range indices")
        return np.sort(indices)
