"""Configuration for the resampling/calibration engine."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Dict, Literal, Optional, Sequence, Union

import numpy as np

from stabsel.exceptions import ConfigurationError

ResamplingMethod = Literal["subsampling", "bootstrap"]
PFERMethod = Literal["MB", "SS"]
ParallelBackend = Literal["threads", "processes"]


def default_thresholds() -> np.ndarray:
    return np.round(np.arange(0.60, 0.9001, 0.01), 2)


@dataclass
class StabilityConfig:
    """
    Settings shared by every stability selection run.

    Parameters
    ----------
    n_resamples : int
        Number of resamples K. With ``pfer_method="SS"`` this is the total number
        of fits, i.e. K/2 complementary pairs, and must be even.
    tau : float
        Subsample fraction. Must be <= 0.5 for complementary pairs.
    resampling : {"subsampling", "bootstrap"} or callable
        Built-in rule, or ``fn(y, tau, rng, **resampling_kwargs) -> indices``.
    resampling_kwargs : dict
        Extra arguments forwarded to a custom resampling function.
    strata : array-like, optional
        Stratification key overriding the family default (e.g. a confounder).
    pfer_method : {"MB", "SS"}
        Meinshausen-Buhlmann bound on independent subsamples, or Shah-Samworth
        bound on complementary pairs.
    pfer_bound : float
        Upper bound on the expected number of false positives. ``inf`` disables it.
    fdp_bound : float
        Upper bound on the estimated false discovery proportion.
    thresholds : sequence of float, optional
        Selection-frequency thresholds; defaults to 0.60, 0.61, ..., 0.90.
    score : str or callable
        Stability score strategy ("multinomial", "binomial" or a callable).
    warm_start : bool
        Thread solver state between consecutive grid rows of one resample.
    n_jobs : int
        Number of parallel jobs (-1 = all cores).
    parallel_backend : {"threads", "processes"}
        Joblib backend preference.
    chunk_size : int
        Number of resamples dispatched per joblib call.
    random_state : int, optional
        Master seed; resample index sets depend only on this value.
    verbose : bool
        Print progress information.
    """
    n_resamples: int = 100
    tau: float = 0.5
    resampling: Union[ResamplingMethod, Callable] = "subsampling"
    resampling_kwargs: Dict[str, Any] = field(default_factory=dict)
    strata: Optional[Sequence] = None
    pfer_method: PFERMethod = "MB"
    pfer_bound: float = np.inf
    fdp_bound: float = np.inf
    thresholds: Optional[Sequence[float]] = None
    score: Union[str, Callable] = "multinomial"
    warm_start: bool = True
    n_jobs: int = 1
    parallel_backend: Optional[ParallelBackend] = "threads"
    chunk_size: int = 20
    random_state: Optional[int] = 1
    verbose: bool = True

    def resolved_thresholds(self) -> np.ndarray:
        if self.thresholds is None:
            return default_thresholds()
        return np.sort(np.unique(np.asarray(self.thresholds, dtype=np.float64).ravel()))

    def validate(self) -> "StabilityConfig":
        """Fail-fast configuration checks, run before any resampling."""
        if int(self.n_resamples) != self.n_resamples or self.n_resamples <= 0:
            raise ConfigurationError(f"n_resamples must be a positive integer, got {self.n_resamples}")
        if not (0 < self.tau <= 1):
            raise ConfigurationError(f"tau must be in (0, 1], got {self.tau}")
        if self.pfer_method not in ("MB", "SS"):
            raise ConfigurationError(f"pfer_method must be 'MB' or 'SS', got '{self.pfer_method}'")
        if self.pfer_method == "SS":
            if self.n_resamples % 2 != 0:
                raise ConfigurationError(
                    "pfer_method='SS' uses complementary pairs; n_resamples must be even."
                )
            if self.tau > 0.5:
                raise ConfigurationError("Complementary pairs require tau <= 0.5.")
            if self.resampling == "bootstrap":
                raise ConfigurationError("Complementary pairs cannot be drawn with resampling='bootstrap'.")
        if not callable(self.resampling) and self.resampling not in ("subsampling", "bootstrap"):
            raise ConfigurationError(
                f"resampling must be 'subsampling', 'bootstrap' or a callable, got '{self.resampling}'"
            )
        if self.pfer_bound <= 0 or self.fdp_bound <= 0:
            raise ConfigurationError("pfer_bound and fdp_bound must be positive.")
        thresholds = self.resolved_thresholds()
        if thresholds.size == 0 or thresholds.min() <= 0.5 or thresholds.max() >= 1:
            raise ConfigurationError("thresholds must lie strictly between 0.5 and 1.")
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be positive.")
        return self

    def update(self, **overrides) -> "StabilityConfig":
        """Copy with keyword overrides; unknown keys raise ConfigurationError."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration option(s): {unknown}")
        return replace(self, **overrides)


def resolve_config(config: Optional[StabilityConfig] = None, **overrides) -> StabilityConfig:
    config = config if config is not None else StabilityConfig()
    if overrides:
        config = config.update(**overrides)
    return config.validate()
