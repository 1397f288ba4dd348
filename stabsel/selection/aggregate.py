"""Accumulate per-resample selections into counts."""

from __future__ import annotations

from typing import Dict, Optional

import numpy as np

from stabsel.exceptions import ConfigurationError
from stabsel.selection.executor import SelectionMatrix


class SelectionCounts:
    """
    Selection counts over resamples.

    ``counts[r, j]`` is the number of valid resamples of row ``r`` in which
    item ``j`` was selected, ``valid_counts[r]`` the number of resamples in
    which row ``r`` was valid. Named secondary selections (e.g. ``"y"``) share
    the valid counts. Absolute coefficients are summed over valid resamples.
    """

    def __init__(self, n_rows: int, n_items: int):
        self.n_rows = int(n_rows)
        self.n_items = int(n_items)
        self.counts = np.zeros((self.n_rows, self.n_items), dtype=np.int64)
        self.valid_counts = np.zeros(self.n_rows, dtype=np.int64)
        self.secondary: Dict[str, np.ndarray] = {}
        self.coef_abs_sum: Optional[np.ndarray] = None
        self.degenerate = np.zeros(0, dtype=np.int64)
        self.n_resamples = 0
        self.n_failed = 0

    def accumulate(self, sm: SelectionMatrix) -> "SelectionCounts":
        """Add one resample; invalid rows add nothing."""
        if sm.selected.shape != self.counts.shape:
            raise ConfigurationError(
                f"Selection matrix of shape {sm.selected.shape} does not match counts {self.counts.shape}"
            )
        valid = sm.valid
        self.counts[valid] += sm.selected[valid]
        self.valid_counts += valid
        for name, sec in sm.secondary.items():
            if name not in self.secondary:
                self.secondary[name] = np.zeros((self.n_rows, sec.shape[1]), dtype=np.int64)
            self.secondary[name][valid] += sec[valid]
        if sm.coefficients is not None:
            if self.coef_abs_sum is None:
                self.coef_abs_sum = np.zeros((self.n_rows,) + sm.coefficients.shape[1:])
            self.coef_abs_sum[valid] += np.abs(sm.coefficients[valid])
        if sm.degenerate.size:
            self.degenerate = np.union1d(self.degenerate, sm.degenerate)
        self.n_resamples += 1
        return self

    def merge(self, other: "SelectionCounts") -> "SelectionCounts":
        """Elementwise sum of two partial results, as a new object."""
        if (self.n_rows, self.n_items) != (other.n_rows, other.n_items):
            raise ConfigurationError("Cannot merge counts of different shapes")
        out = SelectionCounts(self.n_rows, self.n_items)
        out.counts = self.counts + other.counts
        out.valid_counts = self.valid_counts + other.valid_counts
        for name in set(self.secondary) | set(other.secondary):
            parts = [s.secondary[name] for s in (self, other) if name in s.secondary]
            out.secondary[name] = parts[0] + parts[1] if len(parts) == 2 else parts[0].copy()
        if self.coef_abs_sum is not None and other.coef_abs_sum is not None:
            out.coef_abs_sum = self.coef_abs_sum + other.coef_abs_sum
        elif self.coef_abs_sum is not None or other.coef_abs_sum is not None:
            src = self.coef_abs_sum if self.coef_abs_sum is not None else other.coef_abs_sum
            out.coef_abs_sum = src.copy()
        out.degenerate = np.union1d(self.degenerate, other.degenerate)
        out.n_resamples = self.n_resamples + other.n_resamples
        out.n_failed = self.n_failed + other.n_failed
        return out

    def undefined_rows(self) -> np.ndarray:
        """Rows never valid in any resample."""
        return np.flatnonzero(self.valid_counts == 0)

    def _ratio(self, counts: np.ndarray) -> np.ndarray:
        with np.errstate(invalid="ignore", divide="ignore"):
            out = counts / self.valid_counts[:, None]
        out[self.valid_counts == 0] = np.nan
        return out

    def proportions(self) -> np.ndarray:
        """counts / valid_counts, NaN on undefined rows."""
        return self._ratio(self.counts)

    def secondary_proportions(self, name: str) -> np.ndarray:
        if name not in self.secondary:
            raise KeyError(f"No secondary selection named '{name}'")
        return self._ratio(self.secondary[name])

    def mean_abs_coefficients(self) -> Optional[np.ndarray]:
        """Mean absolute coefficient per row over valid resamples."""
        if self.coef_abs_sum is None:
            return None
        denom = self.valid_counts.reshape((-1,) + (1,) * (self.coef_abs_sum.ndim - 1))
        with np.errstate(invalid="ignore", divide="ignore"):
            out = self.coef_abs_sum / denom
        out[self.valid_counts == 0] = np.nan
        return out

