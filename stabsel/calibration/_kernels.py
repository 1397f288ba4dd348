"""Numba kernels for the calibration surface."""

from __future__ import annotations

import numpy as np
from numba import njit

# Tolerance on proportion/threshold comparisons (e.g. 60/100 vs 0.6).
EPS = 1e-10


@njit(cache=True)
def category_counts(props: np.ndarray, thresholds: np.ndarray):
    """
    Items per stability category for each (row, threshold).

    Returns S0 (prop <= 1 - pi), U (unstable) and S1 (prop >= pi), each of
    shape (n_rows, n_thresholds). Rows containing NaN get -1 everywhere.
    """
    n_rows, n_items = props.shape
    n_thr = thresholds.shape[0]
    s0 = np.empty((n_rows, n_thr), dtype=np.int64)
    u = np.empty((n_rows, n_thr), dtype=np.int64)
    s1 = np.empty((n_rows, n_thr), dtype=np.int64)

    for r in range(n_rows):
        undefined = False
        for j in range(n_items):
            if np.isnan(props[r, j]):
                undefined = True
                break
        for t in range(n_thr):
            if undefined:
                s0[r, t] = -1
                u[r, t] = -1
                s1[r, t] = -1
                continue
            pi = thresholds[t]
            lo = 0
            hi = 0
            for j in range(n_items):
                x = props[r, j]
                if x >= pi - EPS:
                    hi += 1
                elif x <= 1.0 - pi + EPS:
                    lo += 1
            s0[r, t] = lo
            s1[r, t] = hi
            u[r, t] = n_items - lo - hi
    return s0, u, s1


def stable_mask(props: np.ndarray, threshold: float) -> np.ndarray:
    """Items with proportion >= threshold (same tolerance as the kernel)."""
    with np.errstate(invalid="ignore"):
        return props >= threshold - EPS
