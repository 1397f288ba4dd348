"""Upper bounds on the expected number of false positives (PFER)."""

from __future__ import annotations

from typing import Callable, Dict, Union

import numpy as np

from stabsel.exceptions import ConfigurationError


def pfer_mb(q: np.ndarray, thresholds: np.ndarray, n_items: int, n_resamples: int) -> np.ndarray:
    """
    Meinshausen-Buhlmann bound ``q^2 / ((2 pi - 1) N)``.

    Infinite for thresholds <= 0.5. ``q`` has shape (n_rows,), the result
    (n_rows, n_thresholds).
    """
    q = np.asarray(q, dtype=np.float64)[:, None]
    pi = np.asarray(thresholds, dtype=np.float64)[None, :]
    with np.errstate(divide="ignore", invalid="ignore"):
        out = q ** 2 / ((2 * pi - 1) * n_items)
    return np.where(pi > 0.5, out, np.inf)


def pfer_ss(q: np.ndarray, thresholds: np.ndarray, n_items: int, n_resamples: int) -> np.ndarray:
    """
    Shah-Samworth bound for complementary pairs (unimodal version).

    With ``B = ceil(K / 2)`` pairs and ``theta = q / N``, the bound is
    ``q^2 / N / c(pi)`` with ``c = 2 (2 pi - 1 - 1 / (2B))`` for pi <= 3/4 and
    ``c = (1 + 1/B) / (4 (1 - pi + 1 / (2B)))`` otherwise. It is infinite when
    ``pi < 1/2 + min(theta^2, 1/(2B) + 3 theta^2 / 4)``.
    """
    B = np.ceil(n_resamples / 2)
    q = np.asarray(q, dtype=np.float64)[:, None]
    pi = np.asarray(thresholds, dtype=np.float64)[None, :]
    theta = q / n_items
    c_low = 2 * (2 * pi - 1 - 1 / (2 * B))
    c_high = (1 + 1 / B) / (4 * (1 - pi + 1 / (2 * B)))
    c = np.where(pi <= 0.75, c_low, c_high)
    with np.errstate(divide="ignore", invalid="ignore"):
        out = q ** 2 / n_items / c
    minimum = 0.5 + np.minimum(theta ** 2, 1 / (2 * B) + 0.75 * theta ** 2)
    out = np.where((pi < minimum) | (c <= 0), np.inf, out)
    return np.where(np.isnan(q), np.nan, out)


def fdp_estimate(pfer: np.ndarray, n_stable: np.ndarray) -> np.ndarray:
    """PFER divided by the number of stably selected items; 0 when none is."""
    n_stable = np.asarray(n_stable, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        out = pfer / n_stable
    return np.where(n_stable > 0, out, 0.0)


_PFER_METHODS: Dict[str, Callable] = {
    "MB": pfer_mb,
    "SS": pfer_ss,
}


def get_pfer_method(method: Union[str, Callable]) -> Callable:
    if callable(method):
        return method
    try:
        return _PFER_METHODS[method]
    except KeyError:
        raise ConfigurationError(f"pfer_method must be one of {sorted(_PFER_METHODS)}, got '{method}'") from None
