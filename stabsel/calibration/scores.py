"""Stability score strategies."""

from __future__ import annotations

from typing import Callable, Dict, Union

import numpy as np
from scipy.stats import binom

from stabsel.calibration._kernels import category_counts
from stabsel.exceptions import ConfigurationError


class StabilityScore:
    """
    Score of every (row, threshold) point; larger is more stable.

    Subclasses override :meth:`surface`. A plain function
    ``fn(proportions_row, thresholds, n_resamples) -> scores`` can be wrapped
    with ``StabilityScore(fn)``.
    """

    name = "custom"

    def __init__(self, fn: Callable = None):
        self.fn = fn

    def surface(self, props: np.ndarray, valid_counts: np.ndarray, thresholds: np.ndarray) -> np.ndarray:
        out = np.full((props.shape[0], thresholds.size), np.nan)
        for r in range(props.shape[0]):
            if valid_counts[r] == 0 or np.isnan(props[r]).any():
                continue
            out[r] = np.asarray(self.fn(props[r], thresholds, int(valid_counts[r])), dtype=np.float64)
        return out


def _binomial_terms(props, valid_counts, thresholds):
    """Shared quantities: K, p_hat, F(t_lo), S(t_lo), S(t_hi - 1) and category counts."""
    n_items = props.shape[1]
    K = valid_counts.astype(np.float64)[:, None]
    with np.errstate(invalid="ignore"):
        q = np.round(np.nansum(props, axis=1))[:, None]
    p_hat = q / n_items
    t_lo = np.round(K * (1 - thresholds[None, :]))
    t_hi = np.round(K * thresholds[None, :])
    # sf rather than 1 - cdf: the upper tail can fall below machine epsilon
    F_lo = binom.cdf(t_lo, K, p_hat)
    S_lo = binom.sf(t_lo, K, p_hat)
    S_hi = binom.sf(t_hi - 1, K, p_hat)
    s0, u, s1 = category_counts(np.ascontiguousarray(props, dtype=np.float64), thresholds)
    return n_items, F_lo, S_lo, S_hi, s0, u, s1


class MultinomialScore(StabilityScore):
    """
    Three-category likelihood score.

    Under uniform selection with ``p_hat = q / N`` each item's selection count
    is Binomial(K, p_hat). Items fall in stably-unselected (count <= t_lo),
    unstable, and stably-selected (count >= t_hi) categories with
    probabilities p1, p2, p3. The score is the negative log likelihood of the
    item-by-item assignment, ``-(S0 log p1 + U log p2 + S1 log p3)``, without
    the multinomial coefficient. NaN when any probability is 0.
    """

    name = "multinomial"

    def surface(self, props, valid_counts, thresholds):
        thresholds = np.asarray(thresholds, dtype=np.float64)
        _, F_lo, S_lo, S_hi, s0, u, s1 = _binomial_terms(props, valid_counts, thresholds)
        p1 = F_lo
        p2 = S_lo - S_hi
        p3 = S_hi
        with np.errstate(divide="ignore", invalid="ignore"):
            loglik = s0 * np.log(p1) + u * np.log(p2) + s1 * np.log(p3)
        score = -loglik
        bad = (p1 <= 0) | (p2 <= 0) | (p3 <= 0) | (s0 < 0) | (valid_counts[:, None] == 0)
        score[bad] = np.nan
        return score


class BinomialScore(StabilityScore):
    """
    Two-category score: ``-(S1 log p + (N - S1) log(1 - p))`` with
    ``p = P(count >= t_hi)``, the item-by-item likelihood without the binomial
    coefficient.
    """

    name = "binomial"

    def surface(self, props, valid_counts, thresholds):
        thresholds = np.asarray(thresholds, dtype=np.float64)
        N, _, _, S_hi, s0, _, s1 = _binomial_terms(props, valid_counts, thresholds)
        p_stable = S_hi
        with np.errstate(divide="ignore", invalid="ignore"):
            score = -(s1 * np.log(p_stable) + (N - s1) * np.log1p(-p_stable))
        bad = (p_stable <= 0) | (p_stable >= 1) | (s0 < 0) | (valid_counts[:, None] == 0)
        score[bad] = np.nan
        return score


_SCORES: Dict[str, StabilityScore] = {
    "multinomial": MultinomialScore(),
    "binomial": BinomialScore(),
}


def register_score(name: str, score: Union[StabilityScore, Callable]) -> None:
    if not isinstance(score, StabilityScore):
        score = StabilityScore(score)
    _SCORES[name] = score


def get_score(score: Union[str, StabilityScore, Callable]) -> StabilityScore:
    if isinstance(score, StabilityScore):
        return score
    if callable(score):
        return StabilityScore(score)
    try:
        return _SCORES[score]
    except KeyError:
        raise ConfigurationError(f"Unknown stability score '{score}'. Available: {sorted(_SCORES)}") from None
