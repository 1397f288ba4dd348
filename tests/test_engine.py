import copy

import numpy as np
import pytest

from stabsel import StabilityConfig, variable_selection
from stabsel.config import resolve_config
from stabsel.engine import run_resamples
from stabsel.estimators import INVALID, FitResult, SelectionKind
from stabsel.exceptions import ConfigurationError
from stabsel.grid import single_axis_grid
from stabsel.sampling import Resampler, spawn_seeds


class FirstK:
    """Always selects the first ``k`` columns."""

    kind = SelectionKind.FEATURES

    def __init__(self, k=5):
        self.k = k

    def n_items(self, p, q=0):
        return p

    def fit(self, X, Y, sparsity_row, active_blocks, solver_state=None):
        selected = np.zeros(X.shape[1], dtype=bool)
        selected[:self.k] = True
        return FitResult(selected=selected, coefficients=selected.astype(float))


class InvalidWithMarker(FirstK):
    """Invalid whenever observation 0 (marked in column 0) is in the subsample."""

    def fit(self, X, Y, sparsity_row, active_blocks, solver_state=None):
        if np.any(X[:, 0] == 1000.0):
            return INVALID
        return super().fit(X, Y, sparsity_row, active_blocks, solver_state)


class FailsOnFirstResamples(FirstK):
    """Invalid on every row of the first ``n_failing`` resamples it is bound to."""

    def __init__(self, k=5, n_failing=3):
        super().__init__(k)
        self.n_failing = n_failing
        self.n_bound = 0
        self.failing = False

    def for_resample(self, X, Y, rng):
        bound = copy.copy(self)
        bound.failing = self.n_bound < self.n_failing
        self.n_bound += 1
        return bound

    def fit(self, X, Y, sparsity_row, active_blocks, solver_state=None):
        if self.failing:
            return INVALID
        return super().fit(X, Y, sparsity_row, active_blocks, solver_state)


class Exploding(FirstK):
    def fit(self, X, Y, sparsity_row, active_blocks, solver_state=None):
        raise RuntimeError("boom")


def _data(n=100, p=50, seed=0):
    rng = np.random.default_rng(seed)
    X = rng.standard_normal((n, p))
    y = X[:, :5].sum(axis=1) + rng.standard_normal(n)
    return X, y


def _config(**kwargs):
    kwargs.setdefault("verbose", False)
    kwargs.setdefault("n_jobs", 1)
    return resolve_config(**kwargs)


def test_perfect_recovery_of_always_selected_items():
    X, y = _data()
    model = variable_selection(
        X, y, Lambda=[1.0], estimator=FirstK(5), n_resamples=100, tau=0.5, verbose=False
    )

    assert model.selected().tolist() == [True] * 5 + [False] * 45
    np.testing.assert_allclose(model.selection_proportions()[:5], 1.0)
    np.testing.assert_allclose(model.selection_proportions()[5:], 0.0)
    assert model.valid_counts.tolist() == [100]


def test_invalid_resamples_excluded_from_denominator():
    X, y = _data(n=40, p=8)
    X[0, 0] = 1000.0
    config = _config(n_resamples=10, random_state=3)
    grid = single_axis_grid([1.0])
    resampler = Resampler(40, config.tau)

    counts, meta = run_resamples(X, y, grid, InvalidWithMarker(5), resampler, config, n_items=8)

    expected_valid = sum(
        0 not in resampler.draw(np.random.default_rng(s)) for s in spawn_seeds(3, 10)
    )
    assert counts.valid_counts.tolist() == [expected_valid]
    assert counts.n_resamples == 10
    if expected_valid:
        np.testing.assert_allclose(counts.proportions()[0, :5], 1.0)


def test_fixed_invalid_resamples_give_denominator_seven():
    X, y = _data(n=40, p=8)
    config = _config(n_resamples=10)
    estimator = FailsOnFirstResamples(k=3, n_failing=3)

    counts, meta = run_resamples(
        X, y, single_axis_grid([1.0]), estimator, Resampler(40, 0.5), config, n_items=8
    )

    assert estimator.n_bound == 10
    assert counts.valid_counts.tolist() == [7]
    assert counts.counts[0].tolist() == [7, 7, 7, 0, 0, 0, 0, 0]
    np.testing.assert_allclose(counts.proportions()[0], counts.counts[0] / 7)
    assert meta["undefined_rows"] == []

def test_all_invalid_row_is_undefined_and_warned():
    X, y = _data(n=40, p=8)
    X[:, 0] = 1000.0 + np.arange(40)
    X[0, 0] = 1000.0
    config = _config(n_resamples=4, tau=1.0)
    grid = single_axis_grid([1.0])

    with pytest.warns(RuntimeWarning, match="undefined"):
        counts, meta = run_resamples(X, y, grid, InvalidWithMarker(5), Resampler(40, 1.0), config, 8)

    assert meta["undefined_rows"] == [0]
    assert np.isnan(counts.proportions()).all()


def test_failed_tasks_are_recorded():
    X, y = _data(n=40, p=8)
    config = _config(n_resamples=5)
    with pytest.warns(RuntimeWarning, match="failed"):
        counts, meta = run_resamples(
            X, y, single_axis_grid([1.0]), Exploding(), Resampler(40, 0.5), config, 8
        )
    assert len(meta["failed_tasks"]) == 5
    assert counts.n_failed == 5


def test_complementary_pairs_fit_two_sets_per_task():
    X, y = _data(n=40, p=8)
    config = _config(n_resamples=20, pfer_method="SS")
    counts, meta = run_resamples(
        X, y, single_axis_grid([1.0]), FirstK(2), Resampler(40, 0.5), config, 8
    )
    assert meta["n_tasks"] == 10
    assert meta["paired"]
    assert counts.n_resamples == 20
    assert counts.valid_counts.tolist() == [20]


def test_reproducible_and_independent_of_n_jobs():
    X, y = _data(n=60, p=10)
    grid = single_axis_grid([0.5, 0.2, 0.05])

    def run(n_jobs):
        from stabsel.estimators import get_estimator

        config = _config(n_resamples=12, n_jobs=n_jobs, chunk_size=5, random_state=11)
        counts, _ = run_resamples(
            X, y, grid, get_estimator("lasso"), Resampler(60, 0.5), config, 10
        )
        return counts.counts

    np.testing.assert_array_equal(run(1), run(1))
    np.testing.assert_array_equal(run(1), run(2))


class TestConfig:
    def test_defaults(self):
        config = StabilityConfig()
        assert config.n_resamples == 100
        assert config.tau == 0.5
        assert config.resolved_thresholds()[0] == pytest.approx(0.6)
        assert config.resolved_thresholds()[-1] == pytest.approx(0.9)

    def test_ss_needs_even_resamples(self):
        with pytest.raises(ConfigurationError):
            resolve_config(n_resamples=11, pfer_method="SS")

    def test_ss_needs_small_tau(self):
        with pytest.raises(ConfigurationError):
            resolve_config(tau=0.7, pfer_method="SS")

    def test_invalid_values(self):
        with pytest.raises(ConfigurationError):
            resolve_config(n_resamples=0)
        with pytest.raises(ConfigurationError):
            resolve_config(tau=0.0)
        with pytest.raises(ConfigurationError):
            resolve_config(thresholds=[0.5, 1.0])
        with pytest.raises(ConfigurationError):
            resolve_config(pfer_bound=0)

    def test_unknown_override(self):
        with pytest.raises(ConfigurationError):
            resolve_config(n_bootstrap=10)

    def test_update_returns_copy(self):
        base = StabilityConfig()
        other = base.update(n_resamples=10)
        assert other.n_resamples == 10
        assert base.n_resamples == 100
