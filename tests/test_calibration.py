import numpy as np
import pytest
from scipy.stats import binom

from stabsel.calibration import (
    CalibrationState,
    Calibrator,
    calibrate_blocks,
    fdp_estimate,
    get_score,
    pfer_mb,
    pfer_ss,
)
from stabsel.calibration._kernels import category_counts
from stabsel.exceptions import ConfigurationError
from stabsel.grid import block_lambda_grid


def _clean_props(n_items=50, n_true=5):
    props = np.zeros(n_items)
    props[:n_true] = 1.0
    return props


def _noisy_props(rng, n_items=50):
    return np.round(rng.uniform(0.2, 0.8, n_items), 2)


class TestErrorControl:
    def test_pfer_mb(self):
        out = pfer_mb(np.array([5.0]), np.array([0.75, 0.5]), n_items=50, n_resamples=100)
        assert out[0, 0] == pytest.approx(1.0)
        assert np.isinf(out[0, 1])

    def test_pfer_ss_values(self):
        out = pfer_ss(np.array([5.0]), np.array([0.6, 0.9]), n_items=50, n_resamples=100)
        assert out[0, 0] == pytest.approx(0.5 / 0.38)
        assert out[0, 1] == pytest.approx(0.5 / (1.02 / 0.44))

    def test_pfer_ss_infinite_below_minimum_threshold(self):
        out = pfer_ss(np.array([25.0]), np.array([0.6, 0.7]), n_items=50, n_resamples=100)
        assert np.isinf(out[0, 0])
        assert np.isfinite(out[0, 1])

    def test_fdp_zero_when_nothing_stable(self):
        out = fdp_estimate(np.array([[2.0, 2.0]]), np.array([[4, 0]]))
        np.testing.assert_allclose(out, [[0.5, 0.0]])


class TestScores:
    def test_category_counts(self):
        props = np.array([[1.0, 0.0, 0.5, 0.6], [np.nan, 0.0, 0.0, 0.0]])
        s0, u, s1 = category_counts(props, np.array([0.6]))
        assert (s0[0, 0], u[0, 0], s1[0, 0]) == (1, 1, 2)
        assert s0[1, 0] == -1

    def test_clean_row_scores_higher_than_noisy_row(self):
        rng = np.random.default_rng(0)
        props = np.vstack([_noisy_props(rng), _clean_props()])
        valid = np.array([100, 100])
        thresholds = np.array([0.6, 0.75, 0.9])
        for name in ("multinomial", "binomial"):
            score = get_score(name).surface(props, valid, thresholds)
            assert np.nanmax(score[1]) > np.nanmax(score[0])

    def test_scores_are_item_likelihoods(self):
        # N=6, q=3, K=10, pi=0.8: S0=3, U=1, S1=2
        props = np.array([[1.0, 0.9, 0.6, 0.0, 0.0, 0.1]])
        p1 = binom.cdf(2, 10, 0.5)
        p3 = binom.sf(7, 10, 0.5)
        p2 = binom.sf(2, 10, 0.5) - p3

        multi = get_score("multinomial").surface(props, np.array([10]), np.array([0.8]))
        expected = -(3 * np.log(p1) + np.log(p2) + 2 * np.log(p3))
        assert multi[0, 0] == pytest.approx(expected)

        two = get_score("binomial").surface(props, np.array([10]), np.array([0.8]))
        assert two[0, 0] == pytest.approx(-(2 * np.log(p3) + 4 * np.log(1 - p3)))

    def test_empty_row_is_nan(self):
        props = np.zeros((1, 10))
        score = get_score("multinomial").surface(props, np.array([50]), np.array([0.7]))
        assert np.isnan(score).all()

    def test_custom_score_function(self):
        def n_stable(props_row, thresholds, n_resamples):
            return np.array([(props_row >= t).sum() for t in thresholds], dtype=float)

        props = np.array([[1.0, 0.8, 0.1]])
        score = get_score(n_stable).surface(props, np.array([10]), np.array([0.6, 0.9]))
        np.testing.assert_allclose(score, [[2.0, 1.0]])

    def test_unknown_score_raises(self):
        with pytest.raises(ConfigurationError):
            get_score("nope")


class TestCalibrator:
    def setup_method(self):
        rng = np.random.default_rng(0)
        self.props = np.vstack([_noisy_props(rng), _clean_props(), _noisy_props(rng)])
        self.valid = np.array([100, 100, 100])
        self.thresholds = np.round(np.arange(0.6, 0.91, 0.05), 2)

    def test_picks_clean_row(self):
        result = Calibrator(self.props, self.valid, self.thresholds).calibrate()
        assert result.state is CalibrationState.OPTIMUM_SELECTED
        assert result.row == 1

    def test_state_transitions(self):
        cal = Calibrator(self.props, self.valid, self.thresholds)
        assert cal.state is CalibrationState.UNSCORED
        cal.score()
        assert cal.state is CalibrationState.SCORED
        cal.calibrate()
        assert cal.state is CalibrationState.OPTIMUM_SELECTED

    def test_idempotent(self):
        cal = Calibrator(self.props, self.valid, self.thresholds)
        first = cal.calibrate()
        assert cal.calibrate() is first
        assert cal.score() is first.surface

    def test_feasible_set_monotone_in_pfer_bound(self):
        previous = None
        for bound in (0.1, 0.5, 1.0, 5.0, 20.0, np.inf):
            surface = Calibrator(self.props, self.valid, self.thresholds, pfer_bound=bound).score()
            if previous is not None:
                assert (surface.feasible | ~previous).all()
            previous = surface.feasible

    def test_infeasible(self):
        result = Calibrator(self.props, self.valid, self.thresholds, pfer_bound=1e-6).calibrate()
        assert result.state is CalibrationState.INFEASIBLE
        assert result.optimum is None
        assert result.surface is not None

    def test_undefined_row_never_chosen(self):
        props = self.props.copy()
        props[1] = np.nan
        valid = np.array([100, 0, 100])
        result = Calibrator(props, valid, self.thresholds).calibrate()
        assert result.row != 1
        assert not result.surface.feasible[1].any()

    def test_ties_break_on_earliest_row(self):
        props = np.vstack([_clean_props(), _clean_props()])
        result = Calibrator(props, np.array([100, 100]), self.thresholds).calibrate()
        assert result.row == 0

    def test_ties_break_on_complexity(self):
        props = np.vstack([_clean_props(), _clean_props()])
        result = Calibrator(props, np.array([100, 100]), self.thresholds,
                            complexity=np.array([3.0, 1.0])).calibrate()
        assert result.row == 1

    def test_override(self):
        result = Calibrator(self.props, self.valid, self.thresholds, override=(2, 3)).calibrate()
        assert result.optimum == (2, 3)
        assert result.overridden
        assert result.surface is None
        assert result.threshold == pytest.approx(self.thresholds[3])

    def test_override_out_of_range(self):
        with pytest.raises(ConfigurationError):
            Calibrator(self.props, self.valid, self.thresholds, override=(5, 0))

    def test_fdp_bound(self):
        surface = Calibrator(self.props, self.valid, self.thresholds, fdp_bound=0.1).score()
        ok = surface.feasible
        assert (surface.fdp[ok] <= 0.1).all()


def test_calibrate_blocks_sequential():
    # two blocks of items, block-major sequential grid with 2 rows per block
    grid = block_lambda_grid(np.array([[0.5, 0.5], [0.2, 0.2]]))
    item_blocks = np.array([0] * 20 + [1] * 20)
    props = np.zeros((4, 40))
    props[0, :3] = 1.0
    props[1, :3] = 1.0
    props[1, 3:10] = 0.5
    props[2, 20:23] = 1.0
    props[3, 20:23] = 1.0
    props[3, 23:30] = 0.5
    valid = np.full(4, 100)

    results = calibrate_blocks(props, valid, grid.template, item_blocks, np.array([0.6, 0.8]))

    assert [r.block for r in results] == [0, 1]
    assert results[0].row in (0, 1)
    assert results[1].row in (2, 3)
    np.testing.assert_array_equal(results[1].surface.rows, [2, 3])


def test_calibrate_blocks_joint_is_single():
    grid = block_lambda_grid(np.array([[0.5, 0.5], [0.2, 0.2]]), joint=True)
    props = np.zeros((2, 10))
    props[:, :2] = 1.0
    results = calibrate_blocks(props, np.full(2, 50), grid.template, np.array([0] * 5 + [1] * 5),
                               np.array([0.6, 0.8]))
    assert len(results) == 1
    assert results[0].block is None
