import numpy as np
import pytest

from stabsel.exceptions import ConfigurationError
from stabsel.sampling import Resampler, combine_strata, default_strata, spawn_seeds


def test_subsample_size_and_uniqueness():
    resampler = Resampler(100, 0.5)
    idx = resampler.draw(np.random.default_rng(0))

    assert idx.size == 50
    assert np.unique(idx).size == 50
    assert np.all(np.diff(idx) > 0)
    assert idx.dtype == np.int64


def test_stratified_sizes_exact_per_stratum():
    y = np.array([0] * 30 + [1] * 70)
    resampler = Resampler(100, 0.5, strata=y)
    rng = np.random.default_rng(0)

    for _ in range(20):
        idx = resampler.draw(rng)
        assert (y[idx] == 0).sum() == 15
        assert (y[idx] == 1).sum() == 35


def test_stratum_size_is_floored():
    y = np.array([0] * 5 + [1] * 7)
    resampler = Resampler(12, 0.5, strata=y)
    assert resampler.stratum_sizes() == {0: 2, 1: 3}
    assert resampler.size == 5


def test_empty_stratum_raises():
    y = np.array([0] * 50 + [1])
    with pytest.raises(ConfigurationError):
        Resampler(51, 0.5, strata=y)


def test_bootstrap_draws_stratum_size_with_replacement():
    y = np.array([0] * 40 + [1] * 60)
    resampler = Resampler(100, 0.5, method="bootstrap", strata=y)
    idx = resampler.draw(np.random.default_rng(0))

    assert idx.size == 100
    assert (y[idx] == 0).sum() == 40
    assert np.unique(idx).size < 100


def test_complementary_pairs_are_disjoint():
    y = np.array([0] * 20 + [1] * 30)
    resampler = Resampler(50, 0.5, strata=y)
    first, second = resampler.draw_pair(np.random.default_rng(3))

    assert np.intersect1d(first, second).size == 0
    assert first.size == second.size == 25
    assert (y[first] == 0).sum() == (y[second] == 0).sum() == 10


def test_complementary_pairs_need_tau_at_most_half():
    resampler = Resampler(50, 0.7)
    with pytest.raises(ConfigurationError):
        resampler.draw_pair(np.random.default_rng(0))


def test_custom_resampling_function():
    def first_half(y, tau, rng, offset=0):
        return np.arange(offset, offset + int(len(y) * tau))

    y = np.zeros(20)
    resampler = Resampler(20, 0.5, method=first_half, y=y, resampling_kwargs={"offset": 2})
    idx = resampler.draw(np.random.default_rng(0))
    assert idx.tolist() == list(range(2, 12))

    first, second = resampler.draw_pair(np.random.default_rng(0))
    assert np.intersect1d(first, second).size == 0
    assert second.size == first.size == 10


def test_custom_resampling_pair_matches_stratum_sizes():
    def leading(y, tau, rng):
        return np.concatenate([np.arange(0, 4), np.arange(10, 13)])

    y = np.array([0] * 10 + [1] * 20)
    resampler = Resampler(30, 0.5, method=leading, y=y, strata=y)
    first, second = resampler.draw_pair(np.random.default_rng(1))

    assert np.intersect1d(first, second).size == 0
    assert (y[second] == 0).sum() == 4
    assert (y[second] == 1).sum() == 3


def test_custom_resampling_pair_too_large_raises():
    resampler = Resampler(10, 0.5, method=lambda y, tau, rng: np.arange(7), y=np.zeros(10))
    with pytest.raises(ConfigurationError):
        resampler.draw_pair(np.random.default_rng(0))


def test_custom_resampling_out_of_range_raises():
    resampler = Resampler(10, 0.5, method=lambda y, tau, rng: [0, 10], y=np.zeros(10))
    with pytest.raises(ConfigurationError):
        resampler.draw(np.random.default_rng(0))


def test_invalid_tau_raises():
    with pytest.raises(ConfigurationError):
        Resampler(10, 0.0)
    with pytest.raises(ConfigurationError):
        Resampler(10, 1.5)


def test_same_seed_same_draws():
    resampler = Resampler(80, 0.5)
    seeds = spawn_seeds(7, 5)
    a = [resampler.draw(np.random.default_rng(s)) for s in seeds]
    b = [resampler.draw(np.random.default_rng(s)) for s in spawn_seeds(7, 5)]
    for x, z in zip(a, b):
        np.testing.assert_array_equal(x, z)


def test_combine_strata_crosses_keys():
    y = np.array([0, 0, 1, 1])
    conf = np.array(["a", "b", "a", "b"])
    codes = combine_strata(y, conf)
    assert np.unique(codes).size == 4


def test_default_strata_by_family():
    y = np.array([0, 1, 0, 1])
    assert default_strata(y, "gaussian") is None
    np.testing.assert_array_equal(default_strata(y, "binomial"), y)
    surv = np.column_stack([np.arange(4.0), [1, 0, 1, 0]])
    np.testing.assert_array_equal(default_strata(surv, "cox"), [1, 0, 1, 0])
