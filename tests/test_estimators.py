import numpy as np
import pytest

from stabsel.estimators import (
    INVALID,
    EstimatorTag,
    FitResult,
    SelectionKind,
    available_estimators,
    get_estimator,
    register_estimator,
)
from stabsel.estimators.components import sparsify
from stabsel.exceptions import ConfigurationError
from stabsel.grid import single_axis_grid
from stabsel.selection import run_resample


@pytest.fixture
def regression_data():
    rng = np.random.default_rng(0)
    X = rng.standard_normal((150, 10))
    y = 2 * X[:, 0] - 1.5 * X[:, 1] + 0.3 * rng.standard_normal(150)
    return X, y


@pytest.fixture
def component_data():
    rng = np.random.default_rng(2)
    n = 300
    z = rng.standard_normal((n, 2))
    # pair (0, 1) more tightly linked than pair (2, 3)
    return np.column_stack([
        z[:, 0], z[:, 0] + 0.1 * rng.standard_normal(n),
        z[:, 1], z[:, 1] + 0.5 * rng.standard_normal(n),
        rng.standard_normal(n), rng.standard_normal(n),
    ])


@pytest.fixture
def graph_data():
    rng = np.random.default_rng(1)
    n = 300
    z = rng.standard_normal((n, 3))
    # pairs (0, 1) and (2, 3) strongly linked, 4 and 5 independent
    X = np.column_stack([
        z[:, 0], z[:, 0] + 0.3 * rng.standard_normal(n),
        z[:, 1], z[:, 1] + 0.3 * rng.standard_normal(n),
        rng.standard_normal(n), rng.standard_normal(n),
    ])
    return X


class TestPenalisedRegression:
    def test_gaussian_selects_true_columns(self, regression_data):
        X, y = regression_data
        est = get_estimator(EstimatorTag.LASSO, family="gaussian")
        result = est.fit(X, y, np.array([0.2]), np.array([True]))

        assert result.selected[:2].all()
        assert result.coefficients.shape == (10, 1)
        assert result.solver_state is not None

    def test_large_penalty_selects_nothing(self, regression_data):
        X, y = regression_data
        est = get_estimator("lasso", family="gaussian")
        result = est.fit(X, y, np.array([100.0]), np.array([True]))
        assert not result.selected.any()

    def test_warm_start_state_accepted(self, regression_data):
        X, y = regression_data
        est = get_estimator("lasso", family="gaussian")
        first = est.fit(X, y, np.array([0.5]), np.array([True]))
        second = est.fit(X, y, np.array([0.2]), np.array([True]), solver_state=first.solver_state)
        cold = est.fit(X, y, np.array([0.2]), np.array([True]))
        np.testing.assert_allclose(second.coefficients, cold.coefficients, atol=1e-2)

    def test_binomial(self, regression_data):
        X, y = regression_data
        labels = (y > 0).astype(int)
        est = get_estimator("lasso", family="binomial")
        result = est.fit(X, labels, np.array([0.05]), np.array([True]))
        assert result.selected[0]
        assert result.coefficients.shape == (10, 1)

    def test_multinomial_coefficients_per_class(self, regression_data):
        X, y = regression_data
        labels = np.digitize(y, np.quantile(y, [1 / 3, 2 / 3]))
        est = get_estimator("lasso", family="multinomial")
        result = est.fit(X, labels, np.array([0.05]), np.array([True]))
        assert result.coefficients.shape == (10, 3)

    def test_mgaussian(self, regression_data):
        X, y = regression_data
        Y = np.column_stack([y, -y])
        est = get_estimator("lasso", family="mgaussian")
        result = est.fit(X, Y, np.array([0.2]), np.array([True]))
        assert result.coefficients.shape == (10, 2)
        assert result.selected[:2].all()

    def test_penalty_factor_excludes_unpenalised_columns(self, regression_data):
        X, y = regression_data
        factor = np.ones(10)
        factor[0] = 0
        est = get_estimator("lasso", family="gaussian", penalty_factor=factor)

        assert est.n_items(10) == 9
        np.testing.assert_array_equal(est.item_columns(10), np.arange(1, 10))
        result = est.fit(X, y, np.array([0.2]), np.array([True]))
        assert result.selected.shape == (9,)
        assert result.selected[0]  # column 1

    def test_randomised_weights_drawn_per_resample(self, regression_data):
        X, y = regression_data
        est = get_estimator("lasso", family="gaussian", penalisation="randomised", gamma=0.5)
        a = est.for_resample(X, y, np.random.default_rng(0))
        b = est.for_resample(X, y, np.random.default_rng(1))

        assert est._weights is None
        assert (a._weights >= 1.0).all() and (a._weights <= 2.0).all()
        assert not np.allclose(a._weights, b._weights)

    def test_adaptive_weights_favour_large_ridge_coefficients(self, regression_data):
        X, y = regression_data
        est = get_estimator("lasso", family="gaussian", penalisation="adaptive")
        bound = est.for_resample(X, y, np.random.default_rng(0))
        assert bound._weights[0] < bound._weights[5]

    def test_unconverged_fit_is_invalid(self):
        rng = np.random.default_rng(0)
        X = rng.standard_normal((40, 60))
        y = X[:, :5].sum(axis=1) + 0.1 * rng.standard_normal(40)
        est = get_estimator("lasso", family="gaussian", max_iter=1)

        assert est.fit(X, y, np.array([0.001]), np.array([True])) is INVALID
        sm = run_resample(X, y, np.arange(40), single_axis_grid([0.001]), est, np.random.default_rng(0))
        assert sm.valid.tolist() == [False]

    def test_cox_needs_custom_estimator(self):
        with pytest.raises(ConfigurationError):
            get_estimator("lasso", family="cox")


class TestGraphical:
    def test_graphical_lasso_finds_linked_pairs(self, graph_data):
        est = get_estimator(EstimatorTag.GRAPHICAL_LASSO)
        result = est.fit(graph_data, None, np.array([0.3]), np.array([True]))

        assert result.selected.shape == (15,)
        # (0, 1) is item 0; (2, 3) is item 9
        assert result.selected[0] and result.selected[9]
        assert est.kind is SelectionKind.EDGES

    def test_graphical_lasso_rejects_block_penalties(self, graph_data):
        est = get_estimator(EstimatorTag.GRAPHICAL_LASSO)
        with pytest.raises(ConfigurationError):
            est.fit(graph_data, None, np.array([0.3, 0.1, 0.2]), np.array([True, False, False]))

    def test_neighbourhood_selection_block_penalties(self, graph_data):
        est = get_estimator(EstimatorTag.NEIGHBOURHOOD, pk=[2, 4])
        # blocks: (0,0) pairs in group 0, (0,1) across, (1,1) within group 1
        strong = est.fit(graph_data, None, np.array([0.1, 10.0, 0.1]), np.array([True, False, False]))
        A = np.zeros((6, 6), dtype=bool)
        A[np.triu_indices(6, 1)] = strong.selected

        assert A[0, 1] and A[2, 3]
        assert not A[:2, 2:].any()
        assert strong.solver_state.shape == (6, 6)

    def test_neighbourhood_warm_start(self, graph_data):
        est = get_estimator(EstimatorTag.NEIGHBOURHOOD)
        first = est.fit(graph_data, None, np.array([0.3]), np.array([True]))
        warm = est.fit(graph_data, None, np.array([0.1]), np.array([True]), solver_state=first.solver_state)
        assert warm.selected[0] and warm.selected[9]
        assert warm.solver_state.shape == (6, 6)

    def test_unconverged_graph_fits_are_invalid(self, graph_data):
        glasso = get_estimator(EstimatorTag.GRAPHICAL_LASSO, max_iter=1)
        nbhd = get_estimator(EstimatorTag.NEIGHBOURHOOD, max_iter=1)
        assert glasso.fit(graph_data, None, np.array([0.05]), np.array([True])) is INVALID
        assert nbhd.fit(graph_data, None, np.array([0.05]), np.array([True])) is INVALID


class TestComponents:
    def test_sparsify_top_k(self):
        u = np.array([0.1, -0.9, 0.3, 0.05])
        out = sparsify(u, 2)
        assert (out != 0).tolist() == [False, True, True, False]
        assert np.linalg.norm(out) == pytest.approx(1.0)

    def test_sparsify_groups_and_alpha(self):
        u = np.array([0.5, 0.05, 0.1, 0.1, 0.9, 0.8])
        groups = np.array([0, 0, 1, 1, 2, 2])
        out = sparsify(u, 2, groups)
        assert (out != 0).tolist() == [True, True, False, False, True, True]
        out = sparsify(u, 2, groups, alpha=0.5)
        assert (out != 0).tolist() == [True, False, False, False, True, True]

    def test_sparse_pca(self, component_data):
        est = get_estimator(EstimatorTag.SPARSE_PCA)
        result = est.fit(component_data, None, np.array([2.0]), np.array([True]))
        assert result.selected.sum() == 2
        assert result.coefficients.shape == (6, 1)

    def test_second_component_uses_previous_parameters(self, component_data):
        first = get_estimator(EstimatorTag.SPARSE_PCA).fit(component_data, None, np.array([2.0]), np.array([True]))
        est = get_estimator(EstimatorTag.SPARSE_PCA, component=1, previous=[[2.0]])
        second = est.fit(component_data, None, np.array([2.0]), np.array([True]))
        assert first.selected.tolist() == [True, True, False, False, False, False]
        assert second.selected.tolist() == [False, False, True, True, False, False]
        assert not (first.selected & second.selected).any()

    def test_component_needs_previous_rows(self):
        with pytest.raises(ConfigurationError):
            get_estimator(EstimatorTag.SPARSE_PCA, component=1)

    def test_sparse_pls_secondary_outcome_selection(self, regression_data):
        X, y = regression_data
        Y = np.column_stack([y, np.random.default_rng(0).standard_normal(150)])
        est = get_estimator(EstimatorTag.SPARSE_PLS)
        result = est.fit(X, Y, np.array([2.0, 1.0]), np.array([True]))

        assert result.selected[:2].all()
        assert result.secondary["y"].tolist() == [True, False]

    def test_group_pls_requires_groups(self, regression_data):
        X, y = regression_data
        est = get_estimator(EstimatorTag.GROUP_PLS)
        with pytest.raises(ConfigurationError):
            est.fit(X, y, np.array([1.0, 1.0]), np.array([True]))


class TestClustering:
    def test_comembership(self, graph_data):
        est = get_estimator(EstimatorTag.HIERARCHICAL)
        result = est.fit(graph_data, None, np.array([4.0]), np.array([True]))
        A = np.zeros((6, 6), dtype=bool)
        A[np.triu_indices(6, 1)] = result.selected
        assert A[0, 1] and A[2, 3]
        assert result.selected.sum() == 2

    def test_ward_rejected(self):
        with pytest.raises(ConfigurationError):
            get_estimator(EstimatorTag.HIERARCHICAL, linkage="ward")


class TestRegistry:
    def test_builtins_listed(self):
        names = available_estimators()
        assert {tag.value for tag in EstimatorTag} <= set(names)

    def test_unknown_estimator(self):
        with pytest.raises(ConfigurationError):
            get_estimator("does_not_exist")

    def test_register_custom(self):
        class Dummy:
            kind = SelectionKind.FEATURES

            def n_items(self, p, q=0):
                return p

            def fit(self, X, Y, sparsity_row, active_blocks, solver_state=None):
                return INVALID

        register_estimator("dummy_for_test", Dummy, overwrite=True)
        assert isinstance(get_estimator("dummy_for_test"), Dummy)
        with pytest.raises(ConfigurationError):
            register_estimator("dummy_for_test", Dummy)

    def test_fit_result_defaults(self):
        result = FitResult(selected=np.array([True]))
        assert result.coefficients is None
        assert result.secondary == {}
