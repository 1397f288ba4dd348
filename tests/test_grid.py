import numpy as np
import pytest

from stabsel._preprocess import constant_columns
from stabsel.estimators import FitResult, SelectionKind
from stabsel.exceptions import ConfigurationError
from stabsel.grid import (
    ParameterGrid,
    block_labels,
    block_lambda_grid,
    block_matrix,
    check_pk,
    edge_blocks,
    lambda_grid_graphical,
    lambda_grid_regression,
    lambda_sequence,
    product_grid,
    single_axis_grid,
    threshold_grid,
)


class TestBlockGrid:
    def test_sequential_template_one_block_per_row(self):
        Lambda = np.array([[0.5, 0.4], [0.3, 0.2], [0.1, 0.05]])
        grid = block_lambda_grid(Lambda, lambda_other_blocks=0.1)

        assert grid.n_rows == 6
        assert grid.sequential
        assert (grid.template.sum(axis=1) == 1).all()
        np.testing.assert_array_equal(grid.template[:3], [[True, False]] * 3)
        np.testing.assert_array_equal(grid.template[3:], [[False, True]] * 3)

    def test_sequential_values(self):
        Lambda = np.array([[0.5, 0.4], [0.3, 0.2]])
        grid = block_lambda_grid(Lambda, lambda_other_blocks=0.1)

        np.testing.assert_allclose(grid.values[0], [0.5, 0.1])
        np.testing.assert_allclose(grid.values[1], [0.3, 0.1])
        np.testing.assert_allclose(grid.values[2], [0.1, 0.4])
        np.testing.assert_allclose(grid.values[3], [0.1, 0.2])

    def test_block_order(self):
        Lambda = np.array([[0.5, 0.4], [0.3, 0.2]])
        grid = block_lambda_grid(Lambda, block_order=[1, 0])
        np.testing.assert_array_equal(grid.block_rows(1), [0, 1])
        np.testing.assert_array_equal(grid.block_rows(0), [2, 3])

    def test_joint_template_all_true(self):
        Lambda = np.array([[0.5, 0.4], [0.3, 0.2], [0.1, 0.05]])
        grid = block_lambda_grid(Lambda, joint=True)

        assert grid.n_rows == 3
        assert grid.joint
        assert grid.template.all()

    def test_three_groups_six_blocks(self):
        pk = [2, 2, 2]
        labels = block_labels(pk)
        assert labels == ("block_00", "block_01", "block_02", "block_11", "block_12", "block_22")

        grid = block_lambda_grid(np.linspace(0.5, 0.1, 4), labels=labels)
        assert grid.n_rows == 4 * 6
        assert grid.axes[0] == "lambda_block_00"


class TestBlockMatrix:
    def test_two_groups(self):
        bm = block_matrix([2, 1])
        expected = np.array([
            [-1, 0, 1],
            [0, -1, 1],
            [1, 1, -1],
        ])
        np.testing.assert_array_equal(bm, expected)

    def test_edge_blocks_upper_triangle_order(self):
        # pairs (0,1), (0,2), (1,2)
        np.testing.assert_array_equal(edge_blocks([2, 1]), [0, 1, 1])

    def test_check_pk(self):
        np.testing.assert_array_equal(check_pk(None, 5), [5])
        with pytest.raises(ConfigurationError):
            check_pk([2, 2], 5)
        with pytest.raises(ConfigurationError):
            check_pk([0, 5], 5)


class TestParameterGrid:
    def test_values_are_read_only(self):
        grid = single_axis_grid([0.3, 0.2, 0.1])
        with pytest.raises(ValueError):
            grid.values[0, 0] = 1.0

    def test_row_and_column(self):
        grid = single_axis_grid([0.3, 0.2, 0.1])
        assert grid.row(1) == {"lambda": 0.2}
        np.testing.assert_allclose(grid.column("lambda"), [0.3, 0.2, 0.1])
        with pytest.raises(ConfigurationError):
            grid.column("alpha")

    def test_product_grid_first_axis_slowest(self):
        grid = product_grid(n_keep=[1, 2, 3], alpha=[0.1, 0.5])

        assert grid.n_rows == 6
        np.testing.assert_allclose(grid.values[:2], [[1, 0.1], [1, 0.5]])
        assert grid.searched_axes == ("n_keep", "alpha")

    def test_locate(self):
        grid = product_grid(n_keep=[1, 2, 3], alpha=[0.1, 0.5])
        assert grid.locate(n_keep=2, alpha=1) == 5
        assert grid.locate(n_keep=1) == 2
        with pytest.raises(ConfigurationError):
            grid.locate(n_keep=3)
        with pytest.raises(ConfigurationError):
            grid.locate(beta=0)

    def test_fixed_axis_not_searched(self):
        grid = product_grid(n_keep=[1, 2, 3], n_keep_y=[1])
        assert grid.searched_axes == ("n_keep",)

    def test_row_without_active_block_raises(self):
        with pytest.raises(ConfigurationError):
            ParameterGrid(values=[[0.1, 0.1]], axes=("a", "b"), template=[[False, False]],
                          block_labels=("b0", "b1"))

    def test_threshold_grid(self):
        t = threshold_grid()
        assert t.size == 31
        assert t[0] == pytest.approx(0.6)
        assert t[-1] == pytest.approx(0.9)


class TestLambdaGrid:
    def test_sequence_is_decreasing_geometric(self):
        seq = lambda_sequence(1.0, 0.01, 5)
        assert seq[0] == pytest.approx(1.0)
        assert seq[-1] == pytest.approx(0.01)
        ratios = seq[1:] / seq[:-1]
        np.testing.assert_allclose(ratios, ratios[0])

    def test_regression_grid_starts_empty(self):
        from sklearn.linear_model import Lasso

        rng = np.random.default_rng(0)
        X = rng.standard_normal((100, 10))
        y = X[:, 0] + rng.standard_normal(100)
        Xs = (X - X.mean(0)) / X.std(0)
        grid = lambda_grid_regression(Xs, y, "gaussian", cardinal=10)

        model = Lasso(alpha=grid[0] * 1.0001).fit(Xs, y)
        assert np.all(model.coef_ == 0)
        model = Lasso(alpha=grid[-1]).fit(Xs, y)
        assert np.any(model.coef_ != 0)

    def test_cox_grid_not_supported(self):
        X = np.random.default_rng(0).standard_normal((20, 3))
        y = np.column_stack([np.arange(20.0), np.ones(20)])
        with pytest.raises(ConfigurationError):
            lambda_grid_regression(X, y, "cox")

    def test_graphical_grid_per_block(self):
        rng = np.random.default_rng(0)
        X = rng.standard_normal((60, 6))
        Lambda = lambda_grid_graphical(X, pk=[3, 3], cardinal=5)
        assert Lambda.shape == (5, 3)
        assert (np.diff(Lambda, axis=0) < 0).all()

    def test_graphical_grid_trimming_survives_solver_errors(self):
        class FailsFirst:
            kind = SelectionKind.EDGES

            def __init__(self):
                self.seen = []

            def n_items(self, p, q=0):
                return p * (p - 1) // 2

            def fit(self, X, Y, sparsity_row, active_blocks, solver_state=None):
                self.seen.append(X)
                if len(self.seen) == 1:
                    raise FloatingPointError("non SPD result")
                return FitResult(selected=np.zeros(self.n_items(X.shape[1]), dtype=bool))

        rng = np.random.default_rng(0)
        X = rng.standard_normal((60, 4))
        X[:, 3] = 0.1
        est = FailsFirst()
        Lambda = lambda_grid_graphical(X, cardinal=5, estimator=est, random_state=0)

        assert Lambda.shape == (5, 1)
        assert np.isfinite(Lambda).all()
        assert len(est.seen) == 5
        assert not constant_columns(est.seen[0]).any()
