from stabsel.grid.base import ParameterGrid, product_grid, single_axis_grid, threshold_grid
from stabsel.grid.blocks import (
    block_labels,
    block_lambda_grid,
    block_matrix,
    check_pk,
    edge_blocks,
    edge_index,
)
from stabsel.grid.lambda_grid import (
    lambda_grid_graphical,
    lambda_grid_regression,
    lambda_max_regression,
    lambda_sequence,
)

__all__ = [
    "ParameterGrid",
    "product_grid",
    "single_axis_grid",
    "threshold_grid",
    "block_labels",
    "block_lambda_grid",
    "block_matrix",
    "check_pk",
    "edge_blocks",
    "edge_index",
    "lambda_grid_graphical",
    "lambda_grid_regression",
    "lambda_max_regression",
    "lambda_sequence",
]
