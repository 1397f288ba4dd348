"""Parameter grids shared by the executor and the calibrator."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from stabsel.exceptions import ConfigurationError


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, copy=True)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class ParameterGrid:
    """
    Ordered grid of sparsity parameters.

    Parameters
    ----------
    values : ndarray of shape (n_rows, n_axes)
        One row per grid point. Rows are ordered from the sparsest model to the
        densest one.
    axes : tuple of str
        Axis names, one per column of ``values`` (e.g. ``("lambda",)``,
        ``("lambda_block_0", "lambda_block_1")`` or ``("n_keep", "alpha")``).
    template : ndarray of bool, shape (n_rows, n_blocks)
        Active blocks per row. A single-block grid has one all-True column.
    block_labels : tuple of str
        Names of the blocks, one per template column.
    axis_values : tuple of ndarray, optional
        Candidate values per axis for product grids; used by :meth:`locate`.
    """
    values: np.ndarray
    axes: Tuple[str, ...]
    template: Optional[np.ndarray] = None
    block_labels: Tuple[str, ...] = ("block_0",)
    axis_values: Optional[Tuple[np.ndarray, ...]] = None

    def __post_init__(self):
        values = np.asarray(self.values, dtype=np.float64)
        if values.ndim == 1:
            values = values[:, None]
        if values.ndim != 2 or values.shape[0] == 0:
            raise ConfigurationError(f"Grid values must be a non-empty 2D array, got shape {values.shape}")
        axes = tuple(self.axes)
        if len(axes) != values.shape[1]:
            raise ConfigurationError(f"{len(axes)} axis names for {values.shape[1]} grid columns")
        if not np.isfinite(values).all():
            raise ConfigurationError("Grid values must be finite")

        if self.template is None:
            template = np.ones((values.shape[0], len(self.block_labels)), dtype=bool)
        else:
            template = np.asarray(self.template, dtype=bool)
            if template.ndim == 1:
                template = template[:, None]
        if template.shape[0] != values.shape[0]:
            raise ConfigurationError(
                f"Template has {template.shape[0]} rows for a grid of {values.shape[0]} rows"
            )
        if template.shape[1] != len(self.block_labels):
            raise ConfigurationError(
                f"Template has {template.shape[1]} blocks but {len(self.block_labels)} labels were given"
            )
        if not template.any(axis=1).all():
            raise ConfigurationError("Every grid row must activate at least one block")

        object.__setattr__(self, "values", _frozen(values))
        object.__setattr__(self, "axes", axes)
        object.__setattr__(self, "template", _frozen(template))
        object.__setattr__(self, "block_labels", tuple(self.block_labels))
        if self.axis_values is not None:
            object.__setattr__(
                self, "axis_values", tuple(_frozen(np.asarray(v, dtype=np.float64)) for v in self.axis_values)
            )

    @property
    def n_rows(self) -> int:
        return self.values.shape[0]

    @property
    def n_axes(self) -> int:
        return self.values.shape[1]

    @property
    def n_blocks(self) -> int:
        return self.template.shape[1]

    @property
    def joint(self) -> bool:
        """True when every row activates every block."""
        return bool(self.template.all())

    @property
    def sequential(self) -> bool:
        """True when every row activates exactly one block."""
        return bool((self.template.sum(axis=1) == 1).all())

    @property
    def searched_axes(self) -> Tuple[str, ...]:
        """Axes taking more than one value; the others are fixed."""
        return tuple(
            name for j, name in enumerate(self.axes) if np.unique(self.values[:, j]).size > 1
        )

    def row(self, r: int) -> Dict[str, float]:
        return {name: float(v) for name, v in zip(self.axes, self.values[r])}

    def column(self, axis: str) -> np.ndarray:
        try:
            j = self.axes.index(axis)
        except ValueError:
            raise ConfigurationError(f"Unknown grid axis '{axis}'; axes are {list(self.axes)}") from None
        return self.values[:, j]

    def block_rows(self, block: int) -> np.ndarray:
        """Rows where ``block`` is active."""
        return np.flatnonzero(self.template[:, block])

    def same_template(self, r: int, s: int) -> bool:
        return bool(np.array_equal(self.template[r], self.template[s]))

    def locate(self, **axis_indices: int) -> int:
        """
        Row index of a grid point given per-axis indices.

        Axes not named are matched on their first candidate value when the grid
        is a product grid, and ignored otherwise.

        Examples
        --------
        grid = product_grid(n_keep=[1, 2, 3], alpha=[0.1, 0.5])
        grid.locate(n_keep=2, alpha=0)  # row holding n_keep=3, alpha=0.1
        """
        unknown = sorted(set(axis_indices) - set(self.axes))
        if unknown:
            raise ConfigurationError(f"Unknown grid axes {unknown}")
        mask = np.ones(self.n_rows, dtype=bool)
        for j, name in enumerate(self.axes):
            candidates = (
                self.axis_values[j] if self.axis_values is not None
                else np.unique(self.values[:, j])
            )
            if name not in axis_indices:
                if self.axis_values is None:
                    continue
                idx = 0
            else:
                idx = int(axis_indices[name])
            if not (0 <= idx < candidates.size):
                raise ConfigurationError(
                    f"Index {idx} out of range for axis '{name}' with {candidates.size} values"
                )
            mask &= np.isclose(self.values[:, j], candidates[idx])
        rows = np.flatnonzero(mask)
        if rows.size == 0:
            raise ConfigurationError(f"No grid row matches {axis_indices}")
        return int(rows[0])


def single_axis_grid(values: Sequence[float], axis: str = "lambda") -> ParameterGrid:
    """Single-block grid over one axis."""
    values = np.asarray(values, dtype=np.float64).reshape(-1)
    return ParameterGrid(values=values[:, None], axes=(axis,), axis_values=(values,))


def product_grid(**axes: Sequence[float]) -> ParameterGrid:
    """
    Cartesian product of axis values, first axis varying slowest.

    Used for structural models with several sparsity axes, e.g. number of kept
    variables (or groups) and the group-sparsity mixing weight.
    """
    if not axes:
        raise ConfigurationError("product_grid needs at least one axis")
    names = tuple(axes)
    axis_values = tuple(np.asarray(v, dtype=np.float64).reshape(-1) for v in axes.values())
    for name, vals in zip(names, axis_values):
        if vals.size == 0:
            raise ConfigurationError(f"Axis '{name}' has no value")
    values = np.array(list(itertools.product(*axis_values)), dtype=np.float64)
    return ParameterGrid(values=values, axes=names, axis_values=axis_values)


def threshold_grid(start: float = 0.6, stop: float = 0.9, step: float = 0.01) -> np.ndarray:
    """Selection-frequency thresholds from ``start`` to ``stop`` inclusive."""
    if not (0 < start <= stop < 1):
        raise ConfigurationError("Thresholds must satisfy 0 < start <= stop < 1")
    if step <= 0:
        raise ConfigurationError("step must be positive")
    return np.round(np.arange(start, stop + step / 2, step), 10)
