"""Block structure of multi-group graphical models."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np

from stabsel.exceptions import ConfigurationError
from stabsel.grid.base import ParameterGrid


def check_pk(pk: Optional[Sequence[int]], p: int) -> np.ndarray:
    """Group sizes; ``None`` means a single group of all ``p`` variables."""
    if pk is None:
        return np.array([p], dtype=np.int64)
    pk = np.asarray(pk, dtype=np.int64).reshape(-1)
    if pk.size == 0 or (pk <= 0).any():
        raise ConfigurationError(f"pk must hold positive group sizes, got {pk.tolist()}")
    if pk.sum() != p:
        raise ConfigurationError(f"pk sums to {pk.sum()} but X has {p} columns")
    return pk


def block_pairs(n_groups: int) -> List[Tuple[int, int]]:
    """Unordered pairs of groups (i <= j), in block-id order."""
    return [(i, j) for i in range(n_groups) for j in range(i, n_groups)]


def block_matrix(pk: Sequence[int]) -> np.ndarray:
    """
    Block id of every variable pair.

    A block is an unordered pair of variable groups, so ``k`` groups give
    ``k * (k + 1) / 2`` blocks. The diagonal is -1.

    Examples
    --------
    block_matrix([2, 1])
    # [[-1,  0,  1],
    #  [ 0, -1,  1],
    #  [ 1,  1, -1]]
    """
    pk = np.asarray(pk, dtype=np.int64).reshape(-1)
    group = np.repeat(np.arange(pk.size), pk)
    ids = {pair: b for b, pair in enumerate(block_pairs(pk.size))}
    lo = np.minimum.outer(group, group)
    hi = np.maximum.outer(group, group)
    out = np.vectorize(lambda i, j: ids[(i, j)], otypes=[np.int64])(lo, hi)
    np.fill_diagonal(out, -1)
    return out


def block_labels(pk: Sequence[int]) -> Tuple[str, ...]:
    pk = np.asarray(pk).reshape(-1)
    if pk.size == 1:
        return ("block_0",)
    return tuple(f"block_{i}{j}" for i, j in block_pairs(pk.size))


def edge_index(p: int) -> Tuple[np.ndarray, np.ndarray]:
    """Upper-triangle (i < j) indices; the order of edge and co-membership items."""
    return np.triu_indices(p, k=1)


def edge_blocks(pk: Sequence[int]) -> np.ndarray:
    """Block id of each edge, in :func:`edge_index` order."""
    bigblocks = block_matrix(pk)
    return bigblocks[edge_index(bigblocks.shape[0])]


def block_lambda_grid(
    Lambda,
    lambda_other_blocks: float = 0.1,
    joint: bool = False,
    block_order: Optional[Sequence[int]] = None,
    labels: Optional[Sequence[str]] = None,
) -> ParameterGrid:
    """
    Expand per-block penalties into a block grid and its template.

    Parameters
    ----------
    Lambda : array-like of shape (L,) or (L, n_blocks)
        Penalty sequence per block, sparsest first. A 1D sequence is shared by
        every block (one block when ``labels`` is not given).
    lambda_other_blocks : float
        Weak penalty held by inactive blocks in sequential mode.
    joint : bool
        If True, every row is active for every block (L rows). Otherwise blocks
        are calibrated one after another: row ``r`` of block ``b`` uses
        ``Lambda[r, b]`` for ``b`` and ``lambda_other_blocks`` elsewhere
        (L * n_blocks rows, exactly one active block per row).
    block_order : sequence of int, optional
        Order in which blocks are visited in sequential mode.
    labels : sequence of str, optional
        Block names.

    Returns
    -------
    ParameterGrid
        Axes ``lambda_block_<b>``.
    """
    Lambda = np.asarray(Lambda, dtype=np.float64)
    if Lambda.ndim == 1:
        n_blocks = len(labels) if labels is not None else 1
        Lambda = np.repeat(Lambda[:, None], n_blocks, axis=1)
    if Lambda.ndim != 2 or Lambda.shape[0] == 0:
        raise ConfigurationError(f"Lambda must be a non-empty (L, n_blocks) array, got shape {Lambda.shape}")
    L, n_blocks = Lambda.shape
    labels = tuple(labels) if labels is not None else tuple(f"block_{b}" for b in range(n_blocks))
    if len(labels) != n_blocks:
        raise ConfigurationError(f"{len(labels)} labels for {n_blocks} blocks")
    axes = tuple(f"lambda_{label}" for label in labels)

    if joint or n_blocks == 1:
        template = np.ones((L, n_blocks), dtype=bool)
        return ParameterGrid(values=Lambda, axes=axes, template=template, block_labels=labels)

    order = list(range(n_blocks)) if block_order is None else [int(b) for b in block_order]
    if sorted(order) != list(range(n_blocks)):
        raise ConfigurationError(f"block_order must be a permutation of 0..{n_blocks - 1}, got {order}")

    values = np.full((L * n_blocks, n_blocks), float(lambda_other_blocks))
    template = np.zeros((L * n_blocks, n_blocks), dtype=bool)
    for pos, b in enumerate(order):
        rows = slice(pos * L, (pos + 1) * L)
        values[rows, b] = Lambda[:, b]
        template[rows, b] = True
    return ParameterGrid(values=values, axes=axes, template=template, block_labels=labels)
