"""Variable clustering with co-membership output."""

from __future__ import annotations

import warnings

import numpy as np
from sklearn.cluster import AgglomerativeClustering

from stabsel.estimators.base import FitResult, SelectionKind, n_pairs
from stabsel.exceptions import ConfigurationError
from stabsel.grid.blocks import edge_index


class HierarchicalClustering:
    """
    Agglomerative clustering of variables on the ``1 - |corr|`` distance.

    The grid axis is the number of clusters; two variables are "selected"
    together when they end up in the same cluster.
    """

    kind = SelectionKind.COMEMBERSHIP

    def __init__(self, linkage: str = "average"):
        if linkage == "ward":
            raise ConfigurationError("Ward linkage needs euclidean distances; use 'average', 'complete' or 'single'")
        self.linkage = linkage

    def n_items(self, p: int, q: int = 0) -> int:
        return n_pairs(p)

    def fit(self, X, Y, sparsity_row, active_blocks, solver_state=None):
        p = X.shape[1]
        n_clusters = int(round(float(np.asarray(sparsity_row).reshape(-1)[0])))
        if not (1 <= n_clusters <= p):
            raise ConfigurationError(f"n_clusters must be between 1 and {p}, got {n_clusters}")
        dist = 1.0 - np.abs(np.corrcoef(X, rowvar=False))
        dist = np.clip(np.nan_to_num(dist, nan=1.0), 0.0, None)
        np.fill_diagonal(dist, 0.0)

        if n_clusters == p:
            labels = np.arange(p)
        else:
            model = AgglomerativeClustering(
                n_clusters=n_clusters, metric="precomputed", linkage=self.linkage
            )
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                labels = model.fit_predict(dist)

        i, j = edge_index(p)
        return FitResult(selected=labels[i] == labels[j])
