"""Explicit registry of built-in estimators."""

from __future__ import annotations

import enum
from typing import Callable, Dict, Union

from stabsel.estimators.clustering import HierarchicalClustering
from stabsel.estimators.components import GroupPLS, SparseGroupPLS, SparsePCA, SparsePLS
from stabsel.estimators.graphical import GraphicalLassoEstimator, NeighbourhoodSelection
from stabsel.estimators.penalised import PenalisedRegression
from stabsel.exceptions import ConfigurationError


class EstimatorTag(enum.Enum):
    LASSO = "lasso"
    GRAPHICAL_LASSO = "graphical_lasso"
    NEIGHBOURHOOD = "neighbourhood"
    SPARSE_PCA = "sparse_pca"
    SPARSE_PLS = "sparse_pls"
    GROUP_PLS = "group_pls"
    SPARSE_GROUP_PLS = "sparse_group_pls"
    HIERARCHICAL = "hierarchical"


_REGISTRY: Dict[str, Callable] = {
    EstimatorTag.LASSO.value: PenalisedRegression,
    EstimatorTag.GRAPHICAL_LASSO.value: GraphicalLassoEstimator,
    EstimatorTag.NEIGHBOURHOOD.value: NeighbourhoodSelection,
    EstimatorTag.SPARSE_PCA.value: SparsePCA,
    EstimatorTag.SPARSE_PLS.value: SparsePLS,
    EstimatorTag.GROUP_PLS.value: GroupPLS,
    EstimatorTag.SPARSE_GROUP_PLS.value: SparseGroupPLS,
    EstimatorTag.HIERARCHICAL.value: HierarchicalClustering,
}


def _key(tag: Union[EstimatorTag, str]) -> str:
    return tag.value if isinstance(tag, EstimatorTag) else str(tag)


def register_estimator(tag: Union[EstimatorTag, str], factory: Callable, overwrite: bool = False) -> None:
    """Register ``factory(**params) -> Estimator`` under ``tag``."""
    key = _key(tag)
    if key in _REGISTRY and not overwrite:
        raise ConfigurationError(f"Estimator '{key}' is already registered")
    _REGISTRY[key] = factory


def get_estimator(tag: Union[EstimatorTag, str], **params):
    """Instantiate a registered estimator."""
    key = _key(tag)
    try:
        factory = _REGISTRY[key]
    except KeyError:
        raise ConfigurationError(
            f"Unknown estimator '{key}'. Available: {sorted(_REGISTRY)}"
        ) from None
    return factory(**params)


def available_estimators():
    return sorted(_REGISTRY)
