"""High-level stability selection functions."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Union

import numpy as np
from sklearn.preprocessing import StandardScaler

from stabsel._preprocess import (
    CLASSIFICATION_FAMILIES,
    extract_outcome_names,
    validate_x,
    validate_y,
)
from stabsel.calibration.calibrator import calibrate_blocks
from stabsel.config import StabilityConfig, resolve_config
from stabsel.engine import run_resamples
from stabsel.estimators.base import SelectionKind
from stabsel.estimators.registry import EstimatorTag, get_estimator
from stabsel.exceptions import ConfigurationError, InfeasibleCalibrationError
from stabsel.grid.base import ParameterGrid, product_grid, single_axis_grid
from stabsel.grid.blocks import block_labels, block_lambda_grid, check_pk, edge_blocks
from stabsel.grid.lambda_grid import lambda_grid_graphical, lambda_grid_regression
from stabsel.model import BiSelectionModel, StabilityModel
from stabsel.sampling.resample import Resampler, default_strata


# =============================================================================
# Shared driver
# =============================================================================

def _run(
    X: np.ndarray,
    Y: Optional[np.ndarray],
    grid: ParameterGrid,
    estimator,
    config: StabilityConfig,
    feature_names: List[str],
    strata=None,
    y_resampling: Optional[np.ndarray] = None,
    item_blocks: Optional[np.ndarray] = None,
    secondary_names: Optional[Dict[str, Sequence[str]]] = None,
    metadata: Optional[dict] = None,
) -> StabilityModel:
    """Resample, aggregate, calibrate and wrap the result."""
    n, p = X.shape
    q = 0 if Y is None else (1 if Y.ndim == 1 else Y.shape[1])
    if config.strata is not None:
        strata = np.asarray(config.strata)
    resampler = Resampler(
        n,
        config.tau,
        method=config.resampling,
        strata=strata,
        y=y_resampling,
        resampling_kwargs=config.resampling_kwargs,
    )
    n_items = estimator.n_items(p, q)
    counts, run_meta = run_resamples(X, Y, grid, estimator, resampler, config, n_items)

    thresholds = config.resolved_thresholds()
    calibration = dict(
        pfer_method=config.pfer_method,
        pfer_bound=config.pfer_bound,
        fdp_bound=config.fdp_bound,
        score=config.score,
        n_resamples=config.n_resamples,
    )
    results = calibrate_blocks(
        counts.proportions(), counts.valid_counts, grid.template, item_blocks, thresholds, **calibration
    )
    item_columns = None
    if estimator.kind is SelectionKind.FEATURES and hasattr(estimator, "item_columns"):
        item_columns = estimator.item_columns(p)

    model = StabilityModel(
        kind=estimator.kind,
        grid=grid,
        thresholds=thresholds,
        counts=counts,
        results=results,
        feature_names=feature_names,
        item_columns=item_columns,
        item_blocks=item_blocks,
        calibration={**calibration, "thresholds": thresholds},
        metadata={**(metadata or {}), **run_meta, "config": config},
        secondary_names=secondary_names,
    )
    if config.verbose:
        print(model.summary())
    if not model.feasible:
        raise InfeasibleCalibrationError(
            "No grid point satisfies pfer_bound="
            f"{config.pfer_bound} / fdp_bound={config.fdp_bound}. "
            "The full model is attached as `.model`; use model.recalibrate() or "
            "model.selected(row=..., threshold=...).",
            model=model,
        )
    return model


def _as_grid(values, axis: str, descending: bool) -> ParameterGrid:
    if isinstance(values, ParameterGrid):
        return values
    values = np.asarray(values, dtype=np.float64).reshape(-1)
    if values.size == 0:
        raise ConfigurationError(f"Empty grid for '{axis}'")
    values = np.sort(values)[::-1] if descending else np.sort(values)
    return single_axis_grid(values, axis=axis)


# =============================================================================
# Variable selection
# =============================================================================

def variable_selection(
    X,
    y,
    family: str = "gaussian",
    Lambda=None,
    estimator=None,
    penalisation: str = "classic",
    gamma: Optional[float] = None,
    penalty_factor: Optional[Sequence[float]] = None,
    l1_ratio: float = 1.0,
    lambda_cardinal: int = 100,
    lambda_min_ratio: float = 1e-3,
    standardize: bool = True,
    config: Optional[StabilityConfig] = None,
    **overrides,
) -> StabilityModel:
    """
    Stability selection of predictors with penalised regression.

    Parameters
    ----------
    X : array-like or DataFrame of shape (n_samples, n_features)
    y : array-like
        Outcome: vector (gaussian, binomial, multinomial), matrix (mgaussian), or
        (time, status) pairs (cox, custom estimator only).
    family : {"gaussian", "mgaussian", "binomial", "multinomial", "cox"}
    Lambda : array-like or ParameterGrid, optional
        Penalties; sorted from largest (sparsest) to smallest. Default: a
        geometric sequence from the smallest penalty selecting nothing.
    estimator : object, optional
        Custom estimator following the plugin contract; defaults to the
        built-in lasso (``EstimatorTag.LASSO``).
    penalisation, gamma, penalty_factor, l1_ratio
        Passed to the built-in lasso.
    standardize : bool
        Standardise columns of X before resampling.
    config : StabilityConfig, optional
    **overrides
        Any StabilityConfig field (n_resamples, tau, pfer_bound, n_jobs, ...).

    Returns
    -------
    StabilityModel

    Raises
    ------
    InfeasibleCalibrationError
        When no grid point satisfies the error bounds; ``.model`` holds the result.
    """
    config = resolve_config(config, **overrides)
    X_arr, feature_names = validate_x(X)
    y_arr, classes = validate_y(y, family, X_arr.shape[0])
    if standardize:
        X_arr = StandardScaler().fit_transform(X_arr)

    if estimator is None:
        estimator = get_estimator(
            EstimatorTag.LASSO,
            family=family,
            penalisation=penalisation,
            gamma=gamma,
            penalty_factor=penalty_factor,
            l1_ratio=l1_ratio,
        )
    if Lambda is None:
        Lambda = lambda_grid_regression(X_arr, y_arr, family, lambda_cardinal, lambda_min_ratio)
    grid = _as_grid(Lambda, "lambda", descending=True)

    return _run(
        X_arr,
        y_arr,
        grid,
        estimator,
        config,
        feature_names,
        strata=default_strata(y_arr, family),
        y_resampling=y_arr,
        metadata={"family": family, "classes": classes, "outcome_names": extract_outcome_names(y)},
    )


# =============================================================================
# Graphical models
# =============================================================================

def graphical_model(
    X,
    pk: Optional[Sequence[int]] = None,
    Lambda=None,
    estimator=None,
    lambda_other_blocks: float = 0.1,
    joint: bool = False,
    block_order: Optional[Sequence[int]] = None,
    lambda_cardinal: int = 50,
    lambda_min_ratio: float = 1e-2,
    max_density: float = 0.5,
    config: Optional[StabilityConfig] = None,
    **overrides,
) -> StabilityModel:
    """
    Stability selection of the edges of a Gaussian graphical model.

    With several variable groups (``pk``), every pair of groups is a block with
    its own penalty. By default blocks are calibrated one after the other while
    the others are held at ``lambda_other_blocks``, and the calibrated graph is
    the union of the block-wise stable edges. ``joint=True`` varies all block
    penalties together and calibrates once.

    Parameters
    ----------
    X : array-like or DataFrame of shape (n_samples, n_variables)
    pk : sequence of int, optional
        Group sizes, in column order.
    Lambda : array-like of shape (L,) or (L, n_blocks), or ParameterGrid, optional
        Per-block penalties, largest first.
    estimator : object, optional
        Defaults to graphical lasso for one block and neighbourhood selection
        for several.
    max_density : float
        Used to trim the default grid: penalties giving an edge density above
        this value on the full data are dropped.

    Returns
    -------
    StabilityModel
    """
    config = resolve_config(config, **overrides)
    X_arr, feature_names = validate_x(X)
    p = X_arr.shape[1]
    if p < 2:
        raise ConfigurationError("Graphical models need at least 2 variables")
    pk = check_pk(pk, p)
    labels = block_labels(pk)

    if estimator is None:
        if len(labels) == 1:
            estimator = get_estimator(EstimatorTag.GRAPHICAL_LASSO)
        else:
            estimator = get_estimator(EstimatorTag.NEIGHBOURHOOD, pk=pk)

    if isinstance(Lambda, ParameterGrid):
        grid = Lambda
    else:
        if Lambda is None:
            Lambda = lambda_grid_graphical(
                X_arr,
                pk,
                cardinal=lambda_cardinal,
                lambda_min_ratio=lambda_min_ratio,
                max_density=max_density,
                estimator=estimator,
                lambda_other_blocks=lambda_other_blocks,
                random_state=config.random_state,
            )
        Lambda = np.asarray(Lambda, dtype=np.float64)
        Lambda = -np.sort(-Lambda, axis=0)
        grid = block_lambda_grid(
            Lambda,
            lambda_other_blocks=lambda_other_blocks,
            joint=joint,
            block_order=block_order,
            labels=labels,
        )

    item_blocks = edge_blocks(pk) if len(labels) > 1 else None
    return _run(
        X_arr,
        None,
        grid,
        estimator,
        config,
        feature_names,
        item_blocks=item_blocks,
        metadata={"pk": pk.tolist(), "joint": grid.joint},
    )


# =============================================================================
# Clustering
# =============================================================================

def clustering(
    X,
    n_clusters: Optional[Sequence[int]] = None,
    estimator=None,
    linkage: str = "average",
    config: Optional[StabilityConfig] = None,
    **overrides,
) -> StabilityModel:
    """
    Stability of variable co-membership under hierarchical clustering.

    The grid is the number of clusters, from many (sparse co-membership) to few.
    Calibration uses the same stability score over variable pairs.
    """
    config = resolve_config(config, **overrides)
    X_arr, feature_names = validate_x(X)
    p = X_arr.shape[1]
    if p < 2:
        raise ConfigurationError("Clustering needs at least 2 variables")
    if estimator is None:
        estimator = get_estimator(EstimatorTag.HIERARCHICAL, linkage=linkage)
    if n_clusters is None:
        n_clusters = np.arange(max(p - 1, 1), 0, -1)
    grid = _as_grid(n_clusters, "n_clusters", descending=True)
    return _run(X_arr, None, grid, estimator, config, feature_names)


# =============================================================================
# Sparse PCA / PLS
# =============================================================================

def _tag_name(tag) -> str:
    return tag.value if isinstance(tag, EstimatorTag) else str(tag)


def _one_hot(codes: np.ndarray) -> np.ndarray:
    return (codes[:, None] == np.unique(codes)[None, :]).astype(np.float64)


def _default_axes(axes, p, q, group_x, group_y, LambdaX, LambdaY, AlphaX, AlphaY):
    if "n_groups_x" in axes and group_x is None:
        raise ConfigurationError("Group models need group_x")
    n_gx = len(group_x) if group_x is not None else None
    n_gy = len(group_y) if group_y is not None else None
    defaults = {
        "n_keep_x": LambdaX if LambdaX is not None else np.arange(1, max(p, 2)),
        "n_keep_y": LambdaY if LambdaY is not None else [max(q, 1)],
        "n_groups_x": LambdaX if LambdaX is not None else np.arange(1, max(n_gx or 1, 2)),
        "n_groups_y": LambdaY if LambdaY is not None else [n_gy or 1],
        "alpha_x": AlphaX if AlphaX is not None else np.round(np.arange(0.1, 1.0, 0.1), 1),
        "alpha_y": AlphaY if AlphaY is not None else ([0.0] if group_y is None else np.round(np.arange(0.1, 1.0, 0.1), 1)),
    }
    limits = {"n_keep_x": p, "n_keep_y": q, "n_groups_x": n_gx, "n_groups_y": n_gy or 1}
    out = {}
    for axis in axes:
        values = np.asarray(defaults[axis], dtype=np.float64).reshape(-1)
        limit = limits.get(axis)
        if limit is not None and (values.min() < 1 or values.max() > limit):
            raise ConfigurationError(f"'{axis}' values must lie in [1, {limit}], got {values.tolist()}")
        if axis.startswith("alpha") and (values.min() < 0 or values.max() >= 1):
            raise ConfigurationError(f"'{axis}' values must lie in [0, 1)")
        out[axis] = values
    return out


def bi_selection(
    X,
    y=None,
    family: str = "gaussian",
    ncomp: int = 1,
    LambdaX=None,
    LambdaY=None,
    AlphaX=None,
    AlphaY=None,
    group_x: Optional[Sequence[int]] = None,
    group_y: Optional[Sequence[int]] = None,
    implementation: Optional[Union[EstimatorTag, str]] = None,
    config: Optional[StabilityConfig] = None,
    **overrides,
) -> BiSelectionModel:
    """
    Component-wise stability selection for sparse PCA / PLS models.

    Components are calibrated one at a time: component ``c`` is fitted after
    deflating the data with components ``0..c-1`` fixed at their calibrated
    parameters.

    Parameters
    ----------
    X : array-like or DataFrame
    y : array-like, optional
        Outcome(s) for PLS models; None for sparse PCA.
    family : {"gaussian", "mgaussian", "binomial", "multinomial"}
        Classification outcomes are one-hot encoded (PLS-DA).
    ncomp : int
        Number of components.
    LambdaX, LambdaY : sequence of int, optional
        Numbers of kept X / Y variables (or groups for group models).
    AlphaX, AlphaY : sequence of float, optional
        Within-group sparsity of sparse-group models.
    group_x, group_y : sequence of int, optional
        Consecutive group sizes.
    implementation : EstimatorTag, optional
        SPARSE_PCA, SPARSE_PLS, GROUP_PLS or SPARSE_GROUP_PLS. Chosen from the
        inputs when not given.

    Returns
    -------
    BiSelectionModel
    """
    config = resolve_config(config, **overrides)
    if ncomp < 1:
        raise ConfigurationError(f"ncomp must be >= 1, got {ncomp}")
    X_arr, feature_names = validate_x(X)
    n, p = X_arr.shape

    if implementation is None:
        if y is None:
            implementation = EstimatorTag.SPARSE_PCA
        elif group_x is None:
            implementation = EstimatorTag.SPARSE_PLS
        elif AlphaX is None:
            implementation = EstimatorTag.GROUP_PLS
        else:
            implementation = EstimatorTag.SPARSE_GROUP_PLS

    Y = None
    y_codes = None
    strata = None
    outcome_names = None
    if y is not None:
        y_arr, classes = validate_y(y, family, n)
        if family in CLASSIFICATION_FAMILIES:
            y_codes = y_arr
            Y = _one_hot(y_arr)
            outcome_names = [str(c) for c in classes]
            strata = default_strata(y_arr, family)
        else:
            Y = y_arr if y_arr.ndim == 2 else y_arr[:, None]
            outcome_names = extract_outcome_names(y) or [f"y{j}" for j in range(Y.shape[1])]
    q = 0 if Y is None else Y.shape[1]

    components: List[StabilityModel] = []
    parameters: List[Dict[str, float]] = []
    previous: List[np.ndarray] = []
    for c in range(ncomp):
        estimator = get_estimator(
            implementation, component=c, previous=previous, group_x=group_x, group_y=group_y
        )
        axes = _default_axes(estimator.axes, p, q, group_x, group_y, LambdaX, LambdaY, AlphaX, AlphaY)
        grid = product_grid(**axes)
        if config.verbose:
            print(f"Component {c + 1}/{ncomp}")
        model = _run(
            X_arr,
            Y,
            grid,
            estimator,
            config,
            feature_names,
            strata=strata,
            y_resampling=y_codes if y_codes is not None else Y,
            secondary_names={"y": outcome_names} if outcome_names is not None else None,
            metadata={"component": c, "family": family, "implementation": _tag_name(implementation)},
        )
        row = model.results[0].row
        previous.append(grid.values[row])
        parameters.append({**grid.row(row), "threshold": model.results[0].threshold})
        components.append(model)

    return BiSelectionModel(components=components, parameters=parameters)
