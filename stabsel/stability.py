import numpy as np
import pandas as pd
from typing import Optional, List, Sequence, Union

from sklearn.base import BaseEstimator, TransformerMixin

from stabsel.api import variable_selection
from stabsel.config import StabilityConfig


# =============================================================================
# Stability Selector
# =============================================================================

class StabilitySelector(BaseEstimator, TransformerMixin):
    """
    Stability selection for penalised linear models with calibrated penalty.

    Fits Lasso/ElasticNet (regression) or L1 LogisticRegression (classification)
    over a grid of penalties on many subsamples, then picks the penalty and
    selection-frequency threshold maximising the stability score, optionally
    under a bound on the expected number of false positives (PFER) or on the
    false discovery proportion.

    Parameters
    ----------
    n_resamples : int, default=100
        Number of subsamples.
    tau : float, default=0.5
        Fraction of data in each subsample.
    threshold : float, optional
        Fixed selection-frequency threshold. If None, calibrated over 0.60..0.90.
    alpha : float, optional
        Fixed penalty. If None, calibrated over ``Lambda``.
    Lambda : array-like, optional
        Penalty grid. Defaults to a geometric grid from the data.
    l1_ratio : float, default=1.0
        ElasticNet mixing (1.0 = Lasso, <1.0 = ElasticNet). Only for regression.
    task : str, default='regression'
        Either 'regression' or 'classification'.
    penalisation : str, default='classic'
        'classic', 'randomised' or 'adaptive' lasso.
    pfer_method : str, default='MB'
        'MB' (independent subsamples) or 'SS' (complementary pairs).
    pfer_bound : float, default=inf
        Upper bound on the expected number of false positives.
    fdp_bound : float, default=inf
        Upper bound on the estimated false discovery proportion.
    max_features : int, optional
        Hard cap on number of selected features.
    n_jobs : int, default=1
        Number of parallel jobs (-1 = all cores).
    parallel_backend : str, default='threads'
        Joblib backend preference.
    random_state : int, default=1
        Random seed for reproducibility.
    verbose : bool, default=True
        Print progress information.

    Attributes
    ----------
    model_ : StabilityModel
        Full stability selection result.
    selection_frequencies_ : ndarray of shape (n_features,)
        Selection proportions at the calibrated penalty.
    mean_abs_coef_ : ndarray of shape (n_features,)
        Mean absolute coefficient across subsamples at the calibrated penalty.
    alpha_ : float
        Calibrated penalty.
    threshold_ : float
        Threshold in use.
    selected_features_ : ndarray
        Indices of selected features, most stable first.
    selected_feature_names_ : list of str
    n_features_selected_ : int
    """

    def __init__(
        self,
        n_resamples: int = 100,
        tau: float = 0.5,
        threshold: Optional[float] = None,
        alpha: Optional[float] = None,
        Lambda: Optional[Sequence[float]] = None,
        l1_ratio: float = 1.0,
        task: str = 'regression',
        penalisation: str = 'classic',
        pfer_method: str = 'MB',
        pfer_bound: float = np.inf,
        fdp_bound: float = np.inf,
        max_features: Optional[int] = None,
        n_jobs: int = 1,
        parallel_backend: str = 'threads',
        random_state: Optional[int] = 1,
        verbose: bool = True
    ):
        self.n_resamples = n_resamples
        self.tau = tau
        self.threshold = threshold
        self.alpha = alpha
        self.Lambda = Lambda
        self.l1_ratio = l1_ratio
        self.task = task
        self.penalisation = penalisation
        self.pfer_method = pfer_method
        self.pfer_bound = pfer_bound
        self.fdp_bound = fdp_bound
        self.max_features = max_features
        self.n_jobs = n_jobs
        self.parallel_backend = parallel_backend
        self.random_state = random_state
        self.verbose = verbose

    def _config(self) -> StabilityConfig:
        return StabilityConfig(
            n_resamples=self.n_resamples,
            tau=self.tau,
            pfer_method=self.pfer_method,
            pfer_bound=self.pfer_bound,
            fdp_bound=self.fdp_bound,
            thresholds=None if self.threshold is None else [self.threshold],
            n_jobs=self.n_jobs,
            parallel_backend=self.parallel_backend,
            random_state=self.random_state,
            verbose=self.verbose,
        )

    def fit(
        self,
        X: Union[np.ndarray, pd.DataFrame],
        y: Union[np.ndarray, pd.Series],
    ) -> 'StabilitySelector':
        """
        Run stability selection.

        Parameters
        ----------
        X : array-like or DataFrame of shape (n_samples, n_features)
            Training data.
        y : array-like of shape (n_samples,)
            Target values.

        Returns
        -------
        self
        """
        if self.task not in ('regression', 'classification'):
            raise ValueError(f"task must be 'regression' or 'classification', got '{self.task}'")

        if self.task == 'classification':
            y_raw = np.asarray(y.values if hasattr(y, 'values') else y).reshape(-1)
            family = 'binomial' if len(pd.unique(y_raw)) == 2 else 'multinomial'
        else:
            family = 'gaussian'

        Lambda = [self.alpha] if self.alpha is not None else self.Lambda
        self.model_ = variable_selection(
            X,
            y,
            family=family,
            Lambda=Lambda,
            penalisation=self.penalisation,
            l1_ratio=self.l1_ratio,
            config=self._config(),
        )

        model = self.model_
        self.feature_names_in_ = model.feature_names
        self.n_features_in_ = len(model.feature_names)
        self.alpha_ = float(model.grid.row(model.results[0].row)['lambda'])
        self.selection_frequencies_ = model.selection_proportions()
        mean_abs = model.mean_abs_coefficients()
        self.mean_abs_coef_ = mean_abs if mean_abs is not None else np.zeros(self.n_features_in_)
        self._select(model.results[0].threshold)

        if self.verbose:
            print(f"Selected {self.n_features_selected_} / {self.n_features_in_} features "
                  f"(alpha={self.alpha_:.4g}, threshold={self.threshold_:.2f})")

        return self

    def _select(self, threshold: float):
        self.threshold_ = float(threshold)
        mask = self.model_.selected(row=self.model_.results[0].row, threshold=threshold)

        if self.max_features is not None and mask.sum() > self.max_features:
            freqs = np.where(mask, self.selection_frequencies_, -np.inf)
            top_idx = np.argsort(-freqs, kind="mergesort")[:self.max_features]
            mask = np.zeros(self.n_features_in_, dtype=bool)
            mask[top_idx] = True

        selected = np.where(mask)[0]
        order = np.argsort(-self.selection_frequencies_[selected], kind="mergesort")
        self.selected_features_ = selected[order]
        self.selected_feature_names_ = [self.feature_names_in_[i] for i in self.selected_features_]
        self.n_features_selected_ = len(self.selected_features_)

    def transform(self, X: Union[np.ndarray, pd.DataFrame]) -> np.ndarray:
        """Reduce X to selected features."""
        if isinstance(X, pd.DataFrame):
            return X[self.selected_feature_names_].values
        return np.asarray(X)[:, self.selected_features_]

    def fit_transform(
        self,
        X: Union[np.ndarray, pd.DataFrame],
        y: Union[np.ndarray, pd.Series],
        **fit_params
    ) -> np.ndarray:
        """Fit and transform in one step."""
        return self.fit(X, y, **fit_params).transform(X)

    def get_feature_info(self) -> pd.DataFrame:
        """
        Get DataFrame with feature selection details.

        Returns
        -------
        DataFrame with columns:
            feature: name
            frequency: selection frequency at the calibrated penalty
            mean_abs_coef: mean absolute coefficient across subsamples
            selected: whether it is among the selected features
        """
        return pd.DataFrame({
            'feature': self.feature_names_in_,
            'frequency': self.selection_frequencies_,
            'mean_abs_coef': self.mean_abs_coef_,
            'selected': self.get_support(),
        }).sort_values('frequency', ascending=False, kind='mergesort').reset_index(drop=True)

    def get_support(self, indices: bool = False) -> np.ndarray:
        """Get mask or indices of selected features."""
        if indices:
            return self.selected_features_
        mask = np.zeros(self.n_features_in_, dtype=bool)
        mask[self.selected_features_] = True
        return mask

    def set_threshold(self, threshold: float) -> 'StabilitySelector':
        """
        Update threshold and recompute selected features.

        The penalty stays at its calibrated value.

        Parameters
        ----------
        threshold : float
            New threshold value.

        Returns
        -------
        self
        """
        if not hasattr(self, 'model_'):
            raise ValueError("Must call fit() before set_threshold()")

        self._select(threshold)

        if self.verbose:
            print(f"Updated threshold to {threshold}: {self.n_features_selected_} features selected")

        return self


# =============================================================================
# Convenience Functions
# =============================================================================

def stability_regression(
    X: Union[np.ndarray, pd.DataFrame],
    y: Union[np.ndarray, pd.Series],
    k: Optional[int] = None,
    n_resamples: int = 100,
    pfer_bound: float = np.inf,
    l1_ratio: float = 1.0,
    tau: float = 0.5,
    random_state: Optional[int] = 1,
    n_jobs: int = 1,
    verbose: bool = True,
    return_indices: Optional[bool] = None,
) -> Union[List[str], List[int]]:
    """
    Stability selection for regression.

    Calibrates a Lasso/ElasticNet penalty and threshold by stability and
    returns the stably selected features.

    Parameters
    ----------
    X : array-like or DataFrame of shape (n_samples, n_features)
        Feature matrix.
    y : array-like of shape (n_samples,)
        Continuous target variable.
    k : int, optional
        Maximum number of features to select.
    n_resamples : int, default=100
        Number of subsamples.
    pfer_bound : float, default=inf
        Upper bound on the expected number of false positives.
    l1_ratio : float, default=1.0
        ElasticNet mixing (1.0 = Lasso, <1.0 = ElasticNet).
    tau : float, default=0.5
        Fraction of data per subsample.
    random_state : int, optional
        Random seed for reproducibility.
    n_jobs : int, default=1
        Number of parallel jobs.
    verbose : bool, default=True
        Print progress information.
    return_indices : bool, optional
        If True, return feature indices. If False, return feature names.
        If None, returns names for DataFrame inputs and indices for ndarray inputs.

    Returns
    -------
    selected_features : list of str or list of int
        Names or indices of selected features, depending on return_indices.
    """
    selector = StabilitySelector(
        task='regression',
        n_resamples=n_resamples,
        pfer_bound=pfer_bound,
        l1_ratio=l1_ratio,
        tau=tau,
        max_features=k,
        random_state=random_state,
        n_jobs=n_jobs,
        verbose=verbose,
    )
    selector.fit(X, y)
    if return_indices is None:
        return_indices = not isinstance(X, pd.DataFrame)
    if return_indices:
        return selector.selected_features_.tolist()
    return selector.selected_feature_names_


def stability_classif(
    X: Union[np.ndarray, pd.DataFrame],
    y: Union[np.ndarray, pd.Series],
    k: Optional[int] = None,
    n_resamples: int = 100,
    pfer_bound: float = np.inf,
    tau: float = 0.5,
    random_state: Optional[int] = 1,
    n_jobs: int = 1,
    verbose: bool = True,
    return_indices: Optional[bool] = None,
) -> Union[List[str], List[int]]:
    """
    Stability selection for classification.

    Calibrates an L1 LogisticRegression penalty and threshold by stability on
    class-stratified subsamples and returns the stably selected features.

    Parameters
    ----------
    X : array-like or DataFrame of shape (n_samples, n_features)
        Feature matrix.
    y : array-like of shape (n_samples,)
        Categorical target variable.
    k : int, optional
        Maximum number of features to select.
    n_resamples : int, default=100
        Number of subsamples.
    pfer_bound : float, default=inf
        Upper bound on the expected number of false positives.
    tau : float, default=0.5
        Fraction of data per subsample.
    random_state : int, optional
        Random seed for reproducibility.
    n_jobs : int, default=1
        Number of parallel jobs.
    verbose : bool, default=True
        Print progress information.
    return_indices : bool, optional
        If True, return feature indices. If False, return feature names.
        If None, returns names for DataFrame inputs and indices for ndarray inputs.

    Returns
    -------
    selected_features : list of str or list of int
        Names or indices of selected features, depending on return_indices.
    """
    selector = StabilitySelector(
        task='classification',
        n_resamples=n_resamples,
        pfer_bound=pfer_bound,
        tau=tau,
        max_features=k,
        random_state=random_state,
        n_jobs=n_jobs,
        verbose=verbose,
    )
    selector.fit(X, y)
    if return_indices is None:
        return_indices = not isinstance(X, pd.DataFrame)
    if return_indices:
        return selector.selected_features_.tolist()
    return selector.selected_feature_names_
