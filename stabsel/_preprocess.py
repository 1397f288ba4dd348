"""Input preprocessing: validation, conversion, standardisation."""

from __future__ import annotations

from typing import List, Literal, Optional, Tuple

import numpy as np
import pandas as pd

from stabsel.exceptions import ConfigurationError

Family = Literal["gaussian", "mgaussian", "binomial", "multinomial", "cox"]
FAMILIES = ("gaussian", "mgaussian", "binomial", "multinomial", "cox")
CLASSIFICATION_FAMILIES = frozenset({"binomial", "multinomial"})


# --- Input conversion ---


def to_numpy(data, dtype=np.float64) -> np.ndarray:
    """Convert Pandas/Polars/list to numpy array."""
    if hasattr(data, "to_pandas"):
        data = data.to_pandas()
    if isinstance(data, (pd.DataFrame, pd.Series)):
        try:
            return data.to_numpy(dtype=dtype, na_value=np.nan)
        except TypeError:
            arr = data.to_numpy()
            if arr.dtype == object:
                arr = np.where(pd.isna(arr), np.nan, arr)
            return arr.astype(dtype)
    if hasattr(data, "values"):
        return np.asarray(data.values, dtype=dtype)
    return np.asarray(data, dtype=dtype)


def extract_feature_names(X) -> Optional[List[str]]:
    """Extract column names from DataFrame, or None for ndarray."""
    if hasattr(X, "columns"):
        return [str(c) for c in X.columns]
    return None


def extract_outcome_names(y) -> Optional[List[str]]:
    """Outcome names for multi-column outcomes."""
    if isinstance(y, pd.DataFrame):
        return [str(c) for c in y.columns]
    return None


# --- Validation ---


def check_family(family: str) -> str:
    if family not in FAMILIES:
        raise ConfigurationError(
            f"family must be one of {list(FAMILIES)}, got '{family}'"
        )
    return family


def validate_x(X) -> Tuple[np.ndarray, List[str]]:
    """Convert X to a finite float64 matrix and extract feature names."""
    feature_names = extract_feature_names(X)
    if hasattr(X, "select_dtypes"):
        non_numeric = X.select_dtypes(include=["object", "category", "string"]).columns.tolist()
        if non_numeric:
            sample = non_numeric[:5]
            suffix = "..." if len(non_numeric) > 5 else ""
            raise ConfigurationError(
                f"Non-numeric columns found: {sample}{suffix}. Encode them first."
            )
    X_arr = to_numpy(X, dtype=np.float64)
    if X_arr.ndim != 2:
        raise ConfigurationError(f"X must be 2D, got shape {X_arr.shape}")
    if X_arr.shape[0] < 2 or X_arr.shape[1] < 1:
        raise ConfigurationError(f"X must have at least 2 rows and 1 column, got {X_arr.shape}")
    if not np.isfinite(X_arr).all():
        raise ConfigurationError("X contains non-finite values; impute them before stability selection.")

    if feature_names is None:
        feature_names = [f"x{i}" for i in range(X_arr.shape[1])]
    return X_arr, feature_names


def validate_y(y, family: str, n: int) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Convert the outcome for a given family.

    Returns
    -------
    y_arr : ndarray
        float64 outcome (2D for mgaussian/cox), or int codes for classification.
    classes : ndarray or None
        Original class labels for classification families.
    """
    check_family(family)
    classes = None

    if family in CLASSIFICATION_FAMILIES:
        y_raw = y.values if hasattr(y, "values") else np.asarray(y)
        y_raw = np.asarray(y_raw).reshape(-1)
        if pd.isna(y_raw).any():
            raise ConfigurationError("Missing values in y are not allowed for classification.")
        classes, y_arr = np.unique(y_raw, return_inverse=True)
        y_arr = y_arr.astype(np.int64)
        if len(classes) < 2:
            raise ConfigurationError("Classification outcome needs at least 2 classes.")
        if family == "binomial" and len(classes) != 2:
            raise ConfigurationError(
                f"family='binomial' requires exactly 2 classes, got {len(classes)}. "
                "Use family='multinomial'."
            )
    elif family == "cox":
        y_arr = to_numpy(y, dtype=np.float64)
        if y_arr.ndim != 2 or y_arr.shape[1] != 2:
            raise ConfigurationError("family='cox' expects y of shape (n, 2): (time, status).")
        if not np.isin(y_arr[:, 1], (0.0, 1.0)).all():
            raise ConfigurationError("Cox status column must be coded 0 (censored) / 1 (event).")
    elif family == "mgaussian":
        y_arr = to_numpy(y, dtype=np.float64)
        if y_arr.ndim == 1:
            y_arr = y_arr[:, None]
    else:
        y_arr = to_numpy(y, dtype=np.float64)
        if y_arr.ndim == 2 and y_arr.shape[1] == 1:
            y_arr = y_arr[:, 0]
        if y_arr.ndim != 1:
            raise ConfigurationError("family='gaussian' expects a single outcome; use 'mgaussian'.")

    if family not in CLASSIFICATION_FAMILIES and not np.isfinite(y_arr).all():
        raise ConfigurationError(f"Non-finite values in y are not allowed for family='{family}'.")
    if y_arr.shape[0] != n:
        raise ConfigurationError(f"X has {n} rows but y has {y_arr.shape[0]}")

    return y_arr, classes


def standardise(X: np.ndarray) -> np.ndarray:
    """Centre and scale columns; zero-variance columns are only centred."""
    mu = X.mean(axis=0)
    sd = X.std(axis=0)
    sd = np.where(sd > 0, sd, 1.0)
    return (X - mu) / sd


def column_sd(X: np.ndarray) -> np.ndarray:
    """Sample standard deviation of each column (ddof=1)."""
    if X.shape[0] < 2:
        return np.zeros(X.shape[1])
    return X.std(axis=0, ddof=1)


def constant_columns(X: np.ndarray) -> np.ndarray:
    """
    Mask of columns holding a single value.

    Compared exactly: a column of 0.1 has a computed sd of ~1e-17, not 0.
    """
    if X.shape[0] == 0:
        return np.ones(X.shape[1], dtype=bool)
    return (X == X[0]).all(axis=0)


def guard_degenerate(X: np.ndarray, rng: np.random.Generator):
    """
    Perturb constant columns of a subsample.

    Returns the (possibly copied) matrix and the perturbed column indices, or
    ``None`` for the matrix when every column is constant. The noise standard
    deviation is 1/100 of the smallest sd among the other columns.
    """
    constant = constant_columns(X)
    degenerate = np.flatnonzero(constant)
    if degenerate.size == 0:
        return X, degenerate
    sd = column_sd(X)[~constant]
    sd = sd[sd > 0]
    if sd.size == 0:
        return None, degenerate
    X = X.copy()
    X[:, degenerate] += rng.normal(0.0, sd.min() / 100, size=(X.shape[0], degenerate.size))
    return X, degenerate
