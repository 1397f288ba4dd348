__version__ = "0.1.0"

from stabsel.api import bi_selection, clustering, graphical_model, variable_selection
from stabsel.calibration import (
    CalibrationResult,
    CalibrationState,
    Calibrator,
    ScoreSurface,
    register_score,
)
from stabsel.config import StabilityConfig
from stabsel.estimators import (
    INVALID,
    EstimatorTag,
    FitResult,
    SelectionKind,
    get_estimator,
    register_estimator,
)
from stabsel.exceptions import (
    ConfigurationError,
    DegenerateColumnWarning,
    InfeasibleCalibrationError,
)
from stabsel.grid import ParameterGrid, block_lambda_grid, product_grid, single_axis_grid
from stabsel.model import BiSelectionModel, StabilityModel
from stabsel.sampling import Resampler
from stabsel.stability import StabilitySelector, stability_classif, stability_regression

__all__ = [
    "__version__",
    "variable_selection",
    "graphical_model",
    "clustering",
    "bi_selection",
    "StabilityConfig",
    "StabilityModel",
    "BiSelectionModel",
    "StabilitySelector",
    "stability_regression",
    "stability_classif",
    "Calibrator",
    "CalibrationResult",
    "CalibrationState",
    "ScoreSurface",
    "register_score",
    "EstimatorTag",
    "FitResult",
    "INVALID",
    "SelectionKind",
    "get_estimator",
    "register_estimator",
    "ParameterGrid",
    "block_lambda_grid",
    "product_grid",
    "single_axis_grid",
    "Resampler",
    "ConfigurationError",
    "DegenerateColumnWarning",
    "InfeasibleCalibrationError",
]
