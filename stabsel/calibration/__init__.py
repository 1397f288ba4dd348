from stabsel.calibration.calibrator import (
    CalibrationResult,
    CalibrationState,
    Calibrator,
    ScoreSurface,
    calibrate_blocks,
)
from stabsel.calibration.error_control import fdp_estimate, get_pfer_method, pfer_mb, pfer_ss
from stabsel.calibration.scores import (
    BinomialScore,
    MultinomialScore,
    StabilityScore,
    get_score,
    register_score,
)

__all__ = [
    "CalibrationResult",
    "CalibrationState",
    "Calibrator",
    "ScoreSurface",
    "calibrate_blocks",
    "fdp_estimate",
    "get_pfer_method",
    "pfer_mb",
    "pfer_ss",
    "BinomialScore",
    "MultinomialScore",
    "StabilityScore",
    "get_score",
    "register_score",
]
