"""Exception and warning types raised by stabsel."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid configuration detected before any resampling starts."""


class InfeasibleCalibrationError(RuntimeError):
    """
    No grid point satisfies the error-control bound.

    The fitted container is attached as ``model`` so that the score surface can
    still be inspected, or a point chosen manually with ``model.selected(...)``.
    """

    def __init__(self, message: str, model=None):
        super().__init__(message)
        self.model = model


class DegenerateColumnWarning(RuntimeWarning):
    """A constant column was perturbed before fitting and forced unselected."""
