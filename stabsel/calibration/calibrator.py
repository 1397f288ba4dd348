"""Score surface, error control and choice of the calibrated point."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from stabsel.calibration._kernels import stable_mask
from stabsel.calibration.error_control import fdp_estimate, get_pfer_method
from stabsel.calibration.scores import StabilityScore, get_score
from stabsel.exceptions import ConfigurationError


class CalibrationState(enum.Enum):
    UNSCORED = "unscored"
    SCORED = "scored"
    OPTIMUM_SELECTED = "optimum_selected"
    INFEASIBLE = "infeasible"


def _frozen(arr) -> np.ndarray:
    arr = np.array(arr, copy=True)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class ScoreSurface:
    """
    Calibration surface over (row, threshold).

    ``rows`` maps surface rows to grid rows. Infeasible points keep their score;
    ``feasible`` flags the points satisfying every bound.
    """
    rows: np.ndarray
    thresholds: np.ndarray
    score: np.ndarray
    pfer: np.ndarray
    fdp: np.ndarray
    feasible: np.ndarray
    q: np.ndarray
    n_stable: np.ndarray

    @property
    def shape(self) -> Tuple[int, int]:
        return self.score.shape


@dataclass(frozen=True, eq=False)
class CalibrationResult:
    state: CalibrationState
    surface: Optional[ScoreSurface]
    optimum: Optional[Tuple[int, int]]
    thresholds: np.ndarray
    overridden: bool = False
    block: Optional[int] = None

    @property
    def row(self) -> Optional[int]:
        """Calibrated grid row."""
        return None if self.optimum is None else self.optimum[0]

    @property
    def threshold_index(self) -> Optional[int]:
        return None if self.optimum is None else self.optimum[1]

    @property
    def threshold(self) -> Optional[float]:
        return None if self.optimum is None else float(self.thresholds[self.optimum[1]])

    @property
    def feasible(self) -> bool:
        return self.state is CalibrationState.OPTIMUM_SELECTED


class Calibrator:
    """
    Pick the most stable feasible (row, threshold) point.

    Parameters
    ----------
    proportions : ndarray of shape (n_rows, n_items)
        Selection proportions, NaN on undefined rows.
    valid_counts : ndarray of shape (n_rows,)
        Number of valid resamples per row.
    thresholds : array-like
        Selection-frequency thresholds.
    pfer_method : {"MB", "SS"} or callable
    pfer_bound, fdp_bound : float
        Points above either bound are infeasible.
    score : str, StabilityScore or callable
    complexity : ndarray of shape (n_rows,), optional
        Model complexity used to break ties; defaults to ``q``, the expected
        number of selected items per resample.
    override : (row, threshold_index), optional
        Grid row and threshold index to use without scoring.
    n_resamples : int, optional
        Number of resamples K; defaults to ``max(valid_counts)``.
    rows : array-like, optional
        Grid rows of ``proportions`` (for block-restricted calibration).
    block : int, optional
        Block being calibrated, stored on the result.

    Ties between points of equal score are broken by smallest complexity,
    then earliest grid row, then smallest threshold. ``calibrate`` is
    idempotent: a second call returns the same result object.
    """

    def __init__(
        self,
        proportions: np.ndarray,
        valid_counts: np.ndarray,
        thresholds,
        pfer_method: Union[str, Callable] = "MB",
        pfer_bound: float = np.inf,
        fdp_bound: float = np.inf,
        score: Union[str, StabilityScore, Callable] = "multinomial",
        complexity: Optional[np.ndarray] = None,
        override: Optional[Tuple[int, int]] = None,
        n_resamples: Optional[int] = None,
        rows: Optional[Sequence[int]] = None,
        block: Optional[int] = None,
    ):
        props = np.asarray(proportions, dtype=np.float64)
        if props.ndim != 2:
            raise ConfigurationError(f"proportions must be 2D, got shape {props.shape}")
        valid_counts = np.asarray(valid_counts).reshape(-1)
        if valid_counts.shape[0] != props.shape[0]:
            raise ConfigurationError("valid_counts must have one entry per grid row")
        thresholds = np.asarray(thresholds, dtype=np.float64).reshape(-1)
        if thresholds.size == 0:
            raise ConfigurationError("At least one threshold is needed")
        rows = np.arange(props.shape[0]) if rows is None else np.asarray(rows, dtype=np.int64)
        if rows.shape[0] != props.shape[0]:
            raise ConfigurationError("rows must have one entry per proportions row")

        self._props = _frozen(props)
        self._valid_counts = _frozen(valid_counts)
        self.thresholds = _frozen(thresholds)
        self.rows = _frozen(rows)
        self.pfer_method = get_pfer_method(pfer_method)
        self.pfer_bound = float(pfer_bound)
        self.fdp_bound = float(fdp_bound)
        self.score_strategy = get_score(score)
        self.complexity = None if complexity is None else np.asarray(complexity, dtype=np.float64)
        self.override = override
        self.n_resamples = int(n_resamples) if n_resamples is not None else int(valid_counts.max(initial=0))
        self.block = block

        if self.complexity is not None and self.complexity.shape[0] != props.shape[0]:
            raise ConfigurationError("complexity must have one entry per grid row")
        if override is not None:
            row, t = override
            if int(row) not in set(self.rows.tolist()):
                raise ConfigurationError(f"Override row {row} is not among the calibrated rows")
            if not (0 <= int(t) < thresholds.size):
                raise ConfigurationError(f"Override threshold index {t} out of range")

        self._state = CalibrationState.UNSCORED
        self._surface: Optional[ScoreSurface] = None
        self._result: Optional[CalibrationResult] = None

    @property
    def state(self) -> CalibrationState:
        return self._state

    def score(self) -> ScoreSurface:
        """Compute (once) the score surface and feasibility mask."""
        if self._surface is not None:
            return self._surface
        props = self._props
        n_items = props.shape[1]
        defined = self._valid_counts > 0
        with np.errstate(invalid="ignore"):
            q = np.where(defined, np.nansum(props, axis=1), np.nan)

        score = self.score_strategy.surface(props, self._valid_counts, self.thresholds)
        pfer = self.pfer_method(q, self.thresholds, n_items, self.n_resamples)
        n_stable = np.stack(
            [stable_mask(props, t).sum(axis=1) for t in self.thresholds], axis=1
        ).astype(np.int64)
        fdp = fdp_estimate(pfer, n_stable)
        with np.errstate(invalid="ignore"):
            feasible = (pfer <= self.pfer_bound) & (fdp <= self.fdp_bound) & defined[:, None]

        self._surface = ScoreSurface(
            rows=self.rows,
            thresholds=self.thresholds,
            score=_frozen(score),
            pfer=_frozen(pfer),
            fdp=_frozen(fdp),
            feasible=_frozen(feasible),
            q=_frozen(q),
            n_stable=_frozen(n_stable),
        )
        if self._state is CalibrationState.UNSCORED:
            self._state = CalibrationState.SCORED
        return self._surface

    def calibrate(self) -> CalibrationResult:
        if self._result is not None:
            return self._result

        if self.override is not None:
            row, t = int(self.override[0]), int(self.override[1])
            self._result = CalibrationResult(
                state=CalibrationState.OPTIMUM_SELECTED,
                surface=None,
                optimum=(row, t),
                thresholds=self.thresholds,
                overridden=True,
                block=self.block,
            )
            self._state = CalibrationState.OPTIMUM_SELECTED
            return self._result

        surface = self.score()
        candidates = surface.feasible & np.isfinite(surface.score)
        if not candidates.any():
            self._state = CalibrationState.INFEASIBLE
            self._result = CalibrationResult(
                state=CalibrationState.INFEASIBLE,
                surface=surface,
                optimum=None,
                thresholds=self.thresholds,
                block=self.block,
            )
            return self._result

        best = np.max(surface.score[candidates])
        tied = candidates & np.isclose(surface.score, best, rtol=1e-12, atol=0.0)
        r_idx, t_idx = np.nonzero(tied)
        complexity = surface.q if self.complexity is None else self.complexity
        order = np.lexsort((t_idx, self.rows[r_idx], complexity[r_idx]))
        r, t = r_idx[order[0]], t_idx[order[0]]

        self._state = CalibrationState.OPTIMUM_SELECTED
        self._result = CalibrationResult(
            state=CalibrationState.OPTIMUM_SELECTED,
            surface=surface,
            optimum=(int(self.rows[r]), int(t)),
            thresholds=self.thresholds,
            block=self.block,
        )
        return self._result


def calibrate_blocks(
    proportions: np.ndarray,
    valid_counts: np.ndarray,
    template: np.ndarray,
    item_blocks: Optional[np.ndarray],
    thresholds,
    override=None,
    **kwargs,
) -> List[CalibrationResult]:
    """
    One calibration per block.

    Each block is calibrated on the rows where it is active and on its own
    items. A joint template (or a single block) is calibrated once over every
    item. ``override`` is a single (row, threshold_index) pair, or one pair
    (or None) per block.
    """
    template = np.asarray(template, dtype=bool)
    n_blocks = template.shape[1]
    if n_blocks == 1 or template.all() or item_blocks is None:
        ov = override[0] if _per_block(override) else override
        cal = Calibrator(proportions, valid_counts, thresholds, override=ov, **kwargs)
        return [cal.calibrate()]

    overrides = list(override) if _per_block(override) else [override] * n_blocks
    if len(overrides) != n_blocks:
        raise ConfigurationError(f"{len(overrides)} overrides for {n_blocks} blocks")
    complexity = kwargs.pop("complexity", None)
    results = []
    for b in range(n_blocks):
        rows = np.flatnonzero(template[:, b])
        items = np.flatnonzero(item_blocks == b)
        if rows.size == 0 or items.size == 0:
            continue
        cal = Calibrator(
            proportions[np.ix_(rows, items)],
            valid_counts[rows],
            thresholds,
            complexity=None if complexity is None else np.asarray(complexity)[rows],
            override=overrides[b],
            rows=rows,
            block=b,
            **kwargs,
        )
        results.append(cal.calibrate())
    return results


def _per_block(override) -> bool:
    return (
        override is not None
        and len(override) > 0
        and (override[0] is None or isinstance(override[0], (tuple, list)))
    )
