"""Container for stability selection results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from stabsel.calibration._kernels import stable_mask
from stabsel.calibration.calibrator import (
    CalibrationResult,
    CalibrationState,
    ScoreSurface,
    calibrate_blocks,
)
from stabsel.estimators.base import SelectionKind
from stabsel.exceptions import ConfigurationError, InfeasibleCalibrationError
from stabsel.grid.base import ParameterGrid
from stabsel.grid.blocks import edge_index
from stabsel.selection.aggregate import SelectionCounts


def _frozen(arr) -> Optional[np.ndarray]:
    if arr is None:
        return None
    arr = np.array(arr, copy=True)
    arr.setflags(write=False)
    return arr


class StabilityModel:
    """
    Result of a stability selection run.

    Holds the grid, thresholds, selection counts and proportions, and one
    calibration result per block. All arrays are read-only; use
    :meth:`recalibrate` to calibrate again with other settings.

    Attributes
    ----------
    kind : SelectionKind
    grid : ParameterGrid
    thresholds : ndarray
    counts, valid_counts, proportions : ndarray
    results : list of CalibrationResult
    feature_names : list of str
        Variable names (columns of X).
    item_names : list of str
        Names of the selection items (features, or "a--b" pairs).
    metadata : dict
    """

    def __init__(
        self,
        kind: SelectionKind,
        grid: ParameterGrid,
        thresholds: np.ndarray,
        counts: SelectionCounts,
        results: List[CalibrationResult],
        feature_names: Sequence[str],
        item_columns: Optional[np.ndarray] = None,
        item_blocks: Optional[np.ndarray] = None,
        calibration: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        secondary_names: Optional[Dict[str, Sequence[str]]] = None,
    ):
        self.kind = kind
        self.grid = grid
        self.thresholds = _frozen(thresholds)
        self._counts = counts
        self.counts = _frozen(counts.counts)
        self.valid_counts = _frozen(counts.valid_counts)
        self.proportions = _frozen(counts.proportions())
        self.results = list(results)
        self.feature_names = list(feature_names)
        self.item_blocks = _frozen(item_blocks)
        self.calibration = dict(calibration or {})
        self.metadata = dict(metadata or {})
        self.secondary_names = {k: list(v) for k, v in (secondary_names or {}).items()}

        p = len(self.feature_names)
        if kind is SelectionKind.FEATURES:
            cols = np.arange(counts.n_items) if item_columns is None else np.asarray(item_columns)
            self.item_columns = _frozen(cols)
            self.item_names = [self.feature_names[c] for c in cols]
        else:
            i, j = edge_index(p)
            self.item_columns = _frozen(np.column_stack([i, j]))
            self.item_names = [f"{self.feature_names[a]}--{self.feature_names[b]}" for a, b in zip(i, j)]

    # --- calibration summary ---

    @property
    def surfaces(self) -> List[Optional[ScoreSurface]]:
        return [r.surface for r in self.results]

    @property
    def feasible(self) -> bool:
        return all(r.state is CalibrationState.OPTIMUM_SELECTED for r in self.results)

    @property
    def optimum(self):
        """(row, threshold_index) for one block, a list of them for several."""
        if len(self.results) == 1:
            return self.results[0].optimum
        return [r.optimum for r in self.results]

    @property
    def secondary_proportions(self) -> Dict[str, np.ndarray]:
        return {name: self._counts.secondary_proportions(name) for name in self._counts.secondary}

    def _result_items(self, result: CalibrationResult) -> np.ndarray:
        if result.block is None or self.item_blocks is None:
            return np.arange(self.counts.shape[1])
        return np.flatnonzero(self.item_blocks == result.block)

    def _check_feasible(self):
        bad = [r for r in self.results if r.optimum is None]
        if bad:
            raise InfeasibleCalibrationError(
                "No calibrated point: no grid point satisfies the error bounds"
                + ("" if len(self.results) == 1 else f" for block(s) {[r.block for r in bad]}")
                + ". Pass row= and threshold= explicitly, or recalibrate with looser bounds.",
                model=self,
            )

    def calibrated_parameters(self) -> pd.DataFrame:
        """One line per calibrated block: row, threshold, grid values, score, bounds."""
        records = []
        for res in self.results:
            rec = {
                "block": self.grid.block_labels[res.block] if res.block is not None else "all",
                "state": res.state.value,
                "row": res.row,
                "threshold": res.threshold,
            }
            if res.row is not None:
                rec.update(self.grid.row(res.row))
            if res.surface is not None and res.optimum is not None:
                i = int(np.flatnonzero(res.surface.rows == res.row)[0])
                t = res.threshold_index
                rec.update(
                    score=float(res.surface.score[i, t]),
                    pfer=float(res.surface.pfer[i, t]),
                    fdp=float(res.surface.fdp[i, t]),
                    q=float(res.surface.q[i]),
                    n_stable=int(res.surface.n_stable[i, t]),
                )
            records.append(rec)
        return pd.DataFrame(records)

    # --- selection ---

    def selection_proportions(self, row: Optional[int] = None) -> np.ndarray:
        """
        Proportions per item at ``row``, or at each block's calibrated row.
        """
        if row is not None:
            return self.proportions[int(row)].copy()
        self._check_feasible()
        out = np.full(self.proportions.shape[1], np.nan)
        for res in self.results:
            items = self._result_items(res)
            out[items] = self.proportions[res.row, items]
        return out

    def selected(self, row: Optional[int] = None, threshold: Optional[float] = None) -> np.ndarray:
        """
        Binary selection per item.

        Without arguments, the union over blocks of the calibrated selections.
        ``row`` and ``threshold`` override the calibrated values for every block.
        """
        if row is not None and threshold is not None:
            return stable_mask(self.proportions[int(row)], float(threshold))
        self._check_feasible()
        out = np.zeros(self.proportions.shape[1], dtype=bool)
        for res in self.results:
            items = self._result_items(res)
            r = res.row if row is None else int(row)
            pi = res.threshold if threshold is None else float(threshold)
            out[items] = stable_mask(self.proportions[r, items], pi)
        return out

    def selected_names(self, **kwargs) -> List[str]:
        sel = self.selected(**kwargs)
        return [name for name, s in zip(self.item_names, sel) if s]

    def adjacency(self, row: Optional[int] = None, threshold: Optional[float] = None) -> np.ndarray:
        """Symmetric (p, p) matrix of selected pairs (edge and co-membership kinds)."""
        if self.kind is SelectionKind.FEATURES:
            raise ConfigurationError("adjacency() is only defined for edge or co-membership models")
        return self._to_matrix(self.selected(row=row, threshold=threshold).astype(np.int64))

    def proportion_matrix(self, row: Optional[int] = None) -> np.ndarray:
        """Symmetric (p, p) matrix of pair proportions."""
        if self.kind is SelectionKind.FEATURES:
            raise ConfigurationError("proportion_matrix() is only defined for edge or co-membership models")
        return self._to_matrix(self.selection_proportions(row=row))

    def _to_matrix(self, values: np.ndarray) -> np.ndarray:
        p = len(self.feature_names)
        out = np.zeros((p, p), dtype=values.dtype)
        i, j = edge_index(p)
        out[i, j] = values
        out[j, i] = values
        return out

    def mean_abs_coefficients(self, row: Optional[int] = None) -> Optional[np.ndarray]:
        """
        Mean absolute coefficient per item over valid resamples.

        Taken at ``row``, or at the calibrated row of a single calibration.
        Multi-outcome coefficients are reduced by their maximum. None for
        pair kinds or estimators without coefficients.
        """
        mean_abs = self._counts.mean_abs_coefficients()
        if mean_abs is None or self.kind is not SelectionKind.FEATURES:
            return None
        if row is None:
            if len(self.results) != 1 or self.results[0].row is None:
                return None
            row = self.results[0].row
        per_col = mean_abs[int(row)]
        per_col = per_col.reshape(per_col.shape[0], -1).max(axis=1)
        return per_col[self.item_columns]

    # --- frames ---

    def get_feature_info(self) -> pd.DataFrame:
        """
        Per-item details at the calibrated point.

        Returns
        -------
        DataFrame with columns:
            feature (or var1/var2/block for pairs): name
            proportion: selection proportion at the calibrated row
            mean_abs_coef: mean absolute coefficient over resamples (features only)
            selected: whether it passed the calibrated threshold
        """
        props = self.selection_proportions()
        sel = self.selected()
        if self.kind is SelectionKind.FEATURES:
            data = {"feature": self.item_names, "proportion": props}
            mean_abs = self.mean_abs_coefficients()
            if mean_abs is not None:
                data["mean_abs_coef"] = mean_abs
            data["selected"] = sel
        else:
            i, j = self.item_columns[:, 0], self.item_columns[:, 1]
            data = {
                "var1": [self.feature_names[a] for a in i],
                "var2": [self.feature_names[b] for b in j],
            }
            if self.item_blocks is not None:
                data["block"] = [self.grid.block_labels[b] if b >= 0 else None for b in self.item_blocks]
            data["proportion"] = props
            data["selected"] = sel
        return (
            pd.DataFrame(data)
            .sort_values("proportion", ascending=False, kind="mergesort")
            .reset_index(drop=True)
        )

    def surface_frame(self, block: int = 0) -> pd.DataFrame:
        """Long-format score surface of one calibration (one line per row x threshold)."""
        if not (0 <= block < len(self.results)):
            raise ConfigurationError(f"No calibration result {block}")
        surface = self.results[block].surface
        if surface is None:
            raise ConfigurationError("The calibration was overridden; no score surface was computed")
        n_rows, n_thr = surface.shape
        frame = pd.DataFrame({
            "row": np.repeat(surface.rows, n_thr),
            "threshold": np.tile(surface.thresholds, n_rows),
            "score": surface.score.ravel(),
            "pfer": surface.pfer.ravel(),
            "fdp": surface.fdp.ravel(),
            "feasible": surface.feasible.ravel(),
            "q": np.repeat(surface.q, n_thr),
            "n_stable": surface.n_stable.ravel(),
        })
        values = self.grid.values[frame["row"].to_numpy()]
        for k, axis in enumerate(self.grid.axes):
            frame[axis] = values[:, k]
        return frame

    # --- recalibration ---

    def recalibrate(self, override=None, **settings) -> "StabilityModel":
        """
        New model calibrated from the same counts.

        ``settings`` override the stored calibration settings (``pfer_method``,
        ``pfer_bound``, ``fdp_bound``, ``score``, ``thresholds``, ``complexity``).
        The calibrated model is returned even when infeasible.
        """
        known = {"pfer_method", "pfer_bound", "fdp_bound", "score", "thresholds", "complexity", "n_resamples"}
        unknown = sorted(set(settings) - known)
        if unknown:
            raise ConfigurationError(f"Unknown calibration setting(s): {unknown}")
        calibration = {**self.calibration, **settings}
        thresholds = np.asarray(calibration.pop("thresholds", self.thresholds), dtype=np.float64)
        results = calibrate_blocks(
            self.proportions,
            self.valid_counts,
            self.grid.template,
            self.item_blocks,
            thresholds,
            override=override,
            **calibration,
        )
        return StabilityModel(
            kind=self.kind,
            grid=self.grid,
            thresholds=thresholds,
            counts=self._counts,
            results=results,
            feature_names=self.feature_names,
            item_columns=self.item_columns if self.kind is SelectionKind.FEATURES else None,
            item_blocks=self.item_blocks,
            calibration={**calibration, "thresholds": thresholds},
            metadata=self.metadata,
            secondary_names=self.secondary_names,
        )

    def summary(self) -> str:
        lines = [f"StabilityModel ({self.kind.value}): {self.grid.n_rows} grid rows, "
                 f"{len(self.item_names)} items, {self._counts.n_resamples} resamples"]
        for res in self.results:
            label = self.grid.block_labels[res.block] if res.block is not None else "all"
            if res.optimum is None:
                lines.append(f"  {label}: infeasible")
            else:
                n_sel = int(self.selected(row=res.row, threshold=res.threshold)[self._result_items(res)].sum())
                lines.append(
                    f"  {label}: row {res.row} {self.grid.row(res.row)}, "
                    f"threshold {res.threshold:.2f}, {n_sel} selected"
                )
        return "\n".join(lines)

    def __repr__(self):
        return self.summary()


@dataclass
class BiSelectionModel:
    """
    Component-wise results of sparse PCA / PLS stability selection.

    ``components[c]`` is the model of component ``c``, calibrated with the
    earlier components fixed at their calibrated parameters.
    """
    components: List[StabilityModel]
    parameters: List[Dict[str, float]] = field(default_factory=list)

    @property
    def ncomp(self) -> int:
        return len(self.components)

    def selected_x(self) -> pd.DataFrame:
        """Selected X variables, one column per component."""
        return pd.DataFrame(
            {f"comp{c + 1}": m.selected().astype(int) for c, m in enumerate(self.components)},
            index=self.components[0].item_names,
        )

    def selected_y(self) -> Optional[pd.DataFrame]:
        """Y variables with proportion >= the calibrated threshold, per component."""
        if "y" not in self.components[0].secondary_proportions:
            return None
        cols = {}
        for c, m in enumerate(self.components):
            res = m.results[0]
            props = m.secondary_proportions["y"][res.row]
            cols[f"comp{c + 1}"] = stable_mask(props, res.threshold).astype(int)
        return pd.DataFrame(cols, index=self.components[0].secondary_names.get("y"))

    def parameters_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame(self.parameters)
        frame.insert(0, "component", np.arange(1, len(self.parameters) + 1))
        return frame
