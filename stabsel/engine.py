"""Parallel resampling driver."""

from __future__ import annotations

import warnings
from typing import List, Optional, Tuple

import numpy as np
from joblib import Parallel, delayed
from tqdm import tqdm

from stabsel.config import StabilityConfig
from stabsel.exceptions import ConfigurationError
from stabsel.grid.base import ParameterGrid
from stabsel.sampling.resample import Resampler, spawn_seeds
from stabsel.selection.aggregate import SelectionCounts
from stabsel.selection.executor import run_resample


class _TaskFailure:
    def __init__(self, seed: int, error: str):
        self.seed = seed
        self.error = error


def _run_task(
    seed: int,
    X: np.ndarray,
    Y: Optional[np.ndarray],
    grid: ParameterGrid,
    estimator,
    resampler: Resampler,
    paired: bool,
    warm_start: bool,
):
    """Draw one resample (or complementary pair) and fit the whole grid."""
    rng = np.random.default_rng(seed)
    try:
        if paired:
            first, second = resampler.draw_pair(rng)
            return [
                run_resample(X, Y, first, grid, estimator, rng, warm_start=warm_start),
                run_resample(X, Y, second, grid, estimator, rng, warm_start=warm_start),
            ]
        indices = resampler.draw(rng)
        return [run_resample(X, Y, indices, grid, estimator, rng, warm_start=warm_start)]
    except ConfigurationError:
        raise
    except Exception as exc:  # recorded as a failed task, see run_resamples
        return _TaskFailure(int(seed), f"{type(exc).__name__}: {exc}")


def run_resamples(
    X: np.ndarray,
    Y: Optional[np.ndarray],
    grid: ParameterGrid,
    estimator,
    resampler: Resampler,
    config: StabilityConfig,
    n_items: int,
) -> Tuple[SelectionCounts, dict]:
    """
    Run all resamples and fold them into selection counts.

    Tasks are seeded up front from ``config.random_state`` and dispatched in
    chunks of ``config.chunk_size`` so that only one chunk of per-resample
    results is held at a time. With ``pfer_method="SS"`` each task fits a
    complementary pair, giving ``n_resamples / 2`` tasks.

    Returns
    -------
    counts : SelectionCounts
    metadata : dict
        ``n_tasks``, ``failed_tasks`` (list of (seed, error)), ``undefined_rows``.
    """
    paired = config.pfer_method == "SS"
    n_tasks = config.n_resamples // 2 if paired else config.n_resamples
    seeds = spawn_seeds(config.random_state, n_tasks)
    chunk_size = min(config.chunk_size, n_tasks)

    counts = SelectionCounts(grid.n_rows, n_items)
    failures: List[Tuple[int, str]] = []

    if config.verbose:
        if paired:
            kind = "complementary pairs"
        else:
            kind = config.resampling if isinstance(config.resampling, str) else "custom resampling"
        print(f"Stability selection: {config.n_resamples} resamples ({kind}), "
              f"tau={config.tau}, {grid.n_rows} grid rows, {n_items} items")

    chunk_starts = range(0, n_tasks, chunk_size)
    for chunk_start in tqdm(chunk_starts, disable=not config.verbose, desc="Resampling"):
        chunk_seeds = seeds[chunk_start:chunk_start + chunk_size]
        chunk_results = Parallel(n_jobs=config.n_jobs, prefer=config.parallel_backend)(
            delayed(_run_task)(
                seed, X, Y, grid, estimator, resampler, paired, config.warm_start
            )
            for seed in chunk_seeds
        )

        # fold this chunk, then discard it
        for result in chunk_results:
            if isinstance(result, _TaskFailure):
                failures.append((result.seed, result.error))
                continue
            for sm in result:
                counts.accumulate(sm)

    counts.n_failed = len(failures)
    if failures:
        warnings.warn(
            f"{len(failures)} of {n_tasks} resampling task(s) failed and were skipped; "
            f"first error: {failures[0][1]}",
            RuntimeWarning,
        )

    undefined = counts.undefined_rows()
    if undefined.size:
        warnings.warn(
            f"{undefined.size} grid row(s) were invalid in every resample; their selection "
            f"proportions are undefined (NaN): rows {undefined[:10].tolist()}",
            RuntimeWarning,
        )

    metadata = {
        "n_tasks": n_tasks,
        "paired": paired,
        "failed_tasks": failures,
        "undefined_rows": undefined.tolist(),
        "degenerate_columns": counts.degenerate.tolist(),
    }
    return counts, metadata

