from stabsel.sampling.resample import (
    Resampler,
    combine_strata,
    default_strata,
    spawn_seeds,
)

__all__ = [
    "Resampler",
    "combine_strata",
    "default_strata",
    "spawn_seeds",
]
