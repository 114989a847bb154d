"""
Optimization Scoring
====================
Scoring formula shared by the sequential and optimized selectors.

For every selection step k of K, four series are rescaled to [0, 1]:
``1 - moran_i``, ``p_value_binary``, ``r_squared`` and ``k / K``. The
score of a step is

    max(r(1 - moran_i), r(p_value_binary))
        + weight_r_squared * r(r_squared)
        - weight_penalization_n_predictors * r(k / K)

and the selected prefix is the first step with the maximum score.
"""

from typing import List, Sequence

import numpy as np
import pandas as pd

from ..spatial.moran import SIGNIFICANCE_LEVEL


OPTIMIZATION_COLUMNS = [
    "spatial_predictor_name",
    "spatial_predictor_index",
    "moran_i",
    "p_value",
    "p_value_binary",
    "r_squared",
    "penalization_per_variable",
    "optimization",
    "selected",
]


def rescale_series(values: Sequence[float]) -> np.ndarray:
    """Min-max rescale to [0, 1]; a constant series maps to 0.5."""
    x = np.asarray(values, dtype=float)
    if x.size == 0:
        return x
    lo, hi = x.min(), x.max()
    if np.isclose(hi, lo, rtol=1e-12, atol=1e-12):
        return np.full_like(x, 0.5)
    return (x - lo) / (hi - lo)


def p_value_binary(p_values: Sequence[float]) -> np.ndarray:
    """0 where p < 0.05, 1 otherwise."""
    p = np.asarray(p_values, dtype=float)
    return np.where(p < SIGNIFICANCE_LEVEL, 0.0, 1.0)


def optimization_scores(
    moran_i: Sequence[float],
    binary_p_values: Sequence[float],
    r_squared: Sequence[float],
    penalization: Sequence[float],
    weight_r_squared: float,
    weight_penalization_n_predictors: float
) -> np.ndarray:
    """
    Score every selection step.

    Args:
        moran_i: Residual max Moran's I per step.
        binary_p_values: Binary p-value per step.
        r_squared: Model R-squared per step.
        penalization: k / K per step.
        weight_r_squared: Weight of R-squared.
        weight_penalization_n_predictors: Weight of the size penalty.

    Returns:
        Array of scores, bounded by ``1 + weight_r_squared``
    """
    moran_i = np.asarray(moran_i, dtype=float)
    autocorrelation = np.maximum(
        rescale_series(1.0 - moran_i),
        rescale_series(binary_p_values)
    )
    return (
        autocorrelation
        + weight_r_squared * rescale_series(r_squared)
        - weight_penalization_n_predictors * rescale_series(penalization)
    )


def best_index(scores: Sequence[float]) -> int:
    """Position of the maximum score; ties go to the earliest step."""
    scores = np.asarray(scores, dtype=float)
    if scores.size == 0:
        raise ValueError("No scores to choose from")
    return int(np.argmax(scores))


def build_optimization_table(
    names: Sequence[str],
    evaluations: List,
    n_candidates: int,
    weight_r_squared: float,
    weight_penalization_n_predictors: float
) -> pd.DataFrame:
    """
    Per-step record table of a selection pass.

    Args:
        names: Predictor added at each step.
        evaluations: ModelEvaluation of each step.
        n_candidates: Size K of the ranked pool.
        weight_r_squared: Weight of R-squared.
        weight_penalization_n_predictors: Weight of the size penalty.

    Returns:
        DataFrame with OPTIMIZATION_COLUMNS; ``selected`` marks the best
        prefix
    """
    if len(names) == 0:
        return pd.DataFrame(columns=OPTIMIZATION_COLUMNS)
    if len(names) != len(evaluations):
        raise ValueError("One evaluation per selection step is required")

    steps = np.arange(1, len(names) + 1)
    moran_i = [e.max_moran for e in evaluations]
    p_values = [e.p_value for e in evaluations]
    pvb = p_value_binary(p_values)
    r_squared = [e.r_squared for e in evaluations]
    penalization = steps / float(n_candidates)

    scores = optimization_scores(
        moran_i, pvb, r_squared, penalization,
        weight_r_squared, weight_penalization_n_predictors
    )
    k = best_index(scores)

    return pd.DataFrame({
        "spatial_predictor_name": list(names),
        "spatial_predictor_index": steps,
        "moran_i": moran_i,
        "p_value": p_values,
        "p_value_binary": pvb,
        "r_squared": r_squared,
        "penalization_per_variable": penalization,
        "optimization": scores,
        "selected": steps <= k + 1,
    }, columns=OPTIMIZATION_COLUMNS)
