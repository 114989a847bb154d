"""
Sequential Selection
====================
Adds ranked spatial predictors one at a time in ranking order and keeps
the prefix with the best optimization score.
"""

from dataclasses import dataclass
from typing import Sequence, Tuple

import pandas as pd

from ..console import echo
from .scoring import build_optimization_table


@dataclass(frozen=True, eq=False)
class SelectionResult:
    """
    Output of a selection pass.

    Attributes:
        optimization: Per-step records (see ``OPTIMIZATION_COLUMNS``).
        best_spatial_predictors: Selected predictor names, in order.
    """
    optimization: pd.DataFrame
    best_spatial_predictors: Tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.best_spatial_predictors) == 0


def selection_from_steps(
    names: Sequence[str],
    evaluations,
    n_candidates: int,
    weight_r_squared: float,
    weight_penalization_n_predictors: float
) -> SelectionResult:
    """Score the recorded steps and keep the best prefix."""
    table = build_optimization_table(
        names, evaluations, n_candidates,
        weight_r_squared, weight_penalization_n_predictors
    )
    if table.empty:
        return SelectionResult(optimization=table, best_spatial_predictors=())
    best = tuple(table.loc[table["selected"], "spatial_predictor_name"])
    return SelectionResult(optimization=table, best_spatial_predictors=best)


def select_spatial_predictors_sequential(
    ranking: Sequence[str],
    evaluator,
    predictor_names: Sequence[str] = (),
    weight_r_squared: float = 0.75,
    weight_penalization_n_predictors: float = 0.25,
    pool=None,
    verbose: bool = False
) -> SelectionResult:
    """
    Fit the model with the first k ranked predictors for k = 1..K.

    Args:
        ranking: Ranked candidate names (or a RankingResult).
        evaluator: ModelEvaluator with the candidates in its data.
        predictor_names: Non-spatial predictors.
        weight_r_squared: Weight of R-squared in the score.
        weight_penalization_n_predictors: Weight of the size penalty.
        pool: Entered worker pool; None fits in-process.
        verbose: Print progress.

    Returns:
        SelectionResult whose predictors are a prefix of the ranking
    """
    ranking = list(getattr(ranking, "ranking", ranking))
    n_candidates = len(ranking)
    if n_candidates == 0:
        return selection_from_steps([], [], 0, weight_r_squared,
                                    weight_penalization_n_predictors)

    base = list(predictor_names)
    subsets = [base + ranking[:k] for k in range(1, n_candidates + 1)]
    if pool is None:
        evaluations = [evaluator(s) for s in subsets]
    else:
        evaluations = pool.map(evaluator, subsets)

    result = selection_from_steps(
        ranking, evaluations, n_candidates,
        weight_r_squared, weight_penalization_n_predictors
    )
    echo(f"✓ Sequential selection kept {len(result.best_spatial_predictors)} "
         f"of {n_candidates} spatial predictors", verbose)
    return result
