"""
Optimized Selection
===================
Greedy nested search over the ranked spatial predictors.

Starting from the top-ranked candidate, the remaining candidates are
re-ranked by their effect against the residual Moran's I of the current
model, and the new best one is added, until no candidate reduces it any
further. The recorded iterations are then scored like the sequential
selection and the best prefix is kept. Candidates dropped by any re-ranking
are never reconsidered.
"""

from typing import Sequence

from ..console import echo
from ..spatial.generators import SpatialPredictorSet
from ..spatial.weights import SpatialWeights
from .ranking import rank_spatial_predictors
from .sequential import SelectionResult, selection_from_steps


def select_spatial_predictors_optimized(
    ranking: Sequence[str],
    spatial_predictors: SpatialPredictorSet,
    spatial_weights: SpatialWeights,
    evaluator,
    predictor_names: Sequence[str] = (),
    weight_r_squared: float = 0.25,
    weight_penalization_n_predictors: float = 0.0,
    pool=None,
    verbose: bool = False
) -> SelectionResult:
    """
    Select spatial predictors by maximizing their joint effect.

    Args:
        ranking: Ranked candidate names (or a RankingResult).
        spatial_predictors: Candidate set the ranking refers to.
        spatial_weights: Weights of the analysis thresholds.
        evaluator: ModelEvaluator with the candidates in its data.
        predictor_names: Non-spatial predictors.
        weight_r_squared: Weight of R-squared in the score.
        weight_penalization_n_predictors: Weight of the size penalty.
        pool: Entered worker pool for the re-ranking fits.
        verbose: Print progress.

    Returns:
        SelectionResult
    """
    remaining = list(getattr(ranking, "ranking", ranking))
    n_candidates = len(remaining)
    if n_candidates == 0:
        return selection_from_steps([], [], 0, weight_r_squared,
                                    weight_penalization_n_predictors)

    base = list(predictor_names)
    included = [remaining.pop(0)]
    evaluations = [evaluator(base + included)]

    while remaining:
        reranked = rank_spatial_predictors(
            spatial_predictors.subset(remaining),
            spatial_weights,
            method="effect",
            evaluator=evaluator,
            predictor_names=base + included,
            reference_moran_i=evaluations[-1].max_moran,
            pool=pool
        )
        if reranked.is_empty:
            break

        remaining = list(reranked.ranking)
        included.append(remaining.pop(0))
        evaluations.append(evaluator(base + included))
        echo(f"Iteration {len(included)}: added {included[-1]}, "
             f"max Moran's I = {evaluations[-1].max_moran:.4f}", verbose)

    result = selection_from_steps(
        included, evaluations, n_candidates,
        weight_r_squared, weight_penalization_n_predictors
    )
    echo(f"✓ Optimized selection kept {len(result.best_spatial_predictors)} "
         f"of {n_candidates} spatial predictors", verbose)
    return result
