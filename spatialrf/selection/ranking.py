"""
Spatial Predictor Ranking
=========================
Orders candidate spatial predictors before selection.

Ranking methods:
1. moran - each candidate's own Moran's I at its originating threshold
   (raw distance columns, which have no threshold, use their largest I
   across all thresholds); candidates with I <= 0 are dropped
2. effect - the reduction of the residual Moran's I obtained by adding the
   candidate to the model, ``reference - max_moran``; candidates with a
   reduction <= 0 are dropped

Ties keep the candidate generation order.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..console import echo
from ..spatial.generators import SpatialPredictorSet
from ..spatial.moran import moran_from_weights
from ..spatial.weights import SpatialWeights


RANKING_METHODS = ("moran", "effect")

CRITERIA_COLUMNS = {
    "moran": "moran_i",
    "effect": "moran_i_reduction",
}


@dataclass(frozen=True, eq=False)
class RankingResult:
    """
    Output of a ranking pass.

    Attributes:
        method: "moran" or "effect".
        criteria: One row per candidate with its score and eligibility,
            eligible candidates first in ranking order.
        ranking: Names of the eligible candidates, best first.
    """
    method: str
    criteria: pd.DataFrame
    ranking: Tuple[str, ...]

    def __len__(self) -> int:
        return len(self.ranking)

    @property
    def is_empty(self) -> bool:
        return len(self.ranking) == 0


def candidate_moran(
    candidate,
    spatial_weights: SpatialWeights
) -> float:
    """Moran's I of one candidate at its originating threshold."""
    if candidate.distance_threshold is not None:
        return moran_from_weights(
            candidate.values, spatial_weights, candidate.distance_threshold
        ).moran_i
    return max(
        moran_from_weights(candidate.values, spatial_weights, t).moran_i
        for t in spatial_weights.distance_thresholds
    )


def _rank(method: str, names: Sequence[str], scores: Sequence[float]) -> RankingResult:
    """Stable descending sort of the eligible (score > 0) candidates."""
    scores = np.asarray(scores, dtype=float)
    order = np.argsort(-scores, kind="stable")
    eligible = scores > 0

    criteria = pd.DataFrame({
        "spatial_predictor_name": [names[i] for i in order],
        CRITERIA_COLUMNS[method]: scores[order],
        "eligible": eligible[order],
    })
    ranking = tuple(names[i] for i in order if eligible[i])
    return RankingResult(method=method, criteria=criteria, ranking=ranking)


def rank_spatial_predictors(
    spatial_predictors: SpatialPredictorSet,
    spatial_weights: SpatialWeights,
    method: str = "moran",
    evaluator=None,
    predictor_names: Sequence[str] = (),
    reference_moran_i: Optional[float] = None,
    pool=None,
    verbose: bool = False
) -> RankingResult:
    """
    Rank candidate spatial predictors.

    Args:
        spatial_predictors: Candidates to rank.
        spatial_weights: Weights of the analysis thresholds.
        method: "moran" or "effect".
        evaluator: ModelEvaluator with the candidates in its data
            (effect mode).
        predictor_names: Predictors every augmented model includes
            (effect mode).
        reference_moran_i: Max residual Moran's I of the model without the
            candidate (effect mode).
        pool: Entered worker pool for the candidate fits (effect mode);
            None fits them in-process.
        verbose: Print progress.

    Returns:
        RankingResult
    """
    if method not in RANKING_METHODS:
        raise ValueError(
            f"Invalid ranking method '{method}'. Must be one of: {list(RANKING_METHODS)}"
        )

    names = spatial_predictors.names

    if method == "moran":
        scores = [candidate_moran(p, spatial_weights) for p in spatial_predictors]
        result = _rank(method, names, scores)
        echo(f"✓ Ranked {len(names)} candidates by Moran's I, "
             f"{len(result)} eligible", verbose)
        return result

    if evaluator is None or reference_moran_i is None:
        raise ValueError("Effect ranking needs an evaluator and a reference Moran's I")

    base = list(predictor_names)
    subsets = [base + [name] for name in names]
    if pool is None:
        evaluations = [evaluator(s) for s in subsets]
    else:
        evaluations = pool.map(evaluator, subsets)

    scores = [reference_moran_i - e.max_moran for e in evaluations]
    result = _rank(method, names, scores)
    echo(f"✓ Ranked {len(names)} candidates by Moran's I reduction, "
         f"{len(result)} eligible", verbose)
    return result
