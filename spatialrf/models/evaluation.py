"""
Model Evaluation
================
Fits one predictor subset and measures the spatial autocorrelation of its
residuals. This is the unit of work fanned out to the worker pool during
ranking and selection.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..spatial.generators import SpatialPredictorSet
from ..spatial.moran import MultiThresholdMoran, moran_multithreshold
from ..spatial.weights import SpatialWeights
from .fitters import FitResult


@dataclass(frozen=True, eq=False)
class ModelEvaluation:
    """A fitted predictor subset and its residual Moran's I."""
    predictor_names: Tuple[str, ...]
    fit: FitResult
    moran: MultiThresholdMoran

    @property
    def r_squared(self) -> float:
        return self.fit.r_squared

    @property
    def max_moran(self) -> float:
        return self.moran.max_moran

    @property
    def p_value(self) -> float:
        return self.moran.max_moran_p_value


def augment_data(
    data: pd.DataFrame,
    spatial_predictors: Optional[SpatialPredictorSet] = None
) -> pd.DataFrame:
    """
    Append spatial predictor columns to the data table.

    Args:
        data: Observations, one row per distance matrix row.
        spatial_predictors: Candidates to append.

    Returns:
        New DataFrame with the predictor columns added
    """
    if spatial_predictors is None or len(spatial_predictors) == 0:
        return data

    clashes = [n for n in spatial_predictors.names if n in data.columns]
    if clashes:
        raise ValueError(f"Data already has columns named like spatial predictors: {clashes}")

    frame = spatial_predictors.to_frame(index=data.index)
    return pd.concat([data, frame], axis=1)


class ModelEvaluator:
    """
    Picklable callable mapping a predictor subset to a ModelEvaluation.

    Args:
        data: Observations.
        dependent_name: Response column.
        fitter: Regression collaborator.
        spatial_weights: Weights of the analysis thresholds.
        spatial_predictors: Candidate columns made available to the fits.
    """

    def __init__(
        self,
        data: pd.DataFrame,
        dependent_name: str,
        fitter,
        spatial_weights: SpatialWeights,
        spatial_predictors: Optional[SpatialPredictorSet] = None
    ):
        self.data = augment_data(data, spatial_predictors)
        self.dependent_name = dependent_name
        self.fitter = fitter
        self.spatial_weights = spatial_weights

    def __call__(self, predictor_names: Sequence[str]) -> ModelEvaluation:
        predictor_names = tuple(predictor_names)
        fit = self.fitter.fit(self.data, self.dependent_name, predictor_names)
        return evaluation_from_fit(fit, self.spatial_weights, predictor_names)


def evaluation_from_fit(
    fit: FitResult,
    spatial_weights: SpatialWeights,
    predictor_names: Optional[Sequence[str]] = None
) -> ModelEvaluation:
    """Residual Moran's I of an existing fit."""
    residuals = np.asarray(fit.residuals, dtype=float)
    if len(residuals) != spatial_weights.n:
        raise ValueError(
            f"Fit has {len(residuals)} residuals but the distance matrix "
            f"has {spatial_weights.n} rows"
        )
    if predictor_names is None:
        predictor_names = fit.predictor_names
    return ModelEvaluation(
        predictor_names=tuple(predictor_names),
        fit=fit,
        moran=moran_multithreshold(residuals, spatial_weights)
    )


def evaluate_model(
    data: pd.DataFrame,
    dependent_name: str,
    predictor_names: Sequence[str],
    fitter,
    spatial_weights: SpatialWeights
) -> ModelEvaluation:
    """
    Fit one model and compute its residual multi-threshold Moran's I.

    Args:
        data: Observations including every predictor column.
        dependent_name: Response column.
        predictor_names: Predictor columns.
        fitter: Regression collaborator.
        spatial_weights: Weights of the analysis thresholds.

    Returns:
        ModelEvaluation
    """
    return ModelEvaluator(data, dependent_name, fitter, spatial_weights)(predictor_names)
