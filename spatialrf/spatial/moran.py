"""
Moran's I Module
================
Global Moran's I of a vector (typically model residuals) under the
inverse-distance weights of one or several distance thresholds.

The statistic, its expectation and its variance under randomization come
from ``esda.moran.Moran``; inference is the two-tailed normal
approximation.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from esda.moran import Moran

from .weights import SpatialWeights, validate_distance_matrix


SIGNIFICANCE_LEVEL = 0.05

POSITIVE = "positive"
NEGATIVE = "negative"
NONE = "none"


@dataclass(frozen=True)
class MoranResult:
    """
    Global Moran's I at one distance threshold.

    Attributes:
        distance_threshold: Threshold of the weight matrix.
        moran_i: Observed Moran's I.
        expected_i: Expected I under the null hypothesis, -1/(n-1).
        variance: Variance of I under randomization.
        z_score: Standardised I.
        p_value: Two-tailed normal p-value.
        interpretation: "positive", "negative" or "none".
    """

    distance_threshold: float
    moran_i: float
    expected_i: float
    variance: float
    z_score: float
    p_value: float
    interpretation: str

    @property
    def is_positive(self) -> bool:
        return self.interpretation == POSITIVE

    @property
    def p_value_binary(self) -> float:
        """0 when significant at the 5% level, 1 otherwise."""
        return 0.0 if self.p_value < SIGNIFICANCE_LEVEL else 1.0


@dataclass(frozen=True)
class MultiThresholdMoran:
    """
    Moran's I across several distance thresholds.

    ``max_moran`` is the largest I among the thresholds interpreted as
    positive, and 0 when no threshold shows positive autocorrelation.
    """

    per_distance: List[MoranResult] = field(default_factory=list)

    @property
    def positive(self) -> List[MoranResult]:
        return [r for r in self.per_distance if r.is_positive]

    @property
    def has_positive(self) -> bool:
        return len(self.positive) > 0

    @property
    def max_moran_result(self) -> Optional[MoranResult]:
        positive = self.positive
        if not positive:
            return None
        # First threshold wins on ties
        return max(positive, key=lambda r: r.moran_i)

    @property
    def max_moran(self) -> float:
        best = self.max_moran_result
        return best.moran_i if best is not None else 0.0

    @property
    def max_moran_p_value(self) -> float:
        """p-value of the max_moran threshold, 1 when none is positive."""
        best = self.max_moran_result
        return best.p_value if best is not None else 1.0

    @property
    def max_moran_distance_threshold(self) -> Optional[float]:
        best = self.max_moran_result
        return best.distance_threshold if best is not None else None

    @property
    def positive_thresholds(self) -> List[float]:
        return [r.distance_threshold for r in self.positive]

    def to_frame(self) -> pd.DataFrame:
        """One row per threshold."""
        return pd.DataFrame([
            {
                'distance_threshold': r.distance_threshold,
                'moran_i': r.moran_i,
                'expected_i': r.expected_i,
                'variance': r.variance,
                'z_score': r.z_score,
                'p_value': r.p_value,
                'interpretation': r.interpretation,
            }
            for r in self.per_distance
        ])


def interpret(moran_i: float, expected_i: float, p_value: float) -> str:
    """Label the sign of significant autocorrelation."""
    if p_value < SIGNIFICANCE_LEVEL:
        if moran_i > expected_i:
            return POSITIVE
        if moran_i < expected_i:
            return NEGATIVE
    return NONE


def moran_from_weights(
    x: Sequence[float],
    spatial_weights: SpatialWeights,
    distance_threshold: float
) -> MoranResult:
    """
    Moran's I of ``x`` at one threshold of precomputed weights.

    Args:
        x: Vector aligned with the weight matrix rows.
        spatial_weights: Weights for the thresholds of the analysis.
        distance_threshold: Threshold to use.

    Returns:
        MoranResult
    """
    x = np.asarray(x, dtype=float).ravel()
    n = len(x)
    if n != spatial_weights.n:
        raise ValueError(
            f"Vector of length {n} does not match {spatial_weights.n} observations"
        )
    if not np.all(np.isfinite(x)):
        raise ValueError("Cannot compute Moran's I of a vector with missing values")

    expected_i = -1.0 / (n - 1)

    # A constant vector carries no spatial structure (spread within float
    # resolution of the values)
    if np.ptp(x) <= 1e-12 * max(1.0, np.abs(x).max()):
        return MoranResult(
            distance_threshold=float(distance_threshold),
            moran_i=expected_i,
            expected_i=expected_i,
            variance=float('nan'),
            z_score=0.0,
            p_value=1.0,
            interpretation=NONE
        )

    w = spatial_weights.pysal(distance_threshold)
    # Weights are already globally normalized, keep them as they are
    moran = Moran(x, w, transformation="O", permutations=0, two_tailed=True)

    moran_i = float(moran.I)
    p_value = float(moran.p_rand)

    return MoranResult(
        distance_threshold=float(distance_threshold),
        moran_i=moran_i,
        expected_i=float(moran.EI),
        variance=float(moran.VI_rand),
        z_score=float(moran.z_rand),
        p_value=p_value,
        interpretation=interpret(moran_i, float(moran.EI), p_value)
    )


def moran(
    x: Sequence[float],
    distance_matrix: np.ndarray,
    distance_threshold: float = 0.0
) -> MoranResult:
    """
    Moran's I of ``x`` for a distance matrix and a single threshold.

    Args:
        x: Numeric vector, one value per row of the distance matrix.
        distance_matrix: Pairwise distances.
        distance_threshold: Minimum neighborhood distance.

    Returns:
        MoranResult
    """
    d = validate_distance_matrix(distance_matrix, n_rows=len(np.ravel(x)))
    weights = SpatialWeights.from_distance_matrix(d, [distance_threshold])
    return moran_from_weights(x, weights, distance_threshold)


def moran_multithreshold(
    x: Sequence[float],
    spatial_weights: SpatialWeights,
    distance_thresholds: Optional[Sequence[float]] = None
) -> MultiThresholdMoran:
    """
    Moran's I of ``x`` at every threshold of ``spatial_weights``.

    Args:
        x: Numeric vector.
        spatial_weights: Weights for the analysis thresholds.
        distance_thresholds: Optional subset of thresholds.

    Returns:
        MultiThresholdMoran
    """
    if distance_thresholds is None:
        distance_thresholds = spatial_weights.distance_thresholds

    return MultiThresholdMoran(per_distance=[
        moran_from_weights(x, spatial_weights, t) for t in distance_thresholds
    ])
