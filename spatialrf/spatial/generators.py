"""
Spatial Predictor Generators
============================
Turns a distance matrix into named candidate spatial predictors.

Generators:
1. MEM - Moran's Eigenvector Maps, positive eigenvectors of the
   double-centered weight matrix of each distance threshold
2. PCA - principal components of the weighted distance matrix of each
   threshold (experimental)
3. Raw distance ("hengl") - the columns of the distance matrix itself
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.linalg import eigh
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from .weights import SpatialWeights


PREFIX = "spatial_predictor"

# Relative tolerance for eigenvalues and explained variances treated as zero
TOLERANCE = 1e-8


@dataclass(frozen=True, eq=False)
class SpatialPredictor:
    """
    One candidate spatial predictor.

    Attributes:
        name: Unique column name.
        values: Vector with one value per observation.
        method: Generator that built it ("mem", "pca" or "hengl").
        distance_threshold: Originating threshold, None for raw distances.
        rank: 1-based position within its threshold.
        strength: Eigenvalue (MEM) or explained variance ratio (PCA).
    """
    name: str
    values: np.ndarray
    method: str
    distance_threshold: Optional[float]
    rank: int
    strength: Optional[float] = None


class SpatialPredictorSet:
    """Ordered collection of spatial predictors with unique names."""

    def __init__(self, predictors: Iterable[SpatialPredictor] = ()):
        self._predictors = OrderedDict()
        n = None
        for p in predictors:
            if p.name in self._predictors:
                raise ValueError(f"Duplicated spatial predictor name '{p.name}'")
            if n is not None and len(p.values) != n:
                raise ValueError("Spatial predictors must have the same length")
            n = len(p.values)
            self._predictors[p.name] = p

    def __len__(self) -> int:
        return len(self._predictors)

    def __iter__(self) -> Iterator[SpatialPredictor]:
        return iter(self._predictors.values())

    def __contains__(self, name: str) -> bool:
        return name in self._predictors

    def __getitem__(self, name: str) -> SpatialPredictor:
        return self._predictors[name]

    @property
    def names(self) -> List[str]:
        return list(self._predictors.keys())

    def subset(self, names: Sequence[str]) -> "SpatialPredictorSet":
        """Predictors with the given names, in the given order."""
        missing = [n for n in names if n not in self._predictors]
        if missing:
            raise KeyError(f"Unknown spatial predictors: {missing}")
        return SpatialPredictorSet(self._predictors[n] for n in names)

    def without(self, names: Iterable[str]) -> "SpatialPredictorSet":
        """Predictors not in ``names``, keeping the current order."""
        drop = set(names)
        return SpatialPredictorSet(p for p in self if p.name not in drop)

    def to_frame(self, index: Optional[pd.Index] = None) -> pd.DataFrame:
        """One column per predictor, row-aligned with ``index``."""
        return pd.DataFrame(
            {p.name: p.values for p in self},
            index=index,
            columns=self.names
        )


def format_threshold(distance_threshold: float) -> str:
    """Threshold as it appears in predictor names (1000.0 -> '1000')."""
    t = float(distance_threshold)
    return str(int(t)) if t.is_integer() else str(t)


def predictor_name(distance_threshold: Optional[float], rank: int) -> str:
    if distance_threshold is None:
        return f"{PREFIX}_{rank}"
    return f"{PREFIX}_{format_threshold(distance_threshold)}_{rank}"


def double_center(matrix: np.ndarray) -> np.ndarray:
    """Subtract row and column means so every row and column sums to zero."""
    m = np.asarray(matrix, dtype=float)
    return (
        m
        - m.mean(axis=1, keepdims=True)
        - m.mean(axis=0, keepdims=True)
        + m.mean()
    )


def fix_signs(vectors: np.ndarray) -> np.ndarray:
    """Flip each column so its largest absolute entry is positive."""
    vectors = np.array(vectors, dtype=float)
    idx = np.argmax(np.abs(vectors), axis=0)
    signs = np.sign(vectors[idx, np.arange(vectors.shape[1])])
    signs[signs == 0] = 1.0
    return vectors * signs


def mem(
    weight_matrix: np.ndarray,
    distance_threshold: float = 0.0
) -> List[SpatialPredictor]:
    """
    Moran's Eigenvector Maps of one weight matrix.

    Args:
        weight_matrix: Symmetric weight matrix.
        distance_threshold: Threshold used to build it (for naming).

    Returns:
        Predictors with strictly positive eigenvalues, largest first
    """
    centered = double_center(weight_matrix)
    # Symmetrize away rounding before the symmetric solver
    centered = (centered + centered.T) / 2.0
    eigenvalues, eigenvectors = eigh(centered)

    tolerance = TOLERANCE * np.abs(eigenvalues).max()
    order = np.argsort(-eigenvalues, kind="stable")
    order = [i for i in order if eigenvalues[i] > tolerance]
    if not order:
        return []

    vectors = fix_signs(eigenvectors[:, order])

    return [
        SpatialPredictor(
            name=predictor_name(distance_threshold, rank),
            values=vectors[:, rank - 1],
            method="mem",
            distance_threshold=float(distance_threshold),
            rank=rank,
            strength=float(eigenvalues[i])
        )
        for rank, i in enumerate(order, start=1)
    ]


def pca(
    matrix: np.ndarray,
    distance_threshold: float = 0.0
) -> List[SpatialPredictor]:
    """
    Principal components of the columns of a (weighted) distance matrix.

    Columns are standardized and zero-variance columns are removed first.

    Args:
        matrix: Square matrix whose columns are the input variables.
        distance_threshold: Threshold used to build it (for naming).

    Returns:
        Components with non-zero explained variance, largest first
    """
    m = np.asarray(matrix, dtype=float)
    m = m[:, m.std(axis=0) > 0]
    if m.shape[1] == 0:
        return []

    scaled = StandardScaler().fit_transform(m)
    model = PCA(n_components=min(scaled.shape))
    scores = model.fit_transform(scaled)

    ratios = model.explained_variance_ratio_
    keep = [i for i in range(len(ratios)) if ratios[i] > TOLERANCE]
    if not keep:
        return []

    scores = fix_signs(scores[:, keep])

    return [
        SpatialPredictor(
            name=predictor_name(distance_threshold, rank),
            values=scores[:, rank - 1],
            method="pca",
            distance_threshold=float(distance_threshold),
            rank=rank,
            strength=float(ratios[i])
        )
        for rank, i in enumerate(keep, start=1)
    ]


def cap_predictors(
    predictors: List[SpatialPredictor],
    max_spatial_predictors: Optional[int] = None
) -> List[SpatialPredictor]:
    """
    Keep at most ``max_spatial_predictors``, dropping the weakest first.

    The kept predictors stay in their original order.
    """
    if max_spatial_predictors is None or len(predictors) <= max_spatial_predictors:
        return list(predictors)
    if max_spatial_predictors < 1:
        raise ValueError("max_spatial_predictors must be >= 1")

    strongest = sorted(
        range(len(predictors)),
        key=lambda i: -predictors[i].strength
    )[:max_spatial_predictors]
    return [predictors[i] for i in sorted(strongest)]


def mem_multithreshold(
    spatial_weights: SpatialWeights,
    distance_thresholds: Optional[Sequence[float]] = None,
    max_spatial_predictors: Optional[int] = None
) -> SpatialPredictorSet:
    """
    MEM of every threshold, concatenated in threshold order.

    Args:
        spatial_weights: Weight matrices of the analysis.
        distance_thresholds: Thresholds to use (default: all of them).
        max_spatial_predictors: Optional cap on the total number.

    Returns:
        SpatialPredictorSet
    """
    if distance_thresholds is None:
        distance_thresholds = spatial_weights.distance_thresholds

    predictors = []
    for t in distance_thresholds:
        predictors.extend(mem(spatial_weights[t], t))

    return SpatialPredictorSet(cap_predictors(predictors, max_spatial_predictors))


def pca_multithreshold(
    spatial_weights: SpatialWeights,
    distance_thresholds: Optional[Sequence[float]] = None,
    max_spatial_predictors: Optional[int] = None
) -> SpatialPredictorSet:
    """
    PCA factors of the weighted distance matrix of every threshold.

    Args:
        spatial_weights: Weight matrices of the analysis.
        distance_thresholds: Thresholds to use (default: all of them).
        max_spatial_predictors: Optional cap on the total number.

    Returns:
        SpatialPredictorSet
    """
    if distance_thresholds is None:
        distance_thresholds = spatial_weights.distance_thresholds

    predictors = []
    for t in distance_thresholds:
        predictors.extend(pca(spatial_weights[t], t))

    return SpatialPredictorSet(cap_predictors(predictors, max_spatial_predictors))


def hengl_predictors(distance_matrix: np.ndarray) -> SpatialPredictorSet:
    """Every column of the distance matrix as a spatial predictor."""
    d = np.asarray(distance_matrix, dtype=float)
    return SpatialPredictorSet(
        SpatialPredictor(
            name=predictor_name(None, i + 1),
            values=d[:, i].copy(),
            method="hengl",
            distance_threshold=None,
            rank=i + 1
        )
        for i in range(d.shape[1])
    )


def generate_spatial_predictors(
    generator: str,
    distance_matrix: np.ndarray,
    spatial_weights: SpatialWeights,
    distance_thresholds: Optional[Sequence[float]] = None,
    max_spatial_predictors: Optional[int] = None
) -> SpatialPredictorSet:
    """
    Dispatch to the generator named in the method configuration.

    Args:
        generator: "mem", "pca" or "hengl".
        distance_matrix: Validated distance matrix.
        spatial_weights: Weight matrices of the analysis.
        distance_thresholds: Thresholds to generate at (MEM and PCA).
        max_spatial_predictors: Optional cap (MEM and PCA).

    Returns:
        SpatialPredictorSet
    """
    if generator == "mem":
        return mem_multithreshold(
            spatial_weights, distance_thresholds, max_spatial_predictors
        )
    if generator == "pca":
        return pca_multithreshold(
            spatial_weights, distance_thresholds, max_spatial_predictors
        )
    if generator == "hengl":
        return hengl_predictors(distance_matrix)
    raise ValueError(f"Unknown spatial predictor generator '{generator}'")
