"""
Distance Weighting Module
=========================
Converts a pairwise distance matrix into neighborhood weight matrices.

For a threshold t, pairs closer than or at t are not neighbors; every
other pair is weighted by its inverse distance, and the whole matrix is
divided by its total so all weights sum to 1.
"""

import warnings
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
import geopandas as gpd
from scipy.spatial.distance import cdist
from libpysal.weights import full2W

from ..exceptions import (
    DegenerateWeightsError,
    DegenerateWeightsWarning,
    MissingInputError,
)


def validate_distance_matrix(
    distance_matrix: Union[np.ndarray, pd.DataFrame, None],
    n_rows: Optional[int] = None
) -> np.ndarray:
    """
    Check a distance matrix and return it as a float array.

    Args:
        distance_matrix: Square, symmetric, non-negative matrix with zero
            diagonal.
        n_rows: Number of rows of the data table it must align with.

    Returns:
        Read-only float array copy of the matrix
    """
    if distance_matrix is None:
        raise MissingInputError("The distance matrix is missing.")

    d = np.array(distance_matrix, dtype=float)
    if d.ndim != 2 or d.shape[0] != d.shape[1]:
        raise ValueError(f"The distance matrix must be square, got shape {d.shape}")
    if d.shape[0] < 4:
        raise ValueError("The distance matrix needs at least 4 observations")
    if not np.all(np.isfinite(d)):
        raise ValueError("The distance matrix contains missing or infinite values")
    if np.any(d < 0):
        raise ValueError("The distance matrix contains negative distances")
    if not np.allclose(np.diag(d), 0.0):
        raise ValueError("The distance matrix must have a zero diagonal")
    if not np.allclose(d, d.T):
        raise ValueError("The distance matrix must be symmetric")
    if n_rows is not None and d.shape[0] != n_rows:
        raise ValueError(
            f"The distance matrix has {d.shape[0]} rows but the data has {n_rows}"
        )

    d.setflags(write=False)
    return d


def default_distance_thresholds(distance_matrix: np.ndarray) -> List[float]:
    """Two thresholds: 0 and a quarter of the maximum distance (floored)."""
    d = np.asarray(distance_matrix, dtype=float)
    thresholds = np.floor(np.linspace(0.0, d.max() / 4.0, 2))
    return sorted(set(float(t) for t in thresholds))


def weights_from_distance_matrix(
    distance_matrix: np.ndarray,
    distance_threshold: float = 0.0
) -> np.ndarray:
    """
    Inverse-distance weights with a minimum neighborhood distance.

    Args:
        distance_matrix: Validated distance matrix.
        distance_threshold: Pairs with distance <= threshold get weight 0.

    Returns:
        Weight matrix with zero diagonal and total weight 1
    """
    d = np.asarray(distance_matrix, dtype=float)
    if distance_threshold < 0:
        raise ValueError("Distance thresholds must be non-negative")

    w = np.zeros_like(d)
    mask = d > distance_threshold
    w[mask] = 1.0 / d[mask]
    np.fill_diagonal(w, 0.0)

    total = w.sum()
    if total <= 0:
        raise DegenerateWeightsError(distance_threshold)

    return w / total


def distance_matrix_from_coordinates(
    coordinates: Union[np.ndarray, gpd.GeoDataFrame]
) -> np.ndarray:
    """
    Euclidean distance matrix among point locations.

    Args:
        coordinates: (n, 2) array of x/y coordinates, or a GeoDataFrame with
            point geometry (distances in CRS units).

    Returns:
        (n, n) distance matrix
    """
    if isinstance(coordinates, gpd.GeoDataFrame):
        geometry = coordinates.geometry
        if not (geometry.geom_type == "Point").all():
            raise ValueError("Distance matrix from geometry requires point geometries")
        coords = np.column_stack([geometry.x.values, geometry.y.values])
    else:
        coords = np.asarray(coordinates, dtype=float)

    if coords.ndim != 2:
        raise ValueError("Coordinates must be a 2D array")

    d = cdist(coords, coords)
    # Remove rounding asymmetry from cdist
    return (d + d.T) / 2.0


class SpatialWeights:
    """
    Weight matrices for a set of distance thresholds.

    Degenerate thresholds are dropped with a DegenerateWeightsWarning; the
    remaining thresholds keep their ascending order.

    Attributes:
        distance_thresholds: Usable thresholds.
        matrices: ``{threshold: weight matrix}``.
    """

    def __init__(self, matrices: Dict[float, np.ndarray]):
        if not matrices:
            raise DegenerateWeightsError(
                None, "Every distance threshold yields an all-zero weight matrix"
            )
        self.matrices = dict(sorted(matrices.items()))
        self.distance_thresholds = list(self.matrices.keys())
        self._pysal = {}

    @classmethod
    def from_distance_matrix(
        cls,
        distance_matrix: np.ndarray,
        distance_thresholds: Iterable[float]
    ) -> "SpatialWeights":
        """
        Build one weight matrix per threshold.

        Args:
            distance_matrix: Validated distance matrix.
            distance_thresholds: Ascending thresholds.

        Returns:
            SpatialWeights instance
        """
        matrices = {}
        for threshold in distance_thresholds:
            threshold = float(threshold)
            try:
                matrices[threshold] = weights_from_distance_matrix(
                    distance_matrix, threshold
                )
            except DegenerateWeightsError as e:
                warnings.warn(
                    f"{e}; threshold dropped", DegenerateWeightsWarning, stacklevel=2
                )
        return cls(matrices)

    def __len__(self) -> int:
        return len(self.matrices)

    def __getitem__(self, distance_threshold: float) -> np.ndarray:
        return self.matrices[float(distance_threshold)]

    @property
    def n(self) -> int:
        return next(iter(self.matrices.values())).shape[0]

    def subset(self, distance_thresholds: Sequence[float]) -> "SpatialWeights":
        """Weights restricted to the given thresholds."""
        return SpatialWeights(
            {float(t): self.matrices[float(t)] for t in distance_thresholds}
        )

    def pysal(self, distance_threshold: float):
        """libpysal ``W`` view of the weights at one threshold (cached)."""
        key = float(distance_threshold)
        if key not in self._pysal:
            self._pysal[key] = full2W(self.matrices[key], silence_warnings=True)
        return self._pysal[key]

    def __getstate__(self):
        # libpysal views are rebuilt on demand in worker processes
        state = self.__dict__.copy()
        state["_pysal"] = {}
        return state
