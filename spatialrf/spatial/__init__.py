"""
spatialrf Spatial Module
========================

Distance weights, spatial autocorrelation and spatial predictors.

Modules:
    - weights: Inverse-distance weights per distance threshold
    - moran: Global Moran's I, single- and multi-threshold
    - generators: MEM, PCA and raw-distance spatial predictors
"""

from .weights import SpatialWeights, weights_from_distance_matrix
from .moran import MoranResult, moran_multithreshold
from .generators import (
    SpatialPredictorSet,
    hengl_predictors,
    mem_multithreshold,
    pca_multithreshold,
)

__all__ = [
    "SpatialWeights",
    "weights_from_distance_matrix",
    "MoranResult",
    "moran_multithreshold",
    "SpatialPredictorSet",
    "hengl_predictors",
    "mem_multithreshold",
    "pca_multithreshold",
]
