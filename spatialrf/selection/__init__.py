"""
spatialrf Selection Module
==========================

Ranking and selection of candidate spatial predictors.

Modules:
    - ranking: Moran and effect ranking
    - scoring: Optimization score shared by the selectors
    - sequential: Best prefix of the ranking
    - optimized: Greedy nested selection
"""

from .ranking import rank_spatial_predictors
from .sequential import select_spatial_predictors_sequential
from .optimized import select_spatial_predictors_optimized

__all__ = [
    "rank_spatial_predictors",
    "select_spatial_predictors_sequential",
    "select_spatial_predictors_optimized",
]
