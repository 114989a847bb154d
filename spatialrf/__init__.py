"""
spatialrf - Spatial Predictors for Regression Models
====================================================

Generates, ranks and selects spatial predictors that remove the spatial
autocorrelation of regression residuals.

Modules:
    - config: Configuration loading and validation
    - spatial: Distance weights, Moran's I and predictor generators
    - selection: Ranking, scoring and selection of spatial predictors
    - models: Regression fitters and model evaluation
    - parallel: Local and networked worker pools
    - engine: End-to-end spatial model fitting
"""

__version__ = "1.0.0"
__author__ = "spatialrf Team"

from .config import MethodConfig, PipelineConfig, WorkerPoolConfig, load_config
from .engine import SpatialModelResult, fit_spatial_model, run_spatial_model

__all__ = [
    "MethodConfig",
    "PipelineConfig",
    "WorkerPoolConfig",
    "load_config",
    "SpatialModelResult",
    "fit_spatial_model",
    "run_spatial_model",
    "__version__",
]
