"""
spatialrf Models Module
=======================

Regression collaborators and model evaluation.

Modules:
    - fitters: OLS, random forest and repeated fitters
    - evaluation: Fit plus residual Moran's I of a predictor subset
"""

from .fitters import OLSFitter, RandomForestFitter, RepeatedFitter, make_fitter
from .evaluation import evaluate_model

__all__ = [
    "OLSFitter",
    "RandomForestFitter",
    "RepeatedFitter",
    "make_fitter",
    "evaluate_model",
]
