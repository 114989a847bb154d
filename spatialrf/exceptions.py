"""
Exceptions and warnings raised by the spatialrf engine.
"""


class SpatialRFError(Exception):
    """Base class for all spatialrf errors."""


class ConfigurationError(SpatialRFError, ValueError):
    """Invalid method combination, weight or configuration section."""


class MissingInputError(SpatialRFError, ValueError):
    """A required input (distance matrix, column, ...) was not supplied."""


class DegenerateWeightsError(SpatialRFError):
    """A distance threshold excludes every pair of observations."""

    def __init__(self, distance_threshold, message=None):
        self.distance_threshold = distance_threshold
        if message is None:
            message = (
                f"Distance threshold {distance_threshold} yields an all-zero "
                "weight matrix"
            )
        super().__init__(message)


class DegenerateWeightsWarning(UserWarning):
    """A degenerate distance threshold was dropped from the analysis."""


class NoEligiblePredictorsError(SpatialRFError):
    """Ranking produced no spatial predictor able to improve the model."""


class WorkerUnavailableError(SpatialRFError):
    """A worker process or cluster node could not be reached."""
