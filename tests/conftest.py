# -*- coding: utf-8 -*-
"""
Shared pytest fixtures for spatialrf tests.
"""

from __future__ import annotations

import socket
from typing import Any, Callable, Dict

import numpy as np
import pandas as pd
import pytest


# ---------------------------------------------------------------------------
# Two tight clusters: intra-cluster distance 1, inter-cluster distance 100
# ---------------------------------------------------------------------------
@pytest.fixture
def two_clusters() -> Dict[str, Any]:
    """10 observations in two clusters, response separated by cluster."""
    rng = np.random.RandomState(42)
    cluster = np.repeat([0, 1], 5)

    distance_matrix = np.where(cluster[:, None] == cluster[None, :], 1.0, 100.0)
    np.fill_diagonal(distance_matrix, 0.0)

    data = pd.DataFrame({
        "response": cluster + rng.normal(0, 0.05, size=10),
        "noise": rng.normal(size=10),
    })
    return {
        "data": data,
        "distance_matrix": distance_matrix,
        "dependent": "response",
        "predictors": ["noise"],
        "cluster": cluster,
    }


# ---------------------------------------------------------------------------
# Random distances, response independent of position
# ---------------------------------------------------------------------------
@pytest.fixture
def random_scenario() -> Callable[[int], Dict[str, Any]]:
    """Factory of random scenarios (30 observations) by seed."""

    def make(seed: int) -> Dict[str, Any]:
        rng = np.random.RandomState(seed)
        n = 30
        upper = np.triu(rng.uniform(1.0, 100.0, size=(n, n)), k=1)
        distance_matrix = upper + upper.T

        data = pd.DataFrame({
            "response": rng.normal(size=n),
            "x1": rng.normal(size=n),
        })
        return {
            "data": data,
            "distance_matrix": distance_matrix,
            "dependent": "response",
            "predictors": ["x1"],
        }

    return make


# ---------------------------------------------------------------------------
# Regular grid with a smooth response surface
# ---------------------------------------------------------------------------
@pytest.fixture
def grid() -> Dict[str, Any]:
    """5 x 5 grid, response is a smooth gradient plus a little noise."""
    from spatialrf.spatial.weights import distance_matrix_from_coordinates

    rng = np.random.RandomState(7)
    xs, ys = np.meshgrid(np.arange(5.0), np.arange(5.0))
    coords = np.column_stack([xs.ravel(), ys.ravel()])

    data = pd.DataFrame({
        "response": coords[:, 0] + 0.5 * np.sin(coords[:, 1])
        + rng.normal(0, 0.1, size=25),
        "x1": rng.normal(size=25),
    })
    return {
        "data": data,
        "coords": coords,
        "distance_matrix": distance_matrix_from_coordinates(coords),
        "dependent": "response",
        "predictors": ["x1"],
    }


@pytest.fixture
def grid_weights(grid):
    """SpatialWeights of the grid at thresholds 0 and 1.5."""
    from spatialrf.spatial.weights import SpatialWeights

    return SpatialWeights.from_distance_matrix(grid["distance_matrix"], [0.0, 1.5])


@pytest.fixture
def free_port() -> int:
    """An unused TCP port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
