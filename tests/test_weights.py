# -*- coding: utf-8 -*-
"""Tests for spatialrf.spatial.weights."""

from __future__ import annotations

import warnings

import numpy as np
import pandas as pd
import pytest


class TestWeightsFromDistanceMatrix:
    """Inverse-distance weights with a minimum distance."""

    def test_zero_diagonal_and_unit_total(self, grid):
        from spatialrf.spatial.weights import weights_from_distance_matrix

        for threshold in (0.0, 1.0, 1.5, 2.5):
            w = weights_from_distance_matrix(grid["distance_matrix"], threshold)
            assert np.allclose(np.diag(w), 0.0)
            assert w.sum() == pytest.approx(1.0)
            assert np.allclose(w, w.T)

    def test_pairs_within_threshold_get_zero(self, two_clusters):
        from spatialrf.spatial.weights import weights_from_distance_matrix

        d = two_clusters["distance_matrix"]
        w = weights_from_distance_matrix(d, 1.0)
        assert np.all(w[d <= 1.0] == 0.0)
        assert np.all(w[d > 1.0] > 0.0)

    def test_inverse_distance_proportions(self, two_clusters):
        from spatialrf.spatial.weights import weights_from_distance_matrix

        w = weights_from_distance_matrix(two_clusters["distance_matrix"], 0.0)
        # intra-cluster pair (distance 1) vs inter-cluster pair (distance 100)
        assert w[0, 1] / w[0, 9] == pytest.approx(100.0)

    def test_degenerate_threshold_raises(self, two_clusters):
        from spatialrf.exceptions import DegenerateWeightsError
        from spatialrf.spatial.weights import weights_from_distance_matrix

        with pytest.raises(DegenerateWeightsError) as exc_info:
            weights_from_distance_matrix(two_clusters["distance_matrix"], 100.0)
        assert exc_info.value.distance_threshold == 100.0


class TestValidateDistanceMatrix:
    def test_missing_matrix(self):
        from spatialrf.exceptions import MissingInputError
        from spatialrf.spatial.weights import validate_distance_matrix

        with pytest.raises(MissingInputError):
            validate_distance_matrix(None)

    def test_accepts_dataframe_and_is_read_only(self, grid):
        from spatialrf.spatial.weights import validate_distance_matrix

        d = validate_distance_matrix(pd.DataFrame(grid["distance_matrix"]), n_rows=25)
        assert d.shape == (25, 25)
        with pytest.raises(ValueError):
            d[0, 1] = 5.0

    @pytest.mark.parametrize("bad", [
        np.ones((4, 5)),
        np.array([[0, 1, 2, 3], [1, 0, 1, 1], [2, 1, 0, 1], [3, 1, 5, 0]], dtype=float),
        np.array([[0, -1, 2, 3], [-1, 0, 1, 1], [2, 1, 0, 1], [3, 1, 1, 0]], dtype=float),
        np.array([[1, 1, 2, 3], [1, 0, 1, 1], [2, 1, 0, 1], [3, 1, 1, 0]], dtype=float),
    ])
    def test_malformed_matrix(self, bad):
        from spatialrf.spatial.weights import validate_distance_matrix

        with pytest.raises(ValueError):
            validate_distance_matrix(bad)

    def test_row_mismatch(self, grid):
        from spatialrf.spatial.weights import validate_distance_matrix

        with pytest.raises(ValueError):
            validate_distance_matrix(grid["distance_matrix"], n_rows=24)


class TestDefaultThresholds:
    def test_zero_and_quarter_of_max(self, two_clusters):
        from spatialrf.spatial.weights import default_distance_thresholds

        assert default_distance_thresholds(two_clusters["distance_matrix"]) == [0.0, 25.0]

    def test_small_distances_collapse_to_zero(self):
        from spatialrf.spatial.weights import default_distance_thresholds

        d = np.array([[0, 1, 2, 3], [1, 0, 1, 2], [2, 1, 0, 1], [3, 2, 1, 0]], dtype=float)
        assert default_distance_thresholds(d) == [0.0]


class TestSpatialWeights:
    def test_one_matrix_per_threshold(self, grid_weights):
        assert grid_weights.distance_thresholds == [0.0, 1.5]
        assert len(grid_weights) == 2
        assert grid_weights.n == 25
        assert grid_weights[1.5].sum() == pytest.approx(1.0)

    def test_degenerate_threshold_dropped_with_warning(self, two_clusters):
        from spatialrf.exceptions import DegenerateWeightsWarning
        from spatialrf.spatial.weights import SpatialWeights

        with pytest.warns(DegenerateWeightsWarning):
            weights = SpatialWeights.from_distance_matrix(
                two_clusters["distance_matrix"], [0.0, 25.0, 500.0]
            )
        assert weights.distance_thresholds == [0.0, 25.0]

    def test_all_degenerate_raises(self, two_clusters):
        from spatialrf.exceptions import DegenerateWeightsError
        from spatialrf.spatial.weights import SpatialWeights

        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            with pytest.raises(DegenerateWeightsError):
                SpatialWeights.from_distance_matrix(
                    two_clusters["distance_matrix"], [100.0, 200.0]
                )

    def test_pysal_view_matches_matrix(self, grid_weights):
        w = grid_weights.pysal(0.0)
        full, _ = w.full()
        assert np.allclose(full, grid_weights[0.0])

    def test_subset(self, grid_weights):
        sub = grid_weights.subset([1.5])
        assert sub.distance_thresholds == [1.5]
        assert np.array_equal(sub[1.5], grid_weights[1.5])


class TestDistanceMatrixFromCoordinates:
    def test_array_coordinates(self):
        from spatialrf.spatial.weights import distance_matrix_from_coordinates

        d = distance_matrix_from_coordinates(np.array([[0, 0], [3, 4], [6, 8]]))
        assert d[0, 1] == pytest.approx(5.0)
        assert d[0, 2] == pytest.approx(10.0)
        assert np.array_equal(d, d.T)

    def test_point_geodataframe(self):
        import geopandas as gpd
        from spatialrf.spatial.weights import distance_matrix_from_coordinates

        gdf = gpd.GeoDataFrame(
            {"v": [1, 2]}, geometry=gpd.points_from_xy([0, 0], [0, 2]), crs="EPSG:3857"
        )
        d = distance_matrix_from_coordinates(gdf)
        assert d[0, 1] == pytest.approx(2.0)
