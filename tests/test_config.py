# -*- coding: utf-8 -*-
"""Tests for spatialrf.config."""

from __future__ import annotations

import pytest
import yaml


class TestMethodConfig:
    @pytest.mark.parametrize("name, parts", [
        ("mem.moran.sequential", ("mem", "moran", "sequential")),
        ("pca.effect.optimized", ("pca", "effect", "optimized")),
        ("hengl", ("hengl", None, None)),
        (" HENGL.Effect.Sequential ", ("hengl", "effect", "sequential")),
    ])
    def test_parse(self, name, parts):
        from spatialrf.config import MethodConfig

        method = MethodConfig.parse(name)
        assert (method.generator, method.ranker, method.selector) == parts
        assert MethodConfig.parse(method) is method

    def test_every_listed_method_parses(self):
        from spatialrf.config import METHODS, MethodConfig

        assert [MethodConfig.parse(m).name for m in METHODS] == METHODS

    @pytest.mark.parametrize("name", [
        "mem",
        "pca",
        "mem.moran.optimized",
        "mem.random.sequential",
        "kriging.moran.sequential",
        "mem.moran",
        "mem.effect.greedy",
    ])
    def test_invalid_combinations(self, name):
        from spatialrf.config import MethodConfig
        from spatialrf.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            MethodConfig.parse(name)

    def test_ranker_without_selector(self):
        from spatialrf.config import MethodConfig
        from spatialrf.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            MethodConfig("hengl", "moran", None)

    def test_default_weights(self):
        from spatialrf.config import MethodConfig

        defaults = {
            "mem.moran.sequential": (0.75, 0.25),
            "pca.effect.sequential": (0.5, 0.1),
            "mem.effect.optimized": (0.25, 0.0),
            "pca.effect.optimized": (0.25, 0.0),
        }
        for name, expected in defaults.items():
            w = MethodConfig.parse(name).default_weights()
            assert (w.weight_r_squared, w.weight_penalization_n_predictors) == expected

    def test_resolve_weights_keeps_explicit_values(self):
        from spatialrf.config import MethodConfig

        w = MethodConfig.parse("pca.moran.sequential").resolve_weights(0.9, None)
        assert w.weight_r_squared == 0.9
        assert w.weight_penalization_n_predictors == 0.1

    def test_pca_defaults_yield_to_explicit_weights(self):
        from spatialrf.config import MethodConfig

        w = MethodConfig.parse("pca.effect.sequential").resolve_weights(0.75, 0.25)
        assert (w.weight_r_squared, w.weight_penalization_n_predictors) == (0.75, 0.25)

    def test_out_of_range_weight(self):
        from spatialrf.config import MethodConfig
        from spatialrf.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            MethodConfig.parse("mem.moran.sequential").resolve_weights(-0.1, None)


class TestWorkerPoolConfig:
    def test_default_cores(self):
        from spatialrf.config import WorkerPoolConfig

        config = WorkerPoolConfig()
        assert config.n_cores >= 1
        assert not config.is_cluster
        assert config.total_workers == config.n_cores

    def test_cluster_layout(self):
        from spatialrf.config import WorkerPoolConfig

        config = WorkerPoolConfig(cluster_ips=["10.0.0.1", "10.0.0.2"], cluster_cores=[4, 8])
        assert config.is_cluster
        assert config.cluster_ips == ("10.0.0.1", "10.0.0.2")
        assert config.total_workers == 12

    @pytest.mark.parametrize("kwargs", [
        {"n_cores": 0},
        {"cluster_ips": ("10.0.0.1", "10.0.0.2"), "cluster_cores": (4,)},
        {"cluster_ips": ("10.0.0.1",), "cluster_cores": (0,)},
        {"cluster_port": 70000},
        {"connect_timeout": 0},
    ])
    def test_invalid(self, kwargs):
        from spatialrf.config import WorkerPoolConfig
        from spatialrf.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            WorkerPoolConfig(**kwargs)


class TestPipelineConfig:
    def test_from_dict(self, tmp_path):
        from spatialrf.config import PipelineConfig

        config = PipelineConfig.from_dict({
            "paths": {"data_file": "in/points.gpkg", "distance_matrix_file": None},
            "variables": {"dependent": "y", "predictors": ["a", "b"]},
            "spatial": {"method": "pca.effect.sequential", "distance_thresholds": [0, 500]},
            "workers": {"n_cores": 2},
        }, base_path=tmp_path)

        assert config.method.name == "pca.effect.sequential"
        assert config.paths.data_file == tmp_path / "in" / "points.gpkg"
        assert config.paths.distance_matrix_file is None
        assert config.variables.predictors == ["a", "b"]
        assert config.workers.n_cores == 2
        assert config.scoring_weights().weight_r_squared == 0.5
        assert config.verbose

    def test_load_yaml(self, tmp_path):
        from spatialrf.config import load_config

        (tmp_path / "config").mkdir()
        path = tmp_path / "config" / "pipeline.yaml"
        path.write_text(yaml.safe_dump({
            "variables": {"dependent": "y"},
            "spatial": {"method": "hengl"},
            "scoring": {"weight_r_squared": 0.6},
            "model": {"fitter": "random_forest", "seed": 3, "params": {"n_estimators": 50}},
            "logging": {"verbose": False},
        }))

        config = load_config(str(path))
        assert config.method.name == "hengl"
        assert config.paths.results == tmp_path / "results"
        assert config.scoring_weights().weight_r_squared == 0.6
        assert config.model.params == {"n_estimators": 50}
        assert not config.verbose

    def test_missing_file(self, tmp_path):
        from spatialrf.config import load_config

        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    @pytest.mark.parametrize("section", [
        {"spatial": {"method": "mem.moran.optimized"}},
        {"spatial": {"distance_thresholds": [100, 0]}},
        {"spatial": {"max_spatial_predictors": 0}},
        {"scoring": {"weight_penalization_n_predictors": 2}},
        {"model": {"fitter": "svm"}},
        {"model": {"repetitions": 0}},
        {"model": {"fitter": "random_forest", "params": {"random_state": 3}}},
        {"model": {"fitter": "random_forest", "params": {"bootstrap": False}}},
        {"model": {"fitter": "random_forest", "params": {"oob_score": False}}},
    ])
    def test_invalid_sections(self, section, tmp_path):
        from spatialrf.config import PipelineConfig
        from spatialrf.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            PipelineConfig.from_dict(section, base_path=tmp_path)

    def test_with_method_and_summary(self, tmp_path):
        from spatialrf.config import PipelineConfig

        config = PipelineConfig.from_dict({}, base_path=tmp_path)
        other = config.with_method("mem.effect.optimized")

        assert config.method.name == "mem.moran.sequential"
        assert other.method.name == "mem.effect.optimized"
        assert "mem.effect.optimized" in other.summary()
        assert "weight_r_squared: 0.25" in other.summary()

    def test_default_config_file_is_valid(self):
        from spatialrf.config import DEFAULT_CONFIG_PATH, load_config

        if not DEFAULT_CONFIG_PATH.exists():
            pytest.skip("default configuration not shipped with this install")
        config = load_config()
        assert config.method.name
