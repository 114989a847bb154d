# -*- coding: utf-8 -*-
"""Tests for spatialrf.parallel (local and cluster worker pools)."""

from __future__ import annotations

import pytest


class TestLocalPool:
    def test_serial_map(self):
        from spatialrf.parallel.pool import LocalPool

        with LocalPool(1) as pool:
            assert pool.map(abs, [-3, 2, -1]) == [3, 2, 1]
            assert pool.map(abs, []) == []

    def test_process_map_keeps_order(self):
        from spatialrf.parallel.pool import LocalPool

        items = list(range(-20, 0))
        with LocalPool(2) as pool:
            assert pool.n_workers == 2
            assert pool.map(abs, items) == [abs(i) for i in items]

    def test_evaluator_in_processes(self, grid, grid_weights):
        from spatialrf.models.evaluation import ModelEvaluator
        from spatialrf.models.fitters import OLSFitter
        from spatialrf.parallel.pool import LocalPool

        evaluator = ModelEvaluator(grid["data"], "response", OLSFitter(), grid_weights)
        subsets = [[], ["x1"]]
        with LocalPool(2) as pool:
            evaluations = pool.map(evaluator, subsets)

        assert [e.predictor_names for e in evaluations] == [(), ("x1",)]
        assert evaluations[1].r_squared == pytest.approx(evaluator(["x1"]).r_squared)

    def test_invalid_size(self):
        from spatialrf.parallel.pool import LocalPool

        with pytest.raises(ValueError):
            LocalPool(0)


class TestClusterPool:
    def test_map_over_local_workers(self, free_port):
        from spatialrf.config import WorkerPoolConfig
        from spatialrf.parallel.pool import ClusterPool

        config = WorkerPoolConfig(
            cluster_ips=("127.0.0.1",),
            cluster_cores=(2,),
            cluster_port=free_port,
            connect_timeout=30.0,
        )
        with ClusterPool(config) as pool:
            assert pool.n_workers == 2
            assert pool.map(abs, [-5, 4, -3, 2, -1]) == [5, 4, 3, 2, 1]
            # A second map sends the new task again
            assert pool.map(str, [1, 2]) == ["1", "2"]

    def test_failed_task_is_reported(self, free_port):
        from spatialrf.config import WorkerPoolConfig
        from spatialrf.exceptions import SpatialRFError
        from spatialrf.parallel.pool import ClusterPool

        config = WorkerPoolConfig(
            cluster_ips=("127.0.0.1",),
            cluster_cores=(1,),
            cluster_port=free_port,
            connect_timeout=30.0,
        )
        with ClusterPool(config) as pool:
            with pytest.raises(SpatialRFError, match="failed on a worker"):
                pool.map(abs, ["not a number"])

    def test_missing_node_times_out(self, free_port):
        from spatialrf.config import WorkerPoolConfig
        from spatialrf.exceptions import WorkerUnavailableError
        from spatialrf.parallel.pool import ClusterPool

        config = WorkerPoolConfig(
            cluster_ips=("127.0.0.1", "10.255.255.1"),
            cluster_cores=(1, 2),
            cluster_port=free_port,
            connect_timeout=1.0,
        )
        with pytest.raises(WorkerUnavailableError):
            with ClusterPool(config):
                pass

    def test_requires_cluster_layout(self):
        from spatialrf.config import WorkerPoolConfig
        from spatialrf.parallel.pool import ClusterPool

        with pytest.raises(ValueError):
            ClusterPool(WorkerPoolConfig(n_cores=2))


class TestMakePool:
    def test_kinds(self):
        from spatialrf.config import WorkerPoolConfig
        from spatialrf.parallel.pool import ClusterPool, LocalPool, make_pool

        assert isinstance(make_pool(None), LocalPool)
        assert make_pool(None).n_cores == 1

        local = make_pool(WorkerPoolConfig(n_cores=3))
        assert isinstance(local, LocalPool)
        assert local.n_cores == 3

        cluster = make_pool(WorkerPoolConfig(cluster_ips=("127.0.0.1",), cluster_cores=(1,)))
        assert isinstance(cluster, ClusterPool)


class TestWorkerCli:
    def test_requires_coordinator(self, monkeypatch):
        from spatialrf.parallel import worker

        monkeypatch.setattr("sys.argv", ["spatialrf-worker"])
        with pytest.raises(SystemExit):
            worker.main()

    def test_rejects_zero_cores(self, monkeypatch):
        from spatialrf.parallel import worker

        monkeypatch.setattr(
            "sys.argv", ["spatialrf-worker", "--coordinator", "127.0.0.1", "--cores", "0"]
        )
        with pytest.raises(SystemExit):
            worker.main()
