"""
Worker Pools
============
Fan-out/fan-in execution of independent model evaluations.

Pools:
1. LocalPool - ``concurrent.futures.ProcessPoolExecutor`` on this machine,
   or plain in-process execution with one core
2. ClusterPool - worker processes on several machines connected to the
   coordinator over ZeroMQ (ROUTER on the coordinator, DEALER on workers)

Both pools are context managers whose ``map(func, items)`` returns the
results in submission order and re-raises the first failure.
"""

import multiprocessing
import pickle
import time
from concurrent.futures import ProcessPoolExecutor
from typing import Any, Callable, Iterable, List, Optional

import zmq

from ..config import WorkerPoolConfig
from ..exceptions import SpatialRFError, WorkerUnavailableError
from .worker import READY, RESULT, STOP, JOB, run_worker


class LocalPool:
    """
    Process pool on the local machine.

    Args:
        n_cores: Number of worker processes; 1 runs everything in-process.
    """

    def __init__(self, n_cores: int = 1):
        if n_cores < 1:
            raise ValueError("n_cores must be >= 1")
        self.n_cores = int(n_cores)
        self._executor = None

    def __enter__(self):
        if self.n_cores > 1:
            self._executor = ProcessPoolExecutor(max_workers=self.n_cores)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    @property
    def n_workers(self) -> int:
        return self.n_cores

    def map(self, func: Callable, items: Iterable) -> List[Any]:
        items = list(items)
        if self._executor is None or len(items) < 2:
            return [func(item) for item in items]
        chunksize = max(1, len(items) // (self.n_cores * 4))
        return list(self._executor.map(func, items, chunksize=chunksize))


class ClusterPool:
    """
    Networked worker pool coordinated over ZeroMQ.

    The coordinator binds a ROUTER socket on ``cluster_port`` and starts
    ``cluster_cores[0]`` local worker processes; every other node is
    expected to run ``spatialrf-worker --coordinator <ip> --port <port>
    --cores <n>``. Tasks and results travel as pickles, so every node must
    be trusted and run the same package version.

    Args:
        config: Cluster layout; ``cluster_ips[0]`` is the coordinator.
    """

    def __init__(self, config: WorkerPoolConfig):
        if not config.is_cluster:
            raise ValueError("ClusterPool requires cluster_ips")
        self.config = config
        self._context = None
        self._socket = None
        self._processes = []
        self._workers = []
        self._map_id = 0

    @property
    def n_workers(self) -> int:
        return self.config.total_workers

    def __enter__(self):
        # Start local workers before any ZeroMQ context exists in this process
        address = f"tcp://127.0.0.1:{self.config.cluster_port}"
        for _ in range(self.config.cluster_cores[0]):
            p = multiprocessing.Process(target=run_worker, args=(address,), daemon=True)
            p.start()
            self._processes.append(p)

        self._context = zmq.Context()
        self._socket = self._context.socket(zmq.ROUTER)
        self._socket.setsockopt(zmq.LINGER, 0)

        try:
            self._socket.bind(f"tcp://*:{self.config.cluster_port}")
            self._register_workers()
        except Exception:
            self.__exit__(None, None, None)
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._socket is not None:
            for identity in self._workers:
                self._socket.send_multipart([identity, STOP])
            # Give queued STOP messages a moment to leave
            self._socket.close(linger=1000)
            self._socket = None
        if self._context is not None:
            self._context.term()
            self._context = None
        for p in self._processes:
            p.join(timeout=5)
            if p.is_alive():
                p.terminate()
        self._processes = []
        self._workers = []

    def _register_workers(self):
        """Wait until every expected worker has announced itself."""
        expected = self.config.total_workers
        deadline = time.monotonic() + self.config.connect_timeout
        poller = zmq.Poller()
        poller.register(self._socket, zmq.POLLIN)

        while len(self._workers) < expected:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise WorkerUnavailableError(
                    f"Only {len(self._workers)} of {expected} workers connected to "
                    f"port {self.config.cluster_port} within "
                    f"{self.config.connect_timeout} seconds"
                )
            socks = dict(poller.poll(int(min(remaining, 1.0) * 1000)))
            if self._socket in socks and socks[self._socket] == zmq.POLLIN:
                identity, kind, *_ = self._socket.recv_multipart()
                if kind == READY and identity not in self._workers:
                    self._workers.append(identity)

    def _check_local_workers(self):
        dead = [p for p in self._processes if not p.is_alive()]
        if dead:
            raise WorkerUnavailableError(
                f"{len(dead)} local worker process(es) exited unexpectedly"
            )

    def map(self, func: Callable, items: Iterable) -> List[Any]:
        items = list(items)
        if not items:
            return []

        self._map_id += 1
        map_id = self._map_id
        results = [None] * len(items)
        pending = list(range(len(items)))
        pending.reverse()
        idle = list(self._workers)
        busy = {}
        has_task = set()
        n_done = 0

        poller = zmq.Poller()
        poller.register(self._socket, zmq.POLLIN)

        while n_done < len(items):
            # Hand out jobs to idle workers; the task travels once per worker
            while idle and pending:
                identity = idle.pop(0)
                index = pending.pop()
                task = None if identity in has_task else func
                has_task.add(identity)
                busy[identity] = index
                payload = pickle.dumps((map_id, index, items[index], task))
                self._socket.send_multipart([identity, JOB, payload])

            socks = dict(poller.poll(1000))
            if self._socket not in socks:
                self._check_local_workers()
                continue

            identity, kind, *frames = self._socket.recv_multipart()
            if kind == READY:
                if identity in busy:
                    raise WorkerUnavailableError(
                        f"A worker restarted while running task {busy[identity]}"
                    )
                if identity not in self._workers:
                    self._workers.append(identity)
                idle.append(identity)
                continue
            if kind != RESULT:
                continue

            reply_map_id, index, ok, value = pickle.loads(frames[0])
            if reply_map_id != map_id:
                continue
            if not ok:
                raise SpatialRFError(f"Task {index} failed on a worker:\n{value}")
            results[index] = value
            n_done += 1
            busy.pop(identity, None)
            idle.append(identity)

        return results


def make_pool(config: Optional[WorkerPoolConfig] = None):
    """
    Pool described by a WorkerPoolConfig.

    Args:
        config: Pool configuration; None runs in-process.

    Returns:
        LocalPool or ClusterPool (not yet entered)
    """
    if config is None:
        return LocalPool(1)
    if config.is_cluster:
        return ClusterPool(config)
    return LocalPool(config.n_cores)
