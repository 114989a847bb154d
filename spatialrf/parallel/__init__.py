"""
spatialrf Parallel Module
=========================

Worker pools for model evaluations.

Modules:
    - pool: Local process pool and ZeroMQ cluster pool
    - worker: Cluster worker processes (spatialrf-worker)
"""

from .pool import ClusterPool, LocalPool, make_pool

__all__ = [
    "ClusterPool",
    "LocalPool",
    "make_pool",
]
