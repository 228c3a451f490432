"""
Core components: the fixed worker pool and the gRPC endpoint that feeds it.
"""

from .worker_pool import (
    DrainResult,
    PoolClosedError,
    PoolError,
    WorkerPool,
    WorkerState,
)
from .endpoint import BindError, PoolExecutor, ServiceEndpoint, StartupError

__all__ = [
    "DrainResult",
    "PoolClosedError",
    "PoolError",
    "WorkerPool",
    "WorkerState",
    "BindError",
    "PoolExecutor",
    "ServiceEndpoint",
    "StartupError",
]
