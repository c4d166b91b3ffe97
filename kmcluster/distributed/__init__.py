"""Thread-parallel center sampling for random initialization.

Package:
    - worker: per-shard greedy candidate collection
    - coordinator: arrival-order, duplicate-safe merge
    - sampler: thread pool map + merge
"""

from .worker import SamplerWorker
from .coordinator import CenterCoordinator
from .sampler import DistributedCenterSampler, worker_quota, split_shards

__all__ = [
    "SamplerWorker",
    "CenterCoordinator",
    "DistributedCenterSampler",
    "worker_quota",
    "split_shards",
]
