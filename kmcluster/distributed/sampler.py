"""Thread-parallel random center sampling.

The shuffled instance ids are cut into contiguous shards, one per
worker. Workers collect candidates concurrently and the coordinator
merges their deliveries as they complete. Workers with unread ids are
resumed while centers are missing.
"""

import concurrent.futures
import logging
import math
from typing import List, Optional, Sequence

import numpy as np

from ..config import DistanceNorm
from ..clustering.instances import InstanceSet
from ..monitor import ProgressMonitor
from .coordinator import CenterCoordinator
from .worker import SamplerWorker


logger = logging.getLogger(__name__)


def worker_quota(k: int, n_workers: int) -> int:
    """Candidates each worker collects."""
    if k < n_workers:
        return k
    if k == n_workers:
        return 1
    return math.ceil(k / n_workers)


def split_shards(ids: Sequence[int], n_workers: int) -> List[np.ndarray]:
    """Contiguous, nearly equal slices of ``ids``."""
    return [np.asarray(s, dtype=int) for s in np.array_split(np.asarray(ids, dtype=int), n_workers)]


class DistributedCenterSampler:
    """Random initialization spread over a thread pool.

    Attributes:
        k: Number of centers wanted.
        n_workers: Thread count.
        coordinator: Coordinator of the last ``sample`` call.
        interrupted: Whether a worker stopped on an interruption request.
        n_rounds: Collection rounds run by the last ``sample`` call.
    """

    def __init__(
        self,
        instances: InstanceSet,
        k: int,
        norm: DistanceNorm = DistanceNorm.L2,
        n_workers: int = 1,
        monitor: Optional[ProgressMonitor] = None,
        check_interval: int = 100,
    ):
        if n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {n_workers}")
        self.instances = instances
        self.k = k
        self.norm = norm
        self.n_workers = n_workers
        self.monitor = monitor
        self.check_interval = check_interval
        self.coordinator: Optional[CenterCoordinator] = None
        self.interrupted = False
        self.n_rounds = 0

    def sample(self, ids: Sequence[int]) -> List[int]:
        """Up to K distinct complete instance ids.

        Workers run in rounds. After each round, workers that still have
        unread ids are resumed for the centers still missing, so
        candidates rejected as cross-worker duplicates are replaced.

        Args:
            ids: Instance ids in shuffled order.

        Returns:
            Accepted center ids. Fewer than K means the data does not hold
            K distinct complete instances (or the run was interrupted).
        """
        quota = worker_quota(self.k, self.n_workers)
        workers = [
            SamplerWorker(
                i, self.instances, shard, quota, self.norm, self.monitor, self.check_interval,
            )
            for i, shard in enumerate(split_shards(ids, self.n_workers))
        ]
        self.coordinator = CenterCoordinator(self.instances, self.k, self.norm)
        self.interrupted = False
        self.n_rounds = 0

        active = workers
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.n_workers) as executor:
            while active:
                self.n_rounds += 1
                future_to_worker = {
                    executor.submit(worker.collect, quota): worker
                    for worker in active
                }
                for future in concurrent.futures.as_completed(future_to_worker):
                    worker = future_to_worker[future]
                    candidates = future.result()
                    self.interrupted = self.interrupted or worker.interrupted
                    accepted = self.coordinator.receive(worker.worker_id, candidates)
                    logger.debug(
                        "Worker %d delivered %d candidate(s), %d accepted",
                        worker.worker_id, len(candidates), accepted,
                    )

                if self.coordinator.complete or self.interrupted:
                    break
                active = [worker for worker in workers if not worker.exhausted]
                if active:
                    quota = worker_quota(self.coordinator.n_pending, len(active))

        logger.debug("Center sampling (%d round(s)): %s", self.n_rounds, self.coordinator.stats())
        return list(self.coordinator.centers)
