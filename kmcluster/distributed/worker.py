"""Sampler worker: greedy center candidates from one shard.

Each worker only reads the shared instance arena and writes to its own
candidate list, so workers can run concurrently without locking. A
worker keeps its scan position, so it can be resumed for more
candidates after the coordinator rejected some of its earlier ones.
"""

import numpy as np
from typing import List, Sequence, Optional

from ..config import DistanceNorm
from ..clustering.distance import distances_to
from ..clustering.instances import InstanceSet
from ..monitor import ProgressMonitor


class SamplerWorker:
    """Collects distinct complete instances from a shard, ``quota`` at a time.

    Attributes:
        worker_id: Position of the worker in the pool.
        shard: Instance ids to scan, in order.
        quota: Default number of candidates per ``collect`` call.
        candidates: Every instance id collected so far.
        position: Index in ``shard`` of the next instance to read.
        interrupted: Whether the scan stopped on an interruption request.
    """

    def __init__(
        self,
        worker_id: int,
        instances: InstanceSet,
        shard: Sequence[int],
        quota: int,
        norm: DistanceNorm = DistanceNorm.L2,
        monitor: Optional[ProgressMonitor] = None,
        check_interval: int = 100,
    ):
        self.worker_id = worker_id
        self.instances = instances
        self.shard = np.asarray(shard, dtype=int)
        self.quota = quota
        self.norm = norm
        self.monitor = monitor
        self.check_interval = check_interval
        self.candidates: List[int] = []
        self.position = 0
        self.interrupted = False

    @property
    def exhausted(self) -> bool:
        """Whether the whole shard has been read."""
        return self.position >= len(self.shard)

    def collect(self, quota: Optional[int] = None) -> List[int]:
        """Scan the shard from the current position until ``quota`` new
        candidates are found.

        Instances with missing values are skipped, and so is any instance
        at distance 0 from a candidate this worker already collected. An
        interruption request ends the scan early; what was collected is
        returned.

        Args:
            quota: Candidates wanted from this call. Defaults to ``self.quota``.

        Returns:
            Candidate instance ids found by this call, in shard order.
        """
        quota = self.quota if quota is None else quota
        vectors = self.instances.vectors
        found: List[int] = []
        while len(found) < quota and not self.exhausted:
            if (
                self.monitor is not None
                and self.position % self.check_interval == 0
                and self.monitor.is_interruption_requested()
            ):
                self.interrupted = True
                break
            instance_id = int(self.shard[self.position])
            self.position += 1
            if not self.instances.complete[instance_id]:
                continue
            if self.candidates and np.any(
                distances_to(vectors[self.candidates], vectors[instance_id], self.norm) == 0
            ):
                continue
            self.candidates.append(instance_id)
            found.append(instance_id)
        return found
