"""Center coordinator: merges worker candidates into K distinct centers.

The coordinator is the only place where shared state is written. It
accepts deliveries in arrival order, drops candidates that duplicate an
accepted center, and ignores everything once K centers are held.
"""

import numpy as np
from typing import Dict, List, Sequence

from ..config import DistanceNorm
from ..clustering.distance import distances_to
from ..clustering.instances import InstanceSet


class CenterCoordinator:
    """Arrival-order merge of center candidates.

    Attributes:
        k: Number of centers wanted.
        centers: Accepted instance ids, in acceptance order.
        n_deliveries: Deliveries received.
        n_rejected: Candidates rejected as duplicates.
    """

    def __init__(self, instances: InstanceSet, k: int, norm: DistanceNorm = DistanceNorm.L2):
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        self.instances = instances
        self.k = k
        self.norm = norm
        self.centers: List[int] = []
        self.n_deliveries = 0
        self.n_rejected = 0
        self._ignored: List[int] = []

    @property
    def complete(self) -> bool:
        """Whether K centers have been accepted."""
        return len(self.centers) >= self.k

    def receive(self, worker_id: int, candidates: Sequence[int]) -> int:
        """Merge one worker delivery.

        Args:
            worker_id: Delivering worker.
            candidates: Candidate instance ids, in the worker's order.

        Returns:
            Number of candidates accepted from this delivery.
        """
        self.n_deliveries += 1
        if self.complete:
            self._ignored.append(worker_id)
            return 0

        vectors = self.instances.vectors
        accepted = 0
        for instance_id in candidates:
            if self.complete:
                break
            if self.centers and np.any(
                distances_to(vectors[self.centers], vectors[instance_id], self.norm) == 0
            ):
                self.n_rejected += 1
                continue
            self.centers.append(int(instance_id))
            accepted += 1
        return accepted

    @property
    def n_pending(self) -> int:
        """Centers still missing."""
        return max(self.k - len(self.centers), 0)

    def stats(self) -> Dict[str, int]:
        """Merge statistics.

        Returns:
            Dict with accepted, pending, rejected and delivery counts.
        """
        return {
            "k": self.k,
            "n_centers": len(self.centers),
            "n_pending": self.n_pending,
            "n_deliveries": self.n_deliveries,
            "n_rejected": self.n_rejected,
            "n_ignored_deliveries": len(self._ignored),
        }
