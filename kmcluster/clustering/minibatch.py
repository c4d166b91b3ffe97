"""Mini-batch replicate driver.

Each replicate draws ``n_batches`` fresh random batches. The first batch
is initialized with random centers; every later batch is assigned to
the current centroids, then centroids move toward their members with a
per-cluster learning rate ``1 / count``. Final statistics are computed
over the full instance set without moving the centroids.
"""

import logging
import math
from dataclasses import replace
from typing import Optional

import numpy as np

from ..config import KMeansConfig, InitMethod
from ..memory import has_minimum_memory
from ..monitor import ProgressMonitor, Diagnostics
from .clustering import Clustering
from .initializer import ClusteringInitializer
from .instances import InstanceSet
from .replicate import ReplicateResult, criterion_value, is_better, seed_from


logger = logging.getLogger(__name__)

MEMORY_CHECK_INTERVAL = 100  # records between two memory checks


class MiniBatchReplicateDriver:
    """Replicate driver over random mini-batches.

    A batch size equal to the number of instances is the degenerate
    case: the single batch is the whole set and each replicate runs the
    full-batch convergence core, drawing the same random numbers as
    ReplicateDriver with random initialization.

    Attributes:
        config: Run configuration (initialization is forced to random).
        n_batches: Batches per replicate, set by ``fit``.
    """

    def __init__(
        self,
        config: KMeansConfig,
        monitor: Optional[ProgressMonitor] = None,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self.config = replace(config, init_method=InitMethod.RANDOM, mini_batch=True)
        self.monitor = monitor or ProgressMonitor()
        self.diagnostics = diagnostics or Diagnostics(__name__)
        self.rng = np.random.default_rng(config.seed)
        self.n_batches = 0

    def fit(self, instances: InstanceSet) -> ReplicateResult:
        """Run every replicate over mini-batches and keep the best.

        Returns:
            ReplicateResult with ``mini_batch`` set.
        """
        n = instances.n_instances
        size = self.config.mini_batch_size
        if n == 0:
            self.diagnostics.add_error("No instances available for clustering.")
            return ReplicateResult(success=False, mini_batch=True)

        sample_pct = size / n * 100
        if sample_pct > 100:
            self.diagnostics.add_warning(
                f"Mini-batch size of {size} is too high, please try to decrease it."
            )
            return ReplicateResult(success=False, mini_batch=True)

        degenerate = size == n
        self.n_batches = 1 if degenerate else math.ceil(100 / sample_pct)

        cfg = self.config
        if cfg.k > size:
            self.diagnostics.add_warning(
                f"K parameter ({cfg.k}) is greater than the number of instances in "
                f"mini-batch ({size}), setting K value to {size}"
            )
            cfg = replace(cfg, k=size)

        logger.info(
            "Mini-batch clustering: %d batch(es) of %d instances, %d replicate(s)",
            self.n_batches, size, cfg.replicates,
        )

        criterion = cfg.resolved_criterion(instances.supervised)
        best: Optional[Clustering] = None
        best_index = 0
        self.monitor.begin_task("Mini-batches clustering learning")
        for r in range(cfg.replicates):
            # same random streams as the full-batch driver
            rng = np.random.default_rng(1) if r == 0 and degenerate else self.rng
            current = Clustering(cfg, rng, self.monitor, self.diagnostics)
            if best is None:
                current.compute_global_cluster(instances)
                current.read_target_values(instances)
            else:
                seed_from(current, best)

            if degenerate:
                ok = current.compute_replicate(instances)
            else:
                ok = self.compute_replicate(current, instances, size)
            if not ok:
                self.diagnostics.add_error(f"Replicate {r + 1} failed, clustering aborted.")
                self.monitor.end_task()
                return ReplicateResult(success=False, n_replicates_run=r + 1, mini_batch=True)

            if best is None or is_better(current, best, criterion):
                best, best_index = current, r

            self.monitor.display_label(
                f"In progress : replicate {r + 1} (best execution is {best_index + 1}, "
                f"with {criterion.value} = {criterion_value(best, criterion):.6g})"
            )
            self.monitor.display_progression((r + 1) * 100 / cfg.replicates)
        self.monitor.end_task()

        return ReplicateResult(
            success=True,
            clustering=best,
            quality=best.quality,
            best_replicate=best_index + 1,
            n_replicates_run=cfg.replicates,
            mini_batch=True,
        )

    def compute_replicate(self, clustering: Clustering, instances: InstanceSet, size: int) -> bool:
        """One replicate: online passes over batches, then full statistics.

        Args:
            clustering: Fresh clustering with its global cluster set.
            instances: Full instance arena.
            size: Instances per batch.

        Returns:
            False on initialization failure, interruption or low memory.
        """
        if clustering.global_cluster.frequency == 0:
            self.diagnostics.add_warning(
                "All database instances have at least one missing value. "
                "Try to preprocess the values."
            )
            return False

        counts = np.zeros(0)
        for batch in range(self.n_batches):
            batch_ids = self.rng.choice(instances.n_instances, size=size, replace=False)

            if batch == 0:
                if not ClusteringInitializer(clustering, instances, batch_ids).initialize():
                    self.diagnostics.add_message("Failed to initialize clusters")
                    return False
                counts = np.zeros(len(clustering.clusters))
            elif not clustering.add_instances_to_clusters(instances, batch_ids):
                self.diagnostics.add_warning("Mini-batch clustering interrupted.")
                return False

            if not self._update_centroids(clustering, instances, counts):
                return False
            logger.debug("Mini-batch %d/%d done", batch + 1, self.n_batches)

        if not clustering.add_instances_to_clusters(instances):
            self.diagnostics.add_warning("Mini-batch clustering interrupted.")
            return False
        clustering.finalize_replicate(instances, recompute=False)

        dropped = clustering.drop_empty_clusters()
        if dropped:
            self.diagnostics.add_warning(
                f"{dropped} empty cluster(s) have been dropped during this replicate."
            )
        clustering.compute_clusters_centers_distances()
        clustering.compute_quality(instances)
        return True

    def _update_centroids(self, clustering: Clustering, instances: InstanceSet, counts: np.ndarray) -> bool:
        """Move each centroid toward its members, one instance at a time."""
        processed = 0
        for position, cluster in enumerate(clustering.clusters):
            centroid = cluster.centroid.copy()
            for instance_id in cluster.member_ids():
                processed += 1
                if processed % MEMORY_CHECK_INTERVAL == 0:
                    if self.monitor.is_interruption_requested():
                        self.diagnostics.add_warning("Mini-batch clustering interrupted.")
                        return False
                    if not has_minimum_memory():
                        self.diagnostics.add_warning("Not enough memory to continue mini-batch clustering.")
                        return False
                counts[position] += 1
                learning_rate = 1.0 / counts[position]
                centroid = (1 - learning_rate) * centroid + learning_rate * instances.vector(instance_id)
            cluster.centroid = centroid
        return True
