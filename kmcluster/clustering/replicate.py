"""Replicate drivers: run several clustering attempts, keep the best.

A single comparator, ``is_better``, decides between two finished
clusterings for every criterion. It is shared by the full driver, the
mini-batch driver and the nested replicates used by the bisecting and
class decomposition initializations.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional

import numpy as np

from ..config import (
    KMeansConfig,
    DistanceNorm,
    InitMethod,
    ReplicateCriterion,
    CentroidType,
    PostOptimization,
)
from ..memory import check_memory_usage
from ..monitor import ProgressMonitor, Diagnostics
from .clustering import Clustering
from .instances import InstanceSet
from .quality import QualityReport


logger = logging.getLogger(__name__)

# QualityReport field behind each metric criterion
_MAXIMIZED: Dict[ReplicateCriterion, str] = {
    ReplicateCriterion.EVA: "eva",
    ReplicateCriterion.LEVA: "leva",
    ReplicateCriterion.ARI_BY_CLUSTERS: "ari_by_clusters",
    ReplicateCriterion.ARI_BY_CLASSES: "ari_by_classes",
    ReplicateCriterion.NMI_BY_CLUSTERS: "nmi_by_clusters",
    ReplicateCriterion.NMI_BY_CLASSES: "nmi_by_classes",
}
_MINIMIZED: Dict[ReplicateCriterion, str] = {
    ReplicateCriterion.VARIATION_OF_INFORMATION: "variation_of_information",
    ReplicateCriterion.DAVIES_BOULDIN: "davies_bouldin",
    ReplicateCriterion.PREDICTIVE_CLUSTERING: "predictive_clustering",
}


# ── Criterion comparator ────────────────────────────────────────

def criterion_value(clustering: Clustering, criterion: ReplicateCriterion) -> float:
    """Value of the criterion for a finished clustering."""
    if criterion in _MAXIMIZED:
        return getattr(clustering.quality, _MAXIMIZED[criterion])
    if criterion in _MINIMIZED:
        return getattr(clustering.quality, _MINIMIZED[criterion])
    return clustering.distance_sum()


def is_better(candidate: Clustering, best: Clustering, criterion: ReplicateCriterion) -> bool:
    """Whether ``candidate`` strictly beats ``best`` on the criterion.

    Args:
        candidate: Newly computed replicate.
        best: Best replicate so far.
        criterion: Resolved criterion. AUTO and DISTANCE compare the
            sum of cluster distance sums.

    Returns:
        True if the candidate should replace the best.
    """
    if criterion in _MAXIMIZED:
        return criterion_value(candidate, criterion) > criterion_value(best, criterion)
    if criterion in _MINIMIZED:
        return criterion_value(candidate, criterion) < criterion_value(best, criterion)
    best_sum = best.distance_sum()
    return best_sum == 0 or candidate.distance_sum() < best_sum


def seed_from(current: Clustering, best: Optional[Clustering]) -> None:
    """Reuse the catalog and global statistics of a previous replicate."""
    if best is None:
        return
    current.target_values = list(best.target_values)
    if best.global_cluster is not None:
        current.global_cluster = best.global_cluster.clone()


# ── Result ──────────────────────────────────────────────────────

@dataclass
class ReplicateResult:
    """Outcome of a replicate run.

    Attributes:
        success: False when a replicate or the post-processing failed.
        clustering: Best clustering, None on failure.
        quality: Quality report of the best clustering.
        best_replicate: 1-based index of the winning replicate.
        n_replicates_run: Replicates attempted.
        mini_batch: Whether the mini-batch driver was used.
    """
    success: bool
    clustering: Optional[Clustering] = None
    quality: Optional[QualityReport] = None
    best_replicate: int = 0
    n_replicates_run: int = 0
    mini_batch: bool = False

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "best_replicate": self.best_replicate,
            "n_replicates_run": self.n_replicates_run,
            "mini_batch": self.mini_batch,
            "quality": self.quality.to_dict() if self.quality is not None else None,
            "clustering": self.clustering.summary() if self.clustering is not None else None,
        }


# ── Nested replicates ───────────────────────────────────────────

def compute_bisecting_replicates(
    instances: InstanceSet,
    config: KMeansConfig,
    rng: Optional[np.random.Generator] = None,
    monitor: Optional[ProgressMonitor] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> Optional[Clustering]:
    """Best of ``config.replicates`` clusterings of a sub-population.

    K is clamped to the number of complete instances. A replicate with
    exactly two clusters always replaces a best that has another count.
    The first failure stops the loop.

    Returns:
        Best clustering with every instance reassigned, or None when no
        replicate succeeded.
    """
    rng = rng if rng is not None else np.random.default_rng(config.seed)
    n_complete = int(instances.complete.sum())
    if n_complete == 0:
        return None
    if config.k > n_complete:
        config = replace(config, k=n_complete)
    criterion = config.resolved_criterion(instances.supervised)

    best: Optional[Clustering] = None
    for _ in range(config.replicates):
        current = Clustering(config, rng, monitor, diagnostics)
        seed_from(current, best)
        if not current.compute_replicate(instances):
            break
        if (
            best is None
            or (len(current.clusters) == 2 and len(best.clusters) != 2)
            or is_better(current, best, criterion)
        ):
            best = current

    if best is None:
        return None
    if not best.add_instances_to_clusters(instances):
        return None
    return best


# ── Full driver ─────────────────────────────────────────────────

class ReplicateDriver:
    """Runs ``config.replicates`` clusterings and keeps the best one.

    Falls back to the mini-batch driver when ``config.mini_batch`` is set
    or when the dataset does not fit in available memory.

    Example:
        >>> driver = ReplicateDriver(KMeansConfig(k=3, replicates=5))
        >>> result = driver.fit(InstanceSet(features))
        >>> result.clustering.centroids()
    """

    def __init__(
        self,
        config: KMeansConfig,
        monitor: Optional[ProgressMonitor] = None,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self.config = config
        self.monitor = monitor or ProgressMonitor()
        self.diagnostics = diagnostics or Diagnostics(__name__)
        self.rng = np.random.default_rng(config.seed)

    def fit(self, instances: InstanceSet) -> ReplicateResult:
        """Run every replicate and post-process the winner.

        Args:
            instances: Instance arena.

        Returns:
            ReplicateResult; ``success`` is False if any replicate failed.
        """
        cfg = self.config
        if instances.n_instances == 0:
            self.diagnostics.add_error("No instances available for clustering.")
            return ReplicateResult(success=False)

        memory = check_memory_usage(instances.n_instances, instances.n_features)
        if cfg.mini_batch or not memory["sufficient"]:
            from .minibatch import MiniBatchReplicateDriver

            self.diagnostics.add_message("Using Kmean mini-batches mode.")
            driver = MiniBatchReplicateDriver(
                replace(cfg, init_method=InitMethod.RANDOM), self.monitor, self.diagnostics,
            )
            return driver.fit(instances)

        supervised = instances.supervised
        criterion = cfg.resolved_criterion(supervised)
        random_init = cfg.resolved_init_method(supervised) == InitMethod.RANDOM
        logger.info(
            "Clustering %d instances: K=%d, %d replicate(s), criterion %s",
            instances.n_instances, cfg.k, cfg.replicates, criterion.value,
        )

        best: Optional[Clustering] = None
        best_index = 0
        self.monitor.begin_task("Clustering replicates")
        for r in range(cfg.replicates):
            rng = np.random.default_rng(1) if r == 0 and random_init else self.rng
            current = Clustering(cfg, rng, self.monitor, self.diagnostics)
            seed_from(current, best)

            if not current.compute_replicate(instances):
                self.diagnostics.add_error(f"Replicate {r + 1} failed, clustering aborted.")
                self.monitor.end_task()
                return ReplicateResult(success=False, n_replicates_run=r + 1)

            if best is None or is_better(current, best, criterion):
                best, best_index = current, r

            self.monitor.display_label(
                f"In progress : replicate {r + 1} (best execution is {best_index + 1}, "
                f"with {criterion.value} = {criterion_value(best, criterion):.6g})"
            )
            self.monitor.display_progression((r + 1) * 100 / cfg.replicates)
        self.monitor.end_task()

        if not self._post_process(best, instances):
            return ReplicateResult(success=False, n_replicates_run=cfg.replicates)

        logger.info("Best replicate: %d", best_index + 1)
        return ReplicateResult(
            success=True,
            clustering=best,
            quality=best.quality,
            best_replicate=best_index + 1,
            n_replicates_run=cfg.replicates,
        )

    def _post_process(self, best: Clustering, instances: InstanceSet) -> bool:
        cfg = self.config
        if cfg.centroid_type == CentroidType.REAL_INSTANCE:
            for cluster in best.clusters:
                cluster.find_nearest_instance(instances, cfg.norm)
                cluster.snap_to_nearest_instance(instances)

        if not best.add_instances_to_clusters(instances):
            self.diagnostics.add_warning("Clustering interrupted while reassigning instances.")
            return False

        post_optimized = (
            instances.supervised and cfg.post_optimization == PostOptimization.FAST
        )
        if post_optimized and not best.post_optimize(instances):
            return False

        if (
            cfg.norm == DistanceNorm.L2
            and cfg.max_iterations == 0
            and cfg.centroid_type == CentroidType.VIRTUAL
            and not post_optimized
            and not best.check_huygens(instances)
        ):
            self.diagnostics.add_warning("Huygens theorem is not verified for this clustering.")
        return True
