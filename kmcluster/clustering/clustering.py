"""Clustering: clusters, global statistics and the convergence core.

A Clustering owns an ordered list of clusters, a global cluster that
spans the dataset, the target value catalog and an instance -> cluster
index kept in sync with every cluster's member set. ``compute_replicate``
runs one full initialize / iterate / finalize attempt.
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..config import KMeansConfig, DistanceNorm, ReplicateCriterion
from ..monitor import ProgressMonitor, Diagnostics
from .cluster import Cluster, centroids_of
from .distance import distance, distance_matrix, distances_to
from .instances import InstanceSet
from .quality import ClusteringQuality, QualityReport, normalized_eva


logger = logging.getLogger(__name__)

# Criteria whose metric is only computed on demand
_ON_DEMAND_CRITERIA = (
    ReplicateCriterion.EVA,
    ReplicateCriterion.LEVA,
    ReplicateCriterion.NMI_BY_CLUSTERS,
    ReplicateCriterion.NMI_BY_CLASSES,
    ReplicateCriterion.ARI_BY_CLASSES,
    ReplicateCriterion.VARIATION_OF_INFORMATION,
)


class Clustering:
    """Set of clusters over one instance arena.

    Member ids always refer to the arena the clustering was last
    assigned from.

    Attributes:
        config: Run configuration.
        clusters: Ordered clusters.
        global_cluster: Cluster spanning all complete instances.
        target_values: Target value catalog (only ever grows).
        centers_distances: Inter-centroid distance matrix (k x k).
        cluster_of: Instance id -> owning cluster.
        quality: Cached quality values.
        confusion_matrix: Predicted (rows) vs actual (columns) classes.
        iterations_done: Iterations of the last convergence loop.
    """

    def __init__(
        self,
        config: KMeansConfig,
        rng: Optional[np.random.Generator] = None,
        monitor: Optional[ProgressMonitor] = None,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng(config.seed)
        self.monitor = monitor or ProgressMonitor()
        self.diagnostics = diagnostics or Diagnostics(__name__)

        self.clusters: List[Cluster] = []
        self.global_cluster: Optional[Cluster] = None
        self.target_values: List[str] = []
        self.centers_distances = np.zeros((0, 0))
        self.cluster_of: Dict[int, Cluster] = {}
        self.quality = QualityReport()
        self.confusion_matrix: Optional[np.ndarray] = None
        self.iterations_done = 0

    def __len__(self) -> int:
        return len(self.clusters)

    @property
    def norm(self) -> DistanceNorm:
        return self.config.norm

    # ── Membership index ────────────────────────────────────────

    def add_cluster(self, cluster: Cluster) -> None:
        """Append a cluster and index its members."""
        self.clusters.append(cluster)
        for instance_id in cluster.members:
            self._detach(instance_id)
            self.cluster_of[instance_id] = cluster

    def delete_cluster(self, cluster: Cluster) -> None:
        """Remove a cluster and unindex its members."""
        for instance_id in cluster.members:
            if self.cluster_of.get(instance_id) is cluster:
                del self.cluster_of[instance_id]
        self.clusters.remove(cluster)

    def add_instance(self, instance_id: int, cluster: Cluster) -> None:
        """Put an instance in a cluster, leaving its previous one."""
        instance_id = int(instance_id)
        self._detach(instance_id)
        cluster.add_instance(instance_id)
        self.cluster_of[instance_id] = cluster

    move_instance = add_instance

    def _detach(self, instance_id: int) -> None:
        previous = self.cluster_of.pop(instance_id, None)
        if previous is not None:
            previous.remove_instance(instance_id)

    def remove_all(self) -> None:
        """Empty every cluster."""
        for cluster in self.clusters:
            cluster.remove_all()
        self.cluster_of.clear()

    def drop_empty_clusters(self) -> int:
        """Delete clusters without members; returns how many were dropped."""
        empties = [c for c in self.clusters if not c.members]
        for cluster in empties:
            self.delete_cluster(cluster)
        return len(empties)

    # ── Assignment ──────────────────────────────────────────────

    def find_nearest_cluster(self, vector: np.ndarray) -> int:
        """Position of the cluster nearest to a vector (lowest on ties)."""
        dists = distances_to(centroids_of(self.clusters), vector, self.norm)
        return int(np.argmin(dists))

    def nearest_positions(self, instances: InstanceSet, ids: Sequence[int]) -> Optional[np.ndarray]:
        """Nearest cluster position of each id, or None if interrupted.

        Distances are computed by chunks of ``interruption_check_interval``
        instances, checking for interruption between chunks.
        """
        ids = np.asarray(ids, dtype=int)
        centers = centroids_of(self.clusters)
        step = self.config.interruption_check_interval
        result = np.empty(len(ids), dtype=int)
        for start in range(0, len(ids), step):
            if self.monitor.is_interruption_requested():
                return None
            chunk = ids[start:start + step]
            result[start:start + step] = np.argmin(
                distance_matrix(instances.vectors[chunk], centers, self.norm), axis=1
            )
        return result

    def add_instances_to_clusters(self, instances: InstanceSet, ids: Optional[Sequence[int]] = None) -> bool:
        """Reassign complete instances to their nearest cluster.

        Args:
            instances: Instance arena.
            ids: Instances to assign, defaults to every complete instance.

        Returns:
            False if interrupted.
        """
        if ids is None:
            ids = instances.complete_ids()
        ids = [i for i in ids if instances.complete[i]]
        self.remove_all()
        if not self.clusters or not ids:
            return True
        positions = self.nearest_positions(instances, ids)
        if positions is None:
            return False
        for instance_id, position in zip(ids, positions):
            self.add_instance(instance_id, self.clusters[position])
        return True

    def _move_instances(self, instances: InstanceSet, ids: Sequence[int]) -> Optional[int]:
        """Move instances to their nearest cluster; returns the movement count."""
        positions = self.nearest_positions(instances, ids)
        if positions is None:
            return None
        movements = 0
        for instance_id, position in zip(ids, positions):
            target = self.clusters[position]
            if self.cluster_of.get(int(instance_id)) is not target:
                self.add_instance(instance_id, target)
                movements += 1
        return movements

    # ── Global statistics ───────────────────────────────────────

    def compute_global_cluster(self, instances: InstanceSet) -> Cluster:
        """Statistics over every complete instance."""
        cluster = Cluster(instances.n_features, "global")
        for instance_id in instances.complete_ids():
            cluster.add_instance(instance_id)
        cluster.compute_iteration_statistics(instances, self.norm)
        for norm in DistanceNorm:
            cluster.compute_inertia_intra(instances, norm)
        cluster.compute_attribute_inertia(instances, DistanceNorm.L2)
        cluster.compute_attribute_inertia(instances, self.norm)
        if instances.supervised:
            cluster.compute_target_probs(instances, self.target_values or instances.target_catalog())
        self.global_cluster = cluster
        return cluster

    def read_target_values(self, instances: InstanceSet) -> List[str]:
        """Fill the catalog from the instances if it is empty."""
        if not self.target_values and instances.supervised:
            self.target_values = instances.target_catalog()
        return self.target_values

    def distance_sum(self, norm: Optional[DistanceNorm] = None) -> float:
        """Sum of the cluster distance sums."""
        norm = norm or self.norm
        return float(sum(c.distance_sums[norm] for c in self.clusters))

    def mean_distance(self) -> float:
        """Distance sum divided by the total cluster frequency."""
        frequency = sum(c.frequency for c in self.clusters)
        if frequency == 0:
            return 0.0
        return self.distance_sum() / frequency

    def compute_iteration_statistics(self, instances: InstanceSet, keep_centroid: bool = False) -> None:
        for cluster in self.clusters:
            cluster.compute_iteration_statistics(
                instances, self.norm, self.config.centroid_type, keep_centroid=keep_centroid,
            )

    def compute_inertia_intra(self, instances: InstanceSet, norm: Optional[DistanceNorm] = None) -> None:
        for cluster in self.clusters:
            cluster.compute_inertia_intra(instances, norm or self.norm)

    def compute_clusters_centers_distances(self) -> np.ndarray:
        """Symmetric matrix of centroid distances.

        Also stores each cluster's position and the position of its
        nearest cluster.
        """
        k = len(self.clusters)
        matrix = np.zeros((k, k))
        for i, ci in enumerate(self.clusters):
            ci.index = i
            for j in range(i + 1, k):
                matrix[i, j] = matrix[j, i] = distance(ci.centroid, self.clusters[j].centroid, self.norm)
        for i, ci in enumerate(self.clusters):
            if k > 1:
                row = matrix[i].copy()
                row[i] = np.inf
                ci.nearest_cluster_index = int(np.argmin(row))
            else:
                ci.nearest_cluster_index = None
        self.centers_distances = matrix
        return matrix

    def relabel(self) -> None:
        """Label clusters "1".."k" in order."""
        for i, cluster in enumerate(self.clusters):
            cluster.label = str(i + 1)

    # ── Replicate ───────────────────────────────────────────────

    def compute_replicate(self, instances: InstanceSet) -> bool:
        """Initialize, iterate and finalize one clustering attempt.

        Args:
            instances: Instance arena.

        Returns:
            True on success. On failure a diagnostic has been emitted.
        """
        from .initializer import ClusteringInitializer

        if instances.n_instances == 0:
            self.diagnostics.add_error("No instances available for clustering.")
            return False

        ids = instances.shuffled_ids(self.rng)

        if self.global_cluster is None:
            self.compute_global_cluster(instances)
        if self.global_cluster.frequency == 0:
            self.diagnostics.add_warning(
                "All database instances have at least one missing value. "
                "Try to preprocess the values."
            )
            return False

        self.read_target_values(instances)

        if not ClusteringInitializer(self, instances, ids).initialize():
            return False

        if not self.do_clustering_iterations(instances, ids):
            return False

        recompute = self.config.max_iterations != -1
        if recompute and not self.add_instances_to_clusters(instances, ids):
            self.diagnostics.add_warning("Clustering interrupted while reassigning instances.")
            return False

        self.finalize_replicate(instances, recompute)

        if recompute:
            dropped = self.drop_empty_clusters()
            if dropped:
                self.diagnostics.add_warning(f"{dropped} empty cluster(s) have been dropped.")
                self.compute_clusters_centers_distances()

        self.compute_quality(instances)
        return True

    def do_clustering_iterations(self, instances: InstanceSet, ids: Sequence[int]) -> bool:
        """Lloyd iterations until convergence.

        Stops when no instance moves, at the iteration cap, or after
        ``epsilon_max_iterations`` iterations without an epsilon
        improvement of the distance sum. The best centroids seen are
        restored on stop.

        Returns:
            False if interrupted.
        """
        cfg = self.config
        max_iter = cfg.max_iterations
        ids = [int(i) for i in ids if instances.complete[i]]
        n_total = self.global_cluster.frequency if self.global_cluster is not None else len(ids)
        n_total = max(n_total, 1)

        new_sum = self.distance_sum()
        min_sum = new_sum
        epsilon_count = 0
        best_centroids: Optional[List[np.ndarray]] = None
        iterations = 0

        while True:
            if self.monitor.is_interruption_requested():
                self.diagnostics.add_warning("Clustering iterations interrupted.")
                return False

            movements = 0
            previous_sum = new_sum
            if max_iter != -1:
                self.compute_clusters_centers_distances()
                previous_sum = self.distance_sum()
                moved = self._move_instances(instances, ids)
                if moved is None:
                    self.diagnostics.add_warning("Clustering iterations interrupted.")
                    return False
                movements = moved
                iterations += 1
                self.compute_iteration_statistics(instances)
                new_sum = self.distance_sum()

            if max_iter == -1:
                stop = True
            else:
                stop = movements == 0 or (max_iter != 0 and iterations >= max_iter)
                if movements > 0:
                    if abs(previous_sum - new_sum) / n_total >= cfg.epsilon and new_sum < min_sum:
                        epsilon_count = 0
                        min_sum = new_sum
                        best_centroids = [c.centroid.copy() for c in self.clusters]
                    elif cfg.epsilon > 0:
                        epsilon_count += 1
                        if epsilon_count >= cfg.epsilon_max_iterations:
                            stop = True

            logger.debug(
                "Iteration %d: %d movements, distance sum %.6g", iterations, movements, new_sum,
            )

            if stop and best_centroids is not None and len(best_centroids) == len(self.clusters):
                if not self._restore_centroids(instances, ids, best_centroids):
                    return False

            self._manage_empty_clusters(instances, ids, continuing=not stop)
            if stop:
                break

        self.iterations_done = iterations
        return True

    def _restore_centroids(self, instances: InstanceSet, ids: Sequence[int], centroids: List[np.ndarray]) -> bool:
        for cluster, centroid in zip(self.clusters, centroids):
            cluster.centroid = centroid.copy()
        if not self.add_instances_to_clusters(instances, ids):
            self.diagnostics.add_warning("Clustering iterations interrupted.")
            return False
        self.compute_iteration_statistics(instances, keep_centroid=True)
        return True

    def _manage_empty_clusters(self, instances: InstanceSet, ids: Sequence[int], continuing: bool) -> None:
        """Refill empty clusters while iterating, drop them when stopping.

        An empty cluster receives the instance farthest from its own
        centroid, taken from clusters that keep at least one member.
        """
        empties = [c for c in self.clusters if not c.members]
        if not empties:
            return

        if not continuing:
            for cluster in empties:
                self.delete_cluster(cluster)
            logger.debug("Dropped %d empty cluster(s)", len(empties))
            self.compute_clusters_centers_distances()
            return

        ids = np.asarray(ids, dtype=int)
        dists = np.array([
            distance(instances.vector(i), self.cluster_of[int(i)].centroid, self.norm)
            if int(i) in self.cluster_of else 0.0
            for i in ids
        ])
        order = np.argsort(-dists, kind="stable")
        position = 0
        for cluster in empties:
            while position < len(order):
                instance_id = int(ids[order[position]])
                position += 1
                donor = self.cluster_of.get(instance_id)
                if donor is not None and len(donor.members) > 1:
                    break
            else:
                break
            self.move_instance(instance_id, cluster)
            cluster.centroid = instances.vector(instance_id).copy()
            cluster.compute_iteration_statistics(instances, self.norm, keep_centroid=True)
            donor.compute_iteration_statistics(instances, self.norm, self.config.centroid_type)
            logger.debug("Empty cluster %s refilled with instance %d", cluster.label, instance_id)

    def finalize_replicate(self, instances: InstanceSet, recompute: bool) -> None:
        """Final statistics of every cluster.

        Args:
            instances: Instance arena.
            recompute: Recompute centroids from members, otherwise keep
                the current centroids and only refresh distance sums.
        """
        g = self.global_cluster
        for cluster in self.clusters:
            cluster.compute_iteration_statistics(
                instances, self.norm, self.config.centroid_type, keep_centroid=not recompute,
            )
            cluster.find_nearest_instance(instances, self.norm)
            for norm in DistanceNorm:
                cluster.compute_inertia_intra(instances, norm)
                if g is not None:
                    cluster.compute_inertia_inter(g.centroid, g.frequency, norm)
            cluster.compute_attribute_inertia(instances, self.norm)
        if g is not None:
            g.compute_distance_sums(instances)

    # ── Quality ─────────────────────────────────────────────────

    def quality_evaluator(self, use_report: bool = True) -> ClusteringQuality:
        return ClusteringQuality(
            self.clusters, self.global_cluster, self.target_values,
            self.norm, self.diagnostics, self.quality if use_report else None,
        )

    def compute_confusion_matrix(self, instances: InstanceSet, catalog: Optional[Sequence[str]] = None) -> np.ndarray:
        """Predicted class (cluster majority) vs actual class counts."""
        catalog = list(catalog if catalog is not None else self.target_values)
        positions = {value: j for j, value in enumerate(catalog)}
        matrix = np.zeros((len(catalog), len(catalog)), dtype=int)
        if instances.targets is None:
            return matrix
        for cluster in self.clusters:
            if not cluster.members or cluster.target_probs.size == 0:
                continue
            predicted = cluster.majority_index()
            for instance_id in cluster.members:
                actual = positions.get(instances.targets[instance_id])
                if actual is not None:
                    matrix[predicted, actual] += 1
        return matrix

    def compute_quality(self, instances: InstanceSet, use_evaluation_centroids: bool = False) -> QualityReport:
        """Compute the metrics relevant to the configuration.

        Supervised runs always get ARI by clusters and predictive
        clustering; the other supervised metrics are computed with
        ``detailed_statistics`` or when the replicate criterion needs
        them. Davies-Bouldin is always computed.
        """
        cfg = self.config
        supervised = instances.supervised and bool(self.target_values)
        quality = self.quality_evaluator()

        if supervised:
            if not use_evaluation_centroids:
                for cluster in self.clusters:
                    cluster.compute_target_probs(instances, self.target_values)
            self.confusion_matrix = self.compute_confusion_matrix(instances)
            quality.compute_ari_by_clusters()
            for cluster in self.clusters:
                cluster.compute_compactness(instances, self.target_values, self.norm)
            quality.compute_predictive_clustering(use_evaluation_centroids)

            if cfg.detailed_statistics or cfg.resolved_criterion(True) in _ON_DEMAND_CRITERIA:
                quality.compute_eva()
                quality.compute_leva()
                quality.compute_nmi_by_clusters()
                quality.compute_nmi_by_classes(self.confusion_matrix)
                quality.compute_ari_by_classes(self.confusion_matrix)
                quality.compute_variation_of_information()

        quality.compute_davies_bouldin(use_evaluation_centroids)
        quality.compute_attribute_davies_bouldin()
        return self.quality

    def check_huygens(self, instances: InstanceSet) -> bool:
        """Huygens decomposition check (L2 norm only)."""
        if self.norm != DistanceNorm.L2:
            raise ValueError("Huygens theorem check requires the L2 norm")
        return self.quality_evaluator(use_report=False).check_huygens(instances)

    # ── Post-optimization ───────────────────────────────────────

    def post_optimize(self, instances: InstanceSet) -> bool:
        """Remove centers while it improves EVA (supervised only).

        Each round removes the cluster whose removal, moving its
        instances to their next nearest remaining cluster, gives the
        best EVA. The best configuration over all rounds is kept.

        Returns:
            False if interrupted.
        """
        if not instances.supervised or not self.target_values or len(self.clusters) < 2:
            return True

        self.monitor.display_label("Post-optimization")
        positions = {value: j for j, value in enumerate(self.target_values)}
        ids = instances.complete_ids()
        classes = np.array([positions.get(instances.targets[i], -1) for i in ids])

        # clusters ordered by distance, for every instance
        ranking = np.argsort(
            distance_matrix(instances.vectors[ids], centroids_of(self.clusters), self.norm),
            axis=1, kind="stable",
        )
        assigned = ranking[:, 0].copy()
        k = len(self.clusters)
        n_classes = len(self.target_values)

        def table_for(assignment: np.ndarray) -> np.ndarray:
            table = np.zeros((k, n_classes), dtype=int)
            known = classes >= 0
            np.add.at(table, (assignment[known], classes[known]), 1)
            return table

        alive = list(range(k))
        best_eva = normalized_eva(table_for(assigned))
        best_alive = list(alive)
        min_k = max(1, self.config.min_k_post_optimization)

        while len(alive) > min_k:
            if self.monitor.is_interruption_requested():
                self.diagnostics.add_warning("Post-optimization interrupted.")
                return False
            round_best = None
            for candidate in alive:
                remaining = [c for c in alive if c != candidate]
                trial = self._reassign_without(ranking, assigned, candidate, remaining)
                eva = normalized_eva(table_for(trial)[remaining])
                if round_best is None or eva > round_best[0]:
                    round_best = (eva, candidate, trial)
            eva, removed, assigned = round_best
            alive.remove(removed)
            logger.debug("Post-optimization: removing cluster %d gives EVA %.6f", removed, eva)
            if eva >= best_eva:
                best_eva = eva
                best_alive = list(alive)

        removed_clusters = [c for i, c in enumerate(self.clusters) if i not in best_alive]
        if removed_clusters:
            self.diagnostics.add_message(
                f"Post-optimization removed {len(removed_clusters)} cluster(s), EVA = {best_eva:.6f}"
            )
        for cluster in removed_clusters:
            cluster.frequency = 0
            self.delete_cluster(cluster)

        if not self.add_instances_to_clusters(instances):
            self.diagnostics.add_warning("Post-optimization interrupted.")
            return False
        self.finalize_replicate(instances, recompute=True)
        self.drop_empty_clusters()
        self.compute_clusters_centers_distances()
        self.compute_quality(instances)
        self.quality_evaluator().compute_eva()
        return True

    @staticmethod
    def _reassign_without(
        ranking: np.ndarray,
        assigned: np.ndarray,
        candidate: int,
        remaining: Sequence[int],
    ) -> np.ndarray:
        trial = assigned.copy()
        allowed = np.zeros(ranking.shape[1], dtype=bool)
        allowed[list(remaining)] = True
        for row in np.flatnonzero(assigned == candidate):
            for position in ranking[row]:
                if allowed[position]:
                    trial[row] = position
                    break
        return trial

    # ── Evaluation ──────────────────────────────────────────────

    def evaluate(self, instances: InstanceSet) -> Optional["Clustering"]:
        """Assign another instance set to the trained clusters.

        The returned clustering keeps the modeling centroids, carries
        evaluation centroids and statistics for the new instances, and
        appends unseen target values to its catalog.

        Returns:
            Evaluated clustering, or None if interrupted.
        """
        evaluated = self.clone()
        evaluated.remove_all()
        training_catalog = list(self.target_values)

        if not evaluated.add_instances_to_clusters(instances):
            self.diagnostics.add_warning("Evaluation interrupted.")
            return None

        evaluated.compute_global_cluster(instances)
        for cluster in evaluated.clusters:
            cluster.frequency = len(cluster.members)
            cluster.evaluation_centroid = (
                cluster.compute_mean(instances) if cluster.members else cluster.centroid.copy()
            )
            cluster.compute_distance_sums(instances)
            cluster.find_nearest_instance(instances, self.norm)
            for norm in DistanceNorm:
                cluster.compute_inertia_intra(instances, norm)
            cluster.compute_attribute_inertia(instances, self.norm)
            if instances.supervised:
                cluster.compute_target_probs(instances, training_catalog)

        for value in instances.target_catalog():
            if value not in evaluated.target_values:
                evaluated.target_values.append(value)

        evaluated.quality = QualityReport()
        evaluated.compute_quality(instances, use_evaluation_centroids=True)
        return evaluated

    # ── Copy / export ───────────────────────────────────────────

    def clone(self) -> "Clustering":
        """Deep copy sharing configuration, random generator and sinks."""
        other = Clustering(self.config, self.rng, self.monitor, self.diagnostics)
        for cluster in self.clusters:
            other.add_cluster(cluster.clone())
        other.global_cluster = None if self.global_cluster is None else self.global_cluster.clone()
        other.target_values = list(self.target_values)
        other.centers_distances = self.centers_distances.copy()
        other.quality = self.quality.copy()
        other.confusion_matrix = None if self.confusion_matrix is None else self.confusion_matrix.copy()
        other.iterations_done = self.iterations_done
        return other

    def centroids(self) -> np.ndarray:
        """Modeling centroids (k x d)."""
        if not self.clusters:
            return np.zeros((0, 0))
        return centroids_of(self.clusters)

    def labels_for(self, ids: Sequence[int]) -> np.ndarray:
        """Cluster position of each id, -1 when unassigned."""
        positions = {c.uid: i for i, c in enumerate(self.clusters)}
        return np.array([
            positions[self.cluster_of[int(i)].uid] if int(i) in self.cluster_of else -1
            for i in ids
        ])

    def summary(self) -> Dict[str, object]:
        """Plain-data view of the trained clustering."""
        return {
            "n_clusters": len(self.clusters),
            "labels": [c.label for c in self.clusters],
            "frequencies": [c.frequency for c in self.clusters],
            "centroids": self.centroids().tolist(),
            "target_values": list(self.target_values),
            "target_probs": [c.target_probs.tolist() for c in self.clusters],
            "mean_distance": self.mean_distance(),
            "quality": self.quality.to_dict(),
        }
