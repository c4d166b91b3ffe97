"""Cluster centers initialization.

Ten methods build the initial clusters of a Clustering:

- random / sample: distinct instances drawn in shuffled order
- k-means++ / k-means++R: distance-weighted roulette (R: one seed per class)
- min-max (random or deterministic first center): farthest-point traversal
- variance partitioning: split on the highest-variance attribute
- bisecting: repeated nested 2-means on the highest-inertia cluster
- class decomposition: nested k-means inside each class
- Rocchio then split: split on distance to the most distant member

A candidate center is a duplicate when its distance to an accepted
center is exactly 0 under the active norm. Duplicates are never used to
pad the result: too few distinct centers is a failure.
"""

import logging
from collections import Counter
from dataclasses import replace
from typing import List, Optional, Sequence

import numpy as np

from ..config import (
    InitMethod,
    ReplicateCriterion,
    PostOptimization,
    CentroidType,
    DistanceNorm,
    SUPERVISED_INIT_METHODS,
)
from .cluster import Cluster, mean_cluster
from .distance import distances_to
from .instances import InstanceSet


logger = logging.getLogger(__name__)

_HINT = "Hint : decrease K value, or try changing preprocessing parameters."
_REASONS = (
    "Possible reasons : too many instances with missing values, "
    "or maybe too many instances have the same values."
)


class ClusteringInitializer:
    """Builds the initial clusters of a Clustering.

    Attributes:
        clustering: Target clustering (its clusters are replaced).
        instances: Instance arena.
        ids: Instance ids in shuffled order.
        k: Requested number of clusters.
    """

    def __init__(self, clustering, instances: InstanceSet, ids: Sequence[int]):
        self.clustering = clustering
        self.instances = instances
        self.ids = np.asarray(ids, dtype=int)
        self.config = clustering.config
        self.rng = clustering.rng
        self.monitor = clustering.monitor
        self.diagnostics = clustering.diagnostics
        self.k = self.config.k
        self.norm = self.config.norm
        self._complete_ids = np.array([i for i in self.ids if instances.complete[i]], dtype=int)

    def initialize(self) -> bool:
        """Run the configured method and assign every instance.

        Returns:
            True when 1..k non-empty clusters have been created.
        """
        supervised = self.instances.supervised
        method = self.config.resolved_init_method(supervised)

        if len(self._complete_ids) < self.k:
            self.diagnostics.add_warning("Clusters initialization failed : too many missing values")
            return False
        if method in SUPERVISED_INIT_METHODS and not supervised:
            self.diagnostics.add_error(
                f"Initialization method '{method.value}' requires a target attribute."
            )
            return False
        if method in (InitMethod.KMEANS_PLUS_PLUS_R, InitMethod.ROCCHIO_THEN_SPLIT, InitMethod.BISECTING) and self.k < 2:
            self.diagnostics.add_error(f"Initialization method '{method.value}' requires K > 1.")
            return False

        methods = {
            InitMethod.RANDOM: self.initialize_random,
            InitMethod.SAMPLE: self.initialize_sample,
            InitMethod.KMEANS_PLUS_PLUS: self.initialize_kmeans_plus_plus,
            InitMethod.KMEANS_PLUS_PLUS_R: self.initialize_kmeans_plus_plus_r,
            InitMethod.ROCCHIO_THEN_SPLIT: self.initialize_rocchio_then_split,
            InitMethod.BISECTING: self.initialize_bisecting,
            InitMethod.MIN_MAX_RANDOM: lambda: self.initialize_min_max(deterministic=False),
            InitMethod.MIN_MAX_DETERMINISTIC: lambda: self.initialize_min_max(deterministic=True),
            InitMethod.VARIANCE_PARTITIONING: self.initialize_variance_partitioning,
            InitMethod.CLASS_DECOMPOSITION: self.initialize_class_decomposition,
        }

        self.clustering.remove_all()
        self.clustering.clusters = []
        self.monitor.begin_task(f"Clusters initialization ({method.value})")
        ok = methods[method]()
        self.monitor.end_task()
        if not ok:
            return False
        return self._finish(method)

    # ── Shared helpers ──────────────────────────────────────────

    def _finish(self, method: InitMethod) -> bool:
        clustering = self.clustering
        for cluster in clustering.clusters:
            cluster.initial_centroid = cluster.centroid.copy()

        if not clustering.add_instances_to_clusters(self.instances, self.ids):
            self.diagnostics.add_warning("Clusters initialization interrupted.")
            return False

        dropped = clustering.drop_empty_clusters()
        if dropped:
            self.diagnostics.add_warning(
                "Clusters initialization failed after reassigning instances to created "
                f"clusters : {dropped} empty cluster(s) have been dropped."
            )
            self.diagnostics.add_message(_HINT)
            return False

        clustering.compute_iteration_statistics(
            self.instances, keep_centroid=self.config.max_iterations == -1,
        )
        clustering.compute_inertia_intra(self.instances)
        clustering.compute_clusters_centers_distances()
        if method not in (InitMethod.BISECTING, InitMethod.CLASS_DECOMPOSITION):
            clustering.relabel()
        return True

    def _interrupted(self, counter: int) -> bool:
        """Check the interruption flag every few records."""
        if counter % self.config.interruption_check_interval != 0:
            return False
        if self.monitor.is_interruption_requested():
            self.diagnostics.add_warning("Clusters initialization interrupted.")
            return True
        return False

    def _add_center(self, vector: np.ndarray, label: str = "") -> Cluster:
        cluster = Cluster(self.instances.n_features, label)
        cluster.centroid = np.array(vector, dtype=float)
        self.clustering.add_cluster(cluster)
        self.monitor.display_progression(100 * len(self.clustering.clusters) / self.k)
        return cluster

    def _adopt(self, clusters: List[Cluster]) -> None:
        for cluster in clusters:
            self.clustering.add_cluster(cluster)

    def _report_insufficient(self, found: int, what: str) -> bool:
        """Warn and fail when fewer than k centers were found."""
        if found >= self.k:
            return True
        self.diagnostics.add_warning(
            f"Unable to initialize {what} with the requested value for K ({self.k}), "
            "before instances re-assigment."
        )
        self.diagnostics.add_message(f"Found only {found} distinct centers.")
        self.diagnostics.add_message(_REASONS)
        self.diagnostics.add_message(_HINT)
        return False

    def _random_centers(self, ids: Sequence[int]) -> Optional[List[int]]:
        """Distinct complete instances taken in order, up to k."""
        vectors = self.instances.vectors
        chosen: List[int] = []
        for counter, instance_id in enumerate(ids):
            if self._interrupted(counter):
                return None
            if not self.instances.complete[instance_id]:
                continue
            if chosen and np.any(distances_to(vectors[chosen], vectors[instance_id], self.norm) == 0):
                continue
            chosen.append(int(instance_id))
            if len(chosen) == self.k:
                break
        return chosen

    def _target_modality_clusters(self, ids: Sequence[int], norm: Optional[DistanceNorm] = None) -> List[Cluster]:
        """One mean cluster per target value.

        With more values than k, only the k most frequent are kept, in
        decreasing frequency order; otherwise catalog order is used.
        """
        targets = self.instances.targets
        catalog = self.clustering.target_values or self.instances.target_catalog()
        counts = Counter(targets[i] for i in ids)
        if len(catalog) > self.k:
            values = sorted(catalog, key=lambda v: -counts.get(v, 0))[:self.k]
        else:
            values = list(catalog)

        clusters = []
        for value in values:
            members = [i for i in ids if targets[i] == value]
            if not members:
                continue
            clusters.append(mean_cluster(self.instances, members, value, norm or self.norm))
        return clusters

    def _nested_config(self, k: int, method: InitMethod):
        cfg = self.config
        return replace(
            cfg,
            k=k,
            init_method=method,
            criterion=ReplicateCriterion.DISTANCE,
            replicates=cfg.bisecting_replicates,
            max_iterations=cfg.bisecting_max_iterations,
            centroid_type=CentroidType.VIRTUAL,
            post_optimization=PostOptimization.NONE,
            mini_batch=False,
            detailed_statistics=False,
            workers=1,
        )

    def _split(self, parent: Cluster, k: int, method: InitMethod, supervised: bool):
        """Nested k-means over a cluster's members.

        Returns:
            Child clusters with members in this arena, or None on failure.
        """
        from .replicate import compute_bisecting_replicates

        members = parent.member_ids()
        subset = self.instances.subset(members, keep_targets=supervised)
        result = compute_bisecting_replicates(
            subset,
            self._nested_config(k, method),
            rng=self.rng,
            monitor=self.monitor,
            diagnostics=self.diagnostics,
        )
        if result is None:
            return None

        children = []
        for sub_cluster in result.clusters:
            child = Cluster(self.instances.n_features)
            for position in sub_cluster.members:
                child.add_instance(members[position])
            child.compute_iteration_statistics(self.instances, self.norm)
            child.compute_inertia_intra(self.instances, self.norm)
            children.append(child)
        return children

    # ── Random / sample ─────────────────────────────────────────

    def initialize_random(self) -> bool:
        """Distinct complete instances, in shuffled order."""
        if self.config.workers > 1:
            return self.initialize_distributed()

        chosen = self._random_centers(self.ids)
        if chosen is None:
            return False
        for instance_id in chosen:
            self._add_center(self.instances.vector(instance_id))
        return self._report_insufficient(len(chosen), "clustering")

    def initialize_distributed(self) -> bool:
        """Random initialization spread over worker threads."""
        from ..distributed.sampler import DistributedCenterSampler

        sampler = DistributedCenterSampler(
            self.instances,
            self.k,
            norm=self.norm,
            n_workers=self.config.workers,
            monitor=self.monitor,
            check_interval=self.config.interruption_check_interval,
        )
        chosen = sampler.sample(self.ids)
        if sampler.interrupted:
            self.diagnostics.add_warning("Clusters initialization interrupted.")
            return False
        for instance_id in chosen:
            self._add_center(self.instances.vector(instance_id))
        return self._report_insufficient(len(chosen), "clustering")

    def initialize_sample(self) -> bool:
        """Random centers refined by k-means on a sample of the instances."""
        x = len(self.ids)
        n_sample = max(self.k, int(x * (1.0 / (2.0 * x)) ** 0.23))
        sample_ids = self.ids[:n_sample]
        logger.debug("Sample initialization on %d instances", len(sample_ids))

        chosen = self._random_centers(sample_ids)
        if chosen is None:
            return False
        for instance_id in chosen:
            self._add_center(self.instances.vector(instance_id))
        if not self._report_insufficient(len(chosen), "clustering"):
            return False

        clustering = self.clustering
        if not clustering.add_instances_to_clusters(self.instances, sample_ids):
            self.diagnostics.add_warning("Clusters initialization interrupted.")
            return False
        clustering.compute_iteration_statistics(self.instances)
        return clustering.do_clustering_iterations(self.instances, sample_ids)

    # ── Min-max ─────────────────────────────────────────────────

    def initialize_min_max(self, deterministic: bool) -> bool:
        """Farthest-point traversal.

        The first center is the global mean (deterministic) or a random
        complete instance; each next center is the instance farthest from
        its nearest center.
        """
        ids = self._complete_ids
        vectors = self.instances.vectors[ids]
        if deterministic:
            first = self.clustering.global_cluster.centroid.copy()
        else:
            first = vectors[self.rng.integers(len(ids))]
        self._add_center(first)

        nearest = distances_to(vectors, first, self.norm)
        found = 1
        while found < self.k:
            if self._interrupted(found):
                return False
            index = int(np.argmax(nearest))
            if nearest[index] <= 0:
                break
            self._add_center(vectors[index])
            nearest = np.minimum(nearest, distances_to(vectors, vectors[index], self.norm))
            found += 1
        return self._report_insufficient(found, "min-max clustering")

    # ── Variance partitioning ───────────────────────────────────

    def initialize_variance_partitioning(self) -> bool:
        """Split the highest-inertia cluster on its highest-variance attribute."""
        vectors = self.instances.vectors
        clusters = [mean_cluster(self.instances, self._complete_ids, "1", DistanceNorm.L2)]
        clusters[0].compute_inertia_intra(self.instances, DistanceNorm.L2)

        while len(clusters) < self.k:
            if self._interrupted(len(clusters)):
                return False

            position = 0
            for i, cluster in enumerate(clusters):
                if cluster.inertia[DistanceNorm.L2] > clusters[position].inertia[DistanceNorm.L2]:
                    position = i
            parent = clusters[position]

            attribute = int(np.argmax(parent.compute_attribute_inertia(self.instances, DistanceNorm.L2)))
            members = parent.member_ids()
            threshold = parent.centroid[attribute]
            upper_mask = vectors[members, attribute] > threshold
            upper, lower = members[upper_mask], members[~upper_mask]
            if len(upper) == 0 or len(lower) == 0:
                break

            clusters[position] = mean_cluster(self.instances, lower, parent.label, DistanceNorm.L2)
            clusters.append(mean_cluster(self.instances, upper, str(len(clusters) + 1), DistanceNorm.L2))
            for cluster in (clusters[position], clusters[-1]):
                cluster.compute_inertia_intra(self.instances, DistanceNorm.L2)
            self.monitor.display_progression(100 * len(clusters) / self.k)

        self._adopt(clusters)
        return self._report_insufficient(len(clusters), "variance partitioning clusters")

    # ── K-means++ ───────────────────────────────────────────────

    def initialize_kmeans_plus_plus(self, seeds: Optional[List[np.ndarray]] = None, what: str = "KMean++ clustering") -> bool:
        """Distance-weighted roulette draws.

        Args:
            seeds: Centers already in place (k-means++R), otherwise the
                first center is a random complete instance.
            what: Name used in diagnostics.
        """
        ids = self._complete_ids
        vectors = self.instances.vectors[ids]
        n = len(ids)

        if seeds:
            centers = list(seeds)
        else:
            centers = [vectors[self.rng.integers(n)]]
            self._add_center(centers[0])

        nearest = np.min(np.vstack([distances_to(vectors, c, self.norm) for c in centers]), axis=0)
        while len(centers) < self.k:
            if self._interrupted(len(centers)):
                return False
            total = nearest.sum()
            if total == 0:
                break
            cumulative = np.cumsum(nearest / total)
            draw = self.rng.integers(n) / n
            index = min(int(np.searchsorted(cumulative, draw, side="right")), n - 1)
            # duplicates have a zero weight: move on to the next candidate
            while index < n and nearest[index] == 0:
                index += 1
            if index >= n:
                break
            centers.append(vectors[index])
            self._add_center(vectors[index])
            nearest = np.minimum(nearest, distances_to(vectors, vectors[index], self.norm))

        return self._report_insufficient(len(centers), what)

    def initialize_kmeans_plus_plus_r(self) -> bool:
        """One seed per target value, then k-means++ draws."""
        modality = self._target_modality_clusters(self._complete_ids)
        seeds = []
        for cluster in modality:
            seeds.append(cluster.centroid)
            self._add_center(cluster.centroid, cluster.label)
        return self.initialize_kmeans_plus_plus(seeds=seeds, what="KMean++R clustering")

    # ── Bisecting / class decomposition ─────────────────────────

    def initialize_bisecting(self) -> bool:
        """Repeated 2-means split of the highest-inertia cluster.

        Stops early, keeping fewer than k clusters, when a split does not
        produce two clusters.
        """
        supervised = self.instances.supervised
        if supervised:
            clusters = self._target_modality_clusters(self._complete_ids)
        else:
            clusters = [mean_cluster(self.instances, self._complete_ids, "global", self.norm)]

        while len(clusters) < self.k:
            if self.monitor.is_interruption_requested():
                self.diagnostics.add_warning("Bisecting initialization interrupted.")
                return False

            position = 0
            for i, cluster in enumerate(clusters):
                if cluster.inertia[self.norm] >= clusters[position].inertia[self.norm]:
                    position = i
            parent = clusters[position]

            method = InitMethod.KMEANS_PLUS_PLUS
            if supervised and len({self.instances.targets[i] for i in parent.members}) > 1:
                method = InitMethod.KMEANS_PLUS_PLUS_R

            children = self._split(parent, 2, method, supervised=method == InitMethod.KMEANS_PLUS_PLUS_R)
            if children is None or len(children) != 2:
                self.diagnostics.add_warning(
                    f"Bisecting initialization : unable to split cluster {position}, "
                    "won't try to split next clusters."
                )
                break

            children[0].label = f"{parent.label}_1"
            children[1].label = f"{parent.label}_2"
            clusters[position] = children[0]
            clusters.append(children[1])
            self.monitor.display_progression(100 * len(clusters) / self.k)

        self._adopt(clusters)
        return True

    def initialize_class_decomposition(self) -> bool:
        """Nested k-means inside each target value cluster."""
        modality = self._target_modality_clusters(self._complete_ids)
        per_class = self.k // len(modality) if modality else 0
        if per_class <= 1:
            self._adopt(modality)
            return True

        clusters = []
        for n_done, parent in enumerate(modality):
            if self.monitor.is_interruption_requested():
                self.diagnostics.add_warning("Class decomposition initialization interrupted.")
                return False
            children = self._split(parent, per_class, InitMethod.KMEANS_PLUS_PLUS, supervised=False)
            if not children:
                self.diagnostics.add_warning(
                    f"Class decomposition : unable to split class cluster {parent.label}."
                )
                clusters.append(parent)
                continue
            for i, child in enumerate(children):
                child.label = f"{parent.label}_{i + 1}"
                clusters.append(child)
            self.monitor.display_progression(100 * (n_done + 1) / len(modality))

        self._adopt(clusters)
        return True

    # ── Rocchio ─────────────────────────────────────────────────

    def initialize_rocchio_then_split(self) -> bool:
        """Split on the distance to the member farthest from the centroid.

        Members farther from that member than it is from the centroid go
        to one side, the others to the other side. An empty side stops
        the splits.
        """
        vectors = self.instances.vectors
        clusters = self._target_modality_clusters(self._complete_ids)

        while len(clusters) < self.k:
            if self._interrupted(len(clusters)):
                return False
            for cluster in clusters:
                cluster.compute_iteration_statistics(self.instances, self.norm)
                cluster.compute_inertia_intra(self.instances, self.norm)

            position = 0
            for i, cluster in enumerate(clusters):
                if cluster.inertia[self.norm] >= clusters[position].inertia[self.norm]:
                    position = i
            parent = clusters[position]

            members = parent.member_ids()
            to_centroid = distances_to(vectors[members], parent.centroid, self.norm)
            furthest = int(np.argmax(to_centroid))
            distance_max = to_centroid[furthest]
            to_furthest = distances_to(vectors[members], vectors[members[furthest]], self.norm)
            sup_mask = to_furthest > distance_max
            sup, inf = members[sup_mask], members[~sup_mask]

            if len(sup) == 0 or len(inf) == 0:
                remaining = inf if len(inf) else sup
                clusters[position] = mean_cluster(self.instances, remaining, parent.label, self.norm)
                break

            clusters[position] = mean_cluster(self.instances, inf, parent.label, self.norm)
            clusters.append(mean_cluster(self.instances, sup, parent.label, self.norm))
            self.monitor.display_progression(100 * len(clusters) / self.k)

        self._adopt(clusters)
        return True
