"""Cluster: one group of instances and its statistics."""

import itertools
from typing import Dict, List, Optional, Sequence, Set

import numpy as np

from ..config import DistanceNorm, CentroidType
from .distance import distances_to, attribute_distances, similarity, distance
from .instances import InstanceSet


_uid_counter = itertools.count()


class Cluster:
    """A cluster of instances referenced by id.

    ``centroid`` is the modeling centroid, computed during training.
    ``evaluation_centroid`` is recomputed when the trained clustering is
    evaluated on another instance set.

    Attributes:
        uid: Identifier, stable for the life of the object.
        label: Display label ("3", "3_1", "global"...). Never parsed.
        members: Ids of the member instances.
        frequency: Member count at the last statistics computation.
        centroid: Modeling centroid (d,).
        initial_centroid: Centroid produced by the initialization.
        inertia: Mean member-to-centroid distance, by norm.
        inertia_inter: Frequency-weighted centroid-to-global distance, by norm.
        attribute_inertia: Per-feature intra-inertia, by norm.
        distance_sums: Sum of member-to-centroid distances, by norm.
        target_probs: Target value probabilities, indexed like the catalog.
        nearest_instance: Member id closest to the centroid.
        index: Position of the cluster in its clustering.
        nearest_cluster_index: Position of the nearest other cluster.
        compactness: Mean similarity of members to the centroid.
    """

    def __init__(self, n_features: int, label: str = ""):
        self.uid = next(_uid_counter)
        self.label = label
        self.members: Set[int] = set()
        self.frequency = 0
        self.centroid = np.zeros(n_features)
        self.evaluation_centroid: Optional[np.ndarray] = None
        self.initial_centroid: Optional[np.ndarray] = None
        self.inertia: Dict[DistanceNorm, float] = {n: 0.0 for n in DistanceNorm}
        self.inertia_inter: Dict[DistanceNorm, float] = {n: 0.0 for n in DistanceNorm}
        self.attribute_inertia: Dict[DistanceNorm, np.ndarray] = {}
        self.distance_sums: Dict[DistanceNorm, float] = {n: 0.0 for n in DistanceNorm}
        self.target_probs = np.zeros(0)
        self.nearest_instance: Optional[int] = None
        self.index = 0
        self.nearest_cluster_index: Optional[int] = None
        self.compactness = 0.0

    def __repr__(self) -> str:
        return f"Cluster(label={self.label!r}, frequency={self.frequency}, members={len(self.members)})"

    @property
    def n_features(self) -> int:
        return len(self.centroid)

    @property
    def count(self) -> int:
        """Current number of members."""
        return len(self.members)

    # ── Membership ──────────────────────────────────────────────

    def add_instance(self, instance_id: int) -> None:
        self.members.add(int(instance_id))

    def remove_instance(self, instance_id: int) -> None:
        self.members.discard(int(instance_id))

    def remove_all(self) -> None:
        self.members.clear()

    def member_ids(self) -> np.ndarray:
        """Member ids in increasing order."""
        return np.fromiter(sorted(self.members), dtype=int, count=len(self.members))

    # ── Statistics ──────────────────────────────────────────────

    def compute_mean(self, instances: InstanceSet) -> np.ndarray:
        """Mean vector of the members (zeros when empty)."""
        if not self.members:
            return np.zeros(self.n_features)
        return instances.vectors[self.member_ids()].mean(axis=0)

    def compute_iteration_statistics(
        self,
        instances: InstanceSet,
        norm: DistanceNorm = DistanceNorm.L2,
        centroid_type: CentroidType = CentroidType.VIRTUAL,
        keep_centroid: bool = False,
    ) -> None:
        """Update frequency, centroid and distance sums from members.

        Args:
            instances: Instance arena.
            norm: Active norm (used to pick a real-instance centroid).
            centroid_type: Mean centroid or nearest real member.
            keep_centroid: Leave the centroid untouched.
        """
        self.frequency = len(self.members)
        if self.frequency == 0:
            self.distance_sums = {n: 0.0 for n in DistanceNorm}
            return

        if not keep_centroid:
            self.centroid = self.compute_mean(instances)
            if centroid_type == CentroidType.REAL_INSTANCE:
                self.find_nearest_instance(instances, norm)
                self.centroid = instances.vector(self.nearest_instance).copy()

        self.compute_distance_sums(instances)

    def compute_distance_sums(self, instances: InstanceSet) -> Dict[DistanceNorm, float]:
        """Sum of member-to-centroid distances, for every norm."""
        if not self.members:
            self.distance_sums = {n: 0.0 for n in DistanceNorm}
            return self.distance_sums
        vectors = instances.vectors[self.member_ids()]
        self.distance_sums = {
            n: float(distances_to(vectors, self.centroid, n).sum()) for n in DistanceNorm
        }
        return self.distance_sums

    def compute_inertia_intra(self, instances: InstanceSet, norm: DistanceNorm) -> float:
        """Mean distance of members to the centroid."""
        if not self.members:
            self.inertia[norm] = 0.0
            return 0.0
        vectors = instances.vectors[self.member_ids()]
        value = float(distances_to(vectors, self.centroid, norm).mean())
        self.inertia[norm] = value
        return value

    def compute_attribute_inertia(self, instances: InstanceSet, norm: DistanceNorm) -> np.ndarray:
        """Mean per-feature distance of members to the centroid."""
        result = np.zeros(self.n_features)
        if self.members:
            vectors = instances.vectors[self.member_ids()]
            for j in range(self.n_features):
                result[j] = attribute_distances(vectors[:, j], self.centroid[j], norm).mean()
        self.attribute_inertia[norm] = result
        return result

    def compute_inertia_inter(
        self,
        global_centroid: np.ndarray,
        total_frequency: int,
        norm: DistanceNorm,
    ) -> float:
        """Distance of the centroid to the global centroid, weighted by frequency."""
        if total_frequency == 0 or len(global_centroid) != len(self.centroid):
            self.inertia_inter[norm] = 0.0
            return 0.0
        value = distance(self.centroid, global_centroid, norm) / total_frequency * self.frequency
        self.inertia_inter[norm] = value
        return value

    def find_nearest_instance(self, instances: InstanceSet, norm: DistanceNorm) -> Optional[int]:
        """Member closest to the centroid (lowest id on ties)."""
        if not self.members:
            self.nearest_instance = None
            return None
        ids = self.member_ids()
        dists = distances_to(instances.vectors[ids], self.centroid, norm)
        self.nearest_instance = int(ids[int(np.argmin(dists))])
        return self.nearest_instance

    def snap_to_nearest_instance(self, instances: InstanceSet) -> bool:
        """Replace the modeling centroid by the nearest real instance."""
        if self.nearest_instance is None:
            return False
        self.centroid = instances.vector(self.nearest_instance).copy()
        return True

    # ── Supervised statistics ───────────────────────────────────

    def compute_target_probs(self, instances: InstanceSet, catalog: Sequence[str]) -> np.ndarray:
        """Target probabilities of members, indexed like ``catalog``.

        Members whose value is not in the catalog only count in the
        denominator.
        """
        probs = np.zeros(len(catalog))
        if not self.members or instances.targets is None:
            self.target_probs = probs
            return probs
        positions = {value: j for j, value in enumerate(catalog)}
        for instance_id in self.members:
            j = positions.get(instances.targets[instance_id])
            if j is not None:
                probs[j] += 1
        self.target_probs = probs / len(self.members)
        return self.target_probs

    def majority_index(self) -> int:
        """Index of the most probable target value (first on ties)."""
        if self.target_probs.size == 0:
            return 0
        return int(np.argmax(self.target_probs))

    def majority_value(self, catalog: Sequence[str]) -> str:
        """Most probable target value, or "" for an empty cluster."""
        if self.frequency == 0 or self.target_probs.size == 0:
            return ""
        return catalog[self.majority_index()]

    def compute_compactness(
        self,
        instances: InstanceSet,
        catalog: Sequence[str],
        norm: DistanceNorm,
    ) -> float:
        """Mean similarity between the centroid and each member."""
        self.compactness = 0.0
        majority = self.majority_value(catalog)
        if not self.members or majority == "" or instances.targets is None:
            return 0.0
        total = 0.0
        for instance_id in self.member_ids():
            total += similarity(
                self.centroid, instances.vector(instance_id),
                majority, instances.targets[instance_id], norm,
            )
        self.compactness = total / len(self.members)
        return self.compactness

    # ── Copy ────────────────────────────────────────────────────

    def clone(self) -> "Cluster":
        """Deep copy with a fresh uid."""
        other = Cluster(self.n_features, self.label)
        other.members = set(self.members)
        other.frequency = self.frequency
        other.centroid = self.centroid.copy()
        other.evaluation_centroid = None if self.evaluation_centroid is None else self.evaluation_centroid.copy()
        other.initial_centroid = None if self.initial_centroid is None else self.initial_centroid.copy()
        other.inertia = dict(self.inertia)
        other.inertia_inter = dict(self.inertia_inter)
        other.attribute_inertia = {n: v.copy() for n, v in self.attribute_inertia.items()}
        other.distance_sums = dict(self.distance_sums)
        other.target_probs = self.target_probs.copy()
        other.nearest_instance = self.nearest_instance
        other.index = self.index
        other.nearest_cluster_index = self.nearest_cluster_index
        other.compactness = self.compactness
        return other


def mean_cluster(
    instances: InstanceSet,
    ids: Sequence[int],
    label: str,
    norm: DistanceNorm = DistanceNorm.L2,
) -> Cluster:
    """Build a cluster from ids, with its mean centroid and inertia."""
    cluster = Cluster(instances.n_features, label)
    for instance_id in ids:
        cluster.add_instance(instance_id)
    cluster.compute_iteration_statistics(instances, norm)
    cluster.compute_inertia_intra(instances, norm)
    return cluster


def centroids_of(clusters: List[Cluster]) -> np.ndarray:
    """Stack cluster centroids into a (k x d) array."""
    return np.vstack([c.centroid for c in clusters])
