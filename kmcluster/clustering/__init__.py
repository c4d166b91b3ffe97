"""Clustering module: k-means core, initializations, quality and drivers."""

from .instances import InstanceSet
from .distance import (
    distance,
    distances_to,
    distance_matrix,
    similarity,
)
from .cluster import Cluster, mean_cluster
from .quality import (
    QualityReport,
    ClusteringQuality,
    adjusted_rand_index,
    normalized_mutual_information,
    variation_of_information,
    normalized_eva,
    normalized_leva,
)
from .clustering import Clustering
from .initializer import ClusteringInitializer
from .replicate import (
    ReplicateDriver,
    ReplicateResult,
    compute_bisecting_replicates,
    is_better,
)
from .minibatch import MiniBatchReplicateDriver

__all__ = [
    "InstanceSet",
    "distance",
    "distances_to",
    "distance_matrix",
    "similarity",
    "Cluster",
    "mean_cluster",
    "QualityReport",
    "ClusteringQuality",
    "adjusted_rand_index",
    "normalized_mutual_information",
    "variation_of_information",
    "normalized_eva",
    "normalized_leva",
    "Clustering",
    "ClusteringInitializer",
    "ReplicateDriver",
    "ReplicateResult",
    "compute_bisecting_replicates",
    "is_better",
    "MiniBatchReplicateDriver",
]
