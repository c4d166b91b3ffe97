"""Configuration dataclasses for kmcluster."""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, Any


class DistanceNorm(str, Enum):
    """Norm used to compare instances and centroids."""
    L1 = "L1"
    L2 = "L2"
    COSINE = "cosine"


class InitMethod(str, Enum):
    """Cluster centers initialization methods."""
    AUTO = "auto"
    RANDOM = "random"
    SAMPLE = "sample"
    KMEANS_PLUS_PLUS = "kmeans++"
    KMEANS_PLUS_PLUS_R = "kmeans++R"
    ROCCHIO_THEN_SPLIT = "rocchio_then_split"
    BISECTING = "bisecting"
    MIN_MAX_RANDOM = "min_max_random"
    MIN_MAX_DETERMINISTIC = "min_max_deterministic"
    VARIANCE_PARTITIONING = "variance_partitioning"
    CLASS_DECOMPOSITION = "class_decomposition"


class ReplicateCriterion(str, Enum):
    """Criterion used to keep the best replicate."""
    AUTO = "auto"
    DISTANCE = "distance"
    EVA = "eva"
    LEVA = "leva"
    ARI_BY_CLUSTERS = "ari_by_clusters"
    ARI_BY_CLASSES = "ari_by_classes"
    NMI_BY_CLUSTERS = "nmi_by_clusters"
    NMI_BY_CLASSES = "nmi_by_classes"
    VARIATION_OF_INFORMATION = "variation_of_information"
    DAVIES_BOULDIN = "davies_bouldin"
    PREDICTIVE_CLUSTERING = "predictive_clustering"


class CentroidType(str, Enum):
    """Virtual mean centroid or nearest real instance."""
    VIRTUAL = "virtual"
    REAL_INSTANCE = "real_instance"


class PostOptimization(str, Enum):
    """Post-optimization applied to the best supervised replicate."""
    NONE = "none"
    FAST = "fast"


# Criteria that need a target attribute
SUPERVISED_CRITERIA = (
    ReplicateCriterion.EVA,
    ReplicateCriterion.LEVA,
    ReplicateCriterion.ARI_BY_CLUSTERS,
    ReplicateCriterion.ARI_BY_CLASSES,
    ReplicateCriterion.NMI_BY_CLUSTERS,
    ReplicateCriterion.NMI_BY_CLASSES,
    ReplicateCriterion.VARIATION_OF_INFORMATION,
    ReplicateCriterion.PREDICTIVE_CLUSTERING,
)

SUPERVISED_INIT_METHODS = (
    InitMethod.KMEANS_PLUS_PLUS_R,
    InitMethod.ROCCHIO_THEN_SPLIT,
    InitMethod.CLASS_DECOMPOSITION,
)


@dataclass
class KMeansConfig:
    """Configuration for a K-Means run.

    Attributes:
        k: Requested number of clusters.
        norm: Distance norm (L1, L2 or cosine).
        init_method: Centers initialization method.
        replicates: Number of independent replicates.
        criterion: Replicate selection criterion.
        max_iterations: Iteration cap. 0 means unlimited, -1 keeps the
            initial centers without any iteration.
        epsilon: Minimal relative improvement of the distance sum.
        epsilon_max_iterations: Iterations without epsilon improvement
            before stopping.
        centroid_type: Mean centroids or nearest real instance.
        post_optimization: Supervised post-optimization of the best replicate.
        min_k_post_optimization: Lowest K explored by post-optimization.
        mini_batch: Force the mini-batch driver.
        mini_batch_size: Number of instances per mini-batch.
        bisecting_replicates: Replicates of each nested 2-means split.
        bisecting_max_iterations: Iteration cap of each nested split.
        detailed_statistics: Compute every supervised metric, not only the
            ones needed by the criterion.
        seed: Random seed.
        workers: Worker threads of the distributed random sampler.
        interruption_check_interval: Records between interruption checks.
    """
    k: int = 1
    norm: DistanceNorm = DistanceNorm.L2
    init_method: InitMethod = InitMethod.AUTO
    replicates: int = 10
    criterion: ReplicateCriterion = ReplicateCriterion.AUTO
    max_iterations: int = 0
    epsilon: float = 1e-9
    epsilon_max_iterations: int = 5
    centroid_type: CentroidType = CentroidType.VIRTUAL
    post_optimization: PostOptimization = PostOptimization.NONE
    min_k_post_optimization: int = 1
    mini_batch: bool = False
    mini_batch_size: int = 1000
    bisecting_replicates: int = 10
    bisecting_max_iterations: int = 0
    detailed_statistics: bool = False
    seed: int = 42
    workers: int = 1
    interruption_check_interval: int = 100

    def __post_init__(self):
        """Coerce enum fields and validate ranges."""
        self.norm = DistanceNorm(self.norm)
        self.init_method = InitMethod(self.init_method)
        self.criterion = ReplicateCriterion(self.criterion)
        self.centroid_type = CentroidType(self.centroid_type)
        self.post_optimization = PostOptimization(self.post_optimization)

        if self.k < 1:
            raise ValueError(f"k must be >= 1, got {self.k}")
        if self.replicates < 1:
            raise ValueError(f"replicates must be >= 1, got {self.replicates}")
        if self.max_iterations < -1:
            raise ValueError(f"max_iterations must be >= -1, got {self.max_iterations}")
        if self.epsilon < 0:
            raise ValueError(f"epsilon must be >= 0, got {self.epsilon}")
        if self.epsilon_max_iterations < 1:
            raise ValueError("epsilon_max_iterations must be >= 1")
        if self.mini_batch_size < 1:
            raise ValueError("mini_batch_size must be >= 1")
        if self.bisecting_replicates < 1:
            raise ValueError("bisecting_replicates must be >= 1")
        if self.min_k_post_optimization < 1:
            raise ValueError("min_k_post_optimization must be >= 1")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        if self.interruption_check_interval < 1:
            raise ValueError("interruption_check_interval must be >= 1")

    def resolved_init_method(self, supervised: bool) -> InitMethod:
        """Resolve AUTO initialization depending on the learning mode."""
        if self.init_method != InitMethod.AUTO:
            return self.init_method
        return InitMethod.KMEANS_PLUS_PLUS_R if supervised else InitMethod.KMEANS_PLUS_PLUS

    def resolved_criterion(self, supervised: bool) -> ReplicateCriterion:
        """Resolve AUTO criterion depending on the learning mode."""
        if self.criterion != ReplicateCriterion.AUTO:
            return self.criterion
        return ReplicateCriterion.ARI_BY_CLUSTERS if supervised else ReplicateCriterion.DISTANCE

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to a plain dictionary (enums as values)."""
        d = asdict(self)
        for key, value in d.items():
            if isinstance(value, Enum):
                d[key] = value.value
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "KMeansConfig":
        """Create config from dictionary."""
        return cls(**d)
