"""K-means clustering engine.

Package:
    - config: enums and the KMeansConfig dataclass
    - monitor: progress and diagnostics sinks
    - memory: memory estimate driving the mini-batch fallback
    - clustering: instances, clusters, initializations, quality, drivers
    - distributed: thread-parallel random center sampling
    - data: synthetic labelled datasets
"""

from .config import (
    KMeansConfig,
    DistanceNorm,
    InitMethod,
    ReplicateCriterion,
    CentroidType,
    PostOptimization,
)
from .monitor import ProgressMonitor, Diagnostics
from .clustering import (
    InstanceSet,
    Clustering,
    ReplicateDriver,
    ReplicateResult,
    MiniBatchReplicateDriver,
    QualityReport,
)

__version__ = "0.1.0"

__all__ = [
    "KMeansConfig",
    "DistanceNorm",
    "InitMethod",
    "ReplicateCriterion",
    "CentroidType",
    "PostOptimization",
    "ProgressMonitor",
    "Diagnostics",
    "InstanceSet",
    "Clustering",
    "ReplicateDriver",
    "ReplicateResult",
    "MiniBatchReplicateDriver",
    "QualityReport",
]
