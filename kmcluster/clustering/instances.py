"""Instance arena.

Instances are stored once, as rows of a feature matrix, and referenced
everywhere else by their integer row id.
"""

import numpy as np
from typing import Optional, Sequence, List


class InstanceSet:
    """Numeric instances with an optional categorical target.

    Missing feature values are encoded as NaN. Distances only look at
    the ordered ``feature_indices`` subset of the columns.

    Attributes:
        features: Raw feature matrix (n x m).
        feature_indices: Columns used for clustering.
        targets: Target labels (n,) or None when unsupervised.
    """

    def __init__(
        self,
        features: np.ndarray,
        targets: Optional[Sequence] = None,
        feature_indices: Optional[Sequence[int]] = None,
    ):
        features = np.asarray(features, dtype=float)
        if features.ndim != 2:
            raise ValueError(f"features must be 2-D, got shape {features.shape}")

        if feature_indices is None:
            feature_indices = range(features.shape[1])
        self.feature_indices = np.asarray(list(feature_indices), dtype=int)
        if self.feature_indices.size == 0:
            raise ValueError("at least one feature index is required")
        if self.feature_indices.min() < 0 or self.feature_indices.max() >= features.shape[1]:
            raise ValueError("feature index out of range")

        if targets is not None:
            targets = np.asarray([str(t) for t in targets], dtype=object)
            if len(targets) != len(features):
                raise ValueError(
                    f"{len(targets)} targets for {len(features)} instances"
                )

        self.features = features
        self.targets = targets
        self.vectors = features[:, self.feature_indices]
        self.complete = ~np.isnan(self.vectors).any(axis=1)

    @property
    def n_instances(self) -> int:
        return len(self.features)

    @property
    def n_features(self) -> int:
        """Number of clustering features."""
        return len(self.feature_indices)

    @property
    def supervised(self) -> bool:
        return self.targets is not None

    def __len__(self) -> int:
        return self.n_instances

    def vector(self, instance_id: int) -> np.ndarray:
        """Clustering feature vector of one instance."""
        return self.vectors[instance_id]

    def target(self, instance_id: int) -> Optional[str]:
        """Target label of one instance."""
        if self.targets is None:
            return None
        return self.targets[instance_id]

    def has_missing(self, instance_id: int) -> bool:
        return not self.complete[instance_id]

    def complete_ids(self) -> np.ndarray:
        """Ids of instances without missing clustering values."""
        return np.flatnonzero(self.complete)

    def shuffled_ids(self, rng: np.random.Generator) -> np.ndarray:
        """Random permutation of all instance ids."""
        return rng.permutation(self.n_instances)

    def target_catalog(self) -> List[str]:
        """Distinct target values of complete instances, by first appearance."""
        if self.targets is None:
            return []
        seen = {}
        for value in self.targets[self.complete]:
            seen.setdefault(value, None)
        return list(seen)

    def subset(self, ids: Sequence[int], keep_targets: bool = True) -> "InstanceSet":
        """New arena over the selected rows.

        Ids in the returned set are positions in ``ids``.

        Args:
            ids: Rows to keep.
            keep_targets: Drop the target to get an unsupervised set.
        """
        ids = np.asarray(ids, dtype=int)
        targets = None if self.targets is None or not keep_targets else self.targets[ids]
        return InstanceSet(self.features[ids], targets, self.feature_indices)
