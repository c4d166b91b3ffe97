"""Synthetic labelled datasets for demos and tests.

Generates Gaussian blobs around well-separated centers. Each instance
carries the id of its blob as a categorical label ("A", "B", ...), so
supervised metrics can be checked against the ground truth.
"""

import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..clustering.instances import InstanceSet


@dataclass
class SyntheticDataset:
    """Blob dataset with ground truth.

    Attributes:
        features: Feature matrix (n x d).
        labels: Blob label of each instance.
        blob_ids: Blob index of each instance.
        centers: Blob centers (n_blobs x d).
    """
    features: np.ndarray
    labels: List[str]
    blob_ids: np.ndarray
    centers: np.ndarray

    @property
    def n_instances(self) -> int:
        return len(self.features)

    def to_instances(self, supervised: bool = True) -> InstanceSet:
        """Wrap the dataset into an instance arena."""
        return InstanceSet(self.features, self.labels if supervised else None)


class BlobGenerator:
    """Generator for Gaussian blob datasets.

    Blob centers are drawn uniformly in a hypercube, then pushed apart
    until every pair is at least ``min_separation`` apart.
    """

    def __init__(
        self,
        seed: int = 42,
        spread: float = 10.0,
        noise_std: float = 0.5,
        min_separation: float = 4.0,
    ):
        """Initialize generator.

        Args:
            seed: Random seed for reproducibility.
            spread: Half-width of the hypercube holding the centers.
            noise_std: Standard deviation of each blob.
            min_separation: Minimum Euclidean distance between centers.
        """
        self.rng = np.random.default_rng(seed)
        self.spread = spread
        self.noise_std = noise_std
        self.min_separation = min_separation

    def _draw_centers(self, n_blobs: int, n_features: int, max_tries: int = 1000) -> np.ndarray:
        centers: List[np.ndarray] = []
        for _ in range(max_tries):
            candidate = self.rng.uniform(-self.spread, self.spread, n_features)
            if all(np.linalg.norm(candidate - c) >= self.min_separation for c in centers):
                centers.append(candidate)
                if len(centers) == n_blobs:
                    return np.array(centers)
        raise ValueError(
            f"Could not place {n_blobs} centers {self.min_separation} apart; "
            "increase spread or decrease min_separation"
        )

    def generate(
        self,
        n_per_blob: Sequence[int],
        n_features: int = 2,
        centers: Optional[np.ndarray] = None,
        missing_rate: float = 0.0,
    ) -> SyntheticDataset:
        """Generate one blob per entry of ``n_per_blob``.

        Args:
            n_per_blob: Instance count of each blob.
            n_features: Dimension (ignored when centers are given).
            centers: Explicit blob centers.
            missing_rate: Fraction of values replaced by NaN.

        Returns:
            SyntheticDataset, instances shuffled.
        """
        n_blobs = len(n_per_blob)
        if centers is None:
            centers = self._draw_centers(n_blobs, n_features)
        centers = np.asarray(centers, dtype=float)
        if len(centers) != n_blobs:
            raise ValueError(f"{len(centers)} centers for {n_blobs} blobs")

        features = []
        blob_ids = []
        for b, (center, count) in enumerate(zip(centers, n_per_blob)):
            features.append(center + self.rng.normal(0, self.noise_std, (count, centers.shape[1])))
            blob_ids.extend([b] * count)
        features = np.vstack(features)
        blob_ids = np.array(blob_ids)

        order = self.rng.permutation(len(features))
        features, blob_ids = features[order], blob_ids[order]

        if missing_rate > 0:
            mask = self.rng.random(features.shape) < missing_rate
            features[mask] = np.nan

        labels = [blob_label(b) for b in blob_ids]
        return SyntheticDataset(features=features, labels=labels, blob_ids=blob_ids, centers=centers)


def blob_label(index: int) -> str:
    """Label of blob ``index``: "A".."Z", then "B26", "B27"..."""
    if index < 26:
        return chr(ord("A") + index)
    return f"B{index}"


def generate_blobs(
    n_blobs: int = 3,
    n_per_blob: int = 100,
    n_features: int = 2,
    noise_std: float = 0.5,
    seed: int = 42,
) -> SyntheticDataset:
    """Convenience function to generate equally sized blobs.

    Args:
        n_blobs: Number of blobs.
        n_per_blob: Instances per blob.
        n_features: Dimension.
        noise_std: Standard deviation of each blob.
        seed: Random seed.

    Returns:
        SyntheticDataset with blob labels.
    """
    generator = BlobGenerator(seed=seed, noise_std=noise_std)
    return generator.generate([n_per_blob] * n_blobs, n_features=n_features)
