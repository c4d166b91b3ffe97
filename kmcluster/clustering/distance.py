"""Distance functions over instance feature vectors.

L2 distances are squared Euclidean distances: every inertia, distance
sum and roulette weight computed by the engine uses the squared form.
Mismatched or empty vectors are infinitely far apart (MAX_DISTANCE).
"""

import numpy as np

from ..config import DistanceNorm


MAX_DISTANCE = float(np.finfo(np.float64).max)


def distance(x: np.ndarray, y: np.ndarray, norm: DistanceNorm) -> float:
    """Compute the distance between two vectors.

    Args:
        x: First vector (d,).
        y: Second vector (d,).
        norm: Distance norm.

    Returns:
        Distance, or MAX_DISTANCE when vectors cannot be compared.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.size == 0 or x.shape != y.shape:
        return MAX_DISTANCE

    if norm == DistanceNorm.L2:
        diff = x - y
        return float(np.dot(diff, diff))
    if norm == DistanceNorm.L1:
        return float(np.abs(x - y).sum())

    denominator = np.sqrt(np.dot(x, x)) * np.sqrt(np.dot(y, y))
    return float(1.0 - (np.dot(x, y) / denominator if denominator != 0 else 0.0))


def distances_to(data: np.ndarray, vector: np.ndarray, norm: DistanceNorm) -> np.ndarray:
    """Distances from every row of data to one vector.

    Args:
        data: Points (n x d).
        vector: Reference vector (d,).
        norm: Distance norm.

    Returns:
        Distances (n,).
    """
    data = np.atleast_2d(np.asarray(data, dtype=float))
    vector = np.asarray(vector, dtype=float)
    if data.shape[1] != vector.shape[0] or vector.size == 0:
        return np.full(len(data), MAX_DISTANCE)

    if norm == DistanceNorm.L2:
        diff = data - vector
        return np.einsum("ij,ij->i", diff, diff)
    if norm == DistanceNorm.L1:
        return np.abs(data - vector).sum(axis=1)

    dots = data @ vector
    denominators = np.sqrt(np.einsum("ij,ij->i", data, data)) * np.sqrt(np.dot(vector, vector))
    ratios = np.zeros(len(data))
    nonzero = denominators != 0
    ratios[nonzero] = dots[nonzero] / denominators[nonzero]
    return 1.0 - ratios


def distance_matrix(data: np.ndarray, centers: np.ndarray, norm: DistanceNorm) -> np.ndarray:
    """Distances from all points to all centers (n x k)."""
    data = np.atleast_2d(np.asarray(data, dtype=float))
    centers = np.atleast_2d(np.asarray(centers, dtype=float))
    result = np.empty((len(data), len(centers)))
    for j, center in enumerate(centers):
        result[:, j] = distances_to(data, center, norm)
    return result


def attribute_distances(values: np.ndarray, reference: float, norm: DistanceNorm) -> np.ndarray:
    """Per-attribute distance of several values to a reference value.

    The same formulas as ``distance`` restricted to one coordinate.
    """
    values = np.asarray(values, dtype=float)
    if norm == DistanceNorm.L2:
        return (values - reference) ** 2
    if norm == DistanceNorm.L1:
        return np.abs(values - reference)

    denominators = np.abs(values) * abs(reference)
    ratios = np.zeros(len(values))
    nonzero = denominators != 0
    ratios[nonzero] = (values[nonzero] * reference) / denominators[nonzero]
    return 1.0 - ratios


def similarity(
    x: np.ndarray,
    y: np.ndarray,
    majority_x,
    majority_y,
    norm: DistanceNorm,
) -> float:
    """Similarity between two labelled points, used by predictive clustering.

    Combines a distance term and a class agreement term:
    1 - agree / (d / n_features + 1), where agree is 1 when both
    majority classes are equal and exp(-1) otherwise.

    Args:
        x: First vector.
        y: Second vector.
        majority_x: Majority class (label or index) of the first point.
        majority_y: Majority class of the second point.
        norm: Distance norm.

    Returns:
        Similarity value, or MAX_DISTANCE for mismatched vectors.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.size == 0 or x.shape != y.shape:
        return MAX_DISTANCE

    d = distance(x, y, norm)
    if norm != DistanceNorm.L2:
        d = d * d
    denominator = d / x.size + 1.0
    numerator = 1.0 if majority_x == majority_y else float(np.exp(-1.0))
    return 1.0 - numerator / denominator
