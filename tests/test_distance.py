"""Tests for distance functions."""

import numpy as np
import pytest

from kmcluster.config import DistanceNorm
from kmcluster.clustering.distance import (
    MAX_DISTANCE,
    distance,
    distances_to,
    distance_matrix,
    attribute_distances,
    similarity,
)


class TestDistance:
    """Tests for pairwise distances."""

    def test_l2_is_squared(self):
        """L2 distance is the squared Euclidean distance"""
        assert distance(np.array([0.0, 0.0]), np.array([3.0, 4.0]), DistanceNorm.L2) == pytest.approx(25.0)

    def test_l1(self):
        assert distance(np.array([0.0, 0.0]), np.array([3.0, -4.0]), DistanceNorm.L1) == pytest.approx(7.0)

    def test_cosine(self):
        """Cosine distance is 0 for colinear vectors and 1 for orthogonal ones"""
        assert distance(np.array([1.0, 0.0]), np.array([0.0, 2.0]), DistanceNorm.COSINE) == pytest.approx(1.0)
        assert distance(np.array([1.0, 1.0]), np.array([2.0, 2.0]), DistanceNorm.COSINE) == pytest.approx(0.0, abs=1e-12)

    def test_cosine_zero_vector(self):
        """A zero vector has no direction: ratio taken as 0"""
        assert distance(np.zeros(2), np.array([1.0, 0.0]), DistanceNorm.COSINE) == pytest.approx(1.0)

    def test_mismatched_vectors(self):
        assert distance(np.zeros(2), np.zeros(3), DistanceNorm.L2) == MAX_DISTANCE
        assert distance(np.zeros(0), np.zeros(0), DistanceNorm.L1) == MAX_DISTANCE


class TestVectorized:
    """Tests for batched distances."""

    @pytest.mark.parametrize("norm", list(DistanceNorm))
    def test_distances_to_matches_pairwise(self, norm):
        rng = np.random.default_rng(42)
        data = rng.normal(size=(10, 3))
        vector = rng.normal(size=3)
        expected = [distance(row, vector, norm) for row in data]
        np.testing.assert_array_almost_equal(distances_to(data, vector, norm), expected)

    def test_distance_matrix_shape(self):
        data = np.arange(12, dtype=float).reshape(4, 3)
        centers = data[:2]
        matrix = distance_matrix(data, centers, DistanceNorm.L2)
        assert matrix.shape == (4, 2)
        assert matrix[0, 0] == 0.0
        assert matrix[1, 1] == 0.0

    def test_attribute_distances(self):
        values = np.array([1.0, 3.0])
        np.testing.assert_array_almost_equal(attribute_distances(values, 2.0, DistanceNorm.L2), [1.0, 1.0])
        np.testing.assert_array_almost_equal(attribute_distances(values, 2.0, DistanceNorm.L1), [1.0, 1.0])


class TestSimilarity:
    """Tests for the labelled similarity used by predictive clustering."""

    def test_identical_points_same_class(self):
        """Same point, same class: 1 - 1/1 = 0"""
        x = np.array([1.0, 2.0])
        assert similarity(x, x, "a", "a", DistanceNorm.L2) == pytest.approx(0.0)

    def test_identical_points_different_class(self):
        x = np.array([1.0, 2.0])
        assert similarity(x, x, "a", "b", DistanceNorm.L2) == pytest.approx(1.0 - np.exp(-1.0))

    def test_distance_term(self):
        """L2: d / n_features + 1 with the squared distance"""
        x = np.array([0.0, 0.0])
        y = np.array([2.0, 0.0])
        # d = 4, n = 2 -> denominator 3
        assert similarity(x, y, 0, 0, DistanceNorm.L2) == pytest.approx(1.0 - 1.0 / 3.0)

    def test_l1_distance_is_squared(self):
        x = np.array([0.0, 0.0])
        y = np.array([2.0, 0.0])
        # L1 d = 2, squared = 4
        assert similarity(x, y, 0, 0, DistanceNorm.L1) == pytest.approx(1.0 - 1.0 / 3.0)
