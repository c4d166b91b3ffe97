"""Tests for instances and single-cluster statistics."""

import numpy as np
import pytest

from kmcluster.config import DistanceNorm, CentroidType
from kmcluster.clustering.instances import InstanceSet
from kmcluster.clustering.cluster import Cluster, mean_cluster


@pytest.fixture
def square():
    """Four corners of the unit square plus one point with a missing value."""
    features = np.array([
        [0.0, 0.0],
        [1.0, 0.0],
        [0.0, 1.0],
        [1.0, 1.0],
        [np.nan, 0.5],
    ])
    return InstanceSet(features, targets=["a", "a", "b", "c", "a"])


class TestInstanceSet:
    """Tests for the instance arena."""

    def test_missing_values(self, square):
        assert square.n_instances == 5
        assert square.has_missing(4)
        np.testing.assert_array_equal(square.complete_ids(), [0, 1, 2, 3])

    def test_target_catalog_order(self, square):
        """Catalog lists complete instances' values by first appearance"""
        assert square.target_catalog() == ["a", "b", "c"]

    def test_feature_indices(self):
        features = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
        instances = InstanceSet(features, feature_indices=[2, 0])
        np.testing.assert_array_equal(instances.vector(1), [6.0, 4.0])

    def test_subset(self, square):
        sub = square.subset([3, 1])
        np.testing.assert_array_equal(sub.vector(0), [1.0, 1.0])
        assert sub.target(1) == "a"
        assert not square.subset([3, 1], keep_targets=False).supervised

    def test_invalid_shapes(self):
        with pytest.raises(ValueError):
            InstanceSet(np.zeros(3))
        with pytest.raises(ValueError):
            InstanceSet(np.zeros((2, 2)), targets=["a"])
        with pytest.raises(ValueError):
            InstanceSet(np.zeros((2, 2)), feature_indices=[5])


class TestClusterStatistics:
    """Tests for centroid, inertia and target statistics."""

    def test_mean_centroid(self, square):
        cluster = mean_cluster(square, [0, 1, 2, 3], "1")
        np.testing.assert_array_almost_equal(cluster.centroid, [0.5, 0.5])
        assert cluster.frequency == 4

    def test_inertia_intra(self, square):
        """Mean squared distance to the centroid"""
        cluster = mean_cluster(square, [0, 1, 2, 3], "1", DistanceNorm.L2)
        assert cluster.inertia[DistanceNorm.L2] == pytest.approx(0.5)
        assert cluster.distance_sums[DistanceNorm.L2] == pytest.approx(2.0)
        assert cluster.distance_sums[DistanceNorm.L1] == pytest.approx(4.0)

    def test_real_instance_centroid(self, square):
        """Real-instance centroid is the member nearest to the mean (lowest id on ties)"""
        cluster = Cluster(2)
        for i in [0, 1, 2, 3]:
            cluster.add_instance(i)
        cluster.compute_iteration_statistics(square, DistanceNorm.L2, CentroidType.REAL_INSTANCE)
        np.testing.assert_array_almost_equal(cluster.centroid, [0.0, 0.0])
        assert cluster.nearest_instance == 0

    def test_keep_centroid(self, square):
        cluster = Cluster(2)
        cluster.centroid = np.array([5.0, 5.0])
        cluster.add_instance(0)
        cluster.compute_iteration_statistics(square, keep_centroid=True)
        np.testing.assert_array_almost_equal(cluster.centroid, [5.0, 5.0])
        assert cluster.distance_sums[DistanceNorm.L2] == pytest.approx(50.0)

    def test_attribute_inertia(self, square):
        cluster = mean_cluster(square, [0, 1, 2, 3], "1")
        np.testing.assert_array_almost_equal(
            cluster.compute_attribute_inertia(square, DistanceNorm.L2), [0.25, 0.25]
        )

    def test_inertia_inter(self, square):
        cluster = mean_cluster(square, [3], "1")
        value = cluster.compute_inertia_inter(np.array([0.0, 0.0]), 4, DistanceNorm.L2)
        # distance 2, weighted by 1/4
        assert value == pytest.approx(0.5)

    def test_target_probs_ignore_unknown_values(self, square):
        """Values outside the catalog only count in the denominator"""
        cluster = mean_cluster(square, [0, 1, 3], "1")
        probs = cluster.compute_target_probs(square, ["a", "b"])
        np.testing.assert_array_almost_equal(probs, [2 / 3, 0.0])
        assert cluster.majority_value(["a", "b"]) == "a"

    def test_majority_first_on_ties(self, square):
        cluster = mean_cluster(square, [0, 2], "1")
        cluster.compute_target_probs(square, ["a", "b"])
        assert cluster.majority_index() == 0

    def test_empty_cluster_majority(self):
        cluster = Cluster(2)
        assert cluster.majority_value(["a"]) == ""

    def test_clone_is_independent(self, square):
        cluster = mean_cluster(square, [0, 1], "1")
        other = cluster.clone()
        other.add_instance(3)
        other.centroid[0] = 9.0
        assert other.uid != cluster.uid
        assert 3 not in cluster.members
        assert cluster.centroid[0] == pytest.approx(0.5)
