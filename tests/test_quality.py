"""Tests for clustering quality metrics.

Table metrics are checked against hand-computed values and their
defining properties; cluster-based metrics against small hand-built
clusterings.
"""

import numpy as np
import pytest

from kmcluster.config import DistanceNorm
from kmcluster.monitor import Diagnostics
from kmcluster.clustering.cluster import Cluster
from kmcluster.clustering.instances import InstanceSet
from kmcluster.clustering.quality import (
    ClusteringQuality,
    QualityReport,
    adjusted_rand_index,
    eva_cost,
    eva_first_term,
    eva_second_term,
    eva_single_cluster,
    eva_third_term,
    leva_cost,
    ln_factorial,
    normalized_eva,
    normalized_leva,
    normalized_mutual_information,
    pairs_count,
    variation_of_information,
)


def make_cluster(centroid, frequency=1, inertia=0.0, probs=None):
    cluster = Cluster(len(centroid))
    cluster.centroid = np.asarray(centroid, dtype=float)
    cluster.frequency = frequency
    cluster.inertia[DistanceNorm.L2] = inertia
    if probs is not None:
        cluster.target_probs = np.asarray(probs, dtype=float)
    return cluster


class TestCombinatorics:
    """Tests for log-factorial helpers."""

    def test_ln_factorial(self):
        assert ln_factorial(0) == pytest.approx(0.0)
        assert ln_factorial(5) == pytest.approx(np.log(120.0))

    def test_pairs_count(self):
        assert pairs_count(10) == pytest.approx(45.0)
        assert pairs_count(1) == 0.0


class TestEVA:
    """Tests for EVA and LEVA."""

    def test_general_formula_matches_single_cluster_form(self):
        """EVA(1) through the three-term formula equals the closed form"""
        counts = np.array([[3, 5, 2]])
        general = eva_first_term(10, 1) + eva_second_term([10], 3) + eva_third_term(counts)
        assert general == pytest.approx(eva_single_cluster([3, 5, 2]), rel=1e-12)

    def test_leva_general_matches_single_cluster_form(self):
        counts = np.array([[3, 5, 2]])
        assert eva_third_term(counts) == pytest.approx(leva_cost(counts), rel=1e-12)

    def test_single_cluster_normalizes_to_zero(self):
        assert normalized_eva(np.array([[3, 5, 2]])) == pytest.approx(0.0, abs=1e-12)
        assert normalized_leva(np.array([[3, 5, 2]])) == pytest.approx(0.0, abs=1e-12)

    def test_empty_rows_ignored(self):
        counts = np.array([[3, 5, 2], [0, 0, 0]])
        assert eva_cost(counts) == pytest.approx(eva_single_cluster([3, 5, 2]))

    def test_pure_clusters_improve_eva(self):
        """A perfect split scores well above the single-cluster baseline"""
        assert normalized_eva(np.array([[50, 0], [0, 50]])) > 0.5
        assert normalized_leva(np.array([[50, 0], [0, 50]])) == pytest.approx(1.0)

    def test_unreferenced_values_force_zero(self):
        """Rows that do not add up to the cluster frequency give EVA = 0 and a warning"""
        diagnostics = Diagnostics()
        cluster = make_cluster([0.0], frequency=4, probs=[0.5, 0.25])
        g = make_cluster([0.0], frequency=4)
        quality = ClusteringQuality([cluster], g, ["a", "b"], diagnostics=diagnostics)
        assert quality.compute_eva() == 0.0
        assert diagnostics.has_warning("EVA computing on cluster 0")


class TestARI:
    """Tests for the adjusted Rand index."""

    def test_identical_partitions(self):
        table = np.array([[50, 0, 0], [0, 30, 0], [0, 0, 20]])
        assert adjusted_rand_index(table) == pytest.approx(1.0, abs=1e-9)

    def test_permuted_identical_partitions(self):
        table = np.array([[0, 40], [60, 0]])
        assert adjusted_rand_index(table) == pytest.approx(1.0, abs=1e-9)

    def test_small_population(self):
        assert adjusted_rand_index(np.array([[1]])) == 0.0

    def test_independent_is_near_zero(self):
        table = np.array([[25, 25], [25, 25]])
        assert abs(adjusted_rand_index(table)) < 0.05


class TestNMI:
    """Tests for normalized mutual information."""

    def test_identical_partitions(self):
        assert normalized_mutual_information(np.array([[30, 0], [0, 70]])) == pytest.approx(1.0)

    def test_symmetry(self):
        """Swapping rows and columns leaves NMI unchanged for equal marginals"""
        table = np.array([[30, 10], [10, 30]])
        assert normalized_mutual_information(table) == pytest.approx(
            normalized_mutual_information(table.T)
        )

    def test_independent(self):
        assert normalized_mutual_information(np.array([[25, 25], [25, 25]])) == pytest.approx(0.0, abs=1e-12)

    def test_zero_denominator(self):
        assert normalized_mutual_information(np.array([[10]])) == 0.0


class TestVariationOfInformation:
    """Tests for normalized variation of information."""

    def test_identical_partitions(self):
        assert variation_of_information(np.array([[30, 0], [0, 70]])) == pytest.approx(0.0, abs=1e-12)

    def test_independent(self):
        assert variation_of_information(np.array([[25, 25], [25, 25]])) == pytest.approx(1.0)

    def test_degenerate(self):
        assert variation_of_information(np.array([[10]])) == 0.0


class TestDaviesBouldin:
    """Tests for the Davies-Bouldin index."""

    def test_hand_computed(self):
        """(sqrt(1) + sqrt(4)) / sqrt(25) for both clusters"""
        c1 = make_cluster([0.0, 0.0], inertia=1.0)
        c2 = make_cluster([3.0, 4.0], inertia=4.0)
        quality = ClusteringQuality([c1, c2], make_cluster([1.5, 2.0], 2), [])
        assert quality.compute_davies_bouldin() == pytest.approx(0.6)

    def test_invariant_under_reordering(self):
        rng = np.random.default_rng(42)
        clusters = [
            make_cluster(rng.normal(size=2) * 5, frequency=10, inertia=float(rng.uniform(0.5, 2)))
            for _ in range(4)
        ]
        g = make_cluster([0.0, 0.0], 40)
        forward = ClusteringQuality(clusters, g, []).compute_davies_bouldin()
        backward = ClusteringQuality(clusters[::-1], g, []).compute_davies_bouldin()
        assert forward == pytest.approx(backward)

    def test_empty_clusters_skipped(self):
        c1 = make_cluster([0.0, 0.0], inertia=1.0)
        c2 = make_cluster([3.0, 4.0], inertia=4.0)
        empty = make_cluster([1.0, 1.0], frequency=0, inertia=9.0)
        quality = ClusteringQuality([c1, c2, empty], make_cluster([1.5, 2.0], 2), [])
        # empty cluster still counts in the division
        assert quality.compute_davies_bouldin() == pytest.approx(1.2 / 3)


class TestPredictiveClustering:
    """Tests for the predictive clustering index."""

    def test_hand_computed(self):
        c1 = make_cluster([0.0, 0.0], probs=[1.0, 0.0])
        c2 = make_cluster([2.0, 0.0], probs=[0.0, 1.0])
        c1.compactness = 0.2
        c2.compactness = 0.4
        quality = ClusteringQuality([c1, c2], make_cluster([1.0, 0.0], 2), ["a", "b"])

        sim = 1.0 - np.exp(-1.0) / (4.0 / 2 + 1.0)
        assert quality.compute_predictive_clustering() == pytest.approx(0.6 / sim)


class TestHuygens:
    """Tests for the Huygens decomposition check."""

    def test_mean_centroids_satisfy_decomposition(self):
        rng = np.random.default_rng(42)
        instances = InstanceSet(rng.normal(size=(30, 2)))
        g = Cluster(2, "global")
        clusters = [Cluster(2), Cluster(2)]
        for i in range(30):
            g.add_instance(i)
            clusters[i % 2].add_instance(i)
        g.compute_iteration_statistics(instances)
        for cluster in clusters:
            cluster.compute_iteration_statistics(instances)
        assert ClusteringQuality(clusters, g, []).check_huygens(instances)

    def test_shifted_centroid_fails(self):
        rng = np.random.default_rng(42)
        instances = InstanceSet(rng.normal(size=(30, 2)))
        g = Cluster(2, "global")
        cluster = Cluster(2)
        for i in range(30):
            g.add_instance(i)
            cluster.add_instance(i)
        g.compute_iteration_statistics(instances)
        cluster.compute_iteration_statistics(instances)
        cluster.centroid = cluster.centroid + 3.0
        assert not ClusteringQuality([cluster], g, []).check_huygens(instances)


class TestQualityReport:
    """Tests for the report container."""

    def test_copy_is_independent(self):
        report = QualityReport(eva=0.5, attribute_davies_bouldin=[1.0])
        other = report.copy()
        other.attribute_davies_bouldin.append(2.0)
        assert report.attribute_davies_bouldin == [1.0]
        assert other.to_dict()["eva"] == 0.5
