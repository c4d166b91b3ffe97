"""Tests for the mini-batch replicate driver."""

from dataclasses import replace

import numpy as np
import pytest

from kmcluster.config import KMeansConfig, InitMethod
from kmcluster.monitor import Diagnostics, ProgressMonitor
from kmcluster.clustering import minibatch
from kmcluster.clustering.minibatch import MiniBatchReplicateDriver
from kmcluster.clustering.replicate import ReplicateDriver
from kmcluster.data.synthetic import BlobGenerator


CENTERS = np.array([[0.0, 0.0], [10.0, 0.0], [0.0, 10.0]])


@pytest.fixture
def blobs():
    """Three separated blobs of 100 instances."""
    return BlobGenerator(seed=42, noise_std=0.5).generate([100, 100, 100], centers=CENTERS)


class TestMiniBatchDriver:
    """Tests for batch sizing and the online passes."""

    def test_batches_and_assignment(self, blobs):
        driver = MiniBatchReplicateDriver(KMeansConfig(k=3, replicates=2, mini_batch_size=100))
        result = driver.fit(blobs.to_instances(supervised=False))

        assert result.success
        assert result.mini_batch
        assert driver.n_batches == 3
        assert driver.config.init_method == InitMethod.RANDOM
        assert 1 <= len(result.clustering.clusters) <= 3
        assert sum(c.frequency for c in result.clustering.clusters) == 300

    def test_size_too_high(self, blobs):
        diagnostics = Diagnostics()
        driver = MiniBatchReplicateDriver(KMeansConfig(k=3, mini_batch_size=301), diagnostics=diagnostics)
        result = driver.fit(blobs.to_instances(supervised=False))

        assert not result.success
        assert diagnostics.has_warning("Mini-batch size of 301 is too high")

    def test_k_clamped_to_batch_size(self, blobs):
        diagnostics = Diagnostics()
        driver = MiniBatchReplicateDriver(
            KMeansConfig(k=3, replicates=1, mini_batch_size=2), diagnostics=diagnostics,
        )
        result = driver.fit(blobs.to_instances(supervised=False))

        assert result.success
        assert len(result.clustering.clusters) <= 2
        assert diagnostics.has_warning("setting K value to 2")

    def test_supervised_statistics(self, blobs):
        driver = MiniBatchReplicateDriver(KMeansConfig(k=3, replicates=2, mini_batch_size=150))
        result = driver.fit(blobs.to_instances())

        assert result.success
        assert result.clustering.target_values
        assert 0.0 <= result.quality.ari_by_clusters <= 1.0 + 1e-9

    def test_interrupted(self, blobs):
        monitor = ProgressMonitor()
        monitor.request_interruption()
        driver = MiniBatchReplicateDriver(
            KMeansConfig(k=3, replicates=3, mini_batch_size=100), monitor=monitor,
        )
        result = driver.fit(blobs.to_instances(supervised=False))

        assert not result.success
        assert result.n_replicates_run == 1

    def test_low_memory_stops(self, blobs, monkeypatch):
        monkeypatch.setattr(minibatch, "has_minimum_memory", lambda: False)
        diagnostics = Diagnostics()
        driver = MiniBatchReplicateDriver(
            KMeansConfig(k=3, replicates=1, mini_batch_size=150), diagnostics=diagnostics,
        )
        result = driver.fit(blobs.to_instances(supervised=False))

        assert not result.success
        assert diagnostics.has_warning("Not enough memory")


class TestDegenerateBatch:
    """A batch holding every instance behaves like the full-batch driver."""

    def test_mean_distance_matches_full_batch(self):
        data = BlobGenerator(seed=8, noise_std=0.8).generate(
            [60, 60], centers=[[0.0, 0.0], [6.0, 6.0]],
        )
        instances = data.to_instances(supervised=False)
        config = KMeansConfig(k=2, replicates=3, init_method=InitMethod.RANDOM)

        full = ReplicateDriver(config).fit(instances)
        driver = MiniBatchReplicateDriver(replace(config, mini_batch_size=120))
        mini = driver.fit(instances)

        assert full.success and mini.success
        assert driver.n_batches == 1
        assert mini.clustering.mean_distance() == pytest.approx(full.clustering.mean_distance(), rel=1e-6)
