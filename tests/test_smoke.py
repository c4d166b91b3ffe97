"""Smoke tests for the synthetic data and the clustering demo."""

import json

import numpy as np
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "experiments"))

from kmcluster.config import KMeansConfig, InitMethod
from kmcluster.data.synthetic import BlobGenerator, blob_label, generate_blobs
from run_clustering import run_clustering


class TestSyntheticBlobs:
    """Tests for the blob generator."""

    def test_shapes_and_labels(self):
        data = generate_blobs(n_blobs=4, n_per_blob=25, n_features=3, seed=1)
        assert data.features.shape == (100, 3)
        assert data.n_instances == 100
        assert sorted(set(data.labels)) == ["A", "B", "C", "D"]
        assert np.bincount(data.blob_ids).tolist() == [25, 25, 25, 25]

    def test_reproducible(self):
        a = generate_blobs(seed=5)
        b = generate_blobs(seed=5)
        np.testing.assert_array_equal(a.features, b.features)

    def test_centers_are_separated(self):
        centers = generate_blobs(n_blobs=5, seed=3).centers
        for i in range(len(centers)):
            for j in range(i + 1, len(centers)):
                assert np.linalg.norm(centers[i] - centers[j]) >= 4.0

    def test_missing_values(self):
        data = BlobGenerator(seed=2).generate([100, 100], missing_rate=0.1)
        instances = data.to_instances()
        assert 0 < instances.complete.sum() < 200

    def test_center_count_mismatch(self):
        with pytest.raises(ValueError):
            BlobGenerator().generate([10, 10], centers=[[0.0, 0.0]])

    def test_blob_label(self):
        assert blob_label(0) == "A"
        assert blob_label(25) == "Z"
        assert blob_label(26) == "B26"


class TestRunClustering:
    """The demo runs end to end and writes its summary."""

    def test_supervised_run(self, tmp_path):
        config = KMeansConfig(k=3, replicates=2, init_method=InitMethod.KMEANS_PLUS_PLUS_R)
        summary = run_clustering(
            config, n_blobs=3, n_per_blob=30, n_features=2,
            supervised=True, evaluate=True, output_dir=tmp_path,
        )

        assert summary["result"]["success"]
        assert "evaluation" in summary
        with open(tmp_path / "clustering.json") as f:
            saved = json.load(f)
        assert saved["config"]["k"] == 3

    def test_failed_run(self):
        config = KMeansConfig(k=3, replicates=1, mini_batch=True, mini_batch_size=10_000)
        summary = run_clustering(
            config, n_blobs=2, n_per_blob=10, n_features=2,
            supervised=False, evaluate=False,
        )
        assert summary["success"] is False
