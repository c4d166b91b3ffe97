"""Tests for configuration, progress/diagnostics sinks and memory checks."""

import logging

import pytest

from kmcluster import memory
from kmcluster.config import (
    KMeansConfig,
    DistanceNorm,
    InitMethod,
    ReplicateCriterion,
)
from kmcluster.monitor import ProgressMonitor, Diagnostics


class TestKMeansConfig:
    """Tests for KMeansConfig validation and resolution."""

    def test_defaults(self):
        config = KMeansConfig()
        assert config.k == 1
        assert config.norm == DistanceNorm.L2
        assert config.replicates == 10
        assert config.epsilon_max_iterations == 5
        assert config.interruption_check_interval == 100

    def test_string_coercion(self):
        config = KMeansConfig(norm="L1", init_method="kmeans++", criterion="eva")
        assert config.norm == DistanceNorm.L1
        assert config.init_method == InitMethod.KMEANS_PLUS_PLUS
        assert config.criterion == ReplicateCriterion.EVA

    @pytest.mark.parametrize("kwargs", [
        {"k": 0},
        {"replicates": 0},
        {"max_iterations": -2},
        {"norm": "L3"},
        {"init_method": "nope"},
        {"workers": 0},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            KMeansConfig(**kwargs)

    def test_auto_resolution(self):
        config = KMeansConfig()
        assert config.resolved_init_method(True) == InitMethod.KMEANS_PLUS_PLUS_R
        assert config.resolved_init_method(False) == InitMethod.KMEANS_PLUS_PLUS
        assert config.resolved_criterion(True) == ReplicateCriterion.ARI_BY_CLUSTERS
        assert config.resolved_criterion(False) == ReplicateCriterion.DISTANCE

    def test_dict_round_trip(self):
        config = KMeansConfig(k=4, norm=DistanceNorm.COSINE, init_method=InitMethod.BISECTING)
        d = config.to_dict()
        assert d["norm"] == "cosine"
        assert KMeansConfig.from_dict(d) == config


class TestProgressMonitor:
    """Tests for progress reporting and interruption."""

    def test_progression_is_clamped_and_monotonic(self):
        monitor = ProgressMonitor()
        monitor.begin_task("task")
        monitor.display_progression(40)
        monitor.display_progression(20)
        assert monitor.progression == 40
        monitor.display_progression(250)
        assert monitor.progression == 100

    def test_nested_tasks(self):
        monitor = ProgressMonitor()
        monitor.begin_task("outer")
        monitor.display_progression(50)
        monitor.begin_task("inner")
        assert monitor.progression == 0
        assert monitor.depth == 2
        monitor.end_task()
        assert monitor.label == "outer"
        assert monitor.progression == 50

    def test_interruption(self):
        monitor = ProgressMonitor()
        assert not monitor.is_interruption_requested()
        monitor.request_interruption()
        assert monitor.is_interruption_requested()


class TestDiagnostics:
    """Tests for the diagnostics sink."""

    def test_records_and_logs(self, caplog):
        diagnostics = Diagnostics("kmcluster.test")
        with caplog.at_level(logging.INFO, logger="kmcluster.test"):
            diagnostics.add_warning("too many missing values")
            diagnostics.add_error("failed")
            diagnostics.add_message("hint")
        assert diagnostics.warnings == ["too many missing values"]
        assert diagnostics.errors == ["failed"]
        assert diagnostics.messages == ["hint"]
        assert diagnostics.has_warning("missing")
        assert "too many missing values" in caplog.text

    def test_clear(self):
        diagnostics = Diagnostics()
        diagnostics.add_warning("w")
        diagnostics.clear()
        assert not diagnostics.warnings


class TestMemory:
    """Tests for the memory estimate."""

    def test_required_memory(self):
        expected = (1 + 10) * memory.VALUE_SIZE * 3 + memory.CLASS_OVERHEAD + 10 * memory.REFERENCE_SIZE
        assert memory.required_memory(10, 3) == expected

    def test_insufficient_memory(self, monkeypatch):
        monkeypatch.setattr(memory, "available_memory", lambda: 0)
        report = memory.check_memory_usage(1000, 10)
        assert not report["sufficient"]
        assert report["required_bytes"] > 0

    def test_sufficient_memory(self, monkeypatch):
        monkeypatch.setattr(memory, "available_memory", lambda: 1 << 40)
        assert memory.check_memory_usage(1000, 10)["sufficient"]
        assert memory.has_minimum_memory()
