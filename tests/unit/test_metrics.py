"""Unit tests for the metric battery."""

import math

import numpy as np
import pandas as pd
import pytest

from normalization_ranker.core.catalog import StepCatalog
from normalization_ranker.core.enumeration import ConfigurationEnumerator
from normalization_ranker.core.errors import MetricUnavailable
from normalization_ranker.core.execution import TransformExecutor
from normalization_ranker.core.inputs import EvaluationInputs
from normalization_ranker.core.metrics import (
    METRIC_NAMES,
    METRICS,
    MetricConfig,
    MetricSuite,
    ScoreRow,
    check_bounds,
    label_silhouette,
    max_squared_rank_correlation,
    metric_signs,
    pam,
    pam_silhouette,
    principal_components,
    rle_statistics,
)
from tests.fixtures import create_constant_counts


class TestMetricConfig:
    """Tests for MetricConfig dataclass."""

    def test_default_values(self):
        config = MetricConfig()
        assert config.n_pcs == 3
        assert config.n_qc_pcs == 0
        assert config.n_uv_pcs == 3
        assert config.n_wv_pcs == 3
        assert config.kclust == [2, 3, 4, 5]
        assert config.metrics == METRIC_NAMES

    def test_unknown_metric(self):
        with pytest.raises(ValueError, match="Unknown metrics"):
            MetricConfig(metrics=["BIO_SIL", "TSNE_SCORE"])

    def test_invalid_kclust(self):
        with pytest.raises(ValueError):
            MetricConfig(kclust=[1, 2])

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "metrics.yaml"
        path.write_text("metrics:\n  n_pcs: 2\n  kclust: [2, 3]\n")
        config = MetricConfig.from_yaml(path)
        assert config.n_pcs == 2
        assert config.kclust == [2, 3]

    def test_signs(self):
        signs = metric_signs()
        assert signs["BIO_SIL"] == 1
        assert signs["BATCH_SIL"] == -1
        assert signs["EXP_WV_COR"] == 1
        assert signs["RLE_IQR"] == -1


class TestBuildingBlocks:
    """Tests for PCA, silhouette, PAM and correlation helpers."""

    def test_pca_drops_constant_features(self):
        data = np.column_stack([np.arange(6.0), np.ones(6), np.arange(6.0) ** 2])
        scores = principal_components(data, n_components=5)
        assert scores.shape[0] == 6
        assert scores.shape[1] <= 2

    def test_pca_without_variation(self):
        with pytest.raises(MetricUnavailable, match="no feature varies"):
            principal_components(np.ones((5, 3)), n_components=2)

    def test_label_silhouette_separated_groups(self):
        scores = np.array([[0.0], [0.1], [10.0], [10.1]])
        assert label_silhouette(scores, ["a", "a", "b", "b"]) > 0.9

    def test_label_silhouette_needs_two_per_level(self):
        with pytest.raises(MetricUnavailable, match="fewer than 2 samples"):
            label_silhouette(np.arange(3.0)[:, None], ["a", "a", "b"])

    def test_label_silhouette_needs_two_levels(self):
        with pytest.raises(MetricUnavailable, match="at least 2 distinct"):
            label_silhouette(np.arange(3.0)[:, None], ["a", "a", "a"])

    def test_pam_finds_clusters(self):
        points = np.array([[0.0, 0.0], [0.0, 1.0], [10.0, 10.0], [10.0, 11.0], [10.5, 10.5]])
        distances = np.sqrt(((points[:, None, :] - points[None, :, :]) ** 2).sum(axis=2))
        labels, medoids = pam(distances, k=2)
        assert len(set(labels[:2])) == 1
        assert len(set(labels[2:])) == 1
        assert labels[0] != labels[2]
        assert len(medoids) == 2

    def test_pam_silhouette_range(self):
        points = np.random.RandomState(0).normal(size=(12, 3))
        value = pam_silhouette(points, [2, 3, 4])
        assert -1.0 <= value <= 1.0

    def test_pam_silhouette_coincident_points(self):
        with pytest.raises(MetricUnavailable, match="coincide"):
            pam_silhouette(np.zeros((6, 2)), [2, 3])

    def test_pam_silhouette_no_usable_k(self):
        with pytest.raises(MetricUnavailable, match="no usable cluster count"):
            pam_silhouette(np.arange(3.0)[:, None], [3, 4])

    def test_rank_correlation_perfect(self):
        x = np.arange(10.0)[:, None]
        assert max_squared_rank_correlation(x, x ** 3) == pytest.approx(1.0)

    def test_rank_correlation_ignores_constant_columns(self):
        x = np.column_stack([np.arange(8.0), np.ones(8)])
        y = -np.arange(8.0)[:, None]
        assert max_squared_rank_correlation(x, y) == pytest.approx(1.0)

    def test_rank_correlation_all_constant(self):
        with pytest.raises(MetricUnavailable):
            max_squared_rank_correlation(np.ones((5, 1)), np.arange(5.0)[:, None])

    def test_rle_non_negative(self, mock_data):
        rle_med, rle_iqr = rle_statistics(mock_data["counts"].to_numpy(dtype=float))
        assert rle_med >= 0
        assert rle_iqr >= 0

    def test_rle_of_identical_samples_is_zero(self):
        values = np.tile(np.arange(1.0, 11.0)[:, None], (1, 4))
        assert rle_statistics(values) == (0.0, 0.0)


class TestScoreRow:
    """Tests for the per-configuration score record."""

    def test_failed_row(self):
        row = ScoreRow.failed("x", 3, ["BIO_SIL", "RLE_MED"], "[scaling] boom")
        assert row.is_failed
        assert all(math.isnan(v) for v in row.scores.values())
        assert row.available == {}
        assert row.to_dict()["scores"] == {"BIO_SIL": None, "RLE_MED": None}


class TestMetricSuite:
    """Tests for scoring normalized matrices."""

    def test_all_metrics_within_bounds(self, mock_inputs, fast_metric_config):
        suite = MetricSuite(mock_inputs, fast_metric_config)
        executor = TransformExecutor(mock_inputs)
        catalog = StepCatalog.from_dict({"scaling": ["none", "tmm", "fq"], "max_k": 1})
        for configuration in ConfigurationEnumerator(catalog, mock_inputs.available).enumerate():
            row = suite.score(executor.run_values(configuration), configuration.label)
            assert check_bounds(row) == []
            assert list(row.scores) == fast_metric_config.metrics
            assert row.unavailable == {}

    def test_batch_correction_lowers_batch_silhouette(self, mock_inputs, fast_metric_config):
        suite = MetricSuite(mock_inputs, fast_metric_config)
        enumerator = ConfigurationEnumerator(StepCatalog.default(max_k=1), mock_inputs.available)
        executor = TransformExecutor(mock_inputs)
        raw = suite.score(executor.run_values(enumerator.build("none,deseq,no_uv,no_batch,no_bio")))
        corrected = suite.score(executor.run_values(enumerator.build("none,deseq,no_uv,batch,bio")))
        assert corrected.scores["BATCH_SIL"] < raw.scores["BATCH_SIL"]

    def test_missing_inputs_make_metrics_unavailable(self, counts_only_inputs):
        """Test metrics without their inputs are recorded, not raised."""
        suite = MetricSuite(counts_only_inputs, MetricConfig(kclust=[2, 3]))
        row = suite.score(counts_only_inputs.counts, "none,none,no_uv,no_batch,no_bio")
        for name in ("BIO_SIL", "BATCH_SIL", "EXP_QC_COR", "EXP_UV_COR", "EXP_WV_COR"):
            assert math.isnan(row.scores[name])
            assert name in row.unavailable
        assert not math.isnan(row.scores["PAM_SIL"])
        assert row.scores["RLE_MED"] >= 0

    def test_constant_matrix_does_not_raise(self):
        """Test a 3 x 2 constant matrix yields a row of unavailable PC metrics."""
        inputs = EvaluationInputs(create_constant_counts())
        row = MetricSuite(inputs).score(inputs.counts, "none,none,no_uv,no_batch,no_bio")
        assert set(row.scores) == set(METRICS)
        assert math.isnan(row.scores["PAM_SIL"])
        assert "expression PCs unavailable" in row.unavailable["PAM_SIL"]
        assert row.scores["RLE_MED"] == 0.0
        assert row.scores["RLE_IQR"] == 0.0

    def test_subset_of_metrics(self, mock_inputs):
        suite = MetricSuite(mock_inputs, MetricConfig(metrics=["RLE_IQR", "BIO_SIL"]))
        row = suite.score(mock_inputs.counts)
        assert list(row.scores) == ["RLE_IQR", "BIO_SIL"]

    def test_accepts_ndarray(self, mock_inputs, fast_metric_config):
        suite = MetricSuite(mock_inputs, fast_metric_config)
        from_frame = suite.score(mock_inputs.counts)
        from_array = suite.score(mock_inputs.counts.to_numpy())
        assert from_frame.scores == pytest.approx(from_array.scores)
