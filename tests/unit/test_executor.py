"""Unit tests for the transform executor."""

import numpy as np
import pandas as pd
import pytest

from normalization_ranker.core.catalog import StepCatalog
from normalization_ranker.core.enumeration import ConfigurationEnumerator
from normalization_ranker.core.errors import InputError, TransformError
from normalization_ranker.core.execution import AdjustmentDesign, TransformExecutor
from normalization_ranker.core.inputs import EvaluationInputs, FactorVector, FeatureSet


def _build(inputs, label, max_k=3):
    catalog = StepCatalog.default(max_k=max_k)
    return ConfigurationEnumerator(catalog, inputs.available).build(label)


class TestAdjustmentDesign:
    """Tests for the accumulated design matrix."""

    def test_empty_design(self):
        design = AdjustmentDesign(n_samples=4)
        assert design.is_empty
        assert design.unwanted_matrix.shape == (4, 0)

    def test_blocks_stack(self):
        design = AdjustmentDesign(n_samples=4)
        design.add_unwanted("ruv", np.ones(4))
        design.add_unwanted("batch", np.zeros((4, 2)))
        design.add_protected("bio", np.ones((4, 1)))
        assert design.unwanted_matrix.shape == (4, 3)
        assert design.protected_matrix.shape == (4, 1)
        assert not design.is_empty

    def test_wrong_row_count(self):
        design = AdjustmentDesign(n_samples=4)
        with pytest.raises(TransformError, match="expected 4"):
            design.add_unwanted("batch", np.ones((3, 1)))


class TestTransformExecutor:
    """Tests for running configurations."""

    def test_noop_pipeline_is_identity(self, mock_inputs):
        """Test an all-pass-through configuration returns the input unchanged."""
        configuration = _build(mock_inputs, "none,none,no_uv,no_batch,no_bio")
        normalized = TransformExecutor(mock_inputs).run(configuration)
        pd.testing.assert_frame_equal(normalized, mock_inputs.counts)

    def test_output_keeps_labels(self, mock_inputs):
        configuration = _build(mock_inputs, "mean_impute,tmm,ruv_k=2,batch,bio")
        normalized = TransformExecutor(mock_inputs).run(configuration)
        assert list(normalized.index) == list(mock_inputs.features)
        assert list(normalized.columns) == list(mock_inputs.samples)
        assert np.all(np.isfinite(normalized.to_numpy()))
        assert (normalized.to_numpy() >= 0).all()

    def test_inputs_not_modified(self, mock_inputs):
        before = mock_inputs.counts.copy()
        TransformExecutor(mock_inputs).run(_build(mock_inputs, "mean_impute,deseq,ruv_k=1,batch,bio"))
        pd.testing.assert_frame_equal(mock_inputs.counts, before)

    def test_every_configuration_runs(self, mock_inputs):
        """Test the whole default catalog executes on well-formed data."""
        executor = TransformExecutor(mock_inputs)
        catalog = StepCatalog.default(max_k=2)
        for configuration in ConfigurationEnumerator(catalog, mock_inputs.available).enumerate():
            values = executor.run_values(configuration)
            assert values.shape == mock_inputs.counts.shape

    def test_batch_adjustment_removes_batch_shift(self, mock_inputs, mock_data):
        configuration = _build(mock_inputs, "none,deseq,no_uv,batch,bio")
        log_values = np.log1p(TransformExecutor(mock_inputs).run_values(configuration))
        batch = mock_data["batch"].to_numpy()
        shift = log_values[:, batch == "B1"].mean(axis=1) - log_values[:, batch == "B0"].mean(axis=1)
        # Clipping at zero may leave tiny residual shifts
        assert np.median(np.abs(shift)) < 0.05

    def test_scaling_only_changes_values(self, mock_inputs):
        configuration = _build(mock_inputs, "none,uq,no_uv,no_batch,no_bio")
        values = TransformExecutor(mock_inputs).run_values(configuration)
        assert not np.allclose(values, mock_inputs.counts.to_numpy())

    def test_ruv_k_too_large_for_samples(self):
        """Test a rank failure becomes a TransformError."""
        counts = pd.DataFrame(
            np.random.RandomState(0).poisson(20, size=(30, 4)),
            index=[f"g{i}" for i in range(30)],
            columns=["a", "b", "c", "d"],
        )
        inputs = EvaluationInputs(counts, negative_controls=FeatureSet("nc", tuple(counts.index[:10])))
        configuration = _build(inputs, "none,none,ruv_k=3,no_batch,no_bio")
        with pytest.raises(TransformError) as excinfo:
            TransformExecutor(inputs).run(configuration)
        assert excinfo.value.stage in ("ruv", "adjustment")

    def test_constant_controls_fail_ruv(self):
        """Test RUV refuses controls without variation instead of fitting noise."""
        rng = np.random.RandomState(11)
        values = np.vstack([np.full((4, 3), 5.0), rng.poisson(20, size=(16, 3))])
        counts = pd.DataFrame(
            values, index=[f"g{i}" for i in range(20)], columns=["a", "b", "c"]
        )
        inputs = EvaluationInputs(counts, negative_controls=FeatureSet("nc", tuple(counts.index[:4])))
        configuration = _build(inputs, "none,none,ruv_k=1,no_batch,no_bio", max_k=1)
        with pytest.raises(TransformError) as excinfo:
            TransformExecutor(inputs).run_values(configuration)
        assert excinfo.value.stage == "ruv"

    def test_zero_scale_factor(self):
        """Test an all-zero sample breaks upper-quartile scaling."""
        counts = pd.DataFrame({"a": [1.0, 2.0, 3.0], "b": [0.0, 0.0, 0.0]}, index=["x", "y", "z"])
        inputs = EvaluationInputs(counts)
        configuration = _build(inputs, "none,uq,no_uv,no_batch,no_bio", max_k=0)
        with pytest.raises(TransformError) as excinfo:
            TransformExecutor(inputs).run(configuration)
        assert excinfo.value.stage == "scaling"
        assert str(excinfo.value).startswith("[scaling]")


class TestEvaluationInputs:
    """Tests for input validation."""

    def test_negative_counts(self):
        with pytest.raises(InputError, match="negative"):
            EvaluationInputs(pd.DataFrame({"a": [1.0, -1.0]}, index=["x", "y"]))

    def test_non_finite_counts(self):
        with pytest.raises(InputError, match="non-finite"):
            EvaluationInputs(pd.DataFrame({"a": [1.0, np.nan]}, index=["x", "y"]))

    def test_duplicate_features(self):
        with pytest.raises(InputError, match="duplicate feature"):
            EvaluationInputs(pd.DataFrame({"a": [1.0, 2.0]}, index=["x", "x"]))

    def test_unknown_control_features(self, mock_data):
        with pytest.raises(InputError, match="not in the count matrix"):
            EvaluationInputs(
                mock_data["counts"],
                negative_controls=FeatureSet.from_iterable("nc", ["NotAGene"]),
            )

    def test_factor_missing_samples(self, mock_data):
        batch = mock_data["batch"].iloc[:-1]
        with pytest.raises(InputError, match="undefined for 1 samples"):
            EvaluationInputs(mock_data["counts"], batch=FactorVector.from_mapping("batch", batch))

    def test_available_kinds(self, mock_inputs, counts_only_inputs):
        assert mock_inputs.available == {
            "negative_controls", "positive_controls", "batch", "bio", "qc",
        }
        assert counts_only_inputs.available == set()

    def test_factor_levels(self, mock_inputs):
        assert mock_inputs.batch.n_levels == 2
        assert mock_inputs.bio.min_level_size == 12
