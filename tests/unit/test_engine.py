"""Unit tests for the evaluation engine and dispatcher."""

import math
import os
import time

import pandas as pd
import pytest

from normalization_ranker.core.catalog import TRANSFORMS, StepCatalog, StepOption, register_transform
from normalization_ranker.core.errors import ConfigurationError
from normalization_ranker.core.evaluation import (
    AbortSignal,
    EngineConfig,
    EvaluationEngine,
    ResultBuffer,
    evaluate_configuration,
)
from normalization_ranker.core.execution import TransformExecutor
from normalization_ranker.core.inputs import EvaluationInputs, FeatureSet
from normalization_ranker.core.metrics import ScoreRow
from tests.fixtures import create_constant_counts


@pytest.fixture
def engine(mock_inputs, small_catalog, fast_metric_config):
    return EvaluationEngine(mock_inputs, small_catalog, metric_config=fast_metric_config)


@pytest.fixture
def broken_transform():
    """Scaling transform that always fails unexpectedly."""
    @register_transform("test_broken", "scaling")
    def broken(values):
        raise RuntimeError("exploded")

    yield "test_broken"
    TRANSFORMS.pop("test_broken")


def _with_broken_scaling(catalog: StepCatalog) -> StepCatalog:
    stages = {stage: list(options) for stage, options in catalog.iter_stages()}
    stages["scaling"].append(StepOption("broken", "scaling", transform="test_broken"))
    return StepCatalog(stages)


class TestEngineConfig:
    """Tests for EngineConfig validation."""

    def test_defaults(self):
        config = EngineConfig()
        assert config.n_workers == (os.cpu_count() or 1)
        assert config.backend == "thread"
        assert config.is_sequential == (config.n_workers == 1)

    def test_single_worker_is_sequential(self):
        assert EngineConfig(n_workers=1).is_sequential

    def test_sequential_backend(self):
        assert EngineConfig(n_workers=4, backend="sequential").is_sequential
        assert not EngineConfig(n_workers=4).is_sequential

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"n_workers": 0},
            {"backend": "gpu"},
            {"timeout": 0},
            {"on_missing": "ignore"},
            {"batch_size": 0},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            EngineConfig(**kwargs)

    def test_from_yaml_section(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("engine:\n  n_workers: 3\n  timeout: 60\n")
        config = EngineConfig.from_yaml(path)
        assert config.n_workers == 3
        assert config.timeout == 60


class TestResultBuffer:
    def test_rows_in_index_order(self, small_catalog):
        from normalization_ranker.core.enumeration import ConfigurationEnumerator

        configurations = ConfigurationEnumerator(
            small_catalog, {"negative_controls", "batch", "bio"}
        ).configurations()[:3]
        buffer = ResultBuffer(configurations)
        for c in reversed(configurations[1:]):
            buffer.put(ScoreRow(label=c.label, index=c.index))
        assert [r.index for r in buffer.rows] == [1, 2]
        assert buffer.missing == [configurations[0]]


class TestEvaluationEngine:
    """Tests for full evaluation runs."""

    def test_run_ranks_every_configuration(self, engine):
        result = engine.run()
        assert len(result) == 24
        assert not result.is_partial
        assert not result.failed
        assert sorted(e.index for e in result) == list(range(24))
        composites = [e.composite for e in result]
        assert composites == sorted(composites, reverse=True)

    def test_threads_match_sequential(self, mock_inputs, small_catalog, fast_metric_config):
        sequential = EvaluationEngine(
            mock_inputs, small_catalog, fast_metric_config, EngineConfig(backend="sequential")
        ).run()
        threaded = EvaluationEngine(
            mock_inputs, small_catalog, fast_metric_config, EngineConfig(n_workers=3)
        ).run()
        assert threaded.labels == sequential.labels
        assert [e.composite for e in threaded] == pytest.approx([e.composite for e in sequential])

    def test_process_backend(self, mock_inputs, fast_metric_config):
        catalog = StepCatalog.from_dict({"imputation": ["none"], "scaling": ["none"], "max_k": 1})
        config = EngineConfig(n_workers=2, backend="process", batch_size=2)
        result = EvaluationEngine(mock_inputs, catalog, fast_metric_config, config).run()
        expected = EvaluationEngine(mock_inputs, catalog, fast_metric_config).run()
        assert len(result) == 6
        assert result.labels == expected.labels

    def test_failure_is_isolated(self, mock_inputs, small_catalog, fast_metric_config, broken_transform):
        catalog = _with_broken_scaling(small_catalog)
        engine = EvaluationEngine(mock_inputs, catalog, fast_metric_config, EngineConfig(n_workers=2))
        result = engine.run()

        broken = result.with_option("scaling", "broken")
        assert len(result) == 36
        assert len(broken) == 12
        assert len(result.failed) == 12
        for entry in broken:
            assert math.isnan(entry.composite)
            assert "RuntimeError" in entry.row.error
            assert entry.rank > 24
        assert all(not math.isnan(e.composite) for e in result.entries[:24])

    def test_on_result_called_per_configuration(self, engine):
        seen = []
        engine.run(on_result=lambda configuration, row: seen.append((configuration.index, row.index)))
        assert len(seen) == 24
        assert all(c == r for c, r in seen)

    def test_preset_abort_skips_everything(self, engine):
        signal = AbortSignal()
        signal.abort()
        result = engine.run(abort=signal)
        assert len(result) == 0
        assert len(result.skipped) == 24
        assert engine.last_outcome.aborted

    def test_abort_signal_wait(self):
        signal = AbortSignal()
        assert not signal.wait(0.01)
        signal.abort()
        assert signal.wait(0.01)
        assert signal.aborted

    def test_abort_during_run(self, mock_inputs, small_catalog, fast_metric_config):
        config = EngineConfig(backend="sequential")
        engine = EvaluationEngine(mock_inputs, small_catalog, fast_metric_config, config)
        signal = AbortSignal()
        engine.run(abort=signal, on_result=lambda configuration, row: signal.abort())
        outcome = engine.last_outcome
        assert outcome.aborted
        assert len(outcome.rows) == 1
        assert len(outcome.skipped) == 23

    def test_timeout_reports_skipped(self, mock_inputs, small_catalog, fast_metric_config):
        config = EngineConfig(backend="sequential", timeout=0.05)
        engine = EvaluationEngine(mock_inputs, small_catalog, fast_metric_config, config)
        result = engine.run(on_result=lambda configuration, row: time.sleep(0.1))
        assert engine.last_outcome.timed_out
        assert len(result) == 1
        assert result.is_partial
        assert {e.index for e in result} | {c.index for c in result.skipped} == set(range(24))

    def test_missing_inputs_raise(self, counts_only_inputs):
        engine = EvaluationEngine(counts_only_inputs)
        with pytest.raises(ConfigurationError):
            engine.enumerate()

    def test_missing_inputs_gated(self, counts_only_inputs):
        engine = EvaluationEngine(counts_only_inputs, engine_config=EngineConfig(on_missing="gate"))
        assert len(engine.configurations) == 10


class TestSingleConfiguration:
    """Tests for re-executing and scoring one configuration."""

    def test_get_normalized(self, engine, mock_inputs):
        normalized = engine.get_normalized("none,tmm,ruv_k=1,batch,bio")
        assert isinstance(normalized, pd.DataFrame)
        assert list(normalized.index) == list(mock_inputs.counts.index)
        assert list(normalized.columns) == list(mock_inputs.counts.columns)
        assert (normalized.to_numpy() >= 0).all()

    @pytest.mark.parametrize(
        "label",
        [
            "none,tmm",
            "none,quantile,no_uv,no_batch,no_bio",
            "none,none,no_uv,no_batch,bio",
        ],
    )
    def test_bad_label(self, engine, label):
        with pytest.raises(ConfigurationError):
            engine.get_normalized(label)

    def test_score_keeps_creation_index(self, engine):
        configuration = engine.configurations[5]
        row = engine.score(configuration.label)
        assert row.index == 5
        assert not row.is_failed

    def test_evaluate_configuration_transform_error(self, engine, mock_inputs):
        """Test a transform failure becomes a failed row instead of raising."""
        configuration = engine.build("none,tmm,ruv_k=1,batch,bio")
        without_controls = EvaluationInputs(
            counts=mock_inputs.counts, batch=mock_inputs.batch, bio=mock_inputs.bio
        )
        row = evaluate_configuration(TransformExecutor(without_controls), engine.suite, configuration)
        assert row.is_failed
        assert "[ruv]" in row.error
        assert all(math.isnan(v) for v in row.scores.values())


class TestDegenerateInputs:
    """Runs on inputs without any variation."""

    def test_identical_values_run_to_completion(self):
        """Test 2 features x 3 samples of identical counts rank without raising."""
        counts = create_constant_counts(n_features=2, n_samples=3, value=5.0)
        inputs = EvaluationInputs(
            counts=counts,
            negative_controls=FeatureSet.from_iterable("negative_controls", counts.index),
        )
        engine = EvaluationEngine(
            inputs,
            StepCatalog.default(max_k=1),
            engine_config=EngineConfig(n_workers=1, on_missing="gate"),
        )
        result = engine.run()

        assert len(result) == 20
        ruv_labels = {e.label for e in result if not e.configuration.ruv.is_noop}
        assert {e.label for e in result.failed} == ruv_labels
        assert len(ruv_labels) == 10
        for entry in result.failed:
            assert entry.row.error.startswith("[ruv]")
        for entry in result:
            if entry.configuration.ruv.is_noop:
                assert entry.row.error is None
                assert entry.row.scores["RLE_MED"] == pytest.approx(0.0)
                assert "BIO_SIL" in entry.row.unavailable
