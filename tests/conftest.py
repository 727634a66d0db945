"""Pytest configuration and shared fixtures for normalization-ranker tests."""

import sys
from pathlib import Path

import pytest

# Add package to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from normalization_ranker.core.catalog import StepCatalog
from normalization_ranker.core.inputs import EvaluationInputs, FactorVector, FeatureSet
from normalization_ranker.core.metrics import MetricConfig

# Import mock data generators
from tests.fixtures import create_mock_counts, write_mock_run


# ============================================================================
# Mock Data Fixtures
# ============================================================================


@pytest.fixture
def mock_data() -> dict:
    """Synthetic counts with crossed batch / biological groups and controls."""
    return create_mock_counts()


@pytest.fixture
def mock_inputs(mock_data) -> EvaluationInputs:
    """Fully specified inputs: controls, both factors and QC covariates."""
    return EvaluationInputs(
        counts=mock_data["counts"],
        negative_controls=FeatureSet.from_iterable("negative_controls", mock_data["negative_controls"]),
        positive_controls=FeatureSet.from_iterable("positive_controls", mock_data["positive_controls"]),
        batch=FactorVector.from_mapping("batch", mock_data["batch"]),
        bio=FactorVector.from_mapping("bio", mock_data["bio"]),
        qc=mock_data["qc"],
    )


@pytest.fixture
def counts_only_inputs(mock_data) -> EvaluationInputs:
    """Inputs with the count matrix alone."""
    return EvaluationInputs(counts=mock_data["counts"])


@pytest.fixture
def small_catalog() -> StepCatalog:
    """2 x 2 x 2 x 2 x 2 catalog (24 consistent configurations)."""
    return StepCatalog.from_dict({"scaling": ["none", "tmm"], "max_k": 1})


@pytest.fixture
def fast_metric_config() -> MetricConfig:
    return MetricConfig(kclust=[2, 3], n_qc_pcs=2)


# ============================================================================
# Path Fixtures
# ============================================================================


@pytest.fixture
def tmp_output_dir(tmp_path: Path) -> Path:
    """Create a temporary output directory for tests."""
    output_dir = tmp_path / "output"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


@pytest.fixture
def run_config_path(tmp_path, mock_data) -> Path:
    """Run YAML plus its input files in a temporary directory."""
    return write_mock_run(tmp_path / "run", mock_data)
