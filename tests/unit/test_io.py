"""Unit tests for file loading and export."""

import json

import numpy as np
import pandas as pd
import pytest

from normalization_ranker.core.catalog import StepCatalog
from normalization_ranker.core.enumeration import ConfigurationEnumerator
from normalization_ranker.core.metrics import ScoreRow
from normalization_ranker.core.ranking import Ranker
from normalization_ranker.io import (
    export_json,
    filter_count_matrix,
    load_count_matrix,
    load_feature_list,
    load_sample_metadata,
    write_normalized_matrix,
    write_ranked_table,
)


@pytest.fixture
def counts():
    return pd.DataFrame(
        {"S1": [0, 5, 10], "S2": [0, 7, 12], "S3": [1, 0, 9]},
        index=["GeneA", "GeneB", "GeneC"],
    )


@pytest.fixture
def ranked():
    catalog = StepCatalog.from_dict({"imputation": ["none"], "scaling": ["none", "tmm"], "max_k": 0})
    configurations = ConfigurationEnumerator(catalog, {"batch", "bio"}).configurations()
    rows = [
        ScoreRow(label=c.label, index=c.index, scores={"BIO_SIL": 0.1 * c.index, "RLE_MED": 0.5})
        for c in configurations
    ]
    rows[-1] = ScoreRow.failed(rows[-1].label, rows[-1].index, ["BIO_SIL", "RLE_MED"], "boom")
    return Ranker().rank(rows, configurations)


class TestLoadCountMatrix:
    def test_csv(self, tmp_path, counts):
        path = tmp_path / "counts.csv"
        counts.to_csv(path)
        loaded = load_count_matrix(path)
        assert loaded.shape == (3, 3)
        assert list(loaded.index) == ["GeneA", "GeneB", "GeneC"]

    def test_tsv_transposed(self, tmp_path, counts):
        path = tmp_path / "counts.tsv"
        counts.T.to_csv(path, sep="\t")
        loaded = load_count_matrix(path, transpose=True)
        assert list(loaded.columns) == ["S1", "S2", "S3"]
        assert loaded.loc["GeneC", "S3"] == 9

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_count_matrix(tmp_path / "absent.csv")

    def test_non_numeric(self, tmp_path):
        path = tmp_path / "counts.csv"
        path.write_text("gene,S1,S2\nGeneA,1,x\nGeneB,2,3\n")
        with pytest.raises(ValueError, match="non-numeric"):
            load_count_matrix(path)


class TestLoadSampleMetadata:
    def test_indexed_by_first_column(self, tmp_path):
        path = tmp_path / "samples.csv"
        path.write_text("sample,batch\nS1,a\nS2,b\n")
        metadata = load_sample_metadata(path, required_columns=["batch"])
        assert list(metadata.index) == ["S1", "S2"]
        assert metadata.loc["S2", "batch"] == "b"

    def test_missing_column(self, tmp_path):
        path = tmp_path / "samples.csv"
        path.write_text("sample,batch\nS1,a\n")
        with pytest.raises(ValueError, match="missing columns"):
            load_sample_metadata(path, required_columns=["condition"])

    def test_duplicate_samples(self, tmp_path):
        path = tmp_path / "samples.csv"
        path.write_text("sample,batch\nS1,a\nS1,b\n")
        with pytest.raises(ValueError, match="Duplicate"):
            load_sample_metadata(path)


class TestLoadFeatureList:
    def test_text(self, tmp_path):
        path = tmp_path / "controls.txt"
        path.write_text("# housekeeping\nGeneA\n\nGeneB\nGeneA\n")
        assert load_feature_list(path) == ["GeneA", "GeneB"]

    def test_csv_column(self, tmp_path):
        path = tmp_path / "controls.csv"
        path.write_text("symbol,score\nGeneC,1\nGeneA,2\n")
        assert load_feature_list(path, column="symbol") == ["GeneC", "GeneA"]

    def test_csv_unknown_column(self, tmp_path):
        path = tmp_path / "controls.csv"
        path.write_text("symbol\nGeneC\n")
        with pytest.raises(ValueError):
            load_feature_list(path, column="gene")


class TestFilterCountMatrix:
    def test_drops_weak_features(self, counts):
        filtered = filter_count_matrix(counts, min_count=1, min_samples=2)
        assert list(filtered.index) == ["GeneB", "GeneC"]

    def test_drops_shallow_samples(self, counts):
        filtered = filter_count_matrix(counts, min_library_size=15)
        assert list(filtered.columns) == ["S1", "S2"]
        assert "GeneA" not in filtered.index

    def test_defaults_keep_expressed(self, counts):
        assert filter_count_matrix(counts).shape == (3, 3)


class TestWriters:
    def test_ranked_table(self, tmp_path, ranked):
        path = write_ranked_table(ranked, tmp_path / "out" / "ranked.csv")
        table = pd.read_csv(path)
        assert table["label"].tolist() == ranked.labels
        assert np.isnan(table["composite"].iloc[-1])
        assert table["error"].iloc[-1] == "boom"

    def test_export_json(self, tmp_path, ranked):
        path = export_json(ranked, tmp_path / "ranked.json", metadata={"note": "test"})
        data = json.loads(path.read_text())
        assert data["run"] == {"note": "test"}
        assert data["n_failed"] == 1
        assert data["entries"][-1]["composite"] is None
        assert "export_timestamp" in data

    def test_normalized_matrix_tsv(self, tmp_path, counts):
        path = write_normalized_matrix(counts.astype(float), tmp_path / "norm.tsv")
        loaded = pd.read_csv(path, sep="\t", index_col=0)
        pd.testing.assert_frame_equal(loaded, counts.astype(float))
