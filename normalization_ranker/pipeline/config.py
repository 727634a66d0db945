"""Run configuration loader and validator."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ..core.catalog import StepCatalog
from ..core.evaluation import EngineConfig
from ..core.inputs import EvaluationInputs, FactorVector, FeatureSet
from ..core.metrics import MetricConfig
from ..core.ranking import RankerConfig
from ..io.csv import (
    filter_count_matrix,
    load_count_matrix,
    load_feature_list,
    load_sample_metadata,
)

_SECTIONS = ("inputs", "factors", "filter", "catalog", "metrics", "engine", "ranker", "output_dir", "log_level")


def _resolve_path(value: Optional[str], base: Path) -> Optional[Path]:
    """Resolve a path relative to a base directory."""
    if value is None:
        return None
    candidate = Path(value)
    if not candidate.is_absolute():
        candidate = (base / candidate).resolve()
    return candidate


@dataclass
class RunConfig:
    """Everything needed to run one evaluation from files.

    Loaded from YAML; relative paths are resolved against the YAML file's
    directory.

    Example YAML
    ------------
    ::

        inputs:
          counts: counts.csv
          metadata: samples.csv
          negative_controls: housekeeping.txt
          positive_controls: markers.txt
          qc_columns: [total_counts, pct_mito]
        factors:
          batch: batch
          bio: condition
        filter:
          min_count: 1
          min_samples: 3
        catalog:
          max_k: 2
          scaling: [none, tmm, deseq]
        metrics:
          n_pcs: 3
          kclust: [2, 3, 4]
        engine:
          n_workers: 4
          timeout: 3600
        ranker:
          aggregation: mean
        output_dir: results/

    Attributes
    ----------
    counts_path : Path
        Count table (features x samples)
    metadata_path : Path, optional
        Sample metadata table (factor and QC columns)
    sample_column : str, optional
        Sample identifier column in the metadata (default: first column)
    negative_controls_path, positive_controls_path : Path, optional
        Control feature lists
    qc_columns : List[str]
        Metadata columns used as QC covariates
    batch_column, bio_column : str, optional
        Metadata columns holding the batch and biological factors
    transpose : bool
        Count table stores samples as rows
    filter : Dict[str, Any]
        Arguments of ``filter_count_matrix`` (empty: no filtering)
    catalog : Dict[str, Any], optional
        Arguments of ``StepCatalog.from_dict`` (None: default catalog)
    """

    counts_path: Path
    metadata_path: Optional[Path] = None
    sample_column: Optional[str] = None
    negative_controls_path: Optional[Path] = None
    positive_controls_path: Optional[Path] = None
    qc_columns: List[str] = field(default_factory=list)
    batch_column: Optional[str] = None
    bio_column: Optional[str] = None
    transpose: bool = False
    filter: Dict[str, Any] = field(default_factory=dict)
    catalog: Optional[Dict[str, Any]] = None
    metrics: MetricConfig = field(default_factory=MetricConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    ranker: RankerConfig = field(default_factory=RankerConfig)
    output_dir: Path = Path("results")
    log_level: str = "INFO"

    def __post_init__(self):
        needs_metadata = self.batch_column or self.bio_column or self.qc_columns
        if needs_metadata and self.metadata_path is None:
            raise ValueError("Factor or QC columns given without a metadata table")

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Union[str, Path] = ".") -> "RunConfig":
        """Build a run configuration from a parsed YAML mapping.

        Raises
        ------
        KeyError
            If ``inputs.counts`` is missing
        ValueError
            If a section is unknown or malformed
        """
        base = Path(base_dir)
        unknown = [k for k in data if k not in _SECTIONS]
        if unknown:
            raise ValueError(f"Unknown run configuration sections: {unknown}")

        inputs = data.get("inputs") or {}
        if "counts" not in inputs:
            raise KeyError("Run configuration needs 'inputs.counts'")
        factors = data.get("factors") or {}

        return cls(
            counts_path=_resolve_path(inputs["counts"], base),
            metadata_path=_resolve_path(inputs.get("metadata"), base),
            sample_column=inputs.get("sample_column"),
            negative_controls_path=_resolve_path(inputs.get("negative_controls"), base),
            positive_controls_path=_resolve_path(inputs.get("positive_controls"), base),
            qc_columns=list(inputs.get("qc_columns") or []),
            batch_column=factors.get("batch"),
            bio_column=factors.get("bio"),
            transpose=bool(inputs.get("transpose", False)),
            filter=dict(data.get("filter") or {}),
            catalog=data.get("catalog"),
            metrics=MetricConfig(**(data.get("metrics") or {})),
            engine=EngineConfig(**(data.get("engine") or {})),
            ranker=RankerConfig(**(data.get("ranker") or {})),
            output_dir=_resolve_path(data.get("output_dir", "results"), base),
            log_level=str(data.get("log_level", "INFO")),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "RunConfig":
        """Load a run configuration from YAML.

        Raises
        ------
        FileNotFoundError
            If config file doesn't exist
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data, base_dir=config_path.parent)

    def build_catalog(self) -> StepCatalog:
        return StepCatalog.from_dict(self.catalog)

    def load_inputs(self) -> EvaluationInputs:
        """Read and validate every input file named by this configuration.

        Raises
        ------
        FileNotFoundError
            If an input file is missing
        InputError
            If the inputs are not co-indexed
        """
        counts = load_count_matrix(self.counts_path, transpose=self.transpose)
        if self.filter:
            counts = filter_count_matrix(counts, **self.filter)

        metadata = None
        if self.metadata_path is not None:
            required = [c for c in (self.batch_column, self.bio_column) if c] + self.qc_columns
            metadata = load_sample_metadata(
                self.metadata_path, sample_column=self.sample_column, required_columns=required
            )

        def feature_set(path: Optional[Path], name: str) -> Optional[FeatureSet]:
            if path is None:
                return None
            # Controls dropped by the upstream filter are not usable
            features = [f for f in load_feature_list(path) if f in counts.index]
            return FeatureSet.from_iterable(name, features)

        def factor(column: Optional[str]) -> Optional[FactorVector]:
            if column is None or metadata is None:
                return None
            return FactorVector.from_mapping(column, metadata[column])

        return EvaluationInputs(
            counts=counts,
            negative_controls=feature_set(self.negative_controls_path, "negative_controls"),
            positive_controls=feature_set(self.positive_controls_path, "positive_controls"),
            batch=factor(self.batch_column),
            bio=factor(self.bio_column),
            qc=metadata[self.qc_columns] if (metadata is not None and self.qc_columns) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        def path_str(p: Optional[Path]) -> Optional[str]:
            return str(p) if p is not None else None

        return {
            "inputs": {
                "counts": path_str(self.counts_path),
                "metadata": path_str(self.metadata_path),
                "sample_column": self.sample_column,
                "negative_controls": path_str(self.negative_controls_path),
                "positive_controls": path_str(self.positive_controls_path),
                "qc_columns": list(self.qc_columns),
                "transpose": self.transpose,
            },
            "factors": {"batch": self.batch_column, "bio": self.bio_column},
            "filter": dict(self.filter),
            "catalog": self.catalog,
            "metrics": self.metrics.to_dict(),
            "engine": self.engine.to_dict(),
            "ranker": self.ranker.to_dict(),
            "output_dir": path_str(self.output_dir),
            "log_level": self.log_level,
        }
