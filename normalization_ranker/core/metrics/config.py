"""Metric definitions and configuration."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml


@dataclass(frozen=True)
class MetricSpec:
    """A quality metric and its orientation.

    Attributes
    ----------
    name : str
        Metric name (e.g. "BIO_SIL")
    sign : int
        +1 if larger is better, -1 if smaller is better
    description : str
        One-line description
    bounds : tuple
        Theoretical (low, high) range
    """

    name: str
    sign: int
    description: str
    bounds: tuple = (float("-inf"), float("inf"))


METRICS: Dict[str, MetricSpec] = {
    spec.name: spec
    for spec in (
        MetricSpec("BIO_SIL", 1, "Silhouette of biological groups on expression PCs", (-1.0, 1.0)),
        MetricSpec("BATCH_SIL", -1, "Silhouette of batches on expression PCs", (-1.0, 1.0)),
        MetricSpec("PAM_SIL", 1, "Best silhouette of PAM clustering on expression PCs", (-1.0, 1.0)),
        MetricSpec("EXP_QC_COR", -1, "Max squared rank correlation with QC covariate PCs", (0.0, 1.0)),
        MetricSpec("EXP_UV_COR", -1, "Max squared rank correlation with negative control PCs", (0.0, 1.0)),
        MetricSpec("EXP_WV_COR", 1, "Max squared rank correlation with positive control PCs", (0.0, 1.0)),
        MetricSpec("RLE_MED", -1, "Mean squared median relative log expression", (0.0, float("inf"))),
        MetricSpec("RLE_IQR", -1, "Mean IQR of relative log expression", (0.0, float("inf"))),
    )
}

METRIC_NAMES: List[str] = list(METRICS)


def metric_signs(names: Optional[List[str]] = None) -> Dict[str, int]:
    """Sign per metric name."""
    names = names or METRIC_NAMES
    return {name: METRICS[name].sign for name in names}


@dataclass
class MetricConfig:
    """Parameters of the metric battery.

    Attributes
    ----------
    n_pcs : int
        Expression principal components used by all PC-based metrics
    n_qc_pcs : int
        QC covariate components for EXP_QC_COR (0 disables the metric)
    n_uv_pcs : int
        Negative-control components for EXP_UV_COR
    n_wv_pcs : int
        Positive-control components for EXP_WV_COR
    kclust : List[int]
        Cluster counts tried by PAM_SIL
    scale_features : bool
        Scale features to unit variance before PCA
    pam_max_iter : int
        Maximum PAM swap iterations
    metrics : List[str]
        Metrics to compute (default: all)
    """

    n_pcs: int = 3
    n_qc_pcs: int = 0
    n_uv_pcs: int = 3
    n_wv_pcs: int = 3
    kclust: List[int] = field(default_factory=lambda: [2, 3, 4, 5])
    scale_features: bool = True
    pam_max_iter: int = 100
    metrics: List[str] = field(default_factory=lambda: list(METRIC_NAMES))

    def __post_init__(self):
        unknown = [m for m in self.metrics if m not in METRICS]
        if unknown:
            raise ValueError(f"Unknown metrics: {unknown}. Known: {METRIC_NAMES}")
        if self.n_pcs < 1:
            raise ValueError(f"n_pcs must be >= 1, got {self.n_pcs}")
        if self.n_qc_pcs < 0 or self.n_uv_pcs < 0 or self.n_wv_pcs < 0:
            raise ValueError("Component counts must be non-negative")
        if any(int(k) < 2 for k in self.kclust):
            raise ValueError(f"kclust values must be >= 2, got {self.kclust}")

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "MetricConfig":
        """Load configuration from YAML file (optionally under ``metrics``)."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if "metrics" in data and isinstance(data["metrics"], dict):
            data = data["metrics"]
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_pcs": self.n_pcs,
            "n_qc_pcs": self.n_qc_pcs,
            "n_uv_pcs": self.n_uv_pcs,
            "n_wv_pcs": self.n_wv_pcs,
            "kclust": list(self.kclust),
            "scale_features": self.scale_features,
            "pam_max_iter": self.pam_max_iter,
            "metrics": list(self.metrics),
        }
