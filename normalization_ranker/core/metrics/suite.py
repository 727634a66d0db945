"""Metric battery: score one normalized matrix into a ScoreRow."""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import numpy as np
import pandas as pd

from ..errors import MetricUnavailable
from ..inputs import EvaluationInputs
from .config import METRICS, MetricConfig
from .expression import max_squared_rank_correlation, rle_statistics
from .projection import ReferenceProjections, expression_components
from .silhouette import label_silhouette, pam_silhouette

logger = logging.getLogger(__name__)


@dataclass
class ScoreRow:
    """Metric values of one configuration.

    Unavailable metrics are NaN in ``scores`` and carry a reason in
    ``unavailable``.

    Attributes
    ----------
    label : str
        Configuration label
    index : int
        Configuration creation index
    scores : Dict[str, float]
        Metric name -> value (NaN when unavailable)
    unavailable : Dict[str, str]
        Metric name -> reason for unavailable metrics
    error : str, optional
        Failure message when the configuration could not be executed
    duration : float
        Seconds spent normalizing and scoring
    """

    label: str
    index: int
    scores: Dict[str, float] = field(default_factory=dict)
    unavailable: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    duration: float = 0.0

    @classmethod
    def failed(
        cls,
        label: str,
        index: int,
        metric_names: List[str],
        error: str,
        duration: float = 0.0,
    ) -> "ScoreRow":
        """Row for a configuration whose execution failed."""
        return cls(
            label=label,
            index=index,
            scores={name: math.nan for name in metric_names},
            unavailable={name: f"configuration failed: {error}" for name in metric_names},
            error=error,
            duration=duration,
        )

    @property
    def is_failed(self) -> bool:
        return self.error is not None

    @property
    def available(self) -> Dict[str, float]:
        return {k: v for k, v in self.scores.items() if k not in self.unavailable}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "index": self.index,
            "scores": {k: (None if math.isnan(v) else v) for k, v in self.scores.items()},
            "unavailable": dict(self.unavailable),
            "error": self.error,
            "duration": self.duration,
        }


class MetricSuite:
    """Compute the metric battery for normalized matrices.

    Reference projections of the raw controls and QC covariates are built
    once, at construction, and shared read-only by every call to
    ``score``.

    Parameters
    ----------
    inputs : EvaluationInputs
        Validated inputs (raw counts, controls, factors, QC)
    config : MetricConfig, optional
        Metric parameters

    Example
    -------
    >>> suite = MetricSuite(inputs, MetricConfig(n_pcs=3))
    >>> row = suite.score(normalized, label="none,tmm,no_uv,batch,bio", index=7)
    >>> row.scores["BIO_SIL"]
    """

    def __init__(self, inputs: EvaluationInputs, config: Optional[MetricConfig] = None):
        self.inputs = inputs
        self.config = config or MetricConfig()
        self.references = ReferenceProjections.from_inputs(
            inputs,
            n_uv_pcs=self.config.n_uv_pcs,
            n_wv_pcs=self.config.n_wv_pcs,
            n_qc_pcs=self.config.n_qc_pcs,
        )
        samples = inputs.samples
        self._bio = inputs.bio.aligned(samples) if inputs.bio is not None else None
        self._batch = inputs.batch.aligned(samples) if inputs.batch is not None else None

    @property
    def metric_names(self) -> List[str]:
        return list(self.config.metrics)

    def _pc_metrics(self) -> Dict[str, Callable[[np.ndarray], float]]:
        def bio_sil(pcs):
            if self._bio is None:
                raise MetricUnavailable("no biological factor supplied")
            return label_silhouette(pcs, self._bio)

        def batch_sil(pcs):
            if self._batch is None:
                raise MetricUnavailable("no batch factor supplied")
            return label_silhouette(pcs, self._batch)

        return {
            "BIO_SIL": bio_sil,
            "BATCH_SIL": batch_sil,
            "PAM_SIL": lambda pcs: pam_silhouette(
                pcs, self.config.kclust, max_iter=self.config.pam_max_iter
            ),
            "EXP_QC_COR": lambda pcs: max_squared_rank_correlation(pcs, self.references.qc.require()),
            "EXP_UV_COR": lambda pcs: max_squared_rank_correlation(pcs, self.references.uv.require()),
            "EXP_WV_COR": lambda pcs: max_squared_rank_correlation(pcs, self.references.wv.require()),
        }

    def score(
        self,
        normalized: Union[pd.DataFrame, np.ndarray],
        label: str = "",
        index: int = 0,
    ) -> ScoreRow:
        """Score one normalized matrix (features x samples).

        Never raises for insufficient inputs: such metrics are recorded as
        unavailable.
        """
        values = normalized.to_numpy(dtype=float) if isinstance(normalized, pd.DataFrame) else np.asarray(normalized, dtype=float)
        row = ScoreRow(label=label, index=index)
        wanted = self.metric_names

        def record(name: str, compute: Callable[[], float]) -> None:
            try:
                value = float(compute())
                if not math.isfinite(value):
                    raise MetricUnavailable("metric evaluated to a non-finite value")
                row.scores[name] = value
            except MetricUnavailable as e:
                row.scores[name] = math.nan
                row.unavailable[name] = e.reason

        pc_metrics = {k: v for k, v in self._pc_metrics().items() if k in wanted}
        if pc_metrics:
            try:
                pcs = expression_components(values, self.config.n_pcs, scale=self.config.scale_features)
            except MetricUnavailable as e:
                pcs = None
                for name in pc_metrics:
                    row.scores[name] = math.nan
                    row.unavailable[name] = f"expression PCs unavailable: {e.reason}"
            if pcs is not None:
                for name, func in pc_metrics.items():
                    record(name, lambda func=func: func(pcs))

        rle_wanted = [name for name in ("RLE_MED", "RLE_IQR") if name in wanted]
        rle_stats: Dict[str, float] = {}

        def rle_value(name: str) -> float:
            if not rle_stats:
                rle_stats.update(zip(("RLE_MED", "RLE_IQR"), rle_statistics(values)))
            return rle_stats[name]

        for name in rle_wanted:
            record(name, lambda name=name: rle_value(name))

        # Keep the configured metric order
        row.scores = {name: row.scores[name] for name in wanted}
        if row.unavailable:
            logger.debug("%s: unavailable metrics %s", label, sorted(row.unavailable))
        return row


def check_bounds(row: ScoreRow) -> List[str]:
    """Metrics of ``row`` outside their theoretical range."""
    violations = []
    for name, value in row.available.items():
        low, high = METRICS[name].bounds
        if not (low - 1e-9 <= value <= high + 1e-9):
            violations.append(f"{name}={value}")
    return violations
