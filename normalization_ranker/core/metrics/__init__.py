"""Metric battery module.

Scores a normalized matrix with data-driven quality metrics. Each metric has
a sign: +1 if larger is better, -1 if smaller is better.

Metrics
-------
- BIO_SIL (+1): silhouette of biological groups on expression PCs
- BATCH_SIL (-1): silhouette of batches on expression PCs
- PAM_SIL (+1): best silhouette of PAM clustering over ``kclust``
- EXP_QC_COR (-1): max squared rank correlation with QC covariate PCs
- EXP_UV_COR (-1): same, against negative-control PCs
- EXP_WV_COR (+1): same, against positive-control PCs
- RLE_MED (-1): mean squared median relative log expression
- RLE_IQR (-1): mean inter-quartile range of relative log expression

Metrics that cannot be computed for the supplied inputs are recorded as
unavailable (NaN plus a reason) rather than raised.

Example Usage
-------------
>>> from normalization_ranker.core.metrics import MetricSuite, MetricConfig
>>> suite = MetricSuite(inputs, MetricConfig(kclust=[2, 3]))
>>> row = suite.score(normalized, label="none,tmm,no_uv,batch,bio")
"""

from .config import METRIC_NAMES, METRICS, MetricConfig, MetricSpec, metric_signs
from .expression import (
    max_squared_rank_correlation,
    relative_log_expression,
    rle_statistics,
)
from .projection import (
    Projection,
    ReferenceProjections,
    expression_components,
    principal_components,
)
from .silhouette import label_silhouette, pam, pam_silhouette
from .suite import MetricSuite, ScoreRow, check_bounds

__all__ = [
    # Definitions
    "METRIC_NAMES",
    "METRICS",
    "MetricConfig",
    "MetricSpec",
    "metric_signs",
    # Suite
    "MetricSuite",
    "ScoreRow",
    "check_bounds",
    # Building blocks
    "Projection",
    "ReferenceProjections",
    "expression_components",
    "principal_components",
    "label_silhouette",
    "pam",
    "pam_silhouette",
    "max_squared_rank_correlation",
    "relative_log_expression",
    "rle_statistics",
]
