"""Principal-component projections used by the metrics.

Samples are observations and features are variables. Zero-variance
features are dropped before PCA; when too little variation remains the
projection is unavailable rather than NaN.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from sklearn.decomposition import PCA

from ..errors import MetricUnavailable
from ..inputs import EvaluationInputs

_VAR_TOL = 1e-12


def principal_components(
    data: np.ndarray,
    n_components: int,
    scale: bool = True,
) -> np.ndarray:
    """Leading principal-component scores.

    Parameters
    ----------
    data : np.ndarray
        Observations x variables
    n_components : int
        Requested number of components (clipped to what the data supports)
    scale : bool
        Scale variables to unit variance

    Returns
    -------
    np.ndarray
        Scores (observations x components)

    Raises
    ------
    MetricUnavailable
        If fewer than two observations, no variable with non-zero variance,
        or no component with non-zero variance remain.
    """
    data = np.asarray(data, dtype=float)
    n_obs = data.shape[0]
    if n_obs < 2:
        raise MetricUnavailable(f"need at least 2 samples for PCA, got {n_obs}")
    if not np.all(np.isfinite(data)):
        raise MetricUnavailable("non-finite values in PCA input")

    std = data.std(axis=0)
    varying = std > _VAR_TOL
    if not np.any(varying):
        raise MetricUnavailable("no feature varies across samples")

    x = data[:, varying] - data[:, varying].mean(axis=0)
    if scale:
        x = x / std[varying]

    n = min(int(n_components), n_obs - 1, x.shape[1])
    if n < 1:
        raise MetricUnavailable("not enough samples or features for PCA")

    pca = PCA(n_components=n, svd_solver="full")
    scores = pca.fit_transform(x)
    keep = pca.explained_variance_ > _VAR_TOL
    if not np.any(keep):
        raise MetricUnavailable("principal components carry no variance")
    return scores[:, keep]


def expression_components(
    normalized: np.ndarray,
    n_components: int,
    scale: bool = True,
) -> np.ndarray:
    """PCs of log1p normalized expression (features x samples input)."""
    normalized = np.asarray(normalized, dtype=float)
    if np.any(normalized <= -1):
        raise MetricUnavailable("normalized values below -1 cannot be log1p-transformed")
    return principal_components(np.log1p(normalized).T, n_components, scale=scale)


@dataclass
class Projection:
    """A reference projection or the reason it is unavailable."""

    scores: Optional[np.ndarray] = None
    reason: Optional[str] = None

    def require(self) -> np.ndarray:
        if self.scores is None:
            raise MetricUnavailable(self.reason or "reference projection unavailable")
        return self.scores


def _safe_projection(builder) -> Projection:
    try:
        return Projection(scores=builder())
    except MetricUnavailable as e:
        return Projection(reason=e.reason)


@dataclass
class ReferenceProjections:
    """Projections of the raw inputs, computed once per run.

    Attributes
    ----------
    uv : Projection
        PCs of raw log1p negative-control counts
    wv : Projection
        PCs of raw log1p positive-control counts
    qc : Projection
        PCs of the QC covariate table
    """

    uv: Projection
    wv: Projection
    qc: Projection

    @classmethod
    def from_inputs(
        cls,
        inputs: EvaluationInputs,
        n_uv_pcs: int = 3,
        n_wv_pcs: int = 3,
        n_qc_pcs: int = 0,
    ) -> "ReferenceProjections":
        counts = inputs.counts

        def controls(feature_set, n, kind):
            if feature_set is None:
                return Projection(reason=f"no {kind} control features supplied")
            if n == 0:
                return Projection(reason=f"{kind} control components set to 0")
            raw = np.log1p(counts.loc[list(feature_set.features)].to_numpy(dtype=float)).T
            return _safe_projection(lambda: principal_components(raw, n, scale=True))

        if inputs.qc is None:
            qc = Projection(reason="no QC covariates supplied")
        elif n_qc_pcs == 0:
            qc = Projection(reason="QC components set to 0")
        else:
            qc_values = inputs.qc.to_numpy(dtype=float)
            qc = _safe_projection(lambda: principal_components(qc_values, n_qc_pcs, scale=True))

        return cls(
            uv=controls(inputs.negative_controls, n_uv_pcs, "negative"),
            wv=controls(inputs.positive_controls, n_wv_pcs, "positive"),
            qc=qc,
        )
