"""Control-based variance removal and factor adjustment.

These transforms work on the log1p scale. The RUV transform estimates
unwanted factors from negative control features; the factor transform turns
categorical labels into indicator columns. ``remove_unwanted_variation``
fits one least-squares model combining both and subtracts the unwanted part
while leaving protected (biological) terms in place.
"""

import numpy as np
import pandas as pd

from ..errors import TransformError
from .registry import register_transform


@register_transform("ruvg", "ruv", "RUVg (control-gene SVD)")
def ruvg_factors(log_values: np.ndarray, control_rows: np.ndarray, k: int) -> np.ndarray:
    """Estimate ``k`` unwanted factors from control features.

    The control sub-matrix is centred per feature across samples and the
    leading ``k`` left singular vectors are returned.

    Parameters
    ----------
    log_values : np.ndarray
        log1p-scale values (features x samples)
    control_rows : np.ndarray
        Row positions of the negative control features
    k : int
        Number of unwanted factors

    Returns
    -------
    np.ndarray
        Unwanted factors W (samples x k)
    """
    control_rows = np.asarray(control_rows, dtype=int)
    n_samples = log_values.shape[1]
    if k < 1:
        raise TransformError(f"RUV needs k >= 1, got {k}", stage="ruv")
    if k >= n_samples:
        raise TransformError(
            f"RUV k={k} must be smaller than the number of samples ({n_samples})",
            stage="ruv",
        )
    if k > control_rows.size:
        raise TransformError(
            f"RUV k={k} exceeds the number of control features ({control_rows.size})",
            stage="ruv",
        )

    controls = log_values[control_rows, :].T
    centered = controls - controls.mean(axis=0)
    try:
        u, s, _ = np.linalg.svd(centered, full_matrices=False)
    except np.linalg.LinAlgError as e:
        raise TransformError(f"SVD of control features did not converge: {e}", stage="ruv")

    # Absolute scale: constant controls centre to rounding noise only
    scale = max(1.0, float(np.abs(controls).max())) if controls.size else 1.0
    tol = scale * max(centered.shape) * np.finfo(float).eps
    if s.size < k or s[k - 1] <= tol:
        raise TransformError(
            f"Control features have rank below k={k}; cannot estimate unwanted factors",
            stage="ruv",
        )
    return u[:, :k]


@register_transform("factor_design", "factor", "categorical indicator design")
def factor_design(labels: np.ndarray) -> np.ndarray:
    """Treatment-coded indicator columns for categorical ``labels``.

    A factor with a single level contributes no columns.
    """
    dummies = pd.get_dummies(pd.Categorical(np.asarray(labels).astype(str)), drop_first=True, dtype=float)
    return dummies.to_numpy()


def remove_unwanted_variation(
    log_values: np.ndarray,
    unwanted: np.ndarray,
    protected: np.ndarray,
) -> np.ndarray:
    """Regress out unwanted terms while protecting biological terms.

    Fits ``Y ~ 1 + protected + unwanted`` per feature and subtracts the
    fitted unwanted component.

    Parameters
    ----------
    log_values : np.ndarray
        log1p-scale values (features x samples)
    unwanted : np.ndarray
        Unwanted design columns (samples x p_u)
    protected : np.ndarray
        Protected design columns (samples x p_b)

    Returns
    -------
    np.ndarray
        Adjusted log-scale values (features x samples)
    """
    y = log_values.T
    n_samples = y.shape[0]
    if unwanted.shape[1] == 0:
        return log_values

    design = np.hstack([np.ones((n_samples, 1)), protected, unwanted])
    if design.shape[1] >= n_samples:
        raise TransformError(
            f"Adjustment model has {design.shape[1]} terms for {n_samples} samples; "
            "no residual degrees of freedom",
            stage="adjustment",
        )

    try:
        coef, _, _, _ = np.linalg.lstsq(design, y, rcond=None)
    except np.linalg.LinAlgError as e:
        raise TransformError(f"Least-squares adjustment did not converge: {e}", stage="adjustment")

    n_kept = 1 + protected.shape[1]
    adjusted = y - unwanted @ coef[n_kept:, :]
    return adjusted.T
