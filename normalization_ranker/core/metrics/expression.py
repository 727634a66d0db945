"""Correlation and relative-log-expression metrics."""

from typing import Tuple

import numpy as np
from scipy.stats import rankdata

from ..errors import MetricUnavailable

_NORM_TOL = 1e-12


def max_squared_rank_correlation(left: np.ndarray, right: np.ndarray) -> float:
    """Largest squared Spearman correlation between columns of two matrices.

    Constant columns have no defined correlation and are ignored.

    Parameters
    ----------
    left : np.ndarray
        Samples x components
    right : np.ndarray
        Samples x components (same samples, same order)

    Returns
    -------
    float
        Value in [0, 1]

    Raises
    ------
    MetricUnavailable
        If either side has no non-constant column.
    """
    left = np.asarray(left, dtype=float)
    right = np.asarray(right, dtype=float)
    if left.ndim == 1:
        left = left[:, None]
    if right.ndim == 1:
        right = right[:, None]
    if left.shape[0] != right.shape[0]:
        raise ValueError(f"Sample counts differ: {left.shape[0]} vs {right.shape[0]}")

    def standardized(values: np.ndarray) -> np.ndarray:
        ranks = rankdata(values, axis=0)
        ranks = ranks - ranks.mean(axis=0)
        norms = np.linalg.norm(ranks, axis=0)
        usable = norms > _NORM_TOL
        return ranks[:, usable] / norms[usable]

    a = standardized(left)
    b = standardized(right)
    if a.shape[1] == 0 or b.shape[1] == 0:
        raise MetricUnavailable("no non-constant component to correlate")
    corr = a.T @ b
    return float(np.clip(np.max(corr ** 2), 0.0, 1.0))


def relative_log_expression(normalized: np.ndarray) -> np.ndarray:
    """log1p values minus each feature's median across samples.

    Input and output are features x samples.
    """
    log_values = np.log1p(np.asarray(normalized, dtype=float))
    return log_values - np.median(log_values, axis=1, keepdims=True)


def rle_statistics(normalized: np.ndarray) -> Tuple[float, float]:
    """RLE_MED and RLE_IQR of a normalized matrix.

    RLE_MED is the mean over samples of the squared per-sample median RLE;
    RLE_IQR is the mean over samples of the per-sample RLE inter-quartile
    range. Both are non-negative.

    Raises
    ------
    MetricUnavailable
        If the RLE matrix contains non-finite values.
    """
    normalized = np.asarray(normalized, dtype=float)
    if np.any(normalized <= -1):
        raise MetricUnavailable("normalized values below -1 cannot be log1p-transformed")
    rle = relative_log_expression(normalized)
    if not np.all(np.isfinite(rle)):
        raise MetricUnavailable("relative log expression is not finite")

    medians = np.median(rle, axis=0)
    q75, q25 = np.percentile(rle, [75, 25], axis=0)
    rle_med = float(np.mean(medians ** 2))
    rle_iqr = float(np.mean(np.maximum(q75 - q25, 0.0)))
    return rle_med, rle_iqr
