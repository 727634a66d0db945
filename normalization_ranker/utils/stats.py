"""Statistical utilities for normalization-ranker.

Provides NaN-aware standardization and aggregation used when ranking
configurations.
"""

from __future__ import annotations

from typing import Iterable, Union

import numpy as np

ArrayLike = Union[Iterable[float], np.ndarray]


def _to_clean_array(values: ArrayLike) -> np.ndarray:
    """Convert input to clean numpy array, removing non-finite values.

    Parameters
    ----------
    values : ArrayLike
        Input values (list, iterable, or array).

    Returns
    -------
    np.ndarray
        Clean array with only finite values.
    """
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return arr
    return arr[np.isfinite(arr)]


def zscore(values: ArrayLike) -> np.ndarray:
    """Standardize finite values with the population standard deviation.

    Non-finite inputs stay NaN. A column without spread (all finite values
    equal, or a single finite value) maps to zero.

    Parameters
    ----------
    values : ArrayLike
        Input values.

    Returns
    -------
    np.ndarray
        Z-scores, same length as ``values``.
    """
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return arr

    mask = np.isfinite(arr)
    clean = arr[mask]
    result = np.full_like(arr, np.nan, dtype=float)
    if clean.size == 0:
        return result

    scale = clean.std(ddof=0)
    if not np.isfinite(scale) or scale <= 1e-12 * max(1.0, float(np.abs(clean).max())):
        result[mask] = 0.0
    else:
        result[mask] = (clean - clean.mean()) / scale
    return result


def nan_mean(values: ArrayLike) -> float:
    """Mean of the finite values; NaN if there are none."""
    arr = _to_clean_array(values)
    return float(arr.mean()) if arr.size else float("nan")


def nan_median(values: ArrayLike) -> float:
    """Median of the finite values; NaN if there are none."""
    arr = _to_clean_array(values)
    return float(np.median(arr)) if arr.size else float("nan")
