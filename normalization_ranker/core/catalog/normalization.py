"""Imputation and scaling transforms.

Every function here takes a features x samples array of non-negative counts
and returns an array of the same shape. They depend on the matrix only:
factors and control sets never reach them.
"""

import numpy as np
from scipy.stats import rankdata

from ..errors import TransformError
from .registry import register_transform


def _check_factors(factors: np.ndarray, stage: str) -> np.ndarray:
    factors = np.asarray(factors, dtype=float)
    if not np.all(np.isfinite(factors)) or np.any(factors <= 0):
        raise TransformError(
            f"Scale factors must be positive and finite, got {np.round(factors, 6).tolist()}",
            stage=stage,
        )
    return factors


@register_transform("mean_impute", "imputation", "mean imputation of zeros")
def mean_impute_zeros(values: np.ndarray) -> np.ndarray:
    """Replace zeros with the mean of the feature's non-zero values.

    Features that are zero in every sample stay zero.
    """
    values = np.asarray(values, dtype=float)
    nonzero = values > 0
    n_nonzero = nonzero.sum(axis=1)
    sums = np.where(nonzero, values, 0.0).sum(axis=1)
    means = np.divide(sums, n_nonzero, out=np.zeros_like(sums), where=n_nonzero > 0)
    return np.where(nonzero, values, means[:, None])


@register_transform("fq", "scaling", "full quantile")
def full_quantile(values: np.ndarray) -> np.ndarray:
    """Full-quantile normalization.

    Each sample's sorted values are replaced by the mean sorted profile;
    ties share the value of their lowest rank.
    """
    values = np.asarray(values, dtype=float)
    ranks = rankdata(values, method="min", axis=0).astype(int)
    reference = np.sort(values, axis=0).mean(axis=1)
    return reference[ranks - 1]


@register_transform("uq", "scaling", "upper quartile (positive counts)")
def upper_quartile_positive(values: np.ndarray) -> np.ndarray:
    """Scale each sample by the upper quartile of its positive counts.

    Scale factors are centred on their mean so the overall magnitude is
    preserved.
    """
    values = np.asarray(values, dtype=float)
    uq = []
    for column in values.T:
        positive = column[column > 0]
        uq.append(np.quantile(positive, 0.75) if positive.size else np.nan)
    uq = _check_factors(np.array(uq), "scaling")
    return values / (uq / uq.mean())


def _tmm_pair(
    obs: np.ndarray,
    ref: np.ndarray,
    lib_obs: float,
    lib_ref: float,
    logratio_trim: float,
    sum_trim: float,
    a_cutoff: float,
) -> float:
    """TMM factor of one sample against the reference sample."""
    with np.errstate(divide="ignore", invalid="ignore"):
        log_obs = np.log2(obs / lib_obs)
        log_ref = np.log2(ref / lib_ref)
        log_r = log_obs - log_ref
        abs_e = (log_obs + log_ref) / 2
        var = (lib_obs - obs) / lib_obs / obs + (lib_ref - ref) / lib_ref / ref

    keep = np.isfinite(log_r) & np.isfinite(abs_e) & (abs_e > a_cutoff)
    log_r, abs_e, var = log_r[keep], abs_e[keep], var[keep]

    if log_r.size == 0 or np.max(np.abs(log_r)) < 1e-6:
        return 1.0

    n = log_r.size
    lo_l = np.floor(n * logratio_trim) + 1
    hi_l = n + 1 - lo_l
    lo_s = np.floor(n * sum_trim) + 1
    hi_s = n + 1 - lo_s

    rank_r = rankdata(log_r)
    rank_e = rankdata(abs_e)
    trimmed = (rank_r >= lo_l) & (rank_r <= hi_l) & (rank_e >= lo_s) & (rank_e <= hi_s)
    if not np.any(trimmed):
        return 1.0

    weights = 1.0 / var[trimmed]
    factor = np.sum(log_r[trimmed] * weights) / np.sum(weights)
    if not np.isfinite(factor):
        factor = 0.0
    return float(2 ** factor)


def tmm_factors(
    values: np.ndarray,
    logratio_trim: float = 0.3,
    sum_trim: float = 0.05,
    a_cutoff: float = -1e10,
) -> np.ndarray:
    """Trimmed mean of M-values normalization factors.

    The reference sample is the one whose upper quartile (as a fraction of
    library size) is closest to the mean upper quartile. Factors are scaled
    to a geometric mean of one.

    Parameters
    ----------
    values : np.ndarray
        Counts (features x samples)
    logratio_trim : float
        Fraction of M-values trimmed from each tail
    sum_trim : float
        Fraction of A-values trimmed from each tail
    a_cutoff : float
        Minimum A-value for a feature to be used

    Returns
    -------
    np.ndarray
        One factor per sample
    """
    values = np.asarray(values, dtype=float)
    lib = values.sum(axis=0)
    if np.any(lib <= 0):
        raise TransformError("TMM requires every sample to have a positive library size", stage="scaling")

    f75 = np.quantile(values / lib, 0.75, axis=0)
    if np.median(f75) < 1e-20:
        ref_idx = int(np.argmax(np.sqrt(values).sum(axis=0)))
    else:
        ref_idx = int(np.argmin(np.abs(f75 - f75.mean())))

    factors = np.array([
        _tmm_pair(
            values[:, j], values[:, ref_idx], lib[j], lib[ref_idx],
            logratio_trim, sum_trim, a_cutoff,
        )
        for j in range(values.shape[1])
    ])
    factors = _check_factors(factors, "scaling")
    return factors / np.exp(np.mean(np.log(factors)))


@register_transform("tmm", "scaling", "trimmed mean of M-values")
def trimmed_mean_of_m(values: np.ndarray) -> np.ndarray:
    """Scale samples to a common effective library size using TMM factors."""
    values = np.asarray(values, dtype=float)
    effective = values.sum(axis=0) * tmm_factors(values)
    effective = _check_factors(effective, "scaling")
    return values * (effective.mean() / effective)


def deseq_size_factors(values: np.ndarray) -> np.ndarray:
    """Median-of-ratios size factors.

    Only features with a positive count in every sample contribute to the
    geometric-mean reference.
    """
    values = np.asarray(values, dtype=float)
    with np.errstate(divide="ignore"):
        log_values = np.log(values)
    log_geo = log_values.mean(axis=1)
    usable = np.isfinite(log_geo)
    if not np.any(usable):
        raise TransformError(
            "Median-of-ratios needs at least one feature with positive counts in every sample",
            stage="scaling",
        )
    ratios = log_values[usable] - log_geo[usable, None]
    return _check_factors(np.exp(np.median(ratios, axis=0)), "scaling")


@register_transform("deseq", "scaling", "median of ratios (DESeq)")
def median_of_ratios(values: np.ndarray) -> np.ndarray:
    """Divide each sample by its median-of-ratios size factor."""
    values = np.asarray(values, dtype=float)
    return values / deseq_size_factors(values)
