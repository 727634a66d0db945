"""Shared utilities."""

from .stats import nan_mean, nan_median, zscore

__all__ = ["nan_mean", "nan_median", "zscore"]
