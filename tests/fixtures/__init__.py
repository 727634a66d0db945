"""Test fixtures and synthetic data generators."""

from .mock_counts import create_constant_counts, create_mock_counts, write_mock_run

__all__ = [
    "create_constant_counts",
    "create_mock_counts",
    "write_mock_run",
]
