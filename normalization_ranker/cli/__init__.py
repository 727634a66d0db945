"""Command-line interface for normalization-ranker."""

from .main import cli

__all__ = ["cli"]
