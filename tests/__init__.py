"""Test suite for normalization-ranker.

Test organization:
- fixtures/: Synthetic count data and run-directory generators
- unit/: Unit tests for individual modules and the CLI

Run tests with:
    pytest tests/
    pytest tests/unit/
    pytest tests/ -v --tb=short
"""
