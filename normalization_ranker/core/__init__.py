"""Core computational modules for normalization-ranker.

This package contains the engine components, leaf to root:
- catalog: stages, step options and registered normalization transforms
- enumeration: consistent pipeline configurations from a catalog
- execution: apply a configuration to the count matrix
- metrics: quality metric battery for a normalized matrix
- ranking: composite scores and the ranked comparison table
- evaluation: worker-pool engine tying the components together
"""
