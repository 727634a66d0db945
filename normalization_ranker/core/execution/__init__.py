"""Transform execution module.

Applies one pipeline configuration to the shared count matrix and returns
the normalized matrix.
"""

from .executor import AdjustmentDesign, TransformExecutor

__all__ = [
    "AdjustmentDesign",
    "TransformExecutor",
]
