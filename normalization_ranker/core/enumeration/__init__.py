"""Configuration enumeration module.

Cartesian-products the stage menus of a StepCatalog into pipeline
configurations and drops the inconsistent ones (biological adjustment
without batch adjustment).
"""

from .configuration import LABEL_SEPARATOR, PipelineConfiguration
from .enumerator import (
    MISSING_MODES,
    ConfigurationEnumerator,
    EnumerationResult,
    check_prerequisites,
    expected_size,
    is_consistent,
)

__all__ = [
    "LABEL_SEPARATOR",
    "PipelineConfiguration",
    "MISSING_MODES",
    "ConfigurationEnumerator",
    "EnumerationResult",
    "check_prerequisites",
    "expected_size",
    "is_consistent",
]
