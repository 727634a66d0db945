"""Exception taxonomy for normalization ranking.

Fatal errors (``InputError``, ``CatalogError``) stop a run before any
configuration is scheduled. ``ConfigurationError`` excludes a configuration
from scheduling, ``TransformError`` isolates one configuration at execution
time, and ``MetricUnavailable`` is a declared "no value" state rather than a
failure.
"""


class NormalizationRankerError(Exception):
    """Base class for all package errors."""

    pass


class InputError(NormalizationRankerError):
    """Raised when the count matrix, factors or feature sets are malformed."""

    pass


class ConfigurationError(NormalizationRankerError):
    """Raised for an invalid option combination or a missing prerequisite."""

    pass


class CatalogError(ConfigurationError):
    """Raised when a step catalog is malformed (empty stage, duplicates...)."""

    pass


class TransformError(NormalizationRankerError):
    """Raised when a transform fails numerically.

    Parameters
    ----------
    message : str
        Description of the failure
    stage : str, optional
        Stage in which the failure happened
    """

    def __init__(self, message: str, stage: str = None):
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        base = super().__str__()
        if self.stage:
            return f"[{self.stage}] {base}"
        return base


class MetricUnavailable(NormalizationRankerError):
    """Raised inside a metric when its inputs cannot support a value.

    Parameters
    ----------
    reason : str
        Why the metric has no value for this configuration
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
