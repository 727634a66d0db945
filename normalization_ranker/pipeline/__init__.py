"""Run orchestration: YAML run configuration, structured logging, runner."""

from .config import RunConfig
from .logger import ColoredFormatter, PipelineLogger
from .runner import RunArtifacts, run_from_config

__all__ = [
    "RunConfig",
    "ColoredFormatter",
    "PipelineLogger",
    "RunArtifacts",
    "run_from_config",
]
