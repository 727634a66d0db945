"""Evaluation engine configuration."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..enumeration import MISSING_MODES

BACKENDS = ("thread", "process", "sequential")


@dataclass
class EngineConfig:
    """Worker pool and run-control parameters.

    Attributes
    ----------
    n_workers : int
        Maximum number of configurations evaluated at once (default: the
        number of available CPUs)
    backend : str
        "thread" (default), "process" (joblib loky workers) or "sequential"
    timeout : float, optional
        Run-level budget in seconds; once exceeded no further configuration
        is dispatched
    on_missing : str
        "raise" or "gate" for options whose inputs were not supplied
    batch_size : int
        Configurations per worker task with the process backend
    """

    n_workers: int = field(default_factory=lambda: os.cpu_count() or 1)
    backend: str = "thread"
    timeout: Optional[float] = None
    on_missing: str = "raise"
    batch_size: int = 4

    def __post_init__(self):
        if self.n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {self.n_workers}")
        if self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {BACKENDS}, got '{self.backend}'")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.on_missing not in MISSING_MODES:
            raise ValueError(f"on_missing must be one of {MISSING_MODES}, got '{self.on_missing}'")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")

    @property
    def is_sequential(self) -> bool:
        return self.backend == "sequential" or self.n_workers == 1

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "EngineConfig":
        """Load configuration from YAML file (optionally under ``engine``)."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if isinstance(data.get("engine"), dict):
            data = data["engine"]
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_workers": self.n_workers,
            "backend": self.backend,
            "timeout": self.timeout,
            "on_missing": self.on_missing,
            "batch_size": self.batch_size,
        }
