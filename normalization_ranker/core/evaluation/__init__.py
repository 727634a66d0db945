"""Evaluation engine module.

Dispatches configurations to a worker pool, collects their score rows and
ranks them.

Example Usage
-------------
>>> from normalization_ranker.core.evaluation import EvaluationEngine, EngineConfig
>>> engine = EvaluationEngine(inputs, engine_config=EngineConfig(n_workers=4, timeout=600))
>>> result = engine.run()
"""

from .config import BACKENDS, EngineConfig
from .engine import EvaluationEngine
from .parallel import (
    AbortSignal,
    DispatchOutcome,
    Dispatcher,
    ResultBuffer,
    evaluate_batch,
    evaluate_configuration,
)

__all__ = [
    "BACKENDS",
    "EngineConfig",
    "EvaluationEngine",
    "AbortSignal",
    "DispatchOutcome",
    "Dispatcher",
    "ResultBuffer",
    "evaluate_batch",
    "evaluate_configuration",
]
