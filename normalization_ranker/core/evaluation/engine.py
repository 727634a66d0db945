"""Evaluation engine: enumerate, execute, score and rank configurations."""

import logging
import time
from typing import List, Optional

import pandas as pd

from ..catalog import StepCatalog
from ..enumeration import ConfigurationEnumerator, EnumerationResult, PipelineConfiguration
from ..execution import TransformExecutor
from ..inputs import EvaluationInputs
from ..metrics import MetricConfig, MetricSuite, ScoreRow
from ..ranking import RankedResult, Ranker, RankerConfig
from .config import EngineConfig
from .parallel import AbortSignal, Dispatcher, DispatchOutcome, ResultCallback

logger = logging.getLogger(__name__)


class EvaluationEngine:
    """Run every consistent configuration of a catalog and rank the results.

    The engine owns the shared read-only state of a run: the validated
    inputs, the metric suite (with its reference projections computed
    once) and the executor. Normalized matrices are discarded after
    scoring; ``get_normalized`` recomputes one on demand.

    Parameters
    ----------
    inputs : EvaluationInputs
        Validated inputs
    catalog : StepCatalog, optional
        Stage menus (default: ``StepCatalog.default()``)
    metric_config : MetricConfig, optional
        Metric parameters
    engine_config : EngineConfig, optional
        Worker pool and run-control parameters
    ranker_config : RankerConfig, optional
        Ranking parameters

    Example
    -------
    >>> engine = EvaluationEngine(inputs, StepCatalog.default(max_k=2),
    ...                           engine_config=EngineConfig(n_workers=4))
    >>> result = engine.run()
    >>> result.top(10).to_frame()
    >>> best = engine.get_normalized(result.best.label)
    """

    def __init__(
        self,
        inputs: EvaluationInputs,
        catalog: Optional[StepCatalog] = None,
        metric_config: Optional[MetricConfig] = None,
        engine_config: Optional[EngineConfig] = None,
        ranker_config: Optional[RankerConfig] = None,
    ):
        self.inputs = inputs
        self.catalog = catalog or StepCatalog.default()
        self.metric_config = metric_config or MetricConfig()
        self.engine_config = engine_config or EngineConfig()
        self.ranker = Ranker(ranker_config)

        self.enumerator = ConfigurationEnumerator(
            self.catalog, inputs.available, on_missing=self.engine_config.on_missing
        )
        self.executor = TransformExecutor(inputs)
        self.suite = MetricSuite(inputs, self.metric_config)
        self._enumeration: Optional[EnumerationResult] = None
        self.last_outcome: Optional[DispatchOutcome] = None

    def enumerate(self) -> EnumerationResult:
        """Enumerate (once) the configurations of this run.

        Raises
        ------
        ConfigurationError
            If an option demands an input that was not supplied and
            ``on_missing`` is "raise".
        """
        if self._enumeration is None:
            self._enumeration = self.enumerator.enumerate()
        return self._enumeration

    @property
    def configurations(self) -> List[PipelineConfiguration]:
        return self.enumerate().configurations

    def evaluate(
        self,
        configurations: Optional[List[PipelineConfiguration]] = None,
        abort: Optional[AbortSignal] = None,
        on_result: Optional[ResultCallback] = None,
    ) -> DispatchOutcome:
        """Normalize and score configurations without ranking them."""
        if configurations is None:
            configurations = self.configurations
        dispatcher = Dispatcher(self.inputs, self.executor, self.suite, self.engine_config)
        outcome = dispatcher.run(configurations, abort=abort, on_result=on_result)
        self.last_outcome = outcome
        return outcome

    def run(
        self,
        abort: Optional[AbortSignal] = None,
        on_result: Optional[ResultCallback] = None,
    ) -> RankedResult:
        """Evaluate every configuration and rank the results.

        A partial run (aborted or timed out) still returns a ranking of the
        configurations that completed; the others are listed in
        ``RankedResult.skipped``.

        Parameters
        ----------
        abort : AbortSignal, optional
            Stops further dispatch when set
        on_result : callable, optional
            Called as ``on_result(configuration, row)`` for each completed
            configuration, in completion order

        Returns
        -------
        RankedResult
            Ranked comparison of the evaluated configurations
        """
        start = time.time()
        enumeration = self.enumerate()
        logger.info(
            "Evaluating %d configurations on %d features x %d samples",
            len(enumeration), len(self.inputs.features), len(self.inputs.samples),
        )

        outcome = self.evaluate(enumeration.configurations, abort=abort, on_result=on_result)
        n_failed = sum(1 for row in outcome.rows if row.is_failed)
        if n_failed:
            logger.warning("%d of %d configurations failed", n_failed, len(outcome.rows))
        if outcome.aborted:
            logger.warning("Run aborted after %d configurations", len(outcome.rows))

        result = self.ranker.rank(outcome.rows, enumeration.configurations, skipped=outcome.skipped)
        logger.info("Run completed in %.1fs", time.time() - start)
        return result

    def build(self, label: str) -> PipelineConfiguration:
        """Configuration named by ``label``, keeping its creation index when enumerated."""
        for configuration in self.configurations:
            if configuration.label == label:
                return configuration
        return self.enumerator.build(label)

    def get_normalized(self, label: str) -> pd.DataFrame:
        """Re-execute one configuration and return its normalized matrix.

        Raises
        ------
        ConfigurationError
            If the label does not name a valid configuration of the catalog.
        TransformError
            If the configuration fails to execute.
        """
        return self.executor.run(self.enumerator.build(label))

    def score(self, label: str) -> ScoreRow:
        """Normalize and score a single configuration."""
        configuration = self.build(label)
        normalized = self.executor.run_values(configuration)
        return self.suite.score(normalized, label=configuration.label, index=configuration.index)
