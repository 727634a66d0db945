"""
Parallel evaluation of pipeline configurations.

Each task normalizes one configuration and scores it, holding only its own
normalized matrix. Results are collected into a buffer indexed by creation
index, so the outcome does not depend on completion order.

Backends:
1. sequential: one configuration at a time in the calling thread
2. thread: ThreadPoolExecutor with at most ``n_workers`` tasks in flight
3. process: joblib loky workers, dispatched in waves of ``n_workers`` batches

Dispatch stops when the AbortSignal is set or the run timeout has elapsed.
In-flight tasks are always collected; undispatched configurations are
reported as skipped.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional

from joblib import Parallel, delayed

from ..enumeration import PipelineConfiguration
from ..errors import TransformError
from ..execution import TransformExecutor
from ..inputs import EvaluationInputs
from ..metrics import MetricConfig, MetricSuite, ScoreRow
from .config import EngineConfig

logger = logging.getLogger(__name__)

ResultCallback = Callable[[PipelineConfiguration, ScoreRow], None]


class AbortSignal:
    """Cooperative cancellation flag shared with the dispatcher.

    Example
    -------
    >>> signal = AbortSignal()
    >>> threading.Timer(30.0, signal.abort).start()
    >>> engine.run(abort=signal)
    """

    def __init__(self):
        self._event = threading.Event()

    def abort(self) -> None:
        self._event.set()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


def evaluate_configuration(
    executor: TransformExecutor,
    suite: MetricSuite,
    configuration: PipelineConfiguration,
) -> ScoreRow:
    """Normalize and score one configuration.

    Never raises: a TransformError marks every metric unavailable, and any
    other exception is logged with the configuration label and recorded as
    the row's error.
    """
    start = time.time()
    label = configuration.label
    try:
        normalized = executor.run_values(configuration)
    except TransformError as e:
        logger.debug("%s: transform failed: %s", label, e)
        return ScoreRow.failed(label, configuration.index, suite.metric_names, str(e), time.time() - start)
    except Exception as e:
        logger.warning("%s: unexpected failure during normalization: %s", label, e)
        return ScoreRow.failed(
            label, configuration.index, suite.metric_names,
            f"{type(e).__name__}: {e}", time.time() - start,
        )

    try:
        row = suite.score(normalized, label=label, index=configuration.index)
    except Exception as e:
        logger.warning("%s: unexpected failure during scoring: %s", label, e)
        return ScoreRow.failed(
            label, configuration.index, suite.metric_names,
            f"{type(e).__name__}: {e}", time.time() - start,
        )
    row.duration = time.time() - start
    return row


def evaluate_batch(
    inputs: EvaluationInputs,
    metric_config: MetricConfig,
    configurations: List[PipelineConfiguration],
) -> List[ScoreRow]:
    """Evaluate several configurations in a worker process.

    Builds its own executor and metric suite from the pickled inputs.
    """
    executor = TransformExecutor(inputs)
    suite = MetricSuite(inputs, metric_config)
    return [evaluate_configuration(executor, suite, c) for c in configurations]


@dataclass
class ResultBuffer:
    """Score rows slotted by configuration creation index."""

    configurations: List[PipelineConfiguration]
    slots: Dict[int, ScoreRow] = field(default_factory=dict)

    def put(self, row: ScoreRow) -> None:
        self.slots[row.index] = row

    @property
    def rows(self) -> List[ScoreRow]:
        return [self.slots[i] for i in sorted(self.slots)]

    @property
    def missing(self) -> List[PipelineConfiguration]:
        return [c for c in self.configurations if c.index not in self.slots]


@dataclass
class DispatchOutcome:
    """Rows collected by a dispatch run plus what was never started."""

    rows: List[ScoreRow]
    skipped: List[PipelineConfiguration]
    aborted: bool = False
    timed_out: bool = False
    elapsed: float = 0.0


class Dispatcher:
    """Bounded dispatch of configurations to a worker backend.

    Parameters
    ----------
    inputs : EvaluationInputs
        Shared read-only inputs
    executor : TransformExecutor
        Executor used by the sequential and thread backends
    suite : MetricSuite
        Metric suite used by the sequential and thread backends
    config : EngineConfig
        Backend, worker count and timeout
    """

    def __init__(
        self,
        inputs: EvaluationInputs,
        executor: TransformExecutor,
        suite: MetricSuite,
        config: EngineConfig,
    ):
        self.inputs = inputs
        self.executor = executor
        self.suite = suite
        self.config = config
        self._start = 0.0
        self._abort: Optional[AbortSignal] = None
        self._timed_out = False

    def _should_stop(self) -> bool:
        if self._abort is not None and self._abort.aborted:
            return True
        if self.config.timeout is not None and time.time() - self._start >= self.config.timeout:
            if not self._timed_out:
                logger.warning("Run timeout of %.1fs reached, no further dispatch", self.config.timeout)
            self._timed_out = True
            return True
        return False

    def run(
        self,
        configurations: List[PipelineConfiguration],
        abort: Optional[AbortSignal] = None,
        on_result: Optional[ResultCallback] = None,
    ) -> DispatchOutcome:
        """Evaluate ``configurations`` and collect their rows."""
        self._start = time.time()
        self._abort = abort
        self._timed_out = False
        buffer = ResultBuffer(list(configurations))
        by_index = {c.index: c for c in configurations}

        def collect(row: ScoreRow) -> None:
            buffer.put(row)
            if on_result is not None:
                on_result(by_index[row.index], row)

        if self.config.backend == "process" and self.config.n_workers > 1:
            self._run_process(configurations, collect)
        elif self.config.is_sequential:
            self._run_sequential(configurations, collect)
        else:
            self._run_threads(configurations, collect)

        skipped = buffer.missing
        if skipped:
            logger.info("%d configurations were not dispatched", len(skipped))
        return DispatchOutcome(
            rows=buffer.rows,
            skipped=skipped,
            aborted=abort is not None and abort.aborted,
            timed_out=self._timed_out,
            elapsed=time.time() - self._start,
        )

    def _run_sequential(self, configurations, collect) -> None:
        for configuration in configurations:
            if self._should_stop():
                break
            collect(evaluate_configuration(self.executor, self.suite, configuration))

    def _run_threads(self, configurations, collect) -> None:
        pending: Deque[PipelineConfiguration] = deque(configurations)
        n_workers = self.config.n_workers
        logger.info("Evaluating %d configurations with %d threads", len(pending), n_workers)

        with ThreadPoolExecutor(max_workers=n_workers) as pool:
            in_flight = {}
            while pending or in_flight:
                while pending and len(in_flight) < n_workers and not self._should_stop():
                    configuration = pending.popleft()
                    future = pool.submit(
                        evaluate_configuration, self.executor, self.suite, configuration
                    )
                    in_flight[future] = configuration
                if not in_flight:
                    break
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    del in_flight[future]
                    collect(future.result())

    def _run_process(self, configurations, collect) -> None:
        n_workers = self.config.n_workers
        size = self.config.batch_size
        batches = [configurations[i:i + size] for i in range(0, len(configurations), size)]
        logger.info(
            "Evaluating %d configurations in %d batches with %d processes",
            len(configurations), len(batches), n_workers,
        )

        # Workers are reused across waves; the abort and timeout checks run between waves
        with Parallel(n_jobs=n_workers, backend="loky") as parallel:
            for start in range(0, len(batches), n_workers):
                if self._should_stop():
                    break
                wave = batches[start:start + n_workers]
                results = parallel(
                    delayed(evaluate_batch)(self.inputs, self.suite.config, batch)
                    for batch in wave
                )
                for rows in results:
                    for row in rows:
                        collect(row)
