"""Apply a pipeline configuration to the count matrix.

Stage order is fixed: imputation -> scaling -> control-based variance
removal -> batch adjustment -> biological adjustment. Imputation and scaling
act on counts. The last three stages act on the log1p scale: each one adds
its terms to an ``AdjustmentDesign`` (RUV factors and batch indicators as
unwanted terms, biological indicators as protected terms) and the design is
fitted once after the biological stage, so that unwanted variation is
removed without removing the biological signal.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from ..catalog import StageName, StepOption, get_transform, remove_unwanted_variation
from ..enumeration import PipelineConfiguration
from ..errors import TransformError
from ..inputs import EvaluationInputs

logger = logging.getLogger(__name__)


@dataclass
class AdjustmentDesign:
    """Design columns accumulated by the log-scale stages.

    Attributes
    ----------
    n_samples : int
        Number of samples (rows of every block)
    unwanted : Dict[str, np.ndarray]
        Blocks to regress out, keyed by stage
    protected : Dict[str, np.ndarray]
        Blocks kept in the model but not removed, keyed by stage
    """

    n_samples: int
    unwanted: Dict[str, np.ndarray] = field(default_factory=dict)
    protected: Dict[str, np.ndarray] = field(default_factory=dict)

    def _block(self, stage: str, block: np.ndarray) -> np.ndarray:
        block = np.asarray(block, dtype=float)
        if block.ndim == 1:
            block = block[:, None]
        if block.shape[0] != self.n_samples:
            raise TransformError(
                f"Design block has {block.shape[0]} rows, expected {self.n_samples}",
                stage=stage,
            )
        if not np.all(np.isfinite(block)):
            raise TransformError("Design block has non-finite values", stage=stage)
        return block

    def add_unwanted(self, stage: str, block: np.ndarray) -> None:
        self.unwanted[stage] = self._block(stage, block)

    def add_protected(self, stage: str, block: np.ndarray) -> None:
        self.protected[stage] = self._block(stage, block)

    def _stack(self, blocks: Dict[str, np.ndarray]) -> np.ndarray:
        if not blocks:
            return np.empty((self.n_samples, 0))
        return np.hstack(list(blocks.values()))

    @property
    def unwanted_matrix(self) -> np.ndarray:
        return self._stack(self.unwanted)

    @property
    def protected_matrix(self) -> np.ndarray:
        return self._stack(self.protected)

    @property
    def is_empty(self) -> bool:
        return self.unwanted_matrix.shape[1] == 0


def _check_finite(values: np.ndarray, stage: str) -> np.ndarray:
    if not np.all(np.isfinite(values)):
        n_bad = int(np.size(values) - np.isfinite(values).sum())
        raise TransformError(f"Produced {n_bad} non-finite values", stage=stage)
    return values


class TransformExecutor:
    """Run configurations against shared, read-only inputs.

    The executor only sequences stages and threads parameters (``k``, the
    control rows, factor labels) into the registered transforms; the
    numerics of each transform live in the catalog. Every call works on a
    private copy of the count matrix.

    Parameters
    ----------
    inputs : EvaluationInputs
        Validated inputs

    Example
    -------
    >>> executor = TransformExecutor(inputs)
    >>> normalized = executor.run(configuration)
    >>> normalized.shape == inputs.counts.shape
    True
    """

    def __init__(self, inputs: EvaluationInputs):
        self.inputs = inputs
        self._control_rows: Optional[np.ndarray] = None
        if inputs.negative_controls is not None:
            self._control_rows = inputs.counts.index.get_indexer(
                list(inputs.negative_controls.features)
            )

    def _run_transform(self, option: StepOption, *args):
        spec = get_transform(option.transform)
        try:
            with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
                return spec.func(*args, **option.param_dict)
        except TransformError as e:
            if e.stage is None:
                e.stage = option.stage
            raise
        except (ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
            raise TransformError(f"{option.name} failed: {e}", stage=option.stage) from e

    def _factor_labels(self, stage: str) -> np.ndarray:
        factor = self.inputs.batch if stage == StageName.BATCH.value else self.inputs.bio
        if factor is None:
            raise TransformError(f"No {stage} factor supplied", stage=stage)
        return factor.aligned(self.inputs.samples)

    def run_values(self, configuration: PipelineConfiguration) -> np.ndarray:
        """Run ``configuration`` and return the normalized values array."""
        values = self.inputs.counts.to_numpy(dtype=float, copy=True)

        for stage in (StageName.IMPUTATION.value, StageName.SCALING.value):
            option = configuration.option(stage)
            if option.is_noop:
                continue
            values = _check_finite(np.asarray(self._run_transform(option, values), dtype=float), stage)
            if values.shape != self.inputs.counts.shape:
                raise TransformError(f"{option.name} changed the matrix shape", stage=stage)
            logger.debug("%s: applied %s", configuration.label, option.name)

        design = AdjustmentDesign(n_samples=values.shape[1])
        log_values: Optional[np.ndarray] = None

        ruv = configuration.ruv
        if not ruv.is_noop:
            if self._control_rows is None:
                raise TransformError("No negative control features supplied", stage=ruv.stage)
            if np.any(values < 0):
                raise TransformError("Negative values cannot be log-transformed", stage=ruv.stage)
            log_values = np.log1p(values)
            w = self._run_transform(ruv, log_values, self._control_rows)
            design.add_unwanted(ruv.stage, w)

        batch = configuration.batch
        if not batch.is_noop:
            design.add_unwanted(batch.stage, self._run_transform(batch, self._factor_labels(batch.stage)))

        bio = configuration.bio
        if not bio.is_noop:
            design.add_protected(bio.stage, self._run_transform(bio, self._factor_labels(bio.stage)))

        if design.is_empty:
            return values

        if log_values is None:
            if np.any(values < 0):
                raise TransformError("Negative values cannot be log-transformed", stage="adjustment")
            log_values = np.log1p(values)
        adjusted = remove_unwanted_variation(
            log_values, design.unwanted_matrix, design.protected_matrix
        )
        adjusted = _check_finite(adjusted, "adjustment")
        with np.errstate(over="ignore"):
            values = np.clip(np.expm1(adjusted), 0.0, None)
        return _check_finite(values, "adjustment")

    def run(self, configuration: PipelineConfiguration) -> pd.DataFrame:
        """Run ``configuration`` and return the normalized matrix.

        Returns
        -------
        pd.DataFrame
            Normalized matrix with the input's feature and sample labels

        Raises
        ------
        TransformError
            If any stage fails numerically or produces non-finite values.
        """
        start = time.time()
        values = self.run_values(configuration)
        logger.debug("%s: normalized in %.3fs", configuration.label, time.time() - start)
        return pd.DataFrame(
            values,
            index=self.inputs.counts.index,
            columns=self.inputs.counts.columns,
        )
