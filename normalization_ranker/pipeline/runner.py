"""Run an evaluation end to end from a RunConfig."""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..core.evaluation import AbortSignal, EvaluationEngine
from ..core.ranking import RankedResult
from ..io import ensure_output_dir, export_json, write_ranked_table
from .config import RunConfig
from .logger import PipelineLogger


@dataclass
class RunArtifacts:
    """Outputs of a finished run."""

    result: RankedResult
    table_path: Path
    json_path: Path
    log_file: Path
    duration: float


def run_from_config(
    config: RunConfig,
    abort: Optional[AbortSignal] = None,
    console: bool = True,
) -> RunArtifacts:
    """Load inputs, evaluate every configuration and write the ranking.

    Writes ``ranked_configurations.csv`` and ``ranked_configurations.json``
    to ``config.output_dir`` and a timestamped log under ``logs/``.

    Parameters
    ----------
    config : RunConfig
        Run configuration
    abort : AbortSignal, optional
        Stops further dispatch when set
    console : bool
        Also log to stdout

    Returns
    -------
    RunArtifacts
        Ranked result and written paths
    """
    output_dir = ensure_output_dir(config.output_dir)
    run_logger = PipelineLogger(str(output_dir / "logs"), log_level=config.log_level)
    run_logger.setup(console=console)
    start = time.time()

    try:
        inputs = config.load_inputs()
        engine = EvaluationEngine(
            inputs,
            catalog=config.build_catalog(),
            metric_config=config.metrics,
            engine_config=config.engine,
            ranker_config=config.ranker,
        )
        enumeration = engine.enumerate()
        run_logger.log_run_start(len(enumeration), inputs.summary())

        result = engine.run(abort=abort, on_result=run_logger.log_configuration_complete)
        duration = time.time() - start
        run_logger.log_run_summary(result, duration)

        table_path = write_ranked_table(result, output_dir / "ranked_configurations.csv")
        metadata = {
            "inputs": inputs.summary(),
            "config": config.to_dict(),
            "n_candidates": enumeration.n_candidates,
            "n_rejected": enumeration.n_rejected,
            "gated_options": enumeration.gated_options,
            "duration_seconds": duration,
        }
        json_path = export_json(result, output_dir / "ranked_configurations.json", metadata)
        run_logger.log_info(f"Results written to {output_dir}")
    except Exception as e:
        run_logger.log_error(f"Run failed: {e}")
        raise
    finally:
        run_logger.close()

    return RunArtifacts(
        result=result,
        table_path=table_path,
        json_path=json_path,
        log_file=run_logger.log_file,
        duration=duration,
    )
