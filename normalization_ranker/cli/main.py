"""Command-line interface for normalization-ranker.

Provides CLI commands to list, evaluate and apply normalization pipeline
configurations.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

import click

from .. import __version__


def setup_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Setup logging for CLI commands."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    return logging.getLogger("normalization_ranker")


def _load_run_config(config: str, output_path: Optional[str] = None):
    from normalization_ranker.pipeline import RunConfig

    try:
        run_config = RunConfig.from_yaml(config)
    except (KeyError, ValueError, TypeError) as e:
        raise click.ClickException(f"Invalid run configuration {config}: {e}")
    if output_path:
        run_config.output_dir = Path(output_path)
    return run_config


@click.group()
@click.version_option(version=__version__, prog_name="normalization-ranker")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """normalization-ranker: enumerate and rank normalization pipelines.

    Every combination of imputation, scaling, control-based variance
    removal, batch and biological adjustment is applied to a count matrix
    and scored with data-driven quality metrics.

    Examples:

        # List the configurations of a restricted catalog
        normalization-ranker enumerate --catalog catalog.yaml

        # Evaluate and rank every configuration
        normalization-ranker rank --config run.yaml --workers 4

        # Write the normalized matrix of one configuration
        normalization-ranker normalize --config run.yaml \\
            --label "none,tmm,ruv_k=1,batch,bio" --out tmm_ruv1.csv
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["logger"] = setup_logging(verbose, debug)


@cli.command("enumerate")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Run configuration (YAML); inputs decide which options are offered")
@click.option("--catalog", type=click.Path(exists=True),
              help="Catalog restriction file (YAML)")
@click.option("--max-k", type=int, default=None, help="Largest number of RUV factors")
@click.option("--available", "-a", multiple=True,
              type=click.Choice(["negative_controls", "batch", "bio"]),
              help="Input kinds assumed present (default: all)")
@click.option("--on-missing", type=click.Choice(["raise", "gate"]), default="gate",
              help="Options whose inputs are absent: raise an error or drop them")
@click.pass_context
def enumerate_configurations(
    ctx: click.Context,
    config: Optional[str],
    catalog: Optional[str],
    max_k: Optional[int],
    available: Tuple[str, ...],
    on_missing: str,
) -> None:
    """List the consistent configuration labels, one per line."""
    from normalization_ranker.core.catalog import StepCatalog
    from normalization_ranker.core.enumeration import ConfigurationEnumerator
    from normalization_ranker.core.errors import NormalizationRankerError

    if max_k is not None and (config or catalog):
        raise click.UsageError("--max-k only applies to the default catalog")

    try:
        kinds = set(available) if available else {"negative_controls", "batch", "bio"}
        if config:
            run_config = _load_run_config(config)
            step_catalog = run_config.build_catalog()
            kinds = run_config.load_inputs().available
        elif catalog:
            step_catalog = StepCatalog.from_yaml(catalog)
        else:
            step_catalog = StepCatalog.default(max_k=3 if max_k is None else max_k)
        result = ConfigurationEnumerator(step_catalog, kinds, on_missing=on_missing).enumerate()
    except (NormalizationRankerError, FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))

    for configuration in result:
        click.echo(configuration.label)
    click.echo(
        f"{len(result)} configurations ({result.n_rejected} of {result.n_candidates} "
        f"rejected as inconsistent)",
        err=True,
    )


@cli.command()
@click.option("--config", "-c", required=True, type=click.Path(exists=True),
              help="Run configuration (YAML)")
@click.option("--out", "-o", "output_path", type=click.Path(),
              help="Output directory (overrides output_dir)")
@click.option("--workers", "-j", type=int, default=None, help="Number of parallel workers")
@click.option("--backend", type=click.Choice(["thread", "process", "sequential"]),
              default=None, help="Worker backend")
@click.option("--timeout", type=float, default=None, help="Run time budget in seconds")
@click.option("--top", "top_n", type=int, default=10, help="Configurations to print")
@click.pass_context
def rank(
    ctx: click.Context,
    config: str,
    output_path: Optional[str],
    workers: Optional[int],
    backend: Optional[str],
    timeout: Optional[float],
    top_n: int,
) -> None:
    """Evaluate every configuration and write the ranked table."""
    from normalization_ranker.core.errors import NormalizationRankerError
    from normalization_ranker.core.evaluation import EngineConfig
    from normalization_ranker.pipeline import run_from_config

    run_config = _load_run_config(config, output_path)
    overrides = {
        key: value
        for key, value in (("n_workers", workers), ("backend", backend), ("timeout", timeout))
        if value is not None
    }
    if overrides:
        try:
            run_config.engine = EngineConfig(**{**run_config.engine.to_dict(), **overrides})
        except ValueError as e:
            raise click.BadParameter(str(e))

    try:
        artifacts = run_from_config(run_config, console=ctx.obj["verbose"] or ctx.obj["debug"])
    except (NormalizationRankerError, FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))

    result = artifacts.result
    click.echo(
        f"Ranked {len(result)} configurations "
        f"({len(result.failed)} failed, {len(result.skipped)} skipped)"
    )
    for entry in result.top(top_n):
        click.echo(f"{entry.rank:>4}  {entry.composite:+.3f}  {entry.label}")
    click.echo(f"Table saved to: {artifacts.table_path}")
    click.echo(f"JSON saved to: {artifacts.json_path}")


@cli.command()
@click.option("--config", "-c", required=True, type=click.Path(exists=True),
              help="Run configuration (YAML)")
@click.option("--label", "-l", required=True,
              help='Configuration label, e.g. "none,deseq,ruv_k=1,no_batch,no_bio"')
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output file (.csv or .tsv)")
@click.pass_context
def normalize(ctx: click.Context, config: str, label: str, output_path: str) -> None:
    """Write the normalized matrix of one configuration."""
    from normalization_ranker.core.errors import NormalizationRankerError
    from normalization_ranker.core.evaluation import EvaluationEngine
    from normalization_ranker.io import write_normalized_matrix

    logger = ctx.obj["logger"]
    run_config = _load_run_config(config)
    try:
        inputs = run_config.load_inputs()
        engine = EvaluationEngine(
            inputs,
            catalog=run_config.build_catalog(),
            metric_config=run_config.metrics,
            engine_config=run_config.engine,
        )
        normalized = engine.get_normalized(label)
    except (NormalizationRankerError, FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))

    logger.info(f"Normalized {label}: {normalized.shape[0]} features x {normalized.shape[1]} samples")
    output_file = write_normalized_matrix(normalized, output_path)
    click.echo(f"Output saved to: {output_file}")


if __name__ == "__main__":
    cli()
