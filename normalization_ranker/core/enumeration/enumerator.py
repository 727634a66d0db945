"""Configuration enumeration with consistency filtering."""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set, Tuple

from ..catalog import StageName, StepCatalog, StepOption
from ..errors import CatalogError, ConfigurationError
from .configuration import PipelineConfiguration

logger = logging.getLogger(__name__)

MISSING_MODES = ("raise", "gate")


def is_consistent(options: Tuple[StepOption, ...]) -> bool:
    """Consistency rule: biological adjustment requires batch adjustment.

    A configuration with ``bio`` enabled and ``batch`` disabled is rejected.
    No other combination is rejected.
    """
    by_stage = {o.stage: o for o in options}
    bio = by_stage[StageName.BIO.value]
    batch = by_stage[StageName.BATCH.value]
    return bio.is_noop or not batch.is_noop


def check_prerequisites(options: Iterable[StepOption], available: Set[str]) -> None:
    """Raise if an option demands an input that was not supplied.

    Raises
    ------
    ConfigurationError
        Naming the first option with an unmet prerequisite.
    """
    for option in options:
        missing = option.requires - available
        if missing:
            raise ConfigurationError(
                f"Option '{option.name}' (stage '{option.stage}') requires "
                f"{sorted(missing)}, which were not supplied"
            )


@dataclass
class EnumerationResult:
    """Enumerated configurations plus bookkeeping for logs.

    Attributes
    ----------
    configurations : List[PipelineConfiguration]
        Accepted configurations in creation order
    n_candidates : int
        Raw cartesian product size
    n_rejected : int
        Configurations removed by the consistency rule
    gated_options : List[str]
        ``stage:option`` entries removed because inputs were missing
    """

    configurations: List[PipelineConfiguration] = field(default_factory=list)
    n_candidates: int = 0
    n_rejected: int = 0
    gated_options: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.configurations)

    def __iter__(self):
        return iter(self.configurations)


class ConfigurationEnumerator:
    """Expand a step catalog into consistent pipeline configurations.

    Stages are enumerated in fixed order and options in catalog order, so
    the output order (and each configuration's creation index) is
    deterministic.

    Parameters
    ----------
    catalog : StepCatalog
        Stage menus
    available : Iterable[str]
        Prerequisite kinds supplied by the inputs (see
        ``EvaluationInputs.available``)
    on_missing : str
        ``"raise"``: an option demanding an absent input raises
        ConfigurationError before anything is scheduled. ``"gate"``: such
        options are simply not offered.

    Example
    -------
    >>> enumerator = ConfigurationEnumerator(StepCatalog.default(), inputs.available)
    >>> result = enumerator.enumerate()
    >>> result.configurations[0].label
    'none,none,no_uv,no_batch,no_bio'
    """

    def __init__(
        self,
        catalog: StepCatalog,
        available: Iterable[str] = (),
        on_missing: str = "raise",
    ):
        if on_missing not in MISSING_MODES:
            raise ValueError(f"on_missing must be one of {MISSING_MODES}, got '{on_missing}'")
        self.catalog = catalog
        self.available = set(available)
        self.on_missing = on_missing

    def _effective_catalog(self) -> Tuple[StepCatalog, List[str]]:
        if self.on_missing == "raise":
            for _, options in self.catalog.iter_stages():
                check_prerequisites(options, self.available)
            return self.catalog, []

        gated = []
        for stage, options in self.catalog.iter_stages():
            for option in options:
                if not option.requires <= self.available:
                    gated.append(f"{stage}:{option.name}")
        try:
            catalog = self.catalog.gated(self.available)
        except CatalogError as e:
            raise ConfigurationError(f"No options left after gating: {e}") from e
        return catalog, gated

    def enumerate(self) -> EnumerationResult:
        """Enumerate all consistent configurations.

        Returns
        -------
        EnumerationResult
            Configurations and counts

        Raises
        ------
        ConfigurationError
            If ``on_missing="raise"`` and an option's prerequisite is absent.
        """
        catalog, gated = self._effective_catalog()
        result = EnumerationResult(gated_options=gated)

        menus = [options for _, options in catalog.iter_stages()]
        for combo in itertools.product(*menus):
            result.n_candidates += 1
            if not is_consistent(combo):
                result.n_rejected += 1
                continue
            result.configurations.append(
                PipelineConfiguration(options=combo, index=len(result.configurations))
            )

        logger.info(
            "Enumerated %d configurations (%d candidates, %d rejected as inconsistent)",
            len(result.configurations), result.n_candidates, result.n_rejected,
        )
        if gated:
            logger.info("Options not offered for lack of inputs: %s", ", ".join(gated))
        return result

    def configurations(self) -> List[PipelineConfiguration]:
        return self.enumerate().configurations

    def build(self, label: str, index: int = 0) -> PipelineConfiguration:
        """Build the configuration named by ``label`` from this catalog.

        Raises
        ------
        ConfigurationError
            If the label is malformed, inconsistent, or names options with
            unmet prerequisites.
        """
        try:
            names = PipelineConfiguration.parse_label(label)
            options = tuple(
                self.catalog.get_option(stage, name) for stage, name in names.items()
            )
        except (ValueError, CatalogError) as e:
            raise ConfigurationError(f"Cannot build configuration '{label}': {e}") from e

        if not is_consistent(options):
            raise ConfigurationError(
                f"Configuration '{label}' adjusts for biology without adjusting for batch"
            )
        check_prerequisites(options, self.available)
        return PipelineConfiguration(options=options, index=index)


def expected_size(catalog: StepCatalog) -> int:
    """Number of configurations the enumerator yields for ``catalog``.

    Product of the menu sizes minus the bio-without-batch combinations.
    """
    n_bio_on = sum(1 for o in catalog.options(StageName.BIO.value) if not o.is_noop)
    n_batch_off = sum(1 for o in catalog.options(StageName.BATCH.value) if o.is_noop)
    others = 1
    for stage in (StageName.IMPUTATION, StageName.SCALING, StageName.RUV):
        others *= len(catalog.options(stage.value))
    return catalog.n_combinations - others * n_bio_on * n_batch_off
