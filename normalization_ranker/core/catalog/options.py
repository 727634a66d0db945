"""Step options: named, atomic choices within a pipeline stage."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from ..errors import CatalogError
from ..inputs import BATCH, BIO, NEGATIVE_CONTROLS


class StageName(str, Enum):
    """Pipeline stages in execution order."""

    IMPUTATION = "imputation"
    SCALING = "scaling"
    RUV = "ruv"
    BATCH = "batch"
    BIO = "bio"


STAGE_ORDER: Tuple[str, ...] = tuple(s.value for s in StageName)

RUV_PREFIX = "ruv_k="


@dataclass(frozen=True)
class StepOption:
    """One selectable option of a stage.

    Attributes
    ----------
    name : str
        Option name as it appears in configuration labels (e.g. "ruv_k=2")
    stage : str
        Stage the option belongs to
    transform : str, optional
        Registered transform name; None for pass-through options
    params : Tuple[Tuple[str, Any], ...]
        Numeric parameters (e.g. (("k", 2),))
    requires : FrozenSet[str]
        Prerequisite input kinds
    """

    name: str
    stage: str
    transform: Optional[str] = None
    params: Tuple[Tuple[str, Any], ...] = ()
    requires: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_noop(self) -> bool:
        return self.transform is None

    @property
    def param_dict(self) -> Dict[str, Any]:
        return dict(self.params)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "stage": self.stage,
            "transform": self.transform,
            "params": self.param_dict,
            "requires": sorted(self.requires),
        }


def ruv_option(k: int) -> StepOption:
    """RUV option estimating ``k`` unwanted factors."""
    if int(k) < 1:
        raise CatalogError(f"RUV options need k >= 1, got {k}")
    return StepOption(
        name=f"{RUV_PREFIX}{int(k)}",
        stage=StageName.RUV.value,
        transform="ruvg",
        params=(("k", int(k)),),
        requires=frozenset({NEGATIVE_CONTROLS}),
    )


# Canonical options per stage, in menu order
BUILTIN_OPTIONS: Dict[str, Tuple[StepOption, ...]] = {
    StageName.IMPUTATION.value: (
        StepOption("none", StageName.IMPUTATION.value),
        StepOption("mean_impute", StageName.IMPUTATION.value, transform="mean_impute"),
    ),
    StageName.SCALING.value: (
        StepOption("none", StageName.SCALING.value),
        StepOption("fq", StageName.SCALING.value, transform="fq"),
        StepOption("uq", StageName.SCALING.value, transform="uq"),
        StepOption("tmm", StageName.SCALING.value, transform="tmm"),
        StepOption("deseq", StageName.SCALING.value, transform="deseq"),
    ),
    StageName.RUV.value: (
        StepOption("no_uv", StageName.RUV.value),
    ),
    StageName.BATCH.value: (
        StepOption("no_batch", StageName.BATCH.value),
        StepOption(
            "batch", StageName.BATCH.value,
            transform="factor_design", requires=frozenset({BATCH}),
        ),
    ),
    StageName.BIO.value: (
        StepOption("no_bio", StageName.BIO.value),
        StepOption(
            "bio", StageName.BIO.value,
            transform="factor_design", requires=frozenset({BIO}),
        ),
    ),
}


def resolve_option(stage: str, name: str) -> StepOption:
    """Find a canonical option by stage and name.

    RUV options of any ``k`` resolve from their ``ruv_k=<k>`` name.

    Raises
    ------
    CatalogError
        If the stage or option name is unknown.
    """
    if stage not in BUILTIN_OPTIONS:
        raise CatalogError(f"Unknown stage '{stage}'. Expected one of {list(STAGE_ORDER)}")

    name = str(name)
    if stage == StageName.RUV.value and name.startswith(RUV_PREFIX):
        try:
            k = int(name[len(RUV_PREFIX):])
        except ValueError:
            raise CatalogError(f"Malformed RUV option '{name}'") from None
        return ruv_option(k)

    for option in BUILTIN_OPTIONS[stage]:
        if option.name == name:
            return option
    known = [o.name for o in BUILTIN_OPTIONS[stage]]
    raise CatalogError(f"Unknown option '{name}' for stage '{stage}'. Known: {known}")
