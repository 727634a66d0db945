"""Step catalog: the ordered option menu of every pipeline stage."""

from math import prod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import yaml

from ..errors import CatalogError
from .options import BUILTIN_OPTIONS, STAGE_ORDER, StageName, StepOption, resolve_option, ruv_option
from .registry import get_transform

# Transform kinds accepted per stage
_STAGE_KINDS = {
    StageName.IMPUTATION.value: "imputation",
    StageName.SCALING.value: "scaling",
    StageName.RUV.value: "ruv",
    StageName.BATCH.value: "factor",
    StageName.BIO.value: "factor",
}


class StepCatalog:
    """Declarative menu of options for each pipeline stage.

    The catalog is validated on construction: every stage must be present,
    non-empty and free of duplicate option names, and every non-pass-through
    option must reference a registered transform of the right kind.

    Parameters
    ----------
    stages : Mapping[str, Sequence[StepOption]]
        Options per stage, in menu order

    Raises
    ------
    CatalogError
        If the catalog is malformed.

    Example
    -------
    >>> catalog = StepCatalog.default(max_k=2)
    >>> catalog.option_names("ruv")
    ['no_uv', 'ruv_k=1', 'ruv_k=2']
    >>> catalog.n_combinations
    120
    """

    def __init__(self, stages: Mapping[str, Sequence[StepOption]]):
        unknown = [s for s in stages if s not in STAGE_ORDER]
        if unknown:
            raise CatalogError(f"Unknown stages in catalog: {unknown}")

        self._stages: Dict[str, Tuple[StepOption, ...]] = {}
        for stage in STAGE_ORDER:
            if stage not in stages:
                raise CatalogError(f"Catalog is missing stage '{stage}'")
            options = tuple(stages[stage])
            if not options:
                raise CatalogError(f"Stage '{stage}' has no options")

            names = [o.name for o in options]
            duplicates = sorted({n for n in names if names.count(n) > 1})
            if duplicates:
                raise CatalogError(f"Stage '{stage}' has duplicate options: {duplicates}")

            for option in options:
                if option.stage != stage:
                    raise CatalogError(
                        f"Option '{option.name}' belongs to stage '{option.stage}', "
                        f"not '{stage}'"
                    )
                if option.transform is None:
                    continue
                spec = get_transform(option.transform)
                if spec.kind != _STAGE_KINDS[stage]:
                    raise CatalogError(
                        f"Option '{option.name}' uses a {spec.kind} transform "
                        f"in stage '{stage}'"
                    )
            self._stages[stage] = options

    @classmethod
    def default(cls, max_k: int = 3) -> "StepCatalog":
        """Canonical catalog with RUV options ``ruv_k=1`` .. ``ruv_k=max_k``."""
        stages = {stage: list(options) for stage, options in BUILTIN_OPTIONS.items()}
        stages[StageName.RUV.value].extend(ruv_option(k) for k in range(1, max_k + 1))
        return cls(stages)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]] = None) -> "StepCatalog":
        """Build a catalog from a mapping of stage -> option names.

        Stages left out use the canonical menu. The ``ruv`` entry may be a
        list of option names or ``{"max_k": K}``; a top-level ``max_k`` is
        accepted too.

        Example
        -------
        >>> StepCatalog.from_dict({"scaling": ["none", "deseq"], "max_k": 1})
        """
        data = dict(data or {})
        max_k = int(data.pop("max_k", 3))
        stages: Dict[str, List[StepOption]] = {}

        for stage in STAGE_ORDER:
            spec = data.pop(stage, None)
            if spec is None:
                options = list(BUILTIN_OPTIONS[stage])
                if stage == StageName.RUV.value:
                    options.extend(ruv_option(k) for k in range(1, max_k + 1))
            elif isinstance(spec, Mapping):
                if stage != StageName.RUV.value:
                    raise CatalogError(f"Stage '{stage}' expects a list of option names")
                stage_k = int(spec.get("max_k", max_k))
                options = list(BUILTIN_OPTIONS[stage])
                if spec.get("include_none", True) is False:
                    options = []
                options.extend(ruv_option(k) for k in range(1, stage_k + 1))
            elif isinstance(spec, (list, tuple)):
                options = [resolve_option(stage, name) for name in spec]
            else:
                raise CatalogError(f"Invalid option list for stage '{stage}': {spec!r}")
            stages[stage] = options

        if data:
            raise CatalogError(f"Unknown catalog keys: {sorted(data)}")
        return cls(stages)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "StepCatalog":
        """Load a catalog from a YAML file (optionally under a ``catalog`` key)."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if "catalog" in data:
            data = data["catalog"]
        return cls.from_dict(data)

    @property
    def stage_names(self) -> Tuple[str, ...]:
        return STAGE_ORDER

    def options(self, stage: str) -> Tuple[StepOption, ...]:
        """Options of ``stage`` in menu order."""
        try:
            return self._stages[stage]
        except KeyError:
            raise CatalogError(f"Unknown stage '{stage}'") from None

    def option_names(self, stage: str) -> List[str]:
        return [o.name for o in self.options(stage)]

    def get_option(self, stage: str, name: str) -> StepOption:
        for option in self.options(stage):
            if option.name == name:
                return option
        raise CatalogError(f"Option '{name}' not in catalog stage '{stage}'")

    def iter_stages(self) -> Iterable[Tuple[str, Tuple[StepOption, ...]]]:
        for stage in STAGE_ORDER:
            yield stage, self._stages[stage]

    @property
    def n_combinations(self) -> int:
        """Size of the raw cartesian product, before any filtering."""
        return prod(len(options) for options in self._stages.values())

    def requirements(self) -> Set[str]:
        """Union of prerequisite kinds demanded by any option."""
        needed: Set[str] = set()
        for options in self._stages.values():
            for option in options:
                needed |= option.requires
        return needed

    def gated(self, available: Iterable[str]) -> "StepCatalog":
        """Catalog without options whose prerequisites are not available.

        Raises
        ------
        CatalogError
            If gating empties a stage.
        """
        available = set(available)
        stages = {
            stage: [o for o in options if o.requires <= available]
            for stage, options in self._stages.items()
        }
        return StepCatalog(stages)

    def to_dict(self) -> Dict[str, List[str]]:
        return {stage: self.option_names(stage) for stage in STAGE_ORDER}

    def __repr__(self) -> str:
        sizes = ", ".join(f"{s}={len(o)}" for s, o in self._stages.items())
        return f"StepCatalog({sizes})"
