"""Pipeline configurations: one option per stage, immutable once created."""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from ..catalog.options import STAGE_ORDER, StageName, StepOption

LABEL_SEPARATOR = ","


@dataclass(frozen=True, eq=False)
class PipelineConfiguration:
    """An ordered tuple of step options, one per stage.

    Identity is the tuple of option names; ``index`` records the creation
    order assigned by the enumerator and is used for deterministic
    tie-breaking.

    The label joins the option names with commas in stage order:
    imputation, scaling, ruv, batch, bio. Batch precedes bio, e.g.
    ``none,deseq,ruv_k=1,no_batch,no_bio``; label patterns for
    ``RankedResult.matching`` must follow this order.

    Attributes
    ----------
    options : Tuple[StepOption, ...]
        Options in stage order
    index : int
        Creation index within the enumeration
    """

    options: Tuple[StepOption, ...]
    index: int = 0

    def __post_init__(self):
        stages = tuple(o.stage for o in self.options)
        if stages != STAGE_ORDER:
            raise ValueError(f"Configuration stages {stages} do not match {STAGE_ORDER}")

    @property
    def key(self) -> Tuple[str, ...]:
        """Identity: the option names in stage order."""
        return tuple(o.name for o in self.options)

    @property
    def label(self) -> str:
        """Comma-joined option names, e.g. ``none,deseq,ruv_k=1,no_batch,no_bio``."""
        return LABEL_SEPARATOR.join(self.key)

    def option(self, stage: str) -> StepOption:
        return self.options[STAGE_ORDER.index(StageName(stage).value)]

    @property
    def imputation(self) -> StepOption:
        return self.option(StageName.IMPUTATION.value)

    @property
    def scaling(self) -> StepOption:
        return self.option(StageName.SCALING.value)

    @property
    def ruv(self) -> StepOption:
        return self.option(StageName.RUV.value)

    @property
    def batch(self) -> StepOption:
        return self.option(StageName.BATCH.value)

    @property
    def bio(self) -> StepOption:
        return self.option(StageName.BIO.value)

    @property
    def is_noop(self) -> bool:
        return all(o.is_noop for o in self.options)

    def requirements(self) -> set:
        needed = set()
        for option in self.options:
            needed |= option.requires
        return needed

    def as_dict(self) -> Dict[str, str]:
        """Stage -> option name mapping."""
        return dict(zip(STAGE_ORDER, self.key))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"index": self.index, "label": self.label}
        data.update(self.as_dict())
        return data

    @staticmethod
    def parse_label(label: str) -> Dict[str, str]:
        """Recover the stage -> option name mapping from a label.

        Raises
        ------
        ValueError
            If the label does not have one option per stage.
        """
        parts = label.split(LABEL_SEPARATOR)
        if len(parts) != len(STAGE_ORDER):
            raise ValueError(
                f"Label '{label}' has {len(parts)} parts, expected {len(STAGE_ORDER)}"
            )
        return dict(zip(STAGE_ORDER, parts))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PipelineConfiguration):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        return self.label
