"""Named transform table.

Transforms are plain functions registered under a name; step options refer
to them by that name and the executor looks them up here. Call signatures
depend on the stage:

- ``imputation`` / ``scaling``: ``func(values) -> values`` on a
  features x samples array of counts
- ``ruv``: ``func(log_values, control_rows, k) -> W`` returning a
  samples x k matrix of unwanted factors
- ``factor``: ``func(labels) -> design`` returning a samples x p indicator
  block (no intercept)
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..errors import CatalogError


@dataclass(frozen=True)
class TransformSpec:
    """A registered transform.

    Attributes
    ----------
    name : str
        Registry key (e.g. "tmm")
    kind : str
        Call convention: imputation, scaling, ruv or factor
    func : Callable
        The transform function
    label : str
        Human-readable label
    """

    name: str
    kind: str
    func: Callable
    label: str


TRANSFORM_KINDS = ("imputation", "scaling", "ruv", "factor")

TRANSFORMS: Dict[str, TransformSpec] = {}


def register_transform(name: str, kind: str, label: Optional[str] = None):
    """Register a transform function under ``name``.

    Use as decorator::

        @register_transform("uq", "scaling", "upper quartile (positive)")
        def upper_quartile_positive(values):
            ...
    """
    if kind not in TRANSFORM_KINDS:
        raise CatalogError(f"Unknown transform kind '{kind}' for '{name}'")

    def decorator(func: Callable) -> Callable:
        TRANSFORMS[name] = TransformSpec(name, kind, func, label or name)
        return func

    return decorator


def get_transform(name: str) -> TransformSpec:
    """Look up a registered transform.

    Raises
    ------
    CatalogError
        If no transform is registered under ``name``.
    """
    try:
        return TRANSFORMS[name]
    except KeyError:
        raise CatalogError(
            f"Unknown transform '{name}'. Registered: {sorted(TRANSFORMS)}"
        ) from None


def list_transforms(kind: Optional[str] = None) -> List[str]:
    """Registered transform names, optionally restricted to one kind."""
    return sorted(n for n, spec in TRANSFORMS.items() if kind is None or spec.kind == kind)
