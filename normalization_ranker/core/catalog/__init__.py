"""Step catalog module.

Declares the pipeline stages, their selectable options, and the named
transform functions those options refer to.

Stages
------
- imputation: none, mean_impute
- scaling: none, fq, uq, tmm, deseq
- ruv: no_uv, ruv_k=1 .. ruv_k=K (needs negative controls)
- batch: no_batch, batch (needs a batch factor)
- bio: no_bio, bio (needs a biological factor)

Example Usage
-------------
>>> from normalization_ranker.core.catalog import StepCatalog
>>> catalog = StepCatalog.default(max_k=2)
>>> catalog.option_names("scaling")
['none', 'fq', 'uq', 'tmm', 'deseq']
"""

# Registration side effects: importing these modules fills TRANSFORMS
from . import adjustment, normalization  # noqa: F401

from .registry import (
    TRANSFORMS,
    TransformSpec,
    get_transform,
    list_transforms,
    register_transform,
)
from .options import (
    BUILTIN_OPTIONS,
    STAGE_ORDER,
    StageName,
    StepOption,
    resolve_option,
    ruv_option,
)
from .catalog import StepCatalog
from .normalization import (
    deseq_size_factors,
    full_quantile,
    mean_impute_zeros,
    median_of_ratios,
    tmm_factors,
    trimmed_mean_of_m,
    upper_quartile_positive,
)
from .adjustment import (
    factor_design,
    remove_unwanted_variation,
    ruvg_factors,
)

__all__ = [
    # Registry
    "TRANSFORMS",
    "TransformSpec",
    "get_transform",
    "list_transforms",
    "register_transform",
    # Options
    "BUILTIN_OPTIONS",
    "STAGE_ORDER",
    "StageName",
    "StepOption",
    "resolve_option",
    "ruv_option",
    # Catalog
    "StepCatalog",
    # Transforms
    "deseq_size_factors",
    "full_quantile",
    "mean_impute_zeros",
    "median_of_ratios",
    "tmm_factors",
    "trimmed_mean_of_m",
    "upper_quartile_positive",
    "factor_design",
    "remove_unwanted_variation",
    "ruvg_factors",
]
