"""I/O utilities: count tables, sample metadata, feature lists and exports."""

from .csv import (
    PathLike,
    ensure_output_dir,
    filter_count_matrix,
    load_count_matrix,
    load_feature_list,
    load_sample_metadata,
    write_normalized_matrix,
    write_ranked_table,
)
from .export import export_json

__all__ = [
    "PathLike",
    "ensure_output_dir",
    "filter_count_matrix",
    "load_count_matrix",
    "load_feature_list",
    "load_sample_metadata",
    "write_normalized_matrix",
    "write_ranked_table",
    "export_json",
]
