"""CSV I/O utilities for normalization-ranker.

Provides functions for loading count matrices, sample metadata and feature
lists, the upstream count filter, and writing ranked comparison tables.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Union

import pandas as pd

if TYPE_CHECKING:
    from ..core.ranking import RankedResult

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def ensure_output_dir(path: PathLike) -> Path:
    """Create the directory at path if it does not exist and return it.

    Parameters
    ----------
    path : PathLike
        Directory path to create.

    Returns
    -------
    Path
        The created/existing directory path.
    """
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def _separator(path: Path) -> str:
    """Tab for .tsv/.txt/.tab files, comma otherwise."""
    return "\t" if path.suffix.lower() in (".tsv", ".txt", ".tab") else ","


def load_count_matrix(
    path: PathLike,
    transpose: bool = False,
) -> pd.DataFrame:
    """Read a features x samples count table.

    The first column holds feature identifiers and the header holds sample
    identifiers.

    Parameters
    ----------
    path : PathLike
        Path to the CSV/TSV count table.
    transpose : bool
        Set if the file stores samples as rows.

    Returns
    -------
    pd.DataFrame
        Count matrix with string labels.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the table is empty or holds non-numeric counts.
    """
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Count matrix not found: {csv_path}")
    df = pd.read_csv(csv_path, sep=_separator(csv_path), index_col=0)
    if transpose:
        df = df.T
    if df.empty:
        raise ValueError(f"Count matrix {csv_path} is empty")

    non_numeric = [c for c in df.columns if not pd.api.types.is_numeric_dtype(df[c])]
    if non_numeric:
        raise ValueError(
            f"Count matrix {csv_path} has non-numeric sample columns: {non_numeric[:5]}"
        )
    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)
    logger.info("Loaded count matrix %s: %d features x %d samples", csv_path, *df.shape)
    return df


def load_sample_metadata(
    path: PathLike,
    sample_column: Optional[str] = None,
    required_columns: Optional[List[str]] = None,
) -> pd.DataFrame:
    """Read a per-sample metadata table indexed by sample identifier.

    Parameters
    ----------
    path : PathLike
        Path to the metadata CSV/TSV.
    sample_column : str, optional
        Column with sample identifiers (default: the first column).
    required_columns : List[str], optional
        Columns that must be present (e.g. the batch and bio factors).

    Returns
    -------
    pd.DataFrame
        Metadata indexed by sample identifier (string).

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If required columns are missing or sample identifiers repeat.
    """
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Sample metadata not found: {csv_path}")
    df = pd.read_csv(csv_path, sep=_separator(csv_path))

    sample_column = sample_column or df.columns[0]
    if sample_column not in df.columns:
        raise ValueError(f"Metadata table missing sample column: {sample_column}")
    df[sample_column] = df[sample_column].astype(str)
    if df[sample_column].duplicated().any():
        duplicated = df.loc[df[sample_column].duplicated(), sample_column].tolist()
        raise ValueError(f"Duplicate sample identifiers in metadata: {duplicated[:5]}")
    df = df.set_index(sample_column)

    missing = [c for c in (required_columns or []) if c not in df.columns]
    if missing:
        raise ValueError(f"Metadata table missing columns: {missing}")
    return df


def load_feature_list(path: PathLike, column: Optional[str] = None) -> List[str]:
    """Read feature identifiers (e.g. control genes).

    Plain text files hold one identifier per line; CSV/TSV files are read
    from ``column`` (default: the first column).

    Returns
    -------
    List[str]
        Identifiers in file order, without blanks or duplicates.
    """
    list_path = Path(path)
    if not list_path.exists():
        raise FileNotFoundError(f"Feature list not found: {list_path}")

    if list_path.suffix.lower() in (".csv", ".tsv"):
        df = pd.read_csv(list_path, sep=_separator(list_path))
        column = column or df.columns[0]
        if column not in df.columns:
            raise ValueError(f"Feature list {list_path} has no column '{column}'")
        raw = df[column].dropna().astype(str).tolist()
    else:
        with open(list_path, encoding="utf-8") as handle:
            raw = [line.strip() for line in handle]

    features = list(dict.fromkeys(f for f in raw if f and not f.startswith("#")))
    logger.info("Loaded %d features from %s", len(features), list_path)
    return features


def filter_count_matrix(
    counts: pd.DataFrame,
    min_count: float = 1,
    min_samples: int = 1,
    min_library_size: float = 0,
) -> pd.DataFrame:
    """Drop weakly expressed features and shallow samples.

    Applied once, upstream of every configuration, so that all
    configurations see the same feature and sample universe.

    Parameters
    ----------
    counts : pd.DataFrame
        Features x samples counts.
    min_count : float
        Count a feature must reach in a sample to be "expressed" there.
    min_samples : int
        Samples in which a feature must be expressed to be kept.
    min_library_size : float
        Minimum total count per sample.

    Returns
    -------
    pd.DataFrame
        Filtered copy of the count matrix.
    """
    library_size = counts.sum(axis=0)
    keep_samples = library_size >= min_library_size
    filtered = counts.loc[:, keep_samples]

    expressed = (filtered >= min_count).sum(axis=1)
    keep_features = expressed >= min_samples
    filtered = filtered.loc[keep_features]

    n_dropped_samples = int((~keep_samples).sum())
    n_dropped_features = int((~keep_features).sum())
    if n_dropped_samples or n_dropped_features:
        logger.info(
            "Filtered count matrix: dropped %d features and %d samples (%d x %d remain)",
            n_dropped_features, n_dropped_samples, *filtered.shape,
        )
    return filtered.copy()


def write_ranked_table(result: "RankedResult", output_path: PathLike) -> Path:
    """Write the ranked comparison table to CSV.

    Parameters
    ----------
    result : RankedResult
        Ranked result
    output_path : PathLike
        Output file path

    Returns
    -------
    Path
        Path to created file
    """
    output_path = Path(output_path)
    ensure_output_dir(output_path.parent)
    result.to_frame().to_csv(output_path, index=False)
    logger.info("Wrote ranked table (%d configurations) to %s", len(result), output_path)
    return output_path


def write_normalized_matrix(normalized: pd.DataFrame, output_path: PathLike) -> Path:
    """Write a normalized matrix (features x samples) to CSV/TSV."""
    output_path = Path(output_path)
    ensure_output_dir(output_path.parent)
    normalized.to_csv(output_path, sep=_separator(output_path))
    return output_path
