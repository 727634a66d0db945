"""Input data model: count matrix, feature sets and factor vectors.

All inputs are validated once, when an ``EvaluationInputs`` bundle is built,
so that every configuration downstream is scored on the same sample and
feature universe. Inputs are treated as read-only after construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set, Union

import numpy as np
import pandas as pd

from .errors import InputError

# Prerequisite kinds an option may demand
NEGATIVE_CONTROLS = "negative_controls"
POSITIVE_CONTROLS = "positive_controls"
BATCH = "batch"
BIO = "bio"
QC = "qc"


@dataclass(frozen=True)
class FeatureSet:
    """Named subset of row identifiers (e.g. negative control genes).

    Attributes
    ----------
    name : str
        Feature set name
    features : tuple
        Ordered, duplicate-free feature identifiers
    """

    name: str
    features: tuple

    @classmethod
    def from_iterable(cls, name: str, features: Iterable[str]) -> "FeatureSet":
        """Build a feature set, dropping duplicates but keeping order."""
        seen: Dict[str, None] = {}
        for feature in features:
            seen.setdefault(str(feature), None)
        return cls(name=name, features=tuple(seen))

    def __len__(self) -> int:
        return len(self.features)

    def missing_from(self, index: pd.Index) -> List[str]:
        """Features not present in ``index``."""
        present = set(index.astype(str))
        return [f for f in self.features if f not in present]


@dataclass(frozen=True, eq=False)
class FactorVector:
    """Categorical label per sample.

    Attributes
    ----------
    name : str
        Factor name (e.g. "batch", "bio")
    labels : pd.Series
        Labels indexed by sample identifier
    """

    name: str
    labels: pd.Series

    @classmethod
    def from_mapping(
        cls,
        name: str,
        labels: Union[Mapping[str, object], pd.Series],
    ) -> "FactorVector":
        """Build a factor vector from a mapping or Series."""
        series = pd.Series(labels) if not isinstance(labels, pd.Series) else labels.copy()
        series.index = series.index.astype(str)
        return cls(name=name, labels=series.astype(str))

    @property
    def n_levels(self) -> int:
        return int(self.labels.nunique())

    @property
    def min_level_size(self) -> int:
        if self.labels.empty:
            return 0
        return int(self.labels.value_counts().min())

    def aligned(self, samples: pd.Index) -> np.ndarray:
        """Return labels ordered like ``samples``."""
        return self.labels.reindex(samples).to_numpy()


@dataclass(frozen=True, eq=False)
class EvaluationInputs:
    """Validated, co-indexed inputs shared read-only by every configuration.

    Attributes
    ----------
    counts : pd.DataFrame
        Count matrix (features x samples), non-negative and finite
    negative_controls : FeatureSet, optional
        Negative control features for RUV and EXP_UV_COR
    positive_controls : FeatureSet, optional
        Positive control features for EXP_WV_COR
    batch : FactorVector, optional
        Batch labels
    bio : FactorVector, optional
        Biological group labels
    qc : pd.DataFrame, optional
        Quality covariates (samples x covariates)

    Raises
    ------
    InputError
        If any co-indexing invariant is violated.
    """

    counts: pd.DataFrame
    negative_controls: Optional[FeatureSet] = None
    positive_controls: Optional[FeatureSet] = None
    batch: Optional[FactorVector] = None
    bio: Optional[FactorVector] = None
    qc: Optional[pd.DataFrame] = None
    _available: Set[str] = field(default_factory=set, init=False, repr=False)

    def __post_init__(self):
        counts = self.counts
        if not isinstance(counts, pd.DataFrame):
            raise InputError("Count matrix must be a pandas DataFrame")
        if counts.shape[0] == 0 or counts.shape[1] == 0:
            raise InputError(f"Count matrix is empty: shape={counts.shape}")
        if not counts.index.is_unique:
            raise InputError("Count matrix has duplicate feature identifiers")
        if not counts.columns.is_unique:
            raise InputError("Count matrix has duplicate sample identifiers")

        try:
            values = counts.to_numpy(dtype=float)
        except (TypeError, ValueError) as e:
            raise InputError(f"Count matrix is not numeric: {e}")
        if not np.all(np.isfinite(values)):
            raise InputError("Count matrix contains non-finite values")
        if np.any(values < 0):
            raise InputError("Count matrix contains negative values")

        # Normalise labels to strings once so lookups never depend on dtype
        normalized = pd.DataFrame(
            values,
            index=counts.index.astype(str),
            columns=counts.columns.astype(str),
        )
        object.__setattr__(self, "counts", normalized)

        available = set()
        for attr, kind in (
            ("negative_controls", NEGATIVE_CONTROLS),
            ("positive_controls", POSITIVE_CONTROLS),
        ):
            feature_set = getattr(self, attr)
            if feature_set is None:
                continue
            if len(feature_set) == 0:
                raise InputError(f"Feature set '{feature_set.name}' is empty")
            missing = feature_set.missing_from(normalized.index)
            if missing:
                raise InputError(
                    f"Feature set '{feature_set.name}' has {len(missing)} features "
                    f"not in the count matrix (e.g. {missing[:5]})"
                )
            available.add(kind)

        for attr, kind in (("batch", BATCH), ("bio", BIO)):
            factor = getattr(self, attr)
            if factor is None:
                continue
            missing = [s for s in normalized.columns if s not in factor.labels.index]
            if missing:
                raise InputError(
                    f"Factor '{factor.name}' is undefined for {len(missing)} samples "
                    f"(e.g. {missing[:5]})"
                )
            available.add(kind)

        if self.qc is not None:
            qc = self.qc.copy()
            qc.index = qc.index.astype(str)
            missing = [s for s in normalized.columns if s not in qc.index]
            if missing:
                raise InputError(
                    f"QC table is missing {len(missing)} samples (e.g. {missing[:5]})"
                )
            qc = qc.loc[list(normalized.columns)].apply(pd.to_numeric, errors="coerce")
            if qc.shape[1] == 0 or not np.all(np.isfinite(qc.to_numpy(dtype=float))):
                raise InputError("QC table must hold finite numeric covariates")
            object.__setattr__(self, "qc", qc)
            available.add(QC)

        object.__setattr__(self, "_available", available)

    @property
    def samples(self) -> pd.Index:
        return self.counts.columns

    @property
    def features(self) -> pd.Index:
        return self.counts.index

    @property
    def available(self) -> Set[str]:
        """Prerequisite kinds supplied with these inputs."""
        return set(self._available)

    def summary(self) -> Dict[str, object]:
        """Short description for logs."""
        return {
            "n_features": int(self.counts.shape[0]),
            "n_samples": int(self.counts.shape[1]),
            "negative_controls": len(self.negative_controls) if self.negative_controls else 0,
            "positive_controls": len(self.positive_controls) if self.positive_controls else 0,
            "batch_levels": self.batch.n_levels if self.batch else 0,
            "bio_levels": self.bio.n_levels if self.bio else 0,
            "qc_covariates": int(self.qc.shape[1]) if self.qc is not None else 0,
        }
