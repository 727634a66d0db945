"""Rank configurations by a composite of oriented, standardized metrics."""

import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union

import numpy as np
import pandas as pd
import yaml

from ...utils.stats import nan_mean, nan_median, zscore
from ..catalog import STAGE_ORDER, StageName
from ..enumeration import PipelineConfiguration
from ..metrics import METRICS, ScoreRow

logger = logging.getLogger(__name__)

AGGREGATIONS: Dict[str, Callable[[Iterable[float]], float]] = {
    "mean": nan_mean,
    "median": nan_median,
}


@dataclass
class RankerConfig:
    """Ranking parameters.

    Attributes
    ----------
    aggregation : str
        Name in ``AGGREGATIONS`` combining a row's standardized scores
    metrics : List[str], optional
        Metrics entering the composite (default: every scored metric)
    """

    aggregation: str = "mean"
    metrics: Optional[List[str]] = None

    def __post_init__(self):
        if self.aggregation not in AGGREGATIONS:
            raise ValueError(
                f"Unknown aggregation '{self.aggregation}'. Known: {sorted(AGGREGATIONS)}"
            )
        if self.metrics is not None:
            unknown = [m for m in self.metrics if m not in METRICS]
            if unknown:
                raise ValueError(f"Unknown metrics: {unknown}")

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "RankerConfig":
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if isinstance(data.get("ranker"), dict):
            data = data["ranker"]
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return {"aggregation": self.aggregation, "metrics": self.metrics}


@dataclass
class RankedEntry:
    """One configuration in a ranked result.

    Attributes
    ----------
    configuration : PipelineConfiguration
        The scored configuration
    row : ScoreRow
        Raw metric values
    standardized : Dict[str, float]
        Sign-oriented z-scores (NaN where unavailable)
    composite : float
        Aggregated score (NaN if no metric was available)
    rank : int
        1-based position in the result
    """

    configuration: PipelineConfiguration
    row: ScoreRow
    standardized: Dict[str, float] = field(default_factory=dict)
    composite: float = math.nan
    rank: int = 0

    @property
    def label(self) -> str:
        return self.configuration.label

    @property
    def index(self) -> int:
        return self.configuration.index

    @property
    def is_failed(self) -> bool:
        return self.row.is_failed

    def to_dict(self) -> Dict[str, Any]:
        data = self.configuration.to_dict()
        data.update(
            {
                "rank": self.rank,
                "composite": None if math.isnan(self.composite) else self.composite,
                "scores": self.row.to_dict()["scores"],
                "standardized": {
                    k: (None if math.isnan(v) else v) for k, v in self.standardized.items()
                },
                "unavailable": dict(self.row.unavailable),
                "error": self.row.error,
                "duration": self.row.duration,
            }
        )
        return data


class RankedResult:
    """Ordered comparison table of configurations.

    Entries are sorted by descending composite; ties keep creation order and
    entries without a composite come last. Query methods return new
    RankedResult objects sharing the same entries.

    Parameters
    ----------
    entries : List[RankedEntry]
        Entries in rank order
    metric_names : List[str]
        Metrics scored for every entry
    skipped : List[PipelineConfiguration], optional
        Configurations never dispatched (timeout or abort)
    aggregation : str
        Aggregation policy used for the composite
    """

    def __init__(
        self,
        entries: List[RankedEntry],
        metric_names: List[str],
        skipped: Optional[List[PipelineConfiguration]] = None,
        aggregation: str = "mean",
    ):
        self.entries = list(entries)
        self.metric_names = list(metric_names)
        self.skipped = list(skipped or [])
        self.aggregation = aggregation

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[RankedEntry]:
        return iter(self.entries)

    def __getitem__(self, i: int) -> RankedEntry:
        return self.entries[i]

    def __repr__(self) -> str:
        return (
            f"RankedResult(n_entries={len(self.entries)}, n_failed={len(self.failed)}, "
            f"n_skipped={len(self.skipped)}, aggregation='{self.aggregation}')"
        )

    def _subset(self, entries: List[RankedEntry]) -> "RankedResult":
        return RankedResult(entries, self.metric_names, self.skipped, self.aggregation)

    @property
    def labels(self) -> List[str]:
        return [e.label for e in self.entries]

    @property
    def best(self) -> Optional[RankedEntry]:
        return self.entries[0] if self.entries else None

    @property
    def failed(self) -> List[RankedEntry]:
        return [e for e in self.entries if e.is_failed]

    @property
    def is_partial(self) -> bool:
        return bool(self.skipped)

    def top(self, n: int) -> "RankedResult":
        return self._subset(self.entries[:n])

    def with_option(self, stage: str, option: str) -> "RankedResult":
        """Entries whose ``stage`` uses the option named ``option``."""
        stage = StageName(stage).value
        return self._subset(
            [e for e in self.entries if e.configuration.option(stage).name == option]
        )

    def filter(self, **stage_options: str) -> "RankedResult":
        """Entries matching every ``stage=option`` keyword.

        Example
        -------
        >>> result.filter(scaling="tmm", batch="batch")
        """
        result = self
        for stage, option in stage_options.items():
            result = result.with_option(stage, option)
        return result

    def matching(self, pattern: str) -> "RankedResult":
        """Entries whose label contains a match of the regex ``pattern``."""
        regex = re.compile(pattern)
        return self._subset([e for e in self.entries if regex.search(e.label)])

    def get(self, label: str) -> RankedEntry:
        for entry in self.entries:
            if entry.label == label:
                return entry
        raise KeyError(f"No configuration '{label}' in result")

    def to_frame(self) -> pd.DataFrame:
        """Comparison table, one row per configuration in rank order.

        Columns: rank, label, index, one column per stage, composite, raw
        metric values, ``<metric>_z`` standardized scores, error, duration.
        """
        records = []
        for e in self.entries:
            record: Dict[str, Any] = {"rank": e.rank, "label": e.label, "index": e.index}
            record.update(e.configuration.as_dict())
            record["composite"] = e.composite
            for name in self.metric_names:
                record[name] = e.row.scores.get(name, math.nan)
            for name in self.metric_names:
                record[f"{name}_z"] = e.standardized.get(name, math.nan)
            record["error"] = e.row.error
            record["duration"] = e.row.duration
            records.append(record)

        columns = (
            ["rank", "label", "index"]
            + list(STAGE_ORDER)
            + ["composite"]
            + self.metric_names
            + [f"{m}_z" for m in self.metric_names]
            + ["error", "duration"]
        )
        return pd.DataFrame.from_records(records, columns=columns)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "aggregation": self.aggregation,
            "metrics": list(self.metric_names),
            "n_ranked": len(self.entries),
            "n_failed": len(self.failed),
            "skipped": [c.label for c in self.skipped],
            "entries": [e.to_dict() for e in self.entries],
        }


def _sort_key(entry: RankedEntry):
    missing = math.isnan(entry.composite)
    return (missing, 0.0 if missing else -entry.composite, entry.index)


class Ranker:
    """Combine ScoreRows into a RankedResult.

    Each metric is multiplied by its sign so that larger is always better,
    then z-scored across configurations. The composite of a row is the
    aggregation of its available standardized scores.

    Parameters
    ----------
    config : RankerConfig, optional
        Ranking parameters

    Example
    -------
    >>> ranker = Ranker(RankerConfig(aggregation="median"))
    >>> result = ranker.rank(rows, configurations)
    >>> result.top(5).labels
    """

    def __init__(self, config: Optional[RankerConfig] = None):
        self.config = config or RankerConfig()
        self._aggregate = AGGREGATIONS[self.config.aggregation]

    def _metric_names(self, rows: List[ScoreRow]) -> List[str]:
        if self.config.metrics is not None:
            return list(self.config.metrics)
        names: List[str] = []
        for row in rows:
            for name in row.scores:
                if name not in names:
                    names.append(name)
        # Canonical metric order regardless of row order
        return [m for m in METRICS if m in names]

    def standardize(self, rows: List[ScoreRow]) -> pd.DataFrame:
        """Sign-oriented z-scores, one row per ScoreRow (same order)."""
        names = self._metric_names(rows)
        raw = pd.DataFrame(
            [[row.scores.get(m, math.nan) for m in names] for row in rows],
            columns=names,
            dtype=float,
        )
        for m in names:
            failed = [row.is_failed or m in row.unavailable for row in rows]
            raw.loc[failed, m] = np.nan
            raw[m] = zscore(METRICS[m].sign * raw[m].to_numpy())
        return raw

    def rank(
        self,
        rows: Iterable[ScoreRow],
        configurations: Iterable[PipelineConfiguration],
        skipped: Optional[Iterable[PipelineConfiguration]] = None,
    ) -> RankedResult:
        """Rank scored configurations.

        Parameters
        ----------
        rows : Iterable[ScoreRow]
            One row per configuration, in any order
        configurations : Iterable[PipelineConfiguration]
            Configurations the rows refer to (matched by label)
        skipped : Iterable[PipelineConfiguration], optional
            Configurations that were never evaluated

        Returns
        -------
        RankedResult
            Entries sorted by descending composite, ties by creation index,
            NaN composites last.
        """
        by_label = {c.label: c for c in configurations}
        rows = sorted(rows, key=lambda r: r.index)
        unknown = [r.label for r in rows if r.label not in by_label]
        if unknown:
            raise KeyError(f"Score rows without configuration: {unknown}")

        names = self._metric_names(rows)
        standardized = self.standardize(rows) if rows else pd.DataFrame(columns=names)

        entries = []
        for i, row in enumerate(rows):
            z = {m: float(standardized.iloc[i][m]) for m in names}
            composite = self._aggregate(z.values())
            entries.append(
                RankedEntry(
                    configuration=by_label[row.label],
                    row=row,
                    standardized=z,
                    composite=composite,
                )
            )

        entries.sort(key=_sort_key)
        for position, entry in enumerate(entries, start=1):
            entry.rank = position

        skipped = sorted(skipped or [], key=lambda c: c.index)
        n_failed = sum(1 for e in entries if e.is_failed)
        logger.info(
            "Ranked %d configurations (%d failed, %d skipped) by %s composite",
            len(entries), n_failed, len(skipped), self.config.aggregation,
        )
        return RankedResult(entries, names, skipped, self.config.aggregation)
