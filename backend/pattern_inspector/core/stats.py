"""
Attribute summarizer: column type inference and descriptive statistics over row records.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

Row = Mapping[str, Any]

# A column is numeric when the share of convertible values is strictly above this
NUMERIC_SHARE_THRESHOLD = 0.0


@dataclass(frozen=True)
class NumericStats:
    mean: float
    min: float
    max: float

    kind = "numeric"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "mean": _finite_or_none(self.mean),
            "min": _finite_or_none(self.min),
            "max": _finite_or_none(self.max),
        }


@dataclass(frozen=True)
class CategoryCount:
    value: str
    count: int


@dataclass(frozen=True)
class CategoricalStats:
    categories: Tuple[CategoryCount, ...]

    kind = "categorical"

    @property
    def total(self) -> int:
        return sum(c.count for c in self.categories)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "categories": [{"value": c.value, "count": c.count} for c in self.categories],
        }


AttributeStats = Union[NumericStats, CategoricalStats]
DataSummary = Dict[str, AttributeStats]


def _finite_or_none(value: float) -> Optional[float]:
    return None if value is None or math.isnan(value) else float(value)


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value == ""


def to_number(value: Any) -> Optional[float]:
    """Best-effort numeric conversion; None when the value is missing or not a number."""
    if is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def as_text(value: Any) -> str:
    """Text form of a cell; integral floats drop the trailing '.0'."""
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value)


def collect_attributes(rows: Iterable[Row]) -> List[str]:
    seen: Dict[str, None] = {}
    for row in rows:
        for key in row.keys():
            seen.setdefault(key, None)
    return list(seen)


def is_numeric_column(values: Sequence[Any]) -> bool:
    if not values:
        return False
    numeric_count = sum(1 for v in values if to_number(v) is not None)
    return numeric_count / len(values) > NUMERIC_SHARE_THRESHOLD


def compute_numeric_stats(values: Sequence[Any]) -> NumericStats:
    nums = pd.Series([to_number(v) for v in values], dtype=float).dropna()
    if nums.empty:
        return NumericStats(mean=math.nan, min=math.nan, max=math.nan)
    lo, hi = float(nums.min()), float(nums.max())
    # summation rounding can push the mean one ulp outside [lo, hi]
    mean = min(max(float(nums.mean()), lo), hi)
    return NumericStats(mean=mean, min=lo, max=hi)


def compute_categorical_stats(values: Sequence[Any]) -> CategoricalStats:
    texts = pd.Series([as_text(v) for v in values if not is_missing(v)], dtype=object)
    if texts.empty:
        return CategoricalStats(categories=())
    # first-seen order, then a stable sort keeps ties in that order
    counts = texts.value_counts().reindex(pd.unique(texts))
    counts = counts.sort_values(ascending=False, kind="stable")
    return CategoricalStats(
        categories=tuple(CategoryCount(value=str(k), count=int(v)) for k, v in counts.items())
    )


def summarize_column(values: Sequence[Any]) -> AttributeStats:
    if is_numeric_column(values):
        return compute_numeric_stats(values)
    return compute_categorical_stats(values)


def summarize(rows: Sequence[Row]) -> DataSummary:
    summary: DataSummary = {}
    for col in collect_attributes(rows):
        values = [row.get(col) for row in rows]
        summary[col] = summarize_column(values)
    return summary


def summarize_groups(rows: Sequence[Row], attribute: str) -> Dict[str, DataSummary]:
    """Summaries per distinct value of ``attribute`` (e.g. one per state).

    Groups follow the categorical ordering of the attribute: most rows first,
    ties in first-seen order. Rows with a missing group value are left out.
    """
    groups: Dict[str, List[Row]] = {}
    for row in rows:
        value = row.get(attribute)
        if is_missing(value):
            continue
        groups.setdefault(as_text(value), []).append(row)

    ordered = sorted(groups.items(), key=lambda item: len(item[1]), reverse=True)
    return {key: summarize(members) for key, members in ordered}


def summary_to_dict(summary: Mapping[str, AttributeStats]) -> Dict[str, Any]:
    return {name: stats.to_dict() for name, stats in summary.items()}
