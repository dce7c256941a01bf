"""
Cashflow aggregation across percentile-keyed line items.

Each line item is a TimeSeriesMetric tagged as revenue, cost or debt service.
A PercentileSelection picks which percentile of each item to use (one for
all, or one per source), and the selected series are combined on a
year-indexed pandas frame:

    totalRevenue   = sum of revenue items
    totalCost      = sum of cost items
    netCashflow    = totalRevenue - totalCost
    debtService    = sum of debt-service items          (if any)
    equityCashflow = netCashflow - debtService          (if any)

An item that lacks the selected percentile contributes zeros and is recorded
as a gap rather than failing the aggregation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

import pandas as pd

from analytics.percentiles import TimeSeriesMetric
from finance.utils import points_to_dicts

logger = logging.getLogger(__name__)

SERIES_KINDS = ("revenue", "cost", "debt_service")


@dataclass(frozen=True)
class NamedSeries:
    name: str
    kind: str
    metric: TimeSeriesMetric

    def __post_init__(self) -> None:
        if self.kind not in SERIES_KINDS:
            raise ValueError(f"Series '{self.name}' has unknown kind '{self.kind}'; expected one of {SERIES_KINDS}")


@dataclass(frozen=True)
class PercentileSelection:
    """Which percentile to read from each line item."""

    default: float
    overrides: Mapping[str, float] = field(default_factory=dict)

    @classmethod
    def unified(cls, percentile: float) -> "PercentileSelection":
        return cls(float(percentile))

    @classmethod
    def per_source(cls, mapping: Mapping[str, float], default: float) -> "PercentileSelection":
        return cls(float(default), {k: float(v) for k, v in mapping.items()})

    @property
    def is_unified(self) -> bool:
        return not self.overrides

    def for_source(self, name: str) -> float:
        return self.overrides.get(name, self.default)


@dataclass
class AggregatedCashflow:
    """Year-indexed totals plus the percentiles actually used per source."""

    frame: pd.DataFrame
    used_percentiles: Dict[str, float]
    gaps: List[Dict[str, Any]]

    @property
    def has_debt_service(self) -> bool:
        return "debtService" in self.frame.columns

    def series(self, column: str) -> List[Dict[str, float]]:
        col = self.frame[column]
        return points_to_dicts(col.index.tolist(), col.tolist())

    def to_dict(self) -> Dict[str, Any]:
        totals = ["totalRevenue", "totalCost", "netCashflow"]
        if self.has_debt_service:
            totals.append("debtService")
        totals.append("equityCashflow")
        out: Dict[str, Any] = {name: self.series(name) for name in totals}
        out["usedPercentiles"] = dict(self.used_percentiles)
        out["gaps"] = list(self.gaps)
        return out


def aggregate(line_items: Sequence[NamedSeries], selection: PercentileSelection) -> AggregatedCashflow:
    years = sorted({int(y) for item in line_items for y in item.metric.years})
    frame = pd.DataFrame(index=pd.Index(years, name="year"))
    used: Dict[str, float] = {}
    gaps: List[Dict[str, Any]] = []

    for item in line_items:
        p = selection.for_source(item.name)
        used[item.name] = p
        if item.metric.has(p):
            values = pd.Series(item.metric.values[p], index=list(item.metric.years), dtype=float)
        else:
            logger.warning("Source %s has no P%g; treated as zero", item.name, p)
            gaps.append({"source": item.name, "percentile": p})
            values = pd.Series(0.0, index=list(item.metric.years), dtype=float)
        frame[item.name] = values.reindex(frame.index, fill_value=0.0)

    def total(kind: str) -> pd.Series:
        cols = [item.name for item in line_items if item.kind == kind]
        if not cols:
            return pd.Series(0.0, index=frame.index)
        return frame[cols].sum(axis=1)

    frame["totalRevenue"] = total("revenue")
    frame["totalCost"] = total("cost")
    frame["netCashflow"] = frame["totalRevenue"] - frame["totalCost"]

    # Without debt service the equity holders receive the full net cashflow.
    if any(item.kind == "debt_service" for item in line_items):
        frame["debtService"] = total("debt_service")
        frame["equityCashflow"] = frame["netCashflow"] - frame["debtService"]
    else:
        frame["equityCashflow"] = frame["netCashflow"]

    logger.debug("Aggregated %d sources over %d years (%s percentile, %d gaps)", len(line_items), len(years),
                 "unified" if selection.is_unified else "per-source", len(gaps))
    return AggregatedCashflow(frame=frame, used_percentiles=used, gaps=gaps)


__all__ = [
    "SERIES_KINDS",
    "NamedSeries",
    "PercentileSelection",
    "AggregatedCashflow",
    "aggregate",
]
