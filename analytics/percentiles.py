"""
Percentile-keyed metric containers and label handling.

Two shapes exist and are fixed when a metric is built:

- TimeSeriesMetric: one annual series per percentile
  (``{"P50": [{"year": 1, "value": ...}, ...]}``)
- ScalarMetric: one value per percentile (``{"P50": 0.081}``)

Labels are ``P<n>`` with integral percentiles printed without decimals
(``P50``) and fractional ones as-is (``P12.5``). Older stored results use role
labels (``Pprimary``, ``Pupper_bound``, ...); ``to_legacy_labels`` and
``from_legacy_labels`` translate between the two given a percentile set.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from finance.utils import points_to_dicts
from windfarm_mc.distributions import percentiles as compute_percentiles

logger = logging.getLogger(__name__)

_LABEL_RE = re.compile(r"^P(\d+(?:\.\d+)?)$")

LEGACY_ROLES = ("primary", "upper_bound", "lower_bound", "extreme_upper", "extreme_lower")


def percentile_label(p: float) -> str:
    """50 -> 'P50', 12.5 -> 'P12.5'."""
    p = float(p)
    return f"P{int(p)}" if p.is_integer() else f"P{p:g}"


def parse_percentile_label(label: str) -> float:
    match = _LABEL_RE.match(label)
    if not match:
        raise ValueError(f"Not a percentile label: {label!r}")
    return float(match.group(1))


def _role_values(percentile_set: Any) -> Dict[str, float]:
    return {role: float(getattr(percentile_set, role)) for role in LEGACY_ROLES}


def to_legacy_labels(data: Mapping[str, Any], percentile_set: Any) -> Dict[str, Any]:
    """Rename ``P<n>`` keys that match a configured role to ``P<role>``."""
    by_value = {value: f"P{role}" for role, value in _role_values(percentile_set).items()}
    out: Dict[str, Any] = {}
    for label, value in data.items():
        try:
            p = parse_percentile_label(label)
        except ValueError:
            out[label] = value
            continue
        out[by_value.get(p, label)] = value
    return out


def from_legacy_labels(data: Mapping[str, Any], percentile_set: Any) -> Dict[str, Any]:
    """Inverse of to_legacy_labels; unknown labels pass through."""
    by_role = {f"P{role}": percentile_label(value) for role, value in _role_values(percentile_set).items()}
    return {by_role.get(label, label): value for label, value in data.items()}


# ============================================================================
# METRIC CONTAINERS
# ============================================================================


@dataclass(frozen=True)
class ScalarMetric:
    """One value per percentile, from a population of per-iteration scalars."""

    name: str
    values: Mapping[float, Optional[float]]
    count: int = 0

    kind = "scalar"

    @classmethod
    def from_population(cls, name: str, population: Sequence[float], targets: Iterable[float]) -> "ScalarMetric":
        targets = [float(t) for t in targets]
        arr = np.asarray([v for v in population if v is not None], dtype=float)
        arr = arr[np.isfinite(arr)]
        if arr.size == 0:
            logger.warning("Metric %s has no defined values; percentiles left empty", name)
            return cls(name, {t: None for t in targets}, 0)
        return cls(name, compute_percentiles(arr, targets), int(arr.size))

    def percentiles(self) -> List[float]:
        return sorted(self.values)

    def at(self, p: float) -> Optional[float]:
        return self.values.get(float(p))

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {percentile_label(p): self.values[p] for p in self.percentiles()}


@dataclass(frozen=True)
class TimeSeriesMetric:
    """One annual series per percentile, taken year by year over iterations."""

    name: str
    years: Tuple[int, ...]
    values: Mapping[float, Tuple[float, ...]]

    kind = "timeseries"

    @classmethod
    def from_population(
        cls,
        name: str,
        years: Sequence[int],
        population: Any,
        targets: Iterable[float],
    ) -> "TimeSeriesMetric":
        """``population`` is an (iterations x years) array."""
        targets = [float(t) for t in targets]
        matrix = np.asarray(population, dtype=float)
        if matrix.ndim != 2 or matrix.shape[1] != len(years):
            raise ValueError(f"{name}: expected (iterations, {len(years)}) population, got {matrix.shape}")

        columns = [compute_percentiles(matrix[:, j], targets) for j in range(matrix.shape[1])]
        values = {t: tuple(col[t] for col in columns) for t in targets}
        return cls(name, tuple(int(y) for y in years), values)

    @classmethod
    def constant(cls, name: str, years: Sequence[int], series: Sequence[float],
                 targets: Iterable[float]) -> "TimeSeriesMetric":
        """A deterministic series reported identically at every percentile."""
        row = tuple(float(v) for v in series)
        return cls(name, tuple(int(y) for y in years), {float(t): row for t in targets})

    def percentiles(self) -> List[float]:
        return sorted(self.values)

    def has(self, p: float) -> bool:
        return float(p) in self.values

    def at(self, p: float) -> List[Dict[str, float]]:
        return points_to_dicts(self.years, self.values[float(p)])

    def to_dict(self) -> Dict[str, List[Dict[str, float]]]:
        return {percentile_label(p): self.at(p) for p in self.percentiles()}


__all__ = [
    "LEGACY_ROLES",
    "percentile_label",
    "parse_percentile_label",
    "to_legacy_labels",
    "from_legacy_labels",
    "ScalarMetric",
    "TimeSeriesMetric",
]
