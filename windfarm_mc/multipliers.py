"""
Multiplier engine: escalation and pricing operations on annual series.

Operations
----------
multiply  v * m(year)
compound  v * (1 + r(year)/100) ** (year - base_year)
simple    v * (1 + r(year)/100 * (year - base_year))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, NamedTuple, Sequence

from finance.utils import normalize_points, points_to_dicts

logger = logging.getLogger(__name__)

OPERATIONS = ("multiply", "compound", "simple")


@dataclass(frozen=True)
class MultiplierConfig:
    id: str
    operation: str
    base_year: int = 1

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "MultiplierConfig":
        return cls(str(raw["id"]), str(raw["operation"]), int(raw.get("baseYear", 1)))


class MultiplierResult(NamedTuple):
    data: List[Dict[str, float]]
    applied_multipliers: List[Dict[str, Any]]


def _apply_one(value: float, factor: float, year: int, operation: str, base_year: int) -> float:
    if operation == "multiply":
        return value * factor
    if operation == "compound":
        return value * (1.0 + factor / 100.0) ** (year - base_year)
    if operation == "simple":
        return value * (1.0 + factor / 100.0 * (year - base_year))
    raise ValueError(f"Unknown multiplier operation '{operation}'")


def apply_multipliers(
    base_series: Any,
    configs: Sequence[MultiplierConfig],
    multiplier_series: Mapping[str, Any],
) -> MultiplierResult:
    """
    Apply each config in order to ``base_series``.

    A config whose id has no series in ``multiplier_series`` is skipped (and
    not reported as applied). A year missing from a multiplier series leaves
    that year's value unchanged.
    """
    points = normalize_points(base_series)
    years = [y for y, _ in points]
    values = [v for _, v in points]
    applied: List[Dict[str, Any]] = []

    for config in configs:
        if config.operation not in OPERATIONS:
            raise ValueError(f"Unknown multiplier operation '{config.operation}'")
        if config.id not in multiplier_series:
            logger.warning("Multiplier series '%s' not provided; skipped", config.id)
            continue

        factors = dict(normalize_points(multiplier_series[config.id]))
        missing: List[int] = []
        for i, year in enumerate(years):
            if year not in factors:
                missing.append(year)
                continue
            values[i] = _apply_one(values[i], factors[year], year, config.operation, config.base_year)
        if missing:
            logger.warning("Multiplier '%s' has no value for years %s; left unchanged", config.id, missing)

        applied.append({
            "id": config.id,
            "operation": config.operation,
            "baseYear": config.base_year,
            "values": points_to_dicts(sorted(factors), [factors[y] for y in sorted(factors)]),
        })

    return MultiplierResult(points_to_dicts(years, values), applied)


__all__ = ["OPERATIONS", "MultiplierConfig", "MultiplierResult", "apply_multipliers"]
