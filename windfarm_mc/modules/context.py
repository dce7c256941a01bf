"""Run-level context shared by the per-module generators."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Sequence

import numpy as np

from windfarm_mc.responsibility import ScopeAllocations, YearlyResponsibility


@dataclass(frozen=True)
class ModuleContext:
    """
    Everything a generator needs besides its own settings and the RNG.

    ``failure_mask``, ``failure_costs`` and ``escalation_index`` are filled in
    per iteration once the cost series is drawn; revenue and risk read them.
    """

    project_life: int
    num_wtgs: int
    construction_years: int = 1
    matrix: Sequence[YearlyResponsibility] = ()
    failure_mask: Optional[np.ndarray] = None
    failure_costs: Optional[np.ndarray] = None
    escalation_index: Optional[np.ndarray] = None

    @property
    def years(self) -> np.ndarray:
        """Operating years ``1..project_life``."""
        return np.arange(1, self.project_life + 1)

    def allocations(self, year: int) -> ScopeAllocations:
        if 1 <= year <= len(self.matrix):
            return self.matrix[year - 1].scope_allocations
        return ScopeAllocations()

    def responsibility(self, year: int) -> Optional[YearlyResponsibility]:
        if 1 <= year <= len(self.matrix):
            return self.matrix[year - 1]
        return None

    def with_cost_events(self, failure_mask: np.ndarray, failure_costs: np.ndarray,
                         escalation_index: np.ndarray) -> "ModuleContext":
        return replace(self, failure_mask=failure_mask, failure_costs=failure_costs,
                       escalation_index=escalation_index)

    def mask(self) -> np.ndarray:
        if self.failure_mask is None:
            return np.zeros(self.project_life, dtype=bool)
        return np.asarray(self.failure_mask, dtype=bool)


def adjustment_series(adjustments, project_life: int) -> np.ndarray:
    """Sum year-ranged adjustments into an operating-year array."""
    out = np.zeros(project_life, dtype=float)
    for adj in adjustments:
        for year in adj.years:
            if 1 <= year <= project_life:
                out[year - 1] += adj.amount
    return out
