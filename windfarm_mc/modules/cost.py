"""
Annual cost series.

Line items per operating year:
- base O&M, escalated through the multiplier engine (zero in contract years)
- OEM contract fee in years covered by a contract
- failure events (owner share of corrective-minor cost)
- major repair events (owner share after OEM component coverage and caps)
- contingency and year-ranged adjustments
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

import numpy as np

from analytics.config_schema import RequiredFieldSpec, non_negative, percentage, register_required_fields
from finance.utils import points_to_dicts
from windfarm_mc.distributions import sample_series
from windfarm_mc.modules.context import ModuleContext, adjustment_series
from windfarm_mc.multipliers import MultiplierConfig, apply_multipliers

logger = logging.getLogger(__name__)


def _valid_repair_events(events: Any) -> bool:
    return all(e.year >= 1 and e.cost >= 0 and 0 <= e.probability <= 100 for e in events)


_COST_SPECS = [
    RequiredFieldSpec("cost", "annualBaseOM", [("modules", "cost", "annual_base_om")],
                      validator=non_negative, reason="must be non-negative",
                      description="Base O&M cost per year before escalation"),
    RequiredFieldSpec("cost", "escalationRate", [("modules", "cost", "escalation_rate")],
                      description="Fixed escalation percent used when no distribution is given"),
    RequiredFieldSpec("cost", "escalation", [("modules", "cost", "escalation")], required=False,
                      distribution=True, description="Distribution of the yearly escalation percent"),
    RequiredFieldSpec("cost", "escalationBaseYear", [("modules", "cost", "escalation_base_year")],
                      validator=lambda v: int(v) >= 1, reason="must be at least 1",
                      description="Year in which escalation factor is 1"),
    RequiredFieldSpec("cost", "failureEventProbability", [("modules", "cost", "failure_event_probability")],
                      validator=percentage, reason="must be between 0 and 100",
                      description="Chance (percent) of a failure event in any year"),
    RequiredFieldSpec("cost", "failureEventCost", [("modules", "cost", "failure_event_cost")],
                      validator=non_negative, reason="must be non-negative",
                      description="Cost of one failure event"),
    RequiredFieldSpec("cost", "majorRepairEvents", [("modules", "cost", "major_repair_events")],
                      validator=_valid_repair_events,
                      reason="each event needs year >= 1, cost >= 0 and probability in [0, 100]",
                      description="Planned major repairs with their probability of occurring"),
    RequiredFieldSpec("cost", "contingencyCost", [("modules", "cost", "contingency_cost")],
                      validator=non_negative, reason="must be non-negative",
                      description="Contingency added every operating year"),
]
register_required_fields("cost", _COST_SPECS)


@dataclass(frozen=True)
class CostSeries:
    years: np.ndarray
    base_om: np.ndarray
    contract_fee: np.ndarray
    failure_events: np.ndarray
    failure_cost_gross: np.ndarray
    failure_cost: np.ndarray
    major_repairs: np.ndarray
    contingency: np.ndarray
    adjustments: np.ndarray
    escalation_index: np.ndarray

    @property
    def total(self) -> np.ndarray:
        return (self.base_om + self.contract_fee + self.failure_cost + self.major_repairs
                + self.contingency + self.adjustments)

    def components(self) -> Dict[str, np.ndarray]:
        return {
            "baseOM": self.base_om,
            "contractFee": self.contract_fee,
            "failureRisk": self.failure_cost,
            "majorRepairs": self.major_repairs,
            "contingency": self.contingency,
            "adjustments": self.adjustments,
        }


def escalation_index(settings, context: ModuleContext, rng: np.random.Generator) -> np.ndarray:
    """Compound escalation factor per operating year, drawn from the escalation distribution."""
    years = context.years
    rates = sample_series(settings.escalation_distribution, rng, years)
    result = apply_multipliers(
        points_to_dicts(years, np.ones(len(years))),
        [MultiplierConfig("escalation", "compound", settings.escalation_base_year)],
        {"escalation": points_to_dicts(years, rates)},
    )
    return np.array([p["value"] for p in result.data], dtype=float)


def _major_repairs(settings, context: ModuleContext, rng: np.random.Generator) -> np.ndarray:
    out = np.zeros(context.project_life, dtype=float)
    oem_events: Dict[int, int] = {}
    oem_spend: Dict[int, float] = {}

    for event in settings.major_repair_events:
        # One draw per configured event keeps the stream layout independent of outcomes.
        u = rng.random()
        if not 1 <= event.year <= context.project_life or u >= event.probability / 100.0:
            continue

        alloc = context.allocations(event.year).corrective_major
        oem_amount = event.cost * alloc.component_oem_share if alloc.oem > 0 else 0.0

        if oem_amount > 0 and alloc.event_cap is not None and oem_events.get(event.year, 0) >= alloc.event_cap:
            oem_amount = 0.0
        if oem_amount > 0 and alloc.financial_cap is not None:
            remaining = max(alloc.financial_cap - oem_spend.get(event.year, 0.0), 0.0)
            oem_amount = min(oem_amount, remaining)
        if oem_amount > 0:
            oem_events[event.year] = oem_events.get(event.year, 0) + 1
            oem_spend[event.year] = oem_spend.get(event.year, 0.0) + oem_amount

        out[event.year - 1] += event.cost - oem_amount
        logger.debug("Major repair in year %s: cost %.2f, OEM covers %.2f", event.year, event.cost, oem_amount)
    return out


def generate_cost(settings, context: ModuleContext, rng: np.random.Generator) -> CostSeries:
    """
    Draw one iteration of the cost module.

    Draw order: escalation rates per year, failure-event uniforms per year,
    then one uniform per major repair event.
    """
    life = context.project_life
    years = context.years

    index = escalation_index(settings, context, rng)
    base_om = settings.annual_base_om * index
    contract_fee = np.zeros(life, dtype=float)
    for year in years:
        entry = context.responsibility(int(year))
        if entry is not None and entry.has_contract:
            base_om[entry.year - 1] = 0.0
            contract_fee[entry.year - 1] = entry.fee

    failure_events = rng.random(life) < settings.failure_event_probability / 100.0
    failure_gross = np.where(failure_events, settings.failure_event_cost, 0.0)
    owner_share = np.array([context.allocations(int(y)).simple["correctiveMinor"].owner for y in years])
    failure_cost = failure_gross * owner_share

    return CostSeries(
        years=years,
        base_om=base_om,
        contract_fee=contract_fee,
        failure_events=failure_events,
        failure_cost_gross=failure_gross,
        failure_cost=failure_cost,
        major_repairs=_major_repairs(settings, context, rng),
        contingency=np.full(life, float(settings.contingency_cost)),
        adjustments=adjustment_series(settings.adjustments, life),
        escalation_index=index,
    )


__all__ = ["CostSeries", "escalation_index", "generate_cost"]
