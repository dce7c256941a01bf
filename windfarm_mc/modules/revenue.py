"""Annual revenue series: energy x price, degradation and downtime losses."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from analytics.config_schema import RequiredFieldSpec, percentage, register_required_fields
from constants import HOURS_PER_YEAR
from finance.utils import points_to_dicts
from windfarm_mc.distributions import sample, sample_series
from windfarm_mc.modules.context import ModuleContext, adjustment_series
from windfarm_mc.multipliers import MultiplierConfig, apply_multipliers

logger = logging.getLogger(__name__)

_REVENUE_SPECS = [
    RequiredFieldSpec("revenue", "energyProduction", [("modules", "revenue", "energy_production")],
                      distribution=True, description="Annual energy production (MWh)"),
    RequiredFieldSpec("revenue", "electricityPrice", [("modules", "revenue", "electricity_price")],
                      distribution=True, description="Electricity price per MWh"),
    RequiredFieldSpec("revenue", "revenueDegradationRate", [("modules", "revenue", "revenue_degradation_rate")],
                      validator=percentage, reason="must be between 0 and 100",
                      description="Yearly production degradation (percent)"),
    RequiredFieldSpec("revenue", "downtimePerEvent", [("modules", "revenue", "downtime_per_event")],
                      distribution=True, description="Downtime hours lost per failure event"),
    RequiredFieldSpec("revenue", "priceEscalation", [("modules", "revenue", "price_escalation")],
                      required=False, distribution=True,
                      description="Optional yearly price escalation percent"),
]
register_required_fields("revenue", _REVENUE_SPECS)


@dataclass(frozen=True)
class RevenueSeries:
    years: np.ndarray
    energy: np.ndarray
    price: np.ndarray
    gross: np.ndarray
    downtime_hours: np.ndarray
    downtime_loss: np.ndarray
    adjustments: np.ndarray

    @property
    def total(self) -> np.ndarray:
        return self.gross - self.downtime_loss + self.adjustments


def generate_revenue(settings, context: ModuleContext, rng: np.random.Generator) -> RevenueSeries:
    """
    Draw one iteration of the revenue module.

    Draw order: energy per year, price per year, price escalation per year
    (when configured), then downtime hours for each failure year.
    """
    life = context.project_life
    years = context.years

    energy = np.clip(sample_series(settings.energy_production, rng, years), 0.0, None)
    price = sample_series(settings.electricity_price, rng, years)

    if settings.price_escalation is not None:
        rates = sample_series(settings.price_escalation, rng, years)
        escalated = apply_multipliers(
            points_to_dicts(years, price),
            [MultiplierConfig("priceEscalation", "compound", 1)],
            {"priceEscalation": points_to_dicts(years, rates)},
        )
        price = np.array([p["value"] for p in escalated.data], dtype=float)

    degradation = (1.0 - settings.revenue_degradation_rate / 100.0) ** (years - 1)
    gross = energy * price * degradation

    downtime_hours = np.zeros(life, dtype=float)
    for i in np.flatnonzero(context.mask()):
        hours = sample(settings.downtime_per_event, rng, int(years[i]))
        downtime_hours[i] = min(max(hours, 0.0), float(HOURS_PER_YEAR))
    downtime_loss = gross * downtime_hours / HOURS_PER_YEAR

    return RevenueSeries(
        years=years,
        energy=energy,
        price=price,
        gross=gross,
        downtime_hours=downtime_hours,
        downtime_loss=downtime_loss,
        adjustments=adjustment_series(settings.adjustments, life),
    )


__all__ = ["RevenueSeries", "generate_revenue"]
