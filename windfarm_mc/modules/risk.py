"""
Annual risk series: insurance premium, insurance payouts and the reserve fund.

The reserve is provisioned evenly over the first ``reserveProvisionYears``
operating years and drawn down, up to the provisioned balance, in years
whose cashflow before debt service is negative.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict

import numpy as np

from analytics.config_schema import RequiredFieldSpec, non_negative, register_required_fields
from windfarm_mc.modules.context import ModuleContext

logger = logging.getLogger(__name__)

_RISK_SPECS = [
    RequiredFieldSpec("risk", "insurancePremium", [("modules", "risk", "insurance_premium")],
                      validator=non_negative, reason="must be non-negative",
                      description="Annual insurance premium"),
    RequiredFieldSpec("risk", "insuranceDeductible", [("modules", "risk", "insurance_deductible")],
                      validator=non_negative, reason="must be non-negative",
                      description="Deductible per failure year"),
    RequiredFieldSpec("risk", "reserveFunds", [("modules", "risk", "reserve_funds")],
                      validator=non_negative, reason="must be non-negative",
                      description="Total reserve to provision"),
    RequiredFieldSpec("risk", "reserveProvisionYears", [("modules", "risk", "reserve_provision_years")],
                      validator=lambda v: int(v) >= 1, reason="must be at least 1",
                      description="Operating years over which the reserve is built"),
]
register_required_fields("risk", _RISK_SPECS)


@dataclass(frozen=True)
class RiskSeries:
    years: np.ndarray
    insurance_premium: np.ndarray
    insurance_payout: np.ndarray
    reserve_provision: np.ndarray
    reserve_used: np.ndarray
    reserve_remaining: np.ndarray

    @property
    def total(self) -> np.ndarray:
        """Net risk cost: premium and provisioning less payouts and reserve drawn."""
        return self.insurance_premium + self.reserve_provision - self.insurance_payout - self.reserve_used


def generate_risk(settings, context: ModuleContext, rng=None) -> RiskSeries:
    """
    Risk line items for one iteration, before any reserve drawdown.

    Reads the iteration's failure years and owner failure costs from
    ``context``; draws nothing from ``rng``.
    """
    life = context.project_life
    premium = np.zeros(life)
    payout = np.zeros(life)

    if settings.insurance_enabled:
        premium[:] = settings.insurance_premium
        if settings.escalate_with_om and context.escalation_index is not None:
            premium = premium * context.escalation_index
        if context.failure_costs is not None:
            claims = np.where(context.mask(), context.failure_costs, 0.0)
            payout = np.maximum(claims - settings.insurance_deductible, 0.0)

    reserve = np.zeros(life)
    provision_years = min(settings.reserve_provision_years, life)
    if settings.reserve_funds > 0 and provision_years > 0:
        reserve[:provision_years] = settings.reserve_funds / provision_years

    return RiskSeries(
        years=context.years,
        insurance_premium=premium,
        insurance_payout=payout,
        reserve_provision=reserve,
        reserve_used=np.zeros(life),
        reserve_remaining=np.cumsum(reserve),
    )


def draw_reserve(risk: RiskSeries, cashflow_before_debt: np.ndarray) -> RiskSeries:
    """
    Cover negative pre-debt cashflow from the provisioned reserve.

    ``cashflow_before_debt`` is revenue less cost less ``risk.total`` for the
    operating years. Each deficit year draws ``min(deficit, balance)``, where
    the balance is everything provisioned so far less earlier draws.
    """
    cashflow = np.asarray(cashflow_before_debt, dtype=float)
    used = np.zeros(len(cashflow))
    remaining = np.zeros(len(cashflow))
    balance = 0.0
    for i, cf in enumerate(cashflow):
        balance += risk.reserve_provision[i]
        if cf < 0 and balance > 0:
            used[i] = min(-cf, balance)
            balance -= used[i]
        remaining[i] = balance

    if used.any():
        logger.debug("Reserve drawn in %d years, %.2f in total", int(np.count_nonzero(used)), used.sum())
    return replace(risk, reserve_used=used, reserve_remaining=remaining)


def risk_metrics(risk: RiskSeries, reserve_funds: float) -> Dict[str, float]:
    """Insurance value and reserve utilisation over the project life."""
    premiums = float(risk.insurance_premium.sum())
    mitigated = float(risk.insurance_payout.sum())
    used = float(risk.reserve_used.sum())
    return {
        "totalInsurancePremiums": premiums,
        "totalRiskMitigated": mitigated,
        "netRiskMitigationValue": mitigated - premiums,
        "riskMitigationROI": mitigated / premiums if premiums > 0 else 0.0,
        "totalReserveUsed": used,
        "remainingReserve": float(risk.reserve_remaining[-1]) if len(risk.reserve_remaining) else 0.0,
        "reserveUtilizationRate": used / reserve_funds if reserve_funds > 0 else 0.0,
    }


__all__ = ["RiskSeries", "generate_risk", "draw_reserve", "risk_metrics"]
