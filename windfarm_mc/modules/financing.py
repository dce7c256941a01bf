"""
Financing schedule: construction funding and senior debt service.

Two structures:

Balance-Sheet
    Equity is ``equityInvestment`` or ``(capex + devex) / (1 + D/E)``; debt
    is ``equity * D/E`` (capped at the total investment) and equity funds the
    remainder. A warning is logged when that remainder differs from a
    configured ``equityInvestment``. Rate ``loanInterestRateBS``.
Project-Finance
    Debt is ``capex * debtToCapexRatio``; equity funds the rest. Rate
    ``loanInterestRatePF``.

Capex and devex are drawn evenly over the construction years (year 0 is COD),
split between debt and equity pro rata. After an optional interest-only
grace period the loan amortises as an annuity; the loan life is
``loanDuration`` years from COD.

The schedule is deterministic: it does not consume the RNG.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from analytics.config_schema import RequiredFieldSpec, non_negative, register_required_fields
from finance.debt import Tranche, annuity_schedule, calculate_construction_drawdowns
from windfarm_mc.errors import InvalidModuleParameters
from windfarm_mc.modules.context import ModuleContext

logger = logging.getLogger(__name__)

FINANCING_MODELS = ("Balance-Sheet", "Project-Finance")


_FINANCING_SPECS = [
    RequiredFieldSpec("financing", "capex", [("modules", "financing", "capex")],
                      validator=non_negative, reason="must be non-negative", description="Construction capex"),
    RequiredFieldSpec("financing", "devex", [("modules", "financing", "devex")],
                      validator=non_negative, reason="must be non-negative", description="Development expenditure"),
    RequiredFieldSpec("financing", "model", [("modules", "financing", "model")],
                      validator=lambda v: v in FINANCING_MODELS, reason=f"must be one of {FINANCING_MODELS}",
                      description="Financing structure"),
    RequiredFieldSpec("financing", "debtToEquityRatio", [("modules", "financing", "debt_to_equity_ratio")],
                      validator=non_negative, reason="must be non-negative",
                      description="Balance-Sheet debt/equity ratio"),
    RequiredFieldSpec("financing", "debtToCapexRatio", [("modules", "financing", "debt_to_capex_ratio")],
                      validator=lambda v: 0 <= float(v) <= 1, reason="must be between 0 and 1",
                      description="Project-Finance gearing against capex"),
    RequiredFieldSpec("financing", "loanDuration", [("modules", "financing", "loan_duration")],
                      validator=lambda v: int(v) >= 1, reason="must be at least 1 year",
                      description="Loan life from COD in years"),
    RequiredFieldSpec("financing", "loanInterestRateBS", [("modules", "financing", "loan_interest_rate_bs")],
                      validator=lambda v: 0 <= float(v) <= 100, reason="must be between 0 and 100",
                      description="Balance-Sheet loan rate (percent)"),
    RequiredFieldSpec("financing", "loanInterestRatePF", [("modules", "financing", "loan_interest_rate_pf")],
                      validator=lambda v: 0 <= float(v) <= 100, reason="must be between 0 and 100",
                      description="Project-Finance loan rate (percent)"),
    RequiredFieldSpec("financing", "equityInvestment", [("modules", "financing", "equity_investment")],
                      required=False, validator=non_negative, reason="must be non-negative",
                      description="Explicit Balance-Sheet equity amount"),
    RequiredFieldSpec("financing", "minimumDSCR", [("modules", "financing", "minimum_dscr")],
                      validator=non_negative, reason="must be non-negative",
                      description="DSCR covenant level"),
    RequiredFieldSpec("financing", "gracePeriod", [("modules", "financing", "grace_period")],
                      validator=lambda v: int(v) >= 0, reason="must be non-negative",
                      description="Interest-only years after COD"),
    RequiredFieldSpec("financing", "constructionYears", [("modules", "financing", "construction_years")],
                      validator=lambda v: int(v) >= 1, reason="must be at least 1",
                      description="Construction periods up to and including COD"),
    RequiredFieldSpec("financing", "discountRate", [("modules", "financing", "discount_rate")],
                      validator=lambda v: float(v) > -100, reason="must be greater than -100",
                      description="NPV discount rate (percent)"),
]
register_required_fields("financing", _FINANCING_SPECS)


@dataclass(frozen=True)
class FinancingSeries:
    """Per-year financing lines over ``-construction_years+1..project_life``."""

    years: np.ndarray
    investment: np.ndarray
    drawdown: np.ndarray
    equity_contribution: np.ndarray
    opening_balance: np.ndarray
    interest: np.ndarray
    principal: np.ndarray
    debt_service: np.ndarray
    debt_amount: float
    equity_amount: float
    interest_rate: float
    loan_years: int
    minimum_dscr: float

    @property
    def operational(self) -> np.ndarray:
        return self.years > 0

    def op(self, name: str) -> np.ndarray:
        """Operating-year slice (years 1..project_life) of a line item."""
        return getattr(self, name)[self.operational]


def _size_debt(settings) -> tuple:
    total = settings.capex + settings.devex
    if settings.is_project_finance:
        debt = settings.capex * settings.debt_to_capex_ratio
    else:
        ratio = settings.debt_to_equity_ratio
        equity = settings.equity_investment if settings.equity_investment is not None else total / (1.0 + ratio)
        debt = equity * ratio
    debt = min(max(debt, 0.0), total)
    equity = total - debt
    configured = settings.equity_investment
    if not settings.is_project_finance and configured is not None and not math.isclose(equity, configured):
        logger.warning(
            "equityInvestment %.2f with D/E %.2f does not fit total investment %.2f; equity funds %.2f instead",
            configured, settings.debt_to_equity_ratio, total, equity,
        )
    return total, debt, equity


def generate_financing(settings, context: ModuleContext, rng=None) -> FinancingSeries:
    """Build the (deterministic) financing schedule. ``rng`` is accepted for a uniform signature."""
    if settings.grace_period >= settings.loan_duration:
        raise InvalidModuleParameters("financing", "gracePeriod", settings.grace_period,
                                      f"must be shorter than loanDuration {settings.loan_duration}")

    c_years = context.construction_years
    life = context.project_life
    years = np.arange(-c_years + 1, life + 1)
    n = len(years)

    total, debt, equity = _size_debt(settings)
    rate = settings.loan_rate_pct / 100.0

    investment = np.zeros(n)
    drawdown = np.zeros(n)
    equity_in = np.zeros(n)
    investment[:c_years] = calculate_construction_drawdowns(total, c_years)
    drawdown[:c_years] = calculate_construction_drawdowns(debt, c_years)
    equity_in[:c_years] = calculate_construction_drawdowns(equity, c_years)

    opening = np.zeros(n)
    interest = np.zeros(n)
    principal = np.zeros(n)
    service = np.zeros(n)

    tranche = Tranche(settings.model, rate, debt, years_io=settings.grace_period)
    rows = annuity_schedule(tranche, settings.loan_duration - settings.grace_period)
    if len(rows) > life:
        logger.warning("Loan runs %d years past the %d-year project life; schedule truncated",
                       len(rows) - life, life)
    for k, row in enumerate(rows[:life]):
        idx = c_years + k  # year k+1
        opening[idx] = row.opening_balance
        interest[idx] = row.interest
        principal[idx] = row.principal
        service[idx] = row.service

    logger.debug("%s financing: investment %.2f, debt %.2f, equity %.2f at %.2f%%",
                 settings.model, total, debt, equity, rate * 100)

    return FinancingSeries(
        years=years,
        investment=investment,
        drawdown=drawdown,
        equity_contribution=equity_in,
        opening_balance=opening,
        interest=interest,
        principal=principal,
        debt_service=service,
        debt_amount=debt,
        equity_amount=equity,
        interest_rate=rate,
        loan_years=min(settings.loan_duration, life),
        minimum_dscr=settings.minimum_dscr,
    )


__all__ = ["FINANCING_MODELS", "FinancingSeries", "generate_financing"]
