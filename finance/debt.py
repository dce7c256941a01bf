"""Debt schedule building blocks for wind-farm financing.

FEATURES:
---------
- Even capex drawdown across construction years
- Interest-only (grace) period followed by annuity amortization
- Opening-balance tracking for LLCR and coverage checks

All rates are decimals. Amounts are in the scenario currency.
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple

import numpy_financial as npf

logger = logging.getLogger(__name__)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================


def pmt(rate: float, nper: int, pv: float) -> float:
    """Annuity payment for a loan of ``pv`` (Excel PMT, returned positive)."""
    if nper <= 0:
        return 0.0
    if rate == 0:
        return pv / nper
    return float(-npf.pmt(rate, nper, pv))


# ============================================================================
# CONSTRUCTION PERIOD
# ============================================================================


def calculate_construction_drawdowns(total_amount: float, construction_years: int) -> List[float]:
    """
    Spread an amount evenly across construction periods.

    Parameters
    ----------
    total_amount:
        Capex (or debt) to be drawn before COD.
    construction_years:
        Number of construction periods; at least one (the COD year itself).

    Returns
    -------
    list[float]
        Drawn amount per construction period, oldest first.
    """
    periods = max(int(construction_years), 1)
    share = float(total_amount) / periods
    return [share] * periods


# ============================================================================
# TRANCHE & AMORTIZATION
# ============================================================================


class Tranche:
    """A single senior debt tranche."""

    __slots__ = ("name", "rate", "principal", "years_io")

    def __init__(self, name: str, rate: float, principal: float, years_io: int = 0) -> None:
        self.name = name
        self.rate = float(rate)
        self.principal = float(principal)
        self.years_io = int(years_io)


class ScheduleRow(NamedTuple):
    opening_balance: float
    interest: float
    principal: float
    service: float


def annuity_schedule(tr: Tranche, amort_years: int) -> List[ScheduleRow]:
    """
    Build annuity schedule for one tranche.

    Interest-only years come first, then ``amort_years`` level payments.
    Returns one row per year of the loan life.
    """
    bal = tr.principal
    rows: List[ScheduleRow] = []

    # Interest-only period
    for _ in range(tr.years_io):
        interest = bal * tr.rate
        rows.append(ScheduleRow(bal, interest, 0.0, interest))

    # Amortization period
    if amort_years > 0 and bal > 0:
        payment = pmt(tr.rate, amort_years, bal)
        for _ in range(amort_years):
            interest = bal * tr.rate
            principal = min(bal, max(0.0, payment - interest))
            rows.append(ScheduleRow(bal, interest, principal, interest + principal))
            bal = max(0.0, bal - principal)

    if bal > 1e-6:
        logger.warning("Tranche %s leaves balloon of %.2f after amortization", tr.name, bal)

    return rows


__all__ = [
    "pmt",
    "calculate_construction_drawdowns",
    "Tranche",
    "ScheduleRow",
    "annuity_schedule",
]
