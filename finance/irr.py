"""Periodic NPV / IRR / payback calculations for annual project cashflows.

All rates in this module are decimals (0.08 = 8%). Settings carry percentages;
callers convert at the boundary.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np
import numpy_financial as npf
from scipy.optimize import brentq

from finance.utils import as_float

# Bracket searched when numpy-financial fails to converge.
_IRR_LOWER = -0.9999
_IRR_UPPER = 5.0


# ============================================================================
# PERIODIC NPV/IRR (Standard Annual Cashflows)
# ============================================================================


def npv(rate: float, cashflows: Sequence[float]) -> float:
    """Classic periodic Net Present Value.

    NPV(r) = sum_{t=0..N} CF[t] / (1+r)^t

    Parameters
    ----------
    rate : float
        Discount rate (decimal, e.g. 0.12 for 12%)
    cashflows : Sequence[float]
        Cashflow series starting at t=0

    Returns
    -------
    float
        Net Present Value

    Notes
    -----
    - Rate clamped at -99.9999% to avoid division errors

    Examples
    --------
    >>> round(npv(0.10, [-1000, 500, 500, 500]), 3)
    243.426
    """
    r = float(as_float(rate, 0.0))
    if r <= -1.0:
        r = -0.999999

    flows = np.asarray(cashflows, dtype=float)
    periods = np.arange(flows.size, dtype=float)
    return float(np.sum(flows / np.power(1.0 + r, periods)))


def irr(cashflows: Sequence[float]) -> Optional[float]:
    """Periodic Internal Rate of Return.

    Finds rate r such that NPV(r, cashflows) = 0. Uses numpy-financial first
    and falls back to a bracketed Brent solve on [-99.99%, 500%].

    Returns
    -------
    Optional[float]
        IRR as decimal (e.g. 0.18 = 18%), or None if no root exists

    Edge Cases
    ----------
    - All zeros: returns 0.0
    - No sign change in the cashflows: returns None

    Examples
    --------
    >>> round(irr([-1000, 500, 500, 500]), 4)
    0.2338
    """
    cfs = [float(x) for x in cashflows]
    if not cfs:
        return None

    if all(abs(cf) < 1e-12 for cf in cfs):
        return 0.0

    if all(cf >= 0 for cf in cfs) or all(cf <= 0 for cf in cfs):
        return None

    val = float(npf.irr(cfs))
    if math.isfinite(val):
        return val

    return _irr_bracketed(cfs)


def _irr_bracketed(cashflows: Sequence[float]) -> Optional[float]:
    """Brent solve over the default bracket. Internal use only."""
    f_lo = npv(_IRR_LOWER, cashflows)
    f_hi = npv(_IRR_UPPER, cashflows)

    if not (math.isfinite(f_lo) and math.isfinite(f_hi)):
        return None
    if f_lo == 0.0:
        return _IRR_LOWER
    if f_hi == 0.0:
        return _IRR_UPPER
    if (f_lo > 0) == (f_hi > 0):
        return None

    return float(brentq(lambda r: npv(r, cashflows), _IRR_LOWER, _IRR_UPPER, xtol=1e-12, maxiter=200))


# ============================================================================
# PAYBACK
# ============================================================================


def payback_period(cashflows: Sequence[float], horizon: Optional[float] = None) -> float:
    """Years until cumulative cashflow turns non-negative.

    ``cashflows[0]`` is the initial (usually negative) position at t=0. The
    crossing year is interpolated linearly, so a project that recovers half of
    its outstanding balance in year 3 reports 2.5.

    When the cumulative position never recovers, ``horizon`` is returned
    (defaults to the number of periods after t=0).
    """
    flows = [float(x) for x in cashflows]
    if horizon is None:
        horizon = float(max(len(flows) - 1, 0))
    if not flows:
        return float(horizon)

    cumulative = flows[0]
    if cumulative >= 0:
        return 0.0

    for year in range(1, len(flows)):
        previous = cumulative
        cumulative += flows[year]
        if previous < 0 <= cumulative:
            fraction = abs(previous) / flows[year]
            return (year - 1) + fraction

    return float(horizon)


__all__ = [
    "npv",
    "irr",
    "payback_period",
]
