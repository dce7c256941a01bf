"""
Project finance coverage metrics.

FEATURES:
---------
- DSCR (Debt Service Coverage Ratio) per year and its summary
- ICR (Interest Coverage Ratio) per year
- LLCR (Loan Life Coverage Ratio) as a single value at COD
- Covenant checks against a minimum DSCR

Coverage ratios are None for years where the denominator is zero, so callers
can tell "no debt this year" apart from "zero coverage".
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from finance.irr import npv

logger = logging.getLogger(__name__)

__all__ = [
    "compute_dscr_series",
    "compute_icr_series",
    "summarize_dscr",
    "min_operational",
    "calculate_llcr",
    "check_dscr_covenant",
]


# ============================================================================
# DSCR / ICR
# ============================================================================


def _ratio_series(numerators: Sequence[float], denominators: Sequence[float]) -> List[Optional[float]]:
    out: List[Optional[float]] = []
    for num, den in zip(numerators, denominators):
        den = float(den)
        out.append(float(num) / den if den > 0 else None)
    return out


def compute_dscr_series(cfads: Sequence[float], debt_service: Sequence[float]) -> List[Optional[float]]:
    """
    Calculate DSCR for each year.

    DSCR_t = CFADS_t / DebtService_t

    Returns None for years where DSCR is undefined (no debt service).
    """
    return _ratio_series(cfads, debt_service)


def compute_icr_series(cfads: Sequence[float], interest: Sequence[float]) -> List[Optional[float]]:
    """ICR_t = CFADS_t / Interest_t, None when no interest is due."""
    return _ratio_series(cfads, interest)


def min_operational(years: Sequence[int], ratios: Sequence[Optional[float]]) -> Optional[float]:
    """Minimum of a ratio series over operational years (year > 0)."""
    valid = [r for y, r in zip(years, ratios) if y > 0 and r is not None]
    return min(valid) if valid else None


def summarize_dscr(dscr_series: Sequence[Optional[float]]) -> Dict[str, Any]:
    """
    Compute summary statistics for DSCR series.

    Returns
    -------
    dict
        {
            'dscr_min': float or None,
            'dscr_avg': float or None,
            'dscr_max': float or None,
            'years_with_dscr': int,
            'years_below_1_0': int,
        }
    """
    valid = [d for d in dscr_series if d is not None]

    if not valid:
        return {
            'dscr_min': None,
            'dscr_avg': None,
            'dscr_max': None,
            'years_with_dscr': 0,
            'years_below_1_0': 0,
        }

    return {
        'dscr_min': min(valid),
        'dscr_avg': sum(valid) / len(valid),
        'dscr_max': max(valid),
        'years_with_dscr': len(valid),
        'years_below_1_0': sum(1 for d in valid if d < 1.0),
    }


# ============================================================================
# LLCR
# ============================================================================


def calculate_llcr(
    cfads_loan_life: Sequence[float],
    debt_outstanding: float,
    discount_rate: float,
) -> Optional[float]:
    """
    Loan Life Coverage Ratio at COD.

    LLCR = NPV(CFADS over the remaining loan life) / Outstanding Debt

    ``cfads_loan_life[0]`` is the first operating year and is discounted one
    full period. Returns None when there is no debt outstanding.
    """
    if debt_outstanding <= 0:
        return None
    # Prepend a zero t=0 slot so the first operating year is discounted once.
    pv = npv(discount_rate, [0.0, *cfads_loan_life])
    return pv / debt_outstanding


# ============================================================================
# COVENANT MONITORING
# ============================================================================


def check_dscr_covenant(
    years: Sequence[int],
    dscr_series: Sequence[Optional[float]],
    minimum_dscr: float,
) -> List[int]:
    """Return operational years whose DSCR falls below ``minimum_dscr``."""
    breaches = [
        y for y, d in zip(years, dscr_series)
        if y > 0 and d is not None and d < minimum_dscr
    ]
    if breaches:
        logger.debug("DSCR below covenant %.2fx in years %s", minimum_dscr, breaches)
    return breaches
