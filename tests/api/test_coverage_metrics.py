"""Unit tests for finance.metrics (DSCR / ICR / LLCR and covenant checks)."""

import pytest

from finance.metrics import (
    calculate_llcr,
    check_dscr_covenant,
    compute_dscr_series,
    compute_icr_series,
    min_operational,
    summarize_dscr,
)


def test_dscr_series_none_without_debt_service():
    dscr = compute_dscr_series([130.0, 130.0, 50.0], [100.0, 0.0, 50.0])
    assert dscr[0] == pytest.approx(1.3)
    assert dscr[1] is None
    assert dscr[2] == pytest.approx(1.0)


def test_icr_series_uses_interest_only():
    assert compute_icr_series([100.0], [25.0]) == [pytest.approx(4.0)]


def test_min_operational_skips_construction_and_undefined_years():
    assert min_operational([1, 2, 3], [1.3, None, 1.0]) == pytest.approx(1.0)
    assert min_operational([0, 1], [0.5, 2.0]) == pytest.approx(2.0)
    assert min_operational([1, 2], [None, None]) is None


def test_summarize_dscr_counts_sub_one_years():
    summary = summarize_dscr([None, 0.9, 1.5])
    assert summary["dscr_min"] == pytest.approx(0.9)
    assert summary["dscr_max"] == pytest.approx(1.5)
    assert summary["years_with_dscr"] == 2
    assert summary["years_below_1_0"] == 1


def test_llcr_discounts_first_operating_year_once():
    # 110 / 1.10 / 100
    assert calculate_llcr([110.0], 100.0, 0.10) == pytest.approx(1.0)


def test_llcr_undefined_without_debt():
    assert calculate_llcr([100.0, 100.0], 0.0, 0.05) is None


def test_covenant_check_reports_breach_years():
    assert check_dscr_covenant([1, 2, 3], [1.5, 1.1, None], 1.2) == [2]
    assert check_dscr_covenant([1, 2], [1.5, 1.6], 1.2) == []
