"""Unit tests for finance.debt: PMT, construction drawdowns and annuity schedules."""

import pytest

from finance.debt import Tranche, annuity_schedule, calculate_construction_drawdowns, pmt


def test_pmt_matches_annuity_formula():
    # 1000 * 0.05 / (1 - 1.05**-10)
    assert pmt(0.05, 10, 1000.0) == pytest.approx(129.5046, rel=1e-5)


def test_pmt_zero_rate_and_zero_periods():
    assert pmt(0.0, 4, 1000.0) == pytest.approx(250.0)
    assert pmt(0.05, 0, 1000.0) == 0.0


def test_construction_drawdowns_even_split():
    assert calculate_construction_drawdowns(90.0, 3) == [30.0, 30.0, 30.0]
    # At least one period, even when asked for none
    assert calculate_construction_drawdowns(90.0, 0) == [90.0]


def test_annuity_schedule_grace_then_level_payments():
    """Two interest-only years, then ten level payments that clear the balance."""
    rows = annuity_schedule(Tranche("senior", 0.05, 1000.0, years_io=2), 10)

    assert len(rows) == 12
    for row in rows[:2]:
        assert row.interest == pytest.approx(50.0)
        assert row.principal == 0.0
        assert row.service == pytest.approx(50.0)

    services = [row.service for row in rows[2:]]
    assert all(s == pytest.approx(129.5046, rel=1e-5) for s in services)
    assert sum(row.principal for row in rows) == pytest.approx(1000.0)
    assert rows[-1].opening_balance < rows[2].opening_balance


def test_annuity_schedule_without_debt_is_interest_free():
    rows = annuity_schedule(Tranche("none", 0.05, 0.0), 5)
    assert rows == []
