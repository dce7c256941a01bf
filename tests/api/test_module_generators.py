"""
Unit tests for the per-module generators in windfarm_mc.modules.

Each generator is driven with deterministic (fixed) distributions so the
expected series can be written down by hand.
"""

import logging

import numpy as np
import pytest

from windfarm_mc.distributions import DistributionSpec, make_rng
from windfarm_mc.errors import InvalidModuleParameters
from windfarm_mc.modules.context import ModuleContext
from windfarm_mc.modules.cost import generate_cost
from windfarm_mc.modules.financing import generate_financing
from windfarm_mc.modules.revenue import generate_revenue
from windfarm_mc.modules.risk import draw_reserve, generate_risk, risk_metrics
from windfarm_mc.oem import CorrectiveMajorDetails, OEMContract, OEMScope
from windfarm_mc.responsibility import build_responsibility_matrix
from windfarm_mc.settings import (
    Adjustment,
    CostSettings,
    FinancingSettings,
    MajorRepairEvent,
    RevenueSettings,
    RiskSettings,
)


def _make_context(life=5, num_wtgs=10, contracts=(), construction_years=1):
    matrix = build_responsibility_matrix(life, num_wtgs, contracts)
    return ModuleContext(project_life=life, num_wtgs=num_wtgs, construction_years=construction_years,
                         matrix=tuple(matrix))


def _fixed(value):
    return DistributionSpec.fixed(value)


# ---------------------------------------------------------------------------
# Cost
# ---------------------------------------------------------------------------


def test_contract_years_replace_base_om_with_fee():
    contract = OEMContract(id="c1", years=(1, 2, 3), fixed_fee=100_000.0, is_per_turbine=True)
    context = _make_context(contracts=[contract])
    cost = generate_cost(CostSettings(failure_event_probability=0.0), context, make_rng(42, 0))

    assert cost.contract_fee.tolist() == [1_000_000.0] * 3 + [0.0, 0.0]
    assert cost.base_om[:3].tolist() == [0.0] * 3
    # Default 2% fixed escalation, factor 1 in year 1
    assert cost.base_om[3] == pytest.approx(5_000_000.0 * 1.02 ** 3)
    assert cost.base_om[4] == pytest.approx(5_000_000.0 * 1.02 ** 4)


def test_failure_events_charge_owner_unless_covered():
    settings = CostSettings(failure_event_probability=100.0, failure_event_cost=200.0)
    uncovered = generate_cost(settings, _make_context(life=3), make_rng(1, 0))
    assert uncovered.failure_events.all()
    assert uncovered.failure_cost.tolist() == [200.0, 200.0, 200.0]

    scope = OEMScope(id="s", corrective_minor=True)
    covered_ctx = _make_context(life=3, contracts=[OEMContract(id="c", years=(1,), oem_scope=scope)])
    covered = generate_cost(settings, covered_ctx, make_rng(1, 0))
    assert covered.failure_cost.tolist() == [0.0, 200.0, 200.0]
    assert covered.failure_cost_gross.tolist() == [200.0, 200.0, 200.0]


def test_no_failures_at_zero_probability():
    cost = generate_cost(CostSettings(failure_event_probability=0.0), _make_context(), make_rng(3, 0))
    assert not cost.failure_events.any()
    assert cost.failure_cost.sum() == 0.0


def test_major_repair_split_with_financial_cap():
    """Tooling+parts covered (2/3 of 1000), capped at 500 per year: owner pays 500."""
    scope = OEMScope(
        id="s",
        corrective_major=True,
        corrective_major_details=CorrectiveMajorDetails(tooling=True, parts=True),
        major_financial_cap=500.0,
    )
    context = _make_context(life=3, contracts=[OEMContract(id="c", years=(1, 2), oem_scope=scope)])
    settings = CostSettings(
        failure_event_probability=0.0,
        major_repair_events=(
            MajorRepairEvent(year=2, cost=1000.0, probability=100.0),
            MajorRepairEvent(year=3, cost=1000.0, probability=100.0),
            MajorRepairEvent(year=1, cost=1000.0, probability=0.0),
        ),
    )
    cost = generate_cost(settings, context, make_rng(5, 0))
    assert cost.major_repairs.tolist() == [0.0, pytest.approx(500.0), pytest.approx(1000.0)]


def test_major_repair_uncapped_component_share():
    scope = OEMScope(id="s", corrective_major=True,
                     corrective_major_details=CorrectiveMajorDetails(tooling=True, parts=True))
    context = _make_context(life=2, contracts=[OEMContract(id="c", years=(1,), oem_scope=scope)])
    settings = CostSettings(failure_event_probability=0.0,
                            major_repair_events=(MajorRepairEvent(year=1, cost=900.0),))
    cost = generate_cost(settings, context, make_rng(5, 0))
    assert cost.major_repairs[0] == pytest.approx(300.0)


def test_contingency_and_adjustments_added_to_total():
    settings = CostSettings(
        annual_base_om=0.0,
        failure_event_probability=0.0,
        contingency_cost=10.0,
        adjustments=(Adjustment(years=(2, 9), amount=5.0, description="blade repair"),),
    )
    cost = generate_cost(settings, _make_context(life=3), make_rng(0, 0))
    assert cost.total.tolist() == [10.0, 15.0, 10.0]
    assert set(cost.components()) == {"baseOM", "contractFee", "failureRisk", "majorRepairs",
                                      "contingency", "adjustments"}


# ---------------------------------------------------------------------------
# Revenue
# ---------------------------------------------------------------------------


def _revenue_settings(**kwargs):
    base = dict(
        energy_production=_fixed(1000.0),
        electricity_price=_fixed(50.0),
        revenue_degradation_rate=0.0,
        downtime_per_event=_fixed(876.0),
    )
    base.update(kwargs)
    return RevenueSettings(**base)


def test_revenue_energy_times_price_with_degradation():
    revenue = generate_revenue(_revenue_settings(revenue_degradation_rate=10.0), _make_context(life=3),
                               make_rng(0, 0))
    assert revenue.gross.tolist() == [pytest.approx(50_000.0), pytest.approx(45_000.0), pytest.approx(40_500.0)]
    assert revenue.downtime_loss.sum() == 0.0


def test_revenue_downtime_only_in_failure_years():
    mask = np.array([True, False, True])
    context = _make_context(life=3).with_cost_events(mask, np.zeros(3), np.ones(3))
    revenue = generate_revenue(_revenue_settings(), context, make_rng(0, 0))

    # 876 of 8760 hours lost -> 10% of gross
    assert revenue.downtime_hours.tolist() == [876.0, 0.0, 876.0]
    assert revenue.total.tolist() == [pytest.approx(45_000.0), pytest.approx(50_000.0), pytest.approx(45_000.0)]


def test_revenue_price_escalation_and_clipped_energy():
    settings = _revenue_settings(energy_production=_fixed(-5.0), price_escalation=_fixed(10.0))
    revenue = generate_revenue(settings, _make_context(life=2), make_rng(0, 0))
    assert revenue.price.tolist() == [pytest.approx(50.0), pytest.approx(55.0)]
    assert revenue.energy.tolist() == [0.0, 0.0]


# ---------------------------------------------------------------------------
# Financing
# ---------------------------------------------------------------------------


def test_balance_sheet_sizing_and_grace():
    settings = FinancingSettings(capex=80.0, devex=20.0, debt_to_equity_ratio=1.5, loan_duration=4,
                                 grace_period=1, loan_interest_rate_bs=5.0)
    fin = generate_financing(settings, _make_context(life=5))

    assert fin.debt_amount == pytest.approx(60.0)
    assert fin.equity_amount == pytest.approx(40.0)
    assert fin.years.tolist() == [0, 1, 2, 3, 4, 5]
    service = fin.op("debt_service")
    assert service[0] == pytest.approx(3.0)  # interest only
    assert service[1] == pytest.approx(service[3])
    assert service[4] == 0.0
    assert fin.principal.sum() == pytest.approx(60.0)
    assert fin.loan_years == 4


def test_project_finance_sizing_and_construction_drawdowns():
    settings = FinancingSettings(capex=80.0, devex=20.0, model="Project-Finance", debt_to_capex_ratio=0.7,
                                 loan_duration=3)
    fin = generate_financing(settings, _make_context(life=5, construction_years=2))

    assert fin.debt_amount == pytest.approx(56.0)
    assert fin.equity_amount == pytest.approx(44.0)
    assert fin.interest_rate == pytest.approx(0.06)
    assert fin.years.tolist() == [-1, 0, 1, 2, 3, 4, 5]
    assert fin.investment.tolist()[:2] == [50.0, 50.0]
    assert fin.equity_contribution.tolist()[:2] == [22.0, 22.0]
    assert fin.op("debt_service")[3:].tolist() == [0.0, 0.0]


def test_explicit_equity_investment_sets_debt(caplog):
    settings = FinancingSettings(capex=90.0, devex=0.0, equity_investment=30.0, debt_to_equity_ratio=2.0)
    with caplog.at_level(logging.WARNING, logger="windfarm_mc.modules.financing"):
        fin = generate_financing(settings, _make_context(life=20))
    assert fin.debt_amount == pytest.approx(60.0)
    assert fin.equity_amount == pytest.approx(30.0)
    assert "equityInvestment" not in caplog.text


def test_equity_investment_mismatch_is_logged(caplog):
    settings = FinancingSettings(capex=100.0, devex=0.0, equity_investment=30.0, debt_to_equity_ratio=2.0)
    with caplog.at_level(logging.WARNING, logger="windfarm_mc.modules.financing"):
        fin = generate_financing(settings, _make_context(life=20))
    assert fin.debt_amount == pytest.approx(60.0)
    assert fin.equity_amount == pytest.approx(40.0)
    assert "equityInvestment 30.00" in caplog.text
    assert "equity funds 40.00" in caplog.text


def test_grace_period_must_be_shorter_than_loan():
    with pytest.raises(InvalidModuleParameters):
        generate_financing(FinancingSettings(loan_duration=3, grace_period=3), _make_context())


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------


def test_insurance_payout_above_deductible_and_reserve():
    settings = RiskSettings(insurance_enabled=True, insurance_premium=100.0, insurance_deductible=10.0,
                            reserve_funds=300.0, reserve_provision_years=3)
    mask = np.array([True, False, True])
    context = _make_context(life=3).with_cost_events(mask, np.array([50.0, 0.0, 5.0]), np.ones(3))
    risk = generate_risk(settings, context)

    assert risk.insurance_payout.tolist() == [40.0, 0.0, 0.0]
    assert risk.reserve_provision.tolist() == [100.0, 100.0, 100.0]
    assert risk.total.tolist() == [160.0, 200.0, 200.0]


def test_premium_escalates_with_om_index():
    settings = RiskSettings(insurance_enabled=True, insurance_premium=100.0, escalate_with_om=True)
    context = _make_context(life=2).with_cost_events(np.zeros(2, dtype=bool), np.zeros(2), np.array([1.0, 1.1]))
    assert generate_risk(settings, context).insurance_premium.tolist() == [pytest.approx(100.0),
                                                                          pytest.approx(110.0)]


def test_insurance_disabled_costs_nothing():
    risk = generate_risk(RiskSettings(), _make_context(life=4))
    assert risk.total.tolist() == [0.0] * 4


def test_reserve_covers_negative_years_up_to_provisioned_balance():
    settings = RiskSettings(reserve_funds=300.0, reserve_provision_years=3)
    risk = generate_risk(settings, _make_context(life=4))
    assert risk.reserve_remaining.tolist() == [100.0, 200.0, 300.0, 300.0]

    drawn = draw_reserve(risk, np.array([50.0, -150.0, -30.0, -500.0]))

    assert drawn.reserve_used.tolist() == [0.0, 150.0, 30.0, 120.0]
    assert drawn.reserve_remaining.tolist() == [100.0, 50.0, 120.0, 0.0]
    assert drawn.total.tolist() == [100.0, -50.0, 70.0, -120.0]
    metrics = risk_metrics(drawn, settings.reserve_funds)
    assert metrics["totalReserveUsed"] == pytest.approx(300.0)
    assert metrics["remainingReserve"] == pytest.approx(0.0)
    assert metrics["reserveUtilizationRate"] == pytest.approx(1.0)


def test_reserve_untouched_when_cashflow_positive():
    settings = RiskSettings(reserve_funds=200.0, reserve_provision_years=2)
    drawn = draw_reserve(generate_risk(settings, _make_context(life=3)), np.array([10.0, 20.0, 30.0]))
    assert drawn.reserve_used.tolist() == [0.0, 0.0, 0.0]
    assert risk_metrics(drawn, settings.reserve_funds)["reserveUtilizationRate"] == 0.0


def test_insurance_mitigation_metrics():
    settings = RiskSettings(insurance_enabled=True, insurance_premium=100.0, insurance_deductible=10.0)
    mask = np.array([True, False, True])
    context = _make_context(life=3).with_cost_events(mask, np.array([50.0, 0.0, 5.0]), np.ones(3))
    metrics = risk_metrics(generate_risk(settings, context), settings.reserve_funds)

    assert metrics["totalInsurancePremiums"] == pytest.approx(300.0)
    assert metrics["totalRiskMitigated"] == pytest.approx(40.0)
    assert metrics["netRiskMitigationValue"] == pytest.approx(-260.0)
    assert metrics["riskMitigationROI"] == pytest.approx(40.0 / 300.0)
