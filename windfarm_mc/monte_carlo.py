"""
Monte Carlo orchestrator for the wind-farm financial model.

A run moves through VALIDATE -> SAMPLE -> AGGREGATE -> EXTRACT_PERCENTILES ->
DONE. Validation failures move straight to FAILED before anything is sampled.

Each iteration ``i`` draws from its own generator ``default_rng([seed, i])``,
so results do not depend on how many workers execute the iterations.
Iterations that hit a numeric failure are logged and left out of the
percentile populations; if every iteration fails the run raises
SimulationDivergence.
"""

from __future__ import annotations

import copy
import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from analytics.aggregation import AggregatedCashflow, NamedSeries, PercentileSelection, aggregate
from analytics.percentiles import ScalarMetric, TimeSeriesMetric, to_legacy_labels
from analytics.schema_guard import validate_settings
from constants import MIN_ITERATIONS
from finance.irr import irr, npv, payback_period
from finance.metrics import (
    calculate_llcr,
    check_dscr_covenant,
    compute_dscr_series,
    compute_icr_series,
    min_operational,
    summarize_dscr,
)
from finance.utils import points_to_dicts
from windfarm_mc.distributions import make_rng
from windfarm_mc.errors import (
    InvalidModuleParameters,
    SimulationCancelled,
    SimulationDivergence,
    SimulationError,
)
from windfarm_mc.modules.context import ModuleContext
from windfarm_mc.modules.cost import CostSeries, generate_cost
from windfarm_mc.modules.financing import FinancingSeries, generate_financing
from windfarm_mc.modules.revenue import RevenueSeries, generate_revenue
from windfarm_mc.modules.risk import RiskSeries, draw_reserve, generate_risk, risk_metrics
from windfarm_mc.oem import OEMScope, resolve_contract_scopes
from windfarm_mc.responsibility import YearlyResponsibility, build_responsibility_matrix, matrix_to_dicts
from windfarm_mc.settings import PercentileSet, ScenarioSettings

logger = logging.getLogger(__name__)


class RunState(Enum):
    PENDING = "pending"
    VALIDATE = "validate"
    SAMPLE = "sample"
    AGGREGATE = "aggregate"
    EXTRACT_PERCENTILES = "extract_percentiles"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class IterationOutcome:
    """Everything one successful iteration produced."""

    index: int
    cost: CostSeries
    revenue: RevenueSeries
    risk: RiskSeries
    cfads: np.ndarray
    equity_cashflow: np.ndarray
    irr: float
    equity_irr: Optional[float]
    npv: float
    payback: float
    dscr: List[Optional[float]]
    min_dscr: Optional[float]
    avg_dscr: Optional[float]
    dscr_years_below_one: int
    min_icr: Optional[float]
    llcr: Optional[float]


@dataclass(frozen=True)
class IterationFailure:
    index: int
    error: BaseException


# ============================================================================
# RESULT
# ============================================================================


@dataclass
class SimulationResult:
    """Percentile results of a run plus per-iteration detail."""

    input_sim: Dict[str, Any]
    output_sim: Dict[str, ScalarMetric]
    responsibility_matrix: List[YearlyResponsibility]
    percentile_set: PercentileSet
    percentiles: List[float]
    iterations: int
    successful: int
    covenant_breach_share: Optional[float]
    iterations_frame: pd.DataFrame

    @property
    def failed(self) -> int:
        return self.iterations - self.successful

    def _cashflow_item(self, name: str) -> TimeSeriesMetric:
        cashflow = self.input_sim["cashflow"]
        if name == "annualCosts":
            return cashflow["annualCosts"]["total"]
        return cashflow[name]

    def aggregate(self, selection: PercentileSelection) -> AggregatedCashflow:
        """Combine revenue, cost, risk and debt service at the selected percentiles."""
        items = [
            NamedSeries("annualRevenue", "revenue", self._cashflow_item("annualRevenue")),
            NamedSeries("annualCosts", "cost", self._cashflow_item("annualCosts")),
            NamedSeries("riskCosts", "cost", self._cashflow_item("riskCosts")),
            NamedSeries("debtService", "debt_service", self._cashflow_item("debtService")),
        ]
        return aggregate(items, selection)

    def to_dict(self, legacy_labels: bool = False) -> Dict[str, Any]:
        """Plain-data shape ``{inputSim, outputSim, summary}``."""

        def export(metric: Any) -> Any:
            if isinstance(metric, (ScalarMetric, TimeSeriesMetric)):
                data = metric.to_dict()
                return to_legacy_labels(data, self.percentile_set) if legacy_labels else data
            if isinstance(metric, dict):
                return {k: export(v) for k, v in metric.items()}
            return metric

        return {
            "inputSim": {
                "cashflow": export(self.input_sim["cashflow"]),
                "risk": export(self.input_sim["risk"]),
                "scope": {"responsibilityMatrix": matrix_to_dicts(self.responsibility_matrix)},
            },
            "outputSim": {name: export(metric) for name, metric in self.output_sim.items()},
            "summary": {
                "iterations": self.iterations,
                "successful": self.successful,
                "failed": self.failed,
                "percentiles": list(self.percentiles),
                "covenantBreachShare": self.covenant_breach_share,
            },
        }


# ============================================================================
# ENGINE
# ============================================================================


class MonteCarloEngine:
    """
    Run a scenario's Monte Carlo simulation.

    Parameters
    ----------
    settings:
        Typed scenario settings. A deep copy is taken here, so later changes
        to the caller's object do not affect the run.
    oem_scopes:
        Scopes that contracts reference by ``oemScopeId``.
    workers:
        Thread count for iteration execution; 1 runs sequentially.
    cancel_event:
        Optional ``threading.Event``; checked before every iteration.
    strict_contracts:
        Raise ResponsibilityMatrixConflict on overlapping contracts instead of
        letting the later contract win.
    """

    def __init__(
        self,
        settings: ScenarioSettings,
        oem_scopes: Optional[Iterable[OEMScope]] = None,
        workers: int = 1,
        cancel_event: Optional[threading.Event] = None,
        strict_contracts: bool = False,
    ) -> None:
        self.settings = copy.deepcopy(settings)
        self.oem_scopes = list(oem_scopes or ())
        self.workers = max(int(workers), 1)
        self.cancel_event = cancel_event
        self.strict_contracts = strict_contracts
        self.state = RunState.PENDING

        self.matrix: List[YearlyResponsibility] = []
        self.context: Optional[ModuleContext] = None
        self.financing: Optional[FinancingSeries] = None

    # ------------------------------------------------------------------
    # VALIDATE
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """Check settings and build the deterministic parts of the run."""
        self.state = RunState.VALIDATE
        try:
            validate_settings(self.settings)
            sim = self.settings.simulation
            if sim.seed is None:
                raise InvalidModuleParameters("simulation", "seed", None, "is required")
            if sim.iterations < MIN_ITERATIONS:
                raise InvalidModuleParameters("simulation", "iterations", sim.iterations,
                                              f"must be at least {MIN_ITERATIONS}")

            life = self.settings.project_life
            num_wtgs = self.settings.num_wtgs
            contracts = resolve_contract_scopes(self.settings.modules.contracts.oem_contracts, self.oem_scopes)
            self.matrix = build_responsibility_matrix(life, num_wtgs, contracts, strict=self.strict_contracts)
            self.context = ModuleContext(
                project_life=life,
                num_wtgs=num_wtgs,
                construction_years=self.settings.modules.financing.construction_years,
                matrix=tuple(self.matrix),
            )
            self.financing = generate_financing(self.settings.modules.financing, self.context)
        except SimulationError:
            self.state = RunState.FAILED
            raise

    # ------------------------------------------------------------------
    # SAMPLE
    # ------------------------------------------------------------------

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def run_iteration(self, index: int) -> IterationOutcome:
        """Compute one iteration. Raises on numeric failure."""
        settings = self.settings
        modules = settings.modules
        fin = self.financing
        rng = make_rng(settings.simulation.seed, index)

        cost = generate_cost(modules.cost, self.context, rng)
        context = self.context.with_cost_events(cost.failure_events, cost.failure_cost, cost.escalation_index)
        revenue = generate_revenue(modules.revenue, context, rng)
        risk = generate_risk(modules.risk, context, rng)
        risk = draw_reserve(risk, revenue.total - cost.total - risk.total)

        cfads = revenue.total - cost.total - risk.total
        construction = ~fin.operational
        project_cf = np.concatenate([-fin.investment[construction], cfads])
        debt_service = fin.op("debt_service")
        equity_cf = np.concatenate([-fin.equity_contribution[construction], cfads - debt_service])

        project_irr = irr(project_cf)
        if project_irr is None or not math.isfinite(project_irr):
            raise ArithmeticError(f"project IRR did not converge for iteration {index}")
        project_npv = npv(modules.financing.discount_rate / 100.0, project_cf)
        if not math.isfinite(project_npv):
            raise ArithmeticError(f"NPV is not finite for iteration {index}")

        c_years = self.context.construction_years
        life = self.context.project_life
        payback = payback_period(project_cf, horizon=life + c_years - 1) - (c_years - 1)

        op_years = list(range(1, life + 1))
        dscr = compute_dscr_series(cfads, debt_service)
        dscr_summary = summarize_dscr(dscr)
        icr = compute_icr_series(cfads, fin.op("interest"))
        llcr = calculate_llcr(cfads[:fin.loan_years], fin.debt_amount, fin.interest_rate)

        return IterationOutcome(
            index=index,
            cost=cost,
            revenue=revenue,
            risk=risk,
            cfads=cfads,
            equity_cashflow=equity_cf,
            irr=project_irr,
            equity_irr=irr(equity_cf),
            npv=project_npv,
            payback=max(payback, 0.0),
            dscr=dscr,
            min_dscr=min_operational(op_years, dscr),
            avg_dscr=dscr_summary["dscr_avg"],
            dscr_years_below_one=dscr_summary["years_below_1_0"],
            min_icr=min_operational(op_years, icr),
            llcr=llcr,
        )

    def _guarded_iteration(self, index: int) -> Union[IterationOutcome, IterationFailure]:
        if self._cancelled():
            raise SimulationCancelled(index)
        try:
            return self.run_iteration(index)
        except SimulationError:
            raise
        except (ArithmeticError, ValueError) as exc:
            logger.warning("Iteration %d excluded: %s", index, exc)
            return IterationFailure(index, exc)

    def _sample(self, iterations: int) -> List[Union[IterationOutcome, IterationFailure]]:
        results: List[Optional[Union[IterationOutcome, IterationFailure]]] = [None] * iterations

        if self.workers == 1:
            for i in range(iterations):
                if self._cancelled():
                    raise SimulationCancelled(i)
                results[i] = self._guarded_iteration(i)
            return results

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [pool.submit(self._guarded_iteration, i) for i in range(iterations)]
            for i, future in enumerate(futures):
                try:
                    results[i] = future.result()
                except SimulationCancelled:
                    for pending in futures[i + 1:]:
                        pending.cancel()
                    break
            else:
                return results

        completed = sum(1 for f in futures if f.done() and not f.cancelled() and f.exception() is None)
        raise SimulationCancelled(completed)

    # ------------------------------------------------------------------
    # RUN
    # ------------------------------------------------------------------

    def run(self) -> SimulationResult:
        self.validate()
        sim = self.settings.simulation
        iterations = sim.iterations
        targets = sim.all_percentiles()
        logger.info("Monte Carlo run: %d iterations, seed %s, %d workers, percentiles %s",
                    iterations, sim.seed, self.workers, targets)

        self.state = RunState.SAMPLE
        try:
            raw = self._sample(iterations)
        except SimulationCancelled:
            self.state = RunState.CANCELLED
            raise
        except SimulationError:
            self.state = RunState.FAILED
            raise

        outcomes = [r for r in raw if isinstance(r, IterationOutcome)]
        failures = [r for r in raw if isinstance(r, IterationFailure)]
        if not outcomes:
            self.state = RunState.FAILED
            raise SimulationDivergence(iterations, failures[-1].error if failures else None)
        if failures:
            logger.warning("Monte Carlo: %d/%d iterations excluded", len(failures), iterations)

        self.state = RunState.AGGREGATE
        frame = self._iterations_frame(outcomes, iterations)

        self.state = RunState.EXTRACT_PERCENTILES
        result = SimulationResult(
            input_sim=self._input_sim(outcomes, targets),
            output_sim=self._output_sim(outcomes, targets),
            responsibility_matrix=list(self.matrix),
            percentile_set=sim.probabilities,
            percentiles=targets,
            iterations=iterations,
            successful=len(outcomes),
            covenant_breach_share=self._covenant_breach_share(outcomes),
            iterations_frame=frame,
        )
        self.state = RunState.DONE
        logger.info("Monte Carlo run finished: %d/%d iterations succeeded", len(outcomes), iterations)
        return result

    # ------------------------------------------------------------------
    # AGGREGATE / EXTRACT
    # ------------------------------------------------------------------

    def _iterations_frame(self, outcomes: Sequence[IterationOutcome], iterations: int) -> pd.DataFrame:
        df = pd.DataFrame(
            [
                {
                    "iteration": o.index,
                    "project_irr": o.irr,
                    "equity_irr": o.equity_irr,
                    "npv": o.npv,
                    "payback": o.payback,
                    "min_dscr": o.min_dscr,
                    "avg_dscr": o.avg_dscr,
                    "dscr_years_below_1": o.dscr_years_below_one,
                    "min_icr": o.min_icr,
                    "llcr": o.llcr,
                }
                for o in outcomes
            ]
        )
        df.attrs["iterations"] = iterations
        df.attrs["success_rate"] = len(df) / iterations
        df.attrs["mean_project_irr"] = float(df["project_irr"].mean())
        df.attrs["p10_project_irr"] = float(df["project_irr"].quantile(0.10))
        df.attrs["p90_project_irr"] = float(df["project_irr"].quantile(0.90))
        return df

    def _input_sim(self, outcomes: Sequence[IterationOutcome], targets: List[float]) -> Dict[str, Any]:
        years = [int(y) for y in self.context.years]
        fin = self.financing
        c_years = self.context.construction_years

        def series(name: str, rows: Iterable[np.ndarray]) -> TimeSeriesMetric:
            return TimeSeriesMetric.from_population(name, years, np.vstack(list(rows)), targets)

        components = {
            name: series(name, (o.cost.components()[name] for o in outcomes))
            for name in ("baseOM", "contractFee", "failureRisk", "majorRepairs", "contingency", "adjustments")
        }

        debt_years = [y for y, ds in zip(years, fin.op("debt_service")) if ds > 0]
        if debt_years:
            cols = [years.index(y) for y in debt_years]
            dscr = TimeSeriesMetric.from_population(
                "dscr", debt_years, np.array([[o.dscr[c] for c in cols] for o in outcomes], dtype=float), targets,
            )
        else:
            dscr = TimeSeriesMetric("dscr", (), {t: () for t in targets})

        failure_rate = np.mean(np.vstack([o.cost.failure_events for o in outcomes]), axis=0)
        reserve_funds = self.settings.modules.risk.reserve_funds
        metrics = [risk_metrics(o.risk, reserve_funds) for o in outcomes]

        return {
            "cashflow": {
                "annualCosts": {
                    "components": components,
                    "total": series("annualCosts", (o.cost.total for o in outcomes)),
                },
                "annualRevenue": series("annualRevenue", (o.revenue.total for o in outcomes)),
                "riskCosts": series("riskCosts", (o.risk.total for o in outcomes)),
                "debtService": TimeSeriesMetric.constant("debtService", years, fin.op("debt_service"), targets),
                "dscr": dscr,
                "netCashFlow": series("netCashFlow", (o.cfads for o in outcomes)),
                "equityCashFlow": series("equityCashFlow", (o.equity_cashflow[c_years:] for o in outcomes)),
            },
            "risk": {
                "insurancePremium": series("insurancePremium", (o.risk.insurance_premium for o in outcomes)),
                "insurancePayout": series("insurancePayout", (o.risk.insurance_payout for o in outcomes)),
                "reserveProvision": series("reserveProvision", (o.risk.reserve_provision for o in outcomes)),
                "reserveUsed": series("reserveUsed", (o.risk.reserve_used for o in outcomes)),
                "reserveRemaining": series("reserveRemaining", (o.risk.reserve_remaining for o in outcomes)),
                "metrics": {
                    name: ScalarMetric.from_population(name, [m[name] for m in metrics], targets)
                    for name in metrics[0]
                },
                "failureEventRate": points_to_dicts(years, failure_rate),
            },
        }

    def _output_sim(self, outcomes: Sequence[IterationOutcome], targets: List[float]) -> Dict[str, ScalarMetric]:
        def scalar(name: str, values: Iterable[Optional[float]]) -> ScalarMetric:
            return ScalarMetric.from_population(name, list(values), targets)

        return {
            "IRR": scalar("IRR", (o.irr for o in outcomes)),
            "equityIRR": scalar("equityIRR", (o.equity_irr for o in outcomes)),
            "NPV": scalar("NPV", (o.npv for o in outcomes)),
            "paybackPeriod": scalar("paybackPeriod", (o.payback for o in outcomes)),
            "minDSCR": scalar("minDSCR", (o.min_dscr for o in outcomes)),
            "llcr": scalar("llcr", (o.llcr for o in outcomes)),
            "icr": scalar("icr", (o.min_icr for o in outcomes)),
        }

    def _covenant_breach_share(self, outcomes: Sequence[IterationOutcome]) -> Optional[float]:
        """Share of iterations whose minimum DSCR falls below the covenant."""
        minimum = self.financing.minimum_dscr
        op_years = [int(y) for y in self.context.years]
        defined = [o for o in outcomes if o.min_dscr is not None]
        if not defined:
            return None
        breached = sum(1 for o in defined if check_dscr_covenant(op_years, o.dscr, minimum))
        if breached:
            logger.warning("DSCR covenant %.2fx breached in %d/%d iterations", minimum, breached, len(defined))
        return breached / len(defined)


__all__ = [
    "RunState",
    "IterationOutcome",
    "IterationFailure",
    "SimulationResult",
    "MonteCarloEngine",
]
