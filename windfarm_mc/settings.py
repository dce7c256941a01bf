"""
Typed scenario settings.

The settings tree mirrors the camelCase JSON a scenario is stored as::

    general / project.windFarm / project.currency
    modules.financing / modules.cost / modules.revenue / modules.risk / modules.contracts
    simulation (iterations, seed, probabilities)

Every section is a frozen dataclass. ``from_dict`` ignores keys it does not
model (UI-only fields travel with stored scenarios); ``merge_settings`` is the
strict path used for user overrides and rejects unknown keys.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Tuple

from analytics.config_schema import RequiredFieldSpec, register_required_fields
from constants import (
    DEFAULT_DISCOUNT_RATE,
    DEFAULT_ITERATIONS,
    DEFAULT_PERCENTILES,
    DEFAULT_RESERVE_PROVISION_YEARS,
    MIN_ITERATIONS,
)
from finance.utils import parse_flag
from windfarm_mc.distributions import DistributionSpec
from windfarm_mc.errors import InvalidModuleParameters, InvalidPercentileSet, SimulationError
from windfarm_mc.oem import OEMContract

logger = logging.getLogger(__name__)


# ============================================================================
# FIELD PARSERS
# ============================================================================


def _number(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise TypeError("must be a number")
    out = float(value)
    if not math.isfinite(out):
        raise ValueError("must be finite")
    return out


def _integer(value: Any) -> int:
    out = _number(value)
    if not out.is_integer():
        raise ValueError("must be a whole number")
    return int(out)


def _optional_number(value: Any) -> Optional[float]:
    return None if value is None else _number(value)


def _optional_integer(value: Any) -> Optional[int]:
    return None if value is None else _integer(value)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _distribution(value: Any) -> DistributionSpec:
    # Stored scenarios wrap it as {"distribution": {...}}.
    if isinstance(value, Mapping) and "distribution" in value:
        value = value["distribution"]
    return DistributionSpec.from_dict(value)


def _optional_distribution(value: Any) -> Optional[DistributionSpec]:
    if value is None:
        return None
    if isinstance(value, Mapping) and "distribution" in value and value["distribution"] is None:
        return None
    return _distribution(value)


def _tuple_of(parse: Callable[[Any], Any]) -> Callable[[Any], Tuple[Any, ...]]:
    def parse_all(value: Any) -> Tuple[Any, ...]:
        if value is None:
            return ()
        if isinstance(value, (str, bytes, Mapping)):
            raise TypeError("must be a list")
        return tuple(parse(item) for item in value)

    return parse_all


def _setting(default: Any = None, *, key: Optional[str] = None, parse: Optional[Callable[[Any], Any]] = None,
             factory: Optional[Callable[[], Any]] = None, wrap: Optional[str] = None) -> Any:
    metadata: Dict[str, Any] = {"parse": parse}
    if key:
        metadata["key"] = key
    if wrap:
        metadata["wrap"] = wrap
    if factory is not None:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _key(f: Any) -> str:
    return f.metadata.get("key") or _camel(f.name)


def _parse_field(owner: type, f: Any, value: Any) -> Any:
    parse = f.metadata.get("parse")
    if parse is None:
        return value
    try:
        return parse(value)
    except SimulationError:
        raise
    except (TypeError, ValueError) as exc:
        raise InvalidModuleParameters(owner._module, _key(f), value, str(exc)) from exc


def _export(value: Any) -> Any:
    if isinstance(value, _Section):
        return value.to_dict()
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, tuple):
        return [_export(v) for v in value]
    return value


class _Section:
    """Shared camelCase (de)serialisation for settings dataclasses."""

    _module: ClassVar[str] = "settings"

    @classmethod
    def from_dict(cls, raw: Any):
        if isinstance(raw, cls):
            return raw
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise InvalidModuleParameters(cls._module, cls.__name__, raw, "expected a mapping")

        kwargs: Dict[str, Any] = {}
        known = set()
        for f in fields(cls):
            key = _key(f)
            known.add(key)
            if key in raw:
                kwargs[f.name] = _parse_field(cls, f, raw[key])

        unknown = sorted(set(raw) - known)
        if unknown:
            logger.debug("Ignoring unmodelled %s settings: %s", cls._module, unknown)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = _export(getattr(self, f.name))
            if f.metadata.get("wrap") and value is not None:
                value = {f.metadata["wrap"]: value}
            out[_key(f)] = value
        return out


def _section(cls: type) -> Callable[[Any], Any]:
    return cls.from_dict


# ============================================================================
# GENERAL & PROJECT
# ============================================================================


@dataclass(frozen=True)
class GeneralSettings(_Section):
    _module: ClassVar[str] = "general"

    project_name: str = _setting("Wind Farm Project", parse=_text)
    project_life: int = _setting(20, parse=_integer)


@dataclass(frozen=True)
class WindFarmSettings(_Section):
    _module: ClassVar[str] = "project"

    num_wtgs: int = _setting(20, key="numWTGs", parse=_integer)
    mw_per_wtg: float = _setting(3.5, key="mwPerWTG", parse=_number)
    capacity_factor: float = _setting(35.0, parse=_number)
    wtg_platform_type: str = _setting("geared", key="wtgPlatformType", parse=_text)


@dataclass(frozen=True)
class CurrencySettings(_Section):
    _module: ClassVar[str] = "project"

    local: str = _setting("USD", parse=_text)
    foreign: str = _setting("EUR", parse=_text)
    exchange_rate: float = _setting(1.0, parse=_number)


@dataclass(frozen=True)
class ProjectSettings(_Section):
    _module: ClassVar[str] = "project"

    wind_farm: WindFarmSettings = _setting(parse=_section(WindFarmSettings), factory=WindFarmSettings)
    currency: CurrencySettings = _setting(parse=_section(CurrencySettings), factory=CurrencySettings)


# ============================================================================
# MODULES
# ============================================================================


@dataclass(frozen=True)
class FinancingSettings(_Section):
    _module: ClassVar[str] = "financing"

    capex: float = _setting(50_000_000.0, parse=_number)
    devex: float = _setting(10_000_000.0, parse=_number)
    model: str = _setting("Balance-Sheet", parse=_text)
    debt_to_equity_ratio: float = _setting(1.5, parse=_number)
    debt_to_capex_ratio: float = _setting(0.7, parse=_number)
    loan_duration: int = _setting(15, parse=_integer)
    loan_interest_rate_bs: float = _setting(5.0, key="loanInterestRateBS", parse=_number)
    loan_interest_rate_pf: float = _setting(6.0, key="loanInterestRatePF", parse=_number)
    equity_investment: Optional[float] = _setting(None, parse=_optional_number)
    minimum_dscr: float = _setting(1.3, key="minimumDSCR", parse=_number)
    grace_period: int = _setting(0, parse=_integer)
    construction_years: int = _setting(1, parse=_integer)
    discount_rate: float = _setting(DEFAULT_DISCOUNT_RATE, parse=_number)

    @property
    def is_project_finance(self) -> bool:
        return self.model == "Project-Finance"

    @property
    def loan_rate_pct(self) -> float:
        return self.loan_interest_rate_pf if self.is_project_finance else self.loan_interest_rate_bs


@dataclass(frozen=True)
class MajorRepairEvent(_Section):
    _module: ClassVar[str] = "cost"

    year: int = _setting(1, parse=_integer)
    cost: float = _setting(0.0, parse=_number)
    probability: float = _setting(100.0, parse=_number)


@dataclass(frozen=True)
class Adjustment(_Section):
    """Fixed amount added to each listed year."""

    _module: ClassVar[str] = "cost"

    years: Tuple[int, ...] = _setting((), parse=_tuple_of(_integer))
    amount: float = _setting(0.0, parse=_number)
    description: str = _setting("", parse=_text)


@dataclass(frozen=True)
class CostSettings(_Section):
    _module: ClassVar[str] = "cost"

    annual_base_om: float = _setting(5_000_000.0, key="annualBaseOM", parse=_number)
    escalation_rate: float = _setting(2.0, parse=_number)
    escalation: Optional[DistributionSpec] = _setting(None, parse=_optional_distribution, wrap="distribution")
    escalation_base_year: int = _setting(1, parse=_integer)
    failure_event_probability: float = _setting(5.0, parse=_number)
    failure_event_cost: float = _setting(200_000.0, parse=_number)
    major_repair_events: Tuple[MajorRepairEvent, ...] = _setting((), parse=_tuple_of(MajorRepairEvent.from_dict))
    contingency_cost: float = _setting(0.0, parse=_number)
    adjustments: Tuple[Adjustment, ...] = _setting((), parse=_tuple_of(Adjustment.from_dict))

    @property
    def escalation_distribution(self) -> DistributionSpec:
        return self.escalation or DistributionSpec.fixed(self.escalation_rate)


def _default_energy() -> DistributionSpec:
    return DistributionSpec("normal", {"mean": 1000.0, "std": 100.0})


def _default_price() -> DistributionSpec:
    return DistributionSpec.fixed(50.0)


def _default_downtime() -> DistributionSpec:
    return DistributionSpec("weibull", {"scale": 24.0, "shape": 1.5})


@dataclass(frozen=True)
class RevenueSettings(_Section):
    _module: ClassVar[str] = "revenue"

    energy_production: DistributionSpec = _setting(parse=_distribution, factory=_default_energy,
                                                   wrap="distribution")
    electricity_price: DistributionSpec = _setting(parse=_distribution, factory=_default_price,
                                                   wrap="distribution")
    revenue_degradation_rate: float = _setting(0.5, parse=_number)
    downtime_per_event: DistributionSpec = _setting(parse=_distribution, factory=_default_downtime,
                                                    wrap="distribution")
    price_escalation: Optional[DistributionSpec] = _setting(None, parse=_optional_distribution,
                                                            wrap="distribution")
    adjustments: Tuple[Adjustment, ...] = _setting((), parse=_tuple_of(Adjustment.from_dict))


@dataclass(frozen=True)
class RiskSettings(_Section):
    _module: ClassVar[str] = "risk"

    insurance_enabled: bool = _setting(False, parse=parse_flag)
    insurance_premium: float = _setting(50_000.0, parse=_number)
    insurance_deductible: float = _setting(10_000.0, parse=_number)
    reserve_funds: float = _setting(0.0, parse=_number)
    escalate_with_om: bool = _setting(False, key="escalateWithOM", parse=parse_flag)
    reserve_provision_years: int = _setting(DEFAULT_RESERVE_PROVISION_YEARS, parse=_integer)


@dataclass(frozen=True)
class ContractsSettings(_Section):
    _module: ClassVar[str] = "contracts"

    oem_contracts: Tuple[OEMContract, ...] = _setting((), key="oemContracts",
                                                      parse=_tuple_of(OEMContract.from_dict))


@dataclass(frozen=True)
class ModulesSettings(_Section):
    _module: ClassVar[str] = "modules"

    financing: FinancingSettings = _setting(parse=_section(FinancingSettings), factory=FinancingSettings)
    cost: CostSettings = _setting(parse=_section(CostSettings), factory=CostSettings)
    revenue: RevenueSettings = _setting(parse=_section(RevenueSettings), factory=RevenueSettings)
    risk: RiskSettings = _setting(parse=_section(RiskSettings), factory=RiskSettings)
    contracts: ContractsSettings = _setting(parse=_section(ContractsSettings), factory=ContractsSettings)


# ============================================================================
# SIMULATION
# ============================================================================


@dataclass(frozen=True)
class PercentileSet(_Section):
    """
    Named percentiles extracted from every iteration population.

    Ordering is enforced on construction:
    ``extreme_lower < lower_bound < primary < upper_bound < extreme_upper``,
    all strictly inside (0, 100).
    """

    _module: ClassVar[str] = "simulation"

    primary: float = _setting(DEFAULT_PERCENTILES["primary"], parse=_number)
    upper_bound: float = _setting(DEFAULT_PERCENTILES["upper_bound"], parse=_number)
    lower_bound: float = _setting(DEFAULT_PERCENTILES["lower_bound"], parse=_number)
    extreme_upper: float = _setting(DEFAULT_PERCENTILES["extreme_upper"], parse=_number)
    extreme_lower: float = _setting(DEFAULT_PERCENTILES["extreme_lower"], parse=_number)

    def __post_init__(self) -> None:
        for name, value in self.named().items():
            if not 0.0 < value < 100.0:
                raise InvalidPercentileSet(f"probabilities.{_camel(name)}", value, "must lie strictly in (0, 100)")
        ordered = [self.extreme_lower, self.lower_bound, self.primary, self.upper_bound, self.extreme_upper]
        if any(a >= b for a, b in zip(ordered, ordered[1:])):
            raise InvalidPercentileSet(
                "probabilities", ordered,
                "must satisfy extremeLower < lowerBound < primary < upperBound < extremeUpper",
            )

    def named(self) -> Dict[str, float]:
        """Snake-case role -> percentile value."""
        return {
            "primary": float(self.primary),
            "upper_bound": float(self.upper_bound),
            "lower_bound": float(self.lower_bound),
            "extreme_upper": float(self.extreme_upper),
            "extreme_lower": float(self.extreme_lower),
        }

    def values(self) -> List[float]:
        """Ascending percentile values."""
        return sorted(self.named().values())


@dataclass(frozen=True)
class SimulationSettings(_Section):
    _module: ClassVar[str] = "simulation"

    iterations: int = _setting(DEFAULT_ITERATIONS, parse=_integer)
    seed: Optional[int] = _setting(None, parse=_optional_integer)
    probabilities: PercentileSet = _setting(parse=_section(PercentileSet), factory=PercentileSet)
    extra_percentiles: Tuple[float, ...] = _setting((), parse=_tuple_of(_number))

    def all_percentiles(self) -> List[float]:
        """Configured set plus ad-hoc extras, ascending and de-duplicated."""
        return sorted(set(self.probabilities.values()) | {float(p) for p in self.extra_percentiles})


# ============================================================================
# ROOT
# ============================================================================


@dataclass(frozen=True)
class ScenarioSettings(_Section):
    """Root of a scenario's settings tree."""

    _module: ClassVar[str] = "scenario"

    general: GeneralSettings = _setting(parse=_section(GeneralSettings), factory=GeneralSettings)
    project: ProjectSettings = _setting(parse=_section(ProjectSettings), factory=ProjectSettings)
    modules: ModulesSettings = _setting(parse=_section(ModulesSettings), factory=ModulesSettings)
    simulation: SimulationSettings = _setting(parse=_section(SimulationSettings), factory=SimulationSettings)

    @property
    def project_life(self) -> int:
        return self.general.project_life

    @property
    def num_wtgs(self) -> int:
        return self.project.wind_farm.num_wtgs


def merge_settings(base: Any, overrides: Optional[Mapping[str, Any]]) -> Any:
    """
    Apply camelCase ``overrides`` onto a settings section.

    Only keys present in ``overrides`` change; nested sections merge field by
    field, so ``{"modules": {"cost": {"annualBaseOM": 1}}}`` leaves every other
    cost field untouched. Lists replace wholesale. Unknown keys raise
    InvalidModuleParameters.
    """
    if not overrides:
        return base
    if not isinstance(overrides, Mapping):
        raise InvalidModuleParameters(base._module, type(base).__name__, overrides, "overrides must be a mapping")

    by_key = {_key(f): f for f in fields(base)}
    changes: Dict[str, Any] = {}
    for key, value in overrides.items():
        f = by_key.get(key)
        if f is None:
            raise InvalidModuleParameters(base._module, key, value, "unknown setting")
        current = getattr(base, f.name)
        if isinstance(current, _Section) and isinstance(value, Mapping):
            changes[f.name] = merge_settings(current, value)
        else:
            changes[f.name] = _parse_field(type(base), f, value)

    return replace(base, **changes)


# ============================================================================
# FIELD REGISTRATIONS
# ============================================================================

register_required_fields("general", [
    RequiredFieldSpec("general", "projectLife", [("general", "project_life")],
                      validator=lambda v: int(v) >= 1, reason="must be at least 1 year",
                      description="Operating years after COD"),
    RequiredFieldSpec("general", "numWTGs", [("project", "wind_farm", "num_wtgs")],
                      validator=lambda v: int(v) >= 1, reason="must be at least 1",
                      description="Number of wind turbine generators"),
])

register_required_fields("simulation", [
    RequiredFieldSpec("simulation", "iterations", [("simulation", "iterations")],
                      validator=lambda v: int(v) >= MIN_ITERATIONS, reason=f"must be at least {MIN_ITERATIONS}",
                      description="Monte Carlo iterations per run"),
    RequiredFieldSpec("simulation", "seed", [("simulation", "seed")],
                      validator=lambda v: int(v) >= 0, reason="must be a non-negative integer",
                      description="RNG seed; required so runs are reproducible"),
    RequiredFieldSpec("simulation", "extraPercentiles", [("simulation", "extra_percentiles")],
                      validator=lambda v: all(0 < float(p) < 100 for p in v),
                      reason="each percentile must lie strictly in (0, 100)",
                      description="Ad-hoc percentiles extracted alongside the configured set"),
])


__all__ = [
    "GeneralSettings",
    "WindFarmSettings",
    "CurrencySettings",
    "ProjectSettings",
    "FinancingSettings",
    "MajorRepairEvent",
    "Adjustment",
    "CostSettings",
    "RevenueSettings",
    "RiskSettings",
    "ContractsSettings",
    "ModulesSettings",
    "PercentileSet",
    "SimulationSettings",
    "ScenarioSettings",
    "merge_settings",
]
