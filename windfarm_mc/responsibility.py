"""
OEM responsibility matrix.

For every project year, records which contract (if any) is active and how
each maintenance scope category is split between the OEM and the owner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from windfarm_mc.errors import ResponsibilityMatrixConflict
from windfarm_mc.oem import OEMContract, OEMScope

logger = logging.getLogger(__name__)

# Scope categories with a plain on/off split.
SIMPLE_CATEGORIES = (
    "preventiveMaintenance",
    "bladeInspections",
    "remoteMonitoring",
    "remoteTechnicalSupport",
    "siteManagement",
    "technicians",
    "correctiveMinor",
    "bladeIntegrityManagement",
)
MAJOR_COMPONENTS = ("tooling", "manpower", "parts")


@dataclass(frozen=True)
class Allocation:
    """OEM/owner split of one scope category; the two shares sum to 1."""

    oem: float = 0.0
    owner: float = 1.0

    @classmethod
    def covered(cls, flag: bool) -> "Allocation":
        return cls(1.0, 0.0) if flag else cls(0.0, 1.0)

    @classmethod
    def share(cls, oem_fraction: float) -> "Allocation":
        oem_fraction = min(max(float(oem_fraction), 0.0), 1.0)
        return cls(oem_fraction, 1.0 - oem_fraction)

    def to_dict(self) -> Dict[str, Any]:
        return {"oem": self.oem, "owner": self.owner}


@dataclass(frozen=True)
class CappedAllocation(Allocation):
    """Allocation whose OEM exposure may be capped per year (None = uncapped)."""

    event_cap: Optional[float] = None
    financial_cap: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update({"eventCap": self.event_cap, "financialCap": self.financial_cap})
        return out


@dataclass(frozen=True)
class MajorAllocation(CappedAllocation):
    components: Dict[str, Allocation] = field(
        default_factory=lambda: {name: Allocation() for name in MAJOR_COMPONENTS}
    )

    @property
    def component_oem_share(self) -> float:
        """Mean OEM share across tooling, manpower and parts."""
        return sum(self.components[name].oem for name in MAJOR_COMPONENTS) / len(MAJOR_COMPONENTS)

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["components"] = {name: alloc.to_dict() for name, alloc in self.components.items()}
        return out


@dataclass(frozen=True)
class ScopeAllocations:
    simple: Dict[str, Allocation] = field(default_factory=lambda: {c: Allocation() for c in SIMPLE_CATEGORIES})
    crane_coverage: CappedAllocation = field(default_factory=CappedAllocation)
    corrective_major: MajorAllocation = field(default_factory=MajorAllocation)

    def __getitem__(self, category: str) -> Allocation:
        if category == "craneCoverage":
            return self.crane_coverage
        if category == "correctiveMajor":
            return self.corrective_major
        return self.simple[category]

    def categories(self) -> List[str]:
        return [*SIMPLE_CATEGORIES, "craneCoverage", "correctiveMajor"]

    def to_dict(self) -> Dict[str, Any]:
        return {category: self[category].to_dict() for category in self.categories()}


def _allocations_for(scope: Optional[OEMScope]) -> ScopeAllocations:
    if scope is None:
        return ScopeAllocations()

    technicians = Allocation.share(scope.technician_percent / 100.0) if scope.site_management else Allocation()
    simple = {
        "preventiveMaintenance": Allocation.covered(scope.preventive_maintenance),
        "bladeInspections": Allocation.covered(scope.blade_inspections),
        "remoteMonitoring": Allocation.covered(scope.remote_monitoring),
        "remoteTechnicalSupport": Allocation.covered(scope.remote_technical_support),
        "siteManagement": Allocation.covered(scope.site_management),
        "technicians": technicians,
        "correctiveMinor": Allocation.covered(scope.corrective_minor),
        "bladeIntegrityManagement": Allocation.covered(scope.blade_integrity_management),
    }

    crane_on = scope.crane_coverage
    crane = CappedAllocation(
        oem=1.0 if crane_on else 0.0,
        owner=0.0 if crane_on else 1.0,
        event_cap=scope.crane_event_cap if crane_on else None,
        financial_cap=scope.crane_financial_cap if crane_on else None,
    )

    major_on = scope.corrective_major
    details = scope.corrective_major_details
    components = {
        "tooling": Allocation.covered(major_on and details.tooling),
        "manpower": Allocation.covered(major_on and details.manpower),
        "parts": Allocation.covered(major_on and details.parts),
    }
    major = MajorAllocation(
        oem=1.0 if major_on else 0.0,
        owner=0.0 if major_on else 1.0,
        event_cap=scope.major_event_cap if major_on else None,
        financial_cap=scope.major_financial_cap if major_on else None,
        components=components,
    )
    return ScopeAllocations(simple=simple, crane_coverage=crane, corrective_major=major)


@dataclass(frozen=True)
class YearlyResponsibility:
    year: int
    oem_contract_id: Optional[str]
    oem_contract_name: Optional[str]
    scope_allocations: ScopeAllocations
    fixed_fee: float
    is_per_turbine: bool
    fee: float

    @property
    def has_contract(self) -> bool:
        return self.oem_contract_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "year": self.year,
            "oemContractId": self.oem_contract_id,
            "oemContractName": self.oem_contract_name,
            "scopeAllocations": self.scope_allocations.to_dict(),
            "fixedFee": self.fixed_fee,
            "isPerTurbine": self.is_per_turbine,
            "fee": self.fee,
        }


def build_responsibility_matrix(
    project_life: int,
    num_wtgs: int,
    contracts: Iterable[OEMContract],
    strict: bool = False,
) -> List[YearlyResponsibility]:
    """
    One entry per year ``1..project_life``.

    Contracts are expected to be normalised (``years`` populated). When two
    contracts claim the same year the one listed later wins and a warning is
    logged; with ``strict=True`` the overlap raises
    ResponsibilityMatrixConflict instead. Contract years outside the project
    life are ignored.
    """
    by_year: Dict[int, OEMContract] = {}
    claims: Dict[int, List[str]] = {}

    for contract in contracts:
        for year in contract.years:
            if not 1 <= year <= project_life:
                logger.debug("Contract %s year %s outside project life %s; ignored", contract.id, year, project_life)
                continue
            claims.setdefault(year, []).append(contract.id)
            by_year[year] = contract

    for year in sorted(claims):
        ids = claims[year]
        if len(ids) > 1:
            if strict:
                raise ResponsibilityMatrixConflict(year, ids)
            logger.warning("Year %s covered by contracts %s; using %s", year, ids, ids[-1])

    matrix: List[YearlyResponsibility] = []
    for year in range(1, project_life + 1):
        contract = by_year.get(year)
        if contract is None:
            matrix.append(YearlyResponsibility(year, None, None, ScopeAllocations(), 0.0, False, 0.0))
            continue
        matrix.append(
            YearlyResponsibility(
                year=year,
                oem_contract_id=contract.id,
                oem_contract_name=contract.name,
                scope_allocations=_allocations_for(contract.oem_scope),
                fixed_fee=contract.fixed_fee,
                is_per_turbine=contract.is_per_turbine,
                fee=contract.annual_fee(num_wtgs),
            )
        )
    return matrix


def matrix_to_dicts(matrix: Sequence[YearlyResponsibility]) -> List[Dict[str, Any]]:
    return [entry.to_dict() for entry in matrix]


__all__ = [
    "SIMPLE_CATEGORIES",
    "MAJOR_COMPONENTS",
    "Allocation",
    "CappedAllocation",
    "MajorAllocation",
    "ScopeAllocations",
    "YearlyResponsibility",
    "build_responsibility_matrix",
    "matrix_to_dicts",
]
