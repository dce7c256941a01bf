"""
OEM service scopes and contracts.

Derived fields (scope name, site personnel level, contract year range) are
computed by the explicit ``normalize_*`` functions. Nothing is derived
implicitly on construction, so callers decide when normalisation happens.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from finance.utils import parse_flag
from windfarm_mc.errors import InvalidModuleParameters

logger = logging.getLogger(__name__)

SITE_PERSONNEL_LEVELS = ("none", "partial", "full")
BASIC_SCOPE_NAME = "Basic-OEM-Scope"


def _cap(raw: Mapping[str, Any], key: str) -> Optional[float]:
    """Caps of 0 or None mean uncapped; negative caps are rejected."""
    value = raw.get(key)
    if value is None:
        return None
    value = float(value)
    if value < 0:
        raise InvalidModuleParameters("contracts", key, value, "must be non-negative")
    return value if value > 0 else None


def _flag(raw: Mapping[str, Any], key: str) -> bool:
    value = raw.get(key)
    if value is None:
        return False
    try:
        return parse_flag(value)
    except TypeError as exc:
        raise InvalidModuleParameters("contracts", key, value, str(exc)) from exc


@dataclass(frozen=True)
class CorrectiveMajorDetails:
    tooling: bool = False
    manpower: bool = False
    parts: bool = False

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "CorrectiveMajorDetails":
        raw = raw or {}
        return cls(_flag(raw, "tooling"), _flag(raw, "manpower"), _flag(raw, "parts"))

    def to_dict(self) -> Dict[str, bool]:
        return {"tooling": self.tooling, "manpower": self.manpower, "parts": self.parts}


@dataclass(frozen=True)
class OEMScope:
    """What an OEM service agreement covers."""

    id: str = ""
    name: str = ""
    preventive_maintenance: bool = False
    blade_inspections: bool = False
    blade: bool = False
    blade_lep: bool = False
    remote_monitoring: bool = False
    remote_technical_support: bool = False
    site_management: bool = False
    technician_percent: float = 100.0
    site_personnel: str = "none"
    corrective_minor: bool = False
    corrective_major: bool = False
    corrective_major_details: CorrectiveMajorDetails = field(default_factory=CorrectiveMajorDetails)
    major_event_cap: Optional[float] = None
    major_financial_cap: Optional[float] = None
    blade_integrity_management: bool = False
    crane_coverage: bool = False
    crane_event_cap: Optional[float] = None
    crane_financial_cap: Optional[float] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "OEMScope":
        technician_percent = float(raw.get("technicianPercent", 100.0))
        if not 0.0 <= technician_percent <= 100.0:
            raise InvalidModuleParameters("contracts", "technicianPercent", technician_percent,
                                          "must be between 0 and 100")
        site_personnel = str(raw.get("sitePersonnel", "none"))
        if site_personnel not in SITE_PERSONNEL_LEVELS:
            raise InvalidModuleParameters("contracts", "sitePersonnel", site_personnel,
                                          f"must be one of {SITE_PERSONNEL_LEVELS}")
        return cls(
            id=str(raw.get("id") or raw.get("_id") or ""),
            name=str(raw.get("name") or "").strip(),
            preventive_maintenance=_flag(raw, "preventiveMaintenance"),
            blade_inspections=_flag(raw, "bladeInspections"),
            blade=_flag(raw, "blade"),
            blade_lep=_flag(raw, "bladeLEP"),
            remote_monitoring=_flag(raw, "remoteMonitoring"),
            remote_technical_support=_flag(raw, "remoteTechnicalSupport"),
            site_management=_flag(raw, "siteManagement"),
            technician_percent=technician_percent,
            site_personnel=site_personnel,
            corrective_minor=_flag(raw, "correctiveMinor"),
            corrective_major=_flag(raw, "correctiveMajor"),
            corrective_major_details=CorrectiveMajorDetails.from_dict(raw.get("correctiveMajorDetails")),
            major_event_cap=_cap(raw, "majorEventCap"),
            major_financial_cap=_cap(raw, "majorFinancialCap"),
            blade_integrity_management=_flag(raw, "bladeIntegrityManagement"),
            crane_coverage=_flag(raw, "craneCoverage"),
            crane_event_cap=_cap(raw, "craneEventCap"),
            crane_financial_cap=_cap(raw, "craneFinancialCap"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "preventiveMaintenance": self.preventive_maintenance,
            "bladeInspections": self.blade_inspections,
            "blade": self.blade,
            "bladeLEP": self.blade_lep,
            "remoteMonitoring": self.remote_monitoring,
            "remoteTechnicalSupport": self.remote_technical_support,
            "siteManagement": self.site_management,
            "technicianPercent": self.technician_percent,
            "sitePersonnel": self.site_personnel,
            "correctiveMinor": self.corrective_minor,
            "correctiveMajor": self.corrective_major,
            "correctiveMajorDetails": self.corrective_major_details.to_dict(),
            "majorEventCap": self.major_event_cap,
            "majorFinancialCap": self.major_financial_cap,
            "bladeIntegrityManagement": self.blade_integrity_management,
            "craneCoverage": self.crane_coverage,
            "craneEventCap": self.crane_event_cap,
            "craneFinancialCap": self.crane_financial_cap,
        }


def generate_scope_name(scope: OEMScope) -> str:
    """Short code listing the covered services, e.g. ``PM-BI-SM-T50-CMaj(TP)Cap``."""
    parts: List[str] = []
    if scope.preventive_maintenance:
        parts.append("PM")
    if scope.blade_inspections:
        parts.append("BI")
    if scope.blade:
        parts.append("BL")
    if scope.blade_lep:
        parts.append("LEP")
    if scope.remote_monitoring:
        parts.append("RM")
    if scope.remote_technical_support:
        parts.append("RTS")
    if scope.site_management:
        parts.append("SM")

    if scope.technician_percent > 0:
        if scope.technician_percent == 100:
            parts.append("FT")
        else:
            parts.append(f"T{scope.technician_percent:g}")

    if scope.corrective_minor:
        parts.append("CMin")
    if scope.blade_integrity_management:
        parts.append("BIM")

    if scope.crane_coverage:
        capped = scope.crane_event_cap is not None or scope.crane_financial_cap is not None
        parts.append("CraneCap" if capped else "Crane")

    if scope.corrective_major:
        details = scope.corrective_major_details
        letters = "".join(
            letter for letter, on in (("T", details.tooling), ("M", details.manpower), ("P", details.parts)) if on
        )
        token = "CMaj" + (f"({letters})" if letters else "")
        if scope.major_event_cap is not None or scope.major_financial_cap is not None:
            token += "Cap"
        parts.append(token)

    return "-".join(parts) if parts else BASIC_SCOPE_NAME


def normalize_scope(scope: OEMScope) -> OEMScope:
    """
    Return ``scope`` with its derived fields filled in.

    ``site_personnel`` follows site management and technician coverage, and
    technician coverage is zeroed without site management. A blank name is
    replaced by the generated scope code.
    """
    if scope.site_management:
        personnel = "full" if scope.technician_percent == 100 else "partial"
        scope = replace(scope, site_personnel=personnel)
    else:
        scope = replace(scope, site_personnel="none", technician_percent=0.0)

    if not scope.name.strip():
        scope = replace(scope, name=generate_scope_name(scope))
    return scope


# ============================================================================
# CONTRACTS
# ============================================================================


@dataclass(frozen=True)
class OEMContract:
    """A fixed-fee OEM agreement covering a set of project years."""

    id: str
    name: str = ""
    years: Tuple[int, ...] = ()
    fixed_fee: float = 0.0
    is_per_turbine: bool = False
    oem_scope_id: Optional[str] = None
    oem_scope: Optional[OEMScope] = None
    start_year: Optional[int] = None
    end_year: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "OEMContract":
        if isinstance(raw, OEMContract):
            return raw
        if not isinstance(raw, Mapping):
            raise TypeError("OEM contract must be a mapping")

        scope_ref = raw.get("oemScope")
        scope = OEMScope.from_dict(scope_ref) if isinstance(scope_ref, Mapping) else None
        scope_id = raw.get("oemScopeId")
        if scope_id is None and isinstance(scope_ref, str):
            scope_id = scope_ref
        if scope_id is None and scope is not None and scope.id:
            scope_id = scope.id

        fee = float(raw.get("fixedFee", 0.0))
        return cls(
            id=str(raw.get("id") or raw.get("_id") or ""),
            name=str(raw.get("name") or ""),
            years=tuple(int(y) for y in raw.get("years") or ()),
            fixed_fee=fee,
            is_per_turbine=_flag(raw, "isPerTurbine"),
            oem_scope_id=str(scope_id) if scope_id is not None else None,
            oem_scope=scope,
            start_year=int(raw["startYear"]) if raw.get("startYear") is not None else None,
            end_year=int(raw["endYear"]) if raw.get("endYear") is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "years": list(self.years),
            "fixedFee": self.fixed_fee,
            "isPerTurbine": self.is_per_turbine,
            "oemScopeId": self.oem_scope_id,
            "oemScope": self.oem_scope.to_dict() if self.oem_scope is not None else None,
            "startYear": self.start_year,
            "endYear": self.end_year,
        }

    def annual_fee(self, num_wtgs: int) -> float:
        """Fee charged in each covered year."""
        return self.fixed_fee * num_wtgs if self.is_per_turbine else self.fixed_fee


def normalize_contract(contract: OEMContract) -> OEMContract:
    """
    Keep ``years`` and ``start_year``/``end_year`` in sync.

    A non-empty ``years`` list wins and defines the range. Otherwise the list
    is expanded from ``start_year..end_year``. A contract with neither is
    rejected.
    """
    if contract.fixed_fee < 0:
        raise InvalidModuleParameters("contracts", f"{contract.id}.fixedFee", contract.fixed_fee,
                                      "must be non-negative")
    if contract.years:
        years = tuple(sorted(set(contract.years)))
        return replace(contract, years=years, start_year=years[0], end_year=years[-1])

    if contract.start_year is None or contract.end_year is None:
        raise InvalidModuleParameters("contracts", f"{contract.id}.years", [],
                                      "contract needs years or a startYear/endYear range")
    if contract.end_year < contract.start_year:
        raise InvalidModuleParameters("contracts", f"{contract.id}.endYear", contract.end_year,
                                      f"must not precede startYear {contract.start_year}")
    years = tuple(range(contract.start_year, contract.end_year + 1))
    return replace(contract, years=years)


def resolve_contract_scopes(contracts: Iterable[OEMContract],
                            scopes: Optional[Iterable[OEMScope]] = None) -> List[OEMContract]:
    """
    Normalise contracts and bind their scope by ``oem_scope_id``.

    Contracts that already carry an embedded scope keep it. A reference to an
    unknown scope id is logged and the contract runs with no OEM coverage.
    """
    by_id = {s.id: normalize_scope(s) for s in (scopes or ()) if s.id}
    resolved: List[OEMContract] = []
    for contract in contracts:
        contract = normalize_contract(contract)
        if contract.oem_scope is not None:
            contract = replace(contract, oem_scope=normalize_scope(contract.oem_scope))
        elif contract.oem_scope_id:
            scope = by_id.get(contract.oem_scope_id)
            if scope is None:
                logger.warning("OEM contract %s references unknown scope %s; treating as uncovered",
                               contract.id, contract.oem_scope_id)
            else:
                contract = replace(contract, oem_scope=scope)
        resolved.append(contract)
    return resolved


__all__ = [
    "SITE_PERSONNEL_LEVELS",
    "BASIC_SCOPE_NAME",
    "CorrectiveMajorDetails",
    "OEMScope",
    "generate_scope_name",
    "normalize_scope",
    "OEMContract",
    "normalize_contract",
    "resolve_contract_scopes",
]
