"""
Schema guard for scenario settings.

This module sits on top of analytics.config_schema and:
  * lazily imports the engine modules (cost, revenue, financing, risk, ...)
    so that their field registration side-effects run; and
  * validates typed ScenarioSettings against the registered field specs,
    failing fast on the first invalid error-severity field.

Usage::

    from analytics.schema_guard import validate_settings

    validate_settings(settings)                       # every module
    validate_settings(settings, modules=["cost"])     # just one
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Dict, List, Optional, Sequence

from analytics.config_schema import PathSpec, RequiredFieldSpec, get_required_fields
from finance.utils import get_nested
from windfarm_mc.distributions import validate_distribution
from windfarm_mc.errors import InvalidModuleParameters, SimulationError

logger = logging.getLogger(__name__)

_MISSING = object()


# ---------------------------------------------------------------------------
# Lazy import map – logical module name -> import path
# ---------------------------------------------------------------------------

_MODULE_IMPORTS: Dict[str, str] = {
    "general": "windfarm_mc.settings",
    "simulation": "windfarm_mc.settings",
    "financing": "windfarm_mc.modules.financing",
    "cost": "windfarm_mc.modules.cost",
    "revenue": "windfarm_mc.modules.revenue",
    "risk": "windfarm_mc.modules.risk",
}

DEFAULT_MODULES = ("general", "simulation", "financing", "cost", "revenue", "risk")


def _ensure_module_registered(name: str) -> None:
    """
    Ensure the given logical module has been imported so that its field
    registrations (register_required_fields) have run.

    Unknown names are a no-op so new modules can be added incrementally.
    """
    module_path = _MODULE_IMPORTS.get(name)
    if not module_path:
        return
    importlib.import_module(module_path)


# ---------------------------------------------------------------------------
# Core helpers
# ---------------------------------------------------------------------------

def _first_resolved_value(settings: Any, paths: Sequence[PathSpec]) -> Any:
    """Try each candidate path in order and return the first resolved value."""
    for path in paths:
        if not path:
            continue
        value = get_nested(settings, path, _MISSING)
        if value is not _MISSING:
            return value
    return None


def _check(spec: RequiredFieldSpec, value: Any, project_life: int) -> Optional[str]:
    """Return the failure reason for ``value``, or None when it passes."""
    if value is None:
        return "is required" if spec.required else None

    if spec.distribution:
        validate_distribution(value, years=range(1, project_life + 1))
        return None

    if spec.validator is None:
        return None
    try:
        ok = bool(spec.validator(value))
    except (TypeError, ValueError):
        ok = False
    return None if ok else spec.reason


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_settings(settings: Any, modules: Optional[Sequence[str]] = None) -> None:
    """
    Validate scenario settings against the registered field specs.

    Steps:
      1) Lazily import each module so its registration runs.
      2) Walk the specs in registration order, module by module.
      3) Raise InvalidModuleParameters for the first failing error-severity
         field; log warning-severity failures and continue.

    Distribution fields are validated for every project year and raise
    InvalidDistributionParameters.
    """
    modules = list(modules or DEFAULT_MODULES)
    for m in modules:
        _ensure_module_registered(m)

    life = get_nested(settings, ("general", "project_life"), 0)
    project_life = int(life) if isinstance(life, int) and life > 0 else 1

    checked = 0
    for m in modules:
        for spec in get_required_fields(m):
            value = _first_resolved_value(settings, spec.paths)
            reason = _check(spec, value, project_life)
            checked += 1
            if reason is None:
                continue
            if str(spec.severity).lower() == "error":
                raise InvalidModuleParameters(spec.module, spec.name, value, reason)
            logger.warning("Setting %s.%s=%r %s", spec.module, spec.name, value, reason)

    logger.debug("Validated %d settings across modules %s", checked, modules)


def describe_failures(settings: Any, modules: Optional[Sequence[str]] = None) -> List[str]:
    """
    Collect every failing field instead of stopping at the first.

    Intended for UI/reporting; the engine itself uses validate_settings.
    """
    modules = list(modules or DEFAULT_MODULES)
    for m in modules:
        _ensure_module_registered(m)

    life = get_nested(settings, ("general", "project_life"), 0)
    project_life = int(life) if isinstance(life, int) and life > 0 else 1

    failures: List[str] = []
    for m in modules:
        for spec in get_required_fields(m):
            value = _first_resolved_value(settings, spec.paths)
            try:
                reason = _check(spec, value, project_life)
            except SimulationError as exc:
                reason = str(exc)
            if reason is not None:
                failures.append(f"{spec.module}.{spec.name}: {reason}")
    return failures


__all__ = [
    "DEFAULT_MODULES",
    "validate_settings",
    "describe_failures",
]
