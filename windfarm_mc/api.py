"""
Plain-data entry point for running a scenario simulation.

Payload::

    {
        "settings": {...},            # camelCase scenario settings (required)
        "oemContracts": [...],        # replaces settings.modules.contracts.oemContracts
        "oemScopes": [...],           # scopes referenced by contract oemScopeId
        "overrides": {...},           # merged onto settings, unknown keys rejected
        "workers": 1,
        "legacyLabels": false,        # Pprimary/Pupper_bound/... instead of P50/P75/...
    }
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Mapping, Optional

from windfarm_mc.errors import InvalidModuleParameters
from windfarm_mc.monte_carlo import MonteCarloEngine
from windfarm_mc.oem import OEMScope
from windfarm_mc.settings import ScenarioSettings, merge_settings

logger = logging.getLogger(__name__)


def build_engine(payload: Mapping[str, Any], cancel_event: Optional[threading.Event] = None) -> MonteCarloEngine:
    if not isinstance(payload, Mapping) or not isinstance(payload.get("settings"), Mapping):
        raise InvalidModuleParameters("scenario", "settings", None, "payload must contain a settings mapping")

    settings = ScenarioSettings.from_dict(payload["settings"])
    if payload.get("oemContracts") is not None:
        settings = merge_settings(settings, {"modules": {"contracts": {"oemContracts": payload["oemContracts"]}}})
    if payload.get("overrides"):
        settings = merge_settings(settings, payload["overrides"])

    scopes = [OEMScope.from_dict(raw) for raw in payload.get("oemScopes") or ()]
    return MonteCarloEngine(
        settings,
        oem_scopes=scopes,
        workers=int(payload.get("workers", 1)),
        cancel_event=cancel_event,
        strict_contracts=bool(payload.get("strictContracts", False)),
    )


def run_simulation(payload: Mapping[str, Any], cancel_event: Optional[threading.Event] = None) -> Dict[str, Any]:
    """Run a simulation and return ``{inputSim, outputSim, summary}``."""
    engine = build_engine(payload, cancel_event)
    result = engine.run()
    return result.to_dict(legacy_labels=bool(payload.get("legacyLabels", False)))


__all__ = ["build_engine", "run_simulation"]
