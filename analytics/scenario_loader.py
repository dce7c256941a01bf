"""
Scenario settings loader.

Responsibilities:
- Load YAML / JSON scenario files.
- Accept either a bare settings tree or a stored scenario document with a
  top-level ``settings`` key.
- Build typed ScenarioSettings, optionally applying overrides.

Field-level rules live in the schema guard; this module only checks that the
file parses to a mapping.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from windfarm_mc.errors import SimulationError
from windfarm_mc.settings import ScenarioSettings, merge_settings

logger = logging.getLogger(__name__)


class ScenarioConfigError(SimulationError, ValueError):
    """Configuration-level error for scenario loading."""


# ---------------------------------------------------------------------------
# Core helpers
# ---------------------------------------------------------------------------


def _load_raw_config(path: Path) -> Dict[str, Any]:
    """
    Load a raw scenario configuration from YAML or JSON.

    Only the top-level shape is checked here.
    """
    if not path.exists():
        raise ScenarioConfigError(f"Scenario config not found: {path}")

    suffix = path.suffix.lower()
    with path.open("r", encoding="utf-8") as f:
        try:
            if suffix in (".yml", ".yaml"):
                data = yaml.safe_load(f)
            elif suffix == ".json":
                data = json.load(f)
            else:
                raise ScenarioConfigError(
                    f"Unsupported scenario config extension '{suffix}' for {path}"
                )
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ScenarioConfigError(f"Could not parse {path}: {exc}") from exc

    if data is None:
        raise ScenarioConfigError(f"Empty configuration in file: {path}")

    if not isinstance(data, dict):
        raise ScenarioConfigError(
            f"Expected a mapping at top level of {path}, "
            f"got {type(data).__name__}"
        )

    return data


def _settings_tree(doc: Mapping[str, Any], path: Path) -> Mapping[str, Any]:
    """Stored scenarios nest the tree under 'settings'; bare files are the tree."""
    if "settings" not in doc:
        return doc
    tree = doc["settings"]
    if not isinstance(tree, Mapping):
        raise ScenarioConfigError(
            f"'settings' in {path} must be a mapping, got {type(tree).__name__}"
        )
    return tree


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_scenario_config(path: str | Path) -> Dict[str, Any]:
    """Load the raw settings tree of a scenario file."""
    p = Path(path)
    tree = dict(_settings_tree(_load_raw_config(p), p))
    logger.debug("Loaded scenario config %s (%d top-level sections)", p, len(tree))
    return tree


def load_scenario_settings(
    path: str | Path,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ScenarioSettings:
    """
    Load a scenario file into typed settings.

    ``overrides`` is merged on top with merge_settings, so only the keys it
    names change and unknown keys are rejected.
    """
    settings = ScenarioSettings.from_dict(load_scenario_config(path))
    if overrides:
        settings = merge_settings(settings, overrides)
    logger.info(
        "Scenario '%s' loaded from %s: %d years, %d WTGs",
        settings.general.project_name, path, settings.project_life, settings.num_wtgs,
    )
    return settings


__all__ = [
    "ScenarioConfigError",
    "load_scenario_config",
    "load_scenario_settings",
]
