"""
Unit tests for analytics.config_schema + analytics.schema_guard.

These tests prove that

- every engine module has registered its fields into the global registry; and
- validate_settings() fails fast on the first invalid field with a clear error,
  while warning-severity specs only log.
"""

from __future__ import annotations

import logging

import pytest

from analytics.config_schema import (
    RequiredFieldSpec,
    build_schema_dataframe,
    get_required_fields,
    register_required_fields,
    registered_modules,
)
from analytics.schema_guard import DEFAULT_MODULES, describe_failures, validate_settings
from windfarm_mc.errors import InvalidDistributionParameters, InvalidModuleParameters
from windfarm_mc.settings import ScenarioSettings, merge_settings


def _make_settings(**sections):
    raw = {"simulation": {"seed": 42, "iterations": 200}}
    raw.update(sections)
    return ScenarioSettings.from_dict(raw)


def test_every_module_registers_fields():
    validate_settings(_make_settings())  # imports the module registrations

    assert set(DEFAULT_MODULES).issubset(registered_modules())
    names = {s.name for s in get_required_fields("cost")}
    assert {"annualBaseOM", "failureEventProbability", "majorRepairEvents"}.issubset(names)

    df = build_schema_dataframe()
    assert not df.empty
    assert {"module", "name", "path_candidates", "rule"}.issubset(df.columns)
    assert set(DEFAULT_MODULES).issubset(set(df["module"]))
    energy = df[(df["module"] == "revenue") & (df["name"] == "energyProduction")].iloc[0]
    assert energy["rule"] == "valid distribution"


def test_defaults_with_seed_pass():
    validate_settings(_make_settings())


def test_missing_seed_is_reported():
    settings = ScenarioSettings.from_dict({})
    with pytest.raises(InvalidModuleParameters) as excinfo:
        validate_settings(settings)
    assert excinfo.value.module == "simulation"
    assert excinfo.value.field == "seed"


def test_too_few_iterations_rejected():
    settings = merge_settings(_make_settings(), {"simulation": {"iterations": 50}})
    with pytest.raises(InvalidModuleParameters) as excinfo:
        validate_settings(settings)
    assert excinfo.value.field == "iterations"


def test_negative_cost_rejected_with_module_and_field():
    settings = _make_settings(modules={"cost": {"annualBaseOM": -1}})
    with pytest.raises(InvalidModuleParameters) as excinfo:
        validate_settings(settings, modules=["cost"])
    assert excinfo.value.module == "cost"
    assert excinfo.value.field == "annualBaseOM"
    assert excinfo.value.value == -1


def test_invalid_distribution_rejected():
    bad = {"distribution": {"type": "triangular", "parameters": {"min": 10, "mode": 5, "max": 1}}}
    settings = _make_settings(modules={"revenue": {"energyProduction": bad}})
    with pytest.raises(InvalidDistributionParameters):
        validate_settings(settings)


def test_describe_failures_collects_all():
    settings = ScenarioSettings.from_dict(
        {"modules": {"cost": {"annualBaseOM": -1, "failureEventProbability": 140}}}
    )
    failures = describe_failures(settings)
    assert any(f.startswith("simulation.seed") for f in failures)
    assert any(f.startswith("cost.annualBaseOM") for f in failures)
    assert any(f.startswith("cost.failureEventProbability") for f in failures)


def test_warning_severity_only_logs(caplog):
    register_required_fields("long_life_check", [
        RequiredFieldSpec("long_life_check", "projectLife", [("general", "project_life")],
                          severity="warning", validator=lambda v: v <= 30, reason="is unusually long"),
    ])
    settings = _make_settings(general={"projectLife": 40})
    with caplog.at_level(logging.WARNING):
        validate_settings(settings, modules=["long_life_check"])
    assert "unusually long" in caplog.text


def test_reregistering_replaces_spec():
    spec = RequiredFieldSpec("replace_check", "x", [("x",)])
    register_required_fields("replace_check", [spec])
    register_required_fields("replace_check", [spec])
    assert len(get_required_fields("replace_check")) == 1
