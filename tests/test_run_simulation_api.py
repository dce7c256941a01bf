"""
End-to-end tests for windfarm_mc.api.run_simulation on plain-data payloads.

The payload is the camelCase shape a stored scenario carries, plus the OEM
contracts and scopes the scenario references.
"""

import pytest

from windfarm_mc.api import build_engine, run_simulation
from windfarm_mc.errors import InvalidModuleParameters


def _make_payload(**extra):
    payload = {
        "settings": {
            "general": {"projectLife": 4},
            "project": {"windFarm": {"numWTGs": 5}},
            "modules": {
                "financing": {"capex": 10_000_000, "devex": 0, "loanDuration": 3},
                "cost": {"annualBaseOM": 200_000, "failureEventProbability": 20},
                "revenue": {
                    "energyProduction": {
                        "distribution": {"type": "triangular",
                                         "parameters": {"min": 60_000, "mode": 75_000, "max": 85_000}}
                    },
                    "electricityPrice": 70,
                },
                "risk": {"insuranceEnabled": True, "insurancePremium": 20_000, "insuranceDeductible": 5_000},
            },
            "simulation": {"iterations": 150, "seed": 7},
        },
        "oemContracts": [
            {"id": "c1", "name": "Service", "years": [1, 2], "fixedFee": 150_000, "oemScopeId": "s1"},
        ],
        "oemScopes": [
            {"id": "s1", "preventiveMaintenance": True, "correctiveMinor": True},
        ],
    }
    payload.update(extra)
    return payload


def test_run_simulation_returns_plain_data_shape():
    out = run_simulation(_make_payload())

    assert set(out) == {"inputSim", "outputSim", "summary"}
    assert set(out["inputSim"]) == {"cashflow", "risk", "scope"}
    assert {"IRR", "equityIRR", "NPV", "paybackPeriod", "minDSCR", "llcr", "icr"} == set(out["outputSim"])
    assert out["summary"]["iterations"] == 150
    assert len(out["inputSim"]["risk"]["failureEventRate"]) == 4


def test_contract_scope_resolved_from_payload():
    out = run_simulation(_make_payload())
    matrix = out["inputSim"]["scope"]["responsibilityMatrix"]

    assert matrix[0]["oemContractName"] == "Service"
    assert matrix[0]["fee"] == pytest.approx(150_000)
    assert matrix[0]["scopeAllocations"]["correctiveMinor"] == {"oem": 1.0, "owner": 0.0}
    assert matrix[2]["oemContractId"] is None

    # Failures in covered years cost the owner nothing
    failure = out["inputSim"]["cashflow"]["annualCosts"]["components"]["failureRisk"]["P90"]
    assert failure[0]["value"] == 0.0
    assert failure[1]["value"] == 0.0


def test_legacy_labels_use_role_names():
    out = run_simulation(_make_payload(legacyLabels=True))
    assert set(out["outputSim"]["IRR"]) == {
        "Pprimary", "Pupper_bound", "Plower_bound", "Pextreme_upper", "Pextreme_lower",
    }


def test_overrides_applied_and_validated():
    engine = build_engine(_make_payload(overrides={"general": {"projectLife": 6}}))
    assert engine.settings.project_life == 6

    with pytest.raises(InvalidModuleParameters):
        build_engine(_make_payload(overrides={"general": {"lifeYears": 6}}))


def test_payload_without_settings_rejected():
    with pytest.raises(InvalidModuleParameters):
        run_simulation({"oemContracts": []})
