"""
Unit tests for windfarm_mc.responsibility.

What is proven here:
- one entry per project year, with contract fee and coverage where a contract applies;
- every category's OEM and owner shares sum to one;
- overlapping contracts resolve to the later one, or raise in strict mode.
"""

import pytest

from windfarm_mc.errors import ResponsibilityMatrixConflict
from windfarm_mc.oem import CorrectiveMajorDetails, OEMContract, OEMScope, normalize_scope
from windfarm_mc.responsibility import build_responsibility_matrix, matrix_to_dicts


def _make_contract(cid, years, scope=None, fee=100_000.0, per_turbine=True):
    return OEMContract(id=cid, name=cid.upper(), years=tuple(years), fixed_fee=fee,
                       is_per_turbine=per_turbine, oem_scope=scope)


def _full_scope():
    return normalize_scope(
        OEMScope(
            id="full",
            preventive_maintenance=True,
            corrective_minor=True,
            site_management=True,
            technician_percent=50,
            corrective_major=True,
            corrective_major_details=CorrectiveMajorDetails(tooling=True, manpower=True, parts=False),
            major_financial_cap=250_000,
            crane_coverage=True,
        )
    )


def test_one_entry_per_year_with_fee():
    matrix = build_responsibility_matrix(5, 10, [_make_contract("c1", [1, 2, 3], _full_scope())])

    assert [e.year for e in matrix] == [1, 2, 3, 4, 5]
    assert matrix[0].has_contract
    assert matrix[0].fee == pytest.approx(1_000_000.0)
    assert not matrix[3].has_contract
    assert matrix[3].fee == 0.0


def test_shares_sum_to_one_everywhere():
    matrix = build_responsibility_matrix(5, 10, [_make_contract("c1", [1, 2, 3], _full_scope())])
    for entry in matrix:
        allocations = entry.scope_allocations
        for category in allocations.categories():
            alloc = allocations[category]
            assert alloc.oem + alloc.owner == pytest.approx(1.0), (entry.year, category)


def test_scope_allocations_follow_scope():
    year1 = build_responsibility_matrix(3, 1, [_make_contract("c1", [1], _full_scope())])[0].scope_allocations

    assert year1["preventiveMaintenance"].oem == 1.0
    assert year1["remoteMonitoring"].owner == 1.0
    assert year1["technicians"].oem == pytest.approx(0.5)
    assert year1.corrective_major.financial_cap == pytest.approx(250_000)
    assert year1.corrective_major.component_oem_share == pytest.approx(2 / 3)


def test_contract_without_scope_covers_nothing():
    entry = build_responsibility_matrix(2, 1, [_make_contract("c1", [1])])[0]
    assert entry.has_contract
    assert all(entry.scope_allocations[c].owner == 1.0 for c in entry.scope_allocations.categories())


def test_overlap_later_contract_wins():
    contracts = [_make_contract("c1", [1, 2, 3]), _make_contract("c2", [3, 4], fee=50.0, per_turbine=False)]
    matrix = build_responsibility_matrix(5, 10, contracts)
    assert matrix[1].oem_contract_id == "c1"
    assert matrix[2].oem_contract_id == "c2"
    assert matrix[2].fee == pytest.approx(50.0)


def test_overlap_strict_raises():
    contracts = [_make_contract("c1", [1, 2, 3]), _make_contract("c2", [3, 4])]
    with pytest.raises(ResponsibilityMatrixConflict) as excinfo:
        build_responsibility_matrix(5, 10, contracts, strict=True)
    assert excinfo.value.year == 3
    assert excinfo.value.contract_ids == ["c1", "c2"]


def test_years_outside_project_life_ignored():
    matrix = build_responsibility_matrix(3, 1, [_make_contract("c1", [0, 3, 9])])
    assert len(matrix) == 3
    assert [e.has_contract for e in matrix] == [False, False, True]


def test_matrix_to_dicts_shape():
    rows = matrix_to_dicts(build_responsibility_matrix(2, 1, [_make_contract("c1", [1], _full_scope())]))
    assert rows[0]["oemContractId"] == "c1"
    assert rows[1]["oemContractId"] is None
    assert rows[0]["scopeAllocations"]["correctiveMajor"]["components"]["parts"] == {"oem": 0.0, "owner": 1.0}
