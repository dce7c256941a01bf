from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

ValidatorFn = Callable[[Any], bool]
PathSpec = Tuple[str, ...]


@dataclass(frozen=True)
class RequiredFieldSpec:
    """
    Canonical description of a scenario setting needed by a module.

    Attributes
    ----------
    module:
        Logical owner ("general", "simulation", "financing", "cost",
        "revenue", "risk").
    name:
        camelCase settings key as stored in the scenario ("annualBaseOM",
        "failureEventProbability", ...). Used in error messages.
    paths:
        Candidate attribute paths into ``ScenarioSettings``, tried in order.
        Each path is a tuple, e.g. ("modules", "cost", "annual_base_om").
    required:
        True = a missing (None) value fails validation.
    severity:
        "error" fails the run; "warning" is logged and the run continues.
    description:
        Human-friendly explanation used in schema dumps.
    validator:
        Optional predicate returning True when the resolved value is valid.
    reason:
        What ``validator`` asserts, e.g. "must be between 0 and 100".
    distribution:
        The value is a DistributionSpec; it is checked for every project year.
    """

    module: str
    name: str
    paths: Sequence[PathSpec]
    required: bool = True
    severity: str = "error"
    description: str = ""
    validator: Optional[ValidatorFn] = field(default=None)
    reason: str = "invalid value"
    distribution: bool = False


# Global registry keyed by module name
_REGISTRY: Dict[str, List[RequiredFieldSpec]] = {}


def register_required_fields(
    module: str,
    specs: Iterable[RequiredFieldSpec],
) -> None:
    """
    Register one or more RequiredFieldSpec objects for a module.

    Intended usage is at module import time, e.g.:

        _COST_SPECS = [
            RequiredFieldSpec(...),
            ...
        ]
        register_required_fields("cost", _COST_SPECS)

    Registering the same (module, name) twice replaces the earlier spec, so
    reloading a module does not duplicate its checks.
    """
    current = _REGISTRY.setdefault(module, [])
    for spec in specs:
        current[:] = [s for s in current if s.name != spec.name]
        current.append(spec)


def get_required_fields(module: Optional[str] = None) -> List[RequiredFieldSpec]:
    """
    Return all registered specs, optionally filtered by module.

    Specs come back in registration order, which is the order the schema
    guard checks them in.
    """
    if module is None:
        out: List[RequiredFieldSpec] = []
        for specs in _REGISTRY.values():
            out.extend(specs)
        return out
    return list(_REGISTRY.get(module, []))


def registered_modules() -> List[str]:
    return sorted(_REGISTRY)


# Non-negativity and percentage checks shared by the module registrations.
def non_negative(value: Any) -> bool:
    return value is not None and float(value) >= 0


def percentage(value: Any) -> bool:
    return value is not None and 0 <= float(value) <= 100


def build_schema_dataframe() -> pd.DataFrame:
    """
    Flatten the registry into a DataFrame for inspection/debugging.

    Columns:
      - module
      - name
      - path_candidates (list[str])
      - required
      - severity
      - rule
      - description
    """
    columns = ["module", "name", "path_candidates", "required", "severity", "rule", "description"]
    rows: List[Dict[str, Any]] = []

    for spec in get_required_fields():
        rows.append(
            {
                "module": spec.module,
                "name": spec.name,
                "path_candidates": [".".join(p) for p in spec.paths],
                "required": spec.required,
                "severity": spec.severity,
                "rule": "valid distribution" if spec.distribution else spec.reason,
                "description": spec.description,
            }
        )

    if not rows:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame(rows, columns=columns)
    df = df.sort_values(["module", "name"]).reset_index(drop=True)
    return df


__all__ = [
    "RequiredFieldSpec",
    "register_required_fields",
    "get_required_fields",
    "registered_modules",
    "non_negative",
    "percentage",
    "build_schema_dataframe",
    "ValidatorFn",
    "PathSpec",
]
