"""Error taxonomy for the simulation engine."""

from __future__ import annotations

from typing import Any, Optional


class SimulationError(Exception):
    """Base class for every failure raised by the engine."""


class InvalidDistributionParameters(SimulationError, ValueError):
    """A distribution spec is malformed or outside its domain."""

    def __init__(self, message: str, dist_type: Optional[str] = None, parameter: Optional[str] = None,
                 value: Any = None) -> None:
        super().__init__(message)
        self.dist_type = dist_type
        self.parameter = parameter
        self.value = value


class InvalidModuleParameters(SimulationError, ValueError):
    """A module setting violates a documented numeric invariant."""

    def __init__(self, module: str, field: str, value: Any, reason: str) -> None:
        super().__init__(f"{module}.{field}={value!r}: {reason}")
        self.module = module
        self.field = field
        self.value = value
        self.reason = reason


class InvalidPercentileSet(InvalidModuleParameters):
    """Percentile configuration is not strictly ordered inside (0, 100)."""

    def __init__(self, field: str, value: Any, reason: str) -> None:
        super().__init__("simulation", field, value, reason)


class SimulationDivergence(SimulationError):
    """Every iteration of a run failed."""

    def __init__(self, iterations: int, last_error: Optional[BaseException] = None) -> None:
        detail = f": last error {last_error!r}" if last_error is not None else ""
        super().__init__(f"All {iterations} iterations failed{detail}")
        self.iterations = iterations
        self.last_error = last_error


class ResponsibilityMatrixConflict(SimulationError):
    """Two or more OEM contracts claim the same project year."""

    def __init__(self, year: int, contract_ids: Any) -> None:
        super().__init__(f"Year {year} is covered by overlapping OEM contracts {list(contract_ids)}")
        self.year = year
        self.contract_ids = list(contract_ids)


class SimulationCancelled(SimulationError):
    """A run was cancelled between iterations."""

    def __init__(self, completed: int) -> None:
        super().__init__(f"Simulation cancelled after {completed} iterations")
        self.completed = completed


__all__ = [
    "SimulationError",
    "InvalidDistributionParameters",
    "InvalidModuleParameters",
    "InvalidPercentileSet",
    "SimulationDivergence",
    "ResponsibilityMatrixConflict",
    "SimulationCancelled",
]
