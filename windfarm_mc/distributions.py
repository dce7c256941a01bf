"""
Distribution library for stochastic scenario inputs.

Every sampling call takes an explicit ``numpy.random.Generator``. The engine
uses the PCG64 bit generator seeded from ``(seed, iteration)`` so a fixed seed
reproduces the same draws regardless of how iterations are scheduled.

Parameters may be scalars or time series ``[{"year": 1, "value": ...}, ...]``;
for a series the value of the sampled year is used.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np

from windfarm_mc.errors import InvalidDistributionParameters

logger = logging.getLogger(__name__)

__all__ = [
    "DistributionSpec",
    "SUPPORTED_TYPES",
    "make_rng",
    "validate_distribution",
    "sample",
    "sample_series",
    "percentiles",
    "describe",
]

# Required parameters per distribution type, after alias resolution.
_REQUIRED: Dict[str, Sequence[str]] = {
    "fixed": ("value",),
    "normal": ("mean", "std"),
    "lognormal": ("mean", "std"),
    "triangular": ("min", "mode", "max"),
    "uniform": ("min", "max"),
    "weibull": ("scale", "shape"),
    "exponential": ("rate",),
    "gamma": ("shape", "scale"),
    "poisson": ("lambda",),
    "gbm": ("value", "drift", "volatility"),
}

SUPPORTED_TYPES = tuple(_REQUIRED)

# alias -> canonical name, per type
_ALIASES: Dict[str, Dict[str, str]] = {
    "normal": {"stdDev": "std", "sigma": "std", "mu": "mean"},
    "exponential": {"lambda": "rate"},
}

# Optional parameters and their defaults.
_OPTIONAL: Dict[str, Dict[str, float]] = {
    "fixed": {"drift": 0.0},
}


@dataclass(frozen=True)
class DistributionSpec:
    """How to sample one stochastic quantity: ``{type, parameters}``."""

    type: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def fixed(cls, value: float) -> "DistributionSpec":
        return cls("fixed", {"value": float(value)})

    @classmethod
    def from_dict(cls, raw: Any) -> "DistributionSpec":
        if isinstance(raw, DistributionSpec):
            return raw
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return cls.fixed(raw)
        if not isinstance(raw, Mapping) or "type" not in raw:
            raise InvalidDistributionParameters(f"Distribution must be a mapping with a 'type', got {raw!r}")
        params = raw.get("parameters") or {}
        if not isinstance(params, Mapping):
            raise InvalidDistributionParameters(
                f"Distribution parameters must be a mapping, got {type(params).__name__}",
                dist_type=str(raw["type"]),
            )
        return cls(str(raw["type"]).strip().lower(), dict(params))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "parameters": dict(self.parameters)}

    @property
    def is_deterministic(self) -> bool:
        return self.type == "fixed"


def make_rng(seed: int, stream: Optional[int] = None) -> np.random.Generator:
    """Run-level generator, or the independent sub-stream for one iteration."""
    if stream is None:
        return np.random.default_rng(int(seed))
    return np.random.default_rng([int(seed), int(stream)])


# ============================================================================
# PARAMETER RESOLUTION
# ============================================================================


def _canonical_params(spec: DistributionSpec) -> Dict[str, Any]:
    aliases = _ALIASES.get(spec.type, {})
    params: Dict[str, Any] = dict(_OPTIONAL.get(spec.type, {}))
    for key, value in spec.parameters.items():
        params[aliases.get(key, key)] = value

    # Lognormal accepts log-space mu/sigma instead of arithmetic mean/std.
    if spec.type == "lognormal" and "mean" not in params and "mu" in params and "sigma" in params:
        params["log_space"] = True
    return params


def _value_at(spec: DistributionSpec, name: str, raw: Any, year: int) -> float:
    if isinstance(raw, (list, tuple)):
        for point in raw:
            if isinstance(point, Mapping) and int(point.get("year", -1)) == year:
                raw = point.get("value")
                break
        else:
            raise InvalidDistributionParameters(
                f"{spec.type}: time series for '{name}' has no value for year {year}",
                dist_type=spec.type, parameter=name, value=year,
            )
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or not math.isfinite(float(raw)):
        raise InvalidDistributionParameters(
            f"{spec.type}: parameter '{name}' must be a finite number, got {raw!r}",
            dist_type=spec.type, parameter=name, value=raw,
        )
    return float(raw)


def _resolve(spec: DistributionSpec, year: int) -> Dict[str, float]:
    if spec.type not in _REQUIRED:
        raise InvalidDistributionParameters(
            f"Unsupported distribution type '{spec.type}'", dist_type=spec.type,
        )
    params = _canonical_params(spec)
    if params.get("log_space"):
        names: Iterable[str] = ("mu", "sigma")
    else:
        names = list(_REQUIRED[spec.type]) + list(_OPTIONAL.get(spec.type, {}))

    resolved: Dict[str, float] = {}
    for name in names:
        if name not in params or params[name] is None:
            raise InvalidDistributionParameters(
                f"{spec.type}: missing required parameter '{name}'", dist_type=spec.type, parameter=name,
            )
        resolved[name] = _value_at(spec, name, params[name], year)
    if params.get("log_space"):
        resolved["log_space"] = 1.0
    _check_domain(spec.type, resolved)
    return resolved


def _fail(dist_type: str, parameter: str, value: Any, message: str) -> None:
    raise InvalidDistributionParameters(f"{dist_type}: {message}", dist_type=dist_type, parameter=parameter,
                                        value=value)


def _check_domain(dist_type: str, p: Dict[str, float]) -> None:
    if dist_type in ("triangular", "uniform") and not p["min"] < p["max"]:
        _fail(dist_type, "min", p["min"], f"min ({p['min']}) must be less than max ({p['max']})")
    if dist_type == "triangular" and not p["min"] <= p["mode"] <= p["max"]:
        _fail(dist_type, "mode", p["mode"], "mode must lie within [min, max]")
    if dist_type == "weibull":
        if p["scale"] <= 0:
            _fail(dist_type, "scale", p["scale"], "scale must be positive")
        if p["shape"] <= 0:
            _fail(dist_type, "shape", p["shape"], "shape must be positive")
    if dist_type == "normal" and p["std"] < 0:
        _fail(dist_type, "std", p["std"], "std must be non-negative")
    if dist_type == "lognormal":
        if "log_space" in p:
            if p["sigma"] <= 0:
                _fail(dist_type, "sigma", p["sigma"], "sigma must be positive")
        else:
            if p["mean"] <= 0:
                _fail(dist_type, "mean", p["mean"], "mean must be positive")
            if p["std"] <= 0:
                _fail(dist_type, "std", p["std"], "std must be positive")
    if dist_type == "exponential" and p["rate"] <= 0:
        _fail(dist_type, "rate", p["rate"], "rate must be positive")
    if dist_type == "gamma":
        if p["shape"] <= 0:
            _fail(dist_type, "shape", p["shape"], "shape must be positive")
        if p["scale"] <= 0:
            _fail(dist_type, "scale", p["scale"], "scale must be positive")
    if dist_type == "poisson" and p["lambda"] < 0:
        _fail(dist_type, "lambda", p["lambda"], "lambda must be non-negative")
    if dist_type == "gbm":
        if p["value"] <= 0:
            _fail(dist_type, "value", p["value"], "value must be positive")
        if p["volatility"] < 0:
            _fail(dist_type, "volatility", p["volatility"], "volatility must be non-negative")


def validate_distribution(spec: DistributionSpec, years: Optional[Iterable[int]] = None) -> None:
    """Raise InvalidDistributionParameters unless ``spec`` samples cleanly for every year."""
    for year in (years if years is not None else (1,)):
        _resolve(spec, int(year))


# ============================================================================
# SAMPLING
# ============================================================================


def sample(spec: DistributionSpec, rng: np.random.Generator, year: int = 1) -> float:
    """Draw one value of ``spec`` for ``year`` from ``rng``."""
    p = _resolve(spec, year)
    kind = spec.type

    if kind == "fixed":
        return p["value"] * (1.0 + p["drift"] / 100.0) ** (year - 1)
    if kind == "normal":
        return float(rng.normal(p["mean"], p["std"]))
    if kind == "lognormal":
        if "log_space" in p:
            mu, sigma = p["mu"], p["sigma"]
        else:
            sigma2 = math.log1p((p["std"] / p["mean"]) ** 2)
            mu, sigma = math.log(p["mean"]) - sigma2 / 2.0, math.sqrt(sigma2)
        return float(rng.lognormal(mu, sigma))
    if kind == "triangular":
        return float(rng.triangular(p["min"], p["mode"], p["max"]))
    if kind == "uniform":
        return float(rng.uniform(p["min"], p["max"]))
    if kind == "weibull":
        return p["scale"] * float(rng.weibull(p["shape"]))
    if kind == "exponential":
        return float(rng.exponential(1.0 / p["rate"]))
    if kind == "gamma":
        return float(rng.gamma(p["shape"], p["scale"]))
    if kind == "poisson":
        return float(rng.poisson(p["lambda"]))
    if kind == "gbm":
        drift, vol = p["drift"] / 100.0, p["volatility"] / 100.0
        t = max(year - 1, 0)
        z = float(rng.standard_normal())
        return p["value"] * math.exp((drift - vol * vol / 2.0) * t + vol * math.sqrt(t) * z)

    raise InvalidDistributionParameters(f"Unsupported distribution type '{kind}'", dist_type=kind)


def sample_series(spec: DistributionSpec, rng: np.random.Generator, years: Iterable[int]) -> np.ndarray:
    """One draw per year, in year order."""
    return np.array([sample(spec, rng, int(y)) for y in years], dtype=float)


# ============================================================================
# PERCENTILES & STATISTICS
# ============================================================================


def percentiles(values: Sequence[float], targets: Iterable[float]) -> Dict[float, float]:
    """
    Percentiles of a sample population by linear interpolation.

    The population is sorted ascending and percentile ``p`` is read at
    position ``p/100 * (n-1)``, interpolating between neighbours. This is
    NumPy's ``method="linear"``.
    """
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        raise ValueError("Cannot compute percentiles of an empty population")
    wanted: List[float] = [float(t) for t in targets]
    for t in wanted:
        if not 0.0 <= t <= 100.0:
            raise ValueError(f"Percentile must be between 0 and 100, got {t}")
    if not wanted:
        return {}
    computed = np.percentile(arr, wanted, method="linear")
    return {t: float(v) for t, v in zip(wanted, np.atleast_1d(computed))}


def describe(values: Sequence[float]) -> Dict[str, float]:
    """Mean, median, min, max and population standard deviation."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return {"mean": 0.0, "median": 0.0, "min": 0.0, "max": 0.0, "std": 0.0}
    return {
        "mean": float(arr.mean()),
        "median": float(np.median(arr)),
        "min": float(arr.min()),
        "max": float(arr.max()),
        "std": float(arr.std()),
    }
