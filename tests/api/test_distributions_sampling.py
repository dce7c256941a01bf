"""
Unit tests for windfarm_mc.distributions.

What is proven here:
- sampling is reproducible for a fixed (seed, stream);
- triangular/lognormal draws have the expected location;
- invalid parameters are rejected with InvalidDistributionParameters;
- percentiles use NumPy's linear interpolation.
"""

import numpy as np
import pytest

from windfarm_mc.distributions import (
    DistributionSpec,
    describe,
    make_rng,
    percentiles,
    sample,
    sample_series,
    validate_distribution,
)
from windfarm_mc.errors import InvalidDistributionParameters


def _spec(kind, **params):
    return DistributionSpec(kind, params)


def test_triangular_median_and_support():
    """Triangular(10, 20, 30), seed 7, 100k draws: median ~20, all draws in range."""
    spec = _spec("triangular", min=10, mode=20, max=30)
    rng = make_rng(7)
    values = np.array([sample(spec, rng) for _ in range(100_000)])

    assert abs(float(np.median(values)) - 20.0) <= 0.5
    assert values.min() >= 10.0
    assert values.max() <= 30.0


def test_lognormal_uses_arithmetic_moments():
    spec = _spec("lognormal", mean=100.0, std=20.0)
    rng = make_rng(11)
    values = np.array([sample(spec, rng) for _ in range(50_000)])

    assert values.mean() == pytest.approx(100.0, abs=1.0)
    assert values.std() == pytest.approx(20.0, abs=1.0)
    assert values.min() > 0


def test_same_seed_and_stream_reproduce_draws():
    spec = _spec("normal", mean=0.0, std=1.0)
    years = range(1, 11)
    a = sample_series(spec, make_rng(42, 3), years)
    b = sample_series(spec, make_rng(42, 3), years)
    c = sample_series(spec, make_rng(42, 4), years)

    assert np.array_equal(a, b)
    assert not np.array_equal(a, c)


def test_fixed_with_drift_and_time_series_parameters():
    assert sample(_spec("fixed", value=100.0, drift=10.0), make_rng(1), year=3) == pytest.approx(121.0)

    series = _spec("fixed", value=[{"year": 1, "value": 5.0}, {"year": 2, "value": 7.0}])
    assert sample(series, make_rng(1), year=2) == pytest.approx(7.0)
    with pytest.raises(InvalidDistributionParameters):
        sample(series, make_rng(1), year=3)


def test_from_dict_is_case_insensitive_and_accepts_numbers():
    spec = DistributionSpec.from_dict({"type": "Normal", "parameters": {"mean": 1.0, "stdDev": 0.0}})
    assert spec.type == "normal"
    # stdDev is an alias for std; a zero spread always returns the mean
    assert sample(spec, make_rng(0)) == pytest.approx(1.0)

    fixed = DistributionSpec.from_dict(42)
    assert fixed.is_deterministic
    assert fixed.to_dict() == {"type": "fixed", "parameters": {"value": 42.0}}


@pytest.mark.parametrize(
    "spec",
    [
        DistributionSpec("triangular", {"min": 30, "mode": 20, "max": 10}),
        DistributionSpec("uniform", {"min": 5, "max": 5}),
        DistributionSpec("weibull", {"scale": 24, "shape": 0}),
        DistributionSpec("lognormal", {"mean": -1, "std": 1}),
        DistributionSpec("exponential", {"rate": 0}),
        DistributionSpec("normal", {"mean": 1}),
        DistributionSpec("cauchy", {"loc": 0}),
    ],
)
def test_invalid_parameters_rejected(spec):
    with pytest.raises(InvalidDistributionParameters):
        validate_distribution(spec)


def test_invalid_distribution_error_is_a_value_error():
    with pytest.raises(ValueError) as excinfo:
        validate_distribution(_spec("weibull", scale=-1, shape=2))
    assert excinfo.value.dist_type == "weibull"
    assert excinfo.value.parameter == "scale"


def test_validate_checks_every_requested_year():
    series = _spec("fixed", value=[{"year": 1, "value": 5.0}])
    validate_distribution(series, years=[1])
    with pytest.raises(InvalidDistributionParameters):
        validate_distribution(series, years=[1, 2])


def test_percentiles_linear_interpolation():
    result = percentiles([4.0, 1.0, 3.0, 2.0], [0, 50, 100])
    assert result[0.0] == pytest.approx(1.0)
    assert result[50.0] == pytest.approx(2.5)
    assert result[100.0] == pytest.approx(4.0)


def test_percentiles_reject_bad_input():
    with pytest.raises(ValueError):
        percentiles([], [50])
    with pytest.raises(ValueError):
        percentiles([1.0, 2.0], [101])


def test_describe_empty_population_is_all_zero():
    assert describe([]) == {"mean": 0.0, "median": 0.0, "min": 0.0, "max": 0.0, "std": 0.0}
    assert describe([1.0, 3.0])["mean"] == pytest.approx(2.0)
