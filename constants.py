"""Shared numeric constants for the wind-farm simulation stack."""

HOURS_PER_YEAR = 8760

# Percent, as entered in scenario settings.
DEFAULT_DISCOUNT_RATE = 8.0

MIN_ITERATIONS = 100
DEFAULT_ITERATIONS = 10_000

DEFAULT_PERCENTILES = {
    "primary": 50,
    "upper_bound": 75,
    "lower_bound": 25,
    "extreme_upper": 90,
    "extreme_lower": 10,
}

# Reserve funds are provisioned over at most this many operating years.
DEFAULT_RESERVE_PROVISION_YEARS = 5
