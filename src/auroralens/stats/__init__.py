"""Statistics kernel for metric series."""

from .kernel import (
    average,
    directional_correlation,
    elementwise_scale,
    elementwise_sum,
    max_across_series,
    maximum,
    minimum,
    round_half_up_units,
    round_up_to_thousand,
    standard_deviation,
    total,
    two_sigma_bound,
)

__all__ = [
    "average",
    "directional_correlation",
    "elementwise_scale",
    "elementwise_sum",
    "max_across_series",
    "maximum",
    "minimum",
    "round_half_up_units",
    "round_up_to_thousand",
    "standard_deviation",
    "total",
    "two_sigma_bound",
]
