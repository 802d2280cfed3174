"""Price quotes and cost comparison."""

from .cost import (
    SECONDS_PER_MONTH,
    TIERS,
    InstanceUsage,
    StorageCosts,
    StorageModeComparison,
    TierCosts,
    compare_storage_modes,
    on_demand_cost,
    per_minute_prices,
    provisioned_cost,
    serverless_cost,
    storage_costs,
)
from .quotes import PriceQuote, pricing_engine_name, reserved_key

__all__ = [
    # Quotes
    "PriceQuote",
    "pricing_engine_name",
    "reserved_key",
    # Cost
    "SECONDS_PER_MONTH",
    "TIERS",
    "InstanceUsage",
    "StorageCosts",
    "StorageModeComparison",
    "TierCosts",
    "compare_storage_modes",
    "on_demand_cost",
    "per_minute_prices",
    "provisioned_cost",
    "serverless_cost",
    "storage_costs",
]
