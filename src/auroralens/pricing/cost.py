"""
Cost comparisons across pricing tiers and storage modes.

Costs are computed per minute of the evaluation window:

- On-demand: hourly price / 60
- All upfront: upfront quantity spread over the term
- Partial upfront: spread upfront quantity + hourly price / 60
- No upfront: hourly price / 60

Reserved pricing has no I/O-Optimized SKU, so reserved I/O-Optimized
tiers are the standard tier times a fixed multiplier.

Example:
    ```python
    from auroralens.pricing import provisioned_cost

    costs = provisioned_cost(quote, minutes=1440)
    costs.standard["OnDemand"]
    costs.io_optimized["1YrAllUpfront"]
    ```
"""

from dataclasses import dataclass, field

from loguru import logger

from auroralens.errors import MalformedCatalogEntry
from auroralens.stats import kernel

from .quotes import PriceQuote

# 30-day month
SECONDS_PER_MONTH = 2_592_000
MINUTES_PER_YEAR = 365 * 24 * 60

TIERS = (
    "OnDemand",
    "1YrAllUpfront",
    "1YrPartialUpfront",
    "1YrNoUpfront",
    "3YrAllUpfront",
    "3YrPartialUpfront",
)


@dataclass(frozen=True)
class TierCosts:
    """Absolute cost (USD) per pricing tier, standard and I/O-Optimized."""

    standard: dict[str, float]
    io_optimized: dict[str, float]

    def as_dict(self) -> dict[str, float]:
        out = {f"Cost{tier}": cost for tier, cost in self.standard.items()}
        out.update({f"Cost{tier}IOO": cost for tier, cost in self.io_optimized.items()})
        return out


def per_minute_prices(quote: PriceQuote) -> dict[str, float]:
    """
    Per-minute price of every standard tier.

    Raises:
        MalformedCatalogEntry: If the quote has no instance prices
    """
    if quote.on_demand_hourly is None:
        raise MalformedCatalogEntry("Quote has no on-demand instance price")

    one_year = MINUTES_PER_YEAR
    three_years = 3 * MINUTES_PER_YEAR
    return {
        "OnDemand": quote.on_demand_hourly / 60,
        "1YrAllUpfront": quote.reserved_price("1yr", "All Upfront", "Quantity") / one_year,
        "1YrPartialUpfront": (
            quote.reserved_price("1yr", "Partial Upfront", "Quantity") / one_year
            + quote.reserved_price("1yr", "Partial Upfront", "Hrs") / 60
        ),
        "1YrNoUpfront": quote.reserved_price("1yr", "No Upfront", "Hrs") / 60,
        "3YrAllUpfront": quote.reserved_price("3yr", "All Upfront", "Quantity") / three_years,
        "3YrPartialUpfront": (
            quote.reserved_price("3yr", "Partial Upfront", "Quantity") / three_years
            + quote.reserved_price("3yr", "Partial Upfront", "Hrs") / 60
        ),
    }


def provisioned_cost(
    quote: PriceQuote, minutes: float, io_optimized_multiplier: float = 1.3
) -> TierCosts:
    """
    Cost of running a provisioned instance for ``minutes`` in every tier.

    Args:
        quote: Quote including instance and reserved prices
        minutes: Length of the period
        io_optimized_multiplier: Reserved I/O-Optimized price relative to
            standard

    Returns:
        TierCosts
    """
    standard = {tier: minutes * price for tier, price in per_minute_prices(quote).items()}
    io_optimized = {tier: cost * io_optimized_multiplier for tier, cost in standard.items()}
    io_optimized["OnDemand"] = minutes * (quote.on_demand_hourly_io_optimized or 0.0) / 60
    return TierCosts(standard=standard, io_optimized=io_optimized)


def on_demand_cost(quote: PriceQuote, minutes: float) -> tuple[float, float]:
    """On-demand cost (standard, I/O-Optimized) for ``minutes``."""
    if quote.on_demand_hourly is None:
        raise MalformedCatalogEntry("Quote has no on-demand instance price")
    return (
        minutes * quote.on_demand_hourly / 60,
        minutes * (quote.on_demand_hourly_io_optimized or 0.0) / 60,
    )


def serverless_cost(acus: list, per_acu_hour: float) -> float:
    """Cost of a per-minute ACU series: sum(ACU) * hourly price / 60."""
    return (kernel.total(acus) or 0.0) * per_acu_hour / 60


@dataclass(frozen=True)
class StorageCosts:
    volume: float
    volume_io_optimized: float
    io: float


def storage_costs(
    volume_bytes: float, write_ios: float, read_ios: float, quote: PriceQuote, period_seconds: float
) -> StorageCosts:
    """
    Volume and I/O cost of the cluster storage over the period.

    Args:
        volume_bytes: Average volume size used
        write_ios: Volume write I/Os over the period
        read_ios: Volume read I/Os over the period
        quote: Storage prices
        period_seconds: Length of the period

    Returns:
        StorageCosts; I/O-Optimized storage has no I/O charge
    """
    gb = volume_bytes / 1024**3
    return StorageCosts(
        volume=gb * quote.per_gb_month / SECONDS_PER_MONTH * period_seconds,
        volume_io_optimized=gb * quote.per_gb_month_io_optimized / SECONDS_PER_MONTH * period_seconds,
        io=(write_ios + read_ios) * quote.per_million_io / 1_000_000,
    )


@dataclass
class InstanceUsage:
    """
    Compute usage of one cluster member.

    Serverless members carry their observed per-minute ACU series;
    provisioned members are costed on-demand for the whole period.
    """

    instance_id: str
    quote: PriceQuote
    acu_series: list[float] | None = None

    @property
    def is_serverless(self) -> bool:
        return self.acu_series is not None

    def compute_costs(self, period_seconds: float) -> tuple[float, float]:
        """Compute cost (standard, I/O-Optimized) over the period."""
        if self.is_serverless:
            return (
                serverless_cost(self.acu_series, self.quote.per_acu_hour),
                serverless_cost(self.acu_series, self.quote.per_acu_hour_io_optimized),
            )
        return on_demand_cost(self.quote, period_seconds / 60)


@dataclass
class StorageModeComparison:
    """
    Standard vs I/O-Optimized cluster cost.

    ``percent`` is the absolute difference relative to the current mode;
    ``desc`` says whether the other mode is cheaper or more expensive.
    """

    storage_type: str
    percent: float
    desc: str
    overall: float
    overall_io_optimized: float
    instances: dict[str, tuple[float, float]] = field(default_factory=dict)

    @property
    def currently_io_optimized(self) -> bool:
        return self.storage_type != "aurora"

    def as_dict(self) -> dict:
        key = "estimatedPercentStandardCost" if self.currently_io_optimized else "estimatedPercentIOOptimizedCost"
        return {key: self.percent, "desc": self.desc}


def compare_storage_modes(
    storage_type: str,
    instances: list[InstanceUsage],
    storage: StorageCosts,
    period_seconds: float,
) -> StorageModeComparison:
    """
    Compare the cluster cost in standard and I/O-Optimized storage modes.

    Serverless and provisioned members are costed independently and summed.

    Args:
        storage_type: Current cluster storage type (``aurora`` is standard,
            anything else is I/O-Optimized)
        instances: Every cluster member
        storage: Volume and I/O costs
        period_seconds: Length of the period

    Returns:
        StorageModeComparison
    """
    serverless = [0.0, 0.0]
    provisioned = [0.0, 0.0]
    per_instance = {}
    for usage in instances:
        costs = usage.compute_costs(period_seconds)
        per_instance[usage.instance_id] = costs
        bucket = serverless if usage.is_serverless else provisioned
        bucket[0] += costs[0]
        bucket[1] += costs[1]

    overall = serverless[0] + provisioned[0] + storage.volume + storage.io
    overall_io = serverless[1] + provisioned[1] + storage.volume_io_optimized

    if storage_type == "aurora":
        percent = abs(round((overall - overall_io) / overall * 100, 2)) if overall else 0.0
        desc = "cheaper" if overall > overall_io else "more expensive"
    else:
        percent = abs(round((overall_io - overall) / overall_io * 100, 2)) if overall_io else 0.0
        desc = "more expensive" if overall > overall_io else "cheaper"

    logger.info(
        f"Storage mode comparison over {len(instances)} instances: "
        f"standard={overall:.4f}, io-optimized={overall_io:.4f} ({percent}% {desc})"
    )
    return StorageModeComparison(
        storage_type=storage_type,
        percent=percent,
        desc=desc,
        overall=overall,
        overall_io_optimized=overall_io,
        instances=per_instance,
    )
