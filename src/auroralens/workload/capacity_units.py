"""
Serverless capacity-unit (ACU) demand estimation.

A provisioned instance's per-minute telemetry is turned into the ACU series
a serverless instance would likely have scaled to:

1. CPU demand: vCPUs in use × 4 ACU per vCPU, rounded up to half units
2. Memory demand from two I/O signals (logical reads, and OS read IOPS
   accumulated into bursts every N samples), each sized as buffer memory
   plus a share for other allocations, rounded up to 1000 MB and
   converted at 2000 MB per ACU
3. Per-minute maximum of the three, capped at the platform ceiling
4. Hysteresis: dips are held at the previous level until they persist
   for a number of consecutive samples

Missing samples count as no demand.
"""

from dataclasses import dataclass

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from auroralens.config import AnalyzerConfig
from auroralens.errors import NoWorkloadData
from auroralens.pricing.cost import TIERS, TierCosts, provisioned_cost, serverless_cost
from auroralens.pricing.quotes import PriceQuote
from auroralens.stats import kernel

COMPARISON_NOTE = (
    "A positive percentage indicates that the serverless price is estimated to be more "
    "expensive, while a negative percentage indicates that it is cheaper."
)


def _samples(values) -> NDArray[np.floating]:
    return np.nan_to_num(np.asarray([np.nan if v is None else v for v in values], dtype=float))


def cpu_acus(vcpus_used, multiplier: float = 4.0) -> NDArray[np.floating]:
    """ACU demand from vCPUs in use, rounded up to half units."""
    return np.array(
        [kernel.round_half_up_units(v * multiplier) for v in _samples(vcpus_used)], dtype=float
    )


def sparsify_io_bursts(values, period: int = 7) -> NDArray[np.floating]:
    """
    Accumulate every ``period`` samples into one burst.

    Each complete window emits ``period - 1`` zeros followed by the window
    sum. A trailing partial window emits only zeros.

    Example:
        >>> sparsify_io_bursts([1, 2, 3, 4, 5], period=2).tolist()
        [0.0, 3.0, 0.0, 7.0, 0.0]
    """
    arr = _samples(values)
    out = np.zeros_like(arr)
    complete = (arr.size // period) * period
    if complete:
        out[period - 1 : complete : period] = arr[:complete].reshape(-1, period).sum(axis=1)
    return out


def memory_mb(values, other_memory_pct: float = 35.0) -> NDArray[np.floating]:
    """Buffer memory (MB) needed for 8 KB pages, grossed up for other allocations."""
    return (_samples(values) * 8 / 1024) * 100 / (100 - other_memory_pct)


def memory_acus(mb_values) -> NDArray[np.floating]:
    """ACU demand from memory: next 1000 MB boundary at 2000 MB per ACU."""
    return np.array(
        [
            kernel.round_half_up_units(kernel.round_up_to_thousand(mb) / 2000)
            for mb in np.asarray(mb_values, dtype=float)
        ],
        dtype=float,
    )


def merge_acus(cpu, memory_a, memory_b, ceiling: float = 128.0) -> NDArray[np.floating]:
    """Per-sample maximum of three ACU series, capped at ``ceiling``."""
    return np.minimum(kernel.max_across_series(cpu, memory_a, memory_b), ceiling)


def smooth_acus(values, hold_samples: int = 9) -> NDArray[np.floating]:
    """
    Hold the current level through short dips.

    A value at or above the current level is adopted immediately. A lower
    value reports the current level instead; once ``hold_samples``
    consecutive values have been held, the level drops to the latest one
    (which takes effect from the next sample).

    Example:
        >>> smooth_acus([10, 10] + [1] * 9 + [3]).tolist()
        [10.0, 10.0, 10.0, 10.0, 10.0, 10.0, 10.0, 10.0, 10.0, 10.0, 10.0, 3.0]
    """
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return arr

    out = np.empty_like(arr)
    out[0] = level = arr[0]
    held = 0
    for i in range(1, arr.size):
        if arr[i] < level:
            out[i] = level
            held += 1
            if held >= hold_samples:
                level = arr[i]
                held = 0
        else:
            out[i] = level = arr[i]
            held = 0
    return out


@dataclass
class CapacityUnitEstimate:
    """Smoothed ACU series and the capacity bounds derived from it."""

    series: NDArray[np.floating]
    average: float
    std: float
    suggested_min: float
    suggested_max_avg_std: float
    suggested_max: float

    @property
    def minutes(self) -> int:
        return int(self.series.size)


def suggest_bounds(series) -> CapacityUnitEstimate:
    """
    Derive min/max capacity suggestions from a smoothed ACU series.

    The minimum is ``|round_half_up(avg - std)|``, the two maxima are
    ``round_half_up(avg + std)`` and the series peak.

    Raises:
        NoWorkloadData: If the series is empty
    """
    arr = np.asarray(series, dtype=float)
    avg = kernel.average(arr)
    if avg is None:
        raise NoWorkloadData("No samples to estimate capacity units from")
    std = kernel.standard_deviation(arr, avg)
    return CapacityUnitEstimate(
        series=arr,
        average=avg,
        std=std,
        suggested_min=abs(kernel.round_half_up_units(avg - std)),
        suggested_max_avg_std=kernel.round_half_up_units(avg + std),
        suggested_max=kernel.maximum(arr),
    )


def estimate_capacity_units(
    vcpus_used, logical_reads, read_iops, config: AnalyzerConfig | None = None
) -> CapacityUnitEstimate:
    """
    Run the full estimation pipeline on aligned per-minute series.

    Args:
        vcpus_used: vCPUs in use per minute (vCPU count × CPU% / 100)
        logical_reads: Logical reads per minute
        read_iops: OS read IOPS per minute (sparsified here)
        config: Estimation constants; defaults when omitted

    Returns:
        CapacityUnitEstimate

    Raises:
        NoWorkloadData: If there are no samples
        ValueError: If the series are not aligned
    """
    config = config or AnalyzerConfig()

    cpu = cpu_acus(vcpus_used, config.acu_multiplier)
    from_reads = memory_acus(memory_mb(logical_reads, config.other_memory_allocations_pct))
    from_iops = memory_acus(
        memory_mb(
            sparsify_io_bursts(read_iops, config.acu_io_effective_period),
            config.other_memory_allocations_pct,
        )
    )
    merged = merge_acus(cpu, from_reads, from_iops, config.max_acu_limit)
    smoothed = smooth_acus(merged, config.acu_hysteresis_samples)

    estimate = suggest_bounds(smoothed)
    logger.info(
        f"Estimated ACUs over {estimate.minutes} minutes: avg={estimate.average:.2f}, "
        f"min={estimate.suggested_min}, max={estimate.suggested_max}"
    )
    return estimate


@dataclass
class ServerlessComparison:
    """
    Serverless cost relative to each provisioned tier.

    ``deltas`` maps tier -> signed percent; negative means serverless is
    cheaper. None when the tier costs nothing.
    """

    serverless_cost: float
    provisioned: TierCosts
    deltas: dict[str, float | None]
    estimate: CapacityUnitEstimate
    note: str = COMPARISON_NOTE

    def as_dict(self) -> dict:
        out = {f"EstimatedPercentRelativeToCost{tier}": pct for tier, pct in self.deltas.items()}
        out["desc"] = self.note
        out["SuggestedMinACUs"] = self.estimate.suggested_min
        out["SuggestedMaxACUsBasedOnAVGandSD"] = self.estimate.suggested_max_avg_std
        out["SuggestedMaxACUsBasedOnMAX"] = self.estimate.suggested_max
        return out


def relative_delta(provisioned: float, serverless: float) -> float | None:
    """Signed percent of serverless against provisioned, 2 decimals."""
    if not provisioned:
        return None
    return -1 * round((provisioned - serverless) / provisioned * 100, 2)


def compare_serverless(
    estimate: CapacityUnitEstimate, quote: PriceQuote, io_optimized_multiplier: float = 1.3
) -> ServerlessComparison:
    """
    Compare the estimated serverless cost with the provisioned tiers.

    Both sides cover the same number of minutes (the ACU series length).
    """
    sl_cost = serverless_cost(estimate.series, quote.per_acu_hour)
    costs = provisioned_cost(quote, estimate.minutes, io_optimized_multiplier)
    deltas = {tier: relative_delta(costs.standard[tier], sl_cost) for tier in TIERS}
    logger.debug(f"Serverless cost {sl_cost:.4f} vs on-demand {costs.standard['OnDemand']:.4f}")
    return ServerlessComparison(
        serverless_cost=sl_cost, provisioned=costs, deltas=deltas, estimate=estimate
    )
