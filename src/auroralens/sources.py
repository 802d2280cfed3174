"""
Collaborator interfaces and fetch helpers.

The analyzer does not talk to any monitoring, catalog or pricing API
itself. Callers pass in objects implementing the protocols below; every
call is awaited through ``guarded`` so that a failing collaborator aborts
the evaluation with ``CollaboratorUnavailable``.
"""

import asyncio
import math
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol, TypeVar

from loguru import logger

from auroralens.errors import AuroraLensError, CollaboratorUnavailable
from auroralens.load.waits import DimensionKeys
from auroralens.metrics.catalog import MetricMetadata, MetricSeries
from auroralens.pricing.quotes import PriceQuote

T = TypeVar("T")

# Performance metric queries return at most this many points per series
MAX_POINTS_PER_QUERY = 350
DATE_RANGE_SECONDS = 5 * 60 * 60
PERIODS = (1, 60, 300, 3600)


# Domain models exchanged with collaborators
@dataclass(frozen=True)
class AggregatedQuery:
    """One dashboard-style metric query (namespace ``AWS/RDS``)."""

    id: str
    metric_name: str
    dimension_name: str
    dimension_value: str
    stat: str = "Average"


@dataclass
class AggregatedResult:
    """
    Series of an aggregated query.

    ``summary`` is the statistic over the whole window (e.g. the window
    average of ``BufferCacheHitRatio``), None when there were no samples.
    """

    id: str
    values: list[float] = field(default_factory=list)
    summary: float | None = None


@dataclass(frozen=True)
class ClusterMember:
    instance_id: str
    instance_class: str
    is_writer: bool


@dataclass
class ClusterMembership:
    """Cluster of the evaluated instance, with its global-database fan-out."""

    cluster_id: str
    storage_type: str
    members: list[ClusterMember]
    remote_clusters: int = 0

    @property
    def writer(self) -> ClusterMember | None:
        return next((m for m in self.members if m.is_writer), None)


# Collaborator protocols
class MetricsSource(Protocol):
    """Performance metrics (per-second to per-day samples) of one instance."""

    async def get_series(
        self,
        resource_id: str,
        metric_names: list[str],
        start: datetime,
        end: datetime,
        period_seconds: int,
        group_by: dict | None = None,
        partition_by: dict | None = None,
        filter: dict | None = None,
    ) -> list[MetricSeries]:
        """Fetch one series per metric name (or per group when grouped)."""
        ...

    async def list_available_metrics(self, resource_id: str, types: list[str]) -> list[MetricMetadata]:
        """Catalog of metrics available for the instance."""
        ...

    async def describe_dimension_keys(
        self,
        resource_id: str,
        metric: str,
        start: datetime,
        end: datetime,
        period_seconds: int,
        group_by: dict,
        partition_by: dict | None = None,
        additional_metrics: list[str] | None = None,
    ) -> DimensionKeys:
        """Top dimension keys of a metric, optionally partitioned."""
        ...


class AggregatedMetricsSource(Protocol):
    async def get_aggregated_series(
        self, queries: list[AggregatedQuery], start: datetime, end: datetime, period_seconds: int
    ) -> dict[str, AggregatedResult]:
        """Fetch dashboard metrics, keyed by query id."""
        ...


class CatalogSource(Protocol):
    async def list_instance_classes(self, engine: str, engine_version: str) -> list[str]:
        """Orderable ``db.`` classes for an engine version."""
        ...

    async def describe_instance_types(self, instance_types: list[str]) -> list[dict]:
        """Hardware attributes in ``DescribeInstanceTypes`` shape."""
        ...

    async def describe_topology(self, instance_id: str) -> ClusterMembership:
        """Cluster membership, roles and remote cluster count."""
        ...

    async def get_parameters(self, instance_id: str) -> dict[str, str]:
        """Effective engine parameter values, formulas unevaluated."""
        ...


class PriceSource(Protocol):
    async def get_price_quote(self, engine: str, instance_class: str | None) -> PriceQuote:
        """Prices for an engine; instance prices only for provisioned classes."""
        ...


async def guarded(collaborator: str, awaitable: Awaitable[T]) -> T:
    """
    Await a collaborator call.

    Raises:
        CollaboratorUnavailable: If the call fails with anything other than
            an analyzer error
    """
    try:
        return await awaitable
    except AuroraLensError:
        raise
    except Exception as e:
        logger.error(f"{collaborator} call failed: {e}")
        raise CollaboratorUnavailable(collaborator, str(e)) from e


async def fetch_batched(
    source: MetricsSource,
    resource_id: str,
    names: list[str],
    start: datetime,
    end: datetime,
    period_seconds: int,
    batch_size: int = 15,
) -> list[MetricSeries]:
    """
    Fetch many metrics in concurrent batches.

    The metrics API limits the number of names per query, so ``names`` is
    split into batches of ``batch_size`` that are fetched concurrently.
    The first failing batch aborts the whole fetch.

    Returns:
        All series, in the order of ``names``
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    batches = [names[i : i + batch_size] for i in range(0, len(names), batch_size)]
    logger.debug(f"Fetching {len(names)} metrics for {resource_id} in {len(batches)} batches")

    results = await asyncio.gather(
        *(
            guarded("metrics", source.get_series(resource_id, batch, start, end, period_seconds))
            for batch in batches
        )
    )
    return [series for batch in results for series in batch]


def period_seconds_for(range_seconds: float) -> int:
    """
    Coarsest-needed sample period keeping a window within 350 points.

    Example:
        >>> period_seconds_for(3600)
        60
        >>> period_seconds_for(7 * 24 * 3600)
        3600
    """
    for period in PERIODS:
        if range_seconds / period <= MAX_POINTS_PER_QUERY:
            return period
    return 86400


def date_ranges(
    start: datetime, end: datetime, interval_seconds: int = DATE_RANGE_SECONDS
) -> list[tuple[datetime, datetime]]:
    """Split a window into consecutive chunks; the last one ends at ``end``."""
    count = math.ceil((end - start).total_seconds() / interval_seconds)
    step = timedelta(seconds=interval_seconds)
    return [(start + i * step, min(start + (i + 1) * step, end)) for i in range(count)]


def align_samples(
    series: MetricSeries, start: datetime, end: datetime, period_seconds: int
) -> list[float | None]:
    """
    Place a chunk's samples on the fixed ``period_seconds`` grid of ``[start, end)``.

    Timestamped samples land in their slot and samples outside the chunk are
    dropped; untimed samples are taken in order. Empty slots are None, so
    every chunk yields exactly one value per period.

    Example:
        >>> t0 = datetime(2024, 5, 1)
        >>> s = MetricSeries("m", [1.0, 3.0], timestamps=[t0, t0 + timedelta(minutes=2)])
        >>> align_samples(s, t0, t0 + timedelta(minutes=3), 60)
        [1.0, None, 3.0]
    """
    slots = math.ceil((end - start).total_seconds() / period_seconds)
    if series.timestamps is None:
        values = list(series.values[:slots])
        return values + [None] * (slots - len(values))

    aligned: list[float | None] = [None] * slots
    for ts, value in zip(series.timestamps, series.values):
        slot = int((ts - start).total_seconds() // period_seconds)
        if 0 <= slot < slots:
            aligned[slot] = value
    return aligned
