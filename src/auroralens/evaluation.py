"""
Per-evaluation entry points.

Every evaluation gets its own ``EvaluationContext`` holding the instance,
the window, the collaborators and the configuration. Nothing is kept at
module level, so evaluations are independent of each other.

Example:
    ```python
    ctx = EvaluationContext(
        instance=profile,
        window=EvaluationWindow(start=start, end=end),
        metrics=pi_client,
        aggregated=cloudwatch_client,
        catalog=catalog_client,
        prices=price_client,
    )
    snapshot = asyncio.run(build_snapshot(ctx))
    costs = asyncio.run(estimate_costs(ctx))
    ```
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger
from pydantic import BaseModel, Field, model_validator

from auroralens.catalog import (
    MAX_CONNECTIONS_FORMULA,
    SERVERLESS_CLASS,
    InstanceHardware,
    build_candidates,
    db_instance_to_ec2,
    evaluate_parameter,
)
from auroralens.config import AnalyzerConfig
from auroralens.errors import NoWorkloadData
from auroralens.load import (
    DimensionKeys,
    SqlLoadReport,
    WaitEventsReport,
    analyze_sql_load,
    analyze_wait_events,
)
from auroralens.metrics import (
    STATIC_METRICS,
    ClassifiedMetrics,
    CorrelationReport,
    MetricClassifier,
    MetricSeries,
    detect_correlations,
    query_names,
    unique_points,
)
from auroralens.pricing import (
    InstanceUsage,
    StorageModeComparison,
    compare_storage_modes,
    storage_costs,
)
from auroralens.sources import (
    AggregatedMetricsSource,
    AggregatedQuery,
    AggregatedResult,
    CatalogSource,
    ClusterMembership,
    MetricsSource,
    PriceSource,
    align_samples,
    date_ranges,
    fetch_batched,
    guarded,
    period_seconds_for,
)
from auroralens.stats import kernel
from auroralens.utils import instance_context
from auroralens.workload import (
    NOTE_UNKNOWN_VCPUS,
    ClusterTopology,
    Indicator,
    NetworkEnvelope,
    NetworkLimits,
    ServerlessComparison,
    SizingRecommendation,
    ThroughputSummary,
    WorkloadEnvelope,
    compare_serverless,
    ebs_utilization,
    estimate_capacity_units,
    local_storage_throughput,
    network_limits,
    recommend,
    synthesize_network_throughput,
    workload_indicators,
)

ESTIMATE_WARNING = (
    "Please note that the numbers presented in this estimation are indicative and may not "
    "represent precise or exact figures. They are based on a probable assessment and intended "
    "to provide general recommendations. Actual values may vary depending on various factors."
)

# Per-minute inputs of the ACU estimator
ACU_INPUT_METRICS = ("os.cpuUtilization.total.max", "db.SQL.logical_reads.max", "os.diskIO.readIOsPS.sum")
SERVERLESS_USAGE_CHUNK_SECONDS = 12 * 60 * 60

SQL_ADDITIONAL_METRICS = [
    f"db.sql_tokenized.stats.{name}.avg"
    for name in (
        "calls_per_sec",
        "rows_per_sec",
        "total_time_per_sec",
        "shared_blks_hit_per_sec",
        "shared_blks_read_per_sec",
        "shared_blks_dirtied_per_sec",
        "shared_blks_written_per_sec",
        "temp_blks_written_per_sec",
        "temp_blks_read_per_sec",
        "blk_read_time_per_sec",
        "blk_write_time_per_sec",
        "rows_per_call",
        "avg_latency_per_call",
    )
]


class EvaluationWindow(BaseModel):
    """Time window being evaluated."""

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _check_order(self) -> "EvaluationWindow":
        if self.end <= self.start:
            raise ValueError(f"Window end {self.end} must be after start {self.start}")
        return self

    @property
    def seconds(self) -> float:
        return (self.end - self.start).total_seconds()

    @property
    def period_seconds(self) -> int:
        return period_seconds_for(self.seconds)


class InstanceProfile(BaseModel):
    """Identity and shape of the evaluated instance."""

    identifier: str
    resource_id: str = Field(..., description="Performance metrics resource id (db-...)")
    instance_class: str
    engine: str = "aurora-postgresql"
    engine_version: str = ""
    cluster_id: str
    storage_type: str = "aurora"
    hardware: InstanceHardware | None = Field(None, description="None for serverless instances")

    @property
    def is_serverless(self) -> bool:
        return self.instance_class == SERVERLESS_CLASS

    @property
    def vcpus(self) -> int:
        return self.hardware.vcpus if self.hardware else 0

    @property
    def memory_mib(self) -> float:
        return self.hardware.memory_mib if self.hardware else 0.0


@dataclass
class EvaluationContext:
    instance: InstanceProfile
    window: EvaluationWindow
    metrics: MetricsSource
    aggregated: AggregatedMetricsSource
    catalog: CatalogSource
    prices: PriceSource
    config: AnalyzerConfig = field(default_factory=AnalyzerConfig)


@dataclass
class WorkloadSnapshot:
    """Everything derived for one instance over one window."""

    instance: InstanceProfile
    window: EvaluationWindow
    period_seconds: int
    metrics: ClassifiedMetrics
    static_metrics: dict[str, list[float]]
    correlations: CorrelationReport
    network: NetworkEnvelope
    network_limits: NetworkLimits
    local_storage: ThroughputSummary
    indicators: dict[str, Indicator]
    envelope: WorkloadEnvelope
    sizing: SizingRecommendation | None
    waits: WaitEventsReport
    sql: SqlLoadReport


@dataclass
class CostEstimate:
    """
    Serverless and storage-mode cost comparison.

    ``serverless`` is None for serverless instances, which instead list the
    classes they could be provisioned as.
    """

    storage: StorageModeComparison
    serverless: ServerlessComparison | None = None
    available_classes: list[str] = field(default_factory=list)
    warning: str = ESTIMATE_WARNING


def _instance_queries(instance_id: str, cluster_id: str) -> list[AggregatedQuery]:
    instance = [
        ("dbLoad", "DBLoad", "Average"),
        ("writeThroughput", "WriteThroughput", "Average"),
        ("networkThroughput", "NetworkThroughput", "Average"),
        ("storageNetworkThroughput", "StorageNetworkThroughput", "Average"),
        ("auroraEstimatedSharedMemoryBytes", "AuroraEstimatedSharedMemoryBytes", "Average"),
        ("bufferCacheHitRatio", "BufferCacheHitRatio", "Average"),
        ("engineUptime", "EngineUptime", "Maximum"),
        ("transactionLogsDiskUsage", "TransactionLogsDiskUsage", "Maximum"),
        ("replicationSlotDiskUsage", "ReplicationSlotDiskUsage", "Maximum"),
        ("snapshotStorageUsed", "SnapshotStorageUsed", "Maximum"),
    ]
    queries = [
        AggregatedQuery(
            id=qid, metric_name=name, dimension_name="DBInstanceIdentifier", dimension_value=instance_id, stat=stat
        )
        for qid, name, stat in instance
    ]
    queries.append(
        AggregatedQuery(
            id="volumeBytesUsed",
            metric_name="VolumeBytesUsed",
            dimension_name="DBClusterIdentifier",
            dimension_value=cluster_id,
        )
    )
    return queries


def _result(results: dict[str, AggregatedResult], query_id: str) -> AggregatedResult:
    return results.get(query_id) or AggregatedResult(id=query_id)


def _topology(instance_id: str, membership: ClusterMembership) -> ClusterTopology:
    writer = membership.writer
    return ClusterTopology(
        is_writer=writer is not None and writer.instance_id == instance_id,
        writer_instance_id=writer.instance_id if writer else instance_id,
        other_instances=max(len(membership.members) - 1, 0),
        remote_clusters=membership.remote_clusters,
    )


def _instance_vcpus(instance: InstanceProfile, static_metrics: dict[str, list[float]]) -> int | None:
    """vCPUs from the hardware catalog, else from OS telemetry (serverless)."""
    if instance.hardware:
        return instance.hardware.vcpus
    points = static_metrics.get("vCPUs") or []
    return int(max(points)) if points else None


def _memory_mib(instance: InstanceProfile, static_metrics: dict[str, list[float]]) -> float:
    if instance.hardware:
        return instance.hardware.memory_mib
    # os.memory.total is reported in KB
    points = static_metrics.get("memory") or []
    return max(points) / 1024 if points else 0.0


def _throughput(values: list, two_sigma: float | None = None) -> ThroughputSummary:
    return ThroughputSummary(
        max=kernel.maximum(values) or 0.0,
        avg=kernel.average(values) or 0.0,
        two_sigma=two_sigma if two_sigma is not None else kernel.two_sigma_bound(values),
    )


def _disk_rate(classifier: MetricClassifier, metrics: ClassifiedMetrics, metric: str) -> ThroughputSummary:
    summary = metrics.find(metric)
    if summary is None:
        logger.warning(f"{metric} not available, local storage throughput assumed idle")
        return ThroughputSummary(max=0.0, avg=0.0, two_sigma=0.0)
    return ThroughputSummary(
        max=summary.max or 0.0,
        avg=summary.avg or 0.0,
        two_sigma=classifier.two_sigma_bound(metric),
    )


async def _sql_breakdown(ctx: EvaluationContext, period: int) -> list[DimensionKeys]:
    metrics, resource = ctx.metrics, ctx.instance.resource_id
    start, end = ctx.window.start, ctx.window.end
    group = {"Group": "db.sql_tokenized", "Limit": 25}
    partitions = [
        {"Group": "db", "Dimensions": ["db.name"], "Limit": 25},
        {"Group": "db.user", "Dimensions": ["db.user.name"], "Limit": 25},
        {"Group": "db.wait_event", "Dimensions": ["db.wait_event.name"], "Limit": 25},
    ]
    calls = [
        metrics.describe_dimension_keys(
            resource, "db.load.avg", start, end, period, group, additional_metrics=SQL_ADDITIONAL_METRICS
        )
    ]
    calls += [
        metrics.describe_dimension_keys(resource, "db.load.avg", start, end, period, group, partition_by=p)
        for p in partitions
    ]
    return list(await asyncio.gather(*(guarded("metrics", c) for c in calls)))


async def _candidates(ctx: EvaluationContext):
    instance = ctx.instance
    classes = await guarded(
        "catalog", ctx.catalog.list_instance_classes(instance.engine, instance.engine_version)
    )
    classes = [c for c in classes if c != SERVERLESS_CLASS]
    instance_types, quotes = await asyncio.gather(
        guarded("catalog", ctx.catalog.describe_instance_types([db_instance_to_ec2(c) for c in classes])),
        asyncio.gather(*(guarded("prices", ctx.prices.get_price_quote(instance.engine, c)) for c in classes)),
    )
    prices = {c: q.on_demand_hourly for c, q in zip(classes, quotes)}
    return build_candidates(instance_types, prices), prices.get(instance.instance_class)


async def build_snapshot(ctx: EvaluationContext) -> WorkloadSnapshot:
    """
    Characterize the workload of one instance and recommend a class.

    Raises:
        CollaboratorUnavailable: If any collaborator call fails
        NoWorkloadData: If the window has no database load
        MalformedCatalogEntry: If catalog or price data is incomplete
    """
    with instance_context(ctx.instance.identifier):
        return await _snapshot(ctx)


async def _snapshot(ctx: EvaluationContext) -> WorkloadSnapshot:
    instance, window, config = ctx.instance, ctx.window, ctx.config
    period = window.period_seconds
    start, end = window.start, window.end
    logger.info(f"Building snapshot for {instance.identifier} ({window.seconds:.0f}s, period {period}s)")

    metadata, membership, aggregated, parameters, wait_series, static_series, sql_keys = await asyncio.gather(
        guarded("metrics", ctx.metrics.list_available_metrics(instance.resource_id, ["os", "db"])),
        guarded("catalog", ctx.catalog.describe_topology(instance.identifier)),
        guarded(
            "aggregated metrics",
            ctx.aggregated.get_aggregated_series(
                _instance_queries(instance.identifier, instance.cluster_id), start, end, period
            ),
        ),
        guarded("catalog", ctx.catalog.get_parameters(instance.identifier)),
        guarded(
            "metrics",
            ctx.metrics.get_series(
                instance.resource_id, ["db.load.avg"], start, end, period, group_by={"Group": "db.wait_event"}
            ),
        ),
        guarded(
            "metrics",
            ctx.metrics.get_series(instance.resource_id, list(STATIC_METRICS.values()), start, end, period),
        ),
        _sql_breakdown(ctx, period),
    )

    if not _result(aggregated, "dbLoad").values:
        raise NoWorkloadData(f"No DBLoad samples for {instance.identifier} in the evaluation window")

    topology = _topology(instance.identifier, membership)
    writer_series = None
    if not topology.is_writer:
        writer_query = AggregatedQuery(
            id="writeThroughput",
            metric_name="WriteThroughput",
            dimension_name="DBInstanceIdentifier",
            dimension_value=topology.writer_instance_id,
        )
        writer_results = await guarded(
            "aggregated metrics", ctx.aggregated.get_aggregated_series([writer_query], start, end, period)
        )
        writer_series = _result(writer_results, "writeThroughput").values

    series = await fetch_batched(
        ctx.metrics, instance.resource_id, query_names(metadata), start, end, period, config.metric_batch_size
    )

    # Metric summaries and correlations
    classifier = MetricClassifier(metadata, series)
    classified = classifier.classify()
    correlations = detect_correlations(classifier.correlation_inputs(), config.metrics_correlation_threshold)
    static_by_metric = {s.metric: s.values for s in static_series}
    static_metrics = {
        name: unique_points(static_by_metric.get(metric, [])) for name, metric in STATIC_METRICS.items()
    }

    # Network and local storage envelope
    network = synthesize_network_throughput(
        topology,
        _result(aggregated, "writeThroughput").values,
        _result(aggregated, "networkThroughput").values,
        _result(aggregated, "storageNetworkThroughput").values,
        writer_series,
    )
    hardware = instance.hardware
    limits = network_limits(
        hardware.network_max_mbps if hardware else 0.0,
        hardware.network_baseline_mbps if hardware else 0.0,
        network.max_bytes,
    )
    local_storage = local_storage_throughput(
        _disk_rate(classifier, classified, "os.diskIO.rdstemp.writeKbPS"),
        _disk_rate(classifier, classified, "os.diskIO.rdstemp.readKbPS"),
    )
    ebs = ebs_utilization(
        local_storage.max,
        hardware.ebs_max_mbps if hardware else 0.0,
        hardware.ebs_baseline_mbps if hardware else 0.0,
    )

    shared_memory = _throughput(_result(aggregated, "auroraEstimatedSharedMemoryBytes").values)
    hit_ratio = _result(aggregated, "bufferCacheHitRatio").summary
    memory_mib = _memory_mib(instance, static_metrics)
    total_memory_gb = round(memory_mib / 1024)
    vcpus = _instance_vcpus(instance, static_metrics)

    max_connections = evaluate_parameter(parameters.get("max_connections"), memory_mib)
    if max_connections is None:
        max_connections = evaluate_parameter(MAX_CONNECTIONS_FORMULA, memory_mib)

    indicators = workload_indicators(
        classified,
        network=network,
        limits=limits,
        local_storage=local_storage,
        ebs=ebs,
        shared_memory_bytes=shared_memory,
        max_connections=max_connections,
        db_load=_result(aggregated, "dbLoad").summary,
        buffer_cache_hit_ratio=hit_ratio,
        engine_uptime_seconds=_result(aggregated, "engineUptime").summary,
        volume_bytes_used=_result(aggregated, "volumeBytesUsed").summary,
        transaction_logs_bytes=_result(aggregated, "transactionLogsDiskUsage").summary,
        replication_slots_bytes=_result(aggregated, "replicationSlotDiskUsage").summary,
        snapshot_storage_bytes=_result(aggregated, "snapshotStorageUsed").summary,
    )

    envelope = WorkloadEnvelope.from_metrics(
        classified,
        vcpus=vcpus or 0,
        network=network,
        local_storage=local_storage,
        shared_memory_bytes=shared_memory,
        total_memory_gb=total_memory_gb,
        buffer_cache_hit_ratio=hit_ratio,
        cpu_two_sigma=classifier.two_sigma_bound("os.cpuUtilization.total"),
        use_two_sigma=config.use_two_sigma_values,
    )

    sizing = None
    if window.seconds < config.sizing_min_window_seconds:
        logger.info(f"Window shorter than {config.sizing_min_window_seconds}s, sizing skipped")
    elif vcpus is None:
        logger.warning(f"No vCPU count for {instance.identifier}, sizing skipped")
        sizing = SizingRecommendation(
            found=False,
            note=NOTE_UNKNOWN_VCPUS,
            reserve_pct=config.resource_reserve_pct,
            basis=envelope.basis,
            snapshot_stats=envelope.stats(),
        )
    else:
        candidates, current_price = await _candidates(ctx)
        capacity = {
            "vcpus": vcpus,
            "network_limit_MBps": hardware.network_limit_MBps if hardware else 0.0,
            "local_storage_GB": total_memory_gb * 2,
            "max_connections": max_connections,
            "memory_GB": total_memory_gb,
            "local_storage_throughput_limit_MBps": hardware.ebs_throughput_MBps if hardware else 0.0,
        }
        sizing = recommend(
            envelope,
            candidates,
            instance.instance_class,
            current_price,
            reserve_pct=config.resource_reserve_pct,
            top=config.top_candidates,
            instance_capacity=capacity,
            cache_hit_threshold_pct=config.cache_hit_ratio_threshold_pct,
            swap_pressure_pct=config.swap_pressure_pct,
        )

    # Load by wait event and by SQL
    total_load = next((s.values for s in wait_series if not s.dimensions), [])
    events = [s for s in wait_series if s.dimensions]
    waits = analyze_wait_events(total_load, events, period)
    top_sql, by_db, by_user, by_wait = sql_keys
    sql = analyze_sql_load(top_sql, by_db, by_user, by_wait, waits.average_active_sessions)

    return WorkloadSnapshot(
        instance=instance,
        window=window,
        period_seconds=period,
        metrics=classified,
        static_metrics=static_metrics,
        correlations=correlations,
        network=network,
        network_limits=limits,
        local_storage=local_storage,
        indicators=indicators,
        envelope=envelope,
        sizing=sizing,
        waits=waits,
        sql=sql,
    )


async def _per_minute_series(ctx: EvaluationContext) -> dict[str, list]:
    """Per-minute ACU inputs over the window, fetched in 5-hour chunks and aligned per minute."""
    ranges = date_ranges(ctx.window.start, ctx.window.end)
    chunks = await asyncio.gather(
        *(
            guarded(
                "metrics",
                ctx.metrics.get_series(ctx.instance.resource_id, list(ACU_INPUT_METRICS), start, end, 60),
            )
            for start, end in ranges
        )
    )
    merged: dict[str, list] = {name: [] for name in ACU_INPUT_METRICS}
    for (start, end), chunk in zip(ranges, chunks):
        by_metric = {s.metric: s for s in chunk if s.metric in merged}
        for name, values in merged.items():
            series = by_metric.get(name, MetricSeries(name))
            values.extend(align_samples(series, start, end, 60))
    return merged


async def _serverless_usage(ctx: EvaluationContext, instance_id: str) -> list:
    """Observed per-minute ACUs of a serverless member."""
    query = AggregatedQuery(
        id="serverlessDatabaseCapacity",
        metric_name="ServerlessDatabaseCapacity",
        dimension_name="DBInstanceIdentifier",
        dimension_value=instance_id,
        stat="Maximum",
    )
    chunks = await asyncio.gather(
        *(
            guarded("aggregated metrics", ctx.aggregated.get_aggregated_series([query], start, end, 60))
            for start, end in date_ranges(ctx.window.start, ctx.window.end, SERVERLESS_USAGE_CHUNK_SECONDS)
        )
    )
    return [v for chunk in chunks for v in _result(chunk, query.id).values]


async def _member_usage(ctx: EvaluationContext, member) -> InstanceUsage:
    quote_call = guarded("prices", ctx.prices.get_price_quote(ctx.instance.engine, member.instance_class))
    if member.instance_class == SERVERLESS_CLASS:
        quote, usage = await asyncio.gather(quote_call, _serverless_usage(ctx, member.instance_id))
        return InstanceUsage(instance_id=member.instance_id, quote=quote, acu_series=usage)
    return InstanceUsage(instance_id=member.instance_id, quote=await quote_call)


async def _storage_comparison(ctx: EvaluationContext) -> StorageModeComparison:
    instance, window = ctx.instance, ctx.window
    period = window.period_seconds
    volume_queries = [
        AggregatedQuery("volumeBytesUsed", "VolumeBytesUsed", "DBClusterIdentifier", instance.cluster_id, "Average"),
        AggregatedQuery("volumeWriteIOPs", "VolumeWriteIOPs", "DBClusterIdentifier", instance.cluster_id, "Sum"),
        AggregatedQuery("volumeReadIOPs", "VolumeReadIOPs", "DBClusterIdentifier", instance.cluster_id, "Sum"),
    ]
    membership, volume, quote = await asyncio.gather(
        guarded("catalog", ctx.catalog.describe_topology(instance.identifier)),
        guarded(
            "aggregated metrics",
            ctx.aggregated.get_aggregated_series(volume_queries, window.start, window.end, period),
        ),
        guarded("prices", ctx.prices.get_price_quote(instance.engine, None)),
    )
    usages = await asyncio.gather(*(_member_usage(ctx, m) for m in membership.members))

    storage = storage_costs(
        _result(volume, "volumeBytesUsed").summary or 0.0,
        _result(volume, "volumeWriteIOPs").summary or 0.0,
        _result(volume, "volumeReadIOPs").summary or 0.0,
        quote,
        window.seconds,
    )
    return compare_storage_modes(membership.storage_type, list(usages), storage, window.seconds)


async def estimate_costs(ctx: EvaluationContext) -> CostEstimate:
    """
    Estimate serverless and storage-mode costs for one instance.

    Provisioned instances get an ACU estimate and its cost relative to
    every provisioned pricing tier; serverless instances get the list of
    provisioned classes instead. Both get the cluster-wide standard vs
    I/O-Optimized comparison.

    Raises:
        CollaboratorUnavailable: If any collaborator call fails
        NoWorkloadData: If there are no per-minute samples
        MalformedCatalogEntry: If price data is incomplete
    """
    with instance_context(ctx.instance.identifier):
        return await _costs(ctx)


async def _costs(ctx: EvaluationContext) -> CostEstimate:
    instance, config = ctx.instance, ctx.config
    logger.info(f"Estimating costs for {instance.identifier} ({instance.instance_class})")

    if instance.is_serverless:
        classes, storage = await asyncio.gather(
            guarded("catalog", ctx.catalog.list_instance_classes(instance.engine, instance.engine_version)),
            _storage_comparison(ctx),
        )
        return CostEstimate(storage=storage, available_classes=classes)

    inputs, quote, storage = await asyncio.gather(
        _per_minute_series(ctx),
        guarded("prices", ctx.prices.get_price_quote(instance.engine, instance.instance_class)),
        _storage_comparison(ctx),
    )
    cpu_pct, logical_reads, read_iops = (inputs[name] for name in ACU_INPUT_METRICS)
    vcpus_used = [None if v is None else instance.vcpus * v / 100 for v in cpu_pct]

    estimate = estimate_capacity_units(vcpus_used, logical_reads, read_iops, config)
    serverless = compare_serverless(estimate, quote, config.io_optimized_reserved_multiplier)
    return CostEstimate(storage=storage, serverless=serverless)


__all__ = [
    "CostEstimate",
    "EvaluationContext",
    "EvaluationWindow",
    "InstanceProfile",
    "WorkloadSnapshot",
    "build_snapshot",
    "estimate_costs",
]
