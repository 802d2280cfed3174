"""Derived workload indicators reported alongside the metric summaries."""

from dataclasses import asdict, dataclass

from auroralens.metrics.classifier import ClassifiedMetrics

from .network import EbsUtilization, NetworkEnvelope, NetworkLimits, ThroughputSummary


@dataclass(frozen=True)
class Indicator:
    value: float | None
    unit: str
    label: str
    desc: str = ""


def _ratio(numerator: float | None, denominator: float | None, scale: float = 1.0) -> float | None:
    if numerator is None or not denominator:
        return None
    return numerator / denominator * scale


def _rounded(value: float | None, digits: int = 2) -> float | None:
    return None if value is None else round(value, digits)


def _stat(metrics: ClassifiedMetrics, metric: str, stat: str) -> float | None:
    summary = metrics.find(metric)
    return None if summary is None else getattr(summary, stat)


def _transaction_logs_kb(value: float | None) -> float | None:
    if value is None:
        return None
    return -1 if value < 0 else round(value / 1024)


def workload_indicators(
    metrics: ClassifiedMetrics,
    *,
    network: NetworkEnvelope,
    limits: NetworkLimits,
    local_storage: ThroughputSummary,
    ebs: EbsUtilization,
    shared_memory_bytes: ThroughputSummary,
    max_connections: float | None,
    db_load: float | None = None,
    buffer_cache_hit_ratio: float | None = None,
    engine_uptime_seconds: float | None = None,
    volume_bytes_used: float | None = None,
    transaction_logs_bytes: float | None = None,
    replication_slots_bytes: float | None = None,
    snapshot_storage_bytes: float | None = None,
) -> dict[str, Indicator]:
    """
    Compute ratio-style indicators for the snapshot.

    Indicators whose inputs are missing (or whose denominator is zero)
    carry a ``None`` value; burst-only indicators are omitted for
    non-burstable instances. Transaction log usage is reported as -1 when
    the engine does not keep transaction logs, and snapshot storage as 0
    when there are no manual snapshots.
    """
    backends_avg = _stat(metrics, "db.User.numbackends", "avg")
    backends_max = _stat(metrics, "db.User.numbackends", "max")
    dml = [_stat(metrics, f"db.SQL.tup_{op}", "sum") for op in ("inserted", "deleted", "updated")]
    dml_total = None if None in dml else sum(dml)
    network_MBps = network.in_MBps()

    indicators = {
        "bufferCacheHitRatio": Indicator(buffer_cache_hit_ratio, "Percent", "Buffer cache hit ratio"),
        "AuroraEstimatedSharedMemoryUsedAvgMB": Indicator(
            _rounded(shared_memory_bytes.avg / 1024 / 1024),
            "MB",
            "Average estimated buffer pool memory used",
        ),
        "AuroraEstimatedSharedMemoryUsedMaxMB": Indicator(
            _rounded(shared_memory_bytes.max / 1024 / 1024),
            "MB",
            "Max estimated buffer pool memory used",
        ),
        "BlocksReadToLogicalReads": Indicator(
            _rounded(
                _ratio(
                    _stat(metrics, "db.IO.blks_read", "sum"),
                    _stat(metrics, "db.SQL.logical_reads", "sum"),
                    100,
                )
            ),
            "Percent",
            "Pct disk reads",
            "The percentage of disk reads that come from logical reads (all reads).",
        ),
        "TupReturnedToFetched": Indicator(
            _rounded(
                _ratio(_stat(metrics, "db.SQL.tup_returned", "sum"), _stat(metrics, "db.SQL.tup_fetched", "sum")),
                0,
            ),
            "Ratio",
            "Tuples returned to fetched",
        ),
        "estimatedNetworkTrafficMax": Indicator(
            _rounded(network_MBps.max), "MB/s", "Estimated network throughput max"
        ),
        "estimatedNetworkTrafficAvg": Indicator(
            _rounded(network_MBps.avg), "MB/s", "Estimated network throughput average"
        ),
        "actualTrafficPercentage": Indicator(
            _rounded(limits.traffic_to_max_pct), "Percent", "Pct network traffic to max limit"
        ),
        "LocalStorageThroughputMax": Indicator(
            _rounded(local_storage.max), "MB/s", "Max local storage throughput"
        ),
        "LocalStorageThroughputAvg": Indicator(
            _rounded(local_storage.avg), "MB/s", "Avg local storage throughput"
        ),
        "throughputToLocalStorageMaxToMaxEBSThroughput": Indicator(
            ebs.pct_to_max, "Percent", "Pct max local storage throughput to max EBS throughput"
        ),
        "AAStoBackends": Indicator(
            _rounded(_ratio(db_load, backends_avg, 100)), "Percent", "Pct active sessions to connections"
        ),
        "numBackendsToMax": Indicator(
            _rounded(_ratio(backends_max, max_connections, 100)),
            "Percent",
            "Pct max backends to max_connections",
        ),
        "numFetchedToDML": Indicator(
            _rounded(_ratio(_stat(metrics, "db.SQL.tup_fetched", "sum"), dml_total), 0),
            "Ratio",
            "Tuples fetched to DMLs",
        ),
        "engineUpTime": Indicator(engine_uptime_seconds, "Seconds", "Instance uptime"),
        "volumeBytesUsedGB": Indicator(
            None if volume_bytes_used is None else round(volume_bytes_used / 1024**3),
            "GB",
            "Amount of used storage volume",
        ),
        "transactionLogsDiskUsageKB": Indicator(
            _transaction_logs_kb(transaction_logs_bytes),
            "KB",
            "Storage used by WALs",
            "Only generated with logical replication or AWS DMS; -1 when transaction logs are not in use.",
        ),
        "replicationSlotDiskUsageKB": Indicator(
            None if replication_slots_bytes is None else round(replication_slots_bytes / 1024, 2),
            "KB",
            "Storage used by replication slots",
            "Disk space consumed by replication slot files.",
        ),
        "SnapshotStorageUsedKB": Indicator(
            (snapshot_storage_bytes or 0.0) / 1024,
            "KB",
            "Storage used by manual snapshots",
            "Disk space consumed by manual snapshots beyond the free allowance.",
        ),
    }

    if limits.burstable and limits.traffic_to_baseline_pct:
        indicators["actualTrafficToBaselinePct"] = Indicator(
            _rounded(limits.traffic_to_baseline_pct), "Percent", "Pct network traffic to estimated baseline"
        )
    if ebs.pct_to_baseline is not None:
        indicators["throughputToLocalStorageMaxToBaselineEBSThroughput"] = Indicator(
            ebs.pct_to_baseline, "Percent", "Pct max local storage throughput to baseline EBS throughput"
        )
    return indicators


def as_dict(indicators: dict[str, Indicator]) -> dict[str, dict]:
    return {name: asdict(indicator) for name, indicator in indicators.items()}
