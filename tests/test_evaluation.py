"""Tests for the per-evaluation entry points, with in-memory collaborators."""

import asyncio
from datetime import timedelta

import pytest
from loguru import logger
from pydantic import ValidationError

from auroralens.catalog import InstanceHardware
from auroralens.config import AnalyzerConfig
from auroralens.errors import CollaboratorUnavailable, NoWorkloadData
from auroralens.evaluation import (
    CostEstimate,
    EvaluationContext,
    EvaluationWindow,
    InstanceProfile,
    WorkloadSnapshot,
    build_snapshot,
    estimate_costs,
)
from auroralens.load import DimensionKey, DimensionKeys
from auroralens.metrics import MetricMetadata, MetricSeries
from auroralens.pricing import PriceQuote
from auroralens.sources import AggregatedResult, ClusterMember, ClusterMembership
from auroralens.workload.sizing import NOTE_APPROPRIATE, NOTE_RECOMMENDED, NOTE_UNKNOWN_VCPUS

MB = 1024 * 1024
GIB = 1024**3

METRIC_VALUES = {
    "os.cpuUtilization.total.avg": 25.0,
    "os.cpuUtilization.total.max": 50.0,
    "os.cpuUtilization.total.min": 10.0,
    "os.fileSys.used.avg": 10.0 * MB,
    "os.fileSys.used.max": 10.0 * MB,
    "os.fileSys.used.min": 10.0 * MB,
    "db.User.numbackends.avg": 100.0,
    "db.User.numbackends.max": 100.0,
    "db.User.numbackends.min": 100.0,
    "os.memory.db.swap.avg": 0.0,
    "os.memory.db.swap.max": 0.0,
    "os.memory.db.swap.min": 0.0,
    "os.diskIO.rdstemp.writeKbPS.avg": 1024.0,
    "os.diskIO.rdstemp.writeKbPS.max": 1024.0,
    "os.diskIO.rdstemp.writeKbPS.min": 1024.0,
    "os.diskIO.rdstemp.readKbPS.avg": 1024.0,
    "os.diskIO.rdstemp.readKbPS.max": 1024.0,
    "os.diskIO.rdstemp.readKbPS.min": 1024.0,
    "db.SQL.logical_reads.sum": 1000.0,
    "db.SQL.logical_reads.max": 1000.0,
    "os.diskIO.readIOsPS.sum": 10.0,
    "os.general.numVCPUs.max": 4.0,
    "os.memory.total.max": 32.0 * MB,
    "os.swap.total.max": 0.0,
}

AGGREGATED_VALUES = {
    "DBLoad": (2.0, 2.0),
    "WriteThroughput": (1.0 * MB, 1.0 * MB),
    "NetworkThroughput": (2.0 * MB, 2.0 * MB),
    "StorageNetworkThroughput": (3.0 * MB, 3.0 * MB),
    "AuroraEstimatedSharedMemoryBytes": (4.0 * GIB, 4.0 * GIB),
    "BufferCacheHitRatio": (99.5, 99.5),
    "EngineUptime": (86400.0, 86400.0),
    "VolumeBytesUsed": (10.0 * GIB, 10.0 * GIB),
    "VolumeWriteIOPs": (1000.0, 1_000_000.0),
    "VolumeReadIOPs": (1000.0, 1_000_000.0),
    "ServerlessDatabaseCapacity": (2.0, 2.0),
    "TransactionLogsDiskUsage": (-1.0, -1.0),
    "ReplicationSlotDiskUsage": (0.0, 0.0),
    "SnapshotStorageUsed": (0.0, 0.0),
}

HOURLY_PRICES = {"db.r6g.large": 0.26, "db.r6g.xlarge": 0.52, "db.r6g.2xlarge": 1.04}


def samples(start, end, period_seconds) -> int:
    return int((end - start).total_seconds() // period_seconds)


class FakeMetrics:
    def __init__(self, fail: bool = False, missing: tuple = ()):
        self.fail = fail
        self.missing = missing

    async def get_series(
        self, resource_id, metric_names, start, end, period_seconds, group_by=None, partition_by=None, filter=None
    ):
        n = samples(start, end, period_seconds)
        if group_by and group_by.get("Group") == "db.wait_event":
            return [
                MetricSeries("db.load.avg", [2.0] * n),
                MetricSeries(
                    "db.load.avg", [1.5] * n, {"db.wait_event.name": "CPU", "db.wait_event.type": "CPU"}
                ),
                MetricSeries(
                    "db.load.avg",
                    [0.5] * n,
                    {"db.wait_event.name": "IO:DataFileRead", "db.wait_event.type": "IO"},
                ),
            ]
        return [
            MetricSeries(name, [] if name in self.missing else [METRIC_VALUES.get(name, 1.0)] * n)
            for name in metric_names
        ]

    async def list_available_metrics(self, resource_id, types):
        if self.fail:
            raise ConnectionError("performance insights throttled")
        return [
            MetricMetadata("os.cpuUtilization.total", "Total CPU", "Percent"),
            MetricMetadata("os.fileSys.used", "Used file system", "KB"),
            MetricMetadata("db.User.numbackends", "Backends", "Connections"),
            MetricMetadata("os.memory.db.swap", "Swap", "KB"),
            MetricMetadata("os.diskIO.rdstemp.writeKbPS", "Local write", "KB/s"),
            MetricMetadata("os.diskIO.rdstemp.readKbPS", "Local read", "KB/s"),
            MetricMetadata("db.SQL.logical_reads", "Logical reads", "Blocks", ("sum",)),
            MetricMetadata("os.memory.total", "Total memory", "KB"),
        ]

    async def describe_dimension_keys(
        self, resource_id, metric, start, end, period_seconds, group_by, partition_by=None, additional_metrics=None
    ):
        dimensions = {
            "db.sql_tokenized.id": "S1",
            "db.sql_tokenized.db_id": "pi-S1",
            "db.sql_tokenized.statement": "SELECT * FROM orders WHERE id = ?",
        }
        if partition_by is None:
            extra = {name: 1.0 for name in additional_metrics or []}
            return DimensionKeys(keys=[DimensionKey(dimensions, 1.5, additional_metrics=extra)])
        dimension = partition_by["Dimensions"][0]
        return DimensionKeys(
            keys=[DimensionKey(dimensions, 1.5, partitions=[1.5])], partition_keys=[{dimension: "p1"}]
        )


class RaggedMetrics(FakeMetrics):
    """Timestamped per-minute samples, with one CPU sample missing from the chunk starting at ``gap_at``."""

    def __init__(self, gap_at):
        super().__init__()
        self.gap_at = gap_at

    async def get_series(self, resource_id, metric_names, start, end, period_seconds, **kwargs):
        series = await super().get_series(resource_id, metric_names, start, end, period_seconds, **kwargs)
        for s in series:
            s.timestamps = [start + timedelta(seconds=i * period_seconds) for i in range(len(s.values))]
            if start == self.gap_at and s.metric == "os.cpuUtilization.total.max":
                del s.values[10], s.timestamps[10]
        return series


class FakeAggregated:
    def __init__(self, empty_load: bool = False):
        self.empty_load = empty_load
        self.queries = []

    async def get_aggregated_series(self, queries, start, end, period_seconds):
        self.queries.extend(queries)
        n = samples(start, end, period_seconds)
        results = {}
        for q in queries:
            value, summary = AGGREGATED_VALUES[q.metric_name]
            if self.empty_load and q.metric_name == "DBLoad":
                results[q.id] = AggregatedResult(q.id)
            else:
                results[q.id] = AggregatedResult(q.id, [value] * n, summary)
        return results


class FakeCatalog:
    def __init__(self, entries: dict, members: list[ClusterMember]):
        self.entries = entries
        self.members = members
        self.requested_types = []

    async def list_instance_classes(self, engine, engine_version):
        return ["db.r6g.large", "db.r6g.xlarge", "db.r6g.2xlarge", "db.serverless"]

    async def describe_instance_types(self, instance_types):
        self.requested_types.extend(instance_types)
        return [self.entries[t] for t in instance_types]

    async def describe_topology(self, instance_id):
        return ClusterMembership(cluster_id="c1", storage_type="aurora", members=self.members)

    async def get_parameters(self, instance_id):
        return {"max_connections": "LEAST({DBInstanceClassMemory/9531392},5000)"}


class FakePrices:
    def __init__(self, reserved: dict):
        self.reserved = reserved

    async def get_price_quote(self, engine, instance_class):
        quote = {
            "per_acu_hour": 0.12,
            "per_acu_hour_io_optimized": 0.156,
            "per_gb_month": 0.10,
            "per_gb_month_io_optimized": 0.225,
            "per_million_io": 0.20,
        }
        if instance_class in HOURLY_PRICES:
            hourly = HOURLY_PRICES[instance_class]
            quote.update(on_demand_hourly=hourly, on_demand_hourly_io_optimized=hourly * 1.3, reserved=self.reserved)
        return PriceQuote(**quote)


@pytest.fixture
def entries(instance_type_entry):
    return {
        "r6g.large": instance_type_entry("r6g.large", 2, 16384, 10.0, 0.75, 4750, 630),
        "r6g.xlarge": instance_type_entry("r6g.xlarge", 4, 32768, 10.0, 1.25, 4750, 1187),
        "r6g.2xlarge": instance_type_entry("r6g.2xlarge", 8, 65536, 10.0, 2.5, 4750, 2375),
    }


@pytest.fixture
def window(window_bounds):
    start, end = window_bounds
    return EvaluationWindow(start=start, end=end)


def make_profile(entries, identifier="db-writer", instance_class="db.r6g.xlarge"):
    hardware = None
    if instance_class != "db.serverless":
        hardware = InstanceHardware.from_instance_type(entries[instance_class[3:]])
    return InstanceProfile(
        identifier=identifier,
        resource_id=f"db-{identifier.upper()}",
        instance_class=instance_class,
        engine_version="15.4",
        cluster_id="c1",
        hardware=hardware,
    )


@pytest.fixture
def make_context(entries, window, reserved_prices):
    def make(
        identifier="db-writer",
        instance_class="db.r6g.xlarge",
        members=None,
        metrics=None,
        aggregated=None,
        window=window,
        config=None,
    ):
        members = members or [
            ClusterMember("db-writer", "db.r6g.xlarge", True),
            ClusterMember("db-reader", "db.r6g.xlarge", False),
        ]
        return EvaluationContext(
            instance=make_profile(entries, identifier, instance_class),
            window=window,
            metrics=metrics or FakeMetrics(),
            aggregated=aggregated or FakeAggregated(),
            catalog=FakeCatalog(entries, members),
            prices=FakePrices(reserved_prices),
            config=config or AnalyzerConfig(),
        )

    return make


class TestEvaluationWindow:
    """Test window validation."""

    def test_seconds_and_period(self, window):
        """Should derive the window length and sample period."""
        assert window.seconds == 3600
        assert window.period_seconds == 60

    def test_end_before_start(self, window_bounds):
        """Should refuse an empty or inverted window."""
        start, _ = window_bounds

        with pytest.raises(ValidationError):
            EvaluationWindow(start=start, end=start)


class TestInstanceProfile:
    """Test instance shape helpers."""

    def test_provisioned(self, entries):
        """Should expose hardware figures."""
        profile = make_profile(entries)

        assert not profile.is_serverless
        assert profile.vcpus == 4
        assert profile.memory_mib == 32768

    def test_serverless(self, entries):
        """Should report no fixed shape for serverless instances."""
        profile = make_profile(entries, instance_class="db.serverless")

        assert profile.is_serverless
        assert profile.vcpus == 0


class TestBuildSnapshot:
    """Test the full characterization of one instance."""

    @pytest.fixture
    def snapshot(self, make_context):
        return asyncio.run(build_snapshot(make_context()))

    def test_snapshot_type(self, snapshot):
        """Should return a WorkloadSnapshot for the evaluated window."""
        assert isinstance(snapshot, WorkloadSnapshot)
        assert snapshot.period_seconds == 60
        assert snapshot.instance.identifier == "db-writer"

    def test_classified_metrics(self, snapshot):
        """Should classify fetched metrics and skip excluded ones."""
        cpu = snapshot.metrics.require("os.cpuUtilization.total")

        assert cpu.avg == 25.0
        assert cpu.max == 50.0
        assert snapshot.metrics.find("os.memory.total") is None
        assert snapshot.metrics.require("db.SQL.logical_reads").sum == 60_000.0

    def test_static_metrics(self, snapshot):
        """Should report distinct instance shape values."""
        assert snapshot.static_metrics["vCPUs"] == [4.0]
        assert snapshot.static_metrics["memory"] == [32.0 * MB]

    def test_network_envelope(self, snapshot):
        """Should add storage, WAL fan-out and client traffic."""
        assert snapshot.network.in_MBps().max == pytest.approx(6.0)
        assert snapshot.network_limits.burstable

    def test_local_storage(self, snapshot):
        """Should combine local read and write throughput."""
        assert snapshot.local_storage.max == pytest.approx(2.0)

    def test_envelope(self, snapshot):
        """Should build the sizing envelope from observed peaks."""
        envelope = snapshot.envelope

        assert envelope.vcpus_used == 2.0
        assert envelope.filesystem_gb == pytest.approx(10.0)
        assert envelope.max_backends == 100.0
        assert envelope.total_memory_gb == 32
        assert envelope.buffer_cache_hit_ratio == 99.5

    def test_sizing_keeps_current_class(self, snapshot):
        """Should find the current class the tightest fit."""
        sizing = snapshot.sizing

        assert sizing is not None
        assert not sizing.found
        assert sizing.note == NOTE_APPROPRIATE
        assert [c.class_id for c in sizing.candidates] == ["db.r6g.xlarge", "db.r6g.2xlarge"]
        assert sizing.instance_capacity["vcpus"] == 4

    def test_serverless_class_not_a_candidate(self, make_context):
        """Should never describe db.serverless as a compute type."""
        ctx = make_context()

        asyncio.run(build_snapshot(ctx))

        assert sorted(ctx.catalog.requested_types) == ["r6g.2xlarge", "r6g.large", "r6g.xlarge"]

    def test_indicators(self, snapshot):
        """Should derive indicators from the evaluated parameters."""
        indicators = snapshot.indicators

        assert indicators["bufferCacheHitRatio"].value == 99.5
        assert indicators["AAStoBackends"].value == 2.0
        assert indicators["volumeBytesUsedGB"].value == 10
        assert indicators["transactionLogsDiskUsageKB"].value == -1
        assert indicators["SnapshotStorageUsedKB"].value == 0.0
        assert indicators["numBackendsToMax"].value == pytest.approx(100 / (32768 * MB / 9531392) * 100, abs=0.01)

    def test_wait_events(self, snapshot):
        """Should report AAS and DB time from grouped load."""
        assert snapshot.waits.average_active_sessions == 2.0
        assert snapshot.waits.db_time_seconds == 7200
        assert [e.pct_db_time for e in snapshot.waits.top_events] == [75.0, 25.0]

    def test_sql_breakdown(self, snapshot):
        """Should report top SQL with its partitions."""
        assert snapshot.sql.sqls[0]["sql_id"] == "S1"
        assert snapshot.sql.sqls[0]["pct_aas"] == 75.0
        assert "db.sql_tokenized.stats.calls_per_sec.avg" in snapshot.sql.sqls[0]["additional_metrics"]
        assert snapshot.sql.load_by_database[0]["dbload"] == [{"db": "p1", "pct": 100.0}]
        assert snapshot.sql.waits[0]["waits"] == [{"event": "p1", "pct": 100.0}]

    def test_correlations(self, snapshot):
        """Should group constant series that never change direction."""
        assert snapshot.correlations.threshold == 0.7
        assert len(snapshot.correlations.clusters) == 1

    def test_reader_uses_writer_throughput(self, make_context):
        """Should fetch the writer's write throughput for a reader."""
        aggregated = FakeAggregated()
        ctx = make_context(identifier="db-reader", aggregated=aggregated)

        snapshot = asyncio.run(build_snapshot(ctx))

        writer_queries = [q for q in aggregated.queries if q.dimension_value == "db-writer"]
        assert [q.metric_name for q in writer_queries] == ["WriteThroughput"]
        assert snapshot.network.in_MBps().max == pytest.approx(6.0)

    def test_short_window_skips_sizing(self, make_context, window_bounds):
        """Should not size on windows shorter than the minimum."""
        start, _ = window_bounds
        short = EvaluationWindow(start=start, end=start + timedelta(minutes=2))

        snapshot = asyncio.run(build_snapshot(make_context(window=short)))

        assert snapshot.sizing is None
        assert snapshot.period_seconds == 1

    def test_serverless_sizing_uses_reported_vcpus(self, make_context):
        """Should size a serverless instance on the vCPU count its OS reports."""
        members = [ClusterMember("db-sl", "db.serverless", True)]
        ctx = make_context(identifier="db-sl", instance_class="db.serverless", members=members)

        snapshot = asyncio.run(build_snapshot(ctx))

        assert snapshot.envelope.vcpus_used == 2.0
        assert snapshot.envelope.total_memory_gb == 32
        sizing = snapshot.sizing
        assert sizing.found
        assert sizing.note == NOTE_RECOMMENDED
        assert "db.r6g.large" not in [c.class_id for c in sizing.candidates]
        assert sizing.instance_capacity["vcpus"] == 4

    def test_unknown_vcpus_skips_sizing(self, make_context):
        """Should skip sizing with a note when a serverless instance reports no vCPU count."""
        members = [ClusterMember("db-sl", "db.serverless", True)]
        ctx = make_context(
            identifier="db-sl",
            instance_class="db.serverless",
            members=members,
            metrics=FakeMetrics(missing=("os.general.numVCPUs.max",)),
        )

        snapshot = asyncio.run(build_snapshot(ctx))

        assert snapshot.static_metrics["vCPUs"] == []
        assert not snapshot.sizing.found
        assert snapshot.sizing.candidates == []
        assert snapshot.sizing.note == NOTE_UNKNOWN_VCPUS
        assert ctx.catalog.requested_types == []

    def test_records_tagged_with_instance(self, make_context):
        """Should tag every record of the evaluation with the instance identifier."""
        tags = []
        logger.add(lambda message: tags.append(message.record["extra"].get("instance")), level="DEBUG")

        asyncio.run(build_snapshot(make_context()))

        assert tags
        assert set(tags) == {"db-writer"}

    def test_no_load(self, make_context):
        """Should raise NoWorkloadData when the window has no DBLoad samples."""
        ctx = make_context(aggregated=FakeAggregated(empty_load=True))

        with pytest.raises(NoWorkloadData):
            asyncio.run(build_snapshot(ctx))

    def test_collaborator_failure(self, make_context):
        """Should abort with CollaboratorUnavailable when a source fails."""
        ctx = make_context(metrics=FakeMetrics(fail=True))

        with pytest.raises(CollaboratorUnavailable, match="metrics"):
            asyncio.run(build_snapshot(ctx))

    def test_evaluations_are_independent(self, make_context):
        """Should evaluate concurrent contexts without shared state."""

        async def both():
            return await asyncio.gather(
                build_snapshot(make_context()),
                build_snapshot(make_context(config=AnalyzerConfig(metrics_correlation_threshold=1.0))),
            )

        first, second = asyncio.run(both())

        assert first.correlations.threshold == 0.7
        assert second.correlations.threshold == 1.0


class TestEstimateCosts:
    """Test serverless and storage-mode cost estimation."""

    def test_provisioned_instance(self, make_context):
        """Should estimate ACUs and compare them with every tier."""
        result = asyncio.run(estimate_costs(make_context()))

        assert isinstance(result, CostEstimate)
        assert result.available_classes == []
        estimate = result.serverless.estimate
        # 2 vCPUs in use at 4 ACU per vCPU
        assert estimate.series.tolist() == [8.0] * 60
        assert estimate.suggested_max == 8.0
        assert result.serverless.serverless_cost == pytest.approx(0.96)
        assert result.serverless.deltas["OnDemand"] == 84.62
        assert "indicative" in result.warning

    def test_ragged_chunks(self, make_context, window_bounds):
        """Should align chunks per minute when a sample is missing."""
        start, _ = window_bounds
        window = EvaluationWindow(start=start, end=start + timedelta(hours=12))
        ctx = make_context(window=window, metrics=RaggedMetrics(gap_at=start + timedelta(hours=5)))

        estimate = asyncio.run(estimate_costs(ctx)).serverless.estimate

        assert estimate.minutes == 720
        # the single missing minute is held at the previous level
        assert estimate.series.tolist() == [8.0] * 720
        assert estimate.suggested_max == 8.0

    def test_storage_comparison(self, make_context):
        """Should cost every cluster member in both storage modes."""
        result = asyncio.run(estimate_costs(make_context()))

        storage = result.storage
        assert set(storage.instances) == {"db-writer", "db-reader"}
        assert storage.instances["db-writer"] == pytest.approx((0.52, 0.676))
        assert storage.storage_type == "aurora"
        assert storage.desc in ("cheaper", "more expensive")

    def test_serverless_members(self, make_context):
        """Should cost serverless members from their observed capacity."""
        members = [
            ClusterMember("db-writer", "db.r6g.xlarge", True),
            ClusterMember("db-sl", "db.serverless", False),
        ]

        result = asyncio.run(estimate_costs(make_context(members=members)))

        assert result.storage.instances["db-sl"] == pytest.approx((2.0 * 60 * 0.12 / 60, 2.0 * 60 * 0.156 / 60))

    def test_serverless_instance(self, make_context):
        """Should list provisioned options instead of a serverless comparison."""
        members = [ClusterMember("db-sl", "db.serverless", True)]
        ctx = make_context(identifier="db-sl", instance_class="db.serverless", members=members)

        result = asyncio.run(estimate_costs(ctx))

        assert result.serverless is None
        assert "db.r6g.large" in result.available_classes
        assert set(result.storage.instances) == {"db-sl"}
