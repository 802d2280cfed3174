"""Tests for network and local-storage envelope synthesis."""

import numpy as np
import pytest

from auroralens.workload import (
    ClusterTopology,
    ThroughputSummary,
    ebs_utilization,
    estimated_memory_gb,
    local_storage_throughput,
    network_limits,
    synthesize_network_throughput,
)
from auroralens.workload.network import BYTES_PER_MB


class TestSynthesizeNetworkThroughput:
    """Test the three-component network estimate."""

    def test_writer_ships_wal_to_every_member(self):
        """Should scale the writer's write throughput by the replication fan-out."""
        topology = ClusterTopology(
            is_writer=True, writer_instance_id="w1", other_instances=2, remote_clusters=1
        )

        envelope = synthesize_network_throughput(
            topology,
            write_throughput=[1.0, 2.0],
            client_throughput=[10.0, 10.0],
            storage_throughput=[100.0, 200.0],
        )

        np.testing.assert_array_equal(envelope.series, [113.0, 216.0])
        assert envelope.max_bytes == 216.0
        # Average is the sum of the component averages
        assert envelope.avg_bytes == pytest.approx(150.0 + 1.5 * 3 + 10.0)

    def test_single_writer_has_no_wal_traffic(self):
        """Should add no WAL traffic without replicas or remote clusters."""
        topology = ClusterTopology(is_writer=True, writer_instance_id="w1")

        envelope = synthesize_network_throughput(topology, [50.0], [1.0], [2.0])

        assert envelope.max_bytes == 3.0

    def test_reader_receives_writer_wal(self):
        """Should use the writer's write throughput for a reader."""
        topology = ClusterTopology(is_writer=False, writer_instance_id="w1", other_instances=1)

        envelope = synthesize_network_throughput(
            topology,
            write_throughput=[0.0, 0.0],
            client_throughput=[10.0, 10.0],
            storage_throughput=[100.0, 200.0],
            writer_write_throughput=[5.0, 5.0],
        )

        np.testing.assert_array_equal(envelope.series, [115.0, 215.0])
        assert envelope.avg_bytes == pytest.approx(165.0)

    def test_reader_without_writer_series(self):
        """Should refuse to estimate a reader without the writer's series."""
        topology = ClusterTopology(is_writer=False, writer_instance_id="w1")

        with pytest.raises(ValueError, match="w1"):
            synthesize_network_throughput(topology, [1.0], [1.0], [1.0])

    def test_misaligned_series(self):
        """Should refuse components of different lengths."""
        topology = ClusterTopology(is_writer=True, writer_instance_id="w1")

        with pytest.raises(ValueError):
            synthesize_network_throughput(topology, [1.0, 2.0], [1.0], [1.0, 2.0])

    def test_megabytes_per_second(self):
        """Should convert the figures to MB/s."""
        topology = ClusterTopology(is_writer=True, writer_instance_id="w1")
        mb = float(BYTES_PER_MB)

        summary = synthesize_network_throughput(topology, [0.0, 0.0], [mb, 3 * mb], [0.0, 0.0]).in_MBps()

        assert summary.max == 3.0
        assert summary.avg == 2.0
        assert summary.two_sigma == pytest.approx(4.0)


class TestNetworkLimits:
    """Test observed traffic against instance limits."""

    def test_burstable_instance(self):
        """Should report ratios to both the peak and the baseline."""
        limits = network_limits(10000, 750, actual_bytes=50 * BYTES_PER_MB)

        assert limits.burstable
        assert limits.network_max_MBps == 1250.0
        assert limits.baseline_MBps == 93.75
        assert limits.traffic_to_max_pct == pytest.approx(4.0)
        assert limits.diff_from_max_MBps == pytest.approx(1200.0)
        assert limits.traffic_to_baseline_pct == pytest.approx(50 / 93.75 * 100)
        assert limits.diff_from_baseline_MBps == pytest.approx(43.75)

    def test_fixed_bandwidth_instance(self):
        """Should skip baseline figures when peak equals baseline."""
        limits = network_limits(25000, 25000, actual_bytes=100 * BYTES_PER_MB)

        assert not limits.burstable
        assert limits.baseline_MBps is None
        assert limits.traffic_to_baseline_pct is None
        assert limits.traffic_to_max_pct == pytest.approx(100 / 3125 * 100)

    def test_no_traffic(self):
        """Should leave ratios empty when there is no observed traffic."""
        limits = network_limits(10000, 750, actual_bytes=0)

        assert limits.traffic_to_max_pct is None
        assert limits.diff_from_max_MBps is None

    def test_burstable_override(self):
        """Should honor an explicit burstable flag."""
        assert not network_limits(10000, 750, burstable=False).burstable


class TestLocalStorage:
    """Test local storage and EBS figures."""

    def test_combines_read_and_write(self):
        """Should add read and write rates and convert KB/s to MB/s."""
        write = ThroughputSummary(max=1024.0, avg=512.0, two_sigma=2048.0)
        read = ThroughputSummary(max=1024.0, avg=512.0, two_sigma=1024.0)

        combined = local_storage_throughput(write, read)

        assert combined == ThroughputSummary(max=2.0, avg=1.0, two_sigma=3.0)

    def test_missing_two_sigma(self):
        """Should drop the two-sigma figure when either side lacks it."""
        write = ThroughputSummary(max=1024.0, avg=512.0, two_sigma=None)
        read = ThroughputSummary(max=0.0, avg=0.0, two_sigma=0.0)

        combined = local_storage_throughput(write, read)

        assert combined.two_sigma is None
        assert combined.basis(use_two_sigma=True) == 1.0

    def test_ebs_utilization_burstable(self):
        """Should compare the local storage peak with max and baseline EBS bandwidth."""
        ebs = ebs_utilization(59.375, ebs_max_mbps=4750, ebs_baseline_mbps=630)

        assert ebs.pct_to_max == 10.0
        assert ebs.pct_to_baseline == 75.4

    def test_ebs_utilization_fixed(self):
        """Should skip the baseline ratio for fixed EBS bandwidth."""
        ebs = ebs_utilization(10.0, ebs_max_mbps=10000, ebs_baseline_mbps=10000)

        assert ebs.pct_to_baseline is None
        assert ebs.pct_to_max == 0.8

    def test_ebs_utilization_unknown(self):
        """Should report zero when EBS bandwidth is unknown."""
        assert ebs_utilization(10.0, 0, 0).pct_to_max == 0.0


class TestEstimatedMemory:
    """Test the buffer pool memory model."""

    def test_fixed_overhead(self):
        """Should carry a fixed overhead with no shared memory in use."""
        assert estimated_memory_gb(0) == pytest.approx(50003 * 12038 / 1024**3)

    def test_grows_with_shared_memory(self):
        """Should increase with the shared memory in use."""
        assert estimated_memory_gb(8 * 1024**3) > estimated_memory_gb(1024**3) > estimated_memory_gb(0)
