"""
Network and local-storage envelope synthesis.

The instance's network traffic is not reported as one metric. It is
rebuilt from three components, all in bytes/s:

1. Storage network throughput (writes to the six-way replicated volume)
2. WAL propagation: on a writer, its write throughput is shipped to every
   other cluster member and to every remote cluster of a global database;
   on a reader, it receives the writer's write throughput
3. Client network throughput

The peak and two-sigma figures are taken from the summed series, while the
average is the sum of the component averages.
"""

from dataclasses import dataclass, replace

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from auroralens.stats import kernel

BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True)
class ClusterTopology:
    """
    Role of the evaluated instance inside its cluster.

    Attributes:
        is_writer: Whether the instance is the cluster writer
        writer_instance_id: Identifier of the cluster writer
        other_instances: Number of cluster members besides this instance
        remote_clusters: Number of secondary clusters in a global database
    """

    is_writer: bool
    writer_instance_id: str
    other_instances: int = 0
    remote_clusters: int = 0

    @property
    def replication_fanout(self) -> int:
        return self.other_instances + self.remote_clusters


@dataclass(frozen=True)
class ThroughputSummary:
    """Peak, average and two-sigma figures of one measured rate."""

    max: float
    avg: float
    two_sigma: float | None

    def basis(self, use_two_sigma: bool) -> float:
        if use_two_sigma and self.two_sigma is not None:
            return self.two_sigma
        return self.max


@dataclass
class NetworkEnvelope:
    """Estimated total network throughput of an instance, in bytes/s."""

    series: NDArray[np.floating]
    max_bytes: float
    two_sigma_bytes: float
    avg_bytes: float

    def in_MBps(self) -> ThroughputSummary:
        return ThroughputSummary(
            max=self.max_bytes / BYTES_PER_MB,
            avg=self.avg_bytes / BYTES_PER_MB,
            two_sigma=self.two_sigma_bytes / BYTES_PER_MB,
        )


def synthesize_network_throughput(
    topology: ClusterTopology,
    write_throughput: list,
    client_throughput: list,
    storage_throughput: list,
    writer_write_throughput: list | None = None,
) -> NetworkEnvelope:
    """
    Build the estimated network throughput of one instance.

    Args:
        topology: Role and fan-out of the instance
        write_throughput: This instance's write throughput series
        client_throughput: Client network throughput series
        storage_throughput: Storage network throughput series
        writer_write_throughput: Writer's write throughput series; required
            when the instance is a reader

    Returns:
        NetworkEnvelope with the summed series and its figures

    Raises:
        ValueError: If a reader has no writer series, or the series are not
            aligned
    """
    if topology.is_writer:
        fanout = topology.replication_fanout
        wal = kernel.elementwise_scale(write_throughput, fanout)
        wal_avg = (kernel.average(write_throughput) or 0.0) * fanout
    else:
        if writer_write_throughput is None:
            raise ValueError(
                f"Reader needs the write throughput of writer {topology.writer_instance_id}"
            )
        wal = np.asarray(writer_write_throughput, dtype=float)
        wal_avg = kernel.average(writer_write_throughput) or 0.0

    total = kernel.elementwise_sum(kernel.elementwise_sum(wal, client_throughput), storage_throughput)

    avg = (
        (kernel.average(storage_throughput) or 0.0)
        + wal_avg
        + (kernel.average(client_throughput) or 0.0)
    )
    envelope = NetworkEnvelope(
        series=total,
        max_bytes=kernel.maximum(total) or 0.0,
        two_sigma_bytes=kernel.two_sigma_bound(total) or 0.0,
        avg_bytes=avg,
    )
    logger.debug(
        f"Estimated network throughput: max={envelope.max_bytes / BYTES_PER_MB:.2f} MB/s, "
        f"avg={envelope.avg_bytes / BYTES_PER_MB:.2f} MB/s "
        f"(writer={topology.is_writer}, fanout={topology.replication_fanout})"
    )
    return envelope


@dataclass(frozen=True)
class NetworkLimits:
    """Instance network ceiling compared against observed traffic."""

    burstable: bool
    network_max_MBps: float
    baseline_MBps: float | None = None
    traffic_to_max_pct: float | None = None
    diff_from_max_MBps: float | None = None
    traffic_to_baseline_pct: float | None = None
    diff_from_baseline_MBps: float | None = None


def network_limits(
    max_mbps: float,
    baseline_mbps: float,
    actual_bytes: float | None = None,
    burstable: bool | None = None,
) -> NetworkLimits:
    """
    Compare observed peak traffic with the instance's network limits.

    Args:
        max_mbps: Peak network bandwidth, Mbit/s
        baseline_mbps: Baseline network bandwidth, Mbit/s
        actual_bytes: Observed peak traffic, bytes/s; ratios are skipped
            when missing or zero
        burstable: Override; defaults to ``max_mbps > baseline_mbps``

    Returns:
        NetworkLimits in MB/s and percent
    """
    if burstable is None:
        burstable = max_mbps > baseline_mbps

    max_MBps = max_mbps / 8
    baseline_MBps = baseline_mbps / 8 if burstable else None
    if not actual_bytes:
        return NetworkLimits(burstable=burstable, network_max_MBps=max_MBps, baseline_MBps=baseline_MBps)

    actual_MBps = actual_bytes / BYTES_PER_MB
    limits = NetworkLimits(
        burstable=burstable,
        network_max_MBps=max_MBps,
        baseline_MBps=baseline_MBps,
        traffic_to_max_pct=actual_MBps / max_MBps * 100 if max_MBps else None,
        diff_from_max_MBps=max_MBps - actual_MBps,
    )
    if burstable and baseline_MBps:
        limits = replace(
            limits,
            traffic_to_baseline_pct=actual_MBps / baseline_MBps * 100,
            diff_from_baseline_MBps=baseline_MBps - actual_MBps,
        )
    return limits


def local_storage_throughput(write_kbps: ThroughputSummary, read_kbps: ThroughputSummary) -> ThroughputSummary:
    """
    Combine local-storage read and write rates.

    Args:
        write_kbps: Write figures in KB/s (``os.diskIO.rdstemp.writeKbPS``)
        read_kbps: Read figures in KB/s (``os.diskIO.rdstemp.readKbPS``)

    Returns:
        Combined figures in MB/s
    """
    two_sigma = None
    if write_kbps.two_sigma is not None and read_kbps.two_sigma is not None:
        two_sigma = (write_kbps.two_sigma + read_kbps.two_sigma) / 1024
    return ThroughputSummary(
        max=(write_kbps.max + read_kbps.max) / 1024,
        avg=(write_kbps.avg + read_kbps.avg) / 1024,
        two_sigma=two_sigma,
    )


@dataclass(frozen=True)
class EbsUtilization:
    pct_to_max: float
    pct_to_baseline: float | None = None


def ebs_utilization(used_MBps: float, ebs_max_mbps: float, ebs_baseline_mbps: float) -> EbsUtilization:
    """Share of the EBS bandwidth used by the local storage peak."""
    pct_to_baseline = None
    if ebs_max_mbps > ebs_baseline_mbps and ebs_baseline_mbps > 0:
        pct_to_baseline = round(used_MBps * 100 / (ebs_baseline_mbps / 8), 2)
    pct_to_max = round(used_MBps * 100 / (ebs_max_mbps / 8), 2) if ebs_max_mbps else 0.0
    return EbsUtilization(pct_to_max=pct_to_max, pct_to_baseline=pct_to_baseline)


def estimated_memory_gb(shared_memory_bytes: float) -> float:
    """
    Estimate instance memory needed for an actively used buffer pool.

    Uses a fixed per-buffer overhead model on top of the shared memory
    reported by ``AuroraEstimatedSharedMemoryBytes``.
    """
    return ((50003 + shared_memory_bytes / 1024 / 8) * 12038) / 1024**3
