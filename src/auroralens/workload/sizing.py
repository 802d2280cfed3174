"""
Instance class recommendation.

The workload envelope (peak or avg+2sd demand) is inflated by a reserve
percentage and compared with every candidate class. A candidate is
eligible only if it has headroom on every dimension; eligible candidates
are scored by the inverse of their total headroom, so the tightest fit
wins, with the cheaper class breaking ties.
"""

from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field

from auroralens.catalog.instances import InstanceCandidate
from auroralens.metrics.classifier import ClassifiedMetrics

from .network import NetworkEnvelope, ThroughputSummary, estimated_memory_gb

NOTE_APPROPRIATE = "The current instance class is appropriate for the current workload requirements."
NOTE_INSUFFICIENT = (
    "No large enough recommended instances found. "
    "Consider reducing the workload or splitting it into more clusters."
)
NOTE_RECOMMENDED = "Instance types to suit current workload."
NOTE_UNKNOWN_VCPUS = "Sizing skipped: the vCPU count of the instance is unknown."

Basis = Literal["max", "avg+2sd"]


class WorkloadEnvelope(BaseModel):
    """
    Demand figures for one evaluation window.

    Demand fields are scaled by ``inflated``; the memory-pressure inputs
    (cache hit ratio, swap, total memory) are observations and stay as is.
    """

    basis: Basis = "max"
    vcpus_used: float = Field(..., ge=0)
    network_MBps: float = Field(..., ge=0)
    filesystem_gb: float = Field(0, ge=0)
    max_backends: float = Field(0, ge=0)
    memory_estimated_gb: float = Field(0, ge=0)
    local_storage_MBps: float = Field(0, ge=0)
    buffer_cache_hit_ratio: float | None = None
    swap_used_gb: float = 0.0
    total_memory_gb: float = 0.0

    def inflated(self, reserve_pct: float) -> "WorkloadEnvelope":
        """Copy with every demand figure multiplied by ``1 + reserve_pct / 100``."""
        factor = 1 + reserve_pct / 100
        return self.model_copy(
            update={
                "vcpus_used": self.vcpus_used * factor,
                "network_MBps": self.network_MBps * factor,
                "filesystem_gb": self.filesystem_gb * factor,
                "max_backends": self.max_backends * factor,
                "memory_estimated_gb": self.memory_estimated_gb * factor,
                "local_storage_MBps": self.local_storage_MBps * factor,
            }
        )

    def has_memory_pressure(
        self, cache_hit_threshold_pct: float = 95.0, swap_pressure_pct: float = 5.0
    ) -> bool:
        """Low buffer cache hit ratio, or swap above a share of total memory."""
        low_hit_ratio = (
            self.buffer_cache_hit_ratio is not None
            and self.buffer_cache_hit_ratio < cache_hit_threshold_pct
        )
        return low_hit_ratio or self.swap_used_gb > self.total_memory_gb * swap_pressure_pct / 100

    def stats(self) -> dict[str, float]:
        return {
            "snapshot_vcpus_used": self.vcpus_used,
            "snapshot_nt_used": self.network_MBps,
            "snapshot_fsys_used": self.filesystem_gb,
            "snapshot_max_backends": self.max_backends,
            "snapshot_memory_estimated_gb": self.memory_estimated_gb,
            "snapshot_local_storage_max_throughput": self.local_storage_MBps,
        }

    @classmethod
    def from_metrics(
        cls,
        metrics: ClassifiedMetrics,
        *,
        vcpus: int,
        network: NetworkEnvelope,
        local_storage: ThroughputSummary,
        shared_memory_bytes: ThroughputSummary,
        total_memory_gb: float,
        buffer_cache_hit_ratio: float | None = None,
        cpu_two_sigma: float | None = None,
        use_two_sigma: bool = False,
    ) -> "WorkloadEnvelope":
        """
        Build the envelope from classified metrics and synthesized throughputs.

        Args:
            metrics: Classified metric summaries
            vcpus: vCPU count of the current instance
            network: Estimated network throughput
            local_storage: Local storage throughput, MB/s
            shared_memory_bytes: Estimated shared buffer memory in use, bytes
            total_memory_gb: Instance memory
            buffer_cache_hit_ratio: Window buffer cache hit ratio, percent
            cpu_two_sigma: avg+2sd of ``os.cpuUtilization.total``; used with
                ``use_two_sigma``
            use_two_sigma: Use avg+2sd figures instead of peaks

        Raises:
            KeyError: If a required metric was not classified
        """
        cpu = metrics.require("os.cpuUtilization.total")
        fsys = metrics.require("os.fileSys.used")
        backends = metrics.require("db.User.numbackends")
        swap = metrics.find("os.memory.db.swap")

        two_sigma = use_two_sigma and cpu_two_sigma is not None
        if use_two_sigma and not two_sigma:
            logger.warning("No avg+2sd bound for os.cpuUtilization.total, sizing on peak values")

        if two_sigma:
            cpu_pct = cpu_two_sigma
            network_MBps = network.in_MBps().two_sigma
        else:
            cpu_pct = cpu.max
            network_MBps = network.in_MBps().max

        # File system and swap are reported in KB
        swap_kb = 0.0 if swap is None else (swap.max or swap.avg or 0.0)
        return cls(
            basis="avg+2sd" if two_sigma else "max",
            vcpus_used=round(vcpus * (cpu_pct or 0.0) / 100, 1),
            network_MBps=network_MBps or 0.0,
            filesystem_gb=(fsys.max or fsys.avg or 0.0) / 1024 / 1024,
            max_backends=backends.max or backends.avg or 0.0,
            memory_estimated_gb=estimated_memory_gb(shared_memory_bytes.basis(two_sigma)),
            local_storage_MBps=local_storage.basis(two_sigma),
            buffer_cache_hit_ratio=buffer_cache_hit_ratio,
            swap_used_gb=swap_kb / 1024 / 1024,
            total_memory_gb=total_memory_gb,
        )


class SizingRecommendation(BaseModel):
    """
    Result of the sizing recommender.

    ``found`` is True when a change of class is recommended; an empty
    ``candidates`` list with ``found`` set means nothing is large enough.
    """

    found: bool
    candidates: list[InstanceCandidate] = Field(default_factory=list)
    note: str
    reserve_pct: float
    basis: Basis
    snapshot_stats: dict[str, float] = Field(default_factory=dict)
    instance_capacity: dict[str, float] = Field(default_factory=dict)

    @property
    def insufficient_capacity(self) -> bool:
        return self.found and not self.candidates


def _is_eligible(
    demand: WorkloadEnvelope, memory_pressure: bool, total_memory_gb: float, c: InstanceCandidate
) -> bool:
    if memory_pressure and total_memory_gb > c.memory_gb:
        return False
    return (
        demand.memory_estimated_gb <= c.memory_gb
        and c.is_current_generation
        and demand.local_storage_MBps <= c.ebs_throughput_MBps
        and demand.vcpus_used <= c.vcpus
        and demand.filesystem_gb <= c.local_storage_gb
        and demand.max_backends <= c.max_connections
        and demand.network_MBps <= c.network_limit_MBps
    )


def headroom(demand: WorkloadEnvelope, candidate: InstanceCandidate) -> float:
    """Total spare capacity across vCPU, network, filesystem, connections and local storage."""
    return (
        (candidate.vcpus - demand.vcpus_used)
        + (candidate.network_limit_MBps - demand.network_MBps)
        + (candidate.local_storage_gb - demand.filesystem_gb)
        + (candidate.max_connections - demand.max_backends)
        + (candidate.ebs_throughput_MBps - demand.local_storage_MBps)
    )


def score(demand: WorkloadEnvelope, candidate: InstanceCandidate) -> float:
    """``round(1000 / headroom, 5)``; zero headroom scores infinity."""
    total = headroom(demand, candidate)
    if total == 0:
        return float("inf")
    return round(1000 / total, 5)


def price_delta_pct(candidate_hourly: float | None, current_hourly: float | None) -> float | None:
    if not candidate_hourly or not current_hourly:
        return None
    return round((candidate_hourly / current_hourly - 1) * 100, 2)


def recommend(
    envelope: WorkloadEnvelope,
    candidates: list[InstanceCandidate],
    current_class: str,
    current_price: float | None,
    reserve_pct: float = 15.0,
    top: int = 3,
    instance_capacity: dict[str, float] | None = None,
    cache_hit_threshold_pct: float = 95.0,
    swap_pressure_pct: float = 5.0,
) -> SizingRecommendation:
    """
    Rank instance classes for a workload.

    Args:
        envelope: Observed demand (not yet inflated)
        candidates: Candidate classes for the engine and version
        current_class: Class of the evaluated instance
        current_price: On-demand hourly price of the current class
        reserve_pct: Safety margin added to every demand figure
        top: Number of candidates to keep
        instance_capacity: Capacity of the current instance, reported as is
        cache_hit_threshold_pct: Hit ratio below which memory must not shrink
        swap_pressure_pct: Swap share of memory above which memory must not shrink

    Returns:
        SizingRecommendation
    """
    demand = envelope.inflated(reserve_pct)
    pressure = envelope.has_memory_pressure(cache_hit_threshold_pct, swap_pressure_pct)
    common = {
        "reserve_pct": reserve_pct,
        "basis": envelope.basis,
        "snapshot_stats": envelope.stats(),
        "instance_capacity": instance_capacity or {},
    }

    eligible = []
    for candidate in candidates:
        if not _is_eligible(demand, pressure, envelope.total_memory_gb, candidate):
            continue
        eligible.append(
            candidate.model_copy(
                update={
                    "score": score(demand, candidate),
                    "price_delta_pct": price_delta_pct(candidate.on_demand_hourly, current_price),
                }
            )
        )

    if not eligible:
        logger.warning(
            f"No candidate among {len(candidates)} classes fits the workload "
            f"with {reserve_pct}% reserve"
        )
        return SizingRecommendation(found=True, candidates=[], note=NOTE_INSUFFICIENT, **common)

    def rank(c: InstanceCandidate):
        delta = c.price_delta_pct if c.price_delta_pct is not None else float("inf")
        return (-c.score, delta)

    eligible.sort(key=rank)
    shortlist = eligible[:top]
    logger.info(
        f"{len(eligible)} of {len(candidates)} classes eligible, "
        f"top pick {shortlist[0].class_id} (score {shortlist[0].score})"
    )

    if shortlist[0].class_id == current_class:
        return SizingRecommendation(found=False, candidates=shortlist, note=NOTE_APPROPRIATE, **common)
    return SizingRecommendation(found=True, candidates=shortlist, note=NOTE_RECOMMENDED, **common)
