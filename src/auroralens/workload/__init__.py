"""Workload envelope synthesis, serverless estimation and instance sizing."""

from .capacity_units import (
    CapacityUnitEstimate,
    ServerlessComparison,
    compare_serverless,
    cpu_acus,
    estimate_capacity_units,
    memory_acus,
    memory_mb,
    merge_acus,
    smooth_acus,
    sparsify_io_bursts,
    suggest_bounds,
)
from .indicators import Indicator, workload_indicators
from .network import (
    ClusterTopology,
    EbsUtilization,
    NetworkEnvelope,
    NetworkLimits,
    ThroughputSummary,
    ebs_utilization,
    estimated_memory_gb,
    local_storage_throughput,
    network_limits,
    synthesize_network_throughput,
)
from .sizing import NOTE_UNKNOWN_VCPUS, SizingRecommendation, WorkloadEnvelope, recommend

__all__ = [
    # Network and storage
    "ClusterTopology",
    "EbsUtilization",
    "NetworkEnvelope",
    "NetworkLimits",
    "ThroughputSummary",
    "ebs_utilization",
    "estimated_memory_gb",
    "local_storage_throughput",
    "network_limits",
    "synthesize_network_throughput",
    # Serverless capacity units
    "CapacityUnitEstimate",
    "ServerlessComparison",
    "compare_serverless",
    "cpu_acus",
    "estimate_capacity_units",
    "memory_acus",
    "memory_mb",
    "merge_acus",
    "smooth_acus",
    "sparsify_io_bursts",
    "suggest_bounds",
    # Indicators
    "Indicator",
    "workload_indicators",
    # Sizing
    "NOTE_UNKNOWN_VCPUS",
    "SizingRecommendation",
    "WorkloadEnvelope",
    "recommend",
]
