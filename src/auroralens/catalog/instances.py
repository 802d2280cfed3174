"""
Instance hardware attributes and sizing candidates.

Hardware comes from the compute catalog (``DescribeInstanceTypes`` shape):
network bandwidth is summed across network cards, EBS bandwidth is taken
from the EBS-optimized info. Bandwidth figures in the catalog are megabits
per second; candidates carry megabytes per second.
"""

from loguru import logger
from pydantic import BaseModel, Field

from auroralens.errors import MalformedCatalogEntry

from .parameters import evaluate_parameter

# Default max_connections formula for Aurora PostgreSQL
MAX_CONNECTIONS_FORMULA = "LEAST({DBInstanceClassMemory/9531392},5000)"

SERVERLESS_CLASS = "db.serverless"


def db_instance_to_ec2(instance_class: str) -> str:
    """
    Map a DB instance class to its compute instance type.

    ``db.x2g.*`` classes have no ``x2g.*`` compute type, only ``x2gd.*``.

    Example:
        >>> db_instance_to_ec2("db.x2g.large")
        'x2gd.large'
    """
    name = instance_class[3:] if instance_class.startswith("db.") else instance_class
    if name.startswith("x2g.") or ".x2g." in name:
        return name.replace("x2g", "x2gd", 1)
    return name


def ec2_instance_to_db(instance_type: str) -> str:
    """Map a compute instance type back to its ``db.`` class."""
    name = instance_type
    if name.startswith("x2gd.") or ".x2gd." in name:
        name = name.replace("x2gd", "x2g", 1)
    return f"db.{name}"


class InstanceHardware(BaseModel):
    """Hardware attributes of one instance type."""

    instance_type: str = Field(..., min_length=1)
    current_generation: bool = True
    vcpus: int = Field(..., gt=0)
    memory_mib: float = Field(..., gt=0)
    network_max_mbps: float = Field(..., ge=0, description="Peak network bandwidth, Mbit/s")
    network_baseline_mbps: float = Field(..., ge=0, description="Baseline network bandwidth, Mbit/s")
    ebs_max_mbps: float = Field(0, ge=0, description="Max EBS bandwidth, Mbit/s")
    ebs_baseline_mbps: float = Field(0, ge=0, description="Baseline EBS bandwidth, Mbit/s")
    ebs_max_iops: float | None = None
    ebs_baseline_iops: float | None = None
    clock_speed_ghz: float | None = None

    @property
    def memory_gb(self) -> float:
        return self.memory_mib / 1024

    @property
    def network_burstable(self) -> bool:
        return self.network_max_mbps > self.network_baseline_mbps

    @property
    def ebs_burstable(self) -> bool:
        return self.ebs_max_mbps > self.ebs_baseline_mbps

    @property
    def network_limit_MBps(self) -> float:
        """Sustainable network rate: baseline when burstable, else peak."""
        mbps = self.network_baseline_mbps if self.network_burstable else self.network_max_mbps
        return mbps / 8

    @property
    def ebs_throughput_MBps(self) -> float:
        """Sustainable EBS rate: baseline when burstable, else max."""
        mbps = self.ebs_baseline_mbps if self.ebs_burstable else self.ebs_max_mbps
        return mbps / 8

    @classmethod
    def from_instance_type(cls, info: dict) -> "InstanceHardware":
        """
        Parse one ``DescribeInstanceTypes`` entry.

        Raises:
            MalformedCatalogEntry: If a required attribute is missing
        """
        try:
            cards = info["NetworkInfo"]["NetworkCards"]
            ebs = info.get("EbsInfo", {}).get("EbsOptimizedInfo", {})
            return cls(
                instance_type=info["InstanceType"],
                current_generation=info.get("CurrentGeneration", True),
                vcpus=info["VCpuInfo"]["DefaultVCpus"],
                memory_mib=info["MemoryInfo"]["SizeInMiB"],
                network_max_mbps=sum(c["PeakBandwidthInGbps"] for c in cards) * 1000,
                network_baseline_mbps=sum(c["BaselineBandwidthInGbps"] for c in cards) * 1000,
                ebs_max_mbps=ebs.get("MaximumBandwidthInMbps", 0),
                ebs_baseline_mbps=ebs.get("BaselineBandwidthInMbps", 0),
                ebs_max_iops=ebs.get("MaximumIops"),
                ebs_baseline_iops=ebs.get("BaselineIops"),
                clock_speed_ghz=info.get("ProcessorInfo", {}).get("SustainedClockSpeedInGhz"),
            )
        except KeyError as e:
            name = info.get("InstanceType", "<unknown>")
            raise MalformedCatalogEntry(f"Instance type {name} is missing attribute {e}") from e


class InstanceCandidate(BaseModel):
    """
    One instance class considered by the sizing recommender.

    ``score`` and ``price_delta_pct`` are filled in only for eligible
    candidates.
    """

    class_id: str
    is_current_generation: bool
    memory_gb: float
    vcpus: int
    network_max_MBps: float
    network_is_burstable: bool
    network_baseline_MBps: float
    local_storage_gb: float
    max_connections: float
    ebs_throughput_MBps: float
    on_demand_hourly: float | None = None
    score: float | None = None
    price_delta_pct: float | None = None

    @property
    def network_limit_MBps(self) -> float:
        return self.network_baseline_MBps if self.network_is_burstable else self.network_max_MBps

    @classmethod
    def from_hardware(
        cls, hardware: InstanceHardware, on_demand_hourly: float | None = None
    ) -> "InstanceCandidate":
        """
        Derive sizing capacities from hardware.

        Local storage is twice the memory size; max connections follow the
        engine default formula.
        """
        max_connections = evaluate_parameter(MAX_CONNECTIONS_FORMULA, hardware.memory_mib)
        return cls(
            class_id=ec2_instance_to_db(hardware.instance_type),
            is_current_generation=hardware.current_generation,
            memory_gb=hardware.memory_gb,
            vcpus=hardware.vcpus,
            network_max_MBps=hardware.network_max_mbps / 8,
            network_is_burstable=hardware.network_burstable,
            network_baseline_MBps=(
                hardware.network_baseline_mbps / 8 if hardware.network_burstable else 0
            ),
            local_storage_gb=hardware.memory_gb * 2,
            max_connections=round(max_connections),
            ebs_throughput_MBps=hardware.ebs_throughput_MBps,
            on_demand_hourly=on_demand_hourly,
        )


def candidate_from_instance_type(
    info: dict, on_demand_hourly: float | None = None
) -> InstanceCandidate:
    """Build a candidate straight from one ``DescribeInstanceTypes`` entry."""
    return InstanceCandidate.from_hardware(InstanceHardware.from_instance_type(info), on_demand_hourly)


def build_candidates(
    instance_types: list[dict], prices: dict[str, float] | None = None
) -> list[InstanceCandidate]:
    """
    Build sorted candidates from catalog entries.

    Args:
        instance_types: ``DescribeInstanceTypes`` entries
        prices: Optional on-demand hourly price per ``db.`` class

    Returns:
        Candidates sorted by class name
    """
    prices = prices or {}
    candidates = []
    for info in instance_types:
        class_id = ec2_instance_to_db(info.get("InstanceType", ""))
        candidates.append(candidate_from_instance_type(info, prices.get(class_id)))

    candidates.sort(key=lambda c: c.class_id)
    logger.debug(f"Built {len(candidates)} instance candidates")
    return candidates
