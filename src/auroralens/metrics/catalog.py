"""
Metric identifiers, series containers and static category tables.

Performance metrics are dotted identifiers such as ``os.memory.free.avg``.
The trailing statistic suffix (``.avg``, ``.max``, ``.min``, ``.sum``)
names the variant; the rest is the base metric. Category membership and the
exclude list are fixed tables, not computed.
"""

from dataclasses import dataclass, field
from datetime import datetime

STAT_SUFFIXES = ("avg", "max", "min", "sum")

# key -> (identifier prefix, display name)
OS_CATEGORIES = {
    "cpuUtilization": ("os.cpuUtilization", "CPU Utilization"),
    "diskIO": ("os.diskIO", "Disk IO"),
    "fileSys": ("os.fileSys", "File system"),
    "general": ("os.general", "General"),
    "loadAverageMinute": ("os.loadAverageMinute", "Average load per intervals"),
    "memory": ("os.memory", "Memory"),
    "network": ("os.network", "Network"),
    "swap": ("os.swap", "Swap"),
    "tasks": ("os.tasks", "OS tasks"),
}

DB_CATEGORIES = {
    "SQL": ("db.SQL", "SQL"),
    "Cache": ("db.Cache", "Cache"),
    "Checkpoint": ("db.Checkpoint", "Checkpoint"),
    "Concurrency": ("db.Concurrency", "Concurrency"),
    "IO": ("db.IO", "I/O"),
    "State": ("db.State", "State"),
    "Temp": ("db.Temp", "Temp"),
    "Transactions": ("db.Transactions", "Transactions"),
    "User": ("db.User", "User"),
    "WAL": ("db.WAL", "WAL"),
}

# Static or duplicated elsewhere (totals are reported through STATIC_METRICS)
EXCLUDED_METRICS = frozenset(
    {
        "os.fileSys.maxFiles",
        "os.memory.hugePagesSize",
        "os.memory.total",
        "os.swap.total",
    }
)

# Instance shape, reported as distinct values over the window
STATIC_METRICS = {
    "vCPUs": "os.general.numVCPUs.max",
    "memory": "os.memory.total.max",
    "swap": "os.swap.total.max",
}

METRIC_TYPES = ("os", "db", "db.sql.stats", "db.sql_tokenized.stats")


@dataclass(frozen=True)
class MetricMetadata:
    """
    Catalog entry describing one base metric.

    Attributes:
        metric: Base identifier (no statistic suffix)
        description: Human readable description
        unit: Unit reported by the source
        statistics: Variants the source reports for this metric; counters
            are usually reported as ``("sum",)``
    """

    metric: str
    description: str = ""
    unit: str = ""
    statistics: tuple[str, ...] = ("avg", "max", "min")


@dataclass
class MetricSeries:
    """
    One fetched series.

    Attributes:
        metric: Full identifier including statistic suffix
        values: Samples in chronological order (None for gaps)
        dimensions: Group-by dimensions, None for ungrouped series
        timestamps: Sample times matching ``values``, when the source reports them
    """

    metric: str
    values: list[float | None] = field(default_factory=list)
    dimensions: dict[str, str] | None = None
    timestamps: list[datetime] | None = None


def split_statistic(metric_id: str) -> tuple[str, str | None]:
    """
    Split ``os.memory.free.avg`` into ``("os.memory.free", "avg")``.

    Identifiers without a known suffix are returned whole with ``None``.
    """
    base, _, suffix = metric_id.rpartition(".")
    if base and suffix in STAT_SUFFIXES:
        return base, suffix
    return metric_id, None


def base_metric(metric_id: str) -> str:
    """Strip the statistic suffix, if any."""
    return split_statistic(metric_id)[0]


def category_for(metric: str) -> tuple[str, str] | None:
    """
    Find the category of a base metric by longest matching prefix.

    Returns:
        ("os" | "db", category key), or None for uncategorized or excluded
        metrics
    """
    if metric in EXCLUDED_METRICS:
        return None

    best: tuple[int, str, str] | None = None
    for family, table in (("os", OS_CATEGORIES), ("db", DB_CATEGORIES)):
        for key, (prefix, _) in table.items():
            if metric == prefix or metric.startswith(prefix + "."):
                if best is None or len(prefix) > best[0]:
                    best = (len(prefix), family, key)

    return None if best is None else (best[1], best[2])


def query_names(metadata: list[MetricMetadata]) -> list[str]:
    """
    Expand categorized base metrics into the variant identifiers to fetch.

    Uncategorized and excluded metrics are skipped.
    """
    names = []
    for meta in metadata:
        if category_for(meta.metric) is None:
            continue
        names.extend(f"{meta.metric}.{stat}" for stat in meta.statistics)
    return names
