"""
Group performance metrics into categories with statistical summaries.

The classifier receives the metric catalog of an instance plus every
fetched variant series, and produces one summary per base metric:

- avg/max/min when exactly the {avg, max, min} triplet was fetched
- sum when the only variant is ``.sum``
- nothing otherwise (the metric is dropped, not an error)

Example:
    ```python
    classifier = MetricClassifier(metadata, series)
    classified = classifier.classify()
    classified.find("os.cpuUtilization.total").max
    classifier.two_sigma_bound("os.cpuUtilization.total")
    ```
"""

from dataclasses import asdict, dataclass, field

import polars as pl
from loguru import logger

from auroralens.stats import kernel

from .catalog import (
    DB_CATEGORIES,
    OS_CATEGORIES,
    MetricMetadata,
    MetricSeries,
    category_for,
    split_statistic,
)


@dataclass(frozen=True)
class MetricSummary:
    """Statistics for one base metric over the evaluation window."""

    metric: str
    description: str = ""
    unit: str = ""
    avg: float | None = None
    max: float | None = None
    min: float | None = None
    sum: float | None = None

    @property
    def is_empty(self) -> bool:
        return all(v is None for v in (self.avg, self.max, self.min, self.sum))

    def as_dict(self) -> dict:
        """Summary as a dict, omitting statistics that were not computed."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class MetricCategory:
    """Named group of metric summaries."""

    key: str
    name: str
    metrics: list[MetricSummary] = field(default_factory=list)


@dataclass
class ClassifiedMetrics:
    """OS-level and database-level categories for one evaluation."""

    os: dict[str, MetricCategory]
    db: dict[str, MetricCategory]

    def categories(self):
        yield from (("os", c) for c in self.os.values())
        yield from (("db", c) for c in self.db.values())

    def find(self, metric: str) -> MetricSummary | None:
        """Look up the summary of a base metric."""
        for _, category in self.categories():
            for summary in category.metrics:
                if summary.metric == metric:
                    return summary
        return None

    def require(self, metric: str) -> MetricSummary:
        """
        Look up a summary that later calculations depend on.

        Raises:
            KeyError: If the metric was not classified
        """
        summary = self.find(metric)
        if summary is None:
            raise KeyError(f"Metric '{metric}' missing from classified metrics")
        return summary

    def __len__(self) -> int:
        return sum(len(c.metrics) for _, c in self.categories())

    def to_frame(self) -> pl.DataFrame:
        """All summaries as one row per metric."""
        rows = [
            {
                "family": family,
                "category": category.name,
                "metric": s.metric,
                "description": s.description,
                "unit": s.unit,
                "avg": s.avg,
                "max": s.max,
                "min": s.min,
                "sum": s.sum,
            }
            for family, category in self.categories()
            for s in category.metrics
        ]
        schema = {
            "family": pl.Utf8,
            "category": pl.Utf8,
            "metric": pl.Utf8,
            "description": pl.Utf8,
            "unit": pl.Utf8,
            "avg": pl.Float64,
            "max": pl.Float64,
            "min": pl.Float64,
            "sum": pl.Float64,
        }
        return pl.DataFrame(rows, schema=schema)

    def as_dict(self) -> dict:
        def dump(table):
            return {
                key: {"name": c.name, "metrics": [s.as_dict() for s in c.metrics]}
                for key, c in table.items()
            }

        return {"OSMetrics": dump(self.os), "DBMetrics": dump(self.db)}


class MetricClassifier:
    """
    Summarize and categorize the metric series of one instance.

    Attributes:
        metadata: Metric catalog (base identifiers)
        series: Fetched variant series keyed by full identifier
    """

    def __init__(self, metadata: list[MetricMetadata], series: list[MetricSeries]):
        self.metadata = metadata
        self.series = {s.metric: s.values for s in series if s.dimensions is None}
        self._variants: dict[str, dict[str, list]] = {}
        for metric_id, values in self.series.items():
            base, stat = split_statistic(metric_id)
            if stat is not None:
                self._variants.setdefault(base, {})[stat] = values

    def variants(self, metric: str) -> dict[str, list]:
        """Fetched variant series of a base metric, keyed by statistic."""
        return self._variants.get(metric, {})

    def summarize(self, meta: MetricMetadata) -> MetricSummary:
        """Compute the summary of one catalog entry."""
        variants = self.variants(meta.metric)

        if set(variants) == {"avg", "max", "min"}:
            avg = kernel.average(variants["avg"])
            return MetricSummary(
                metric=meta.metric,
                description=meta.description,
                unit=meta.unit,
                avg=None if avg is None else round(avg, 2),
                max=kernel.maximum(variants["max"]),
                min=kernel.minimum(variants["min"]),
            )

        if set(variants) == {"sum"}:
            return MetricSummary(
                metric=meta.metric,
                description=meta.description,
                unit=meta.unit,
                sum=kernel.total(variants["sum"]),
            )

        logger.debug(f"No usable variants for {meta.metric}: {sorted(variants)}")
        return MetricSummary(metric=meta.metric, description=meta.description, unit=meta.unit)

    def classify(self) -> ClassifiedMetrics:
        """
        Build the OS and DB category tables.

        Returns:
            ClassifiedMetrics with every non-empty summary placed in the
            category of its longest matching prefix
        """
        result = ClassifiedMetrics(
            os={k: MetricCategory(k, name) for k, (_, name) in OS_CATEGORIES.items()},
            db={k: MetricCategory(k, name) for k, (_, name) in DB_CATEGORIES.items()},
        )

        dropped = 0
        for meta in self.metadata:
            placement = category_for(meta.metric)
            if placement is None:
                continue

            summary = self.summarize(meta)
            if summary.is_empty:
                dropped += 1
                continue

            family, key = placement
            table = result.os if family == "os" else result.db
            table[key].metrics.append(summary)

        if dropped:
            logger.warning(f"Dropped {dropped} metrics without a complete set of statistics")
        logger.info(f"Classified {len(result)} metrics")
        return result

    def two_sigma_bound(self, metric: str) -> float | None:
        """
        avg+2sd of the ``.max`` variant.

        Returns None unless the metric has the avg/max/min triplet.
        """
        variants = self.variants(metric)
        if set(variants) != {"avg", "max", "min"}:
            return None
        return kernel.two_sigma_bound(variants["max"])

    def correlation_inputs(self) -> dict[str, list]:
        """``.avg`` and ``.sum`` series of categorized metrics, keyed by full identifier."""
        inputs = {}
        for metric_id, values in self.series.items():
            base, stat = split_statistic(metric_id)
            if stat in ("avg", "sum") and category_for(base) is not None:
                inputs[metric_id] = values
        return inputs


def unique_points(values: list[float | None]) -> list[float]:
    """
    Distinct values of a static metric in order of first appearance.

    Instance shape metrics (vCPUs, total memory) only change when the
    instance is modified, so the distinct values describe its history.
    """
    seen = []
    for v in values:
        if v is not None and v not in seen:
            seen.append(v)
    return seen
