"""
Database load breakdown by wait event and by SQL statement.

Load is measured in average active sessions (AAS). ``Timeout`` wait events
are idle waits and are left out of AAS, DB time and the per-event shares.

Example:
    ```python
    report = analyze_wait_events(total, events, period_seconds=60)
    report.average_active_sessions  # 2.0
    report.to_frame().sort("metric_time_sec", descending=True)
    ```
"""

from dataclasses import dataclass, field

import polars as pl
from loguru import logger

from auroralens.errors import NoWorkloadData
from auroralens.metrics.catalog import MetricSeries
from auroralens.stats import kernel

IDLE_WAIT_TYPE = "Timeout"

WAIT_EVENT_NAME = "db.wait_event.name"
WAIT_EVENT_TYPE = "db.wait_event.type"


@dataclass(frozen=True)
class WaitEvent:
    event_name: str
    event_type: str
    metric_time_sec: int
    pct_db_time: float


@dataclass
class WaitEventsReport:
    """AAS, DB time and per-event contribution over the window."""

    average_active_sessions: float
    db_time_seconds: int
    top_events: list[WaitEvent] = field(default_factory=list)

    def to_frame(self) -> pl.DataFrame:
        return pl.DataFrame(
            [vars(e) for e in self.top_events],
            schema={
                "event_name": pl.Utf8,
                "event_type": pl.Utf8,
                "metric_time_sec": pl.Int64,
                "pct_db_time": pl.Float64,
            },
        )

    def as_dict(self) -> dict:
        return {
            "AverageActiveSessions": self.average_active_sessions,
            "DBTimeSeconds": self.db_time_seconds,
            "TopEvents": [vars(e) for e in self.top_events],
        }


def analyze_wait_events(
    total_series: list, events: list[MetricSeries], period_seconds: int
) -> WaitEventsReport:
    """
    Compute AAS and DB time from ``db.load.avg`` grouped by wait event.

    Args:
        total_series: Ungrouped ``db.load.avg`` samples
        events: One series per wait event, with ``db.wait_event.name`` and
            ``db.wait_event.type`` dimensions
        period_seconds: Sample period

    Returns:
        WaitEventsReport, events in input order

    Raises:
        NoWorkloadData: If the window has no load
    """
    load = kernel.total(total_series)
    if load is None or load <= 0:
        raise NoWorkloadData("No database load recorded in the evaluation window")

    busy = [e for e in events if e.dimensions and e.dimensions.get(WAIT_EVENT_TYPE) != IDLE_WAIT_TYPE]
    sums = [kernel.total(e.values) or 0.0 for e in busy]

    aas_sum = sum(sums)
    aas = round(aas_sum / len(total_series), 2)
    db_time = round(aas_sum * period_seconds)

    top_events = []
    for event, event_sum in zip(busy, sums):
        metric_time = round(event_sum * period_seconds)
        top_events.append(
            WaitEvent(
                event_name=event.dimensions.get(WAIT_EVENT_NAME, ""),
                event_type=event.dimensions.get(WAIT_EVENT_TYPE, ""),
                metric_time_sec=metric_time,
                pct_db_time=round(metric_time * 100 / db_time, 2) if db_time else 0.0,
            )
        )

    skipped = len(events) - len(busy)
    logger.info(
        f"AAS={aas} DBTime={db_time}s over {len(busy)} wait events ({skipped} idle skipped)"
    )
    return WaitEventsReport(average_active_sessions=aas, db_time_seconds=db_time, top_events=top_events)


@dataclass
class DimensionKey:
    """
    One row of a dimension-key breakdown.

    ``partitions`` holds the load per partition key, aligned with the
    partition keys of the enclosing query.
    """

    dimensions: dict[str, str]
    total: float
    partitions: list[float] | None = None
    additional_metrics: dict[str, float] | None = None


@dataclass
class DimensionKeys:
    """Result of a dimension-key query, optionally partitioned."""

    keys: list[DimensionKey]
    partition_keys: list[dict[str, str]] = field(default_factory=list)


@dataclass
class SqlLoadReport:
    sqls: list[dict]
    load_by_database: list[dict]
    load_by_user: list[dict]
    waits: list[dict]

    def sql_frame(self) -> pl.DataFrame:
        """Top SQL rows without the per-statement additional metrics."""
        rows = [{k: v for k, v in row.items() if k != "additional_metrics"} for row in self.sqls]
        return pl.DataFrame(
            rows,
            schema={
                "sql_db_id": pl.Utf8,
                "sql_id": pl.Utf8,
                "sql_statement": pl.Utf8,
                "dbload": pl.Float64,
                "pct_aas": pl.Float64,
            },
        )


def partition_shares(result: DimensionKeys, dimension: str, label: str) -> list[dict]:
    """
    Share of each statement's load per partition.

    Only partitions with load are listed: ``pct = partition * 100 / total``.
    """
    names = [p.get(dimension) for p in result.partition_keys]
    rows = []
    for key in result.keys:
        shares = [
            {label: name, "pct": value * 100 / key.total}
            for name, value in zip(names, key.partitions or [])
            if value > 0 and key.total
        ]
        rows.append({"sql_id": key.dimensions.get("db.sql_tokenized.id"), "dbload": shares})
    return rows


def analyze_sql_load(
    top_sql: DimensionKeys,
    by_database: DimensionKeys,
    by_user: DimensionKeys,
    by_wait: DimensionKeys,
    aas: float,
) -> SqlLoadReport:
    """
    Build the top-SQL breakdown.

    Args:
        top_sql: ``db.load.avg`` grouped by ``db.sql_tokenized``
        by_database: Same grouping partitioned by ``db.name``
        by_user: Same grouping partitioned by ``db.user.name``
        by_wait: Same grouping partitioned by ``db.wait_event.name``
        aas: Average active sessions of the window

    Returns:
        SqlLoadReport
    """
    sqls = [
        {
            "sql_db_id": key.dimensions.get("db.sql_tokenized.db_id"),
            "sql_id": key.dimensions.get("db.sql_tokenized.id"),
            "sql_statement": key.dimensions.get("db.sql_tokenized.statement"),
            "dbload": round(key.total, 2),
            "pct_aas": round(key.total * 100 / aas, 2) if aas else None,
            "additional_metrics": key.additional_metrics or {},
        }
        for key in top_sql.keys
    ]

    waits = [
        {"sql_id": row["sql_id"], "waits": row["dbload"]}
        for row in partition_shares(by_wait, "db.wait_event.name", "event")
    ]

    logger.debug(f"Built SQL breakdown for {len(sqls)} statements")
    return SqlLoadReport(
        sqls=sqls,
        load_by_database=partition_shares(by_database, "db.name", "db"),
        load_by_user=partition_shares(by_user, "db.user.name", "user"),
        waits=waits,
    )
