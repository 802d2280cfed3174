"""Database load analysis."""

from .waits import (
    IDLE_WAIT_TYPE,
    DimensionKey,
    DimensionKeys,
    SqlLoadReport,
    WaitEvent,
    WaitEventsReport,
    analyze_sql_load,
    analyze_wait_events,
    partition_shares,
)

__all__ = [
    "IDLE_WAIT_TYPE",
    "DimensionKey",
    "DimensionKeys",
    "SqlLoadReport",
    "WaitEvent",
    "WaitEventsReport",
    "analyze_sql_load",
    "analyze_wait_events",
    "partition_shares",
]
