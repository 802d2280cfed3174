"""Metric catalog, classification and correlation."""

from .catalog import (
    DB_CATEGORIES,
    EXCLUDED_METRICS,
    OS_CATEGORIES,
    STATIC_METRICS,
    MetricMetadata,
    MetricSeries,
    base_metric,
    category_for,
    query_names,
    split_statistic,
)
from .classifier import (
    ClassifiedMetrics,
    MetricCategory,
    MetricClassifier,
    MetricSummary,
    unique_points,
)
from .correlation import (
    CorrelationReport,
    cluster_pairs,
    detect_correlations,
    find_correlated_pairs,
)

__all__ = [
    # Catalog
    "DB_CATEGORIES",
    "EXCLUDED_METRICS",
    "OS_CATEGORIES",
    "STATIC_METRICS",
    "MetricMetadata",
    "MetricSeries",
    "base_metric",
    "category_for",
    "query_names",
    "split_statistic",
    # Classification
    "ClassifiedMetrics",
    "MetricCategory",
    "MetricClassifier",
    "MetricSummary",
    "unique_points",
    # Correlation
    "CorrelationReport",
    "cluster_pairs",
    "detect_correlations",
    "find_correlated_pairs",
]
