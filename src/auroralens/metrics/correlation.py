"""
Correlated-metric detection.

Every unordered pair of metric series is scored with
``directional_correlation``. Pairs at or above the threshold are merged
into clusters transitively: if A moves with B and B moves with C, then A,
B and C end up in one cluster even when A and C do not score together.
When a pair links two existing clusters, the later cluster is absorbed
into the earlier one.
"""

from dataclasses import dataclass, field

from loguru import logger

from auroralens.stats import kernel


@dataclass
class CorrelationReport:
    """
    Correlation clusters for one evaluation.

    Attributes:
        threshold: Minimum score used to link two metrics
        clusters: Cluster id (1..n, creation order) -> metric identifiers
    """

    threshold: float
    clusters: dict[int, list[str]] = field(default_factory=dict)

    def cluster_of(self, metric: str) -> int | None:
        for cluster_id, members in self.clusters.items():
            if metric in members:
                return cluster_id
        return None

    def as_dict(self) -> dict:
        return {**{str(k): v for k, v in self.clusters.items()}, "Threshold": self.threshold}


def find_correlated_pairs(
    series: dict[str, list], threshold: float = 0.7
) -> list[tuple[str, str, float]]:
    """
    Score every unordered pair of series.

    Args:
        series: Metric identifier -> aligned samples
        threshold: Inclusive minimum directional correlation

    Returns:
        List of (metric_i, metric_j, score) tuples at or above threshold,
        in input order

    Example:
        >>> pairs = find_correlated_pairs({"a": [1, 2, 3], "b": [2, 4, 6]})
        >>> # [("a", "b", 1.0)]
    """
    names = list(series)
    pairs = []
    for i in range(len(names)):
        for j in range(i + 1, len(names)):
            score = kernel.directional_correlation(series[names[i]], series[names[j]])
            if score is not None and score >= threshold:
                pairs.append((names[i], names[j], score))
    return pairs


def cluster_pairs(pairs: list[tuple[str, str, float]]) -> dict[int, list[str]]:
    """
    Merge linked pairs into disjoint clusters.

    Args:
        pairs: Output of ``find_correlated_pairs``

    Returns:
        Cluster id -> members, ids renumbered 1..n in creation order,
        members in the order they joined
    """
    clusters: dict[int, list[str]] = {}
    membership: dict[str, int] = {}
    next_id = 1

    for metric_a, metric_b, _ in pairs:
        cluster_a = membership.get(metric_a)
        cluster_b = membership.get(metric_b)

        if cluster_a is None and cluster_b is None:
            clusters[next_id] = [metric_a, metric_b]
            membership[metric_a] = membership[metric_b] = next_id
            next_id += 1
        elif cluster_b is None:
            clusters[cluster_a].append(metric_b)
            membership[metric_b] = cluster_a
        elif cluster_a is None:
            clusters[cluster_b].append(metric_a)
            membership[metric_a] = cluster_b
        elif cluster_a != cluster_b:
            keep, absorb = sorted((cluster_a, cluster_b))
            for member in clusters.pop(absorb):
                clusters[keep].append(member)
                membership[member] = keep

    return {new_id: members for new_id, members in enumerate(clusters.values(), start=1)}


def detect_correlations(series: dict[str, list], threshold: float = 0.7) -> CorrelationReport:
    """
    Group metrics whose series move together.

    Args:
        series: ``.avg``/``.sum`` series keyed by metric identifier, all
            sharing the same period and alignment
        threshold: Inclusive minimum directional correlation

    Returns:
        CorrelationReport with disjoint clusters of two or more metrics
    """
    pairs = find_correlated_pairs(series, threshold)
    clusters = cluster_pairs(pairs)
    logger.info(
        f"Found {len(clusters)} correlation clusters from {len(pairs)} pairs "
        f"across {len(series)} metrics (threshold={threshold})"
    )
    return CorrelationReport(threshold=threshold, clusters=clusters)
