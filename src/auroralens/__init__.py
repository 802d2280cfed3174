"""AuroraLens - Aurora PostgreSQL workload characterization and instance sizing"""

__version__ = "0.1.0"
__author__ = "Nicholaus Halecky"

# Import submodules
from . import catalog, load, metrics, pricing, stats, utils, workload

# Convenience imports
from .config import AnalyzerConfig, load_config
from .errors import (
    AuroraLensError,
    CollaboratorUnavailable,
    MalformedCatalogEntry,
    NoWorkloadData,
)
from .evaluation import (
    CostEstimate,
    EvaluationContext,
    EvaluationWindow,
    InstanceProfile,
    WorkloadSnapshot,
    build_snapshot,
    estimate_costs,
)
from .utils import configure_logging, instance_context

__all__ = [
    "catalog",
    "load",
    "metrics",
    "pricing",
    "stats",
    "utils",
    "workload",
    "AnalyzerConfig",
    "load_config",
    "AuroraLensError",
    "CollaboratorUnavailable",
    "MalformedCatalogEntry",
    "NoWorkloadData",
    "CostEstimate",
    "EvaluationContext",
    "EvaluationWindow",
    "InstanceProfile",
    "WorkloadSnapshot",
    "build_snapshot",
    "estimate_costs",
    "configure_logging",
    "instance_context",
]
