"""
Analyzer configuration.

Settings are plain pydantic fields with camelCase aliases, so an existing
``conf.json`` can be loaded unchanged:

    ```python
    from auroralens.config import load_config

    config = load_config("conf.json")
    config.metrics_correlation_threshold  # 0.7
    ```
"""

from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AnalyzerConfig(BaseModel):
    """Tunable constants for a single evaluation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    metrics_correlation_threshold: float = Field(
        0.7, ge=0, le=1, description="Minimum directional correlation to group two metrics"
    )
    resource_reserve_pct: float = Field(
        15.0, ge=0, description="Headroom added to workload demand before sizing"
    )
    use_two_sigma_values: bool = Field(
        False, description="Size on avg+2sd instead of observed maximum"
    )
    acu_multiplier: float = Field(4.0, gt=0, description="ACUs per vCPU")
    max_acu_limit: float = Field(128.0, gt=0, description="Platform ACU ceiling")
    acu_io_effective_period: int = Field(
        7, ge=1, description="Samples accumulated per burst in the read-IOPS signal"
    )
    other_memory_allocations_pct: float = Field(
        35.0, ge=0, lt=100, description="Memory share not available to the buffer cache"
    )
    acu_hysteresis_samples: int = Field(
        9, ge=1, description="Consecutive lower samples before the ACU level drops"
    )
    metric_batch_size: int = Field(15, ge=1, description="Max metric queries per request")
    sizing_min_window_seconds: int = Field(
        300, ge=0, description="Shortest window that produces a sizing recommendation"
    )
    io_optimized_reserved_multiplier: float = Field(1.3, gt=0)
    cache_hit_ratio_threshold_pct: float = Field(95.0, ge=0, le=100)
    swap_pressure_pct: float = Field(5.0, ge=0, le=100)
    top_candidates: int = Field(3, ge=1)


def load_config(path: str | Path | None = None) -> AnalyzerConfig:
    """
    Load analyzer configuration from a JSON file.

    Args:
        path: JSON file with camelCase keys. ``None`` returns defaults.

    Returns:
        Validated AnalyzerConfig

    Raises:
        FileNotFoundError: If an explicit path does not exist
    """
    if path is None:
        return AnalyzerConfig()

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    config = AnalyzerConfig.model_validate_json(path.read_text())
    logger.debug(f"Loaded configuration from {path}")
    return config
