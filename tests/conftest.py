"""Shared fixtures and configuration for tests."""

from datetime import datetime, timezone

import pytest
from loguru import logger

from auroralens.metrics import MetricMetadata, MetricSeries
from auroralens.pricing import PriceQuote


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep loguru output out of test reports."""
    logger.remove()
    yield


# Catalog Fixtures


@pytest.fixture
def instance_type_entry():
    """Factory for ``DescribeInstanceTypes`` entries."""

    def make(
        instance_type: str = "r6g.large",
        vcpus: int = 2,
        memory_mib: int = 16384,
        peak_gbps: float = 10.0,
        baseline_gbps: float = 0.75,
        ebs_max_mbps: int = 4750,
        ebs_baseline_mbps: int = 630,
        current_generation: bool = True,
    ) -> dict:
        return {
            "InstanceType": instance_type,
            "CurrentGeneration": current_generation,
            "VCpuInfo": {"DefaultVCpus": vcpus},
            "MemoryInfo": {"SizeInMiB": memory_mib},
            "NetworkInfo": {
                "NetworkCards": [
                    {"PeakBandwidthInGbps": peak_gbps, "BaselineBandwidthInGbps": baseline_gbps}
                ]
            },
            "EbsInfo": {
                "EbsOptimizedInfo": {
                    "MaximumBandwidthInMbps": ebs_max_mbps,
                    "BaselineBandwidthInMbps": ebs_baseline_mbps,
                    "MaximumIops": 20000,
                    "BaselineIops": 3600,
                }
            },
            "ProcessorInfo": {"SustainedClockSpeedInGhz": 2.5},
        }

    return make


# Pricing Fixtures


@pytest.fixture
def reserved_prices():
    """Reserved prices for a small instance class."""
    return {
        "1yr-All Upfront-Quantity": 1752.0,
        "1yr-Partial Upfront-Quantity": 876.0,
        "1yr-Partial Upfront-Hrs": 0.1,
        "1yr-No Upfront-Hrs": 0.21,
        "3yr-All Upfront-Quantity": 3942.0,
        "3yr-Partial Upfront-Quantity": 1971.0,
        "3yr-Partial Upfront-Hrs": 0.075,
    }


@pytest.fixture
def price_quote(reserved_prices):
    """Quote for a provisioned class at 0.26 USD/hour."""
    return PriceQuote(
        per_acu_hour=0.12,
        per_acu_hour_io_optimized=0.156,
        per_gb_month=0.10,
        per_gb_month_io_optimized=0.225,
        per_million_io=0.20,
        on_demand_hourly=0.26,
        on_demand_hourly_io_optimized=0.338,
        reserved=reserved_prices,
    )


@pytest.fixture
def serverless_quote():
    """Quote without instance prices."""
    return PriceQuote(
        per_acu_hour=0.12,
        per_acu_hour_io_optimized=0.156,
        per_gb_month=0.10,
        per_gb_month_io_optimized=0.225,
        per_million_io=0.20,
    )


# Metric Fixtures


@pytest.fixture
def triplet_series():
    """Factory for avg/max/min variant series of one base metric."""

    def make(metric: str, avg: list, max: list | None = None, min: list | None = None):
        return [
            MetricSeries(f"{metric}.avg", avg),
            MetricSeries(f"{metric}.max", max if max is not None else avg),
            MetricSeries(f"{metric}.min", min if min is not None else avg),
        ]

    return make


@pytest.fixture
def core_metadata():
    """Catalog entries required by the sizing envelope."""
    return [
        MetricMetadata("os.cpuUtilization.total", "Total CPU", "Percent"),
        MetricMetadata("os.fileSys.used", "Used file system", "KB"),
        MetricMetadata("db.User.numbackends", "Backends", "Connections"),
        MetricMetadata("os.memory.db.swap", "Swap used", "KB"),
        MetricMetadata("db.SQL.logical_reads", "Logical reads", "Blocks", ("sum",)),
    ]


@pytest.fixture
def window_bounds():
    """One-hour evaluation window."""
    start = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    end = datetime(2024, 5, 1, 11, 0, tzinfo=timezone.utc)
    return start, end


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
