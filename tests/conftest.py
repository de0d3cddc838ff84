"""Shared test configuration and fixtures."""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from content_experiments.config import ConfigManager
from content_experiments.core.types import (
    ExperimentConfig,
    MetricAggregate,
    MetricType,
    SuccessMetric,
    Variant,
    VariantResult,
)
from content_experiments.experiments import ExperimentManager
from content_experiments.observability import MetricsCollector
from content_experiments.storage import InMemoryExperimentRepository, SQLiteExperimentRepository


class ManualClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, start: datetime = datetime(2025, 1, 1, 12, 0, 0)):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    """Create a manually driven clock."""
    return ManualClock()


@pytest.fixture
def metrics():
    """Create a fresh metrics collector."""
    return MetricsCollector()


@pytest.fixture
def mock_config():
    """Create configuration manager with the background monitor disabled."""
    config = ConfigManager()
    config.set("scheduler.enabled", False)
    return config


@pytest.fixture
def memory_repository():
    """Create in-memory experiment repository."""
    return InMemoryExperimentRepository()


@pytest_asyncio.fixture
async def sqlite_repository(tmp_path):
    """Create SQLite experiment repository in a temporary directory."""
    repository = SQLiteExperimentRepository(database_path=str(tmp_path / "experiments.db"))
    await repository.initialize()
    try:
        yield repository
    finally:
        await repository.close()


@pytest_asyncio.fixture
async def manager(mock_config, memory_repository, clock, metrics):
    """Create an initialized experiment manager backed by memory."""
    experiment_manager = ExperimentManager(
        config=mock_config,
        repository=memory_repository,
        clock=clock,
        metrics=metrics,
    )
    await experiment_manager.initialize()
    try:
        yield experiment_manager
    finally:
        await experiment_manager.shutdown()


@pytest.fixture
def sample_config():
    """Create a valid two-variant headline test."""
    return ExperimentConfig(
        name="Headline test",
        description="Question headline against statement headline",
        content_id="post-42",
        variants=[
            Variant(id="control", name="Statement", is_control=True,
                    content={"headline": "Ten ways to grow"}),
            Variant(id="treatment", name="Question",
                    content={"headline": "Want to grow faster?"}),
        ],
        traffic_split=[50.0, 50.0],
        success_metrics=[
            SuccessMetric(name="conversion_rate", type=MetricType.CONVERSION_RATE),
            SuccessMetric(name="revenue", type=MetricType.REVENUE),
        ],
        primary_metric="conversion_rate",
        minimum_sample_size=100,
        duration_days=14,
    )


@pytest.fixture
def make_result():
    """Factory for variant results with a given number of conversions."""
    def _make_result(
        variant_id: str,
        participants: int,
        conversions: int,
        is_control: bool = False,
        metric: str = "conversion_rate",
    ) -> VariantResult:
        result = VariantResult(
            experiment_id="exp-1",
            variant_id=variant_id,
            is_control=is_control,
            participants=participants,
        )
        if conversions:
            result.metrics[metric] = MetricAggregate(count=conversions, mean=1.0, m2=0.0)
        return result

    return _make_result
