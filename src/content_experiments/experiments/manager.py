"""Public entry point of the experimentation engine."""

from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..config import ConfigManager
from ..core.clock import SystemClock
from ..core.exceptions import NotFoundError, ValidationError
from ..core.interfaces import ClockInterface, ExperimentRepositoryInterface
from ..core.types import (
    AnalysisResult,
    CreateExperimentResult,
    Experiment,
    ExperimentConfig,
    ExperimentStatus,
    StopReason,
)
from ..observability import MetricsCollector, get_logger
from ..storage import SQLiteExperimentRepository
from .allocator import VariantAllocator
from .lifecycle import LifecycleController
from .locks import StripedLockPool
from .multivariate import MultivariateFactor, MultivariateGenerator
from .recommendation import OptimizationRecommendation, RecommendationEngine
from .recorder import ConversionRecorder
from .registry import ExperimentRegistry
from .scheduler import PeriodicTask
from .statistics import StatisticalAnalyzer
from .validator import ExperimentValidator

logger = get_logger(__name__)

ConfigInput = Union[ExperimentConfig, Dict[str, Any]]
FactorInput = Union[MultivariateFactor, Dict[str, Any]]


class ExperimentManager:
    """Manager wiring the engine's components behind one async API."""

    def __init__(
        self,
        config: Optional[ConfigManager] = None,
        repository: Optional[ExperimentRepositoryInterface] = None,
        clock: Optional[ClockInterface] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize the experiment manager.

        Args:
            config: Configuration manager instance.
            repository: Experiment repository. Defaults to SQLite.
            clock: Time source. Defaults to the system clock.
            metrics: Metrics sink. Defaults to a new collector.
        """
        self.config = config or ConfigManager()
        self.clock = clock or SystemClock()
        self.metrics = metrics or MetricsCollector(self.config)
        self.repository = repository or SQLiteExperimentRepository(
            database_url=self.config.get("database.url"),
            database_path=str(self.config.get_database_path()),
            echo=self.config.get("database.echo", False),
        )

        max_variants = self.config.get("experiment.max_variants", 32)
        analyzer = StatisticalAnalyzer()

        self.registry = ExperimentRegistry(
            self.repository, self.clock, ttl=self.config.get("scheduler.registry_ttl", 5.0)
        )
        self.recorder = ConversionRecorder(
            self.registry,
            self.repository,
            self.clock,
            analyzer=analyzer,
            metrics=self.metrics,
            visitor_locks=StripedLockPool(self.config.get("scheduler.lock_stripes", 64)),
        )
        self.allocator = VariantAllocator(self.registry, self.recorder, metrics=self.metrics)
        self.lifecycle = LifecycleController(
            self.repository,
            self.registry,
            self.recorder,
            self.clock,
            validator=ExperimentValidator(max_variants=max_variants),
            analyzer=analyzer,
            recommendation_engine=RecommendationEngine(),
            metrics=self.metrics,
            early_stopping_enabled=self.config.get("scheduler.early_stopping_enabled", True),
            early_stopping_confidence=self.config.get("scheduler.early_stopping_confidence", 95.0),
            monitor_page_size=self.config.get("scheduler.monitor_page_size", 500),
        )
        self.multivariate = MultivariateGenerator(max_variants=max_variants)
        self.monitor = PeriodicTask(
            self.run_monitor_tick,
            interval=self.config.get("scheduler.monitor_interval", 300.0),
            name="experiment-monitor",
        )

        self._initialized = False

    async def initialize(self) -> None:
        """Initialize storage and, if enabled, start monitoring."""
        if self._initialized:
            return

        await self.repository.initialize()
        self._initialized = True

        if self.config.get("scheduler.enabled", True):
            await self.start_monitoring()

        logger.info("Experiment manager initialized")

    async def shutdown(self) -> None:
        """Stop monitoring and release storage."""
        if not self._initialized:
            return

        await self.stop_monitoring()
        await self.repository.close()
        self._initialized = False
        logger.info("Experiment manager shutdown")

    async def _ensure_initialized(self) -> None:
        """Ensure the manager is initialized."""
        if not self._initialized:
            await self.initialize()

    def _parse_config(self, config: ConfigInput) -> ExperimentConfig:
        if isinstance(config, ExperimentConfig):
            return config

        data = {**self.config.experiment_defaults(), **config}

        try:
            return ExperimentConfig.model_validate(data)
        except PydanticValidationError as e:
            violations = [
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in e.errors()
            ]
            raise ValidationError(violations, {"experiment_name": data.get("name")}) from e

    async def create_experiment(self, config: ConfigInput, auto_start: bool = False) -> CreateExperimentResult:
        """Create an experiment, optionally starting it immediately."""
        await self._ensure_initialized()
        return await self.lifecycle.create(self._parse_config(config), auto_start=auto_start)

    async def start_experiment(self, experiment_id: str) -> None:
        """Start a draft experiment."""
        await self._ensure_initialized()
        await self.lifecycle.start(experiment_id)

    async def stop_experiment(
        self,
        experiment_id: str,
        reason: Union[StopReason, str, None] = None,
    ) -> AnalysisResult:
        """Stop a running experiment and return its final results."""
        await self._ensure_initialized()
        return await self.lifecycle.stop(experiment_id, reason)

    async def complete_experiment(self, experiment_id: str) -> Experiment:
        """Archive a stopped experiment."""
        await self._ensure_initialized()
        return await self.lifecycle.complete(experiment_id)

    async def assign_visitor(self, experiment_id: str, visitor_id: str) -> str:
        """Return the variant a visitor should see."""
        await self._ensure_initialized()
        return await self.allocator.assign_visitor(experiment_id, visitor_id)

    async def record_conversion(
        self,
        experiment_id: str,
        variant_id: str,
        visitor_id: str,
        metric_name: str,
        value: float = 1.0,
    ) -> None:
        """Record a conversion; ignored with a warning if the experiment is not running."""
        await self._ensure_initialized()
        await self.recorder.record_conversion(experiment_id, variant_id, visitor_id, metric_name, value)

    async def get_results(self, experiment_id: str) -> AnalysisResult:
        """Analyze an experiment's current results."""
        await self._ensure_initialized()
        return await self.lifecycle.get_results(experiment_id)

    async def get_experiment(self, experiment_id: str) -> Experiment:
        """Get an experiment by ID."""
        await self._ensure_initialized()
        experiment = await self.repository.get_experiment(experiment_id)
        if experiment is None:
            raise NotFoundError(f"Experiment not found: {experiment_id}", {"experiment_id": experiment_id})
        return experiment

    async def list_experiments(
        self,
        status: Optional[ExperimentStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Experiment]:
        """List experiments, newest first."""
        await self._ensure_initialized()
        return await self.repository.list_experiments(status=status, limit=limit, offset=offset)

    async def generate_multivariate_test(
        self,
        name: str,
        factors: List[FactorInput],
        base_config: Optional[ConfigInput] = None,
        auto_start: bool = False,
    ) -> CreateExperimentResult:
        """Create an experiment with one variant per factor combination."""
        await self._ensure_initialized()

        parsed_factors = [
            f if isinstance(f, MultivariateFactor) else MultivariateFactor.model_validate(f)
            for f in factors
        ]
        base = self._parse_config(base_config if base_config is not None else {})
        config = self.multivariate.build_config(name, parsed_factors, base)

        logger.info("Generated multivariate test", name=name, variant_count=len(config.variants))
        return await self.lifecycle.create(config, auto_start=auto_start)

    async def generate_optimization_recommendations(self, experiment_id: str) -> List[OptimizationRecommendation]:
        """Suggest follow-up actions from an experiment's results."""
        await self._ensure_initialized()
        return await self.lifecycle.optimization_recommendations(experiment_id)

    async def run_monitor_tick(self) -> Dict[str, Any]:
        """Check all running experiments once."""
        await self._ensure_initialized()
        return await self.lifecycle.monitor_running_experiments()

    async def start_monitoring(self) -> None:
        """Start the periodic monitor."""
        await self.monitor.start()

    async def stop_monitoring(self) -> None:
        """Stop the periodic monitor."""
        await self.monitor.stop()

    async def get_stats(self) -> Dict[str, Any]:
        """Repository and metrics summary."""
        await self._ensure_initialized()
        return {
            "repository": await self.repository.get_stats(),
            "metrics": self.metrics.get_all_metrics_summary(),
            "ignored_conversions": self.metrics.get_counter_breakdown("conversions.ignored", "reason"),
            "monitor": {
                "running": self.monitor.is_running,
                "ticks": self.monitor.tick_count,
                "errors": self.monitor.error_count,
                "skipped": self.monitor.skipped_count,
            },
        }
