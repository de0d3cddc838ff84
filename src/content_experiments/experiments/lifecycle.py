"""Experiment lifecycle: creation, state transitions, analysis and monitoring."""

import time
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from ..core.exceptions import ComputationError, InvalidStateError, NotFoundError
from ..core.interfaces import (
    ClockInterface,
    ExperimentRepositoryInterface,
    MetricSinkInterface,
)
from ..core.types import (
    AnalysisResult,
    CreateExperimentResult,
    Experiment,
    ExperimentConfig,
    ExperimentStatus,
    Recommendation,
    StopReason,
    VariantResult,
)
from ..observability import MetricsCollector, audit_log, experiment_context, get_logger
from .locks import KeyedLockPool
from .recommendation import OptimizationRecommendation, RecommendationEngine
from .recorder import ConversionRecorder
from .registry import ExperimentRegistry
from .statistics import StatisticalAnalyzer, primary_metric_of
from .validator import ExperimentValidator

logger = get_logger(__name__)

EARLY_STOP_RECOMMENDATIONS = (Recommendation.IMPLEMENT_WINNER, Recommendation.STOP_TEST)


class LifecycleController:
    """Owns every status transition of an experiment.

    Transitions of one experiment are serialized. A stop persists the new
    status before the final analysis runs, so recordings that race with it
    are rejected from then on.
    """

    def __init__(
        self,
        repository: ExperimentRepositoryInterface,
        registry: ExperimentRegistry,
        recorder: ConversionRecorder,
        clock: ClockInterface,
        validator: Optional[ExperimentValidator] = None,
        analyzer: Optional[StatisticalAnalyzer] = None,
        recommendation_engine: Optional[RecommendationEngine] = None,
        metrics: Optional[MetricSinkInterface] = None,
        early_stopping_enabled: bool = True,
        early_stopping_confidence: float = 95.0,
        monitor_page_size: int = 500,
    ):
        self.repository = repository
        self.registry = registry
        self.recorder = recorder
        self.clock = clock
        self.validator = validator or ExperimentValidator()
        self.analyzer = analyzer or StatisticalAnalyzer()
        self.recommendation_engine = recommendation_engine or RecommendationEngine()
        self.metrics = metrics or MetricsCollector()
        self.early_stopping_enabled = early_stopping_enabled
        self.early_stopping_confidence = early_stopping_confidence
        self.monitor_page_size = monitor_page_size

        self._locks = KeyedLockPool()

    async def _load(self, experiment_id: str) -> Experiment:
        experiment = await self.repository.get_experiment(experiment_id)
        if experiment is None:
            raise NotFoundError(f"Experiment not found: {experiment_id}", {"experiment_id": experiment_id})
        return experiment

    async def _save(self, experiment: Experiment) -> None:
        await self.repository.save_experiment(experiment)
        self.registry.put(experiment)

    def _audit(self, action: str, experiment: Experiment, **metadata: Any) -> None:
        audit_log(
            action=action,
            user_id=experiment.created_by,
            resource_type="experiment",
            resource_id=experiment.id,
            metadata={"status": experiment.status.value, **metadata},
        )

    async def create(self, config: ExperimentConfig, auto_start: bool = False) -> CreateExperimentResult:
        """Validate and persist a new experiment in draft status.

        Args:
            config: The experiment definition.
            auto_start: Whether to start the experiment right away.

        Returns:
            The new experiment's ID and status.

        Raises:
            ValidationError: If the definition is invalid.
        """
        self.validator.validate_or_raise(config)

        data = config.model_dump()
        for variant, share in zip(data["variants"], data["traffic_split"]):
            variant["traffic_allocation"] = share

        experiment = Experiment(
            id=str(uuid4()),
            status=ExperimentStatus.DRAFT,
            created_at=self.clock.now(),
            **data,
        )
        await self._save(experiment)

        self._audit("experiment.create", experiment, name=experiment.name,
                    variant_count=len(experiment.variants))
        self.metrics.increment_counter("experiments.created")
        logger.info("Created experiment", experiment_id=experiment.id, name=experiment.name)

        if auto_start:
            await self.start(experiment.id)
            return CreateExperimentResult(experiment_id=experiment.id, status=ExperimentStatus.RUNNING)

        return CreateExperimentResult(experiment_id=experiment.id, status=experiment.status)

    async def start(self, experiment_id: str) -> Experiment:
        """Move a draft experiment to running.

        Raises:
            NotFoundError: If the experiment does not exist.
            InvalidStateError: If the experiment is not a draft.
            ValidationError: If the stored definition no longer validates.
        """
        async with self._locks.get(experiment_id):
            experiment = await self._load(experiment_id)
            if experiment.status != ExperimentStatus.DRAFT:
                raise InvalidStateError(
                    f"Cannot start experiment with status: {experiment.status.value}",
                    {"experiment_id": experiment_id, "status": experiment.status.value},
                )

            self.validator.validate_or_raise(experiment)

            now = self.clock.now()
            for variant in experiment.variants:
                await self.repository.save_variant_result(VariantResult(
                    experiment_id=experiment.id,
                    variant_id=variant.id,
                    is_control=variant.is_control,
                    updated_at=now,
                ))

            experiment.status = ExperimentStatus.RUNNING
            experiment.start_date = now
            experiment.end_date = now + timedelta(days=experiment.duration_days)
            await self._save(experiment)

        self._audit("experiment.start", experiment, end_date=experiment.end_date.isoformat())
        self.metrics.increment_counter("experiments.started")
        logger.info("Started experiment", experiment_id=experiment_id, end_date=experiment.end_date.isoformat())
        return experiment

    async def stop(
        self,
        experiment_id: str,
        reason: Union[StopReason, str, None] = None,
    ) -> AnalysisResult:
        """Stop a running experiment and compute its final results.

        Stopping an experiment that is already stopped or completed returns
        its results without changing it.

        Raises:
            NotFoundError: If the experiment does not exist.
            InvalidStateError: If the experiment was never started.
        """
        reason_value = str(getattr(reason, "value", reason or StopReason.MANUAL.value))

        async with self._locks.get(experiment_id):
            experiment = await self._load(experiment_id)

            if experiment.status == ExperimentStatus.DRAFT:
                raise InvalidStateError(
                    "Cannot stop an experiment that was never started",
                    {"experiment_id": experiment_id, "status": experiment.status.value},
                )

            if experiment.status in (ExperimentStatus.STOPPED, ExperimentStatus.COMPLETED):
                logger.debug("Experiment already stopped", experiment_id=experiment_id,
                             status=experiment.status.value)
                return await self.analyze(experiment, persist=False)

            experiment.status = ExperimentStatus.STOPPED
            experiment.stopped_at = self.clock.now()
            experiment.stop_reason = reason_value
            await self._save(experiment)

            analysis = await self.analyze(experiment, persist=True)

            experiment.winner_variant_id = analysis.winner
            experiment.recommendation = analysis.recommendation
            await self._save(experiment)

        self.recorder.release_locks(experiment)

        self._audit("experiment.stop", experiment, reason=reason_value, winner=analysis.winner,
                    recommendation=analysis.recommendation.value)
        self.metrics.increment_counter("experiments.stopped", tags={"reason": reason_value})
        logger.info(
            "Stopped experiment",
            experiment_id=experiment_id,
            reason=reason_value,
            winner=analysis.winner,
            recommendation=analysis.recommendation.value,
        )
        return analysis

    async def complete(self, experiment_id: str) -> Experiment:
        """Archive a stopped experiment.

        Raises:
            NotFoundError: If the experiment does not exist.
            InvalidStateError: If the experiment is not stopped.
        """
        async with self._locks.get(experiment_id):
            experiment = await self._load(experiment_id)
            if experiment.status != ExperimentStatus.STOPPED:
                raise InvalidStateError(
                    f"Cannot complete experiment with status: {experiment.status.value}",
                    {"experiment_id": experiment_id, "status": experiment.status.value},
                )

            experiment.status = ExperimentStatus.COMPLETED
            await self._save(experiment)

        self._locks.discard(experiment_id)

        self._audit("experiment.complete", experiment)
        logger.info("Completed experiment", experiment_id=experiment_id)
        return experiment

    async def get_results(self, experiment_id: str) -> AnalysisResult:
        """Analyze an experiment on demand without persisting anything.

        Raises:
            NotFoundError: If the experiment does not exist.
            ComputationError: If the experiment has no results yet.
        """
        experiment = await self._load(experiment_id)
        return await self.analyze(experiment, persist=False)

    async def analyze(self, experiment: Experiment, persist: bool = True) -> AnalysisResult:
        """Run the statistical analysis and the recommendation engine.

        Args:
            experiment: The experiment to analyze.
            persist: Whether to store the per-variant statistics.

        Returns:
            The analysis of the experiment's primary metric.

        Raises:
            ComputationError: If the experiment has not been started.
        """
        if experiment.status == ExperimentStatus.DRAFT:
            raise ComputationError(
                "Experiment has not been started, no results to analyze",
                {"experiment_id": experiment.id},
            )

        started = time.perf_counter()

        results = await self._results_for(experiment)
        control = experiment.get_control_variant()
        control_result = next((r for r in results if control and r.variant_id == control.id), None)

        statistics = self.analyzer.analyze(
            results, control_result, experiment.significance_level, primary_metric_of(experiment)
        )
        comparisons = {c.variant_id: c for c in statistics.all_comparisons()}
        for result in results:
            self.analyzer.apply(result, comparisons[result.variant_id])

        recommendation, winner = self.recommendation_engine.recommend(results, experiment.minimum_sample_size)
        for result in results:
            result.is_winner = result.variant_id == winner

        if persist:
            for result in results:
                await self.recorder.store_statistics(
                    experiment, comparisons[result.variant_id], is_winner=result.is_winner
                )

        self.metrics.record_timing("analysis", time.perf_counter() - started)

        return AnalysisResult(
            experiment_id=experiment.id,
            status=experiment.status,
            primary_metric=experiment.primary_metric_name,
            total_participants=sum(r.participants for r in results),
            variant_results=results,
            statistical_significance=statistics.is_significant,
            confidence=statistics.confidence,
            p_value=statistics.p_value,
            effect_size=statistics.effect_size,
            max_improvement=statistics.max_improvement,
            recommendation=recommendation,
            winner=winner,
            next_steps=self.recommendation_engine.next_steps(recommendation, statistics.effect_size),
            analyzed_at=self.clock.now(),
            stop_reason=experiment.stop_reason,
        )

    async def _results_for(self, experiment: Experiment) -> List[VariantResult]:
        """Result rows of every variant, in variant order, zero-filled if missing."""
        stored = {r.variant_id: r for r in await self.repository.get_variant_results(experiment.id)}
        return [
            stored.get(variant.id) or VariantResult(
                experiment_id=experiment.id,
                variant_id=variant.id,
                is_control=variant.is_control,
                updated_at=self.clock.now(),
            )
            for variant in experiment.variants
        ]

    async def optimization_recommendations(self, experiment_id: str) -> List[OptimizationRecommendation]:
        """Follow-up actions derived from an experiment's current results."""
        analysis = await self.get_results(experiment_id)
        return self.recommendation_engine.optimization_recommendations(
            analysis.variant_results,
            analysis.recommendation,
            analysis.winner,
            analysis.confidence,
            analysis.primary_metric,
        )

    def should_stop_early(self, experiment: Experiment, analysis: AnalysisResult) -> bool:
        """Whether a running experiment has a decisive, sufficiently sampled result."""
        if not self.early_stopping_enabled:
            return False

        return (
            analysis.statistical_significance
            and analysis.confidence >= self.early_stopping_confidence
            and all(r.participants >= experiment.minimum_sample_size for r in analysis.variant_results)
            and analysis.recommendation in EARLY_STOP_RECOMMENDATIONS
        )

    async def check_experiment(self, experiment: Experiment) -> Optional[StopReason]:
        """Apply the automatic stop rules to one running experiment.

        Returns:
            The reason the experiment was stopped, or None if it keeps running.
        """
        if experiment.end_date is not None and self.clock.now() > experiment.end_date:
            await self.stop(experiment.id, StopReason.DURATION_COMPLETE)
            return StopReason.DURATION_COMPLETE

        analysis = await self.analyze(experiment, persist=True)
        if self.should_stop_early(experiment, analysis):
            await self.stop(experiment.id, StopReason.EARLY_STOPPING_SIGNIFICANCE)
            return StopReason.EARLY_STOPPING_SIGNIFICANCE

        return None

    async def _running_experiments(self) -> List[Experiment]:
        # Listed in full before checking, since stops shrink the running set.
        experiments: List[Experiment] = []
        while True:
            page = await self.repository.list_experiments(
                status=ExperimentStatus.RUNNING, limit=self.monitor_page_size, offset=len(experiments)
            )
            experiments.extend(page)
            if len(page) < self.monitor_page_size:
                return experiments

    async def monitor_running_experiments(self) -> Dict[str, Any]:
        """Check every running experiment once.

        A failure on one experiment is logged and counted; the others are
        still checked.

        Returns:
            Summary with the number checked, the experiments stopped and the
            number of failures.
        """
        experiments = await self._running_experiments()
        summary: Dict[str, Any] = {"checked": 0, "stopped": {}, "errors": 0}

        for experiment in experiments:
            summary["checked"] += 1
            try:
                with experiment_context(experiment.id, trigger="monitor"):
                    reason = await self.check_experiment(experiment)
            except Exception:
                summary["errors"] += 1
                self.metrics.increment_counter("monitor.errors")
                logger.exception("Failed to check experiment", experiment_id=experiment.id)
                continue

            if reason is not None:
                summary["stopped"][experiment.id] = reason.value
                self.metrics.increment_counter("experiments.auto_stopped", tags={"reason": reason.value})

        self.metrics.increment_counter("monitor.ticks")
        self.metrics.set_gauge("experiments.running", summary["checked"] - len(summary["stopped"]))
        logger.debug("Monitor tick finished", **summary)
        return summary
