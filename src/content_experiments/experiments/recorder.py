"""Conversion recording and streaming metric aggregation."""

from typing import Optional, Tuple

from ..core.exceptions import NotFoundError
from ..core.interfaces import (
    ClockInterface,
    ExperimentRepositoryInterface,
    MetricSinkInterface,
)
from ..core.types import ConversionEvent, Experiment, VariantResult, VisitorAssignment
from ..observability import MetricsCollector, get_logger
from .locks import KeyedLockPool, StripedLockPool
from .registry import ExperimentRegistry
from .statistics import StatisticalAnalyzer, VariantComparison, primary_metric_of

logger = get_logger(__name__)


class ConversionRecorder:
    """Folds conversions into per-variant aggregates.

    Only the count, running mean and M2 of each metric are kept per variant,
    so memory does not grow with traffic. Updates of one variant's result row
    are serialized; assignment creation is serialized per visitor.
    """

    def __init__(
        self,
        registry: ExperimentRegistry,
        repository: ExperimentRepositoryInterface,
        clock: ClockInterface,
        analyzer: Optional[StatisticalAnalyzer] = None,
        metrics: Optional[MetricSinkInterface] = None,
        visitor_locks: Optional[StripedLockPool] = None,
    ):
        self.registry = registry
        self.repository = repository
        self.clock = clock
        self.analyzer = analyzer or StatisticalAnalyzer()
        self.metrics = metrics or MetricsCollector()
        self.visitor_locks = visitor_locks or StripedLockPool()
        self._result_locks = KeyedLockPool()

    def visitor_lock(self, experiment_id: str, visitor_id: str):
        """Lock serializing assignment creation for one visitor."""
        return self.visitor_locks.get(f"{experiment_id}:{visitor_id}")

    async def record_conversion(
        self,
        experiment_id: str,
        variant_id: str,
        visitor_id: str,
        metric_name: str,
        value: float = 1.0,
    ) -> bool:
        """Record a conversion for a visitor.

        Args:
            experiment_id: Experiment the conversion belongs to.
            variant_id: Variant the visitor was shown.
            visitor_id: The converting visitor.
            metric_name: Success metric the conversion counts towards.
            value: Observed value (1 for a plain conversion).

        Returns:
            True if the conversion was aggregated, False if it was ignored.

        Raises:
            NotFoundError: If the experiment or variant does not exist.
        """
        experiment = await self.registry.require(experiment_id)
        if experiment.get_variant(variant_id) is None:
            raise NotFoundError(
                f"Variant not found: {variant_id}",
                {"experiment_id": experiment_id, "variant_id": variant_id},
            )

        if not experiment.is_running:
            return self._ignore("experiment_not_running", experiment, variant_id, visitor_id,
                                metric_name, status=experiment.status.value)

        if metric_name not in experiment.tracked_metrics:
            return self._ignore("untracked_metric", experiment, variant_id, visitor_id, metric_name)

        metric = experiment.get_metric(metric_name)
        counts_visitors = metric is None or metric.type.is_rate

        async with self.visitor_lock(experiment_id, visitor_id):
            assignment, created = await self._ensure_assignment(experiment_id, visitor_id, variant_id)
            if assignment.variant_id != variant_id:
                return self._ignore("variant_mismatch", experiment, variant_id, visitor_id, metric_name,
                                    assigned_variant_id=assignment.variant_id)

            # Rate metrics are shares of visitors, so only a first conversion counts.
            if counts_visitors and not await self.repository.mark_converted(ConversionEvent(
                experiment_id=experiment_id,
                variant_id=variant_id,
                visitor_id=visitor_id,
                metric_name=metric_name,
                value=value,
                timestamp=self.clock.now(),
            )):
                return self._ignore("duplicate_conversion", experiment, variant_id, visitor_id, metric_name)

        await self.update_result(experiment, variant_id, new_participant=created,
                                 metric_name=metric_name, value=1.0 if counts_visitors else value)

        self.metrics.increment_counter("conversions.recorded", tags={"metric": metric_name})
        return True

    async def _ensure_assignment(
        self, experiment_id: str, visitor_id: str, variant_id: str
    ) -> Tuple[VisitorAssignment, bool]:
        assignment = await self.repository.get_assignment(experiment_id, visitor_id)
        if assignment is not None:
            return assignment, False

        logger.debug(
            "Registering unassigned visitor from conversion",
            experiment_id=experiment_id,
            visitor_id=visitor_id,
            variant_id=variant_id,
        )
        return await self.repository.create_assignment(VisitorAssignment(
            experiment_id=experiment_id,
            visitor_id=visitor_id,
            variant_id=variant_id,
            assigned_at=self.clock.now(),
        ))

    def _ignore(self, reason: str, experiment: Experiment, variant_id: str, visitor_id: str,
                metric_name: str, **extra) -> bool:
        logger.warning(
            "Ignoring conversion",
            reason=reason,
            experiment_id=experiment.id,
            variant_id=variant_id,
            visitor_id=visitor_id,
            metric_name=metric_name,
            **extra,
        )
        self.metrics.increment_counter("conversions.ignored", tags={"reason": reason})
        return False

    async def update_result(
        self,
        experiment: Experiment,
        variant_id: str,
        new_participant: bool = False,
        metric_name: Optional[str] = None,
        value: float = 1.0,
    ) -> VariantResult:
        """Apply a participant and/or an observation to a variant's result row.

        Once the variant holds its share of the minimum sample size, its
        statistics against the control are refreshed in the same update.
        """
        async with self._result_locks.get((experiment.id, variant_id)):
            result = await self._load_result(experiment, variant_id)

            if new_participant:
                result.participants += 1
            if metric_name is not None:
                result.get_metric(metric_name).update(value)
            result.updated_at = self.clock.now()

            threshold = experiment.minimum_sample_size / max(1, len(experiment.variants))
            if result.participants >= threshold:
                await self._refresh_statistics(experiment, result)

            await self.repository.save_variant_result(result)
            return result

    async def store_statistics(
        self,
        experiment: Experiment,
        comparison: VariantComparison,
        is_winner: bool = False,
    ) -> VariantResult:
        """Persist analysis output onto the current row of a variant.

        The row is re-read under its lock so participants and aggregates added
        since the analysis started are kept.
        """
        async with self._result_locks.get((experiment.id, comparison.variant_id)):
            result = await self._load_result(experiment, comparison.variant_id)
            self.analyzer.apply(result, comparison)
            result.is_winner = is_winner
            result.updated_at = self.clock.now()
            await self.repository.save_variant_result(result)
            return result

    def release_locks(self, experiment: Experiment) -> None:
        """Drop the result locks of an experiment that no longer takes conversions."""
        for variant in experiment.variants:
            self._result_locks.discard((experiment.id, variant.id))

    async def _load_result(self, experiment: Experiment, variant_id: str) -> VariantResult:
        result = await self.repository.get_variant_result(experiment.id, variant_id)
        if result is not None:
            return result

        variant = experiment.get_variant(variant_id)
        return VariantResult(
            experiment_id=experiment.id,
            variant_id=variant_id,
            is_control=bool(variant and variant.is_control),
            updated_at=self.clock.now(),
        )

    async def _refresh_statistics(self, experiment: Experiment, result: VariantResult) -> None:
        metric = primary_metric_of(experiment)
        alpha = experiment.significance_level

        if result.is_control:
            self.analyzer.apply(result, self.analyzer.describe(result, alpha, metric))
            return

        control = experiment.get_control_variant()
        control_result = await self.repository.get_variant_result(experiment.id, control.id) if control else None
        if control_result is None:
            return

        self.analyzer.apply(result, self.analyzer.compare(control_result, result, alpha, metric))
