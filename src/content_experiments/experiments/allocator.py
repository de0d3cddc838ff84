"""Deterministic, sticky assignment of visitors to variants."""

import hashlib
from typing import List, Optional

from ..core.exceptions import InvalidStateError
from ..core.interfaces import MetricSinkInterface
from ..core.types import Experiment, VisitorAssignment
from ..observability import MetricsCollector, get_logger
from .recorder import ConversionRecorder
from .registry import ExperimentRegistry

logger = get_logger(__name__)

HASH_BUCKETS = 10000


def bucket_for(experiment_id: str, visitor_id: str) -> int:
    """Stable bucket in [0, 10000) for a visitor within an experiment."""
    digest = hashlib.sha256(f"{experiment_id}:{visitor_id}".encode("utf-8")).hexdigest()
    return int(digest[:15], 16) % HASH_BUCKETS


def split_boundaries(traffic_split: List[float]) -> List[int]:
    """Cumulative upper bucket bounds of each variant's share."""
    boundaries = []
    cumulative = 0.0
    for share in traffic_split:
        cumulative += share
        boundaries.append(round(cumulative * HASH_BUCKETS / 100))
    return boundaries


def select_variant(experiment: Experiment, bucket: int) -> str:
    """Variant whose share of the bucket space contains ``bucket``."""
    for variant, boundary in zip(experiment.variants, split_boundaries(experiment.traffic_split)):
        if bucket < boundary:
            return variant.id

    # Rounding can leave the top buckets uncovered.
    return experiment.variants[-1].id


class VariantAllocator:
    """Assigns visitors to variants according to the traffic split.

    The first assignment of a visitor is persisted and never recomputed, so a
    visitor keeps seeing the same variant even if the split changes later.
    """

    def __init__(
        self,
        registry: ExperimentRegistry,
        recorder: ConversionRecorder,
        metrics: Optional[MetricSinkInterface] = None,
    ):
        self.registry = registry
        self.recorder = recorder
        self.repository = recorder.repository
        self.clock = recorder.clock
        self.metrics = metrics or MetricsCollector()

    async def assign_visitor(self, experiment_id: str, visitor_id: str) -> str:
        """Return the visitor's variant, assigning one on first call.

        Args:
            experiment_id: Experiment to assign within.
            visitor_id: Stable identifier of the visitor.

        Returns:
            The ID of the assigned variant.

        Raises:
            NotFoundError: If the experiment does not exist.
            InvalidStateError: If the experiment is not running.
        """
        experiment = await self.registry.require(experiment_id)
        if not experiment.is_running:
            raise InvalidStateError(
                f"Experiment {experiment_id} is not running (status: {experiment.status.value})",
                {"experiment_id": experiment_id, "status": experiment.status.value},
            )

        existing = await self.repository.get_assignment(experiment_id, visitor_id)
        if existing is not None:
            return existing.variant_id

        async with self.recorder.visitor_lock(experiment_id, visitor_id):
            assignment, created = await self.repository.create_assignment(VisitorAssignment(
                experiment_id=experiment_id,
                visitor_id=visitor_id,
                variant_id=select_variant(experiment, bucket_for(experiment_id, visitor_id)),
                assigned_at=self.clock.now(),
            ))

        if created:
            await self.recorder.update_result(experiment, assignment.variant_id, new_participant=True)
            self.metrics.increment_counter("assignments.created", tags={"variant": assignment.variant_id})
            logger.debug(
                "Assigned visitor",
                experiment_id=experiment_id,
                visitor_id=visitor_id,
                variant_id=assignment.variant_id,
            )

        return assignment.variant_id
