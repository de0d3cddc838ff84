"""In-process experiment repository."""

from typing import Dict, List, Optional, Set, Tuple

from ..core.interfaces import ExperimentRepositoryInterface
from ..core.types import (
    ConversionEvent,
    Experiment,
    ExperimentStatus,
    VariantResult,
    VisitorAssignment,
)


class InMemoryExperimentRepository(ExperimentRepositoryInterface):
    """Repository keeping every record in process memory.

    Records are copied on the way in and out so callers never share mutable
    state with the store, matching the behaviour of a real database.
    """

    def __init__(self):
        self._experiments: Dict[str, Experiment] = {}
        self._assignments: Dict[Tuple[str, str], VisitorAssignment] = {}
        self._conversions: Set[Tuple[str, str, str]] = set()
        self._results: Dict[Tuple[str, str], VariantResult] = {}
        self._initialized = False

    async def initialize(self) -> None:
        self._initialized = True

    async def close(self) -> None:
        self._initialized = False

    async def save_experiment(self, experiment: Experiment) -> None:
        self._experiments[experiment.id] = experiment.model_copy(deep=True)

    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        experiment = self._experiments.get(experiment_id)
        return experiment.model_copy(deep=True) if experiment else None

    async def list_experiments(
        self,
        status: Optional[ExperimentStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Experiment]:
        experiments = list(self._experiments.values())

        if status:
            experiments = [e for e in experiments if e.status == status]

        experiments.sort(key=lambda e: e.created_at, reverse=True)
        return [e.model_copy(deep=True) for e in experiments[offset:offset + limit]]

    async def get_assignment(self, experiment_id: str, visitor_id: str) -> Optional[VisitorAssignment]:
        assignment = self._assignments.get((experiment_id, visitor_id))
        return assignment.model_copy() if assignment else None

    async def create_assignment(self, assignment: VisitorAssignment) -> Tuple[VisitorAssignment, bool]:
        key = (assignment.experiment_id, assignment.visitor_id)
        existing = self._assignments.get(key)
        if existing:
            return existing.model_copy(), False

        self._assignments[key] = assignment.model_copy()
        return assignment, True

    async def mark_converted(self, event: ConversionEvent) -> bool:
        key = (event.experiment_id, event.visitor_id, event.metric_name)
        if key in self._conversions:
            return False
        self._conversions.add(key)
        return True

    async def save_variant_result(self, result: VariantResult) -> None:
        self._results[(result.experiment_id, result.variant_id)] = result.model_copy(deep=True)

    async def get_variant_result(self, experiment_id: str, variant_id: str) -> Optional[VariantResult]:
        result = self._results.get((experiment_id, variant_id))
        return result.model_copy(deep=True) if result else None

    async def get_variant_results(self, experiment_id: str) -> List[VariantResult]:
        experiment = self._experiments.get(experiment_id)
        order = {v.id: i for i, v in enumerate(experiment.variants)} if experiment else {}

        results = [r for (exp_id, _), r in self._results.items() if exp_id == experiment_id]
        results.sort(key=lambda r: order.get(r.variant_id, len(order)))
        return [r.model_copy(deep=True) for r in results]
