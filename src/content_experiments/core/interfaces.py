"""Core interfaces for the Content Experiments system."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

from .types import (
    ConversionEvent,
    Experiment,
    ExperimentStatus,
    VariantResult,
    VisitorAssignment,
)


class ClockInterface(Protocol):
    """Protocol for the time source used by the engine."""

    def now(self) -> datetime:
        """Return the current time."""
        ...


class MetricSinkInterface(Protocol):
    """Protocol for the sink receiving operational counters and timings."""

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        """Increment a counter metric."""
        ...

    def set_gauge(self, name: str, value: Union[int, float], tags: Optional[Dict[str, str]] = None) -> None:
        """Set a gauge metric."""
        ...

    def record_timing(self, name: str, duration: float, tags: Optional[Dict[str, str]] = None) -> None:
        """Record a timing metric."""
        ...


class ExperimentRepositoryInterface(ABC):
    """Abstract base class for experiment persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the repository."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release repository resources."""
        pass

    @abstractmethod
    async def save_experiment(self, experiment: Experiment) -> None:
        """Create or update an experiment."""
        pass

    @abstractmethod
    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        """Load an experiment by ID."""
        pass

    @abstractmethod
    async def list_experiments(
        self,
        status: Optional[ExperimentStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Experiment]:
        """List experiments, optionally filtered by status."""
        pass

    @abstractmethod
    async def get_assignment(self, experiment_id: str, visitor_id: str) -> Optional[VisitorAssignment]:
        """Load the persisted assignment of a visitor."""
        pass

    @abstractmethod
    async def create_assignment(self, assignment: VisitorAssignment) -> Tuple[VisitorAssignment, bool]:
        """Persist an assignment unless one already exists.

        Returns:
            The stored assignment and whether it was created by this call.
        """
        pass

    @abstractmethod
    async def mark_converted(self, event: ConversionEvent) -> bool:
        """Persist the first conversion of a visitor on a metric.

        Returns:
            True if this is the visitor's first conversion on the metric.
        """
        pass

    @abstractmethod
    async def save_variant_result(self, result: VariantResult) -> None:
        """Create or update a variant result row."""
        pass

    @abstractmethod
    async def get_variant_result(self, experiment_id: str, variant_id: str) -> Optional[VariantResult]:
        """Load the result row of one variant."""
        pass

    @abstractmethod
    async def get_variant_results(self, experiment_id: str) -> List[VariantResult]:
        """Load all result rows of an experiment."""
        pass

    async def get_stats(self) -> Dict[str, Any]:
        """Return repository statistics."""
        experiments = await self.list_experiments(limit=10000)
        status_counts: Dict[str, int] = {}
        for experiment in experiments:
            status_counts[experiment.status.value] = status_counts.get(experiment.status.value, 0) + 1
        return {"total_experiments": len(experiments), "status_counts": status_counts}
