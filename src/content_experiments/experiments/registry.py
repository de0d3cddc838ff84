"""Read-through cache of experiment definitions."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from ..core.exceptions import NotFoundError
from ..core.interfaces import ClockInterface, ExperimentRepositoryInterface
from ..core.types import Experiment


@dataclass
class _Entry:
    experiment: Experiment
    loaded_at: datetime


class ExperimentRegistry:
    """Caches experiments in front of the repository.

    The hot paths (assignment, conversion recording) read definitions from
    here; entries older than the TTL are reloaded from the repository. The
    lifecycle controller pushes its own updates with ``put`` so status changes
    are visible immediately in this process.
    """

    def __init__(
        self,
        repository: ExperimentRepositoryInterface,
        clock: ClockInterface,
        ttl: float = 5.0,
    ):
        """Initialize the registry.

        Args:
            repository: Source of truth for experiments.
            clock: Time source used to age entries.
            ttl: Seconds an entry is served before being reloaded.
        """
        self.repository = repository
        self.clock = clock
        self.ttl = timedelta(seconds=ttl)
        self._entries: Dict[str, _Entry] = {}

    async def get(self, experiment_id: str) -> Optional[Experiment]:
        """Get an experiment, reloading it when the cached entry is stale."""
        entry = self._entries.get(experiment_id)
        now = self.clock.now()
        if entry and now - entry.loaded_at <= self.ttl:
            return entry.experiment

        experiment = await self.repository.get_experiment(experiment_id)
        if experiment is None:
            self._entries.pop(experiment_id, None)
            return None

        self._entries[experiment_id] = _Entry(experiment=experiment, loaded_at=now)
        return experiment

    async def require(self, experiment_id: str) -> Experiment:
        """Get an experiment or raise ``NotFoundError``."""
        experiment = await self.get(experiment_id)
        if experiment is None:
            raise NotFoundError(f"Experiment not found: {experiment_id}", {"experiment_id": experiment_id})
        return experiment

    def put(self, experiment: Experiment) -> None:
        """Replace the cached copy of an experiment."""
        self._entries[experiment.id] = _Entry(experiment=experiment, loaded_at=self.clock.now())

    def invalidate(self, experiment_id: Optional[str] = None) -> None:
        """Drop one cached entry, or all of them."""
        if experiment_id is None:
            self._entries.clear()
        else:
            self._entries.pop(experiment_id, None)

    def __len__(self) -> int:
        return len(self._entries)
