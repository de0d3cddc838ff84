"""SQLite experiment repository implementation using SQLAlchemy."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.future import select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.interfaces import ExperimentRepositoryInterface
from ..core.types import (
    ConversionEvent,
    Experiment,
    ExperimentStatus,
    VariantResult,
    VisitorAssignment,
)
from .models import (
    Base,
    ExperimentModel,
    VariantModel,
    VariantResultModel,
    VisitorAssignmentModel,
    VisitorConversionModel,
)


class SQLiteExperimentRepository(ExperimentRepositoryInterface):
    """Experiment repository persisted in SQLite through the async SQLAlchemy ORM."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        database_path: Optional[str] = None,
        echo: bool = False,
    ):
        """Initialize the SQLite repository.

        Args:
            database_url: Full database URL. If provided, overrides database_path.
            database_path: Path to SQLite database file. Defaults to user data directory.
            echo: Whether to echo SQL statements for debugging.
        """
        if database_url:
            self.database_url = database_url
        elif database_path:
            self.database_path = Path(database_path)
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            self.database_url = f"sqlite:///{self.database_path.absolute()}"
        else:
            data_dir = Path.home() / ".content_experiments"
            data_dir.mkdir(exist_ok=True)
            self.database_path = data_dir / "experiments.db"
            self.database_url = f"sqlite:///{self.database_path.absolute()}"

        self.echo = echo
        self._engine = None
        self._async_session = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize the repository and create tables."""
        if self._initialized:
            return

        db_url = self.database_url.replace("sqlite:///", "sqlite+aiosqlite:///")
        engine_kwargs = {
            "echo": self.echo,
            "connect_args": {"check_same_thread": False},
        }
        if db_url.endswith(":memory:"):
            # A single shared connection keeps the in-memory database alive.
            engine_kwargs["poolclass"] = StaticPool

        self._engine = create_async_engine(db_url, **engine_kwargs)

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self._async_session = sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )

        self._initialized = True

    async def close(self) -> None:
        """Close the database connection."""
        if self._engine:
            await self._engine.dispose()
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    async def save_experiment(self, experiment: Experiment) -> None:
        """Create or update an experiment and its variants.

        Args:
            experiment: The experiment to save.
        """
        await self._ensure_initialized()

        async with self._async_session() as session:
            await session.merge(ExperimentModel.from_experiment(experiment))

            for position, variant in enumerate(experiment.variants):
                await session.merge(VariantModel.from_variant(experiment.id, position, variant))

            await session.commit()

    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        """Load an experiment by ID.

        Args:
            experiment_id: The ID of the experiment to load.

        Returns:
            The experiment if found, None otherwise.
        """
        await self._ensure_initialized()

        async with self._async_session() as session:
            experiment_model = await session.get(ExperimentModel, experiment_id)
            if experiment_model is None:
                return None

            variants = await self._load_variants(session, experiment_id)
            return experiment_model.to_experiment(variants)

    async def list_experiments(
        self,
        status: Optional[ExperimentStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Experiment]:
        """List experiments with optional status filtering.

        Args:
            status: Filter by experiment status.
            limit: Maximum number of experiments to return.
            offset: Number of experiments to skip.

        Returns:
            List of experiments, newest first.
        """
        await self._ensure_initialized()

        async with self._async_session() as session:
            query = select(ExperimentModel)

            if status:
                query = query.where(ExperimentModel.status == ExperimentStatus(status).value)

            query = query.order_by(desc(ExperimentModel.created_at)).limit(limit).offset(offset)

            result = await session.execute(query)
            experiments = []
            for model in result.scalars().all():
                variants = await self._load_variants(session, model.id)
                experiments.append(model.to_experiment(variants))

            return experiments

    async def _load_variants(self, session: AsyncSession, experiment_id: str) -> List[VariantModel]:
        result = await session.execute(
            select(VariantModel)
            .where(VariantModel.experiment_id == experiment_id)
            .order_by(VariantModel.position)
        )
        return list(result.scalars().all())

    async def get_assignment(self, experiment_id: str, visitor_id: str) -> Optional[VisitorAssignment]:
        """Load the persisted assignment of a visitor."""
        await self._ensure_initialized()

        async with self._async_session() as session:
            model = await session.get(VisitorAssignmentModel, (experiment_id, visitor_id))
            return model.to_assignment() if model else None

    async def create_assignment(self, assignment: VisitorAssignment) -> Tuple[VisitorAssignment, bool]:
        """Insert an assignment unless the visitor already has one.

        Args:
            assignment: The assignment to persist.

        Returns:
            The stored assignment and whether this call created it.
        """
        await self._ensure_initialized()

        key = (assignment.experiment_id, assignment.visitor_id)
        async with self._async_session() as session:
            existing = await session.get(VisitorAssignmentModel, key)
            if existing:
                return existing.to_assignment(), False

            session.add(VisitorAssignmentModel.from_assignment(assignment))
            try:
                await session.commit()
            except IntegrityError:
                # Another writer inserted the same key first; theirs wins.
                await session.rollback()
                existing = await session.get(VisitorAssignmentModel, key)
                return existing.to_assignment(), False

            return assignment, True

    async def mark_converted(self, event: ConversionEvent) -> bool:
        """Insert the first conversion of a visitor on a metric.

        Returns:
            False if the visitor had already converted on the metric.
        """
        await self._ensure_initialized()

        key = (event.experiment_id, event.visitor_id, event.metric_name)
        async with self._async_session() as session:
            if await session.get(VisitorConversionModel, key):
                return False

            session.add(VisitorConversionModel.from_event(event))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False

            return True

    async def save_variant_result(self, result: VariantResult) -> None:
        """Create or update a variant result row."""
        await self._ensure_initialized()

        async with self._async_session() as session:
            existing = await session.get(VariantResultModel, (result.experiment_id, result.variant_id))
            if existing:
                existing.update_from(result)
            else:
                session.add(VariantResultModel.from_result(result))
            await session.commit()

    async def get_variant_result(self, experiment_id: str, variant_id: str) -> Optional[VariantResult]:
        """Load the result row of one variant."""
        await self._ensure_initialized()

        async with self._async_session() as session:
            model = await session.get(VariantResultModel, (experiment_id, variant_id))
            return model.to_result() if model else None

    async def get_variant_results(self, experiment_id: str) -> List[VariantResult]:
        """Load all result rows of an experiment, in variant order."""
        await self._ensure_initialized()

        async with self._async_session() as session:
            result = await session.execute(
                select(VariantResultModel).where(VariantResultModel.experiment_id == experiment_id)
            )
            results = {model.variant_id: model.to_result() for model in result.scalars().all()}

            variants = await self._load_variants(session, experiment_id)
            ordered = [results.pop(v.id) for v in variants if v.id in results]
            return ordered + list(results.values())

    async def get_stats(self) -> Dict[str, Any]:
        """Get experiment statistics.

        Returns:
            Dictionary containing experiment counts by status.
        """
        await self._ensure_initialized()

        async with self._async_session() as session:
            status_counts = await session.execute(
                select(ExperimentModel.status, func.count(ExperimentModel.id))
                .group_by(ExperimentModel.status)
            )
            stats = {"status_counts": dict(status_counts.all())}

            total_count = await session.execute(select(func.count(ExperimentModel.id)))
            stats["total_experiments"] = total_count.scalar()

            assignment_count = await session.execute(select(func.count()).select_from(VisitorAssignmentModel))
            stats["total_assignments"] = assignment_count.scalar()

            return stats
