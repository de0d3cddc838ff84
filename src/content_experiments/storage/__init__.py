"""Storage layer for Content Experiments.

This module provides repositories for persisting experiments, variants,
visitor assignments and aggregated variant results, either in process memory
or with the SQLAlchemy ORM on SQLite.
"""

from .memory_backend import InMemoryExperimentRepository
from .models import (
    Base,
    ExperimentModel,
    VariantModel,
    VisitorAssignmentModel,
    VisitorConversionModel,
    VariantResultModel,
)
from .sqlite_backend import SQLiteExperimentRepository

__all__ = [
    "Base",
    "ExperimentModel",
    "VariantModel",
    "VisitorAssignmentModel",
    "VisitorConversionModel",
    "VariantResultModel",
    "InMemoryExperimentRepository",
    "SQLiteExperimentRepository",
]
