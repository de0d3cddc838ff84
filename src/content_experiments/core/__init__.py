"""Core module for Content Experiments.

This module contains the fundamental building blocks of the engine including
types, interfaces, errors, and the default clock.
"""

from .clock import SystemClock
from .exceptions import (
    ExperimentError,
    ValidationError,
    NotFoundError,
    InvalidStateError,
    ComputationError,
)
from .interfaces import (
    ClockInterface,
    MetricSinkInterface,
    ExperimentRepositoryInterface,
)
from .types import (
    ExperimentStatus,
    MetricType,
    MetricDirection,
    Recommendation,
    StopReason,
    SuccessMetric,
    Variant,
    ExperimentConfig,
    Experiment,
    VisitorAssignment,
    MetricAggregate,
    VariantResult,
    ConversionEvent,
    AnalysisResult,
    CreateExperimentResult,
)

__all__ = [
    # Types
    "ExperimentStatus",
    "MetricType",
    "MetricDirection",
    "Recommendation",
    "StopReason",
    "SuccessMetric",
    "Variant",
    "ExperimentConfig",
    "Experiment",
    "VisitorAssignment",
    "MetricAggregate",
    "VariantResult",
    "ConversionEvent",
    "AnalysisResult",
    "CreateExperimentResult",

    # Interfaces
    "ClockInterface",
    "MetricSinkInterface",
    "ExperimentRepositoryInterface",

    # Errors
    "ExperimentError",
    "ValidationError",
    "NotFoundError",
    "InvalidStateError",
    "ComputationError",

    "SystemClock",
]
