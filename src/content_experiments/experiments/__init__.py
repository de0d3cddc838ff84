"""Experimentation engine: validation, allocation, aggregation, analysis and lifecycle."""

from .allocator import VariantAllocator
from .lifecycle import LifecycleController
from .manager import ExperimentManager
from .multivariate import MultivariateFactor, MultivariateGenerator, generate_combinations
from .recommendation import OptimizationRecommendation, RecommendationEngine
from .recorder import ConversionRecorder
from .registry import ExperimentRegistry
from .scheduler import PeriodicTask
from .statistics import StatisticalAnalysis, StatisticalAnalyzer, VariantComparison, normal_cdf
from .validator import ExperimentValidator, ValidationResult

__all__ = [
    "ExperimentManager",
    "ExperimentValidator",
    "ValidationResult",
    "VariantAllocator",
    "ConversionRecorder",
    "StatisticalAnalyzer",
    "StatisticalAnalysis",
    "VariantComparison",
    "normal_cdf",
    "RecommendationEngine",
    "OptimizationRecommendation",
    "LifecycleController",
    "ExperimentRegistry",
    "PeriodicTask",
    "MultivariateFactor",
    "MultivariateGenerator",
    "generate_combinations",
]
