"""Core types and enumerations for Content Experiments."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ExperimentStatus(str, Enum):
    """Enumeration of experiment lifecycle states."""
    DRAFT = "draft"
    RUNNING = "running"
    STOPPED = "stopped"
    COMPLETED = "completed"


class MetricType(str, Enum):
    """Enumeration of tracked success metric types."""
    CONVERSION_RATE = "conversion_rate"
    CLICK_THROUGH_RATE = "click_through_rate"
    ENGAGEMENT_RATE = "engagement_rate"
    BOUNCE_RATE = "bounce_rate"
    LEAD_GENERATION = "lead_generation"
    TIME_ON_PAGE = "time_on_page"
    SCROLL_DEPTH = "scroll_depth"
    SOCIAL_SHARES = "social_shares"
    REVENUE = "revenue"

    @property
    def is_rate(self) -> bool:
        """Whether the metric is a proportion of participants."""
        return self in RATE_METRIC_TYPES


RATE_METRIC_TYPES = frozenset({
    MetricType.CONVERSION_RATE,
    MetricType.CLICK_THROUGH_RATE,
    MetricType.ENGAGEMENT_RATE,
    MetricType.BOUNCE_RATE,
    MetricType.LEAD_GENERATION,
})


class MetricDirection(str, Enum):
    """Which direction of change counts as an improvement."""
    INCREASE = "increase"
    DECREASE = "decrease"


class Recommendation(str, Enum):
    """Action recommended from an experiment analysis."""
    IMPLEMENT_WINNER = "implement_winner"
    CONTINUE_TESTING = "continue_testing"
    INCONCLUSIVE = "inconclusive"
    STOP_TEST = "stop_test"


class StopReason(str, Enum):
    """Why a running experiment was stopped."""
    MANUAL = "manual"
    DURATION_COMPLETE = "duration_complete"
    EARLY_STOPPING_SIGNIFICANCE = "early_stopping_significance"


class SuccessMetric(BaseModel):
    """A metric the experiment is judged on."""
    name: str
    type: MetricType = MetricType.CONVERSION_RATE
    direction: MetricDirection = MetricDirection.INCREASE
    goal: Optional[float] = None
    weight: float = 1.0


class Variant(BaseModel):
    """One configuration under test. The content payload is opaque."""
    id: str
    name: str
    is_control: bool = False
    traffic_allocation: float = 0.0
    description: Optional[str] = None
    content: Dict[str, Any] = Field(default_factory=dict)


class ExperimentConfig(BaseModel):
    """Definition of an experiment as submitted by a caller.

    Field values are deliberately unconstrained here; the validator reports
    every structural problem at once instead of failing on the first.
    """
    name: str = ""
    description: Optional[str] = None
    content_id: Optional[str] = None
    variants: List[Variant] = Field(default_factory=list)
    traffic_split: List[float] = Field(default_factory=list)
    success_metrics: List[SuccessMetric] = Field(default_factory=list)
    primary_metric: Optional[str] = None
    significance_level: float = 0.05
    minimum_sample_size: int = 1000
    minimum_detectable_effect: float = 0.05
    duration_days: int = 14
    created_by: str = "system"

    @property
    def primary_metric_name(self) -> Optional[str]:
        """Primary metric name, defaulting to the first success metric."""
        if self.primary_metric:
            return self.primary_metric
        if self.success_metrics:
            return self.success_metrics[0].name
        return None

    @property
    def secondary_metrics(self) -> List[str]:
        """Names of the success metrics other than the primary one."""
        primary = self.primary_metric_name
        return [m.name for m in self.success_metrics if m.name != primary]

    def get_metric(self, name: str) -> Optional[SuccessMetric]:
        """Get a success metric definition by name."""
        for metric in self.success_metrics:
            if metric.name == name:
                return metric
        return None

    def get_control_variant(self) -> Optional[Variant]:
        """Get the control variant."""
        for variant in self.variants:
            if variant.is_control:
                return variant
        return None

    def get_variant(self, variant_id: str) -> Optional[Variant]:
        """Get a variant by ID."""
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None


class Experiment(ExperimentConfig):
    """A persisted experiment and its lifecycle state."""
    id: str
    status: ExperimentStatus = ExperimentStatus.DRAFT
    created_at: datetime = Field(default_factory=datetime.now)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    stop_reason: Optional[str] = None
    winner_variant_id: Optional[str] = None
    recommendation: Optional[Recommendation] = None

    @property
    def is_running(self) -> bool:
        return self.status == ExperimentStatus.RUNNING

    @property
    def tracked_metrics(self) -> List[str]:
        """Primary metric followed by the secondary metrics."""
        primary = self.primary_metric_name
        return ([primary] if primary else []) + self.secondary_metrics


class VisitorAssignment(BaseModel):
    """Sticky mapping of a visitor to a variant."""
    experiment_id: str
    visitor_id: str
    variant_id: str
    assigned_at: datetime = Field(default_factory=datetime.now)


class MetricAggregate(BaseModel):
    """Streaming aggregate of a metric's observed values."""
    count: int = 0
    mean: float = 0.0
    m2: float = 0.0

    def update(self, value: float) -> None:
        """Fold one observation into the aggregate (Welford's update)."""
        self.count += 1
        delta = value - self.mean
        self.mean += delta / self.count
        self.m2 += delta * (value - self.mean)

    @property
    def total(self) -> float:
        return self.mean * self.count

    @property
    def variance(self) -> float:
        """Sample variance of the observed values."""
        if self.count < 2:
            return 0.0
        return self.m2 / (self.count - 1)


class VariantResult(BaseModel):
    """Aggregated, continuously updated results of one variant."""
    experiment_id: str
    variant_id: str
    is_control: bool = False
    participants: int = 0
    metrics: Dict[str, MetricAggregate] = Field(default_factory=dict)
    value: float = 0.0
    standard_error: float = 0.0
    confidence_interval: Tuple[float, float] = (0.0, 0.0)
    z_score: float = 0.0
    p_value: float = 1.0
    effect_size: float = 0.0
    improvement: float = 0.0
    is_significant: bool = False
    is_winner: bool = False
    updated_at: datetime = Field(default_factory=datetime.now)

    def get_metric(self, metric_name: str) -> MetricAggregate:
        """Get the aggregate for a metric, creating an empty one if absent."""
        if metric_name not in self.metrics:
            self.metrics[metric_name] = MetricAggregate()
        return self.metrics[metric_name]


class ConversionEvent(BaseModel):
    """A conversion reported by a request-serving call site."""
    experiment_id: str
    variant_id: str
    visitor_id: str
    metric_name: str
    value: float = 1.0
    timestamp: datetime = Field(default_factory=datetime.now)


class AnalysisResult(BaseModel):
    """Full statistical readout of an experiment."""
    model_config = ConfigDict(use_enum_values=False)

    experiment_id: str
    status: ExperimentStatus
    primary_metric: Optional[str] = None
    total_participants: int = 0
    variant_results: List[VariantResult] = Field(default_factory=list)
    statistical_significance: bool = False
    confidence: float = 0.0
    p_value: float = 1.0
    effect_size: float = 0.0
    max_improvement: float = 0.0
    recommendation: Recommendation = Recommendation.INCONCLUSIVE
    winner: Optional[str] = None
    next_steps: List[str] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=datetime.now)
    stop_reason: Optional[str] = None

    def get_variant_result(self, variant_id: str) -> Optional[VariantResult]:
        """Get the result row of a variant."""
        for result in self.variant_results:
            if result.variant_id == variant_id:
                return result
        return None


@dataclass
class CreateExperimentResult:
    """Outcome of creating an experiment."""
    experiment_id: str
    status: ExperimentStatus
