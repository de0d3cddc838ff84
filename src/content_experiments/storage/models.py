"""SQLAlchemy models for the storage layer."""

from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

from ..core.types import (
    ConversionEvent,
    Experiment,
    Variant,
    VariantResult,
    VisitorAssignment,
)

Base = declarative_base()


class ExperimentModel(Base):
    """SQLAlchemy model for experiments."""

    __tablename__ = "experiments"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    content_id = Column(String, nullable=True)
    status = Column(String, nullable=False, index=True)
    traffic_split = Column(JSON, default=list)
    success_metrics = Column(JSON, default=list)
    primary_metric = Column(String, nullable=True)
    significance_level = Column(Float, nullable=False)
    minimum_sample_size = Column(Integer, nullable=False)
    minimum_detectable_effect = Column(Float, nullable=False)
    duration_days = Column(Integer, nullable=False)
    created_by = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    stopped_at = Column(DateTime, nullable=True)
    stop_reason = Column(String, nullable=True)
    winner_variant_id = Column(String, nullable=True)
    recommendation = Column(String, nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary (without variants)."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "content_id": self.content_id,
            "status": self.status,
            "traffic_split": self.traffic_split or [],
            "success_metrics": self.success_metrics or [],
            "primary_metric": self.primary_metric,
            "significance_level": self.significance_level,
            "minimum_sample_size": self.minimum_sample_size,
            "minimum_detectable_effect": self.minimum_detectable_effect,
            "duration_days": self.duration_days,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "stopped_at": self.stopped_at,
            "stop_reason": self.stop_reason,
            "winner_variant_id": self.winner_variant_id,
            "recommendation": self.recommendation,
        }

    def to_experiment(self, variants: List["VariantModel"]) -> Experiment:
        """Build the domain experiment from this row and its variant rows."""
        data = self.to_dict()
        data["variants"] = [variant.to_variant() for variant in variants]
        return Experiment(**data)

    @classmethod
    def from_experiment(cls, experiment: Experiment) -> "ExperimentModel":
        """Create model from a domain experiment."""
        data = experiment.model_dump(mode="json", exclude={"variants"})
        for field in ["created_at", "start_date", "end_date", "stopped_at"]:
            data[field] = getattr(experiment, field)
        return cls(**data)


class VariantModel(Base):
    """SQLAlchemy model for experiment variants."""

    __tablename__ = "variants"

    experiment_id = Column(String, ForeignKey("experiments.id"), primary_key=True)
    id = Column(String, primary_key=True)
    position = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    is_control = Column(Boolean, default=False)
    traffic_allocation = Column(Float, default=0.0)
    description = Column(Text, nullable=True)
    content = Column(JSON, default=dict)

    def to_variant(self) -> Variant:
        return Variant(
            id=self.id,
            name=self.name,
            is_control=bool(self.is_control),
            traffic_allocation=self.traffic_allocation,
            description=self.description,
            content=self.content or {},
        )

    @classmethod
    def from_variant(cls, experiment_id: str, position: int, variant: Variant) -> "VariantModel":
        return cls(
            experiment_id=experiment_id,
            id=variant.id,
            position=position,
            name=variant.name,
            is_control=variant.is_control,
            traffic_allocation=variant.traffic_allocation,
            description=variant.description,
            content=variant.content,
        )


class VisitorAssignmentModel(Base):
    """SQLAlchemy model for sticky visitor assignments."""

    __tablename__ = "visitor_assignments"

    experiment_id = Column(String, ForeignKey("experiments.id"), primary_key=True)
    visitor_id = Column(String, primary_key=True)
    variant_id = Column(String, nullable=False)
    assigned_at = Column(DateTime, default=datetime.now)

    def to_assignment(self) -> VisitorAssignment:
        return VisitorAssignment(
            experiment_id=self.experiment_id,
            visitor_id=self.visitor_id,
            variant_id=self.variant_id,
            assigned_at=self.assigned_at,
        )

    @classmethod
    def from_assignment(cls, assignment: VisitorAssignment) -> "VisitorAssignmentModel":
        return cls(**assignment.model_dump())


class VisitorConversionModel(Base):
    """SQLAlchemy model recording the first conversion of a visitor on a metric."""

    __tablename__ = "visitor_conversions"

    experiment_id = Column(String, ForeignKey("experiments.id"), primary_key=True)
    visitor_id = Column(String, primary_key=True)
    metric_name = Column(String, primary_key=True)
    variant_id = Column(String, nullable=False)
    value = Column(Float, default=1.0)
    converted_at = Column(DateTime, default=datetime.now)

    @classmethod
    def from_event(cls, event: ConversionEvent) -> "VisitorConversionModel":
        return cls(
            experiment_id=event.experiment_id,
            visitor_id=event.visitor_id,
            metric_name=event.metric_name,
            variant_id=event.variant_id,
            value=event.value,
            converted_at=event.timestamp,
        )


class VariantResultModel(Base):
    """SQLAlchemy model for aggregated variant results."""

    __tablename__ = "variant_results"

    experiment_id = Column(String, ForeignKey("experiments.id"), primary_key=True)
    variant_id = Column(String, primary_key=True)
    is_control = Column(Boolean, default=False)
    participants = Column(Integer, default=0)
    metrics = Column(JSON, default=dict)
    value = Column(Float, default=0.0)
    standard_error = Column(Float, default=0.0)
    ci_lower = Column(Float, default=0.0)
    ci_upper = Column(Float, default=0.0)
    z_score = Column(Float, default=0.0)
    p_value = Column(Float, default=1.0)
    effect_size = Column(Float, default=0.0)
    improvement = Column(Float, default=0.0)
    is_significant = Column(Boolean, default=False)
    is_winner = Column(Boolean, default=False)
    updated_at = Column(DateTime, default=datetime.now)

    def to_result(self) -> VariantResult:
        return VariantResult(
            experiment_id=self.experiment_id,
            variant_id=self.variant_id,
            is_control=bool(self.is_control),
            participants=self.participants,
            metrics=self.metrics or {},
            value=self.value,
            standard_error=self.standard_error,
            confidence_interval=(self.ci_lower, self.ci_upper),
            z_score=self.z_score,
            p_value=self.p_value,
            effect_size=self.effect_size,
            improvement=self.improvement,
            is_significant=bool(self.is_significant),
            is_winner=bool(self.is_winner),
            updated_at=self.updated_at,
        )

    def update_from(self, result: VariantResult) -> None:
        """Copy the fields of a domain result onto this row."""
        self.is_control = result.is_control
        self.participants = result.participants
        self.metrics = {name: agg.model_dump() for name, agg in result.metrics.items()}
        self.value = result.value
        self.standard_error = result.standard_error
        self.ci_lower, self.ci_upper = result.confidence_interval
        self.z_score = result.z_score
        self.p_value = result.p_value
        self.effect_size = result.effect_size
        self.improvement = result.improvement
        self.is_significant = result.is_significant
        self.is_winner = result.is_winner
        self.updated_at = result.updated_at

    @classmethod
    def from_result(cls, result: VariantResult) -> "VariantResultModel":
        model = cls(experiment_id=result.experiment_id, variant_id=result.variant_id)
        model.update_from(result)
        return model
