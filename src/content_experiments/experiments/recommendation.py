"""Winner selection and recommendations derived from an analysis."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..core.types import Recommendation, VariantResult

# Effect sizes below this suggest the variations are too similar to matter.
SMALL_EFFECT_SIZE = 0.02


class OptimizationType(str, Enum):
    """Kind of follow-up action suggested by an experiment."""
    IMPLEMENT_WINNER = "implement_winner"
    AVOID_PATTERN = "avoid_pattern"
    EXTEND_TEST = "extend_test"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class OptimizationRecommendation:
    """A concrete follow-up action for the content owner."""
    type: OptimizationType
    title: str
    description: str
    priority: Priority
    confidence: float
    expected_impact: float = 0.0
    variant_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "confidence": self.confidence,
            "expected_impact": self.expected_impact,
            "variant_id": self.variant_id,
            "metadata": self.metadata,
        }


class RecommendationEngine:
    """Turns per-variant statistics into a recommendation and a winner."""

    def rank_candidates(self, results: List[VariantResult]) -> List[VariantResult]:
        """Significant treatments that beat the control, best first.

        Ties on improvement go to the larger sample, then to the smaller ID.
        """
        candidates = [
            r for r in results
            if r.is_significant and not r.is_control and r.improvement > 0
        ]
        return sorted(candidates, key=lambda r: (-r.improvement, -r.participants, r.variant_id))

    def recommend(
        self,
        results: List[VariantResult],
        minimum_sample_size: int,
    ) -> Tuple[Recommendation, Optional[str]]:
        """Choose a recommendation and the winning variant, if any.

        Args:
            results: Variant results with statistics already applied.
            minimum_sample_size: Participants a winner needs before it is trusted.

        Returns:
            The recommendation and the winner's variant ID (None without a winner).
        """
        if not any(r.is_significant and not r.is_control for r in results):
            return Recommendation.INCONCLUSIVE, None

        candidates = self.rank_candidates(results)
        if not candidates:
            # Every significant treatment is worse than the control.
            return Recommendation.STOP_TEST, None

        best = candidates[0]
        if best.participants < minimum_sample_size:
            return Recommendation.CONTINUE_TESTING, None

        return Recommendation.IMPLEMENT_WINNER, best.variant_id

    def next_steps(self, recommendation: Recommendation, effect_size: float) -> List[str]:
        """Human readable next steps for a recommendation."""
        if recommendation == Recommendation.IMPLEMENT_WINNER:
            steps = [
                "Implement the winning variant",
                "Monitor performance after implementation",
            ]
        elif recommendation == Recommendation.STOP_TEST:
            steps = [
                "Keep the control variant",
                "Stop the test and review why the treatments underperformed",
            ]
        else:
            steps = [
                "Continue test to gather more data",
                "Consider extending test duration or increasing traffic",
            ]

        if abs(effect_size) < SMALL_EFFECT_SIZE:
            steps.append("Consider testing more dramatic variations")

        return steps

    def optimization_recommendations(
        self,
        results: List[VariantResult],
        recommendation: Recommendation,
        winner: Optional[str],
        confidence: float,
        primary_metric: Optional[str],
    ) -> List[OptimizationRecommendation]:
        """Follow-up actions: ship the winner, avoid losing patterns, extend the test."""
        recommendations: List[OptimizationRecommendation] = []
        by_id = {r.variant_id: r for r in results}

        if recommendation == Recommendation.IMPLEMENT_WINNER and winner in by_id:
            winning = by_id[winner]
            recommendations.append(OptimizationRecommendation(
                type=OptimizationType.IMPLEMENT_WINNER,
                title=f"Implement Winning Variant: {winner}",
                description=(
                    f"The winning variant shows a {winning.improvement:.2f}% improvement "
                    f"in {primary_metric or 'the primary metric'}"
                ),
                priority=Priority.HIGH,
                confidence=confidence,
                expected_impact=winning.improvement,
                variant_id=winner,
            ))

        for result in results:
            if not result.is_control and result.improvement < 0:
                recommendations.append(OptimizationRecommendation(
                    type=OptimizationType.AVOID_PATTERN,
                    title=f"Avoid Pattern from {result.variant_id}",
                    description=f"This variant performed {abs(result.improvement):.2f}% worse",
                    priority=Priority.MEDIUM,
                    confidence=80.0,
                    expected_impact=result.improvement,
                    variant_id=result.variant_id,
                    metadata={"is_significant": result.is_significant},
                ))

        if recommendation in (Recommendation.CONTINUE_TESTING, Recommendation.INCONCLUSIVE):
            recommendations.append(OptimizationRecommendation(
                type=OptimizationType.EXTEND_TEST,
                title="Extend Test Duration",
                description=(
                    "Current results are inconclusive. Consider extending the test "
                    "duration or increasing sample size."
                ),
                priority=Priority.MEDIUM,
                confidence=60.0,
            ))

        return recommendations
