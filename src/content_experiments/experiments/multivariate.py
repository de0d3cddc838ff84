"""Multivariate test generation from factor combinations."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..core.exceptions import ValidationError
from ..core.types import ExperimentConfig, SuccessMetric, Variant


class MultivariateFactor(BaseModel):
    """One dimension of a multivariate test and the levels it takes."""
    name: str
    values: List[Any] = Field(default_factory=list)


def count_combinations(factors: List[MultivariateFactor]) -> int:
    """Number of variants the factors expand to."""
    if not factors:
        return 0

    total = 1
    for factor in factors:
        total *= len(factor.values)
    return total


def generate_combinations(factors: List[MultivariateFactor]) -> List[Dict[str, Any]]:
    """Cartesian product of the factors, first factor varying slowest."""
    if not factors:
        return [{}]

    first, rest = factors[0], factors[1:]
    tails = generate_combinations(rest)

    combinations = []
    for value in first.values:
        for tail in tails:
            combinations.append({first.name: value, **tail})
    return combinations


class MultivariateGenerator:
    """Builds experiment definitions covering every factor combination."""

    def __init__(self, max_variants: int = 32):
        self.max_variants = max_variants

    def build_config(
        self,
        name: str,
        factors: List[MultivariateFactor],
        base_config: Optional[ExperimentConfig] = None,
    ) -> ExperimentConfig:
        """Expand factors into a full experiment definition.

        Args:
            name: Name of the generated experiment.
            factors: Factors to combine.
            base_config: Definition whose settings (metrics, sample size,
                duration, ...) are inherited by the generated experiment.

        Returns:
            The definition with one variant per combination and an equal split.

        Raises:
            ValidationError: If there are no factors, a factor has no values,
                or the combination count exceeds the variant limit.
        """
        violations = []
        if not factors:
            violations.append("At least one factor is required")
        for factor in factors:
            if not factor.values:
                violations.append(f"Factor '{factor.name}' has no values")
        if violations:
            raise ValidationError(violations, {"experiment_name": name})

        # Checked before generating so an explosive product is never materialized.
        variant_count = count_combinations(factors)
        if variant_count > self.max_variants:
            raise ValidationError(
                [f"Factors produce {variant_count} combinations, more than the maximum of {self.max_variants}"],
                {"experiment_name": name, "variant_count": variant_count},
            )

        combinations = generate_combinations(factors)
        share = 100.0 / variant_count

        variants = [
            Variant(
                id=f"variant_{index}",
                name=f"Variant {index + 1}",
                is_control=index == 0,
                traffic_allocation=share,
                description=", ".join(f"{key}: {value}" for key, value in combination.items()),
                content=combination,
            )
            for index, combination in enumerate(combinations)
        ]

        base = base_config or ExperimentConfig()
        return base.model_copy(update={
            "success_metrics": base.success_metrics or [SuccessMetric(name="conversion_rate")],
            "name": name,
            "description": base.description or f"Multivariate test of {', '.join(f.name for f in factors)}",
            "variants": variants,
            "traffic_split": [share] * variant_count,
        }, deep=True)
