"""Structural validation of experiment definitions."""

from dataclasses import dataclass, field
from typing import List

from ..core.exceptions import ValidationError
from ..core.types import ExperimentConfig

TRAFFIC_SPLIT_TOLERANCE = 0.01
MIN_DURATION_DAYS = 1
MAX_DURATION_DAYS = 90
MIN_SAMPLE_SIZE = 100


@dataclass
class ValidationResult:
    """Outcome of validating an experiment definition."""
    violations: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.violations


class ExperimentValidator:
    """Checks an experiment definition before it is created or started."""

    def __init__(self, max_variants: int = 32):
        """Initialize the validator.

        Args:
            max_variants: Maximum number of variants accepted in one experiment.
        """
        self.max_variants = max_variants

    def validate(self, config: ExperimentConfig) -> ValidationResult:
        """Validate a definition, collecting every violation found.

        Args:
            config: The experiment definition to check.

        Returns:
            Validation result listing all violations.
        """
        violations: List[str] = []

        if not config.name or not config.name.strip():
            violations.append("Experiment name is required")

        variant_count = len(config.variants)
        if variant_count < 2:
            violations.append("Experiment must have at least 2 variants")
        if variant_count > self.max_variants:
            violations.append(
                f"Experiment has {variant_count} variants, more than the maximum of {self.max_variants}"
            )

        variant_ids = [v.id for v in config.variants]
        if len(set(variant_ids)) != len(variant_ids):
            violations.append("Variant IDs must be unique")

        control_count = sum(1 for v in config.variants if v.is_control)
        if control_count != 1:
            violations.append(f"Exactly one variant must be marked as control (found {control_count})")

        if not config.success_metrics:
            violations.append("At least one success metric is required")
        elif config.primary_metric and config.get_metric(config.primary_metric) is None:
            violations.append(f"Primary metric '{config.primary_metric}' is not one of the success metrics")

        if len(config.traffic_split) != variant_count:
            violations.append(
                f"Number of variants ({variant_count}) must match traffic split length ({len(config.traffic_split)})"
            )

        total_split = sum(config.traffic_split)
        if abs(total_split - 100.0) > TRAFFIC_SPLIT_TOLERANCE:
            violations.append(f"Traffic split must sum to 100% (got {total_split:g}%)")

        if any(share < 0 for share in config.traffic_split):
            violations.append("Traffic split percentages cannot be negative")

        if not MIN_DURATION_DAYS <= config.duration_days <= MAX_DURATION_DAYS:
            violations.append(
                f"Test duration must be between {MIN_DURATION_DAYS} and {MAX_DURATION_DAYS} days"
            )

        if config.minimum_sample_size < MIN_SAMPLE_SIZE:
            violations.append(f"Minimum sample size must be at least {MIN_SAMPLE_SIZE}")

        if not 0 < config.significance_level < 1:
            violations.append("Significance level must be between 0 and 1")

        return ValidationResult(violations=violations)

    def validate_or_raise(self, config: ExperimentConfig) -> None:
        """Validate a definition and raise if anything is wrong.

        Raises:
            ValidationError: With every violation found.
        """
        result = self.validate(config)
        if not result.is_valid:
            raise ValidationError(result.violations, {"experiment_name": config.name})
