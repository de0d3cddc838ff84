"""Unit tests for experiment validation."""

import pytest

from content_experiments.core.exceptions import ValidationError
from content_experiments.core.types import ExperimentConfig, SuccessMetric, Variant
from content_experiments.experiments.validator import ExperimentValidator


@pytest.fixture
def validator():
    """Create experiment validator."""
    return ExperimentValidator()


def variants(count, controls=1):
    return [Variant(id=f"v{i}", name=f"Variant {i}", is_control=i < controls) for i in range(count)]


class TestExperimentValidator:
    """Test structural validation of experiment definitions."""

    def test_valid_config(self, validator, sample_config):
        result = validator.validate(sample_config)

        assert result.is_valid
        assert result.violations == []

    def test_violations_are_accumulated(self, validator):
        config = ExperimentConfig(
            name="",
            variants=variants(1, controls=0),
            traffic_split=[90.0, 5.0],
            success_metrics=[],
            duration_days=120,
            minimum_sample_size=50,
        )

        result = validator.validate(config)

        assert not result.is_valid
        assert "Experiment name is required" in result.violations
        assert "Experiment must have at least 2 variants" in result.violations
        assert "Exactly one variant must be marked as control (found 0)" in result.violations
        assert "At least one success metric is required" in result.violations
        assert "Number of variants (1) must match traffic split length (2)" in result.violations
        assert "Traffic split must sum to 100% (got 95%)" in result.violations
        assert "Test duration must be between 1 and 90 days" in result.violations
        assert "Minimum sample size must be at least 100" in result.violations

    def test_validate_or_raise_carries_all_violations(self, validator, sample_config):
        config = sample_config.model_copy(update={"traffic_split": [60.0, 60.0], "duration_days": 0})

        with pytest.raises(ValidationError) as exc_info:
            validator.validate_or_raise(config)

        assert len(exc_info.value.violations) == 2
        assert exc_info.value.details["experiment_name"] == "Headline test"
        assert exc_info.value.to_dict()["code"] == "VALIDATION_FAILED"

    def test_split_tolerance(self, validator, sample_config):
        config = sample_config.model_copy(update={"traffic_split": [50.005, 50.0]})
        assert validator.validate(config).is_valid

        config = sample_config.model_copy(update={"traffic_split": [50.02, 50.0]})
        assert not validator.validate(config).is_valid

    def test_two_controls(self, validator, sample_config):
        config = sample_config.model_copy(update={"variants": variants(2, controls=2)})

        assert "Exactly one variant must be marked as control (found 2)" in validator.validate(config).violations

    def test_duplicate_variant_ids(self, validator, sample_config):
        duplicated = [Variant(id="same", name="A", is_control=True), Variant(id="same", name="B")]
        config = sample_config.model_copy(update={"variants": duplicated})

        assert "Variant IDs must be unique" in validator.validate(config).violations

    def test_unknown_primary_metric(self, validator, sample_config):
        config = sample_config.model_copy(update={"primary_metric": "signups"})

        assert "Primary metric 'signups' is not one of the success metrics" in validator.validate(config).violations

    def test_negative_share(self, validator, sample_config):
        config = sample_config.model_copy(update={"traffic_split": [110.0, -10.0]})

        assert "Traffic split percentages cannot be negative" in validator.validate(config).violations

    @pytest.mark.parametrize("alpha", [0.0, 1.0, 1.2])
    def test_invalid_significance_level(self, validator, sample_config, alpha):
        config = sample_config.model_copy(update={"significance_level": alpha})

        assert "Significance level must be between 0 and 1" in validator.validate(config).violations

    def test_duration_bounds_are_inclusive(self, validator, sample_config):
        for days in (1, 90):
            assert validator.validate(sample_config.model_copy(update={"duration_days": days})).is_valid

    def test_max_variants(self, sample_config):
        config = sample_config.model_copy(update={
            "variants": variants(4),
            "traffic_split": [25.0] * 4,
        })

        violations = ExperimentValidator(max_variants=3).validate(config).violations

        assert violations == ["Experiment has 4 variants, more than the maximum of 3"]

    def test_secondary_metrics_default_primary(self, validator):
        config = ExperimentConfig(
            name="Metrics",
            variants=variants(2),
            traffic_split=[50.0, 50.0],
            success_metrics=[SuccessMetric(name="conversion_rate"), SuccessMetric(name="revenue", type="revenue")],
        )

        assert validator.validate(config).is_valid
        assert config.primary_metric_name == "conversion_rate"
        assert config.secondary_metrics == ["revenue"]
