"""Unit tests for multivariate test generation."""

import pytest

from content_experiments.core.exceptions import ValidationError
from content_experiments.core.types import ExperimentConfig, SuccessMetric
from content_experiments.experiments.multivariate import (
    MultivariateFactor,
    MultivariateGenerator,
    count_combinations,
    generate_combinations,
)
from content_experiments.experiments.validator import ExperimentValidator


@pytest.fixture
def factors():
    return [
        MultivariateFactor(name="headline", values=["A", "B"]),
        MultivariateFactor(name="cta", values=["x", "y", "z"]),
    ]


class TestCombinations:
    """Test the cartesian product."""

    def test_all_combinations_in_order(self, factors):
        combinations = generate_combinations(factors)

        assert len(combinations) == 6
        assert combinations[0] == {"headline": "A", "cta": "x"}
        assert combinations[2] == {"headline": "A", "cta": "z"}
        assert combinations[3] == {"headline": "B", "cta": "x"}
        assert len({tuple(sorted(c.items())) for c in combinations}) == 6

    def test_count_combinations(self, factors):
        assert count_combinations(factors) == 6
        assert count_combinations([]) == 0


class TestMultivariateGenerator:
    """Test building experiment definitions from factors."""

    def test_build_config(self, factors):
        config = MultivariateGenerator().build_config("Landing page", factors)

        assert config.name == "Landing page"
        assert len(config.variants) == 6
        assert [v.id for v in config.variants] == [f"variant_{i}" for i in range(6)]
        assert config.variants[0].name == "Variant 1"
        assert [v.is_control for v in config.variants] == [True] + [False] * 5
        assert config.variants[0].description == "headline: A, cta: x"
        assert config.variants[5].content == {"headline": "B", "cta": "z"}
        assert all(share == pytest.approx(16.67, abs=0.01) for share in config.traffic_split)
        assert sum(config.traffic_split) == pytest.approx(100.0)

    def test_generated_config_is_valid(self, factors):
        config = MultivariateGenerator().build_config("Landing page", factors)

        assert ExperimentValidator().validate(config).is_valid

    def test_inherits_base_config(self, factors):
        base = ExperimentConfig(
            description="Base",
            success_metrics=[SuccessMetric(name="click_through_rate", type="click_through_rate")],
            minimum_sample_size=500,
            duration_days=21,
        )

        config = MultivariateGenerator().build_config("Landing page", factors, base)

        assert config.minimum_sample_size == 500
        assert config.duration_days == 21
        assert config.primary_metric_name == "click_through_rate"
        assert base.variants == []

    def test_too_many_combinations(self):
        factors = [MultivariateFactor(name=f"f{i}", values=[1, 2, 3, 4]) for i in range(3)]

        with pytest.raises(ValidationError) as exc_info:
            MultivariateGenerator(max_variants=32).build_config("Too big", factors)

        assert "64 combinations" in exc_info.value.violations[0]

    def test_limit_is_configurable(self, factors):
        with pytest.raises(ValidationError):
            MultivariateGenerator(max_variants=5).build_config("Limited", factors)

    def test_no_factors(self):
        with pytest.raises(ValidationError):
            MultivariateGenerator().build_config("Empty", [])

    def test_empty_factor(self):
        factors = [MultivariateFactor(name="headline", values=["A", "B"]),
                   MultivariateFactor(name="cta", values=[])]

        with pytest.raises(ValidationError) as exc_info:
            MultivariateGenerator().build_config("Empty factor", factors)

        assert exc_info.value.violations == ["Factor 'cta' has no values"]
