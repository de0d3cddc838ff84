"""Unit tests for the statistical analyzer."""

import pytest

from content_experiments.core.exceptions import ComputationError
from content_experiments.core.types import (
    MetricAggregate,
    MetricDirection,
    MetricType,
    SuccessMetric,
    VariantResult,
)
from content_experiments.experiments.statistics import (
    MetricSummary,
    StatisticalAnalyzer,
    critical_value,
    normal_cdf,
    two_tailed_p_value,
)


@pytest.fixture
def analyzer():
    """Create statistical analyzer."""
    return StatisticalAnalyzer()


class TestNormalDistribution:
    """Test the normal approximation helpers."""

    def test_normal_cdf_reference_points(self):
        assert normal_cdf(0) == pytest.approx(0.5, abs=1e-6)
        assert normal_cdf(1.96) == pytest.approx(0.975, abs=1e-3)
        assert normal_cdf(-1.96) == pytest.approx(0.025, abs=1e-3)
        assert normal_cdf(8) == pytest.approx(1.0, abs=1e-9)

    def test_p_value_is_clamped(self):
        assert two_tailed_p_value(0.0) == 1.0
        assert 0.0 <= two_tailed_p_value(50.0) <= 1e-9

    def test_p_value_is_symmetric(self):
        assert two_tailed_p_value(2.5) == pytest.approx(two_tailed_p_value(-2.5))

    def test_critical_values(self):
        assert critical_value(0.95) == 1.96
        assert critical_value(0.99) == 2.58
        assert critical_value(0.90) == 1.65


class TestProportionTest:
    """Test the two-proportion z-test on rate metrics."""

    def test_z_score_for_known_rates(self, analyzer):
        z = analyzer.z_test_proportions(0.10, 1000, 0.15, 1000)

        assert z == pytest.approx(3.38, abs=0.01)
        assert two_tailed_p_value(z) < 0.01

    def test_zero_sample_gives_zero_z(self, analyzer):
        assert analyzer.z_test_proportions(0.1, 0, 0.2, 100) == 0.0
        assert analyzer.z_test_proportions(0.0, 100, 0.0, 100) == 0.0

    def test_compare_known_rates(self, analyzer, make_result):
        control = make_result("control", 1000, 100, is_control=True)
        treatment = make_result("treatment", 1000, 150)

        comparison = analyzer.compare(control, treatment, alpha=0.05)

        assert comparison.value == pytest.approx(0.15)
        assert comparison.z_score == pytest.approx(3.38, abs=0.01)
        assert comparison.p_value < 0.01
        assert comparison.is_significant is True
        assert comparison.improvement == pytest.approx(50.0)
        assert comparison.effect_size == pytest.approx(0.1516, abs=1e-3)

    def test_no_data_is_not_significant(self, analyzer, make_result):
        control = make_result("control", 0, 0, is_control=True)
        treatment = make_result("treatment", 0, 0)

        comparison = analyzer.compare(control, treatment, alpha=0.05)

        assert comparison.z_score == 0.0
        assert comparison.p_value == 1.0
        assert comparison.is_significant is False
        assert comparison.improvement == 0.0


class TestContinuousMetrics:
    """Test summaries and tests on continuous metrics."""

    def test_summary_counts_non_converting_participants_as_zero(self, analyzer):
        aggregate = MetricAggregate()
        for value in (10.0, 20.0):
            aggregate.update(value)
        result = VariantResult(experiment_id="exp-1", variant_id="control", participants=4,
                               metrics={"revenue": aggregate})

        summary = analyzer.summarize(result, SuccessMetric(name="revenue", type=MetricType.REVENUE))

        assert summary.n == 4
        assert summary.mean == pytest.approx(7.5)
        assert summary.variance == pytest.approx(275.0 / 3)

    def test_rate_summary_is_capped_at_one(self, analyzer, make_result):
        result = make_result("treatment", 10, 12)

        summary = analyzer.summarize(result, SuccessMetric(name="conversion_rate"))

        assert summary.mean == 1.0
        assert summary.variance == 0.0

    def test_z_test_means(self, analyzer):
        control = MetricSummary(n=100, mean=10.0, variance=25.0)
        variant = MetricSummary(n=100, mean=12.0, variance=25.0)

        z = analyzer.z_test_means(control, variant)

        assert z == pytest.approx(2.0 / (0.5 ** 0.5))

    def test_effect_size_with_pooled_deviation(self, analyzer):
        control = MetricSummary(n=50, mean=10.0, variance=4.0)
        variant = MetricSummary(n=50, mean=11.0, variance=4.0)

        assert analyzer.effect_size(control, variant) == pytest.approx(0.5)


class TestIntervalsAndImprovement:
    """Test confidence intervals and relative improvement."""

    def test_confidence_interval_of_rate(self, analyzer):
        summary = MetricSummary(n=1000, mean=0.1, variance=0.09)

        lower, upper = analyzer.confidence_interval(summary, 0.95)

        assert lower == pytest.approx(0.1 - 1.96 * 0.3 / 1000 ** 0.5)
        assert upper == pytest.approx(0.1 + 1.96 * 0.3 / 1000 ** 0.5)

    def test_confidence_interval_widens_with_confidence(self, analyzer):
        summary = MetricSummary(n=400, mean=0.2, variance=0.16)

        narrow = analyzer.confidence_interval(summary, 0.90)
        wide = analyzer.confidence_interval(summary, 0.99)

        assert wide[1] - wide[0] > narrow[1] - narrow[0]

    def test_empty_confidence_interval(self, analyzer):
        assert analyzer.confidence_interval(MetricSummary(n=0, mean=0.0, variance=0.0), 0.95) == (0.0, 0.0)

    def test_improvement(self, analyzer):
        metric = SuccessMetric(name="conversion_rate")

        assert analyzer.improvement(0.10, 0.15, metric) == pytest.approx(50.0)
        assert analyzer.improvement(0.10, 0.05, metric) == pytest.approx(-50.0)
        assert analyzer.improvement(0.0, 0.05, metric) == 0.0

    def test_improvement_of_decrease_metric(self, analyzer):
        metric = SuccessMetric(name="bounce_rate", type=MetricType.BOUNCE_RATE,
                               direction=MetricDirection.DECREASE)

        assert analyzer.improvement(0.50, 0.40, metric) == pytest.approx(20.0)


class TestAnalyze:
    """Test the experiment-level analysis."""

    def test_analyze_summarizes_treatments(self, analyzer, make_result):
        control = make_result("control", 1000, 100, is_control=True)
        strong = make_result("strong", 1000, 150)
        flat = make_result("flat", 1000, 101)

        analysis = analyzer.analyze([control, strong, flat], control, alpha=0.05)

        assert set(analysis.comparisons) == {"strong", "flat"}
        assert analysis.is_significant is True
        assert analysis.p_value == analysis.comparisons["strong"].p_value
        assert analysis.confidence == pytest.approx((1 - analysis.p_value) * 100)
        assert analysis.max_improvement == pytest.approx(50.0)
        assert analysis.control.variant_id == "control"
        assert analysis.comparisons["flat"].is_significant is False

    def test_analyze_without_control(self, analyzer, make_result):
        with pytest.raises(ComputationError):
            analyzer.analyze([make_result("treatment", 10, 1)], None, alpha=0.05)

    def test_analyze_without_treatment(self, analyzer, make_result):
        control = make_result("control", 10, 1, is_control=True)

        with pytest.raises(ComputationError):
            analyzer.analyze([control], control, alpha=0.05)

    @pytest.mark.parametrize("alpha", [0.0, 1.0, 1.5, -0.1])
    def test_analyze_with_invalid_alpha(self, analyzer, make_result, alpha):
        control = make_result("control", 10, 1, is_control=True)

        with pytest.raises(ComputationError):
            analyzer.analyze([control, make_result("treatment", 10, 2)], control, alpha=alpha)

    def test_apply_copies_statistics(self, analyzer, make_result):
        control = make_result("control", 1000, 100, is_control=True)
        treatment = make_result("treatment", 1000, 150)

        comparison = analyzer.compare(control, treatment, alpha=0.05)
        analyzer.apply(treatment, comparison)

        assert treatment.is_significant is True
        assert treatment.p_value == comparison.p_value
        assert treatment.confidence_interval == comparison.confidence_interval
