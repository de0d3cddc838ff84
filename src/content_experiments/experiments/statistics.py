"""Statistical analysis of experiment variants against the control.

Rate metrics (conversion, click-through, ...) are compared with a pooled
two-proportion z-test; continuous metrics (revenue, time on page, ...) with a
two-sample z-test on per-participant means. Both use the Abramowitz-Stegun
approximation of the standard normal CDF so no numerical library is needed.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..core.exceptions import ComputationError
from ..core.types import ExperimentConfig, MetricDirection, SuccessMetric, VariantResult

# Critical values of the standard normal for two-sided confidence levels.
Z_CRITICAL_VALUES = {
    0.90: 1.65,
    0.95: 1.96,
    0.99: 2.58,
}

DEFAULT_METRIC = SuccessMetric(name="conversion_rate")


def primary_metric_of(config: ExperimentConfig) -> SuccessMetric:
    """Definition of the metric an experiment is decided on."""
    name = config.primary_metric_name
    return (config.get_metric(name) if name else None) or DEFAULT_METRIC


def normal_cdf(x: float) -> float:
    """Approximate the standard normal cumulative distribution function."""
    a1 = 0.254829592
    a2 = -0.284496736
    a3 = 1.421413741
    a4 = -1.453152027
    a5 = 1.061405429
    p = 0.3275911

    sign = -1 if x < 0 else 1
    x = abs(x) / math.sqrt(2.0)

    t = 1.0 / (1.0 + p * x)
    y = 1.0 - (((((a5 * t + a4) * t) + a3) * t + a2) * t + a1) * t * math.exp(-x * x)

    return 0.5 * (1.0 + sign * y)


def two_tailed_p_value(z_score: float) -> float:
    """Two-tailed p-value of a z statistic, clamped to [0, 1]."""
    p_value = 2 * (1 - normal_cdf(abs(z_score)))
    return min(1.0, max(0.0, p_value))


def critical_value(confidence_level: float) -> float:
    """Critical z value for the closest supported confidence level."""
    closest = min(Z_CRITICAL_VALUES, key=lambda level: abs(level - confidence_level))
    return Z_CRITICAL_VALUES[closest]


@dataclass
class MetricSummary:
    """Per-participant summary of one metric for one variant."""
    n: int
    mean: float
    variance: float

    @property
    def std_dev(self) -> float:
        return math.sqrt(self.variance) if self.variance > 0 else 0.0


@dataclass
class VariantComparison:
    """Statistics of one variant relative to the control."""
    variant_id: str
    participants: int
    value: float
    standard_error: float
    confidence_interval: Tuple[float, float]
    z_score: float = 0.0
    p_value: float = 1.0
    effect_size: float = 0.0
    improvement: float = 0.0
    is_significant: bool = False


@dataclass
class StatisticalAnalysis:
    """Aggregate outcome of comparing every treatment with the control."""
    control: VariantComparison
    comparisons: Dict[str, VariantComparison] = field(default_factory=dict)
    is_significant: bool = False
    p_value: float = 1.0
    confidence: float = 0.0
    effect_size: float = 0.0
    max_improvement: float = 0.0

    def all_comparisons(self) -> List[VariantComparison]:
        """Control first, then treatments."""
        return [self.control] + list(self.comparisons.values())


class StatisticalAnalyzer:
    """Computes z-scores, p-values, intervals and effect sizes per variant."""

    def summarize(self, result: VariantResult, metric: SuccessMetric) -> MetricSummary:
        """Summarize a metric per participant of a variant.

        Participants without an observation count as zero, so for rate metrics
        the mean is the share of converting participants.
        """
        n = result.participants
        aggregate = result.metrics.get(metric.name)
        if n == 0 or aggregate is None or aggregate.count == 0:
            return MetricSummary(n=n, mean=0.0, variance=0.0)

        if metric.type.is_rate:
            rate = min(1.0, aggregate.total / n)
            return MetricSummary(n=n, mean=rate, variance=rate * (1 - rate))

        mean = aggregate.total / n
        if n < 2:
            return MetricSummary(n=n, mean=mean, variance=0.0)
        sum_of_squares = aggregate.m2 + aggregate.count * aggregate.mean ** 2
        variance = max(0.0, (sum_of_squares - n * mean ** 2) / (n - 1))
        return MetricSummary(n=n, mean=mean, variance=variance)

    def z_test_proportions(self, p1: float, n1: int, p2: float, n2: int) -> float:
        """Pooled two-proportion z statistic of p2 against p1."""
        if n1 == 0 or n2 == 0:
            return 0.0

        p_pooled = (p1 * n1 + p2 * n2) / (n1 + n2)
        standard_error = math.sqrt(p_pooled * (1 - p_pooled) * (1 / n1 + 1 / n2))

        return 0.0 if standard_error == 0 else (p2 - p1) / standard_error

    def z_test_means(self, control: MetricSummary, variant: MetricSummary) -> float:
        """Two-sample z statistic of the variant mean against the control mean."""
        if control.n == 0 or variant.n == 0:
            return 0.0

        standard_error = math.sqrt(control.variance / control.n + variant.variance / variant.n)
        return 0.0 if standard_error == 0 else (variant.mean - control.mean) / standard_error

    def effect_size(self, control: MetricSummary, variant: MetricSummary) -> float:
        """Cohen's d of the variant against the control."""
        dof = control.n + variant.n - 2
        if dof <= 0:
            return 0.0

        pooled_variance = ((control.n - 1) * control.variance + (variant.n - 1) * variant.variance) / dof
        pooled_std = math.sqrt(pooled_variance) if pooled_variance > 0 else 0.0

        return 0.0 if pooled_std == 0 else (variant.mean - control.mean) / pooled_std

    def confidence_interval(self, summary: MetricSummary, confidence_level: float) -> Tuple[float, float]:
        """Confidence interval of a mean: mean +/- z * sd / sqrt(n)."""
        if summary.n == 0:
            return (0.0, 0.0)

        margin = critical_value(confidence_level) * summary.std_dev / math.sqrt(summary.n)
        return (summary.mean - margin, summary.mean + margin)

    def improvement(self, control_value: float, variant_value: float, metric: SuccessMetric) -> float:
        """Percentage lift of the variant over the control in the desired direction."""
        if control_value == 0:
            return 0.0

        lift = (variant_value - control_value) / abs(control_value) * 100
        return -lift if metric.direction == MetricDirection.DECREASE else lift

    def describe(self, result: VariantResult, alpha: float, metric: SuccessMetric) -> VariantComparison:
        """Describe a variant on its own (used for the control row)."""
        summary = self.summarize(result, metric)
        return VariantComparison(
            variant_id=result.variant_id,
            participants=summary.n,
            value=summary.mean,
            standard_error=summary.std_dev / math.sqrt(summary.n) if summary.n else 0.0,
            confidence_interval=self.confidence_interval(summary, 1 - alpha),
        )

    def compare(
        self,
        control_result: VariantResult,
        variant_result: VariantResult,
        alpha: float,
        metric: Optional[SuccessMetric] = None,
    ) -> VariantComparison:
        """Compare one variant with the control.

        Args:
            control_result: Aggregated results of the control.
            variant_result: Aggregated results of the variant.
            alpha: Significance level.
            metric: Metric to compare on. Defaults to conversion rate.

        Returns:
            The variant's statistics relative to the control.
        """
        metric = metric or DEFAULT_METRIC
        control = self.summarize(control_result, metric)
        variant = self.summarize(variant_result, metric)

        if metric.type.is_rate:
            z_score = self.z_test_proportions(control.mean, control.n, variant.mean, variant.n)
        else:
            z_score = self.z_test_means(control, variant)

        p_value = two_tailed_p_value(z_score)
        described = self.describe(variant_result, alpha, metric)
        described.z_score = z_score
        described.p_value = p_value
        described.effect_size = self.effect_size(control, variant)
        described.improvement = self.improvement(control.mean, variant.mean, metric)
        described.is_significant = p_value < alpha
        return described

    def analyze(
        self,
        variant_results: List[VariantResult],
        control_result: Optional[VariantResult],
        alpha: float,
        metric: Optional[SuccessMetric] = None,
    ) -> StatisticalAnalysis:
        """Analyze every treatment against the control.

        Args:
            variant_results: Results of all variants (the control may be included).
            control_result: Results of the control variant.
            alpha: Significance level.
            metric: Metric to analyze on. Defaults to conversion rate.

        Returns:
            Per-variant comparisons and the experiment-level summary.

        Raises:
            ComputationError: If there is no control, no treatment, or alpha is invalid.
        """
        if control_result is None:
            raise ComputationError("Cannot analyze experiment without a control result")
        if not 0 < alpha < 1:
            raise ComputationError(f"Significance level must be between 0 and 1, got {alpha}",
                                   {"alpha": alpha})

        treatments = [r for r in variant_results if r.variant_id != control_result.variant_id]
        if not treatments:
            raise ComputationError(
                "Cannot analyze experiment without treatment results",
                {"experiment_id": control_result.experiment_id},
            )

        metric = metric or DEFAULT_METRIC
        analysis = StatisticalAnalysis(control=self.describe(control_result, alpha, metric))

        best_abs_improvement = -1.0
        for treatment in treatments:
            comparison = self.compare(control_result, treatment, alpha, metric)
            analysis.comparisons[treatment.variant_id] = comparison

            if comparison.is_significant:
                analysis.is_significant = True
            analysis.p_value = min(analysis.p_value, comparison.p_value)

            if abs(comparison.improvement) > best_abs_improvement:
                best_abs_improvement = abs(comparison.improvement)
                analysis.max_improvement = comparison.improvement
                analysis.effect_size = comparison.effect_size

        analysis.confidence = (1 - analysis.p_value) * 100
        return analysis

    @staticmethod
    def apply(result: VariantResult, comparison: VariantComparison) -> None:
        """Copy a comparison's statistics onto a variant result row."""
        result.value = comparison.value
        result.standard_error = comparison.standard_error
        result.confidence_interval = comparison.confidence_interval
        result.z_score = comparison.z_score
        result.p_value = comparison.p_value
        result.effect_size = comparison.effect_size
        result.improvement = comparison.improvement
        result.is_significant = comparison.is_significant
