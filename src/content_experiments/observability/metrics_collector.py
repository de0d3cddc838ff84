"""Metrics collection and reporting for the application."""

import math
import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Tuple, Union

from ..config import ConfigManager


TagKey = Tuple[Tuple[str, str], ...]


def _tag_key(tags: Dict[str, str]) -> TagKey:
    return tuple(sorted(tags.items()))


@dataclass
class MetricPoint:
    """Represents a single metric measurement."""
    name: str
    value: Union[int, float]
    timestamp: datetime = field(default_factory=datetime.now)
    tags: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


class MetricsCollector:
    """Collects counters, gauges and histograms emitted by the engine."""

    def __init__(
        self,
        config: Optional[ConfigManager] = None,
        max_points_per_metric: int = 1000,
    ):
        """Initialize the metrics collector.

        Args:
            config: Configuration manager instance.
            max_points_per_metric: Maximum number of points to keep per metric.
        """
        self.config = config
        if config is not None:
            max_points_per_metric = config.get("metrics.max_points_per_metric", max_points_per_metric)
            self.enabled = config.get("metrics.enabled", True)
        else:
            self.enabled = True
        self.max_points_per_metric = max_points_per_metric

        self._metrics: Dict[str, Deque[MetricPoint]] = defaultdict(lambda: deque(maxlen=max_points_per_metric))
        self._counters: Dict[str, int] = defaultdict(int)
        self._tagged_counters: Dict[Tuple[str, TagKey], int] = defaultdict(int)
        self._gauges: Dict[str, Union[int, float]] = {}
        self._histograms: Dict[str, Deque[Union[int, float]]] = defaultdict(
            lambda: deque(maxlen=max_points_per_metric)
        )

        self._lock = threading.Lock()

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        """Increment a counter metric.

        Args:
            name: Metric name.
            value: Value to increment by.
            tags: Optional tags for the metric.
        """
        if not self.enabled:
            return
        with self._lock:
            self._counters[name] += value
            if tags:
                self._tagged_counters[(name, _tag_key(tags))] += value

        self._record_point(name, value, tags or {}, {"type": "counter"})

    def set_gauge(self, name: str, value: Union[int, float], tags: Optional[Dict[str, str]] = None) -> None:
        """Set a gauge metric."""
        if not self.enabled:
            return
        with self._lock:
            self._gauges[name] = value

        self._record_point(name, value, tags or {}, {"type": "gauge"})

    def record_histogram(self, name: str, value: Union[int, float], tags: Optional[Dict[str, str]] = None) -> None:
        """Record a value in a histogram metric."""
        if not self.enabled:
            return
        with self._lock:
            self._histograms[name].append(value)

        self._record_point(name, value, tags or {}, {"type": "histogram"})

    def record_timing(self, name: str, duration: float, tags: Optional[Dict[str, str]] = None) -> None:
        """Record a timing metric.

        Args:
            name: Metric name.
            duration: Duration in seconds.
            tags: Optional tags for the metric.
        """
        self.record_histogram(f"{name}.duration", duration, tags)

    def _record_point(
        self,
        name: str,
        value: Union[int, float],
        tags: Dict[str, str],
        metadata: Dict[str, Any]
    ) -> None:
        point = MetricPoint(name=name, value=value, tags=tags, metadata=metadata)
        with self._lock:
            self._metrics[name].append(point)

    def get_metric_values(self, name: str, limit: Optional[int] = None) -> List[MetricPoint]:
        """Get recorded points for a specific metric."""
        with self._lock:
            points = list(self._metrics[name])

        if limit:
            points = points[-limit:]

        return points

    def get_counter_value(self, name: str, tags: Optional[Dict[str, str]] = None) -> int:
        """Get the current value of a counter.

        Args:
            name: Metric name.
            tags: If given, only increments made with exactly these tags count.
        """
        with self._lock:
            if tags:
                return self._tagged_counters.get((name, _tag_key(tags)), 0)
            return self._counters.get(name, 0)

    def get_counter_breakdown(self, name: str, tag: str) -> Dict[str, int]:
        """Split a counter by the values of one tag, e.g. ignored conversions by reason."""
        breakdown: Dict[str, int] = defaultdict(int)
        with self._lock:
            for (counter_name, key), value in self._tagged_counters.items():
                tag_value = dict(key).get(tag)
                if counter_name == name and tag_value is not None:
                    breakdown[tag_value] += value
        return dict(breakdown)

    def get_gauge_value(self, name: str) -> Optional[Union[int, float]]:
        """Get the current value of a gauge, or None if not set."""
        with self._lock:
            return self._gauges.get(name)

    def get_histogram_stats(self, name: str) -> Dict[str, Union[int, float]]:
        """Get statistics over the most recent values of a histogram metric."""
        with self._lock:
            values = sorted(self._histograms.get(name, ()))

        if not values:
            return {"count": 0}

        return {
            "count": len(values),
            "min": values[0],
            "max": values[-1],
            "avg": sum(values) / len(values),
            "sum": sum(values),
            "p50": _percentile(values, 0.50),
            "p95": _percentile(values, 0.95),
        }

    def get_all_metrics_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            summary: Dict[str, Any] = {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "histograms": {
                    name: {"count": len(values), "latest": values[-1]}
                    for name, values in self._histograms.items()
                    if values
                },
            }
        return summary

    def clear_metrics(self, name: Optional[str] = None) -> None:
        """Clear metrics data.

        Args:
            name: Specific metric name to clear, or None to clear all.
        """
        with self._lock:
            if name:
                if name in self._metrics:
                    self._metrics[name].clear()
                if name in self._counters:
                    self._counters[name] = 0
                for key in [k for k in self._tagged_counters if k[0] == name]:
                    del self._tagged_counters[key]
                if name in self._gauges:
                    del self._gauges[name]
                if name in self._histograms:
                    self._histograms[name].clear()
            else:
                self._metrics.clear()
                self._counters.clear()
                self._tagged_counters.clear()
                self._gauges.clear()
                self._histograms.clear()


def _percentile(sorted_values: List[Union[int, float]], fraction: float) -> Union[int, float]:
    """Nearest-rank percentile of an already sorted, non-empty list."""
    rank = max(1, math.ceil(fraction * len(sorted_values)))
    return sorted_values[rank - 1]
