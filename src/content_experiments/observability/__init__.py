"""Observability layer for Content Experiments.

This module provides structured logging, audit records and the metrics
sink used by the experimentation engine.
"""

from .logging_config import setup_logging, get_logger, LoggerMixin, audit_log, experiment_context
from .metrics_collector import MetricsCollector, MetricPoint

__all__ = [
    "setup_logging",
    "get_logger",
    "LoggerMixin",
    "audit_log",
    "experiment_context",
    "MetricsCollector",
    "MetricPoint",
]
