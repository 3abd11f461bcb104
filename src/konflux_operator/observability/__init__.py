"""
Observability package for the Konflux operator.

Contains structured logging with correlation IDs and Prometheus metrics
for apply, cleanup and readiness.
"""

from .logging import OperatorLogger, setup_structured_logging
from .metrics import MetricsCollector, get_metrics_registry, metrics_collector

__all__ = [
    "OperatorLogger",
    "setup_structured_logging",
    "MetricsCollector",
    "get_metrics_registry",
    "metrics_collector",
]
