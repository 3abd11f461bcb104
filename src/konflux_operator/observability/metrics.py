"""
Prometheus metrics for the Konflux operator.

This module provides metrics collection for reconciliation, server-side
apply, orphan cleanup and component readiness. Metrics live on a private
registry; exposing it over HTTP is left to the process hosting the driver.
"""

import logging
import time
from contextlib import asynccontextmanager

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

# Global metrics registry
_metrics_registry: CollectorRegistry | None = None

# Metrics definitions
RECONCILIATION_TOTAL = Counter(
    "konflux_operator_reconciliation_total",
    "Total number of reconciliation attempts",
    ["resource_type", "name", "result"],
    registry=None,  # Will be set during initialization
)

RECONCILIATION_DURATION = Histogram(
    "konflux_operator_reconciliation_duration_seconds",
    "Time spent on reconciliation operations",
    ["resource_type", "operation"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
    registry=None,
)

RECONCILIATION_ERRORS = Counter(
    "konflux_operator_reconciliation_errors_total",
    "Total number of reconciliation errors",
    ["resource_type", "error_type", "retryable"],
    registry=None,
)

OBJECTS_APPLIED = Counter(
    "konflux_operator_objects_applied_total",
    "Total number of server-side apply calls",
    ["component", "kind", "result"],
    registry=None,
)

ORPHANS_DELETED = Counter(
    "konflux_operator_orphans_deleted_total",
    "Total number of orphaned objects deleted",
    ["component", "kind"],
    registry=None,
)

ORPHANS_SKIPPED = Counter(
    "konflux_operator_orphans_skipped_total",
    "Total number of orphan candidates left in place by policy",
    ["component", "kind", "reason"],
    registry=None,
)

ORPHAN_DELETE_FAILURES = Counter(
    "konflux_operator_orphan_delete_failures_total",
    "Total number of orphaned objects that could not be deleted",
    ["component", "kind"],
    registry=None,
)

COMPONENT_READY = Gauge(
    "konflux_operator_component_ready",
    "Component readiness (1=True, 0=False, -1=Unknown)",
    ["component", "owner"],
    registry=None,
)

_ALL_METRICS = [
    RECONCILIATION_TOTAL,
    RECONCILIATION_DURATION,
    RECONCILIATION_ERRORS,
    OBJECTS_APPLIED,
    ORPHANS_DELETED,
    ORPHANS_SKIPPED,
    ORPHAN_DELETE_FAILURES,
    COMPONENT_READY,
]

_READINESS_VALUES = {"True": 1, "False": 0, "Unknown": -1}


def get_metrics_registry() -> CollectorRegistry:
    """Get or create the global metrics registry."""
    global _metrics_registry

    if _metrics_registry is None:
        _metrics_registry = CollectorRegistry()
        for metric in _ALL_METRICS:
            _metrics_registry.register(metric)

    return _metrics_registry


class MetricsCollector:
    """Collects and manages metrics for the Konflux operator."""

    def __init__(self):
        self.registry = get_metrics_registry()

    @asynccontextmanager
    async def track_reconciliation(
        self,
        resource_type: str,
        name: str,
        operation: str = "reconcile",
    ):
        """
        Context manager to track reconciliation operations.

        Args:
            resource_type: Type of resource being reconciled
            name: Name of the resource
            operation: Type of operation being performed
        """
        start_time = time.time()
        result = "unknown"

        try:
            yield
            result = "success"
        except Exception as e:
            result = "error"

            error_type = type(e).__name__
            retryable = "true" if getattr(e, "retryable", False) else "false"

            RECONCILIATION_ERRORS.labels(
                resource_type=resource_type,
                error_type=error_type,
                retryable=retryable,
            ).inc()

            raise
        finally:
            duration = time.time() - start_time

            RECONCILIATION_TOTAL.labels(
                resource_type=resource_type, name=name, result=result
            ).inc()

            RECONCILIATION_DURATION.labels(
                resource_type=resource_type, operation=operation
            ).observe(duration)

    def record_apply(self, component: str, kind: str, result: str) -> None:
        OBJECTS_APPLIED.labels(component=component, kind=kind, result=result).inc()

    def record_orphan_deleted(self, component: str, kind: str) -> None:
        ORPHANS_DELETED.labels(component=component, kind=kind).inc()

    def record_orphan_skipped(self, component: str, kind: str, reason: str) -> None:
        ORPHANS_SKIPPED.labels(component=component, kind=kind, reason=reason).inc()

    def record_orphan_delete_failure(self, component: str, kind: str) -> None:
        ORPHAN_DELETE_FAILURES.labels(component=component, kind=kind).inc()

    def update_component_readiness(
        self, component: str, owner: str, status: str
    ) -> None:
        """
        Record the latest readiness of a component.

        Args:
            component: Component identifier
            owner: Name of the owning CR
            status: Condition status ("True", "False" or "Unknown")
        """
        COMPONENT_READY.labels(component=component, owner=owner).set(
            _READINESS_VALUES.get(status, -1)
        )


# Global metrics collector instance
metrics_collector = MetricsCollector()
