"""
Services package for the Konflux operator.

Contains the apply, orphan cleanup and readiness services, plus the
reconcilers that drive them for each component.
"""

from .apply_engine import ApplyEngine
from .base_reconciler import BaseReconciler
from .component_reconciler import ComponentReconciler
from .components import COMPONENT_SPECS, ComponentSpec, get_component_spec
from .orphan_reclaimer import OrphanReclaimer
from .readiness import WORKLOADLESS_COMPONENTS, ReadinessAggregator

__all__ = [
    "ApplyEngine",
    "BaseReconciler",
    "COMPONENT_SPECS",
    "ComponentReconciler",
    "ComponentSpec",
    "OrphanReclaimer",
    "ReadinessAggregator",
    "WORKLOADLESS_COMPONENTS",
    "get_component_spec",
]
