"""
Error handling module for the Konflux operator.

This module provides the error hierarchy the reconciliation core raises,
integrated with kopf's retry semantics through OperatorError.as_kopf_error().
"""

from .operator_errors import (
    CleanupError,
    ConfigurationError,
    DeadlineExceededError,
    FieldConflictError,
    KindUnavailableError,
    KubernetesAPIError,
    OperatorError,
    OwnershipError,
    ParseError,
    ReconciliationError,
    TemporaryError,
    UnknownComponentError,
)

__all__ = [
    "OperatorError",
    "TemporaryError",
    "KubernetesAPIError",
    "FieldConflictError",
    "ConfigurationError",
    "ParseError",
    "UnknownComponentError",
    "OwnershipError",
    "KindUnavailableError",
    "DeadlineExceededError",
    "ReconciliationError",
    "CleanupError",
]
