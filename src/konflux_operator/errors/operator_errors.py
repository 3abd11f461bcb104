"""
Operator error hierarchy with categorization and retry logic.

Every error carries what the driver needs to react: a category, whether kopf
should retry, how long to wait, and a hint for the human reading the CR
status. Subclasses set those as class defaults; instances may override them.

Categories:
- configuration: malformed bundles, unknown components, impossible ownership.
  Not retried, these indicate a build-time defect.
- temporary / external: API timeouts, conflicts, server errors. Returned to
  the driver, which requeues. The engine never retries internally.
- dependency: a kind whose CRD is not installed yet. Reported as
  "waiting for dependency" rather than broken.
- reconciliation: partial failures of a cleanup sweep, reported in aggregate.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import kopf

if TYPE_CHECKING:
    from konflux_operator.models.resources import GroupVersionKind, ResourceKey


class OperatorError(Exception):
    """
    Base class for errors raised by the reconciliation core.

    Attributes:
        category: Error category (configuration, temporary, dependency, ...)
        retryable: Whether kopf should requeue the reconciliation
        delay: Requeue delay in seconds
        user_action: What an operator of the cluster can do about it
        cause: Underlying exception, if any
    """

    category = "operator"
    retryable = True
    delay = 30
    user_action: str | None = None

    def __init__(
        self,
        message: str,
        category: str | None = None,
        retryable: bool | None = None,
        delay: int | None = None,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        if category is not None:
            self.category = category
        if retryable is not None:
            self.retryable = retryable
        if delay is not None:
            self.delay = delay
        if user_action is not None:
            self.user_action = user_action
        self.cause = cause

    def as_kopf_error(self) -> kopf.TemporaryError | kopf.PermanentError:
        """Translate into the kopf exception that drives requeueing."""
        if not self.retryable:
            return kopf.PermanentError(str(self))
        return kopf.TemporaryError(str(self), delay=self.delay)

    def __str__(self) -> str:
        message = super().__str__()
        if not self.user_action:
            return message
        return f"{message}\nAction required: {self.user_action}"


class TemporaryError(OperatorError):
    """A failure expected to clear up on its own; always requeued."""

    category = "temporary"
    user_action = "Wait for automatic retry or check system status"

    def __init__(
        self,
        message: str,
        delay: int = 30,
        user_action: str | None = None,
        category: str = "temporary",
    ):
        super().__init__(
            message, category=category, delay=delay, user_action=user_action
        )


class KubernetesAPIError(OperatorError):
    """
    A Kubernetes API call failed.

    Authorization and validation failures (Forbidden, Unauthorized, Invalid)
    are never retryable regardless of what the caller asks for.
    """

    category = "external"
    delay = 60
    user_action = "Check RBAC permissions and cluster connectivity"

    NON_RETRYABLE_REASONS = frozenset({"Forbidden", "Unauthorized", "Invalid"})

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        retryable: bool = True,
        status: int | None = None,
        cause: Exception | None = None,
    ):
        self.status = status
        self.reason = reason
        if reason:
            message = f"{message} (reason: {reason})"
        super().__init__(
            f"Kubernetes API error: {message}",
            retryable=retryable and reason not in self.NON_RETRYABLE_REASONS,
            cause=cause,
        )


class FieldConflictError(KubernetesAPIError):
    """Server-side apply conflict with another field manager.

    Surfaced to the caller as-is; the caller decides whether to fail the
    reconciliation or skip the object.
    """

    def __init__(
        self,
        key: ResourceKey,
        field_manager: str,
        message: str,
        cause: Exception | None = None,
    ):
        self.key = key
        self.field_manager = field_manager
        super().__init__(
            f"Apply of {key} as field manager '{field_manager}' "
            f"conflicts with another field manager: {message}",
            reason="Conflict",
            status=409,
            cause=cause,
        )


class ConfigurationError(OperatorError):
    """The operator build or its static configuration is wrong. Never retried."""

    category = "configuration"
    retryable = False
    user_action = "Review and correct configuration"

    def __init__(self, message: str, user_action: str | None = None):
        super().__init__(message, user_action=user_action)


class ParseError(ConfigurationError):
    """An embedded manifest bundle could not be parsed."""

    user_action = "Regenerate the manifest bundle; this is a build defect"

    def __init__(self, component: str, message: str, document: int | None = None):
        self.component = component
        self.document = document
        location = f" (document {document})" if document is not None else ""
        super().__init__(
            f"Failed to parse manifests for {component}{location}: {message}"
        )


class UnknownComponentError(ConfigurationError):
    """A component identifier does not name any known manifest bundle."""

    def __init__(self, component: str):
        self.component = component
        super().__init__(f"Unknown component: {component}")


class OwnershipError(ConfigurationError):
    """Ownership metadata cannot be set on an object."""


class KindUnavailableError(TemporaryError):
    """The API server does not serve a kind, usually because its CRD is missing."""

    def __init__(self, gvk: GroupVersionKind, delay: int = 30):
        self.gvk = gvk
        super().__init__(
            f"Kind {gvk} is not available on the cluster",
            delay=delay,
            user_action="Install the CustomResourceDefinition providing this kind",
            category="dependency",
        )


class DeadlineExceededError(TemporaryError):
    """The reconciliation deadline expired before an API call could be made."""

    def __init__(self, operation: str):
        super().__init__(
            f"Reconciliation deadline exceeded before {operation}", delay=10
        )


class ReconciliationError(OperatorError):
    """A reconciliation pass finished but could not do everything it had to."""

    category = "reconciliation"
    delay = 60
    user_action = "Inspect operator logs and resource specification for issues"


class CleanupError(ReconciliationError):
    """One or more orphaned objects could not be deleted.

    Attributes:
        failures: (resource description, error message) for every object or
            kind that failed during the sweep
    """

    def __init__(self, failures: list[tuple[str, str]]):
        self.failures = list(failures)
        details = "; ".join(f"{resource}: {error}" for resource, error in failures)
        super().__init__(
            f"Failed to clean up {len(self.failures)} orphaned "
            f"resource(s): {details}"
        )
