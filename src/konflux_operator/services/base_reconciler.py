"""
Base reconciler class providing common patterns for resource reconciliation.

This module defines the BaseReconciler class that implements standard
patterns for status management, error handling, and the per-CR phase
machine:

    Unreconciled -> Applying -> Ready | Degraded | Error

Phases are recomputed from scratch on every event (level-triggered), so a
CR in Error goes back through Applying on its next reconciliation.
"""

import time
from abc import ABC, abstractmethod
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Protocol

from kubernetes.client.rest import ApiException

from konflux_operator.constants import (
    CONDITION_FALSE,
    CONDITION_READY,
    CONDITION_TRUE,
    PHASE_APPLYING,
    PHASE_DEGRADED,
    PHASE_ERROR,
    PHASE_READY,
    PHASE_UNRECONCILED,
    REASON_APPLY_FAILED,
    REASON_APPLYING,
    REASON_CLEANUP_FAILED,
    REASON_RECONCILE_FAILED,
    STEP_APPLY,
    STEP_CLEANUP,
)
from konflux_operator.errors import CleanupError, OperatorError, TemporaryError
from konflux_operator.observability.logging import OperatorLogger
from konflux_operator.utils.kubernetes import api_error

# Step of the reconciliation running in this context; picks the failure reason
reconcile_step: ContextVar[str] = ContextVar("reconcile_step", default="")


class StatusProtocol(Protocol):
    """Protocol for kopf Status objects that allow dynamic attribute assignment."""

    def __setattr__(self, name: str, value: Any) -> None: ...
    def __getattr__(self, name: str) -> Any: ...


class BaseReconciler(ABC):
    """
    Base class for all resource reconcilers.

    Provides common patterns for:
    - Status management with conditions and phases
    - Error handling, mapped onto kopf retry semantics
    - Reconciliation lifecycle logging and metrics
    """

    def __init__(self, dynamic_client: Any | None = None):
        """
        Initialize base reconciler.

        Args:
            dynamic_client: Kubernetes dynamic client, created on first use if
                not provided
        """
        self._dynamic_client = dynamic_client
        self.logger = OperatorLogger(self.__class__.__name__)

    @property
    def dynamic_client(self) -> Any:
        """Get or create the Kubernetes dynamic client."""
        if self._dynamic_client is None:
            from konflux_operator.utils.kubernetes import get_dynamic_client

            self._dynamic_client = get_dynamic_client()
        return self._dynamic_client

    async def reconcile(
        self,
        spec: dict[str, Any],
        name: str,
        namespace: str | None,
        status: StatusProtocol,
        **kwargs,
    ) -> dict[str, Any]:
        """
        Main reconciliation entry point with metrics tracking.

        Args:
            spec: Resource specification
            name: Resource name
            namespace: Resource namespace (None for cluster-scoped CRs)
            status: Resource status object
            **kwargs: Additional handler arguments (body, meta, ...)

        Returns:
            Status dictionary for the resource

        Raises:
            kopf.TemporaryError: For retryable failures, with the error's delay
            kopf.PermanentError: For failures that need manual intervention
        """
        from konflux_operator.observability.metrics import metrics_collector

        resource_type = self.__class__.__name__.replace("Reconciler", "").lower()
        generation = (kwargs.get("meta") or {}).get("generation", 0)
        start_time = time.monotonic()
        self.logger.start_reconciliation(name)
        reconcile_step.set("")

        async with metrics_collector.track_reconciliation(
            resource_type=resource_type,
            name=name,
            operation="reconcile",
        ):
            try:
                result = await self.do_reconcile(
                    spec, name, namespace, status, **kwargs
                )
            except OperatorError as e:
                # Missing dependencies are reported as Degraded by do_reconcile
                write_status = e.category != "dependency"
                error = e
            except ApiException as e:
                write_status = True
                error = api_error(e, "reconcile")
            except Exception as e:
                # Unexpected errors are retried
                write_status = True
                error = TemporaryError(
                    f"Unexpected error during reconciliation: {str(e)}"
                )
            else:
                self.logger.reconcile_event(
                    "reconcile_success",
                    name,
                    duration=time.monotonic() - start_time,
                    phase=self.current_phase(status),
                )
                return result

            step = reconcile_step.get()
            self.logger.reconcile_event(
                "reconcile_error",
                name,
                error=error,
                duration=time.monotonic() - start_time,
                step=step or None,
            )
            if write_status:
                self.update_status_error(
                    status, str(error), generation, reason=_reason_for(error, step)
                )
            raise error.as_kopf_error() from error

    @abstractmethod
    async def do_reconcile(
        self,
        spec: dict[str, Any],
        name: str,
        namespace: str | None,
        status: StatusProtocol,
        **kwargs,
    ) -> dict[str, Any]:
        """
        Perform the actual reconciliation logic.

        Implementations own the phase transitions for the outcomes they
        handle; the base class only writes Error when an exception escapes.
        """
        raise NotImplementedError("Subclasses must implement do_reconcile method")

    def enter_step(self, step: str) -> None:
        """
        Record the step do_reconcile is about to run.

        An error escaping do_reconcile is reported with the reason of the
        last step entered: ApplyFailed for apply, CleanupFailed for cleanup,
        ReconciliationFailed otherwise.
        """
        reconcile_step.set(step)

    def current_phase(self, status: StatusProtocol) -> str:
        """Phase recorded in status; Unreconciled before the first pass."""
        return getattr(status, "phase", None) or PHASE_UNRECONCILED

    def _set_phase(
        self, status: StatusProtocol, phase: str, message: str, generation: int
    ) -> None:
        status.phase = phase
        status.message = message
        timestamp = datetime.now(UTC).isoformat()
        status.lastReconcileTime = timestamp
        status.observedGeneration = generation

    def update_status_applying(
        self, status: StatusProtocol, message: str, generation: int = 0
    ) -> None:
        """Update status to indicate objects are being applied."""
        self._set_phase(status, PHASE_APPLYING, message, generation)
        self._add_condition(
            status,
            "Progressing",
            CONDITION_TRUE,
            REASON_APPLYING,
            message,
            generation,
        )

    def update_status_ready(
        self,
        status: StatusProtocol,
        message: str = "All components are ready",
        generation: int = 0,
    ) -> None:
        """Update status to indicate the component is ready."""
        self._set_phase(status, PHASE_READY, message, generation)
        self._remove_condition(status, "Progressing")

    def update_status_degraded(
        self, status: StatusProtocol, message: str, generation: int = 0
    ) -> None:
        """Update status to indicate objects are applied but not (yet) ready."""
        self._set_phase(status, PHASE_DEGRADED, message, generation)
        self._remove_condition(status, "Progressing")

    def update_status_error(
        self,
        status: StatusProtocol,
        message: str,
        generation: int = 0,
        reason: str = REASON_RECONCILE_FAILED,
    ) -> None:
        """Update status to indicate reconciliation failed."""
        self._set_phase(status, PHASE_ERROR, message, generation)
        self._add_condition(
            status, CONDITION_READY, CONDITION_FALSE, reason, message, generation
        )
        self._remove_condition(status, "Progressing")

    def _add_condition(
        self,
        status: StatusProtocol,
        condition_type: str,
        condition_status: str,
        reason: str,
        message: str,
        generation: int = 0,
    ) -> None:
        """Add or replace a status condition with observedGeneration tracking."""
        self._set_condition(
            status,
            {
                "type": condition_type,
                "status": condition_status,
                "reason": reason,
                "message": message,
                "lastTransitionTime": datetime.now(UTC).isoformat(),
                "observedGeneration": generation,
            },
        )

    def _set_condition(self, status: StatusProtocol, condition: dict[str, Any]) -> None:
        """
        Replace the condition of the same type.

        lastTransitionTime is carried over from the previous condition when
        the status did not change.
        """
        existing = getattr(status, "conditions", None)
        if not isinstance(existing, list):
            existing = list(existing) if existing else []

        filtered: list[dict[str, Any]] = []
        for c in existing:
            if not isinstance(c, dict):
                continue
            if c.get("type") != condition["type"]:
                filtered.append(c)
            elif c.get("status") == condition["status"] and c.get(
                "lastTransitionTime"
            ):
                condition = {**condition, "lastTransitionTime": c["lastTransitionTime"]}

        filtered.append(condition)
        status.conditions = filtered

    def _remove_condition(self, status: StatusProtocol, condition_type: str) -> None:
        """Remove a status condition."""
        existing = getattr(status, "conditions", None)
        if not existing:
            return
        status.conditions = [
            c for c in existing if isinstance(c, dict) and c.get("type") != condition_type
        ]

    def get_condition(
        self, status: StatusProtocol, condition_type: str
    ) -> dict[str, Any] | None:
        """Get a specific status condition."""
        for condition in getattr(status, "conditions", None) or []:
            if condition.get("type") == condition_type:
                return condition
        return None

    def is_ready(self, status: StatusProtocol) -> bool:
        """Check if resource is in ready state."""
        ready_condition = self.get_condition(status, CONDITION_READY)
        return ready_condition is not None and ready_condition.get("status") == "True"


def _reason_for(error: OperatorError, step: str) -> str:
    if isinstance(error, CleanupError) or step == STEP_CLEANUP:
        return REASON_CLEANUP_FAILED
    if step == STEP_APPLY:
        return REASON_APPLY_FAILED
    return REASON_RECONCILE_FAILED
