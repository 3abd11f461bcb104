"""
Status models for readiness reporting.

A readiness condition is never patched incrementally: every reconciliation
builds a new one from the live state of the owned workloads.
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

ConditionStatus = Literal["True", "False", "Unknown"]


class WorkloadStatus(BaseModel):
    """Availability of a single owned Deployment or StatefulSet."""

    kind: str
    namespace: str
    name: str
    available: bool
    reason: str
    message: str

    @property
    def condition_type(self) -> str:
        """Per-workload condition type, formatted as 'namespace/name'."""
        return f"{self.namespace}/{self.name}"


class ReadinessCondition(BaseModel):
    """Aggregate readiness of a CR's owned workloads."""

    status: ConditionStatus
    reason: str
    message: str
    workloads: list[WorkloadStatus] = Field(default_factory=list)

    @property
    def ready(self) -> bool:
        return self.status == "True"

    def as_condition(
        self, condition_type: str = "Ready", generation: int = 0
    ) -> dict[str, Any]:
        """Render as a Kubernetes status condition."""
        return {
            "type": condition_type,
            "status": self.status,
            "reason": self.reason,
            "message": self.message,
            "lastTransitionTime": datetime.now(UTC).isoformat(),
            "observedGeneration": generation,
        }
