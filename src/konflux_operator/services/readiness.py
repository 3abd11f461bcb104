"""
Readiness aggregation over the workloads a CR owns.

The aggregate is recomputed from live state on every reconciliation. It
never raises: API and connection failures become an Unknown condition so
the caller can still write status.
"""

from typing import Any

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError as TransportError

from konflux_operator.constants import (
    APPS_API_VERSION,
    CONDITION_AVAILABLE,
    CONDITION_FALSE,
    CONDITION_TRUE,
    CONDITION_UNKNOWN,
    DEPLOYMENT_KIND,
    MESSAGE_ALL_WORKLOADS_READY,
    MESSAGE_NO_WORKLOADS_BY_DESIGN,
    MESSAGE_NO_WORKLOADS_FOUND,
    MESSAGE_WORKLOAD_NOT_READY,
    OWNER_LABEL_KEY,
    REASON_ALL_COMPONENTS_READY,
    REASON_COMPONENTS_NOT_READY,
    REASON_DEPLOYMENT_NOT_READY,
    REASON_DEPLOYMENT_READY,
    REASON_NO_WORKLOADS_FOUND,
    REASON_STATEFULSET_NOT_READY,
    REASON_STATEFULSET_READY,
    REASON_STATUS_CHECK_FAILED,
    STATEFULSET_KIND,
)
from konflux_operator.errors import OperatorError
from konflux_operator.models import (
    Component,
    GroupVersionKind,
    OwnerIdentity,
    ReadinessCondition,
    WorkloadStatus,
)
from konflux_operator.observability.logging import OperatorLogger
from konflux_operator.utils.kubernetes import request_timeout, resolve_resource

# Components that legitimately run no Deployments or StatefulSets
WORKLOADLESS_COMPONENTS: frozenset[str] = frozenset(
    {
        Component.APPLICATION_API,
        Component.CERT_MANAGER,
        Component.DEFAULT_TENANT,
        Component.RBAC,
    }
)

DEPLOYMENT_GVK = GroupVersionKind.from_api_version(APPS_API_VERSION, DEPLOYMENT_KIND)
STATEFULSET_GVK = GroupVersionKind.from_api_version(
    APPS_API_VERSION, STATEFULSET_KIND
)


def _find_condition(obj: dict[str, Any], condition_type: str) -> dict[str, Any] | None:
    for condition in (obj.get("status") or {}).get("conditions") or []:
        if condition.get("type") == condition_type:
            return condition
    return None


def deployment_status(deployment: dict[str, Any]) -> WorkloadStatus:
    """
    Evaluate a Deployment.

    A Deployment is available when its Available condition is True. When
    the controller has not reported conditions yet, fall back to replica
    counts: every replica ready and updated, with at least one replica.
    """
    metadata = deployment.get("metadata") or {}
    status = deployment.get("status") or {}
    replicas = status.get("replicas") or 0
    ready = status.get("readyReplicas") or 0
    updated = status.get("updatedReplicas") or 0

    available_condition = _find_condition(deployment, CONDITION_AVAILABLE)
    if available_condition is not None:
        available = available_condition.get("status") == CONDITION_TRUE
    else:
        available = replicas > 0 and ready == replicas and updated == replicas

    if available:
        message = f"Deployment has {ready}/{replicas} replicas ready"
    else:
        message = f"Ready: {ready}/{replicas}, Updated: {updated}/{replicas}"
        progressing = _find_condition(deployment, "Progressing")
        if progressing and progressing.get("status") == CONDITION_FALSE:
            message = (
                f"{message} - {progressing.get('reason')}: {progressing.get('message')}"
            )
        replica_failure = _find_condition(deployment, "ReplicaFailure")
        if replica_failure and replica_failure.get("status") == CONDITION_TRUE:
            message = f"{message} - ReplicaFailure: {replica_failure.get('message')}"

    return WorkloadStatus(
        kind=DEPLOYMENT_KIND,
        namespace=metadata.get("namespace") or "",
        name=metadata.get("name", ""),
        available=available,
        reason=REASON_DEPLOYMENT_READY if available else REASON_DEPLOYMENT_NOT_READY,
        message=message,
    )


def statefulset_status(statefulset: dict[str, Any]) -> WorkloadStatus:
    """
    Evaluate a StatefulSet.

    Available when available (or, on older clusters, ready) replicas reach
    spec.replicas, and updated replicas match when the controller reports them.
    """
    metadata = statefulset.get("metadata") or {}
    spec = statefulset.get("spec") or {}
    status = statefulset.get("status") or {}

    desired = spec.get("replicas")
    if desired is None:
        desired = 1
    ready = status.get("readyReplicas") or 0
    available_replicas = status.get("availableReplicas")
    if available_replicas is None:
        available_replicas = ready
    updated = status.get("updatedReplicas")

    available = available_replicas >= desired and (
        updated is None or updated == desired
    )

    if available:
        message = f"StatefulSet has {available_replicas}/{desired} replicas available"
    else:
        message = f"Available: {available_replicas}/{desired}"
        if updated is not None:
            message = f"{message}, Updated: {updated}/{desired}"

    return WorkloadStatus(
        kind=STATEFULSET_KIND,
        namespace=metadata.get("namespace") or "",
        name=metadata.get("name", ""),
        available=available,
        reason=REASON_STATEFULSET_READY if available else REASON_STATEFULSET_NOT_READY,
        message=message,
    )


class ReadinessAggregator:
    """Derives a Ready condition from the Deployments and StatefulSets a CR owns."""

    def __init__(
        self,
        dynamic_client: Any,
        *,
        deadline: float | None = None,
        workloadless_components: frozenset[str] = WORKLOADLESS_COMPONENTS,
    ):
        self.dynamic_client = dynamic_client
        self.deadline = deadline
        self.workloadless_components = workloadless_components
        self.logger = OperatorLogger(self.__class__.__name__)

    def compute_readiness(
        self,
        owner: OwnerIdentity,
        component: str,
        owner_label_key: str = OWNER_LABEL_KEY,
    ) -> ReadinessCondition:
        """
        Compute the aggregate readiness of an owner's workloads.

        Returns:
            True when every owned workload is available, or when the
            component has no workloads by design. False when a workload is
            not available or a workload component has none. Unknown when
            the workloads could not be listed.
        """
        selector = f"{owner_label_key}={owner.name}"
        try:
            workloads = [
                deployment_status(obj)
                for obj in self._list(DEPLOYMENT_GVK, selector)
            ] + [
                statefulset_status(obj)
                for obj in self._list(STATEFULSET_GVK, selector)
            ]
        except (ApiException, TransportError, OperatorError) as e:
            self.logger.warning(
                f"Failed to check workload status for {owner}: {e}",
                component=str(component),
                owner=owner.name,
            )
            return ReadinessCondition(
                status=CONDITION_UNKNOWN,
                reason=REASON_STATUS_CHECK_FAILED,
                message=f"Failed to check workload status: {e}",
            )

        workloads.sort(key=lambda w: (w.kind, w.namespace, w.name))

        if not workloads:
            if str(component) in self.workloadless_components:
                return ReadinessCondition(
                    status=CONDITION_TRUE,
                    reason=REASON_ALL_COMPONENTS_READY,
                    message=MESSAGE_NO_WORKLOADS_BY_DESIGN,
                )
            return ReadinessCondition(
                status=CONDITION_FALSE,
                reason=REASON_NO_WORKLOADS_FOUND,
                message=MESSAGE_NO_WORKLOADS_FOUND.format(component),
            )

        for workload in workloads:
            if not workload.available:
                return ReadinessCondition(
                    status=CONDITION_FALSE,
                    reason=REASON_COMPONENTS_NOT_READY,
                    message=MESSAGE_WORKLOAD_NOT_READY.format(
                        workload.kind,
                        workload.namespace,
                        workload.name,
                        workload.message,
                    ),
                    workloads=workloads,
                )

        return ReadinessCondition(
            status=CONDITION_TRUE,
            reason=REASON_ALL_COMPONENTS_READY,
            message=MESSAGE_ALL_WORKLOADS_READY.format(len(workloads)),
            workloads=workloads,
        )

    def _list(self, gvk: GroupVersionKind, selector: str) -> list[dict[str, Any]]:
        resource = resolve_resource(self.dynamic_client, gvk)
        listed = self.dynamic_client.get(
            resource,
            label_selector=selector,
            _request_timeout=request_timeout(self.deadline, f"listing {gvk.kind}"),
        )
        if hasattr(listed, "to_dict"):
            listed = listed.to_dict()
        return list(listed.get("items") or [])
