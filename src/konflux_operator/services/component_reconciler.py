"""
Component reconciler - applies one component's bundle on behalf of its CR.

Every reconciliation runs the full data flow: apply the bundle, sweep
orphans, then derive status from the live workloads. The blocking
Kubernetes client calls run in worker threads.
"""

import asyncio
from typing import Any

from konflux_operator.constants import (
    CONDITION_FALSE,
    CONDITION_READY,
    MESSAGE_WAITING_FOR_DEPENDENCY,
    REASON_DEPENDENCY_MISSING,
    STEP_APPLY,
    STEP_CLEANUP,
    STEP_READINESS,
)
from konflux_operator.errors import KindUnavailableError, TemporaryError
from konflux_operator.manifests import ManifestStore, manifest_store
from konflux_operator.models import (
    CleanupOptions,
    GroupVersionKind,
    OwnerIdentity,
    ReadinessCondition,
)
from konflux_operator.observability.logging import OperatorLogger
from konflux_operator.observability.metrics import metrics_collector
from konflux_operator.settings import settings
from konflux_operator.utils.kubernetes import deadline_after

from .apply_engine import ApplyEngine
from .base_reconciler import BaseReconciler, StatusProtocol
from .components import get_component_spec
from .readiness import ReadinessAggregator


class ComponentReconciler(BaseReconciler):
    """
    Reconciler for the singleton CR driving one component.

    Args:
        component: Component identifier (e.g. "default-tenant")
        dynamic_client: Kubernetes dynamic client
        store: Manifest store to read bundles from
    """

    def __init__(
        self,
        component: str,
        dynamic_client: Any | None = None,
        store: ManifestStore | None = None,
    ):
        super().__init__(dynamic_client)
        self.component_spec = get_component_spec(component)
        self.component = str(self.component_spec.component)
        self.logger = OperatorLogger(self.__class__.__name__, self.component)
        self.store = store or manifest_store

    def owner_from_handler(
        self, name: str, namespace: str | None, **kwargs
    ) -> OwnerIdentity:
        """Build the owner identity from kopf handler arguments."""
        body = kwargs.get("body") or {}
        meta = kwargs.get("meta") or body.get("metadata") or {}
        return OwnerIdentity(
            api_version=body.get("apiVersion") or self.component_spec.cr_api_version,
            kind=body.get("kind") or self.component_spec.cr_kind,
            name=name,
            uid=kwargs.get("uid") or meta["uid"],
            namespace=namespace or None,
        )

    async def do_reconcile(
        self,
        spec: dict[str, Any],
        name: str,
        namespace: str | None,
        status: StatusProtocol,
        **kwargs,
    ) -> dict[str, Any]:
        """
        Apply the bundle, clean up orphans and report readiness.

        Returns:
            Summary of the pass, stored by kopf under the handler's status key

        Raises:
            TemporaryError: When kinds in the bundle are not installed yet,
                after status has been written as Degraded
        """
        generation = (kwargs.get("meta") or {}).get("generation", 0)
        owner = self.owner_from_handler(name, namespace, **kwargs)
        deadline = deadline_after(settings.reconcile_timeout_seconds)

        self.update_status_applying(
            status, f"Applying {self.component} manifests", generation
        )

        self.enter_step(STEP_APPLY)
        objects = self.store.get_for_component(self.component)
        engine = ApplyEngine(
            self.dynamic_client,
            owner,
            self.component,
            self.component_spec.field_manager,
            deadline=deadline,
        )
        missing_kinds = await self.apply_objects(engine, objects)

        options = CleanupOptions(
            cluster_scoped_allow_list=self.component_spec.cluster_scoped_allow_list
        )
        self.enter_step(STEP_CLEANUP)
        report = await asyncio.to_thread(
            engine.cleanup_orphans, self.component_spec.cleanup_kinds, options
        )

        self.enter_step(STEP_READINESS)
        aggregator = ReadinessAggregator(self.dynamic_client, deadline=deadline)
        readiness = await asyncio.to_thread(
            aggregator.compute_readiness, owner, self.component
        )
        metrics_collector.update_component_readiness(
            self.component, name, readiness.status
        )

        if missing_kinds:
            message = MESSAGE_WAITING_FOR_DEPENDENCY.format(
                ", ".join(sorted(str(gvk) for gvk in missing_kinds))
            )
            readiness = ReadinessCondition(
                status=CONDITION_FALSE,
                reason=REASON_DEPENDENCY_MISSING,
                message=message,
                workloads=readiness.workloads,
            )
            self.update_readiness_conditions(status, readiness, generation)
            self.update_status_degraded(status, message, generation)
            raise TemporaryError(
                message,
                delay=settings.dependency_retry_delay_seconds,
                user_action="Install the CustomResourceDefinitions providing "
                "these kinds",
                category="dependency",
            )

        self.update_readiness_conditions(status, readiness, generation)
        if readiness.ready:
            self.update_status_ready(status, readiness.message, generation)
        else:
            self.update_status_degraded(status, readiness.message, generation)

        return {
            "phase": status.phase,
            "applied": len(engine.desired_set),
            "orphansDeleted": len(report.deleted),
            "orphansSkipped": len(report.skipped),
        }

    async def apply_objects(
        self, engine: ApplyEngine, objects: list[dict[str, Any]]
    ) -> list[GroupVersionKind]:
        """
        Apply objects in bundle order.

        Objects whose kind is not served are skipped and the remaining
        objects are still applied. Any other failure stops the pass.

        Returns:
            Distinct kinds that were not available, in the order first seen
        """
        missing: list[GroupVersionKind] = []
        for obj in objects:
            try:
                await asyncio.to_thread(engine.apply, obj)
            except KindUnavailableError as e:
                if e.gvk not in missing:
                    missing.append(e.gvk)
                self.logger.warning(
                    f"Skipping {e.gvk.kind}/{obj['metadata']['name']}: "
                    f"kind not installed",
                    kind=e.gvk.kind,
                )
        return missing

    def update_readiness_conditions(
        self,
        status: StatusProtocol,
        readiness: ReadinessCondition,
        generation: int = 0,
    ) -> None:
        """
        Write the Ready condition and one condition per workload.

        Ready is replaced wholesale. Per-workload conditions ("namespace/name")
        for workloads that no longer exist are dropped.
        """
        self._set_condition(
            status, readiness.as_condition(CONDITION_READY, generation)
        )

        current = {workload.condition_type for workload in readiness.workloads}
        for condition in list(getattr(status, "conditions", None) or []):
            condition_type = condition.get("type", "")
            if "/" in condition_type and condition_type not in current:
                self._remove_condition(status, condition_type)

        for workload in readiness.workloads:
            self._add_condition(
                status,
                workload.condition_type,
                "True" if workload.available else "False",
                workload.reason,
                workload.message,
                generation,
            )
