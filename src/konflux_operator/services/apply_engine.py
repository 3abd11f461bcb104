"""
Apply engine: idempotent server-side apply with ownership tracking.

One engine is created per reconciliation. Every object it applies is
stamped with the owner's labels and controller reference, applied with the
controller's stable field manager, and recorded in the desired set that the
orphan reclaimer later diffs against. The engine never deletes anything.
"""

import logging
import threading
from collections.abc import Iterable
from typing import Any

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError as TransportError

from konflux_operator.constants import COMPONENT_LABEL_KEY, OWNER_LABEL_KEY
from konflux_operator.errors import FieldConflictError, KindUnavailableError
from konflux_operator.models import (
    CleanupOptions,
    CleanupReport,
    GroupVersionKind,
    OwnerIdentity,
    ResourceKey,
)
from konflux_operator.observability.logging import OperatorLogger
from konflux_operator.observability.metrics import metrics_collector
from konflux_operator.settings import settings
from konflux_operator.utils.kubernetes import (
    api_error,
    request_timeout,
    resolve_resource,
    transport_error,
)
from konflux_operator.utils.ownership import (
    apply_ownership_stamp,
    build_ownership_stamp,
)

from .orphan_reclaimer import OrphanReclaimer


class ApplyEngine:
    """
    Applies component objects on behalf of one owning CR.

    Args:
        dynamic_client: Kubernetes dynamic client
        owner: The CR driving this reconciliation
        component: Component the applied objects belong to
        field_manager: Stable server-side apply field manager of the controller
        deadline: Absolute time.monotonic() deadline for every API call
        force_conflicts: Take ownership of fields held by other managers.
            Defaults to the KONFLUX_FORCE_APPLY_CONFLICTS setting.
        owner_label_key: Label key carrying the owner name
        component_label_key: Label key carrying the component
    """

    def __init__(
        self,
        dynamic_client: Any,
        owner: OwnerIdentity,
        component: str,
        field_manager: str,
        *,
        deadline: float | None = None,
        force_conflicts: bool | None = None,
        owner_label_key: str = OWNER_LABEL_KEY,
        component_label_key: str = COMPONENT_LABEL_KEY,
    ):
        self.dynamic_client = dynamic_client
        self.owner = owner
        self.component = str(component)
        self.field_manager = field_manager
        self.deadline = deadline
        self.force_conflicts = (
            settings.force_apply_conflicts if force_conflicts is None else force_conflicts
        )
        self.owner_label_key = owner_label_key
        self.component_label_key = component_label_key
        self.stamp = build_ownership_stamp(
            owner,
            self.component,
            field_manager,
            owner_label_key=owner_label_key,
            component_label_key=component_label_key,
        )
        self.logger = OperatorLogger(self.__class__.__name__, self.component)

        self._desired: set[ResourceKey] = set()
        self._lock = threading.Lock()

    @property
    def desired_set(self) -> frozenset[ResourceKey]:
        """Identities of every object successfully applied so far."""
        with self._lock:
            return frozenset(self._desired)

    def is_tracked(self, gvk: GroupVersionKind, namespace: str, name: str) -> bool:
        key = ResourceKey(gvk=gvk, namespace=namespace or "", name=name)
        with self._lock:
            return key in self._desired

    def apply(self, obj: dict[str, Any]) -> dict[str, Any]:
        """
        Stamp, server-side apply and track one object.

        Args:
            obj: Object to apply. It is stamped in place, so pass a copy
                when the original must stay untouched.

        Returns:
            The live object as returned by the API server

        Raises:
            OwnershipError: If the owner cannot control the object
            KindUnavailableError: If the API server does not serve the kind
            FieldConflictError: If another field manager owns a field being set
            KubernetesAPIError: On any other API failure
            DeadlineExceededError: If the reconciliation deadline has passed
        """
        gvk = GroupVersionKind.from_object(obj)
        apply_ownership_stamp(obj, self.stamp, self.owner)
        key = ResourceKey.from_object(obj, gvk)

        try:
            resource = resolve_resource(self.dynamic_client, gvk)
        except KindUnavailableError:
            metrics_collector.record_apply(self.component, gvk.kind, "unavailable")
            raise

        timeout = request_timeout(self.deadline, f"applying {key}")
        try:
            live = self.dynamic_client.server_side_apply(
                resource,
                body=obj,
                name=key.name,
                namespace=key.namespace or None,
                field_manager=self.field_manager,
                force_conflicts=self.force_conflicts,
                _request_timeout=timeout,
            )
        except ApiException as e:
            metrics_collector.record_apply(self.component, gvk.kind, "error")
            if e.status == 409:
                raise FieldConflictError(
                    key, self.field_manager, e.reason or str(e), cause=e
                ) from e
            if e.status == 404 and not key.namespace:
                # The kind disappeared after discovery (CRD removed)
                raise KindUnavailableError(
                    gvk, delay=settings.dependency_retry_delay_seconds
                ) from e
            raise api_error(e, f"apply {key}") from e
        except TransportError as e:
            metrics_collector.record_apply(self.component, gvk.kind, "error")
            raise transport_error(e, f"apply {key}") from e

        with self._lock:
            self._desired.add(key)

        metrics_collector.record_apply(self.component, gvk.kind, "success")
        self.logger.object_event(
            logging.DEBUG,
            f"Applied {key}",
            key,
            "apply",
            field_manager=self.field_manager,
        )

        if hasattr(live, "to_dict"):
            return live.to_dict()
        return live

    def cleanup_orphans(
        self,
        cleanup_kinds: Iterable[GroupVersionKind],
        options: CleanupOptions | None = None,
    ) -> CleanupReport:
        """
        Delete owned objects of the given kinds that were not applied in this pass.

        Call once, after every desired object has been applied.
        """
        reclaimer = OrphanReclaimer(
            self.dynamic_client, self.component, deadline=self.deadline
        )
        return reclaimer.cleanup_orphans(
            self.owner,
            self.owner_label_key,
            self.owner.name,
            cleanup_kinds,
            self.desired_set,
            options,
            component_label_key=self.component_label_key,
        )
