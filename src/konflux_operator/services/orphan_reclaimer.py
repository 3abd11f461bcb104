"""
Orphan reclaimer: deletes owned objects that fell out of the desired set.

Ownership is rediscovered from the cluster on every sweep by listing each
cleanup kind with the owner and component labels. Anything listed but not
applied in the current pass is an orphan and is deleted, unless policy says
otherwise:

- cluster-scoped objects are only deleted when the allow-list permits them
- objects whose controller reference does not point at the owner (name and
  UID) are left alone, because the label alone can be forged or copied
- CustomResourceDefinitions never carry a controller reference, so they are
  exempt from that second check and rely on the allow-list instead

The sweep is best-effort: a failed deletion is collected and the sweep
continues. A single CleanupError listing every failure is raised at the end.
Connection-level failures (timeouts, resets) are collected the same way.
"""

import logging
from collections.abc import Collection, Iterable
from typing import Any

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError as TransportError

from konflux_operator.constants import COMPONENT_LABEL_KEY, CRD_GROUP, CRD_KIND
from konflux_operator.errors import (
    CleanupError,
    KindUnavailableError,
    KubernetesAPIError,
)
from konflux_operator.models import (
    CleanupOptions,
    CleanupReport,
    GroupVersionKind,
    OwnerIdentity,
    ResourceKey,
    SkippedResource,
)
from konflux_operator.observability.logging import OperatorLogger
from konflux_operator.observability.metrics import metrics_collector
from konflux_operator.utils.kubernetes import (
    api_error,
    request_timeout,
    resolve_resource,
    transport_error,
)
from konflux_operator.utils.ownership import is_controlled_by

SKIP_NOT_ALLOWED = "cluster-scoped kind or name not in allow-list"
SKIP_NOT_CONTROLLED = "not controlled by owner"


class OrphanReclaimer:
    """
    Best-effort orphan cleanup for one component.

    Args:
        dynamic_client: Kubernetes dynamic client
        component: Component name. Selects the swept objects by component
            label and tags logs and metrics. Empty selects on owner only.
        deadline: Absolute time.monotonic() deadline for every API call
    """

    def __init__(
        self,
        dynamic_client: Any,
        component: str = "",
        *,
        deadline: float | None = None,
    ):
        self.dynamic_client = dynamic_client
        self.component = str(component)
        self.deadline = deadline
        self.logger = OperatorLogger(self.__class__.__name__, self.component)

    def cleanup_orphans(
        self,
        owner: OwnerIdentity,
        owner_label_key: str,
        owner_name: str,
        cleanup_kinds: Iterable[GroupVersionKind],
        desired: Collection[ResourceKey],
        options: CleanupOptions | None = None,
        component_label_key: str = COMPONENT_LABEL_KEY,
    ) -> CleanupReport:
        """
        Delete objects carrying the owner and component labels that are not in
        the desired set.

        Args:
            owner: The owning CR, used for the controller reference check
            owner_label_key: Label key carrying the owner name
            owner_name: Value of the owner label to select on
            cleanup_kinds: Kinds to sweep
            desired: Identities applied in the current pass
            options: Allow-list and controller reference policy
            component_label_key: Label key carrying the component. Only
                objects labelled with this reclaimer's component are swept.

        Returns:
            Report of deleted, skipped and unavailable entries

        Raises:
            CleanupError: If at least one list or delete call failed
            DeadlineExceededError: If the reconciliation deadline passed
        """
        options = options or CleanupOptions()
        desired = frozenset(desired)
        report = CleanupReport()
        selector = f"{owner_label_key}={owner_name}"
        if self.component:
            selector += f",{component_label_key}={self.component}"

        for gvk in cleanup_kinds:
            self._sweep_kind(gvk, owner, selector, desired, options, report)

        if report.failures:
            self.logger.warning(
                f"Orphan cleanup finished with {len(report.failures)} failure(s)",
                owner=owner_name,
            )
            raise CleanupError(report.failures)

        if report.deleted:
            self.logger.info(
                f"Deleted {len(report.deleted)} orphaned object(s)",
                owner=owner_name,
            )
        return report

    def _sweep_kind(
        self,
        gvk: GroupVersionKind,
        owner: OwnerIdentity,
        selector: str,
        desired: frozenset[ResourceKey],
        options: CleanupOptions,
        report: CleanupReport,
    ) -> None:
        try:
            resource = resolve_resource(self.dynamic_client, gvk)
        except KindUnavailableError:
            self._record_unavailable(gvk, report)
            return

        try:
            listed = self.dynamic_client.get(
                resource,
                label_selector=selector,
                _request_timeout=request_timeout(
                    self.deadline, f"listing {gvk.kind}"
                ),
            )
        except ApiException as e:
            if e.status == 404:
                self._record_unavailable(gvk, report)
                return
            error = api_error(e, f"list {gvk.kind}")
            report.failures.append((f"list {gvk}", str(error)))
            return
        except TransportError as e:
            error = transport_error(e, f"list {gvk.kind}")
            report.failures.append((f"list {gvk}", str(error)))
            self.logger.error(str(error), kind=gvk.kind, operation="orphan_list")
            return

        items = _items(listed)
        for item in items:
            key = ResourceKey.from_object(item, gvk)
            if key in desired:
                continue
            if self._should_skip(key, item, owner, options, report):
                continue
            self._delete(resource, key, report)

    def _should_skip(
        self,
        key: ResourceKey,
        item: dict[str, Any],
        owner: OwnerIdentity,
        options: CleanupOptions,
        report: CleanupReport,
    ) -> bool:
        allow_list = options.cluster_scoped_allow_list
        reason = None
        if (
            key.cluster_scoped
            and allow_list is not None
            and not allow_list.is_allowed(key.gvk, key.name)
        ):
            reason = SKIP_NOT_ALLOWED
        elif (
            options.require_controller_reference
            and not _is_crd(key.gvk)
            and not is_controlled_by(item, owner)
        ):
            reason = SKIP_NOT_CONTROLLED

        if reason is None:
            return False

        report.skipped.append(SkippedResource(key=key, reason=reason))
        metrics_collector.record_orphan_skipped(self.component, key.gvk.kind, reason)
        self.logger.object_event(
            logging.INFO,
            f"Skipping orphan {key}: {reason}",
            key,
            "orphan_skip",
            reason=reason,
        )
        return True

    def _delete(self, resource: Any, key: ResourceKey, report: CleanupReport) -> None:
        try:
            self.dynamic_client.delete(
                resource,
                name=key.name,
                namespace=key.namespace or None,
                _request_timeout=request_timeout(self.deadline, f"deleting {key}"),
            )
        except ApiException as e:
            if e.status != 404:
                self._record_delete_failure(
                    key, api_error(e, f"delete {key}"), report, http_status=e.status
                )
                return
        except TransportError as e:
            self._record_delete_failure(
                key, transport_error(e, f"delete {key}"), report
            )
            return

        report.deleted.append(key)
        metrics_collector.record_orphan_deleted(self.component, key.gvk.kind)
        self.logger.object_event(
            logging.INFO,
            f"Deleted orphan {key}",
            key,
            "orphan_delete",
        )

    def _record_delete_failure(
        self,
        key: ResourceKey,
        error: KubernetesAPIError,
        report: CleanupReport,
        **fields,
    ) -> None:
        report.failures.append((str(key), str(error)))
        metrics_collector.record_orphan_delete_failure(self.component, key.gvk.kind)
        self.logger.object_event(
            logging.ERROR,
            f"Failed to delete orphan {key}: {error.reason}",
            key,
            "orphan_delete",
            **fields,
        )

    def _record_unavailable(
        self, gvk: GroupVersionKind, report: CleanupReport
    ) -> None:
        report.unavailable_kinds.append(gvk)
        self.logger.debug(
            f"Kind {gvk} not served by the cluster, nothing to clean up",
            kind=gvk.kind,
        )


def _items(listed: Any) -> list[dict[str, Any]]:
    if hasattr(listed, "to_dict"):
        listed = listed.to_dict()
    return list(listed.get("items") or [])


def _is_crd(gvk: GroupVersionKind) -> bool:
    return gvk.group == CRD_GROUP and gvk.kind == CRD_KIND
