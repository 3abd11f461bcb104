"""
Unit tests for the component reconciler.

Drives full reconciliations (apply, cleanup, readiness, status) against the
in-memory fake cluster, including the default-tenant bundle change scenario.
"""

from unittest.mock import patch

import kopf
import pytest

from konflux_operator import settings as settings_module
from konflux_operator.constants import (
    COMPONENT_LABEL_KEY,
    KONFLUX_API_VERSION,
    OWNER_LABEL_KEY,
)
from konflux_operator.errors import DeadlineExceededError
from konflux_operator.manifests import ManifestStore
from konflux_operator.services.component_reconciler import ComponentReconciler

TENANT_NAMESPACE = """
apiVersion: v1
kind: Namespace
metadata:
  name: default-tenant
"""

TENANT_SERVICE_ACCOUNT = """
apiVersion: v1
kind: ServiceAccount
metadata:
  name: konflux-integration-runner
  namespace: default-tenant
"""

RUNNER_BINDING = """
apiVersion: rbac.authorization.k8s.io/v1
kind: RoleBinding
metadata:
  name: konflux-integration-runner-rolebinding
  namespace: default-tenant
roleRef:
  apiGroup: rbac.authorization.k8s.io
  kind: ClusterRole
  name: konflux-integration-runner
subjects:
  - kind: ServiceAccount
    name: konflux-integration-runner
    namespace: default-tenant
"""

MAINTAINER_BINDING = """
apiVersion: rbac.authorization.k8s.io/v1
kind: RoleBinding
metadata:
  name: authenticated-konflux-maintainer
  namespace: default-tenant
roleRef:
  apiGroup: rbac.authorization.k8s.io
  kind: ClusterRole
  name: konflux-maintainer-user-actions
subjects:
  - apiGroup: rbac.authorization.k8s.io
    kind: Group
    name: system:authenticated
"""

AVAILABLE = {
    "replicas": 1,
    "readyReplicas": 1,
    "updatedReplicas": 1,
    "conditions": [{"type": "Available", "status": "True"}],
}


def tenant_store(root, *documents):
    bundle_dir = root / "default-tenant"
    bundle_dir.mkdir(parents=True)
    (bundle_dir / "manifests.yaml").write_text(
        "\n---\n".join(documents), encoding="utf-8"
    )
    return ManifestStore(manifests_dir=root, components=("default-tenant",))


def handler_kwargs(kind, name, uid, generation=1):
    return {
        "body": {
            "apiVersion": KONFLUX_API_VERSION,
            "kind": kind,
            "metadata": {"name": name, "uid": uid, "generation": generation},
        },
        "meta": {"name": name, "uid": uid, "generation": generation},
        "uid": uid,
    }


async def run_reconcile(reconciler, owner, status, generation=1):
    return await reconciler.reconcile(
        {},
        owner.name,
        None,
        status,
        **handler_kwargs(owner.kind, owner.name, owner.uid, generation),
    )


def owned_objects(cluster, owner_name):
    return sorted(
        (kind, ns, name)
        for (_, kind, ns, name), obj in cluster.objects.items()
        if (obj["metadata"].get("labels") or {}).get(OWNER_LABEL_KEY) == owner_name
    )


class TestDefaultTenantScenario:
    """A bundle change removes exactly the dropped object."""

    @pytest.mark.asyncio
    async def test_bundle_change_converges(self, cluster, owner, status, tmp_path):
        full = tenant_store(
            tmp_path / "v1",
            TENANT_NAMESPACE,
            TENANT_SERVICE_ACCOUNT,
            RUNNER_BINDING,
            MAINTAINER_BINDING,
        )
        reconciler = ComponentReconciler("default-tenant", cluster, store=full)

        result = await run_reconcile(reconciler, owner, status)

        assert result["applied"] == 4
        assert len(owned_objects(cluster, owner.name)) == 4
        assert status.phase == "Ready"
        ready = reconciler.get_condition(status, "Ready")
        assert ready["status"] == "True"
        assert ready["message"] == "Component ready (no workloads by design)"

        trimmed = tenant_store(
            tmp_path / "v2",
            TENANT_NAMESPACE,
            TENANT_SERVICE_ACCOUNT,
            RUNNER_BINDING,
        )
        reconciler = ComponentReconciler("default-tenant", cluster, store=trimmed)

        result = await run_reconcile(reconciler, owner, status, generation=2)

        assert result["orphansDeleted"] == 1
        assert cluster.deleted == [
            ("RoleBinding", "default-tenant", "authenticated-konflux-maintainer")
        ]
        assert owned_objects(cluster, owner.name) == [
            ("Namespace", "", "default-tenant"),
            ("RoleBinding", "default-tenant", "konflux-integration-runner-rolebinding"),
            ("ServiceAccount", "default-tenant", "konflux-integration-runner"),
        ]
        assert status.phase == "Ready"
        assert status.observedGeneration == 2

    @pytest.mark.asyncio
    async def test_repeated_reconcile_changes_nothing(self, cluster, owner, status):
        reconciler = ComponentReconciler("default-tenant", cluster)

        await run_reconcile(reconciler, owner, status)
        versions = {
            key: obj["metadata"]["resourceVersion"]
            for key, obj in cluster.objects.items()
        }
        await run_reconcile(reconciler, owner, status)

        assert {
            key: obj["metadata"]["resourceVersion"]
            for key, obj in cluster.objects.items()
        } == versions
        assert cluster.deleted == []


class TestReconcileFailures:
    """Test how failures surface in status and kopf errors."""

    @pytest.mark.asyncio
    async def test_apply_failure_stops_the_pass(self, cluster, owner, status):
        cluster.fail("apply", "ServiceAccount", status=403, reason="Forbidden")
        reconciler = ComponentReconciler("default-tenant", cluster)

        with pytest.raises(kopf.PermanentError):
            await run_reconcile(reconciler, owner, status)

        assert status.phase == "Error"
        assert reconciler.get_condition(status, "Ready")["reason"] == "ApplyFailed"
        # Namespace came first and was applied, nothing after the failure was
        assert owned_objects(cluster, owner.name) == [("Namespace", "", "default-tenant")]

    @pytest.mark.asyncio
    async def test_field_conflict_is_retried(self, cluster, owner, status):
        cluster.seed(
            {
                "apiVersion": "rbac.authorization.k8s.io/v1",
                "kind": "RoleBinding",
                "metadata": {
                    "name": "authenticated-konflux-maintainer",
                    "namespace": "default-tenant",
                },
                "roleRef": {
                    "apiGroup": "rbac.authorization.k8s.io",
                    "kind": "ClusterRole",
                    "name": "edit",
                },
            },
            field_manager="kubectl-client-side-apply",
        )
        reconciler = ComponentReconciler("default-tenant", cluster)

        with pytest.raises(kopf.TemporaryError, match="conflicts"):
            await run_reconcile(reconciler, owner, status)

        assert status.phase == "Error"
        assert reconciler.get_condition(status, "Ready")["reason"] == "ApplyFailed"

    @pytest.mark.asyncio
    async def test_cleanup_failure(self, cluster, owner, status):
        reconciler = ComponentReconciler("default-tenant", cluster)
        await run_reconcile(reconciler, owner, status)
        stale = {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": {
                "name": "stale",
                "namespace": "default-tenant",
                "labels": {
                    OWNER_LABEL_KEY: owner.name,
                    COMPONENT_LABEL_KEY: "default-tenant",
                },
                "ownerReferences": [
                    {
                        "apiVersion": owner.api_version,
                        "kind": owner.kind,
                        "name": owner.name,
                        "uid": owner.uid,
                        "controller": True,
                    }
                ],
            },
        }
        cluster.seed(stale)
        cluster.fail("delete", "ServiceAccount", "stale")

        with pytest.raises(kopf.TemporaryError):
            await run_reconcile(reconciler, owner, status)

        assert status.phase == "Error"
        assert reconciler.get_condition(status, "Ready")["reason"] == "CleanupFailed"

    @pytest.mark.asyncio
    async def test_deadline_during_cleanup_reports_cleanup_failed(
        self, cluster, owner, status
    ):
        reconciler = ComponentReconciler("default-tenant", cluster)

        with patch(
            "konflux_operator.services.orphan_reclaimer.request_timeout",
            side_effect=DeadlineExceededError("listing ServiceAccount"),
        ):
            with pytest.raises(kopf.TemporaryError, match="deadline exceeded"):
                await run_reconcile(reconciler, owner, status)

        assert status.phase == "Error"
        assert reconciler.get_condition(status, "Ready")["reason"] == "CleanupFailed"

    @pytest.mark.asyncio
    async def test_expired_deadline_is_retried(self, cluster, owner, status):
        reconciler = ComponentReconciler("default-tenant", cluster)

        with patch.object(settings_module.settings, "reconcile_timeout_seconds", 0):
            with pytest.raises(kopf.TemporaryError, match="deadline exceeded"):
                await run_reconcile(reconciler, owner, status)

        assert cluster.objects == {}


class TestRegistryReadiness:
    """Test a component with workloads and a CRD dependency."""

    @pytest.fixture
    def registry_owner(self):
        from konflux_operator.models import OwnerIdentity

        return OwnerIdentity(
            api_version=KONFLUX_API_VERSION,
            kind="KonfluxInternalRegistry",
            name="konflux-internal-registry",
            uid="6c1d3a8e-0000-4000-8000-000000000003",
        )

    @pytest.mark.asyncio
    async def test_missing_cert_manager_waits_for_dependency(
        self, cluster, registry_owner, status
    ):
        reconciler = ComponentReconciler("registry", cluster)

        with pytest.raises(kopf.TemporaryError, match="Waiting for dependency") as exc_info:
            await run_reconcile(reconciler, registry_owner, status)

        assert exc_info.value.delay == 30
        assert status.phase == "Degraded"
        ready = reconciler.get_condition(status, "Ready")
        assert ready["status"] == "False"
        assert ready["reason"] == "DependencyMissing"
        assert "Certificate" in ready["message"]
        # Objects of installed kinds were still applied
        kinds = {kind for kind, _, _ in owned_objects(cluster, registry_owner.name)}
        assert kinds == {"Namespace", "Deployment", "Service"}

    @pytest.mark.asyncio
    async def test_degraded_until_deployment_available(
        self, cluster_with_cert_manager, registry_owner, status
    ):
        cluster = cluster_with_cert_manager
        reconciler = ComponentReconciler("registry", cluster)
        status.conditions = [
            {"type": "old-ns/old-deployment", "status": "True"},
        ]

        await run_reconcile(reconciler, registry_owner, status)

        assert status.phase == "Degraded"
        assert reconciler.get_condition(status, "Ready")["reason"] == (
            "ComponentsNotReady"
        )
        assert reconciler.get_condition(status, "old-ns/old-deployment") is None
        workload = reconciler.get_condition(status, "kind-registry/registry")
        assert workload["status"] == "False"

        cluster.set_status(
            "apps/v1", "Deployment", "registry", "kind-registry", AVAILABLE
        )
        await run_reconcile(reconciler, registry_owner, status)

        assert status.phase == "Ready"
        assert reconciler.is_ready(status)
        assert reconciler.get_condition(status, "kind-registry/registry")["status"] == (
            "True"
        )
