"""
Unit tests for orphan cleanup.

Covers convergence after objects leave the bundle, isolation between
owners, the cluster-scoped allow-list, the controller reference check,
tolerance of missing CRDs, and best-effort aggregation of failures
including connection-level ones.
"""

import copy
import time

import pytest
from urllib3.exceptions import ProtocolError, ReadTimeoutError

from konflux_operator.constants import COMPONENT_LABEL_KEY, OWNER_LABEL_KEY
from konflux_operator.errors import CleanupError, DeadlineExceededError
from konflux_operator.models import (
    CleanupOptions,
    ClusterScopedAllowList,
    GroupVersionKind,
    ResourceKey,
)
from konflux_operator.services.apply_engine import ApplyEngine
from konflux_operator.services.orphan_reclaimer import (
    SKIP_NOT_ALLOWED,
    SKIP_NOT_CONTROLLED,
    OrphanReclaimer,
)

FIELD_MANAGER = "konflux-defaulttenant-controller"

NAMESPACE_GVK = GroupVersionKind(version="v1", kind="Namespace")
SERVICE_ACCOUNT_GVK = GroupVersionKind(version="v1", kind="ServiceAccount")
CLUSTER_ROLE_GVK = GroupVersionKind(
    group="rbac.authorization.k8s.io", version="v1", kind="ClusterRole"
)
CRD_GVK = GroupVersionKind(
    group="apiextensions.k8s.io", version="v1", kind="CustomResourceDefinition"
)
CERTIFICATE_GVK = GroupVersionKind(
    group="cert-manager.io", version="v1", kind="Certificate"
)


def service_account(name, namespace="default-tenant"):
    return {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": {"name": name, "namespace": namespace},
    }


def cluster_role(name):
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRole",
        "metadata": {"name": name},
        "rules": [],
    }


def namespace(name):
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}


def new_engine(cluster, owner, component="default-tenant"):
    return ApplyEngine(cluster, owner, component, FIELD_MANAGER)


def apply_all(cluster, owner, objects, component="default-tenant"):
    engine = new_engine(cluster, owner, component)
    for obj in objects:
        engine.apply(copy.deepcopy(obj))
    return engine


class TestConvergence:
    """Objects dropped from the bundle are removed on the next pass."""

    def test_removed_object_is_deleted(self, cluster, owner):
        apply_all(
            cluster, owner, [service_account("keep"), service_account("drop")]
        )

        engine = apply_all(cluster, owner, [service_account("keep")])
        report = engine.cleanup_orphans([SERVICE_ACCOUNT_GVK])

        remaining = [o["metadata"]["name"] for o in cluster.list_objects("ServiceAccount")]
        assert remaining == ["keep"]
        assert report.deleted == [
            ResourceKey(gvk=SERVICE_ACCOUNT_GVK, namespace="default-tenant", name="drop")
        ]
        assert report.succeeded

    def test_nothing_to_clean(self, cluster, owner):
        engine = apply_all(cluster, owner, [service_account("keep")])

        report = engine.cleanup_orphans([SERVICE_ACCOUNT_GVK])

        assert report.deleted == []
        assert cluster.deleted == []

    def test_only_listed_kinds_are_swept(self, cluster, owner):
        apply_all(cluster, owner, [service_account("drop"), cluster_role("drop-role")])

        engine = new_engine(cluster, owner)
        engine.cleanup_orphans([SERVICE_ACCOUNT_GVK])

        assert cluster.list_objects("ServiceAccount") == []
        assert len(cluster.list_objects("ClusterRole")) == 1

    def test_sweeps_every_namespace(self, cluster, owner):
        apply_all(
            cluster,
            owner,
            [service_account("a", "ns-one"), service_account("b", "ns-two")],
        )

        new_engine(cluster, owner).cleanup_orphans([SERVICE_ACCOUNT_GVK])

        assert sorted(cluster.deleted) == [
            ("ServiceAccount", "ns-one", "a"),
            ("ServiceAccount", "ns-two", "b"),
        ]


class TestIsolation:
    """Cleanup never touches objects of another owner."""

    def test_other_owner_objects_survive(self, cluster, owner, other_owner):
        apply_all(cluster, other_owner, [service_account("theirs")], "namespace-lister")
        apply_all(cluster, owner, [service_account("mine")])

        engine = new_engine(cluster, owner)
        engine.cleanup_orphans([SERVICE_ACCOUNT_GVK])

        remaining = [o["metadata"]["name"] for o in cluster.list_objects("ServiceAccount")]
        assert remaining == ["theirs"]

    def test_unlabelled_objects_survive(self, cluster, owner):
        cluster.seed(service_account("manual"))

        new_engine(cluster, owner).cleanup_orphans([SERVICE_ACCOUNT_GVK])

        assert len(cluster.list_objects("ServiceAccount")) == 1

    def test_other_component_objects_survive(self, cluster, owner):
        apply_all(cluster, owner, [service_account("lister")], "namespace-lister")
        apply_all(cluster, owner, [service_account("mine")])

        report = new_engine(cluster, owner).cleanup_orphans([SERVICE_ACCOUNT_GVK])

        remaining = [o["metadata"]["name"] for o in cluster.list_objects("ServiceAccount")]
        assert remaining == ["lister", "mine"]
        assert report.deleted == []

    def test_controlled_object_without_component_label_survives(self, cluster, owner):
        apply_all(cluster, owner, [service_account("stripped")])
        stripped = cluster.list_objects("ServiceAccount")[0]
        del stripped["metadata"]["labels"][COMPONENT_LABEL_KEY]

        report = new_engine(cluster, owner).cleanup_orphans([SERVICE_ACCOUNT_GVK])

        assert len(cluster.list_objects("ServiceAccount")) == 1
        assert cluster.deleted == []
        assert report.skipped == []

    def test_forged_label_without_controller_reference_is_skipped(
        self, cluster, owner
    ):
        forged = service_account("forged")
        forged["metadata"]["labels"] = {
            OWNER_LABEL_KEY: owner.name,
            COMPONENT_LABEL_KEY: "default-tenant",
        }
        cluster.seed(forged)

        report = new_engine(cluster, owner).cleanup_orphans([SERVICE_ACCOUNT_GVK])

        assert len(cluster.list_objects("ServiceAccount")) == 1
        assert [s.reason for s in report.skipped] == [SKIP_NOT_CONTROLLED]

    def test_controller_check_can_be_disabled(self, cluster, owner):
        forged = service_account("forged")
        forged["metadata"]["labels"] = {
            OWNER_LABEL_KEY: owner.name,
            COMPONENT_LABEL_KEY: "default-tenant",
        }
        cluster.seed(forged)

        new_engine(cluster, owner).cleanup_orphans(
            [SERVICE_ACCOUNT_GVK],
            CleanupOptions(require_controller_reference=False),
        )

        assert cluster.list_objects("ServiceAccount") == []


class TestClusterScopedAllowList:
    """Cluster-scoped orphans are only deleted when explicitly allowed."""

    @pytest.fixture
    def orphaned(self, cluster, owner):
        apply_all(
            cluster,
            owner,
            [cluster_role("allowed-role"), cluster_role("other-role"), namespace("gone")],
        )
        return new_engine(cluster, owner)

    def test_no_allow_list_allows_everything(self, cluster, orphaned):
        orphaned.cleanup_orphans([CLUSTER_ROLE_GVK, NAMESPACE_GVK])

        assert cluster.list_objects("ClusterRole") == []
        assert cluster.list_objects("Namespace") == []

    def test_empty_allow_list_denies_everything(self, cluster, orphaned):
        report = orphaned.cleanup_orphans(
            [CLUSTER_ROLE_GVK, NAMESPACE_GVK],
            CleanupOptions(cluster_scoped_allow_list=ClusterScopedAllowList()),
        )

        assert len(cluster.list_objects("ClusterRole")) == 2
        assert len(cluster.list_objects("Namespace")) == 1
        assert {s.reason for s in report.skipped} == {SKIP_NOT_ALLOWED}
        assert report.succeeded

    def test_allow_list_restricts_kinds_and_names(self, cluster, orphaned):
        allow_list = ClusterScopedAllowList.of({CLUSTER_ROLE_GVK: {"allowed-role"}})

        report = orphaned.cleanup_orphans(
            [CLUSTER_ROLE_GVK, NAMESPACE_GVK],
            CleanupOptions(cluster_scoped_allow_list=allow_list),
        )

        assert [k.name for k in report.deleted] == ["allowed-role"]
        assert sorted(k.key.name for k in report.skipped) == ["gone", "other-role"]

    def test_allow_list_entry_without_names_allows_any_name(self, cluster, orphaned):
        allow_list = ClusterScopedAllowList.of({CLUSTER_ROLE_GVK: None})

        orphaned.cleanup_orphans(
            [CLUSTER_ROLE_GVK, NAMESPACE_GVK],
            CleanupOptions(cluster_scoped_allow_list=allow_list),
        )

        assert cluster.list_objects("ClusterRole") == []
        assert len(cluster.list_objects("Namespace")) == 1

    def test_namespaced_objects_ignore_allow_list(self, cluster, owner):
        apply_all(cluster, owner, [service_account("drop")])

        new_engine(cluster, owner).cleanup_orphans(
            [SERVICE_ACCOUNT_GVK],
            CleanupOptions(cluster_scoped_allow_list=ClusterScopedAllowList()),
        )

        assert cluster.list_objects("ServiceAccount") == []

    def test_crds_are_exempt_from_controller_check(self, cluster, owner):
        crd = {
            "apiVersion": "apiextensions.k8s.io/v1",
            "kind": "CustomResourceDefinition",
            "metadata": {"name": "widgets.example.com"},
            "spec": {"group": "example.com"},
        }
        apply_all(cluster, owner, [crd])

        new_engine(cluster, owner).cleanup_orphans(
            [CRD_GVK],
            CleanupOptions(
                cluster_scoped_allow_list=ClusterScopedAllowList.of(
                    {CRD_GVK: {"widgets.example.com"}}
                )
            ),
        )

        assert cluster.list_objects("CustomResourceDefinition") == []


class TestMissingKinds:
    """A cleanup kind whose CRD is not installed is a no-op."""

    def test_unavailable_kind_is_skipped(self, cluster, owner):
        apply_all(cluster, owner, [service_account("drop")])

        report = new_engine(cluster, owner).cleanup_orphans(
            [CERTIFICATE_GVK, SERVICE_ACCOUNT_GVK]
        )

        assert report.unavailable_kinds == [CERTIFICATE_GVK]
        assert cluster.list_objects("ServiceAccount") == []

    def test_not_found_on_list_is_treated_as_unavailable(self, cluster, owner):
        cluster.fail("list", "ServiceAccount", status=404, reason="Not Found")

        report = new_engine(cluster, owner).cleanup_orphans([SERVICE_ACCOUNT_GVK])

        assert report.unavailable_kinds == [SERVICE_ACCOUNT_GVK]
        assert report.succeeded


class TestFailures:
    """Failures are collected and reported together."""

    def test_delete_failures_do_not_stop_the_sweep(self, cluster, owner):
        apply_all(
            cluster,
            owner,
            [service_account("a"), service_account("b"), service_account("c")],
        )
        cluster.fail("delete", "ServiceAccount", "a")
        cluster.fail("delete", "ServiceAccount", "c", status=403, reason="Forbidden")

        with pytest.raises(CleanupError) as exc_info:
            new_engine(cluster, owner).cleanup_orphans([SERVICE_ACCOUNT_GVK])

        error = exc_info.value
        assert [resource for resource, _ in error.failures] == [
            "ServiceAccount/default-tenant/a",
            "ServiceAccount/default-tenant/c",
        ]
        assert cluster.deleted == [("ServiceAccount", "default-tenant", "b")]
        assert error.retryable is True

    def test_not_found_on_delete_counts_as_deleted(self, cluster, owner):
        apply_all(cluster, owner, [service_account("a")])
        cluster.fail("delete", "ServiceAccount", "a", status=404, reason="Not Found")

        report = new_engine(cluster, owner).cleanup_orphans([SERVICE_ACCOUNT_GVK])

        assert [k.name for k in report.deleted] == ["a"]

    def test_list_failure_is_collected(self, cluster, owner):
        apply_all(cluster, owner, [cluster_role("drop-role")])
        cluster.fail("list", "ServiceAccount", status=500)

        with pytest.raises(CleanupError) as exc_info:
            new_engine(cluster, owner).cleanup_orphans(
                [SERVICE_ACCOUNT_GVK, CLUSTER_ROLE_GVK]
            )

        assert len(exc_info.value.failures) == 1
        assert exc_info.value.failures[0][0].startswith("list ")
        # The sweep continued with the next kind
        assert cluster.list_objects("ClusterRole") == []


    def test_delete_timeout_does_not_stop_the_sweep(self, cluster, owner):
        apply_all(cluster, owner, [service_account("a"), service_account("b")])
        cluster.fail(
            "delete",
            "ServiceAccount",
            "a",
            error=ReadTimeoutError(None, "/api/v1/serviceaccounts", "Read timed out."),
        )

        with pytest.raises(CleanupError) as exc_info:
            new_engine(cluster, owner).cleanup_orphans([SERVICE_ACCOUNT_GVK])

        error = exc_info.value
        assert [resource for resource, _ in error.failures] == [
            "ServiceAccount/default-tenant/a"
        ]
        assert "ReadTimeoutError" in error.failures[0][1]
        assert cluster.deleted == [("ServiceAccount", "default-tenant", "b")]
        assert error.retryable is True

    def test_connection_reset_on_list_is_collected(self, cluster, owner):
        apply_all(cluster, owner, [cluster_role("drop-role")])
        cluster.fail(
            "list",
            "ServiceAccount",
            error=ProtocolError("Connection aborted.", ConnectionResetError(104)),
        )

        with pytest.raises(CleanupError) as exc_info:
            new_engine(cluster, owner).cleanup_orphans(
                [SERVICE_ACCOUNT_GVK, CLUSTER_ROLE_GVK]
            )

        assert [resource for resource, _ in exc_info.value.failures] == [
            f"list {SERVICE_ACCOUNT_GVK}"
        ]
        assert cluster.list_objects("ClusterRole") == []

    def test_deadline_propagates(self, cluster, owner):
        apply_all(cluster, owner, [service_account("a")])
        engine = ApplyEngine(
            cluster,
            owner,
            "default-tenant",
            FIELD_MANAGER,
            deadline=time.monotonic() - 1,
        )

        with pytest.raises(DeadlineExceededError):
            engine.cleanup_orphans([SERVICE_ACCOUNT_GVK])

        assert cluster.deleted == []


class TestReclaimerDirect:
    """Test the reclaimer without an apply engine."""

    def test_explicit_desired_set(self, cluster, owner):
        apply_all(cluster, owner, [service_account("keep"), service_account("drop")])
        desired = {
            ResourceKey(gvk=SERVICE_ACCOUNT_GVK, namespace="default-tenant", name="keep")
        }

        report = OrphanReclaimer(cluster, "default-tenant").cleanup_orphans(
            owner,
            OWNER_LABEL_KEY,
            owner.name,
            [SERVICE_ACCOUNT_GVK],
            desired,
        )

        assert [k.name for k in report.deleted] == ["drop"]
