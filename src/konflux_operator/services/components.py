"""
Per-component reconciliation settings.

Each shipped component is driven by one singleton CR. Its spec names the
CR, the field manager its objects are applied with, the kinds swept for
orphans, and which cluster-scoped orphans may be deleted.
"""

from pydantic import BaseModel, ConfigDict, Field

from konflux_operator.constants import KONFLUX_API_VERSION
from konflux_operator.errors import UnknownComponentError
from konflux_operator.models import ClusterScopedAllowList, Component, GroupVersionKind


class ComponentSpec(BaseModel):
    """How the operator reconciles one component."""

    model_config = ConfigDict(frozen=True)

    component: Component
    cr_api_version: str = KONFLUX_API_VERSION
    cr_kind: str = Field(..., description="Kind of the CR driving the component")
    cr_name: str = Field(..., description="Name of the singleton CR")
    field_manager: str = Field(..., description="Server-side apply field manager")
    cleanup_kinds: tuple[GroupVersionKind, ...] = Field(
        default=(), description="Kinds swept for orphans after every apply pass"
    )
    cluster_scoped_allow_list: ClusterScopedAllowList | None = Field(
        default=None,
        description="Cluster-scoped orphans that may be deleted (None = all)",
    )


def _gvk(api_version: str, kind: str) -> GroupVersionKind:
    return GroupVersionKind.from_api_version(api_version, kind)


NAMESPACE = _gvk("v1", "Namespace")
SERVICE = _gvk("v1", "Service")
SERVICE_ACCOUNT = _gvk("v1", "ServiceAccount")
DEPLOYMENT = _gvk("apps/v1", "Deployment")
ROLE_BINDING = _gvk("rbac.authorization.k8s.io/v1", "RoleBinding")
CLUSTER_ROLE = _gvk("rbac.authorization.k8s.io/v1", "ClusterRole")
CLUSTER_ROLE_BINDING = _gvk("rbac.authorization.k8s.io/v1", "ClusterRoleBinding")
CERTIFICATE = _gvk("cert-manager.io/v1", "Certificate")
CLUSTER_ISSUER = _gvk("cert-manager.io/v1", "ClusterIssuer")


COMPONENT_SPECS: dict[Component, ComponentSpec] = {
    Component.APPLICATION_API: ComponentSpec(
        component=Component.APPLICATION_API,
        cr_kind="KonfluxApplicationAPI",
        cr_name="konflux-application-api",
        field_manager="konflux-applicationapi-controller",
        cleanup_kinds=(CLUSTER_ROLE,),
        # CRDs are never swept; removing one deletes every instance of its kind
        cluster_scoped_allow_list=ClusterScopedAllowList.of(
            {CLUSTER_ROLE: {"application-api-viewer"}}
        ),
    ),
    Component.CERT_MANAGER: ComponentSpec(
        component=Component.CERT_MANAGER,
        cr_kind="KonfluxCertManager",
        cr_name="konflux-cert-manager",
        field_manager="konflux-cert-manager-controller",
        cleanup_kinds=(CLUSTER_ISSUER, CERTIFICATE),
        cluster_scoped_allow_list=ClusterScopedAllowList.of(
            {CLUSTER_ISSUER: {"self-signed-cluster-issuer", "ca-issuer"}}
        ),
    ),
    Component.DEFAULT_TENANT: ComponentSpec(
        component=Component.DEFAULT_TENANT,
        cr_kind="KonfluxDefaultTenant",
        cr_name="konflux-default-tenant",
        field_manager="konflux-defaulttenant-controller",
        cleanup_kinds=(ROLE_BINDING, SERVICE_ACCOUNT, NAMESPACE),
        cluster_scoped_allow_list=ClusterScopedAllowList.of(
            {NAMESPACE: {"default-tenant"}}
        ),
    ),
    Component.NAMESPACE_LISTER: ComponentSpec(
        component=Component.NAMESPACE_LISTER,
        cr_kind="KonfluxNamespaceLister",
        cr_name="konflux-namespace-lister",
        field_manager="konflux-namespacelister-controller",
        cleanup_kinds=(
            DEPLOYMENT,
            SERVICE,
            SERVICE_ACCOUNT,
            CLUSTER_ROLE,
            CLUSTER_ROLE_BINDING,
        ),
        cluster_scoped_allow_list=ClusterScopedAllowList.of(
            {
                CLUSTER_ROLE: {"namespace-lister-authorizer"},
                CLUSTER_ROLE_BINDING: {"namespace-lister-authorizer"},
            }
        ),
    ),
    Component.RBAC: ComponentSpec(
        component=Component.RBAC,
        cr_kind="KonfluxRBAC",
        cr_name="konflux-rbac",
        field_manager="konflux-rbac-controller",
        cleanup_kinds=(CLUSTER_ROLE,),
        cluster_scoped_allow_list=ClusterScopedAllowList.of(
            {
                CLUSTER_ROLE: {
                    "konflux-admin-user-actions",
                    "konflux-maintainer-user-actions",
                    "konflux-viewer-user-actions",
                    "konflux-integration-runner",
                }
            }
        ),
    ),
    Component.REGISTRY: ComponentSpec(
        component=Component.REGISTRY,
        cr_kind="KonfluxInternalRegistry",
        cr_name="konflux-internal-registry",
        field_manager="konflux-internal-registry-controller",
        cleanup_kinds=(DEPLOYMENT, SERVICE, CERTIFICATE, NAMESPACE),
        # An empty allow-list: the registry namespace is never deleted by cleanup
        cluster_scoped_allow_list=ClusterScopedAllowList(),
    ),
}


def get_component_spec(component: str) -> ComponentSpec:
    """
    Look up how a component is reconciled.

    Raises:
        UnknownComponentError: If the component is not shipped with the operator
    """
    try:
        return COMPONENT_SPECS[Component(component)]
    except (KeyError, ValueError):
        raise UnknownComponentError(str(component)) from None
