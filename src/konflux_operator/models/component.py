"""Component identifiers for the manifest bundles shipped with the operator."""

from enum import StrEnum


class Component(StrEnum):
    """A named, independently deployable unit of the platform."""

    APPLICATION_API = "application-api"
    CERT_MANAGER = "cert-manager"
    DEFAULT_TENANT = "default-tenant"
    NAMESPACE_LISTER = "namespace-lister"
    RBAC = "rbac"
    REGISTRY = "registry"
