"""
Identity models for Kubernetes objects handled by the operator.

These are the value types the apply, cleanup and readiness services pass
around: kind identities, object identities, the owning CR and the ownership
stamp derived from it.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GroupVersionKind(BaseModel):
    """Group, version and kind of an API object. The core group is ''."""

    model_config = ConfigDict(frozen=True)

    group: str = Field("", description="API group ('' for the core group)")
    version: str = Field(..., description="API version within the group")
    kind: str = Field(..., description="Object kind")

    @classmethod
    def from_api_version(cls, api_version: str, kind: str) -> "GroupVersionKind":
        """Build from an object's apiVersion ('v1' or 'group/version') and kind."""
        group, _, version = api_version.rpartition("/")
        return cls(group=group, version=version, kind=kind)

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> "GroupVersionKind":
        return cls.from_api_version(obj.get("apiVersion", ""), obj.get("kind", ""))

    @property
    def api_version(self) -> str:
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    def __str__(self) -> str:
        return f"{self.api_version}, Kind={self.kind}"


class ResourceKey(BaseModel):
    """
    Identity of a single object: kind plus namespace/name.

    Namespace is '' for cluster-scoped objects. Members of the desired set
    (objects applied in this pass) and the existing set (objects listed from
    the cluster) are compared by this key.
    """

    model_config = ConfigDict(frozen=True)

    gvk: GroupVersionKind
    namespace: str = ""
    name: str

    @classmethod
    def from_object(
        cls, obj: dict[str, Any], gvk: GroupVersionKind | None = None
    ) -> "ResourceKey":
        metadata = obj.get("metadata") or {}
        return cls(
            gvk=gvk or GroupVersionKind.from_object(obj),
            namespace=metadata.get("namespace") or "",
            name=metadata.get("name", ""),
        )

    @property
    def cluster_scoped(self) -> bool:
        return not self.namespace

    def __str__(self) -> str:
        if not self.namespace:
            return f"{self.gvk.kind}/{self.name}"
        return f"{self.gvk.kind}/{self.namespace}/{self.name}"


class OwnerIdentity(BaseModel):
    """The custom resource driving a reconciliation."""

    model_config = ConfigDict(frozen=True)

    api_version: str = Field(..., description="apiVersion of the owning CR")
    kind: str = Field(..., description="Kind of the owning CR")
    name: str = Field(..., description="Name of the owning CR")
    uid: str = Field(..., description="UID of the owning CR")
    namespace: str | None = Field(
        None, description="Namespace of the CR (None for cluster-scoped CRs)"
    )

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> "OwnerIdentity":
        """Build from a CR body as delivered by the driver (kopf body or dict)."""
        metadata = body.get("metadata") or {}
        return cls(
            api_version=body["apiVersion"],
            kind=body["kind"],
            name=metadata["name"],
            uid=metadata["uid"],
            namespace=metadata.get("namespace") or None,
        )

    def __str__(self) -> str:
        return f"{self.kind}/{self.name}"


class OwnershipStamp(BaseModel):
    """Ownership metadata stamped onto every object before it is applied."""

    model_config = ConfigDict(frozen=True)

    owner_reference: dict[str, Any]
    labels: dict[str, str]
    field_manager: str
