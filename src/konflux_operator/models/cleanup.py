"""
Models configuring and reporting orphan cleanup.

The cluster-scoped allow-list is a capability gate. A cleanup sweep may
delete a cluster-scoped object only when the list explicitly permits its
kind (and, if the entry names any, its name):

- no list at all (None): every cluster-scoped kind may be deleted
- an empty list: no cluster-scoped object may be deleted
- a populated list: only the listed kinds (and names) may be deleted

Namespaced objects are never restricted by the list.
"""

from collections.abc import Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field

from .resources import GroupVersionKind, ResourceKey


class AllowListEntry(BaseModel):
    """A cluster-scoped kind that cleanup may delete, optionally by name."""

    model_config = ConfigDict(frozen=True)

    gvk: GroupVersionKind
    names: frozenset[str] | None = Field(
        None, description="Names that may be deleted (None = any name)"
    )


class ClusterScopedAllowList(BaseModel):
    """Explicit set of cluster-scoped kinds that orphan cleanup may delete."""

    model_config = ConfigDict(frozen=True)

    entries: tuple[AllowListEntry, ...] = ()

    @classmethod
    def of(
        cls, kinds: Mapping[GroupVersionKind, Iterable[str] | None]
    ) -> "ClusterScopedAllowList":
        """
        Build from a mapping of kind to allowed names.

        Example:
            >>> ClusterScopedAllowList.of({
            ...     GroupVersionKind(version="v1", kind="Namespace"): {"default-tenant"},
            ...     GroupVersionKind(
            ...         group="rbac.authorization.k8s.io", version="v1", kind="ClusterRole"
            ...     ): None,
            ... })
        """
        return cls(
            entries=tuple(
                AllowListEntry(
                    gvk=gvk, names=frozenset(names) if names is not None else None
                )
                for gvk, names in kinds.items()
            )
        )

    def is_allowed(self, gvk: GroupVersionKind, name: str) -> bool:
        """Check whether a cluster-scoped object of this kind and name may be deleted."""
        for entry in self.entries:
            if entry.gvk == gvk:
                return entry.names is None or name in entry.names
        return False


class CleanupOptions(BaseModel):
    """Options for one orphan cleanup sweep."""

    model_config = ConfigDict(frozen=True)

    cluster_scoped_allow_list: ClusterScopedAllowList | None = Field(
        None,
        description="Cluster-scoped kinds cleanup may delete (None = allow all, "
        "empty = allow none)",
    )
    require_controller_reference: bool = Field(
        True,
        description="Only delete objects whose controller reference matches the "
        "owner's name and UID",
    )


class SkippedResource(BaseModel):
    """An orphan candidate that was left in place, with the reason why."""

    key: ResourceKey
    reason: str


class CleanupReport(BaseModel):
    """Outcome of an orphan cleanup sweep."""

    deleted: list[ResourceKey] = Field(default_factory=list)
    skipped: list[SkippedResource] = Field(default_factory=list)
    unavailable_kinds: list[GroupVersionKind] = Field(default_factory=list)
    failures: list[tuple[str, str]] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures
