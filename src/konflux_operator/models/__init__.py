"""Pydantic models shared by the Konflux operator services."""

from .cleanup import (
    AllowListEntry,
    CleanupOptions,
    CleanupReport,
    ClusterScopedAllowList,
    SkippedResource,
)
from .component import Component
from .resources import GroupVersionKind, OwnerIdentity, OwnershipStamp, ResourceKey
from .status import ReadinessCondition, WorkloadStatus

__all__ = [
    "AllowListEntry",
    "CleanupOptions",
    "CleanupReport",
    "ClusterScopedAllowList",
    "Component",
    "GroupVersionKind",
    "OwnerIdentity",
    "OwnershipStamp",
    "ReadinessCondition",
    "ResourceKey",
    "SkippedResource",
    "WorkloadStatus",
]
