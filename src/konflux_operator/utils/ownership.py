"""
Ownership tracking utilities for cluster objects.

Ownership lives on the objects themselves: an owner label carrying the CR
name, a component label, and a controller owner reference pointing at the
CR. Cleanup and readiness discover "what do I own" purely from these, so no
state has to survive between reconciliations.
"""

from typing import Any

from konflux_operator.constants import COMPONENT_LABEL_KEY, OWNER_LABEL_KEY
from konflux_operator.errors import OwnershipError
from konflux_operator.models import OwnerIdentity, OwnershipStamp
from konflux_operator.utils.kubernetes import is_custom_resource_definition


def build_owner_reference(owner: OwnerIdentity) -> dict[str, Any]:
    """Create a controller owner reference pointing at the owning CR."""
    return {
        "apiVersion": owner.api_version,
        "kind": owner.kind,
        "name": owner.name,
        "uid": owner.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def build_ownership_stamp(
    owner: OwnerIdentity,
    component: str,
    field_manager: str,
    owner_label_key: str = OWNER_LABEL_KEY,
    component_label_key: str = COMPONENT_LABEL_KEY,
) -> OwnershipStamp:
    """
    Create the ownership stamp for objects applied on behalf of a CR.

    Args:
        owner: The CR driving the reconciliation
        component: Component identifier the objects belong to
        field_manager: Server-side apply field manager of the controller
        owner_label_key: Label key carrying the owner name
        component_label_key: Label key carrying the component

    Returns:
        OwnershipStamp to pass to apply_ownership_stamp

    Example:
        >>> stamp = build_ownership_stamp(owner, "default-tenant",
        ...                               "konflux-defaulttenant-controller")
        >>> stamp.labels
        {'konflux.konflux-ci.dev/owner': 'konflux-default-tenant',
         'konflux.konflux-ci.dev/component': 'default-tenant'}
    """
    return OwnershipStamp(
        owner_reference=build_owner_reference(owner),
        labels={
            owner_label_key: owner.name,
            component_label_key: str(component),
        },
        field_manager=field_manager,
    )


def apply_ownership_stamp(
    obj: dict[str, Any], stamp: OwnershipStamp, owner: OwnerIdentity
) -> dict[str, Any]:
    """
    Set ownership labels and the controller reference on an object in place.

    CustomResourceDefinitions only get the labels: an owner reference would
    make Kubernetes garbage-collect the CRD, and every custom resource of
    that kind, when the CR is deleted.

    Args:
        obj: Object to stamp (mutated)
        stamp: Ownership stamp built for the owner
        owner: The owning CR

    Returns:
        The stamped object

    Raises:
        OwnershipError: If the owner cannot control the object (namespaced
            owner and cluster-scoped or cross-namespace object) or the
            object is already controlled by a different owner
    """
    metadata = obj.setdefault("metadata", {})
    labels = metadata.get("labels") or {}
    labels.update(stamp.labels)
    metadata["labels"] = labels

    if is_custom_resource_definition(obj):
        return obj

    object_namespace = metadata.get("namespace") or ""
    if owner.namespace and object_namespace != owner.namespace:
        target = (
            f"namespace {object_namespace}" if object_namespace else "cluster scope"
        )
        raise OwnershipError(
            f"{owner} in namespace {owner.namespace} cannot own "
            f"{obj.get('kind')}/{metadata.get('name')} in {target}"
        )

    references = []
    for reference in metadata.get("ownerReferences") or []:
        if reference.get("uid") == owner.uid:
            continue
        if reference.get("controller"):
            raise OwnershipError(
                f"{obj.get('kind')}/{metadata.get('name')} is already controlled by "
                f"{reference.get('kind')}/{reference.get('name')}"
            )
        references.append(reference)
    references.append(dict(stamp.owner_reference))
    metadata["ownerReferences"] = references

    return obj


def get_controller_reference(obj: dict[str, Any]) -> dict[str, Any] | None:
    """Return the owner reference marked as controller, if any."""
    for reference in (obj.get("metadata") or {}).get("ownerReferences") or []:
        if reference.get("controller"):
            return reference
    return None


def is_controlled_by(obj: dict[str, Any], owner: OwnerIdentity) -> bool:
    """
    Check whether an object's controller reference points at the owner.

    Both name and UID must match, so a hand-written reference that only
    copies the owner's name does not count.
    """
    reference = get_controller_reference(obj)
    if reference is None:
        return False
    return reference.get("uid") == owner.uid and reference.get("name") == owner.name


def has_ownership_labels(
    obj: dict[str, Any],
    owner_name: str,
    owner_label_key: str = OWNER_LABEL_KEY,
) -> bool:
    """Check whether an object carries the owner label for owner_name."""
    labels = (obj.get("metadata") or {}).get("labels") or {}
    return labels.get(owner_label_key) == owner_name
