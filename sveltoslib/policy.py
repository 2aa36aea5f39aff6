"""Ownership bookkeeping and conflict checks for deployed policies.

Objects are Kubernetes resources in unstructured (dict) form.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from typing import Any, Protocol

# Kind (ConfigMap or Secret) holding the policy deployed to a cluster.
REFERENCE_KIND_LABEL = "projectsveltos.io/reference-kind"
# Name of the ConfigMap/Secret holding the policy.
REFERENCE_NAME_LABEL = "projectsveltos.io/reference-name"
# Namespace of the ConfigMap/Secret holding the policy.
REFERENCE_NAMESPACE_LABEL = "projectsveltos.io/reference-namespace"
# Annotation carrying the hash of a deployed policy.
POLICY_HASH = "projectsveltos.io/hash"


class NotFoundError(LookupError):
    """Raised by a resource accessor when the requested object does not exist."""


class ConflictError(Exception):
    """The object is already deployed from a different ConfigMap/Secret."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ResourceAccessor(Protocol):
    """Fetches objects of one resource type by name."""

    def get(self, name: str) -> Mapping[str, Any]:
        """Return the named object or raise NotFoundError."""


def _metadata(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("metadata") or {}


def _name(obj: Mapping[str, Any]) -> str:
    return _metadata(obj).get("name", "")


def _kind(obj: Mapping[str, Any]) -> str:
    return obj.get("kind", "")


def _owner_references(obj: Mapping[str, Any]) -> list[dict[str, Any]] | None:
    refs = _metadata(obj).get("ownerReferences")
    return None if refs is None else list(refs)


def _set_owner_references(obj: MutableMapping[str, Any], refs: list[dict[str, Any]]) -> None:
    metadata = obj.get("metadata")
    if metadata is None:
        metadata = obj["metadata"] = {}
    metadata["ownerReferences"] = refs


def _matches(ref: Mapping[str, Any], owner: Mapping[str, Any]) -> bool:
    return ref.get("kind") == _kind(owner) and ref.get("name") == _name(owner)


def validate_object_for_update(
    resource: ResourceAccessor,
    obj: Mapping[str, Any] | None,
    reference_kind: str,
    reference_namespace: str,
    reference_name: str,
) -> tuple[bool, str]:
    """Check whether obj may be updated from the given ConfigMap/Secret.

    Returns (exists, hash): whether the object currently exists and, if so,
    the value of its policy hash annotation. Raises ConflictError if the
    existing object was deployed from a different ConfigMap/Secret.
    """
    if obj is None:
        return False, ""

    try:
        current = resource.get(_name(obj))
    except NotFoundError:
        return False, ""

    labels = _metadata(current).get("labels")
    if labels is not None:
        kind = labels.get(REFERENCE_KIND_LABEL, "")
        namespace = labels.get(REFERENCE_NAMESPACE_LABEL, "")
        name = labels.get(REFERENCE_NAME_LABEL, "")
        expected = (
            (REFERENCE_KIND_LABEL, reference_kind),
            (REFERENCE_NAMESPACE_LABEL, reference_namespace),
            (REFERENCE_NAME_LABEL, reference_name),
        )
        for label, wanted in expected:
            if label in labels and labels[label] != wanted:
                raise ConflictError(
                    f"conflict: policy (kind: {_kind(obj)}) {_name(obj)} is currently "
                    f"deployed by {kind}: {namespace}/{name}"
                )

    annotations = _metadata(current).get("annotations") or {}
    return True, annotations.get(POLICY_HASH, "")


def get_owner_message(resource: ResourceAccessor, object_name: str) -> str:
    """Describe why the named object is deployed: its source and its owners.

    Returns an empty string if the object does not exist.
    """
    try:
        current = resource.get(object_name)
    except NotFoundError:
        return ""

    parts = []
    labels = _metadata(current).get("labels")
    if labels is not None:
        kind = labels.get(REFERENCE_KIND_LABEL, "")
        namespace = labels.get(REFERENCE_NAMESPACE_LABEL, "")
        name = labels.get(REFERENCE_NAME_LABEL, "")
        parts.append(f"Object currently deployed because of {kind} {namespace}/{name}.")

    parts.append("List of Owners:")
    parts.extend(
        f"{ref.get('kind', '')} {ref.get('name', '')};"
        for ref in _owner_references(current) or []
    )
    return "".join(parts)


def add_owner_reference(obj: MutableMapping[str, Any], owner: Mapping[str, Any]) -> None:
    """Add owner to obj's owner references unless it is already listed."""
    refs = _owner_references(obj) or []
    if any(_matches(ref, owner) for ref in refs):
        return
    refs.append(
        {
            "apiVersion": owner.get("apiVersion", ""),
            "kind": _kind(owner),
            "name": _name(owner),
            "uid": _metadata(owner).get("uid", ""),
        }
    )
    _set_owner_references(obj, refs)


def remove_owner_reference(obj: MutableMapping[str, Any], owner: Mapping[str, Any]) -> None:
    """Remove owner from obj's owner references, if listed."""
    refs = _owner_references(obj)
    if refs is None:
        return
    for index, ref in enumerate(refs):
        if _matches(ref, owner):
            refs[index] = refs[-1]
            refs.pop()
            break
    _set_owner_references(obj, refs)


def is_only_owner_reference(obj: Mapping[str, Any], owner: Mapping[str, Any]) -> bool:
    """Return True if owner is the one and only owner reference of obj."""
    refs = _owner_references(obj)
    if not refs or len(refs) != 1:
        return False
    return _matches(refs[0], owner)


def is_owner_reference(obj: Mapping[str, Any], owner: Mapping[str, Any]) -> bool:
    """Return True if owner is one of obj's owner references."""
    return any(_matches(ref, owner) for ref in _owner_references(obj) or [])