"""React to CustomResourceDefinition events by reporting the kinds they define."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupVersionKind:
    """An API group, version and kind."""

    group: str
    version: str
    kind: str


CRD_GVK = GroupVersionKind("apiextensions.k8s.io", "v1", "CustomResourceDefinition")


def _field(obj: Mapping[str, Any], name: str, expected: type, default: Any) -> Any:
    value = obj.get(name)
    if value is None:
        return default
    if not isinstance(value, expected):
        raise ValueError(
            f"could not convert obj to CustomResourceDefinition: "
            f"{name} has type {type(value).__name__}"
        )
    return value


def crd_group_version_kinds(crd: Mapping[str, Any]) -> list[GroupVersionKind]:
    """Return one GroupVersionKind per version served by a CRD in unstructured form.

    Raises ValueError if the object is not shaped like a CRD.
    """
    if not isinstance(crd, Mapping):
        raise ValueError("could not convert obj to CustomResourceDefinition: not an object")
    spec = _field(crd, "spec", Mapping, {})
    group = _field(spec, "group", str, "")
    names = _field(spec, "names", Mapping, {})
    kind = _field(names, "kind", str, "")
    versions = _field(spec, "versions", list, [])
    result = []
    for version in versions:
        if not isinstance(version, Mapping):
            raise ValueError(
                "could not convert obj to CustomResourceDefinition: version is not an object"
            )
        result.append(GroupVersionKind(group, _field(version, "name", str, ""), kind))
    return result


class CRDWatcher:
    """Event handlers that call handler for every kind a changed CRD defines."""

    def __init__(
        self,
        handler: Callable[[GroupVersionKind], None],
        logger: logging.Logger | None = None,
    ) -> None:
        self.handler = handler
        self._log = logger or _log

    def _notify(self, obj: Mapping[str, Any]) -> None:
        try:
            gvks = crd_group_version_kinds(obj)
        except ValueError:
            self._log.exception("could not convert obj to CustomResourceDefinition")
            return
        for gvk in gvks:
            self.handler(gvk)

    def on_add(self, obj: Mapping[str, Any]) -> None:
        """Handle a newly added CRD."""
        self._notify(obj)

    def on_update(self, old_obj: Mapping[str, Any], new_obj: Mapping[str, Any]) -> None:
        """Handle a modified CRD, reporting the kinds of its new state."""
        self._notify(new_obj)

    def on_delete(self, obj: Mapping[str, Any]) -> None:
        """Handle a deleted CRD."""
        self._notify(obj)