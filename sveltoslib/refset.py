"""A set of Kubernetes object references."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class ObjectReference:
    """Identifies a Kubernetes object; hashable so it can live in a set."""

    kind: str = ""
    namespace: str = ""
    name: str = ""
    uid: str = ""
    api_version: str = ""
    resource_version: str = ""
    field_path: str = ""


class ReferenceSet:
    """An unordered collection of unique object references."""

    def __init__(self, entries: Iterable[ObjectReference] = ()) -> None:
        self._data: dict[ObjectReference, None] = dict.fromkeys(entries)

    def insert(self, entry: ObjectReference) -> None:
        """Add entry to the set."""
        self._data[entry] = None

    def append(self, entries: ReferenceSet | None) -> None:
        """Add every entry of another set; None adds nothing."""
        if entries is None:
            return
        self._data.update(dict.fromkeys(entries.items()))

    def erase(self, entry: ObjectReference) -> None:
        """Remove entry from the set if present."""
        self._data.pop(entry, None)

    def has(self, entry: ObjectReference) -> bool:
        """Return True if entry is currently part of the set."""
        return entry in self._data

    def items(self) -> list[ObjectReference]:
        """Return all entries currently in the set."""
        return list(self._data)

    def difference(self, other: ReferenceSet) -> list[ObjectReference]:
        """Return entries that are in this set but not in other."""
        return [entry for entry in self._data if not other.has(entry)]

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, entry: object) -> bool:
        return entry in self._data

    def __iter__(self) -> Iterator[ObjectReference]:
        return iter(list(self._data))

    def __repr__(self) -> str:
        return f"ReferenceSet({list(self._data)!r})"